"""Request context that drives a single HTTP request/response exchange over a
non-blocking transport.

The context is a cooperative state machine. The caller composes the request
with `set_request_line()`, `add_header()` and `set_body()`, then calls
`advance()` repeatedly until it reports completion or failure. Whenever the
transport cannot make progress, `advance()` returns `ExchangeResult.RETRY`
and the caller is expected to wait for the transport to become ready before
calling it again.
"""

from __future__ import annotations

import logging
import re

from enum import Enum
from time import monotonic
from typing import Any, Callable, Optional, Union

from .buffer import LineBuffer
from .codec import Codec, DERCodec
from .errors import (
    AccessDeniedError,
    AuthenticationNeededError,
    ConnectionClosedError,
    ContentTypeMismatchError,
    DecodeError,
    Error,
    FramingMismatchError,
    LimitExceededError,
    NotFoundError,
    ProtocolError,
    RequestTimeoutError,
    ResponseError,
    UnsupportedResponseError,
    UsageError,
)
from .transport import Direction, Transport

__all__ = (
    "DEFAULT_MAX_LINE_LENGTH",
    "DEFAULT_MAX_RESPONSE_LENGTH",
    "ExchangeResult",
    "ExchangeState",
    "RequestContext",
)

log = logging.getLogger(__name__)

DEFAULT_MAX_LINE_LENGTH = 4096
"""Default maximum length of status and header lines; also the size of a
single read from the transport.
"""

DEFAULT_MAX_RESPONSE_LENGTH = 100 * 1024
"""Default maximum length of the response body."""

HTTP_VERSION = b"HTTP/1.0"

_TOKEN = re.compile(rb"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
_STATUS_LINE = re.compile(rb"^HTTP/1\.[0-9] +([0-9]{3})(?: +(.*))?$")
_FORBIDDEN_IN_TARGET = re.compile(rb"[\x00-\x20\x7f]")
_FORBIDDEN_IN_VALUE = re.compile(rb"[\x00\r\n]")

_status_errors: dict[int, type[ResponseError]] = {
    401: AuthenticationNeededError,
    403: AccessDeniedError,
    404: NotFoundError,
}


class ExchangeState(Enum):
    COMPOSING = "COMPOSING"
    SENDING = "SENDING"
    AWAITING_STATUS_LINE = "AWAITING_STATUS_LINE"
    PARSING_HEADERS = "PARSING_HEADERS"
    READING_BODY = "READING_BODY"
    DONE = "DONE"
    FAILED = "FAILED"


class ExchangeResult(Enum):
    """Result of a single step of the exchange."""

    COMPLETE = "COMPLETE"
    RETRY = "RETRY"
    FAILED = "FAILED"


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("latin-1") if isinstance(value, str) else bytes(value)


class RequestContext:
    """State machine for a single HTTP request/response exchange.

    A context is used exactly once. The transports are borrowed from the
    caller; the context never closes them, not even when the exchange fails.
    """

    codec: Codec[Any]
    """Codec used to serialize the request body and to learn the length of a
    self-describing response body.
    """

    error: Optional[Error]
    """The error that terminated the exchange, if any."""

    expect_asn1: bool
    """Whether the response body is expected to be a self-describing DER
    value whose length can be used to find the end of the body.
    """

    expected_content_type: Optional[str]
    """The content type that the response must have; ``None`` if any content
    type is accepted.
    """

    max_line_length: int
    """Maximum length of status and header lines. Also used as the maximum
    number of bytes requested from the transport in a single read.
    """

    reason: Optional[str]
    """The reason phrase from the status line of the response."""

    status: Optional[int]
    """The status code from the status line of the response."""

    def __init__(
        self,
        transport: Transport,
        read_transport: Optional[Transport] = None,
        *,
        max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
        max_response_length: int = DEFAULT_MAX_RESPONSE_LENGTH,
        timeout: Optional[float] = 0,
        expected_content_type: Optional[str] = None,
        expect_asn1: bool = False,
        codec: Optional[Codec[Any]] = None,
        clock: Callable[[], float] = monotonic,
    ):
        """Constructor.

        Parameters:
            transport: the stream to write the request to. It is also used to
                read the response unless a separate read transport is given.
            read_transport: the stream to read the response from; ``None``
                means to use the same stream as for writing
            max_line_length: maximum length of status and header lines
            max_response_length: maximum length of the response body; zero
                means the default
            timeout: number of seconds allowed for the entire exchange,
                counted from now; zero or ``None`` means no timeout
            expected_content_type: the expected content type of the response
            expect_asn1: whether the response body is a self-describing DER
                value
            codec: the codec to use for the request and response bodies;
                defaults to a DER codec
            clock: monotonic clock function used to enforce the timeout
        """
        if max_line_length <= 0:
            raise UsageError("Maximum line length must be positive")

        self._writer = transport
        self._reader = read_transport or transport
        self._clock = clock

        self._state = ExchangeState.COMPOSING
        self.codec = codec if codec is not None else DERCodec()
        self.expect_asn1 = expect_asn1
        self.expected_content_type = expected_content_type
        self.max_line_length = max_line_length
        self._max_response_length = DEFAULT_MAX_RESPONSE_LENGTH
        self.set_max_response_length(max_response_length)

        self._deadline = clock() + timeout if timeout else None

        self._buffer = LineBuffer()
        self._method: Optional[bytes] = None
        self._has_body = False

        self.error = None
        self.status = None
        self.reason = None
        self._headers: dict[str, str] = {}
        self._content_length: Optional[int] = None
        self._decoded_length: Optional[int] = None
        self._body_bytes_read = 0

    ########################################################################
    # Request composition

    def set_request_line(
        self,
        post: bool = False,
        server: Optional[str] = None,
        port: Optional[Union[int, str]] = None,
        path: Optional[str] = None,
        *,
        use_tls: bool = False,
    ) -> None:
        """Writes the request line into the buffer.

        Parameters:
            post: whether to send a POST request instead of a GET request
            server: the hostname of the origin server when the request is sent
                to a forward proxy; the request target becomes an absolute URI
            port: the port of the origin server when the request is sent to a
                forward proxy
            path: the path of the requested resource; defaults to ``/``
            use_tls: whether the absolute URI sent to the proxy should use
                the ``https`` scheme

        Raises:
            UsageError: if the request line was already set or if the request
                target contains whitespace or control characters
        """
        if self._state is not ExchangeState.COMPOSING or self._method is not None:
            raise UsageError("Request line can be set only once, before sending")

        if port is not None and server is None:
            raise UsageError("Proxy port given without a server")

        target = _to_bytes(path or "/")
        if not target.startswith(b"/"):
            target = b"/" + target

        if server is not None:
            host = _to_bytes(server)
            if not host:
                raise UsageError("Empty server name")
            if b":" in host and not host.startswith(b"["):
                host = b"[" + host + b"]"
            if port is not None:
                port_str = _to_bytes(str(port))
                if not port_str.isdigit() or int(port_str) > 65535:
                    raise UsageError(f"Invalid port: {port!r}")
                host += b":" + port_str
            scheme = b"https" if use_tls else b"http"
            target = scheme + b"://" + host + target

        if _FORBIDDEN_IN_TARGET.search(target):
            raise UsageError(f"Invalid request target: {target!r}")

        method = b"POST" if post else b"GET"
        self._buffer.write_line(b" ".join((method, target, HTTP_VERSION)))
        self._method = method

    def add_header(self, name: str, value: Union[str, bytes]) -> None:
        """Appends a header line to the request.

        Headers are not deduplicated; adding the same header twice results in
        two header lines.

        Raises:
            UsageError: if the request line was not set yet, if the body was
                already set, or if the name or the value are invalid
        """
        self._ensure_headers_allowed()

        name_bytes = _to_bytes(name)
        value_bytes = _to_bytes(value)
        if not _TOKEN.match(name_bytes):
            raise UsageError(f"Invalid header name: {name!r}")
        if _FORBIDDEN_IN_VALUE.search(value_bytes):
            raise UsageError(f"Invalid value for header {name!r}")

        self._buffer.write_line(name_bytes + b": " + value_bytes.strip(b" \t"))

    def set_body(self, value: Any, content_type: Optional[str] = None) -> None:
        """Serializes the given value with the codec of the context and
        appends it to the request as its body, along with the
        ``Content-Length`` and (optionally) ``Content-Type`` headers.

        Raises:
            UsageError: if the request is not a POST request or if the body
                was already set
            EncodeError: if the value cannot be serialized
        """
        self._ensure_headers_allowed()
        if self._method != b"POST":
            raise UsageError("Request body can only be set for POST requests")

        data = self.codec.encode(value)

        self.add_header("Content-Length", str(len(data)))
        if content_type is not None:
            self.add_header("Content-Type", content_type)
        self._buffer.write_line()
        self._buffer.write(data)
        self._has_body = True

    def _ensure_headers_allowed(self) -> None:
        if self._state is not ExchangeState.COMPOSING:
            raise UsageError("Request can only be modified before sending")
        if self._method is None:
            raise UsageError("Request line must be set first")
        if self._has_body:
            raise UsageError("Request body was already set")

    ########################################################################
    # Direct buffer access and limits

    def get_buffer(self) -> LineBuffer:
        """Returns the internal buffer of the context.

        Before the request is sent, the buffer holds the composed request.
        While the response is being received, it holds the unparsed part of
        the response, and at the end it holds the response body. Callers that
        modify the buffer are responsible for keeping it in a state that the
        context can continue to process.
        """
        return self._buffer

    buffer = property(get_buffer)

    @property
    def max_response_length(self) -> int:
        """Maximum length of the response body."""
        return self._max_response_length

    @max_response_length.setter
    def max_response_length(self, value: int) -> None:
        self.set_max_response_length(value)

    def set_max_response_length(self, length: int) -> None:
        """Sets the maximum length of the response body; zero resets it to
        the default. The new limit applies from the next length check.
        """
        if length < 0:
            raise UsageError("Maximum response length must not be negative")
        if self._state in (ExchangeState.DONE, ExchangeState.FAILED):
            raise UsageError("Exchange has already finished")
        self._max_response_length = length or DEFAULT_MAX_RESPONSE_LENGTH

    ########################################################################
    # Response information

    @property
    def body_bytes_read(self) -> int:
        """Number of response body bytes received so far."""
        return self._body_bytes_read

    @property
    def content_length(self) -> Optional[int]:
        """Length of the response body as declared in the ``Content-Length``
        header; ``None`` if the header was not seen (yet).
        """
        return self._content_length

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Returns the value of the given response header or the given default
        value if the header was not received. Header names are matched
        case-insensitively.
        """
        return self._headers.get(name.capitalize(), default)

    @property
    def headers(self) -> dict[str, str]:
        """The response headers received so far, keyed by their capitalized
        name. When a header appears multiple times, the last one wins.
        """
        return dict(self._headers)

    @property
    def pending_direction(self) -> Optional[Direction]:
        """The direction in which the exchange is waiting for the transport;
        ``None`` if the exchange has finished.
        """
        if self._state in (ExchangeState.COMPOSING, ExchangeState.SENDING):
            return Direction.WRITE
        if self._state in (ExchangeState.DONE, ExchangeState.FAILED):
            return None
        return Direction.READ

    @property
    def state(self) -> ExchangeState:
        """The current state of the exchange."""
        return self._state

    ########################################################################
    # Exchange

    def advance(self) -> ExchangeResult:
        """Performs as much of the exchange as possible without blocking.

        Returns:
            `ExchangeResult.COMPLETE` when the response body was received,
            `ExchangeResult.RETRY` when the transport cannot make progress
            right now, `ExchangeResult.FAILED` when the exchange failed. The
            reason of the failure is stored in `error`; all subsequent calls
            return the same result without any further I/O.

        Raises:
            UsageError: if the request line was not set
        """
        if self._state is ExchangeState.FAILED:
            return ExchangeResult.FAILED
        if self._state is ExchangeState.DONE:
            return ExchangeResult.COMPLETE

        if self._method is None:
            raise UsageError("Request line must be set before sending")

        try:
            if self._deadline is not None and self._clock() > self._deadline:
                raise RequestTimeoutError("Timeout while waiting for the response")

            if self._state is ExchangeState.COMPOSING:
                self._finish_request()

            while True:
                if self._state is ExchangeState.SENDING:
                    result = self._send()
                elif self._state in (
                    ExchangeState.AWAITING_STATUS_LINE,
                    ExchangeState.PARSING_HEADERS,
                ):
                    result = self._parse_lines()
                elif self._state is ExchangeState.READING_BODY:
                    result = self._read_body()
                else:
                    raise AssertionError(f"Invalid state: {self._state!r}")

                if result is not None:
                    return result

        except Error as ex:
            self._fail(ex)
            return ExchangeResult.FAILED

    nbio = advance

    def decode_response(self, codec: Optional[Codec[Any]] = None) -> Any:
        """Decodes the received response body.

        Parameters:
            codec: the codec to use; defaults to the codec of the context

        Raises:
            UsageError: if the exchange has not completed successfully
            DecodeError: if the body is not a single valid encoded value
        """
        if self._state is not ExchangeState.DONE:
            raise UsageError("Response is not complete yet")

        codec = codec or self.codec
        data = self._buffer.getvalue()
        decoded = codec.decode(data)
        if decoded.consumed != len(data):
            raise DecodeError(
                f"{len(data) - decoded.consumed} trailing byte(s) after the "
                "decoded value"
            )
        return decoded.value

    def send_and_decode(
        self, codec: Optional[Codec[Any]] = None, poll_interval: float = 0.1
    ) -> Any:
        """Drives the exchange to completion and decodes the response body.

        Between steps that could not make progress, the transport is waited
        on for at most the given poll interval (or until the deadline,
        whichever comes first).

        Parameters:
            codec: the codec to decode the response with; defaults to the
                codec of the context
            poll_interval: maximum number of seconds to wait for the
                transport between two steps

        Returns:
            the decoded response body

        Raises:
            Error: the error that terminated the exchange, or a
                `DecodeError` if the response body could not be decoded
        """
        while True:
            result = self.advance()
            if result is ExchangeResult.COMPLETE:
                break
            if result is ExchangeResult.FAILED:
                assert self.error is not None
                raise self.error
            self._wait_for_transport(poll_interval)

        return self.decode_response(codec)

    def transport_for(self, direction: Optional[Direction]) -> Transport:
        """Returns the transport used for I/O in the given direction."""
        return self._writer if direction is Direction.WRITE else self._reader

    def time_remaining(self) -> Optional[float]:
        """Returns the number of seconds until the deadline, or ``None`` if
        the exchange has no deadline.
        """
        if self._deadline is None:
            return None
        return max(self._deadline - self._clock(), 0.0)

    def _wait_for_transport(self, poll_interval: float) -> None:
        direction = self.pending_direction
        if direction is None:
            return

        wait = poll_interval
        remaining = self.time_remaining()
        if remaining is not None:
            wait = min(wait, remaining)

        self.transport_for(direction).wait_ready(direction, wait)

    def _fail(self, error: Error) -> None:
        log.debug("Exchange failed in state %s: %s", self._state.name, error)
        self.error = error
        self._state = ExchangeState.FAILED

    def _finish_request(self) -> None:
        if not self._has_body:
            if self._method == b"POST":
                self._buffer.write_line(b"Content-Length: 0")
            self._buffer.write_line()
        log.debug("Sending %d byte(s) of request", self._buffer.pending)
        self._state = ExchangeState.SENDING

    def _send(self) -> Optional[ExchangeResult]:
        data = self._buffer.peek()
        if data:
            written = self._writer.write(data)
            if not written:
                return ExchangeResult.RETRY
            self._buffer.skip(written)
            if self._buffer.pending:
                return None

        log.debug("Request sent, waiting for response")
        self._buffer.reset()
        self._state = ExchangeState.AWAITING_STATUS_LINE
        return None

    def _parse_lines(self) -> Optional[ExchangeResult]:
        while self._state is not ExchangeState.READING_BODY:
            line = self._buffer.read_line(self.max_line_length)
            if line is None:
                break
            if self._state is ExchangeState.AWAITING_STATUS_LINE:
                self._process_status_line(line)
            elif line:
                self._process_header_line(line)
            else:
                self._finish_headers()

        if self._state is ExchangeState.READING_BODY:
            return None

        # Consumed lines are not needed any more
        self._buffer.compact()

        data = self._reader.read(self.max_line_length)
        if data is None:
            return ExchangeResult.RETRY
        if not data:
            raise ConnectionClosedError(
                "Connection closed while reading the response headers"
            )
        self._buffer.write(data)
        return None

    def _process_status_line(self, line: bytes) -> None:
        match = _STATUS_LINE.match(line)
        if not match:
            raise ProtocolError(f"Invalid response line: {line!r}")

        self.status = int(match.group(1))
        self.reason = (match.group(2) or b"").decode("latin-1").strip()
        log.debug("Received status %d %s", self.status, self.reason)

        if not 200 <= self.status < 300:
            error_class = _status_errors.get(self.status, ResponseError)
            raise error_class(
                f"Received HTTP response: {self.status} {self.reason}".rstrip(),
                self.status,
                self.reason,
            )

        self._state = ExchangeState.PARSING_HEADERS

    def _process_header_line(self, line: bytes) -> None:
        key, sep, value = line.partition(b":")
        if not sep or not _TOKEN.match(key):
            raise ProtocolError(f"Found invalid HTTP header line: {line!r}")

        name = key.decode("ascii").capitalize()
        value = value.strip(b" \t")
        text = value.decode("latin-1")

        if name == "Content-length":
            # bytes.isdigit() accepts ASCII digits only
            if not value.isdigit():
                raise ProtocolError(f"Invalid Content-Length: {text!r}")
            length = int(value)
            if self._content_length is not None and self._content_length != length:
                raise ProtocolError("Conflicting Content-Length headers")
            if length > self._max_response_length:
                raise LimitExceededError(
                    f"Content-Length {length} exceeds maximum response length "
                    f"{self._max_response_length}"
                )
            self._content_length = length

        self._headers[name] = text

    def _finish_headers(self) -> None:
        transfer_encoding = self.get_header("Transfer-Encoding")
        if transfer_encoding and "chunked" in transfer_encoding.lower():
            raise UnsupportedResponseError("Chunked transfer encoding is not supported")

        if self.expected_content_type is not None:
            content_type = self.get_header("Content-Type")
            if content_type is None:
                raise ContentTypeMismatchError(
                    f"Missing Content-Type, expected {self.expected_content_type!r}",
                    self.status,
                    self.reason or "",
                )
            media_type = content_type.partition(";")[0].strip()
            expected = self.expected_content_type.partition(";")[0].strip()
            if media_type.lower() != expected.lower():
                raise ContentTypeMismatchError(
                    f"Expected Content-Type {self.expected_content_type!r}, "
                    f"got {content_type!r}",
                    self.status,
                    self.reason or "",
                )

        # Headers are not retained in the buffer, only the body
        self._buffer.compact()
        self._body_bytes_read = len(self._buffer)
        self._state = ExchangeState.READING_BODY
        log.debug(
            "Headers processed, Content-Length: %s, %d body byte(s) buffered",
            self._content_length,
            self._body_bytes_read,
        )

    def _expected_body_length(self) -> Optional[int]:
        if self._content_length is not None:
            return self._content_length
        return self._decoded_length

    def _check_body(self) -> bool:
        """Checks the body received so far against the length limits.

        Returns:
            whether the body is complete
        """
        received = self._body_bytes_read
        if received > self._max_response_length:
            raise LimitExceededError(
                f"Response body exceeds maximum length {self._max_response_length}"
            )

        if self.expect_asn1 and self._decoded_length is None:
            length = self.codec.measure(self._buffer.getvalue())
            if length is not None:
                if length > self._max_response_length:
                    raise LimitExceededError(
                        f"Body declares {length} bytes, more than the maximum "
                        f"response length {self._max_response_length}"
                    )
                if self._content_length is not None and length != self._content_length:
                    raise FramingMismatchError(self._content_length, length)
                self._decoded_length = length

        expected = self._expected_body_length()
        if expected is None:
            return False
        if received > expected:
            raise LimitExceededError(
                f"Received {received} body bytes, more than the expected {expected}"
            )
        return received == expected

    def _read_body(self) -> Optional[ExchangeResult]:
        if self._check_body():
            return self._complete()

        to_read = self.max_line_length
        expected = self._expected_body_length()
        if expected is not None:
            to_read = min(to_read, expected - self._body_bytes_read)

        data = self._reader.read(to_read)
        if data is None:
            return ExchangeResult.RETRY

        if not data:
            if expected is None and not self.expect_asn1:
                # Body is delimited by the end of the stream
                return self._complete()
            raise ConnectionClosedError(
                f"Connection closed after {self._body_bytes_read} body byte(s)"
            )

        if self._body_bytes_read + len(data) > self._max_response_length:
            raise LimitExceededError(
                f"Response body exceeds maximum length {self._max_response_length}"
            )

        self._buffer.write(data)
        self._body_bytes_read += len(data)
        return None

    def _complete(self) -> ExchangeResult:
        log.debug("Response complete, %d body byte(s)", self._body_bytes_read)
        self._state = ExchangeState.DONE
        return ExchangeResult.COMPLETE
