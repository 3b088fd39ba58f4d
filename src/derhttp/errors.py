"""Error classes for the HTTP request engine."""

from typing import Optional

__all__ = (
    "Error",
    "UsageError",
    "ProtocolError",
    "LineTooLongError",
    "ConnectionClosedError",
    "UnsupportedResponseError",
    "LimitExceededError",
    "FramingMismatchError",
    "TransportError",
    "RequestTimeoutError",
    "ResponseError",
    "AccessDeniedError",
    "AuthenticationNeededError",
    "NotFoundError",
    "ContentTypeMismatchError",
    "EncodeError",
    "DecodeError",
    "IncompleteDataError",
)


class Error(RuntimeError):
    """Base class for all exceptions that are thrown from this package."""

    pass


class UsageError(Error):
    """Error thrown when the methods of a request context are called in the
    wrong order or when their preconditions are not met.
    """

    pass


class ProtocolError(Error):
    """Error thrown when the remote server sent something that does not
    look like a valid HTTP response.
    """

    pass


class LineTooLongError(ProtocolError):
    """Error thrown when a status or header line exceeds the maximum line
    length.
    """

    pass


class ConnectionClosedError(ProtocolError):
    """Error thrown when the remote server closed the connection before the
    response was complete.
    """

    pass


class UnsupportedResponseError(ProtocolError):
    """Error thrown when the response uses an HTTP feature that we do not
    support, e.g. chunked transfer encoding.
    """

    pass


class LimitExceededError(Error):
    """Error thrown when the response body is longer than the configured
    maximum or longer than its own declared length.
    """

    pass


class FramingMismatchError(LimitExceededError):
    """Error thrown when the length declared in the ``Content-Length`` header
    and the length recovered from the body itself do not agree.
    """

    def __init__(self, declared: int, decoded: int):
        super().__init__(
            f"Content-Length is {declared} but the body declares {decoded} bytes"
        )
        self.declared = declared
        self.decoded = decoded


class TransportError(Error):
    """Error thrown when the underlying byte stream reports a fatal I/O
    failure.
    """

    pass


class RequestTimeoutError(Error):
    """Error thrown when the deadline of an exchange passed before the
    response was received completely.
    """

    pass


class ResponseError(Error):
    """Error thrown when the response carries an HTTP status code signalling
    an error condition.
    """

    status: Optional[int]
    reason: str

    def __init__(self, message: str, status: Optional[int] = None, reason: str = ""):
        super().__init__(message)
        self.status = status
        self.reason = reason


class AccessDeniedError(ResponseError):
    """Error thrown when the server denied access to the requested resource."""

    pass


class AuthenticationNeededError(ResponseError):
    """Error thrown when the server indicates that authentication will be
    needed to access a resource.
    """

    pass


class NotFoundError(ResponseError):
    """Error thrown when the server indicates that the requested resource is
    not found.
    """

    pass


class ContentTypeMismatchError(ResponseError):
    """Error thrown when the ``Content-Type`` of the response is missing or
    differs from the expected one.
    """

    pass


class EncodeError(Error):
    """Error thrown by codecs when a value cannot be serialized."""

    pass


class DecodeError(Error):
    """Error thrown by codecs when a byte sequence cannot be decoded."""

    pass


class IncompleteDataError(DecodeError):
    """Error thrown by codecs when the byte sequence is a valid but truncated
    prefix of an encoded value.
    """

    needed: Optional[int]

    def __init__(self, needed: Optional[int] = None):
        if needed is None:
            message = "Need more bytes to decode the value"
        else:
            message = f"Need {needed} more byte(s) to decode the value"
        super().__init__(message)
        self.needed = needed
