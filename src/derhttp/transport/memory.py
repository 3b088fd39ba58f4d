"""In-memory transport for deterministic exchanges without real I/O."""

from collections import deque
from time import sleep
from typing import Deque, Optional, Union

from derhttp.errors import TransportError

from .base import Direction, Transport

__all__ = ("MemoryTransport",)


_PAUSE = object()


class MemoryTransport(Transport):
    """Transport that serves scripted incoming data and records everything
    written to it.

    Incoming data is consumed in the chunks it was fed in; a single read
    never crosses the boundary of two chunks. `pause()` inserts a point in
    the incoming data where the next read reports that it would block.
    """

    closed: bool
    max_write: Optional[int]
    sent: bytearray

    _chunks: Deque[Union[bytes, object]]
    _eof: bool
    _error: Optional[Exception]
    _writes_to_block: int

    def __init__(self, data: bytes = b"", *, eof: bool = False, max_write: Optional[int] = None):
        """Constructor.

        Parameters:
            data: initial incoming data
            eof: whether the incoming data ends after the initial data
            max_write: maximum number of bytes accepted by a single write;
                ``None`` means no limit
        """
        self.closed = False
        self.max_write = max_write
        self.sent = bytearray()

        self._chunks = deque()
        self._eof = False
        self._error = None
        self._writes_to_block = 0

        if data:
            self.feed(data)
        if eof:
            self.feed_eof()

    def block_writes(self, count: int = 1) -> None:
        """Makes the next `count` writes report that they would block."""
        self._writes_to_block += count

    def close(self) -> None:
        self.closed = True

    def fail_with(self, error: Optional[Exception]) -> None:
        """Makes all subsequent reads and writes fail with the given error;
        ``None`` clears the error.
        """
        self._error = error

    def feed(self, data: bytes) -> None:
        """Queues incoming data that will be returned by subsequent reads."""
        if data:
            self._chunks.append(bytes(data))

    def feed_eof(self) -> None:
        """Marks the end of the incoming data."""
        self._eof = True

    def pause(self) -> None:
        """Makes the read following the already queued data report that it
        would block.
        """
        self._chunks.append(_PAUSE)

    @property
    def has_pending_data(self) -> bool:
        return any(chunk is not _PAUSE for chunk in self._chunks)

    def read(self, max_bytes: int) -> Optional[bytes]:
        self._check()

        if not self._chunks:
            return b"" if self._eof else None

        chunk = self._chunks.popleft()
        if chunk is _PAUSE:
            return None

        assert isinstance(chunk, bytes)
        if len(chunk) > max_bytes:
            self._chunks.appendleft(chunk[max_bytes:])
            chunk = chunk[:max_bytes]
        return chunk

    def wait_ready(self, direction: Direction, timeout: Optional[float] = None) -> bool:
        """Reports whether the transport is ready in the given direction.

        The transport cannot signal readiness, so when it is not ready, this
        sleeps for the given timeout and reports the state afterwards. A
        timeout of ``None`` or zero returns immediately.
        """
        if not self._is_ready(direction) and timeout:
            sleep(timeout)
        return self._is_ready(direction)

    def write(self, data: bytes) -> Optional[int]:
        self._check()

        if self._writes_to_block > 0:
            self._writes_to_block -= 1
            return None

        if self.max_write is not None:
            data = data[: self.max_write]
        self.sent += data
        return len(data)

    def _is_ready(self, direction: Direction) -> bool:
        if direction is Direction.READ:
            return bool(self._chunks) or self._eof
        return self._writes_to_block == 0

    def _check(self) -> None:
        if self.closed:
            raise TransportError("Transport is closed")
        if self._error is not None:
            raise TransportError(str(self._error)) from self._error
