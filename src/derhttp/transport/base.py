"""Interface definition for the byte streams used by the request
engine.
"""

from abc import ABCMeta, abstractmethod
from enum import Enum
from io import UnsupportedOperation
from typing import Optional

__all__ = ("Direction", "Transport")


class Direction(Enum):
    """I/O direction that a transport may be waited on."""

    READ = "read"
    WRITE = "write"


class Transport(metaclass=ABCMeta):
    """Non-blocking duplex byte stream.

    The read and write methods follow the conventions of non-blocking raw
    streams in the ``io`` module: they return ``None`` when the operation
    would block, and reads return an empty bytes object at EOF. Fatal errors
    are raised as `TransportError`.
    """

    @abstractmethod
    def read(self, max_bytes: int) -> Optional[bytes]:
        """Reads at most the given number of bytes from the stream.

        Returns:
            the bytes read; an empty bytes object at EOF or ``None`` if no
            data is available right now

        Raises:
            TransportError: when the stream reported a fatal error
        """
        raise NotImplementedError

    @abstractmethod
    def write(self, data: bytes) -> Optional[int]:
        """Writes some of the given bytes to the stream.

        Returns:
            the number of bytes written, which may be less than the length of
            the data, or ``None`` if the stream cannot accept data right now

        Raises:
            TransportError: when the stream reported a fatal error
        """
        raise NotImplementedError

    def fileno(self) -> int:
        """Returns the file descriptor of the stream if it has one."""
        raise UnsupportedOperation("transport has no file descriptor")

    def wait_ready(self, direction: Direction, timeout: Optional[float] = None) -> bool:
        """Waits until the stream becomes ready for I/O in the given direction.

        This method is advisory; the default implementation returns
        immediately.

        Parameters:
            direction: the direction to wait for
            timeout: the maximum number of seconds to wait; ``None`` means
                to wait indefinitely

        Returns:
            whether the stream became ready before the timeout expired
        """
        return True
