"""Non-blocking duplex byte streams that the request engine talks to."""

from .base import Direction, Transport
from .memory import MemoryTransport
from .tcp import TCPTransport

__all__ = ("Direction", "MemoryTransport", "TCPTransport", "Transport")
