"""Transport that wraps a connected TCP (or TLS) socket."""

from __future__ import annotations

import logging
import selectors
import socket
import ssl

from typing import Optional

from derhttp.errors import TransportError

from .base import Direction, Transport

__all__ = ("TCPTransport",)

log = logging.getLogger(__name__)

_WOULD_BLOCK = (BlockingIOError, ssl.SSLWantReadError, ssl.SSLWantWriteError)

_EVENTS = {
    Direction.READ: selectors.EVENT_READ,
    Direction.WRITE: selectors.EVENT_WRITE,
}


class TCPTransport(Transport):
    """Non-blocking transport on top of a connected socket.

    The socket is switched to non-blocking mode when the transport is
    constructed. The transport does not own the socket in the sense that the
    request engine never closes it; call `close()` when done.
    """

    @classmethod
    def connect(cls, host: str, port: int, timeout: Optional[float] = 10) -> TCPTransport:
        """Opens a TCP connection to the given host and port and wraps it in
        a transport.

        Parameters:
            host: the hostname of the server
            port: the port of the server to connect to
            timeout: timeout to use for the connection attempt, in seconds

        Raises:
            TransportError: when the connection could not be established
        """
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as ex:
            raise TransportError(f"Cannot connect to {host}:{port}: {ex}") from ex
        log.debug("connected to %s:%d", host, port)
        return cls(sock)

    def __init__(self, sock: socket.socket):
        """Constructor.

        Parameters:
            sock: the connected socket to wrap
        """
        self._sock = sock
        self._sock.setblocking(False)

    def close(self) -> None:
        """Closes the underlying socket."""
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # socket may have been shut down by the peer already
            pass
        self._sock.close()

    def fileno(self) -> int:
        return self._sock.fileno()

    @property
    def raw_socket(self) -> socket.socket:
        """The wrapped socket."""
        return self._sock

    def read(self, max_bytes: int) -> Optional[bytes]:
        while True:
            try:
                return self._sock.recv(max_bytes)
            except _WOULD_BLOCK:
                return None
            except InterruptedError:
                continue
            except OSError as ex:
                raise TransportError(f"Error while reading from socket: {ex}") from ex

    def wait_ready(self, direction: Direction, timeout: Optional[float] = None) -> bool:
        if direction is Direction.READ and isinstance(self._sock, ssl.SSLSocket):
            # TLS layer may hold decrypted bytes that select() does not see
            if self._sock.pending():
                return True

        with selectors.DefaultSelector() as selector:
            selector.register(self._sock, _EVENTS[direction])
            return bool(selector.select(timeout))

    def write(self, data: bytes) -> Optional[int]:
        while True:
            try:
                return self._sock.send(data)
            except _WOULD_BLOCK:
                return None
            except InterruptedError:
                continue
            except BrokenPipeError as ex:
                raise TransportError("Connection closed when trying to write") from ex
            except OSError as ex:
                raise TransportError(f"Error while writing to socket: {ex}") from ex
