import socket

from pytest import importorskip, raises

from derhttp.aio import send_and_decode_async
from derhttp.codec import DERElement, RawCodec
from derhttp.errors import RequestTimeoutError
from derhttp.request import RequestContext
from derhttp.transport import MemoryTransport, TCPTransport

trio = importorskip("trio")


def test_memory_transport():
    transport = MemoryTransport(b"HTTP/1.0 200 OK\r\nContent-Length: 2\r\n\r\n")
    transport.pause()
    transport.feed(b"\x05\x00")

    context = RequestContext(transport)
    context.set_request_line()

    result = trio.run(send_and_decode_async, context, None, 0.01)
    assert result == DERElement.null()


def test_socket_with_delayed_response():
    ours, theirs = socket.socketpair()
    try:
        context = RequestContext(TCPTransport(ours), codec=RawCodec(), timeout=5)
        context.set_request_line()

        async def respond():
            await trio.sleep(0.05)
            theirs.sendall(b"HTTP/1.0 200 OK\r\nContent-Length: 5\r\n\r\nhel")
            await trio.sleep(0.05)
            theirs.sendall(b"lo")

        async def main():
            async with trio.open_nursery() as nursery:
                nursery.start_soon(respond)
                return await send_and_decode_async(context)

        assert trio.run(main) == b"hello"
        assert theirs.recv(4096) == b"GET / HTTP/1.0\r\n\r\n"
    finally:
        ours.close()
        theirs.close()


def test_timeout():
    ours, theirs = socket.socketpair()
    try:
        context = RequestContext(TCPTransport(ours), timeout=0.2)
        context.set_request_line()

        with raises(RequestTimeoutError):
            trio.run(send_and_decode_async, context)
    finally:
        ours.close()
        theirs.close()
