import socket

from time import monotonic

from pytest import fixture, raises

from derhttp.codec import DERElement
from derhttp.errors import TransportError
from derhttp.request import RequestContext
from derhttp.transport import Direction, MemoryTransport, TCPTransport


@fixture
def socket_pair():
    ours, theirs = socket.socketpair()
    try:
        yield ours, theirs
    finally:
        ours.close()
        theirs.close()


def test_memory_transport():
    transport = MemoryTransport(b"abcdef", max_write=3)
    assert transport.read(4) == b"abcd"
    assert transport.read(4) == b"ef"
    assert transport.read(4) is None
    assert not transport.wait_ready(Direction.READ, 0)

    transport.pause()
    transport.feed(b"gh")
    transport.feed_eof()
    assert transport.read(4) is None
    assert transport.read(4) == b"gh"
    assert transport.read(4) == b""

    assert transport.write(b"12345") == 3
    transport.block_writes()
    assert not transport.wait_ready(Direction.WRITE)
    assert transport.write(b"45") is None
    assert transport.write(b"45") == 2
    assert transport.sent == b"12345"

    transport.close()
    with raises(TransportError):
        transport.read(1)


def test_tcp_transport_read_and_write(socket_pair):
    ours, theirs = socket_pair
    transport = TCPTransport(ours)

    assert transport.fileno() == ours.fileno()
    assert transport.read(100) is None
    assert not transport.wait_ready(Direction.READ, 0)
    assert transport.wait_ready(Direction.WRITE, 1)

    assert transport.write(b"ping") == 4
    assert theirs.recv(100) == b"ping"

    theirs.sendall(b"pong")
    assert transport.wait_ready(Direction.READ, 1)
    assert transport.read(2) == b"po"
    assert transport.read(100) == b"ng"

    theirs.shutdown(socket.SHUT_WR)
    assert transport.wait_ready(Direction.READ, 1)
    assert transport.read(100) == b""


def test_tcp_transport_errors(socket_pair):
    ours, _ = socket_pair
    transport = TCPTransport(ours)
    transport.close()

    with raises(TransportError):
        transport.read(100)
    with raises(TransportError):
        transport.write(b"data")


def test_tcp_transport_connect_failure():
    server = socket.create_server(("127.0.0.1", 0))
    port = server.getsockname()[1]
    server.close()

    with raises(TransportError):
        TCPTransport.connect("127.0.0.1", port, timeout=1)


def test_exchange_over_socket(socket_pair):
    ours, theirs = socket_pair
    response = DERElement.sequence(DERElement.integer(0))

    theirs.sendall(
        b"HTTP/1.0 200 OK\r\nContent-Type: application/ocsp-response\r\n\r\n"
        + response.encode()
    )

    transport = TCPTransport(ours)
    context = RequestContext(
        transport,
        timeout=5,
        expected_content_type="application/ocsp-response",
        expect_asn1=True,
    )
    context.set_request_line(post=True, path="/")
    context.add_header("Host", "localhost")
    context.set_body(DERElement.sequence(DERElement.octet_string(b"request")))

    assert context.send_and_decode() == response

    request = theirs.recv(4096)
    assert request.startswith(b"POST / HTTP/1.0\r\nHost: localhost\r\n")
    assert ours.fileno() >= 0


def test_memory_transport_waits_when_not_ready():
    transport = MemoryTransport()

    started = monotonic()
    assert not transport.wait_ready(Direction.READ, 0.05)
    assert monotonic() - started >= 0.04

    transport.feed(b"x")
    started = monotonic()
    assert transport.wait_ready(Direction.READ, 5)
    assert monotonic() - started < 1
