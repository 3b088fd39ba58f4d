from pytest import raises

from derhttp.buffer import LineBuffer
from derhttp.errors import LineTooLongError, ProtocolError


def test_write_and_read_lines():
    buffer = LineBuffer()
    buffer.write_line(b"GET / HTTP/1.0")
    buffer.write_line(b"Host: example.com")
    buffer.write_line()

    assert buffer.getvalue() == b"GET / HTTP/1.0\r\nHost: example.com\r\n\r\n"
    assert buffer.read_line(100) == b"GET / HTTP/1.0"
    assert buffer.read_line(100) == b"Host: example.com"
    assert buffer.read_line(100) == b""
    assert buffer.read_line(100) is None
    assert buffer.pending == 0
    assert buffer.cursor == len(buffer)


def test_bare_line_feed_terminator():
    buffer = LineBuffer(b"HTTP/1.0 200 OK\nContent-Length: 0\n\n")
    assert buffer.read_line(100) == b"HTTP/1.0 200 OK"
    assert buffer.read_line(100) == b"Content-Length: 0"
    assert buffer.read_line(100) == b""


def test_partial_line_is_not_consumed():
    buffer = LineBuffer(b"HTTP/1.1 20")
    assert buffer.read_line(100) is None
    assert buffer.cursor == 0
    assert buffer.pending == 11

    buffer.write(b"0 OK\r")
    assert buffer.read_line(100) is None

    buffer.write(b"\nrest")
    assert buffer.read_line(100) == b"HTTP/1.1 200 OK"
    assert buffer.peek() == b"rest"


def test_line_too_long():
    buffer = LineBuffer(b"a" * 16)
    assert buffer.read_line(16) is None

    buffer.write(b"a")
    with raises(LineTooLongError):
        buffer.read_line(16)

    buffer = LineBuffer(b"b" * 17 + b"\r\n")
    with raises(ProtocolError):
        buffer.read_line(16)

    buffer = LineBuffer(b"c" * 16 + b"\r\n")
    assert buffer.read_line(16) == b"c" * 16


def test_read_skip_and_compact():
    buffer = LineBuffer(b"header\r\nbody bytes")
    assert buffer.read_line(100) == b"header"

    buffer.compact()
    assert buffer.cursor == 0
    assert buffer.getvalue() == b"body bytes"

    assert buffer.read(4) == b"body"
    buffer.skip(1)
    assert buffer.read() == b"bytes"
    assert buffer.read() == b""

    with raises(ValueError):
        buffer.skip(1)

    buffer.reset()
    assert len(buffer) == 0
    assert bytes(buffer) == b""


def test_cursor_is_clamped_after_raw_edit():
    buffer = LineBuffer(b"0123456789")
    buffer.skip(8)
    del buffer.raw[4:]
    assert buffer.cursor == 4
    assert buffer.pending == 0
