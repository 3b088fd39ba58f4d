import socket
import threading

from click.testing import CliRunner

from derhttp.cli import post_command
from derhttp.codec import DERElement


def serve_once(server: socket.socket, response: bytes, requests: list) -> None:
    conn, _ = server.accept()
    with conn:
        data = b""
        while b"\r\n\r\n" not in data:
            chunk = conn.recv(4096)
            if not chunk:
                return
            data += chunk
        head, _, body = data.partition(b"\r\n\r\n")
        for line in head.split(b"\r\n"):
            name, _, value = line.partition(b":")
            if name.lower() == b"content-length":
                while len(body) < int(value):
                    body += conn.recv(4096)
        requests.append((head, body))
        conn.sendall(response)


def run_with_server(response: bytes, args_for_port):
    server = socket.create_server(("127.0.0.1", 0))
    port = server.getsockname()[1]
    requests: list = []
    thread = threading.Thread(target=serve_once, args=(server, response, requests))
    thread.start()
    try:
        result = CliRunner().invoke(post_command, args_for_port(port))
    finally:
        thread.join(5)
        server.close()
    return result, requests


def test_post_file_and_print_tree(tmp_path):
    request_body = DERElement.sequence(DERElement.octet_string(b"req")).encode()
    path = tmp_path / "request.der"
    path.write_bytes(request_body)

    response_body = DERElement.sequence(
        DERElement.integer(42), DERElement.octet_string(b"\x01\x02")
    ).encode()
    response = (
        b"HTTP/1.0 200 OK\r\nContent-Type: application/ocsp-response\r\n\r\n"
        + response_body
    )

    result, requests = run_with_server(
        response,
        lambda port: [
            f"http://127.0.0.1:{port}/ocsp",
            str(path),
            "--content-type",
            "application/ocsp-request",
            "--expect-type",
            "application/ocsp-response",
            "--format",
            "tree",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "UNIVERSAL 16 (7 bytes)" in result.output
    assert "  UNIVERSAL 2: 2a" in result.output
    assert "  UNIVERSAL 4: 01 02" in result.output

    head, body = requests[0]
    assert head.startswith(b"POST /ocsp HTTP/1.0\r\n")
    assert b"\r\nContent-Type: application/ocsp-request" in head
    assert body == request_body


def test_get_raw(tmp_path):
    response = b"HTTP/1.0 200 OK\r\nContent-Length: 5\r\n\r\nhello"
    result, requests = run_with_server(
        response, lambda port: [f"http://127.0.0.1:{port}/", "--no-asn1"]
    )

    assert result.exit_code == 0, result.output
    assert "hello" in result.output
    assert requests[0][0].startswith(b"GET / HTTP/1.0\r\n")


def test_server_error_is_reported():
    response = b"HTTP/1.0 404 Not Found\r\n\r\n"
    result, _ = run_with_server(
        response, lambda port: [f"http://127.0.0.1:{port}/missing", "--no-asn1"]
    )

    assert result.exit_code == 1
    assert "404" in result.output


def test_unsupported_url():
    result = CliRunner().invoke(post_command, ["https://example.com/"])
    assert result.exit_code == 2
