"""Command line tool that sends a single request with the request engine,
mostly for debugging servers that speak DER over HTTP.
"""

from __future__ import annotations

import click

from typing import IO, Any, Optional
from urllib.parse import urlparse

from derhttp.codec import DERCodec, DERElement, RawCodec
from derhttp.errors import Error
from derhttp.request import RequestContext
from derhttp.transport import TCPTransport

__all__ = ("post_command",)


def _format_tree(element: DERElement, depth: int = 0) -> list[str]:
    prefix = "  " * depth
    label = f"{element.tag_class.name} {element.tag_number}"
    if element.constructed:
        lines = [f"{prefix}{label} ({len(element.content)} bytes)"]
        for child in element.children:
            lines.extend(_format_tree(child, depth + 1))
        return lines
    return [f"{prefix}{label}: {element.content.hex(' ')}"]


def _format_hex(data: bytes) -> list[str]:
    printable = bytes(ch if 32 <= ch < 127 else 46 for ch in range(256))
    lines = []
    for start in range(0, len(data), 16):
        row = data[start : start + 16]
        lines.append(
            f"{start:08x}  {row.hex(' '):<48}  |{row.translate(printable).decode('ascii')}|"
        )
    return lines


def _split_host_port(value: str, default_port: int) -> tuple[str, int]:
    host, sep, port = value.rpartition(":")
    if not sep or "]" in port:
        return value.strip("[]"), default_port
    if not port.isdigit():
        raise click.BadParameter(f"invalid port in {value!r}")
    return host.strip("[]"), int(port)


@click.command()
@click.argument("url")
@click.argument("file", type=click.File("rb"), required=False)
@click.option(
    "--content-type",
    default="application/octet-stream",
    help="the content type of the request body",
)
@click.option(
    "--expect-type",
    metavar="TYPE",
    default=None,
    help="the content type that the response must have",
)
@click.option(
    "--asn1/--no-asn1",
    default=True,
    help="whether the request and response bodies are DER-encoded",
)
@click.option(
    "-t",
    "--timeout",
    default=10.0,
    type=float,
    help="timeout of the entire exchange, in seconds; zero means no timeout",
)
@click.option(
    "--max-response-length",
    default=0,
    type=int,
    help="maximum length of the response body in bytes; zero means the default",
)
@click.option(
    "--proxy",
    metavar="HOST:PORT",
    default=None,
    help="forward proxy to send the request to",
)
@click.option(
    "--format",
    default="raw",
    type=click.Choice(["raw", "hex", "tree"]),
    help=(
        "the output format. 'raw' prints the raw response body. 'hex' prints "
        "a hex dump of the response body. 'tree' prints the structure of a "
        "DER-encoded response body."
    ),
)
def post_command(
    url: str,
    file: Optional[IO[bytes]] = None,
    content_type: str = "application/octet-stream",
    expect_type: Optional[str] = None,
    asn1: bool = True,
    timeout: float = 10.0,
    max_response_length: int = 0,
    proxy: Optional[str] = None,
    format: str = "raw",
):
    """Sends a request to the given HTTP URL and prints the response body.

    When FILE is given, its contents are POSTed to the URL; otherwise a GET
    request is sent. With --asn1 (the default), FILE must contain a single
    DER-encoded value and the end of the response body is found from its
    DER encoding if the server sends no Content-Length header.
    """
    parts = urlparse(url)
    if parts.scheme != "http" or not parts.hostname:
        raise click.BadParameter(f"only http:// URLs are supported: {url!r}")

    host, port = parts.hostname, parts.port or 80
    path = parts.path or "/"
    if parts.query:
        path += "?" + parts.query

    if format == "tree" and not asn1:
        raise click.UsageError("--format=tree needs --asn1")

    codec = DERCodec() if asn1 else RawCodec()

    if proxy:
        connect_to = _split_host_port(proxy, 8080)
    else:
        connect_to = host, port

    try:
        transport = TCPTransport.connect(*connect_to, timeout=timeout or None)
    except Error as ex:
        raise click.ClickException(str(ex)) from None

    try:
        context = RequestContext(
            transport,
            max_response_length=max_response_length,
            timeout=timeout,
            expected_content_type=expect_type,
            expect_asn1=asn1,
            codec=codec,
        )
        if proxy:
            context.set_request_line(file is not None, host, port, path)
        else:
            context.set_request_line(file is not None, path=path)
        context.add_header("Host", host if port == 80 else f"{host}:{port}")
        context.add_header("Accept", "*/*")
        if file is not None:
            context.set_body(file.read(), content_type)

        body: Any = context.send_and_decode()
        click.echo(
            f"{context.status} {context.reason}, {context.body_bytes_read} bytes",
            err=True,
        )
    except Error as ex:
        raise click.ClickException(str(ex)) from None
    finally:
        transport.close()

    if format == "tree":
        click.echo("\n".join(_format_tree(body)))
    elif format == "hex":
        data = body.encode() if isinstance(body, DERElement) else body
        click.echo("\n".join(_format_hex(data)))
    else:
        data = body.encode() if isinstance(body, DERElement) else body
        stdout = click.get_binary_stream("stdout")
        stdout.write(data)
        stdout.flush()


if __name__ == "__main__":
    post_command()  # type: ignore
