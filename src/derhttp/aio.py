"""Driving a request context from a Trio task.

Trio is an optional dependency; it is imported only when the functions of
this module are called.
"""

from __future__ import annotations

from io import UnsupportedOperation
from typing import Any, Optional, TYPE_CHECKING

from .request import ExchangeResult
from .transport import Direction

if TYPE_CHECKING:
    from .codec import Codec
    from .request import RequestContext

__all__ = ("send_and_decode_async",)


async def send_and_decode_async(
    context: RequestContext,
    codec: Optional[Codec[Any]] = None,
    poll_interval: float = 0.1,
) -> Any:
    """Drives the exchange of the given context to completion from a Trio
    task and decodes the response body.

    When the exchange cannot make progress, the task sleeps until the
    transport becomes ready if the transport has a file descriptor, or for
    the given poll interval otherwise. The wait never extends beyond the
    deadline of the exchange.

    Parameters:
        context: the request context to drive; the request must be composed
            already
        codec: the codec to decode the response with; defaults to the codec
            of the context
        poll_interval: maximum number of seconds to wait between two steps

    Returns:
        the decoded response body

    Raises:
        Error: the error that terminated the exchange, or a `DecodeError` if
            the response body could not be decoded
    """
    try:
        from trio import move_on_after, sleep
        from trio.lowlevel import wait_readable, wait_writable
    except ImportError:
        raise ImportError("You need to install 'trio' to use this function") from None

    while True:
        result = context.advance()
        if result is ExchangeResult.COMPLETE:
            break
        if result is ExchangeResult.FAILED:
            assert context.error is not None
            raise context.error

        direction = context.pending_direction
        transport = context.transport_for(direction)

        wait = poll_interval
        remaining = context.time_remaining()
        if remaining is not None:
            wait = min(wait, remaining)

        try:
            fd = transport.fileno()
        except UnsupportedOperation:
            await sleep(wait)
            continue

        with move_on_after(wait):
            if direction is Direction.WRITE:
                await wait_writable(fd)
            else:
                await wait_readable(fd)

    return context.decode_response(codec)
