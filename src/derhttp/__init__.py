"""Low-level, non-blocking HTTP/1.x client request engine for exchanging
DER-encoded messages with a server.
"""

from .buffer import LineBuffer
from .errors import Error
from .request import (
    DEFAULT_MAX_LINE_LENGTH,
    DEFAULT_MAX_RESPONSE_LENGTH,
    ExchangeResult,
    ExchangeState,
    RequestContext,
)
from .version import __version__, __version_info__

__all__ = (
    "__version__",
    "__version_info__",
    "DEFAULT_MAX_LINE_LENGTH",
    "DEFAULT_MAX_RESPONSE_LENGTH",
    "Error",
    "ExchangeResult",
    "ExchangeState",
    "LineBuffer",
    "RequestContext",
)
