"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Everything between raw bytes and handler code:

    ┌──────────────────┬──────────────────────────────────────────────────┐
    │ request.py       │ bytes → HTTPRequest, ProtocolError on bad input  │
    │ router.py        │ (method, path) → handler + {name} params         │
    │ response.py      │ HTTPResponse model, finalize(), write_to()       │
    │ stream.py        │ ChunkedWriter for streamed bodies                │
    │ sse.py           │ Server-Sent Events on top of ChunkedWriter       │
    │ context.py       │ per-request key/value store for middleware       │
    │ headers.py       │ case-insensitive response header mapping         │
    │ status_codes.py  │ HTTPStatus and reason phrases                    │
    │ mime_types.py    │ Content-Type by file extension                   │
    └──────────────────┴──────────────────────────────────────────────────┘

Wire format handled here (RFC 7230):

    GET /hello/cat?loud=1 HTTP/1.1\r\n        HTTP/1.1 200 OK\r\n
    Host: localhost\r\n                       Content-Length: 9\r\n
    \r\n                                      \r\n
                                              hello cat
=============================================================================
"""

from .context import Context
from .headers import Headers
from .mime_types import get_content_type, get_mime_type
from .request import (
    HTTPRequest,
    IncompleteBodyError,
    Method,
    ProtocolError,
    RequestParser,
    parse_request,
)
from .response import (
    BytesBody,
    HTTPResponse,
    StreamBody,
    TextBody,
    bad_request,
    internal_error,
    not_found,
    ok,
)
from .router import Route, RouteMatch, Router, RouterFrozenError
from .sse import EventSender, SendResult, SSEEvent
from .status_codes import HTTPStatus, reason_phrase
from .stream import ChunkedWriter, PeerDisconnected

__all__ = [
    # Request
    "HTTPRequest",
    "Method",
    "RequestParser",
    "parse_request",
    "ProtocolError",
    "IncompleteBodyError",

    # Response
    "HTTPResponse",
    "TextBody",
    "BytesBody",
    "StreamBody",
    "Headers",
    "ok",
    "bad_request",
    "not_found",
    "internal_error",

    # Streaming
    "ChunkedWriter",
    "PeerDisconnected",
    "EventSender",
    "SendResult",
    "SSEEvent",

    # Routing
    "Router",
    "Route",
    "RouteMatch",
    "RouterFrozenError",

    # Misc
    "Context",
    "HTTPStatus",
    "reason_phrase",
    "get_mime_type",
    "get_content_type",
]
