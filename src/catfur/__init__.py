"""
=============================================================================
CATFUR
=============================================================================

A small threaded HTTP/1.1 server engine: routing with {name} parameters,
composable middleware, and streamed responses (chunked and Server-Sent
Events).

    from catfur import HTTPServer, HTTPResponse

    server = HTTPServer()

    @server.get("/hello/{name}")
    def hello(request):
        return HTTPResponse.text(f"hello {request.param('name')}")

    server.run()

Layout:

    catfur/
    ├── server.py        HTTPServer: wiring and the per-connection cycle
    ├── config.py        ServerConfig
    ├── core/            sockets, connections, worker pool
    ├── http/            request, router, response, streaming, SSE
    ├── middleware/      pipeline, access log, CORS
    └── handlers/        static files
=============================================================================
"""

__version__ = "0.1.0"

from .config import ServerConfig
from .http import (
    Context,
    EventSender,
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    Method,
    Router,
    SendResult,
)
from .middleware import Middleware, function_middleware
from .server import HTTPServer, create_app

__all__ = [
    "HTTPServer",
    "ServerConfig",
    "create_app",
    "HTTPRequest",
    "HTTPResponse",
    "HTTPStatus",
    "Method",
    "Router",
    "Context",
    "EventSender",
    "SendResult",
    "Middleware",
    "function_middleware",
    "__version__",
]
