"""
=============================================================================
CORS MIDDLEWARE
=============================================================================

Lets browsers on other origins call the server.

    Simple request                       Preflight
    ──────────────                       ─────────
    GET /api  Origin: https://a.dev      OPTIONS /api
        │                                Origin: https://a.dev
        ▼                                Access-Control-Request-Method: POST
    handler runs                             │
        │                                    ▼
        ▼                                204, answered here, handler
    + Access-Control-Allow-Origin            never runs
    + Access-Control-Expose-Headers      + Access-Control-Allow-Origin
    + Vary: Origin                       + Access-Control-Allow-Methods
                                         + Access-Control-Allow-Headers
                                         + Access-Control-Max-Age

An OPTIONS request without Access-Control-Request-Method is not a
preflight and goes to the router like any other request.

Origins not in the allow list get no CORS headers at all; the browser then
blocks the response on its side.
=============================================================================
"""

from dataclasses import dataclass, field
from typing import List

from ..http.request import HTTPRequest, Method
from ..http.response import HTTPResponse
from ..http.status_codes import HTTPStatus
from .base import Middleware, NextHandler


@dataclass
class CORSConfig:
    """
    Defaults allow any origin, which suits development. For production:

        CORSConfig(
            allow_origins=["https://app.example.com"],
            allow_credentials=True,
            expose_headers=["X-Request-ID"],
        )
    """

    allow_origins: List[str] = field(default_factory=lambda: ["*"])
    allow_methods: List[str] = field(
        default_factory=lambda: [m.value for m in Method]
    )
    allow_headers: List[str] = field(
        default_factory=lambda: ["Content-Type", "Authorization", "X-Requested-With"]
    )
    expose_headers: List[str] = field(default_factory=lambda: ["Content-Type"])
    allow_credentials: bool = False
    max_age: int = 86400


class CORSMiddleware(Middleware):
    def __init__(self, config: CORSConfig = None):
        self.config = config or CORSConfig()

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        origin = request.get_header("origin", "")

        if self.is_preflight(request):
            return self._preflight(request, origin)

        response = next(request)
        self._add_cors_headers(response, origin)
        return response

    @staticmethod
    def is_preflight(request: HTTPRequest) -> bool:
        return (
            request.method == Method.OPTIONS
            and request.get_header("access-control-request-method") is not None
        )

    def is_origin_allowed(self, origin: str) -> bool:
        return "*" in self.config.allow_origins or origin in self.config.allow_origins

    def _preflight(self, request: HTTPRequest, origin: str) -> HTTPResponse:
        response = HTTPResponse.empty(HTTPStatus.NO_CONTENT)
        if not self._add_cors_headers(response, origin):
            return response

        response.set_header(
            "Access-Control-Allow-Methods", ", ".join(self.config.allow_methods)
        )
        requested = request.get_header("access-control-request-headers")
        if requested:
            response.set_header(
                "Access-Control-Allow-Headers", ", ".join(self.config.allow_headers)
            )
        response.set_header("Access-Control-Max-Age", str(self.config.max_age))
        return response

    def _add_cors_headers(self, response: HTTPResponse, origin: str) -> bool:
        """Returns False when the origin is not allowed and nothing was added."""
        if not self.is_origin_allowed(origin):
            return False

        # "*" is not valid together with credentials; echo the origin instead
        if "*" in self.config.allow_origins and not self.config.allow_credentials:
            allowed_origin = "*"
        else:
            allowed_origin = origin or "*"

        response.set_header("Access-Control-Allow-Origin", allowed_origin)
        if self.config.allow_credentials:
            response.set_header("Access-Control-Allow-Credentials", "true")
        if self.config.expose_headers:
            response.set_header(
                "Access-Control-Expose-Headers", ", ".join(self.config.expose_headers)
            )

        if allowed_origin != "*":
            vary = response.headers.get("Vary", "")
            if "origin" not in vary.lower():
                response.set_header("Vary", f"{vary}, Origin" if vary else "Origin")
        return True
