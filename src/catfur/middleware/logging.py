"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

One line per request on the ``catfur.access`` logger, either in a
common-log-like text form or as JSON:

    127.0.0.1 - - [19/Oct/2026:10:04:11 +0000] "GET /hello/cat" 200 9 0.41ms rid=3f2a9c1e
    {"request_id": "3f2a9c1e", "method": "GET", "path": "/hello/cat", ...}

Register it first so it wraps everything else, including middleware that
short-circuit:

    server.use(LoggingMiddleware())
    server.use(CORSMiddleware())

The request ID is taken from an incoming X-Request-ID header when present,
stored in the request context under "request_id" for inner middleware and
handlers, and echoed on the response.

For a streamed response the logged duration covers the handler only; the
body is still being produced when the line is written.
=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from .base import Middleware, NextHandler


logger = logging.getLogger("catfur.access")

REQUEST_ID_HEADER = "X-Request-ID"
REQUEST_ID_KEY = "request_id"


@dataclass
class RequestLog:
    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: Optional[int]   # None for streams
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        size = "-" if self.content_length is None else str(self.content_length)
        target = f"{self.path}?{self.query}" if self.query else self.path
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {target}" {self.status_code} '
            f'{size} {self.duration_ms:.2f}ms rid={self.request_id}'
        )


class LoggingMiddleware(Middleware):
    """
    Args:
        log_format: "text" or "json".
        include_request_id: set the request ID in the context and response.
        log_level: level of the access line.
        skip_paths: paths that are not logged (health checks, say).
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown log format: {log_format}")
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or ())

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = request.get_header(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        if self.include_request_id:
            request.context.set(REQUEST_ID_KEY, request_id)

        start_time = time.time()
        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms) rid={request_id}"
            )
            raise
        duration_ms = (time.time() - start_time) * 1000

        if self.include_request_id:
            response.set_header(REQUEST_ID_HEADER, request_id)

        if request.path not in self.skip_paths:
            self._emit(request, response, request_id, duration_ms)
        return response

    def _emit(
        self,
        request: HTTPRequest,
        response: HTTPResponse,
        request_id: str,
        duration_ms: float,
    ) -> None:
        query = "&".join(f"{k}={v}" for k, v in request.query_params.items())
        entry = RequestLog(
            request_id=request_id,
            method=str(request.method),
            path=request.path,
            query=query,
            client_ip=request.client_address[0] or "-",
            user_agent=request.get_header("user-agent") or "-",
            status_code=int(response.status),
            content_length=None if response.is_stream else len(response.body_bytes),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )
        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())
