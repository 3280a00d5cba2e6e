"""
=============================================================================
HTTP RESPONSE MODEL AND WRITER
=============================================================================

A response is a status, a header mapping and an optional body of one of
three kinds:

    ┌────────────┬──────────────────────────────┬────────────────────────────┐
    │ Body       │ Holds                        │ Framing on the wire        │
    ├────────────┼──────────────────────────────┼────────────────────────────┤
    │ TextBody   │ str, sent as UTF-8           │ Content-Length             │
    │ BytesBody  │ opaque bytes + content type  │ Content-Length             │
    │ StreamBody │ producer(ChunkedWriter)      │ Transfer-Encoding: chunked │
    │ None       │ nothing                      │ Content-Length: 0          │
    └────────────┴──────────────────────────────┴────────────────────────────┘

=============================================================================
LIFECYCLE
=============================================================================

    handler / middleware         finalize()              write_to(sock)
    build and mutate     ─────►  fill in framing  ─────► status line
    HTTPResponse                 and defaults            headers, blank line
                                                         body or stream

finalize() only ever adds headers that are missing. An explicit
Content-Length survives untouched, and calling finalize() twice changes
nothing the second time.

For a StreamBody, write_to() sends the head and then gives a ChunkedWriter
to the producer. When the producer returns, the terminating zero-length
chunk is written. A client that disconnects mid-stream ends the stream
quietly.
=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union
import json as json_module
import logging

from .headers import Headers
from .status_codes import HTTPStatus, reason_phrase
from .stream import ChunkedWriter, PeerDisconnected, Sink, send_all


logger = logging.getLogger(__name__)

DEFAULT_SERVER_NAME = "catfur/0.1"

# Statuses that never carry a body (RFC 7230 §3.3.3)
_BODYLESS_STATUSES = frozenset({204, 304})


# =============================================================================
# BODY KINDS
# =============================================================================

@dataclass(frozen=True)
class TextBody:
    text: str

    @property
    def data(self) -> bytes:
        return self.text.encode("utf-8")


@dataclass(frozen=True)
class BytesBody:
    data: bytes


StreamProducer = Callable[[ChunkedWriter], None]


@dataclass(frozen=True)
class StreamBody:
    """A producer that writes chunks until it returns."""

    producer: StreamProducer


Body = Union[TextBody, BytesBody, StreamBody]


@dataclass
class HTTPResponse:
    """
    A response under construction.

    Prefer the class constructors:

        HTTPResponse.text("hello")
        HTTPResponse.json({"id": 1}, status=HTTPStatus.CREATED)
        HTTPResponse.binary(png_data, "image/png")
        HTTPResponse.stream(producer)
        HTTPResponse.sse(producer)
        HTTPResponse.error(HTTPStatus.NOT_FOUND)

    Header setters return self, so middleware can write
    ``return next(request).set_header("X-Served-By", "catfur")``.
    """

    status: int = HTTPStatus.OK
    headers: Headers = field(default_factory=Headers)
    body: Optional[Body] = None
    version: str = "HTTP/1.1"

    def __post_init__(self):
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)

    # =========================================================================
    # CONSTRUCTORS
    # =========================================================================

    @classmethod
    def text(
        cls,
        text: str,
        status: int = HTTPStatus.OK,
        content_type: str = "text/plain; charset=utf-8",
    ) -> "HTTPResponse":
        return cls(status=status, body=TextBody(text)).set_content_type(content_type)

    @classmethod
    def html(cls, html: str, status: int = HTTPStatus.OK) -> "HTTPResponse":
        return cls.text(html, status, "text/html; charset=utf-8")

    @classmethod
    def json(cls, data: Any, status: int = HTTPStatus.OK) -> "HTTPResponse":
        return cls.text(
            json_module.dumps(data, default=str),
            status,
            "application/json; charset=utf-8",
        )

    @classmethod
    def binary(
        cls,
        data: bytes,
        content_type: str = "application/octet-stream",
        status: int = HTTPStatus.OK,
    ) -> "HTTPResponse":
        return cls(status=status, body=BytesBody(bytes(data))).set_content_type(content_type)

    @classmethod
    def stream(
        cls,
        producer: StreamProducer,
        content_type: str = "text/plain; charset=utf-8",
        status: int = HTTPStatus.OK,
    ) -> "HTTPResponse":
        """A chunked response whose body is written by ``producer``."""
        response = cls(status=status, body=StreamBody(producer))
        response.set_header("Transfer-Encoding", "chunked")
        return response.set_content_type(content_type)

    @classmethod
    def sse(cls, producer: Callable[..., None]) -> "HTTPResponse":
        """A Server-Sent Events stream. See catfur.http.sse.event_stream."""
        from .sse import event_stream

        return event_stream(producer)

    @classmethod
    def empty(cls, status: int = HTTPStatus.NO_CONTENT) -> "HTTPResponse":
        return cls(status=status)

    @classmethod
    def error(cls, status: int, message: Optional[str] = None) -> "HTTPResponse":
        """JSON error body: ``{"error": message}`` (defaults to the phrase)."""
        return cls.json({"error": message or reason_phrase(status)}, status)

    # =========================================================================
    # MUTATORS
    # =========================================================================

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def set_content_type(self, content_type: str) -> "HTTPResponse":
        return self.set_header("Content-Type", content_type)

    def with_status(self, status: int) -> "HTTPResponse":
        self.status = status
        return self

    # =========================================================================
    # INSPECTION
    # =========================================================================

    @property
    def status_line(self) -> str:
        code = int(self.status)
        return f"{self.version} {code} {reason_phrase(code)}"

    @property
    def is_stream(self) -> bool:
        return isinstance(self.body, StreamBody)

    @property
    def body_bytes(self) -> bytes:
        """Fixed body as bytes; empty for no body and for streams."""
        if self.body is None or isinstance(self.body, StreamBody):
            return b""
        return self.body.data

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def finalize(self, server_name: str = DEFAULT_SERVER_NAME) -> "HTTPResponse":
        """
        Fill in framing and default headers that are still missing.

        - Text/Bytes: Content-Length = exact byte length, unless already set
        - Stream:     Transfer-Encoding: chunked, any Content-Length dropped
        - No body:    Content-Length: 0 (except 1xx, 204 and 304)
        - Date and Server, unless already set

        Idempotent.
        """
        if isinstance(self.body, StreamBody):
            self.headers.pop("Content-Length", None)
            self.headers.setdefault("Transfer-Encoding", "chunked")
        elif self.body is not None:
            self.headers.setdefault("Content-Length", str(len(self.body.data)))
        elif int(self.status) >= 200 and int(self.status) not in _BODYLESS_STATUSES:
            self.headers.setdefault("Content-Length", "0")

        self.headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        self.headers.setdefault("Server", server_name)
        return self

    def head_bytes(self) -> bytes:
        """Status line, headers and the blank separator line."""
        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in self.headers.items())
        lines.append("")
        return ("\r\n".join(lines) + "\r\n").encode("latin-1")

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Whole response as bytes. Fixed bodies only.

        Raises:
            TypeError: for a stream body, which can only be written live.
        """
        if self.is_stream:
            raise TypeError("Stream responses must be sent with write_to()")
        self.finalize(server_name)
        return self.head_bytes() + self.body_bytes

    def write_to(
        self,
        sink: Sink,
        server_name: str = DEFAULT_SERVER_NAME,
        include_body: bool = True,
    ) -> None:
        """
        Finalize and send the response.

        Args:
            sink: Connected socket (anything with ``sendall``).
            server_name: Value for a missing Server header.
            include_body: False for HEAD requests.

        Raises:
            PeerDisconnected: the client went away before the head or a
                fixed body was fully sent. Disconnects during a stream are
                absorbed here.
            Exception: whatever a stream producer raised, other than a
                disconnect.
        """
        self.finalize(server_name)
        send_all(sink, self.head_bytes())

        if not include_body or self.body is None:
            return

        if isinstance(self.body, StreamBody):
            self._write_stream(sink)
        else:
            send_all(sink, self.body.data)

    def _write_stream(self, sink: Sink) -> None:
        writer = ChunkedWriter(sink)
        try:
            self.body.producer(writer)
            writer.close()
        except PeerDisconnected as e:
            logger.debug(
                f"Client disconnected after {writer.chunks_sent} chunks: {e}"
            )


# =============================================================================
# UTILITIES
# =============================================================================

_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_http_date(dt: datetime) -> str:
    """
    RFC 7231 IMF-fixdate, always GMT.

        >>> format_http_date(datetime(2026, 1, 15, 12, 30, 45, tzinfo=timezone.utc))
        'Thu, 15 Jan 2026 12:30:45 GMT'
    """
    dt = dt.astimezone(timezone.utc)
    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def ok(body: Union[str, bytes, dict, list] = "") -> HTTPResponse:
    """200 with the body type picked from the value."""
    if isinstance(body, (dict, list)):
        return HTTPResponse.json(body)
    if isinstance(body, bytes):
        return HTTPResponse.binary(body)
    return HTTPResponse.text(body)


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    return HTTPResponse.error(HTTPStatus.BAD_REQUEST, message)


def not_found(message: str = "Not Found") -> HTTPResponse:
    return HTTPResponse.error(HTTPStatus.NOT_FOUND, message)


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    return HTTPResponse.error(HTTPStatus.INTERNAL_SERVER_ERROR, message)
