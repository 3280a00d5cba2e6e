"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the raw bytes of one request into an HTTPRequest.

    ┌─ REQUEST LINE ─────────────────────────────────────────────────────┐
    │   GET /users/42?verbose=1&fmt=json HTTP/1.1\r\n                    │
    │   ─┬─ ────┬─── ─────────┬───────── ────┬───                        │
    │  Method  Path         Query         Version                        │
    ├─ HEADERS ──────────────────────────────────────────────────────────┤
    │   Host: localhost:8080\r\n          → headers["host"]              │
    │   Content-Length: 5\r\n             → headers["content-length"]    │
    │   \r\n                              ← end of head                  │
    ├─ BODY ─────────────────────────────────────────────────────────────┤
    │   hello                             ← exactly Content-Length bytes │
    └────────────────────────────────────────────────────────────────────┘

Reading bytes off the socket is the job of core.connection.Connection;
this module only interprets a buffer that already holds the whole head and
body.

=============================================================================
DECODING RULES
=============================================================================

1. Methods form a closed set (see Method). Anything else is a protocol
   error and is answered with 400.

2. The query string is split on "&" and then on the first "=". Pairs
   without "=" are ignored, the last duplicate wins, and both key and
   value are percent-decoded ("+" means space). The path itself is kept
   exactly as sent, so "/files/a%2Fb" stays one segment.

3. Header names are lower-cased at parse time. Repeated headers are
   joined with ", ".

4. Only Content-Length framing is understood. A chunked request body is
   rejected rather than guessed at.

=============================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote_plus
import json
import re

from .context import Context


class ProtocolError(Exception):
    """
    The request violates the subset of HTTP/1.1 we accept.

    Carries the status code the connection should be answered with:

        400 Bad Request                 malformed line, header or framing
        413 Payload Too Large           declared body above the limit
        505 HTTP Version Not Supported  not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class IncompleteBodyError(IOError):
    """The peer stopped sending before Content-Length bytes arrived."""

    def __init__(self, expected: int, received: int):
        super().__init__(
            f"Incomplete body: expected {expected} bytes, got {received}"
        )
        self.expected = expected
        self.received = received


class Method(str, Enum):
    """The request methods the server understands."""

    GET = "GET"
    POST = "POST"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, token: str) -> "Method":
        """
        Convert a request-line token into a Method.

        Methods are case-sensitive, so "get" is rejected just like "BREW".

        Raises:
            ProtocolError: for an empty or unknown token.
        """
        if not token:
            raise ProtocolError("Missing request method")
        try:
            return cls(token)
        except ValueError:
            raise ProtocolError(f"Unknown method: {token}") from None


def parse_query_string(query: str) -> Dict[str, str]:
    """
    Decompose a query string into a flat mapping.

        >>> parse_query_string("page=2&q=hello+world&flag&page=3")
        {'page': '3', 'q': 'hello world'}
    """
    params: Dict[str, str] = {}
    if not query:
        return params
    for pair in query.split("&"):
        key, sep, value = pair.partition("=")
        if not sep:
            continue
        params[unquote_plus(key)] = unquote_plus(value)
    return params


@dataclass
class HTTPRequest:
    """
    A decoded request.

    Attributes:
        method:         Method member (plain strings are converted)
        path:           Path without query string, not percent-decoded
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Lower-cased header name → value
        query_params:   Flat query mapping, see parse_query_string()
        body:           Exactly Content-Length bytes
        path_params:    Filled in by the router once a route matched
        client_address: (ip, port) of the peer
        context:        Per-request store shared along the middleware chain
    """

    method: Method
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    path_params: Dict[str, str] = field(default_factory=dict)
    client_address: Tuple[str, int] = ("", 0)
    context: Context = field(default_factory=Context, repr=False)

    _body_json: Optional[Any] = field(default=None, repr=False)

    def __post_init__(self):
        if not isinstance(self.method, Method):
            self.method = Method.parse(self.method)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters, e.g. "application/json"."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def text(self) -> Optional[str]:
        """Body decoded as UTF-8, or None if it is not valid UTF-8."""
        try:
            return self.body.decode("utf-8")
        except UnicodeDecodeError:
            return None

    @property
    def json(self) -> Any:
        """
        Body parsed as JSON (cached after the first access).

        Raises:
            ProtocolError: if the body is not valid JSON.
        """
        if self._body_json is None and self.body:
            try:
                self._body_json = json.loads(self.body.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise ProtocolError(f"Invalid JSON body: {e}")
        return self._body_json

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.query_params.get(name, default)

    def param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Path parameter bound by the router, e.g. ``{id}``."""
        return self.path_params.get(name, default)


class RequestParser:
    """
    Parses a buffered request into an HTTPRequest.

        Raw bytes
            │
            ├── 1. split head / body at \\r\\n\\r\\n   (missing → 400)
            ├── 2. request line                      (bad method → 400)
            ├── 3. header lines                      (names lower-cased)
            ├── 4. framing checks                    (chunked → 400)
            └── 5. body = Content-Length bytes       (short → I/O error)
    """

    REQUEST_LINE_PATTERN = re.compile(r"^(\S*) (\S+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:\s][^:]*):\s*(.*)$")
    CONTENT_LENGTH_PATTERN = re.compile(r"[0-9]+")
    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(self, max_body_size: int = 10 * 1024 * 1024):
        self.max_body_size = max_body_size

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0),
    ) -> HTTPRequest:
        """
        Parse raw request bytes.

        Args:
            data: Head plus body, as read from the socket.
            client_address: Peer (ip, port).

        Raises:
            ProtocolError: malformed or unsupported request.
            IncompleteBodyError: fewer body bytes than Content-Length.
        """
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise ProtocolError("Incomplete request: no header terminator")

        # latin-1 maps every byte, so decoding the head can never fail
        head = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = head.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self.parse_headers(lines[1:])

        content_length = self.parse_framing(headers, self.max_body_size)
        if len(body) < content_length:
            raise IncompleteBodyError(content_length, len(body))

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
        )

    @staticmethod
    def parse_framing(headers: Dict[str, str], max_body_size: int) -> int:
        """
        Validate body framing headers and return the body length.

        Shared with Connection, which needs the length before the body is
        read.
        """
        if "chunked" in headers.get("transfer-encoding", "").lower():
            raise ProtocolError("Chunked request bodies are not supported")

        raw = headers.get("content-length")
        if raw is None:
            return 0
        # Repeated headers were comma-joined; they must agree
        values = {v.strip() for v in raw.split(",")}
        if len(values) != 1:
            raise ProtocolError(f"Conflicting Content-Length values: {raw}")
        value = values.pop()
        if not RequestParser.CONTENT_LENGTH_PATTERN.fullmatch(value):
            raise ProtocolError(f"Invalid Content-Length: {raw}")
        length = int(value)
        if length > max_body_size:
            raise ProtocolError(
                f"Request body too large: {length} bytes",
                status_code=413,
            )
        return length

    def _parse_request_line(
        self,
        line: str,
    ) -> Tuple[Method, str, Dict[str, str], str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            token = line.split(" ", 1)[0]
            # Report an unknown method even when the rest is broken too
            Method.parse(token)
            raise ProtocolError(f"Invalid request line: {line!r}")

        token, target, version = match.groups()
        method = Method.parse(token)

        if version not in self.SUPPORTED_VERSIONS:
            raise ProtocolError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        path, _, query = target.partition("?")
        if not path.startswith("/"):
            raise ProtocolError(f"Invalid request target: {target}")

        return method, path, parse_query_string(query), version

    def parse_headers(self, lines: List[str]) -> Dict[str, str]:
        """Header lines to a lower-cased mapping; malformed lines are skipped."""
        headers: Dict[str, str] = {}
        current_name: Optional[str] = None

        for line in lines:
            if not line:
                continue

            # obs-fold: a leading space continues the previous header
            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name = match.group(1).strip().lower()
            value = match.group(2).strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0),
    max_body_size: int = 10 * 1024 * 1024,
) -> HTTPRequest:
    """One-shot helper around RequestParser."""
    return RequestParser(max_body_size=max_body_size).parse(data, client_address)
