"""
=============================================================================
CONNECTION
=============================================================================

Wraps one accepted client socket for exactly one request/response cycle.

TCP is a byte stream, so a request can arrive split across any number of
recv() calls. read_request() buffers until it has the whole head, works out
the body length from the head, then reads exactly that many body bytes:

    recv() ─► buffer ─► "\r\n\r\n" seen? ─no─► recv() again
                                │
                               yes
                                │
                    Content-Length from head
                                │
                    recv() until body complete ─► head + body

=============================================================================
FAILURE MODES
=============================================================================

    ┌───────────────────────────────────────┬──────────────────────────────┐
    │ What happened                         │ Raised                       │
    ├───────────────────────────────────────┼──────────────────────────────┤
    │ peer closed before "\r\n\r\n"         │ ProtocolError (400)          │
    │ head grew past max_header_size        │ ProtocolError (400)          │
    │ chunked body / bad Content-Length     │ ProtocolError (400)          │
    │ Content-Length above max_body_size    │ ProtocolError (413)          │
    │ peer closed mid-body                  │ IncompleteBodyError          │
    │ no data within `timeout` seconds      │ TimeoutError                 │
    └───────────────────────────────────────┴──────────────────────────────┘

The same timeout applies to writes, so a client that stops reading a
stream cannot hold its worker forever.
=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple

from ..http.request import IncompleteBodyError, ProtocolError, RequestParser


logger = logging.getLogger(__name__)

HEADER_TERMINATOR = b"\r\n\r\n"


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client socket plus the limits that apply to it.

        with Connection(sock, addr, timeout=30.0) as conn:
            raw = conn.read_request()
            response.write_to(conn)

    Connection implements ``sendall`` so it can be handed straight to
    HTTPResponse.write_to().
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    buffer_size: int = 8192
    timeout: float = 30.0
    max_header_size: int = 64 * 1024
    max_body_size: int = 10 * 1024 * 1024

    bytes_received: int = 0
    bytes_sent: int = 0

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> bytes:
        """
        Read one complete request: the head, the blank line and exactly
        Content-Length body bytes. Anything the client sent after that is
        discarded, since connections are not reused.

        Raises:
            ProtocolError, IncompleteBodyError, TimeoutError: see the table in
                the module docstring.
        """
        self.state = ConnectionState.READING
        try:
            header_end = self._read_head()
            head = self._buffer[:header_end].decode("latin-1")
            parser = RequestParser(max_body_size=self.max_body_size)
            headers = parser.parse_headers(head.split("\r\n")[1:])
            content_length = RequestParser.parse_framing(headers, self.max_body_size)

            body_start = header_end + len(HEADER_TERMINATOR)
            self._read_body(body_start, content_length)
        except socket.timeout:
            raise TimeoutError(
                f"No request data from {self.client_ip} within {self.timeout}s"
            ) from None

        self.state = ConnectionState.PROCESSING
        request_end = body_start + content_length
        data, self._buffer = self._buffer[:request_end], b""
        return data

    def _read_head(self) -> int:
        while True:
            header_end = self._buffer.find(HEADER_TERMINATOR)
            if header_end != -1:
                if header_end > self.max_header_size:
                    raise ProtocolError(
                        f"Request head exceeds {self.max_header_size} bytes"
                    )
                return header_end

            if len(self._buffer) > self.max_header_size:
                raise ProtocolError(
                    f"Request head exceeds {self.max_header_size} bytes"
                )

            chunk = self._recv()
            if not chunk:
                if self._buffer:
                    raise ProtocolError("Connection closed before end of headers")
                raise ProtocolError("Connection closed without sending a request")
            self._buffer += chunk

    def _read_body(self, body_start: int, content_length: int) -> None:
        while len(self._buffer) - body_start < content_length:
            chunk = self._recv()
            if not chunk:
                raise IncompleteBodyError(
                    content_length,
                    len(self._buffer) - body_start,
                )
            self._buffer += chunk

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError):
            return b""
        self.bytes_received += len(data)
        return data

    # =========================================================================
    # WRITING
    # =========================================================================

    def sendall(self, data: bytes) -> None:
        """Blocking send of all of ``data``; errors propagate to the caller."""
        self.state = ConnectionState.WRITING
        self.socket.sendall(data)
        self.bytes_sent += len(data)

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Half-close, drain briefly, then release the socket. Safe to call
        more than once.

        Sending FIN first and draining whatever the client still sends keeps
        the kernel from answering unread input with a RST, which could
        destroy a response the client has not read yet.
        """
        if self.state == ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.2)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Closed {self.client_ip} after {self.age:.3f}s "
            f"({self.bytes_received} in, {self.bytes_sent} out)"
        )

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
