"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Callable, Generator, List, Optional, Tuple

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from catfur import HTTPServer, ServerConfig
from catfur.http import HTTPRequest, HTTPResponse


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "Mittens", "lives": 9}'
    return (
        b"POST /api/cats HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration: ephemeral port, no banner, short timeout."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        min_workers=2,
        max_workers=8,
        timeout=2.0,
        log_level="WARNING",
        banner=False,
    )


class FakeSocket:
    """Collects everything sent to it; optionally fails after N sendall calls."""

    def __init__(self, fail_after: Optional[int] = None, error: Exception = None):
        self.sent: List[bytes] = []
        self.fail_after = fail_after
        self.error = error or BrokenPipeError(32, "Broken pipe")

    def sendall(self, data: bytes) -> None:
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise self.error
        self.sent.append(bytes(data))

    @property
    def data(self) -> bytes:
        return b"".join(self.sent)


@pytest.fixture
def fake_socket() -> FakeSocket:
    return FakeSocket()


class TestServer:
    """Runs an HTTPServer in a background thread on an ephemeral port."""

    __test__ = False

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> Tuple[str, int]:
        return self.server.address

    def start(self) -> "TestServer":
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")
        return self

    def stop(self) -> None:
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def connect(self, timeout: float = 5.0) -> socket.socket:
        return socket.create_connection(self.address, timeout=timeout)

    def raw(self, data: bytes, timeout: float = 5.0) -> bytes:
        """Send raw bytes and read the whole reply until the server closes."""
        with self.connect(timeout) as sock:
            if data:
                sock.sendall(data)
            return read_until_close(sock)

    def get(self, path: str, headers: str = "") -> bytes:
        return self.raw(
            f"GET {path} HTTP/1.1\r\nHost: test\r\n{headers}\r\n".encode("latin-1")
        )


def read_until_close(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        try:
            chunk = sock.recv(65536)
        except ConnectionResetError:
            break
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def split_response(raw: bytes) -> Tuple[int, dict, bytes]:
    """(status code, lower-cased headers, body) of a raw response."""
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    status = int(lines[0].split(" ")[1])
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return status, headers, body


def decode_chunked(body: bytes) -> List[bytes]:
    """Chunk payloads of a chunked body; asserts the terminator is present."""
    chunks = []
    while True:
        size_line, _, rest = body.partition(b"\r\n")
        size = int(size_line, 16)
        if size == 0:
            assert rest == b"\r\n", f"bad terminator: {rest!r}"
            return chunks
        chunks.append(rest[:size])
        assert rest[size:size + 2] == b"\r\n"
        body = rest[size + 2:]


@pytest.fixture
def make_server(config: ServerConfig) -> Generator[Callable[..., TestServer], None, None]:
    """Factory: build a server with ``setup(server)``, start it, stop it at teardown."""
    started: List[TestServer] = []

    def factory(setup: Callable[[HTTPServer], None], **overrides) -> TestServer:
        for name, value in overrides.items():
            setattr(config, name, value)
        server = HTTPServer(config)
        setup(server)
        test_server = TestServer(server).start()
        started.append(test_server)
        return test_server

    yield factory

    for test_server in started:
        test_server.stop()


@pytest.fixture
def test_server(make_server) -> TestServer:
    """A running server with a few basic routes."""

    def setup(server: HTTPServer) -> None:
        @server.get("/test")
        def test_route(request: HTTPRequest) -> HTTPResponse:
            return HTTPResponse.json({"status": "ok"})

        @server.post("/echo")
        def echo_route(request: HTTPRequest) -> HTTPResponse:
            return HTTPResponse.json({"received": request.json})

        @server.get("/users/{id}")
        def get_user(request: HTTPRequest) -> HTTPResponse:
            return HTTPResponse.json({"id": request.param("id")})

    return make_server(setup)
