"""
=============================================================================
HTTP SERVER
=============================================================================

Wires the pieces together and runs the per-connection cycle:

    SocketServer ──accept──► ThreadPool.submit(_process_connection)
                                         │           (pool full → 503)
                                         ▼
    ┌──────────────────────── worker thread ─────────────────────────────┐
    │ Connection.read_request()   bytes, bounded by size and timeout     │
    │ RequestParser.parse()       HTTPRequest, fresh Context             │
    │ Router.resolve()            handler + params (or the 404 handler)  │
    │ MiddlewarePipeline.wrap()   M1(M2(...handler))                     │
    │ handler(request)            HTTPResponse                           │
    │ response.write_to(conn)     head, then body or live stream         │
    │ conn.close()                                                       │
    └────────────────────────────────────────────────────────────────────┘

Every connection carries exactly one request; responses always say
``Connection: close``.

=============================================================================
ERRORS
=============================================================================

    ┌──────────────────────────────────┬──────────────────────────────────┐
    │ Bad request line/headers/framing │ status from ProtocolError        │
    │ Nothing read within timeout      │ 408                              │
    │ Body shorter than Content-Length │ no response, connection closed   │
    │ Handler raised ProtocolError     │ status from ProtocolError        │
    │ Handler or middleware raised     │ 500, traceback logged            │
    │ Every worker busy at max_workers │ 503 from the accept thread       │
    │ Stream producer raised           │ traceback logged, stream cut off │
    │ Client went away while writing   │ debug log only                   │
    └──────────────────────────────────┴──────────────────────────────────┘

None of these ever reach the accept loop or another connection.
=============================================================================
"""

import logging
import threading
from typing import Callable, Optional, Tuple, Union

from .config import ServerConfig
from .core import Connection, SocketServer, ThreadPool
from .http import (
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    IncompleteBodyError,
    Method,
    PeerDisconnected,
    ProtocolError,
    RequestParser,
    Router,
)
from .http.router import Handler
from .middleware.base import MiddlewareLike, MiddlewarePipeline


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Threaded HTTP/1.1 server.

        server = HTTPServer(ServerConfig(port=8080))
        server.use(LoggingMiddleware())

        @server.get("/hello/{name}")
        def hello(request):
            return HTTPResponse.text(f"hello {request.param('name')}")

        server.run()    # blocks until Ctrl+C or server.shutdown()

    Routes and middleware must be registered before run(); both are frozen
    once serving starts.
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_body_size=self.config.max_body_size)
        self._router = Router()
        self._middleware = MiddlewarePipeline()
        self._running = False

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    @property
    def router(self) -> Router:
        return self._router

    @property
    def middleware(self) -> MiddlewarePipeline:
        return self._middleware

    def add_route(self, method: Union[Method, str], pattern: str, handler: Handler) -> "HTTPServer":
        self._router.add_route(method, pattern, handler)
        return self

    def route(self, method: Union[Method, str], pattern: str) -> Callable[[Handler], Handler]:
        return self._router.route(method, pattern)

    def get(self, pattern: str) -> Callable[[Handler], Handler]:
        return self._router.get(pattern)

    def post(self, pattern: str) -> Callable[[Handler], Handler]:
        return self._router.post(pattern)

    def put(self, pattern: str) -> Callable[[Handler], Handler]:
        return self._router.put(pattern)

    def patch(self, pattern: str) -> Callable[[Handler], Handler]:
        return self._router.patch(pattern)

    def delete(self, pattern: str) -> Callable[[Handler], Handler]:
        return self._router.delete(pattern)

    def head(self, pattern: str) -> Callable[[Handler], Handler]:
        return self._router.head(pattern)

    def options(self, pattern: str) -> Callable[[Handler], Handler]:
        return self._router.options(pattern)

    def use(self, *middleware: MiddlewareLike) -> "HTTPServer":
        """
        Append middleware; the first registered is the outermost.

            server.use(LoggingMiddleware()).use(CORSMiddleware())
        """
        self._middleware.use(*middleware)
        return self

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port). Holds the real port once wait_until_ready() returns."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def run(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """
        Serve until shutdown() or SIGINT/SIGTERM. Blocks.

        Raises:
            OSError: the listen address could not be bound.
        """
        if host is not None:
            self.config.host = host
        if port is not None:
            self.config.port = port

        self._setup_logging()
        self._router.freeze()
        self._middleware.freeze()
        self._thread_pool.start()
        self._running = True

        if self.config.banner:
            threading.Thread(
                target=self._print_startup_banner,
                name="catfur-banner",
                daemon=True,
            ).start()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self) -> None:
        """Stop accepting connections; run() returns once workers finish."""
        self._socket_server.shutdown()

    def _shutdown(self) -> None:
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=5.0)
        logger.info("Server stopped")

    def _setup_logging(self) -> None:
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("catfur").setLevel(level)

    def _print_startup_banner(self) -> None:
        if not self._socket_server.wait_until_ready(timeout=5.0):
            return
        host, port = self.address
        lines = [
            f"{self.config.server_name} running",
            f"http://{host}:{port}",
            f"Workers: {self.config.min_workers}-{self.config.max_workers} threads",
            "Press Ctrl+C to stop",
        ]
        width = max(len(line) for line in lines) + 4
        print()
        print("╔" + "═" * width + "╗")
        for line in lines:
            print(f"║  {line.ljust(width - 2)}║")
        print("╚" + "═" * width + "╝")
        self._router.print_routes()

    # =========================================================================
    # PER-CONNECTION CYCLE
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        """Runs on the accept thread: hand off, never block."""
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn,),
        )
        if not submitted:
            logger.warning(f"[{conn.id}] Worker pool full, rejecting {conn.client_ip}")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    def _process_connection(self, conn: Connection) -> None:
        with conn:
            request = self._read_request(conn)
            if request is None:
                return

            response = self.dispatch(request)
            response.set_header("Connection", "close")
            self._write_response(conn, response, include_body=request.method != Method.HEAD)

    def _read_request(self, conn: Connection) -> Optional[HTTPRequest]:
        try:
            raw = conn.read_request()
            return self._parser.parse(raw, conn.address)
        except ProtocolError as e:
            logger.info(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
            self._send_error(conn, e.status_code, str(e))
        except TimeoutError as e:
            logger.info(f"[{conn.id}] {e}")
            self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
        except IncompleteBodyError as e:
            logger.warning(f"[{conn.id}] {e}, closing")
        except OSError as e:
            logger.warning(f"[{conn.id}] Read failed: {e}")
        return None

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """
        Resolve, wrap in middleware and run the handler for ``request``.

        Never raises. A ProtocolError from the chain, such as an invalid JSON
        body, answers with its own status; any other failure becomes a 500.
        """
        resolution = self._router.resolve(request.method, request.path)
        request.path_params = dict(resolution.params)
        handler = self._middleware.wrap(resolution.handler)

        try:
            response = handler(request)
        except ProtocolError as e:
            logger.info(f"Bad request for {request.method} {request.path}: {e}")
            return HTTPResponse.error(e.status_code, str(e))
        except Exception as e:
            logger.exception(f"Handler error for {request.method} {request.path}: {e}")
            return HTTPResponse.error(HTTPStatus.INTERNAL_SERVER_ERROR)

        if not isinstance(response, HTTPResponse):
            logger.error(
                f"Handler for {request.method} {request.path} returned "
                f"{type(response).__name__}, not HTTPResponse"
            )
            return HTTPResponse.error(HTTPStatus.INTERNAL_SERVER_ERROR)
        return response

    def _write_response(
        self,
        conn: Connection,
        response: HTTPResponse,
        include_body: bool = True,
    ) -> None:
        try:
            response.write_to(conn, self.config.server_name, include_body=include_body)
        except PeerDisconnected as e:
            logger.debug(f"[{conn.id}] Client disconnected during write: {e}")
        except Exception as e:
            # The head is already out, so no error status can follow
            logger.exception(f"[{conn.id}] Response failed after headers were sent: {e}")

    def _send_error(self, conn: Connection, status: int, message: str) -> None:
        response = HTTPResponse.error(status, message).set_header("Connection", "close")
        try:
            response.write_to(conn, self.config.server_name)
        except OSError as e:
            logger.debug(f"[{conn.id}] Could not send {int(status)}: {e}")


def create_app(config: Optional[ServerConfig] = None) -> HTTPServer:
    """
        app = create_app(ServerConfig(port=3000))

        @app.get("/")
        def index(request):
            return HTTPResponse.text("hello")

        app.run()
    """
    return HTTPServer(config)
