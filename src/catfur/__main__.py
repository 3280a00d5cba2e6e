"""
=============================================================================
CLI ENTRY POINT
=============================================================================

Runs a small demo application:

    python -m catfur                          # 127.0.0.1:8080
    python -m catfur --port 3000 --cors
    python -m catfur --static ./public        # also serves /static/{file}
    CATFUR_PORT=3000 python -m catfur         # environment works too

Routes:

    GET  /                  plain text greeting
    GET  /hello/{name}      JSON greeting
    POST /echo              the request body, same Content-Type
    GET  /ticker            Server-Sent Events, ?count=N&interval=SECONDS
    GET  /static/{file}     files from --static, if given

Command-line flags override CATFUR_* variables, which override defaults.
=============================================================================
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

from . import __version__
from .config import ServerConfig
from .handlers import StaticFileHandler
from .http import EventSender, HTTPRequest, HTTPResponse, HTTPStatus, SendResult
from .middleware import CORSMiddleware, LoggingMiddleware
from .server import HTTPServer


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catfur",
        description="Minimal threaded HTTP/1.1 server with streaming responses",
    )
    parser.add_argument("--host", "-H", default=None, help="Host to bind (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, default=None, help="Port, 0 for any free port (default: 8080)")
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Minimum worker threads; the pool may grow to 8x this",
    )
    parser.add_argument("--static", "-s", default=None, help="Directory served under /static/{file}")
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--cors", action="store_true", help="Allow cross-origin requests from anywhere")
    parser.add_argument("--version", "-v", action="version", version=f"catfur {__version__}")
    return parser


def build_config(args: argparse.Namespace) -> ServerConfig:
    config = ServerConfig.from_env()
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.workers is not None:
        config.min_workers = args.workers
        config.max_workers = max(config.max_workers, args.workers * 8)
    if args.log_level is not None:
        config.log_level = args.log_level
    return config


# =============================================================================
# DEMO ROUTES
# =============================================================================

def index(request: HTTPRequest) -> HTTPResponse:
    return HTTPResponse.text("catfur is purring\n")


def hello(request: HTTPRequest) -> HTTPResponse:
    return HTTPResponse.json({"message": f"hello, {request.param('name')}"})


def echo(request: HTTPRequest) -> HTTPResponse:
    content_type = request.get_header("content-type", "application/octet-stream")
    return HTTPResponse.binary(request.body, content_type)


def ticker(request: HTTPRequest) -> HTTPResponse:
    try:
        count = int(request.get_query("count", "10"))
        interval = float(request.get_query("interval", "1"))
    except ValueError:
        return HTTPResponse.error(HTTPStatus.BAD_REQUEST, "count and interval must be numbers")

    def produce(events: EventSender) -> None:
        events.retry(3000).comment("ticker").send()
        for n in range(count):
            result = events.id(str(n)).event("tick").data(str(n)).send()
            if result is SendResult.DISCONNECTED:
                logger.info(f"Ticker client left after {n} events")
                return
            time.sleep(interval)

    return HTTPResponse.sse(produce)


def build_app(
    config: ServerConfig,
    static_dir: Optional[str] = None,
    cors: bool = False,
) -> HTTPServer:
    server = HTTPServer(config)
    server.use(LoggingMiddleware())
    if cors:
        server.use(CORSMiddleware())

    server.add_route("GET", "/", index)
    server.add_route("GET", "/hello/{name}", hello)
    server.add_route("POST", "/echo", echo)
    server.add_route("GET", "/ticker", ticker)
    if static_dir:
        server.add_route("GET", "/static/{file}", StaticFileHandler(static_dir))
    return server


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = build_config(args)
        server = build_app(config, static_dir=args.static, cors=args.cors)
    except ValueError as e:
        print(f"catfur: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except OSError as e:
        print(f"catfur: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
