"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves files from one directory through a route parameter:

    server.get("/static/{file}")(StaticFileHandler("./public"))

    GET /static/logo.png    → ./public/logo.png
    GET /static             → no match (0 vs 1 segments); register "/static"
                              too if the bare prefix should serve index.html
    GET /static/docs        → ./public/docs/index.html, if docs is a directory
    GET /static/..%2F.env   → 404, resolves outside ./public

The parameter value is percent-decoded before it is joined to the root,
and the resolved path must stay inside the root. Anything that escapes,
does not exist or cannot be read is answered with 404 so that the
filesystem layout is not revealed.

Responses carry an ETag built from mtime and size; a matching
If-None-Match gets 304 with no body.
=============================================================================
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Union
from urllib.parse import unquote

from ..http.mime_types import get_content_type
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, format_http_date, not_found
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class StaticFileHandler:
    """
    A handler (callable on a request) that serves files under ``root_dir``.

    Args:
        root_dir: Directory to serve. Must exist.
        param: Path parameter holding the file name.
        index_file: Served for the empty name and for directories.
        cache_max_age: Cache-Control max-age in seconds.
    """

    def __init__(
        self,
        root_dir: Union[str, Path],
        param: str = "file",
        index_file: str = "index.html",
        cache_max_age: int = 3600,
    ):
        self.root_dir = Path(root_dir).resolve()
        if not self.root_dir.is_dir():
            raise ValueError(f"Static root directory does not exist: {root_dir}")
        self.param = param
        self.index_file = index_file
        self.cache_max_age = cache_max_age

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return self.handle(request)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        name = unquote(request.param(self.param, "") or "").lstrip("/")
        target = self.resolve(name)
        if target is None:
            return not_found(f"File not found: {name or '/'}")
        return self._serve_file(target, request)

    def resolve(self, name: str) -> Union[Path, None]:
        """The file to serve for ``name``, or None."""
        candidate = (self.root_dir / (name or self.index_file)).resolve()
        try:
            candidate.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt: {name!r}")
            return None

        if candidate.is_dir():
            candidate = candidate / self.index_file
        return candidate if candidate.is_file() else None

    def _serve_file(self, path: Path, request: HTTPRequest) -> HTTPResponse:
        try:
            stat = path.stat()
            etag = f'"{int(stat.st_mtime)}-{stat.st_size}"'
            if request.get_header("if-none-match") == etag:
                return HTTPResponse.empty(HTTPStatus.NOT_MODIFIED).set_header("ETag", etag)
            data = path.read_bytes()
        except OSError as e:
            logger.error(f"Error reading {path}: {e}")
            return not_found("File not found")

        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        return (
            HTTPResponse.binary(data, get_content_type(path))
            .set_header("ETag", etag)
            .set_header("Last-Modified", format_http_date(modified))
            .set_header("Cache-Control", f"public, max-age={self.cache_max_age}")
        )
