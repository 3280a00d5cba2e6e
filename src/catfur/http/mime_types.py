"""
Content-Type lookup by file extension, for the static file handler.

Text types get a charset parameter; everything unknown is served as
application/octet-stream, which browsers download rather than render.
"""

from pathlib import Path
from typing import Optional, Union


MIME_TYPES = {
    # Text
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",

    # Data
    ".json": "application/json",
    ".map": "application/json",
    ".xml": "application/xml",
    ".wasm": "application/wasm",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",

    # Images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",

    # Fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",

    # Media
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

# application/* and image/* types that are still text on the wire
_TEXTUAL = frozenset({
    "application/json",
    "application/xml",
    "image/svg+xml",
})


def get_mime_type(path: Union[str, Path], default: Optional[str] = None) -> str:
    """
    MIME type for ``path``, judged by its extension (case-insensitive).

        >>> get_mime_type("/srv/www/logo.PNG")
        'image/png'
        >>> get_mime_type("archive.xyz")
        'application/octet-stream'
    """
    extension = Path(path).suffix.lower()
    return MIME_TYPES.get(extension, default or DEFAULT_MIME_TYPE)


def is_text_type(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type in _TEXTUAL


def get_content_type(path: Union[str, Path], charset: str = "utf-8") -> str:
    """
    Full Content-Type header value, with a charset for text types.

        >>> get_content_type("index.html")
        'text/html; charset=utf-8'
        >>> get_content_type("cat.png")
        'image/png'
    """
    mime_type = get_mime_type(path)
    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"
    return mime_type
