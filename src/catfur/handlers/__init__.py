"""
Ready-made handlers.

    StaticFileHandler   files from a directory, via a {file} route parameter
"""

from .static import StaticFileHandler

__all__ = [
    "StaticFileHandler",
]
