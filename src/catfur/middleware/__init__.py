"""
=============================================================================
MIDDLEWARE
=============================================================================

Code that runs around every handler, in registration order:

    server.use(LoggingMiddleware())   # outermost: sees every request
    server.use(CORSMiddleware())      # may answer preflights itself

Built in:

    LoggingMiddleware   access log line per request, X-Request-ID
    CORSMiddleware      cross-origin headers, OPTIONS preflight

Anything else is a few lines: a transform (handler → handler), a
Middleware subclass, or a function decorated with @function_middleware.
=============================================================================
"""

from .base import (
    FunctionMiddleware,
    Middleware,
    MiddlewarePipeline,
    NextHandler,
    function_middleware,
)
from .cors import CORSConfig, CORSMiddleware
from .logging import LoggingMiddleware

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "FunctionMiddleware",
    "function_middleware",
    "NextHandler",
    "LoggingMiddleware",
    "CORSMiddleware",
    "CORSConfig",
]
