"""
=============================================================================
TRANSPORT LAYER
=============================================================================

Sockets and threads, below the HTTP layer:

    SocketServer ── accept() ──► Connection ──► ThreadPool worker
    (listen, signals)            (bounded reads,  (one connection per
                                  timeouts)        task, grows on load)

Nothing here knows about routes or responses; HTTPServer plugs its
per-connection cycle in as the SocketServer callback.
=============================================================================
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ThreadPool",
]
