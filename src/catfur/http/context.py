"""
=============================================================================
PER-REQUEST CONTEXT
=============================================================================

A small string-keyed store that travels with one request through the
middleware chain:

    ┌──────────────┐  set("user", "ada")  ┌──────────────┐  get("user")  ┌─────────┐
    │ AuthMiddle-  │ ───────────────────► │ LoggingMid-  │ ────────────► │ Handler │
    │ ware         │                      │ dleware      │               │         │
    └──────────────┘                      └──────────────┘               └─────────┘
            ▲                                                                  │
            └────────────── response flows back, context still alive ─────────┘

Each HTTPRequest owns a fresh Context. Nothing is shared between requests,
so a value written while serving one connection can never be observed by
another.

The store is guarded by a lock. A streaming response may run its producer
while middleware that already returned still holds a reference to the
request, so reads and writes can come from more than one call site.
=============================================================================
"""

import threading
from typing import Dict, Iterator, Optional


class Context:
    """
    Lock-guarded ``str -> str`` map scoped to a single request.

    Usage:
        request.context.set("user", "ada")
        request.context.get("user")            # "ada"
        request.context.get("missing", "anon") # "anon"
    """

    __slots__ = ("_values", "_lock")

    def __init__(self) -> None:
        self._values: Dict[str, str] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        with self._lock:
            self._values[str(key)] = str(value)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self._lock:
            return self._values.get(key, default)

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns False if it was not present."""
        with self._lock:
            return self._values.pop(key, None) is not None

    def snapshot(self) -> Dict[str, str]:
        """Copy of the current contents, safe to iterate without the lock."""
        with self._lock:
            return dict(self._values)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"Context({self.snapshot()!r})"
