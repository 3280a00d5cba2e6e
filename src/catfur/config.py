"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All tunables in one dataclass, validated once at startup:

    ┌─────────────┬──────────────────────────────────────────────────────┐
    │ Network     │ host, port, backlog, buffer_size, timeout            │
    │ Limits      │ max_header_size, max_body_size                       │
    │ Workers     │ min_workers, max_workers, queue_size                 │
    │ Identity    │ server_name (Server header), banner                  │
    │ Logging     │ log_level                                            │
    └─────────────┴──────────────────────────────────────────────────────┘

Sources, highest priority first:

    1. command line       python -m catfur --port 3000
    2. environment        CATFUR_PORT=3000 python -m catfur
    3. the defaults below

`timeout` bounds every blocking socket operation on a client connection:
waiting for the request, reading its body, and each write of a response or
stream chunk.
=============================================================================
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from .http.response import DEFAULT_SERVER_NAME


ENV_PREFIX = "CATFUR_"


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


@dataclass
class ServerConfig:
    """
    Development:

        ServerConfig(port=8080, log_level="DEBUG")

    Tests (ephemeral port, quiet):

        ServerConfig(port=0, banner=False, timeout=2.0)

    Production:

        ServerConfig(host="0.0.0.0", port=80, max_workers=64)
    """

    # Network
    host: str = "127.0.0.1"
    port: int = 8080                # 0 picks a free port
    backlog: int = 128
    buffer_size: int = 8192
    timeout: Optional[float] = 30.0

    # Limits
    max_header_size: int = 64 * 1024
    max_body_size: int = 10 * 1024 * 1024

    # Workers
    min_workers: int = 4
    max_workers: int = 32
    queue_size: int = 128

    # Identity and logging
    server_name: str = DEFAULT_SERVER_NAME
    log_level: str = "INFO"
    banner: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """
        Defaults overridden by CATFUR_* variables.

            CATFUR_HOST, CATFUR_PORT, CATFUR_BACKLOG, CATFUR_TIMEOUT,
            CATFUR_MIN_WORKERS, CATFUR_MAX_WORKERS, CATFUR_QUEUE_SIZE,
            CATFUR_MAX_HEADER_SIZE, CATFUR_MAX_BODY_SIZE,
            CATFUR_SERVER_NAME, CATFUR_LOG_LEVEL, CATFUR_BANNER

        Raises:
            ValueError: a variable does not convert to its field's type.
        """
        environ = os.environ if environ is None else environ
        converters: Dict[str, Callable[[str], object]] = {
            "host": str,
            "port": int,
            "backlog": int,
            "buffer_size": int,
            "timeout": float,
            "max_header_size": int,
            "max_body_size": int,
            "min_workers": int,
            "max_workers": int,
            "queue_size": int,
            "server_name": str,
            "log_level": str,
            "banner": _parse_bool,
        }

        overrides = {}
        for name, convert in converters.items():
            key = ENV_PREFIX + name.upper()
            raw = environ.get(key)
            if raw is None or raw == "":
                continue
            try:
                overrides[name] = convert(raw)
            except ValueError:
                raise ValueError(f"Invalid value for {key}: {raw!r}") from None
        return cls(**overrides)

    def validate(self) -> None:
        """
        Raises:
            ValueError: describing the first invalid setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")
        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")
        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.max_header_size < 1024:
            raise ValueError("max_header_size must be >= 1024")
        if self.max_body_size < 0:
            raise ValueError("max_body_size must be >= 0")
        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")
        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")
        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")
