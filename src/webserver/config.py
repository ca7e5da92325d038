"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every tunable of the server in one dataclass.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   Priority (highest to lowest):                                     │
    │                                                                     │
    │   1. Command-line arguments                                         │
    │      └── web 8080 --root ./public                                   │
    │                                                                     │
    │   2. Environment variables                                          │
    │      └── WEB_PORT=8080 WEB_ROOT=./public web                        │
    │                                                                     │
    │   3. Defaults below                                                 │
    │      └── localhost:80, serving ./www                                │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Values are validated once, at startup, before any socket is opened.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value else None


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


@dataclass
class ServerConfig:
    """
    Configuration for the web server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK
    - host, port, backlog, buffer_size, connection_timeout,
      accept_poll_interval

    CONTENT
    - root_dir, index_document

    CONCURRENCY
    - max_workers (None = one thread per connection)

    IDENTITY
    - server_name, server_version

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "localhost"
    """Host name or address to listen on. Resolved with getaddrinfo."""

    port: int = 80
    """Port to listen on. 0 lets the OS pick a free one."""

    backlog: int = 10
    """Maximum number of pending connections queued by the kernel."""

    buffer_size: int = 8192
    """Maximum number of request bytes read from a connection."""

    connection_timeout: Optional[float] = None
    """
    Per-connection socket timeout in seconds.
    None = blocking forever; a stalled client then holds its thread.
    """

    accept_poll_interval: float = 1.0
    """How often the accept loop wakes up to check for shutdown."""

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    root_dir: str = "www"
    """Directory whose files are served."""

    index_document: str = "/index.html"
    """Path served for the request target "/"."""

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY
    # ─────────────────────────────────────────────────────────────────────

    max_workers: Optional[int] = None
    """
    Upper bound on connections handled at once.
    None = a new thread per accepted connection.
    N    = a pool of N workers; accepting pauses while all are busy.
    """

    # ─────────────────────────────────────────────────────────────────────
    # IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "web_server"
    """Value of the ``server`` response header."""

    server_version: str = "1.0"
    """Shown next to the name in the footer of error pages."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        WEB_HOST        Listen host (default: localhost)
        WEB_PORT        Listen port (default: 80)
        WEB_ROOT        Served directory (default: www)
        WEB_WORKERS     Worker pool size (default: thread per connection)
        WEB_TIMEOUT     Connection timeout in seconds (default: none)
        WEB_LOG_LEVEL   Logging level (default: INFO)

        =====================================================================
        """
        return cls(
            host=os.getenv("WEB_HOST", "localhost"),
            port=int(os.getenv("WEB_PORT", "80")),
            root_dir=os.getenv("WEB_ROOT", "www"),
            max_workers=_env_int("WEB_WORKERS"),
            connection_timeout=_env_float("WEB_TIMEOUT"),
            log_level=os.getenv("WEB_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: On the first invalid value found.
        """
        if not 0 <= self.port <= 65535:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

        if self.connection_timeout is not None and self.connection_timeout <= 0:
            raise ValueError("connection_timeout must be > 0")

        if self.accept_poll_interval <= 0:
            raise ValueError("accept_poll_interval must be > 0")

        if not self.index_document.startswith("/"):
            raise ValueError("index_document must start with '/'")
