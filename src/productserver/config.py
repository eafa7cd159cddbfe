"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every tunable of the product server lives in one dataclass.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m productserver --port 9000                        │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── HTTP_PORT=9000 python -m productserver                     │
    │                                                                      │
    │   3. Defaults in ServerConfig                                       │
    │      └── 127.0.0.1:8000, 15s read/write, 3s grace period            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

There are deliberately no configuration files.

=============================================================================
TIMEOUTS AT A GLANCE
=============================================================================

    accept ──► read request ──► handler ──► write response ──► idle ──► ...
               └ read_timeout ┘             └ write_timeout ┘  └ idle_timeout ┘

    Ctrl+C ──► stop accepting ──► drain in-flight ──► force close
                                  └── shutdown_timeout ──┘

=============================================================================
"""

import os
from dataclasses import dataclass


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    Defaults reproduce the reference deployment: bind 127.0.0.1:8000,
    15 second read/write timeouts and a 3 second shutdown grace period.

    Example:
        config = ServerConfig(port=0, shutdown_timeout=1.0)  # tests
        config = ServerConfig.from_env()                      # deployments
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """The IP address to bind to."""

    port: int = 8000
    """The TCP port to listen on. 0 asks the OS for a free port."""

    backlog: int = 128
    """Maximum number of connections queued by the kernel before accept()."""

    buffer_size: int = 8192
    """Bytes requested per recv() call."""

    # ─────────────────────────────────────────────────────────────────────
    # TIMEOUTS (seconds)
    # ─────────────────────────────────────────────────────────────────────

    read_timeout: float = 15.0
    """
    Deadline for reading one complete request (headers and body).
    The clock starts when the server begins waiting for the request.
    """

    write_timeout: float = 15.0
    """Deadline for sending one complete response."""

    idle_timeout: float = 15.0
    """How long a keep-alive connection may sit idle between requests."""

    shutdown_timeout: float = 3.0
    """
    Grace period for in-flight requests after an interrupt.
    When it runs out, remaining connections are closed forcibly.
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Allow several requests on one TCP connection (HTTP/1.1 default)."""

    max_request_size: int = 1024 * 1024  # 1 MB
    """Largest request (headers + body) accepted before answering 413."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads created at startup."""

    max_workers: int = 64
    """Upper bound on worker threads, i.e. on concurrently served connections."""

    queue_size: int = 256
    """Accepted connections allowed to wait for a worker before 503."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Root logging level (DEBUG, INFO, WARNING, ERROR)."""

    access_log: bool = True
    """Emit one access-log line per request on the productserver.access logger."""

    server_name: str = "productserver/1.0"
    """Value of the Server response header."""

    @property
    def address(self) -> str:
        """Configured bind address as host:port."""
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        HTTP_HOST              Bind host (default: 127.0.0.1)
        HTTP_PORT              Bind port (default: 8000)
        HTTP_READ_TIMEOUT      Request read deadline in seconds (default: 15)
        HTTP_WRITE_TIMEOUT     Response write deadline in seconds (default: 15)
        HTTP_SHUTDOWN_TIMEOUT  Grace period in seconds (default: 3)
        HTTP_WORKERS           Max worker threads (default: 64)
        HTTP_LOG_LEVEL         Logging level (default: INFO)

        =====================================================================
        """
        defaults = cls()
        max_workers = int(os.getenv("HTTP_WORKERS", str(defaults.max_workers)))

        return cls(
            host=os.getenv("HTTP_HOST", defaults.host),
            port=int(os.getenv("HTTP_PORT", str(defaults.port))),
            read_timeout=float(os.getenv("HTTP_READ_TIMEOUT", str(defaults.read_timeout))),
            write_timeout=float(os.getenv("HTTP_WRITE_TIMEOUT", str(defaults.write_timeout))),
            shutdown_timeout=float(
                os.getenv("HTTP_SHUTDOWN_TIMEOUT", str(defaults.shutdown_timeout))
            ),
            min_workers=min(defaults.min_workers, max_workers),
            max_workers=max_workers,
            log_level=os.getenv("HTTP_LOG_LEVEL", defaults.log_level),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by HTTPServer.__init__ so a bad value stops the process
        before any socket is opened.

        Raises:
            ValueError: On the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        for name in ("read_timeout", "write_timeout", "idle_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

        if self.shutdown_timeout < 0:
            raise ValueError("shutdown_timeout must be >= 0")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {self.log_level}")
