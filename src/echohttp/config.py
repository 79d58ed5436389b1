"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the echo server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m echohttp --port 3000                            │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── ECHOHTTP_PORT=3000 python -m echohttp                     │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Configuration is validated once at startup (fail fast) rather than on
first use.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ServerConfig:
    """
    Configuration for the echo server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size

    CONNECTION SETTINGS
    - idle_timeout, max_connections, max_line_size

    REQUEST LIMITS
    - max_body_size, max_headers, max_pending_output

    ERROR POLICY
    - send_error_response

    LOGGING
    - log_level, log_format, server_name

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only (development)
    - "0.0.0.0" - All network interfaces
    """

    port: int = 8080
    """The port to listen on. 0 lets the OS pick a free port."""

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    buffer_size: int = 8192
    """How many bytes a single recv() may return."""

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTION SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    idle_timeout: Optional[float] = 30.0
    """
    Seconds a connection may sit without any traffic before the server
    closes it. None keeps idle connections open forever.
    """

    max_connections: int = 1024
    """Connections beyond this many are closed right after accept()."""

    max_line_size: int = 64 * 1024
    """
    Longest request line or header line accepted, in bytes. A client
    that sends more than this without a line feed is disconnected.
    """

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST LIMITS
    # ─────────────────────────────────────────────────────────────────────

    max_body_size: int = 10 * 1024 * 1024  # 10 MB
    """
    Largest Content-Length accepted. A request declaring more is treated
    as an invalid Content-Length and the connection is closed.
    """

    max_headers: int = 100
    """Most header lines accepted in a single request."""

    max_pending_output: int = 1024 * 1024
    """
    Bytes of unsent responses a connection may queue before the server
    stops reading from it. Reading resumes once the client drains them.
    """

    # ─────────────────────────────────────────────────────────────────────
    # ERROR POLICY
    # ─────────────────────────────────────────────────────────────────────

    send_error_response: bool = False
    """
    Malformed requests always end the connection. With this off (the
    default) it is closed silently; with it on a 400 Bad Request is sent
    first.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Log format: 'text' for humans, 'json' for log aggregators."""

    server_name: str = "echohttp/1.0"
    """Server identity used in startup logs."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        ECHOHTTP_HOST                 Server host (default: 127.0.0.1)
        ECHOHTTP_PORT                 Server port (default: 8080)
        ECHOHTTP_IDLE_TIMEOUT         Idle timeout in seconds, "none" to
                                      disable (default: 30)
        ECHOHTTP_LOG_LEVEL            Logging level (default: INFO)
        ECHOHTTP_LOG_FORMAT           text or json (default: text)
        ECHOHTTP_SEND_ERROR_RESPONSE  Send 400 on bad input (default: off)
        ECHOHTTP_MAX_BODY_SIZE        Largest accepted body in bytes
                                      (default: 10485760)

        =====================================================================
        """
        idle = os.getenv("ECHOHTTP_IDLE_TIMEOUT", "30")
        return cls(
            host=os.getenv("ECHOHTTP_HOST", "127.0.0.1"),
            port=int(os.getenv("ECHOHTTP_PORT", "8080")),
            idle_timeout=None if idle.strip().lower() == "none" else float(idle),
            max_body_size=int(os.getenv("ECHOHTTP_MAX_BODY_SIZE", str(10 * 1024 * 1024))),
            log_level=os.getenv("ECHOHTTP_LOG_LEVEL", "INFO"),
            log_format=os.getenv("ECHOHTTP_LOG_FORMAT", "text"),
            send_error_response=_env_bool(
                os.getenv("ECHOHTTP_SEND_ERROR_RESPONSE", "false")
            ),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: On the first invalid setting found.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")

        if self.idle_timeout is not None and self.idle_timeout <= 0:
            raise ValueError("idle_timeout must be > 0 or None")

        if self.max_connections < 1:
            raise ValueError("max_connections must be >= 1")

        if self.max_line_size < 16:
            raise ValueError("max_line_size must be >= 16")

        if self.max_body_size < 0:
            raise ValueError("max_body_size must be >= 0")

        if self.max_headers < 1:
            raise ValueError("max_headers must be >= 1")

        if self.max_pending_output < 1:
            raise ValueError("max_pending_output must be >= 1")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Invalid log_format: {self.log_format}. Use 'text' or 'json'.")
