"""
=============================================================================
ECHO HTTP SERVER
=============================================================================

Wires configuration, logging and the transport together.

    ServerConfig ──► HTTPServer ──► SocketServer ──► Connection (per client)
                                                        │
                                                        ├── StreamBuffer
                                                        ├── RequestParser
                                                        └── EchoResponder

Every request on every connection is answered with the same HTML page
describing the request. Connections stay open (keep-alive) until the
client closes, the idle timeout expires, or the client sends something
that is not a well-formed request.

=============================================================================
"""

import logging
from typing import Optional, Tuple

from .config import ServerConfig
from .core import SocketServer
from .logs import setup_logging

logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Keep-alive HTTP/1.x echo server.

    Usage:
        server = HTTPServer(ServerConfig(port=8080))
        server.run()   # blocks until Ctrl+C / SIGTERM / shutdown()
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port), available once the server is listening."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    def run(self, configure_logging: bool = True) -> None:
        """
        Start the server (blocking).

        Args:
            configure_logging: Apply the configured log level and format.
                               Embedding applications that manage logging
                               themselves can pass False.
        """
        if configure_logging:
            setup_logging(self.config.log_level, self.config.log_format)

        logger.info(
            f"Starting {self.config.server_name} on {self.config.host}:{self.config.port}"
        )
        try:
            self._socket_server.start()
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            logger.info("Server stopped")

    def shutdown(self) -> None:
        """Stop the event loop. Safe to call from another thread."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_for_shutdown(timeout)
