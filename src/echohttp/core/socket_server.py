"""
=============================================================================
EVENT-DRIVEN TCP SOCKET SERVER
=============================================================================

This module owns the listening socket and the event loop. It accepts
clients, wraps each one in a Connection and tells the connection when
its socket is readable or writable.

=============================================================================
ONE THREAD, MANY CONNECTIONS
=============================================================================

Instead of a thread per client, a single loop asks the OS which sockets
are ready (select/epoll/kqueue via the selectors module):

    ┌─────────────────────────────────────────────────────────────────┐
    │                      Event Loop                                  │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   while running:                                                 │
    │       events = selector.select(timeout)                          │
    │       │                                                          │
    │       ├── listening socket readable → accept() all pending       │
    │       │                                                          │
    │       ├── client readable  → conn.handle_read()                  │
    │       ├── client writable  → conn.handle_write()                 │
    │       │       └── re-register interest (READ / WRITE / both)     │
    │       │                                                          │
    │       └── sweep connections idle longer than idle_timeout        │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

Every Connection (and its parser) is only ever touched from this loop,
so a parser is never invoked twice at the same time and needs no locks.

=============================================================================
"""

import socket
import signal
import logging
import selectors
import threading
from typing import Callable, Dict, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection, ConnectionState

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[socket.socket, Tuple[str, int]], Connection]


class SocketServer:
    """
    Low-level, single-threaded TCP server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start()             Main entry point (blocks)                     │
    │        ├──► _create_socket()   SO_REUSEADDR, non-blocking            │
    │        ├──► bind() / listen()                                        │
    │        ├──► _setup_signals()   SIGTERM/SIGINT (main thread only)     │
    │        └──► _event_loop()                                            │
    │                                                                      │
    │    shutdown()          Ask the loop to stop (any thread)             │
    │                                                                      │
    │    _cleanup()          Close every connection and the socket         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Args:
        config: Server configuration.
        connection_factory: Builds a Connection for an accepted socket.
                            Defaults to one configured from ``config``.
    """

    POLL_INTERVAL = 0.2

    def __init__(
        self,
        config: ServerConfig,
        connection_factory: Optional[ConnectionFactory] = None,
    ):
        self.config = config
        self._connection_factory = connection_factory or self._default_factory

        self._socket: Optional[socket.socket] = None
        self._selector: Optional[selectors.BaseSelector] = None
        self._connections: Dict[str, Connection] = {}
        self._bound_address: Optional[Tuple[str, int]] = None

        self._running = False
        self._ready_event = threading.Event()
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the configured one before start()."""
        return self._bound_address or (self.config.host, self.config.port)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def _default_factory(self, client_socket: socket.socket, address) -> Connection:
        return Connection(
            socket=client_socket,
            address=address,
            buffer_size=self.config.buffer_size,
            max_line_size=self.config.max_line_size,
            max_body_size=self.config.max_body_size,
            max_headers=self.config.max_headers,
            max_pending_output=self.config.max_pending_output,
            send_error_response=self.config.send_error_response,
            log_format=self.config.log_format,
        )

    # =========================================================================
    # SETUP
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        # Avoid "Address already in use" while the old socket sits in TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setblocking(False)
        return sock

    def _setup_signals(self):
        """Install SIGTERM/SIGINT handlers that trigger a graceful shutdown."""
        if threading.current_thread() is not threading.main_thread():
            return  # signal.signal() only works on the main thread

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self) -> None:
        """
        Bind, listen and run the event loop.

        This method BLOCKS until shutdown() is called.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._bound_address = self._socket.getsockname()[:2]

        self._selector = selectors.DefaultSelector()
        self._selector.register(self._socket, selectors.EVENT_READ, data=None)

        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()

        logger.info(f"Server listening on {self.address[0]}:{self.address[1]}")
        self._ready_event.set()

        try:
            self._event_loop()
        finally:
            self._cleanup()

    # =========================================================================
    # EVENT LOOP
    # =========================================================================

    def _event_loop(self) -> None:
        while self._running:
            try:
                events = self._selector.select(timeout=self.POLL_INTERVAL)
            except OSError:
                if not self._running:
                    break
                raise

            for key, mask in events:
                if key.data is None:
                    self._accept_clients()
                    continue

                conn: Connection = key.data
                if mask & selectors.EVENT_READ:
                    conn.handle_read()
                if mask & selectors.EVENT_WRITE:
                    conn.handle_write()
                self._update_interest(conn)

            self._sweep_idle_connections()

    def _accept_clients(self) -> None:
        while True:
            try:
                client_socket, client_address = self._socket.accept()
            except (BlockingIOError, InterruptedError):
                return
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                return

            if len(self._connections) >= self.config.max_connections:
                logger.warning(
                    f"Connection limit {self.config.max_connections} reached, "
                    f"dropping {client_address[0]}:{client_address[1]}"
                )
                client_socket.close()
                continue

            client_socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            conn = self._connection_factory(client_socket, client_address)
            conn.on_close = self._forget
            self._connections[conn.id] = conn
            self._selector.register(client_socket, selectors.EVENT_READ, data=conn)

            logger.debug(
                f"[{conn.id}] Accepted connection from {client_address[0]}:{client_address[1]}"
            )

    def _update_interest(self, conn: Connection) -> None:
        if conn.state == ConnectionState.CLOSED:
            return

        events = 0
        if conn.wants_read:
            events |= selectors.EVENT_READ
        if conn.wants_write:
            events |= selectors.EVENT_WRITE

        if not events:
            conn.close()
            return
        self._selector.modify(conn.socket, events, data=conn)

    def _sweep_idle_connections(self) -> None:
        timeout = self.config.idle_timeout
        if timeout is None:
            return
        for conn in list(self._connections.values()):
            if conn.idle_time > timeout:
                logger.debug(f"[{conn.id}] Idle for {conn.idle_time:.1f}s, closing")
                conn.close()

    def _forget(self, conn: Connection) -> None:
        """Connection.on_close hook: drop it from the selector and registry."""
        self._connections.pop(conn.id, None)
        if self._selector is not None:
            try:
                self._selector.unregister(conn.socket)
            except (KeyError, ValueError):
                pass

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self) -> None:
        """
        Ask the event loop to stop. Safe to call from any thread and more
        than once; the loop notices within POLL_INTERVAL seconds.
        """
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self) -> None:
        for conn in list(self._connections.values()):
            conn.close()
        self._connections.clear()

        self._restore_signals()

        if self._selector is not None:
            self._selector.close()
            self._selector = None

        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._ready_event.clear()
        self._shutdown_event.set()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is listening. Returns False on timeout."""
        return self._ready_event.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until the event loop has exited. Returns False on timeout."""
        return self._shutdown_event.wait(timeout)
