"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module handles individual client connections: one non-blocking
socket, one byte buffer, one request parser.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A client that sends

    GET /api/users HTTP/1.1\\r\\n
    Host: localhost\\r\\n
    \\r\\n

may be seen by the server as

    recv() → "GET /api/use"
    recv() → "rs HTTP/1.1\\r\\nHo"
    recv() → "st: localhost\\r\\n\\r\\n"

So the connection never parses what recv() returned. It FEEDS the chunk
into its StreamBuffer and lets the RequestParser pull out whatever is
complete.

=============================================================================
EVENT-DRIVEN I/O
=============================================================================

The socket is non-blocking and the SocketServer's selector tells us when
it can be read or written:

    readable ──► handle_read()
                   │
                   ├── recv() → b""          peer closed → close()
                   ├── feed(chunk)
                   └── parser.process()      0..n responses queued
                                                  │
    writable ──► handle_write()  ◄────────────────┘ (if not sent at once)
                   └── send() what is queued

Nothing here blocks. Every call does as much as it can and returns.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    OPEN ──────► CLOSING ──────► CLOSED
      │          (bad request:      ▲
      │           flush pending     │
      │           bytes, no reads)  │
      └─────────────────────────────┘
       peer closed, socket error, idle timeout

=============================================================================
"""

import socket
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..http.parser import RequestParser
from ..http.request import HTTPParseError, HTTPRequest
from ..http.response import EchoResponder, error_response
from ..http.status_codes import HTTPStatus
from ..logs import RequestLog, log_request, utc_timestamp
from .buffer import StreamBuffer

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""

    OPEN = "open"          # Reading requests, writing responses
    CLOSING = "closing"    # Flushing the last bytes, no more reads
    CLOSED = "closed"      # Socket released


@dataclass
class Connection:
    """
    One accepted client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. RECEIVE     recv() into the StreamBuffer, drive the parser      │
    │  2. RESPOND     act as the parser's emitter, queue response bytes   │
    │  3. SEND        flush queued bytes when the socket is writable      │
    │  4. FAIL        tear down on malformed input (optionally 400 first) │
    │  5. CLOSE       release the socket exactly once                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket (switched to non-blocking).
        address: Client's (ip, port) tuple.
        id: Short connection identifier for logs.
        state: Current lifecycle state.
        created_at: Timestamp when the connection was accepted.
        last_activity: Timestamp of the last successful recv/send.
        requests_handled: Number of requests answered.
        on_close: Called once, before the socket is closed.
    """

    # Required parameters
    socket: socket.socket
    address: tuple

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.OPEN
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    # Configuration (passed from ServerConfig)
    buffer_size: int = 8192
    max_line_size: Optional[int] = 64 * 1024
    max_body_size: Optional[int] = 10 * 1024 * 1024
    max_headers: Optional[int] = 100
    max_pending_output: Optional[int] = 1024 * 1024
    send_error_response: bool = False
    log_format: str = "text"

    on_close: Optional[Callable[["Connection"], None]] = field(default=None, repr=False)

    # Internal state
    _outgoing: bytearray = field(default_factory=bytearray, repr=False)
    _request_started: Optional[float] = field(default=None, repr=False)

    def __post_init__(self):
        self.socket.setblocking(False)

        self._buffer = StreamBuffer(max_line_size=self.max_line_size)
        self._responder = EchoResponder(self.write)
        self._parser = RequestParser(
            self._buffer,
            self,
            max_body_size=self.max_body_size,
            max_headers=self.max_headers,
        )

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def parser(self) -> RequestParser:
        return self._parser

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    @property
    def idle_time(self) -> float:
        """Seconds since the last activity."""
        return time.time() - self.last_activity

    @property
    def wants_read(self) -> bool:
        """False once closing, or while too many response bytes are unsent."""
        if self.state != ConnectionState.OPEN:
            return False
        limit = self.max_pending_output
        return limit is None or len(self._outgoing) <= limit

    @property
    def wants_write(self) -> bool:
        return self.state != ConnectionState.CLOSED and bool(self._outgoing)

    # =========================================================================
    # READING
    # =========================================================================

    def handle_read(self) -> None:
        """Receive what the socket has and parse as far as possible."""
        if not self.wants_read:
            return

        try:
            data = self.socket.recv(self.buffer_size)
        except (BlockingIOError, InterruptedError):
            return
        except OSError as e:
            logger.debug(f"[{self.id}] Receive failed: {e}")
            self.close()
            return

        if not data:
            logger.debug(f"[{self.id}] Peer closed the connection")
            self.close()
            return

        self.last_activity = time.time()
        if self._request_started is None:
            self._request_started = time.monotonic()

        self._buffer.feed(data)
        self.process()

    def process(self) -> None:
        """Drive the parser until it has nothing complete left to consume."""
        try:
            while self._parser.process():
                pass
            self._parser.check_overflow(self._buffer.line_overflow)
        except HTTPParseError as e:
            self._fail(e)

    def _fail(self, error: HTTPParseError) -> None:
        logger.warning(f"[{self.id}] {error} from {self.client_ip}, closing connection")

        if self.send_error_response:
            response = error_response(HTTPStatus(error.status_code), str(error))
            self._outgoing.extend(response.to_bytes())

        self.state = ConnectionState.CLOSING
        # drops the half-parsed request and detaches the parser
        self._buffer.close()
        self.flush()

    # =========================================================================
    # RESPONDING (the parser's emitter)
    # =========================================================================

    def emit(self, request: HTTPRequest) -> None:
        """Answer a completed request and write an access log entry."""
        # a failed send closes the connection, which resets the request
        entry = RequestLog(
            connection_id=self.id,
            client_ip=self.client_ip,
            method=request.method,
            path=request.path,
            version=request.version,
            content_length=request.content_length,
            response_bytes=0,
            duration_ms=0.0,
            timestamp=utc_timestamp(),
        )

        sent_before = self._responder.bytes_sent
        self._responder.emit(request)
        self.requests_handled += 1

        started = self._request_started or time.monotonic()
        entry.response_bytes = self._responder.bytes_sent - sent_before
        entry.duration_ms = (time.monotonic() - started) * 1000
        log_request(entry, self.log_format)
        self._request_started = time.monotonic() if len(self._buffer) else None

    # =========================================================================
    # WRITING
    # =========================================================================

    def write(self, data: bytes) -> None:
        """Queue bytes for the client and send as much as possible now."""
        if self.state == ConnectionState.CLOSED:
            return
        self._outgoing.extend(data)
        self.flush()

    def handle_write(self) -> None:
        """Socket became writable: continue sending queued bytes."""
        self.flush()

    def flush(self) -> None:
        while self._outgoing and self.state != ConnectionState.CLOSED:
            try:
                sent = self.socket.send(self._outgoing)
            except (BlockingIOError, InterruptedError):
                return
            except OSError as e:
                logger.warning(f"[{self.id}] Send failed: {e}")
                self.close()
                return
            del self._outgoing[:sent]
            self.last_activity = time.time()

        if self.state == ConnectionState.CLOSING and not self._outgoing:
            self.close()

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Close the connection. Safe to call more than once.

        Closing the StreamBuffer fires the parser's disconnect callback,
        so a partially received request is discarded and never answered.
        """
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        self._outgoing.clear()
        self._buffer.close()

        if self.on_close is not None:
            self.on_close(self)

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Already disconnected
        try:
            self.socket.close()
        except OSError:
            pass

        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
