"""
=============================================================================
STREAM BUFFER (THE BYTE SOURCE)
=============================================================================

TCP hands us bytes in whatever chunks the network felt like delivering.
The parser must never care about that. This module sits between the two:
the transport FEEDS raw chunks in, the parser PULLS complete units out.

    ┌─────────────────────────────────────────────────────────────────┐
    │                      StreamBuffer                                │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   socket.recv()                                                  │
    │       │                                                          │
    │       ▼                                                          │
    │   feed(b"GET / HT")  ──►  [G E T   /   H T]                      │
    │   feed(b"TP/1.1\\r\\n") ──► [G E T   /   H T T P / 1 . 1 \\r \\n]   │
    │                                                  ▲               │
    │                                    has_full_line() is now True   │
    │                                                                  │
    │   read_line()      ──►  b"GET / HTTP/1.1\\r\\n"  (pulled out)      │
    │   read_up_to(5)    ──►  0..5 raw bytes (body)                    │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

Nothing here ever blocks. If a full line is not buffered yet the parser
simply returns and waits for the next feed().

=============================================================================
"""

import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

DisconnectCallback = Callable[[], None]


class IncompleteLineError(Exception):
    """Raised by read_line() when no complete line is buffered."""


class StreamBuffer:
    """
    Incrementally filled byte buffer for one connection.

    Implements the byte source interface the request parser consumes:
    has_full_line(), read_line(), read_up_to(n), on_disconnect(callback).

    Args:
        max_line_size: Maximum number of bytes that may be buffered
                       without a line feed before line_overflow is
                       reported. None disables the check.
    """

    def __init__(self, max_line_size: Optional[int] = None):
        self.max_line_size = max_line_size
        self._data = bytearray()
        self._closed = False
        self._callbacks: List[DisconnectCallback] = []

    def __len__(self) -> int:
        return len(self._data)

    @property
    def closed(self) -> bool:
        """True once the transport has disconnected."""
        return self._closed

    @property
    def line_overflow(self) -> bool:
        """
        True when more than max_line_size bytes are waiting and none of
        them is a line feed. A line that long is never going to be valid.
        """
        if self.max_line_size is None:
            return False
        return len(self._data) > self.max_line_size and not self.has_full_line()

    # =========================================================================
    # WRITE SIDE: the transport pushes bytes in
    # =========================================================================

    def feed(self, data: bytes) -> None:
        """Append received bytes. Ignored once the buffer is closed."""
        if self._closed or not data:
            return
        self._data.extend(data)

    # =========================================================================
    # READ SIDE: the parser pulls complete units out
    # =========================================================================

    def has_full_line(self) -> bool:
        """Check whether a line-feed terminated line is buffered."""
        return b"\n" in self._data

    def read_line(self) -> bytes:
        """
        Remove and return one line, delimiter included.

        Raises:
            IncompleteLineError: If has_full_line() is False.
        """
        end = self._data.find(b"\n")
        if end == -1:
            raise IncompleteLineError(
                f"No complete line buffered ({len(self._data)} bytes pending)"
            )
        line = bytes(self._data[:end + 1])
        del self._data[:end + 1]
        return line

    def read_up_to(self, n: int) -> bytes:
        """Remove and return at most n bytes (possibly none)."""
        if n <= 0 or not self._data:
            return b""
        chunk = bytes(self._data[:n])
        del self._data[:n]
        return chunk

    # =========================================================================
    # DISCONNECT SIGNAL
    # =========================================================================

    def on_disconnect(self, callback: DisconnectCallback) -> None:
        """
        Register a callback fired once when the transport disconnects.

        Registering on an already closed buffer fires the callback
        immediately.
        """
        if self._closed:
            callback()
            return
        self._callbacks.append(callback)

    def close(self) -> None:
        """Mark the stream disconnected, drop pending bytes, notify listeners."""
        if self._closed:
            return
        self._closed = True
        self._data.clear()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        logger.debug(f"Stream closed, notified {len(callbacks)} listener(s)")
