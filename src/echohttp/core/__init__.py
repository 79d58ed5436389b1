"""
=============================================================================
TRANSPORT LAYER
=============================================================================

The parts of the server that touch sockets:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ SOCKET SERVER (socket_server.py)                                    │
    │   Listening socket + selectors event loop, idle sweeping            │
    ├─────────────────────────────────────────────────────────────────────┤
    │ CONNECTION (connection.py)                                          │
    │   One client: recv → buffer → parser, queued non-blocking sends    │
    ├─────────────────────────────────────────────────────────────────────┤
    │ STREAM BUFFER (buffer.py)                                           │
    │   Byte source the parser reads complete lines and body bytes from  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .buffer import StreamBuffer, IncompleteLineError
from .connection import Connection, ConnectionState
from .socket_server import SocketServer

__all__ = [
    "StreamBuffer",
    "IncompleteLineError",
    "Connection",
    "ConnectionState",
    "SocketServer",
]
