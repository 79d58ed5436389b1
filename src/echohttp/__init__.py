"""
=============================================================================
ECHOHTTP - Incremental HTTP/1.x Parser and Keep-Alive Echo Server
=============================================================================

A small HTTP server built on raw, non-blocking sockets. Its core is an
incremental request parser: bytes are consumed as they arrive, in any
chunking, and each complete request is answered with an HTML page that
echoes the request back.

=============================================================================
PACKAGE LAYOUT
=============================================================================

    echohttp/
    ├── __init__.py          # This file
    ├── __main__.py          # CLI: python -m echohttp
    ├── config.py            # ServerConfig dataclass
    ├── logs.py              # Logging setup, access log entries
    ├── server.py            # HTTPServer: config + logging + transport
    ├── core/                # Transport
    │   ├── buffer.py        # StreamBuffer (byte source)
    │   ├── connection.py    # Per-client connection
    │   └── socket_server.py # selectors event loop
    └── http/                # Protocol
        ├── request.py       # HTTPRequest, Headers, parse errors
        ├── parser.py        # RequestParser state machine
        ├── response.py      # HTTPResponse, EchoResponder
        ├── page.py          # HTML echo page
        └── status_codes.py  # HTTPStatus

=============================================================================
QUICK START
=============================================================================

    from echohttp import HTTPServer, ServerConfig

    server = HTTPServer(ServerConfig(port=8080))
    server.run()

    # or from a shell
    python -m echohttp --port 8080

=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer
from .config import ServerConfig

__all__ = ["HTTPServer", "ServerConfig", "__version__"]
