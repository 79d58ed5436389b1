"""
pytest configuration and fixtures.
"""

import socket
import threading
from dataclasses import dataclass, field
from typing import Dict, Generator, List
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from echohttp import HTTPServer, ServerConfig
from echohttp.core import StreamBuffer
from echohttp.http import HTTPRequest, RequestParser


@dataclass
class CapturedRequest:
    """Snapshot of a request at the moment it was emitted."""

    method: str
    path: str
    version: str
    headers: Dict[str, str]
    content_length: int
    body: bytes


@dataclass
class RecordingEmitter:
    """Response emitter that remembers every request it was handed."""

    requests: List[CapturedRequest] = field(default_factory=list)

    def emit(self, request: HTTPRequest) -> None:
        self.requests.append(CapturedRequest(
            method=request.method,
            path=request.path,
            version=request.version,
            headers=dict(request.headers.items()),
            content_length=request.content_length,
            body=bytes(request.body),
        ))


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return b"GET /x HTTP/1.1\r\nHost: a\r\n\r\n"


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a form body."""
    body = b"name=Alice"
    return (
        b"POST /submit HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
        + f"Content-Length: {len(body)}\r\n\r\n".encode()
        + body
    )


@pytest.fixture
def buffer() -> StreamBuffer:
    return StreamBuffer()


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture
def parser(buffer: StreamBuffer, emitter: RecordingEmitter) -> RequestParser:
    return RequestParser(buffer, emitter)


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        idle_timeout=5.0,
        log_level="WARNING",
    )


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: threading.Thread = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Start server in background thread and wait until it listens."""
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"configure_logging": False},
            daemon=True,
        )
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def connect(self) -> socket.socket:
        sock = socket.create_connection(("127.0.0.1", self.port), timeout=5.0)
        return sock

    def stop(self):
        """Stop the server."""
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


def _running_server(config: ServerConfig) -> Generator[TestServer, None, None]:
    test_srv = TestServer(HTTPServer(config))
    test_srv.start()
    yield test_srv
    test_srv.stop()


@pytest.fixture
def test_server(config: ServerConfig) -> Generator[TestServer, None, None]:
    """A running server on an ephemeral port."""
    yield from _running_server(config)


@pytest.fixture
def strict_server(config: ServerConfig) -> Generator[TestServer, None, None]:
    """A running server that answers malformed requests with 400."""
    config.send_error_response = True
    yield from _running_server(config)


class ResponseReader:
    """
    Reads Content-Length framed responses off a socket one at a time.

    Bytes received past the end of one response are kept for the next
    read, so pipelined responses that arrive in a single recv() are
    split correctly.
    """

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self.pending = b""

    def _fill(self) -> bool:
        chunk = self.sock.recv(4096)
        self.pending += chunk
        return bool(chunk)

    def read_response(self) -> bytes:
        while b"\r\n\r\n" not in self.pending:
            if not self._fill():
                data, self.pending = self.pending, b""
                return data

        head = self.pending.partition(b"\r\n\r\n")[0]
        length = 0
        for line in head.split(b"\r\n")[1:]:
            name, _, value = line.partition(b":")
            if name.strip().lower() == b"content-length":
                length = int(value.strip())

        end = len(head) + 4 + length
        while len(self.pending) < end:
            if not self._fill():
                break

        response, self.pending = self.pending[:end], self.pending[end:]
        return response


def recv_response(sock: socket.socket) -> bytes:
    """Read exactly one response from a socket with nothing else in flight."""
    return ResponseReader(sock).read_response()


def recv_until_closed(sock: socket.socket) -> bytes:
    data = b""
    while True:
        try:
            chunk = sock.recv(4096)
        except ConnectionResetError:
            break
        if not chunk:
            break
        data += chunk
    return data
