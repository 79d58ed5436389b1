"""
=============================================================================
HTTP RESPONSE SERIALIZATION AND THE ECHO RESPONDER
=============================================================================

Every answer the server sends has the same shape:

    HTTP/1.1 200 OK\\r\\n                 ← Status line
    Content-Type: text/html\\r\\n
    Content-Length: 1234\\r\\n            ← Byte length of the ENCODED body
    \\r\\n                                ← Empty line (separator)
    <h1>Hello!</h1>...                  ← Body bytes

Content-Length counts bytes, not characters. "é" is one character but
two bytes in UTF-8, so the length is always computed from the encoded
body, never from the string.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Union

from .page import render_echo_page, render_error_page
from .request import HTTPRequest
from .status_codes import HTTPStatus

logger = logging.getLogger(__name__)

Writer = Callable[[bytes], None]


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be serialized.

    Content-Length is derived from the body in to_bytes(); any value set
    by hand is overwritten so the framing can never lie.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """Status line, e.g. "HTTP/1.1 200 OK"."""
        return f"{self.version} {self.status.value} {self.status.phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header. Returns self for chaining."""
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        """Set the body, encoding strings as UTF-8. Returns self for chaining."""
        if isinstance(body, str):
            self.body = body.encode("utf-8")
        else:
            self.body = body
        return self

    def to_bytes(self) -> bytes:
        """Serialize status line, headers, blank line and body."""
        response_headers = {
            name: value
            for name, value in self.headers.items()
            if name.lower() != "content-length"
        }
        response_headers["Content-Length"] = str(len(self.body))

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes + self.body


def html_response(html: str, status: HTTPStatus = HTTPStatus.OK) -> HTTPResponse:
    """Build a text/html response."""
    return (HTTPResponse(status=status)
        .set_header("Content-Type", "text/html")
        .set_body(html))


def error_response(status: HTTPStatus, message: str) -> HTTPResponse:
    """Build the HTML error response sent before closing a bad connection."""
    return html_response(render_error_page(status, message), status=status)


class EchoResponder:
    """
    Response emitter that answers every request with the echo page.

    The whole response is serialized first and handed to ``write`` in one
    call, so a response is never interleaved with anything else.

    Args:
        write: Callable that queues bytes on the connection's write side.
    """

    def __init__(self, write: Writer):
        self._write = write
        self.responses_sent = 0
        self.bytes_sent = 0

    def emit(self, request: HTTPRequest) -> None:
        payload = html_response(render_echo_page(request)).to_bytes()
        logger.debug(
            f"Emitting {len(payload)} byte response for {request.method} {request.path}"
        )
        self._write(payload)
        self.responses_sent += 1
        self.bytes_sent += len(payload)
