"""
=============================================================================
INCREMENTAL REQUEST PARSER
=============================================================================

The heart of the server: a state machine that turns an arbitrarily
chunked byte stream into complete requests, one at a time, on a single
keep-alive connection.

=============================================================================
STATE MACHINE
=============================================================================

    ┌──────────────┐  3 tokens   ┌─────────────────┐
    │ REQUEST_LINE │ ──────────► │ REQUEST_HEADERS │ ◄──┐ "Name: value"
    └──────────────┘             └─────────────────┘ ───┘
           ▲                      │              │
           │        empty line,   │              │ empty line,
           │        length == 0   │              │ length > 0
           │                      ▼              ▼
           │               ┌──────────┐    ┌──────────────┐
           └────────────── │ RESPONSE │ ◄──│ REQUEST_BODY │ ◄──┐ partial
              reset()      └──────────┘    └──────────────┘ ───┘ reads
                                      deficit == 0

Any malformed input raises an HTTPParseError subclass. The parser does
not try to recover: the connection that owns it is torn down.

=============================================================================
DRIVING CONTRACT
=============================================================================

process() is called whenever new bytes MAY be available:

    - It never blocks. It only consumes what is already buffered.
    - Calling it with nothing new buffered is a no-op.
    - One call consumes as many complete lines (then body bytes) as are
      buffered and stops when it runs out, or when a request has been
      answered (returns True), or when the input is malformed (raises).

Body accumulation can span many calls. The deficit
(content_length - len(body)) is recomputed on every call.

=============================================================================
"""

import logging
import re
from enum import Enum
from typing import Optional, Protocol

from .request import (
    HTTPRequest,
    InvalidContentLength,
    MalformedHeader,
    MalformedRequestLine,
)

logger = logging.getLogger(__name__)


class ByteSource(Protocol):
    """What the parser needs from the transport's receive side."""

    def has_full_line(self) -> bool: ...

    def read_line(self) -> bytes: ...

    def read_up_to(self, n: int) -> bytes: ...

    def on_disconnect(self, callback) -> None: ...


class ResponseEmitter(Protocol):
    """Writes a fully formed response for a completed request."""

    def emit(self, request: HTTPRequest) -> None: ...


class ParserState(Enum):
    """Parsing phase of the current request."""

    REQUEST_LINE = "request_line"
    REQUEST_HEADERS = "request_headers"
    REQUEST_BODY = "request_body"
    RESPONSE = "response"


class RequestParser:
    """
    Per-connection HTTP/1.x request state machine.

    The byte source and the response emitter are injected; the parser
    owns the HTTPRequest it fills in and resets it after every response.

    Args:
        max_body_size: Largest Content-Length accepted. None for no limit.
        max_headers: Most header lines accepted per request. None for no
                     limit.

    Usage:
        buffer = StreamBuffer()
        parser = RequestParser(buffer, EchoResponder(conn.write))

        buffer.feed(chunk)
        while parser.process():
            pass   # a request was answered, maybe another is buffered
    """

    # name: one or more non-colon characters, then ':', one or more
    # spaces, then the value verbatim
    HEADER_PATTERN = re.compile(r"^([^:]+): +(.*)$")

    CONTENT_LENGTH_PATTERN = re.compile(r"[0-9]+")

    # lengths past 10**18 bytes are never honoured, even without max_body_size
    MAX_CONTENT_LENGTH_DIGITS = 18

    def __init__(
        self,
        source: ByteSource,
        emitter: ResponseEmitter,
        max_body_size: Optional[int] = None,
        max_headers: Optional[int] = None,
    ):
        self._source = source
        self._emitter = emitter
        self._detached = False

        # None disables a limit
        self.max_body_size = max_body_size
        self.max_headers = max_headers

        self.state = ParserState.REQUEST_LINE
        self.request = HTTPRequest()
        self.requests_completed = 0
        self._header_count = 0

        source.on_disconnect(self._on_disconnect)

    @property
    def detached(self) -> bool:
        """True once the byte source has disconnected."""
        return self._detached

    @property
    def awaiting_line(self) -> bool:
        """True while the parser consumes line-delimited input."""
        return self.state in (ParserState.REQUEST_LINE, ParserState.REQUEST_HEADERS)

    # =========================================================================
    # DRIVER
    # =========================================================================

    def process(self) -> bool:
        """
        Consume whatever is buffered.

        Returns:
            True if a request was completed and answered during this call.

        Raises:
            MalformedRequestLine: Request line is not exactly 3 tokens.
            MalformedHeader: Header line does not match "name: value", or
                             the request has more than max_headers lines.
            InvalidContentLength: Content-Length is not a decimal number,
                                  or it exceeds max_body_size.
        """
        if self._detached:
            return False

        while self.awaiting_line and self._source.has_full_line():
            line = self._decode_line(self._source.read_line())

            if self.state == ParserState.REQUEST_LINE:
                self._parse_request_line(line)
                continue

            if line == "":
                if self.request.content_length > 0:
                    self.state = ParserState.REQUEST_BODY
                    break
                return self._respond()

            self._parse_header(line)

        if self.state == ParserState.REQUEST_BODY:
            return self._read_body()

        return False

    def check_overflow(self, overflow: bool) -> None:
        """
        Fail the request when the byte source reports an over-long line.

        The error raised matches the line the parser was waiting for.
        """
        if not overflow:
            return
        if self.state == ParserState.REQUEST_LINE:
            raise MalformedRequestLine("Request line too long")
        if self.state == ParserState.REQUEST_HEADERS:
            raise MalformedHeader("Header line too long")

    # =========================================================================
    # STATE HANDLERS
    # =========================================================================

    @staticmethod
    def _decode_line(raw: bytes) -> str:
        # CRLF and bare LF endings are both accepted
        if raw.endswith(b"\r\n"):
            raw = raw[:-2]
        elif raw.endswith(b"\n"):
            raw = raw[:-1]
        return raw.decode("utf-8", errors="replace")

    def _parse_request_line(self, line: str) -> None:
        parts = line.split(" ")
        if len(parts) != 3 or not all(parts):
            logger.debug(f"Request line doesn't consist of 3 parts: {line!r}")
            raise MalformedRequestLine(
                f"Request line doesn't consist of 3 parts: {line!r}", line=line
            )

        self.request.method, self.request.path, self.request.version = parts
        self._header_count = 0
        self.state = ParserState.REQUEST_HEADERS

    def _parse_header(self, line: str) -> None:
        match = self.HEADER_PATTERN.match(line)
        if match is None:
            raise MalformedHeader(f"Could not parse header: {line!r}", line=line)

        self._header_count += 1
        if self.max_headers is not None and self._header_count > self.max_headers:
            raise MalformedHeader(
                f"More than {self.max_headers} header lines", line=line
            )

        name, value = match.group(1), match.group(2)
        self.request.headers[name] = value

        if name.lower() == "content-length":
            if not self.CONTENT_LENGTH_PATTERN.fullmatch(value):
                raise InvalidContentLength(
                    f"Could not parse Content-Length: {value!r}", line=line
                )
            self.request.content_length = self._body_length(value, line)

    def _body_length(self, value: str, line: str) -> int:
        """Convert an all-digit Content-Length, enforcing max_body_size."""
        digits = value.lstrip("0") or "0"
        limit = self.max_body_size

        # checked before int() so huge digit strings are never converted
        if len(digits) > self.MAX_CONTENT_LENGTH_DIGITS:
            raise InvalidContentLength(
                f"Content-Length has too many digits ({len(digits)})", line=line
            )
        length = int(digits)

        if limit is not None and length > limit:
            raise InvalidContentLength(
                f"Content-Length {length} exceeds {limit} bytes", line=line
            )
        return length

    def _read_body(self) -> bool:
        deficit = self.request.remaining
        if deficit > 0:
            self.request.body.extend(self._source.read_up_to(deficit))

        if self.request.is_complete:
            return self._respond()
        return False

    def _respond(self) -> bool:
        self.state = ParserState.RESPONSE

        if not self._detached:
            self._emitter.emit(self.request)
            self.requests_completed += 1

        self.request.reset()
        self.state = ParserState.REQUEST_LINE
        return True

    # =========================================================================
    # DISCONNECT
    # =========================================================================

    def _on_disconnect(self) -> None:
        # a partially received request is dropped, never answered
        self._detached = True
        self.request.reset()
        self.state = ParserState.REQUEST_LINE
