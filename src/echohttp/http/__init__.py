"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Everything that knows what HTTP looks like on the wire:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST (request.py)                                                │
    │   HTTPRequest accumulator, Headers map, parse error hierarchy      │
    ├─────────────────────────────────────────────────────────────────────┤
    │ PARSER (parser.py)                                                  │
    │   RequestParser state machine: line → headers → body → response   │
    ├─────────────────────────────────────────────────────────────────────┤
    │ RESPONSE (response.py, page.py, status_codes.py)                    │
    │   HTTPResponse serialization, EchoResponder, HTML echo page        │
    └─────────────────────────────────────────────────────────────────────┘

This package does no I/O. Bytes come in through a byte source and go out
through a write callable, both supplied by the transport in core/.

=============================================================================
"""

from .request import (
    HTTPRequest,
    Headers,
    HTTPParseError,
    MalformedRequestLine,
    MalformedHeader,
    InvalidContentLength,
)
from .parser import RequestParser, ParserState, ByteSource, ResponseEmitter
from .response import HTTPResponse, EchoResponder, html_response, error_response
from .status_codes import HTTPStatus
from .page import render_echo_page, render_error_page

__all__ = [
    # Request accumulation
    "HTTPRequest",
    "Headers",
    # Parse errors
    "HTTPParseError",
    "MalformedRequestLine",
    "MalformedHeader",
    "InvalidContentLength",
    # Parsing
    "RequestParser",
    "ParserState",
    "ByteSource",
    "ResponseEmitter",
    # Responses
    "HTTPResponse",
    "EchoResponder",
    "html_response",
    "error_response",
    "HTTPStatus",
    "render_echo_page",
    "render_error_page",
]
