"""
=============================================================================
HTTP REQUEST ACCUMULATOR
=============================================================================

The parser builds a request piece by piece as bytes trickle in. This
module holds the object being built and the errors raised when the bytes
turn out not to be HTTP at all.

    ┌─────────────────────────────────────────────────────────────────┐
    │  REQUEST LINE   GET /x HTTP/1.1\\r\\n                              │
    │                 └─┬─┘ └┬┘ └──┬───┘                               │
    │                method path version       ──► HTTPRequest.method  │
    │                                                 .path, .version  │
    ├─────────────────────────────────────────────────────────────────┤
    │  HEADERS        Host: a\\r\\n                ──► .headers          │
    │                 Content-Length: 5\\r\\n      ──► .content_length   │
    │                 \\r\\n                       (end of headers)     │
    ├─────────────────────────────────────────────────────────────────┤
    │  BODY           abcde                    ──► .body (grows until  │
    │                                              len == 5)           │
    └─────────────────────────────────────────────────────────────────┘

One HTTPRequest lives per connection. After the response has been sent
it is reset() in place and reused for the next request.

=============================================================================
"""

import collections.abc
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple


class HTTPParseError(Exception):
    """
    Raised when incoming bytes cannot be parsed as an HTTP request.

    All parse errors are fatal to the connection. The status code is only
    used when the server is configured to answer with an error response
    before closing.
    """

    def __init__(self, message: str, line: str = "", status_code: int = 400):
        super().__init__(message)
        self.line = line
        self.status_code = status_code


class MalformedRequestLine(HTTPParseError):
    """The request line does not consist of exactly three tokens."""


class MalformedHeader(HTTPParseError):
    """A header line does not match ``name: value``."""


class InvalidContentLength(HTTPParseError):
    """The Content-Length value is not a base-10 non-negative integer."""


class Headers(collections.abc.MutableMapping):
    """
    Header map with case-insensitive lookup.

    Names are stored as the client wrote them; a repeated header replaces
    the earlier value and spelling:

        >>> h = Headers()
        >>> h["content-type"] = "text/plain"
        >>> h["Content-Type"] = "text/html"
        >>> h["CONTENT-TYPE"]
        'text/html'
        >>> list(h)
        ['Content-Type']
    """

    def __init__(self, *args, **kwargs):
        self._fields: Dict[str, Tuple[str, str]] = {}
        self.update(*args, **kwargs)

    @staticmethod
    def normalize_key(name: str) -> str:
        return name.lower()

    def __getitem__(self, name: str) -> str:
        return self._fields[self.normalize_key(name)][1]

    def __setitem__(self, name: str, value: str) -> None:
        self._fields[self.normalize_key(name)] = (name, value)

    def __delitem__(self, name: str) -> None:
        del self._fields[self.normalize_key(name)]

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"

    def clear(self) -> None:
        self._fields.clear()


@dataclass
class HTTPRequest:
    """
    The request currently being assembled on a connection.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:          Request method token, stored verbatim ("GET")
        path:            Request target token, stored verbatim ("/x")
        version:         Protocol token, stored verbatim ("HTTP/1.1")
        headers:         Headers map (case-insensitive lookup)
        content_length:  Declared body length, 0 when absent
        body:            Body bytes received so far

    =========================================================================
    INVARIANT
    =========================================================================

    len(body) never exceeds content_length. The parser only ever asks the
    byte source for the remaining deficit, so the extra bytes of a
    following request stay in the buffer.

    =========================================================================
    """

    method: str = ""
    path: str = ""
    version: str = ""
    headers: Headers = field(default_factory=Headers)
    content_length: int = 0
    body: bytearray = field(default_factory=bytearray, repr=False)

    @property
    def remaining(self) -> int:
        """Number of body bytes still expected."""
        return self.content_length - len(self.body)

    @property
    def is_complete(self) -> bool:
        """True when the whole declared body has arrived."""
        return len(self.body) == self.content_length

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        return self.headers.get(name, default)

    def reset(self) -> None:
        """Return to the empty state before the next request is parsed."""
        self.method = ""
        self.path = ""
        self.version = ""
        self.headers.clear()
        self.content_length = 0
        self.body = bytearray()
