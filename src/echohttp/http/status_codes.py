"""
HTTP status codes used by the echo server.

Only the codes the server can actually send are listed. The enum extends
IntEnum so members compare equal to plain integers:

    >>> HTTPStatus.OK == 200
    True
    >>> HTTPStatus.BAD_REQUEST.phrase
    'Bad Request'
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """HTTP status codes and reason phrases."""

    OK = 200                     # Request answered with the echo page
    BAD_REQUEST = 400            # Malformed request (opt-in error response)

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line."""
        return _PHRASES[self]


_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
}
