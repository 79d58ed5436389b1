"""
HTML rendering for the echo page.

The page reflects the parsed request back to the client: request line,
header table, body, and a small form that lets a browser send a POST.
Everything taken from the request is escaped, so a header value like
``<script>`` shows up as text instead of becoming markup.
"""

from html import escape

from .request import HTTPRequest
from .status_codes import HTTPStatus


FORM = (
    '<form method="post">'
    '<input name="name" type="text" />'
    '<button type="submit">SEND</button>'
    "</form>"
)


def _e(text: str) -> str:
    return escape(text, quote=True)


def render_echo_page(request: HTTPRequest) -> str:
    """Render the HTML document describing ``request``."""
    parts = [
        "<h1>Hello!</h1>",
        "<h1>How Are You</h1>",
        f"<p>Method: {_e(request.method)} Path: {_e(request.path)} "
        f"Protocol: {_e(request.version)}</p>",
        "<h2>Headers:</h2>",
        "<table><thead><tr><th>Name</th><th>Value</th></tr></thead><tbody>",
    ]
    for name, value in request.headers.items():
        parts.append(f"<tr><td>{_e(name)}</td><td>{_e(value)}</td></tr>")
    parts.append("</tbody></table>")

    if request.body:
        body_text = bytes(request.body).decode("utf-8", errors="replace")
        parts.append("<h2>Request-Body</h2>")
        parts.append(f"<pre>{_e(body_text)}</pre>")

    parts.append(FORM)
    return "".join(parts)


def render_error_page(status: HTTPStatus, message: str) -> str:
    """Render a minimal error document."""
    return f"<h1>{status.value} {_e(status.phrase)}</h1><p>{_e(message)}</p>"
