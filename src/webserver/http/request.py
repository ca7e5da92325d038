"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the raw bytes read from a connection into an HTTPRequest.

Only the REQUEST LINE is parsed. Headers and body are read off the wire
(so the client isn't cut off mid-send) but never interpreted.

=============================================================================
REQUEST LINE
=============================================================================

    GET /docs/index.html?lang=en HTTP/1.1\r\n
    ─┬─ ───────────┬──────────── ────┬───
     │             │                 │
   method        target           version
                   │
                   ├── path:  "/docs/index.html"
                   └── query: "lang=en"

The line ends at the first CRLF (a bare LF is tolerated, and a buffer
with no line ending at all is taken as one line). It is split on runs of
whitespace and must yield EXACTLY three tokens:

    "GET / HTTP/1.1"          → ("GET", "/", "HTTP/1.1")
    "GET /"                   → MalformedRequestError (400)
    ""                        → MalformedRequestError (400)
    "GET / HTTP/1.1 extra"    → MalformedRequestError (400)

Rejecting bad lines here means the handler can answer 400 Bad Request
instead of indexing into a too-short token list.

=============================================================================
"""

from dataclasses import dataclass
from urllib.parse import unquote

from ..errors import MalformedRequestError


@dataclass(frozen=True)
class HTTPRequest:
    """
    A parsed HTTP request line. Immutable.

    Attributes:
        method:  "GET", "POST", ... (case preserved)
        target:  Request target exactly as sent, query string included
        version: "HTTP/1.1", "HTTP/1.0", ...
    """

    method: str
    target: str
    version: str

    @property
    def path(self) -> str:
        """
        Target without the query string or fragment, percent-decoded.

        Repeated slashes are kept: "//about.html" is a path, not a host.
        """
        path = self.target.partition("#")[0].partition("?")[0]
        return unquote(path) or "/"

    @property
    def query(self) -> str:
        """Raw query string ("" if none)."""
        return self.target.partition("#")[0].partition("?")[2]

    @property
    def request_line(self) -> str:
        return f"{self.method} {self.target} {self.version}"


class RequestParser:
    """
    Parses raw request bytes into HTTPRequest objects.

    Usage:
        parser = RequestParser()
        request = parser.parse(b"GET /index.html HTTP/1.1\\r\\n\\r\\n")
        request.method   # "GET"
    """

    # Request lines longer than this are rejected outright
    MAX_LINE_LENGTH = 8192

    def __init__(self, max_line_length: int = MAX_LINE_LENGTH):
        self.max_line_length = max_line_length

    def parse(self, data: bytes) -> HTTPRequest:
        """
        Parse the request line of ``data``.

        Args:
            data: Raw bytes received from the client.

        Returns:
            The parsed request.

        Raises:
            MalformedRequestError: If the request line is missing or does
                                   not have exactly three tokens.
        """
        line = self._first_line(data)

        if len(line) > self.max_line_length:
            raise MalformedRequestError(f"Request line too long: {len(line)} bytes")

        tokens = line.decode("utf-8", errors="replace").split()
        if not tokens:
            raise MalformedRequestError("Empty request")
        if len(tokens) != 3:
            raise MalformedRequestError(
                f"Invalid request line: expected 3 tokens, got {len(tokens)}"
            )

        method, target, version = tokens
        return HTTPRequest(method=method, target=target, version=version)

    @staticmethod
    def _first_line(data: bytes) -> bytes:
        end = data.find(b"\r\n")
        if end == -1:
            end = data.find(b"\n")
        return data if end == -1 else data[:end]


def parse_request(data: bytes) -> HTTPRequest:
    """Parse ``data`` with a default RequestParser."""
    return RequestParser().parse(data)
