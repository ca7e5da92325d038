"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds the bytes sent back to the client.

=============================================================================
RESPONSE FORMAT
=============================================================================

Every response has the same shape - a status line, ONE fixed header
identifying the server, a blank line, and the body:

    ┌─────────────────────────────────────────────────────────────────────┐
    │    HTTP/1.1 200 OK\r\n                 ← status line                │
    │    server: web_server\r\n              ← the only header            │
    │    \r\n                                ← end of head                │
    │    <file bytes>                        ← body                       │
    └─────────────────────────────────────────────────────────────────────┘

There is no Content-Length: the connection is always closed after the
response, so the client reads the body until end-of-stream.

When no content is supplied (every error status) the body is a small
HTML page in the style of nginx's default error pages:

    ┌──────────────────────────────┐
    │        404 Not Found         │   <title> and <h1>
    │ ──────────────────────────── │   <hr>
    │        web_server 1.0        │   footer
    └──────────────────────────────┘

Everything here is pure: same inputs, same bytes, no I/O.

=============================================================================
"""

from dataclasses import dataclass
from typing import Optional, Union

from .status_codes import HTTPStatus


SERVER_NAME = "web_server"
SERVER_VERSION = "1.0"

Status = Union[HTTPStatus, str]
Content = Union[bytes, str]


ERROR_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta http-equiv="X-UA-Compatible" content="IE=edge" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>{status}</title>
  </head>
  <body>
    <h1 style="text-align: center">{status}</h1>
    <hr>
    <p style="text-align:center">{server_name} {server_version}</p>
  </body>
</html>"""


def _status_text(status: Status) -> str:
    if isinstance(status, HTTPStatus):
        return status.text
    return status


def _to_bytes(content: Content) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


def html_error_page(
    status: Status,
    server_name: str = SERVER_NAME,
    server_version: str = SERVER_VERSION,
) -> str:
    """
    Render the HTML page used as the body of content-less responses.

    Args:
        status: Status text such as "404 Not Found" (or an HTTPStatus).

    Returns:
        HTML document whose <title> and <h1> are the status text.
    """
    return ERROR_PAGE_TEMPLATE.format(
        status=_status_text(status),
        server_name=server_name,
        server_version=server_version,
    )


@dataclass(frozen=True)
class HTTPResponse:
    """
    A response ready to be serialized. Built fresh for every request.

    Attributes:
        status:      Status text after "HTTP/1.1 ", e.g. "200 OK"
        body:        Body bytes
        server_name: Value of the ``server`` header
    """

    status: str
    body: bytes = b""
    server_name: str = SERVER_NAME

    @property
    def status_line(self) -> str:
        return f"HTTP/1.1 {self.status}"

    @property
    def headers(self) -> dict:
        return {"server": self.server_name}

    def to_bytes(self) -> bytes:
        """
        Serialize for sending.

            HTTP/1.1 <status>\\r\\n
            server: <name>\\r\\n
            \\r\\n
            <body>
        """
        head = f"{self.status_line}\r\nserver: {self.server_name}\r\n\r\n"
        return head.encode("utf-8") + self.body


def make_response(
    status: Status,
    content: Optional[Content] = None,
    server_name: str = SERVER_NAME,
    server_version: str = SERVER_VERSION,
) -> HTTPResponse:
    """
    Build an HTTPResponse.

    Args:
        status: "200 OK", HTTPStatus.NOT_FOUND, ...
        content: Body. When None, the generated HTML error page is used.
    """
    text = _status_text(status)
    if content is None:
        content = html_error_page(text, server_name, server_version)
    return HTTPResponse(status=text, body=_to_bytes(content), server_name=server_name)


def build_response(
    status: Status,
    content: Optional[Content] = None,
    server_name: str = SERVER_NAME,
    server_version: str = SERVER_VERSION,
) -> bytes:
    """
    Build the response bytes in one step.

    Example:
        build_response("200 OK", "hello")
        # b"HTTP/1.1 200 OK\\r\\nserver: web_server\\r\\n\\r\\nhello"
    """
    return make_response(status, content, server_name, server_version).to_bytes()


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
#     return ok(file_bytes)
#     return not_found()
#
# Extra keyword arguments (server_name, server_version) are passed through.
# =============================================================================

def ok(content: Content, **kwargs) -> HTTPResponse:
    """200 OK with ``content`` as the body."""
    return make_response(HTTPStatus.OK, content, **kwargs)


def bad_request(**kwargs) -> HTTPResponse:
    return make_response(HTTPStatus.BAD_REQUEST, **kwargs)


def not_found(**kwargs) -> HTTPResponse:
    return make_response(HTTPStatus.NOT_FOUND, **kwargs)


def internal_error(**kwargs) -> HTTPResponse:
    return make_response(HTTPStatus.INTERNAL_SERVER_ERROR, **kwargs)


def not_implemented(**kwargs) -> HTTPResponse:
    return make_response(HTTPStatus.NOT_IMPLEMENTED, **kwargs)
