"""
Minimal client for the web server.

Connects, sends one request line, and reads the response until the
server closes the connection:

    response = fetch("localhost", 8080, "/index.html")
    response.status_line   # "HTTP/1.1 200 OK"
    response.body          # b"<html>..."
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from .core.connection import Connection
from .errors import MalformedResponseError


logger = logging.getLogger(__name__)


@dataclass
class ClientResponse:
    """A response as read off the wire."""

    status_line: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def status_code(self) -> int:
        return int(self.status_line.split(" ", 2)[1])

    @property
    def reason(self) -> str:
        parts = self.status_line.split(" ", 2)
        return parts[2] if len(parts) > 2 else ""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


def parse_response(data: bytes) -> ClientResponse:
    """
    Split raw response bytes into status line, headers and body.

    Raises:
        MalformedResponseError: If there is no status line.
    """
    head, sep, body = data.partition(b"\r\n\r\n")
    if not sep:
        raise MalformedResponseError("Response has no header terminator")

    lines = head.decode("iso-8859-1").split("\r\n")
    status_line = lines[0]
    if not status_line.startswith("HTTP/") or len(status_line.split(" ", 2)) < 2:
        raise MalformedResponseError(f"Invalid status line: {status_line!r}")

    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()

    return ClientResponse(status_line=status_line, headers=headers, body=body)


def fetch(
    address: str,
    port: int,
    target: str = "/",
    method: str = "GET",
    timeout: Optional[float] = 10.0,
) -> ClientResponse:
    """
    Send ``method target HTTP/1.1`` and return the parsed response.

    Raises:
        ResolutionError, ConnectError: If no connection can be made.
        SendError, ReceiveError: On transfer failures.
        MalformedResponseError: If the reply is not an HTTP response.
    """
    request = f"{method} {target} HTTP/1.1\r\nHost: {address}:{port}\r\n\r\n"

    with Connection.connect(address, port, timeout=timeout) as conn:
        logger.debug(f"[{conn.id}] {method} {target} → {address}:{port}")
        conn.send_all(request.encode("utf-8"))
        data = conn.receive_all()

    return parse_response(data)
