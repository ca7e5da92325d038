"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one connected socket handle with the send/receive
primitives the HTTP layer needs.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A client that sends

    GET /index.html HTTP/1.1\r\n
    Host: localhost\r\n
    \r\n

may be read by the server as

    First recv():  "GET /ind"
    Second recv(): "ex.html HTTP/1.1\r\nHost: localhost\r\n\r\n"

and a single send() of a 50 KB file may only write part of it.

That is why there are two levels of API here:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SINGLE-SHOT vs. COMPLETE                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   send(data)            ONE write() attempt                         │
    │                         returns how many bytes actually went out    │
    │                                                                      │
    │   send_all(data)        loop until every byte is written            │
    │                         retry when interrupted by a signal          │
    │                                                                      │
    │   receive(max_size)     ONE read() attempt                          │
    │                         returns (data, count); count == 0 means     │
    │                         the peer closed or sent nothing             │
    │                                                                      │
    │   receive_request(max)  loop until the blank line ending the        │
    │                         request head (\r\n\r\n) arrives, the peer   │
    │                         closes, or max bytes are buffered           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The connection handler always uses the complete variants.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► PROCESSING ──────► WRITING
     │             │                 │                 │
     └─────────────┴────────┬────────┴─────────────────┘
                            ▼
                          CLOSED

There is no keep-alive: every connection carries exactly one request
and is closed afterwards, whichever path the handler took.

=============================================================================
"""

import socket
import time
import logging
import uuid
from enum import Enum
from typing import Optional, Tuple

from ..errors import ReceiveError, SendError
from .handle import ConnectedHandle


logger = logging.getLogger(__name__)


HEADER_TERMINATOR = b"\r\n\r\n"

DEFAULT_BUFFER_SIZE = 8192


class ConnectionState(Enum):
    """
    Connection lifecycle states.

    Used for logging and to make the handler's progress visible in tests.
    """
    NEW = "new"                # Just accepted, nothing read yet
    READING = "reading"        # Reading the request
    PROCESSING = "processing"  # Request parsed, resolving the response
    WRITING = "writing"        # Sending the response
    CLOSED = "closed"          # Socket released


class Connection:
    """
    One client connection.

    Owns exactly one ConnectedHandle. Closing the connection (explicitly
    or by leaving a ``with`` block) closes the handle.

    Attributes:
        id: Short unique identifier used in log lines.
        address: Peer (ip, port).
        state: Current ConnectionState.
        created_at: Timestamp when the connection was wrapped.
    """

    def __init__(
        self,
        handle: ConnectedHandle,
        address: Tuple[str, int] = ("", 0),
        timeout: Optional[float] = None,
    ):
        """
        Wrap a connected handle.

        Args:
            handle: The handle to take over. It is moved into the
                    connection; the caller's handle is left empty.
            address: Peer address as returned by accept().
            timeout: Per-operation socket timeout in seconds. None (the
                     default) blocks indefinitely.
        """
        self._handle = handle.move()
        self.address = address
        self.id = str(uuid.uuid4())[:8]
        self.state = ConnectionState.NEW
        self.created_at = time.time()

        sock = self._handle.socket
        sock.setblocking(True)
        if timeout is not None:
            sock.settimeout(timeout)

    @classmethod
    def connect(cls, address: str, port: int, timeout: Optional[float] = None) -> "Connection":
        """Open a client connection to ``address:port``."""
        handle = ConnectedHandle.connect(address, port)
        return cls(handle, handle.peer_address, timeout=timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def handle(self) -> ConnectedHandle:
        """The owned handle (empty once the connection is closed)."""
        return self._handle

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # SINGLE-SHOT PRIMITIVES
    # =========================================================================

    def send(self, data: bytes) -> int:
        """
        Perform one write attempt.

        Returns:
            Number of bytes actually written - possibly fewer than len(data).

        Raises:
            SendError: On an OS-level write failure.
        """
        try:
            return self._handle.socket.send(data)
        except OSError as e:
            raise SendError(f"send error: {e}") from e

    def receive(self, max_size: int = DEFAULT_BUFFER_SIZE) -> Tuple[bytes, int]:
        """
        Perform one read attempt of at most ``max_size`` bytes.

        Returns:
            (data, count). Trailing NUL padding is trimmed from data;
            count is the number of bytes the OS returned. A count of 0
            means the peer closed the connection or sent nothing.

        Raises:
            ReceiveError: On an OS-level read failure.
        """
        try:
            data = self._handle.socket.recv(max_size)
        except OSError as e:
            raise ReceiveError(f"recv error: {e}") from e

        return data.rstrip(b"\x00"), len(data)

    # =========================================================================
    # COMPLETE TRANSFERS
    # =========================================================================

    def send_all(self, data: bytes) -> int:
        """
        Write every byte of ``data``.

        Loops over send() because the kernel may accept only part of the
        buffer at a time. Interrupted writes are retried.

        Returns:
            Total bytes written (always len(data) on success).

        Raises:
            SendError: On an OS-level write failure.
        """
        self.state = ConnectionState.WRITING
        view = memoryview(data)
        sent = 0

        while sent < len(data):
            try:
                sent += self._handle.socket.send(view[sent:])
            except InterruptedError:
                continue
            except OSError as e:
                raise SendError(f"send error after {sent} bytes: {e}") from e

        return sent

    def receive_request(self, max_size: int = DEFAULT_BUFFER_SIZE) -> bytes:
        """
        Read one request head from the peer.

        ┌─────────────────────────────────────────────────────────────────┐
        │                 receive_request() Flow                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   while \r\n\r\n not in buffer:                                  │
        │       │                                                          │
        │       ├── buffer full (max_size)?  → stop, return what we have  │
        │       │                                                          │
        │       ├── recv()                                                 │
        │       │     ├── interrupted        → retry                       │
        │       │     ├── 0 bytes            → peer closed, stop           │
        │       │     └── n bytes            → append                      │
        │       │                                                          │
        │   return buffer                                                  │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Anything after the head (a request body) is left unread; only the
        request line is used.

        Returns:
            The bytes received, possibly empty if the peer closed at once.

        Raises:
            ReceiveError: On an OS-level read failure.
        """
        self.state = ConnectionState.READING
        buffer = b""

        while HEADER_TERMINATOR not in buffer and len(buffer) < max_size:
            try:
                chunk = self._handle.socket.recv(max_size - len(buffer))
            except InterruptedError:
                continue
            except OSError as e:
                raise ReceiveError(f"recv error: {e}") from e

            if not chunk:
                break  # Peer closed
            buffer += chunk

        return buffer.rstrip(b"\x00")

    def receive_all(self, chunk_size: int = DEFAULT_BUFFER_SIZE) -> bytes:
        """
        Read until the peer closes its side.

        Used on the client side: responses carry no Content-Length, so
        end-of-stream is the end of the body.

        Raises:
            ReceiveError: On an OS-level read failure.
        """
        self.state = ConnectionState.READING
        chunks = []

        while True:
            try:
                chunk = self._handle.socket.recv(chunk_size)
            except InterruptedError:
                continue
            except OSError as e:
                raise ReceiveError(f"recv error: {e}") from e

            if not chunk:
                break
            chunks.append(chunk)

        return b"".join(chunks)

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR): send FIN so the client sees end-of-response
        2. Drain briefly: discard anything the client still sends (an
           unread request body would otherwise make the kernel answer
           with RST and the client could lose the response)
        3. Release the handle

        Idempotent.
        """
        if self.state == ConnectionState.CLOSED:
            return

        sock = self._handle.socket if self._handle.is_valid else None
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_WR)
            except OSError:
                pass  # Peer already gone

            try:
                sock.settimeout(0.5)
                while sock.recv(1024):
                    pass
            except OSError:
                pass  # Includes socket.timeout

        self._handle.close()
        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed")

    def __enter__(self):
        """
        Allows:

            with conn:
                data = conn.receive_request()
                conn.send_all(response)
            # closed here, even if an exception escaped
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.id!r}, address={self.address!r}, "
            f"state={self.state.value}, fd={self._handle.fd})"
        )
