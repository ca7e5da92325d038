"""
=============================================================================
LISTENER
=============================================================================

The listener owns the bound, listening socket and turns each incoming
TCP handshake into a Connection.

    ┌───────────────────────┐
    │       Listener        │ ◄── Created once at startup
    │  (ListeningHandle)    │     Bound to host:port
    └───────────┬───────────┘     Never sends/receives data
                │
                │ accept()
    ┌───────────┼───────────────────────┐
    ▼           ▼                       ▼
 Connection  Connection             Connection
 (handed off to a worker; the listener keeps none of them)

=============================================================================
"""

import logging
from typing import Optional, Tuple

from .connection import Connection
from .handle import DEFAULT_BACKLOG, ListeningHandle


logger = logging.getLogger(__name__)


class Listener:
    """
    Accepts connections on a bound address.

    Usage:
        with Listener.listen("localhost", 8080) as listener:
            while True:
                conn = listener.accept()
                ...
    """

    def __init__(self, handle: ListeningHandle, connection_timeout: Optional[float] = None):
        """
        Args:
            handle: Listening handle to take over (moved, not shared).
            connection_timeout: Socket timeout applied to every accepted
                                connection. None blocks indefinitely.
        """
        self._handle = handle.move()
        self.connection_timeout = connection_timeout

    @classmethod
    def listen(
        cls,
        address: Optional[str],
        port: int,
        backlog: int = DEFAULT_BACKLOG,
        connection_timeout: Optional[float] = None,
    ) -> "Listener":
        """
        Bind and listen on ``address:port``.

        Raises:
            ResolutionError, SocketOptionError, BindError, SocketCreationError:
                see ListeningHandle.listen().
        """
        handle = ListeningHandle.listen(address, port, backlog)
        return cls(handle, connection_timeout=connection_timeout)

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port)."""
        return self._handle.address

    @property
    def is_open(self) -> bool:
        return self._handle.is_valid

    def set_poll_interval(self, interval: Optional[float]) -> None:
        """
        Limit how long accept() blocks.

        The server loop uses this to wake up periodically and notice a
        shutdown request; accept() then raises socket.timeout.
        """
        self._handle.set_accept_timeout(interval)

    def accept(self) -> Connection:
        """
        Block until a peer connects.

        Returns:
            A Connection owning the new socket.

        Raises:
            AcceptError: On an OS-level accept failure. The caller should
                         log it and keep accepting.
            socket.timeout: If a poll interval is set and expires.
        """
        handle, address = self._handle.accept()
        logger.debug(f"Accepted connection from {address[0]}:{address[1]}")
        return Connection(handle, address, timeout=self.connection_timeout)

    def close(self) -> None:
        self._handle.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
