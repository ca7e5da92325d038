"""
=============================================================================
SOCKET HANDLES
=============================================================================

A handle is the single owner of one OS socket descriptor. Whoever holds
the handle is responsible for the descriptor; when the handle is closed
(explicitly, by ``with``, or when it is garbage collected) the descriptor
is released - exactly once.

=============================================================================
WHY NOT JUST PASS socket.socket AROUND?
=============================================================================

A socket.socket is freely shareable. Two parts of the program can hold
the same object, both believe they own it, and both call close():

    conn = server.accept()
    worker_a.use(conn)      # closes conn when done
    worker_b.use(conn)      # ... and so does this one

Worse, once the first close() runs the OS is free to hand the same integer
descriptor to the NEXT accepted client. A second close() on that number
then silently kills somebody else's connection.

Handles make ownership explicit:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       HANDLE OWNERSHIP RULES                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. ONE OWNER                                                      │
    │      └── A process-wide registry records which descriptors are     │
    │          owned. Wrapping an owned descriptor a second time raises  │
    │          OwnershipError.                                            │
    │                                                                      │
    │   2. MOVE, DON'T COPY                                               │
    │      └── handle.move() returns a new handle that owns the          │
    │          descriptor; the old one becomes empty (fd == -1).         │
    │      └── copy.copy(handle) raises TypeError.                       │
    │                                                                      │
    │   3. RELEASE EXACTLY ONCE                                           │
    │      └── close() on an empty handle does nothing, so closing a     │
    │          moved-from handle never touches the new owner's socket.   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    handle_a = ListeningHandle.listen("localhost", 8080)
                 │
                 │  handle_b = handle_a.move()
                 ▼
    handle_a.fd == -1          handle_b.fd == 5
    handle_a.close()  → no-op  handle_b.close() → close(5)

=============================================================================
ADDRESS RESOLUTION
=============================================================================

Both connect() and listen() go through getaddrinfo() with AF_UNSPEC, so
"localhost" may resolve to ::1 (IPv6) and 127.0.0.1 (IPv4). Candidates
are tried in the order the resolver returns them:

    listen():   socket() fails  → warn, next candidate
                setsockopt()    → SocketOptionError (fatal)
                bind() fails    → close, warn, next candidate
                none bound      → BindError

    connect():  socket() fails  → warn, next candidate
                connect() fails → ConnectError (first failure is reported)
                none created    → ConnectError

=============================================================================
"""

import os
import socket
import logging
import threading
from typing import Optional, Tuple

from ..errors import (
    AcceptError,
    BindError,
    ConnectError,
    InvalidDescriptorError,
    OwnershipError,
    ResolutionError,
    SocketCreationError,
    SocketOptionError,
)


logger = logging.getLogger(__name__)


INVALID_FD = -1
"""Sentinel descriptor for a handle that does not own anything."""

DEFAULT_BACKLOG = 10


# ─────────────────────────────────────────────────────────────────────────
# OWNERSHIP REGISTRY
# ─────────────────────────────────────────────────────────────────────────
# Python has no move-only types, so the single-owner rule is checked at
# runtime. Every descriptor owned by a live handle is in this set.

_registry_lock = threading.RLock()  # __del__ may close a handle while this thread holds it
_owned_fds: set[int] = set()


def _claim(fd: int) -> None:
    with _registry_lock:
        if fd in _owned_fds:
            raise OwnershipError(f"File descriptor {fd} is already owned by another handle")
        _owned_fds.add(fd)


def _close_and_release(sock: socket.socket, fd: int) -> None:
    # The OS may reuse ``fd`` as soon as it is closed; a concurrent _claim()
    # must not see the number still registered.
    with _registry_lock:
        try:
            sock.close()
        finally:
            _owned_fds.discard(fd)


def is_owned(fd: int) -> bool:
    """Check whether a live handle currently owns ``fd``."""
    with _registry_lock:
        return fd in _owned_fds


def is_valid_fd(fd: int) -> bool:
    """
    Check whether ``fd`` refers to an open descriptor.

    fstat() fails with EBADF for descriptors that are not open.
    """
    if fd < 0:
        return False
    try:
        os.fstat(fd)
    except OSError:
        return False
    return True


class SocketHandle:
    """
    Exclusive owner of one socket descriptor.

    Not used directly - see ListeningHandle and ConnectedHandle.

    Attributes:
        fd: The owned descriptor, or INVALID_FD (-1) when empty.
    """

    def __init__(self, sock: Optional[socket.socket] = None):
        """
        Take ownership of ``sock``.

        Args:
            sock: An open socket, or None for an empty handle.

        Raises:
            OwnershipError: If another live handle owns the same descriptor.
        """
        self._sock: Optional[socket.socket] = None
        self._fd = INVALID_FD

        if sock is not None:
            fd = sock.fileno()
            _claim(fd)
            self._sock = sock
            self._fd = fd

    @classmethod
    def from_descriptor(cls, fd: int) -> "SocketHandle":
        """
        Wrap a pre-existing descriptor.

        The descriptor must be open and must be a socket. After this call
        the handle owns it: closing the handle closes the descriptor.

        Raises:
            InvalidDescriptorError: If ``fd`` is not an open socket.
            OwnershipError: If a live handle already owns ``fd``.
        """
        if not is_valid_fd(fd):
            raise InvalidDescriptorError(
                f"File descriptor {fd} does not correspond to a valid socket"
            )

        # Check before creating the socket object: socket.socket(fileno=...)
        # closes the descriptor when collected, which would break the owner.
        if is_owned(fd):
            raise OwnershipError(f"File descriptor {fd} is already owned by another handle")

        try:
            sock = socket.socket(fileno=fd)
        except OSError as e:
            raise InvalidDescriptorError(
                f"File descriptor {fd} does not correspond to a valid socket: {e}"
            ) from e

        try:
            return cls(sock)
        except OwnershipError:
            sock.detach()  # lost a race; leave the descriptor to its owner
            raise

    # =========================================================================
    # OWNERSHIP
    # =========================================================================

    @property
    def fd(self) -> int:
        """The owned descriptor, or -1."""
        return self._fd

    @property
    def is_valid(self) -> bool:
        """True while this handle owns a descriptor."""
        return self._sock is not None

    @property
    def socket(self) -> socket.socket:
        """
        The underlying socket object.

        Raises:
            InvalidDescriptorError: If the handle is empty (closed or moved-from).
        """
        if self._sock is None:
            raise InvalidDescriptorError("Handle does not own a socket")
        return self._sock

    def move(self) -> "SocketHandle":
        """
        Transfer ownership to a new handle.

        The returned handle owns the descriptor; this handle is left empty.
        Moving an empty handle returns another empty handle.
        """
        moved = type(self)()
        moved._sock, moved._fd = self._sock, self._fd
        self._sock, self._fd = None, INVALID_FD
        return moved

    def assign(self, other: "SocketHandle") -> "SocketHandle":
        """
        Move-assign: release what this handle owns, then take ``other``'s descriptor.

        Self-assignment is a no-op.

        Returns:
            Self, for chaining.
        """
        if other is self:
            return self
        if not isinstance(other, type(self)):
            raise TypeError(
                f"Cannot assign {type(other).__name__} to {type(self).__name__}"
            )

        self.close()
        self._sock, self._fd = other._sock, other._fd
        other._sock, other._fd = None, INVALID_FD
        return self

    def __copy__(self):
        raise TypeError(f"{type(self).__name__} cannot be copied; use move()")

    def __deepcopy__(self, memo):
        raise TypeError(f"{type(self).__name__} cannot be copied; use move()")

    def __reduce__(self):
        raise TypeError(f"{type(self).__name__} cannot be pickled")

    # =========================================================================
    # RELEASE
    # =========================================================================

    def close(self) -> None:
        """Release the descriptor. Safe to call any number of times."""
        sock, fd = self._sock, self._fd
        if sock is None:
            return

        self._sock, self._fd = None, INVALID_FD
        _close_and_release(sock, fd)

    def __del__(self):
        # Attributes may be missing if __init__ raised
        if getattr(self, "_sock", None) is not None:
            self.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(fd={self._fd})"


class ConnectedHandle(SocketHandle):
    """Handle for an established, bidirectional byte stream to a peer."""

    @classmethod
    def connect(cls, address: str, port: int) -> "ConnectedHandle":
        """
        Connect to ``address:port``.

        Args:
            address: Hostname or IP literal (IPv4 or IPv6).
            port: TCP port.

        Returns:
            Handle owning the connected socket.

        Raises:
            ResolutionError: If the address cannot be resolved.
            ConnectError: If the connection attempt fails.
        """
        try:
            candidates = socket.getaddrinfo(address, port, socket.AF_UNSPEC, socket.SOCK_STREAM)
        except socket.gaierror as e:
            raise ResolutionError(f"gai error: {e}") from e

        for family, socktype, proto, _canonname, sockaddr in candidates:
            try:
                sock = socket.socket(family, socktype, proto)
            except OSError as e:
                logger.warning(f"client socket error: {e}")
                continue

            try:
                sock.connect(sockaddr)
            except OSError as e:
                sock.close()
                raise ConnectError(f"connect error: {e}") from e

            return cls(sock)

        raise ConnectError(f"Failed to connect to {address}:{port}")

    @property
    def peer_address(self) -> Tuple[str, int]:
        """The remote (host, port)."""
        return self.socket.getpeername()[:2]


class ListeningHandle(SocketHandle):
    """Handle for a socket bound to an address and accepting connections."""

    @classmethod
    def listen(
        cls,
        address: Optional[str],
        port: int,
        backlog: int = DEFAULT_BACKLOG,
    ) -> "ListeningHandle":
        """
        Bind to ``address:port`` and start listening.

        Args:
            address: Host to bind to. None binds the wildcard address.
            port: TCP port; 0 lets the OS pick a free one.
            backlog: Maximum number of pending, not-yet-accepted connections.

        Raises:
            ResolutionError: If the address cannot be resolved.
            SocketOptionError: If SO_REUSEADDR cannot be set.
            BindError: If no resolved candidate could be bound.
            SocketCreationError: If listen() fails.
        """
        try:
            candidates = socket.getaddrinfo(
                address, port, socket.AF_UNSPEC, socket.SOCK_STREAM, 0, socket.AI_PASSIVE
            )
        except socket.gaierror as e:
            raise ResolutionError(f"gai error: {e}") from e

        sock = None
        for family, socktype, proto, _canonname, sockaddr in candidates:
            try:
                candidate = socket.socket(family, socktype, proto)
            except OSError as e:
                logger.warning(f"server socket error: {e}")
                continue

            # Avoid "Address already in use" while old connections sit in TIME_WAIT
            try:
                candidate.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            except OSError as e:
                candidate.close()
                raise SocketOptionError(f"setsockopt error: {e}") from e

            try:
                candidate.bind(sockaddr)
            except OSError as e:
                candidate.close()
                logger.warning(f"bind error: {e}, retrying...")
                continue

            sock = candidate
            break

        if sock is None:
            raise BindError(f"Failed to bind socket to {address}:{port}")

        try:
            sock.listen(backlog)
        except OSError as e:
            sock.close()
            raise SocketCreationError(f"listen error: {e}") from e

        return cls(sock)

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); useful when listening on port 0."""
        return self.socket.getsockname()[:2]

    def set_accept_timeout(self, timeout: Optional[float]) -> None:
        """Make accept() give up after ``timeout`` seconds (None blocks forever)."""
        self.socket.settimeout(timeout)

    def accept(self) -> Tuple[ConnectedHandle, Tuple[str, int]]:
        """
        Wait for a peer to connect.

        Returns:
            (handle owning the new connection, peer (host, port))

        Raises:
            socket.timeout: If an accept timeout is set and expires.
            AcceptError: On any other OS failure, or if the new descriptor
                         is still registered to another handle.
        """
        try:
            client, address = self.socket.accept()
        except socket.timeout:
            raise
        except OSError as e:
            raise AcceptError(f"accept error: {e}") from e

        try:
            handle = ConnectedHandle(client)
        except OwnershipError as e:
            client.close()
            raise AcceptError(f"accept error: {e}") from e

        return handle, address[:2]


__all__ = [
    "INVALID_FD",
    "DEFAULT_BACKLOG",
    "SocketHandle",
    "ConnectedHandle",
    "ListeningHandle",
    "is_valid_fd",
    "is_owned",
]
