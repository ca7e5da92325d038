"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the server can report has its own exception class. Callers
catch exactly the kind they can act on and let the rest propagate to the
nearest boundary that can (the per-connection handler, or the caller that
tried to open a socket).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        EXCEPTION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   WebServerError                                                    │
    │   ├── SocketError                 OS networking failures            │
    │   │   ├── ResolutionError         getaddrinfo() failed              │
    │   │   ├── SocketCreationError     socket()/listen() failed          │
    │   │   │   └── SocketOptionError   setsockopt() failed               │
    │   │   ├── BindError               no candidate address would bind   │
    │   │   ├── ConnectError            connect() failed                  │
    │   │   ├── AcceptError             accept() failed                   │
    │   │   ├── SendError               send() failed                     │
    │   │   ├── ReceiveError            recv() failed                     │
    │   │   └── InvalidDescriptorError  fd is closed / not a socket       │
    │   │       └── OwnershipError      fd already owned by a handle      │
    │   ├── FileResolutionError         served-content lookup failures    │
    │   │   ├── ResourceNotFoundError   → 404 Not Found                   │
    │   │   └── FileReadError           → 500 Internal Server Error       │
    │   ├── MalformedRequestError       → 400 Bad Request                 │
    │   └── MalformedResponseError      client read a non-HTTP reply      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The original OSError is always chained (``raise ... from e``) so the errno
is still visible in tracebacks.

=============================================================================
"""


class WebServerError(Exception):
    """Base class for all errors raised by this package."""


# =============================================================================
# SOCKET ERRORS
# =============================================================================

class SocketError(WebServerError):
    """An OS-level networking operation failed."""


class ResolutionError(SocketError):
    """The address/port pair could not be resolved to any endpoint."""


class SocketCreationError(SocketError):
    """A socket could not be created or put into the listening state."""


class SocketOptionError(SocketCreationError):
    """A socket option (e.g. SO_REUSEADDR) could not be set."""


class BindError(SocketError):
    """Every resolved candidate address failed to bind."""


class ConnectError(SocketError):
    """The connection to the peer could not be established."""


class AcceptError(SocketError):
    """accept() on the listening socket failed."""


class SendError(SocketError):
    """Writing to the connection failed."""


class ReceiveError(SocketError):
    """Reading from the connection failed."""


class InvalidDescriptorError(SocketError):
    """A descriptor does not refer to an open socket."""


class OwnershipError(InvalidDescriptorError):
    """
    A descriptor is already owned by another live handle.

    Raised instead of silently creating a second owner, which would lead
    to the descriptor being closed twice.
    """


# =============================================================================
# FILE RESOLUTION ERRORS
# =============================================================================

class FileResolutionError(WebServerError):
    """Looking up served content failed."""


class ResourceNotFoundError(FileResolutionError):
    """The requested path does not exist under the served root."""


class FileReadError(FileResolutionError):
    """The path exists but could not be read."""


# =============================================================================
# PROTOCOL ERRORS
# =============================================================================

class MalformedRequestError(WebServerError):
    """
    Raised when the HTTP request line cannot be parsed.

    Carries the HTTP status code that should be returned to the client,
    the same way the parser's callers need it:

        400 Bad Request - request line is empty or not METHOD SP TARGET SP VERSION
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(WebServerError):
    """A reply read by the client is not an HTTP response."""
