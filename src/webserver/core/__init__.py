"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The low-level networking layer: who owns which socket, how connections
are accepted, and how bytes move over them.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          SOCKET HANDLES                              │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • One owner per OS descriptor, released exactly once               │
    │  • ListeningHandle: resolve, bind, listen, accept                   │
    │  • ConnectedHandle: resolve, connect                                │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                            LISTENER                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Owns the listening handle                                        │
    │  • accept() → Connection                                            │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                           CONNECTION                                 │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Owns one connected handle                                        │
    │  • send/receive (single attempt), send_all/receive_request (loop)   │
    │  • Graceful close                                                   │
    └─────────────────────────────────────────────────────────────────────┘

ThreadPool is the optional bounded alternative to thread-per-connection.

=============================================================================
"""

from .handle import (
    INVALID_FD,
    SocketHandle,
    ConnectedHandle,
    ListeningHandle,
    is_valid_fd,
)
from .connection import Connection, ConnectionState
from .listener import Listener
from .thread_pool import ThreadPool

__all__ = [
    "INVALID_FD",
    "SocketHandle",       # Base owning wrapper around one descriptor
    "ConnectedHandle",    # Established stream to a peer
    "ListeningHandle",    # Bound, accept-ready socket
    "is_valid_fd",
    "Connection",         # send/receive over a connected handle
    "ConnectionState",
    "Listener",           # accept() → Connection
    "ThreadPool",         # Optional cap on concurrent connections
]
