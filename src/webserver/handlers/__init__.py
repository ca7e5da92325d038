"""
Per-connection request handling and the files it serves.

    ConnectionHandler     receive → parse → check method → resolve → send
    StaticFileResolver    request path → bytes under the served root
"""

from .connection import ConnectionHandler, FileResolver
from .static import StaticFileResolver

__all__ = [
    "ConnectionHandler",
    "FileResolver",
    "StaticFileResolver",
]
