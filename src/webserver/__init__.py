"""
=============================================================================
WEBSERVER - Minimal Static File Web Server
=============================================================================

Serves files from a directory over HTTP/1.1, one request per connection,
one thread per connection.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    webserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (web [port])
    ├── server.py            # WebServer: accept loop + dispatch
    ├── config.py            # ServerConfig dataclass
    ├── client.py            # fetch(): one request, whole response
    ├── errors.py            # Exception hierarchy
    ├── core/                # Sockets and connections
    │   ├── handle.py        # Move-only socket handles
    │   ├── listener.py      # Listener: accept() → Connection
    │   ├── connection.py    # send/receive over one connection
    │   └── thread_pool.py   # Optional bounded worker pool
    ├── http/                # Protocol
    │   ├── request.py       # Request-line parsing
    │   ├── response.py      # Response bytes + error pages
    │   └── status_codes.py  # The five statuses the server sends
    └── handlers/
        ├── connection.py    # Per-connection state machine
        └── static.py        # Files under the served root

=============================================================================
QUICK START
=============================================================================

    from webserver import WebServer, ServerConfig

    server = WebServer(ServerConfig(port=8080, root_dir="www"))
    server.run()

    # Or from the shell:
    web 8080 --root www

=============================================================================
"""

from .config import ServerConfig
from .server import WebServer
from .client import ClientResponse, fetch
from .handlers import ConnectionHandler, StaticFileResolver
from .http import HTTPRequest, HTTPResponse, HTTPStatus, build_response, parse_request

__version__ = "1.0.0"

__all__ = [
    "WebServer",
    "ServerConfig",
    "ConnectionHandler",
    "StaticFileResolver",
    "HTTPRequest",
    "HTTPResponse",
    "HTTPStatus",
    "build_response",
    "parse_request",
    "fetch",
    "ClientResponse",
    "__version__",
]
