"""
=============================================================================
CONNECTION HANDLER
=============================================================================

Serves exactly one request on one connection, start to finish. Runs in
its own thread (or pool worker) for every accepted connection.

=============================================================================
PER-CONNECTION STATE MACHINE
=============================================================================

    ┌────────────────┐
    │ ReceiveRequest │  receive_request(): read until \r\n\r\n or EOF
    └───────┬────────┘
            │ (nothing received → Closed, no response)
            ▼
    ┌────────────────┐  MalformedRequestError
    │  ParseRequest  │ ─────────────────────────────► 400 Bad Request ──┐
    └───────┬────────┘                                                  │
            ▼                                                           │
    ┌────────────────┐  method != GET                                   │
    │  CheckMethod   │ ─────────────────────────────► 501 Not Impl. ────┤
    └───────┬────────┘                                                  │
            ▼                                                           │
    ┌────────────────┐  ResourceNotFoundError ───────► 404 Not Found ───┤
    │  ResolveFile   │  FileReadError ───────────────► 500 Server Error ┤
    └───────┬────────┘                                                  │
            │ 200 OK + file bytes                                       │
            ▼                                                           │
    ┌────────────────┐ ◄────────────────────────────────────────────────┘
    │  SendResponse  │  send_all(); failure is logged, no retry
    └───────┬────────┘
            ▼
    ┌────────────────┐
    │     Closed     │  ALWAYS reached: `with conn:` releases the socket
    └────────────────┘

=============================================================================
FAILURE ISOLATION
=============================================================================

handle() is the top-level boundary for its connection. Any exception
that escapes the steps above is logged with its traceback and swallowed
there, so one misbehaving client can never stop the accept loop or
disturb another connection. Nothing is shared between connections: each
invocation has its own Connection, request and response.

=============================================================================
"""

import logging
from typing import Optional, Protocol

from ..config import ServerConfig
from ..core.connection import Connection, ConnectionState
from ..errors import FileReadError, MalformedRequestError, ResourceNotFoundError, SendError
from ..http.request import HTTPRequest, RequestParser
from ..http.response import (
    HTTPResponse,
    SERVER_NAME,
    SERVER_VERSION,
    bad_request,
    internal_error,
    not_found,
    not_implemented,
    ok,
)
from .static import StaticFileResolver


logger = logging.getLogger(__name__)


class FileResolver(Protocol):
    """Anything that can turn a request path into file bytes."""

    def read(self, path: str) -> bytes:
        """Raise ResourceNotFoundError or FileReadError on failure."""
        ...


class ConnectionHandler:
    """
    Handles one connection per call.

    Usage:
        handler = ConnectionHandler(StaticFileResolver("www"))
        handler.handle(conn)     # conn is closed when this returns
    """

    def __init__(
        self,
        resolver: FileResolver,
        buffer_size: int = 8192,
        index_document: str = "/index.html",
        server_name: str = SERVER_NAME,
        server_version: str = SERVER_VERSION,
        parser: Optional[RequestParser] = None,
    ):
        """
        Args:
            resolver: Reads served files.
            buffer_size: Maximum number of request bytes read.
            index_document: Path served for the target "/".
            server_name: Value of the ``server`` header and error-page footer.
            server_version: Version shown in the error-page footer.
            parser: Request parser (a default one if omitted).
        """
        self.resolver = resolver
        self.buffer_size = buffer_size
        self.index_document = index_document
        self.server_name = server_name
        self.server_version = server_version
        self.parser = parser or RequestParser()

    @classmethod
    def from_config(
        cls,
        config: ServerConfig,
        resolver: Optional[FileResolver] = None,
    ) -> "ConnectionHandler":
        """Build a handler serving ``config.root_dir`` unless a resolver is given."""
        return cls(
            resolver=resolver or StaticFileResolver(config.root_dir),
            buffer_size=config.buffer_size,
            index_document=config.index_document,
            server_name=config.server_name,
            server_version=config.server_version,
        )

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    def handle(self, conn: Connection) -> None:
        """
        Serve one request on ``conn`` and close it.

        Never raises: every failure ends as a log line and a closed
        connection.
        """
        with conn:
            try:
                self._process(conn)
            except Exception as e:
                logger.exception(f"[{conn.id}] Connection error: {e}")

    __call__ = handle

    def _process(self, conn: Connection) -> None:
        # ─────────────────────────────────────────────────────────────────
        # RECEIVE
        # ─────────────────────────────────────────────────────────────────
        raw = conn.receive_request(self.buffer_size)
        if not raw:
            logger.debug(f"[{conn.id}] Peer closed without sending a request")
            return

        logger.debug(f"[{conn.id}] request length: {len(raw)}")

        # ─────────────────────────────────────────────────────────────────
        # PARSE
        # ─────────────────────────────────────────────────────────────────
        try:
            request = self.parser.parse(raw)
        except MalformedRequestError as e:
            logger.warning(f"[{conn.id}] Malformed request from {conn.client_ip}: {e}")
            self._send(conn, None, self._error(bad_request))
            return

        logger.debug(
            f"[{conn.id}] request line: {request.method}, {request.target}, {request.version}"
        )

        # ─────────────────────────────────────────────────────────────────
        # METHOD CHECK + FILE RESOLUTION
        # ─────────────────────────────────────────────────────────────────
        conn.state = ConnectionState.PROCESSING
        response = self.respond(request)

        # ─────────────────────────────────────────────────────────────────
        # SEND
        # ─────────────────────────────────────────────────────────────────
        self._send(conn, request, response)

    # =========================================================================
    # RESPONSE SELECTION
    # =========================================================================

    def respond(self, request: HTTPRequest) -> HTTPResponse:
        """
        Choose the response for a parsed request.

        Only GET is supported; anything else is 501 and the resolver is
        never consulted.
        """
        if request.method != "GET":
            return self._error(not_implemented)

        path = self.resolve_path(request)

        try:
            content = self.resolver.read(path)
        except ResourceNotFoundError:
            return self._error(not_found)
        except FileReadError:
            return self._error(internal_error)

        return ok(content, server_name=self.server_name, server_version=self.server_version)

    def resolve_path(self, request: HTTPRequest) -> str:
        """The root target "/" maps to the index document; other paths are used as-is."""
        path = request.path
        return self.index_document if path == "/" else path

    def _error(self, factory) -> HTTPResponse:
        return factory(server_name=self.server_name, server_version=self.server_version)

    def _send(
        self,
        conn: Connection,
        request: Optional[HTTPRequest],
        response: HTTPResponse,
    ) -> None:
        request_line = request.request_line if request else "-"
        logger.info(f'{conn.client_ip} "{request_line}" {response.status}')

        try:
            conn.send_all(response.to_bytes())
        except SendError as e:
            logger.warning(f"[{conn.id}] Send failed: {e}")
