"""
=============================================================================
WEB SERVER
=============================================================================

Ties the pieces together: a Listener accepting connections, and a
ConnectionHandler serving each one on its own thread.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │                        ┌─────────────────┐                          │
    │                        │    WebServer    │                          │
    │                        │  (accept loop)  │                          │
    │                        └────────┬────────┘                          │
    │                                 │ accept()                          │
    │                                 ▼                                   │
    │                        ┌─────────────────┐                          │
    │                        │    Listener     │                          │
    │                        └────────┬────────┘                          │
    │                                 │ Connection                        │
    │              ┌──────────────────┼──────────────────┐                │
    │              ▼                  ▼                  ▼                │
    │       ┌────────────┐     ┌────────────┐     ┌────────────┐          │
    │       │  thread 1  │     │  thread 2  │     │  thread N  │          │
    │       │  handler   │     │  handler   │     │  handler   │          │
    │       └─────┬──────┘     └─────┬──────┘     └─────┬──────┘          │
    │             ▼                  ▼                  ▼                 │
    │       StaticFileResolver (reads files under the served root)        │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
DISPATCH MODES
=============================================================================

    max_workers = None    One new daemon thread per accepted connection.
                          Concurrency is unbounded.

    max_workers = N       Connections go to a ThreadPool of N workers.
                          When all workers are busy and the queue is full,
                          submit() blocks and the accept loop pauses. The
                          kernel backlog absorbs the burst; nothing is
                          rejected.

=============================================================================
SHUTDOWN
=============================================================================

accept() wakes up every ``accept_poll_interval`` seconds to check the
running flag, so shutdown() (or SIGINT/SIGTERM) takes effect within one
interval. Connections already being served get up to SHUTDOWN_GRACE
seconds to finish before run() returns; handler threads still busy after
that are abandoned (they are daemon threads).

=============================================================================
"""

import logging
import signal
import socket
import threading
import time
from typing import Optional, Set, Tuple

from .config import ServerConfig
from .core.connection import Connection
from .core.listener import Listener
from .core.thread_pool import ThreadPool
from .errors import AcceptError
from .handlers.connection import ConnectionHandler


logger = logging.getLogger(__name__)


class WebServer:
    """
    Static file web server.

    Usage:
        server = WebServer(ServerConfig(port=8080, root_dir="www"))
        server.run()                      # blocks until SIGINT/SIGTERM

        # Or in the background (tests, embedding):
        thread = threading.Thread(
            target=server.run, kwargs={"install_signal_handlers": False}
        )
        thread.start()
        server.wait_until_ready()
        ...
        server.shutdown()
        thread.join()
    """

    # Seconds run() waits for in-flight handler threads during cleanup
    SHUTDOWN_GRACE = 5.0

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        handler: Optional[ConnectionHandler] = None,
    ):
        """
        Args:
            config: Server configuration. Defaults are used if omitted.
            handler: Connection handler. Built from ``config`` if omitted.

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self.handler = handler or ConnectionHandler.from_config(self.config)

        self._listener: Optional[Listener] = None
        self._pool: Optional[ThreadPool] = None
        self._threads: Set[threading.Thread] = set()
        self._threads_lock = threading.Lock()

        self._running = False
        self._ready = threading.Event()
        self._stopped = threading.Event()
        self._original_handlers = {}

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_connections(self) -> int:
        """Handler threads currently serving a connection (thread-per-connection mode)."""
        with self._threads_lock:
            return len(self._threads)

    @property
    def address(self) -> Tuple[str, int]:
        """
        The (host, port) actually bound. With ``port=0`` this is where the
        OS-chosen port can be read back.

        Raises:
            RuntimeError: If the server is not listening.
        """
        if self._listener is None or not self._listener.is_open:
            raise RuntimeError("Server is not listening")
        return self._listener.address

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is accepting. Returns False on timeout."""
        return self._ready.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until run() has returned. Returns False on timeout."""
        return self._stopped.wait(timeout)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, install_signal_handlers: bool = True) -> None:
        """
        Bind, listen and serve until shutdown() is called.

        Args:
            install_signal_handlers: Turn SIGINT/SIGTERM into a graceful
                shutdown. Ignored outside the main thread.

        Raises:
            ResolutionError, BindError, SocketCreationError, SocketOptionError:
                If the listening socket cannot be set up. Nothing is
                served in that case.
        """
        self._setup_logging()
        self._stopped.clear()

        try:
            self._listener = Listener.listen(
                self.config.host,
                self.config.port,
                backlog=self.config.backlog,
                connection_timeout=self.config.connection_timeout,
            )
        except Exception:
            self._stopped.set()
            raise

        self._listener.set_poll_interval(self.config.accept_poll_interval)

        if self.config.max_workers is not None:
            self._pool = ThreadPool(max_workers=self.config.max_workers)
            self._pool.start()

        self._running = True
        if install_signal_handlers:
            self._setup_signals()

        host, port = self._listener.address
        logger.info(f"Listening on {host}:{port}, serving {self.config.root_dir}")
        self._ready.set()

        try:
            self._accept_loop()
        finally:
            self._cleanup()

    serve_forever = run

    def shutdown(self) -> None:
        """
        Ask the accept loop to stop.

        Safe to call from any thread or a signal handler, and more than
        once. Returns immediately; use wait_for_shutdown() to block.
        """
        if self._running:
            logger.info("Shutting down server...")
        self._running = False

    # =========================================================================
    # ACCEPT LOOP
    # =========================================================================

    def _accept_loop(self) -> None:
        """
        ┌─────────────────────────────────────────────────────────────────┐
        │   while running:                                                │
        │       accept()                                                  │
        │         ├── socket.timeout → poll tick, check running again     │
        │         ├── AcceptError    → log, keep accepting                │
        │         ├── anything else  → log with traceback, keep accepting │
        │         └── Connection     → dispatch to a thread               │
        └─────────────────────────────────────────────────────────────────┘
        """
        while self._running:
            try:
                conn = self._listener.accept()
            except socket.timeout:
                continue
            except AcceptError as e:
                if not self._running:
                    break
                logger.error(f"Accept error: {e}")
                continue
            except Exception as e:
                if not self._running:
                    break
                logger.exception(f"Unexpected error accepting connection: {e}")
                continue

            self._dispatch(conn)

    def _dispatch(self, conn: Connection) -> None:
        """Hand ``conn`` to a thread. The handler owns and closes it from here."""
        if self._pool is not None:
            try:
                self._pool.submit(self.handler.handle, conn)
            except RuntimeError as e:
                logger.warning(f"[{conn.id}] Dropping connection: {e}")
                conn.close()
            return

        thread = threading.Thread(
            target=self._serve,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        with self._threads_lock:
            self._threads.add(thread)
        try:
            thread.start()
        except RuntimeError as e:
            # Thread limit reached
            logger.error(f"[{conn.id}] Could not start handler thread: {e}")
            self._forget(thread)
            conn.close()

    def _serve(self, conn: Connection) -> None:
        try:
            self.handler.handle(conn)
        finally:
            self._forget(threading.current_thread())

    def _forget(self, thread: threading.Thread) -> None:
        with self._threads_lock:
            self._threads.discard(thread)

    def _join_handlers(self, timeout: float) -> None:
        """Wait up to ``timeout`` seconds in total for handler threads to finish."""
        deadline = time.monotonic() + timeout
        with self._threads_lock:
            threads = list(self._threads)

        for thread in threads:
            thread.join(timeout=max(0.0, deadline - time.monotonic()))

        still_running = self.active_connections
        if still_running:
            logger.warning(f"Abandoning {still_running} unfinished connections")

    # =========================================================================
    # SETUP / TEARDOWN
    # =========================================================================

    def _setup_logging(self) -> None:
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("webserver").setLevel(level)

    def _setup_signals(self) -> None:
        """
        Turn SIGTERM (kill, docker stop) and SIGINT (Ctrl+C) into shutdown().

        Python only allows signal handlers in the main thread.
        """
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def _cleanup(self) -> None:
        self._running = False
        self._ready.clear()
        self._restore_signals()

        if self._listener is not None:
            self._listener.close()

        if self._pool is not None:
            self._pool.shutdown(wait=True)
        self._join_handlers(self.SHUTDOWN_GRACE)

        self._stopped.set()
        logger.info("Server stopped")
