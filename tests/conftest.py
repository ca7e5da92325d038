"""
pytest configuration and fixtures.
"""

import socket
import threading
from pathlib import Path
from typing import Generator

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from webserver import ServerConfig, WebServer


INDEX_BODY = b"hi"
ABOUT_BODY = b"<html><body>about</body></html>"
DOCS_BODY = b"docs index"


@pytest.fixture
def www_root(tmp_path: Path) -> Path:
    """A served directory with a few known files."""
    root = tmp_path / "www"
    root.mkdir()
    (root / "index.html").write_bytes(INDEX_BODY)
    (root / "about.html").write_bytes(ABOUT_BODY)
    (root / "docs").mkdir()
    (root / "docs" / "index.html").write_bytes(DOCS_BODY)
    (root / "empty").mkdir()
    # Outside the served root
    (tmp_path / "secret.txt").write_bytes(b"top secret")
    return root


@pytest.fixture
def config(www_root: Path) -> ServerConfig:
    """Test server configuration: loopback, OS-chosen port, fast shutdown."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        backlog=64,
        root_dir=str(www_root),
        accept_poll_interval=0.1,
        connection_timeout=5.0,
        log_level="WARNING",
    )


class RunningServer:
    """A WebServer running in a background thread."""

    def __init__(self, server: WebServer):
        self.server = server
        self._thread = threading.Thread(
            target=server.run,
            kwargs={"install_signal_handlers": False},
            daemon=True,
        )

    def start(self):
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")
        self.host, self.port = self.server.address

    def stop(self):
        self.server.shutdown()
        self._thread.join(timeout=5.0)

    def request(self, data: bytes) -> bytes:
        """Send raw bytes and read everything until the server closes."""
        return raw_request(self.host, self.port, data)


def raw_request(host: str, port: int, data: bytes, timeout: float = 5.0) -> bytes:
    with socket.create_connection((host, port), timeout=timeout) as sock:
        sock.sendall(data)
        chunks = []
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[RunningServer, None, None]:
    """A thread-per-connection server serving ``www_root``."""
    srv = RunningServer(WebServer(config))
    srv.start()
    yield srv
    srv.stop()


@pytest.fixture
def pooled_server(config: ServerConfig) -> Generator[RunningServer, None, None]:
    """A server capped at two worker threads."""
    config.max_workers = 2
    srv = RunningServer(WebServer(config))
    srv.start()
    yield srv
    srv.stop()


@pytest.fixture
def socket_pair() -> Generator[tuple, None, None]:
    """Two connected sockets; closed at teardown unless already owned elsewhere."""
    a, b = socket.socketpair()
    yield a, b
    for s in (a, b):
        try:
            s.close()
        except OSError:
            pass
