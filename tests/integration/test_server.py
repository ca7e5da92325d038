"""
End-to-end tests: a real WebServer on a loopback port, real sockets.
"""

import socket
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from webserver import ServerConfig, WebServer, fetch
from webserver.errors import AcceptError, BindError, OwnershipError


class TestServing:
    def test_get_root(self, running_server):
        response = running_server.request(b"GET / HTTP/1.1\r\nHost: x\r\n\r\n")
        assert response == b"HTTP/1.1 200 OK\r\nserver: web_server\r\n\r\nhi"

    def test_get_file(self, running_server):
        response = running_server.request(b"GET /about.html HTTP/1.1\r\n\r\n")

        assert response.startswith(b"HTTP/1.1 200 OK\r\n")
        assert response.endswith(b"<html><body>about</body></html>")

    def test_not_found(self, running_server):
        response = running_server.request(b"GET /nope.html HTTP/1.1\r\n\r\n")

        assert response.startswith(b"HTTP/1.1 404 Not Found\r\nserver: web_server\r\n\r\n")
        assert b"<title>404 Not Found</title>" in response

    def test_not_implemented(self, running_server):
        response = running_server.request(b"DELETE / HTTP/1.1\r\n\r\n")
        assert response.startswith(b"HTTP/1.1 501 Not Implemented\r\n")

    def test_bad_request(self, running_server):
        response = running_server.request(b"GET /\r\n\r\n")
        assert response.startswith(b"HTTP/1.1 400 Bad Request\r\n")

    def test_traversal(self, running_server):
        response = running_server.request(b"GET /../secret.txt HTTP/1.1\r\n\r\n")

        assert response.startswith(b"HTTP/1.1 404 Not Found\r\n")
        assert b"top secret" not in response

    @pytest.mark.parametrize(
        "target, body",
        [
            (b"//about.html", b"<html><body>about</body></html>"),
            (b"//docs/index.html", b"docs index"),
            (b"/docs//index.html", b"docs index"),
        ],
    )
    def test_repeated_slashes(self, running_server, target: bytes, body: bytes):
        response = running_server.request(b"GET " + target + b" HTTP/1.1\r\n\r\n")

        assert response.startswith(b"HTTP/1.1 200 OK\r\n")
        assert response.endswith(b"\r\n\r\n" + body)

    def test_large_file(self, running_server, www_root):
        data = bytes(range(256)) * 8192  # 2 MB
        (www_root / "big.bin").write_bytes(data)

        response = running_server.request(b"GET /big.bin HTTP/1.1\r\n\r\n")

        assert response.split(b"\r\n\r\n", 1)[1] == data

    def test_client_that_sends_nothing(self, running_server):
        with socket.create_connection((running_server.host, running_server.port), timeout=5) as s:
            s.shutdown(socket.SHUT_WR)
            assert s.recv(1024) == b""

        # The server is unaffected
        assert running_server.request(b"GET / HTTP/1.1\r\n\r\n").endswith(b"hi")


class TestConcurrency:
    def test_concurrent_requests_do_not_mix(self, running_server, www_root):
        for i in range(20):
            (www_root / f"f{i}.txt").write_bytes(f"file-{i}".encode() * 100)

        def get(i):
            return i, running_server.request(f"GET /f{i}.txt HTTP/1.1\r\n\r\n".encode())

        with ThreadPoolExecutor(max_workers=20) as executor:
            results = list(executor.map(get, range(20)))

        for i, response in results:
            assert response.split(b"\r\n\r\n", 1)[1] == f"file-{i}".encode() * 100

    def test_slow_client_does_not_block_others(self, running_server):
        # Connect and send half a request line, then stall
        slow = socket.create_connection((running_server.host, running_server.port), timeout=5)
        try:
            slow.sendall(b"GET /ab")
            response = running_server.request(b"GET / HTTP/1.1\r\n\r\n")
            assert response.endswith(b"hi")
        finally:
            slow.close()

    def test_back_to_back_connections(self, running_server):
        # Each request reuses the descriptor number the previous one freed
        for _ in range(50):
            response = running_server.request(b"GET /about.html HTTP/1.1\r\n\r\n")
            assert response.startswith(b"HTTP/1.1 200 OK\r\n")

        assert running_server.server.is_running

    def test_worker_pool(self, pooled_server, www_root):
        def get(_):
            return pooled_server.request(b"GET / HTTP/1.1\r\n\r\n")

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(get, range(16)))

        assert all(r.endswith(b"\r\n\r\nhi") for r in results)


class TestLifecycle:
    def test_address_and_ready(self, running_server):
        host, port = running_server.server.address

        assert host == "127.0.0.1"
        assert port > 0
        assert running_server.server.is_running

    def test_shutdown_stops_accepting(self, config):
        server = WebServer(config)
        thread = threading.Thread(target=server.run, kwargs={"install_signal_handlers": False})
        thread.start()
        assert server.wait_until_ready(timeout=5)
        host, port = server.address

        server.shutdown()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert server.wait_for_shutdown(timeout=0)
        with pytest.raises(RuntimeError):
            server.address
        with pytest.raises(OSError):
            socket.create_connection((host, port), timeout=1).close()

    def test_bind_failure_raises(self, config):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            config.port = blocker.getsockname()[1]

            with pytest.raises(BindError):
                WebServer(config).run(install_signal_handlers=False)
        finally:
            blocker.close()

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            WebServer(ServerConfig(port=70000))

    def test_accept_error_does_not_stop_loop(self, config, monkeypatch):
        from webserver.core.listener import Listener

        real_accept = Listener.accept
        calls = {"n": 0}

        def flaky_accept(self):
            calls["n"] += 1
            if calls["n"] == 1:
                raise AcceptError("accept error: too many open files")
            return real_accept(self)

        monkeypatch.setattr(Listener, "accept", flaky_accept)

        server = WebServer(config)
        thread = threading.Thread(target=server.run, kwargs={"install_signal_handlers": False})
        thread.start()
        try:
            assert server.wait_until_ready(timeout=5)
            host, port = server.address

            response = fetch(host, port, "/")

            assert response.status_code == 200
            assert calls["n"] >= 2
        finally:
            server.shutdown()
            thread.join(timeout=5)

    def test_unexpected_accept_failure_does_not_stop_loop(self, config, monkeypatch):
        from webserver.core.listener import Listener

        real_accept = Listener.accept
        calls = {"n": 0}

        def stale_accept(self):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OwnershipError("File descriptor 7 is already owned by another handle")
            return real_accept(self)

        monkeypatch.setattr(Listener, "accept", stale_accept)

        server = WebServer(config)
        thread = threading.Thread(target=server.run, kwargs={"install_signal_handlers": False})
        thread.start()
        try:
            assert server.wait_until_ready(timeout=5)
            host, port = server.address

            assert fetch(host, port, "/").status_code == 200
            assert thread.is_alive()
        finally:
            server.shutdown()
            thread.join(timeout=5)

    def test_shutdown_waits_for_in_flight_connection(self, config):
        started = threading.Event()
        release = threading.Event()
        finished = threading.Event()

        class SlowHandler:
            def handle(self, conn):
                with conn:
                    started.set()
                    release.wait(timeout=5)
                    conn.send_all(b"done")
                finished.set()

        server = WebServer(config, handler=SlowHandler())
        thread = threading.Thread(target=server.run, kwargs={"install_signal_handlers": False})
        thread.start()
        assert server.wait_until_ready(timeout=5)
        host, port = server.address

        client = socket.create_connection((host, port), timeout=5)
        try:
            assert started.wait(timeout=5)
            assert server.active_connections == 1

            server.shutdown()
            threading.Timer(0.3, release.set).start()
            thread.join(timeout=10)

            assert not thread.is_alive()
            assert finished.is_set()
            assert server.active_connections == 0
            assert client.recv(4) == b"done"
        finally:
            release.set()
            client.close()


class TestClient:
    def test_fetch(self, running_server):
        response = fetch(running_server.host, running_server.port, "/about.html")

        assert response.status_line == "HTTP/1.1 200 OK"
        assert response.status_code == 200
        assert response.reason == "OK"
        assert response.headers == {"server": "web_server"}
        assert response.body == b"<html><body>about</body></html>"

    def test_fetch_error_page(self, running_server):
        response = fetch(running_server.host, running_server.port, "/missing")

        assert response.status_code == 404
        assert "<h1 style=\"text-align: center\">404 Not Found</h1>" in response.text

    def test_fetch_other_method(self, running_server):
        response = fetch(running_server.host, running_server.port, "/", method="POST")
        assert response.status_code == 501
