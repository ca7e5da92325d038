"""
Unit tests for socket handle ownership.
"""

import copy
import os
import pickle
import socket
import threading

import pytest

from webserver.core.handle import (
    INVALID_FD,
    ConnectedHandle,
    ListeningHandle,
    SocketHandle,
    is_owned,
    is_valid_fd,
)
import webserver.core.handle as handle_module
from webserver.errors import (
    AcceptError,
    BindError,
    ConnectError,
    InvalidDescriptorError,
    OwnershipError,
    ResolutionError,
)


class TestOwnership:
    """A descriptor has exactly one owner and is released exactly once."""

    def test_empty_handle(self):
        handle = SocketHandle()
        assert handle.fd == INVALID_FD
        assert handle.is_valid is False

        with pytest.raises(InvalidDescriptorError):
            handle.socket

    def test_wraps_socket(self, socket_pair):
        a, _ = socket_pair
        handle = ConnectedHandle(a)

        assert handle.fd == a.fileno()
        assert handle.is_valid is True
        assert is_owned(handle.fd)
        handle.close()

    def test_second_owner_rejected(self, socket_pair):
        a, _ = socket_pair
        handle = ConnectedHandle(a)

        with pytest.raises(OwnershipError):
            ConnectedHandle(a)

        handle.close()

    def test_close_releases_once(self, socket_pair):
        a, _ = socket_pair
        handle = ConnectedHandle(a)
        fd = handle.fd

        handle.close()
        assert handle.fd == INVALID_FD
        assert not is_owned(fd)
        assert a.fileno() == -1

        # Idempotent
        handle.close()
        assert handle.fd == INVALID_FD

    def test_context_manager_closes(self, socket_pair):
        a, _ = socket_pair
        with ConnectedHandle(a) as handle:
            fd = handle.fd
        assert handle.is_valid is False
        assert not is_owned(fd)

    def test_descriptor_reused_while_closing(self):
        """The OS may hand a closed number out again before close() returns."""
        claimed = []
        errors = []

        def claim(sock):
            try:
                claimed.append(ConnectedHandle(sock))
            except OwnershipError as e:
                errors.append(e)

        class ReusingSocket(socket.socket):
            def close(self):
                super().close()
                # New sockets get the lowest free number: usually the one just freed
                self.reused = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
                self.claimer = threading.Thread(target=claim, args=(self.reused,))
                self.claimer.start()
                self.claimer.join(timeout=0.2)

        a, b = socket.socketpair()
        sock = ReusingSocket(fileno=a.detach())
        handle = ConnectedHandle(sock)

        handle.close()
        sock.claimer.join(timeout=5.0)

        try:
            assert errors == []
            assert len(claimed) == 1
            assert claimed[0].fd == sock.reused.fileno()
        finally:
            for h in claimed:
                h.close()
            sock.reused.close()
            b.close()


class TestMove:
    def test_move_transfers_descriptor(self, socket_pair):
        a, _ = socket_pair
        source = ConnectedHandle(a)
        fd = source.fd

        target = source.move()

        assert target.fd == fd
        assert isinstance(target, ConnectedHandle)
        assert source.fd == INVALID_FD
        assert source.is_valid is False
        assert is_owned(fd)
        target.close()

    def test_closing_moved_from_handle_is_harmless(self, socket_pair):
        a, b = socket_pair
        source = ConnectedHandle(a)
        target = source.move()

        source.close()

        # Target still works
        target.socket.sendall(b"x")
        assert b.recv(1) == b"x"
        target.close()

    def test_move_of_empty_handle(self):
        moved = SocketHandle().move()
        assert moved.fd == INVALID_FD

    def test_assign_releases_previous(self):
        a1, b1 = socket.socketpair()
        a2, b2 = socket.socketpair()
        try:
            target = ConnectedHandle(a1)
            old_fd = target.fd
            source = ConnectedHandle(a2)
            new_fd = source.fd

            target.assign(source)

            assert target.fd == new_fd
            assert source.fd == INVALID_FD
            assert not is_owned(old_fd)
            assert a1.fileno() == -1  # previous descriptor closed
            target.close()
        finally:
            for s in (a1, b1, a2, b2):
                s.close()

    def test_self_assign_is_noop(self, socket_pair):
        a, _ = socket_pair
        handle = ConnectedHandle(a)
        fd = handle.fd

        assert handle.assign(handle) is handle
        assert handle.fd == fd
        assert handle.is_valid
        handle.close()

    def test_assign_across_kinds_rejected(self, socket_pair):
        a, _ = socket_pair
        connected = ConnectedHandle(a)
        listening = ListeningHandle()

        with pytest.raises(TypeError):
            listening.assign(connected)

        assert connected.is_valid
        connected.close()


class TestNoCopy:
    def test_copy_rejected(self, socket_pair):
        a, _ = socket_pair
        handle = ConnectedHandle(a)

        with pytest.raises(TypeError):
            copy.copy(handle)
        with pytest.raises(TypeError):
            copy.deepcopy(handle)
        with pytest.raises(TypeError):
            pickle.dumps(handle)

        handle.close()


class TestFromDescriptor:
    def test_invalid_descriptor(self):
        assert is_valid_fd(-1) is False
        with pytest.raises(InvalidDescriptorError):
            SocketHandle.from_descriptor(-1)

    def test_closed_descriptor(self):
        s = socket.socket()
        fd = s.fileno()
        s.close()

        assert is_valid_fd(fd) is False
        with pytest.raises(InvalidDescriptorError):
            ConnectedHandle.from_descriptor(fd)

    def test_adopts_open_socket(self):
        a, b = socket.socketpair()
        fd = a.detach()
        try:
            handle = ConnectedHandle.from_descriptor(fd)
            assert handle.fd == fd
            handle.socket.sendall(b"ok")
            assert b.recv(2) == b"ok"
            handle.close()
            assert is_valid_fd(fd) is False
        finally:
            b.close()

    def test_already_owned_descriptor(self, socket_pair):
        a, _ = socket_pair
        handle = ConnectedHandle(a)

        with pytest.raises(OwnershipError):
            ConnectedHandle.from_descriptor(handle.fd)

        # The rejected adoption must not have closed the owner's descriptor
        assert is_valid_fd(handle.fd)
        handle.close()

    def test_regular_file_rejected(self, tmp_path):
        path = tmp_path / "plain.txt"
        path.write_text("not a socket")
        fd = os.open(str(path), os.O_RDONLY)
        try:
            with pytest.raises(InvalidDescriptorError):
                SocketHandle.from_descriptor(fd)
        finally:
            os.close(fd)


class TestListenConnect:
    def test_listen_on_ephemeral_port(self):
        with ListeningHandle.listen("127.0.0.1", 0) as handle:
            host, port = handle.address
            assert host == "127.0.0.1"
            assert port > 0

    def test_connect_and_accept(self):
        with ListeningHandle.listen("127.0.0.1", 0) as listener:
            _, port = listener.address
            client = ConnectedHandle.connect("127.0.0.1", port)
            accepted, peer = listener.accept()

            assert peer[0] == "127.0.0.1"
            client.socket.sendall(b"ping")
            assert accepted.socket.recv(4) == b"ping"

            client.close()
            accepted.close()

    def test_unresolvable_host(self):
        with pytest.raises(ResolutionError):
            ListeningHandle.listen("no-such-host.invalid", 0)
        with pytest.raises(ResolutionError):
            ConnectedHandle.connect("no-such-host.invalid", 80)

    def test_connect_refused(self):
        # Grab a free port, then release it so nothing listens there
        with ListeningHandle.listen("127.0.0.1", 0) as handle:
            _, port = handle.address

        with pytest.raises(ConnectError):
            ConnectedHandle.connect("127.0.0.1", port)

    def test_port_in_use(self):
        s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            s.bind(("127.0.0.1", 0))
            s.listen(1)
            port = s.getsockname()[1]

            with pytest.raises(BindError):
                ListeningHandle.listen("127.0.0.1", port)
        finally:
            s.close()

    def test_stale_ownership_on_accept_is_accept_error(self, monkeypatch):
        with ListeningHandle.listen("127.0.0.1", 0) as listener:
            _, port = listener.address
            client = ConnectedHandle.connect("127.0.0.1", port)

            def stale(fd):
                raise OwnershipError(f"File descriptor {fd} is already owned by another handle")

            monkeypatch.setattr(handle_module, "_claim", stale)
            try:
                with pytest.raises(AcceptError):
                    listener.accept()
            finally:
                monkeypatch.undo()
                client.close()
