import contextlib
import os
import socket
import tempfile
import uuid

import pytest

from live2text.concurrency import Context, null_logger
from live2text.socket_manager import NoSocketFoundError, SocketManager


def _socket_path():
    return os.path.join(tempfile.gettempdir(), f"live2text-{uuid.uuid4().hex[:12]}.sock")


@pytest.fixture
def paths():
    created = []

    def make():
        path = _socket_path()
        created.append(path)
        return path

    yield make
    for path in created:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(path)


@pytest.fixture
def manager():
    sm = SocketManager(Context(), null_logger())
    yield sm
    sm.close()


def _close_handler(conn):
    conn.close()


def test_ping_pong(manager, paths):
    path = paths()
    received = []

    def handler(conn):
        received.append(conn.recv(100).decode())
        conn.sendall(b"pong")

    manager.listen(path, handler)
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as client:
        client.settimeout(2)
        client.connect(path)
        client.sendall(b"ping")
        answer = client.recv(100).decode()

    assert answer == "pong"
    assert received == ["ping"]


def test_close_by_path(manager, paths):
    path = paths()
    manager.listen(path, _close_handler)
    assert manager.status().total_listeners == 1
    manager.close_by_path(path)
    assert manager.status().total_listeners == 0
    assert not os.path.exists(path)


def test_close_by_unknown_path(manager):
    with pytest.raises(NoSocketFoundError, match="no socket found"):
        manager.close_by_path("foo")


def test_close_stops_all_listeners(paths):
    sm = SocketManager(Context(), null_logger())
    first, second = paths(), paths()
    sm.listen(first, _close_handler)
    sm.listen(second, _close_handler)
    sm.close()
    assert sm.status().total_listeners == 0
    assert not os.path.exists(first)
    assert not os.path.exists(second)


def test_status_counts_listeners(manager, paths):
    manager.listen(paths(), _close_handler)
    manager.listen(paths(), _close_handler)
    assert manager.status().total_listeners == 2


def test_listen_on_bad_path_fails(manager):
    bad = os.path.join(tempfile.gettempdir(), uuid.uuid4().hex, "x.sock")
    with pytest.raises(OSError, match="cannot dial a unix socket"):
        manager.listen(bad, _close_handler)
    assert manager.status().total_listeners == 0


def test_listen_on_taken_path_fails(manager, paths):
    path = paths()
    manager.listen(path, _close_handler)
    with pytest.raises(OSError, match="cannot dial a unix socket"):
        manager.listen(path, _close_handler)
    assert manager.status().total_listeners == 1