"""Unix socket listeners served by background threads."""

from __future__ import annotations

import contextlib
import logging
import os
import socket
import threading
from dataclasses import dataclass, field
from typing import Callable

from live2text.concurrency import Context

_POLL_INTERVAL = 0.05

ConnectionHandler = Callable[[socket.socket], None]


class NoSocketFoundError(Exception):
    """Raised when no listener is registered for a socket path."""


@dataclass(frozen=True)
class SocketManagerStatus:
    total_listeners: int


@dataclass
class _Listener:
    sock: socket.socket
    stop: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None


class SocketManager:
    """Accepts connections on unix sockets and hands each one to a handler."""

    def __init__(self, context: Context, logger: logging.Logger) -> None:
        self.context = context
        self._logger = logger
        self._lock = threading.Lock()
        self._listeners: dict[str, _Listener] = {}

    def listen(self, socket_path: str, handler: ConnectionHandler) -> None:
        """Bind ``socket_path`` and serve each connection in its own thread."""
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(socket_path)
            sock.listen()
        except OSError as exc:
            sock.close()
            raise OSError(f"cannot dial a unix socket: {exc}") from exc
        sock.settimeout(_POLL_INTERVAL)

        listener = _Listener(sock)
        listener.thread = threading.Thread(
            target=self._accept_loop,
            args=(socket_path, listener, handler),
            name=f"socket-{socket_path}",
            daemon=True,
        )
        with self._lock:
            self._listeners[socket_path] = listener
        listener.thread.start()

    def _accept_loop(
        self, socket_path: str, listener: _Listener, handler: ConnectionHandler
    ) -> None:
        while not listener.stop.is_set():
            try:
                conn, _ = listener.sock.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if listener.stop.is_set():
                    return
                self._logger.error(
                    "Cannot accept socket connection path=%s error=%s", socket_path, exc
                )
                listener.stop.wait(_POLL_INTERVAL)
                continue
            threading.Thread(
                target=self._serve, args=(conn, handler), daemon=True
            ).start()

    def _serve(self, conn: socket.socket, handler: ConnectionHandler) -> None:
        with conn:
            try:
                handler(conn)
            except Exception:
                self._logger.exception("Socket handler failed")

    def _shutdown(self, socket_path: str, listener: _Listener) -> None:
        listener.stop.set()
        if listener.thread is not None and listener.thread is not threading.current_thread():
            listener.thread.join()
        try:
            listener.sock.close()
        finally:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(socket_path)
            with self._lock:
                if self._listeners.get(socket_path) is listener:
                    del self._listeners[socket_path]

    def close_by_path(self, socket_path: str) -> None:
        """Stop the listener on ``socket_path``; raise NoSocketFoundError if unknown."""
        with self._lock:
            listener = self._listeners.get(socket_path)
        if listener is None:
            raise NoSocketFoundError("no socket found")
        self._shutdown(socket_path, listener)

    def close(self) -> None:
        """Stop every listener; re-raise the first error met."""
        with self._lock:
            listeners = list(self._listeners.items())
        errors: list[OSError] = []
        for socket_path, listener in listeners:
            try:
                self._shutdown(socket_path, listener)
            except OSError as exc:
                errors.append(exc)
        if errors:
            raise errors[0]

    def status(self) -> SocketManagerStatus:
        with self._lock:
            return SocketManagerStatus(len(self._listeners))