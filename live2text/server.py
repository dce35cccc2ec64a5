"""Wiring of the services and the HTTP server that exposes them."""

from __future__ import annotations

import contextlib
import logging
import signal
import sys
import threading
from socketserver import ThreadingMixIn
from typing import Any, Callable, Iterable, Iterator
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from live2text.api import Services
from live2text.audio import AudioService
from live2text.audio_backend import AudioBackend
from live2text.burner import Burner
from live2text.concurrency import Context
from live2text.config import Config
from live2text.metrics import Metrics
from live2text.recognition import Recognition
from live2text.socket_manager import SocketManager
from live2text.speech import SpeechClient
from live2text.task_manager import TaskManager

_log = logging.getLogger(__name__)

_SHUTDOWN_TIMEOUT = 10.0
_SERVE_POLL_INTERVAL = 0.1
_SIGNAL_POLL_INTERVAL = 0.5


def new_logger(level: int) -> logging.Logger:
    """Return a logger writing ``key=value`` lines to standard output."""
    logger = logging.Logger("live2text", level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("time=%(asctime)s level=%(levelname)s msg=%(message)s")
    )
    logger.addHandler(handler)
    return logger


def build_services(
    logger: logging.Logger,
    backend: AudioBackend,
    speech_client: SpeechClient,
    context: Context,
) -> tuple[Services, TaskManager, SocketManager]:
    """Create the services; the caller closes the socket manager and waits for the tasks."""
    task_manager = TaskManager(context)
    socket_manager = SocketManager(context, logger)
    metrics = Metrics()
    audio = AudioService(logger, metrics, backend)
    burner = Burner(logger, metrics)
    recognition = Recognition(
        logger, metrics, audio, burner, speech_client, task_manager, socket_manager
    )
    services = Services(audio, backend, burner, recognition, metrics)
    return services, task_manager, socket_manager


class _ThreadingServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        """Send access lines to debug level; the middleware logs requests properly."""
        _log.debug("%s %s", self.address_string(), format % args)


@contextlib.contextmanager
def _cancel_on_signals(context: Context) -> Iterator[None]:
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum: int, frame: Any) -> None:
        context.cancel()

    previous = {
        sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def serve(
    config: Config,
    app: Callable[[dict, Callable[..., Any]], Iterable[bytes]],
    context: Context,
) -> None:
    """Serve ``app`` on the configured address until ``context`` is cancelled.

    SIGINT and SIGTERM cancel the context when called from the main thread.
    """
    try:
        port = int(config.port)
    except ValueError:
        raise ValueError(f"invalid port: {config.port!r}") from None

    try:
        server = make_server(
            config.host, port, app,
            server_class=_ThreadingServer, handler_class=_QuietHandler,
        )
    except OSError as exc:
        _log.error("Failed to listen and serve error=%s", exc)
        raise

    thread = threading.Thread(
        target=server.serve_forever,
        kwargs={"poll_interval": _SERVE_POLL_INTERVAL},
        name="api-server",
        daemon=True,
    )
    with _cancel_on_signals(context):
        _log.info("Starting the api server")
        thread.start()
        while not context.wait(_SIGNAL_POLL_INTERVAL):
            pass

    try:
        server.shutdown()
        thread.join(_SHUTDOWN_TIMEOUT)
        if thread.is_alive():
            _log.error("Failed to shutdown server error=timeout")
    finally:
        server.server_close()
    _log.info("Shutting down the program")