"""WSGI middleware for error recovery and request logging."""

from __future__ import annotations

import logging
import sys
import time
from typing import Any, Callable, Iterable

WSGIApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]

INTERNAL_ERROR_BODY = b"Internal Server Error\n"


def _collect(result: Iterable[bytes]) -> list[bytes]:
    """Materialise a WSGI response so that errors surface before it is sent."""
    try:
        return [bytes(chunk) for chunk in result]
    finally:
        close = getattr(result, "close", None)
        if close is not None:
            close()


def error_middleware(app: WSGIApp) -> WSGIApp:
    """Turn any exception raised by ``app`` into a plain 500 response."""

    def wrapped(environ: dict, start_response: Callable[..., Any]) -> list[bytes]:
        try:
            return _collect(app(environ, start_response))
        except Exception:
            headers = [
                ("Content-Type", "text/plain; charset=utf-8"),
                ("X-Content-Type-Options", "nosniff"),
                ("Content-Length", str(len(INTERNAL_ERROR_BODY))),
            ]
            start_response("500 Internal Server Error", headers, sys.exc_info())
            return [INTERNAL_ERROR_BODY]

    return wrapped


def _format_duration(seconds: float) -> str:
    if seconds < 1e-6:
        return f"{round(seconds * 1e9)}ns"
    if seconds < 1e-3:
        return f"{seconds * 1e6:.3f}µs"
    if seconds < 1:
        return f"{seconds * 1e3:.3f}ms"
    return f"{seconds:.3f}s"


def logger_middleware(app: WSGIApp, logger: logging.Logger) -> WSGIApp:
    """Log one line per request with its status, duration and client."""

    def wrapped(environ: dict, start_response: Callable[..., Any]) -> list[bytes]:
        since = time.monotonic()
        status = 0

        def capture(status_line: str, headers: list, exc_info: Any = None) -> Any:
            nonlocal status
            status = int(status_line.split(" ", 1)[0])
            return start_response(status_line, headers, exc_info)

        try:
            return _collect(app(environ, capture))
        finally:
            duration = time.monotonic() - since
            level = logging.ERROR if status >= 500 else logging.INFO
            path = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")
            logger.log(
                level,
                "HTTP request method=%s path=%s status=%d duration=%s IP=%s user_agent=%s",
                environ.get("REQUEST_METHOD", ""),
                path,
                status,
                _format_duration(duration),
                environ.get("REMOTE_ADDR", ""),
                environ.get("HTTP_USER_AGENT", ""),
            )

    return wrapped