"""HTTP API for listing devices and controlling recognition tasks."""

from __future__ import annotations

import dataclasses
import io
import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Callable, Iterable, Optional

from live2text.audio import AudioService
from live2text.audio_backend import AudioBackend
from live2text.burner import Burner
from live2text.encoding import JSON_CONTENT_TYPE, DecodeError, EncodeError, decode, encode
from live2text.metrics import Metrics
from live2text.middleware import error_middleware, logger_middleware
from live2text.recognition import (
    DeviceIsBusyError,
    NoDeviceBusyError,
    NoTaskError,
    Recognition,
)
from live2text.validation import is_valid_language_code

_TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


@dataclass
class Services:
    """The services the API hands requests to."""

    audio: AudioService
    audio_backend: AudioBackend
    burner: Burner
    recognition: Recognition
    metrics: Metrics


@dataclass
class _Response:
    status: int
    body: bytes = b""
    content_type: str | None = None
    extra_headers: list[tuple[str, str]] = field(default_factory=list)

    def header_list(self) -> list[tuple[str, str]]:
        headers = []
        if self.content_type is not None:
            headers.append(("Content-Type", self.content_type))
        headers.extend(self.extra_headers)
        headers.append(("Content-Length", str(len(self.body))))
        return headers

    @property
    def status_line(self) -> str:
        return f"{self.status} {HTTPStatus(self.status).phrase}"


class _Abort(Exception):
    """Ends request handling early with a ready response."""

    def __init__(self, response: _Response) -> None:
        super().__init__(response.status)
        self.response = response


def _text_error(status: int, message: str) -> _Response:
    return _Response(
        status,
        (message + "\n").encode("utf-8"),
        _TEXT_CONTENT_TYPE,
        [("X-Content-Type-Options", "nosniff")],
    )


def _json(value: Any, status: int = HTTPStatus.OK) -> _Response:
    try:
        body = encode(value)
    except EncodeError as exc:
        return _text_error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
    return _Response(int(status), body, JSON_CONTENT_TYPE)


def _json_kind(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _build(request_type: type, payload: Any) -> Any:
    """Fill a request dataclass from decoded JSON, matching keys case-insensitively."""
    if payload is None:
        return request_type()
    if not isinstance(payload, dict):
        raise DecodeError(
            f"cannot decode request: cannot unmarshal {_json_kind(payload)} "
            f"into {request_type.__name__}"
        )
    values = {}
    for spec in dataclasses.fields(request_type):
        key = spec.name if spec.name in payload else next(
            (k for k in payload if k.casefold() == spec.name.casefold()), None
        )
        if key is None or payload[key] is None:
            continue
        value = payload[key]
        if not isinstance(value, str):
            raise DecodeError(
                f"cannot decode request: cannot unmarshal {_json_kind(value)} "
                f"into field {spec.name} of type string"
            )
        values[spec.name] = value
    return request_type(**values)


def _read_body(environ: dict) -> bytes:
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    stream = environ.get("wsgi.input")
    if stream is None or length <= 0:
        return b""
    return stream.read(length)


@dataclass(frozen=True)
class _StartRequest:
    device: str = ""
    language: str = ""

    def problems(self, services: Services) -> dict[str, str]:
        try:
            devices = services.audio.list_devices()
        except Exception as exc:
            raise RuntimeError(f"could not get list of devices: {exc}") from exc
        problems = {}
        if not any(device.name == self.device for device in devices):
            problems["device"] = "device not found"
        if not is_valid_language_code(self.language):
            problems["language"] = "language is not valid"
        return problems


@dataclass(frozen=True)
class _IdRequest:
    """A request naming a recognition task; it carries no validation rules."""

    id: str = ""


_Validator = Callable[[Any, Services], "dict[str, str]"]


class ApiApplication:
    """The WSGI application that routes API requests to the services."""

    def __init__(self, logger: logging.Logger, services: Services) -> None:
        self.logger = logger
        self.services = services
        self._routes: dict[str, Callable[[dict], _Response]] = {
            "/api/health": self._health,
            "/api/devices": self._devices,
            "/api/start": self._start,
            "/api/stop": self._stop,
            "/api/subs": self._subs,
            "/metrics": self._metrics,
        }

    def __call__(self, environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        handler = self._routes.get(environ.get("PATH_INFO") or "/")
        if handler is None:
            response = _text_error(HTTPStatus.NOT_FOUND, "404 page not found")
        else:
            try:
                response = handler(environ)
            except _Abort as abort:
                response = abort.response
        start_response(response.status_line, response.header_list())
        return [response.body]

    def _read_request(
        self,
        environ: dict,
        request_type: type,
        validate: Optional[_Validator] = None,
    ) -> Any:
        try:
            payload = decode(environ.get("CONTENT_TYPE"), _read_body(environ))
            request = _build(request_type, payload)
        except DecodeError as exc:
            raise _Abort(_text_error(HTTPStatus.BAD_REQUEST, str(exc))) from exc
        if validate is None:
            return request
        try:
            problems = validate(request, self.services)
        except Exception as exc:
            raise _Abort(_text_error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))) from exc
        if problems:
            raise _Abort(_json(dict(sorted(problems.items())), HTTPStatus.UNPROCESSABLE_ENTITY))
        return request

    def _health(self, environ: dict) -> _Response:
        return _json("ok")

    def _devices(self, environ: dict) -> _Response:
        try:
            devices = self.services.audio.list_devices()
        except Exception as exc:
            return _text_error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        names = [device.name for device in devices]
        return _json({"devices": names or None})

    def _start(self, environ: dict) -> _Response:
        request = self._read_request(environ, _StartRequest, _StartRequest.problems)
        try:
            task_id, socket_path = self.services.recognition.start(
                request.device, request.language
            )
        except DeviceIsBusyError as exc:
            return _json({"error": str(exc)}, HTTPStatus.BAD_REQUEST)
        except Exception as exc:
            return _text_error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _json({"id": task_id, "socketPath": socket_path})

    def _stop(self, environ: dict) -> _Response:
        request = self._read_request(environ, _IdRequest)
        try:
            self.services.recognition.stop(request.id)
        except NoDeviceBusyError as exc:
            return _json({"error": str(exc)}, HTTPStatus.BAD_REQUEST)
        except Exception as exc:
            return _text_error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _Response(HTTPStatus.OK)

    def _subs(self, environ: dict) -> _Response:
        request = self._read_request(environ, _IdRequest)
        try:
            text = self.services.recognition.subs(request.id)
        except NoTaskError as exc:
            return _json({"error": str(exc)}, HTTPStatus.BAD_REQUEST)
        except Exception as exc:
            return _text_error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _Response(HTTPStatus.OK, text.encode("utf-8"), "text/plain")

    def _metrics(self, environ: dict) -> _Response:
        buffer = io.StringIO()
        self.services.metrics.write_prometheus(buffer)
        return _Response(HTTPStatus.OK, buffer.getvalue().encode("utf-8"), _TEXT_CONTENT_TYPE)


def create_app(logger: logging.Logger, services: Services) -> Callable[..., Iterable[bytes]]:
    """Build the API application wrapped in error recovery and request logging."""
    app = ApiApplication(logger, services)
    return logger_middleware(error_middleware(app), logger)