import io
import json
from wsgiref.util import setup_testing_defaults

from live2text.api import ApiApplication, Services, create_app
from live2text.audio import AudioService
from live2text.audio_backend import DeviceInfo, FakeAudioBackend, HostApiInfo
from live2text.burner import Burner
from live2text.concurrency import Context, null_logger
from live2text.metrics import Metrics
from live2text.recognition import DeviceIsBusyError, Recognition
from live2text.socket_manager import SocketManager
from live2text.task_manager import TaskManager

MIC = DeviceInfo("mic", max_input_channels=1, default_sample_rate=48000.0)
SPEAKER = DeviceInfo("speaker", max_input_channels=0)


class _FakeRecognition:
    def __init__(self, error=None, subs_text=""):
        self.error = error
        self.subs_text = subs_text
        self.started = []
        self.stopped = []

    def start(self, device, language):
        self.started.append((device, language))
        if self.error is not None:
            raise self.error
        return device, f"/tmp/{device}.sock"

    def stop(self, device):
        self.stopped.append(device)
        if self.error is not None:
            raise self.error

    def subs(self, device):
        if self.error is not None:
            raise self.error
        return self.subs_text


def _services(devices=(MIC, SPEAKER), recognition=None, host_error=None, metrics=None):
    logger = null_logger()
    backend = FakeAudioBackend(
        default_host_api_info=HostApiInfo(devices=list(devices)),
        default_host_api_error=host_error,
    )
    metrics = metrics if metrics is not None else Metrics()
    audio = AudioService(logger, metrics, backend)
    burner = Burner(logger, metrics)
    if recognition is None:
        context = Context()
        recognition = Recognition(
            logger, metrics, audio, burner, None,
            TaskManager(context), SocketManager(context, logger),
        )
    return Services(audio, backend, burner, recognition, metrics)


def _request(app, path, payload=None, *, raw=None, content_type="application/json", method="POST"):
    body = raw if raw is not None else (b"" if payload is None else json.dumps(payload).encode())
    environ = {}
    setup_testing_defaults(environ)
    environ.update(
        REQUEST_METHOD=method,
        PATH_INFO=path,
        CONTENT_TYPE=content_type,
        CONTENT_LENGTH=str(len(body)),
    )
    environ["wsgi.input"] = io.BytesIO(body)
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = int(status.split()[0])
        captured["headers"] = dict(headers)

    result = b"".join(app(environ, start_response))
    return captured["status"], captured["headers"], result


def _app(services):
    return ApiApplication(null_logger(), services)


def test_health_returns_ok():
    status, headers, body = _request(_app(_services()), "/api/health", method="GET")
    assert status == 200
    assert headers["Content-Type"] == "application/json"
    assert json.loads(body) == "ok"


def test_devices_lists_only_input_devices():
    status, _, body = _request(_app(_services()), "/api/devices", method="GET")
    assert status == 200
    assert json.loads(body) == {"devices": ["mic"]}


def test_devices_empty_list_is_null():
    status, _, body = _request(_app(_services(devices=())), "/api/devices", method="GET")
    assert status == 200
    assert json.loads(body) == {"devices": None}


def test_devices_host_error_is_500():
    services = _services(host_error=RuntimeError("host api failed"))
    status, _, body = _request(_app(services), "/api/devices", method="GET")
    assert status == 500
    assert body.decode() == "cannot list host apis: host api failed\n"


def test_start_returns_id_and_socket_path():
    recognition = _FakeRecognition()
    app = _app(_services(recognition=recognition))
    status, _, body = _request(app, "/api/start", {"device": "mic", "language": "en-US"})
    assert status == 200
    assert json.loads(body) == {"id": "mic", "socketPath": "/tmp/mic.sock"}
    assert recognition.started == [("mic", "en-US")]


def test_start_matches_keys_case_insensitively():
    recognition = _FakeRecognition()
    app = _app(_services(recognition=recognition))
    status, _, _ = _request(app, "/api/start", {"Device": "mic", "LANGUAGE": "ru-RU"})
    assert status == 200
    assert recognition.started == [("mic", "ru-RU")]


def test_start_reports_validation_problems():
    recognition = _FakeRecognition()
    app = _app(_services(recognition=recognition))
    status, headers, body = _request(app, "/api/start", {"device": "speaker", "language": "eng-USA"})
    assert status == 422
    assert headers["Content-Type"] == "application/json"
    assert json.loads(body) == {"device": "device not found", "language": "language is not valid"}
    assert recognition.started == []


def test_start_rejects_wrong_content_type():
    app = _app(_services(recognition=_FakeRecognition()))
    status, _, body = _request(app, "/api/start", raw=b"<x/>", content_type="application/xml")
    assert status == 400
    assert body.decode() == "cannot decode content type 'application/xml'\n"


def test_start_rejects_invalid_json():
    app = _app(_services(recognition=_FakeRecognition()))
    status, _, body = _request(app, "/api/start", raw=b"foo")
    assert status == 400
    assert body.decode().startswith("cannot decode request")


def test_start_rejects_non_object_and_wrong_field_type():
    app = _app(_services(recognition=_FakeRecognition()))
    status_list, _, body_list = _request(app, "/api/start", ["mic"])
    status_number, _, body_number = _request(app, "/api/start", {"device": 5, "language": "en"})
    assert (status_list, status_number) == (400, 400)
    assert body_list.decode().startswith("cannot decode request")
    assert body_number.decode().startswith("cannot decode request")


def test_start_device_busy_is_400_json():
    app = _app(_services(recognition=_FakeRecognition(error=DeviceIsBusyError())))
    status, _, body = _request(app, "/api/start", {"device": "mic", "language": "en-US"})
    assert status == 400
    assert json.loads(body) == {"error": "device is busy"}


def test_start_other_error_is_500_text():
    app = _app(_services(recognition=_FakeRecognition(error=RuntimeError("cannot run the task"))))
    status, headers, body = _request(app, "/api/start", {"device": "mic", "language": "en-US"})
    assert status == 500
    assert headers["Content-Type"].startswith("text/plain")
    assert body.decode() == "cannot run the task\n"


def test_start_device_list_failure_is_500():
    services = _services(recognition=_FakeRecognition(), host_error=RuntimeError("down"))
    status, _, body = _request(_app(services), "/api/start", {"device": "mic", "language": "en-US"})
    assert status == 500
    assert body.decode().startswith("could not get list of devices")


def test_stop_without_task_is_400():
    status, _, body = _request(_app(_services()), "/api/stop", {"id": "mic"})
    assert status == 400
    assert json.loads(body) == {"error": "no device busy"}


def test_stop_success_has_empty_body():
    recognition = _FakeRecognition()
    status, _, body = _request(_app(_services(recognition=recognition)), "/api/stop", {"id": "mic"})
    assert status == 200
    assert body == b""
    assert recognition.stopped == ["mic"]


def test_subs_without_task_is_400():
    status, _, body = _request(_app(_services()), "/api/subs", {"id": "mic"})
    assert status == 400
    assert json.loads(body) == {"error": "no task found"}


def test_subs_returns_plain_text():
    recognition = _FakeRecognition(subs_text="foo bar\nbaz.")
    status, headers, body = _request(_app(_services(recognition=recognition)), "/api/subs", {"id": "mic"})
    assert status == 200
    assert headers["Content-Type"] == "text/plain"
    assert body == b"foo bar\nbaz."


def test_metrics_exposes_counters():
    metrics = Metrics()
    metrics.add_bytes_read_from_audio(30)
    status, _, body = _request(_app(_services(metrics=metrics)), "/metrics", method="GET")
    assert status == 200
    assert "recognizer_bytes_read_from_audio 30" in body.decode()


def test_unknown_path_is_404():
    status, _, body = _request(_app(_services()), "/api/unknown", method="GET")
    assert status == 404
    assert body.decode() == "404 page not found\n"


def test_create_app_recovers_from_failing_service():
    class BrokenMetrics:
        def write_prometheus(self, stream):
            raise RuntimeError("broken")

    app = create_app(null_logger(), _services(metrics=BrokenMetrics()))
    status, _, body = _request(app, "/metrics", method="GET")
    assert status == 500
    assert body == b"Internal Server Error\n"


def test_create_app_serves_health():
    app = create_app(null_logger(), _services())
    status, _, body = _request(app, "/api/health", method="GET")
    assert status == 200
    assert json.loads(body) == "ok"