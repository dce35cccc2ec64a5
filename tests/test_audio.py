import io
import threading

import pytest

from live2text.audio import AudioError, AudioService
from live2text.audio_backend import DeviceInfo, FakeAudioBackend, FakeStream, HostApiInfo
from live2text.concurrency import ChannelClosed, Context, null_logger
from live2text.metrics import Metrics


def _service(backend, metrics=None):
    return AudioService(null_logger(), metrics or Metrics(), backend)


def _host(*devices):
    return HostApiInfo(devices=list(devices))


# find_input_device


def test_find_host_api_fails():
    backend = FakeAudioBackend(default_host_api_error=RuntimeError("host api failed"))
    with pytest.raises(AudioError) as info:
        _service(backend).find_input_device("mic1")
    assert str(info.value) == "cannot list host apis: host api failed"


def test_find_device_not_found():
    backend = FakeAudioBackend(default_host_api_info=_host(DeviceInfo(name="bar")))
    with pytest.raises(AudioError) as info:
        _service(backend).find_input_device("foo")
    assert str(info.value) == "device not found"


def test_find_device_without_inputs():
    backend = FakeAudioBackend(default_host_api_info=_host(DeviceInfo(name="foo")))
    with pytest.raises(AudioError) as info:
        _service(backend).find_input_device("foo")
    assert str(info.value) == "device hasn't input channels"


def test_find_device_found():
    backend = FakeAudioBackend(
        default_host_api_info=_host(DeviceInfo(name="foo", max_input_channels=1))
    )
    device = _service(backend).find_input_device("foo")
    assert device == DeviceInfo(name="foo", max_input_channels=1)


def test_find_device_takes_last_match():
    first = DeviceInfo(name="foo", max_input_channels=1)
    second = DeviceInfo(name="foo", max_input_channels=2)
    backend = FakeAudioBackend(default_host_api_info=_host(first, second))
    assert _service(backend).find_input_device("foo") is second


# list_devices


def test_list_host_api_fails():
    backend = FakeAudioBackend(default_host_api_error=RuntimeError("host api failed"))
    with pytest.raises(AudioError) as info:
        _service(backend).list_devices()
    assert str(info.value) == "cannot list host apis: host api failed"


def test_list_only_input_devices():
    valid = DeviceInfo(name="foo", max_input_channels=1)
    invalid = DeviceInfo(name="bar", max_input_channels=0)
    backend = FakeAudioBackend(default_host_api_info=_host(valid, invalid))
    assert _service(backend).list_devices() == [valid]


# listen_device and DeviceListener.listen

DEVICE = DeviceInfo(name="foo", max_input_channels=1)


def _cancelled():
    context = Context()
    context.cancel()
    return context


def test_listen_device_unknown():
    backend = FakeAudioBackend(default_host_api_info=_host(DEVICE))
    with pytest.raises(AudioError) as info:
        _service(backend).listen_device("nope")
    assert str(info.value) == "could not find input device: device not found"


@pytest.mark.parametrize(
    "backend_kwargs, expected",
    [
        ({"open_stream_error": RuntimeError("internal")}, "could not open the stream: internal"),
        (
            {"open_stream_stream": FakeStream(start_error=RuntimeError("internal"))},
            "could not start the stream: internal",
        ),
        (
            {"open_stream_stream": FakeStream(read_error=RuntimeError("internal"))},
            "could not read stream: internal",
        ),
    ],
)
def test_listen_errors(backend_kwargs, expected):
    backend = FakeAudioBackend(default_host_api_info=_host(DEVICE), **backend_kwargs)
    listener = _service(backend).listen_device("foo")
    with pytest.raises(AudioError) as info:
        listener.listen(_cancelled())
    assert str(info.value) == expected


def test_listen_read_failure_stops_and_closes_stream():
    stream = FakeStream(read_error=RuntimeError("internal"))
    backend = FakeAudioBackend(default_host_api_info=_host(DEVICE), open_stream_stream=stream)
    listener = _service(backend).listen_device("foo")
    with pytest.raises(AudioError):
        listener.listen(Context())
    assert stream.stopped and stream.closed


def test_listen_happy_path_defaults():
    stream = FakeStream()
    backend = FakeAudioBackend(default_host_api_info=_host(DEVICE), open_stream_stream=stream)
    listener = _service(backend).listen_device("foo")
    assert listener.channels == 1
    assert listener.sample_rate == 0
    assert listener.chunk_size_ms == 100

    listener.listen(_cancelled())
    assert listener.channel.closed
    with pytest.raises(ChannelClosed):
        listener.channel.get(timeout=0.1)
    assert stream.started and stream.stopped and stream.closed


def test_listen_captures_until_cancelled():
    device = DeviceInfo(
        name="mic", max_input_channels=2, default_sample_rate=48000.0,
        default_high_input_latency=0.25,
    )
    backend = FakeAudioBackend(default_host_api_info=_host(device))
    listener = _service(backend).listen_device("mic")
    assert listener.sample_rate == 24000

    context = Context()
    worker = threading.Thread(target=listener.listen, args=(context,), daemon=True)
    worker.start()
    chunk = listener.channel.get(timeout=2)
    context.cancel()
    worker.join(timeout=2)

    assert not worker.is_alive()
    assert len(chunk) == 2400
    assert set(chunk) == {0}
    assert listener.channel.closed
    parameters = backend.opened[0]
    assert parameters.frames_per_buffer == 2400
    assert parameters.latency == 0.25
    assert parameters.channels == 1


def test_listen_counts_bytes_read():
    device = DeviceInfo(name="mic", max_input_channels=1, default_sample_rate=48000.0)
    metrics = Metrics()
    backend = FakeAudioBackend(default_host_api_info=_host(device))
    listener = _service(backend, metrics).listen_device("mic")
    listener.listen(_cancelled())
    out = io.StringIO()
    metrics.write_prometheus(out)
    assert "recognizer_bytes_read_from_audio 4800\n" in out.getvalue()