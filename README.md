# live2text

live2text listens to an audio input device, streams the captured sound to a
streaming speech recognizer and keeps a short, rolling block of subtitles for
every device being recognized. The subtitles can be fetched over a small WSGI
HTTP API or read from a per-session Unix socket. Counters of how much audio
has been read, sent to the recognizer and written to disk are exposed in the
Prometheus text format.

The package has no third-party dependencies.

## Components

- `live2text.subs.SubtitleWriter` keeps the last few lines of recognized text,
  wrapped to a fixed width. Interim (non-final) results replace each other;
  final results are closed with a full stop and kept.
- `live2text.console.ConsoleWriter` prints interim results in red (ending in a
  carriage return, so the next line overwrites them) and final results in
  green.
- `live2text.validation.is_valid_language_code` accepts codes such as `en` or
  `en-US`.
- `live2text.config.parse_config` reads `-host` (default `127.0.0.1`) and
  `-port` (default `8000`); `parse_multi_config` reads repeatable `-device`
  and `-language` options and `-output`. Bad arguments raise `ConfigError`.
- `live2text.encoding.encode` and `decode` turn values into compact JSON and
  JSON request bodies back into values.
- `live2text.concurrency` provides `Channel` (a bounded, closable queue),
  `Context` (cancellation passed from parent to children), `broadcast`
  (fan-out of one channel to several) and `null_logger`.
- `live2text.metrics.Metrics` counts bytes and writes them, together with a
  few process metrics, with `write_prometheus`.
- `live2text.task_manager.TaskManager` runs named tasks in threads and cancels
  them by name; `live2text.socket_manager.SocketManager` serves Unix sockets.
- `live2text.audio_backend` describes devices and streams (`DeviceInfo`,
  `HostApiInfo`, `StreamParameters`) and the `AudioBackend` and `Stream`
  interfaces; `FakeAudioBackend` and `FakeStream` are in-memory stand-ins.
- `live2text.audio.AudioService` lists input devices, finds one by name and
  creates a `DeviceListener` that reads 100 ms chunks of 16-bit samples.
- `live2text.burner.Burner` collects samples until cancelled and writes them
  as one WAV file.
- `live2text.speech` defines the `SpeechClient` and `StreamingSession`
  interfaces, the messages they exchange, and `pcm16_bytes`.
- `live2text.recognition.Recognition` starts, stops and queries one
  `RecognizeTask` per device.
- `live2text.api.create_app` builds the WSGI application, wrapped in the
  error-recovery and request-logging middleware of `live2text.middleware`.
- `live2text.server` wires the services together (`build_services`), creates
  a logger (`new_logger`) and serves the application (`serve`).

## Subtitles

```python
from live2text.subs import SubtitleWriter

writer = SubtitleWriter(2, 10)
writer.add_section("foo bar baz", True)
print(writer.format())
# foo bar
# baz.
```

## Configuration

```python
from live2text.config import parse_config

config = parse_config(["-port", "9000"])
print(config.host, config.port)  # 127.0.0.1 9000
```

## Audio devices

```python
from live2text.audio import AudioService
from live2text.audio_backend import DeviceInfo, FakeAudioBackend, HostApiInfo
from live2text.concurrency import null_logger
from live2text.metrics import Metrics

backend = FakeAudioBackend(
    default_host_api_info=HostApiInfo(devices=[DeviceInfo("mic", max_input_channels=1)])
)
audio = AudioService(null_logger(), Metrics(), backend)
print([device.name for device in audio.list_devices()])  # ['mic']
```

Only devices with at least one input channel are listed.

## HTTP API

Request bodies are JSON and must be sent with
`Content-Type: application/json`. Routes answer any method.

| Path           | Request body                                | Response                                            |
|----------------|---------------------------------------------|-----------------------------------------------------|
| `/api/health`  | none                                        | `"ok"`                                              |
| `/api/devices` | none                                        | `{"devices": [...]}` (`null` when there are none)   |
| `/api/start`   | `{"device": "...", "language": "en-US"}`    | `{"id": "...", "socketPath": "..."}`                |
| `/api/stop`    | `{"id": "..."}`                             | empty, status 200                                   |
| `/api/subs`    | `{"id": "..."}`                             | the current subtitles as plain text                 |
| `/metrics`     | none                                        | counters in the Prometheus text format              |

A body that cannot be decoded, or has the wrong content type, is answered
with status 400 and a plain-text message. A start request that fails
validation (unknown device, malformed language code) is answered with status
422 and a JSON object naming each problem field. Starting a device that is
already busy, stopping one that is not, or asking for the subtitles of an
unknown session is answered with status 400 and `{"error": "..."}`. The task
id returned by `/api/start` is the device name. Any other path gets a 404,
and an unexpected exception a plain 500.

## What a recognition session does

While a session runs it:

- records everything captured into a WAV file in the current directory, named
  after the start time (`MM.DD.YY HH_MM_SS output.wav`), written when the
  session stops;
- sends the audio to the speech client, reopening the stream every five
  minutes;
- keeps the last two lines of subtitles, 80 columns wide;
- prints each transcript to file descriptor 3 if it is open (or to
  `RecognizeTask.console_stream` when that is set), otherwise discards it;
- answers every connection to its `socketPath` with the current subtitles and
  closes it.

## Running the service

```python
from live2text.api import create_app
from live2text.concurrency import Context
from live2text.config import parse_config
from live2text.server import build_services, new_logger, serve
```

`build_services(logger, backend, speech_client, context)` returns the
services, the task manager and the socket manager. `create_app` turns the
services into a WSGI application, and `serve(config, app, context)` runs it
on the configured host and port until the context is cancelled; called from
the main thread, SIGINT and SIGTERM cancel it. `serve` stops only the HTTP
server: closing the socket manager and waiting on the task manager is left to
the caller.

## What the package does not do

- It has no command to run: the service is assembled and started from Python.
- It contains no audio backend for real sound hardware, only the
  `AudioBackend` interface and `FakeAudioBackend`.
- It contains no client for a speech recognition service, only the
  `SpeechClient` interface. A working deployment must supply both.

## Tests

The test suite uses pytest and is installed with the `test` extra.