"""Recognition tasks that capture, record, transcribe and publish live audio."""

from __future__ import annotations

import contextlib
import logging
import os
import random
import tempfile
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator, Sequence, TextIO

from live2text.audio import AudioError, AudioService
from live2text.burner import Burner, BurnError
from live2text.concurrency import Channel, ChannelClosed, Context, broadcast
from live2text.console import ConsoleWriter
from live2text.metrics import Metrics
from live2text.socket_manager import NoSocketFoundError, SocketManager
from live2text.speech import (
    SPEECH_EVENT_UNSPECIFIED,
    RecognitionConfig,
    SpeechClient,
    SpeechError,
    StreamingSession,
    pcm16_bytes,
)
from live2text.subs import SubtitleWriter
from live2text.task_manager import TaskIsRunningError, TaskManager

_ID_RANGE = 100000
_STREAM_DURATION = 5 * 60.0
_RECOGNIZED_CAPACITY = 1024
_POLL_INTERVAL = 0.05
_JOIN_TIMEOUT = 1.0
_CONSOLE_FD = 3
_LIMIT_EXCEEDED_CODES = frozenset({3, 11})


class DeviceIsBusyError(Exception):
    """Raised when a recognition task already runs for the device."""

    def __init__(self, message: str = "device is busy") -> None:
        super().__init__(message)


class NoDeviceBusyError(LookupError):
    """Raised when stopping a device that has no running task."""

    def __init__(self, message: str = "no device busy") -> None:
        super().__init__(message)


class NoTaskError(LookupError):
    """Raised when no task runs for the requested device."""

    def __init__(self, message: str = "no task found") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class _Recognized:
    transcript: str
    is_final: bool
    end_time: float


class _Group:
    """Threads sharing one context; the first failure cancels the rest."""

    def __init__(self, parent: Context) -> None:
        self.context = parent.child()
        self._cond = threading.Condition()
        self._error: Exception | None = None
        self._pending = 0
        self._threads: list[threading.Thread] = []

    def go(self, name: str, fn: Callable[[], None]) -> None:
        with self._cond:
            self._pending += 1
        thread = threading.Thread(target=self._run, args=(fn,), name=name, daemon=True)
        self._threads.append(thread)
        thread.start()

    def _run(self, fn: Callable[[], None]) -> None:
        try:
            fn()
        except Exception as exc:
            with self._cond:
                if self._error is None:
                    self._error = exc
            self.context.cancel()
        finally:
            with self._cond:
                self._pending -= 1
                self._cond.notify_all()

    @property
    def error(self) -> Exception | None:
        with self._cond:
            return self._error

    def finished(self) -> bool:
        with self._cond:
            return self._error is not None or self._pending == 0

    def wait_finished(self, timeout: float) -> bool:
        with self._cond:
            return self._cond.wait_for(
                lambda: self._error is not None or self._pending == 0, timeout
            )

    def wait(self, timeout: float | None = None) -> Exception | None:
        """Join the threads, cancel the group context and return the first error."""
        for thread in self._threads:
            thread.join(timeout)
        self.context.cancel()
        return self.error


def _format_duration(seconds: float) -> str:
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


class RecognizeTask:
    """Captures one device, records it to disk and transcribes it live.

    Transcripts are kept as subtitles, printed to the console and served
    to every client that connects to :attr:`socket_path`.
    """

    def __init__(
        self,
        logger: logging.Logger,
        metrics: Metrics,
        audio: AudioService,
        burner: Burner,
        socket_manager: SocketManager,
        speech_client: SpeechClient,
        device: str,
        language: str,
        socket_path: str,
    ) -> None:
        self._logger = logger
        self._metrics = metrics
        self._audio = audio
        self._burner = burner
        self._socket_manager = socket_manager
        self._speech_client = speech_client
        self.id = str(random.randrange(_ID_RANGE))
        self.device = device
        self.language = language
        self.socket_path = socket_path
        self.stream_duration = _STREAM_DURATION
        self.console_stream: TextIO | None = None
        self._subs = SubtitleWriter(2, 80)
        self._subs_lock = threading.Lock()

    def run(self, context: Context) -> None:
        """Run until ``context`` is cancelled; raise the first failure of any stage."""
        try:
            listener = self._audio.listen_device(self.device)
        except AudioError as exc:
            raise AudioError(f"cannot listen device: {exc}") from exc

        group = _Group(context)
        ctx = group.context
        audio_outputs = broadcast(ctx, self._logger, listener.channel, 2)
        recognized: Channel[_Recognized] = Channel(_RECOGNIZED_CAPACITY)
        subs_outputs = broadcast(ctx, self._logger, recognized, 2)

        group.go("listen", lambda: listener.listen(ctx))
        group.go(
            "burn",
            lambda: self._burn_content(
                ctx, audio_outputs[0], listener.channels, listener.sample_rate
            ),
        )
        group.go(
            "recognize",
            lambda: self._recognize(ctx, audio_outputs[1], listener.sample_rate, recognized),
        )
        group.go("store-subs", lambda: self._store_subs(subs_outputs[0]))
        group.go("print-subs", lambda: self._print_subs(subs_outputs[1]))
        group.go(
            "socket",
            lambda: self._socket_manager.listen(self.socket_path, self._serve_subs),
        )

        try:
            error = group.wait()
        finally:
            with contextlib.suppress(NoSocketFoundError):
                self._socket_manager.close_by_path(self.socket_path)
        if error is not None:
            self._logger.error("Recognition failed error=%s", error)
            raise error

    def subs(self) -> str:
        """Return the current subtitles."""
        with self._subs_lock:
            return self._subs.format()

    def _serve_subs(self, conn) -> None:
        conn.sendall(self.subs().encode("utf-8"))

    def _burn_content(
        self, ctx: Context, source: Channel[Sequence[int]], channels: int, sample_rate: int
    ) -> None:
        name = datetime.now().strftime("%m.%d.%y %H_%M_%S output.wav")
        try:
            file = open(name, "wb")
        except OSError as exc:
            raise OSError(f"cannot create file: {exc}") from exc
        with file:
            try:
                self._burner.burn(ctx, file, source, channels, sample_rate)
            except BurnError as exc:
                raise BurnError(f"cannot burn: {exc}") from exc

    def _recognize(
        self,
        ctx: Context,
        source: Channel[Sequence[int]],
        sample_rate: int,
        out: Channel[_Recognized],
    ) -> None:
        try:
            while not ctx.cancelled():
                self._stream(ctx, source, sample_rate, out)
        finally:
            out.close()

    def _stream(
        self,
        ctx: Context,
        source: Channel[Sequence[int]],
        sample_rate: int,
        out: Channel[_Recognized],
    ) -> None:
        self._logger.info("New streaming recognize request")
        stream_ctx = ctx.child()
        try:
            session = self._speech_client.streaming_recognize(stream_ctx)
        except Exception as exc:
            stream_ctx.cancel()
            raise SpeechError(f"could not streaming recognize: {exc}") from exc

        group: _Group | None = None
        try:
            config = RecognitionConfig(
                sample_rate_hertz=sample_rate, language_code=self.language
            )
            try:
                session.send_config(config)
            except Exception as exc:
                raise SpeechError(f"could not send config request: {exc}") from exc

            group = _Group(stream_ctx)
            content_group = group
            group.go(
                "stream-content",
                lambda: self._stream_content(content_group.context, session, source),
            )
            group.go(
                "read-recognized",
                lambda: self._read_recognized(content_group.context, session, out),
            )
            self._await_stream(ctx, group)
        finally:
            stream_ctx.cancel()
            with contextlib.suppress(Exception):
                session.close_send()
            if group is not None:
                group.wait(_JOIN_TIMEOUT)

    def _await_stream(self, ctx: Context, group: _Group) -> None:
        deadline = time.monotonic() + self.stream_duration
        while True:
            if ctx.cancelled():
                self._logger.info("Stream exiting by parent ctx...")
                return
            if group.finished():
                error = group.error
                self._logger.info("Stream exiting by error... error=%s", error)
                if error is not None:
                    raise error
                return
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._logger.info("Stream exiting by timer (restart)...")
                return
            group.wait_finished(min(remaining, _POLL_INTERVAL))

    def _stream_content(
        self, ctx: Context, session: StreamingSession, source: Channel[Sequence[int]]
    ) -> None:
        while not ctx.cancelled():
            try:
                chunk = source.get(timeout=_POLL_INTERVAL)
            except TimeoutError:
                continue
            except ChannelClosed:
                return
            content = pcm16_bytes(chunk)
            try:
                session.send_audio(content)
            except Exception as exc:
                raise SpeechError(f"could not send audio: {exc}") from exc
            self._metrics.add_bytes_sent_to_speech(len(content))
        self._logger.info("[Stream Content] Shutting down...")

    def _read_recognized(
        self, ctx: Context, session: StreamingSession, out: Channel[_Recognized]
    ) -> None:
        while not ctx.cancelled():
            try:
                response = session.recv()
            except Exception as exc:
                if ctx.cancelled():
                    return
                raise SpeechError(f"cannot stream results: {exc}") from exc
            if response is None:
                return
            if response.error_code is not None:
                if response.error_code in _LIMIT_EXCEEDED_CODES:
                    self._logger.warning(
                        "Speech recognition request exceeded limit of 60 seconds."
                    )
                raise SpeechError(f"could not recognize: {response.error_message}")
            if response.speech_event != SPEECH_EVENT_UNSPECIFIED:
                self._logger.warning("Unusual event resp=%s", response)
                continue
            if not response.results:
                continue
            result = response.results[0]
            try:
                out.put(_Recognized(result.transcript.strip(), result.is_final, result.end_time))
            except ChannelClosed:
                return
        self._logger.info("[Read recognized] Shutting down...")

    def _store_subs(self, source: Channel[_Recognized]) -> None:
        for item in source:
            with self._subs_lock:
                self._subs.add_section(item.transcript, item.is_final)

    @contextlib.contextmanager
    def _console(self) -> Iterator[TextIO]:
        if self.console_stream is not None:
            yield self.console_stream
            return
        try:
            stream = os.fdopen(_CONSOLE_FD, "w", encoding="utf-8")
        except OSError as exc:
            self._logger.warning("Console descriptor is not available error=%s", exc)
            stream = open(os.devnull, "w", encoding="utf-8")
        with stream:
            yield stream

    def _print_subs(self, source: Channel[_Recognized]) -> None:
        with self._console() as stream:
            writer = ConsoleWriter(stream)

            def emit(action: Callable[[], None]) -> None:
                with contextlib.suppress(OSError):
                    action()
                    stream.flush()

            last_was_final = False
            for item in source:
                text = f"{_format_duration(item.end_time)}: {item.transcript}"
                if item.is_final:
                    emit(lambda: writer.print_success(text))
                else:
                    emit(lambda: writer.print_fail(text))
                last_was_final = item.is_final
            if not last_was_final:
                emit(writer.print_new_line)


class Recognition:
    """Starts, stops and inspects one recognition task per device."""

    def __init__(
        self,
        logger: logging.Logger,
        metrics: Metrics,
        audio: AudioService,
        burner: Burner,
        speech_client: SpeechClient,
        task_manager: TaskManager,
        socket_manager: SocketManager,
    ) -> None:
        self._logger = logger
        self._metrics = metrics
        self._audio = audio
        self._burner = burner
        self._speech_client = speech_client
        self._task_manager = task_manager
        self._socket_manager = socket_manager

    def start(self, device: str, language: str) -> tuple[str, str]:
        """Start recognising ``device``; return the task id and its socket path."""
        if self._task_manager.has(device):
            raise DeviceIsBusyError()
        socket_path = os.path.join(
            tempfile.gettempdir(), f"recognizer-{random.getrandbits(64)}.sock"
        )
        task = RecognizeTask(
            self._logger,
            self._metrics,
            self._audio,
            self._burner,
            self._socket_manager,
            self._speech_client,
            device,
            language,
            socket_path,
        )
        try:
            self._task_manager.go(device, task)
        except TaskIsRunningError as exc:
            raise RuntimeError(f"cannot run the task: {exc}") from exc
        return device, socket_path

    def stop(self, device: str) -> None:
        """Cancel the task of ``device``."""
        if not self._task_manager.has(device):
            raise NoDeviceBusyError()
        self._task_manager.cancel(device)

    def subs(self, device: str) -> str:
        """Return the current subtitles of the task of ``device``."""
        task = self._task_manager.get(device)
        if task is None:
            raise NoTaskError()
        if not isinstance(task, RecognizeTask):
            raise TypeError("task is not recognize task")
        return task.subs()