"""Types and interfaces for streaming speech recognition."""

from __future__ import annotations

import sys
from array import array
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from live2text.concurrency import Context

LINEAR16 = "LINEAR16"
SPEECH_EVENT_UNSPECIFIED = "SPEECH_EVENT_UNSPECIFIED"


class SpeechError(Exception):
    """Raised when a recognition stream cannot be opened, fed or read."""


@dataclass(frozen=True)
class RecognitionConfig:
    """The first message of a stream: how the audio that follows is encoded."""

    sample_rate_hertz: int
    language_code: str
    encoding: str = LINEAR16
    max_alternatives: int = 1
    interim_results: bool = True


@dataclass(frozen=True)
class RecognitionResult:
    """The best alternative of one result; ``end_time`` is in seconds."""

    transcript: str
    is_final: bool = False
    end_time: float = 0.0


@dataclass(frozen=True)
class StreamingResponse:
    """One message received from a recognition stream."""

    results: list[RecognitionResult] = field(default_factory=list)
    speech_event: str = SPEECH_EVENT_UNSPECIFIED
    error_code: int | None = None
    error_message: str = ""


class StreamingSession(Protocol):
    """A bidirectional recognition stream."""

    def send_config(self, config: RecognitionConfig) -> None: ...

    def send_audio(self, content: bytes) -> None: ...

    def recv(self) -> StreamingResponse | None:
        """Return the next response, or None once the stream has ended."""
        ...

    def close_send(self) -> None: ...


class SpeechClient(Protocol):
    """Opens recognition streams; a stream ends when its context is cancelled."""

    def streaming_recognize(self, context: Context) -> StreamingSession: ...

    def close(self) -> None: ...


def pcm16_bytes(samples: Iterable[int]) -> bytes:
    """Encode 16-bit samples as little-endian PCM."""
    data = array("h", samples)
    if sys.byteorder == "big":
        data.byteswap()
    return data.tobytes()