"""Audio device descriptions, the backend interface, and an in-memory fake backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import MutableSequence, Protocol


@dataclass(frozen=True)
class DeviceInfo:
    name: str
    max_input_channels: int = 0
    max_output_channels: int = 0
    default_sample_rate: float = 0.0
    default_low_input_latency: float = 0.0
    default_high_input_latency: float = 0.0


@dataclass
class HostApiInfo:
    name: str = ""
    devices: list[DeviceInfo] = field(default_factory=list)


@dataclass(frozen=True)
class StreamParameters:
    device: DeviceInfo
    channels: int
    latency: float
    sample_rate: float
    frames_per_buffer: int


class Stream(Protocol):
    """An input stream that fills its buffer on each read."""

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def read(self) -> None: ...

    def close(self) -> None: ...


class AudioBackend(Protocol):
    """Access to the host's audio devices."""

    def open_stream(
        self, parameters: StreamParameters, buffer: MutableSequence[int]
    ) -> Stream: ...

    def default_host_api(self) -> HostApiInfo: ...

    def close(self) -> None: ...


@dataclass
class FakeStream:
    """A stream whose operations raise the configured errors."""

    start_error: Exception | None = None
    read_error: Exception | None = None
    close_error: Exception | None = None
    stop_error: Exception | None = None
    started: bool = False
    stopped: bool = False
    closed: bool = False
    reads: int = 0

    def start(self) -> None:
        self.started = True
        if self.start_error is not None:
            raise self.start_error

    def stop(self) -> None:
        self.stopped = True
        if self.stop_error is not None:
            raise self.stop_error

    def read(self) -> None:
        self.reads += 1
        if self.read_error is not None:
            raise self.read_error

    def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


@dataclass
class FakeAudioBackend:
    """A backend that hands out configured host info and streams."""

    open_stream_stream: FakeStream = field(default_factory=FakeStream)
    open_stream_error: Exception | None = None
    default_host_api_info: HostApiInfo = field(default_factory=HostApiInfo)
    default_host_api_error: Exception | None = None
    close_error: Exception | None = None
    opened: list[StreamParameters] = field(default_factory=list)

    def open_stream(
        self, parameters: StreamParameters, buffer: MutableSequence[int]
    ) -> FakeStream:
        self.opened.append(parameters)
        if self.open_stream_error is not None:
            raise self.open_stream_error
        return self.open_stream_stream

    def default_host_api(self) -> HostApiInfo:
        if self.default_host_api_error is not None:
            raise self.default_host_api_error
        return self.default_host_api_info

    def close(self) -> None:
        if self.close_error is not None:
            raise self.close_error