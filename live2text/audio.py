"""Input device discovery and capture into a channel of sample chunks."""

from __future__ import annotations

import contextlib
import logging
from array import array

from live2text.audio_backend import AudioBackend, DeviceInfo, StreamParameters
from live2text.concurrency import Channel, Context
from live2text.metrics import Metrics

DEFAULT_CHUNK_SIZE_MS = 100
_CHANNEL_CAPACITY = 1024


class AudioError(Exception):
    """Raised when a device cannot be found, opened or read."""


class DeviceListener:
    """Reads chunks of 16-bit samples from one device into :attr:`channel`."""

    def __init__(
        self,
        logger: logging.Logger,
        metrics: Metrics,
        backend: AudioBackend,
        device: DeviceInfo,
    ) -> None:
        self._logger = logger
        self._metrics = metrics
        self._backend = backend
        self.device = device
        self.channels = 1
        # Half the native rate keeps a five-minute stream small enough to send.
        self.sample_rate = int(device.default_sample_rate / 2)
        self.chunk_size_ms = DEFAULT_CHUNK_SIZE_MS
        self.channel: Channel[array] = Channel(_CHANNEL_CAPACITY)

    def listen(self, context: Context) -> None:
        """Capture until ``context`` is cancelled, then close the channel."""
        frames = self.sample_rate * self.chunk_size_ms // 1000
        buffer = array("h", [0]) * (frames * self.channels)
        parameters = StreamParameters(
            device=self.device,
            channels=self.channels,
            latency=self.device.default_high_input_latency,
            sample_rate=float(self.sample_rate),
            frames_per_buffer=frames,
        )
        try:
            stream = self._backend.open_stream(parameters, buffer)
        except Exception as exc:
            raise AudioError(f"could not open the stream: {exc}") from exc
        try:
            try:
                stream.start()
            except Exception as exc:
                raise AudioError(f"could not start the stream: {exc}") from exc
            try:
                self._read_loop(context, stream, buffer)
            finally:
                with contextlib.suppress(Exception):
                    stream.stop()
        finally:
            with contextlib.suppress(Exception):
                stream.close()

    def _read_loop(self, context: Context, stream, buffer: array) -> None:
        while True:
            try:
                stream.read()
            except Exception as exc:
                raise AudioError(f"could not read stream: {exc}") from exc
            chunk = array("h", buffer)
            self._metrics.add_bytes_read_from_audio(len(buffer) * 2)

            if context.cancelled():
                self._logger.info("shutdown of audio reader")
                self.channel.close()
                return
            if not self.channel.try_put(chunk):
                self._logger.error("The channel is full, segment was dropped")


class AudioService:
    """Lists input devices and creates listeners for them."""

    def __init__(
        self, logger: logging.Logger, metrics: Metrics, backend: AudioBackend
    ) -> None:
        self._logger = logger
        self._metrics = metrics
        self._backend = backend

    def _devices(self) -> list[DeviceInfo]:
        try:
            return list(self._backend.default_host_api().devices)
        except Exception as exc:
            raise AudioError(f"cannot list host apis: {exc}") from exc

    def list_devices(self) -> list[DeviceInfo]:
        """Return the devices that have at least one input channel."""
        return [d for d in self._devices() if d.max_input_channels >= 1]

    def find_input_device(self, device_name: str) -> DeviceInfo:
        """Return the last device named ``device_name``; it must have inputs."""
        matches = [d for d in self._devices() if d.name == device_name]
        if not matches:
            raise AudioError("device not found")
        device = matches[-1]
        if device.max_input_channels <= 0:
            raise AudioError("device hasn't input channels")
        return device

    def listen_device(self, device_name: str) -> DeviceListener:
        """Create a listener for the named device; start it with ``listen``."""
        try:
            device = self.find_input_device(device_name)
        except AudioError as exc:
            raise AudioError(f"could not find input device: {exc}") from exc
        return DeviceListener(self._logger, self._metrics, self._backend, device)