"""Collects captured samples and writes them out as a WAV file."""

from __future__ import annotations

import io
import logging
import sys
import wave
from array import array
from typing import BinaryIO, Sequence

from live2text.concurrency import Channel, ChannelClosed, Context
from live2text.metrics import Metrics

_POLL_INTERVAL = 0.02
_BITS_PER_SAMPLE = 16
_BITS_PER_BYTE = 8


class BurnError(Exception):
    """Raised when samples cannot be written."""


class Burner:
    """Buffers 16-bit samples until cancelled, then writes one WAV file."""

    def __init__(self, logger: logging.Logger, metrics: Metrics) -> None:
        self._logger = logger
        self._metrics = metrics

    def burn(
        self,
        context: Context,
        stream: BinaryIO,
        source: Channel[Sequence[int]],
        channels: int,
        sample_rate: int,
    ) -> None:
        """Read chunks from ``source`` until ``context`` is cancelled, then write WAV data."""
        if channels not in (1, 2):
            raise BurnError(f"unsupported number of channels: {channels}")

        samples = array("h")
        while not context.cancelled():
            try:
                chunk = source.get(timeout=_POLL_INTERVAL)
            except TimeoutError:
                continue
            except ChannelClosed:
                context.wait()
                break
            self._logger.debug("[Burner] Getting samples len=%d", len(chunk))
            if channels == 1:
                samples.extend(chunk)
            else:
                samples.extend(chunk[: len(chunk) // 2 * 2])

        frames = len(samples) // channels
        self._logger.info("[Burner] Writing samples... total=%d", frames)
        data = _wav_bytes(samples, channels, sample_rate, frames)
        try:
            stream.write(data)
            stream.flush()
        except OSError as exc:
            raise BurnError(f"cannot write samples: {exc}") from exc

        self._logger.info("[Burner] Writing samples is done!")
        self._metrics.add_bytes_written_on_disk(frames * (_BITS_PER_SAMPLE // _BITS_PER_BYTE))


def _wav_bytes(samples: array, channels: int, sample_rate: int, frames: int) -> bytes:
    if sys.byteorder == "big":
        samples = array("h", samples)
        samples.byteswap()
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(_BITS_PER_SAMPLE // _BITS_PER_BYTE)
        wav.setframerate(sample_rate)
        wav.setnframes(frames)
        wav.writeframes(samples.tobytes())
    return buffer.getvalue()