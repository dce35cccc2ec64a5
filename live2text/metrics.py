"""Byte counters exposed in the Prometheus text format."""

from __future__ import annotations

import os
import threading
from typing import TextIO

try:
    import resource
except ImportError:  # not available on every platform
    resource = None

BYTES_SENT_TO_SPEECH = "recognizer_bytes_sent_to_google_speech"
BYTES_WRITTEN_ON_DISK = "recognizer_bytes_written_on_disk"
BYTES_READ_FROM_AUDIO = "recognizer_bytes_read_from_audio"

_FD_DIRECTORY = "/proc/self/fd"


class Metrics:
    """Thread-safe counters of bytes moved through the recognition pipeline."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters = {
            BYTES_SENT_TO_SPEECH: 0,
            BYTES_WRITTEN_ON_DISK: 0,
            BYTES_READ_FROM_AUDIO: 0,
        }

    def _add(self, name: str, count: int) -> None:
        with self._lock:
            self._counters[name] += count

    def add_bytes_sent_to_speech(self, count: int) -> None:
        self._add(BYTES_SENT_TO_SPEECH, count)

    def add_bytes_written_on_disk(self, count: int) -> None:
        self._add(BYTES_WRITTEN_ON_DISK, count)

    def add_bytes_read_from_audio(self, count: int) -> None:
        self._add(BYTES_READ_FROM_AUDIO, count)

    def write_prometheus(self, stream: TextIO) -> None:
        """Write process, file-descriptor and counter metrics to ``stream``."""
        _write_process_metrics(stream)
        _write_fd_metrics(stream)
        with self._lock:
            counters = sorted(self._counters.items())
        for name, value in counters:
            stream.write(f"{name} {value}\n")


def _write_process_metrics(stream: TextIO) -> None:
    times = os.times()
    stream.write(f"process_cpu_seconds_system_total {times.system}\n")
    stream.write(f"process_cpu_seconds_total {times.user + times.system}\n")
    stream.write(f"process_cpu_seconds_user_total {times.user}\n")
    if resource is not None:
        usage = resource.getrusage(resource.RUSAGE_SELF)
        stream.write(f"process_resident_memory_peak_bytes {usage.ru_maxrss * 1024}\n")


def _write_fd_metrics(stream: TextIO) -> None:
    if resource is not None:
        soft_limit, _ = resource.getrlimit(resource.RLIMIT_NOFILE)
        if soft_limit >= 0:
            stream.write(f"process_max_fds {soft_limit}\n")
    if os.path.isdir(_FD_DIRECTORY):
        stream.write(f"process_open_fds {len(os.listdir(_FD_DIRECTORY))}\n")