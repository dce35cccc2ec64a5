"""Coloured terminal output for interim and final transcripts."""

from __future__ import annotations

from typing import TextIO

RED = "\033[0;31m"
GREEN = "\033[0;32m"
YELLOW = "\033[0;33m"
ERASE = "\033[K"


class ConsoleWriter:
    """Writes final lines in green and interim lines in red, overwriting in place."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def print_success(self, text: str) -> None:
        self._stream.write(f"{GREEN}{ERASE}{text}\n")

    def print_fail(self, text: str) -> None:
        self._stream.write(f"{RED}{ERASE}{text}\r")

    def print_new_line(self) -> None:
        self._stream.write("\n")