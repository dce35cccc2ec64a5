"""Rolling subtitle buffer that wraps recognised text into a fixed number of lines."""

from __future__ import annotations

from dataclasses import dataclass, field

_SEPARATOR_LENGTH = 1


@dataclass
class _Section:
    text: str
    is_final: bool


@dataclass
class _LineBreak:
    section_id: int
    offset: int


@dataclass
class SubtitleWriter:
    """Keeps the most recent recognised sections, wrapped to ``per_line`` columns.

    Only the last ``total_lines`` lines are returned by :meth:`format`.
    A non-final section is replaced by the next section added, until a
    final one closes it.
    """

    total_lines: int = 2
    per_line: int = 80
    _sections: list[_Section] = field(default_factory=list, init=False, repr=False)
    _breaks: list[_LineBreak] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.total_lines:
            self.total_lines = 2
        if not self.per_line:
            self.per_line = 80

    def add_section(self, text: str, is_final: bool) -> None:
        """Add recognised text, replacing the previous section if it was not final."""
        if is_final:
            text += "."

        if not self._sections or self._sections[-1].is_final:
            self._sections.append(_Section(text, is_final))
        else:
            last_id = len(self._sections) - 1
            self._sections[last_id] = _Section(text, is_final)
            self._breaks = [b for b in self._breaks if b.section_id != last_id]

        line_length = 0
        start_id = 0
        if self._breaks:
            last_break = self._breaks[-1]
            line_length = len(self._sections[last_break.section_id].text) - last_break.offset
            start_id = last_break.section_id + 1
        for section in self._sections[start_id:-1]:
            line_length += _SEPARATOR_LENGTH + len(section.text)

        new_id = len(self._sections) - 1
        offset = 0
        for position, word in enumerate(text.split()):
            word = word[: self.per_line]
            part_length = len(word) + (_SEPARATOR_LENGTH if position > 0 else 0)
            line_length += part_length
            if line_length > self.per_line:
                self._breaks.append(_LineBreak(new_id, offset))
                line_length = len(word)
            offset += part_length

        self._normalize()

    def _normalize(self) -> None:
        last_id = len(self._sections) - 1
        breaks_before_pending = 0
        if not self._sections[last_id].is_final:
            for line_break in self._breaks:
                if line_break.section_id >= last_id:
                    break
                breaks_before_pending += 1

        if len(self._breaks) - breaks_before_pending > self.total_lines:
            extracts = len(self._breaks) - self.total_lines
            remaining = self._breaks[extracts:]
            first_id = remaining[0].section_id
            self._sections = self._sections[first_id:]
            self._breaks = [
                _LineBreak(b.section_id - first_id, b.offset) for b in remaining
            ]

    def format(self) -> str:
        """Return the visible lines joined by newlines."""
        lines: list[list[str]] = [[]]
        line_index = 0

        for section_id, section in enumerate(self._sections):
            text = section.text
            offsets: list[int] = []
            for line_break in self._breaks:
                if line_break.section_id == section_id:
                    offsets.append(line_break.offset)
                    lines.append([])

            if not offsets:
                lines[line_index].append(text)
                continue

            if offsets[0] == 0:
                line_index += 1
            else:
                offsets.insert(0, 0)

            for start, end in zip(offsets, offsets[1:]):
                lines[line_index].append(text[start:end].lstrip(" "))
                line_index += 1
            lines[line_index].append(text[offsets[-1]:].lstrip(" "))

        start = max(0, len(lines) - self.total_lines)
        return "\n".join(" ".join(line) for line in lines[start:])