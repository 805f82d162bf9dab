"""
Conversion between character offsets and protocol positions.

Internally every range is a pair of offsets into the Python string. On the
wire a position is (line, character) where character counts UTF-16 code
units of that line. Line terminators are \\r\\n, \\n and \\r.
"""

from __future__ import annotations

from bisect import bisect_right

from lsprotocol.types import Position, Range


def utf16_len(text: str) -> int:
    """Number of UTF-16 code units needed to encode `text`."""
    return len(text) + sum(1 for ch in text if ord(ch) > 0xFFFF)


def line_starts(text: str) -> list[int]:
    """Offsets at which each line of `text` begins."""
    starts = [0]
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\r":
            if i + 1 < n and text[i + 1] == "\n":
                i += 1
            starts.append(i + 1)
        elif ch == "\n":
            starts.append(i + 1)
        i += 1
    return starts


class LineIndex:
    """Line table over a fixed text."""

    def __init__(self, text: str):
        self.text = text
        self.starts = line_starts(text)

    @property
    def line_count(self) -> int:
        return len(self.starts)

    def line_bounds(self, line: int) -> tuple[int, int]:
        """(start, end) offsets of a line's content, terminator excluded."""
        start = self.starts[line]
        if line + 1 < len(self.starts):
            end = self.starts[line + 1]
            if end > start and self.text[end - 1] == "\n":
                end -= 1
            if end > start and self.text[end - 1] == "\r":
                end -= 1
        else:
            end = len(self.text)
        return start, end

    def line_text(self, line: int) -> str:
        start, end = self.line_bounds(line)
        return self.text[start:end]

    def line_of(self, offset: int) -> int:
        offset = max(0, min(offset, len(self.text)))
        return bisect_right(self.starts, offset) - 1

    def offset_at(self, position: Position) -> int:
        """Offset for a protocol position, clamped to the document."""
        if position.line >= len(self.starts):
            return len(self.text)
        start, end = self.line_bounds(position.line)
        units = 0
        offset = start
        while offset < end:
            width = 2 if ord(self.text[offset]) > 0xFFFF else 1
            if units + width > position.character:
                break
            units += width
            offset += 1
        return offset

    def position_at(self, offset: int) -> Position:
        offset = max(0, min(offset, len(self.text)))
        line = self.line_of(offset)
        start, end = self.line_bounds(line)
        # an offset inside a \r\n pair reports the end of the line
        column = utf16_len(self.text[start : min(offset, end)])
        return Position(line=line, character=column)

    def range_of(self, start: int, end: int) -> Range:
        return Range(start=self.position_at(start), end=self.position_at(end))

    def offsets_of(self, rng: Range) -> tuple[int, int]:
        return self.offset_at(rng.start), self.offset_at(rng.end)
