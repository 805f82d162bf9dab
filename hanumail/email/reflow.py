"""
Quote-aware paragraph reflow for message bodies.

Each line gets a quote level (the number of `>` markers leading it). Runs of
lines at the same level are joined and wrapped at `width - 2 * level`, then
re-prefixed with `> ` per level. Blank lines split paragraphs and are kept,
and a blank line is inserted where quoted text meets unquoted text.
"""

from __future__ import annotations

import re
import textwrap

DEFAULT_WIDTH = 78
MIN_WIDTH = 20

_TERMINATOR = re.compile(r"\r\n|\r|\n")
_SIGNATURE = re.compile(r"^-- \r?$", re.MULTILINE)


def quote_level(line: str) -> tuple[int, str]:
    """Split a line into its quote depth and the remaining text."""
    i = 0
    level = 0
    while i < len(line) and line[i] in " >":
        if line[i] == ">":
            level += 1
        i += 1
    return level, line[i:].rstrip()


def _prefix(level: int) -> str:
    return "> " * level


def _wrap(words: list[str], level: int, width: int) -> list[str]:
    available = max(width - 2 * level, MIN_WIDTH)
    wrapped = textwrap.wrap(
        " ".join(words),
        width=available,
        break_long_words=False,
        break_on_hyphens=False,
    )
    return [_prefix(level) + line for line in wrapped]


def reflow_lines(lines: list[str], width: int = DEFAULT_WIDTH) -> list[str]:
    out: list[str] = []
    words: list[str] = []
    level: int | None = None
    last_blank = True

    def flush() -> None:
        nonlocal words
        if words and level is not None:
            out.extend(_wrap(words, level, width))
        words = []

    for line in lines:
        line_level, text = quote_level(line)
        if not text:
            flush()
            out.append(_prefix(line_level).rstrip())
            level = line_level
            last_blank = True
            continue
        if words and line_level != level:
            flush()
            if (level == 0 or line_level == 0) and not last_blank:
                out.append("")
        words.extend(text.split())
        level = line_level
        last_blank = False
    flush()
    return out


def reflow_text(text: str, width: int = DEFAULT_WIDTH, newline: str = "\n") -> str:
    """Reflow a block of text. A trailing line break is preserved."""
    lines = _TERMINATOR.split(text)
    trailing = len(lines) > 1 and lines[-1] == ""
    if trailing:
        lines.pop()
    result = newline.join(reflow_lines(lines, width))
    return result + newline if trailing else result


def reflow_body(body: str, width: int = DEFAULT_WIDTH, newline: str = "\n") -> str:
    """Reflow a message body, leaving the signature block untouched."""
    match = _SIGNATURE.search(body)
    if match is None:
        return reflow_text(body, width, newline)
    head, tail = body[: match.start()], body[match.start() :]
    if not head:
        return body
    return reflow_text(head, width, newline) + tail
