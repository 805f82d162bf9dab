"""Reflow formatting as text edits."""

from __future__ import annotations

import re

from lsprotocol.types import Range, TextEdit

from ..email.model import MessageAST
from ..email.reflow import DEFAULT_WIDTH, reflow_body, reflow_text
from .cancellation import CancellationToken
from .positions import LineIndex

_NEWLINE = re.compile(r"\r\n|\r|\n")


def detect_newline(text: str) -> str:
    match = _NEWLINE.search(text)
    return match.group(0) if match else "\n"


def format_document(
    ast: MessageAST,
    lines: LineIndex,
    width: int = DEFAULT_WIDTH,
    token: CancellationToken | None = None,
) -> list[TextEdit]:
    """Reflow the body. Headers are never touched; no edits when nothing changes."""
    start, end = ast.body.span.start, ast.body.span.end
    body = ast.text[start:end]
    if not body:
        return []
    formatted = reflow_body(body, width, detect_newline(ast.text))
    if token is not None:
        token.check()
    if formatted == body:
        return []
    return [TextEdit(range=lines.range_of(start, end), new_text=formatted)]


def format_range(
    ast: MessageAST,
    lines: LineIndex,
    rng: Range,
    width: int = DEFAULT_WIDTH,
    token: CancellationToken | None = None,
) -> list[TextEdit]:
    """Reflow the whole lines covered by `rng`."""
    first = min(rng.start.line, lines.line_count - 1)
    last = min(rng.end.line, lines.line_count - 1)
    # a selection ending at column 0 does not include that line
    if last > first and rng.end.character == 0:
        last -= 1
    start = lines.line_bounds(first)[0]
    end = lines.line_bounds(last)[1]
    selected = ast.text[start:end]
    formatted = reflow_text(selected, width, detect_newline(ast.text))
    if token is not None:
        token.check()
    if formatted == selected:
        return []
    return [TextEdit(range=lines.range_of(start, end), new_text=formatted)]
