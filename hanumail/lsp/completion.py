"""Completion of header names and enumerated header values."""

from __future__ import annotations

from lsprotocol import types as lsp

from ..email.headers import KNOWN_HEADERS, canonical_name, describe, value_domain
from ..email.model import MessageAST
from .positions import LineIndex


def complete(ast: MessageAST, lines: LineIndex, line: int, offset: int) -> lsp.CompletionList:
    """Candidates for the cursor at `offset` on `line`; empty outside the header block."""
    if line >= lines.line_count or not ast.in_header_block(line):
        return lsp.CompletionList(is_incomplete=False, items=[])
    if ast.envelope is not None and line == 0:
        return lsp.CompletionList(is_incomplete=False, items=[])

    start, end = lines.line_bounds(line)
    text = lines.text[start:end]
    column = offset - start

    if text[:1] in (" ", "\t"):
        header = ast.header_at(offset)
        if header is None or header.is_malformed:
            return lsp.CompletionList(is_incomplete=False, items=[])
        return lsp.CompletionList(is_incomplete=False, items=value_items(header.name, needs_space=False))

    colon = text.find(":")
    if colon == -1 or column <= colon:
        return lsp.CompletionList(is_incomplete=False, items=header_name_items(needs_colon=colon == -1))

    name = text[:colon].strip()
    typed = text[colon + 1 : column]
    return lsp.CompletionList(is_incomplete=False, items=value_items(name, needs_space=typed == ""))


def header_name_items(needs_colon: bool = True) -> list[lsp.CompletionItem]:
    return [
        lsp.CompletionItem(
            label=name,
            kind=lsp.CompletionItemKind.Field,
            detail=description,
            insert_text=f"{name}: " if needs_colon else name,
            sort_text=f"{i:03d}",
        )
        for i, (name, description) in enumerate(KNOWN_HEADERS.items())
    ]


def value_items(header_name: str, needs_space: bool) -> list[lsp.CompletionItem]:
    detail = describe(header_name) or canonical_name(header_name)
    return [
        lsp.CompletionItem(
            label=value,
            kind=lsp.CompletionItemKind.EnumMember,
            detail=detail,
            insert_text=f" {value}" if needs_space else value,
            sort_text=f"{i:03d}",
        )
        for i, value in enumerate(value_domain(header_name))
    ]
