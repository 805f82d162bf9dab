"""
Structural model of an analysed email message.

All spans are half-open character offsets into the message text. A header
that failed to parse is still present in `MessageAST.headers`, tagged with
`parse_error`, so later stages can report it without losing its position.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_MSG_ID = re.compile(r"<([^<>\s]+)>")


@dataclass(frozen=True)
class Span:
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, offset: int) -> bool:
        """Inclusive of the end so a cursor just after the text still hits."""
        return self.start <= offset <= self.end

    def shifted(self, delta: int) -> Span:
        return Span(self.start + delta, self.end + delta)


@dataclass(frozen=True)
class Mailbox:
    """One entry of an address list."""

    display_name: str | None
    mailbox: str
    span: Span
    valid: bool
    error: str | None = None

    @property
    def local_part(self) -> str:
        return self.mailbox.rpartition("@")[0]

    @property
    def domain(self) -> str:
        return self.mailbox.rpartition("@")[2] if "@" in self.mailbox else ""


@dataclass(frozen=True)
class Header:
    name: str
    raw_value: str
    span: Span
    name_span: Span
    value_span: Span
    segments: tuple[Span, ...]
    parse_error: str | None = None
    addresses: tuple[Mailbox, ...] = ()

    @property
    def key(self) -> str:
        return self.name.lower()

    @property
    def is_malformed(self) -> bool:
        return self.parse_error is not None

    @property
    def value(self) -> str:
        """Unfolded value: folding line breaks removed, whitespace trimmed."""
        return re.sub(r"\r\n|\r|\n", "", self.raw_value).strip()

    def message_ids(self) -> list[tuple[str, Span]]:
        """`<id>` tokens in the value with their spans (brackets included)."""
        base = self.value_span.start
        return [(m.group(1), Span(base + m.start(), base + m.end())) for m in _MSG_ID.finditer(self.raw_value)]


@dataclass(frozen=True)
class Body:
    span: Span


@dataclass(frozen=True)
class MessageAST:
    text: str
    headers: tuple[Header, ...]
    body: Body
    header_lines: int
    separator_line: int | None = None
    envelope: Span | None = None
    _by_key: dict[str, tuple[Header, ...]] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        grouped: dict[str, list[Header]] = {}
        for header in self.headers:
            if not header.is_malformed:
                grouped.setdefault(header.key, []).append(header)
        self._by_key.update({k: tuple(v) for k, v in grouped.items()})

    @property
    def body_text(self) -> str:
        return self.text[self.body.span.start : self.body.span.end]

    @property
    def malformed(self) -> list[Header]:
        return [h for h in self.headers if h.is_malformed]

    def get_all(self, name: str) -> tuple[Header, ...]:
        return self._by_key.get(name.lower(), ())

    def get(self, name: str) -> Header | None:
        found = self.get_all(name)
        return found[0] if found else None

    def has(self, name: str) -> bool:
        return name.lower() in self._by_key

    def in_header_block(self, line: int) -> bool:
        """True for header lines and for the blank line closing the block."""
        if self.separator_line is None:
            return line < self.header_lines
        return line <= self.separator_line

    def header_at(self, offset: int) -> Header | None:
        for header in self.headers:
            if header.span.contains(offset):
                return header
        return None

    def mailbox_at(self, offset: int) -> tuple[Header, Mailbox] | None:
        header = self.header_at(offset)
        if header is None:
            return None
        for mailbox in header.addresses:
            if mailbox.span.contains(offset):
                return header, mailbox
        return None
