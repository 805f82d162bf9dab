"""
Line-oriented scanner for RFC 5322 messages.

The scanner never gives up on a document:

- `Name: value` starts a header
- a line starting with a space or tab continues the previous header
- the first empty line ends the header block; the rest is the body
- a first line of the form `From <sender> <date>` is an mbox separator,
  not a header; any other `From ` line without a colon is malformed
- anything else inside the header block becomes a header tagged with
  `parse_error`, and scanning carries on with the next line
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field

from .addresses import parse_address_list
from .headers import ADDRESS_HEADERS
from .model import Body, Header, MessageAST, Span

# RFC 5322 field-name: printable US-ASCII except ':'
HEADER_START = re.compile(r"([!-9;-~]+):")
# mbox separator: "From <sender> <asctime>", e.g. "From a@b.c Tue Jul  1 10:00:00 2025"
MBOX_FROM = re.compile(
    r"From \S+ +(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun) +"
    r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec) +\d{1,2} +"
    r"\d{1,2}:\d{2}(?::\d{2})?(?: +[A-Z]{3,4}| +[+-]\d{4})? +\d{4}\s*"
)
_TERMINATOR = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True)
class Line:
    number: int
    start: int
    end: int
    next_start: int


def iter_lines(text: str) -> Iterator[Line]:
    """Physical lines with their content span and the start of the next line."""
    start = 0
    number = 0
    for match in _TERMINATOR.finditer(text):
        yield Line(number, start, match.start(), match.end())
        start = match.end()
        number += 1
    yield Line(number, start, len(text), len(text))


@dataclass
class _PendingHeader:
    name: str
    start: int
    name_end: int
    value_start: int
    end: int
    segments: list[Span] = field(default_factory=list)
    parse_error: str | None = None

    def build(self, text: str) -> Header:
        raw_value = text[self.value_start : self.end]
        addresses = ()
        if self.parse_error is None and self.name.lower() in ADDRESS_HEADERS:
            addresses = parse_address_list(raw_value, base=self.value_start)
        return Header(
            name=self.name,
            raw_value=raw_value,
            span=Span(self.start, self.end),
            name_span=Span(self.start, self.name_end),
            value_span=Span(self.value_start, self.end),
            segments=tuple(self.segments),
            parse_error=self.parse_error,
            addresses=addresses,
        )


def _malformed(line: Line, content: str, reason: str) -> _PendingHeader:
    name = content.partition(":")[0].strip() if ":" in content else ""
    return _PendingHeader(
        name=name,
        start=line.start,
        name_end=line.start + len(name),
        value_start=line.end,
        end=line.end,
        segments=[Span(line.start, line.end)],
        parse_error=reason,
    )


def parse_message(text: str) -> MessageAST:
    """Analyse a message into headers and body. Never raises on content."""
    headers: list[Header] = []
    current: _PendingHeader | None = None
    envelope: Span | None = None
    separator: int | None = None
    body_start = len(text)
    header_lines = 0

    for line in iter_lines(text):
        content = text[line.start : line.end]
        header_lines = line.number + 1

        if not content:
            # the empty tail after a final terminator is not a separator
            if line.start == len(text) and line.number > 0:
                break
            separator = line.number
            body_start = line.next_start
            break

        if line.number == 0 and MBOX_FROM.fullmatch(content):
            envelope = Span(line.start, line.end)
            continue

        if content[0] in " \t":
            if current is not None:
                current.end = line.end
                current.segments.append(Span(line.start, line.end))
                continue
            current = _malformed(line, content, "continuation line without a preceding header")
            continue

        if current is not None:
            headers.append(current.build(text))
            current = None

        match = HEADER_START.match(content)
        if match:
            name = match.group(1)
            current = _PendingHeader(
                name=name,
                start=line.start,
                name_end=line.start + len(name),
                value_start=line.start + match.end(),
                end=line.end,
                segments=[Span(line.start, line.end)],
            )
        elif ":" in content:
            current = _malformed(line, content, "invalid character in header name")
        else:
            current = _malformed(line, content, "expected 'Name: value'")

    if current is not None:
        headers.append(current.build(text))

    return MessageAST(
        text=text,
        headers=tuple(headers),
        body=Body(Span(body_start, len(text))),
        header_lines=header_lines,
        separator_line=separator,
        envelope=envelope,
    )
