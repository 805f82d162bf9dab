"""
Address-list parsing for From/To/Cc/Bcc/Reply-To style headers.

Entries are split on commas that are not inside a quoted string, an angle
address, a domain literal or a comment. Each entry is one of:

    "Display Name" <local@domain>
    Display Name <local@domain>
    local@domain
    local@domain (Display Name)

An entry that does not fit is kept with `valid=False`, its exact span and a
short reason, so one bad recipient never hides the others.
"""

from __future__ import annotations

import re

from .model import Mailbox, Span

_ATEXT = r"A-Za-z0-9!#$%&'*+/=?^_`{|}~\-\u0080-\U0010FFFF"
_DOT_ATOM = rf"[{_ATEXT}]+(?:\.[{_ATEXT}]+)*"
_QUOTED_STRING = r'"(?:[^"\\\r\n]|\\.)*"'
_LABEL = r"[A-Za-z0-9\u0080-\U0010FFFF](?:[A-Za-z0-9\-\u0080-\U0010FFFF]*[A-Za-z0-9\u0080-\U0010FFFF])?"
_DOMAIN = rf"(?:{_LABEL}(?:\.{_LABEL})*|\[[^\[\]\\\s]*\])"

ADDR_SPEC = re.compile(rf"(?:{_DOT_ATOM}|{_QUOTED_STRING})@{_DOMAIN}")

_QUOTED = re.compile(r'"(?:[^"\\]|\\.)*"')
_PHRASE_SPECIALS = frozenset('"<>@[]:;\\,')
_WORD = re.compile(r'"((?:[^"\\]|\\.)*)"|([^\s"]+)')


def parse_address_list(raw: str, base: int = 0) -> tuple[Mailbox, ...]:
    """Parse a header value into mailboxes.

    Args:
        raw: the raw header value, folding included
        base: document offset of raw[0], used to place entry spans

    Returns:
        Mailboxes in order of appearance; empty entries are skipped.
    """
    mailboxes: list[Mailbox] = []
    for start, end in _split_entries(raw):
        while start < end and raw[start].isspace():
            start += 1
        while end > start and raw[end - 1].isspace():
            end -= 1
        if start == end:
            continue
        mailboxes.append(parse_mailbox(raw[start:end], Span(base + start, base + end)))
    return tuple(mailboxes)


def parse_mailbox(text: str, span: Span) -> Mailbox:
    """Parse a single trimmed entry."""
    lt = _find_unquoted(text, "<")
    if lt != -1:
        gt = text.find(">", lt)
        if gt == -1:
            return _invalid(None, text[lt + 1 :].strip(), span, "unterminated angle bracket")
        display, display_error = _display_name(text[:lt])
        addr = _collapse(text[lt + 1 : gt])
        trailing, _, unterminated = _split_comments(text[gt + 1 :])
        if unterminated:
            return _invalid(display, addr, span, "unterminated comment")
        if trailing.strip():
            return _invalid(display, addr, span, "unexpected text after '>'")
        if not addr:
            return _invalid(display, addr, span, "empty address")
        error = display_error or check_addr_spec(addr)
        if error:
            return _invalid(display, addr, span, error)
        return Mailbox(display_name=display, mailbox=addr, span=span, valid=True)

    rest, comments, unterminated = _split_comments(text)
    addr = rest.strip()
    display = _collapse(comments[0]) if comments else None
    if unterminated:
        return _invalid(display, addr, span, "unterminated comment")
    error = check_addr_spec(addr)
    if error:
        return _invalid(display, addr, span, error)
    return Mailbox(display_name=display or None, mailbox=addr, span=span, valid=True)


def check_addr_spec(addr: str) -> str | None:
    """Return None for a valid `local@domain`, otherwise a reason."""
    if ADDR_SPEC.fullmatch(addr):
        return None
    if "@" not in addr:
        return "missing '@' between local part and domain"
    local, _, domain = addr.rpartition("@")
    if not local:
        return "missing local part before '@'"
    if not domain:
        return "missing domain after '@'"
    if any(ch.isspace() for ch in addr):
        return "whitespace inside address"
    return "malformed address"


def _invalid(display: str | None, addr: str, span: Span, error: str) -> Mailbox:
    return Mailbox(display_name=display, mailbox=addr, span=span, valid=False, error=error)


def _collapse(text: str) -> str:
    return " ".join(text.split())


def _display_name(phrase: str) -> tuple[str | None, str | None]:
    phrase = phrase.strip()
    if not phrase:
        return None, None
    words = [quoted if quoted or atom == "" else atom for quoted, atom in _WORD.findall(phrase)]
    display = _collapse(re.sub(r"\\(.)", r"\1", " ".join(words)))
    if any(ch in _PHRASE_SPECIALS for ch in _QUOTED.sub(" ", phrase)):
        return display, "display name contains special characters and must be quoted"
    return display or None, None


def _find_unquoted(text: str, target: str) -> int:
    quoted = False
    escape = False
    depth = 0
    for i, ch in enumerate(text):
        if escape:
            escape = False
            continue
        if ch == "\\" and (quoted or depth):
            escape = True
        elif quoted:
            quoted = ch != '"'
        elif depth:
            depth += {"(": 1, ")": -1}.get(ch, 0)
        elif ch == '"':
            quoted = True
        elif ch == "(":
            depth = 1
        elif ch == target:
            return i
    return -1


def _split_comments(text: str) -> tuple[str, list[str], bool]:
    """Remove top-level `(comments)`; returns (rest, comments, unterminated)."""
    rest: list[str] = []
    comments: list[str] = []
    current: list[str] = []
    depth = 0
    quoted = False
    escape = False
    for ch in text:
        if depth:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    comments.append("".join(current))
                    current = []
                    continue
            current.append(ch)
            continue
        if quoted:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                quoted = False
            rest.append(ch)
        elif ch == "(":
            depth = 1
        else:
            quoted = ch == '"'
            rest.append(ch)
    return "".join(rest), comments, depth > 0


def _split_entries(raw: str) -> list[tuple[int, int]]:
    """Entry boundaries within raw; group labels (`name:`) and `;` delimit too."""
    segments: list[tuple[int, int]] = []
    start = 0
    quoted = False
    escape = False
    comment = 0
    angle = 0
    literal = 0
    for i, ch in enumerate(raw):
        if escape:
            escape = False
            continue
        if ch == "\\" and (quoted or comment):
            escape = True
        elif quoted:
            quoted = ch != '"'
        elif comment:
            comment += {"(": 1, ")": -1}.get(ch, 0)
        elif ch == '"':
            quoted = True
        elif ch == "(":
            comment = 1
        elif ch == "[":
            literal += 1
        elif ch == "]":
            literal = max(0, literal - 1)
        elif literal:
            # domain literals such as [IPv6:2001:db8::1]
            continue
        elif ch == "<":
            angle += 1
        elif ch == ">":
            angle = max(0, angle - 1)
        elif angle == 0 and ch in ",;":
            segments.append((start, i))
            start = i + 1
        elif angle == 0 and ch == ":":
            start = i + 1
    segments.append((start, len(raw)))
    return segments
