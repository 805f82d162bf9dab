"""
Hover information providers for LSP.

Provides information when hovering over:
- an address entry: display name / mailbox decomposition
- a header name: what the header is for
"""

from __future__ import annotations

from ..email.headers import canonical_name, describe
from ..email.model import Header, Mailbox, MessageAST, Span


def get_hover_info(ast: MessageAST, offset: int) -> tuple[str, Span] | None:
    """
    Get hover content for a character offset.

    Returns:
        (markdown, span the content applies to), or None if there is nothing to show
    """
    found = ast.mailbox_at(offset)
    if found is not None:
        header, mailbox = found
        return format_mailbox(header, mailbox), mailbox.span

    header = ast.header_at(offset)
    if header is None or header.is_malformed or not header.name_span.contains(offset):
        return None
    text = format_header(header)
    if text is None:
        return None
    return text, header.name_span


def format_mailbox(header: Header, mailbox: Mailbox) -> str:
    lines = [f"**{canonical_name(header.name)}** address", ""]
    if mailbox.display_name:
        lines.append(f"- **Display name:** {mailbox.display_name}")
    lines.append(f"- **Mailbox:** `{mailbox.mailbox}`")
    if mailbox.valid:
        lines.append(f"- **Local part:** `{mailbox.local_part}`")
        lines.append(f"- **Domain:** `{mailbox.domain}`")
    else:
        lines.append("")
        lines.append(f"**Invalid:** {mailbox.error}")
    return "\n".join(lines)


def format_header(header: Header) -> str | None:
    description = describe(header.name)
    if description is None:
        return None
    return f"**{canonical_name(header.name)}**\n\n{description}"
