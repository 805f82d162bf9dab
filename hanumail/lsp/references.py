"""
Cross-message navigation by Message-ID.

Messages point at each other through identifiers, not through direct
references: `In-Reply-To` and `References` carry the Message-ID of earlier
messages. The index maps every identifier seen in the open documents to the
locations where it is defined (a `Message-ID` header) and where it is
referenced. It is rebuilt from snapshots on each request.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from lsprotocol.types import Location

from ..email.headers import REFERENCE_HEADERS
from ..email.model import MessageAST
from .cancellation import CancellationToken

DEFINITION_HEADERS = frozenset({"message-id"})


@dataclass
class MessageIdIndex:
    definitions: dict[str, list[Location]] = field(default_factory=dict)
    references: dict[str, list[Location]] = field(default_factory=dict)

    def add(self, snapshot, ast: MessageAST) -> None:
        for header in ast.headers:
            if header.is_malformed:
                continue
            if header.key in DEFINITION_HEADERS:
                target = self.definitions
            elif header.key in REFERENCE_HEADERS:
                target = self.references
            else:
                continue
            for message_id, span in header.message_ids():
                location = Location(uri=snapshot.uri, range=snapshot.lines.range_of(span.start, span.end))
                target.setdefault(message_id, []).append(location)


def build_message_id_index(
    snapshots: Iterable,
    token: CancellationToken | None = None,
) -> MessageIdIndex:
    index = MessageIdIndex()
    for snapshot in snapshots:
        if token is not None:
            token.check()
        index.add(snapshot, snapshot.analyze())
    return index


def message_id_at(ast: MessageAST, offset: int) -> tuple[str, str] | None:
    """(header key, message id) for the `<id>` token under the cursor."""
    header = ast.header_at(offset)
    if header is None or header.is_malformed:
        return None
    if header.key not in DEFINITION_HEADERS and header.key not in REFERENCE_HEADERS:
        return None
    for message_id, span in header.message_ids():
        if span.contains(offset):
            return header.key, message_id
    return None


def find_definition(index: MessageIdIndex, ast: MessageAST, offset: int) -> list[Location]:
    found = message_id_at(ast, offset)
    if found is None or found[0] not in REFERENCE_HEADERS:
        return []
    return list(index.definitions.get(found[1], []))


def find_references(
    index: MessageIdIndex,
    ast: MessageAST,
    offset: int,
    include_declaration: bool = False,
) -> list[Location]:
    found = message_id_at(ast, offset)
    if found is None:
        return []
    message_id = found[1]
    locations = list(index.references.get(message_id, []))
    if include_declaration:
        locations = index.definitions.get(message_id, []) + locations
    return locations
