"""
Versioned in-memory store of open documents.

Only the event loop writes to the store. Everything else (feature
handlers, analysis jobs on the worker pool) works on `DocumentSnapshot`s,
which are immutable and keep the text and version they were taken with.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Iterator, Sequence

from lsprotocol import types as lsp
from pygls.exceptions import JsonRpcInvalidParams

from .email.model import MessageAST
from .email.parser import parse_message
from .lsp.errors import DocumentExistsError, DocumentNotFoundError
from .lsp.positions import LineIndex

logger = logging.getLogger(__name__)


@dataclass
class Document:
    uri: str
    text: str
    version: int = 0
    client_version: int | None = None
    language_id: str = "email"
    analyzed: MessageAST | None = None


@dataclass(frozen=True)
class DocumentSnapshot:
    """Read-only view of a document at one version."""

    uri: str
    version: int
    client_version: int | None
    text: str
    analyzed: MessageAST | None = None

    def analyze(self) -> MessageAST:
        """The cached analysis when present, otherwise a fresh parse."""
        if self.analyzed is not None:
            return self.analyzed
        return parse_message(self.text)

    @cached_property
    def lines(self) -> LineIndex:
        return LineIndex(self.text)


def apply_changes(text: str, changes: Sequence[lsp.TextDocumentContentChangeEvent]) -> str:
    """Apply changes in order; each ranged change sees the result of the previous one."""
    for change in changes:
        if isinstance(change, lsp.TextDocumentContentChangeWholeDocument):
            text = change.text
            continue
        start_pos, end_pos = change.range.start, change.range.end
        if (end_pos.line, end_pos.character) < (start_pos.line, start_pos.character):
            raise JsonRpcInvalidParams(f"Change range ends before it starts: {change.range}")
        index = LineIndex(text)
        start, end = index.offsets_of(change.range)
        text = text[:start] + change.text + text[end:]
    return text


class DocumentStore:
    def __init__(self) -> None:
        self._docs: dict[str, Document] = {}

    def __contains__(self, uri: object) -> bool:
        return uri in self._docs

    def __len__(self) -> int:
        return len(self._docs)

    def uris(self) -> list[str]:
        return list(self._docs)

    def open(
        self,
        uri: str,
        text: str,
        *,
        language_id: str = "email",
        client_version: int | None = None,
    ) -> Document:
        if uri in self._docs:
            raise DocumentExistsError(uri)
        doc = Document(uri=uri, text=text, client_version=client_version, language_id=language_id)
        self._docs[uri] = doc
        logger.debug(f"Opened {uri} ({len(text)} chars)")
        return doc

    def change(
        self,
        uri: str,
        changes: Sequence[lsp.TextDocumentContentChangeEvent],
        *,
        client_version: int | None = None,
    ) -> Document:
        """Apply `changes` atomically and bump the version.

        Raises:
            DocumentNotFoundError: the uri is not open.
            JsonRpcInvalidParams: a change is invalid; the document is left as it was.
        """
        doc = self.get(uri)
        new_text = apply_changes(doc.text, changes)
        if client_version is not None and doc.client_version is not None and client_version <= doc.client_version:
            logger.warning(f"{uri}: client version {client_version} does not increase ({doc.client_version})")
        doc.text = new_text
        doc.version += 1
        doc.client_version = client_version
        doc.analyzed = None
        return doc

    def close(self, uri: str) -> Document:
        try:
            doc = self._docs.pop(uri)
        except KeyError:
            raise DocumentNotFoundError(uri) from None
        logger.debug(f"Closed {uri}")
        return doc

    def get(self, uri: str) -> Document:
        try:
            return self._docs[uri]
        except KeyError:
            raise DocumentNotFoundError(uri) from None

    def version(self, uri: str) -> int | None:
        doc = self._docs.get(uri)
        return doc.version if doc is not None else None

    def snapshot(self, uri: str) -> DocumentSnapshot:
        doc = self.get(uri)
        return DocumentSnapshot(
            uri=doc.uri,
            version=doc.version,
            client_version=doc.client_version,
            text=doc.text,
            analyzed=doc.analyzed,
        )

    def snapshots(self) -> Iterator[DocumentSnapshot]:
        for uri in list(self._docs):
            yield self.snapshot(uri)

    def cache_analysis(self, uri: str, version: int, ast: MessageAST) -> bool:
        """Keep `ast` for reuse if `version` is still current."""
        doc = self._docs.get(uri)
        if doc is None or doc.version != version:
            return False
        doc.analyzed = ast
        return True
