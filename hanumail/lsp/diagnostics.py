"""
Diagnostics for a document snapshot.

`analyze_document` is what runs on the worker pool: it parses the snapshot
and applies the rule engine, checking the cancellation token between the
stages. The conversion to protocol ranges happens against the snapshot's
own line table, so a result always describes the text it was computed on.
"""

from __future__ import annotations

from pathlib import Path

from lsprotocol import types as lsp

from ..email.model import MessageAST
from ..email.parser import parse_message
from ..email.rules import Diagnostic, DiagnosticEngine, DiagnosticPolicy, Severity
from .cancellation import CancellationToken
from .positions import LineIndex

SOURCE = "hanumail"

SEVERITY_MAP: dict[Severity, lsp.DiagnosticSeverity] = {
    Severity.ERROR: lsp.DiagnosticSeverity.Error,
    Severity.WARNING: lsp.DiagnosticSeverity.Warning,
    Severity.INFO: lsp.DiagnosticSeverity.Information,
    Severity.HINT: lsp.DiagnosticSeverity.Hint,
}


def analyze_document(
    snapshot,
    engine: DiagnosticEngine,
    token: CancellationToken | None = None,
) -> tuple[MessageAST, list[Diagnostic]]:
    """Parse and lint a snapshot.

    Raises:
        JsonRpcRequestCancelled: at any checkpoint once `token` is cancelled.
    """
    token = token or CancellationToken()
    token.check()
    ast = snapshot.analyze()
    token.check()
    diagnostics = engine.run_all(ast)
    token.check()
    return ast, diagnostics


def to_lsp_diagnostics(diagnostics: list[Diagnostic], lines: LineIndex) -> list[lsp.Diagnostic]:
    return [
        lsp.Diagnostic(
            range=lines.range_of(d.span.start, d.span.end),
            message=d.message,
            severity=SEVERITY_MAP[d.severity],
            code=d.code,
            source=SOURCE,
        )
        for d in diagnostics
    ]


def lint_file(
    file_path: Path,
    policy: DiagnosticPolicy | None = None,
    content: str | None = None,
) -> list[lsp.Diagnostic]:
    """
    Lint a single message file outside of an editor session.

    Args:
        file_path: Path to the message
        policy: Rule thresholds (defaults when None)
        content: File content (if None, reads from disk)

    Returns:
        Diagnostics with protocol (line, UTF-16 column) ranges
    """
    if content is None:
        content = file_path.read_text(encoding="utf-8", errors="replace")
    ast = parse_message(content)
    diagnostics = DiagnosticEngine(policy).run_all(ast)
    return to_lsp_diagnostics(diagnostics, LineIndex(content))
