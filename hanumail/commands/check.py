"""Check command implementation."""

from __future__ import annotations

import json
from pathlib import Path

from lsprotocol.types import Diagnostic, DiagnosticSeverity
from rich.console import Console
from rich.table import Table

from ..config import ServerConfig
from ..email.rules import RULE_EXPLANATIONS, get_rule_ids
from ..lsp.diagnostics import lint_file

MESSAGE_SUFFIXES = {".eml", ".msg", ".mbox"}

LEVELS = {
    DiagnosticSeverity.Error: "error",
    DiagnosticSeverity.Warning: "warning",
    DiagnosticSeverity.Information: "info",
    DiagnosticSeverity.Hint: "hint",
}


def collect_files(paths: list[Path]) -> list[Path]:
    """Expand directories into the message files below them."""
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(sorted(p for p in path.rglob("*") if p.is_file() and p.suffix.lower() in MESSAGE_SUFFIXES))
        else:
            files.append(path)
    return files


def diagnostic_to_dict(diag: Diagnostic) -> dict:
    return {
        "line": diag.range.start.line + 1,
        "column": diag.range.start.character + 1,
        "end_line": diag.range.end.line + 1,
        "end_column": diag.range.end.character + 1,
        "level": LEVELS[diag.severity],
        "rule": diag.code,
        "message": diag.message,
    }


def print_file_diagnostics(console: Console, path: Path, diagnostics: list[Diagnostic]) -> None:
    for diag in diagnostics:
        if diag.severity == DiagnosticSeverity.Error:
            style, prefix = "bold red", "ERROR"
        elif diag.severity == DiagnosticSeverity.Warning:
            style, prefix = "yellow", "WARN"
        else:
            style, prefix = "dim", "INFO"
        where = f"{path}:{diag.range.start.line + 1}:{diag.range.start.character + 1}"
        console.print(f"{prefix}: {where} [{diag.code}] {diag.message}", style=style, markup=False, highlight=False)


def run_check(
    paths: list[Path],
    config: ServerConfig | None = None,
    fail_on: str = "error",
    output_json: bool = False,
) -> int:
    """Check message files.

    Args:
        paths: Files or directories to check
        config: Rule thresholds and options
        fail_on: Exit with error if this level or higher found ("error" or "warning")
        output_json: Output results as JSON instead of human-readable

    Returns:
        Exit code (0 = success, 1 = findings at or above `fail_on`)
    """
    config = config or ServerConfig()
    console = Console(stderr=True)

    files = collect_files(paths)
    results: dict[Path, list[Diagnostic]] = {}
    for path in files:
        results[path] = lint_file(path, config.diagnostics)

    counts = {"error": 0, "warning": 0, "info": 0, "hint": 0}
    for diagnostics in results.values():
        for diag in diagnostics:
            counts[LEVELS[diag.severity]] += 1

    if output_json:
        output = {
            "files": {str(path): [diagnostic_to_dict(d) for d in diags] for path, diags in results.items()},
            "summary": {"files": len(files), **counts},
        }
        print(json.dumps(output, indent=2))
    else:
        for path, diagnostics in results.items():
            print_file_diagnostics(console, path, diagnostics)
        console.print()
        table = Table(title="Check Summary", show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Count", justify="right")
        table.add_row("Files", str(len(files)))
        table.add_row("Errors", str(counts["error"]))
        table.add_row("Warnings", str(counts["warning"]))
        console.print(table)

    failing = counts["error"]
    if fail_on == "warning":
        failing += counts["warning"]
    return 1 if failing else 0


def run_explain(rule_id: str) -> int:
    """Explain a specific rule.

    Returns:
        Exit code (0 = success, 1 = rule not found)
    """
    console = Console()

    rule_id = rule_id.lower().strip()

    if rule_id not in RULE_EXPLANATIONS:
        console.print(f"Unknown rule: {rule_id}", style="bold red")
        console.print()
        console.print("Known rules:", style="bold")
        for rid in sorted(get_rule_ids()):
            console.print(f"  - {rid}")
        return 1

    from rich.markdown import Markdown

    console.print(Markdown(f"**{rule_id}**\n\n{RULE_EXPLANATIONS[rule_id]}"))
    return 0
