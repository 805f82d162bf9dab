"""Watch command - re-check message files as they change."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from rich.console import Console

from ..config import ServerConfig
from ..lsp.diagnostics import lint_file
from ..watcher import run_watch_loop
from .check import collect_files, print_file_diagnostics


def check_and_report(console: Console, path: Path, config: ServerConfig) -> int:
    """Check one file and print its findings; returns the finding count."""
    try:
        diagnostics = lint_file(path, config.diagnostics)
    except OSError as e:
        console.print(f"[yellow]Could not read {path}: {e}[/yellow]")
        return 0
    timestamp = datetime.now().strftime("%H:%M:%S")
    if diagnostics:
        console.print(f"[dim]{timestamp}[/dim] {path}: {len(diagnostics)} finding(s)", highlight=False)
        print_file_diagnostics(console, path, diagnostics)
    else:
        console.print(f"[dim]{timestamp}[/dim] {path}: [green]clean[/green]", highlight=False)
    return len(diagnostics)


def run_watch(directory: Path, config: ServerConfig | None = None) -> None:
    """
    Check every message under `directory`, then re-check files as they change.

    This is a blocking command that runs until interrupted (Ctrl+C).
    """
    config = config or ServerConfig()
    console = Console(stderr=True)

    console.print(f"[bold]Watching[/bold] {directory}")
    console.print("[dim]Press Ctrl+C to stop watching[/dim]")
    console.print()

    for path in collect_files([directory]):
        check_and_report(console, path, config)

    checked = 0

    def on_change(path: Path) -> None:
        nonlocal checked
        checked += 1
        check_and_report(console, path, config)

    def on_delete(path: Path) -> None:
        console.print(f"[dim]{datetime.now().strftime('%H:%M:%S')}[/dim] {path}: removed", highlight=False)

    try:
        run_watch_loop(directory, on_change=on_change, on_delete=on_delete)
    except KeyboardInterrupt:
        pass
    console.print()
    console.print(f"[bold]Stopped.[/bold] Re-checked {checked} file change(s).")
