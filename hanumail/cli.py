"""CLI entrypoint for hanumail."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import ConfigError, ServerConfig, find_config, load_config

LOG_LEVELS = ["debug", "info", "warning", "error"]


def configure_logging(level: str = "warning", log_file: Path | None = None) -> None:
    """Send log records to stderr (stdout carries the protocol) and optionally a file."""
    log_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root_logger.addHandler(file_handler)


def _load(config_path: Path | None) -> ServerConfig:
    path = config_path or find_config(Path.cwd())
    try:
        return load_config(path)
    except ConfigError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


@click.group()
@click.version_option(__version__, prog_name="hanumail")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to hanumail.toml (defaults to the nearest hanumail.toml or pyproject.toml)",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS),
    default="warning",
    show_default=True,
    help="Log level for stderr (and --log-file)",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write logs to this file",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str, log_file: Path | None) -> None:
    """hanumail - a language server for email messages.

    Diagnostics, completion, hover, Message-ID navigation and reflow for .eml files.
    """
    ctx.ensure_object(dict)
    configure_logging(log_level, log_file)
    ctx.obj["config"] = _load(config_path)


@cli.command()
@click.option(
    "--transport",
    type=click.Choice(["stdio", "tcp"]),
    default="stdio",
    show_default=True,
    help="Transport method (stdio for editors, tcp for debugging)",
)
@click.option("--host", default="localhost", show_default=True, help="Host to bind for tcp")
@click.option("--port", type=int, default=2087, show_default=True, help="Port to bind for tcp")
@click.pass_context
def serve(ctx: click.Context, transport: str, host: str, port: int) -> None:
    """Start the language server.

    For editors, configure the client to run:

        hanumail serve

    For debugging with a TCP connection:

        hanumail --log-level debug serve --transport tcp --port 2087
    """
    from .lsp.server import start_server

    exit_code = start_server(ctx.obj["config"], transport=transport, host=host, port=port)
    sys.exit(exit_code)


@cli.command()
@click.argument("paths", nargs=-1, type=click.Path(exists=True, path_type=Path))
@click.option(
    "--fail-on",
    type=click.Choice(["error", "warning"]),
    default="error",
    show_default=True,
    help="Exit with error if this level or higher found",
)
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.option(
    "--explain",
    "explain_rule",
    type=str,
    default=None,
    metavar="RULE_ID",
    help="Explain a specific rule and exit (e.g., --explain duplicate-header)",
)
@click.pass_context
def check(
    ctx: click.Context,
    paths: tuple[Path, ...],
    fail_on: str,
    output_json: bool,
    explain_rule: str | None,
) -> None:
    """Check message files for header problems.

    PATHS may be files or directories; directories are searched for
    .eml, .msg and .mbox files.

    Examples:

        hanumail check inbox/

        hanumail check --fail-on warning --json draft.eml
    """
    from .commands.check import run_check, run_explain

    if explain_rule:
        sys.exit(run_explain(explain_rule))
    if not paths:
        raise click.UsageError("Give at least one file or directory to check.")
    sys.exit(run_check(list(paths), ctx.obj["config"], fail_on=fail_on, output_json=output_json))


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def watch(ctx: click.Context, directory: Path) -> None:
    """Re-check message files under DIRECTORY whenever they change.

    Runs until interrupted (Ctrl+C).
    """
    from .commands.watch_cmd import run_watch

    run_watch(directory, ctx.obj["config"])


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
