"""
Server configuration.

Settings come from, in increasing priority:
- built-in defaults
- `hanumail.toml`, or `[tool.hanumail]` in `pyproject.toml`
- editor-supplied settings (initializationOptions, workspace/configuration),
  except `[server]`, which is read at startup only

Example:

    [diagnostics]
    required_headers = ["From", "Date", "Subject", "To"]
    max_line_length = 78
    disabled_rules = ["invalid-date"]

    [format]
    wrap_width = 72

    [server]
    workers = 4
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .email.reflow import DEFAULT_WIDTH
from .email.rules import DiagnosticPolicy, get_rule_ids
from .lsp.framing import DEFAULT_MAX_MESSAGE_SIZE

CONFIG_FILENAME = "hanumail.toml"


class ConfigError(ValueError):
    """A configuration value has the wrong type or is out of range."""


@dataclass(frozen=True)
class FormatOptions:
    wrap_width: int = DEFAULT_WIDTH


@dataclass(frozen=True)
class ServerConfig:
    diagnostics: DiagnosticPolicy = field(default_factory=DiagnosticPolicy)
    format: FormatOptions = field(default_factory=FormatOptions)
    workers: int = 2
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE

    def with_overrides(self, data: Mapping[str, Any] | None) -> ServerConfig:
        """Return a copy with the tables in `data` applied on top."""
        if not data:
            return self
        if not isinstance(data, Mapping):
            raise ConfigError("settings must be a table")
        diagnostics = _apply_diagnostics(self.diagnostics, _table(data, "diagnostics"))
        fmt = _apply_format(self.format, _table(data, "format"))
        server = _table(data, "server")
        return dataclasses.replace(
            self,
            diagnostics=diagnostics,
            format=fmt,
            workers=_positive_int(server, "workers", self.workers),
            max_message_size=_positive_int(server, "max_message_size", self.max_message_size),
        )

    def with_editor_settings(self, data: Mapping[str, Any] | None) -> ServerConfig:
        """Like `with_overrides`, for settings sent by the editor.

        Raises:
            ConfigError: `data` has a `[server]` table; those options are startup-only.
        """
        if data and isinstance(data, Mapping) and "server" in data:
            raise ConfigError("[server] settings apply at startup only; set them in hanumail.toml")
        return self.with_overrides(data)


def _table(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, Mapping):
        raise ConfigError(f"[{key}] must be a table")
    return value


def _positive_int(table: Mapping[str, Any], key: str, default: int) -> int:
    value = table.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"'{key}' must be a positive integer")
    return value


def _names(table: Mapping[str, Any], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = table.get(key)
    if value is None:
        return default
    if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
        raise ConfigError(f"'{key}' must be a list of header names")
    return tuple(v.strip() for v in value)


def _apply_diagnostics(policy: DiagnosticPolicy, table: Mapping[str, Any]) -> DiagnosticPolicy:
    if not table:
        return policy
    disabled = policy.disabled_rules
    if "disabled_rules" in table:
        raw = _names(table, "disabled_rules", ())
        unknown = sorted(set(raw) - set(get_rule_ids()))
        if unknown:
            raise ConfigError(f"Unknown rule(s) in disabled_rules: {', '.join(unknown)}")
        disabled = frozenset(raw)
    return DiagnosticPolicy(
        required_headers=_names(table, "required_headers", policy.required_headers),
        singular_headers=_names(table, "singular_headers", policy.singular_headers),
        max_line_length=_positive_int(table, "max_line_length", policy.max_line_length),
        disabled_rules=disabled,
    )


def _apply_format(options: FormatOptions, table: Mapping[str, Any]) -> FormatOptions:
    if not table:
        return options
    return FormatOptions(wrap_width=_positive_int(table, "wrap_width", options.wrap_width))


def load_config(path: Path | None) -> ServerConfig:
    """Load configuration from a TOML file; None gives the defaults."""
    import tomllib

    if path is None:
        return ServerConfig()
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path}: {e}") from e
    if path.name == "pyproject.toml":
        data = data.get("tool", {}).get("hanumail", {})
    return ServerConfig().with_overrides(data)


def find_config(start: Path) -> Path | None:
    """Find hanumail.toml (or a pyproject.toml with [tool.hanumail]) walking up from `start`."""
    import tomllib

    cur = start.resolve()
    for p in (cur, *cur.parents):
        candidate = p / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        pyproject = p / "pyproject.toml"
        if pyproject.is_file():
            try:
                data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
            except (OSError, tomllib.TOMLDecodeError):
                continue
            if "hanumail" in data.get("tool", {}):
                return pyproject
    return None
