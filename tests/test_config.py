"""Tests for configuration loading."""

from pathlib import Path

import pytest

from hanumail.config import ConfigError, ServerConfig, find_config, load_config


def test_defaults():
    config = load_config(None)
    assert config.diagnostics.required_headers == ("From", "Date", "Subject")
    assert config.diagnostics.max_line_length == 998
    assert config.format.wrap_width == 78
    assert config.workers == 2


def test_load_hanumail_toml(tmp_path: Path):
    path = tmp_path / "hanumail.toml"
    path.write_text(
        '[diagnostics]\nrequired_headers = ["From", "To"]\nmax_line_length = 78\n'
        'disabled_rules = ["invalid-date"]\n\n[format]\nwrap_width = 72\n\n[server]\nworkers = 4\n',
        encoding="utf-8",
    )
    config = load_config(path)
    assert config.diagnostics.required_headers == ("From", "To")
    assert config.diagnostics.max_line_length == 78
    assert config.diagnostics.disabled_rules == frozenset({"invalid-date"})
    assert config.format.wrap_width == 72
    assert config.workers == 4


def test_load_pyproject_section(tmp_path: Path):
    path = tmp_path / "pyproject.toml"
    path.write_text('[project]\nname = "x"\n\n[tool.hanumail.format]\nwrap_width = 60\n', encoding="utf-8")
    assert load_config(path).format.wrap_width == 60


@pytest.mark.parametrize(
    "data",
    [
        {"format": {"wrap_width": 0}},
        {"format": {"wrap_width": True}},
        {"diagnostics": {"required_headers": "From"}},
        {"diagnostics": {"disabled_rules": ["no-such-rule"]}},
        {"server": []},
    ],
)
def test_invalid_values_are_rejected(data):
    with pytest.raises(ConfigError):
        ServerConfig().with_overrides(data)


def test_invalid_toml(tmp_path: Path):
    path = tmp_path / "hanumail.toml"
    path.write_text("[diagnostics\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_overrides_keep_untouched_values():
    base = ServerConfig().with_overrides({"format": {"wrap_width": 50}})
    updated = base.with_overrides({"diagnostics": {"max_line_length": 100}})
    assert updated.format.wrap_width == 50
    assert updated.diagnostics.max_line_length == 100
    assert updated.with_overrides(None) is updated


def test_editor_settings_cannot_change_server_options():
    base = ServerConfig()
    with pytest.raises(ConfigError, match="startup"):
        base.with_editor_settings({"server": {"workers": 8}})
    assert base.with_editor_settings({"format": {"wrap_width": 60}}).format.wrap_width == 60
    assert base.with_editor_settings(None) is base


def test_find_config_walks_up(tmp_path: Path):
    (tmp_path / "hanumail.toml").write_text("", encoding="utf-8")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    assert find_config(nested) == (tmp_path / "hanumail.toml").resolve()


def test_find_config_uses_pyproject_with_section(tmp_path: Path):
    (tmp_path / "pyproject.toml").write_text("[tool.hanumail]\n", encoding="utf-8")
    assert find_config(tmp_path) == (tmp_path / "pyproject.toml").resolve()
