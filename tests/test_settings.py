from __future__ import annotations

from pathlib import Path

import pytest

from claude_stream.config import ConfigError, display_path, read_config
from claude_stream.settings import (
    DEFAULT_ALLOWED_TOOLS,
    StreamSettings,
    load_settings,
    load_settings_if_exists,
    validate_settings_data,
)


def test_load_settings_from_toml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        "[claude]\n"
        'model = "claude-sonnet-4-5"\n'
        'allowed_tools = ["Read", "Grep"]\n'
        'permission_mode = "acceptEdits"\n'
        'extra_args = ["--max-turns", "3"]\n',
        encoding="utf-8",
    )

    settings, loaded_path = load_settings(config_path)

    assert loaded_path == config_path
    assert settings.claude.command == "claude"
    assert settings.claude.model == "claude-sonnet-4-5"
    assert settings.claude.allowed_tools == ["Read", "Grep"]
    assert settings.claude.permission_mode == "acceptEdits"
    assert settings.claude.extra_args == ["--max-turns", "3"]


def test_defaults_without_config() -> None:
    settings = StreamSettings()

    assert settings.claude.command == "claude"
    assert settings.claude.model is None
    assert settings.claude.allowed_tools == DEFAULT_ALLOWED_TOOLS
    assert settings.claude.dangerously_skip_permissions is False


def test_env_overrides_toml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('[claude]\nmodel = "claude-sonnet-4-5"\n', encoding="utf-8")
    monkeypatch.setenv("CLAUDE_STREAM__CLAUDE__MODEL", "claude-opus-4-1")

    settings, _ = load_settings(config_path)

    assert settings.claude.model == "claude-opus-4-1"


def test_load_settings_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Missing config file"):
        load_settings(tmp_path / "missing.toml")


def test_load_settings_if_exists_returns_none(tmp_path: Path) -> None:
    assert load_settings_if_exists(tmp_path / "missing.toml") is None


def test_load_settings_if_exists_rejects_directory(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not a file"):
        load_settings_if_exists(tmp_path)


def test_load_settings_malformed_toml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("[claude\nmodel = ", encoding="utf-8")

    with pytest.raises(ConfigError, match="Malformed TOML"):
        load_settings(config_path)


def test_load_settings_rejects_unknown_keys(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('[claude]\nmodle = "typo"\n', encoding="utf-8")

    with pytest.raises(ConfigError, match="modle"):
        load_settings(config_path)


@pytest.mark.parametrize("flag", ["--output-format", "--resume", "-p"])
def test_validate_settings_data_rejects_managed_flags(
    tmp_path: Path, flag: str
) -> None:
    config_path = tmp_path / "config.toml"
    data = {"claude": {"extra_args": [flag, "x"]}}

    with pytest.raises(ConfigError, match="extra_args"):
        validate_settings_data(data, config_path=config_path)


def test_validate_settings_data_rejects_empty_command(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"

    with pytest.raises(ConfigError, match="command"):
        validate_settings_data({"claude": {"command": "   "}}, config_path=config_path)


def test_validate_settings_data_rejects_unknown_permission_mode(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"

    with pytest.raises(ConfigError, match="permission_mode"):
        validate_settings_data(
            {"claude": {"permission_mode": "yolo"}}, config_path=config_path
        )


def test_read_config_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Missing config file"):
        read_config(tmp_path / "nope.toml")

    bad = tmp_path / "bad.toml"
    bad.write_text("= 1", encoding="utf-8")
    with pytest.raises(ConfigError, match="Malformed TOML"):
        read_config(bad)


def test_read_config_returns_tables(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('[claude]\ncommand = "/opt/claude"\n', encoding="utf-8")

    assert read_config(config_path) == {"claude": {"command": "/opt/claude"}}


def test_display_path_shows_tilde(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home)
    monkeypatch.chdir(work)

    assert display_path(home / ".claude-stream" / "config.toml") == (
        "~/.claude-stream/config.toml"
    )
    assert display_path(work / "a.toml") == "./a.toml"
