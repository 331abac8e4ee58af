from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import TomlConfigSettingsSource

from .config import ConfigError, config_file, read_config

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

DEFAULT_ALLOWED_TOOLS = ["Bash", "Read", "Edit", "Write"]

PermissionMode = Literal["default", "acceptEdits", "bypassPermissions", "plan"]


class ClaudeSettings(BaseModel):
    """How the CLI is invoked for each turn."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    command: NonEmptyStr = "claude"
    model: NonEmptyStr | None = None
    allowed_tools: list[NonEmptyStr] | None = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_TOOLS)
    )
    permission_mode: PermissionMode | None = None
    dangerously_skip_permissions: bool = False
    extra_args: list[str] = Field(default_factory=list)

    @field_validator("extra_args")
    @classmethod
    def _reject_reserved_args(cls, value: list[str]) -> list[str]:
        reserved = {"--output-format", "--resume", "-r", "-p", "--print"}
        clash = sorted(reserved.intersection(value))
        if clash:
            raise ValueError(
                f"claude.extra_args must not set {', '.join(clash)}; "
                "these flags are managed per turn"
            )
        return value


class StreamSettings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        env_prefix="CLAUDE_STREAM__",
        env_nested_delimiter="__",
        str_strip_whitespace=True,
    )

    claude: ClaudeSettings = Field(default_factory=ClaudeSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


def load_settings(path: str | Path | None = None) -> tuple[StreamSettings, Path]:
    cfg_path = config_file(path, required=True)
    assert cfg_path is not None
    return _settings_from_file(cfg_path), cfg_path


def load_settings_if_exists(
    path: str | Path | None = None,
) -> tuple[StreamSettings, Path] | None:
    cfg_path = config_file(path, required=False)
    if cfg_path is None:
        return None
    return _settings_from_file(cfg_path), cfg_path


def validate_settings_data(
    data: dict[str, Any], *, config_path: Path
) -> StreamSettings:
    try:
        return StreamSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {config_path}: {exc}") from exc


def _settings_from_file(cfg_path: Path) -> StreamSettings:
    # Surface unreadable or malformed files as ConfigError before pydantic
    # reads the same file through its TOML source.
    read_config(cfg_path)
    bound = type(
        "StreamSettingsFromFile",
        (StreamSettings,),
        {
            "model_config": SettingsConfigDict(
                **{**StreamSettings.model_config, "toml_file": cfg_path}
            )
        },
    )
    try:
        return bound()
    except ValidationError as exc:
        raise ConfigError(f"Invalid config in {cfg_path}: {exc}") from exc
