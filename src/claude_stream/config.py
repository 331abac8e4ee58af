from __future__ import annotations

import tomllib
from pathlib import Path

HOME_CONFIG_PATH = Path.home() / ".claude-stream" / "config.toml"


class ConfigError(RuntimeError):
    pass


def display_path(path: Path) -> str:
    try:
        for base, prefix in ((Path.cwd(), "."), (Path.home(), "~")):
            if path.is_relative_to(base):
                return f"{prefix}/{path.relative_to(base).as_posix()}"
    except OSError:
        pass
    return str(path)


def config_file(path: str | Path | None, *, required: bool) -> Path | None:
    """Resolve the config path; ``None`` when it is optional and absent."""
    cfg_path = Path(path).expanduser() if path else HOME_CONFIG_PATH
    if cfg_path.exists() and not cfg_path.is_file():
        raise ConfigError(f"Config path {cfg_path} exists but is not a file.")
    if cfg_path.exists():
        return cfg_path
    if required:
        raise ConfigError(f"Missing config file `{display_path(cfg_path)}`.")
    return None


def read_config(cfg_path: Path) -> dict:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(
            f"Missing config file `{display_path(cfg_path)}`."
        ) from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None
