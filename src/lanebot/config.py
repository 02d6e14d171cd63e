from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .settings import LanebotSettings

# Environment variable names for secrets
ENV_BOT_TOKEN = "LANEBOT_BOT_TOKEN"

LOCAL_CONFIG_NAME = Path(".lanebot") / "lanebot.toml"
HOME_CONFIG_PATH = Path.home() / ".lanebot" / "lanebot.toml"


class ConfigError(RuntimeError):
    pass


def _config_candidates() -> list[Path]:
    candidates = [Path.cwd() / LOCAL_CONFIG_NAME, HOME_CONFIG_PATH]
    if candidates[0] == candidates[1]:
        return [candidates[0]]
    return candidates


def _read_config(cfg_path: Path) -> dict:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def load_config(path: str | Path | None = None) -> tuple[dict, Path | None]:
    """Read the raw config table.

    Without an explicit path the local and home locations are tried; when
    neither exists an empty table is returned so the environment alone can
    configure the bot.
    """
    if path:
        cfg_path = Path(path).expanduser()
        return _read_config(cfg_path), cfg_path

    for candidate in _config_candidates():
        if candidate.is_file():
            return _read_config(candidate), candidate
    return {}, None


def _format_validation_error(exc: ValidationError) -> str:
    lines = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        lines.append(f"  {loc or '<root>'}: {message}")
    return "\n".join(lines)


def validate_settings_data(data: dict[str, Any], config_path: Path | None) -> LanebotSettings:
    """Validate a raw config table, applying the environment token override.

    Environment variable LANEBOT_BOT_TOKEN takes precedence over the config file.
    """
    data = dict(data)
    env_token = os.environ.get(ENV_BOT_TOKEN)
    if env_token and env_token.strip():
        data["bot_token"] = env_token.strip()
    elif isinstance(data.get("bot_token"), str):
        data["bot_token"] = data["bot_token"].strip()

    source = str(config_path) if config_path is not None else "environment"
    if not data.get("bot_token"):
        raise ConfigError(
            f"Missing bot token. Set {ENV_BOT_TOKEN} environment variable "
            f"or add `bot_token` to {source}."
        )
    try:
        return LanebotSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid config in {source}:\n{_format_validation_error(e)}"
        ) from None


def load_settings(path: str | Path | None = None) -> tuple[LanebotSettings, Path | None]:
    data, cfg_path = load_config(path)
    return validate_settings_data(data, cfg_path), cfg_path
