"""Settings file loading, validation, and persistence.

Schema on disk (~/.config/lazykv/config.json), every key optional:

    {
        "az_path": "az",
        "max_parallelism": 5,
        "cache_ttl_seconds": 3600,
        "token_refresh_margin_seconds": 300,
        "http_timeout_seconds": 30,
        "log_level": "INFO",
        "log_file": "~/.cache/lazykv/lazykv.log"
    }

Keys prefixed with "_" are reserved (e.g. "_comment") and are stripped on load.
"""

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lazykv.constants import (
    DEFAULT_CACHE_TTL,
    HTTP_TIMEOUT_SECONDS,
    MAX_PARALLELISM,
    TOKEN_REFRESH_MARGIN_SECONDS,
)

CONFIG_PATH = Path("~/.config/lazykv/config.json").expanduser()

_README_PATH = Path("~/.config/lazykv/README.md").expanduser()

_README_CONTENT = """\
# lazykv configuration

`config.json` in this directory tunes lazykv.  Every key is optional; an
empty object `{}` uses the defaults.

## Keys

| key                            | default                         |
|--------------------------------|---------------------------------|
| `az_path`                      | `az`                            |
| `max_parallelism`              | `5`                             |
| `cache_ttl_seconds`            | one year (until `r` refreshes)  |
| `token_refresh_margin_seconds` | `300`                           |
| `http_timeout_seconds`         | `30`                            |
| `log_level`                    | `WARNING`                       |
| `log_file`                     | `~/.cache/lazykv/lazykv.log`    |

## Example

```json
{
    "max_parallelism": 8,
    "log_level": "DEBUG"
}
```

Keys prefixed with `_` (e.g. `_comment`) are ignored by lazykv.
"""

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseModel):
    """Tunables read from config.json."""

    model_config = ConfigDict(extra="forbid")

    az_path: str = "az"
    max_parallelism: int = Field(default=MAX_PARALLELISM, ge=1)
    cache_ttl_seconds: float = Field(default=DEFAULT_CACHE_TTL, gt=0)
    token_refresh_margin_seconds: int = Field(default=TOKEN_REFRESH_MARGIN_SECONDS, ge=0)
    http_timeout_seconds: float = Field(default=HTTP_TIMEOUT_SECONDS, gt=0)
    log_level: str = "WARNING"
    log_file: Path = Path("~/.cache/lazykv/lazykv.log")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @field_validator("log_file")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return value.expanduser()


class ConfigError(Exception):
    """Raised when config.json exists but cannot be parsed or validated."""


def load_config() -> Settings:
    """Load and validate the settings file.

    Creates the config directory, an empty config.json, and a README on first
    run, returning the defaults.  Raises ConfigError if the file exists but is
    malformed.
    """
    if not CONFIG_PATH.exists():
        _bootstrap()
        return Settings()

    try:
        raw: object = json.loads(CONFIG_PATH.read_text())
    except json.JSONDecodeError as exc:
        raise ConfigError(f"config.json is not valid JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("config.json must be a JSON object at the top level")

    # Strip reserved/comment keys.
    values = {k: v for k, v in raw.items() if not k.startswith("_")}

    try:
        return Settings.model_validate(values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config.json: {exc}") from exc


def _bootstrap() -> None:
    """Create the config directory, an empty config.json, and a README."""
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_PATH.write_text("{}\n")
    if not _README_PATH.exists():
        _README_PATH.write_text(_README_CONTENT)


# Theme persistence
THEME_CONFIG_PATH = Path("~/.config/lazykv/theme.json").expanduser()


def load_theme() -> str | None:
    """Load the saved theme preference, or None if unset or unreadable."""
    if not THEME_CONFIG_PATH.exists():
        return None
    try:
        data = json.loads(THEME_CONFIG_PATH.read_text())
        return data.get("theme")
    except (json.JSONDecodeError, AttributeError):
        return None


def save_theme(theme: str) -> None:
    THEME_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    THEME_CONFIG_PATH.write_text(json.dumps({"theme": theme}, indent=2))
