"""Configuration system for datasheet using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.datasheet] section (project-level)
3. ./datasheet.toml (project-level, explicit)
4. ~/.config/datasheet/config.toml (user-level, overrides project)
5. Environment variables (highest priority)

Environment variables use DATASHEET_ prefix with nested delimiter __.
Example: DATASHEET_FORMAT__THOUSANDS_SEPARATOR, DATASHEET_LOG__LEVEL
"""

from __future__ import annotations

import os
import sys

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .log import warn


if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib  # type: ignore[import-not-found]
    except ImportError:
        tomllib = None


def _user_config_path() -> Path:
    """Return the per-user configuration file location."""
    if sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "~")) / "datasheet" / "config.toml"
    return Path("~/.config/datasheet/config.toml")


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    datasheet_toml = Path("datasheet.toml")
    if datasheet_toml.exists():
        files.append(datasheet_toml)

    user_config = _user_config_path().expanduser()
    if user_config.exists():
        files.append(user_config)

    env_config = os.environ.get("DATASHEET_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    if tomllib is None:
        return {}

    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            warn(f"Ignoring unreadable config file {config_file}: {exc}")
            continue

        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("datasheet", {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class FormatSettings(BaseSettings):
    """Default locale formatting for newly loaded datasets.

    Environment prefix: DATASHEET_FORMAT__
    Example: DATASHEET_FORMAT__DECIMAL_SEPARATOR=","
    """

    model_config = SettingsConfigDict(
        env_prefix="DATASHEET_FORMAT__",
        extra="ignore",
    )

    thousands_separator: str = Field(default=",", max_length=1)
    decimal_separator: str = Field(default=".", min_length=1, max_length=1)
    date_format: str = "DD/MM/YYYY"


class DetectionSettings(BaseSettings):
    """Column type detection thresholds.

    Environment prefix: DATASHEET_DETECTION__
    """

    model_config = SettingsConfigDict(
        env_prefix="DATASHEET_DETECTION__",
        extra="ignore",
    )

    sample_rows: int = Field(default=20, ge=1)
    column_type_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    format_confidence: float = Field(default=0.6, ge=0.0, le=1.0)


class GridSettings(BaseSettings):
    """Grid display defaults.

    Environment prefix: DATASHEET_GRID__
    """

    model_config = SettingsConfigDict(
        env_prefix="DATASHEET_GRID__",
        extra="ignore",
    )

    default_column_width: int = Field(default=150, ge=1)
    min_column_width: int = Field(default=40, ge=1)


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: DATASHEET_LOG__
    Example: DATASHEET_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="DATASHEET_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: str = "%(name)s - %(levelname)s - %(message)s"

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: Any) -> Any:
        """Accept lower-case level names."""
        return v.upper() if isinstance(v, str) else v


_SECTIONS: tuple[tuple[str, str, str], ...] = (
    ("Formatting", "format", "FORMAT"),
    ("Detection", "detection", "DETECTION"),
    ("Grid", "grid", "GRID"),
    ("Logging", "log", "LOG"),
)


class DatasheetSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: DATASHEET_

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.datasheet] section
    3. ./datasheet.toml (project-level)
    4. ~/.config/datasheet/config.toml (user-level, overrides project)
    5. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="DATASHEET_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    format: FormatSettings = Field(default_factory=FormatSettings)
    detection: DetectionSettings = Field(default_factory=DetectionSettings)
    grid: GridSettings = Field(default_factory=GridSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    def __init__(self, **data: Any) -> None:
        # TOML sits below explicit keyword arguments
        toml_config = _load_toml_config()
        merged = _deep_merge(toml_config, data)
        super().__init__(**merged)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Let environment variables override TOML files."""
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    def to_toml(self) -> str:
        """Export settings as TOML string."""
        lines = ["# datasheet configuration", "# Generated by: datasheet config --toml", ""]
        all_data = self.model_dump()
        for _, attr_name, _ in _SECTIONS:
            lines.append(f"[{attr_name}]")
            for field_name, field_value in all_data[attr_name].items():
                lines.append(f"{field_name} = {_toml_value(field_value)}")
            lines.append("")
        return "\n".join(lines)

    def to_env(self) -> str:
        """Export settings as shell environment variables."""
        lines = ["# datasheet environment variables", "# Generated by: datasheet config --env", ""]
        all_data = self.model_dump()
        for _, attr_name, env_prefix in _SECTIONS:
            for field_name, field_value in all_data[attr_name].items():
                env_name = f"DATASHEET_{env_prefix}__{field_name.upper()}"
                lines.append(f'export {env_name}="{field_value}"')
        return "\n".join(lines)

    def show(self) -> str:
        """Format settings as a readable table."""
        lines = ["datasheet configuration", "=" * 60]
        all_data = self.model_dump()
        for display_name, attr_name, _ in _SECTIONS:
            lines.append(f"\n{display_name}")
            lines.append("-" * 40)
            for field_name, field_value in all_data[attr_name].items():
                lines.append(f"  {field_name:24} = {field_value!r}")
        return "\n".join(lines)


def _toml_value(value: Any) -> str:
    """Render a scalar setting as a TOML literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return str(value)


@lru_cache(maxsize=1)
def get_settings() -> DatasheetSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return DatasheetSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()


def reload_settings() -> DatasheetSettings:
    """Reload settings from all sources."""
    clear_settings()
    return get_settings()
