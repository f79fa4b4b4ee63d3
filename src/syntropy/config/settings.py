"""Settings and configuration management."""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import ClassVar

from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)
from wcwidth import wcswidth

logger = logging.getLogger(__name__)

APP_NAME = "syntropy"
CONFIG_FILE_NAME = "syntropy.yaml"
PLUGINS_DIR_NAME = "plugins"
DEFAULT_PLUGIN_ICON = "⚒"


def _xdg_dir(env_var: str, fallback: Path) -> Path:
    """Return ``$env_var/syntropy`` if the variable holds an absolute path."""
    value = os.environ.get(env_var, "")
    if value and Path(value).is_absolute():
        return Path(value) / APP_NAME
    return fallback / APP_NAME


def config_dir() -> Path:
    """Directory holding syntropy.yaml and the override plugin root."""
    return _xdg_dir("XDG_CONFIG_HOME", Path.home() / ".config")


def data_dir() -> Path:
    """Directory holding the base plugin root and the log file."""
    return _xdg_dir("XDG_DATA_HOME", Path.home() / ".local" / "share")


def override_plugins_root() -> Path:
    return config_dir() / PLUGINS_DIR_NAME


def base_plugins_root() -> Path:
    return data_dir() / PLUGINS_DIR_NAME


def _find_yaml_config() -> Path | None:
    """Find syntropy.yaml in the config dir, then the working directory."""
    for path in (config_dir() / CONFIG_FILE_NAME, Path(CONFIG_FILE_NAME)):
        if path.is_file():
            return path
    return None


def is_single_cell(text: str) -> bool:
    """True if ``text`` renders in exactly one terminal column."""
    return wcswidth(text) == 1


class Settings(BaseSettings):
    """Application settings.

    Priority chain: init kwargs > env vars > syntropy.yaml > defaults
    """

    model_config = SettingsConfigDict(
        env_prefix="SYNTROPY_",
        case_sensitive=False,
        extra="ignore",
    )

    # Explicit --config path; takes precedence over the search paths
    _config_file: ClassVar[Path | None] = None
    # Resolved YAML path of the last instantiation (not a pydantic field)
    _yaml_path: ClassVar[Path | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings source priority.

        Priority: init kwargs > env vars > syntropy.yaml > defaults
        """
        sources: list[PydanticBaseSettingsSource] = [init_settings, env_settings]

        yaml_path = cls._config_file or _find_yaml_config()
        cls._yaml_path = yaml_path
        if yaml_path:
            sources.append(
                YamlConfigSettingsSource(
                    settings_cls,
                    yaml_file=yaml_path,
                    yaml_file_encoding="utf-8",
                )
            )
        return tuple(sources)

    # Navigation
    default_plugin: str | None = Field(None, description="Plugin opened on launch")
    default_task: str | None = Field(
        None, description="Task opened on launch (requires default_plugin)"
    )
    default_plugin_icon: str = Field(
        DEFAULT_PLUGIN_ICON, description="Icon for plugins that declare none"
    )

    # Interface
    status_bar: bool = Field(True, description="Show the breadcrumb status bar")
    search_bar: bool = Field(True, description="Show the fuzzy search input")
    show_preview_pane: bool = Field(True, description="Show the item preview pane")
    exit_on_execute: bool = Field(
        False, description="Quit the TUI after an execution, with its exit code"
    )

    # Execution
    shell_timeout_seconds: int | None = Field(
        None, ge=1, description="Timeout for syntropy.shell commands (None = no limit)"
    )

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_format: str = Field("text", description="Log format: 'text' or 'json'")

    @field_validator("default_plugin_icon")
    @classmethod
    def _icon_is_one_cell(cls, value: str) -> str:
        if not is_single_cell(value):
            raise ValueError(
                f"default_plugin_icon {value!r} must occupy exactly one terminal cell"
            )
        return value

    @model_validator(mode="after")
    def _task_requires_plugin(self) -> "Settings":
        if self.default_task and not self.default_plugin:
            raise ValueError("default_task requires default_plugin to be set")
        return self

    @property
    def config_file(self) -> Path | None:
        """YAML file these settings were read from, if any."""
        return self._yaml_path

    @property
    def log_file(self) -> Path:
        return data_dir() / "syntropy.log"


def load_settings(config_file: Path | None = None, **overrides) -> Settings:
    """Build settings from an explicit YAML file plus keyword overrides.

    Overrides whose value is ``None`` are ignored so CLI flags left unset
    do not shadow the YAML file.
    """
    Settings._config_file = config_file
    try:
        return Settings(**{k: v for k, v in overrides.items() if v is not None})
    finally:
        Settings._config_file = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
