"""Configuration module."""

from .logging import JSONFormatter, TextFormatter, configure_logging
from .settings import (
    DEFAULT_PLUGIN_ICON,
    Settings,
    base_plugins_root,
    config_dir,
    data_dir,
    get_settings,
    is_single_cell,
    load_settings,
    override_plugins_root,
)

__all__ = [
    "DEFAULT_PLUGIN_ICON",
    "JSONFormatter",
    "Settings",
    "TextFormatter",
    "base_plugins_root",
    "config_dir",
    "configure_logging",
    "data_dir",
    "get_settings",
    "is_single_cell",
    "load_settings",
    "override_plugins_root",
]
