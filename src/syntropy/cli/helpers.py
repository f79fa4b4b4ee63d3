"""Shared helpers for CLI modules: consoles, settings and plugin loading."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer
from pydantic import ValidationError as SettingsValidationError
from rich.console import Console
from rich.text import Text

from syntropy.config import (
    Settings,
    base_plugins_root,
    configure_logging,
    load_settings,
    override_plugins_root,
)
from syntropy.errors import PluginNotFoundError
from syntropy.plugins import Diagnostic, LoadResult, Plugin, load_plugins
from syntropy.scripting import ScriptHost

console = Console()
err_console = Console(stderr=True)


@dataclass
class Session:
    """Everything a command needs once settings and plugins are loaded."""

    settings: Settings
    host: ScriptHost
    plugins: list[Plugin]
    diagnostics: list[Diagnostic]

    def find_plugin(self, name: str) -> Plugin:
        for plugin in self.plugins:
            if plugin.name == name:
                return plugin
        available = ", ".join(plugin.name for plugin in self.plugins) or "none"
        raise PluginNotFoundError(
            f"plugin '{name}' not found. Available plugins: {available}", plugin=name
        )

    def close(self) -> None:
        self.host.close()


def get_settings_or_exit(config: Path | None = None, **overrides) -> Settings:
    """Load settings, printing a readable error and exiting on failure."""
    if config is not None and not config.expanduser().is_file():
        err_console.print(f"[red]Config file not found:[/red] {config}")
        raise typer.Exit(1)
    try:
        return load_settings(config.expanduser() if config else None, **overrides)
    except SettingsValidationError as e:
        err_console.print("[red]Invalid configuration:[/red]")
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"]) or "config"
            err_console.print(f"  {location}: {error['msg']}")
        raise typer.Exit(1)


def open_session(settings: Settings, host: ScriptHost | None = None, verbose: bool = False) -> Session:
    """Create the script host and load plugins from both roots."""
    configure_logging(
        level="DEBUG" if verbose else "WARNING",
        format=settings.log_format,
    )
    host = host or ScriptHost(shell_timeout=settings.shell_timeout_seconds)
    result: LoadResult = load_plugins(
        override_plugins_root(),
        base_plugins_root(),
        host,
        default_icon=settings.default_plugin_icon,
    )
    return Session(settings, host, result.plugins, result.diagnostics)


def print_error(label: str, message: str, color: str = "red") -> None:
    """Print a coloured label followed by ``message`` without markup parsing."""
    err_console.print(f"[{color}]{label}[/{color}]", Text(message), soft_wrap=True)


def print_diagnostics(diagnostics: list[Diagnostic]) -> None:
    for diagnostic in diagnostics:
        color = "red" if diagnostic.severity.value == "error" else "yellow"
        print_error(f"{diagnostic.severity.value}:", str(diagnostic), color=color)
