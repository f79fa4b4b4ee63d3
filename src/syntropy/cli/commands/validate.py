"""Validate a plugin or a configuration file."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from syntropy.config import base_plugins_root, config_dir, override_plugins_root
from syntropy.config.settings import CONFIG_FILE_NAME
from syntropy.errors import SyntropyError
from syntropy.plugins import validate_plugin_path
from syntropy.scripting import ScriptHost

from ..helpers import (
    console,
    err_console,
    get_settings_or_exit,
    open_session,
    print_error,
)


def _validate_plugin(path: Path, default_icon: str) -> None:
    host = ScriptHost()
    try:
        plugin = validate_plugin_path(
            path,
            host,
            override_plugins_root(),
            base_plugins_root(),
            default_icon=default_icon,
        )
    except SyntropyError as e:
        print_error("✗ Invalid plugin:", e.message)
        raise typer.Exit(1)
    finally:
        host.close()

    merged = " (merged with its counterpart)" if len(plugin.provenance.sources) > 1 else ""
    console.print(
        f"[green]✓ Plugin is valid:[/green] {plugin.metadata.icon} {plugin.name} "
        f"v{plugin.metadata.version}{merged}"
    )
    for key in plugin.task_keys:
        task = plugin.tasks[key]
        sources = ", ".join(task.source_keys) or "-"
        console.print(f"  [cyan]{key}[/cyan] ({task.mode.value}) sources: {sources}")


def _validate_config(path: Path) -> None:
    settings = get_settings_or_exit(path)
    if settings.default_plugin:
        session = open_session(settings)
        try:
            plugin = session.find_plugin(settings.default_plugin)
            if settings.default_task and plugin.get_task(settings.default_task) is None:
                err_console.print(
                    f"[red]✗ default_task '{settings.default_task}' not found "
                    f"in plugin '{plugin.name}'[/red]"
                )
                raise typer.Exit(1)
        except SyntropyError as e:
            print_error("✗", e.message)
            raise typer.Exit(1)
        finally:
            session.close()
    console.print(f"[green]✓ Config is valid:[/green] {path}")


def validate(
    ctx: typer.Context,
    plugin: Annotated[
        Path | None,
        typer.Option("--plugin", help="Plugin directory or plugin.lua to validate"),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", help="Config file to validate (default: the standard location)"),
    ] = None,
):
    """Validate a plugin or a config file.

    A plugin inside one of the standard plugin roots is validated merged
    with its counterpart in the other root, if one exists.
    """
    if plugin is not None and config is not None:
        err_console.print("[red]--plugin and --config cannot be combined[/red]")
        raise typer.Exit(2)

    if plugin is not None:
        _validate_plugin(plugin, ctx.obj.default_plugin_icon)
        return

    path = config or ctx.obj.config_file or config_dir() / CONFIG_FILE_NAME
    if not path.expanduser().is_file():
        err_console.print(f"[red]Config file not found:[/red] {path}")
        raise typer.Exit(1)
    _validate_config(path)
