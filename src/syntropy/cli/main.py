"""Syntropy CLI - Main entry point."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from syntropy import __version__

from .helpers import err_console, get_settings_or_exit

app = typer.Typer(
    name="syntropy",
    help="Run Lua automation plugins from a TUI or the command line.",
    add_completion=True,
    no_args_is_help=False,
    rich_markup_mode="rich",
)
console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold cyan]syntropy[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to syntropy.yaml", show_default=False),
    ] = None,
    plugin: Annotated[
        str | None, typer.Option("--plugin", help="Open this plugin on launch")
    ] = None,
    task: Annotated[
        str | None, typer.Option("--task", help="Open this task on launch (needs a plugin)")
    ] = None,
    status_bar: Annotated[
        bool | None, typer.Option("--status-bar/--no-status-bar", show_default=False)
    ] = None,
    search_bar: Annotated[
        bool | None, typer.Option("--search-bar/--no-search-bar", show_default=False)
    ] = None,
    show_preview_pane: Annotated[
        bool | None, typer.Option("--preview-pane/--no-preview-pane", show_default=False)
    ] = None,
    exit_on_execute: Annotated[
        bool | None, typer.Option("--exit-on-execute/--no-exit-on-execute", show_default=False)
    ] = None,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
):
    """Syntropy - a launcher for Lua automation plugins.

    Without a command the interactive TUI starts.

    [bold]Quick Start:[/bold]

        syntropy init                                  Create the plugin scaffold
        syntropy                                       Browse plugins interactively
        syntropy --plugin notes --task open            Jump straight to a task
        syntropy execute --plugin notes --task open    Run a task without the TUI
        syntropy validate --plugin ./my-plugin         Check a plugin
        syntropy plugins                               List loaded plugins
    """
    settings = get_settings_or_exit(
        config,
        status_bar=status_bar,
        search_bar=search_bar,
        show_preview_pane=show_preview_pane,
        exit_on_execute=exit_on_execute,
    )
    ctx.obj = settings

    if ctx.invoked_subcommand is not None:
        return

    if task and not (plugin or settings.default_plugin):
        err_console.print("[red]--task requires --plugin[/red]")
        raise typer.Exit(2)

    from .commands.setup import tui

    tui(settings, plugin=plugin, task=task)


# =============================================================================
# Register commands
# =============================================================================

from .commands.execute import execute  # noqa: E402
from .commands.plugins import plugins  # noqa: E402
from .commands.setup import init  # noqa: E402
from .commands.validate import validate  # noqa: E402

app.command()(execute)
app.command()(init)
app.command()(validate)
app.command()(plugins)
