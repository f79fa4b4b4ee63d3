"""List loaded plugins and load diagnostics."""

from __future__ import annotations

import json
from typing import Annotated

import typer
from rich.table import Table

from syntropy.config import base_plugins_root, override_plugins_root

from ..helpers import console, open_session, print_diagnostics


def plugins(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
):
    """List loaded plugins."""
    session = open_session(ctx.obj)
    try:
        if json_output:
            data = {
                "plugins": [
                    {
                        "name": p.name,
                        "version": p.metadata.version,
                        "icon": p.metadata.icon,
                        "description": p.metadata.description,
                        "origin": p.provenance.origin.value,
                        "directory": str(p.directory),
                        "tasks": p.task_keys,
                    }
                    for p in session.plugins
                ],
                "diagnostics": [
                    {
                        "plugin": d.plugin,
                        "path": str(d.path) if d.path else None,
                        "severity": d.severity.value,
                        "message": d.message,
                    }
                    for d in session.diagnostics
                ],
            }
            print(json.dumps(data, indent=2))
            return

        if not session.plugins:
            console.print("[yellow]No plugins loaded[/yellow]")
            console.print(
                f"\n[dim]Put plugins in {override_plugins_root()} or {base_plugins_root()}.[/dim]"
            )
        else:
            table = Table(title="Loaded Plugins")
            table.add_column("Icon")
            table.add_column("Name", style="cyan")
            table.add_column("Version")
            table.add_column("Origin")
            table.add_column("Tasks")
            table.add_column("Description")

            for plugin in session.plugins:
                table.add_row(
                    plugin.metadata.icon,
                    plugin.name,
                    plugin.metadata.version,
                    plugin.provenance.origin.value,
                    ", ".join(plugin.task_keys),
                    plugin.metadata.description[:40] if plugin.metadata.description else "-",
                )
            console.print(table)

        print_diagnostics(session.diagnostics)
    finally:
        session.close()
