"""Setup commands: plugin scaffold and the interactive TUI."""

from __future__ import annotations

from pathlib import Path

import typer

from syntropy.config import Settings, configure_logging, override_plugins_root

from ..helpers import console, err_console

SYNTROPY_LUA_TEMPLATE = """\
---@meta
-- Type hints for the syntropy host namespace (Lua language server).

---@class syntropy
syntropy = {}

---Run a command through `sh -c`.
---@param command string
---@return string output stdout lines followed by stderr lines
---@return integer exit_code clamped to 0-255
function syntropy.shell(command) end

---Hand the terminal to another program and wait for it to exit.
---@param command string
---@param args string[]|nil
---@return integer exit_code clamped to 0-255
function syntropy.invoke_tui(command, args) end

---Open a file in $EDITOR (then $VISUAL, then vim).
---@param path string
---@return integer exit_code clamped to 0-255
function syntropy.invoke_editor(path) end

---Expand `~`, environment variables and, inside task callbacks,
---`./` and `../` relative to the plugin directory.
---@param path string
---@return string
function syntropy.expand_path(path) end

---Deep-merge two tables. Override wins; arrays are replaced.
---@generic T
---@param base T
---@param override T
---@return T
function merge(base, override) end
"""

PLUGIN_LUA_TEMPLATE = """\
---@meta
-- Type definitions for plugin.lua files.

---@class PluginMetadata
---@field name string
---@field version string MAJOR.MINOR.PATCH
---@field icon string|nil single terminal cell
---@field description string|nil
---@field platforms string[]|nil e.g. {"linux", "macos"}

---@class ItemSource
---@field tag string required when a task has several item sources
---@field items fun(): string[]
---@field preselected_items (fun(): string[])|nil
---@field preview (fun(item: string): string|nil)|nil
---@field execute (fun(items: string[]): string, integer)|nil

---@class PluginTask
---@field description string
---@field name string|nil
---@field mode "multi"|"single"|"none"|nil
---@field execution_confirmation_message string|nil
---@field suppress_success_notification boolean|nil
---@field item_polling_interval integer|nil milliseconds, 0 disables
---@field preview_polling_interval integer|nil milliseconds, 0 disables
---@field pre_run fun()|nil
---@field post_run fun()|nil
---@field execute (fun(items: string[]): string, integer)|nil
---@field preview (fun(item: string): string|nil)|nil
---@field item_sources table<string, ItemSource>|nil

---@class PluginDefinition
---@field metadata PluginMetadata
---@field tasks table<string, PluginTask>
---@field config table|nil
"""

LUARC_JSON_TEMPLATE = """\
{
  "$schema": "https://raw.githubusercontent.com/LuaLS/vscode-lua/master/setting/schema.json",
  "runtime.version": "Lua 5.4",
  "workspace.library": ["."],
  "diagnostics.globals": ["syntropy", "merge"]
}
"""

SCAFFOLD_FILES = {
    "syntropy.lua": SYNTROPY_LUA_TEMPLATE,
    ".luarc.json": LUARC_JSON_TEMPLATE,
    "plugin.lua": PLUGIN_LUA_TEMPLATE,
}


def write_scaffold(plugins_dir: Path) -> list[str]:
    """Write the scaffold files. Returns the names that already existed."""
    plugins_dir.mkdir(parents=True, exist_ok=True)
    existing = [name for name in SCAFFOLD_FILES if (plugins_dir / name).exists()]
    for name, content in SCAFFOLD_FILES.items():
        (plugins_dir / name).write_text(content, encoding="utf-8")
    return existing


def init():
    """Create the plugin development scaffold in the config directory."""
    plugins_dir = override_plugins_root()
    try:
        existing = write_scaffold(plugins_dir)
    except OSError as e:
        err_console.print(f"[red]Failed to write scaffold:[/red] {e}")
        raise typer.Exit(1)

    if existing:
        err_console.print("[yellow]Warning: the following files were overwritten:[/yellow]")
        for name in existing:
            err_console.print(f"  - {name}")

    console.print(f"[green]✓ Plugin development environment initialized at:[/green] {plugins_dir}")
    console.print("\nCreated files:")
    console.print("  - syntropy.lua (type hints for the syntropy namespace)")
    console.print("  - .luarc.json (Lua language server config)")
    console.print("  - plugin.lua (plugin type definitions)")
    console.print("\nNext steps:")
    console.print(f"  1. Create your plugin: [cyan]mkdir {plugins_dir}/my-plugin[/cyan]")
    console.print("  2. Validate it: [cyan]syntropy validate --plugin <dir>[/cyan]")
    console.print("  3. Run: [cyan]syntropy[/cyan]")


def tui(settings: Settings, plugin: str | None = None, task: str | None = None) -> None:
    """Launch the interactive TUI."""
    from syntropy.tui.app import SyntropyApp

    configure_logging(
        level=settings.log_level,
        format=settings.log_format,
        log_file=settings.log_file,
    )
    app = SyntropyApp(
        settings,
        plugin_name=plugin or settings.default_plugin,
        task_key=task or (settings.default_task if not plugin else None),
    )
    try:
        app.run()
    finally:
        app.close()
    raise typer.Exit(app.return_code or 0)
