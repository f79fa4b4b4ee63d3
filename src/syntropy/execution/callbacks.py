"""Resolve callback references inside a plugin's Lua table."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from syntropy.errors import CallbackMissingError
from syntropy.plugins.models import Plugin
from syntropy.scripting import bridge

if TYPE_CHECKING:
    from syntropy.scripting.runtime import ScriptHost


def callback_label(task_key: str, name: str, source_key: str | None = None) -> str:
    if source_key is None:
        return f"tasks.{task_key}.{name}"
    return f"tasks.{task_key}.item_sources.{source_key}.{name}"


def resolve_callback(
    host: ScriptHost,
    plugin: Plugin,
    task_key: str,
    name: str,
    source_key: str | None = None,
) -> Any:
    """Return the Lua function at the given path.

    Raises:
        CallbackMissingError: If the value is absent or not a function.
    """
    label = callback_label(task_key, name, source_key)
    with host.locked():
        if source_key is None:
            fn = bridge.get_field(plugin.table, "tasks", task_key, name)
        else:
            fn = bridge.get_field(plugin.table, "tasks", task_key, "item_sources", source_key, name)
        if not bridge.is_function(fn):
            raise CallbackMissingError(
                f"{plugin.name}: {label} is not defined", callback=label
            )
    return fn


def invoke(
    host: ScriptHost,
    plugin: Plugin,
    task_key: str,
    name: str,
    *args: Any,
    source_key: str | None = None,
) -> tuple:
    """Resolve and call a callback with the plugin directory as path context."""
    fn = resolve_callback(host, plugin, task_key, name, source_key)
    return host.call(
        fn,
        *args,
        directory=plugin.directory,
        label=callback_label(task_key, name, source_key),
    )
