"""Lua ``package.path`` entries for plugin modules.

Resolution order: each plugin's own ``lua/`` directory (``lua/?.lua`` and
``lua/?/init.lua``), then the ``shared/`` directory of each plugin root.
"""

from __future__ import annotations

from pathlib import Path

SHARED_DIR_NAME = "shared"


class ModulePathBuilder:
    """Collects ``package.path`` templates, skipping directories that do not exist."""

    def __init__(self):
        self._paths: list[str] = []

    def with_plugin_dir(self, plugin_dir: Path) -> ModulePathBuilder:
        lua_dir = plugin_dir / "lua"
        if lua_dir.is_dir():
            self._add(f"{lua_dir}/?.lua")
            self._add(f"{lua_dir}/?/init.lua")
        return self

    def with_shared_modules(self, plugins_root: Path) -> ModulePathBuilder:
        shared = plugins_root / SHARED_DIR_NAME
        if shared.is_dir():
            self._add(f"{shared}/?.lua")
        return self

    def build(self) -> list[str]:
        return list(self._paths)

    def _add(self, entry: str) -> None:
        if entry not in self._paths:
            self._paths.append(entry)
