"""Plugin discovery on disk."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from lupa.lua54 import LuaError

from syntropy.errors import ValidationError
from syntropy.plugins.models import Origin
from syntropy.scripting import bridge

if TYPE_CHECKING:
    from syntropy.scripting.runtime import ScriptHost

logger = logging.getLogger(__name__)

PLUGIN_FILE_NAME = "plugin.lua"


@dataclass
class PluginCandidate:
    """A directory that contains a plugin script, not yet evaluated."""

    directory: Path
    origin: Origin
    table: Any = field(default=None, repr=False)
    name: str | None = None

    @property
    def script(self) -> Path:
        return self.directory / PLUGIN_FILE_NAME

    def peek(self, host: ScriptHost) -> str:
        """Evaluate the script and return its declared ``metadata.name``.

        The evaluated table is kept so the script is never run twice.

        Raises:
            ScriptEvaluationError: If the script fails to evaluate.
            ValidationError: If the script does not declare a name.
        """
        if self.name is not None:
            return self.name
        table = host.evaluate_file(self.script)
        with host.locked():
            try:
                name = bridge.get_field(table, "metadata", "name")
            except LuaError as e:
                raise ValidationError(f"unreadable metadata: {e}", path=str(self.script)) from None
        if not isinstance(name, str) or not name:
            raise ValidationError(
                "metadata.name is required and must be a non-empty string",
                path=str(self.script),
            )
        self.table = table
        self.name = name
        return name


def discover(root: Path, origin: Origin) -> list[PluginCandidate]:
    """List plugin directories under ``root`` in sorted order.

    A missing root yields nothing.
    """
    if not root.is_dir():
        logger.debug(f"Plugin root {root} does not exist")
        return []
    candidates = [
        PluginCandidate(directory=entry, origin=origin)
        for entry in sorted(root.iterdir())
        if entry.is_dir() and (entry / PLUGIN_FILE_NAME).is_file()
    ]
    logger.debug(f"Found {len(candidates)} plugin candidates in {root}")
    return candidates
