"""Plugin data model.

Plugins are built once by the loader and never mutated afterwards; task
runs on different threads read them concurrently. The evaluated Lua table
travels with the plugin so callbacks can be resolved lazily, but it never
takes part in equality.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class Mode(str, Enum):
    """How many items a task acts on."""

    MULTI = "multi"
    SINGLE = "single"
    NONE = "none"


class Origin(str, Enum):
    """Which discovery root a plugin came from."""

    BASE = "base"
    OVERRIDE = "override"
    MERGED = "merged"


@dataclass(frozen=True)
class Metadata:
    name: str
    version: str
    icon: str
    description: str = ""
    platforms: tuple[str, ...] = ()


@dataclass(frozen=True)
class ItemSource:
    """A named provider of items inside a task."""

    key: str
    tag: str
    has_items: bool = True
    has_preselected_items: bool = False
    has_preview: bool = False
    has_execute: bool = False


@dataclass(frozen=True)
class Task:
    """One user-invocable operation of a plugin."""

    key: str
    plugin_name: str
    description: str
    name: str = ""
    mode: Mode = Mode.NONE
    item_sources: dict[str, ItemSource] = field(default_factory=dict)
    execution_confirmation_message: str | None = None
    suppress_success_notification: bool = False
    item_polling_interval: int = 0
    preview_polling_interval: int = 0
    has_pre_run: bool = False
    has_post_run: bool = False
    has_execute: bool = False
    has_preview: bool = False

    @property
    def display_name(self) -> str:
        return self.name or self.key

    @property
    def source_keys(self) -> list[str]:
        """Item source keys in the order they are enumerated and executed."""
        return sorted(self.item_sources)

    @property
    def is_multi_source(self) -> bool:
        return len(self.item_sources) > 1

    @property
    def has_item_sources(self) -> bool:
        return bool(self.item_sources)

    @property
    def is_executable(self) -> bool:
        """True if some execute callback exists for this task."""
        if self.item_sources:
            return any(source.has_execute for source in self.item_sources.values())
        return self.has_execute

    def source_for_tag(self, tag: str) -> ItemSource | None:
        for source in self.item_sources.values():
            if source.tag == tag:
                return source
        return None


@dataclass(frozen=True)
class Provenance:
    """Where a plugin's definition came from."""

    directory: Path
    origin: Origin
    sources: tuple[Path, ...] = ()


@dataclass(frozen=True)
class Plugin:
    metadata: Metadata
    tasks: dict[str, Task]
    provenance: Provenance
    config: Any = None
    table: Any = field(default=None, compare=False, repr=False)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def directory(self) -> Path:
        return self.provenance.directory

    @property
    def task_keys(self) -> list[str]:
        return sorted(self.tasks)

    def get_task(self, key: str) -> Task | None:
        return self.tasks.get(key)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A problem found while loading plugins.

    ``ERROR`` diagnostics exclude the plugin; ``WARNING`` ones do not.
    """

    path: Path | None
    message: str
    plugin: str | None = None
    severity: Severity = Severity.ERROR

    def __str__(self) -> str:
        where = self.plugin or (str(self.path) if self.path else "plugins")
        return f"{where}: {self.message}"
