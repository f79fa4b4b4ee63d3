"""Plugin model, discovery and loading."""

from .loader import LoadResult, build_plugin, load_plugins, validate_plugin_path
from .models import (
    Diagnostic,
    ItemSource,
    Metadata,
    Mode,
    Origin,
    Plugin,
    Provenance,
    Severity,
    Task,
)

__all__ = [
    "Diagnostic",
    "ItemSource",
    "LoadResult",
    "Metadata",
    "Mode",
    "Origin",
    "Plugin",
    "Provenance",
    "Severity",
    "Task",
    "build_plugin",
    "load_plugins",
    "validate_plugin_path",
]
