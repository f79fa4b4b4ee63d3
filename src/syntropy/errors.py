"""Syntropy Error Hierarchy.

Structured exception types for plugin loading and task execution.
"""

from __future__ import annotations


class SyntropyError(Exception):
    """Base error for all Syntropy exceptions."""

    code = "SYNTROPY_ERROR"

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# Load-time Errors
class PluginLoadError(SyntropyError):
    """Base error for failures that exclude a single plugin."""

    code = "PLUGIN_LOAD_ERROR"

    def __init__(self, message: str, path: str = None, plugin: str = None):
        super().__init__(message, {"path": path, "plugin": plugin})
        self.path = path
        self.plugin = plugin


class ScriptEvaluationError(PluginLoadError):
    """A plugin script failed to evaluate or did not return a table."""

    code = "SCRIPT_EVALUATION"


class ValidationError(PluginLoadError):
    """A plugin violates a structural rule."""

    code = "VALIDATION"


# Run-time Errors
class ScriptRuntimeError(SyntropyError):
    """A script callback raised while running."""

    code = "SCRIPT_RUNTIME"

    def __init__(self, message: str, callback: str = None):
        super().__init__(message, {"callback": callback})
        self.callback = callback


class CallbackMissingError(SyntropyError):
    """A required callback is absent or not callable."""

    code = "CALLBACK_MISSING"

    def __init__(self, message: str, callback: str = None):
        super().__init__(message, {"callback": callback})
        self.callback = callback


class PathContextError(SyntropyError):
    """Relative path expansion requested outside a plugin callback."""

    code = "PATH_CONTEXT"

    def __init__(self, message: str, path: str = None):
        super().__init__(message, {"path": path})
        self.path = path


class HostPrimitiveError(SyntropyError):
    """A host primitive could not do its work (e.g. the program failed to spawn)."""

    code = "HOST_PRIMITIVE"

    def __init__(self, message: str, primitive: str = None):
        super().__init__(message, {"primitive": primitive})
        self.primitive = primitive


class TaskStateError(SyntropyError):
    """An engine operation was requested in the wrong lifecycle phase."""

    code = "TASK_STATE"

    def __init__(self, message: str, phase: str = None):
        super().__init__(message, {"phase": phase})
        self.phase = phase


# Caller Errors
class ItemSelectionError(SyntropyError):
    """Requested items could not be resolved against the enumerated items."""

    code = "ITEM_SELECTION"

    def __init__(self, message: str, requested: str = None, available: list[str] = None):
        super().__init__(message, {"requested": requested, "available": available or []})
        self.requested = requested
        self.available = available or []


class PluginNotFoundError(SyntropyError):
    """A named plugin or task does not exist in the loaded collection."""

    code = "NOT_FOUND"

    def __init__(self, message: str, plugin: str = None, task: str = None):
        super().__init__(message, {"plugin": plugin, "task": task})
        self.plugin = plugin
        self.task = task
