"""Embedded Lua scripting host."""

from .runtime import ScriptHost

__all__ = ["ScriptHost"]
