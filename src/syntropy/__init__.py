"""Syntropy - terminal launcher for Lua automation plugins."""

__version__ = "0.4.0"
