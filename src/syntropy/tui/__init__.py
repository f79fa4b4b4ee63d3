"""Syntropy terminal user interface."""
