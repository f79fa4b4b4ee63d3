"""Structural validation of merged plugins."""

from __future__ import annotations

import semver

from syntropy.config.settings import is_single_cell
from syntropy.errors import ValidationError
from syntropy.plugins.models import Plugin, Task


def validate_version(version: str) -> None:
    """Require a three-component semantic version such as ``1.2.0``."""
    try:
        semver.Version.parse(version)
    except (ValueError, TypeError) as e:
        raise ValidationError(
            f"version {version!r} is not a valid semantic version (expected MAJOR.MINOR.PATCH)"
        ) from e


def validate_task(task: Task) -> None:
    prefix = f"task '{task.key}'"
    if not task.description.strip():
        raise ValidationError(f"{prefix}: description is required")

    for key in task.source_keys:
        source = task.item_sources[key]
        if not source.has_items:
            raise ValidationError(f"{prefix}: item source '{key}' must define an items function")

    if task.is_multi_source:
        seen: dict[str, str] = {}
        for key in task.source_keys:
            tag = task.item_sources[key].tag
            if not tag:
                raise ValidationError(
                    f"{prefix}: item source '{key}' needs a tag when the task has several sources"
                )
            if tag in seen:
                raise ValidationError(
                    f"{prefix}: item sources '{seen[tag]}' and '{key}' share the tag '{tag}'"
                )
            seen[tag] = key

    if not task.is_executable:
        if task.has_item_sources:
            raise ValidationError(
                f"{prefix}: at least one item source must define an execute function"
            )
        raise ValidationError(f"{prefix}: must define an execute function")


def validate_plugin(plugin: Plugin) -> None:
    """Check a fully merged plugin.

    Raises:
        ValidationError: Tagged with the plugin name and origin script.
    """
    metadata = plugin.metadata
    script = str(plugin.directory / "plugin.lua")
    try:
        if not metadata.name.strip():
            raise ValidationError("metadata.name must not be empty")
        validate_version(metadata.version)
        if not is_single_cell(metadata.icon):
            raise ValidationError(
                f"icon {metadata.icon!r} must occupy exactly one terminal cell"
            )
        if not plugin.tasks:
            raise ValidationError("plugin must define at least one task")
        for key in plugin.task_keys:
            validate_task(plugin.tasks[key])
    except ValidationError as e:
        raise ValidationError(e.message, path=script, plugin=metadata.name or None) from None
