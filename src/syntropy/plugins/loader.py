"""Plugin discovery, merge and validation.

Plugins live in two roots. The base root (under the data dir) holds
plugins as installed; the override root (under the config dir) holds the
user's customisations. A plugin name present in both roots is built by
deep-merging the override document over the base document.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, NamedTuple

from lupa.lua54 import LuaError

from syntropy.config.settings import DEFAULT_PLUGIN_ICON
from syntropy.errors import PluginLoadError, ScriptRuntimeError, ValidationError
from syntropy.plugins.candidate import PLUGIN_FILE_NAME, PluginCandidate, discover
from syntropy.plugins.models import (
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
from syntropy.plugins.module_path import ModulePathBuilder
from syntropy.plugins.validation import validate_plugin
from syntropy.scripting import bridge

if TYPE_CHECKING:
    from syntropy.scripting.runtime import ScriptHost

logger = logging.getLogger(__name__)

_PLATFORM_NAMES = {"linux": "linux", "darwin": "macos", "win32": "windows"}

_TASK_CALLBACKS = ("pre_run", "post_run", "execute", "preview")
_SOURCE_CALLBACKS = ("items", "preselected_items", "preview", "execute")


class LoadResult(NamedTuple):
    plugins: list[Plugin]
    diagnostics: list[Diagnostic]


def current_platform() -> str:
    return _PLATFORM_NAMES.get(sys.platform, sys.platform)


# ----------------------------------------------------------------------
# Table parsing (caller holds the gate)
# ----------------------------------------------------------------------


def _optional_string(table: Any, key: str, where: str) -> str | None:
    value = table[key]
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{where}.{key} must be a string")
    return value


def _optional_callback(table: Any, key: str, where: str) -> bool:
    value = table[key]
    if value is None:
        return False
    if not bridge.is_function(value):
        raise ValidationError(f"{where}.{key} must be a function")
    return True


def _interval(table: Any, key: str, where: str) -> int:
    value = table[key]
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != int(value):
        raise ValidationError(f"{where}.{key} must be an integer number of milliseconds")
    if value < 0:
        raise ValidationError(f"{where}.{key} must not be negative")
    return int(value)


def parse_metadata(table: Any, default_icon: str) -> Metadata:
    metadata = table["metadata"]
    if not bridge.is_table(metadata):
        raise ValidationError("metadata table is required")

    name = _optional_string(metadata, "name", "metadata") or ""
    version = _optional_string(metadata, "version", "metadata")
    if version is None:
        raise ValidationError("metadata.version is required")
    icon = _optional_string(metadata, "icon", "metadata") or default_icon
    description = _optional_string(metadata, "description", "metadata") or ""

    platforms: tuple[str, ...] = ()
    raw_platforms = metadata["platforms"]
    if raw_platforms is not None:
        converted = bridge.to_python(raw_platforms) if bridge.is_table(raw_platforms) else None
        if not isinstance(converted, list) or not all(isinstance(p, str) for p in converted):
            raise ValidationError("metadata.platforms must be an array of strings")
        platforms = tuple(converted)

    return Metadata(
        name=name,
        version=version,
        icon=icon,
        description=description,
        platforms=platforms,
    )


def parse_item_sources(table: Any, where: str) -> dict[str, ItemSource]:
    sources = {}
    for key, source in table.items():
        source_where = f"{where}.item_sources.{key}"
        if not isinstance(key, str):
            raise ValidationError(f"{where}.item_sources keys must be strings")
        if not bridge.is_table(source):
            raise ValidationError(f"{source_where} must be a table")
        flags = {name: _optional_callback(source, name, source_where) for name in _SOURCE_CALLBACKS}
        sources[key] = ItemSource(
            key=key,
            tag=_optional_string(source, "tag", source_where) or "",
            has_items=flags["items"],
            has_preselected_items=flags["preselected_items"],
            has_preview=flags["preview"],
            has_execute=flags["execute"],
        )
    return sources


def parse_task(key: str, table: Any, plugin_name: str) -> Task:
    where = f"tasks.{key}"
    if not bridge.is_table(table):
        raise ValidationError(f"{where} must be a table")

    raw_mode = _optional_string(table, "mode", where) or Mode.NONE.value
    try:
        mode = Mode(raw_mode)
    except ValueError:
        allowed = ", ".join(m.value for m in Mode)
        raise ValidationError(f"{where}.mode must be one of {allowed}, got {raw_mode!r}") from None

    item_sources: dict[str, ItemSource] = {}
    raw_sources = table["item_sources"]
    if raw_sources is not None:
        if not bridge.is_table(raw_sources):
            raise ValidationError(f"{where}.item_sources must be a table")
        item_sources = parse_item_sources(raw_sources, where)

    flags = {name: _optional_callback(table, name, where) for name in _TASK_CALLBACKS}
    suppress = table["suppress_success_notification"]
    if suppress is not None and not isinstance(suppress, bool):
        raise ValidationError(f"{where}.suppress_success_notification must be a boolean")

    return Task(
        key=key,
        plugin_name=plugin_name,
        description=_optional_string(table, "description", where) or "",
        name=_optional_string(table, "name", where) or key,
        mode=mode,
        item_sources=item_sources,
        execution_confirmation_message=_optional_string(
            table, "execution_confirmation_message", where
        ),
        suppress_success_notification=bool(suppress),
        item_polling_interval=_interval(table, "item_polling_interval", where),
        preview_polling_interval=_interval(table, "preview_polling_interval", where),
        has_pre_run=flags["pre_run"],
        has_post_run=flags["post_run"],
        has_execute=flags["execute"],
        has_preview=flags["preview"],
    )


def parse_tasks(table: Any, plugin_name: str) -> dict[str, Task]:
    raw_tasks = table["tasks"]
    if raw_tasks is None:
        return {}
    if not bridge.is_table(raw_tasks):
        raise ValidationError("tasks must be a table")
    tasks = {}
    for key, task_table in raw_tasks.items():
        if not isinstance(key, str):
            raise ValidationError("task keys must be strings")
        tasks[key] = parse_task(key, task_table, plugin_name)
    return tasks


def build_plugin(
    table: Any,
    provenance: Provenance,
    host: ScriptHost,
    default_icon: str = DEFAULT_PLUGIN_ICON,
) -> Plugin:
    """Turn an evaluated (and possibly merged) table into a validated Plugin.

    Raises:
        ValidationError: If the table has the wrong shape or breaks a rule.
    """
    script = str(provenance.directory / PLUGIN_FILE_NAME)
    with host.locked():
        try:
            metadata = parse_metadata(table, default_icon)
            tasks = parse_tasks(table, metadata.name)
            raw_config = table["config"]
            config = bridge.to_python(raw_config) if raw_config is not None else None
        except ValidationError as e:
            raise ValidationError(e.message, path=script, plugin=e.plugin) from None
        except ScriptRuntimeError as e:
            raise ValidationError(f"config: {e.message}", path=script) from None
        except (LuaError, RecursionError) as e:
            raise ValidationError(f"unreadable plugin table: {e}", path=script) from None

    plugin = Plugin(
        metadata=metadata,
        tasks=tasks,
        provenance=provenance,
        config=config,
        table=table,
    )
    validate_plugin(plugin)
    return plugin


# ----------------------------------------------------------------------
# Loading
# ----------------------------------------------------------------------


def _diagnostic(error: PluginLoadError, candidate: PluginCandidate | None = None) -> Diagnostic:
    path = Path(error.path) if error.path else (candidate.script if candidate else None)
    plugin = error.plugin or (candidate.name if candidate else None)
    return Diagnostic(path=path, message=error.message, plugin=plugin)


def configure_module_paths(host: ScriptHost, roots: list[Path], candidates: list[PluginCandidate]) -> None:
    builder = ModulePathBuilder()
    for candidate in candidates:
        builder.with_plugin_dir(candidate.directory)
    for root in roots:
        builder.with_shared_modules(root)
    host.prepend_package_path(builder.build())


def _peek_root(
    candidates: list[PluginCandidate],
    host: ScriptHost,
    diagnostics: list[Diagnostic],
) -> dict[str, PluginCandidate]:
    """Evaluate every candidate of one root, keyed by declared name.

    A name declared twice in the same root keeps the first candidate.
    """
    by_name: dict[str, PluginCandidate] = {}
    for candidate in candidates:
        try:
            name = candidate.peek(host)
        except PluginLoadError as e:
            logger.warning(f"Skipping plugin at {candidate.directory}: {e.message}")
            diagnostics.append(_diagnostic(e, candidate))
            continue
        if name in by_name:
            kept = by_name[name]
            message = f"duplicate plugin name '{name}', keeping {kept.directory}"
            logger.warning(message)
            diagnostics.append(
                Diagnostic(
                    path=candidate.script,
                    message=message,
                    plugin=name,
                    severity=Severity.WARNING,
                )
            )
            continue
        by_name[name] = candidate
    return by_name


def _resolve(
    name: str,
    override: PluginCandidate | None,
    base: PluginCandidate | None,
    host: ScriptHost,
) -> tuple[Any, Provenance]:
    if override and base:
        try:
            table = host.merge(base.table, override.table)
        except ScriptRuntimeError as e:
            raise PluginLoadError(e.message, path=str(override.script), plugin=name) from None
        provenance = Provenance(
            directory=override.directory,
            origin=Origin.MERGED,
            sources=(base.script, override.script),
        )
        logger.debug(f"Merged plugin {name} from {base.directory} and {override.directory}")
        return table, provenance
    candidate = override or base
    return candidate.table, Provenance(
        directory=candidate.directory,
        origin=candidate.origin,
        sources=(candidate.script,),
    )


def load_plugins(
    override_root: Path,
    base_root: Path,
    host: ScriptHost,
    default_icon: str = DEFAULT_PLUGIN_ICON,
) -> LoadResult:
    """Discover, merge and validate plugins from both roots.

    A plugin that fails to evaluate or validate is excluded and reported
    as a diagnostic; the remaining plugins still load.

    Args:
        override_root: User customisations; wins on merge.
        base_root: Installed plugins.
        host: Script host used to evaluate and merge plugin tables.
        default_icon: Icon for plugins that do not declare one.

    Returns:
        LoadResult with plugins sorted by name and the diagnostics.
    """
    diagnostics: list[Diagnostic] = []
    override_candidates = discover(override_root, Origin.OVERRIDE)
    base_candidates = discover(base_root, Origin.BASE)
    configure_module_paths(
        host, [override_root, base_root], override_candidates + base_candidates
    )

    overrides = _peek_root(override_candidates, host, diagnostics)
    bases = _peek_root(base_candidates, host, diagnostics)

    platform = current_platform()
    plugins: list[Plugin] = []
    for name in sorted(set(overrides) | set(bases)):
        override, base = overrides.get(name), bases.get(name)
        try:
            table, provenance = _resolve(name, override, base, host)
            plugin = build_plugin(table, provenance, host, default_icon)
        except PluginLoadError as e:
            logger.warning(f"Plugin {name} failed validation: {e.message}")
            diagnostics.append(
                Diagnostic(
                    path=Path(e.path) if e.path else (override or base).script,
                    message=e.message,
                    plugin=name,
                )
            )
            continue

        if plugin.metadata.platforms and platform not in plugin.metadata.platforms:
            diagnostics.append(
                Diagnostic(
                    path=provenance.directory / PLUGIN_FILE_NAME,
                    message=f"not available on {platform}",
                    plugin=name,
                    severity=Severity.WARNING,
                )
            )
            continue
        plugins.append(plugin)

    logger.info(f"Loaded {len(plugins)} plugins ({len(diagnostics)} diagnostics)")
    return LoadResult(plugins, diagnostics)


def validate_plugin_path(
    path: Path,
    host: ScriptHost,
    override_root: Path,
    base_root: Path,
    default_icon: str = DEFAULT_PLUGIN_ICON,
) -> Plugin:
    """Validate a single plugin directory or ``plugin.lua`` file.

    If the plugin sits in one of the standard roots and the other root has
    a plugin directory of the same name, the merged result is validated.

    Raises:
        PluginLoadError: If the plugin fails to evaluate or validate.
    """
    path = path.expanduser()
    if path.is_dir():
        script = path / PLUGIN_FILE_NAME
    elif path.name == PLUGIN_FILE_NAME:
        script = path
    else:
        raise ValidationError(
            f"expected a directory containing {PLUGIN_FILE_NAME} or a path to it, got {path}",
            path=str(path),
        )
    if not script.is_file():
        raise ValidationError(f"plugin file not found: {script}", path=str(script))

    directory = script.parent.resolve()
    override_root = override_root.expanduser().resolve()
    base_root = base_root.expanduser().resolve()
    if directory.parent == override_root:
        origin, other_root = Origin.OVERRIDE, base_root
    elif directory.parent == base_root:
        origin, other_root = Origin.BASE, override_root
    else:
        origin, other_root = Origin.OVERRIDE, None

    candidate = PluginCandidate(directory=directory, origin=origin)
    counterpart = None
    if other_root is not None and (other_root / directory.name / PLUGIN_FILE_NAME).is_file():
        other_origin = Origin.BASE if origin is Origin.OVERRIDE else Origin.OVERRIDE
        counterpart = PluginCandidate(directory=other_root / directory.name, origin=other_origin)

    configure_module_paths(
        host,
        [directory.parent] + ([other_root] if other_root is not None else []),
        [c for c in (candidate, counterpart) if c is not None],
    )
    candidate.peek(host)
    if counterpart is None:
        table, provenance = _resolve(candidate.name, candidate, None, host)
    else:
        counterpart.peek(host)
        if origin is Origin.OVERRIDE:
            table, provenance = _resolve(candidate.name, candidate, counterpart, host)
        else:
            table, provenance = _resolve(candidate.name, counterpart, candidate, host)
    return build_plugin(table, provenance, host, default_icon)
