"""One-shot task execution from the command line."""

from __future__ import annotations

import logging
from typing import Annotated

import typer

from syntropy.errors import ItemSelectionError, PluginNotFoundError, SyntropyError
from syntropy.execution import (
    CallerKind,
    ItemSet,
    ResultKind,
    TaskEngine,
    default_selection,
)
from syntropy.plugins import Plugin, Task

from ..helpers import (
    Session,
    console,
    err_console,
    open_session,
    print_diagnostics,
    print_error,
)
from ..items import ItemMatcher, parse_comma_separated_with_escapes

logger = logging.getLogger(__name__)


def _find_task(plugin: Plugin, task_key: str) -> Task:
    task = plugin.get_task(task_key)
    if task is None:
        available = ", ".join(sorted(plugin.tasks, key=str.lower))
        raise PluginNotFoundError(
            f"task '{task_key}' not found in plugin '{plugin.name}'. "
            f"Available tasks: {available}",
            plugin=plugin.name,
            task=task_key,
        )
    return task


def _require_item_sources(task: Task, flag: str) -> None:
    if not task.has_item_sources:
        raise ItemSelectionError(
            f"task '{task.key}' has no item sources; {flag} requires a task with item sources"
        )


def resolve_items(
    task: Task,
    item_set: ItemSet,
    requested: list[str],
    select_all: bool = False,
) -> list[str]:
    """Pick the items a one-shot execution acts on.

    Raises:
        ItemSelectionError: If the request cannot be satisfied.
    """
    if not task.has_item_sources:
        if requested:
            raise ItemSelectionError(
                f"task '{task.key}' has no item sources (execute-only task); "
                "--items cannot be used with it"
            )
        return []

    if requested:
        if item_set.preselected:
            err_console.print(
                f"[yellow]Warning:[/yellow] --items overrides preselected_items(). "
                f"Using {len(requested)} specified item(s) instead of "
                f"{len(item_set.preselected)} preselected item(s)."
            )
        matcher = ItemMatcher(item_set.items, multi_source=task.is_multi_source)
        return matcher.match_all(requested)

    if select_all:
        err_console.print(f"Executing with all {len(item_set.items)} item(s)")
        return list(item_set.items)

    selection = default_selection(task, item_set)
    if task.mode.value == "multi":
        source = "preselected" if item_set.preselected else "all"
        err_console.print(f"Executing with {source} {len(selection)} item(s)")
    return selection


def _emit_items(items: list[str]) -> None:
    for item in items:
        console.print(item, markup=False, highlight=False, soft_wrap=True)


def _run(
    session: Session,
    plugin_name: str,
    task_key: str,
    items: str | None,
    select_all: bool,
    produce_items: bool,
    produce_preselected_items: bool,
    produce_preselection_matches: bool,
    preview: str | None,
) -> int:
    requested = parse_comma_separated_with_escapes(items) if items is not None else []
    if items is not None and not requested:
        raise ItemSelectionError("--items cannot be empty or whitespace-only")

    plugin = session.find_plugin(plugin_name)
    task = _find_task(plugin, task_key)
    engine = TaskEngine(session.host, plugin, task.key, CallerKind.ONE_SHOT)

    if preview is not None:
        _require_item_sources(task, "--preview")
    elif produce_items or produce_preselected_items or produce_preselection_matches:
        _require_item_sources(task, "--produce-*")

    item_set = engine.start()
    for error in item_set.errors:
        print_error("Item source error:", error, color="yellow")

    if preview is not None:
        matcher = ItemMatcher(item_set.items, multi_source=task.is_multi_source)
        text = engine.preview(matcher.match(preview))
        if text is not None:
            console.print(text, markup=False, highlight=False, soft_wrap=True)
        return 0
    if produce_items:
        _emit_items(item_set.items)
        return 0
    if produce_preselected_items:
        _emit_items(item_set.preselected)
        return 0
    if produce_preselection_matches:
        preselected = set(item_set.preselected)
        _emit_items([item for item in item_set.items if item in preselected])
        return 0

    selected = resolve_items(task, item_set, requested, select_all)
    result = engine.execute(selected)

    if result.kind is ResultKind.OUTPUT:
        if result.output:
            console.print(result.output, markup=False, highlight=False, soft_wrap=True)
    else:
        print_error("Error:", result.output)

    if result.exit_code != result.status:
        err_console.print(
            f"[yellow]Warning:[/yellow] exit code {result.status} clamped to {result.exit_code}"
        )
    return result.exit_code


def execute(
    ctx: typer.Context,
    plugin: Annotated[str, typer.Option("--plugin", "-p", help="Plugin name")],
    task: Annotated[str, typer.Option("--task", "-t", help="Task key")],
    items: Annotated[
        str | None,
        typer.Option(
            "--items",
            "-i",
            help=r"Comma-separated items to execute on (escape commas as \, and backslashes as \\)",
        ),
    ] = None,
    select_all: Annotated[
        bool, typer.Option("--all", help="Execute on every item regardless of mode")
    ] = False,
    produce_items: Annotated[
        bool, typer.Option("--produce-items", help="Print all items and exit")
    ] = False,
    produce_preselected_items: Annotated[
        bool,
        typer.Option("--produce-preselected-items", help="Print preselected items and exit"),
    ] = False,
    produce_preselection_matches: Annotated[
        bool,
        typer.Option(
            "--produce-preselection-matches",
            help="Print items that are also preselected and exit",
        ),
    ] = False,
    preview: Annotated[
        str | None, typer.Option("--preview", help="Print the preview of ITEM and exit")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log to stderr")] = False,
):
    """Execute a plugin task without launching the TUI.

    Output goes to stdout and the task's exit code becomes the process
    exit code (clamped to 0-255).

    [bold]Examples:[/bold]

        syntropy execute --plugin packages --task info --items git
        syntropy execute -p packages -t export --items "a\\,b,c"
        syntropy execute -p packages -t export --produce-items
    """
    exclusive = [
        name
        for name, enabled in (
            ("--items", items is not None),
            ("--all", select_all),
            ("--produce-items", produce_items),
            ("--produce-preselected-items", produce_preselected_items),
            ("--produce-preselection-matches", produce_preselection_matches),
            ("--preview", preview is not None),
        )
        if enabled
    ]
    if len(exclusive) > 1:
        err_console.print(f"[red]Options cannot be combined:[/red] {', '.join(exclusive)}")
        raise typer.Exit(2)

    session = open_session(ctx.obj, verbose=verbose)
    try:
        print_diagnostics([d for d in session.diagnostics if d.plugin == plugin])
        code = _run(
            session,
            plugin,
            task,
            items,
            select_all,
            produce_items,
            produce_preselected_items,
            produce_preselection_matches,
            preview,
        )
    except SyntropyError as e:
        logger.debug(f"execute failed: {e.to_dict()}")
        print_error("Error:", e.message)
        raise typer.Exit(1)
    finally:
        session.close()
    raise typer.Exit(code)
