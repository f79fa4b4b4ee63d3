"""Lua <-> Python value conversion.

Lua callbacks return untyped values. Everything that crosses back into
Python is funnelled through these helpers so the rest of the code only
ever sees a closed set of shapes: item lists, preview text, execution
output, and plain config trees.

All functions that touch a Lua object must run while the caller holds
the script host gate.
"""

from __future__ import annotations

from typing import Any

from lupa.lua54 import lua_type

from syntropy.errors import ScriptRuntimeError

# Deeper nesting than this is treated as a cyclic table
MAX_TABLE_DEPTH = 64


def is_table(value: Any) -> bool:
    return lua_type(value) == "table"


def is_function(value: Any) -> bool:
    return lua_type(value) == "function"


def sequence_length(table: Any) -> int | None:
    """Return n if the table's keys are exactly 1..n, else None.

    An empty table counts as a sequence of length 0.
    """
    count = 0
    for key in table.keys():
        if isinstance(key, bool) or not isinstance(key, int) or key < 1:
            return None
        count += 1
    for index in range(1, count + 1):
        if table[index] is None:
            return None
    return count


def to_python(value: Any, _depth: int = 0) -> Any:
    """Deep-convert a Lua value to plain Python.

    Sequences become lists, other tables become dicts, and functions,
    threads and userdata are dropped.

    Raises:
        ScriptRuntimeError: If tables nest deeper than ``MAX_TABLE_DEPTH``,
            which is what a table that contains itself looks like.
    """
    kind = lua_type(value)
    if kind is None:
        return value
    if kind != "table":
        return None
    if _depth >= MAX_TABLE_DEPTH:
        raise ScriptRuntimeError(
            f"table nested more than {MAX_TABLE_DEPTH} levels deep (does it contain itself?)"
        )
    length = sequence_length(value)
    if length is not None:
        items = []
        for i in range(1, length + 1):
            converted = to_python(value[i], _depth + 1)
            if converted is not None:
                items.append(converted)
        return items
    result = {}
    for key, item in value.items():
        if lua_type(item) in ("function", "thread", "userdata"):
            continue
        result[key if lua_type(key) is None else str(key)] = to_python(item, _depth + 1)
    return result


def get_field(table: Any, *path: str) -> Any:
    """Walk nested tables, returning None as soon as a step is missing."""
    current = table
    for key in path:
        if not is_table(current):
            return None
        current = current[key]
    return current


# ----------------------------------------------------------------------
# Result shaping
# ----------------------------------------------------------------------


def as_items(value: Any, callback: str) -> list[str]:
    """Coerce an already converted callback result into a list of items."""
    if value is None:
        return []
    if isinstance(value, dict) and not value:
        return []
    if not isinstance(value, list):
        raise ScriptRuntimeError(
            f"{callback} must return a list of strings, got {type(value).__name__}",
            callback=callback,
        )
    items = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, (str, int, float)):
            raise ScriptRuntimeError(
                f"{callback} returned a non-string item: {item!r}", callback=callback
            )
        items.append(str(item))
    return items


def as_preview(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return None
    return str(value)


def as_execution_output(values: tuple, callback: str) -> tuple[str, int]:
    """Coerce ``output, status`` returned by an execute callback.

    A missing output becomes the empty string and a missing status means
    success.
    """
    output = values[0] if len(values) > 0 else None
    status = values[1] if len(values) > 1 else None
    if output is None:
        output = ""
    elif isinstance(output, (dict, list)):
        raise ScriptRuntimeError(
            f"{callback} must return a string as its first value", callback=callback
        )
    if status is None:
        status = 0
    elif isinstance(status, bool) or not isinstance(status, (int, float)):
        raise ScriptRuntimeError(
            f"{callback} must return an integer exit code, got {status!r}",
            callback=callback,
        )
    return str(output), int(status)
