"""The script host: one Lua interpreter shared by every operation.

Lua states are not safe for concurrent entry, so every interaction with
the interpreter (evaluating a plugin, calling a callback, reading a
table) happens while holding ``ScriptHost.gate``. Callbacks run as
coroutines; when one yields a host request (see ``stdlib``) the gate is
released while the request is served and re-acquired only to resume the
coroutine. Preview polling can therefore proceed while an execute
callback waits on a long shell command.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from lupa.lua54 import LuaError, LuaRuntime, lua_type

from syntropy.errors import (
    HostPrimitiveError,
    PathContextError,
    ScriptEvaluationError,
    ScriptRuntimeError,
    SyntropyError,
)
from syntropy.scripting import bridge
from syntropy.scripting.merge import MERGE_SOURCE
from syntropy.scripting.stdlib import (
    ERROR_PATH_CONTEXT,
    PRELUDE_SOURCE,
    REQUEST_MARKER,
    HostPrimitives,
)

if TYPE_CHECKING:
    from syntropy.execution.handoff import HandoffBroker

logger = logging.getLogger(__name__)


class ScriptHost:
    """Owns the Lua runtime for the lifetime of the process.

    Args:
        handoff: Broker used by ``invoke_tui``/``invoke_editor``. A fresh
            unattached broker (programs run inline) is created if omitted.
        shell_timeout: Optional timeout in seconds for ``syntropy.shell``.
    """

    def __init__(self, handoff: HandoffBroker | None = None, shell_timeout: float | None = None):
        if handoff is None:
            from syntropy.execution.handoff import HandoffBroker

            handoff = HandoffBroker()
        self.handoff = handoff
        self.gate = threading.RLock()
        self._primitives = HostPrimitives(handoff, shell_timeout)
        self._active_directory: Path | None = None
        self._closed = False

        self._lua = LuaRuntime(unpack_returned_tuples=True, register_eval=False)
        merge = self._lua.execute(MERGE_SOURCE)
        install = self._lua.execute(PRELUDE_SOURCE)
        self._merge = merge
        self._spawn, self._drive, self._discard, self._compile = install(
            REQUEST_MARKER, self._serve_sync, self._expand_path, merge
        )
        logger.debug("Lua runtime initialised")

    # ------------------------------------------------------------------
    # Gate and raw access
    # ------------------------------------------------------------------

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the interpreter gate (re-entrant)."""
        with self.gate:
            yield

    @property
    def lua(self) -> LuaRuntime:
        return self._lua

    def globals(self):
        return self._lua.globals()

    def table(self, values: list | dict | None = None):
        """Build a Lua table from a Python list or dict (one level deep)."""
        with self.gate:
            if values is None:
                return self._lua.table()
            return self._lua.table_from(values)

    def prepend_package_path(self, entries: list[str]) -> None:
        """Put ``entries`` in front of Lua's ``package.path``."""
        if not entries:
            return
        with self.gate:
            package = self._lua.globals().package
            package.path = ";".join(entries) + ";" + package.path
            logger.debug(f"package.path prefixed with {len(entries)} entries")

    def merge(self, base: Any, override: Any) -> Any:
        """Deep-merge two Lua tables; override wins, arrays are replaced."""
        with self.gate:
            self._check_open()
            try:
                return self._merge(base, override)
            except LuaError as e:
                raise ScriptRuntimeError(f"merge failed: {e}", callback="merge") from e

    def close(self) -> None:
        """Release the interpreter. Further calls fail."""
        with self.gate:
            self._closed = True
            self._lua = None
            self._merge = self._spawn = self._drive = self._discard = self._compile = None

    # ------------------------------------------------------------------
    # Evaluation and calls
    # ------------------------------------------------------------------

    def evaluate_file(self, path: Path) -> Any:
        """Evaluate a plugin script and return the table it returns.

        Evaluation has no plugin directory context, so relative
        ``expand_path`` calls at the top level of a script fail.

        Raises:
            ScriptEvaluationError: If the file cannot be read, does not
                compile, raises, or does not return a table.
        """
        try:
            source = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ScriptEvaluationError(f"cannot read {path}: {e}", path=str(path)) from e

        with self.gate:
            self._check_open()
            chunk, message = self._compile(source, f"@{path}")
        if chunk is None:
            raise ScriptEvaluationError(f"syntax error: {message}", path=str(path))

        try:
            values = self._run(chunk, (), directory=None, label=str(path))
        except SyntropyError as e:
            raise ScriptEvaluationError(e.message, path=str(path)) from e

        result = values[0] if values else None
        with self.gate:
            if not bridge.is_table(result):
                raise ScriptEvaluationError(
                    f"script must return a table, got {lua_type(result) or type(result).__name__}",
                    path=str(path),
                )
        return result

    def call(
        self,
        fn: Any,
        *args: Any,
        directory: Path | None = None,
        label: str = "callback",
    ) -> tuple:
        """Call a Lua function as a host-managed coroutine.

        Python list/dict arguments are converted to Lua tables. Results
        are converted to plain Python values.

        Args:
            fn: Lua function.
            directory: Plugin directory that relative paths resolve
                against while the callback runs.
            label: Name used in error messages.

        Raises:
            ScriptRuntimeError: If the callback raises.
            PathContextError: If the callback expands a relative path
                without a plugin directory.
            HostPrimitiveError: If a host primitive failed and the
                callback did not catch it.
        """
        with self.gate:
            self._check_open()
            lua_args = tuple(self._to_lua(arg) for arg in args)
        values = self._run(fn, lua_args, directory=directory, label=label)
        with self.gate:
            return tuple(bridge.to_python(value) for value in values)

    def _run(self, fn: Any, args: tuple, directory: Path | None, label: str) -> tuple:
        """Drive ``fn`` to completion, serving yielded host requests."""
        with self.gate:
            self._check_open()
            try:
                thread_id = self._spawn(fn)
            except LuaError as e:
                raise ScriptRuntimeError(f"{label}: {e}", callback=label) from e
        try:
            return self._drive_until_done(thread_id, args, directory, label)
        finally:
            with self.gate:
                if not self._closed:
                    self._discard(thread_id)

    def _drive_until_done(
        self, thread_id: int, args: tuple, directory: Path | None, label: str
    ) -> tuple:
        resume_args = args
        while True:
            with self.gate:
                self._check_open()
                previous = self._active_directory
                self._active_directory = directory
                try:
                    packed, status = self._drive(thread_id, *resume_args)
                except LuaError as e:
                    raise ScriptRuntimeError(f"{label}: {e}", callback=label) from e
                finally:
                    self._active_directory = previous

                values = tuple(packed[i] for i in range(1, packed["n"] + 1))
                if not values[0]:
                    raise self._translate_error(values[1] if len(values) > 1 else None, label)
                if status == "dead":
                    return values[1:]
                if len(values) < 3 or values[1] != REQUEST_MARKER:
                    raise ScriptRuntimeError(
                        f"{label}: coroutine.yield called outside a host primitive",
                        callback=label,
                    )
                op = values[2]
                request_args = [bridge.to_python(value) for value in values[3:]]

            # Gate released while the request blocks
            logger.debug(f"{label}: serving host request {op}")
            resume_args = self._primitives.serve(op, request_args)

    def _serve_sync(self, op: str, *args: Any) -> tuple:
        """Serve a request from outside a host-managed coroutine (gate held)."""
        return self._primitives.serve(op, [bridge.to_python(arg) for arg in args])

    def _expand_path(self, path: str) -> tuple:
        """Resolve a path for ``syntropy.expand_path``. Never raises into Lua."""
        if path.startswith("./") or path.startswith("../"):
            directory = self._active_directory
            if directory is None:
                return (
                    None,
                    ERROR_PATH_CONTEXT,
                    f"cannot expand {path!r}: no plugin context "
                    "(relative paths only resolve inside task callbacks)",
                )
            return (os.path.normpath(os.path.join(directory, path)),)
        return (os.path.expandvars(os.path.expanduser(path)),)

    def _translate_error(self, error: Any, label: str) -> SyntropyError:
        if bridge.is_table(error) and error["__host_error"] is not None:
            kind = error["__host_error"]
            message = str(error["message"])
            if kind == ERROR_PATH_CONTEXT:
                return PathContextError(message)
            return HostPrimitiveError(message)
        message = str(error) if error is not None else "unknown error"
        return ScriptRuntimeError(f"{label}: {message}", callback=label)

    def _to_lua(self, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return self._lua.table_from(list(value))
        if isinstance(value, dict):
            return self._lua.table_from(value)
        return value

    def _check_open(self) -> None:
        if self._closed:
            raise ScriptRuntimeError("script host is closed")
