"""Task execution engine.

Drives one task through its lifecycle::

    Idle -> Setup -> Enumerating -> (Selecting) -> Confirming? ->
    Executing -> Teardown -> Refreshing? -> Idle

The same engine serves one-shot CLI runs and interactive TUI sessions;
only interactive callers visit Selecting, Confirming and Refreshing.
Enumerating always completes (possibly with an empty list and recorded
errors) before Executing is allowed.

All lifecycle operations are serialised by an operation lock. Poll ticks
only try that lock and are dropped when it is held, so a poll never
overlaps an execution.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from syntropy.errors import (
    CallbackMissingError,
    HostPrimitiveError,
    ItemSelectionError,
    PluginNotFoundError,
    ScriptRuntimeError,
    SyntropyError,
    TaskStateError,
)
from syntropy.execution import callbacks
from syntropy.execution.exit_code import clamp_exit_code
from syntropy.execution.tags import format_tagged, parse_tag
from syntropy.plugins.models import Mode, Plugin, Task
from syntropy.scripting import bridge

if TYPE_CHECKING:
    from syntropy.scripting.runtime import ScriptHost

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    """Lifecycle phase of a task run."""

    IDLE = "idle"
    SETUP = "setup"
    ENUMERATING = "enumerating"
    SELECTING = "selecting"
    CONFIRMING = "confirming"
    EXECUTING = "executing"
    TEARDOWN = "teardown"
    REFRESHING = "refreshing"


class CallerKind(str, Enum):
    ONE_SHOT = "one_shot"
    INTERACTIVE = "interactive"


class ResultKind(str, Enum):
    """How an execution ended.

    ``OUTPUT``: the callback returned. ``FAILURE``: the callback raised.
    ``ERROR``: the plugin is broken (missing callback, relative path
    without context, failed setup) and the user should be told so.
    """

    OUTPUT = "output"
    FAILURE = "failure"
    ERROR = "error"


# Authoring mistakes surface as hard errors rather than script failures
_ERROR_TYPES = (CallbackMissingError, TaskStateError, ItemSelectionError)


@dataclass(frozen=True)
class ExecutionResult:
    output: str
    status: int
    kind: ResultKind = ResultKind.OUTPUT

    @property
    def success(self) -> bool:
        return self.kind is ResultKind.OUTPUT and self.status == 0

    @property
    def exit_code(self) -> int:
        """Status clamped to what a process can report."""
        return clamp_exit_code(self.status)

    @classmethod
    def from_error(cls, error: SyntropyError, kind: ResultKind | None = None) -> ExecutionResult:
        if kind is None:
            if isinstance(error, (ScriptRuntimeError, HostPrimitiveError)):
                kind = ResultKind.FAILURE
            else:
                kind = ResultKind.ERROR
        return cls(output=error.message, status=1, kind=kind)


@dataclass
class ItemSet:
    """Result of one enumeration pass."""

    items: list[str] = field(default_factory=list)
    preselected: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class TaskEngine:
    """Runs the lifecycle of a single task for a single caller.

    Args:
        host: Script host holding the plugin's Lua state.
        plugin: Loaded plugin.
        task_key: Key of the task inside the plugin.
        caller: One-shot callers skip Selecting, Confirming and Refreshing.

    Raises:
        PluginNotFoundError: If the task does not exist.
    """

    def __init__(
        self,
        host: ScriptHost,
        plugin: Plugin,
        task_key: str,
        caller: CallerKind = CallerKind.ONE_SHOT,
    ):
        task = plugin.get_task(task_key)
        if task is None:
            raise PluginNotFoundError(
                f"task '{task_key}' not found in plugin '{plugin.name}'",
                plugin=plugin.name,
                task=task_key,
            )
        self.host = host
        self.plugin = plugin
        self.task: Task = task
        self.caller = caller
        self.item_set: ItemSet | None = None
        self.setup_error: SyntropyError | None = None
        self.dropped_polls = 0

        self._phase = Phase.IDLE
        self._phase_lock = threading.Lock()
        self._op_lock = threading.Lock()
        self._enumerated = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        with self._phase_lock:
            return self._phase

    def _set_phase(self, phase: Phase) -> None:
        with self._phase_lock:
            previous, self._phase = self._phase, phase
        logger.debug(
            f"{self.plugin.name}/{self.task.key}: {previous.value} -> {phase.value}"
        )

    @property
    def interactive(self) -> bool:
        return self.caller is CallerKind.INTERACTIVE

    @property
    def is_busy(self) -> bool:
        return self._op_lock.locked()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> ItemSet:
        """Run Setup and Enumerating.

        Raises:
            SyntropyError: If ``pre_run`` fails. The engine returns to Idle
                and refuses to execute.
        """
        with self._op_lock:
            return self._prepare()

    def _prepare(self) -> ItemSet:
        self._enumerated = False
        self.setup_error = None
        self._set_phase(Phase.SETUP)
        try:
            self._run_setup()
        except SyntropyError as e:
            logger.error(f"{self.plugin.name}/{self.task.key}: setup failed: {e.message}")
            self.setup_error = e
            self._set_phase(Phase.IDLE)
            raise

        self._set_phase(Phase.ENUMERATING)
        self.item_set = self._enumerate()
        self._enumerated = True
        if self.interactive:
            self._set_phase(Phase.SELECTING)
        return self.item_set

    def request_confirmation(self) -> bool:
        """Enter Confirming if the task asks for it. Returns True if it did."""
        with self._op_lock:
            if (
                self.interactive
                and self.task.execution_confirmation_message
                and self.phase is Phase.SELECTING
            ):
                self._set_phase(Phase.CONFIRMING)
                return True
            return False

    def cancel_confirmation(self) -> None:
        with self._op_lock:
            if self.phase is Phase.CONFIRMING:
                self._set_phase(Phase.SELECTING)

    def execute(self, items: list[str]) -> ExecutionResult:
        """Execute the task on ``items``, then tear down (and refresh).

        Interactive callers must pass through Confirming first when the
        task declares a confirmation message.
        """
        with self._op_lock:
            refusal = self._check_can_execute()
            if refusal is not None:
                return refusal

            self._set_phase(Phase.EXECUTING)
            started = time.monotonic()
            try:
                result = self._execute(items)
            except SyntropyError as e:
                logger.warning(
                    f"{self.plugin.name}/{self.task.key}: execution failed: {e.message}"
                )
                result = ExecutionResult.from_error(
                    e, ResultKind.ERROR if isinstance(e, _ERROR_TYPES) else None
                )
            logger.info(
                f"{self.plugin.name}/{self.task.key} finished with status {result.status}",
                extra={
                    "plugin": self.plugin.name,
                    "task": self.task.key,
                    "exit_code": result.status,
                    "duration_ms": round((time.monotonic() - started) * 1000),
                },
            )

            self._set_phase(Phase.TEARDOWN)
            result = self._run_teardown(result)

            if self.interactive:
                self._set_phase(Phase.REFRESHING)
                try:
                    self._prepare()
                except SyntropyError:
                    pass  # recorded in setup_error, engine is back to Idle
            else:
                self._enumerated = False
                self._set_phase(Phase.IDLE)
            return result

    def _check_can_execute(self) -> ExecutionResult | None:
        phase = self.phase
        if not self._enumerated:
            reason = "items have not been enumerated"
            if self.setup_error is not None:
                reason = f"setup failed: {self.setup_error.message}"
            return ExecutionResult.from_error(
                TaskStateError(f"cannot execute {self.task.key}: {reason}", phase=phase.value),
                ResultKind.ERROR,
            )
        if self.interactive:
            needs_confirmation = bool(self.task.execution_confirmation_message)
            allowed = (Phase.CONFIRMING,) if needs_confirmation else (Phase.SELECTING,)
            if phase not in allowed:
                return ExecutionResult.from_error(
                    TaskStateError(
                        f"cannot execute {self.task.key} while {phase.value}", phase=phase.value
                    ),
                    ResultKind.ERROR,
                )
        return None

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def poll_items(self) -> ItemSet | None:
        """Re-enumerate for a poll tick. Returns None if the tick was dropped."""
        if not self._op_lock.acquire(blocking=False):
            self.dropped_polls += 1
            return None
        try:
            if self.phase is not Phase.SELECTING:
                self.dropped_polls += 1
                return None
            self._set_phase(Phase.ENUMERATING)
            try:
                self.item_set = self._enumerate()
            finally:
                self._set_phase(Phase.SELECTING)
            return self.item_set
        finally:
            self._op_lock.release()

    def poll_preview(self, item: str) -> tuple[bool, str | None]:
        """Re-run preview for a poll tick. Returns ``(accepted, text)``."""
        if not self._op_lock.acquire(blocking=False):
            self.dropped_polls += 1
            return False, None
        try:
            if self.phase is not Phase.SELECTING:
                self.dropped_polls += 1
                return False, None
            try:
                return True, self.preview(item)
            except SyntropyError as e:
                return True, e.message
        finally:
            self._op_lock.release()

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _invoke(self, name: str, *args, source_key: str | None = None) -> tuple:
        return callbacks.invoke(
            self.host, self.plugin, self.task.key, name, *args, source_key=source_key
        )

    def _run_setup(self) -> None:
        if self.task.has_pre_run:
            self._invoke("pre_run")

    def _run_teardown(self, result: ExecutionResult) -> ExecutionResult:
        if not self.task.has_post_run:
            return result
        try:
            self._invoke("post_run")
        except SyntropyError as e:
            logger.warning(f"{self.plugin.name}/{self.task.key}: post_run failed: {e.message}")
            if result.success:
                return ExecutionResult.from_error(e)
        return result

    def _enumerate(self) -> ItemSet:
        item_set = ItemSet()
        multi = self.task.is_multi_source
        for key in self.task.source_keys:
            source = self.task.item_sources[key]
            try:
                values = self._invoke("items", source_key=key)
                items = bridge.as_items(values[0] if values else None, f"{key}.items")
                preselected: list[str] = []
                if source.has_preselected_items:
                    values = self._invoke("preselected_items", source_key=key)
                    preselected = bridge.as_items(
                        values[0] if values else None, f"{key}.preselected_items"
                    )
            except SyntropyError as e:
                logger.warning(
                    f"{self.plugin.name}/{self.task.key}: item source {key} failed: {e.message}"
                )
                item_set.errors.append(f"{key}: {e.message}")
                continue
            if multi:
                items = [format_tagged(source.tag, item) for item in items]
                preselected = [format_tagged(source.tag, item) for item in preselected]
            item_set.items.extend(items)
            item_set.preselected.extend(preselected)
        return item_set

    def _execute(self, items: list[str]) -> ExecutionResult:
        task = self.task
        if not task.has_item_sources:
            values = self._invoke("execute", list(items))
            return ExecutionResult(*bridge.as_execution_output(values, "execute"))

        if not task.is_multi_source:
            key = task.source_keys[0]
            values = self._invoke("execute", list(items), source_key=key)
            return ExecutionResult(*bridge.as_execution_output(values, f"{key}.execute"))

        groups: dict[str, list[str]] = {}
        for item in items:
            tag, content = parse_tag(item)
            source = task.source_for_tag(tag) if tag is not None else None
            if source is None:
                raise ItemSelectionError(
                    f"item {item!r} does not belong to any item source", requested=item
                )
            groups.setdefault(source.key, []).append(content)

        outputs: list[str] = []
        status = 0
        for key in task.source_keys:
            if key not in groups:
                continue
            values = self._invoke("execute", groups[key], source_key=key)
            output, code = bridge.as_execution_output(values, f"{key}.execute")
            if output:
                outputs.append(output)
            if status == 0 and code != 0:
                status = code
        return ExecutionResult("\n".join(outputs), status)

    def preview(self, item: str) -> str | None:
        """Preview text for ``item``, or None if no preview callback applies."""
        task = self.task
        if not task.has_item_sources:
            if not task.has_preview:
                return None
            values = self._invoke("preview", item)
            return bridge.as_preview(values[0] if values else None)

        if task.is_multi_source:
            tag, content = parse_tag(item)
            source = task.source_for_tag(tag) if tag is not None else None
        else:
            source, content = task.item_sources[task.source_keys[0]], item
        if source is None or not source.has_preview:
            return None
        values = self._invoke("preview", content, source_key=source.key)
        return bridge.as_preview(values[0] if values else None)


# ----------------------------------------------------------------------
# Facade
# ----------------------------------------------------------------------


def default_selection(task: Task, item_set: ItemSet) -> list[str]:
    """Items a one-shot run acts on when the caller names none.

    Multi mode uses the preselection, or every item without one. Other
    modes accept at most one candidate.

    Raises:
        ItemSelectionError: If a single/none task has several items.
    """
    if task.mode is Mode.MULTI:
        return list(item_set.preselected or item_set.items)
    if len(item_set.items) > 1:
        raise ItemSelectionError(
            f"task '{task.key}' (mode {task.mode.value}) has {len(item_set.items)} items; "
            "choose one explicitly",
            available=item_set.items,
        )
    return list(item_set.items)


def run_task(
    host: ScriptHost,
    plugin: Plugin,
    task_key: str,
    caller: CallerKind = CallerKind.ONE_SHOT,
    explicit_items: list[str] | None = None,
) -> ExecutionResult:
    """Run a task end to end and return its result."""
    try:
        engine = TaskEngine(host, plugin, task_key, caller)
        item_set = engine.start()
        items = (
            explicit_items
            if explicit_items is not None
            else default_selection(engine.task, item_set)
        )
    except SyntropyError as e:
        return ExecutionResult.from_error(e, ResultKind.ERROR)
    engine.request_confirmation()
    return engine.execute(items)


def enumerate_items(host: ScriptHost, plugin: Plugin, task_key: str) -> ItemSet:
    """Run Setup and Enumerating only.

    Raises:
        SyntropyError: If the task is unknown or setup fails.
    """
    return TaskEngine(host, plugin, task_key).start()


def preview_item(host: ScriptHost, plugin: Plugin, task_key: str, item: str) -> str | None:
    return TaskEngine(host, plugin, task_key).preview(item)
