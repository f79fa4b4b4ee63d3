"""Tests for the task execution engine."""

from __future__ import annotations

import threading

import pytest

from syntropy.errors import (
    CallbackMissingError,
    ItemSelectionError,
    PluginNotFoundError,
    ScriptRuntimeError,
)
from syntropy.execution import (
    CallerKind,
    ExecutionResult,
    ItemSet,
    Phase,
    ResultKind,
    TaskEngine,
    default_selection,
    enumerate_items,
    preview_item,
    run_task,
)
from syntropy.execution.callbacks import callback_label, resolve_callback
from syntropy.plugins import Mode
from syntropy.scripting import bridge

# Every callback appends its name to the global `calls` table
TRACED_PLUGIN = """\
    calls = {}
    local function trace(name) table.insert(calls, name) end

    return {
      metadata = { name = "traced", version = "1.0.0", icon = "T" },
      tasks = {
        run = {
          description = "Traced task",
          mode = "multi",
          pre_run = function() trace("pre_run") end,
          post_run = function() trace("post_run") end,
          item_sources = {
            files = {
              items = function() trace("items"); return { "a", "b" } end,
              preselected_items = function() return { "b" } end,
              preview = function(item) return "preview of " .. item end,
              execute = function(items)
                trace("execute")
                return table.concat(items, "+"), 0
              end,
            },
          },
        },
        confirm = {
          description = "Needs confirmation",
          execution_confirmation_message = "Really?",
          execute = function() return "confirmed", 0 end,
        },
        broken_setup = {
          description = "Setup fails",
          pre_run = function() error("no database") end,
          item_sources = {
            files = {
              items = function() trace("items"); return { "a" } end,
              execute = function() trace("execute"); return "", 0 end,
            },
          },
        },
        failing = {
          description = "Execute raises",
          execute = function() error("exploded") end,
        },
        bare = {
          description = "Returns nothing",
          execute = function() end,
        },
        large_status = {
          description = "Status out of range",
          execute = function() return "big", 300 end,
        },
        where = {
          description = "Relative path",
          execute = function() return syntropy.expand_path("./notes.txt"), 0 end,
        },
        bad_post_run = {
          description = "Teardown fails",
          post_run = function() error("cleanup failed") end,
          execute = function() return "done", 0 end,
        },
      },
    }
"""

# Execute goes through a host primitive; items counts its calls
SLOW_PLUGIN = """\
    item_calls = 0

    return {
      metadata = { name = "slow", version = "1.0.0", icon = "S" },
      tasks = {
        sync = {
          description = "Sync a remote",
          mode = "multi",
          item_sources = {
            remotes = {
              items = function() item_calls = item_calls + 1; return { "r1" } end,
              preview = function(item) return "remote " .. item end,
              execute = function(items) return syntropy.shell("echo synced") end,
            },
          },
        },
      },
    }
"""

MULTI_SOURCE_PLUGIN = """\
    return {
      metadata = { name = "fs", version = "1.0.0", icon = "F" },
      tasks = {
        remove = {
          description = "Remove things",
          mode = "multi",
          item_sources = {
            files = {
              tag = "f",
              items = function() return { "a.txt", "b.txt" } end,
              preview = function(item) return "file " .. item end,
              execute = function(items) return "files:" .. table.concat(items, ","), 2 end,
            },
            dirs = {
              tag = "d",
              items = function() return { "src" } end,
              execute = function(items) return "dirs:" .. table.concat(items, ","), 0 end,
            },
            broken = {
              tag = "b",
              items = function() error("listing failed") end,
            },
          },
        },
      },
    }
"""


@pytest.fixture
def traced(make_plugin):
    return make_plugin(TRACED_PLUGIN, "traced")


@pytest.fixture
def multi(make_plugin):
    return make_plugin(MULTI_SOURCE_PLUGIN, "fs")


def _calls(host) -> list[str]:
    with host.locked():
        return bridge.to_python(host.globals().calls)


def _reset_calls(host) -> None:
    with host.locked():
        host.globals().calls = host.lua.table()


# ===================================================================
# 1. Lifecycle ordering
# ===================================================================


class TestLifecycle:
    """Phase transitions and callback ordering."""

    def test_one_shot_order(self, host, traced):
        _reset_calls(host)

        result = run_task(host, traced, "run", explicit_items=["a"])

        assert result == ExecutionResult("a", 0)
        assert _calls(host) == ["pre_run", "items", "execute", "post_run"]

    def test_one_shot_phases(self, host, traced):
        engine = TaskEngine(host, traced, "run")
        assert engine.phase is Phase.IDLE

        item_set = engine.start()
        assert engine.phase is Phase.ENUMERATING
        assert item_set.items == ["a", "b"]
        assert item_set.preselected == ["b"]

        engine.execute(["a"])
        assert engine.phase is Phase.IDLE

    def test_interactive_refreshes_after_execute(self, host, traced):
        engine = TaskEngine(host, traced, "run", CallerKind.INTERACTIVE)
        engine.start()
        assert engine.phase is Phase.SELECTING
        _reset_calls(host)

        result = engine.execute(["a", "b"])

        assert result.output == "a+b"
        assert engine.phase is Phase.SELECTING
        assert _calls(host) == ["execute", "post_run", "pre_run", "items"]

    def test_execute_before_enumerate_refused(self, host, traced):
        _reset_calls(host)
        engine = TaskEngine(host, traced, "run")

        result = engine.execute(["a"])

        assert result.kind is ResultKind.ERROR
        assert "not been enumerated" in result.output
        assert _calls(host) == []

    def test_one_shot_requires_new_enumeration(self, host, traced):
        engine = TaskEngine(host, traced, "run")
        engine.start()
        engine.execute(["a"])

        assert engine.execute(["a"]).kind is ResultKind.ERROR

    def test_setup_failure(self, host, traced):
        _reset_calls(host)
        engine = TaskEngine(host, traced, "broken_setup")

        with pytest.raises(ScriptRuntimeError, match="no database"):
            engine.start()

        assert engine.phase is Phase.IDLE
        assert engine.setup_error is not None
        result = engine.execute(["a"])
        assert result.kind is ResultKind.ERROR
        assert "setup failed" in result.output
        assert _calls(host) == []

    def test_run_task_reports_setup_failure(self, host, traced):
        result = run_task(host, traced, "broken_setup")
        assert result.kind is ResultKind.ERROR
        assert "no database" in result.output

    def test_unknown_task(self, host, traced):
        with pytest.raises(PluginNotFoundError, match="not found"):
            TaskEngine(host, traced, "nope")


class TestConfirmation:
    """Interactive callers pass through Confirming when asked to."""

    def test_execute_requires_confirmation(self, host, traced):
        engine = TaskEngine(host, traced, "confirm", CallerKind.INTERACTIVE)
        engine.start()

        refused = engine.execute([])
        assert refused.kind is ResultKind.ERROR
        assert "while selecting" in refused.output

        assert engine.request_confirmation() is True
        assert engine.phase is Phase.CONFIRMING
        assert engine.execute([]).output == "confirmed"

    def test_cancel_returns_to_selecting(self, host, traced):
        engine = TaskEngine(host, traced, "confirm", CallerKind.INTERACTIVE)
        engine.start()
        engine.request_confirmation()

        engine.cancel_confirmation()

        assert engine.phase is Phase.SELECTING

    def test_no_confirmation_needed(self, host, traced):
        engine = TaskEngine(host, traced, "run", CallerKind.INTERACTIVE)
        engine.start()

        assert engine.request_confirmation() is False
        assert engine.phase is Phase.SELECTING

    def test_one_shot_skips_confirmation(self, host, traced):
        assert run_task(host, traced, "confirm").output == "confirmed"


# ===================================================================
# 2. Results
# ===================================================================


class TestResults:
    """Mapping callback outcomes to ExecutionResult."""

    def test_callback_error_is_failure(self, host, traced):
        result = run_task(host, traced, "failing")

        assert result.kind is ResultKind.FAILURE
        assert result.status == 1
        assert "exploded" in result.output
        assert "tasks.failing.execute" in result.output
        assert not result.success

    def test_missing_output_and_status(self, host, traced):
        result = run_task(host, traced, "bare")
        assert result == ExecutionResult("", 0)
        assert result.success

    def test_status_clamped_for_exit_code(self, host, traced):
        result = run_task(host, traced, "large_status")
        assert result.status == 300
        assert result.exit_code == 255

    def test_relative_path_uses_plugin_directory(self, host, traced):
        result = run_task(host, traced, "where")
        assert result.output == str(traced.directory / "notes.txt")

    def test_post_run_failure_fails_run(self, host, traced):
        result = run_task(host, traced, "bad_post_run")
        assert result.kind is ResultKind.FAILURE
        assert "cleanup failed" in result.output


# ===================================================================
# 3. Item sources
# ===================================================================


class TestMultiSource:
    """Tagged items and routing across several sources."""

    def test_enumerate_tags_items_in_key_order(self, host, multi):
        item_set = enumerate_items(host, multi, "remove")

        assert item_set.items == ["[d] src", "[f] a.txt", "[f] b.txt"]
        assert len(item_set.errors) == 1
        assert item_set.errors[0].startswith("broken:")

    def test_execute_routes_by_tag(self, host, multi):
        result = run_task(host, multi, "remove", explicit_items=["[f] b.txt", "[d] src"])

        assert result.output == "dirs:src\nfiles:b.txt"
        assert result.status == 2

    def test_untagged_item_rejected(self, host, multi):
        result = run_task(host, multi, "remove", explicit_items=["src"])

        assert result.kind is ResultKind.ERROR
        assert "does not belong" in result.output

    def test_preview_strips_tag(self, host, multi):
        assert preview_item(host, multi, "remove", "[f] a.txt") == "file a.txt"
        assert preview_item(host, multi, "remove", "[d] src") is None

    def test_single_source_preview(self, host, traced):
        assert preview_item(host, traced, "run", "a") == "preview of a"

    def test_task_without_preview(self, host, traced):
        assert preview_item(host, traced, "failing", "x") is None


class TestDefaultSelection:
    def test_multi_prefers_preselection(self, traced):
        task = traced.get_task("run")
        assert default_selection(task, ItemSet(["a", "b"], ["b"])) == ["b"]
        assert default_selection(task, ItemSet(["a", "b"], [])) == ["a", "b"]

    def test_single_item_modes(self, traced):
        task = traced.get_task("broken_setup")
        assert task.mode is Mode.NONE
        assert default_selection(task, ItemSet(["a"])) == ["a"]

        with pytest.raises(ItemSelectionError, match="choose one"):
            default_selection(task, ItemSet(["a", "b"]))


# ===================================================================
# 4. Polling
# ===================================================================


class TestPolls:
    """Poll ticks never overlap lifecycle operations."""

    def test_poll_items_while_selecting(self, host, traced):
        engine = TaskEngine(host, traced, "run", CallerKind.INTERACTIVE)
        engine.start()

        item_set = engine.poll_items()

        assert item_set.items == ["a", "b"]
        assert engine.phase is Phase.SELECTING

    def test_poll_dropped_while_executing(self, host, make_plugin, monkeypatch):
        plugin = make_plugin(SLOW_PLUGIN, "slow")
        engine = TaskEngine(host, plugin, "sync", CallerKind.INTERACTIVE)
        engine.start()
        entered = threading.Event()
        release = threading.Event()
        original = host._primitives.serve

        def slow_serve(op, args):
            entered.set()
            release.wait(5)
            return original(op, args)

        monkeypatch.setattr(host._primitives, "serve", slow_serve)
        results = []
        worker = threading.Thread(target=lambda: results.append(engine.execute(["r1"])))
        worker.start()
        try:
            assert entered.wait(5)
            assert engine.phase is Phase.EXECUTING
            assert engine.poll_items() is None
            assert engine.poll_preview("r1") == (False, None)
        finally:
            release.set()
            worker.join(5)

        assert results[0].output == "synced"
        assert engine.dropped_polls == 2
        assert engine.phase is Phase.SELECTING
        with host.locked():
            assert host.globals().item_calls == 2

    def test_poll_dropped_outside_selecting(self, host, traced):
        engine = TaskEngine(host, traced, "confirm", CallerKind.INTERACTIVE)
        engine.start()
        engine.request_confirmation()

        assert engine.poll_items() is None
        assert engine.dropped_polls == 1

    def test_poll_preview(self, host, traced):
        engine = TaskEngine(host, traced, "run", CallerKind.INTERACTIVE)
        engine.start()

        assert engine.poll_preview("b") == (True, "preview of b")


class TestCallbacks:
    def test_label(self):
        assert callback_label("open", "execute") == "tasks.open.execute"
        assert callback_label("open", "items", "files") == "tasks.open.item_sources.files.items"

    def test_missing_callback(self, host, traced):
        with pytest.raises(CallbackMissingError, match="tasks.run.preview"):
            resolve_callback(host, traced, "run", "preview")
