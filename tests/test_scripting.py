"""Tests for the script host and the host primitives."""

from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

from syntropy.errors import (
    HostPrimitiveError,
    PathContextError,
    ScriptEvaluationError,
    ScriptRuntimeError,
)
from syntropy.scripting import ScriptHost, bridge
from syntropy.scripting.stdlib import editor_command, run_shell

# ===================================================================
# 1. Evaluation
# ===================================================================


class TestEvaluateFile:
    """Loading plugin scripts into the interpreter."""

    def test_returns_table(self, host, tmp_path):
        script = tmp_path / "plugin.lua"
        script.write_text('return { name = "x", list = { 1, 2 } }')

        table = host.evaluate_file(script)

        with host.locked():
            assert bridge.to_python(table) == {"name": "x", "list": [1, 2]}

    def test_syntax_error(self, host, tmp_path):
        script = tmp_path / "plugin.lua"
        script.write_text("return {")

        with pytest.raises(ScriptEvaluationError, match="syntax error") as exc:
            host.evaluate_file(script)
        assert exc.value.path == str(script)

    def test_non_table_result(self, host, tmp_path):
        script = tmp_path / "plugin.lua"
        script.write_text("return 42")

        with pytest.raises(ScriptEvaluationError, match="must return a table"):
            host.evaluate_file(script)

    def test_runtime_error_at_top_level(self, host, tmp_path):
        script = tmp_path / "plugin.lua"
        script.write_text('error("broken plugin")')

        with pytest.raises(ScriptEvaluationError, match="broken plugin"):
            host.evaluate_file(script)

    def test_missing_file(self, host, tmp_path):
        with pytest.raises(ScriptEvaluationError, match="cannot read"):
            host.evaluate_file(tmp_path / "nope.lua")

    def test_relative_expand_at_top_level_fails(self, host, tmp_path):
        script = tmp_path / "plugin.lua"
        script.write_text('local p = syntropy.expand_path("./data")\nreturn {}')

        with pytest.raises(ScriptEvaluationError, match="no plugin context"):
            host.evaluate_file(script)


# ===================================================================
# 2. Calls
# ===================================================================


class TestCall:
    """Calling Lua functions as host-managed coroutines."""

    def test_returns_python_tuple(self, host, lua_fn):
        fn = lua_fn("function(a, b) return a + b, 'ok' end")
        assert host.call(fn, 2, 3) == (5, "ok")

    def test_list_argument_becomes_table(self, host, lua_fn):
        fn = lua_fn("function(items) return #items, items[2] end")
        assert host.call(fn, ["a", "b", "c"]) == (3, "b")

    def test_table_results_converted(self, host, lua_fn):
        fn = lua_fn("function() return { 'x', 'y' }, { k = { 1 } } end")
        assert host.call(fn) == (["x", "y"], {"k": [1]})

    def test_error_carries_label(self, host, lua_fn):
        fn = lua_fn("function() error('boom') end")

        with pytest.raises(ScriptRuntimeError, match="tasks.deploy.execute") as exc:
            host.call(fn, label="tasks.deploy.execute")
        assert "boom" in exc.value.message
        assert exc.value.callback == "tasks.deploy.execute"

    def test_stray_yield_is_an_error(self, host, lua_fn):
        fn = lua_fn("function() coroutine.yield('x') end")

        with pytest.raises(ScriptRuntimeError, match="outside a host primitive"):
            host.call(fn)

    def test_runs_inside_a_coroutine(self, host, lua_fn):
        fn = lua_fn(
            "function() local _, is_main = coroutine.running()"
            " return coroutine.isyieldable(), is_main end"
        )
        assert host.call(fn) == (True, False)

    def test_repeated_calls(self, host, lua_fn):
        fn = lua_fn("function(n) return n * 2 end")
        assert [host.call(fn, n)[0] for n in range(50)] == [n * 2 for n in range(50)]

    def test_host_usable_after_failed_call(self, host, lua_fn):
        with pytest.raises(ScriptRuntimeError):
            host.call(lua_fn("function() coroutine.yield('x') end"))
        with pytest.raises(ScriptRuntimeError):
            host.call(lua_fn("function() error('boom') end"))

        assert host.call(lua_fn("function() return 'ok' end")) == ("ok",)

    def test_non_function_is_runtime_error(self, host):
        with pytest.raises(ScriptRuntimeError, match="tasks.x.execute"):
            host.call(42, label="tasks.x.execute")

    def test_closed_host_refuses_calls(self, lua_fn):
        script_host = ScriptHost()
        with script_host.locked():
            fn = script_host.lua.execute("return function() return 1 end")
        script_host.close()

        with pytest.raises(ScriptRuntimeError, match="closed"):
            script_host.call(fn)

    def test_sandbox_removes_process_exit(self, host, lua_fn):
        fn = lua_fn(
            "function() return os.exit == nil, os.execute == nil, python == nil, debug == nil end"
        )
        assert host.call(fn) == (True, True, True, True)

    def test_merge_is_global(self, host, lua_fn):
        fn = lua_fn(
            "function() local m = merge({ a = 1, b = { c = 2 } }, { b = { d = 3 } })"
            " return m.a, m.b.c, m.b.d end"
        )
        assert host.call(fn) == (1, 2, 3)

    def test_gate_released_while_request_blocks(self, host, lua_fn, monkeypatch):
        """A blocking shell call must not stop other callbacks from running."""
        shell_fn = lua_fn("function() return syntropy.shell('echo hi') end")
        quick_fn = lua_fn("function() return 1 end")
        entered = threading.Event()
        release = threading.Event()
        original = host._primitives.serve

        def slow_serve(op, args):
            entered.set()
            release.wait(5)
            return original(op, args)

        monkeypatch.setattr(host._primitives, "serve", slow_serve)
        results = []
        worker = threading.Thread(target=lambda: results.append(host.call(shell_fn)))
        worker.start()
        try:
            assert entered.wait(5)
            assert host.call(quick_fn) == (1,)
        finally:
            release.set()
            worker.join(5)
        assert results == [("hi", 0)]


# ===================================================================
# 3. Host primitives
# ===================================================================


class TestShell:
    """syntropy.shell and run_shell."""

    def test_stdout_then_stderr(self, host, lua_fn):
        fn = lua_fn("function() return syntropy.shell('echo out; echo err 1>&2; exit 3') end")
        assert host.call(fn) == ("out\nerr", 3)

    def test_inside_plugin_coroutine(self, host, lua_fn):
        fn = lua_fn(
            "function()"
            "  local co = coroutine.create(function() return syntropy.shell('echo nested') end)"
            "  local ok, out, code = coroutine.resume(co)"
            "  return ok, out, code "
            "end"
        )
        assert host.call(fn) == (True, "nested", 0)

    def test_rejects_non_string(self, host, lua_fn):
        fn = lua_fn("function() return syntropy.shell(42) end")

        with pytest.raises(ScriptRuntimeError, match="expects a string"):
            host.call(fn)

    def test_exit_code_clamped(self):
        assert run_shell("exit 255") == ("", 255)
        assert run_shell("kill -9 $$")[1] == 1

    def test_timeout(self):
        with pytest.raises(HostPrimitiveError, match="timed out"):
            run_shell("sleep 5", timeout=0.2)


class TestInvoke:
    """invoke_tui / invoke_editor without an attached terminal owner."""

    def test_invoke_tui_runs_inline(self, host, lua_fn):
        fn = lua_fn("function() return syntropy.invoke_tui('sh', { '-c', 'exit 7' }) end")
        assert host.call(fn) == (7,)

    def test_spawn_failure_raises(self, host, lua_fn):
        fn = lua_fn("function() return syntropy.invoke_tui('syntropy-no-such-program') end")

        with pytest.raises(HostPrimitiveError, match="syntropy-no-such-program"):
            host.call(fn)

    def test_spawn_failure_catchable_with_pcall(self, host, lua_fn):
        fn = lua_fn(
            "function()"
            "  local ok, err = pcall(syntropy.invoke_tui, 'syntropy-no-such-program')"
            "  return ok, tostring(err) "
            "end"
        )
        ok, message = host.call(fn)
        assert ok is False
        assert "syntropy-no-such-program" in message

    def test_invoke_editor_uses_editor_variable(self, host, lua_fn, monkeypatch, tmp_path):
        monkeypatch.setenv("EDITOR", "sh -c 'exit 4'")
        fn = lua_fn("function(path) return syntropy.invoke_editor(path) end")
        assert host.call(fn, str(tmp_path / "notes.md")) == (4,)


class TestEditorCommand:
    def test_editor_first(self, monkeypatch):
        monkeypatch.setenv("EDITOR", "code --wait")
        monkeypatch.setenv("VISUAL", "nano")
        assert editor_command() == ["code", "--wait"]

    def test_visual_fallback(self, monkeypatch):
        monkeypatch.delenv("EDITOR", raising=False)
        monkeypatch.setenv("VISUAL", "nano")
        assert editor_command() == ["nano"]

    def test_vim_default(self, monkeypatch):
        monkeypatch.delenv("EDITOR", raising=False)
        monkeypatch.delenv("VISUAL", raising=False)
        assert editor_command() == ["vim"]


class TestExpandPath:
    """syntropy.expand_path inside and outside callbacks."""

    def test_relative_resolves_against_directory(self, host, lua_fn, tmp_path):
        fn = lua_fn("function(p) return syntropy.expand_path(p) end")

        assert host.call(fn, "./data/x.txt", directory=tmp_path) == (
            str(tmp_path / "data" / "x.txt"),
        )
        assert host.call(fn, "../sibling", directory=tmp_path) == (
            str(tmp_path.parent / "sibling"),
        )

    def test_relative_without_directory(self, host, lua_fn):
        fn = lua_fn("function() return syntropy.expand_path('./x') end")

        with pytest.raises(PathContextError, match="no plugin context"):
            host.call(fn)

    def test_home_and_variables(self, host, lua_fn, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("SYNTROPY_TEST_DIR", "/srv/notes")
        fn = lua_fn("function(p) return syntropy.expand_path(p) end")

        assert host.call(fn, "~/notes") == (str(tmp_path / "notes"),)
        assert host.call(fn, "$SYNTROPY_TEST_DIR/today.md") == ("/srv/notes/today.md",)

    def test_directory_context_is_per_call(self, host, lua_fn, tmp_path):
        fn = lua_fn("function() return syntropy.expand_path('./a') end")
        host.call(fn, directory=tmp_path)

        with pytest.raises(PathContextError):
            host.call(fn)

    def test_absolute_path_untouched(self, host, lua_fn):
        fn = lua_fn("function() return syntropy.expand_path('/etc/hosts') end")
        assert host.call(fn) == (os.path.join("/etc", "hosts"),)


class TestModulePath:
    def test_prepend_package_path(self, host, lua_fn, tmp_path):
        (tmp_path / "greeting.lua").write_text("return { text = 'hello' }")
        host.prepend_package_path([f"{Path(tmp_path)}/?.lua"])

        fn = lua_fn("function() return require('greeting').text end")
        assert host.call(fn) == ("hello",)
