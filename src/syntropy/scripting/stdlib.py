"""Host primitives exposed to plugin scripts as the ``syntropy`` table.

Blocking primitives (``shell``, ``invoke_tui``, ``invoke_editor``) are thin
Lua wrappers that yield a request out of the running callback coroutine.
The host serves the request with the interpreter gate released and
resumes the coroutine with the reply, so a long-running command never
blocks other script work. Outside a host-managed coroutine (for example a
coroutine the plugin created itself) the request is served synchronously.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from typing import TYPE_CHECKING, Any

from syntropy.errors import HostPrimitiveError
from syntropy.execution.exit_code import clamp_exit_code

if TYPE_CHECKING:
    from syntropy.execution.handoff import HandoffBroker

logger = logging.getLogger(__name__)

REQUEST_MARKER = "__syntropy_host_request__"

# Error kinds carried from Python to the Lua wrappers
ERROR_HOST_PRIMITIVE = "host_primitive"
ERROR_PATH_CONTEXT = "path_context"

DEFAULT_EDITOR = "vim"

PRELUDE_SOURCE = """
return function(marker, sync_request, expand_path_impl, merge)
  local pack, unpack = table.pack, table.unpack
  local create, resume, running = coroutine.create, coroutine.resume, coroutine.running
  local status, yield = coroutine.status, coroutine.yield
  local managed = setmetatable({}, { __mode = "k" })

  local host_error_mt = {
    __tostring = function(err)
      return err.message
    end,
  }

  local function raise(kind, message)
    error(setmetatable({ __host_error = kind, message = message }, host_error_mt))
  end

  local function finish(reply)
    if not reply[1] then
      raise(reply[2], reply[3])
    end
    return unpack(reply, 2, reply.n)
  end

  local function request(op, ...)
    local co, is_main = running()
    if not is_main and managed[co] then
      return finish(pack(yield(marker, op, ...)))
    end
    return finish(pack(sync_request(op, ...)))
  end

  local function expect_string(name, value)
    if type(value) ~= "string" then
      error("syntropy." .. name .. " expects a string, got " .. type(value), 3)
    end
  end

  syntropy = {
    shell = function(command)
      expect_string("shell", command)
      return request("shell", command)
    end,
    invoke_tui = function(command, args)
      expect_string("invoke_tui", command)
      if args ~= nil and type(args) ~= "table" then
        error("syntropy.invoke_tui expects a table of arguments", 2)
      end
      return request("invoke_tui", command, args or {})
    end,
    invoke_editor = function(path)
      expect_string("invoke_editor", path)
      return request("invoke_editor", path)
    end,
    expand_path = function(path)
      expect_string("expand_path", path)
      local expanded, kind, message = expand_path_impl(path)
      if expanded == nil then
        raise(kind, message)
      end
      return expanded
    end,
  }

  _G.merge = merge
  os.exit = nil
  os.execute = nil
  _G.python = nil
  _G.debug = nil

  -- Threads stay on the Lua side; Python only ever holds their ids
  local threads, last_id = {}, 0

  local function spawn(fn)
    local co = create(fn)
    managed[co] = true
    last_id = last_id + 1
    threads[last_id] = co
    return last_id
  end

  local function drive(id, ...)
    local co = threads[id]
    local result = pack(resume(co, ...))
    local state = status(co)
    if state == "dead" then
      threads[id] = nil
    end
    return result, state
  end

  local function discard(id)
    threads[id] = nil
  end

  local function compile(source, chunkname)
    local chunk, message = load(source, chunkname, "t")
    return chunk, message
  end

  return spawn, drive, discard, compile
end
"""


def run_shell(command: str, timeout: float | None = None) -> tuple[str, int]:
    """Run ``command`` through ``sh -c``.

    Output is the stdout lines followed by the stderr lines, joined by
    newlines. The exit code is clamped to [0, 255]; death by signal
    reports 1.

    Raises:
        HostPrimitiveError: If the shell cannot be started or times out.
    """
    try:
        completed = subprocess.run(
            ["sh", "-c", command],
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise HostPrimitiveError(
            f"command timed out after {timeout}s: {command}", primitive="shell"
        ) from e
    except OSError as e:
        raise HostPrimitiveError(
            f"failed to spawn shell for {command!r}: {e}", primitive="shell"
        ) from e

    lines = completed.stdout.splitlines() + completed.stderr.splitlines()
    return "\n".join(lines), clamp_exit_code(completed.returncode)


def editor_command() -> list[str]:
    """Resolve the user's editor: $EDITOR, then $VISUAL, then vim."""
    for var in ("EDITOR", "VISUAL"):
        value = os.environ.get(var, "").strip()
        if value:
            return shlex.split(value)
    return [DEFAULT_EDITOR]


def _as_arguments(value: Any) -> list[str]:
    if value is None or value == {}:
        return []
    if not isinstance(value, list):
        raise HostPrimitiveError(
            "invoke_tui arguments must be an array of strings", primitive="invoke_tui"
        )
    return [str(arg) for arg in value]


class HostPrimitives:
    """Serves blocking primitive requests yielded by plugin callbacks.

    ``serve`` never raises: failures are returned as
    ``(False, kind, message)`` and re-raised inside the script by the Lua
    wrapper, so ``pcall`` in plugin code can observe them.
    """

    def __init__(self, handoff: HandoffBroker, shell_timeout: float | None = None):
        self.handoff = handoff
        self.shell_timeout = shell_timeout

    def serve(self, op: str, args: list[Any]) -> tuple:
        try:
            if op == "shell":
                output, code = run_shell(args[0], self.shell_timeout)
                return True, output, code
            if op == "invoke_tui":
                arguments = _as_arguments(args[1] if len(args) > 1 else None)
                return True, self.handoff.submit(args[0], arguments)
            if op == "invoke_editor":
                editor = editor_command()
                return True, self.handoff.submit(editor[0], editor[1:] + [args[0]])
        except HostPrimitiveError as e:
            logger.warning(f"Host primitive {op} failed: {e.message}")
            return False, ERROR_HOST_PRIMITIVE, e.message
        return False, ERROR_HOST_PRIMITIVE, f"unknown host primitive: {op}"
