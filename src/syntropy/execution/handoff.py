"""Process handoff between the render loop and script-launched programs.

A plugin callback that wants to run a full-screen program (an editor, a
pager, another TUI) cannot touch the terminal itself: the render loop
owns it. Instead the callback deposits a ``HandoffRequest`` on the
broker's queue and blocks on the request's reply slot. The render loop
drains at most one request per iteration, gives up the terminal for the
duration of the program, takes it back and fills the reply slot with the
clamped exit status.

Without an attached owner (one-shot CLI mode) requests run inline.
"""

from __future__ import annotations

import logging
import queue
import subprocess
import threading
from concurrent.futures import CancelledError, Future
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Protocol

from syntropy.errors import HostPrimitiveError
from syntropy.execution.exit_code import clamp_exit_code

logger = logging.getLogger(__name__)


class TerminalOwner(Protocol):
    """Anything that can temporarily give up the terminal.

    ``textual.app.App`` satisfies this through ``App.suspend()``.
    """

    def suspend(self) -> AbstractContextManager: ...


@dataclass
class HandoffRequest:
    """One pending external program run."""

    command: str
    args: list[str] = field(default_factory=list)
    reply: Future = field(default_factory=Future)

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]


def run_foreground(argv: list[str]) -> int:
    """Run a program with inherited stdio and return its clamped status.

    Raises:
        HostPrimitiveError: If the program cannot be spawned.
    """
    try:
        completed = subprocess.run(argv)
    except OSError as e:
        raise HostPrimitiveError(
            f"failed to launch {argv[0]!r}: {e}", primitive="invoke_tui"
        ) from e
    return clamp_exit_code(completed.returncode)


class HandoffBroker:
    """Multi-producer queue of handoff requests with a single consumer."""

    def __init__(self):
        self._queue: queue.Queue[HandoffRequest] = queue.Queue()
        self._lock = threading.Lock()
        self._attached = False
        self._closed = False

    # ------------------------------------------------------------------
    # Producer side (script worker threads)
    # ------------------------------------------------------------------

    def submit(self, command: str, args: list[str] | None = None) -> int:
        """Run ``command`` with exclusive terminal access and wait for it.

        Raises:
            HostPrimitiveError: If the program cannot be spawned or the
                broker shuts down before the request is served.
        """
        request = HandoffRequest(command, list(args or []))
        with self._lock:
            if self._closed:
                raise HostPrimitiveError(
                    "terminal handoff is shut down", primitive="invoke_tui"
                )
            attached = self._attached
            if attached:
                self._queue.put(request)

        if not attached:
            logger.debug(f"Running {request.argv} inline")
            return run_foreground(request.argv)

        logger.debug(f"Queued handoff for {request.argv}")
        try:
            return request.reply.result()
        except CancelledError as e:
            raise HostPrimitiveError(
                f"handoff for {command!r} was cancelled", primitive="invoke_tui"
            ) from e

    # ------------------------------------------------------------------
    # Consumer side (render loop)
    # ------------------------------------------------------------------

    def attach(self) -> None:
        """Route future requests through ``serve_one`` instead of running inline."""
        with self._lock:
            self._attached = True

    def detach(self) -> None:
        """Stop queueing and fail whatever is still pending."""
        with self._lock:
            self._attached = False
        self._fail_pending("terminal owner detached")

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._attached = False
        self._fail_pending("terminal handoff is shut down")

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def serve_one(self, owner: TerminalOwner) -> bool:
        """Serve at most one queued request. Returns True if one was served."""
        try:
            request = self._queue.get_nowait()
        except queue.Empty:
            return False

        if not request.reply.set_running_or_notify_cancel():
            return True

        logger.info(f"Handing terminal to {request.argv}")
        try:
            with owner.suspend():
                code = run_foreground(request.argv)
        except HostPrimitiveError as e:
            request.reply.set_exception(e)
        except Exception as e:
            logger.error(f"Terminal handoff failed: {e}")
            request.reply.set_exception(
                HostPrimitiveError(f"terminal handoff failed: {e}", primitive="invoke_tui")
            )
        else:
            logger.info(f"{request.command} exited with {code}")
            request.reply.set_result(code)
        return True

    def _fail_pending(self, reason: str) -> None:
        while True:
            try:
                request = self._queue.get_nowait()
            except queue.Empty:
                return
            if request.reply.set_running_or_notify_cancel():
                request.reply.set_exception(
                    HostPrimitiveError(reason, primitive="invoke_tui")
                )
