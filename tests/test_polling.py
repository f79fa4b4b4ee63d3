"""Tests for the poll scheduler."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from syntropy.execution import CallerKind, TaskEngine
from syntropy.execution.polling import ITEMS_JOB_ID, PREVIEW_JOB_ID, PollScheduler

POLLED_PLUGIN = """\
    counter = 0

    return {
      metadata = { name = "watch", version = "1.0.0", icon = "W" },
      tasks = {
        live = {
          description = "Changing items",
          mode = "multi",
          item_polling_interval = 500,
          preview_polling_interval = 250,
          item_sources = {
            procs = {
              items = function()
                counter = counter + 1
                return { "tick " .. counter }
              end,
              preview = function(item) return "details for " .. item end,
              execute = function(items) return "", 0 end,
            },
          },
        },
        still = {
          description = "No polling",
          execute = function() return "", 0 end,
        },
      },
    }
"""


@pytest.fixture
def plugin(make_plugin):
    return make_plugin(POLLED_PLUGIN, "watch")


def _poller(host, plugin, task_key="live", focused=None):
    engine = TaskEngine(host, plugin, task_key, CallerKind.INTERACTIVE)
    engine.start()
    scheduler = MagicMock()
    scheduler.running = False
    poller = PollScheduler(
        engine,
        on_items=MagicMock(),
        on_preview=MagicMock(),
        focused_item=lambda: focused,
        scheduler=scheduler,
    )
    return engine, poller


class TestPollScheduler:
    """Job registration and individual ticks."""

    def test_registers_interval_jobs(self, host, plugin):
        _, poller = _poller(host, plugin)

        poller.start()

        jobs = {call.kwargs["id"]: call for call in poller.scheduler.add_job.call_args_list}
        assert set(jobs) == {ITEMS_JOB_ID, PREVIEW_JOB_ID}
        for call in jobs.values():
            assert call.kwargs["max_instances"] == 1
            assert call.kwargs["coalesce"] is True
        assert jobs[ITEMS_JOB_ID].kwargs["trigger"].interval.total_seconds() == 0.5
        poller.scheduler.start.assert_called_once()

    def test_disabled_without_intervals(self, host, plugin):
        _, poller = _poller(host, plugin, task_key="still")

        poller.start()

        assert not poller.enabled
        poller.scheduler.add_job.assert_not_called()
        poller.scheduler.start.assert_not_called()

    def test_tick_items_delivers_fresh_items(self, host, plugin):
        _, poller = _poller(host, plugin)

        assert poller.tick_items() is True

        item_set = poller.on_items.call_args.args[0]
        assert item_set.items == ["tick 2"]

    def test_tick_items_dropped_while_busy(self, host, plugin):
        engine, poller = _poller(host, plugin)

        with engine._op_lock:
            assert poller.tick_items() is False

        poller.on_items.assert_not_called()

    def test_tick_preview(self, host, plugin):
        _, poller = _poller(host, plugin, focused="tick 1")

        assert poller.tick_preview() is True

        poller.on_preview.assert_called_once_with("tick 1", "details for tick 1")

    def test_tick_preview_without_focus(self, host, plugin):
        _, poller = _poller(host, plugin, focused=None)

        assert poller.tick_preview() is False
        poller.on_preview.assert_not_called()

    def test_shutdown(self, host, plugin):
        _, poller = _poller(host, plugin)
        poller.scheduler.running = True

        poller.shutdown()

        poller.scheduler.shutdown.assert_called_once_with(wait=False)
