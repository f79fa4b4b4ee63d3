"""Periodic re-enumeration and preview refresh while a task is browsed."""

from __future__ import annotations

import logging
from collections.abc import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from syntropy.execution.engine import ItemSet, TaskEngine

logger = logging.getLogger(__name__)

ITEMS_JOB_ID = "poll-items"
PREVIEW_JOB_ID = "poll-preview"


class PollScheduler:
    """Drives item and preview polling for one interactive task.

    Each interval is an APScheduler job with ``max_instances=1``, and each
    tick only tries the engine's operation lock, so a tick arriving while
    an execution (or a previous tick) is in flight is dropped rather than
    queued.

    Args:
        engine: Interactive engine of the task being browsed.
        on_items: Receives a fresh ItemSet after a successful tick.
        on_preview: Receives ``(item, text)`` after a successful tick.
        focused_item: Returns the item currently under the cursor.
    """

    def __init__(
        self,
        engine: TaskEngine,
        on_items: Callable[[ItemSet], None],
        on_preview: Callable[[str, str | None], None],
        focused_item: Callable[[], str | None],
        scheduler: BackgroundScheduler | None = None,
    ):
        self.engine = engine
        self.on_items = on_items
        self.on_preview = on_preview
        self.focused_item = focused_item
        self.scheduler = scheduler or BackgroundScheduler(daemon=True)

    @property
    def item_interval_ms(self) -> int:
        return self.engine.task.item_polling_interval

    @property
    def preview_interval_ms(self) -> int:
        return self.engine.task.preview_polling_interval

    @property
    def enabled(self) -> bool:
        return self.item_interval_ms > 0 or self.preview_interval_ms > 0

    def start(self) -> None:
        """Register the interval jobs and start the scheduler."""
        if not self.enabled:
            return
        if self.item_interval_ms > 0:
            self._add_job(self.tick_items, ITEMS_JOB_ID, self.item_interval_ms)
        if self.preview_interval_ms > 0:
            self._add_job(self.tick_preview, PREVIEW_JOB_ID, self.preview_interval_ms)
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info(
                f"Polling started for {self.engine.plugin.name}/{self.engine.task.key}"
            )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Polling stopped")

    def _add_job(self, func: Callable[[], bool], job_id: str, interval_ms: int) -> None:
        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=interval_ms / 1000),
            id=job_id,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    def tick_items(self) -> bool:
        """One item poll. Returns False if the tick was dropped."""
        item_set = self.engine.poll_items()
        if item_set is None:
            logger.debug("Item poll dropped")
            return False
        self.on_items(item_set)
        return True

    def tick_preview(self) -> bool:
        """One preview poll. Returns False if dropped or nothing is focused."""
        item = self.focused_item()
        if item is None:
            return False
        accepted, text = self.engine.poll_preview(item)
        if not accepted:
            logger.debug("Preview poll dropped")
            return False
        self.on_preview(item, text)
        return True
