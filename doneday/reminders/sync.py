"""ReminderSync — feeds the store's change stream into the scheduler."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from doneday.errors import InvalidTask, SchedulingFailed

if TYPE_CHECKING:
    from doneday.reminders.models import ReconcileOutcome
    from doneday.reminders.scheduler import ReminderScheduler
    from doneday.tasks.models import TaskChange
    from doneday.tasks.store import TaskStore

logger = logging.getLogger(__name__)


class ReminderSync:
    """Reconciles each changed task, one event at a time, in emission order.

    The task is re-read from the store when the event is handled, so the
    reminder always follows the latest state of the task.
    """

    def __init__(self, store: TaskStore, scheduler: ReminderScheduler) -> None:
        self._store = store
        self._scheduler = scheduler
        self._queue: asyncio.Queue[TaskChange] | None = None
        self._worker: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Subscribe to the store and spawn the worker task."""
        if self.running:
            return
        self._queue = self._store.subscribe()
        self._worker = asyncio.create_task(self._run(), name="reminder-sync")
        logger.info("Reminder sync started")

    async def stop(self) -> None:
        if self._queue is not None:
            self._store.unsubscribe(self._queue)
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
            logger.info("Reminder sync stopped")

    async def drain(self) -> None:
        """Wait until every queued change has been handled."""
        if self._queue is not None:
            await self._queue.join()

    async def handle(self, change: TaskChange) -> ReconcileOutcome | None:
        """Reconcile the task named by *change*. Failures are logged, not raised."""
        try:
            task = await self._store.get_task(change.task_id)
            if task is None:
                return await self._scheduler.cancel(change.task_id)
            return await self._scheduler.reconcile(task)
        except SchedulingFailed as exc:
            logger.warning("Reminder not scheduled for task %s: %s", change.task_id, exc.reason)
        except InvalidTask as exc:
            logger.warning("Skipping invalid task %s: %s", change.task_id, exc.reason)
        return None

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            change = await self._queue.get()
            try:
                await self.handle(change)
            except Exception:
                logger.exception(
                    "Reminder sync failed for %s %s", change.kind.value, change.task_id
                )
            finally:
                self._queue.task_done()
