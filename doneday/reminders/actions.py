"""Responses to a delivered reminder: complete, snooze or open the task."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from doneday.config import settings
from doneday.reminders.models import ReminderAction

if TYPE_CHECKING:
    from collections.abc import Callable

    from doneday.tasks.models import Task
    from doneday.tasks.store import TaskStore

logger = logging.getLogger(__name__)


class ReminderActions:
    """Applies a reminder action to the task store.

    The store's change stream takes care of the reminder itself: completing
    cancels it, snoozing moves it.

    Args:
        store: TaskStore holding the task.
        snooze_minutes: How far a snooze pushes the reminder (default from
            settings).
        clock: Returns the current aware datetime.
    """

    def __init__(
        self,
        store: TaskStore,
        snooze_minutes: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._snooze = timedelta(minutes=snooze_minutes or settings.snooze_minutes)
        self._clock = clock or (lambda: datetime.now(UTC))

    async def handle(self, task_id: str, action: ReminderAction | str) -> Task | None:
        """Run *action* for *task_id*. Returns the task, or None if it is gone."""
        action = ReminderAction(action)
        task = await self._store.get_task(task_id)
        if task is None or task.deleted:
            logger.warning("Task not found for reminder action %s: %s", action.value, task_id)
            return None

        if action is ReminderAction.COMPLETE:
            await self._store.mark_completed(task_id)
            logger.info("Task completed from reminder: %s (%s)", task.title, task_id)
        elif action is ReminderAction.SNOOZE:
            until = self._clock() + self._snooze
            await self._store.snooze_task(task_id, until)
            logger.info(
                "Reminder snoozed until %s: %s (%s)", until.isoformat(), task.title, task_id
            )
        else:
            return task
        return await self._store.get_task(task_id)
