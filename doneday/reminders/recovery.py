"""Missed reminder recovery — full reconciliation on startup and on a timer."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from doneday.config import settings
from doneday.reminders.policy import target_time

if TYPE_CHECKING:
    from collections.abc import Iterable

    from doneday.reminders.policy import ReminderPolicy
    from doneday.reminders.scheduler import ReconcileReport, ReminderScheduler
    from doneday.tasks.models import Task
    from doneday.tasks.store import TaskStore

logger = logging.getLogger(__name__)


def find_missed_reminders(
    tasks: Iterable[Task], policy: ReminderPolicy, now: datetime | None = None
) -> list[Task]:
    """Tasks whose reminder time has passed without a delivery."""
    now = now or datetime.now(UTC)
    missed = []
    for task in tasks:
        target = target_time(task, policy)
        if target is None or target > now:
            continue
        if task.reminder_delivered_for == target:
            continue
        missed.append(task)
    return missed


async def recover_reminders(store: TaskStore, scheduler: ReminderScheduler) -> ReconcileReport:
    """Reconcile every active task, e.g. after the app was not running.

    Returns the batch report (useful for testing).
    """
    tasks = await store.list_active_tasks()
    missed = find_missed_reminders(tasks, scheduler.policy)
    if missed:
        logger.info(
            "Found %d missed reminder(s) (past-due policy: %s)",
            len(missed),
            scheduler.policy.past_due.value,
        )
    report = await scheduler.reconcile_all(tasks)
    for failure in report.failures:
        logger.warning("Reminder recovery: %s", failure)
    return report


async def resync_loop(
    store: TaskStore,
    scheduler: ReminderScheduler,
    interval_seconds: int | None = None,
) -> None:
    """Periodically repair drift. Runs until cancelled."""
    interval = settings.resync_interval_seconds if interval_seconds is None else interval_seconds
    if interval <= 0:
        logger.debug("Periodic resync disabled")
        return
    while True:
        await asyncio.sleep(interval)
        try:
            await recover_reminders(store, scheduler)
        except Exception:
            logger.exception("Periodic reminder resync failed")
