"""Application wiring: store, notifications, platform, scheduler and sync."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from doneday.config import settings
from doneday.errors import DoneDayError
from doneday.notifications.log_channel import LogChannel
from doneday.notifications.router import NotificationRouter
from doneday.reminders.actions import ReminderActions
from doneday.reminders.engine import APSchedulerPlatform
from doneday.reminders.models import NotificationPayload
from doneday.reminders.policy import target_time
from doneday.reminders.recovery import recover_reminders, resync_loop
from doneday.reminders.scheduler import ReminderScheduler
from doneday.reminders.sync import ReminderSync
from doneday.tasks.store import TaskStore

if TYPE_CHECKING:
    from doneday.reminders.models import ReminderRequest
    from doneday.tasks.models import Task

logger = logging.getLogger(__name__)


def _init_notifications(router: NotificationRouter) -> None:
    """Register the built-in channels and set the default."""
    if router.get_channel("log") is None:
        router.register_channel(LogChannel())
    default = settings.default_notification_channel
    if router.get_channel(default) is not None:
        router.set_default_channel(default)
    else:
        logger.warning("Default notification channel %r is not registered", default)
    logger.info(
        "Notifications initialized: channels=%s, default=%s",
        router.list_channels(),
        router.default_channel_name,
    )


class ReminderApp:
    """Owns the running reminder service.

    Args:
        store: TaskStore to read tasks from (default: shared instance).
        router: NotificationRouter used for delivery (default: shared instance).
    """

    def __init__(
        self,
        store: TaskStore | None = None,
        router: NotificationRouter | None = None,
    ) -> None:
        self.store = store or TaskStore.get()
        self.router = router or NotificationRouter.get()
        self.platform = APSchedulerPlatform(deliver=self.deliver)
        self.scheduler = ReminderScheduler(self.platform, payload_factory=self.build_payload)
        self.sync = ReminderSync(self.store, self.scheduler)
        self.actions = ReminderActions(self.store)
        self._resync_task: asyncio.Task | None = None

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Start delivery, follow changes, then repair drift from while we were down."""
        _init_notifications(self.router)
        await self.platform.start()

        status = await self.scheduler.request_permission()
        logger.info("Reminder permission: %s", status.value)

        # Subscribed before recovery: no change may fall between the two.
        self.sync.start()
        report = await recover_reminders(self.store, self.scheduler)
        logger.info(
            "Startup reconciliation: %d scheduled, %d cancelled, %d failure(s)",
            report.scheduled + report.rescheduled,
            report.cancelled,
            len(report.failures),
        )

        self._resync_task = asyncio.create_task(
            resync_loop(self.store, self.scheduler), name="reminder-resync"
        )

    async def stop(self) -> None:
        """Called during graceful shutdown."""
        if self._resync_task is not None:
            self._resync_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._resync_task
            self._resync_task = None
        await self.sync.stop()
        await self.platform.stop()

    # -- Platform callbacks ----------------------------------------------------

    async def build_payload(self, task: Task, request: ReminderRequest) -> NotificationPayload:
        """Reminder content: task title, with the project name as subtitle."""
        subtitle = ""
        if task.project_id:
            project = await self.store.get_project(task.project_id)
            if project is not None:
                subtitle = f"Project: {project.name}"
        return NotificationPayload(
            task_id=task.id,
            fire_at=request.fire_at,
            title="Task reminder",
            body=task.title or "Untitled task",
            subtitle=subtitle,
            user_info={"taskId": task.id, "taskTitle": task.title or ""},
        )

    async def deliver(self, payload: NotificationPayload) -> None:
        """Send a fired reminder and record the delivery on the task.

        The task is re-read first: the store may have been changed by another
        process (e.g. the CLI) since the reminder was scheduled.  An outdated
        reminder is dropped and the task reconciled instead.
        """
        task_id = payload.task_id
        await self.scheduler.mark_delivered(task_id, payload.fire_at)

        task = await self.store.get_task(task_id)
        if task is None:
            logger.info("Dropping reminder for missing task %s", task_id)
            await self.scheduler.cancel(task_id)
            return
        if not self._is_current(task, payload):
            logger.info("Dropping outdated reminder for task %s", task_id)
            self.scheduler.forget(task_id)
            try:
                await self.scheduler.reconcile(task)
            except DoneDayError as exc:
                logger.warning("Could not reschedule reminder for task %s: %s", task_id, exc)
            return

        delivered = await self.router.send(payload)
        if not delivered:
            logger.warning("Reminder for task %s was not delivered", task_id)
            self.scheduler.forget(task_id)
            return
        await self.store.mark_reminder_delivered(task_id, payload.fire_at)
        logger.info("Delivered reminder for task %s", task_id)

    def _is_current(self, task: Task, payload: NotificationPayload) -> bool:
        """Whether *payload* is still the reminder the task calls for."""
        if task.reminder_delivered_for == payload.fire_at:
            return False
        return target_time(task, self.scheduler.policy) == payload.fire_at
