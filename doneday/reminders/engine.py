"""APSchedulerPlatform — local notification platform backed by APScheduler."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from doneday.config import settings
from doneday.reminders.models import AuthorizationStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from doneday.reminders.models import NotificationPayload

logger = logging.getLogger(__name__)


class APSchedulerPlatform:
    """Maps notification handles to one-shot APScheduler date jobs.

    Args:
        deliver: Async callable invoked with the payload when a job fires.
        timezone: IANA timezone string (default from settings).
        enabled: Whether authorization will be granted (default from settings).
        max_pending: Limit on pending handles; scheduling a new handle beyond
            it fails (default from settings).
    """

    def __init__(
        self,
        deliver: Callable[[NotificationPayload], Awaitable[None]],
        timezone: str | None = None,
        enabled: bool | None = None,
        max_pending: int | None = None,
    ) -> None:
        self._deliver = deliver
        self._timezone = timezone or settings.scheduler_timezone
        self._enabled = settings.notifications_enabled if enabled is None else enabled
        self._max_pending = max_pending or settings.max_pending_notifications
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._status = AuthorizationStatus.NOT_DETERMINED
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Start firing jobs. Jobs added before start are kept."""
        self._scheduler.start()
        self._running = True
        logger.info(
            "Notification platform started with %d pending (tz=%s)",
            len(self._scheduler.get_jobs()),
            self._timezone,
        )

    async def stop(self) -> None:
        """Shut down the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Notification platform stopped")

    # -- Authorization ---------------------------------------------------------

    async def authorization_status(self) -> AuthorizationStatus:
        return self._status

    async def request_authorization(self) -> AuthorizationStatus:
        self._status = AuthorizationStatus.GRANTED if self._enabled else AuthorizationStatus.DENIED
        logger.info("Notification authorization %s", self._status.value)
        return self._status

    # -- Handles ---------------------------------------------------------------

    async def schedule(
        self, handle_id: str, fire_at: datetime, payload: NotificationPayload
    ) -> bool:
        """Add or replace the date job for *handle_id*."""
        if self._status is not AuthorizationStatus.GRANTED:
            logger.warning("Refusing to schedule %s: not authorized", handle_id)
            return False
        if (
            self._scheduler.get_job(handle_id) is None
            and len(self._scheduler.get_jobs()) >= self._max_pending
        ):
            logger.warning(
                "Pending notification limit reached (%d); cannot schedule %s",
                self._max_pending,
                handle_id,
            )
            return False
        try:
            self._scheduler.add_job(
                self._fire,
                trigger=DateTrigger(run_date=fire_at, timezone=self._timezone),
                id=handle_id,
                name=payload.body,
                args=[payload],
                misfire_grace_time=None,
                replace_existing=True,
            )
        except Exception:
            logger.exception("Failed to add notification job %s", handle_id)
            return False
        logger.debug("Scheduled notification %s at %s", handle_id, fire_at.isoformat())
        return True

    async def cancel(self, handle_id: str) -> None:
        try:
            self._scheduler.remove_job(handle_id)
        except JobLookupError:
            logger.debug("Job %s not found in scheduler (may already be removed)", handle_id)

    async def list_pending(self) -> list[str]:
        return [job.id for job in self._scheduler.get_jobs()]

    # -- Internal --------------------------------------------------------------

    async def _fire(self, payload: NotificationPayload) -> None:
        """Callback invoked by APScheduler. Delegates to the delivery callable."""
        try:
            await self._deliver(payload)
        except Exception:
            logger.exception("Reminder delivery failed for task %s", payload.task_id)
