"""ReminderScheduler — keeps pending notifications in line with task state.

The scheduler owns one invariant: the platform's pending notifications are
exactly the ReminderRequests derivable from the current tasks.  It never
runs timers itself; it only decides *whether* and *when* a notification
should exist and issues add/replace/cancel calls to the platform.

Reconciliation is serialized per task id with an ``asyncio.Lock``.  Batch
reconciliation takes each task's lock only while handling that task, so
single-task calls interleave with it instead of waiting for the batch.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from doneday.config import settings
from doneday.errors import DoneDayError, InvalidTask, SchedulingFailed
from doneday.reminders.models import (
    AuthorizationStatus,
    NotificationPayload,
    ReconcileOutcome,
    ReminderRequest,
)
from doneday.reminders.policy import ReminderPolicy, desired_request
from doneday.tasks.validation import check_task_state

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

    from doneday.reminders.platform import NotificationPlatform
    from doneday.tasks.models import Task

    PayloadFactory = Callable[[Task, ReminderRequest], Awaitable[NotificationPayload]]

logger = logging.getLogger(__name__)

# Platform-wide calls (permission, listing) are reported under this id.
_ALL = "*"


async def default_payload(task: Task, request: ReminderRequest) -> NotificationPayload:
    """Build the notification content for a task's reminder."""
    return NotificationPayload(
        task_id=task.id,
        fire_at=request.fire_at,
        title="Task reminder",
        body=task.title or "Untitled task",
        user_info={"taskId": task.id, "taskTitle": task.title or ""},
    )


@dataclass
class ReconcileReport:
    """Result of a batch reconciliation. Failures are collected, not raised."""

    permission: AuthorizationStatus = AuthorizationStatus.NOT_DETERMINED
    scheduled: int = 0
    rescheduled: int = 0
    cancelled: int = 0
    unchanged: int = 0
    skipped: int = 0
    failures: list[DoneDayError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def changes(self) -> int:
        return self.scheduled + self.rescheduled + self.cancelled

    def record(self, outcome: ReconcileOutcome) -> None:
        if outcome is ReconcileOutcome.SCHEDULED:
            self.scheduled += 1
        elif outcome is ReconcileOutcome.RESCHEDULED:
            self.rescheduled += 1
        elif outcome is ReconcileOutcome.CANCELLED:
            self.cancelled += 1
        else:
            self.unchanged += 1


class ReminderScheduler:
    """Reconciles task reminders against a NotificationPlatform.

    Args:
        platform: The notification platform to drive.
        policy: Lead time and past-due handling (default from settings).
        payload_factory: Async callable building a NotificationPayload for a
            task and its request.
        clock: Returns the current aware datetime (injectable for tests).
        timeout: Seconds allowed per platform call (default from settings).
        concurrency: Parallel tasks during ``reconcile_all``.
    """

    def __init__(
        self,
        platform: NotificationPlatform,
        policy: ReminderPolicy | None = None,
        *,
        payload_factory: PayloadFactory | None = None,
        clock: Callable[[], datetime] | None = None,
        timeout: float | None = None,
        concurrency: int | None = None,
    ) -> None:
        self._platform = platform
        self._policy = policy or ReminderPolicy.from_settings()
        self._payload_factory = payload_factory or default_payload
        self._clock = clock or (lambda: datetime.now(UTC))
        self._timeout = timeout or settings.platform_timeout_seconds
        self._concurrency = concurrency or settings.reconcile_concurrency

        self._status = AuthorizationStatus.NOT_DETERMINED
        self._permission_lock = asyncio.Lock()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        # task id -> fire time of the pending handle (None: pending, time unknown)
        self._handles: dict[str, datetime | None] = {}
        # task id -> fire time already delivered but not yet recorded on the task
        self._delivered: dict[str, datetime] = {}
        # task id -> sequence number of the last reconciliation touching it
        self._touched: dict[str, int] = {}
        self._sequence = 0
        self._batches = 0

    @property
    def policy(self) -> ReminderPolicy:
        return self._policy

    # -- Queries for the UI ----------------------------------------------------

    @property
    def permission_status(self) -> AuthorizationStatus:
        return self._status

    def is_reminder_pending(self, task_id: str) -> bool:
        return task_id in self._handles

    def pending_fire_time(self, task_id: str) -> datetime | None:
        return self._handles.get(task_id)

    def pending_count(self) -> int:
        return len(self._handles)

    # -- Permission ------------------------------------------------------------

    async def request_permission(self) -> AuthorizationStatus:
        """Ask the platform for authorization once and remember the answer."""
        async with self._permission_lock:
            if self._status is AuthorizationStatus.NOT_DETERMINED:
                status = await self._read_status()
                if status is AuthorizationStatus.NOT_DETERMINED:
                    status = await self._call(
                        _ALL, "request_authorization", self._platform.request_authorization
                    )
                self._status = status
                if status is AuthorizationStatus.DENIED:
                    logger.warning("Notification permission denied; reminders are disabled")
                else:
                    logger.info("Notification permission: %s", status.value)
            return self._status

    async def refresh_permission(self) -> AuthorizationStatus:
        """Re-read the platform's status, e.g. after the user changed it."""
        async with self._permission_lock:
            status = await self._read_status()
            if status is not self._status:
                logger.info(
                    "Notification permission changed: %s -> %s", self._status.value, status.value
                )
            self._status = status
            return self._status

    # -- Reconciliation --------------------------------------------------------

    async def reconcile(self, task: Task) -> ReconcileOutcome:
        """Make the platform hold exactly the reminder *task* should have.

        Raises:
            InvalidTask: the snapshot has no id or contradictory state.
            SchedulingFailed: the platform failed; the task is left with no
                pending reminder.
        """
        check_task_state(task)
        status = await self.request_permission()
        if status is AuthorizationStatus.DENIED:
            logger.debug("Permission denied; not reconciling task %s", task.id)
            return ReconcileOutcome.PERMISSION_DENIED

        async with self._task_lock(task.id):
            request = self._desired(task, self._clock())
            outcome = await self._apply(task.id, task, request)
        logger.debug("Reconciled task %s: %s", task.id, outcome.value)
        return outcome

    async def reconcile_all(self, tasks: Iterable[Task]) -> ReconcileReport:
        """Repair drift between the full task set and the pending handles."""
        report = ReconcileReport(permission=self._status)
        try:
            report.permission = await self.request_permission()
        except SchedulingFailed as exc:
            report.failures.append(exc)
            return report
        if report.permission is AuthorizationStatus.DENIED:
            return report

        self._batches += 1
        try:
            await self._reconcile_batch(tasks, report)
        finally:
            self._batches -= 1
            if not self._batches:
                for task_id in list(self._touched):
                    self._prune(task_id)

        logger.info(
            "Reconciled: +%d ~%d -%d =%d skipped=%d failures=%d",
            report.scheduled,
            report.rescheduled,
            report.cancelled,
            report.unchanged,
            report.skipped,
            len(report.failures),
        )
        return report

    async def _reconcile_batch(self, tasks: Iterable[Task], report: ReconcileReport) -> None:
        mark = self._sequence
        now = self._clock()
        desired: dict[str, Task] = {}
        rejected: set[str] = set()
        for task in tasks:
            try:
                check_task_state(task)
            except InvalidTask as exc:
                report.failures.append(exc)
                if task.id:
                    rejected.add(task.id)
                continue
            desired[task.id] = task

        try:
            pending = set(await self._call(_ALL, "list_pending", self._platform.list_pending))
        except SchedulingFailed as exc:
            report.failures.append(exc)
            pending = set(self._handles)

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _one(task_id: str) -> None:
            async with semaphore, self._task_lock(task_id):
                if self._touched.get(task_id, -1) > mark:
                    # A newer single-task reconcile already ran for this id.
                    report.skipped += 1
                    return
                if task_id in pending:
                    self._handles.setdefault(task_id, None)
                else:
                    fire_at = self._handles.pop(task_id, None)
                    if fire_at is not None and fire_at <= now:
                        # The platform fired it; delivery may still be in flight.
                        self._delivered.setdefault(task_id, fire_at)
                task = desired.get(task_id)
                request = self._desired(task, now) if task is not None else None
                try:
                    report.record(await self._apply(task_id, task, request))
                except SchedulingFailed as exc:
                    report.failures.append(exc)

        ids = (set(desired) | pending | set(self._handles)) - rejected
        await asyncio.gather(*(_one(task_id) for task_id in sorted(ids)))

    async def cancel(self, task_id: str) -> ReconcileOutcome:
        """Cancel the reminder of a task that no longer exists."""
        async with self._task_lock(task_id):
            self._delivered.pop(task_id, None)
            return await self._apply(task_id, None, None)

    async def cancel_all(self) -> int:
        """Cancel every pending notification. Returns how many were cancelled."""
        try:
            pending = set(await self._call(_ALL, "list_pending", self._platform.list_pending))
        except SchedulingFailed:
            logger.warning("Could not list pending notifications; cancelling known ones only")
            pending = set()
        cancelled = 0
        for task_id in sorted(pending | set(self._handles)):
            async with self._task_lock(task_id):
                self._touch(task_id)
                try:
                    await self._cancel_handle(task_id)
                    cancelled += 1
                except SchedulingFailed:
                    logger.warning("Could not cancel notification for task %s", task_id)
        self._delivered.clear()
        for task_id in list(self._locks):
            self._prune(task_id)
        logger.info("Cancelled %d pending notification(s)", cancelled)
        return cancelled

    # -- Delivery --------------------------------------------------------------

    async def mark_delivered(self, task_id: str, fire_at: datetime) -> None:
        """Record that the handle for *fire_at* fired.

        Until the task itself records the delivery, reconciling it will not
        schedule that fire time again.  A handle already replaced with a
        different fire time stays tracked.
        """
        async with self._task_lock(task_id):
            self._touch(task_id)
            if task_id in self._handles and self._handles[task_id] == fire_at:
                del self._handles[task_id]
            self._delivered[task_id] = fire_at

    def forget(self, task_id: str) -> None:
        """Drop the delivery record for *task_id*, e.g. after a failed send.

        The next reconcile may then deliver the same fire time again.
        """
        self._delivered.pop(task_id, None)
        self._prune(task_id)

    # -- Internal --------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _task_lock(self, task_id: str) -> AsyncIterator[None]:
        """Hold the per-task lock; the lock is dropped once nothing refers to the id."""
        lock = self._locks.get(task_id)
        if lock is None:
            lock = self._locks[task_id] = asyncio.Lock()
        self._lock_users[task_id] = self._lock_users.get(task_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[task_id] -= 1
            if not self._lock_users[task_id]:
                del self._lock_users[task_id]
            self._prune(task_id)

    def _prune(self, task_id: str) -> None:
        if task_id in self._lock_users or task_id in self._handles or task_id in self._delivered:
            return
        self._locks.pop(task_id, None)
        if not self._batches:
            # A running batch compares against these sequence numbers.
            self._touched.pop(task_id, None)

    def _desired(self, task: Task, now: datetime) -> ReminderRequest | None:
        """The task's request, minus a fire time delivered but not yet recorded."""
        request = desired_request(task, self._policy, now)
        delivered = self._delivered.get(task.id)
        if delivered is None:
            return request
        if task.reminder_delivered_for == delivered or (
            request is not None and request.fire_at != delivered
        ):
            del self._delivered[task.id]
            return request
        return None

    def _touch(self, task_id: str) -> None:
        self._sequence += 1
        self._touched[task_id] = self._sequence

    async def _apply(
        self, task_id: str, task: Task | None, request: ReminderRequest | None
    ) -> ReconcileOutcome:
        """Bring one handle in line with *request*. Caller holds the task lock."""
        self._touch(task_id)

        if request is None:
            if task_id not in self._handles:
                return ReconcileOutcome.NOT_PENDING
            await self._cancel_handle(task_id)
            return ReconcileOutcome.CANCELLED

        existed = task_id in self._handles
        if existed and self._handles[task_id] == request.fire_at:
            return ReconcileOutcome.UNCHANGED

        payload = await self._payload_factory(task, request)
        try:
            accepted = await self._call(
                task_id, "schedule", self._platform.schedule, task_id, request.deliver_at, payload
            )
        except SchedulingFailed:
            await self._discard_after_failure(task_id)
            raise
        if not accepted:
            await self._discard_after_failure(task_id)
            raise SchedulingFailed(task_id, "platform refused the notification")

        self._handles[task_id] = request.fire_at
        if request.overdue:
            logger.info("Reminder for task %s is overdue; delivering now", task_id)
        else:
            logger.info("Reminder for task %s set for %s", task_id, request.fire_at.isoformat())
        return ReconcileOutcome.RESCHEDULED if existed else ReconcileOutcome.SCHEDULED

    async def _cancel_handle(self, task_id: str) -> None:
        try:
            await self._call(task_id, "cancel", self._platform.cancel, task_id)
        except SchedulingFailed:
            # Platform state unknown; the next reconcile retries the cancel.
            self._handles[task_id] = None
            raise
        self._handles.pop(task_id, None)
        logger.info("Reminder for task %s cancelled", task_id)

    async def _discard_after_failure(self, task_id: str) -> None:
        """Make sure no stale handle survives a failed schedule."""
        try:
            await self._cancel_handle(task_id)
        except SchedulingFailed:
            logger.warning("Stale notification for task %s could not be removed", task_id)

    async def _read_status(self) -> AuthorizationStatus:
        return await self._call(_ALL, "authorization_status", self._platform.authorization_status)

    async def _call(
        self, task_id: str, operation: str, func: Callable[..., Awaitable[Any]], *args: Any
    ) -> Any:
        """Run one platform call with a timeout, retrying once on error."""
        error: Exception | None = None
        for attempt in (1, 2):
            try:
                async with asyncio.timeout(self._timeout):
                    return await func(*args)
            except Exception as exc:
                error = exc
                logger.warning(
                    "Platform %s failed for %s (attempt %d/2): %r", operation, task_id, attempt, exc
                )
        raise SchedulingFailed(task_id, f"{operation} failed: {error!r}")
