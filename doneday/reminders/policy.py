"""Reminder timing: turn a task snapshot into the reminder it should have."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from doneday.config import settings
from doneday.reminders.models import PastDuePolicy, ReminderRequest

if TYPE_CHECKING:
    from doneday.tasks.models import Task


@dataclass(frozen=True)
class ReminderPolicy:
    """Lead time before the due date and the handling of past fire times."""

    lead_time: timedelta = timedelta(minutes=30)
    past_due: PastDuePolicy = PastDuePolicy.IMMEDIATE

    @classmethod
    def from_settings(cls) -> ReminderPolicy:
        return cls(
            lead_time=timedelta(minutes=settings.reminder_lead_minutes),
            past_due=PastDuePolicy(settings.reminder_past_due),
        )

    def lead_for(self, task: Task) -> timedelta:
        if task.reminder_offset_minutes is not None:
            return timedelta(minutes=task.reminder_offset_minutes)
        return self.lead_time


def wants_reminder(task: Task) -> bool:
    """Whether the task's own fields allow a pending reminder at all."""
    return (
        task.reminder_enabled
        and task.due_at is not None
        and not task.completed
        and not task.deleted
    )


def target_time(task: Task, policy: ReminderPolicy) -> datetime | None:
    """The reminder's target fire time, before any past-due clamping."""
    if not wants_reminder(task):
        return None
    target = task.due_at - policy.lead_for(task)
    if task.snoozed_until is not None and task.snoozed_until > target:
        target = task.snoozed_until
    return target


def desired_request(task: Task, policy: ReminderPolicy, now: datetime) -> ReminderRequest | None:
    """Derive the ReminderRequest for *task* at *now*, or None.

    The result depends only on the task's current fields, the policy and the
    clock; completing and un-completing a task yields the same request.
    """
    target = target_time(task, policy)
    if target is None:
        return None
    if task.reminder_delivered_for is not None and task.reminder_delivered_for == target:
        return None
    if target > now:
        return ReminderRequest(task_id=task.id, fire_at=target, deliver_at=target)
    if policy.past_due is PastDuePolicy.SKIP:
        return None
    return ReminderRequest(task_id=task.id, fire_at=target, deliver_at=now)
