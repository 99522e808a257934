"""Reminder system — timing policy, platform, reconciliation and recovery."""

from doneday.reminders.engine import APSchedulerPlatform
from doneday.reminders.models import (
    AuthorizationStatus,
    NotificationPayload,
    PastDuePolicy,
    ReconcileOutcome,
    ReminderAction,
    ReminderPreset,
    ReminderRequest,
)
from doneday.reminders.policy import ReminderPolicy, desired_request
from doneday.reminders.scheduler import ReconcileReport, ReminderScheduler

__all__ = [
    "APSchedulerPlatform",
    "AuthorizationStatus",
    "NotificationPayload",
    "PastDuePolicy",
    "ReconcileOutcome",
    "ReconcileReport",
    "ReminderAction",
    "ReminderPolicy",
    "ReminderPreset",
    "ReminderRequest",
    "ReminderScheduler",
    "desired_request",
]
