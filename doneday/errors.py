"""Exception types shared by the task store and the reminder scheduler.

Notification permission is deliberately absent here: a denied permission is
reported through ``AuthorizationStatus.DENIED``, never raised.
"""

from __future__ import annotations


class DoneDayError(Exception):
    """Base class for all DoneDay errors."""


class InvalidTask(DoneDayError):
    """Input was rejected before any side effect took place."""

    def __init__(self, reason: str, task_id: str | None = None) -> None:
        self.reason = reason
        self.task_id = task_id
        prefix = f"Task {task_id}: " if task_id else ""
        super().__init__(f"{prefix}{reason}")


class SchedulingFailed(DoneDayError):
    """The notification platform refused or failed a schedule/cancel call.

    The task is left without a pending reminder; callers may retry
    ``reconcile`` later.
    """

    def __init__(self, task_id: str, reason: str) -> None:
        self.task_id = task_id
        self.reason = reason
        super().__init__(f"Scheduling failed for task {task_id}: {reason}")


class NotFound(DoneDayError):
    """A record that had to exist was not found in the store."""

    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")
