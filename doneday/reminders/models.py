"""Reminder data types: requests, payloads, presets and statuses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum, StrEnum

REMINDER_CATEGORY = "TASK_REMINDER"


class AuthorizationStatus(StrEnum):
    NOT_DETERMINED = "not_determined"
    GRANTED = "granted"
    DENIED = "denied"


class PastDuePolicy(StrEnum):
    """What to do when a reminder's fire time has already passed."""

    IMMEDIATE = "immediate"
    SKIP = "skip"


class ReminderAction(StrEnum):
    """Actions offered on a delivered reminder."""

    COMPLETE = "COMPLETE_ACTION"
    SNOOZE = "SNOOZE_ACTION"
    OPEN = "OPEN"


class ReminderPreset(IntEnum):
    """Lead times offered when enabling a reminder (minutes before due)."""

    AT_DUE_TIME = 0
    FIFTEEN_MINUTES = 15
    THIRTY_MINUTES = 30
    ONE_HOUR = 60
    ONE_DAY = 1440

    @property
    def label(self) -> str:
        if self == ReminderPreset.AT_DUE_TIME:
            return "At due time"
        if self < 60:
            return f"{int(self)} min before"
        if self < 1440:
            return f"{int(self) // 60} h before"
        return f"{int(self) // 1440} day before"

    @classmethod
    def parse(cls, raw: str) -> ReminderPreset:
        """Parse ``15m``, ``1h``, ``1d``, ``0`` or a bare minute count."""
        text = raw.strip().lower()
        units = {"m": 1, "h": 60, "d": 1440}
        if text and text[-1] in units:
            minutes = int(text[:-1]) * units[text[-1]]
        else:
            minutes = int(text)
        return cls(minutes)


class ReconcileOutcome(Enum):
    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    UNCHANGED = "unchanged"
    CANCELLED = "cancelled"
    NOT_PENDING = "not_pending"
    PERMISSION_DENIED = "permission_denied"


@dataclass(frozen=True, slots=True)
class ReminderRequest:
    """A desired pending notification, derived from a task's current state.

    Attributes:
        task_id: The task (and notification handle) identifier.
        fire_at: Target time. Two requests match when this is equal.
        deliver_at: When the platform should deliver; equals ``fire_at``
            unless the target is past and the immediate-fire policy moved it
            to "now".
    """

    task_id: str
    fire_at: datetime
    deliver_at: datetime

    @property
    def overdue(self) -> bool:
        return self.deliver_at > self.fire_at


@dataclass(frozen=True)
class NotificationPayload:
    """Content handed to the platform and eventually to a channel."""

    task_id: str
    fire_at: datetime
    title: str
    body: str
    subtitle: str = ""
    category: str = REMINDER_CATEGORY
    actions: tuple[ReminderAction, ...] = (ReminderAction.COMPLETE, ReminderAction.SNOOZE)
    user_info: dict[str, str] = field(default_factory=dict)

    def render(self) -> str:
        """Plain-text rendering used by text channels."""
        lines = [f"{self.title}: {self.body}"]
        if self.subtitle:
            lines.append(self.subtitle)
        return "\n".join(lines)
