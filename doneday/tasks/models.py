"""Task, Project, Area and Tag data models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum, StrEnum


class Priority(IntEnum):
    """Ordered task priority."""

    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @classmethod
    def from_db(cls, raw: int | None) -> Priority:
        try:
            return cls(int(raw or 0))
        except ValueError:
            return cls.NONE


class ChangeKind(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class TaskChange:
    """One event on the store's change stream."""

    task_id: str
    kind: ChangeKind


def utcnow() -> datetime:
    return datetime.now(UTC)


def to_iso(value: datetime | None) -> str | None:
    """Serialize an aware datetime as a UTC ISO 8601 string."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def from_iso(raw: str | None) -> datetime | None:
    """Parse an ISO 8601 string; naive values are taken as UTC."""
    if not raw:
        return None
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def make_id() -> str:
    """Generate a new record ID."""
    return uuid.uuid4().hex


@dataclass
class Task:
    """A to-do item.

    Attributes:
        id: Unique identifier (UUID hex).
        title: Short human-readable title.
        notes: Optional free-form description.
        due_at: When the task is due (aware datetime), or None.
        start_at: When work on the task should start, or None.
        completed: Completion flag.
        completed_at: When the task was completed. Set only if ``completed``.
        priority: Ordered priority.
        sort_order: Manual ordering within lists.
        deleted: Soft-delete flag.
        project_id: Owning project, if any.
        area_id: Owning area, if any.
        tag_ids: IDs of attached tags.
        reminder_enabled: Whether the user wants a reminder for the due date.
        reminder_offset_minutes: Per-task lead time override (None means the
            configured default).
        snoozed_until: Pushes the reminder to this time if it is later.
        reminder_delivered_for: Fire time of the last delivered reminder.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
    """

    id: str
    title: str
    notes: str = ""
    due_at: datetime | None = None
    start_at: datetime | None = None
    completed: bool = False
    completed_at: datetime | None = None
    priority: Priority = Priority.NONE
    sort_order: int = 0
    deleted: bool = False
    project_id: str | None = None
    area_id: str | None = None
    tag_ids: set[str] = field(default_factory=set)
    reminder_enabled: bool = True
    reminder_offset_minutes: int | None = None
    snoozed_until: datetime | None = None
    reminder_delivered_for: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def is_active(self) -> bool:
        return not self.completed and not self.deleted

    @property
    def is_inbox(self) -> bool:
        return self.project_id is None and self.area_id is None

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``tasks`` column order."""
        return (
            self.id,
            self.title,
            self.notes,
            to_iso(self.due_at),
            to_iso(self.start_at),
            int(self.completed),
            to_iso(self.completed_at),
            int(self.priority),
            self.sort_order,
            int(self.deleted),
            self.project_id,
            self.area_id,
            int(self.reminder_enabled),
            self.reminder_offset_minutes,
            to_iso(self.snoozed_until),
            to_iso(self.reminder_delivered_for),
            to_iso(self.created_at),
            to_iso(self.updated_at),
        )

    @classmethod
    def from_row(cls, row: tuple, tag_ids: set[str] | None = None) -> Task:
        """Deserialize from a SQLite row tuple."""
        return cls(
            id=row[0],
            title=row[1],
            notes=row[2] or "",
            due_at=from_iso(row[3]),
            start_at=from_iso(row[4]),
            completed=bool(row[5]),
            completed_at=from_iso(row[6]),
            priority=Priority.from_db(row[7]),
            sort_order=row[8] or 0,
            deleted=bool(row[9]),
            project_id=row[10],
            area_id=row[11],
            tag_ids=set(tag_ids or ()),
            reminder_enabled=bool(row[12]),
            reminder_offset_minutes=row[13],
            snoozed_until=from_iso(row[14]),
            reminder_delivered_for=from_iso(row[15]),
            created_at=from_iso(row[16]) or utcnow(),
            updated_at=from_iso(row[17]),
        )


@dataclass
class Project:
    id: str
    name: str
    notes: str = ""
    area_id: str | None = None
    color: str = "blue"
    icon: str = "folder.fill"
    created_at: datetime = field(default_factory=utcnow)

    def to_row(self) -> tuple:
        return (
            self.id,
            self.name,
            self.notes,
            self.area_id,
            self.color,
            self.icon,
            to_iso(self.created_at),
        )

    @classmethod
    def from_row(cls, row: tuple) -> Project:
        return cls(
            id=row[0],
            name=row[1],
            notes=row[2] or "",
            area_id=row[3],
            color=row[4] or "blue",
            icon=row[5] or "folder.fill",
            created_at=from_iso(row[6]) or utcnow(),
        )


@dataclass
class Area:
    id: str
    name: str
    notes: str = ""
    color: str | None = None
    icon: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def to_row(self) -> tuple:
        return (self.id, self.name, self.notes, self.color, self.icon, to_iso(self.created_at))

    @classmethod
    def from_row(cls, row: tuple) -> Area:
        return cls(
            id=row[0],
            name=row[1],
            notes=row[2] or "",
            color=row[3],
            icon=row[4],
            created_at=from_iso(row[5]) or utcnow(),
        )


@dataclass
class Tag:
    id: str
    name: str
    color: str | None = None

    def to_row(self) -> tuple:
        return (self.id, self.name, self.color)

    @classmethod
    def from_row(cls, row: tuple) -> Tag:
        return cls(id=row[0], name=row[1], color=row[2])
