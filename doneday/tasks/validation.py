"""Input validation for store records and reminder reconciliation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from doneday.errors import InvalidTask

if TYPE_CHECKING:
    from doneday.tasks.models import Task

MAX_TITLE_LENGTH = 200
MAX_NOTES_LENGTH = 2000
MAX_PROJECT_NAME_LENGTH = 100
MAX_AREA_NAME_LENGTH = 50
MAX_TAG_NAME_LENGTH = 30


def clean_name(value: str, *, what: str, max_length: int) -> str:
    """Trim *value* and enforce a non-empty, length-limited name."""
    trimmed = (value or "").strip()
    if not trimmed:
        raise InvalidTask(f"{what} must not be empty")
    if len(trimmed) > max_length:
        raise InvalidTask(f"{what} is too long (max {max_length} characters)")
    return trimmed


def clean_notes(value: str | None) -> str:
    trimmed = (value or "").strip()
    if len(trimmed) > MAX_NOTES_LENGTH:
        raise InvalidTask(f"Notes are too long (max {MAX_NOTES_LENGTH} characters)")
    return trimmed


def check_task_state(task: Task) -> None:
    """Reject a task snapshot with no identity or contradictory state."""
    if not task.id:
        raise InvalidTask("Task has no id")
    if task.completed_at is not None and not task.completed:
        raise InvalidTask("completed_at is set on an incomplete task", task.id)
    if task.reminder_offset_minutes is not None and task.reminder_offset_minutes < 0:
        raise InvalidTask("reminder offset must not be negative", task.id)
    if task.start_at and task.due_at and task.start_at > task.due_at:
        raise InvalidTask("start date is after the due date", task.id)


def validate_task(task: Task) -> Task:
    """Normalize title/notes in place and check state. Returns the same task."""
    task.title = clean_name(task.title, what="Task title", max_length=MAX_TITLE_LENGTH)
    task.notes = clean_notes(task.notes)
    check_task_state(task)
    return task
