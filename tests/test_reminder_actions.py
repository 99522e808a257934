"""Tests for ReminderActions — complete/snooze/open from a delivered reminder."""

from __future__ import annotations

from datetime import timedelta

from doneday.reminders.actions import ReminderActions
from doneday.reminders.models import ReminderAction
from doneday.tasks.store import TaskStore

from .fakes import NOW


async def test_complete_action(store: TaskStore) -> None:
    task = await store.create_task("Pay rent", due_at=NOW + timedelta(hours=1))
    actions = ReminderActions(store, clock=lambda: NOW)

    result = await actions.handle(task.id, ReminderAction.COMPLETE)

    assert result.completed is True


async def test_snooze_action(store: TaskStore) -> None:
    task = await store.create_task("Pay rent", due_at=NOW + timedelta(hours=1))
    actions = ReminderActions(store, snooze_minutes=10, clock=lambda: NOW)

    result = await actions.handle(task.id, "SNOOZE_ACTION")

    assert result.snoozed_until == NOW + timedelta(minutes=10)
    assert result.completed is False


async def test_open_action_returns_task(store: TaskStore) -> None:
    task = await store.create_task("Pay rent")
    result = await ReminderActions(store).handle(task.id, ReminderAction.OPEN)
    assert result.id == task.id


async def test_missing_task(store: TaskStore) -> None:
    assert await ReminderActions(store).handle("ghost", ReminderAction.COMPLETE) is None


async def test_deleted_task_ignored(store: TaskStore) -> None:
    task = await store.create_task("Pay rent")
    await store.soft_delete(task.id)

    assert await ReminderActions(store).handle(task.id, ReminderAction.COMPLETE) is None
    assert (await store.get_task(task.id)).completed is False
