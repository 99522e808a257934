"""Tests for TaskStore — aiosqlite CRUD and the change stream."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from doneday.errors import InvalidTask, NotFound
from doneday.tasks.models import ChangeKind, Priority, Task, TaskChange
from doneday.tasks.store import TaskStore

DUE = datetime(2025, 1, 10, 9, 0, tzinfo=UTC)


def _drain(queue) -> list[TaskChange]:
    changes = []
    while not queue.empty():
        changes.append(queue.get_nowait())
    return changes


# -- Tasks ---------------------------------------------------------------------


async def test_add_and_get(store: TaskStore) -> None:
    task = await store.create_task("Write report", due_at=DUE, priority=Priority.HIGH)

    loaded = await store.get_task(task.id)

    assert loaded is not None
    assert loaded.title == "Write report"
    assert loaded.due_at == DUE
    assert loaded.priority is Priority.HIGH
    assert loaded.completed is False


async def test_get_missing_returns_none(store: TaskStore) -> None:
    assert await store.get_task("nope") is None
    with pytest.raises(NotFound):
        await store.require_task("nope")


async def test_add_rejects_invalid_title(store: TaskStore) -> None:
    queue = store.subscribe()
    with pytest.raises(InvalidTask):
        await store.create_task("   ")
    assert await store.list_active_tasks() == []
    assert queue.empty()


async def test_sort_order_assigned(store: TaskStore) -> None:
    first = await store.create_task("a")
    second = await store.create_task("b")
    assert second.sort_order == first.sort_order + 1


async def test_tags_attached(store: TaskStore) -> None:
    tag = await store.find_or_create_tag("errands")
    task = await store.create_task("Groceries", tag_ids={tag.id})

    assert (await store.get_task(task.id)).tag_ids == {tag.id}

    await store.untag_task(task.id, tag.id)
    assert (await store.get_task(task.id)).tag_ids == set()
    await store.tag_task(task.id, tag.id)
    assert (await store.get_task(task.id)).tag_ids == {tag.id}


async def test_find_or_create_tag_is_idempotent(store: TaskStore) -> None:
    a = await store.find_or_create_tag("home")
    b = await store.find_or_create_tag(" home ")
    assert a.id == b.id
    assert [t.name for t in await store.list_tags()] == ["home"]
    assert await store.delete_tag(a.id) is True


async def test_update_task(store: TaskStore) -> None:
    task = await store.create_task("Draft")

    updated = await store.update_task(task.id, title=" Final ", due_at=DUE)

    assert updated.title == "Final"
    assert updated.due_at == DUE


async def test_update_due_clears_snooze(store: TaskStore) -> None:
    task = await store.create_task("Call", due_at=DUE)
    await store.snooze_task(task.id, DUE + timedelta(minutes=10))
    assert (await store.get_task(task.id)).snoozed_until is not None

    updated = await store.update_task(task.id, due_at=DUE + timedelta(days=1))

    assert updated.snoozed_until is None


async def test_update_rejects_unknown_field(store: TaskStore) -> None:
    task = await store.create_task("x")
    with pytest.raises(InvalidTask, match="cannot be updated"):
        await store.update_task(task.id, completed=True)


async def test_update_rejects_start_after_due(store: TaskStore) -> None:
    task = await store.create_task("x", due_at=DUE)
    with pytest.raises(InvalidTask):
        await store.update_task(task.id, start_at=DUE + timedelta(days=1))
    assert (await store.get_task(task.id)).start_at is None


async def test_update_missing_task(store: TaskStore) -> None:
    assert await store.update_task("nope", title="x") is None


async def test_complete_and_reopen(store: TaskStore) -> None:
    task = await store.create_task("x")

    assert await store.mark_completed(task.id) is True
    done = await store.get_task(task.id)
    assert done.completed is True
    assert done.completed_at is not None

    await store.mark_incomplete(task.id)
    reopened = await store.get_task(task.id)
    assert reopened.completed is False
    assert reopened.completed_at is None


async def test_soft_delete_and_restore(store: TaskStore) -> None:
    task = await store.create_task("x")

    await store.soft_delete(task.id)
    assert await store.list_active_tasks() == []
    assert (await store.get_task(task.id)).deleted is True

    await store.restore(task.id)
    assert [t.id for t in await store.list_active_tasks()] == [task.id]


async def test_hard_delete(store: TaskStore) -> None:
    task = await store.create_task("x")
    assert await store.delete_task(task.id) is True
    assert await store.get_task(task.id) is None
    assert await store.delete_task(task.id) is False


async def test_mark_reminder_delivered(store: TaskStore) -> None:
    task = await store.create_task("x", due_at=DUE)
    fire = DUE - timedelta(minutes=30)
    await store.mark_reminder_delivered(task.id, fire)
    assert (await store.get_task(task.id)).reminder_delivered_for == fire


# -- List views ----------------------------------------------------------------


async def test_list_today_and_upcoming(store: TaskStore) -> None:
    now = datetime(2025, 1, 10, 6, 0, tzinfo=UTC)
    today = await store.create_task("today", due_at=DUE)
    soon = await store.create_task("soon", due_at=DUE + timedelta(days=3))
    await store.create_task("later", due_at=DUE + timedelta(days=30))
    done = await store.create_task("done today", due_at=DUE)
    await store.mark_completed(done.id)

    assert [t.id for t in await store.list_today_tasks(now=now)] == [today.id]
    assert [t.id for t in await store.list_upcoming_tasks(days=7, now=now)] == [today.id, soon.id]


async def test_list_inbox_and_completed(store: TaskStore) -> None:
    project = await store.add_project("Work")
    inbox = await store.create_task("loose")
    await store.create_task("filed", project_id=project.id)
    done = await store.create_task("done")
    await store.mark_completed(done.id)

    assert [t.id for t in await store.list_inbox_tasks()] == [inbox.id]
    assert [t.id for t in await store.list_completed_tasks()] == [done.id]


# -- Projects and areas --------------------------------------------------------


async def test_project_crud(store: TaskStore) -> None:
    area = await store.add_area("Life")
    project = await store.add_project("Garden", area_id=area.id, color="green")

    assert (await store.get_project(project.id)).color == "green"
    assert (await store.find_project("Garden")).id == project.id
    assert [p.name for p in await store.list_projects(area_id=area.id)] == ["Garden"]
    assert [a.name for a in await store.list_areas()] == ["Life"]


async def test_project_name_validated(store: TaskStore) -> None:
    with pytest.raises(InvalidTask):
        await store.add_project("x" * 101)


async def test_delete_project_detaches_tasks(store: TaskStore) -> None:
    project = await store.add_project("Work")
    task = await store.create_task("Report", project_id=project.id, due_at=DUE)
    queue = store.subscribe()

    assert await store.delete_project(project.id) is True

    kept = await store.get_task(task.id)
    assert kept.project_id is None
    assert kept.deleted is False
    assert _drain(queue) == [TaskChange(task.id, ChangeKind.UPDATE)]


async def test_delete_project_with_tasks(store: TaskStore) -> None:
    project = await store.add_project("Work")
    task = await store.create_task("Report", project_id=project.id)
    queue = store.subscribe()

    await store.delete_project(project.id, delete_tasks=True)

    assert (await store.get_task(task.id)).deleted is True
    assert _drain(queue) == [TaskChange(task.id, ChangeKind.DELETE)]


async def test_delete_area_detaches_tasks(store: TaskStore) -> None:
    area = await store.add_area("Health")
    task = await store.create_task("Run", area_id=area.id)

    assert await store.delete_area(area.id) is True
    assert (await store.get_task(task.id)).area_id is None


# -- Change stream -------------------------------------------------------------


async def test_change_stream_order(store: TaskStore) -> None:
    queue = store.subscribe()

    task = await store.create_task("x", due_at=DUE)
    await store.update_task(task.id, title="y")
    await store.mark_completed(task.id)
    await store.soft_delete(task.id)
    await store.delete_task(task.id)

    assert [c.kind for c in _drain(queue)] == [
        ChangeKind.CREATE,
        ChangeKind.UPDATE,
        ChangeKind.COMPLETE,
        ChangeKind.DELETE,
        ChangeKind.DELETE,
    ]


async def test_no_event_for_missing_task(store: TaskStore) -> None:
    queue = store.subscribe()
    assert await store.mark_completed("nope") is False
    assert queue.empty()


async def test_unsubscribe(store: TaskStore) -> None:
    queue = store.subscribe()
    store.unsubscribe(queue)
    await store.create_task("x")
    assert queue.empty()


def test_singleton(tmp_path) -> None:
    assert TaskStore.get() is TaskStore.get()
    TaskStore._instance = TaskStore(db_path=tmp_path / "x.db")
    assert TaskStore.get()._db_path == tmp_path / "x.db"


async def test_add_task_keeps_given_fields(store: TaskStore) -> None:
    task = Task(id="fixed", title="Given", reminder_enabled=False, reminder_offset_minutes=60)
    await store.add_task(task)
    loaded = await store.get_task("fixed")
    assert loaded.reminder_enabled is False
    assert loaded.reminder_offset_minutes == 60
