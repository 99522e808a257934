"""TaskStore — aiosqlite CRUD for tasks, projects, areas and tags."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import aiosqlite

from doneday.config import settings
from doneday.errors import InvalidTask, NotFound
from doneday.tasks.models import (
    Area,
    ChangeKind,
    Priority,
    Project,
    Tag,
    Task,
    TaskChange,
    make_id,
    to_iso,
    utcnow,
)
from doneday.tasks.validation import (
    MAX_AREA_NAME_LENGTH,
    MAX_PROJECT_NAME_LENGTH,
    MAX_TAG_NAME_LENGTH,
    MAX_TITLE_LENGTH,
    check_task_state,
    clean_name,
    clean_notes,
    validate_task,
)

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS areas (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    notes TEXT NOT NULL DEFAULT '',
    color TEXT,
    icon TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    notes TEXT NOT NULL DEFAULT '',
    area_id TEXT REFERENCES areas(id) ON DELETE SET NULL,
    color TEXT,
    icon TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tags (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    color TEXT
);

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    notes TEXT NOT NULL DEFAULT '',
    due_at TEXT,
    start_at TEXT,
    completed INTEGER NOT NULL DEFAULT 0,
    completed_at TEXT,
    priority INTEGER NOT NULL DEFAULT 0,
    sort_order INTEGER NOT NULL DEFAULT 0,
    deleted INTEGER NOT NULL DEFAULT 0,
    project_id TEXT REFERENCES projects(id) ON DELETE SET NULL,
    area_id TEXT REFERENCES areas(id) ON DELETE SET NULL,
    reminder_enabled INTEGER NOT NULL DEFAULT 1,
    reminder_offset_minutes INTEGER,
    snoozed_until TEXT,
    reminder_delivered_for TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS task_tags (
    task_id TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    tag_id TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (task_id, tag_id)
);

CREATE INDEX IF NOT EXISTS idx_tasks_due ON tasks(deleted, completed, due_at);
"""

_TASK_COLUMNS = (
    "id, title, notes, due_at, start_at, completed, completed_at, priority, "
    "sort_order, deleted, project_id, area_id, reminder_enabled, "
    "reminder_offset_minutes, snoozed_until, reminder_delivered_for, "
    "created_at, updated_at"
)

# Fields callers may change through update_task(); values are converted
# to their column representation by _column_value().
_UPDATABLE_FIELDS = {
    "title",
    "notes",
    "due_at",
    "start_at",
    "priority",
    "sort_order",
    "project_id",
    "area_id",
    "reminder_enabled",
    "reminder_offset_minutes",
}


def _column_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Priority):
        return int(value)
    return value


class TaskStore:
    """Persists tasks, projects, areas and tags in SQLite.

    Singleton accessed via ``TaskStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).

    Every task mutation is published to subscribers as a ``TaskChange`` in
    the order the mutations were committed.
    """

    _instance: TaskStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False
        self._subscribers: list[asyncio.Queue[TaskChange]] = []

    @classmethod
    def get(cls) -> TaskStore:
        """Return the shared TaskStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        await db.execute("PRAGMA foreign_keys = ON")
        if not self._initialised:
            await db.executescript(_SCHEMA)
            await db.commit()
            self._initialised = True
        return db

    async def _fetch_tasks(
        self, where: str, params: tuple = (), order: str = "created_at"
    ) -> list[Task]:
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_TASK_COLUMNS} FROM tasks WHERE {where} ORDER BY {order}",  # noqa: S608
                params,
            )
            rows = await cursor.fetchall()
            tags = await self._load_tag_ids(db, [row[0] for row in rows])
            return [Task.from_row(row, tags.get(row[0])) for row in rows]
        finally:
            await db.close()

    @staticmethod
    async def _load_tag_ids(db: aiosqlite.Connection, task_ids: list[str]) -> dict[str, set[str]]:
        if not task_ids:
            return {}
        placeholders = ", ".join("?" for _ in task_ids)
        cursor = await db.execute(
            f"SELECT task_id, tag_id FROM task_tags WHERE task_id IN ({placeholders})",  # noqa: S608
            tuple(task_ids),
        )
        tags: dict[str, set[str]] = {}
        for task_id, tag_id in await cursor.fetchall():
            tags.setdefault(task_id, set()).add(tag_id)
        return tags

    async def _update_task_columns(
        self, task_id: str, columns: dict[str, Any], kind: ChangeKind
    ) -> bool:
        """Apply column changes to one task and publish *kind* on success."""
        columns = {**columns, "updated_at": to_iso(utcnow())}
        assignments = ", ".join(f"{name} = ?" for name in columns)
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ?",  # noqa: S608
                (*(_column_value(v) for v in columns.values()), task_id),
            )
            await db.commit()
            updated = cursor.rowcount > 0
        finally:
            await db.close()
        if updated:
            self._emit(task_id, kind)
        return updated

    # -- Change stream ---------------------------------------------------------

    def subscribe(self) -> asyncio.Queue[TaskChange]:
        """Return a queue that receives every subsequent TaskChange."""
        queue: asyncio.Queue[TaskChange] = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[TaskChange]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def _emit(self, task_id: str, kind: ChangeKind) -> None:
        change = TaskChange(task_id=task_id, kind=kind)
        for queue in self._subscribers:
            queue.put_nowait(change)
        logger.debug("Task change: %s %s", kind.value, task_id)

    # -- Tasks -----------------------------------------------------------------

    async def add_task(self, task: Task) -> Task:
        """Validate and insert a new task. Returns the same task object."""
        validate_task(task)
        db = await self._connect()
        try:
            if not task.sort_order:
                cursor = await db.execute(
                    "SELECT COALESCE(MAX(sort_order), 0) FROM tasks WHERE deleted = 0"
                )
                row = await cursor.fetchone()
                task.sort_order = (row[0] if row else 0) + 1
            await db.execute(
                f"INSERT INTO tasks ({_TASK_COLUMNS}) "  # noqa: S608
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                task.to_row(),
            )
            await db.executemany(
                "INSERT OR IGNORE INTO task_tags (task_id, tag_id) VALUES (?, ?)",
                [(task.id, tag_id) for tag_id in task.tag_ids],
            )
            await db.commit()
        finally:
            await db.close()
        logger.info("Added task: %s (%s)", task.title, task.id)
        self._emit(task.id, ChangeKind.CREATE)
        return task

    async def create_task(self, title: str, **fields: Any) -> Task:
        """Build a Task with a fresh ID from keyword fields and insert it."""
        return await self.add_task(Task(id=make_id(), title=title, **fields))

    async def get_task(self, task_id: str) -> Task | None:
        """Fetch a task by ID, or None if not found."""
        tasks = await self._fetch_tasks("id = ?", (task_id,))
        return tasks[0] if tasks else None

    async def require_task(self, task_id: str) -> Task:
        task = await self.get_task(task_id)
        if task is None:
            raise NotFound("Task", task_id)
        return task

    async def list_active_tasks(self) -> list[Task]:
        """Return all tasks that are not soft-deleted (completed included)."""
        return await self._fetch_tasks("deleted = 0")

    async def list_today_tasks(self, now: datetime | None = None) -> list[Task]:
        """Open tasks due between the start of *now*'s day and the next one."""
        now = now or utcnow()
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        end = start + timedelta(days=1)
        return await self._fetch_tasks(
            "deleted = 0 AND completed = 0 AND due_at >= ? AND due_at < ?",
            (to_iso(start), to_iso(end)),
            order="due_at",
        )

    async def list_upcoming_tasks(self, days: int = 7, now: datetime | None = None) -> list[Task]:
        """Open tasks due after *now* and within the next *days* days."""
        now = now or utcnow()
        return await self._fetch_tasks(
            "deleted = 0 AND completed = 0 AND due_at > ? AND due_at <= ?",
            (to_iso(now), to_iso(now + timedelta(days=days))),
            order="due_at",
        )

    async def list_inbox_tasks(self) -> list[Task]:
        """Open tasks attached to neither a project nor an area."""
        return await self._fetch_tasks(
            "deleted = 0 AND completed = 0 AND project_id IS NULL AND area_id IS NULL",
            order="sort_order",
        )

    async def list_completed_tasks(self) -> list[Task]:
        return await self._fetch_tasks(
            "deleted = 0 AND completed = 1", order="completed_at DESC"
        )

    async def list_project_tasks(self, project_id: str) -> list[Task]:
        return await self._fetch_tasks(
            "deleted = 0 AND project_id = ?", (project_id,), order="sort_order"
        )

    async def update_task(self, task_id: str, **changes: Any) -> Task | None:
        """Change editable fields of a task. Returns the updated task or None.

        Changing ``due_at`` clears any snooze, since a snooze refers to the
        reminder of the previous due date.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Fields cannot be updated: {', '.join(sorted(unknown))}"
            raise InvalidTask(msg, task_id)

        current = await self.get_task(task_id)
        if current is None:
            return None

        if "title" in changes:
            changes["title"] = clean_name(
                changes["title"], what="Task title", max_length=MAX_TITLE_LENGTH
            )
        if "notes" in changes:
            changes["notes"] = clean_notes(changes["notes"])
        for name, value in changes.items():
            setattr(current, name, value)
        check_task_state(current)

        if "due_at" in changes:
            changes["snoozed_until"] = None
        if not changes:
            return current
        await self._update_task_columns(task_id, changes, ChangeKind.UPDATE)
        return await self.get_task(task_id)

    async def mark_completed(self, task_id: str) -> bool:
        """Mark a task completed now. Returns True if a row was updated."""
        updated = await self._update_task_columns(
            task_id,
            {"completed": True, "completed_at": utcnow()},
            ChangeKind.COMPLETE,
        )
        if updated:
            logger.info("Completed task: %s", task_id)
        return updated

    async def mark_incomplete(self, task_id: str) -> bool:
        return await self._update_task_columns(
            task_id, {"completed": False, "completed_at": None}, ChangeKind.UPDATE
        )

    async def soft_delete(self, task_id: str) -> bool:
        """Flag a task as deleted. Returns True if a row was updated."""
        updated = await self._update_task_columns(task_id, {"deleted": True}, ChangeKind.DELETE)
        if updated:
            logger.info("Soft-deleted task: %s", task_id)
        return updated

    async def restore(self, task_id: str) -> bool:
        return await self._update_task_columns(task_id, {"deleted": False}, ChangeKind.UPDATE)

    async def delete_task(self, task_id: str) -> bool:
        """Remove a task permanently. Returns True if a row was deleted."""
        db = await self._connect()
        try:
            cursor = await db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        finally:
            await db.close()
        if deleted:
            logger.info("Deleted task: %s", task_id)
            self._emit(task_id, ChangeKind.DELETE)
        return deleted

    async def snooze_task(self, task_id: str, until: datetime) -> bool:
        """Push the task's reminder to *until*."""
        return await self._update_task_columns(
            task_id, {"snoozed_until": until}, ChangeKind.UPDATE
        )

    async def mark_reminder_delivered(self, task_id: str, fire_at: datetime) -> bool:
        """Record that the reminder for *fire_at* has been delivered."""
        return await self._update_task_columns(
            task_id, {"reminder_delivered_for": fire_at}, ChangeKind.UPDATE
        )

    # -- Projects --------------------------------------------------------------

    async def add_project(
        self,
        name: str,
        *,
        notes: str = "",
        area_id: str | None = None,
        color: str = "blue",
        icon: str = "folder.fill",
    ) -> Project:
        project = Project(
            id=make_id(),
            name=clean_name(name, what="Project name", max_length=MAX_PROJECT_NAME_LENGTH),
            notes=clean_notes(notes),
            area_id=area_id,
            color=color,
            icon=icon,
        )
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO projects (id, name, notes, area_id, color, icon, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                project.to_row(),
            )
            await db.commit()
        finally:
            await db.close()
        logger.info("Added project: %s (%s)", project.name, project.id)
        return project

    async def get_project(self, project_id: str) -> Project | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, name, notes, area_id, color, icon, created_at "
                "FROM projects WHERE id = ?",
                (project_id,),
            )
            row = await cursor.fetchone()
            return Project.from_row(row) if row else None
        finally:
            await db.close()

    async def find_project(self, name: str) -> Project | None:
        """Look up a project by exact name."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, name, notes, area_id, color, icon, created_at "
                "FROM projects WHERE name = ?",
                (name.strip(),),
            )
            row = await cursor.fetchone()
            return Project.from_row(row) if row else None
        finally:
            await db.close()

    async def list_projects(self, area_id: str | None = None) -> list[Project]:
        db = await self._connect()
        try:
            sql = "SELECT id, name, notes, area_id, color, icon, created_at FROM projects"
            params: tuple = ()
            if area_id is not None:
                sql += " WHERE area_id = ?"
                params = (area_id,)
            cursor = await db.execute(sql + " ORDER BY name", params)
            return [Project.from_row(row) for row in await cursor.fetchall()]
        finally:
            await db.close()

    async def delete_project(self, project_id: str, *, delete_tasks: bool = False) -> bool:
        """Delete a project.

        Its tasks are detached (kept, with their reminders untouched) unless
        *delete_tasks* is set, in which case they are soft-deleted.
        """
        affected = [t.id for t in await self.list_project_tasks(project_id)]
        db = await self._connect()
        try:
            if delete_tasks:
                await db.execute(
                    "UPDATE tasks SET deleted = 1, updated_at = ? WHERE project_id = ?",
                    (to_iso(utcnow()), project_id),
                )
            cursor = await db.execute("DELETE FROM projects WHERE id = ?", (project_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        finally:
            await db.close()
        if deleted:
            kind = ChangeKind.DELETE if delete_tasks else ChangeKind.UPDATE
            for task_id in affected:
                self._emit(task_id, kind)
            logger.info(
                "Deleted project %s (%d task(s) %s)",
                project_id,
                len(affected),
                "deleted" if delete_tasks else "detached",
            )
        return deleted

    # -- Areas -----------------------------------------------------------------

    async def add_area(
        self,
        name: str,
        *,
        notes: str = "",
        color: str | None = None,
        icon: str | None = None,
    ) -> Area:
        area = Area(
            id=make_id(),
            name=clean_name(name, what="Area name", max_length=MAX_AREA_NAME_LENGTH),
            notes=clean_notes(notes),
            color=color,
            icon=icon,
        )
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO areas (id, name, notes, color, icon, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                area.to_row(),
            )
            await db.commit()
        finally:
            await db.close()
        logger.info("Added area: %s (%s)", area.name, area.id)
        return area

    async def list_areas(self) -> list[Area]:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, name, notes, color, icon, created_at FROM areas ORDER BY name"
            )
            return [Area.from_row(row) for row in await cursor.fetchall()]
        finally:
            await db.close()

    async def delete_area(self, area_id: str) -> bool:
        """Delete an area; projects and tasks in it are detached, not deleted."""
        affected = [t.id for t in await self._fetch_tasks("area_id = ?", (area_id,))]
        db = await self._connect()
        try:
            cursor = await db.execute("DELETE FROM areas WHERE id = ?", (area_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        finally:
            await db.close()
        if deleted:
            for task_id in affected:
                self._emit(task_id, ChangeKind.UPDATE)
            logger.info("Deleted area %s (%d task(s) detached)", area_id, len(affected))
        return deleted

    # -- Tags ------------------------------------------------------------------

    async def find_or_create_tag(self, name: str, color: str | None = None) -> Tag:
        """Return the tag called *name*, creating it if needed."""
        cleaned = clean_name(name, what="Tag name", max_length=MAX_TAG_NAME_LENGTH)
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, name, color FROM tags WHERE name = ?", (cleaned,)
            )
            row = await cursor.fetchone()
            if row:
                return Tag.from_row(row)
            tag = Tag(id=make_id(), name=cleaned, color=color)
            await db.execute("INSERT INTO tags (id, name, color) VALUES (?, ?, ?)", tag.to_row())
            await db.commit()
            logger.info("Added tag: %s (%s)", tag.name, tag.id)
            return tag
        finally:
            await db.close()

    async def list_tags(self) -> list[Tag]:
        db = await self._connect()
        try:
            cursor = await db.execute("SELECT id, name, color FROM tags ORDER BY name")
            return [Tag.from_row(row) for row in await cursor.fetchall()]
        finally:
            await db.close()

    async def delete_tag(self, tag_id: str) -> bool:
        db = await self._connect()
        try:
            cursor = await db.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()

    async def tag_task(self, task_id: str, tag_id: str) -> None:
        db = await self._connect()
        try:
            await db.execute(
                "INSERT OR IGNORE INTO task_tags (task_id, tag_id) VALUES (?, ?)",
                (task_id, tag_id),
            )
            await db.commit()
        finally:
            await db.close()

    async def untag_task(self, task_id: str, tag_id: str) -> None:
        db = await self._connect()
        try:
            await db.execute(
                "DELETE FROM task_tags WHERE task_id = ? AND tag_id = ?", (task_id, tag_id)
            )
            await db.commit()
        finally:
            await db.close()
