"""Command-line interface for tasks and the reminder service.

Usage examples:
    # Add a task due tomorrow morning, reminded an hour before
    doneday add "Send invoice" --due 2025-01-10T09:00 --remind 1h --project Work

    # Today's tasks, or the next 7 days
    doneday list --view today
    doneday list --view upcoming --days 7

    # Complete, reopen, snooze or delete (IDs may be shortened)
    doneday done 3f2a
    doneday undo 3f2a
    doneday snooze 3f2a --minutes 30
    doneday rm 3f2a

    # Run the reminder service
    doneday serve
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import zoneinfo
from datetime import UTC, datetime, timedelta

from doneday.config import settings
from doneday.errors import DoneDayError, NotFound
from doneday.reminders.models import ReminderPreset
from doneday.reminders.policy import ReminderPolicy, desired_request
from doneday.tasks.models import Priority, Task
from doneday.tasks.store import TaskStore

_VIEWS = ("all", "today", "upcoming", "inbox", "completed")


def parse_when(raw: str) -> datetime:
    """Parse an ISO 8601 date/time; naive values use the scheduler timezone."""
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=zoneinfo.ZoneInfo(settings.scheduler_timezone))
    return value


def _fmt(value: datetime | None) -> str:
    if value is None:
        return "-"
    local = value.astimezone(zoneinfo.ZoneInfo(settings.scheduler_timezone))
    return local.strftime("%Y-%m-%d %H:%M")


def format_task(task: Task, policy: ReminderPolicy, now: datetime) -> str:
    """One-line summary: status, short id, title, due date and next reminder."""
    mark = "x" if task.completed else " "
    request = desired_request(task, policy, now)
    reminder = _fmt(request.fire_at) if request else "-"
    priority = "" if task.priority is Priority.NONE else f" !{task.priority.name.lower()}"
    return (
        f"[{mark}] {task.id[:8]}  {task.title}{priority}"
        f"  due={_fmt(task.due_at)}  remind={reminder}"
    )


async def _resolve_id(store: TaskStore, prefix: str) -> str:
    """Expand a unique ID prefix to the full task ID."""
    task = await store.get_task(prefix)
    if task is not None:
        return task.id
    matches = [t.id for t in await store.list_active_tasks() if t.id.startswith(prefix)]
    if len(matches) != 1:
        raise NotFound("Task", prefix)
    return matches[0]


# -- Commands ------------------------------------------------------------------


async def cmd_add(store: TaskStore, args: argparse.Namespace) -> int:
    project_id = None
    if args.project:
        project = await store.find_project(args.project) or await store.add_project(args.project)
        project_id = project.id
    tag_ids = {(await store.find_or_create_tag(name)).id for name in args.tag or ()}
    task = await store.create_task(
        args.title,
        notes=args.notes or "",
        due_at=parse_when(args.due) if args.due else None,
        start_at=parse_when(args.start) if args.start else None,
        priority=Priority[args.priority.upper()],
        project_id=project_id,
        tag_ids=tag_ids,
        reminder_enabled=not args.no_reminder,
        reminder_offset_minutes=int(ReminderPreset.parse(args.remind)) if args.remind else None,
    )
    print(f"Added {task.id}")
    return 0


async def cmd_list(store: TaskStore, args: argparse.Namespace) -> int:
    if args.view == "today":
        tasks = await store.list_today_tasks()
    elif args.view == "upcoming":
        tasks = await store.list_upcoming_tasks(days=args.days)
    elif args.view == "inbox":
        tasks = await store.list_inbox_tasks()
    elif args.view == "completed":
        tasks = await store.list_completed_tasks()
    else:
        tasks = await store.list_active_tasks()
    policy = ReminderPolicy.from_settings()
    now = datetime.now(UTC)
    for task in tasks:
        print(format_task(task, policy, now))
    if not tasks:
        print("No tasks.")
    return 0


async def cmd_show(store: TaskStore, args: argparse.Namespace) -> int:
    task = await store.require_task(await _resolve_id(store, args.id))
    print(format_task(task, ReminderPolicy.from_settings(), datetime.now(UTC)))
    if task.notes:
        print(f"  {task.notes}")
    if task.project_id:
        project = await store.get_project(task.project_id)
        print(f"  project: {project.name if project else task.project_id}")
    if task.snoozed_until:
        print(f"  snoozed until: {_fmt(task.snoozed_until)}")
    return 0


async def cmd_done(store: TaskStore, args: argparse.Namespace) -> int:
    await store.mark_completed(await _resolve_id(store, args.id))
    return 0


async def cmd_undo(store: TaskStore, args: argparse.Namespace) -> int:
    await store.mark_incomplete(await _resolve_id(store, args.id))
    return 0


async def cmd_rm(store: TaskStore, args: argparse.Namespace) -> int:
    task_id = await _resolve_id(store, args.id)
    if args.purge:
        await store.delete_task(task_id)
    else:
        await store.soft_delete(task_id)
    return 0


async def cmd_snooze(store: TaskStore, args: argparse.Namespace) -> int:
    until = datetime.now(UTC) + timedelta(minutes=args.minutes)
    await store.snooze_task(await _resolve_id(store, args.id), until)
    print(f"Snoozed until {_fmt(until)}")
    return 0


_COMMANDS = {
    "add": cmd_add,
    "list": cmd_list,
    "show": cmd_show,
    "done": cmd_done,
    "undo": cmd_undo,
    "rm": cmd_rm,
    "snooze": cmd_snooze,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="doneday", description="Tasks with local reminders")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Add a task")
    add.add_argument("title")
    add.add_argument("--due", help="Due date/time (ISO 8601)")
    add.add_argument("--start", help="Start date/time (ISO 8601)")
    add.add_argument("--notes")
    add.add_argument("--priority", choices=[p.name.lower() for p in Priority], default="none")
    add.add_argument("--project", help="Project name (created if missing)")
    add.add_argument("--tag", action="append", help="Tag name (repeatable)")
    add.add_argument("--remind", help="Lead time: 0, 15m, 30m, 1h or 1d")
    add.add_argument("--no-reminder", action="store_true")

    lst = sub.add_parser("list", help="List tasks")
    lst.add_argument("--view", choices=_VIEWS, default="all")
    lst.add_argument("--days", type=int, default=7)

    single_id = (("show", "Show a task"), ("done", "Complete a task"), ("undo", "Reopen a task"))
    for name, text in single_id:
        cmd = sub.add_parser(name, help=text)
        cmd.add_argument("id")

    rm = sub.add_parser("rm", help="Delete a task")
    rm.add_argument("id")
    rm.add_argument("--purge", action="store_true", help="Delete permanently")

    snooze = sub.add_parser("snooze", help="Snooze a task's reminder")
    snooze.add_argument("id")
    snooze.add_argument("--minutes", type=int, default=settings.snooze_minutes)

    sub.add_parser("serve", help="Run the reminder service")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "serve":
        from doneday.main import main as serve_main

        serve_main()
        return 0

    store = TaskStore.get()
    try:
        return asyncio.run(_COMMANDS[args.command](store, args))
    except (DoneDayError, ValueError, KeyError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
