"""Shared test fixtures."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from doneday.notifications.router import NotificationRouter
from doneday.reminders.models import PastDuePolicy
from doneday.reminders.policy import ReminderPolicy
from doneday.reminders.scheduler import ReminderScheduler
from doneday.tasks.store import TaskStore

from .fakes import NOW, FakePlatform

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
async def store(tmp_path: Path) -> TaskStore:
    """Create a TaskStore backed by a temp database."""
    return TaskStore(db_path=tmp_path / "test.db")


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def policy() -> ReminderPolicy:
    return ReminderPolicy(lead_time=timedelta(minutes=30), past_due=PastDuePolicy.IMMEDIATE)


@pytest.fixture
def scheduler(platform: FakePlatform, policy: ReminderPolicy) -> ReminderScheduler:
    return ReminderScheduler(platform, policy, clock=lambda: NOW, timeout=1.0)


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Reset singletons before and after each test."""
    TaskStore._reset()
    NotificationRouter._reset()
    yield
    TaskStore._reset()
    NotificationRouter._reset()
