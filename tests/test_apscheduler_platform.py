"""Tests for APSchedulerPlatform — APScheduler-backed notification handles."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from doneday.reminders.engine import APSchedulerPlatform
from doneday.reminders.models import AuthorizationStatus, NotificationPayload
from doneday.reminders.platform import NotificationPlatform


def _payload(task_id: str = "t1", fire_at: datetime | None = None) -> NotificationPayload:
    return NotificationPayload(
        task_id=task_id,
        fire_at=fire_at or datetime.now(UTC),
        title="Task reminder",
        body="Pay rent",
    )


@pytest.fixture
def deliver() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
async def platform(deliver: AsyncMock) -> APSchedulerPlatform:
    p = APSchedulerPlatform(deliver=deliver, timezone="UTC", enabled=True, max_pending=3)
    await p.request_authorization()
    return p


def test_satisfies_protocol(deliver: AsyncMock) -> None:
    assert isinstance(APSchedulerPlatform(deliver=deliver), NotificationPlatform)


# -- Lifecycle -----------------------------------------------------------------


async def test_start_and_stop(platform: APSchedulerPlatform) -> None:
    await platform.start()
    assert platform.running is True

    await platform.stop()
    assert platform.running is False


async def test_stop_when_not_started(platform: APSchedulerPlatform) -> None:
    await platform.stop()
    assert platform.running is False


# -- Authorization -------------------------------------------------------------


async def test_authorization_granted_when_enabled(deliver: AsyncMock) -> None:
    p = APSchedulerPlatform(deliver=deliver, enabled=True)
    assert await p.authorization_status() is AuthorizationStatus.NOT_DETERMINED
    assert await p.request_authorization() is AuthorizationStatus.GRANTED


async def test_authorization_denied_when_disabled(deliver: AsyncMock) -> None:
    p = APSchedulerPlatform(deliver=deliver, enabled=False)
    assert await p.request_authorization() is AuthorizationStatus.DENIED
    assert await p.schedule("t1", datetime.now(UTC) + timedelta(hours=1), _payload()) is False


async def test_schedule_requires_authorization(deliver: AsyncMock) -> None:
    p = APSchedulerPlatform(deliver=deliver, enabled=True)
    assert await p.schedule("t1", datetime.now(UTC) + timedelta(hours=1), _payload()) is False
    assert await p.list_pending() == []


# -- Handles -------------------------------------------------------------------


async def test_schedule_adds_date_job(platform: APSchedulerPlatform) -> None:
    fire_at = datetime.now(UTC) + timedelta(hours=1)

    assert await platform.schedule("t1", fire_at, _payload()) is True

    job = platform._scheduler.get_job("t1")
    assert job is not None
    assert job.name == "Pay rent"
    assert await platform.list_pending() == ["t1"]


async def test_schedule_replaces_existing(platform: APSchedulerPlatform) -> None:
    first = datetime.now(UTC) + timedelta(hours=1)
    await platform.schedule("t1", first, _payload())
    await platform.start()
    try:
        second = first + timedelta(hours=2)
        await platform.schedule("t1", second, _payload())

        assert await platform.list_pending() == ["t1"]
        assert platform._scheduler.get_job("t1").next_run_time == second
    finally:
        await platform.stop()


async def test_pending_limit(platform: APSchedulerPlatform) -> None:
    fire_at = datetime.now(UTC) + timedelta(hours=1)
    for i in range(3):
        assert await platform.schedule(f"t{i}", fire_at, _payload(f"t{i}")) is True

    assert await platform.schedule("t3", fire_at, _payload("t3")) is False
    # Replacing an existing handle is still allowed at the limit.
    assert await platform.schedule("t0", fire_at + timedelta(minutes=5), _payload("t0")) is True


async def test_cancel(platform: APSchedulerPlatform) -> None:
    await platform.schedule("t1", datetime.now(UTC) + timedelta(hours=1), _payload())

    await platform.cancel("t1")

    assert await platform.list_pending() == []


async def test_cancel_unknown_is_noop(platform: APSchedulerPlatform) -> None:
    await platform.cancel("missing")


# -- Delivery ------------------------------------------------------------------


async def test_fire_delivers_payload(platform: APSchedulerPlatform, deliver: AsyncMock) -> None:
    payload = _payload()
    await platform._fire(payload)
    deliver.assert_awaited_once_with(payload)


async def test_fire_swallows_delivery_errors(
    platform: APSchedulerPlatform, deliver: AsyncMock
) -> None:
    deliver.side_effect = RuntimeError("channel down")
    await platform._fire(_payload())
    deliver.assert_awaited_once()


async def test_due_job_fires_after_start(deliver: AsyncMock) -> None:
    fired = asyncio.Event()
    deliver.side_effect = lambda payload: fired.set()
    p = APSchedulerPlatform(deliver=deliver, timezone="UTC", enabled=True)
    await p.request_authorization()
    await p.start()
    try:
        await p.schedule("t1", datetime.now(UTC) + timedelta(milliseconds=50), _payload())
        await asyncio.wait_for(fired.wait(), timeout=5)
    finally:
        await p.stop()

    assert await p.list_pending() == []
