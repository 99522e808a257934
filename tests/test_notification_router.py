"""Tests for NotificationRouter and the log channel."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import pytest

from doneday.notifications import LogChannel, NotificationChannel, NotificationRouter
from doneday.reminders.models import NotificationPayload

from .fakes import FakeChannel


def _payload(task_id: str = "t1") -> NotificationPayload:
    return NotificationPayload(
        task_id=task_id,
        fire_at=datetime(2025, 1, 10, 8, 30, tzinfo=UTC),
        title="Task reminder",
        body="Pay rent",
        subtitle="Project: Home",
    )


class BrokenChannel(FakeChannel):
    async def send(self, payload: NotificationPayload) -> bool:
        raise RuntimeError("boom")


# -- Registration ------------------------------------------------------------


def test_register_and_list() -> None:
    router = NotificationRouter.get()
    ch = FakeChannel("log")
    router.register_channel(ch)
    assert router.list_channels() == ["log"]
    assert router.get_channel("log") is ch


def test_register_duplicate_raises() -> None:
    router = NotificationRouter.get()
    router.register_channel(FakeChannel("log"))
    with pytest.raises(ValueError, match="already registered"):
        router.register_channel(FakeChannel("log"))


def test_set_default_unregistered_raises() -> None:
    router = NotificationRouter.get()
    with pytest.raises(KeyError, match="not registered"):
        router.set_default_channel("missing")


def test_singleton_reset() -> None:
    a = NotificationRouter.get()
    assert NotificationRouter.get() is a
    NotificationRouter._reset()
    assert NotificationRouter.get() is not a


def test_has_route() -> None:
    router = NotificationRouter.get()
    assert router.has_route() is False
    router.register_channel(FakeChannel("a"))
    assert router.has_route() is True
    assert router.has_route("b") is False


# -- Send dispatch -----------------------------------------------------------


async def test_send_via_default_channel() -> None:
    router = NotificationRouter.get()
    a, b = FakeChannel("a"), FakeChannel("b")
    router.register_channel(a)
    router.register_channel(b)
    router.set_default_channel("b")

    payload = _payload()
    assert await router.send(payload) is True
    assert b.sent == [payload]
    assert a.sent == []


async def test_send_via_named_channel() -> None:
    router = NotificationRouter.get()
    a, b = FakeChannel("a"), FakeChannel("b")
    router.register_channel(a)
    router.register_channel(b)
    router.set_default_channel("a")

    assert await router.send(_payload(), channel="b") is True
    assert len(b.sent) == 1


async def test_send_fallback_to_only_channel() -> None:
    router = NotificationRouter.get()
    ch = FakeChannel("a")
    router.register_channel(ch)

    assert await router.send(_payload()) is True
    assert len(ch.sent) == 1


async def test_send_ambiguous_no_default_returns_false() -> None:
    router = NotificationRouter.get()
    router.register_channel(FakeChannel("a"))
    router.register_channel(FakeChannel("b"))
    assert await router.send(_payload()) is False


async def test_send_channel_error_returns_false() -> None:
    router = NotificationRouter.get()
    router.register_channel(BrokenChannel("a"))
    assert await router.send(_payload()) is False


async def test_send_channel_refusal() -> None:
    router = NotificationRouter.get()
    router.register_channel(FakeChannel("a", ok=False))
    assert await router.send(_payload()) is False


# -- Log channel -------------------------------------------------------------


def test_channels_satisfy_protocol() -> None:
    assert isinstance(LogChannel(), NotificationChannel)
    assert isinstance(FakeChannel(), NotificationChannel)


async def test_log_channel_writes_reminder(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="doneday.reminders")

    assert await LogChannel().send(_payload()) is True

    record = caplog.records[-1]
    assert record.name == "doneday.reminders"
    assert "Task reminder: Pay rent | Project: Home" in record.getMessage()
    assert "COMPLETE_ACTION, SNOOZE_ACTION" in record.getMessage()


def test_payload_render() -> None:
    assert _payload().render() == "Task reminder: Pay rent\nProject: Home"
    plain = NotificationPayload(task_id="t", fire_at=datetime.now(UTC), title="T", body="B")
    assert plain.render() == "T: B"
