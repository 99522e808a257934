"""Logging implementation of the NotificationChannel protocol."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from doneday.reminders.models import NotificationPayload

logger = logging.getLogger(__name__)


class LogChannel:
    """Delivers reminders as log records on the ``doneday.reminders`` logger."""

    def __init__(self, level: int = logging.WARNING) -> None:
        self._level = level
        self._out = logging.getLogger("doneday.reminders")

    @property
    def name(self) -> str:
        return "log"

    async def send(self, payload: NotificationPayload) -> bool:
        actions = ", ".join(action.value for action in payload.actions)
        self._out.log(
            self._level,
            "%s [task=%s due-reminder=%s actions=%s]",
            payload.render().replace("\n", " | "),
            payload.task_id,
            payload.fire_at.isoformat(),
            actions or "-",
        )
        return True
