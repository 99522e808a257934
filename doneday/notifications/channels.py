"""NotificationChannel protocol — interface for all reminder delivery channels."""

from typing import Protocol, runtime_checkable

from doneday.reminders.models import NotificationPayload


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol that all notification channels must satisfy."""

    @property
    def name(self) -> str:
        """Unique channel identifier (e.g. 'log')."""
        ...

    async def send(self, payload: NotificationPayload) -> bool:
        """Deliver a reminder. Returns True on success."""
        ...
