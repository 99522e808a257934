"""NotificationPlatform protocol — interface to the local delivery service."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from doneday.reminders.models import AuthorizationStatus, NotificationPayload


@runtime_checkable
class NotificationPlatform(Protocol):
    """Protocol that notification platforms must satisfy.

    Handles are keyed by the task id. ``schedule`` with an id that is already
    pending must replace the old handle in one step.
    """

    async def authorization_status(self) -> AuthorizationStatus:
        """Current permission without prompting."""
        ...

    async def request_authorization(self) -> AuthorizationStatus:
        """Ask for permission. Returns GRANTED or DENIED."""
        ...

    async def schedule(
        self, handle_id: str, fire_at: datetime, payload: NotificationPayload
    ) -> bool:
        """Create or replace a pending notification. Returns True on success."""
        ...

    async def cancel(self, handle_id: str) -> None:
        """Remove a pending notification. Unknown ids are ignored."""
        ...

    async def list_pending(self) -> list[str]:
        """IDs of all pending notifications."""
        ...
