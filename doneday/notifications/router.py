"""NotificationRouter — singleton that dispatches reminders to registered channels."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from doneday.notifications.channels import NotificationChannel
    from doneday.reminders.models import NotificationPayload

logger = logging.getLogger(__name__)


class NotificationRouter:
    """Routes delivered reminders to the appropriate channel.

    Singleton accessed via ``NotificationRouter.get()``.
    """

    _instance: NotificationRouter | None = None

    def __init__(self) -> None:
        self._channels: dict[str, NotificationChannel] = {}
        self._default: str = ""

    @classmethod
    def get(cls) -> NotificationRouter:
        """Return the singleton instance, creating it if needed."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset singleton — for tests only."""
        cls._instance = None

    def register_channel(self, channel: NotificationChannel) -> None:
        """Register a notification channel. Raises ValueError on duplicate name."""
        if channel.name in self._channels:
            msg = f"Channel '{channel.name}' is already registered"
            raise ValueError(msg)
        self._channels[channel.name] = channel

    def set_default_channel(self, name: str) -> None:
        """Set the default channel by name. Raises KeyError if not registered."""
        if name not in self._channels:
            msg = f"Channel '{name}' is not registered"
            raise KeyError(msg)
        self._default = name

    def get_channel(self, name: str) -> NotificationChannel | None:
        """Look up a channel by name."""
        return self._channels.get(name)

    def list_channels(self) -> list[str]:
        """Return names of all registered channels."""
        return list(self._channels.keys())

    @property
    def default_channel_name(self) -> str:
        """The name of the current default channel."""
        return self._default

    def has_route(self, name: str | None = None) -> bool:
        """Whether a send with *name* would find a channel."""
        return self._resolve_channel(name) is not None

    def _resolve_channel(self, name: str | None) -> NotificationChannel | None:
        """Resolve a channel: explicit name → default → only registered channel."""
        if name:
            return self._channels.get(name)
        if self._default:
            return self._channels.get(self._default)
        if len(self._channels) == 1:
            return next(iter(self._channels.values()))
        return None

    async def send(
        self,
        payload: NotificationPayload,
        *,
        channel: str | None = None,
    ) -> bool:
        """Deliver a reminder via the resolved channel."""
        ch = self._resolve_channel(channel)
        if ch is None:
            logger.warning(
                "No channel resolved for reminder %s (requested=%s)", payload.task_id, channel
            )
            return False
        try:
            return await ch.send(payload)
        except Exception:
            logger.exception("Channel %s failed for reminder %s", ch.name, payload.task_id)
            return False
