"""Reminder delivery channels."""

from doneday.notifications.channels import NotificationChannel
from doneday.notifications.log_channel import LogChannel
from doneday.notifications.router import NotificationRouter

__all__ = [
    "LogChannel",
    "NotificationChannel",
    "NotificationRouter",
]
