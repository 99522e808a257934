"""DoneDay — tasks, projects and local reminders."""

__version__ = "0.1.0"
