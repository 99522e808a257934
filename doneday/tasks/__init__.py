"""Task store — models, validation and persistence."""

from doneday.tasks.models import Area, ChangeKind, Priority, Project, Tag, Task, TaskChange
from doneday.tasks.store import TaskStore

__all__ = [
    "Area",
    "ChangeKind",
    "Priority",
    "Project",
    "Tag",
    "Task",
    "TaskChange",
    "TaskStore",
]
