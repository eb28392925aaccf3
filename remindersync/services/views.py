"""Task views - visibility buckets and filters rendered by the UI."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from remindersync.models.task import Task


class TaskView(str, Enum):
    """Named filters offered by the list screen."""
    ALL = "all"
    TODAY = "today"
    UPCOMING = "upcoming"
    OVERDUE = "overdue"
    UNSCHEDULED = "unscheduled"
    FLAGGED = "flagged"
    COMPLETED = "completed"
    DELETED = "deleted"


class Bucket(str, Enum):
    """Exactly one applies to each non-deleted task."""
    SCHEDULED = "scheduled"
    UNSCHEDULED = "unscheduled"
    COMPLETED = "completed"


def bucket_of(task: Task) -> Optional[Bucket]:
    """Visibility bucket of a task; None for soft-deleted tasks."""
    if task.is_deleted:
        return None
    if task.completed:
        return Bucket.COMPLETED
    if task.next_run is None:
        return Bucket.UNSCHEDULED
    return Bucket.SCHEDULED


def _day_bounds(now: datetime) -> tuple[datetime, datetime]:
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return today_start, today_start + timedelta(days=1)


def matches_view(task: Task, view: TaskView, now: datetime) -> bool:
    """Whether a task belongs to a view at wall-clock time ``now``."""
    view = TaskView(view)
    if view == TaskView.DELETED:
        return task.is_deleted

    bucket = bucket_of(task)
    if bucket is None:
        return False
    if view == TaskView.COMPLETED:
        return bucket == Bucket.COMPLETED
    if bucket == Bucket.COMPLETED:
        return False

    today_start, tomorrow_start = _day_bounds(now)
    if view == TaskView.ALL:
        return True
    if view == TaskView.FLAGGED:
        return task.is_flagged
    if view == TaskView.UNSCHEDULED:
        return bucket == Bucket.UNSCHEDULED
    if bucket != Bucket.SCHEDULED:
        return False
    if view == TaskView.TODAY:
        return today_start <= task.next_run < tomorrow_start
    if view == TaskView.UPCOMING:
        return task.next_run >= tomorrow_start
    if view == TaskView.OVERDUE:
        return task.next_run < now and not task.is_paused
    return False


def filter_tasks(
    tasks: list[Task],
    view: TaskView = TaskView.ALL,
    now: Optional[datetime] = None,
    list_id: Optional[str] = None,
    search: Optional[str] = None,
) -> list[Task]:
    """
    Tasks visible in a view, optionally scoped to one list and a title search.

    Sorted by position; equal positions keep the order they have in ``tasks``.
    """
    now = now or datetime.now()
    needle = search.strip().lower() if search else ""

    visible = [
        task for task in tasks
        if matches_view(task, view, now)
        and (list_id is None or task.list_id == list_id)
        and (not needle or needle in task.title.lower())
    ]
    return sorted(visible, key=lambda task: task.position)
