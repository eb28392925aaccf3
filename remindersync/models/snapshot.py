"""On-device snapshot of one owner's collections."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from remindersync.models.task import Task
from remindersync.models.task_list import TaskList
from remindersync.models.template import Template


SNAPSHOT_VERSION = 1


class CacheSnapshot(BaseModel):
    """Serialized form of the local cache, overwritten after every mutation."""
    version: int = SNAPSHOT_VERSION
    owner: str
    tasks: list[Task] = Field(default_factory=list)
    lists: list[TaskList] = Field(default_factory=list)
    templates: list[Template] = Field(default_factory=list)
    saved_at: Optional[datetime] = None
