"""Template model - reusable content for new tasks."""

from typing import Optional
from pydantic import BaseModel, Field

from remindersync.models.task import OWNER_COLUMN, TaskType, Title


class TemplateDraft(BaseModel):
    """User-entered content for a new template."""
    title: Title = Field(..., description="Template title")
    description: Optional[str] = Field(None, description="Template description")
    type: TaskType = Field(default=TaskType.REMINDER, description="Task type to create")


class Template(TemplateDraft):
    """Named prototype for a task's content fields; never scheduled or completed."""
    id: str = Field(..., description="Template ID (remote primary key)")
    owner: str = Field(..., min_length=1, description="Opaque owner identifier")

    @classmethod
    def from_remote(cls, row: dict) -> "Template":
        return cls(
            id=str(row["id"]),
            title=row.get("title"),
            description=row.get("description"),
            type=row.get("type") or TaskType.REMINDER,
            owner=str(row.get(OWNER_COLUMN) or ""),
        )
