"""TaskList model - a named, flat grouping of tasks."""

from pydantic import BaseModel, Field

from remindersync.models.task import OWNER_COLUMN, Title


class TaskList(BaseModel):
    """User-defined list; no ordering or nesting."""
    id: str = Field(..., description="List ID (remote primary key)")
    title: Title = Field(..., description="List title")
    owner: str = Field(..., min_length=1, description="Opaque owner identifier")

    @classmethod
    def from_remote(cls, row: dict) -> "TaskList":
        return cls(id=str(row["id"]), title=row.get("title"), owner=str(row.get(OWNER_COLUMN) or ""))
