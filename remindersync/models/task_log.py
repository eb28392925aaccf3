"""Completion log entry model."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class TaskLogEntry(BaseModel):
    """One completion of a confirmed task, stored in the remote ``task_log`` table."""
    task_id: str = Field(..., description="Confirmed task ID")
    status: str = Field(default="completed", description="Logged transition")
    created_at: Optional[datetime] = None
