"""Task models."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Optional
from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, StrictBool, TypeAdapter, field_validator

from remindersync.models.identity import RecordId, confirmed


OWNER_COLUMN = "telegram_user_id"
MAX_PRIORITY = 3


class TaskType(str, Enum):
    """Task types; each one offers a different external action."""
    REMINDER = "reminder"
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    WEB_SEARCH = "web_search"
    CALL = "call"
    COPY = "copy"


class Frequency(str, Enum):
    """Recurrence frequency."""
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TaskStatus(str, Enum):
    """Whether a task is running or put on hold by the user."""
    ACTIVE = "active"
    PAUSED = "paused"


def _strip_title(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError("title must not be empty")
    return value


def _naive_wall_clock(value: Optional[datetime]) -> Optional[datetime]:
    # Wall-clock value kept as entered; tzinfo is dropped, never converted
    if value is not None and value.tzinfo is not None:
        return value.replace(tzinfo=None)
    return value


def _clamp_priority(value: int) -> int:
    # Legacy rows use a 1/3/5 scale
    return min(value, MAX_PRIORITY)


def _known_type(value: Any) -> Any:
    if value is None:
        return TaskType.REMINDER
    if isinstance(value, str) and value not in {t.value for t in TaskType}:
        return TaskType.REMINDER
    return value


def _known_status(value: Any) -> Any:
    # Legacy rows also carry "completed" here; the completed flag covers that
    if value is None or (isinstance(value, str) and value not in {s.value for s in TaskStatus}):
        return TaskStatus.ACTIVE
    return value


Title = Annotated[str, BeforeValidator(_strip_title)]
WallClock = Annotated[datetime, AfterValidator(_naive_wall_clock)]
Priority = Annotated[int, Field(ge=0, le=5), AfterValidator(_clamp_priority)]
UserPriority = Annotated[int, Field(ge=0, le=MAX_PRIORITY)]


class TaskDraft(BaseModel):
    """User-entered content for a new task."""
    title: Title = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Free text")
    type: TaskType = Field(default=TaskType.REMINDER, description="External action type")
    frequency: Frequency = Field(default=Frequency.ONCE, description="Recurrence")
    next_run: Optional[WallClock] = Field(None, description="Local wall-clock time, null if unscheduled")
    priority: UserPriority = Field(default=0, description="Priority (0-3)")
    is_flagged: bool = False
    list_id: Optional[str] = Field(None, description="TaskList ID, null for unfiled")


class Task(BaseModel):
    """A reminder task as held by the local cache."""
    model_config = ConfigDict(frozen=True)

    id: RecordId
    owner: str = Field(..., min_length=1, description="Opaque owner identifier")
    title: Title = Field(..., description="Task title")
    description: Optional[str] = None
    type: Annotated[TaskType, BeforeValidator(_known_type)] = TaskType.REMINDER
    status: Annotated[TaskStatus, BeforeValidator(_known_status)] = TaskStatus.ACTIVE
    frequency: Frequency = Frequency.ONCE
    next_run: Optional[WallClock] = None
    last_run: Optional[WallClock] = None
    priority: Priority = 0
    is_flagged: bool = False
    completed: bool = False
    is_deleted: bool = False
    list_id: Optional[str] = None
    position: int = 0

    @field_validator("is_flagged", "completed", "is_deleted", mode="before")
    @classmethod
    def _null_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("priority", "position", mode="before")
    @classmethod
    def _null_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("next_run", "last_run", mode="before")
    @classmethod
    def _blank_is_unscheduled(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator("frequency", mode="before")
    @classmethod
    def _null_is_once(cls, value: Any) -> Any:
        return Frequency.ONCE if value is None else value

    @property
    def is_pending(self) -> bool:
        return self.id.is_pending

    @property
    def repeats(self) -> bool:
        return self.frequency != Frequency.ONCE and self.next_run is not None

    @property
    def is_paused(self) -> bool:
        return self.status == TaskStatus.PAUSED

    def remote_fields(self) -> dict:
        """Fields persisted in the remote row, JSON-ready, without id or owner."""
        return self.model_dump(mode="json", include=REMOTE_FIELDS)

    def to_remote_row(self) -> dict:
        """Row for inserting into the remote ``tasks`` table (never carries the id)."""
        row = self.remote_fields()
        row[OWNER_COLUMN] = self.owner
        return row

    @classmethod
    def from_remote(cls, row: dict) -> "Task":
        """Build a confirmed task from a remote row."""
        data = dict(row)
        data["id"] = confirmed(data["id"])
        data["owner"] = str(data.pop(OWNER_COLUMN, None) or data.get("owner") or "")
        return cls.model_validate(data)

    @classmethod
    def from_draft(cls, draft: TaskDraft, record_id, owner: str, position: int) -> "Task":
        return cls(id=record_id, owner=owner, position=position, **draft.model_dump())


REMOTE_FIELDS = {
    "title",
    "description",
    "type",
    "status",
    "frequency",
    "next_run",
    "last_run",
    "priority",
    "is_flagged",
    "completed",
    "is_deleted",
    "list_id",
    "position",
}

EDITABLE_FIELDS = REMOTE_FIELDS - {"position", "last_run", "status"}


def serialize_fields(fields: dict) -> dict:
    """JSON-ready copy of a partial task update."""
    serialized = {}
    for key, value in fields.items():
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        serialized[key] = value
    return serialized


_STRICT_FLAG = TypeAdapter(StrictBool)


def validate_edit(task: Task, fields: dict) -> dict:
    """
    Check a user edit against the rules for new tasks and return normalized values.

    Unlike rows read from the store, edits get no leniency: unknown types,
    priorities outside 0-3 and non-boolean flags raise ValidationError.
    """
    draft_keys = set(fields) & set(TaskDraft.model_fields)
    current = task.model_dump(include=set(TaskDraft.model_fields))
    draft = TaskDraft.model_validate({**current, **{key: fields[key] for key in draft_keys}})

    edit = draft.model_dump(include=draft_keys)
    for key in set(fields) - draft_keys:
        edit[key] = _STRICT_FLAG.validate_python(fields[key])
    return edit
