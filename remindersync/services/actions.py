"""External action dispatch - build the URI or clipboard text a task type offers."""

import re
from enum import Enum
from typing import Optional
from urllib.parse import quote
from pydantic import BaseModel, Field

from remindersync.models.task import Task, TaskType


PHONE_PATTERN = re.compile(r'\+?\d[\d\s().-]{5,}\d')


class ActionKind(str, Enum):
    OPEN_URI = "open_uri"
    COPY_TO_CLIPBOARD = "copy_to_clipboard"


class ActionTarget(BaseModel):
    """What the UI should do when the user taps a task's action button."""
    kind: ActionKind = Field(..., description="Open a URI or write to the clipboard")
    value: str = Field(..., description="URI or clipboard text")


def task_text(task: Task) -> str:
    """Title, plus the description on its own line when present."""
    if task.description:
        return f"{task.title}\n{task.description}"
    return task.title


def extract_phone(text: Optional[str]) -> Optional[str]:
    """First phone-number-looking run in the text, reduced to digits and a leading +."""
    if not text:
        return None
    match = PHONE_PATTERN.search(text)
    if not match:
        return None
    raw = match.group(0)
    digits = re.sub(r'\D', '', raw)
    return f"+{digits}" if raw.startswith("+") else digits


def build_action_target(task: Task) -> Optional[ActionTarget]:
    """Action for a task, or None when its type offers none (plain reminders)."""
    task_type = TaskType(task.type)

    if task_type == TaskType.EMAIL:
        uri = f"mailto:?subject={quote(task.title, safe='')}&body={quote(task_text(task), safe='')}"
        return ActionTarget(kind=ActionKind.OPEN_URI, value=uri)
    if task_type == TaskType.WHATSAPP:
        return ActionTarget(kind=ActionKind.OPEN_URI, value=f"https://wa.me/?text={quote(task_text(task), safe='')}")
    if task_type == TaskType.WEB_SEARCH:
        return ActionTarget(
            kind=ActionKind.OPEN_URI,
            value=f"https://www.google.com/search?q={quote(task.title, safe='')}"
        )
    if task_type == TaskType.CALL:
        phone = extract_phone(task.description) or extract_phone(task.title)
        if phone is None:
            return None
        return ActionTarget(kind=ActionKind.OPEN_URI, value=f"tel:{phone}")
    if task_type == TaskType.COPY:
        return ActionTarget(kind=ActionKind.COPY_TO_CLIPBOARD, value=task_text(task))
    return None
