"""Test data factories using Faker."""

from faker import Faker
from typing import Optional
from datetime import datetime, timedelta

from remindersync.models.identity import confirmed, new_pending_id
from remindersync.models.task import Task

fake = Faker()


def create_task_row(owner: str = "424242", task_id: Optional[int] = None, **overrides) -> dict:
    """Create a remote ``tasks`` row as Supabase returns it."""
    row = {
        "id": task_id if task_id is not None else fake.random_int(min=1, max=999999),
        "telegram_user_id": owner,
        "title": fake.sentence(nb_words=4),
        "description": fake.text(max_nb_chars=80),
        "type": "reminder",
        "frequency": "once",
        "next_run": (datetime.now() + timedelta(days=fake.random_int(min=1, max=30))).replace(microsecond=0).isoformat(),
        "last_run": None,
        "priority": fake.random_int(min=0, max=3),
        "is_flagged": False,
        "completed": False,
        "is_deleted": False,
        "list_id": None,
        "position": 0,
    }
    row.update(overrides)
    return row


def create_task(owner: str = "424242", pending: bool = False, **overrides) -> Task:
    """Create a cached task, confirmed unless ``pending`` is set."""
    data = {
        "id": new_pending_id() if pending else confirmed(fake.unique.random_int(min=1, max=999999)),
        "owner": owner,
        "title": fake.sentence(nb_words=4),
        "description": None,
        "position": 0,
    }
    data.update(overrides)
    return Task(**data)


def create_list_row(owner: str = "424242", **overrides) -> dict:
    row = {
        "id": fake.uuid4(),
        "telegram_user_id": owner,
        "title": fake.word().title(),
    }
    row.update(overrides)
    return row


def create_template_row(owner: str = "424242", **overrides) -> dict:
    row = {
        "id": fake.uuid4(),
        "telegram_user_id": owner,
        "title": fake.sentence(nb_words=3),
        "description": fake.text(max_nb_chars=60),
        "type": "email",
    }
    row.update(overrides)
    return row
