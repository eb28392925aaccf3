"""Shared pytest fixtures and configuration."""

import os
import pytest
from unittest.mock import AsyncMock, MagicMock, Mock

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("LLM_PROVIDER", "anthropic")
os.environ.setdefault("LLM_MODEL", "claude-sonnet-4-20250514")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from remindersync.services.assistant import AssistantResponse
from remindersync.services.local_cache import LocalCache
from remindersync.services.promotion import PendingCreateQueue
from remindersync.services.reconciler import Reconciler
from remindersync.services.snapshot_storage import SnapshotStorage
from remindersync.services.task_service import TaskService
from tests.fakes import FakeGateway


@pytest.fixture
def owner():
    """Opaque owner identifier (a Telegram user id in production)."""
    return "424242"


@pytest.fixture
def storage(tmp_path):
    """Snapshot storage in a per-test directory."""
    return SnapshotStorage(str(tmp_path / "cache"))


@pytest.fixture
def cache(storage):
    return LocalCache(storage)


@pytest.fixture
def gateway():
    """In-memory remote store."""
    return FakeGateway()


@pytest.fixture
def pending_queue(cache, gateway):
    return PendingCreateQueue(cache, gateway)


@pytest.fixture
def reconciler(cache, gateway, pending_queue):
    return Reconciler(cache, gateway, pending_queue, interval_seconds=0.01)


@pytest.fixture
def confirm():
    """Confirmation prompt that accepts by default; set return_value=False to decline."""
    return Mock(return_value=True)


@pytest.fixture
def mock_assistant():
    return AsyncMock(return_value=AssistantResponse(result="Suggested text"))


@pytest.fixture
def service(owner, cache, gateway, confirm, mock_assistant):
    return TaskService(
        owner,
        cache,
        gateway,
        confirm=confirm,
        assistant=mock_assistant,
        interval_seconds=0.01,
    )


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client whose query builder chains back to itself."""
    client = MagicMock()
    query = MagicMock()
    for method in ("select", "insert", "update", "upsert", "delete", "eq", "order"):
        getattr(query, method).return_value = query
    query.execute = AsyncMock(return_value=MagicMock(data=[]))
    client.table.return_value = query
    client.query = query
    return client
