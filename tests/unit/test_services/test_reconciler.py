"""Tests for the reconciliation engine."""

import asyncio
import pytest

from remindersync.models.identity import confirmed
from remindersync.models.task_list import TaskList
from remindersync.services.local_cache import UpsertTask
from remindersync.services.reconciler import Reconciler, merge_remote_tasks
from tests.utils.factories import create_task


@pytest.mark.unit
def test_merge_keeps_pending_and_takes_remote_for_confirmed():
    local_synced = create_task(id=confirmed(1), title="Old title", position=0)
    local_pending = create_task(pending=True, title="Offline", position=2)
    remote_synced = create_task(id=confirmed(1), title="New title", position=0)
    remote_new = create_task(id=confirmed(2), title="From another device", position=1)

    merged = merge_remote_tasks([local_synced, local_pending], [remote_synced, remote_new])

    assert [task.title for task in merged] == ["New title", "From another device", "Offline"]


@pytest.mark.unit
def test_merge_drops_confirmed_tasks_missing_remotely():
    gone = create_task(id=confirmed(1), title="Deleted elsewhere")

    assert merge_remote_tasks([gone], []) == []


@pytest.mark.unit
def test_merge_ties_keep_cache_order():
    """Test that equal positions keep the current cache order."""
    a = create_task(id=confirmed(1), title="a", position=0)
    pending = create_task(pending=True, title="pending", position=0)
    b = create_task(id=confirmed(2), title="b", position=0)

    merged = merge_remote_tasks([a, pending, b], [b, a])

    assert [task.title for task in merged] == ["a", "pending", "b"]


@pytest.mark.unit
def test_merge_keeps_unsent_local_writes():
    """Test that dirty fields and queued deletes win over the remote copy."""
    local_edited = create_task(id=confirmed(1), title="Edited here", is_flagged=True, position=0)
    remote_edited = create_task(id=confirmed(1), title="Old title", is_flagged=False, position=3)
    remote_purged = create_task(id=confirmed(2), title="Purged here", position=1)

    merged = merge_remote_tasks(
        [local_edited],
        [remote_edited, remote_purged],
        dirty={confirmed(1): {"title"}},
        deleted={confirmed(2)},
    )

    [task] = merged
    assert task.title == "Edited here"
    assert task.is_flagged is False
    assert task.position == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_reconcile_applies_remote_state(cache, gateway, reconciler, owner):
    cache.apply(UpsertTask(owner=owner, task=create_task(owner, id=confirmed(1), title="Stale")))
    gateway.seed_task(create_task(owner, id=confirmed(1), title="Fresh"))
    gateway.lists["home"] = TaskList(id="home", title="Home", owner=owner)

    result = await reconciler.reconcile_once(owner)

    assert result.applied is True
    assert result.remote_count == 1
    assert cache.get_task(owner, confirmed(1)).title == "Fresh"
    assert [task_list.id for task_list in cache.lists(owner)] == ["home"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_reconcile_never_drops_pending_tasks(cache, gateway, reconciler, owner):
    """Test that pending tasks survive while their creates keep failing."""
    pending = create_task(owner, pending=True, title="Offline")
    cache.apply(UpsertTask(owner=owner, task=pending))
    gateway.failing.add("create_task")

    for _ in range(3):
        result = await reconciler.reconcile_once(owner)
        assert result.applied is True
        assert result.pending_count == 1

    assert cache.pending(owner) == [pending]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_reconcile_pushes_pending_before_fetch(cache, gateway, reconciler, owner):
    cache.apply(UpsertTask(owner=owner, task=create_task(owner, pending=True, title="Offline")))

    result = await reconciler.reconcile_once(owner)

    assert result.confirmed_count == 1
    assert result.pending_count == 0
    tasks = cache.all(owner)
    assert len(tasks) == 1
    assert tasks[0].id == confirmed(1)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_fetch_leaves_cache_untouched(cache, gateway, reconciler, owner):
    task = create_task(owner, id=confirmed(1), title="Cached")
    cache.apply(UpsertTask(owner=owner, task=task))
    gateway.failing.add("list_tasks")

    result = await reconciler.reconcile_once(owner)

    assert result.applied is False
    assert cache.all(owner) == [task]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_stale_result_is_discarded(cache, gateway, reconciler, owner):
    """Test that a fetch finishing after a newer applied one changes nothing."""
    release = asyncio.Event()
    calls = []

    async def hold_first_fetch():
        calls.append(len(calls) + 1)
        if len(calls) == 1:
            await release.wait()

    gateway.list_tasks_hook = hold_first_fetch
    first = asyncio.create_task(reconciler.reconcile_once(owner))
    while not calls:
        await asyncio.sleep(0)

    gateway.seed_task(create_task(owner, id=confirmed(5), title="Newer"))
    second = await reconciler.reconcile_once(owner)
    release.set()
    first_result = await first

    assert second.applied is True
    assert first_result.applied is False
    assert [task.id for task in cache.all(owner)] == [confirmed(5)]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_reconcile_delivering_confirmed_copy_mid_create_leaves_one_record(cache, gateway, reconciler, owner):
    """Test that a fetch racing a create does not leave a duplicate after promotion."""
    pending = create_task(owner, pending=True, title="Racing")
    cache.apply(UpsertTask(owner=owner, task=pending))

    async def reconcile_meanwhile(task):
        await reconciler.reconcile_once(owner)

    gateway.create_hook = reconcile_meanwhile
    await reconciler.pending_queue.push(owner, pending.id)

    tasks = cache.all(owner)
    assert len(tasks) == 1
    assert tasks[0].id == confirmed(1)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_loop_runs_until_stopped(cache, gateway, pending_queue, owner):
    reconciler = Reconciler(cache, gateway, pending_queue, interval_seconds=0.01)

    reconciler.start(owner)
    assert reconciler.running is True
    await asyncio.sleep(0.05)
    await reconciler.stop()

    assert reconciler.running is False
    assert len(gateway.calls_to("list_tasks")) >= 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_loop_skips_passes_while_offline(cache, gateway, pending_queue, owner):
    reconciler = Reconciler(cache, gateway, pending_queue, interval_seconds=0.01, is_online=lambda: False)

    reconciler.start(owner)
    await asyncio.sleep(0.03)
    await reconciler.stop()

    assert gateway.calls_to("list_tasks") == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_loop_survives_failing_passes(cache, gateway, pending_queue, owner):
    gateway.failing.add("*")
    reconciler = Reconciler(cache, gateway, pending_queue, interval_seconds=0.01)

    reconciler.start(owner)
    await asyncio.sleep(0.05)
    assert reconciler.running is True
    await reconciler.stop()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_reconcile_keeps_edits_the_server_has_not_seen(cache, gateway, reconciler, pending_queue, owner):
    remote = gateway.seed_task(create_task(owner, id=confirmed(1), title="Old title"))
    cache.apply(UpsertTask(owner=owner, task=remote.model_copy(update={"title": "Edited offline"})))
    pending_queue.mark_dirty(owner, remote.id, {"title"})
    gateway.failing.add("update_task")

    result = await reconciler.reconcile_once(owner)

    assert result.applied is True
    assert cache.get_task(owner, remote.id).title == "Edited offline"

    gateway.failing.clear()
    await reconciler.reconcile_once(owner)

    assert gateway.tasks[remote.id].title == "Edited offline"
    assert pending_queue.dirty_fields(owner) == {}
