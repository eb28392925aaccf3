"""Reconciliation engine - periodically merge remote state into the local cache."""

import asyncio
import itertools
from dataclasses import dataclass
from typing import Callable, Optional

from remindersync.models.identity import ConfirmedId
from remindersync.models.task import Task
from remindersync.services.local_cache import LocalCache, ReplaceLists, ReplaceTasks, ReplaceTemplates
from remindersync.services.promotion import PendingCreateQueue
from remindersync.services.remote_gateway import RemoteGateway
from remindersync.utils.errors import SupabaseError
from remindersync.utils.logging import (
    correlation_context,
    get_structured_logger,
    log_timing,
    mask_user_id,
)

logger = get_structured_logger(__name__)

DEFAULT_RECONCILE_INTERVAL = 30.0


def merge_remote_tasks(
    local: list[Task],
    remote: list[Task],
    dirty: Optional[dict[ConfirmedId, set[str]]] = None,
    deleted: Optional[set[ConfirmedId]] = None,
) -> list[Task]:
    """
    Build the reconciled collection: every remote task plus every pending local task.

    Remote is authoritative for confirmed ids, except for ``dirty`` fields whose
    local value has not been sent yet and for ``deleted`` ids whose remote
    delete is still queued. Pending tasks are never dropped because the store
    does not know them yet. The result is stably sorted by position, with
    equal positions kept in current cache order (tasks new to the cache
    follow in fetch order).
    """
    dirty = dirty or {}
    deleted = deleted or set()
    local_by_id = {task.id: task for task in local}
    local_order = {task.id: idx for idx, task in enumerate(local)}
    seen = set()
    merged = []
    for task in remote:
        if task.id in seen or task.id in deleted:
            continue
        seen.add(task.id)
        mine = local_by_id.get(task.id)
        if mine is not None and dirty.get(task.id):
            task = task.model_copy(update={key: getattr(mine, key) for key in dirty[task.id]})
        merged.append(task)
    merged.extend(task for task in local if task.is_pending)

    fallback = itertools.count(len(local))
    tie_break = {task.id: local_order[task.id] if task.id in local_order else next(fallback) for task in merged}
    return sorted(merged, key=lambda task: (task.position, tie_break[task.id]))


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass."""
    applied: bool
    remote_count: int = 0
    pending_count: int = 0
    confirmed_count: int = 0


class Reconciler:
    """
    Pulls the remote collection on a fixed interval and merges it into the cache.

    A failed fetch leaves the cache untouched and is retried on the next tick.
    Each fetch is numbered; a result that completes after a newer one was
    applied is discarded.
    """

    def __init__(
        self,
        cache: LocalCache,
        gateway: RemoteGateway,
        pending_queue: PendingCreateQueue,
        interval_seconds: float = DEFAULT_RECONCILE_INTERVAL,
        is_online: Optional[Callable[[], bool]] = None,
    ):
        self.cache = cache
        self.gateway = gateway
        self.pending_queue = pending_queue
        self.interval_seconds = interval_seconds
        self.is_online = is_online or (lambda: True)
        self._sequence = 0
        self._applied_sequence = 0
        self._loop_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def reconcile_once(self, owner: str) -> ReconcileResult:
        """Run one pass: push outstanding writes, fetch, merge. Never raises SupabaseError."""
        self._sequence += 1
        sequence = self._sequence

        with correlation_context():
            confirmed_count = await self.pending_queue.push_all(owner)

            try:
                with log_timing("reconcile_fetch", logger=logger, owner=mask_user_id(owner)):
                    lists = await self.gateway.list_lists(owner)
                    templates = await self.gateway.list_templates(owner)
                    remote = await self.gateway.list_tasks(owner)
            except SupabaseError as e:
                logger.warning(
                    "Reconciliation fetch failed, cache left untouched",
                    owner=mask_user_id(owner),
                    sequence=sequence,
                    error=str(e)
                )
                return ReconcileResult(applied=False, confirmed_count=confirmed_count)

            if sequence < self._applied_sequence:
                logger.info(
                    "Discarding stale reconciliation result",
                    owner=mask_user_id(owner),
                    sequence=sequence,
                    applied_sequence=self._applied_sequence
                )
                return ReconcileResult(applied=False, confirmed_count=confirmed_count)

            # No await from here on: the merge sees the cache as it is now
            merged = merge_remote_tasks(
                self.cache.all(owner),
                remote,
                dirty=self.pending_queue.dirty_fields(owner),
                deleted=self.pending_queue.pending_deletes(owner),
            )
            self.cache.apply(ReplaceLists(owner=owner, lists=lists))
            self.cache.apply(ReplaceTemplates(owner=owner, templates=templates))
            self.cache.apply(ReplaceTasks(owner=owner, tasks=merged))
            self._applied_sequence = sequence

            pending_count = sum(1 for task in merged if task.is_pending)
            logger.info(
                "Reconciliation applied",
                owner=mask_user_id(owner),
                sequence=sequence,
                remote_count=len(remote),
                pending_count=pending_count,
                confirmed_count=confirmed_count
            )
            return ReconcileResult(
                applied=True,
                remote_count=len(remote),
                pending_count=pending_count,
                confirmed_count=confirmed_count,
            )

    def start(self, owner: str) -> None:
        """Start polling: one pass now, then one every ``interval_seconds``."""
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._run(owner))
        logger.info(
            "Reconciler started",
            owner=mask_user_id(owner),
            interval_seconds=self.interval_seconds
        )

    async def stop(self) -> None:
        """Cancel the polling loop (app backgrounded or closed)."""
        if self._loop_task is None:
            return
        self._loop_task.cancel()
        try:
            await self._loop_task
        except asyncio.CancelledError:
            pass
        self._loop_task = None
        logger.info("Reconciler stopped")

    async def _run(self, owner: str) -> None:
        while True:
            if self.is_online():
                try:
                    await self.reconcile_once(owner)
                except Exception as e:
                    # Keep polling; one bad pass must not end the loop
                    logger.error("Reconciliation pass crashed", owner=mask_user_id(owner), error=str(e), exc_info=True)
            else:
                logger.debug("Offline, skipping reconciliation", owner=mask_user_id(owner))
            await asyncio.sleep(self.interval_seconds)
