"""Pending write queue - send pending tasks to the remote store and promote their ids."""

from typing import Optional

from remindersync.models.identity import ConfirmedId, PendingId
from remindersync.services.local_cache import LocalCache, PromoteTask
from remindersync.services.remote_gateway import RemoteGateway
from remindersync.utils.errors import SupabaseError
from remindersync.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


class PendingCreateQueue:
    """
    Creates pending tasks remotely, at most one request per pending id.

    Edits made to a pending task are only local; whatever changed between the
    create request and its response is sent as an update right after the
    promotion. A task purged while its create was in flight is deleted again
    remotely.

    Writes that fail after a task is confirmed are not lost. Unsent fields
    stay dirty and unsent deletes stay queued; both are retried on the next
    ``push_all`` and win over the remote copy when merging.
    """

    def __init__(self, cache: LocalCache, gateway: RemoteGateway):
        self.cache = cache
        self.gateway = gateway
        self._in_flight: set[PendingId] = set()
        self._dirty: dict[tuple[str, ConfirmedId], set[str]] = {}
        self._deletes: dict[str, set[ConfirmedId]] = {}

    def is_in_flight(self, pending_id: PendingId) -> bool:
        return pending_id in self._in_flight

    def mark_dirty(self, owner: str, task_id: ConfirmedId, fields) -> None:
        self._dirty.setdefault((owner, task_id), set()).update(fields)

    def clear_dirty(self, owner: str, task_id: ConfirmedId, fields) -> None:
        remaining = self._dirty.get((owner, task_id), set()) - set(fields)
        if remaining:
            self._dirty[(owner, task_id)] = remaining
        else:
            self._dirty.pop((owner, task_id), None)

    def dirty_fields(self, owner: str) -> dict[ConfirmedId, set[str]]:
        """Fields per confirmed task whose local value has not reached the server."""
        return {task_id: set(fields) for (key, task_id), fields in self._dirty.items() if key == owner}

    def queue_delete(self, owner: str, task_id: ConfirmedId) -> None:
        self._dirty.pop((owner, task_id), None)
        self._deletes.setdefault(owner, set()).add(task_id)

    def pending_deletes(self, owner: str) -> set[ConfirmedId]:
        return set(self._deletes.get(owner, set()))

    async def push(self, owner: str, pending_id: PendingId) -> Optional[ConfirmedId]:
        """
        Create one pending task remotely and promote it in the cache.

        Returns the confirmed id, or None when there was nothing to send (already
        in flight, no longer cached, or purged meanwhile). Raises SupabaseError
        when the create fails; the task then stays pending.
        """
        if pending_id in self._in_flight:
            return None
        sent = self.cache.get_task(owner, pending_id)
        if sent is None:
            return None

        self._in_flight.add(pending_id)
        try:
            confirmed_id = await self.gateway.create_task(sent)
        finally:
            self._in_flight.discard(pending_id)

        current = self.cache.get_task(owner, pending_id)
        if current is None:
            logger.info(
                "Pending task purged during create, deleting remote copy",
                owner=mask_user_id(owner),
                task_id=confirmed_id.value
            )
            await self._delete_remote(owner, confirmed_id)
            return None

        self.cache.apply(PromoteTask(owner=owner, pending_id=pending_id, confirmed_id=confirmed_id))
        logger.info(
            "Pending task confirmed",
            owner=mask_user_id(owner),
            pending_id=str(pending_id),
            task_id=confirmed_id.value
        )

        sent_fields = sent.remote_fields()
        changed = {
            key: value for key, value in current.remote_fields().items()
            if sent_fields.get(key) != value
        }
        if changed:
            try:
                await self.gateway.update_task(confirmed_id, changed)
            except SupabaseError as e:
                self.mark_dirty(owner, confirmed_id, changed)
                logger.warning(
                    "Edits made during create not sent, will retry",
                    owner=mask_user_id(owner),
                    task_id=confirmed_id.value,
                    fields=sorted(changed),
                    error=str(e)
                )
        return confirmed_id

    async def flush_dirty(self, owner: str) -> None:
        """Send the current local value of every dirty field. Stops at the first failure."""
        for task_id, fields in self.dirty_fields(owner).items():
            task = self.cache.get_task(owner, task_id)
            if task is None:
                self._dirty.pop((owner, task_id), None)
                continue

            values = {key: value for key, value in task.remote_fields().items() if key in fields}
            try:
                await self.gateway.update_task(task_id, values)
            except SupabaseError as e:
                logger.warning(
                    "Dirty fields not sent, will retry",
                    owner=mask_user_id(owner),
                    task_id=task_id.value,
                    error=str(e)
                )
                break

            # Fields edited again while the update was in flight stay dirty
            latest = self.cache.get_task(owner, task_id)
            latest_fields = latest.remote_fields() if latest else {}
            self.clear_dirty(owner, task_id, [
                key for key, value in values.items() if latest_fields.get(key) == value
            ])

    async def flush_deletes(self, owner: str) -> None:
        """Retry remote deletes of purged tasks. Stops at the first failure."""
        for task_id in self.pending_deletes(owner):
            try:
                await self.gateway.delete_task(task_id)
            except SupabaseError as e:
                logger.warning(
                    "Remote delete failed, will retry",
                    owner=mask_user_id(owner),
                    task_id=task_id.value,
                    error=str(e)
                )
                break
            self._deletes[owner].discard(task_id)

    async def push_all(self, owner: str) -> int:
        """
        Send every outstanding write of an owner: queued deletes, pending creates,
        then dirty fields. Returns how many creates were confirmed.
        """
        await self.flush_deletes(owner)

        confirmed_count = 0
        for task in self.cache.pending(owner):
            try:
                if await self.push(owner, task.id) is not None:
                    confirmed_count += 1
            except SupabaseError as e:
                logger.warning(
                    "Pending create failed, will retry",
                    owner=mask_user_id(owner),
                    pending_id=str(task.id),
                    error=str(e)
                )
                # Connectivity is the usual cause; the remaining creates would fail too
                break

        await self.flush_dirty(owner)
        return confirmed_count

    async def _delete_remote(self, owner: str, task_id: ConfirmedId) -> None:
        try:
            await self.gateway.delete_task(task_id)
        except SupabaseError as e:
            self.queue_delete(owner, task_id)
            logger.warning(
                "Remote delete failed, will retry",
                owner=mask_user_id(owner),
                task_id=task_id.value,
                error=str(e)
            )
