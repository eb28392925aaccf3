"""Ordering manager - turn drag-and-drop reorders into persisted positions."""

from typing import Optional

from remindersync.models.task import Task
from remindersync.services.local_cache import LocalCache, SetPositions
from remindersync.services.remote_gateway import RemoteGateway
from remindersync.utils.errors import SupabaseError, TaskValidationError
from remindersync.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


def splice(visible: list[Task], from_index: int, to_index: int) -> list[Task]:
    """Move one task to a new index within the visible list."""
    if not 0 <= from_index < len(visible) or not 0 <= to_index < len(visible):
        raise TaskValidationError(
            f"Reorder indexes out of range: {from_index} -> {to_index} (visible={len(visible)})"
        )
    reordered = list(visible)
    moved = reordered.pop(from_index)
    reordered.insert(to_index, moved)
    return reordered


def dense_positions(ordered: list[Task]) -> dict:
    """Zero-based, contiguous positions in the given order."""
    return {task.id: idx for idx, task in enumerate(ordered)}


class OrderingManager:
    """
    Applies reorders locally first, then upserts confirmed positions remotely.

    The local order is authoritative immediately. The remote batch is not
    rolled back on failure; the next reconciliation shows whatever the store
    kept.
    """

    def __init__(self, cache: LocalCache, gateway: RemoteGateway):
        self.cache = cache
        self.gateway = gateway

    def reorder_local(self, owner: str, visible: list[Task], from_index: int, to_index: int) -> dict:
        """Splice and assign dense positions to every visible task in one cache mutation."""
        positions = dense_positions(splice(visible, from_index, to_index))
        self.cache.apply(SetPositions(owner=owner, positions=positions))
        logger.debug(
            "Tasks reordered locally",
            owner=mask_user_id(owner),
            from_index=from_index,
            to_index=to_index,
            visible_count=len(visible)
        )
        return positions

    async def reorder(self, owner: str, visible: list[Task], from_index: int, to_index: int) -> Optional[SupabaseError]:
        """
        Reorder and persist.

        Pending tasks keep their local position but are left out of the remote
        batch. Returns the remote error, if any, instead of raising it.
        """
        positions = self.reorder_local(owner, visible, from_index, to_index)
        batch = [(task_id, position) for task_id, position in positions.items() if not task_id.is_pending]

        try:
            sent = await self.gateway.upsert_positions(owner, batch)
        except SupabaseError as e:
            logger.warning(
                "Position upsert failed, local order kept",
                owner=mask_user_id(owner),
                batch_size=len(batch),
                error=str(e)
            )
            return e

        logger.info(
            "Positions persisted",
            owner=mask_user_id(owner),
            batch_size=sent,
            skipped_pending=len(positions) - len(batch)
        )
        return None
