"""Local cache - in-memory mirror of each owner's collections with write-through snapshots."""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from remindersync.models.identity import ConfirmedId, PendingId
from remindersync.models.snapshot import CacheSnapshot
from remindersync.models.task import Task
from remindersync.models.task_list import TaskList
from remindersync.models.template import Template
from remindersync.services.snapshot_storage import SnapshotStorage
from remindersync.utils.errors import CacheStorageError, TaskNotFoundError
from remindersync.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

RecordKey = Union[PendingId, ConfirmedId]


@dataclass(frozen=True)
class UpsertTask:
    owner: str
    task: Task


@dataclass(frozen=True)
class PatchTask:
    owner: str
    task_id: RecordKey
    fields: dict


@dataclass(frozen=True)
class RemoveTask:
    owner: str
    task_id: RecordKey


@dataclass(frozen=True)
class PromoteTask:
    """Swap a pending id for the id the remote store assigned."""
    owner: str
    pending_id: PendingId
    confirmed_id: ConfirmedId


@dataclass(frozen=True)
class ReplaceTasks:
    owner: str
    tasks: list


@dataclass(frozen=True)
class SetPositions:
    owner: str
    positions: dict


@dataclass(frozen=True)
class UpsertList:
    owner: str
    task_list: TaskList


@dataclass(frozen=True)
class RemoveList:
    """Delete a list and detach its tasks to unfiled."""
    owner: str
    list_id: str


@dataclass(frozen=True)
class ReplaceLists:
    owner: str
    lists: list


@dataclass(frozen=True)
class UpsertTemplate:
    owner: str
    template: Template


@dataclass(frozen=True)
class RemoveTemplate:
    owner: str
    template_id: str


@dataclass(frozen=True)
class ReplaceTemplates:
    owner: str
    templates: list


Mutation = Union[
    UpsertTask, PatchTask, RemoveTask, PromoteTask, ReplaceTasks, SetPositions,
    UpsertList, RemoveList, ReplaceLists, UpsertTemplate, RemoveTemplate, ReplaceTemplates,
]


@dataclass
class _OwnerState:
    tasks: list = field(default_factory=list)
    lists: list = field(default_factory=list)
    templates: list = field(default_factory=list)


def _index_of(tasks: list, task_id: RecordKey) -> Optional[int]:
    for idx, task in enumerate(tasks):
        if task.id == task_id:
            return idx
    return None


def _upsert_by_id(records: list, record) -> list:
    """Replace the record with the same id in place, or append it."""
    records = list(records)
    idx = _index_of(records, record.id)
    if idx is None:
        records.append(record)
    else:
        records[idx] = record
    return records


def _unique_by_id(records: list) -> list:
    seen = set()
    unique = []
    for record in records:
        if record.id in seen:
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


def _detach_orphans(tasks: list, lists: list) -> list:
    list_ids = {task_list.id for task_list in lists}
    return [
        task if task.list_id is None or task.list_id in list_ids
        else task.model_copy(update={"list_id": None})
        for task in tasks
    ]


class LocalCache:
    """
    Single source of truth for what the UI renders.

    Every mutation is applied synchronously (no awaits), then the owner's full
    snapshot is flushed to disk. Snapshot write failures are logged and
    swallowed: the in-memory copy stays authoritative for the session.
    """

    def __init__(self, storage: SnapshotStorage):
        self.storage = storage
        self._owners: dict[str, _OwnerState] = {}
        self._listeners: list[Callable[[str], Any]] = []
        self._handlers = {
            UpsertTask: self._upsert_task,
            PatchTask: self._patch_task,
            RemoveTask: self._remove_task,
            PromoteTask: self._promote_task,
            ReplaceTasks: self._replace_tasks,
            SetPositions: self._set_positions,
            UpsertList: self._upsert_list,
            RemoveList: self._remove_list,
            ReplaceLists: self._replace_lists,
            UpsertTemplate: self._upsert_template,
            RemoveTemplate: self._remove_template,
            ReplaceTemplates: self._replace_templates,
        }

    def rehydrate(self, owner: str) -> bool:
        """Load the stored snapshot for an owner. Returns False when starting empty."""
        try:
            snapshot = self.storage.load(owner)
        except CacheStorageError as e:
            logger.warning("Snapshot unreadable, starting empty", owner=mask_user_id(owner), error=str(e))
            snapshot = None

        if snapshot is None:
            self._owners[owner] = _OwnerState()
            logger.info("Local cache started empty", owner=mask_user_id(owner))
            return False

        self._owners[owner] = _OwnerState(
            tasks=_unique_by_id(snapshot.tasks),
            lists=list(snapshot.lists),
            templates=list(snapshot.templates),
        )
        logger.info(
            "Local cache rehydrated",
            owner=mask_user_id(owner),
            tasks_count=len(snapshot.tasks),
            lists_count=len(snapshot.lists),
            templates_count=len(snapshot.templates)
        )
        return True

    def subscribe(self, listener: Callable[[str], Any]) -> None:
        """Register a callback invoked with the owner after every applied mutation."""
        self._listeners.append(listener)

    def all(self, owner: str) -> list[Task]:
        return list(self._state(owner).tasks)

    def get_task(self, owner: str, task_id: RecordKey) -> Optional[Task]:
        tasks = self._state(owner).tasks
        idx = _index_of(tasks, task_id)
        return tasks[idx] if idx is not None else None

    def pending(self, owner: str) -> list[Task]:
        return [task for task in self._state(owner).tasks if task.is_pending]

    def lists(self, owner: str) -> list[TaskList]:
        return list(self._state(owner).lists)

    def templates(self, owner: str) -> list[Template]:
        return list(self._state(owner).templates)

    def apply(self, mutation: Mutation) -> None:
        """Apply one mutation atomically and flush the owner's snapshot."""
        handler = self._handlers.get(type(mutation))
        if handler is None:
            raise TypeError(f"Unsupported cache mutation: {type(mutation).__name__}")

        state = self._state(mutation.owner)
        handler(state, mutation)

        logger.debug(
            "Cache mutation applied",
            mutation=type(mutation).__name__,
            owner=mask_user_id(mutation.owner),
            tasks_count=len(state.tasks)
        )
        self._flush(mutation.owner, state)
        for listener in self._listeners:
            listener(mutation.owner)

    def _state(self, owner: str) -> _OwnerState:
        if owner not in self._owners:
            self._owners[owner] = _OwnerState()
        return self._owners[owner]

    def _flush(self, owner: str, state: _OwnerState) -> None:
        snapshot = CacheSnapshot(
            owner=owner,
            tasks=state.tasks,
            lists=state.lists,
            templates=state.templates,
        )
        try:
            self.storage.save(snapshot)
        except CacheStorageError as e:
            logger.warning(
                "Snapshot write failed (non-fatal)",
                owner=mask_user_id(owner),
                error=str(e)
            )

    # Handlers build the new collection first and assign it last, so a
    # handler that raises leaves the state untouched.

    def _upsert_task(self, state: _OwnerState, mutation: UpsertTask) -> None:
        state.tasks = _upsert_by_id(state.tasks, mutation.task)

    def _patch_task(self, state: _OwnerState, mutation: PatchTask) -> None:
        idx = _index_of(state.tasks, mutation.task_id)
        if idx is None:
            raise TaskNotFoundError(f"Task not in cache: {mutation.task_id}")
        current = state.tasks[idx]
        patched = Task.model_validate({**current.model_dump(), **mutation.fields, "id": current.id})
        tasks = list(state.tasks)
        tasks[idx] = patched
        state.tasks = tasks

    def _remove_task(self, state: _OwnerState, mutation: RemoveTask) -> None:
        state.tasks = [task for task in state.tasks if task.id != mutation.task_id]

    def _promote_task(self, state: _OwnerState, mutation: PromoteTask) -> None:
        pending_idx = _index_of(state.tasks, mutation.pending_id)
        if pending_idx is None:
            raise TaskNotFoundError(f"Pending task not in cache: {mutation.pending_id}")

        promoted = state.tasks[pending_idx].model_copy(update={"id": mutation.confirmed_id})
        tasks = list(state.tasks)
        confirmed_idx = _index_of(tasks, mutation.confirmed_id)
        if confirmed_idx is None:
            tasks[pending_idx] = promoted
        else:
            # A reconciliation already delivered the remote copy; keep one record
            tasks[confirmed_idx] = promoted
            del tasks[pending_idx]
        state.tasks = tasks

    def _replace_tasks(self, state: _OwnerState, mutation: ReplaceTasks) -> None:
        state.tasks = _unique_by_id(mutation.tasks)

    def _set_positions(self, state: _OwnerState, mutation: SetPositions) -> None:
        tasks = [
            task.model_copy(update={"position": mutation.positions[task.id]})
            if task.id in mutation.positions else task
            for task in state.tasks
        ]
        # Stable: equal positions keep their current cache order
        state.tasks = sorted(tasks, key=lambda task: task.position)

    def _upsert_list(self, state: _OwnerState, mutation: UpsertList) -> None:
        state.lists = _upsert_by_id(state.lists, mutation.task_list)

    def _remove_list(self, state: _OwnerState, mutation: RemoveList) -> None:
        state.tasks = [
            task.model_copy(update={"list_id": None}) if task.list_id == mutation.list_id else task
            for task in state.tasks
        ]
        state.lists = [task_list for task_list in state.lists if task_list.id != mutation.list_id]

    def _replace_lists(self, state: _OwnerState, mutation: ReplaceLists) -> None:
        lists = _unique_by_id(mutation.lists)
        state.tasks = _detach_orphans(state.tasks, lists)
        state.lists = lists

    def _upsert_template(self, state: _OwnerState, mutation: UpsertTemplate) -> None:
        state.templates = _upsert_by_id(state.templates, mutation.template)

    def _remove_template(self, state: _OwnerState, mutation: RemoveTemplate) -> None:
        state.templates = [template for template in state.templates if template.id != mutation.template_id]

    def _replace_templates(self, state: _OwnerState, mutation: ReplaceTemplates) -> None:
        state.templates = _unique_by_id(mutation.templates)
