"""Task service - one owner's reminders, mutated locally first and synced in the background."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional, Union
from pydantic import ValidationError

from remindersync.models.identity import ConfirmedId, PendingId, new_pending_id
from remindersync.models.task import EDITABLE_FIELDS, Task, TaskDraft, TaskStatus, validate_edit
from remindersync.models.task_list import TaskList
from remindersync.models.template import Template, TemplateDraft
from remindersync.services.actions import ActionTarget, build_action_target
from remindersync.services.assistant import AssistantRequest, AssistantResponse, generate_suggestion
from remindersync.services.local_cache import (
    LocalCache,
    PatchTask,
    RemoveList,
    RemoveTask,
    RemoveTemplate,
    UpsertList,
    UpsertTask,
    UpsertTemplate,
)
from remindersync.services.ordering import OrderingManager
from remindersync.services.promotion import PendingCreateQueue
from remindersync.services.reconciler import DEFAULT_RECONCILE_INTERVAL, ReconcileResult, Reconciler
from remindersync.services.recurrence import next_occurrence
from remindersync.services.remote_gateway import RemoteGateway
from remindersync.services.snapshot_storage import SnapshotStorage
from remindersync.services.views import TaskView, filter_tasks
from remindersync.utils.config import AppConfig
from remindersync.utils.errors import (
    AssistantError,
    ReminderSyncError,
    SupabaseError,
    TaskNotFoundError,
    TaskValidationError,
)
from remindersync.utils.logging import get_structured_logger, mask_user_id, sanitize_message_text
from remindersync.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)

TaskKey = Union[PendingId, ConfirmedId]
Assistant = Callable[[AssistantRequest], Awaitable[AssistantResponse]]


@dataclass
class Notice:
    """Transient message for the user (a failed sync, a rejected suggestion request)."""
    message: str
    detail: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)


class TaskService:
    """
    Facade over the cache, gateway, reconciler and ordering manager for one owner.

    Every mutation hits the local cache before the first network call. Remote
    failures never roll the cache back; they leave a Notice instead. Destructive
    actions ask ``confirm`` first and do nothing when it returns False.
    """

    def __init__(
        self,
        owner: str,
        cache: LocalCache,
        gateway: RemoteGateway,
        confirm: Callable[[str], bool],
        assistant: Optional[Assistant] = None,
        interval_seconds: float = DEFAULT_RECONCILE_INTERVAL,
        is_online: Optional[Callable[[], bool]] = None,
    ):
        if not owner:
            raise TaskValidationError("owner is required")
        self.owner = str(owner)
        self.cache = cache
        self.gateway = gateway
        self.confirm = confirm
        self.assistant = assistant or generate_suggestion
        self.pending_queue = PendingCreateQueue(cache, gateway)
        self.reconciler = Reconciler(
            cache,
            gateway,
            self.pending_queue,
            interval_seconds=interval_seconds,
            is_online=is_online,
        )
        self.ordering = OrderingManager(cache, gateway)
        self.notices: list[Notice] = []

    # Lifecycle

    async def start(self) -> None:
        """Rehydrate the cache from disk, then start background reconciliation."""
        self.cache.rehydrate(self.owner)
        self.reconciler.start(self.owner)

    async def stop(self) -> None:
        await self.reconciler.stop()

    async def refresh(self) -> ReconcileResult:
        """Reconcile now (pull-to-refresh)."""
        return await self.reconciler.reconcile_once(self.owner)

    # Reads

    def tasks(self) -> list[Task]:
        return self.cache.all(self.owner)

    def get_task(self, task_id: TaskKey) -> Task:
        task = self.cache.get_task(self.owner, task_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        return task

    def lists(self) -> list[TaskList]:
        return self.cache.lists(self.owner)

    def templates(self) -> list[Template]:
        return self.cache.templates(self.owner)

    def view(
        self,
        view: TaskView = TaskView.ALL,
        list_id: Optional[str] = None,
        search: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[Task]:
        return filter_tasks(self.tasks(), view, now=now, list_id=list_id, search=search)

    def drain_notices(self) -> list[Notice]:
        notices, self.notices = self.notices, []
        return notices

    # Tasks

    async def create_task(self, draft: Union[TaskDraft, dict]) -> Task:
        """Add a task with a pending id, then try to create it remotely."""
        try:
            draft = TaskDraft.model_validate(draft)
        except ValidationError as e:
            raise TaskValidationError(f"Invalid task: {e}")
        self._check_list(draft.list_id)

        task = Task.from_draft(draft, new_pending_id(), self.owner, self._next_position())
        self.cache.apply(UpsertTask(owner=self.owner, task=task))
        logger.info(
            "Task created locally",
            owner=mask_user_id(self.owner),
            pending_id=str(task.id),
            title_preview=sanitize_message_text(task.title, max_length=50)
        )

        confirmed_id = await self._push_pending(task.id)
        return self.cache.get_task(self.owner, confirmed_id or task.id) or task

    async def update_task(self, task_id: TaskKey, **fields) -> Task:
        """Edit content fields of a task."""
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise TaskValidationError(f"Fields cannot be edited: {sorted(unknown)}")
        try:
            fields = validate_edit(self.get_task(task_id), fields)
        except ValidationError as e:
            raise TaskValidationError(f"Invalid task update: {e}")
        if "list_id" in fields:
            self._check_list(fields["list_id"])
        return await self._patch(task_id, fields)

    async def complete_task(self, task_id: TaskKey) -> Task:
        """
        Mark a task done.

        Repeating tasks with a next run stay active and move to their next
        occurrence; everything else becomes completed.
        """
        task = self.get_task(task_id)
        if task.is_deleted:
            raise TaskValidationError("A deleted task cannot be completed")
        if task.is_paused:
            raise TaskValidationError("A paused task cannot be completed; resume it first")
        if task.completed:
            return task

        if task.repeats:
            fields = {
                "next_run": next_occurrence(task.next_run, task.frequency),
                "last_run": datetime.now().replace(microsecond=0),
            }
        else:
            fields = {"completed": True}

        updated = await self._patch(task_id, fields)
        if not task_id.is_pending:
            try:
                await self.gateway.log_completion(task_id)
            except SupabaseError as e:
                logger.warning("Completion log write failed", task_id=str(task_id), error=str(e))
        return updated

    async def reopen_task(self, task_id: TaskKey) -> Task:
        return await self._patch(task_id, {"completed": False})

    async def pause_task(self, task_id: TaskKey) -> Task:
        """Put a task on hold; paused tasks are never overdue and cannot be completed."""
        task = self.get_task(task_id)
        if task.is_deleted:
            raise TaskValidationError("A deleted task cannot be paused")
        if task.is_paused:
            return task
        return await self._patch(task_id, {"status": TaskStatus.PAUSED})

    async def resume_task(self, task_id: TaskKey) -> Task:
        task = self.get_task(task_id)
        if not task.is_paused:
            return task
        return await self._patch(task_id, {"status": TaskStatus.ACTIVE})

    async def toggle_flag(self, task_id: TaskKey) -> Task:
        task = self.get_task(task_id)
        return await self._patch(task_id, {"is_flagged": not task.is_flagged})

    async def move_to_list(self, task_id: TaskKey, list_id: Optional[str]) -> Task:
        return await self.update_task(task_id, list_id=list_id)

    async def soft_delete_task(self, task_id: TaskKey) -> bool:
        """Move a task to the deleted bucket. Returns False when the user declined."""
        task = self.get_task(task_id)
        if task.is_deleted:
            return True
        if not self.confirm(f'Delete "{task.title}"?'):
            return False
        await self._patch(task_id, {"is_deleted": True})
        return True

    async def restore_task(self, task_id: TaskKey) -> Task:
        """Bring a task back from the deleted bucket; its completed flag is untouched."""
        task = self.get_task(task_id)
        if not task.is_deleted:
            return task
        return await self._patch(task_id, {"is_deleted": False})

    async def purge_task(self, task_id: TaskKey) -> bool:
        """Permanently remove a task from the deleted bucket. Returns False when declined."""
        task = self.get_task(task_id)
        if not task.is_deleted:
            raise TaskValidationError("Only deleted tasks can be purged")
        if not self.confirm(f'Permanently delete "{task.title}"?'):
            return False

        self.cache.apply(RemoveTask(owner=self.owner, task_id=task_id))
        if not task_id.is_pending:
            try:
                await self.gateway.delete_task(task_id)
            except SupabaseError as e:
                self.pending_queue.queue_delete(self.owner, task_id)
                self._notice("Deleted on this device; the server will be updated later", e)
        return True

    async def reorder(self, visible: list[Task], from_index: int, to_index: int) -> list[Task]:
        """Apply a drag-and-drop move within the visible list. Returns the list in its new order."""
        error = await self.ordering.reorder(self.owner, visible, from_index, to_index)
        if error is not None:
            self._notice("New order saved on this device only", error)
        ids = {task.id for task in visible}
        return [task for task in self.tasks() if task.id in ids]

    # Lists

    async def create_list(self, title: str) -> Optional[TaskList]:
        title = self._required_title(title)
        try:
            task_list = await self.gateway.create_list(self.owner, title)
        except SupabaseError as e:
            self._notice("Could not create the list", e)
            return None
        self.cache.apply(UpsertList(owner=self.owner, task_list=task_list))
        return task_list

    async def rename_list(self, list_id: str, title: str) -> TaskList:
        title = self._required_title(title)
        current = self._require_list(list_id)
        renamed = current.model_copy(update={"title": title})
        self.cache.apply(UpsertList(owner=self.owner, task_list=renamed))
        try:
            await self.gateway.update_list(list_id, title)
        except SupabaseError as e:
            self._notice("List renamed on this device only", e)
        return renamed

    async def delete_list(self, list_id: str) -> bool:
        """Delete a list; its tasks move to unfiled. Returns False when declined."""
        task_list = self._require_list(list_id)
        if not self.confirm(f'Delete list "{task_list.title}"? Its tasks will be kept.'):
            return False

        self.cache.apply(RemoveList(owner=self.owner, list_id=list_id))
        try:
            await self.gateway.detach_list_tasks(self.owner, list_id)
            await self.gateway.delete_list(list_id)
        except SupabaseError as e:
            self._notice("Could not delete the list on the server", e)
        return True

    # Templates

    async def create_template(self, draft: Union[TemplateDraft, dict]) -> Optional[Template]:
        try:
            draft = TemplateDraft.model_validate(draft)
        except ValidationError as e:
            raise TaskValidationError(f"Invalid template: {e}")
        try:
            template = await self.gateway.create_template(self.owner, draft)
        except SupabaseError as e:
            self._notice("Could not create the template", e)
            return None
        self.cache.apply(UpsertTemplate(owner=self.owner, template=template))
        return template

    async def delete_template(self, template_id: str) -> bool:
        template = self._require_template(template_id)
        if not self.confirm(f'Delete template "{template.title}"?'):
            return False
        self.cache.apply(RemoveTemplate(owner=self.owner, template_id=template_id))
        try:
            await self.gateway.delete_template(template_id)
        except SupabaseError as e:
            self._notice("Could not delete the template on the server", e)
        return True

    async def create_task_from_template(self, template_id: str, **overrides) -> Task:
        """Create a task from a template's content; scheduling fields come from ``overrides``."""
        template = self._require_template(template_id)
        content = {"title": template.title, "description": template.description, "type": template.type}
        return await self.create_task({**content, **overrides})

    # Collaborators

    def action_for(self, task_id: TaskKey) -> Optional[ActionTarget]:
        return build_action_target(self.get_task(task_id))

    async def suggest_text(self, task_id: TaskKey, custom_instruction: Optional[str] = None) -> Optional[str]:
        """Ask the assistant for text the user may copy. Returns None on failure."""
        task = self.get_task(task_id)
        request = AssistantRequest(
            title=task.title,
            description=task.description,
            type=task.type,
            custom_instruction=custom_instruction,
        )
        try:
            response = await self.assistant(request)
        except AssistantError as e:
            self._notice("The assistant is unavailable right now", e)
            return None
        return response.result

    # Internals

    def _notice(self, message: str, error: Optional[ReminderSyncError] = None) -> None:
        detail = str(error) if error else None
        logger.warning(message, owner=mask_user_id(self.owner), error=detail)
        self.notices.append(Notice(message=message, detail=detail))

    def _next_position(self) -> int:
        tasks = self.tasks()
        return max(task.position for task in tasks) + 1 if tasks else 0

    def _required_title(self, title: str) -> str:
        title = (title or "").strip()
        if not title:
            raise TaskValidationError("title must not be empty")
        return title

    def _check_list(self, list_id: Optional[str]) -> None:
        if list_id is not None and all(task_list.id != list_id for task_list in self.lists()):
            raise TaskValidationError(f"Unknown list: {list_id}")

    def _require_list(self, list_id: str) -> TaskList:
        for task_list in self.lists():
            if task_list.id == list_id:
                return task_list
        raise TaskNotFoundError(f"List not found: {list_id}")

    def _require_template(self, template_id: str) -> Template:
        for template in self.templates():
            if template.id == template_id:
                return template
        raise TaskNotFoundError(f"Template not found: {template_id}")

    async def _patch(self, task_id: TaskKey, fields: dict) -> Task:
        self.get_task(task_id)
        try:
            self.cache.apply(PatchTask(owner=self.owner, task_id=task_id, fields=fields))
        except ValidationError as e:
            raise TaskValidationError(f"Invalid task update: {e}")
        updated = self.get_task(task_id)

        if task_id.is_pending:
            # Local only; the create request carries the latest state
            confirmed_id = await self._push_pending(task_id)
            return self.cache.get_task(self.owner, confirmed_id or task_id) or updated

        remote = {key: value for key, value in updated.remote_fields().items() if key in fields}
        try:
            await self.gateway.update_task(task_id, remote)
        except SupabaseError as e:
            self.pending_queue.mark_dirty(self.owner, task_id, remote)
            self._notice("Saved on this device; the server will be updated later", e)
        else:
            self.pending_queue.clear_dirty(self.owner, task_id, remote)
        return updated

    async def _push_pending(self, task_id: PendingId) -> Optional[ConfirmedId]:
        if self.pending_queue.is_in_flight(task_id):
            return None
        try:
            return await self.pending_queue.push(self.owner, task_id)
        except SupabaseError as e:
            self._notice("Saved on this device; it will sync when you are back online", e)
            return None


def create_task_service(
    owner: str,
    confirm: Callable[[str], bool],
    config: Optional[AppConfig] = None,
    assistant: Optional[Assistant] = None,
    is_online: Optional[Callable[[], bool]] = None,
) -> TaskService:
    """Wire a TaskService with on-disk snapshots and the Supabase gateway."""
    LoggingConfig.setup_logging()
    config = config or AppConfig.from_env()
    cache = LocalCache(SnapshotStorage(config.cache_dir))
    return TaskService(
        owner,
        cache,
        RemoteGateway(),
        confirm=confirm,
        assistant=assistant,
        interval_seconds=config.reconcile_interval_seconds,
        is_online=is_online,
    )
