"""Remote gateway - CRUD and list operations against the Supabase tables."""

from typing import Iterable, Union
from pydantic import ValidationError

from remindersync.models.identity import ConfirmedId, PendingId, confirmed
from remindersync.models.task import OWNER_COLUMN, Task, serialize_fields
from remindersync.models.task_list import TaskList
from remindersync.models.task_log import TaskLogEntry
from remindersync.models.template import Template, TemplateDraft
from remindersync.services.supabase_client import SupabaseClient
from remindersync.utils.errors import SupabaseError
from remindersync.utils.logging import get_structured_logger, mask_user_id, timed

logger = get_structured_logger(__name__)

TASKS_TABLE = "tasks"
LISTS_TABLE = "lists"
TEMPLATES_TABLE = "templates"
TASK_LOG_TABLE = "task_log"


def _remote_key(task_id: Union[PendingId, ConfirmedId]) -> str:
    """Primary key to send to the store; pending ids never leave the device."""
    if task_id.is_pending:
        raise SupabaseError(f"Refusing to send pending id to remote store: {task_id}")
    return task_id.value


def _parse_rows(rows: list[dict], model, table: str) -> list:
    records = []
    for row in rows:
        try:
            records.append(model.from_remote(row))
        except (ValidationError, KeyError) as e:
            logger.warning(
                "Skipping malformed remote row",
                table=table,
                row_id=row.get("id"),
                error=str(e)
            )
    return records


class RemoteGateway:
    """
    Thin, fallible boundary over the remote store.

    Every failure surfaces as SupabaseError. No retries happen here; the task
    service and the reconciler decide what to do with a failed call.
    """

    # Tasks

    @timed("remote.list_tasks")
    async def list_tasks(self, owner: str) -> list[Task]:
        """Fetch every task of an owner, ordered by position."""
        async with SupabaseClient() as client:
            try:
                result = await (
                    client.table(TASKS_TABLE)
                    .select("*")
                    .eq(OWNER_COLUMN, owner)
                    .order("position")
                    .execute()
                )
            except Exception as e:
                raise SupabaseError(f"Failed to list tasks: {e}")

        tasks = _parse_rows(result.data or [], Task, TASKS_TABLE)
        logger.debug("Remote tasks fetched", owner=mask_user_id(owner), tasks_count=len(tasks))
        return tasks

    @timed("remote.create_task")
    async def create_task(self, task: Task) -> ConfirmedId:
        """Insert a task and return the id the store assigned."""
        async with SupabaseClient() as client:
            try:
                result = await client.table(TASKS_TABLE).insert(task.to_remote_row()).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to create task: {e}")

        if result.data and len(result.data) > 0 and result.data[0].get("id") is not None:
            return confirmed(result.data[0]["id"])
        raise SupabaseError("Failed to create task: no ID returned")

    async def update_task(self, task_id: ConfirmedId, fields: dict) -> None:
        """Apply a partial update to one task."""
        key = _remote_key(task_id)
        if not fields:
            return

        async with SupabaseClient() as client:
            try:
                result = await client.table(TASKS_TABLE).update(serialize_fields(fields)).eq("id", key).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to update task: {e}")

        if not result.data:
            raise SupabaseError(f"Failed to update task: {key}")

    async def delete_task(self, task_id: ConfirmedId) -> None:
        """Hard-delete one task."""
        key = _remote_key(task_id)
        async with SupabaseClient() as client:
            try:
                await client.table(TASKS_TABLE).delete().eq("id", key).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to delete task: {e}")

    async def upsert_positions(self, owner: str, positions: Iterable[tuple[ConfirmedId, int]]) -> int:
        """Batch-write ``{id, position}`` pairs. Returns the number of rows sent."""
        rows = [
            {"id": _remote_key(task_id), "position": position, OWNER_COLUMN: owner}
            for task_id, position in positions
        ]
        if not rows:
            return 0

        async with SupabaseClient() as client:
            try:
                await client.table(TASKS_TABLE).upsert(rows, on_conflict="id").execute()
            except Exception as e:
                raise SupabaseError(f"Failed to upsert positions: {e}")
        return len(rows)

    async def detach_list_tasks(self, owner: str, list_id: str) -> None:
        """Move every task of a list to unfiled."""
        async with SupabaseClient() as client:
            try:
                await (
                    client.table(TASKS_TABLE)
                    .update({"list_id": None})
                    .eq(OWNER_COLUMN, owner)
                    .eq("list_id", list_id)
                    .execute()
                )
            except Exception as e:
                raise SupabaseError(f"Failed to detach list tasks: {e}")

    async def log_completion(self, task_id: ConfirmedId) -> None:
        """Record a completion in the task log."""
        entry = TaskLogEntry(task_id=_remote_key(task_id))
        async with SupabaseClient() as client:
            try:
                await client.table(TASK_LOG_TABLE).insert(entry.model_dump(mode="json", exclude_none=True)).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to log completion: {e}")

    # Lists

    async def list_lists(self, owner: str) -> list[TaskList]:
        async with SupabaseClient() as client:
            try:
                result = await client.table(LISTS_TABLE).select("*").eq(OWNER_COLUMN, owner).order("id").execute()
            except Exception as e:
                raise SupabaseError(f"Failed to list lists: {e}")
        return _parse_rows(result.data or [], TaskList, LISTS_TABLE)

    async def create_list(self, owner: str, title: str) -> TaskList:
        async with SupabaseClient() as client:
            try:
                result = await client.table(LISTS_TABLE).insert({"title": title, OWNER_COLUMN: owner}).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to create list: {e}")

        if result.data and len(result.data) > 0:
            return TaskList.from_remote(result.data[0])
        raise SupabaseError("Failed to create list: no data returned")

    async def update_list(self, list_id: str, title: str) -> TaskList:
        async with SupabaseClient() as client:
            try:
                result = await client.table(LISTS_TABLE).update({"title": title}).eq("id", list_id).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to update list: {e}")

        if result.data and len(result.data) > 0:
            return TaskList.from_remote(result.data[0])
        raise SupabaseError(f"Failed to update list: {list_id}")

    async def delete_list(self, list_id: str) -> None:
        async with SupabaseClient() as client:
            try:
                await client.table(LISTS_TABLE).delete().eq("id", list_id).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to delete list: {e}")

    # Templates

    async def list_templates(self, owner: str) -> list[Template]:
        async with SupabaseClient() as client:
            try:
                result = await client.table(TEMPLATES_TABLE).select("*").eq(OWNER_COLUMN, owner).order("id").execute()
            except Exception as e:
                raise SupabaseError(f"Failed to list templates: {e}")
        return _parse_rows(result.data or [], Template, TEMPLATES_TABLE)

    async def create_template(self, owner: str, draft: TemplateDraft) -> Template:
        row = draft.model_dump(mode="json")
        row[OWNER_COLUMN] = owner
        async with SupabaseClient() as client:
            try:
                result = await client.table(TEMPLATES_TABLE).insert(row).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to create template: {e}")

        if result.data and len(result.data) > 0:
            return Template.from_remote(result.data[0])
        raise SupabaseError("Failed to create template: no data returned")

    async def delete_template(self, template_id: str) -> None:
        async with SupabaseClient() as client:
            try:
                await client.table(TEMPLATES_TABLE).delete().eq("id", template_id).execute()
            except Exception as e:
                raise SupabaseError(f"Failed to delete template: {e}")
