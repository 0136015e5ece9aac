"""
Client board service: loads, CRUD and optimistic mutations.

Optimistic mutations (column/task ordering and checklist toggle/delete)
follow one protocol on a single asyncio loop:

    1. capture previous = state.current_snapshot()
    2. compute the predicted snapshot (pure, see mutations.py)
    3. state.replace(predicted)              # synchronous, before any I/O
    4. send the request in a worker thread and settle:
         success -> nothing more to do, no reload
         failure -> state.rollback(previous, message): restore and surface
                    one message in a single notification

Only one optimistic mutation per project is in flight at a time; a second
one is refused with BUSY_MESSAGE and leaves the board untouched, so a late
rollback can never overwrite a newer accepted change.

CRUD operations are not optimistic: they wait for the server and then
reload the affected data.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Sequence

from . import mutations
from .api import BoardApiClient
from .errors import BoardError, Result, first_error
from .schema import Project
from .state import BoardState

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Another change to this board is still being saved."


class Reconciler:
    """Applies the outcome of a remote call to an optimistic change."""

    def __init__(self, state: BoardState):
        self.state = state

    def settle(self, result: Result, previous: Optional[Project], fallback: str) -> bool:
        """Keep the prediction on success; restore previous and report on failure."""
        if result.ok:
            return True
        message = first_error(result, fallback)
        self.state.rollback(previous, message)
        logger.warning(f"Rolled back optimistic change (status {result.status}): {message}")
        return False


class KanbanService:
    """Drives BoardState from the board API."""

    def __init__(self, api: BoardApiClient, state: Optional[BoardState] = None):
        self.api = api
        self.state = state or BoardState()
        self.reconciler = Reconciler(self.state)
        self._in_flight: Dict[str, "asyncio.Task[Result]"] = {}
        self.subscribers: Dict[str, list] = {}  # event_type -> list of callbacks

    # ── Events ───────────────────────────────────────────────────────────────

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for "optimistic", "confirmed" or "rolled_back"."""
        self.subscribers.setdefault(event_type, []).append(callback)

    def _emit(self, event_type: str, **kwargs) -> None:
        for callback in self.subscribers.get(event_type, []):
            try:
                callback(**kwargs)
            except Exception:
                logger.exception(f"Error in {event_type} callback")

    # ── Plumbing ─────────────────────────────────────────────────────────────

    async def _call(self, fn: Callable[..., Result], *args, **kwargs) -> Result:
        return await asyncio.to_thread(fn, *args, **kwargs)

    def is_saving(self, project_id: str) -> bool:
        return project_id in self._in_flight

    async def wait_idle(self) -> None:
        """Wait until every in-flight optimistic change has settled."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()))

    def _optimistic(
        self,
        operation: str,
        predict: Callable[[Project], Project],
        remote: Callable[[], Result],
        fallback: str,
    ) -> Optional["asyncio.Task[Result]"]:
        """
        Apply predict() to the board now and settle remote() in the background.

        Returns the settling asyncio.Task, or None when the change was refused
        (no board loaded, another change in flight, or an invalid request).
        Must be called from inside the running event loop.
        """
        previous = self.state.current_snapshot()
        if previous is None:
            return None
        if self.is_saving(previous.id):
            logger.warning(f"{operation} refused: project {previous.id} has a change in flight")
            self.state.set_error(BUSY_MESSAGE)
            return None
        try:
            predicted = predict(previous)
        except BoardError as e:
            logger.info(f"{operation} rejected locally: {e.errors[0]}")
            self.state.set_error(e.errors[0])
            return None
        except (TypeError, ValueError) as e:
            logger.info(f"{operation} rejected locally: {e}")
            self.state.set_error(fallback)
            return None

        self.state.clear_error()
        self.state.replace(predicted)
        self._emit("optimistic", operation=operation, project_id=previous.id)
        task = asyncio.ensure_future(self._settle(operation, previous, remote, fallback))
        self._in_flight[previous.id] = task
        return task

    async def _settle(self, operation: str, previous: Project, remote: Callable[[], Result],
                      fallback: str) -> Result:
        try:
            try:
                result = await self._call(remote)
            except Exception as e:
                logger.exception(f"{operation} raised instead of returning a result")
                result = Result.failure(fallback, status=getattr(e, "status", 0))
            if self.reconciler.settle(result, previous, fallback):
                if self.state.error == BUSY_MESSAGE:
                    self.state.set_error(None)
                self._emit("confirmed", operation=operation, project_id=previous.id)
            else:
                self._emit("rolled_back", operation=operation, project_id=previous.id,
                           error=self.state.error)
            return result
        finally:
            self._in_flight.pop(previous.id, None)

    async def _write(self, fn: Callable[..., Result], *args, fallback: str,
                     reload: Optional[str] = None, **kwargs) -> Result:
        """Non-optimistic write: call, then reload "project" or "projects" on success."""
        self.state.clear_error()
        result = await self._call(fn, *args, **kwargs)
        if not result.ok:
            self.state.set_error(first_error(result, fallback))
            return result
        if reload == "project" and self.state.selected_project is not None:
            await self.load_project(self.state.selected_project.id)
        elif reload == "projects":
            await self.load_projects()
        return result

    # ── Loads ────────────────────────────────────────────────────────────────

    async def load_projects(self) -> Result:
        self.state.loading = True
        self.state.clear_error()
        try:
            result = await self._call(self.api.list_projects)
        finally:
            self.state.loading = False
        if result.ok:
            self.state.projects = list(result.value)
        else:
            self.state.set_error(first_error(result, "Failed to load projects"))
        return result

    async def load_project(self, project_id: str) -> Result:
        self.state.loading = True
        self.state.clear_error()
        try:
            result = await self._call(self.api.get_project, project_id)
        finally:
            self.state.loading = False
        if result.ok:
            self.state.replace(result.value)
        else:
            self.state.set_error(first_error(result, "Failed to load project"))
        return result

    async def load_task(self, task_id: str) -> Result:
        """Fetch one task and make it the selected task, archived or not."""
        self.state.clear_error()
        result = await self._call(self.api.get_task, task_id)
        if result.ok:
            self.state.select_task(result.value)
        else:
            self.state.set_error(first_error(result, "Failed to load task"))
        return result

    async def load_archived_tasks(self, project_id: str) -> Result:
        self.state.clear_error()
        result = await self._call(self.api.list_archived_tasks, project_id)
        if not result.ok:
            self.state.set_error(first_error(result, "Failed to load archived tasks"))
        return result

    # ── Projects ─────────────────────────────────────────────────────────────

    async def create_project(self, name: str, description: str = None, color: str = None) -> Result:
        return await self._write(self.api.create_project, name, description, color,
                                 fallback="Failed to create project", reload="projects")

    async def update_project(self, project_id: str, name: str, description: str = None,
                             color: str = None) -> Result:
        result = await self._write(self.api.update_project, project_id, name, description, color,
                                   fallback="Failed to update project", reload="projects")
        selected = self.state.selected_project
        if result.ok and selected is not None and selected.id == project_id:
            await self.load_project(project_id)
        return result

    async def delete_project(self, project_id: str) -> Result:
        result = await self._write(self.api.delete_project, project_id,
                                   fallback="Failed to delete project", reload="projects")
        selected = self.state.selected_project
        if result.ok and selected is not None and selected.id == project_id:
            self.state.clear()
        return result

    async def create_label(self, project_id: str, name: str, color: str = None) -> Result:
        return await self._write(self.api.create_label, project_id, name, color,
                                 fallback="Failed to create label")

    # ── Columns ──────────────────────────────────────────────────────────────

    async def create_column(self, project_id: str, name: str) -> Result:
        return await self._write(self.api.create_column, project_id, name,
                                 fallback="Failed to create column", reload="project")

    async def update_column(self, column_id: str, name: str) -> Result:
        return await self._write(self.api.update_column, column_id, name,
                                 fallback="Failed to update column", reload="project")

    async def delete_column(self, column_id: str) -> Result:
        return await self._write(self.api.delete_column, column_id,
                                 fallback="Failed to delete column", reload="project")

    def reorder_columns(self, column_ids: Sequence[str]) -> Optional["asyncio.Task[Result]"]:
        """Reorder the selected project's columns to column_ids (index i gets order i)."""
        ids = list(column_ids)
        project = self.state.selected_project
        if project is None:
            return None
        return self._optimistic(
            "reorder_columns",
            lambda p: mutations.predict_reorder_columns(p, ids),
            lambda: self.api.reorder_columns(project.id, ids),
            "Failed to reorder columns",
        )

    # ── Tasks ────────────────────────────────────────────────────────────────

    async def create_task(self, column_id: str, title: str, **fields: Any) -> Result:
        return await self._write(self.api.create_task, column_id, title, **fields,
                                 fallback="Failed to create task", reload="project")

    async def update_task(self, task_id: str, title: str, **fields: Any) -> Result:
        result = await self._write(self.api.update_task, task_id, title, **fields,
                                   fallback="Failed to update task", reload="project")
        if result.ok and result.value is not None:
            self.state.select_task(result.value)
        return result

    async def delete_task(self, task_id: str) -> Result:
        result = await self._write(self.api.delete_task, task_id,
                                   fallback="Failed to delete task", reload="project")
        if result.ok and self.state.selected_task_id == task_id:
            self.state.select_task(None)
        return result

    async def archive_task(self, task_id: str, archive: bool = True) -> Result:
        return await self._write(self.api.archive_task, task_id, archive,
                                 fallback="Failed to archive task", reload="project")

    def reorder_tasks(self, column_id: str, task_ids: Sequence[str]) -> Optional["asyncio.Task[Result]"]:
        ids = list(task_ids)
        return self._optimistic(
            "reorder_tasks",
            lambda p: mutations.predict_reorder_tasks(p, column_id, ids),
            lambda: self.api.reorder_tasks(column_id, ids),
            "Failed to reorder tasks",
        )

    def move_task(self, task_id: str, target_column_id: str, new_order: int) -> Optional["asyncio.Task[Result]"]:
        """Move a task to target_column_id at new_order (clamped to the column's end)."""
        return self._optimistic(
            "move_task",
            lambda p: mutations.predict_move_task(p, task_id, target_column_id, new_order),
            lambda: self.api.move_task(task_id, target_column_id, new_order),
            "Failed to move task",
        )

    # ── Checklists ───────────────────────────────────────────────────────────

    async def add_checklist_item(self, task_id: str, text: str) -> Result:
        return await self._write(self.api.add_checklist_item, task_id, text,
                                 fallback="Failed to add checklist item", reload="project")

    def toggle_checklist_item(self, item_id: str) -> Optional["asyncio.Task[Result]"]:
        return self._optimistic(
            "toggle_checklist_item",
            lambda p: mutations.predict_toggle_checklist_item(p, item_id),
            lambda: self.api.toggle_checklist_item(item_id),
            "Failed to toggle checklist item",
        )

    def delete_checklist_item(self, item_id: str) -> Optional["asyncio.Task[Result]"]:
        return self._optimistic(
            "delete_checklist_item",
            lambda p: mutations.predict_delete_checklist_item(p, item_id),
            lambda: self.api.delete_checklist_item(item_id),
            "Failed to delete checklist item",
        )
