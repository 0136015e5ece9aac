"""
Client-side board state.

Holds the project list, the selected project and task, and the loading and
error flags. The selected project is only ever swapped whole by replace(),
so a rollback hands back exactly the object that was captured.
"""
from typing import Callable, List, Optional, Tuple

from .schema import Column, Project, ProjectSummary, Task


class BoardState:
    """The single source of UI truth on the client."""

    def __init__(self):
        self.projects: List[ProjectSummary] = []
        self.loading: bool = False
        self.error: Optional[str] = None
        self._project: Optional[Project] = None
        self._selected_task: Optional[Task] = None
        self._listeners: List[Callable[["BoardState"], None]] = []

    def subscribe(self, callback: Callable[["BoardState"], None]) -> None:
        """Register a callback invoked after every state change."""
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in self._listeners:
            callback(self)

    # ── Snapshot ─────────────────────────────────────────────────────────────

    def replace(self, project: Optional[Project]) -> None:
        """Swap the whole project subtree in one assignment."""
        self._project = project
        self._notify()

    def current_snapshot(self) -> Optional[Project]:
        """The value to restore on rollback: the current object itself."""
        return self._project

    # ── Read accessors ───────────────────────────────────────────────────────

    @property
    def selected_project(self) -> Optional[Project]:
        return self._project

    @property
    def columns(self) -> Tuple[Column, ...]:
        return self._project.columns if self._project else ()

    @property
    def selected_task(self) -> Optional[Task]:
        """The task last fetched for detail view; may be archived."""
        return self._selected_task

    @property
    def selected_task_id(self) -> Optional[str]:
        return self._selected_task.id if self._selected_task else None

    def select_task(self, task: Optional[Task]) -> None:
        self._selected_task = task
        self._notify()

    def column(self, column_id: str) -> Optional[Column]:
        for column in self.columns:
            if column.id == column_id:
                return column
        return None

    def find_task(self, task_id: str) -> Optional[Task]:
        for column in self.columns:
            for task in column.tasks:
                if task.id == task_id:
                    return task
        return None

    def column_of(self, task_id: str) -> Optional[Column]:
        for column in self.columns:
            if any(task.id == task_id for task in column.tasks):
                return column
        return None

    # ── Flags ────────────────────────────────────────────────────────────────

    def set_error(self, message: Optional[str]) -> None:
        self.error = message
        self._notify()

    def clear_error(self) -> None:
        self.error = None

    def rollback(self, previous: Optional[Project], message: str) -> None:
        """Restore previous and surface message with a single notification."""
        self.error = message
        self.replace(previous)

    def clear(self) -> None:
        """Drop the selected project, e.g. after it was deleted."""
        self._selected_task = None
        self.replace(None)
