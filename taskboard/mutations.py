"""
Predicted snapshots for optimistic updates.

Each function takes the current Project and returns a new one with the
change applied; the input is never modified. Rejections (unknown ids, a
partial id list) raise before anything is built.
"""
from dataclasses import replace
from typing import Sequence

from . import ordering
from .errors import NotFound, ValidationFailed
from .schema import Column, Project, Task


def _renumber_columns(columns: Sequence[Column]):
    return tuple(replace(c, order=i) for i, c in enumerate(columns))


def _renumber_tasks(tasks: Sequence[Task]):
    return tuple(replace(t, order=i) for i, t in enumerate(tasks))


def _column_index(project: Project, column_id: str, message: str = "Column not found.") -> int:
    for index, column in enumerate(project.columns):
        if column.id == column_id:
            return index
    raise NotFound(message)


def _task_location(project: Project, task_id: str):
    for c_index, column in enumerate(project.columns):
        for task in column.tasks:
            if task.id == task_id:
                return c_index, task
    raise NotFound("Task not found.")


def predict_reorder_columns(project: Project, ordered_ids: Sequence[str]) -> Project:
    arranged = ordering.reorder(project.columns, ordered_ids, noun="column", parent="project")
    return replace(project, columns=_renumber_columns(arranged))


def predict_reorder_tasks(project: Project, column_id: str, ordered_ids: Sequence[str]) -> Project:
    index = _column_index(project, column_id)
    column = project.columns[index]
    arranged = ordering.reorder(column.tasks, ordered_ids, noun="task", parent="column")
    columns = list(project.columns)
    columns[index] = replace(column, tasks=_renumber_tasks(arranged))
    return replace(project, columns=tuple(columns))


def predict_move_task(project: Project, task_id: str, target_column_id: str, new_index: int) -> Project:
    """
    Move a task between (or within) columns.

    Insertion index is clamped to [0, len(target)]; both columns come back
    renumbered 0..n-1. A negative or non-numeric index is rejected.
    """
    if isinstance(new_index, bool) or not isinstance(new_index, (int, float)) or not new_index >= 0:
        raise ValidationFailed("Order must be a non-negative number.")
    source_index, _ = _task_location(project, task_id)
    target_index = _column_index(project, target_column_id, "Target column not found.")
    source = project.columns[source_index]
    target = project.columns[target_index]
    same_column = source_index == target_index

    new_source, new_target = ordering.move(
        source.tasks, target.tasks, task_id, new_index, same_parent=same_column
    )

    columns = list(project.columns)
    if not same_column:
        columns[source_index] = replace(source, tasks=_renumber_tasks(new_source))
    columns[target_index] = replace(target, tasks=_renumber_tasks(new_target))
    return replace(project, columns=tuple(columns))


def _replace_task(project: Project, task_id: str, updated: Task) -> Project:
    c_index, _ = _task_location(project, task_id)
    column = project.columns[c_index]
    tasks = tuple(updated if t.id == task_id else t for t in column.tasks)
    columns = list(project.columns)
    columns[c_index] = replace(column, tasks=tasks)
    return replace(project, columns=tuple(columns))


def _task_with_item(project: Project, item_id: str) -> Task:
    for column in project.columns:
        for task in column.tasks:
            if any(item.id == item_id for item in task.checklists):
                return task
    raise NotFound("Checklist item not found.")


def predict_toggle_checklist_item(project: Project, item_id: str) -> Project:
    task = _task_with_item(project, item_id)
    items = tuple(
        replace(item, is_completed=not item.is_completed) if item.id == item_id else item
        for item in task.checklists
    )
    return _replace_task(project, task.id, replace(task, checklists=items))


def predict_delete_checklist_item(project: Project, item_id: str) -> Project:
    task = _task_with_item(project, item_id)
    remaining = [item for item in task.checklists if item.id != item_id]
    items = tuple(replace(item, order=i) for i, item in enumerate(remaining))
    return _replace_task(project, task.id, replace(task, checklists=items))
