"""
Board schema: projects, columns, tasks, checklist items, labels, snippets, tags.

Board records are frozen dataclasses whose children are tuples, so a
snapshot handed to the client state can never be edited in place; every
change produces a new object via dataclasses.replace().

Wire format is JSON with camelCase keys (to_dict / from_dict).
"""
from enum import IntEnum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple

DEFAULT_PROJECT_COLOR = "#6366f1"
DEFAULT_LABEL_COLOR = "#6b7280"
DEFAULT_TAG_COLOR = "#6366f1"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if isinstance(value, datetime) else value


def _parse_dt(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class Priority(IntEnum):
    """Task priority; the integer value is what goes over the wire."""
    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3

    @classmethod
    def from_value(cls, value: Any) -> "Priority":
        if value is None or value == "":
            return cls.MEDIUM
        if isinstance(value, str) and not value.strip().lstrip("-").isdigit():
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Invalid priority: {value}")
        return cls(int(value))


@dataclass(frozen=True)
class Label:
    id: str
    name: str
    color: str = DEFAULT_LABEL_COLOR

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "color": self.color}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Label":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            color=data.get("color") or DEFAULT_LABEL_COLOR,
        )


@dataclass(frozen=True)
class ChecklistItem:
    id: str
    text: str
    is_completed: bool = False
    order: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "isCompleted": self.is_completed,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChecklistItem":
        return cls(
            id=data["id"],
            text=data.get("text", ""),
            is_completed=bool(data.get("isCompleted", False)),
            order=int(data.get("order", 0)),
        )


@dataclass(frozen=True)
class Task:
    """One card on the board. `order` is its index among the column's active tasks."""

    id: str
    title: str
    description: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None
    order: int = 0
    is_archived: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    labels: Tuple[Label, ...] = ()
    checklists: Tuple[ChecklistItem, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": int(self.priority),
            "dueDate": _iso(self.due_date),
            "order": self.order,
            "isArchived": self.is_archived,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "labels": [label.to_dict() for label in self.labels],
            "checklists": [item.to_dict() for item in self.checklists],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            description=data.get("description"),
            priority=Priority.from_value(data.get("priority")),
            due_date=_parse_dt(data.get("dueDate")),
            order=int(data.get("order", 0)),
            is_archived=bool(data.get("isArchived", False)),
            created_at=_parse_dt(data.get("createdAt")),
            updated_at=_parse_dt(data.get("updatedAt")),
            labels=tuple(Label.from_dict(l) for l in data.get("labels") or []),
            checklists=tuple(
                sorted(
                    (ChecklistItem.from_dict(c) for c in data.get("checklists") or []),
                    key=lambda c: c.order,
                )
            ),
        )


@dataclass(frozen=True)
class Column:
    id: str
    name: str
    order: int = 0
    tasks: Tuple[Task, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "order": self.order,
            "tasks": [t.to_dict() for t in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Column":
        tasks = sorted(
            (Task.from_dict(t) for t in data.get("tasks") or []),
            key=lambda t: t.order,
        )
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            order=int(data.get("order", 0)),
            tasks=tuple(tasks),
        )


@dataclass(frozen=True)
class Project:
    """A board. Columns are kept sorted by `order`."""

    id: str
    name: str
    description: Optional[str] = None
    color: str = DEFAULT_PROJECT_COLOR
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    columns: Tuple[Column, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "columns": [c.to_dict() for c in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        columns = sorted(
            (Column.from_dict(c) for c in data.get("columns") or []),
            key=lambda c: c.order,
        )
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description"),
            color=data.get("color") or DEFAULT_PROJECT_COLOR,
            created_at=_parse_dt(data.get("createdAt")),
            updated_at=_parse_dt(data.get("updatedAt")),
            columns=tuple(columns),
        )


@dataclass(frozen=True)
class ProjectSummary:
    id: str
    name: str
    description: Optional[str] = None
    color: str = DEFAULT_PROJECT_COLOR
    created_at: Optional[datetime] = None
    column_count: int = 0
    task_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "createdAt": _iso(self.created_at),
            "columnCount": self.column_count,
            "taskCount": self.task_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectSummary":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description"),
            color=data.get("color") or DEFAULT_PROJECT_COLOR,
            created_at=_parse_dt(data.get("createdAt")),
            column_count=int(data.get("columnCount", 0)),
            task_count=int(data.get("taskCount", 0)),
        )


@dataclass(frozen=True)
class Tag:
    """A per-user snippet tag; names are unique per user, ignoring case."""
    id: str
    name: str
    color: str = DEFAULT_TAG_COLOR

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "color": self.color}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tag":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            color=data.get("color") or DEFAULT_TAG_COLOR,
        )


@dataclass
class Snippet:
    """A saved code snippet. Language is stored lowercased."""

    id: str
    title: str
    code: str
    language: str
    description: Optional[str] = None
    is_favorite: bool = False
    tags: List[Tag] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "code": self.code,
            "language": self.language,
            "description": self.description,
            "isFavorite": self.is_favorite,
            "tags": [t.to_dict() for t in self.tags],
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def to_summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "language": self.language,
            "isFavorite": self.is_favorite,
            "tags": [t.to_dict() for t in self.tags],
            "createdAt": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snippet":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            code=data.get("code", ""),
            language=(data.get("language") or "").lower(),
            description=data.get("description"),
            is_favorite=bool(data.get("isFavorite", False)),
            tags=[Tag.from_dict(t) for t in data.get("tags") or []],
            created_at=_parse_dt(data.get("createdAt")) or utc_now(),
            updated_at=_parse_dt(data.get("updatedAt")),
        )
