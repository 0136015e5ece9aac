"""
Board storage backend (SQLite).

Source of truth for projects, columns, tasks, checklist items and labels.
Every write runs inside one BEGIN IMMEDIATE transaction, so a request either
commits completely or leaves the database untouched, and concurrent writers
on the same database serialize on SQLite's write lock. There is no version
check: the last committed request wins.

Ordering is stored in a `position` column (ORDER is an SQL keyword) and is
kept contiguous 0..n-1 per parent by rewriting every affected sibling.
"""
import hmac
import logging
import re
import secrets
import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Dict, Any, Sequence

from . import ordering
from .errors import NotFound, ValidationFailed
from .schema import (
    ChecklistItem,
    Column,
    DEFAULT_LABEL_COLOR,
    DEFAULT_PROJECT_COLOR,
    Label,
    Priority,
    Project,
    ProjectSummary,
    Task,
    utc_now,
    _parse_dt,
)

logger = logging.getLogger(__name__)

PROJECT_NAME_MAX = 100
PROJECT_DESCRIPTION_MAX = 500
COLUMN_NAME_MAX = 50
TASK_TITLE_MAX = 200
TASK_DESCRIPTION_MAX = 2000
CHECKLIST_TEXT_MAX = 200
LABEL_NAME_MAX = 30
COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")

ARCHIVED_POSITION = -1


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with FK enforcement and WAL mode; transactions are explicit."""
    conn = sqlite3.connect(db_path, isolation_level=None, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def new_id() -> str:
    return uuid.uuid4().hex


def _now() -> str:
    return utc_now().isoformat()


def _require_text(value: Any, field: str, max_len: int) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationFailed(f"{field} is required.")
    if len(text) > max_len:
        raise ValidationFailed(f"{field} cannot exceed {max_len} characters.")
    return text


def _optional_text(value: Any, field: str, max_len: int) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if len(text) > max_len:
        raise ValidationFailed(f"{field} cannot exceed {max_len} characters.")
    return text or None


def _color(value: Any, default: str) -> str:
    if value is None or str(value).strip() == "":
        return default
    if not COLOR_RE.match(str(value)):
        raise ValidationFailed("Color must be a hex value like #1a2b3c.")
    return str(value)


def _priority(value: Any) -> Priority:
    try:
        return Priority.from_value(value)
    except ValueError:
        raise ValidationFailed("Priority must be one of Low, Medium, High, Critical.")


def _due_date(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    try:
        return _parse_dt(value).isoformat()
    except (TypeError, ValueError):
        raise ValidationFailed(f"Invalid due date: {value}")


class KanbanStore:
    """SQLite-backed store for boards."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "taskboard" / "taskboard.db")
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    # ── Connections ──────────────────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """One all-or-nothing write unit; rolls back on any exception."""
        conn = _connect(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def reading(self) -> Iterator[sqlite3.Connection]:
        conn = _connect(self.db_path)
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    username TEXT NOT NULL UNIQUE,
                    api_token TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    description TEXT,
                    color TEXT NOT NULL DEFAULT '#6366f1',
                    created_at TEXT NOT NULL,
                    updated_at TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS board_columns (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    column_id TEXT NOT NULL REFERENCES board_columns(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    description TEXT,
                    priority INTEGER NOT NULL DEFAULT 1,
                    due_date TEXT,
                    position INTEGER NOT NULL,
                    is_archived INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS labels (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    color TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS task_labels (
                    task_id TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
                    label_id TEXT NOT NULL REFERENCES labels(id) ON DELETE CASCADE,
                    PRIMARY KEY (task_id, label_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS checklist_items (
                    id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
                    text TEXT NOT NULL,
                    is_completed INTEGER NOT NULL DEFAULT 0,
                    position INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_projects_user ON projects(user_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_columns_project ON board_columns(project_id, position)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_column ON tasks(column_id, position)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_checklist_task ON checklist_items(task_id, position)")

    # ── Users / tokens ───────────────────────────────────────────────────────

    def create_user(self, username: str) -> Dict[str, str]:
        """Register a user and issue its bearer token."""
        name = _require_text(username, "Username", 100)
        user = {"id": new_id(), "username": name, "token": secrets.token_hex(24)}
        try:
            with self.transaction() as conn:
                conn.execute(
                    "INSERT INTO users (id, username, api_token, created_at) VALUES (?, ?, ?, ?)",
                    (user["id"], name, user["token"], _now()),
                )
        except sqlite3.IntegrityError:
            raise ValidationFailed(f"Username '{name}' is already taken.")
        logger.info(f"User created: {name}")
        return user

    def user_for_token(self, token: str) -> Optional[str]:
        """Return the user id owning token, or None."""
        if not token:
            return None
        with self.reading() as conn:
            row = conn.execute(
                "SELECT id, api_token FROM users WHERE api_token = ?", (token,)
            ).fetchone()
        if row and hmac.compare_digest(row["api_token"], token):
            return row["id"]
        return None

    # ── Ownership lookups (inside a transaction) ─────────────────────────────

    def _owned_project(self, conn, user_id: str, project_id: str, message: str = "Project not found."):
        row = conn.execute(
            "SELECT * FROM projects WHERE id = ? AND user_id = ?", (project_id, user_id)
        ).fetchone()
        if not row:
            raise NotFound(message)
        return row

    def _owned_column(self, conn, user_id: str, column_id: str, message: str = "Column not found."):
        row = conn.execute("""
            SELECT c.* FROM board_columns c
            JOIN projects p ON p.id = c.project_id
            WHERE c.id = ? AND p.user_id = ?
        """, (column_id, user_id)).fetchone()
        if not row:
            raise NotFound(message)
        return row

    def _owned_task(self, conn, user_id: str, task_id: str):
        row = conn.execute("""
            SELECT t.*, c.project_id AS project_id FROM tasks t
            JOIN board_columns c ON c.id = t.column_id
            JOIN projects p ON p.id = c.project_id
            WHERE t.id = ? AND p.user_id = ?
        """, (task_id, user_id)).fetchone()
        if not row:
            raise NotFound("Task not found.")
        return row

    def _owned_checklist_item(self, conn, user_id: str, item_id: str):
        row = conn.execute("""
            SELECT i.* FROM checklist_items i
            JOIN tasks t ON t.id = i.task_id
            JOIN board_columns c ON c.id = t.column_id
            JOIN projects p ON p.id = c.project_id
            WHERE i.id = ? AND p.user_id = ?
        """, (item_id, user_id)).fetchone()
        if not row:
            raise NotFound("Checklist item not found.")
        return row

    def _column_ids(self, conn, project_id: str) -> List[str]:
        rows = conn.execute(
            "SELECT id FROM board_columns WHERE project_id = ? ORDER BY position, created_at",
            (project_id,),
        ).fetchall()
        return [r["id"] for r in rows]

    def _active_task_ids(self, conn, column_id: str) -> List[str]:
        rows = conn.execute(
            "SELECT id FROM tasks WHERE column_id = ? AND is_archived = 0 ORDER BY position, created_at",
            (column_id,),
        ).fetchall()
        return [r["id"] for r in rows]

    def _checklist_ids(self, conn, task_id: str) -> List[str]:
        rows = conn.execute(
            "SELECT id FROM checklist_items WHERE task_id = ? ORDER BY position, created_at",
            (task_id,),
        ).fetchall()
        return [r["id"] for r in rows]

    def _write_positions(self, conn, table: str, ids: Sequence[str], extra: Dict[str, Any] = None) -> None:
        """Rewrite position for every id in its final arrangement."""
        now = _now()
        extra = extra or {}
        assignments = "".join(f", {col} = ?" for col in extra)
        touch = ", updated_at = ?" if table != "checklist_items" else ""
        for item_id, position in ordering.positions(ids):
            params: List[Any] = [position, *extra.values()]
            if touch:
                params.append(now)
            params.append(item_id)
            conn.execute(
                f"UPDATE {table} SET position = ?{assignments}{touch} WHERE id = ?",
                params,
            )

    # ── Hydration ────────────────────────────────────────────────────────────

    def _labels_for(self, conn, task_ids: Sequence[str]) -> Dict[str, List[Label]]:
        result: Dict[str, List[Label]] = {tid: [] for tid in task_ids}
        if not task_ids:
            return result
        marks = ",".join("?" for _ in task_ids)
        rows = conn.execute(f"""
            SELECT tl.task_id, l.id, l.name, l.color FROM task_labels tl
            JOIN labels l ON l.id = tl.label_id
            WHERE tl.task_id IN ({marks})
            ORDER BY l.name
        """, list(task_ids)).fetchall()
        for row in rows:
            result[row["task_id"]].append(Label(id=row["id"], name=row["name"], color=row["color"]))
        return result

    def _checklists_for(self, conn, task_ids: Sequence[str]) -> Dict[str, List[ChecklistItem]]:
        result: Dict[str, List[ChecklistItem]] = {tid: [] for tid in task_ids}
        if not task_ids:
            return result
        marks = ",".join("?" for _ in task_ids)
        rows = conn.execute(f"""
            SELECT * FROM checklist_items WHERE task_id IN ({marks})
            ORDER BY position
        """, list(task_ids)).fetchall()
        for row in rows:
            result[row["task_id"]].append(self._row_to_checklist_item(row))
        return result

    def _tasks_from_rows(self, conn, rows) -> List[Task]:
        ids = [r["id"] for r in rows]
        labels = self._labels_for(conn, ids)
        checklists = self._checklists_for(conn, ids)
        return [self._row_to_task(r, labels[r["id"]], checklists[r["id"]]) for r in rows]

    def _load_project(self, conn, project_row) -> Project:
        column_rows = conn.execute(
            "SELECT * FROM board_columns WHERE project_id = ? ORDER BY position",
            (project_row["id"],),
        ).fetchall()
        task_rows = conn.execute("""
            SELECT t.* FROM tasks t
            JOIN board_columns c ON c.id = t.column_id
            WHERE c.project_id = ? AND t.is_archived = 0
            ORDER BY t.position
        """, (project_row["id"],)).fetchall()
        tasks = self._tasks_from_rows(conn, task_rows)
        by_column: Dict[str, List[Task]] = {r["id"]: [] for r in column_rows}
        for row, task in zip(task_rows, tasks):
            by_column[row["column_id"]].append(task)
        columns = tuple(
            Column(id=r["id"], name=r["name"], order=r["position"], tasks=tuple(by_column[r["id"]]))
            for r in column_rows
        )
        return Project(
            id=project_row["id"],
            name=project_row["name"],
            description=project_row["description"],
            color=project_row["color"],
            created_at=_parse_dt(project_row["created_at"]),
            updated_at=_parse_dt(project_row["updated_at"]),
            columns=columns,
        )

    def _load_task(self, conn, task_id: str) -> Task:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return self._tasks_from_rows(conn, [row])[0]

    # ── Projects ─────────────────────────────────────────────────────────────

    def list_projects(self, user_id: str) -> List[ProjectSummary]:
        """Projects owned by user_id, most recently created first."""
        with self.reading() as conn:
            rows = conn.execute("""
                SELECT p.*,
                    (SELECT COUNT(*) FROM board_columns c WHERE c.project_id = p.id) AS column_count,
                    (SELECT COUNT(*) FROM tasks t JOIN board_columns c ON c.id = t.column_id
                     WHERE c.project_id = p.id AND t.is_archived = 0) AS task_count
                FROM projects p WHERE p.user_id = ?
                ORDER BY p.created_at DESC
            """, (user_id,)).fetchall()
        return [
            ProjectSummary(
                id=r["id"],
                name=r["name"],
                description=r["description"],
                color=r["color"],
                created_at=_parse_dt(r["created_at"]),
                column_count=r["column_count"],
                task_count=r["task_count"],
            )
            for r in rows
        ]

    def get_project(self, user_id: str, project_id: str) -> Project:
        """Full board for one project, archived tasks omitted."""
        with self.reading() as conn:
            row = self._owned_project(conn, user_id, project_id)
            return self._load_project(conn, row)

    def create_project(self, user_id: str, name: str, description: str = None, color: str = None) -> Project:
        name = _require_text(name, "Project name", PROJECT_NAME_MAX)
        description = _optional_text(description, "Description", PROJECT_DESCRIPTION_MAX)
        color = _color(color, DEFAULT_PROJECT_COLOR)
        project_id = new_id()
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO projects (id, user_id, name, description, color, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                (project_id, user_id, name, description, color, _now()),
            )
            row = self._owned_project(conn, user_id, project_id)
            return self._load_project(conn, row)

    def update_project(self, user_id: str, project_id: str, name: str, description: str = None, color: str = None) -> Project:
        name = _require_text(name, "Project name", PROJECT_NAME_MAX)
        description = _optional_text(description, "Description", PROJECT_DESCRIPTION_MAX)
        color = _color(color, DEFAULT_PROJECT_COLOR)
        with self.transaction() as conn:
            self._owned_project(conn, user_id, project_id)
            conn.execute(
                "UPDATE projects SET name = ?, description = ?, color = ?, updated_at = ? WHERE id = ?",
                (name, description, color, _now(), project_id),
            )
            row = self._owned_project(conn, user_id, project_id)
            return self._load_project(conn, row)

    def delete_project(self, user_id: str, project_id: str) -> None:
        """Delete a project; columns, tasks and checklists cascade."""
        with self.transaction() as conn:
            self._owned_project(conn, user_id, project_id)
            conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))

    # ── Labels ───────────────────────────────────────────────────────────────

    def create_label(self, user_id: str, project_id: str, name: str, color: str = None) -> Label:
        name = _require_text(name, "Label name", LABEL_NAME_MAX)
        color = _color(color, DEFAULT_LABEL_COLOR)
        label = Label(id=new_id(), name=name, color=color)
        with self.transaction() as conn:
            self._owned_project(conn, user_id, project_id)
            conn.execute(
                "INSERT INTO labels (id, project_id, name, color) VALUES (?, ?, ?, ?)",
                (label.id, project_id, label.name, label.color),
            )
        return label

    def _set_labels(self, conn, task_id: str, project_id: str, label_ids: Optional[Sequence[str]]) -> None:
        """Attach only labels that belong to the task's project; others are ignored."""
        conn.execute("DELETE FROM task_labels WHERE task_id = ?", (task_id,))
        if not label_ids:
            return
        for label_id in dict.fromkeys(label_ids):
            conn.execute("""
                INSERT INTO task_labels (task_id, label_id)
                SELECT ?, id FROM labels WHERE id = ? AND project_id = ?
            """, (task_id, label_id, project_id))

    # ── Columns ──────────────────────────────────────────────────────────────

    def create_column(self, user_id: str, project_id: str, name: str) -> Column:
        """Append a column; its order is the current column count."""
        name = _require_text(name, "Column name", COLUMN_NAME_MAX)
        column_id = new_id()
        with self.transaction() as conn:
            self._owned_project(conn, user_id, project_id)
            position = len(self._column_ids(conn, project_id))
            conn.execute(
                "INSERT INTO board_columns (id, project_id, name, position, created_at) VALUES (?, ?, ?, ?, ?)",
                (column_id, project_id, name, position, _now()),
            )
            conn.execute("UPDATE projects SET updated_at = ? WHERE id = ?", (_now(), project_id))
        return Column(id=column_id, name=name, order=position)

    def update_column(self, user_id: str, column_id: str, name: str) -> Column:
        name = _require_text(name, "Column name", COLUMN_NAME_MAX)
        with self.transaction() as conn:
            row = self._owned_column(conn, user_id, column_id)
            conn.execute(
                "UPDATE board_columns SET name = ?, updated_at = ? WHERE id = ?",
                (name, _now(), column_id),
            )
            task_rows = conn.execute(
                "SELECT * FROM tasks WHERE column_id = ? AND is_archived = 0 ORDER BY position",
                (column_id,),
            ).fetchall()
            tasks = self._tasks_from_rows(conn, task_rows)
        return Column(id=column_id, name=name, order=row["position"], tasks=tuple(tasks))

    def delete_column(self, user_id: str, column_id: str) -> None:
        """Delete a column (tasks cascade) and close the gap among its siblings."""
        with self.transaction() as conn:
            row = self._owned_column(conn, user_id, column_id)
            conn.execute("DELETE FROM board_columns WHERE id = ?", (column_id,))
            self._write_positions(conn, "board_columns", self._column_ids(conn, row["project_id"]))

    def reorder_columns(self, user_id: str, project_id: str, column_ids: Sequence[str]) -> None:
        """Set column i of column_ids to order i. column_ids must name every column once."""
        with self.transaction() as conn:
            self._owned_project(conn, user_id, project_id)
            current = self._column_ids(conn, project_id)
            arranged = ordering.reorder(current, list(column_ids), noun="column", parent="project")
            self._write_positions(conn, "board_columns", arranged)
            conn.execute("UPDATE projects SET updated_at = ? WHERE id = ?", (_now(), project_id))
        logger.info(f"Columns reordered in project {project_id} ({len(arranged)} columns)")

    # ── Tasks ────────────────────────────────────────────────────────────────

    def get_task(self, user_id: str, task_id: str) -> Task:
        with self.reading() as conn:
            self._owned_task(conn, user_id, task_id)
            return self._load_task(conn, task_id)

    def list_archived_tasks(self, user_id: str, project_id: str) -> List[Task]:
        with self.reading() as conn:
            self._owned_project(conn, user_id, project_id)
            rows = conn.execute("""
                SELECT t.* FROM tasks t
                JOIN board_columns c ON c.id = t.column_id
                WHERE c.project_id = ? AND t.is_archived = 1
                ORDER BY COALESCE(t.updated_at, t.created_at) DESC
            """, (project_id,)).fetchall()
            return self._tasks_from_rows(conn, rows)

    def create_task(
        self,
        user_id: str,
        column_id: str,
        title: str,
        description: str = None,
        priority: Any = Priority.MEDIUM,
        due_date: Any = None,
        label_ids: Optional[Sequence[str]] = None,
    ) -> Task:
        """Append a task to a column; its order is the current active task count."""
        title = _require_text(title, "Title", TASK_TITLE_MAX)
        description = _optional_text(description, "Description", TASK_DESCRIPTION_MAX)
        level = _priority(priority)
        due = _due_date(due_date)
        task_id = new_id()
        with self.transaction() as conn:
            column = self._owned_column(conn, user_id, column_id)
            position = len(self._active_task_ids(conn, column_id))
            conn.execute("""
                INSERT INTO tasks (id, column_id, title, description, priority, due_date, position, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (task_id, column_id, title, description, int(level), due, position, _now()))
            self._set_labels(conn, task_id, column["project_id"], label_ids)
            return self._load_task(conn, task_id)

    def update_task(
        self,
        user_id: str,
        task_id: str,
        title: str,
        description: str = None,
        priority: Any = Priority.MEDIUM,
        due_date: Any = None,
        label_ids: Optional[Sequence[str]] = None,
    ) -> Task:
        title = _require_text(title, "Title", TASK_TITLE_MAX)
        description = _optional_text(description, "Description", TASK_DESCRIPTION_MAX)
        level = _priority(priority)
        due = _due_date(due_date)
        with self.transaction() as conn:
            row = self._owned_task(conn, user_id, task_id)
            conn.execute("""
                UPDATE tasks SET title = ?, description = ?, priority = ?, due_date = ?, updated_at = ?
                WHERE id = ?
            """, (title, description, int(level), due, _now(), task_id))
            if label_ids is not None:
                self._set_labels(conn, task_id, row["project_id"], label_ids)
            return self._load_task(conn, task_id)

    def delete_task(self, user_id: str, task_id: str) -> None:
        """Delete a task and close the gap in its column."""
        with self.transaction() as conn:
            row = self._owned_task(conn, user_id, task_id)
            conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            if not row["is_archived"]:
                self._write_positions(conn, "tasks", self._active_task_ids(conn, row["column_id"]))

    def archive_task(self, user_id: str, task_id: str, archive: bool = True) -> None:
        """
        Archive or restore a task.

        Archiving takes the task out of its column's order sequence and
        reindexes the rest; restoring appends it at the end of the column.
        """
        with self.transaction() as conn:
            row = self._owned_task(conn, user_id, task_id)
            if bool(row["is_archived"]) == bool(archive):
                return
            column_id = row["column_id"]
            if archive:
                conn.execute(
                    "UPDATE tasks SET is_archived = 1, position = ?, updated_at = ? WHERE id = ?",
                    (ARCHIVED_POSITION, _now(), task_id),
                )
                self._write_positions(conn, "tasks", self._active_task_ids(conn, column_id))
            else:
                position = len(self._active_task_ids(conn, column_id))
                conn.execute(
                    "UPDATE tasks SET is_archived = 0, position = ?, updated_at = ? WHERE id = ?",
                    (position, _now(), task_id),
                )

    def reorder_tasks(self, user_id: str, column_id: str, task_ids: Sequence[str]) -> None:
        """Set task i of task_ids to order i within the column. Archived tasks are not part of the set."""
        with self.transaction() as conn:
            self._owned_column(conn, user_id, column_id)
            current = self._active_task_ids(conn, column_id)
            arranged = ordering.reorder(current, list(task_ids), noun="task", parent="column")
            self._write_positions(conn, "tasks", arranged)
        logger.info(f"Tasks reordered in column {column_id} ({len(arranged)} tasks)")

    def move_task(self, user_id: str, task_id: str, target_column_id: str, new_order: int) -> None:
        """
        Move a task to target_column_id at new_order (clamped to the end).

        Source and target columns are both reindexed in the same transaction,
        so the task is never observable in two columns or in neither.
        """
        try:
            new_order = int(new_order)
        except (TypeError, ValueError):
            raise ValidationFailed("Order must be a non-negative number.")
        if new_order < 0:
            raise ValidationFailed("Order must be a non-negative number.")

        with self.transaction() as conn:
            task = self._owned_task(conn, user_id, task_id)
            if task["is_archived"]:
                raise ValidationFailed("Archived tasks cannot be moved.")
            target = self._owned_column(conn, user_id, target_column_id, "Target column not found.")
            if target["project_id"] != task["project_id"]:
                raise ValidationFailed("Cannot move task to a column in a different project.")

            source_column_id = task["column_id"]
            same_column = source_column_id == target_column_id
            source_ids = self._active_task_ids(conn, source_column_id)
            target_ids = source_ids if same_column else self._active_task_ids(conn, target_column_id)
            new_source, new_target = ordering.move(
                source_ids, target_ids, task_id, new_order, same_parent=same_column
            )
            if not same_column:
                self._write_positions(conn, "tasks", new_source)
            self._write_positions(conn, "tasks", new_target, extra={"column_id": target_column_id})
        logger.info(f"Task {task_id} moved to column {target_column_id} at {new_target.index(task_id)}")

    # ── Checklists ───────────────────────────────────────────────────────────

    def add_checklist_item(self, user_id: str, task_id: str, text: str) -> ChecklistItem:
        text = _require_text(text, "Checklist text", CHECKLIST_TEXT_MAX)
        item_id = new_id()
        with self.transaction() as conn:
            self._owned_task(conn, user_id, task_id)
            position = len(self._checklist_ids(conn, task_id))
            conn.execute("""
                INSERT INTO checklist_items (id, task_id, text, is_completed, position, created_at)
                VALUES (?, ?, ?, 0, ?, ?)
            """, (item_id, task_id, text, position, _now()))
        return ChecklistItem(id=item_id, text=text, is_completed=False, order=position)

    def toggle_checklist_item(self, user_id: str, item_id: str) -> ChecklistItem:
        with self.transaction() as conn:
            row = self._owned_checklist_item(conn, user_id, item_id)
            conn.execute(
                "UPDATE checklist_items SET is_completed = ? WHERE id = ?",
                (0 if row["is_completed"] else 1, item_id),
            )
            row = conn.execute("SELECT * FROM checklist_items WHERE id = ?", (item_id,)).fetchone()
        return self._row_to_checklist_item(row)

    def delete_checklist_item(self, user_id: str, item_id: str) -> None:
        with self.transaction() as conn:
            row = self._owned_checklist_item(conn, user_id, item_id)
            conn.execute("DELETE FROM checklist_items WHERE id = ?", (item_id,))
            self._write_positions(conn, "checklist_items", self._checklist_ids(conn, row["task_id"]))

    # ── Row conversion ───────────────────────────────────────────────────────

    def _row_to_task(self, row: sqlite3.Row, labels: List[Label], checklists: List[ChecklistItem]) -> Task:
        return Task(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            priority=Priority(row["priority"]),
            due_date=_parse_dt(row["due_date"]),
            order=row["position"],
            is_archived=bool(row["is_archived"]),
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
            labels=tuple(labels),
            checklists=tuple(checklists),
        )

    def _row_to_checklist_item(self, row: sqlite3.Row) -> ChecklistItem:
        return ChecklistItem(
            id=row["id"],
            text=row["text"],
            is_completed=bool(row["is_completed"]),
            order=row["position"],
        )
