"""
Snippet manager: saved code fragments with tags, favorites and search.

Shares the board database. Tags are per-user records linked to snippets
through snippet_tags; tag ids that are unknown or belong to another user
are ignored when attached to a snippet.
"""
import logging
import math
import sqlite3
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import NotFound, ValidationFailed
from .schema import DEFAULT_TAG_COLOR, Snippet, Tag, _parse_dt
from .store import KanbanStore, _color, _now, _optional_text, _require_text, new_id

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = (
    "csharp", "typescript", "javascript", "sql", "python",
    "bash", "json", "yaml", "html", "css", "go", "rust", "java",
    "xml", "markdown", "plaintext",
)

TITLE_MAX = 200
DESCRIPTION_MAX = 1000
TAG_NAME_MAX = 50
MAX_PAGE_SIZE = 100

# sortBy value -> SQL ordering expression
SORT_COLUMNS = {
    "title": "title",
    "language": "language",
    "updatedat": "COALESCE(updated_at, created_at)",
    "createdat": "created_at",
}


def _language(value: Any) -> str:
    language = _require_text(value, "Language", 50).lower()
    if language not in SUPPORTED_LANGUAGES:
        raise ValidationFailed(f"Language must be one of: {', '.join(SUPPORTED_LANGUAGES)}")
    return language


def page_window(page: Any, page_size: Any, default_size: int = 10):
    """Normalize paging input: page >= 1, page_size clamped to 1..100."""
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(page_size)
    except (TypeError, ValueError):
        page_size = default_size
    return max(1, page), max(1, min(page_size, MAX_PAGE_SIZE))


class SnippetStore:
    """Snippet and tag CRUD on top of a KanbanStore's database."""

    def __init__(self, store: KanbanStore):
        self.store = store
        self._init_schema()

    def _init_schema(self):
        with self.store.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS snippets (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    code TEXT NOT NULL,
                    language TEXT NOT NULL,
                    description TEXT,
                    is_favorite INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tags (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    color TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS snippet_tags (
                    snippet_id TEXT NOT NULL REFERENCES snippets(id) ON DELETE CASCADE,
                    tag_id TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
                    PRIMARY KEY (snippet_id, tag_id)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_snippets_user ON snippets(user_id, created_at)")
            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_tags_user_name ON tags(user_id, name COLLATE NOCASE)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_snippet_tags_tag ON snippet_tags(tag_id)")

    def _owned(self, conn, user_id: str, snippet_id: str) -> sqlite3.Row:
        row = conn.execute(
            "SELECT * FROM snippets WHERE id = ? AND user_id = ?", (snippet_id, user_id)
        ).fetchone()
        if not row:
            raise NotFound("Snippet not found.")
        return row

    # ── Tags ─────────────────────────────────────────────────────────────────

    def list_tags(self, user_id: str) -> List[Tag]:
        with self.store.reading() as conn:
            rows = conn.execute(
                "SELECT * FROM tags WHERE user_id = ? ORDER BY name COLLATE NOCASE", (user_id,)
            ).fetchall()
        return [self._row_to_tag(r) for r in rows]

    def create_tag(self, user_id: str, name: str, color: str = None) -> Tag:
        name = _require_text(name, "Name", TAG_NAME_MAX)
        tag = Tag(id=new_id(), name=name, color=_color(color, DEFAULT_TAG_COLOR))
        with self.store.transaction() as conn:
            existing = conn.execute(
                "SELECT 1 FROM tags WHERE user_id = ? AND name = ? COLLATE NOCASE", (user_id, name)
            ).fetchone()
            if existing:
                raise ValidationFailed("A tag with this name already exists.")
            conn.execute(
                "INSERT INTO tags (id, user_id, name, color, created_at) VALUES (?, ?, ?, ?, ?)",
                (tag.id, user_id, tag.name, tag.color, _now()),
            )
        logger.info(f"Tag created: {tag.name}")
        return tag

    def delete_tag(self, user_id: str, tag_id: str) -> None:
        """Delete a tag; links to snippets go with it, the snippets stay."""
        with self.store.transaction() as conn:
            deleted = conn.execute(
                "DELETE FROM tags WHERE id = ? AND user_id = ?", (tag_id, user_id)
            ).rowcount
        if not deleted:
            raise NotFound("Tag not found.")

    def _set_tags(self, conn, user_id: str, snippet_id: str, tag_ids: Iterable[str]) -> None:
        conn.execute("DELETE FROM snippet_tags WHERE snippet_id = ?", (snippet_id,))
        wanted = list(dict.fromkeys(t for t in tag_ids if isinstance(t, str)))
        if not wanted:
            return
        marks = ", ".join("?" for _ in wanted)
        conn.execute(f"""
            INSERT INTO snippet_tags (snippet_id, tag_id)
            SELECT ?, id FROM tags WHERE user_id = ? AND id IN ({marks})
        """, (snippet_id, user_id, *wanted))

    def _tags_by_snippet(self, conn, snippet_ids: Sequence[str]) -> Dict[str, List[Tag]]:
        result: Dict[str, List[Tag]] = {sid: [] for sid in snippet_ids}
        if not snippet_ids:
            return result
        marks = ", ".join("?" for _ in snippet_ids)
        rows = conn.execute(f"""
            SELECT st.snippet_id, t.* FROM snippet_tags st
            JOIN tags t ON t.id = st.tag_id
            WHERE st.snippet_id IN ({marks})
            ORDER BY t.name COLLATE NOCASE
        """, list(snippet_ids)).fetchall()
        for row in rows:
            result[row["snippet_id"]].append(self._row_to_tag(row))
        return result

    # ── Snippets ─────────────────────────────────────────────────────────────

    def create_snippet(
        self,
        user_id: str,
        title: str,
        code: str,
        language: str,
        description: str = None,
        tag_ids: Optional[Sequence[str]] = None,
    ) -> Snippet:
        title = _require_text(title, "Title", TITLE_MAX)
        if not code or not str(code).strip():
            raise ValidationFailed("Code is required.")
        language = _language(language)
        description = _optional_text(description, "Description", DESCRIPTION_MAX)
        snippet_id = new_id()
        with self.store.transaction() as conn:
            conn.execute("""
                INSERT INTO snippets (id, user_id, title, code, language, description, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (snippet_id, user_id, title, code, language, description, _now()))
            self._set_tags(conn, user_id, snippet_id, tag_ids or [])
            snippet = self._load(conn, user_id, snippet_id)
        logger.info(f"Snippet created: {title} ({language})")
        return snippet

    def get_snippet(self, user_id: str, snippet_id: str) -> Snippet:
        with self.store.reading() as conn:
            return self._load(conn, user_id, snippet_id)

    def update_snippet(
        self,
        user_id: str,
        snippet_id: str,
        title: str,
        code: str,
        language: str,
        description: str = None,
        tag_ids: Optional[Sequence[str]] = None,
    ) -> Snippet:
        """Replace the snippet's fields. tag_ids=None keeps the current tags."""
        title = _require_text(title, "Title", TITLE_MAX)
        if not code or not str(code).strip():
            raise ValidationFailed("Code is required.")
        language = _language(language)
        description = _optional_text(description, "Description", DESCRIPTION_MAX)
        with self.store.transaction() as conn:
            self._owned(conn, user_id, snippet_id)
            conn.execute("""
                UPDATE snippets SET title = ?, code = ?, language = ?, description = ?, updated_at = ?
                WHERE id = ?
            """, (title, code, language, description, _now(), snippet_id))
            if tag_ids is not None:
                self._set_tags(conn, user_id, snippet_id, tag_ids)
            return self._load(conn, user_id, snippet_id)

    def delete_snippet(self, user_id: str, snippet_id: str) -> None:
        with self.store.transaction() as conn:
            self._owned(conn, user_id, snippet_id)
            conn.execute("DELETE FROM snippets WHERE id = ?", (snippet_id,))

    def toggle_favorite(self, user_id: str, snippet_id: str) -> Snippet:
        with self.store.transaction() as conn:
            row = self._owned(conn, user_id, snippet_id)
            conn.execute(
                "UPDATE snippets SET is_favorite = ?, updated_at = ? WHERE id = ?",
                (0 if row["is_favorite"] else 1, _now(), snippet_id),
            )
            return self._load(conn, user_id, snippet_id)

    def list_snippets(
        self,
        user_id: str,
        page: Any = 1,
        page_size: Any = 10,
        language: str = None,
        tag_id: str = None,
        is_favorite: Optional[bool] = None,
        sort_by: str = None,
        sort_descending: bool = True,
    ) -> Dict[str, Any]:
        """
        One page of the user's snippets.

        Filters combine with AND. Unknown sort_by values fall back to
        creation time. Returns {items, totalCount, page, pageSize, totalPages}
        with summary items.
        """
        clauses = ["user_id = ?"]
        params: List[Any] = [user_id]
        if language:
            clauses.append("language = ?")
            params.append(language.lower())
        if tag_id:
            clauses.append(
                "EXISTS (SELECT 1 FROM snippet_tags st WHERE st.snippet_id = snippets.id AND st.tag_id = ?)"
            )
            params.append(tag_id)
        if is_favorite is not None:
            clauses.append("is_favorite = ?")
            params.append(1 if is_favorite else 0)

        sort_expr = SORT_COLUMNS.get((sort_by or "").lower(), "created_at")
        direction = "DESC" if sort_descending else "ASC"
        return self._page(" AND ".join(clauses), params, f"{sort_expr} {direction}", page, page_size)

    def search_snippets(self, user_id: str, term: str, page: Any = 1, page_size: Any = 10) -> Dict[str, Any]:
        """Case-insensitive substring search over title, code and description."""
        if not term or not term.strip():
            raise ValidationFailed("Search term is required.")
        pattern = f"%{term.strip().lower()}%"
        where = (
            "user_id = ? AND (LOWER(title) LIKE ? OR LOWER(code) LIKE ? "
            "OR (description IS NOT NULL AND LOWER(description) LIKE ?))"
        )
        return self._page(where, [user_id, pattern, pattern, pattern], "created_at DESC", page, page_size)

    def _page(self, where: str, params: List[Any], order_by: str, page: Any, page_size: Any) -> Dict[str, Any]:
        page, page_size = page_window(page, page_size)
        with self.store.reading() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM snippets WHERE {where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM snippets WHERE {where} ORDER BY {order_by} LIMIT ? OFFSET ?",
                [*params, page_size, (page - 1) * page_size],
            ).fetchall()
            tags = self._tags_by_snippet(conn, [r["id"] for r in rows])
        return {
            "items": [self._row_to_snippet(r, tags[r["id"]]).to_summary() for r in rows],
            "totalCount": total,
            "page": page,
            "pageSize": page_size,
            "totalPages": math.ceil(total / page_size),
        }

    def _load(self, conn, user_id: str, snippet_id: str) -> Snippet:
        row = self._owned(conn, user_id, snippet_id)
        return self._row_to_snippet(row, self._tags_by_snippet(conn, [snippet_id])[snippet_id])

    def _row_to_tag(self, row: sqlite3.Row) -> Tag:
        return Tag(id=row["id"], name=row["name"], color=row["color"])

    def _row_to_snippet(self, row: sqlite3.Row, tags: List[Tag]) -> Snippet:
        return Snippet(
            id=row["id"],
            title=row["title"],
            code=row["code"],
            language=row["language"],
            description=row["description"],
            is_favorite=bool(row["is_favorite"]),
            tags=tags,
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )
