"""
HTTP client for the board API.

Every method returns a Result and never raises for HTTP or network failures:
a non-2xx response becomes Result.failure(*body["errors"], status=...), and
a timeout or refused connection becomes a NetworkFailure result (status 0).
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from .config import Config
from .errors import NetworkFailure, Result
from .schema import ChecklistItem, Column, Label, Project, ProjectSummary, Snippet, Tag, Task

logger = logging.getLogger(__name__)


def _error_messages(response: requests.Response) -> List[str]:
    try:
        body = response.json()
    except ValueError:
        return []
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list):
            return [str(e) for e in errors]
        if isinstance(errors, str):
            return [errors]
        if body.get("error"):
            return [str(body["error"])]
    return []


class BoardApiClient:
    """Thin requests wrapper, one method per endpoint."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_config(cls, config: Config) -> "BoardApiClient":
        return cls(config.api_url, token=config.api_token, timeout=config.request_timeout)

    def _request(self, method: str, path: str, parse: Callable[[Any], Any] = None,
                 json: Any = None, params: Dict[str, Any] = None) -> Result:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=json, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"{method} {path} failed: {e}")
            return Result.from_error(NetworkFailure(f"Network error: {e.__class__.__name__}"))

        if not response.ok:
            return Result.failure(*_error_messages(response), status=response.status_code)

        if response.status_code == 204 or not response.content:
            return Result.success(None, status=response.status_code)
        try:
            data = response.json()
            return Result.success(parse(data) if parse else data, status=response.status_code)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"{method} {path} returned an unreadable body: {e}")
            return Result.failure("Unexpected response from server.", status=response.status_code)

    # ── Projects ─────────────────────────────────────────────────────────────

    def list_projects(self) -> Result:
        return self._request("GET", "/api/projects",
                             parse=lambda data: [ProjectSummary.from_dict(p) for p in data])

    def get_project(self, project_id: str) -> Result:
        return self._request("GET", f"/api/projects/{project_id}", parse=Project.from_dict)

    def create_project(self, name: str, description: str = None, color: str = None) -> Result:
        body = {"name": name, "description": description, "color": color}
        return self._request("POST", "/api/projects", parse=Project.from_dict, json=body)

    def update_project(self, project_id: str, name: str, description: str = None, color: str = None) -> Result:
        body = {"name": name, "description": description, "color": color}
        return self._request("PUT", f"/api/projects/{project_id}", parse=Project.from_dict, json=body)

    def delete_project(self, project_id: str) -> Result:
        return self._request("DELETE", f"/api/projects/{project_id}")

    def list_archived_tasks(self, project_id: str) -> Result:
        return self._request("GET", f"/api/projects/{project_id}/archived",
                             parse=lambda data: [Task.from_dict(t) for t in data])

    def create_label(self, project_id: str, name: str, color: str = None) -> Result:
        return self._request("POST", f"/api/projects/{project_id}/labels",
                             parse=Label.from_dict, json={"name": name, "color": color})

    # ── Columns ──────────────────────────────────────────────────────────────

    def create_column(self, project_id: str, name: str) -> Result:
        return self._request("POST", f"/api/projects/{project_id}/columns",
                             parse=Column.from_dict, json={"name": name})

    def update_column(self, column_id: str, name: str) -> Result:
        return self._request("PUT", f"/api/columns/{column_id}", parse=Column.from_dict, json={"name": name})

    def delete_column(self, column_id: str) -> Result:
        return self._request("DELETE", f"/api/columns/{column_id}")

    def reorder_columns(self, project_id: str, column_ids: Sequence[str]) -> Result:
        return self._request("PUT", f"/api/projects/{project_id}/columns/reorder",
                             json={"columnIds": list(column_ids)})

    # ── Tasks ────────────────────────────────────────────────────────────────

    def get_task(self, task_id: str) -> Result:
        return self._request("GET", f"/api/tasks/{task_id}", parse=Task.from_dict)

    def create_task(self, column_id: str, title: str, description: str = None, priority: int = 1,
                    due_date: str = None, label_ids: Sequence[str] = None) -> Result:
        body = {
            "title": title,
            "description": description,
            "priority": int(priority),
            "dueDate": due_date,
            "labelIds": list(label_ids or []),
        }
        return self._request("POST", f"/api/columns/{column_id}/tasks", parse=Task.from_dict, json=body)

    def update_task(self, task_id: str, title: str, description: str = None, priority: int = 1,
                    due_date: str = None, label_ids: Sequence[str] = None) -> Result:
        body = {
            "title": title,
            "description": description,
            "priority": int(priority),
            "dueDate": due_date,
            "labelIds": None if label_ids is None else list(label_ids),
        }
        return self._request("PUT", f"/api/tasks/{task_id}", parse=Task.from_dict, json=body)

    def delete_task(self, task_id: str) -> Result:
        return self._request("DELETE", f"/api/tasks/{task_id}")

    def archive_task(self, task_id: str, archive: bool = True) -> Result:
        return self._request("PUT", f"/api/tasks/{task_id}/archive", json={"archive": archive})

    def reorder_tasks(self, column_id: str, task_ids: Sequence[str]) -> Result:
        return self._request("PUT", f"/api/columns/{column_id}/tasks/reorder",
                             json={"taskIds": list(task_ids)})

    def move_task(self, task_id: str, target_column_id: str, new_order: int) -> Result:
        body = {"targetColumnId": target_column_id, "newOrder": new_order}
        return self._request("PUT", f"/api/tasks/{task_id}/move", json=body)

    # ── Checklists ───────────────────────────────────────────────────────────

    def add_checklist_item(self, task_id: str, text: str) -> Result:
        return self._request("POST", f"/api/tasks/{task_id}/checklist",
                             parse=ChecklistItem.from_dict, json={"text": text})

    def toggle_checklist_item(self, item_id: str) -> Result:
        return self._request("PUT", f"/api/checklist/{item_id}/toggle", parse=ChecklistItem.from_dict)

    def delete_checklist_item(self, item_id: str) -> Result:
        return self._request("DELETE", f"/api/checklist/{item_id}")

    # ── Snippets ─────────────────────────────────────────────────────────────

    def list_snippets(self, page: int = 1, page_size: int = 10, language: str = None, tag_id: str = None,
                      is_favorite: Optional[bool] = None, sort_by: str = None,
                      sort_descending: bool = True) -> Result:
        params: Dict[str, Any] = {"page": page, "pageSize": page_size,
                                  "sortDescending": str(sort_descending).lower()}
        if language:
            params["language"] = language
        if tag_id:
            params["tagId"] = tag_id
        if is_favorite is not None:
            params["isFavorite"] = str(is_favorite).lower()
        if sort_by:
            params["sortBy"] = sort_by
        return self._request("GET", "/api/snippets", params=params)

    def search_snippets(self, term: str, page: int = 1, page_size: int = 10) -> Result:
        return self._request("GET", "/api/snippets/search",
                             params={"q": term, "page": page, "pageSize": page_size})

    def get_snippet(self, snippet_id: str) -> Result:
        return self._request("GET", f"/api/snippets/{snippet_id}", parse=Snippet.from_dict)

    def create_snippet(self, title: str, code: str, language: str, description: str = None,
                       tag_ids: Sequence[str] = None) -> Result:
        body = {"title": title, "code": code, "language": language,
                "description": description, "tagIds": list(tag_ids or [])}
        return self._request("POST", "/api/snippets", parse=Snippet.from_dict, json=body)

    def update_snippet(self, snippet_id: str, title: str, code: str, language: str,
                       description: str = None, tag_ids: Sequence[str] = None) -> Result:
        """tag_ids=None leaves the snippet's tags as they are."""
        body = {"title": title, "code": code, "language": language,
                "description": description, "tagIds": None if tag_ids is None else list(tag_ids)}
        return self._request("PUT", f"/api/snippets/{snippet_id}", parse=Snippet.from_dict, json=body)

    def delete_snippet(self, snippet_id: str) -> Result:
        return self._request("DELETE", f"/api/snippets/{snippet_id}")

    def toggle_favorite(self, snippet_id: str) -> Result:
        return self._request("PUT", f"/api/snippets/{snippet_id}/favorite", parse=Snippet.from_dict)

    # ── Tags ─────────────────────────────────────────────────────────────────

    def list_tags(self) -> Result:
        return self._request("GET", "/api/tags", parse=lambda data: [Tag.from_dict(t) for t in data])

    def create_tag(self, name: str, color: str = None) -> Result:
        return self._request("POST", "/api/tags", parse=Tag.from_dict, json={"name": name, "color": color})

    def delete_tag(self, tag_id: str) -> Result:
        return self._request("DELETE", f"/api/tags/{tag_id}")
