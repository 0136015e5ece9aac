#!/usr/bin/env python3
"""
Taskboard Server
----------------
JSON API for kanban boards and saved snippets, backed by SQLite.

Usage:
    taskboard-server --create-user alice        # prints a bearer token
    taskboard-server --host 127.0.0.1 --port 5100 --db ./taskboard.db

API (all /api routes need `Authorization: Bearer <token>`):
    GET    /api/projects                          → [ProjectSummary]
    POST   /api/projects                          → Project (201)
    GET    /api/projects/<id>                     → Project with columns and tasks
    PUT    /api/projects/<id>/columns/reorder     { columnIds }              → 204
    PUT    /api/columns/<id>/tasks/reorder        { taskIds }                → 204
    PUT    /api/tasks/<id>/move                   { targetColumnId, newOrder } → 204
    GET|POST /api/tags, DELETE /api/tags/<id>    per-user snippet tags
    ...    column, task, checklist, label and snippet CRUD (see routes below)
    GET    /health                                → { status, db }

Failures come back as { "errors": [...] } with 400, 401, 404 or 500.
"""

import argparse
import logging
import sys
from functools import wraps
from typing import Any, Dict, List, Optional

from flask import Blueprint, Flask, current_app, g, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import BoardError, ConfigError, Unauthorized, ValidationFailed
from .snippets import SnippetStore
from .store import KanbanStore

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [taskboard] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def _store() -> KanbanStore:
    return current_app.extensions["kanban_store"]


def _snippets() -> SnippetStore:
    return current_app.extensions["snippet_store"]


# ── Auth ─────────────────────────────────────────────────────────────────────

def require_token(f):
    """Decorator: reject requests without a valid bearer token; sets g.user_id."""
    @wraps(f)
    def decorated(*args, **kwargs):
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            raise Unauthorized("Authentication required.")
        user_id = _store().user_for_token(token)
        if user_id is None:
            raise Unauthorized("Invalid or expired token.")
        g.user_id = user_id
        return f(*args, **kwargs)
    return decorated


# ── Request helpers ──────────────────────────────────────────────────────────

def _body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object.")
    return data


def _id_list(data: Dict[str, Any], key: str, noun: str) -> List[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationFailed(f"{noun} IDs must be a list of strings.")
    return value


def _flag(value: Optional[str]) -> Optional[bool]:
    if value is None or value == "":
        return None
    return value.strip().lower() in ("1", "true", "yes")


def _no_content():
    return "", 204


# ── Projects ─────────────────────────────────────────────────────────────────

@api.route("/projects", methods=["GET"])
@require_token
def list_projects():
    return jsonify([p.to_dict() for p in _store().list_projects(g.user_id)])


@api.route("/projects", methods=["POST"])
@require_token
def create_project():
    data = _body()
    project = _store().create_project(
        g.user_id, data.get("name"), data.get("description"), data.get("color")
    )
    logger.info(f"Project created: {project.name} ({project.id})")
    return jsonify(project.to_dict()), 201


@api.route("/projects/<project_id>", methods=["GET"])
@require_token
def get_project(project_id):
    return jsonify(_store().get_project(g.user_id, project_id).to_dict())


@api.route("/projects/<project_id>", methods=["PUT"])
@require_token
def update_project(project_id):
    data = _body()
    project = _store().update_project(
        g.user_id, project_id, data.get("name"), data.get("description"), data.get("color")
    )
    return jsonify(project.to_dict())


@api.route("/projects/<project_id>", methods=["DELETE"])
@require_token
def delete_project(project_id):
    _store().delete_project(g.user_id, project_id)
    return _no_content()


@api.route("/projects/<project_id>/archived", methods=["GET"])
@require_token
def list_archived_tasks(project_id):
    tasks = _store().list_archived_tasks(g.user_id, project_id)
    return jsonify([t.to_dict() for t in tasks])


@api.route("/projects/<project_id>/labels", methods=["POST"])
@require_token
def create_label(project_id):
    data = _body()
    label = _store().create_label(g.user_id, project_id, data.get("name"), data.get("color"))
    return jsonify(label.to_dict()), 201


# ── Columns ──────────────────────────────────────────────────────────────────

@api.route("/projects/<project_id>/columns", methods=["POST"])
@require_token
def create_column(project_id):
    column = _store().create_column(g.user_id, project_id, _body().get("name"))
    return jsonify(column.to_dict()), 201


@api.route("/projects/<project_id>/columns/reorder", methods=["PUT"])
@require_token
def reorder_columns(project_id):
    column_ids = _id_list(_body(), "columnIds", "Column")
    _store().reorder_columns(g.user_id, project_id, column_ids)
    return _no_content()


@api.route("/columns/<column_id>", methods=["PUT"])
@require_token
def update_column(column_id):
    column = _store().update_column(g.user_id, column_id, _body().get("name"))
    return jsonify(column.to_dict())


@api.route("/columns/<column_id>", methods=["DELETE"])
@require_token
def delete_column(column_id):
    _store().delete_column(g.user_id, column_id)
    return _no_content()


# ── Tasks ────────────────────────────────────────────────────────────────────

@api.route("/columns/<column_id>/tasks", methods=["POST"])
@require_token
def create_task(column_id):
    data = _body()
    task = _store().create_task(
        g.user_id,
        column_id,
        data.get("title"),
        description=data.get("description"),
        priority=data.get("priority"),
        due_date=data.get("dueDate"),
        label_ids=data.get("labelIds"),
    )
    return jsonify(task.to_dict()), 201


@api.route("/columns/<column_id>/tasks/reorder", methods=["PUT"])
@require_token
def reorder_tasks(column_id):
    task_ids = _id_list(_body(), "taskIds", "Task")
    _store().reorder_tasks(g.user_id, column_id, task_ids)
    return _no_content()


@api.route("/tasks/<task_id>", methods=["GET"])
@require_token
def get_task(task_id):
    return jsonify(_store().get_task(g.user_id, task_id).to_dict())


@api.route("/tasks/<task_id>", methods=["PUT"])
@require_token
def update_task(task_id):
    data = _body()
    task = _store().update_task(
        g.user_id,
        task_id,
        data.get("title"),
        description=data.get("description"),
        priority=data.get("priority"),
        due_date=data.get("dueDate"),
        label_ids=data.get("labelIds"),
    )
    return jsonify(task.to_dict())


@api.route("/tasks/<task_id>", methods=["DELETE"])
@require_token
def delete_task(task_id):
    _store().delete_task(g.user_id, task_id)
    return _no_content()


@api.route("/tasks/<task_id>/move", methods=["PUT"])
@require_token
def move_task(task_id):
    data = _body()
    target_column_id = data.get("targetColumnId")
    if not target_column_id or not isinstance(target_column_id, str):
        raise ValidationFailed("Target column ID is required.")
    new_order = data.get("newOrder")
    if isinstance(new_order, bool) or not isinstance(new_order, (int, float)):
        raise ValidationFailed("Order must be a non-negative number.")
    _store().move_task(g.user_id, task_id, target_column_id, new_order)
    return _no_content()


@api.route("/tasks/<task_id>/archive", methods=["PUT"])
@require_token
def archive_task(task_id):
    archive = _body().get("archive", True)
    if not isinstance(archive, bool):
        raise ValidationFailed("Archive flag must be true or false.")
    _store().archive_task(g.user_id, task_id, archive)
    return _no_content()


# ── Checklists ───────────────────────────────────────────────────────────────

@api.route("/tasks/<task_id>/checklist", methods=["POST"])
@require_token
def add_checklist_item(task_id):
    item = _store().add_checklist_item(g.user_id, task_id, _body().get("text"))
    return jsonify(item.to_dict()), 201


@api.route("/checklist/<item_id>/toggle", methods=["PUT"])
@require_token
def toggle_checklist_item(item_id):
    return jsonify(_store().toggle_checklist_item(g.user_id, item_id).to_dict())


@api.route("/checklist/<item_id>", methods=["DELETE"])
@require_token
def delete_checklist_item(item_id):
    _store().delete_checklist_item(g.user_id, item_id)
    return _no_content()


# ── Snippets ─────────────────────────────────────────────────────────────────

@api.route("/snippets", methods=["GET"])
@require_token
def list_snippets():
    args = request.args
    page = _snippets().list_snippets(
        g.user_id,
        page=args.get("page", 1),
        page_size=args.get("pageSize", current_app.config["DEFAULT_PAGE_SIZE"]),
        language=args.get("language"),
        tag_id=args.get("tagId"),
        is_favorite=_flag(args.get("isFavorite")),
        sort_by=args.get("sortBy"),
        sort_descending=_flag(args.get("sortDescending")) is not False,
    )
    return jsonify(page)


@api.route("/snippets/search", methods=["GET"])
@require_token
def search_snippets():
    args = request.args
    page = _snippets().search_snippets(
        g.user_id,
        args.get("q", ""),
        page=args.get("page", 1),
        page_size=args.get("pageSize", current_app.config["DEFAULT_PAGE_SIZE"]),
    )
    return jsonify(page)


@api.route("/snippets", methods=["POST"])
@require_token
def create_snippet():
    data = _body()
    snippet = _snippets().create_snippet(
        g.user_id,
        data.get("title"),
        data.get("code"),
        data.get("language"),
        description=data.get("description"),
        tag_ids=_id_list(data, "tagIds", "Tag"),
    )
    return jsonify(snippet.to_dict()), 201


@api.route("/snippets/<snippet_id>", methods=["GET"])
@require_token
def get_snippet(snippet_id):
    return jsonify(_snippets().get_snippet(g.user_id, snippet_id).to_dict())


@api.route("/snippets/<snippet_id>", methods=["PUT"])
@require_token
def update_snippet(snippet_id):
    data = _body()
    snippet = _snippets().update_snippet(
        g.user_id,
        snippet_id,
        data.get("title"),
        data.get("code"),
        data.get("language"),
        description=data.get("description"),
        tag_ids=_id_list(data, "tagIds", "Tag") if data.get("tagIds") is not None else None,
    )
    return jsonify(snippet.to_dict())


@api.route("/snippets/<snippet_id>", methods=["DELETE"])
@require_token
def delete_snippet(snippet_id):
    _snippets().delete_snippet(g.user_id, snippet_id)
    return _no_content()


@api.route("/snippets/<snippet_id>/favorite", methods=["PUT"])
@require_token
def toggle_favorite(snippet_id):
    return jsonify(_snippets().toggle_favorite(g.user_id, snippet_id).to_dict())


# ── Tags ─────────────────────────────────────────────────────────────────────

@api.route("/tags", methods=["GET"])
@require_token
def list_tags():
    return jsonify([t.to_dict() for t in _snippets().list_tags(g.user_id)])


@api.route("/tags", methods=["POST"])
@require_token
def create_tag():
    data = _body()
    tag = _snippets().create_tag(g.user_id, data.get("name"), data.get("color"))
    return jsonify(tag.to_dict()), 201


@api.route("/tags/<tag_id>", methods=["DELETE"])
@require_token
def delete_tag(tag_id):
    _snippets().delete_tag(g.user_id, tag_id)
    return _no_content()


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(config: Optional[Config] = None, store: Optional[KanbanStore] = None) -> Flask:
    """Build the Flask app around one store; tests pass their own."""
    config = config or Config.load()
    store = store or KanbanStore(config.db_path)

    app = Flask(__name__)
    app.config["DEFAULT_PAGE_SIZE"] = config.default_page_size
    app.extensions["kanban_store"] = store
    app.extensions["snippet_store"] = SnippetStore(store)
    app.register_blueprint(api)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "db": store.db_path})

    @app.errorhandler(BoardError)
    def _handle_board_error(ex: BoardError):
        if ex.status < 500:
            logger.info(f"{request.method} {request.path} rejected ({ex.status}): {ex.errors[0]}")
        return jsonify({"errors": ex.errors}), ex.status or 500

    @app.errorhandler(HTTPException)
    def _handle_http_error(ex: HTTPException):
        return jsonify({"errors": [ex.description or ex.name]}), ex.code

    @app.errorhandler(Exception)
    def _handle_unexpected(ex: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return jsonify({"errors": ["Internal server error"]}), 500

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(description="Taskboard Server")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--db", help="Path to taskboard.db (overrides TASKBOARD_DB env var)")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--create-user", metavar="USERNAME",
                        help="Register a user, print its API token and exit")
    args = parser.parse_args(argv)

    try:
        config = Config.load(args.config)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.db:
        config.db_path = args.db
        config.resolve_paths()

    setup_logging(config.log_level)
    store = KanbanStore(config.db_path)

    if args.create_user:
        try:
            user = store.create_user(args.create_user)
        except BoardError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(user["token"])
        return 0

    app = create_app(config, store)
    logger.info(f"Taskboard server on http://{config.host}:{config.port} (db: {store.db_path})")
    app.run(host=config.host, port=config.port, debug=False, threaded=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
