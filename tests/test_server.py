"""
Tests for the Flask JSON API (Flask test client, temporary database).
"""

import pytest

from taskboard.server import main


def _column_ids(client, auth, project_id):
    resp = client.get(f"/api/projects/{project_id}", headers=auth)
    assert resp.status_code == 200
    return [c["id"] for c in resp.get_json()["columns"]]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Auth and health
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestAuth:

    def test_missing_token(self, client):
        resp = client.get("/api/projects")
        assert resp.status_code == 401
        assert resp.get_json() == {"errors": ["Authentication required."]}

    def test_wrong_token(self, client, user):
        resp = client.get("/api/projects", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_wrong_scheme(self, client, user):
        resp = client.get("/api/projects", headers={"Authorization": f"Basic {user['token']}"})
        assert resp.status_code == 401

    def test_valid_token(self, client, auth):
        resp = client.get("/api/projects", headers=auth)
        assert resp.status_code == 200
        assert resp.get_json() == []


def test_health(client, store):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok", "db": store.db_path}


def test_unknown_route_renders_errors(client, auth):
    resp = client.get("/api/nothing-here", headers=auth)
    assert resp.status_code == 404
    assert "errors" in resp.get_json()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Board CRUD
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestBoardCrud:

    def test_create_and_fetch_board(self, client, auth):
        resp = client.post("/api/projects", json={"name": "Launch"}, headers=auth)
        assert resp.status_code == 201
        project = resp.get_json()
        assert project["color"] == "#6366f1"

        for name in ("To Do", "Done"):
            resp = client.post(f"/api/projects/{project['id']}/columns", json={"name": name}, headers=auth)
            assert resp.status_code == 201

        resp = client.get(f"/api/projects/{project['id']}", headers=auth)
        columns = resp.get_json()["columns"]
        assert [(c["name"], c["order"]) for c in columns] == [("To Do", 0), ("Done", 1)]

    def test_create_task_camel_case(self, client, auth, board):
        resp = client.post(
            f"/api/columns/{board['todo']}/tasks",
            json={"title": "Ship", "priority": 3, "dueDate": "2026-05-01T12:00:00Z"},
            headers=auth,
        )
        assert resp.status_code == 201
        task = resp.get_json()
        assert task["order"] == 2
        assert task["priority"] == 3
        assert task["isArchived"] is False
        assert task["dueDate"].startswith("2026-05-01")

    def test_validation_error_shape(self, client, auth):
        resp = client.post("/api/projects", json={"name": ""}, headers=auth)
        assert resp.status_code == 400
        assert resp.get_json() == {"errors": ["Project name is required."]}

    def test_non_object_body_rejected(self, client, auth):
        resp = client.post("/api/projects", json=["x"], headers=auth)
        assert resp.status_code == 400

    def test_missing_project(self, client, auth):
        resp = client.get("/api/projects/missing", headers=auth)
        assert resp.status_code == 404
        assert resp.get_json() == {"errors": ["Project not found."]}

    def test_archive_and_list_archived(self, client, auth, board):
        resp = client.put(f"/api/tasks/{board['t1']}/archive", json={"archive": True}, headers=auth)
        assert resp.status_code == 204
        resp = client.get(f"/api/projects/{board['project']}/archived", headers=auth)
        assert [t["id"] for t in resp.get_json()] == [board["t1"]]

    @pytest.mark.parametrize("flag", ["false", 0, None, [], "true"])
    def test_archive_flag_must_be_boolean(self, client, auth, board, flag):
        resp = client.put(f"/api/tasks/{board['t1']}/archive", json={"archive": flag}, headers=auth)
        assert resp.status_code == 400
        assert resp.get_json() == {"errors": ["Archive flag must be true or false."]}
        resp = client.get(f"/api/projects/{board['project']}/archived", headers=auth)
        assert resp.get_json() == []

    def test_archive_defaults_to_true(self, client, auth, board):
        resp = client.put(f"/api/tasks/{board['t2']}/archive", json={}, headers=auth)
        assert resp.status_code == 204
        resp = client.get(f"/api/projects/{board['project']}/archived", headers=auth)
        assert [t["id"] for t in resp.get_json()] == [board["t2"]]

    def test_checklist_routes(self, client, auth, board):
        resp = client.post(f"/api/tasks/{board['t1']}/checklist", json={"text": "step"}, headers=auth)
        assert resp.status_code == 201
        item_id = resp.get_json()["id"]

        resp = client.put(f"/api/checklist/{item_id}/toggle", headers=auth)
        assert resp.get_json()["isCompleted"] is True

        resp = client.delete(f"/api/checklist/{item_id}", headers=auth)
        assert resp.status_code == 204

    def test_label_route(self, client, auth, board):
        resp = client.post(f"/api/projects/{board['project']}/labels", json={"name": "bug"}, headers=auth)
        assert resp.status_code == 201
        assert resp.get_json()["color"] == "#6b7280"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Ordering endpoints
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestOrderingEndpoints:

    def test_reorder_columns(self, client, auth, board):
        new_order = [board["done"], board["doing"], board["todo"]]
        resp = client.put(
            f"/api/projects/{board['project']}/columns/reorder",
            json={"columnIds": new_order}, headers=auth,
        )
        assert resp.status_code == 204
        assert resp.data == b""
        assert _column_ids(client, auth, board["project"]) == new_order

    def test_reorder_columns_foreign_id(self, client, auth, board):
        before = _column_ids(client, auth, board["project"])
        resp = client.put(
            f"/api/projects/{board['project']}/columns/reorder",
            json={"columnIds": [board["todo"], board["doing"], "someone-elses"]}, headers=auth,
        )
        assert resp.status_code == 400
        assert resp.get_json() == {"errors": ["Some column IDs do not belong to this project."]}
        assert _column_ids(client, auth, board["project"]) == before

    def test_reorder_columns_missing_body(self, client, auth, board):
        resp = client.put(f"/api/projects/{board['project']}/columns/reorder", json={}, headers=auth)
        assert resp.status_code == 400
        assert resp.get_json() == {"errors": ["Column IDs are required."]}

    def test_reorder_columns_not_a_list(self, client, auth, board):
        resp = client.put(
            f"/api/projects/{board['project']}/columns/reorder",
            json={"columnIds": "abc"}, headers=auth,
        )
        assert resp.status_code == 400

    def test_reorder_tasks(self, client, auth, board):
        resp = client.put(
            f"/api/columns/{board['todo']}/tasks/reorder",
            json={"taskIds": [board["t2"], board["t1"]]}, headers=auth,
        )
        assert resp.status_code == 204

    def test_reorder_tasks_unknown_column(self, client, auth, board):
        resp = client.put("/api/columns/missing/tasks/reorder", json={"taskIds": [board["t1"]]}, headers=auth)
        assert resp.status_code == 404
        assert resp.get_json() == {"errors": ["Column not found."]}

    def test_move_task(self, client, auth, board):
        resp = client.put(
            f"/api/tasks/{board['t1']}/move",
            json={"targetColumnId": board["done"], "newOrder": 0}, headers=auth,
        )
        assert resp.status_code == 204
        project = client.get(f"/api/projects/{board['project']}", headers=auth).get_json()
        done = next(c for c in project["columns"] if c["id"] == board["done"])
        assert [(t["id"], t["order"]) for t in done["tasks"]] == [(board["t1"], 0), (board["t3"], 1)]

    @pytest.mark.parametrize("new_order", [-1, "first", None, True])
    def test_move_task_bad_order(self, client, auth, board, new_order):
        resp = client.put(
            f"/api/tasks/{board['t1']}/move",
            json={"targetColumnId": board["done"], "newOrder": new_order}, headers=auth,
        )
        assert resp.status_code == 400

    def test_move_task_unknown(self, client, auth, board):
        resp = client.put(
            "/api/tasks/missing/move",
            json={"targetColumnId": board["done"], "newOrder": 0}, headers=auth,
        )
        assert resp.status_code == 404
        assert resp.get_json() == {"errors": ["Task not found."]}

    def test_other_users_board_is_not_found(self, client, store, board):
        other = store.create_user("mallory")
        resp = client.put(
            f"/api/projects/{board['project']}/columns/reorder",
            json={"columnIds": [board["todo"], board["doing"], board["done"]]},
            headers={"Authorization": f"Bearer {other['token']}"},
        )
        assert resp.status_code == 404


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Errors and CLI
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_unexpected_error_is_500(client, auth, store, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(store, "list_projects", boom)
    resp = client.get("/api/projects", headers=auth)
    assert resp.status_code == 500
    assert resp.get_json() == {"errors": ["Internal server error"]}


def test_main_create_user_prints_token(tmp_path, capsys, monkeypatch):
    monkeypatch.delenv("TASKBOARD_DB", raising=False)
    db = tmp_path / "cli.db"
    assert main(["--db", str(db), "--create-user", "carol"]) == 0
    token = capsys.readouterr().out.strip().splitlines()[-1]
    assert len(token) == 48


def test_main_duplicate_user_fails(tmp_path, capsys):
    db = tmp_path / "cli.db"
    main(["--db", str(db), "--create-user", "carol"])
    assert main(["--db", str(db), "--create-user", "carol"]) == 1
