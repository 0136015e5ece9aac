"""Shared fixtures: temporary board databases and a seeded project."""

import tempfile
from pathlib import Path

import pytest

from taskboard.config import Config
from taskboard.server import create_app
from taskboard.store import KanbanStore


@pytest.fixture
def db_path():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        path = tmp.name
    yield path
    for suffix in ("", "-wal", "-shm"):
        Path(path + suffix).unlink(missing_ok=True)


@pytest.fixture
def store(db_path):
    return KanbanStore(db_path)


@pytest.fixture
def user(store):
    return store.create_user("alice")


@pytest.fixture
def board(store, user):
    """Project with To Do [T1, T2], Doing [] and Done [T3]."""
    uid = user["id"]
    project = store.create_project(uid, "Roadmap")
    todo = store.create_column(uid, project.id, "To Do")
    doing = store.create_column(uid, project.id, "Doing")
    done = store.create_column(uid, project.id, "Done")
    t1 = store.create_task(uid, todo.id, "T1")
    t2 = store.create_task(uid, todo.id, "T2")
    t3 = store.create_task(uid, done.id, "T3")
    return {
        "user_id": uid,
        "project": project.id,
        "todo": todo.id,
        "doing": doing.id,
        "done": done.id,
        "t1": t1.id,
        "t2": t2.id,
        "t3": t3.id,
    }


@pytest.fixture
def app(store):
    return create_app(Config(db_path=store.db_path), store=store)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth(user):
    return {"Authorization": f"Bearer {user['token']}"}
