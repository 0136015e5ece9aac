"""
Tests for BoardApiClient with a mocked requests session.
"""

from unittest.mock import MagicMock

import pytest
import requests

from taskboard.api import BoardApiClient
from taskboard.config import Config
from taskboard.schema import Project, Tag


def _response(status, body=None, content=b"x"):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.ok = 200 <= status < 400
    resp.content = content if body is not None else b""
    if body is None:
        resp.json.side_effect = ValueError("no body")
    else:
        resp.json.return_value = body
    return resp


@pytest.fixture
def session():
    s = MagicMock(spec=requests.Session)
    s.headers = {}
    return s


@pytest.fixture
def api(session):
    return BoardApiClient("http://board.test/", token="tok", timeout=3, session=session)


class TestRequests:

    def test_bearer_header_set(self, api, session):
        assert session.headers["Authorization"] == "Bearer tok"

    def test_reorder_columns_payload(self, api, session):
        session.request.return_value = _response(204)
        result = api.reorder_columns("p1", ("c2", "c1"))
        session.request.assert_called_once_with(
            "PUT", "http://board.test/api/projects/p1/columns/reorder",
            json={"columnIds": ["c2", "c1"]}, params=None, timeout=3,
        )
        assert result.ok
        assert result.value is None
        assert result.status == 204

    def test_move_task_payload(self, api, session):
        session.request.return_value = _response(204)
        api.move_task("t1", "c9", 4)
        _, kwargs = session.request.call_args
        assert kwargs["json"] == {"targetColumnId": "c9", "newOrder": 4}

    def test_reorder_tasks_path(self, api, session):
        session.request.return_value = _response(204)
        api.reorder_tasks("c1", ["t1"])
        args, kwargs = session.request.call_args
        assert args == ("PUT", "http://board.test/api/columns/c1/tasks/reorder")
        assert kwargs["json"] == {"taskIds": ["t1"]}

    def test_project_parsed(self, api, session):
        session.request.return_value = _response(200, {
            "id": "p1", "name": "P",
            "columns": [
                {"id": "b", "name": "B", "order": 1, "tasks": []},
                {"id": "a", "name": "A", "order": 0, "tasks": []},
            ],
        })
        result = api.get_project("p1")
        assert isinstance(result.value, Project)
        assert [c.id for c in result.value.columns] == ["a", "b"]

    def test_tags_parsed(self, api, session):
        session.request.return_value = _response(200, [{"id": "g1", "name": "algo", "color": "#112233"}])
        result = api.list_tags()
        args, _ = session.request.call_args
        assert args == ("GET", "http://board.test/api/tags")
        assert result.value == [Tag(id="g1", name="algo", color="#112233")]

    def test_create_tag_and_snippet_payloads(self, api, session):
        session.request.return_value = _response(201, {"id": "g1", "name": "algo"})
        assert api.create_tag("algo").value.color == "#6366f1"
        assert session.request.call_args[1]["json"] == {"name": "algo", "color": None}

        session.request.return_value = _response(201, {
            "id": "s1", "title": "t", "code": "c", "language": "go",
            "tags": [{"id": "g1", "name": "algo", "color": "#112233"}],
        })
        snippet = api.create_snippet("t", "c", "go", tag_ids=("g1",)).value
        assert session.request.call_args[1]["json"]["tagIds"] == ["g1"]
        assert [t.name for t in snippet.tags] == ["algo"]

        api.update_snippet("s1", "t", "c", "go")
        assert session.request.call_args[1]["json"]["tagIds"] is None

    def test_snippet_list_tag_filter(self, api, session):
        session.request.return_value = _response(200, {"items": []})
        api.list_snippets(tag_id="g1")
        assert session.request.call_args[1]["params"]["tagId"] == "g1"

    def test_delete_tag(self, api, session):
        session.request.return_value = _response(204)
        assert api.delete_tag("g1").ok
        args, _ = session.request.call_args
        assert args == ("DELETE", "http://board.test/api/tags/g1")


class TestFailures:

    def test_error_body_becomes_failure(self, api, session):
        session.request.return_value = _response(400, {"errors": ["Some column IDs do not belong to this project."]})
        result = api.reorder_columns("p1", ["x"])
        assert not result.ok
        assert result.status == 400
        assert result.errors == ["Some column IDs do not belong to this project."]

    def test_error_without_body(self, api, session):
        session.request.return_value = _response(500)
        result = api.move_task("t1", "c1", 0)
        assert not result.ok
        assert result.errors == []
        assert result.status == 500

    @pytest.mark.parametrize("exc", [requests.Timeout("slow"), requests.ConnectionError("refused")])
    def test_network_failure(self, api, session, exc):
        session.request.side_effect = exc
        result = api.reorder_tasks("c1", ["t1"])
        assert not result.ok
        assert result.status == 0
        assert result.errors[0].startswith("Network error")

    def test_unreadable_success_body(self, api, session):
        session.request.return_value = _response(200, {"no": "id"})
        result = api.get_project("p1")
        assert not result.ok
        assert result.errors == ["Unexpected response from server."]


def test_from_config():
    cfg = Config(api_url="http://x:1", api_token="abc", request_timeout=2.5)
    client = BoardApiClient.from_config(cfg)
    assert client.base_url == "http://x:1"
    assert client.timeout == 2.5
    assert client.session.headers["Authorization"] == "Bearer abc"
