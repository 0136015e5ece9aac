"""
Tests for the snippet manager and its tags (store and HTTP routes).
"""

import pytest

from taskboard.errors import NotFound, ValidationFailed
from taskboard.snippets import SnippetStore, page_window


@pytest.fixture
def snippets(store):
    return SnippetStore(store)


@pytest.fixture
def tags(snippets, user):
    uid = user["id"]
    return {
        "algo": snippets.create_tag(uid, "algo"),
        "db": snippets.create_tag(uid, "db", "#10b981"),
    }


@pytest.fixture
def seeded(snippets, user, tags):
    uid = user["id"]
    a = snippets.create_snippet(uid, "Binary search", "def bs(): pass", "Python", tag_ids=[tags["algo"].id])
    b = snippets.create_snippet(uid, "Fetch JSON", "fetch(url)", "javascript", description="http helper")
    c = snippets.create_snippet(uid, "Count rows", "SELECT COUNT(*) FROM t", "sql",
                                tag_ids=[tags["db"].id, tags["algo"].id])
    return uid, a, b, c


def _names(snippet):
    return [t.name for t in snippet.tags]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Tags
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestTags:

    def test_create_defaults_color(self, tags):
        assert tags["algo"].color == "#6366f1"
        assert tags["db"].color == "#10b981"

    def test_listed_by_name(self, snippets, user, tags):
        snippets.create_tag(user["id"], "Backend")
        assert [t.name for t in snippets.list_tags(user["id"])] == ["algo", "Backend", "db"]

    def test_duplicate_name_ignores_case(self, snippets, user, tags):
        with pytest.raises(ValidationFailed, match="A tag with this name already exists."):
            snippets.create_tag(user["id"], "ALGO")

    def test_same_name_allowed_for_other_user(self, snippets, store, tags):
        other = store.create_user("bob")
        assert snippets.create_tag(other["id"], "algo").name == "algo"
        assert [t.name for t in snippets.list_tags(other["id"])] == ["algo"]

    @pytest.mark.parametrize("name,color,message", [
        ("", None, "Name is required."),
        ("x" * 51, None, "Name cannot exceed 50 characters."),
        ("ok", "red", "Color must be a hex value"),
    ])
    def test_validation(self, snippets, user, name, color, message):
        with pytest.raises(ValidationFailed, match=message):
            snippets.create_tag(user["id"], name, color)

    def test_delete_unlinks_but_keeps_snippets(self, snippets, seeded, tags):
        uid, a, _, c = seeded
        snippets.delete_tag(uid, tags["algo"].id)
        assert snippets.get_snippet(uid, a.id).tags == []
        assert _names(snippets.get_snippet(uid, c.id)) == ["db"]

    def test_delete_missing_or_foreign(self, snippets, store, tags):
        other = store.create_user("bob")
        with pytest.raises(NotFound, match="Tag not found."):
            snippets.delete_tag(other["id"], tags["algo"].id)
        with pytest.raises(NotFound):
            snippets.delete_tag(other["id"], "missing")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Store
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestSnippetStore:

    def test_language_lowercased(self, seeded):
        _, a, _, c = seeded
        assert a.language == "python"
        assert _names(a) == ["algo"]
        assert _names(c) == ["algo", "db"]

    def test_unknown_and_foreign_tag_ids_ignored(self, snippets, store, user, tags):
        other = store.create_user("bob")
        foreign = snippets.create_tag(other["id"], "theirs")
        snippet = snippets.create_snippet(
            user["id"], "x", "x", "go", tag_ids=[foreign.id, "missing", tags["db"].id, tags["db"].id]
        )
        assert _names(snippet) == ["db"]

    def test_unsupported_language(self, snippets, user):
        with pytest.raises(ValidationFailed, match="Language must be one of"):
            snippets.create_snippet(user["id"], "x", "x", "cobol")

    def test_code_required(self, snippets, user):
        with pytest.raises(ValidationFailed, match="Code is required."):
            snippets.create_snippet(user["id"], "x", "  ", "python")

    def test_update_and_favorite(self, snippets, seeded, tags):
        uid, a, _, _ = seeded
        updated = snippets.update_snippet(uid, a.id, "BS", "pass", "go", tag_ids=[tags["db"].id])
        assert (updated.title, updated.language, _names(updated)) == ("BS", "go", ["db"])
        assert updated.updated_at is not None
        assert snippets.toggle_favorite(uid, a.id).is_favorite
        assert not snippets.toggle_favorite(uid, a.id).is_favorite

    def test_update_without_tag_ids_keeps_tags(self, snippets, seeded):
        uid, _, _, c = seeded
        updated = snippets.update_snippet(uid, c.id, "Count", "SELECT 1", "sql")
        assert _names(updated) == ["algo", "db"]
        assert snippets.update_snippet(uid, c.id, "Count", "SELECT 1", "sql", tag_ids=[]).tags == []

    def test_delete(self, snippets, seeded):
        uid, a, _, _ = seeded
        snippets.delete_snippet(uid, a.id)
        with pytest.raises(NotFound, match="Snippet not found."):
            snippets.get_snippet(uid, a.id)

    def test_other_user_cannot_read(self, snippets, store, seeded):
        _, a, _, _ = seeded
        other = store.create_user("bob")
        with pytest.raises(NotFound):
            snippets.get_snippet(other["id"], a.id)

    def test_filters(self, snippets, seeded, tags):
        uid, a, b, c = seeded
        by_tag = snippets.list_snippets(uid, tag_id=tags["algo"].id)
        assert {s["id"] for s in by_tag["items"]} == {a.id, c.id}

        by_lang = snippets.list_snippets(uid, language="SQL")
        assert [s["id"] for s in by_lang["items"]] == [c.id]

        snippets.toggle_favorite(uid, b.id)
        favs = snippets.list_snippets(uid, is_favorite=True)
        assert [s["id"] for s in favs["items"]] == [b.id]

    def test_sort_by_title(self, snippets, seeded):
        uid, a, b, c = seeded
        page = snippets.list_snippets(uid, sort_by="title", sort_descending=False)
        assert [s["title"] for s in page["items"]] == ["Binary search", "Count rows", "Fetch JSON"]

    def test_pagination(self, snippets, seeded):
        uid = seeded[0]
        page = snippets.list_snippets(uid, page=2, page_size=2)
        assert page["totalCount"] == 3
        assert page["totalPages"] == 2
        assert page["page"] == 2
        assert len(page["items"]) == 1

    def test_search(self, snippets, seeded):
        uid, _, b, c = seeded
        assert [s["id"] for s in snippets.search_snippets(uid, "HTTP")["items"]] == [b.id]
        assert [s["id"] for s in snippets.search_snippets(uid, "count(")["items"]] == [c.id]

    def test_search_term_required(self, snippets, user):
        with pytest.raises(ValidationFailed, match="Search term is required."):
            snippets.search_snippets(user["id"], " ")


@pytest.mark.parametrize("page,size,expected", [
    (0, 0, (1, 1)),
    (-3, 500, (1, 100)),
    ("2", "25", (2, 25)),
    ("x", None, (1, 10)),
])
def test_page_window(page, size, expected):
    assert page_window(page, size) == expected


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# HTTP
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestSnippetRoutes:

    def test_create_get_list(self, client, auth):
        tag = client.post("/api/tags", json={"name": "demo"}, headers=auth).get_json()
        resp = client.post(
            "/api/snippets",
            json={"title": "Hello", "code": "print('hi')", "language": "Python", "tagIds": [tag["id"]]},
            headers=auth,
        )
        assert resp.status_code == 201
        snippet = resp.get_json()
        assert snippet["language"] == "python"
        assert snippet["isFavorite"] is False
        assert snippet["tags"] == [{"id": tag["id"], "name": "demo", "color": "#6366f1"}]

        resp = client.get(f"/api/snippets/{snippet['id']}", headers=auth)
        assert resp.get_json()["code"] == "print('hi')"

        resp = client.get(f"/api/snippets?pageSize=500&tagId={tag['id']}", headers=auth)
        body = resp.get_json()
        assert body["pageSize"] == 100
        assert body["totalCount"] == 1
        assert set(body["items"][0]) == {"id", "title", "language", "isFavorite", "tags", "createdAt"}

    def test_favorite_and_filter(self, client, auth):
        sid = client.post(
            "/api/snippets", json={"title": "a", "code": "a", "language": "go"}, headers=auth,
        ).get_json()["id"]
        resp = client.put(f"/api/snippets/{sid}/favorite", headers=auth)
        assert resp.get_json()["isFavorite"] is True
        resp = client.get("/api/snippets?isFavorite=false", headers=auth)
        assert resp.get_json()["totalCount"] == 0

    def test_search_requires_term(self, client, auth):
        resp = client.get("/api/snippets/search", headers=auth)
        assert resp.status_code == 400
        assert resp.get_json() == {"errors": ["Search term is required."]}

    def test_update_missing_is_404(self, client, auth):
        resp = client.put(
            "/api/snippets/missing", json={"title": "a", "code": "a", "language": "go"}, headers=auth,
        )
        assert resp.status_code == 404

    def test_delete(self, client, auth):
        sid = client.post(
            "/api/snippets", json={"title": "a", "code": "a", "language": "go"}, headers=auth,
        ).get_json()["id"]
        assert client.delete(f"/api/snippets/{sid}", headers=auth).status_code == 204
        assert client.get(f"/api/snippets/{sid}", headers=auth).status_code == 404


class TestTagRoutes:

    def test_create_list_delete(self, client, auth):
        resp = client.post("/api/tags", json={"name": "web", "color": "#112233"}, headers=auth)
        assert resp.status_code == 201
        tag = resp.get_json()
        assert (tag["name"], tag["color"]) == ("web", "#112233")

        resp = client.get("/api/tags", headers=auth)
        assert resp.get_json() == [tag]

        assert client.delete(f"/api/tags/{tag['id']}", headers=auth).status_code == 204
        assert client.get("/api/tags", headers=auth).get_json() == []

    def test_duplicate_is_400(self, client, auth):
        client.post("/api/tags", json={"name": "web"}, headers=auth)
        resp = client.post("/api/tags", json={"name": "Web"}, headers=auth)
        assert resp.status_code == 400
        assert resp.get_json() == {"errors": ["A tag with this name already exists."]}

    def test_delete_missing_is_404(self, client, auth):
        resp = client.delete("/api/tags/missing", headers=auth)
        assert resp.status_code == 404
        assert resp.get_json() == {"errors": ["Tag not found."]}

    def test_requires_token(self, client):
        assert client.get("/api/tags").status_code == 401

    def test_update_with_null_tag_ids_keeps_tags(self, client, auth):
        tag = client.post("/api/tags", json={"name": "keep"}, headers=auth).get_json()
        sid = client.post(
            "/api/snippets", json={"title": "a", "code": "a", "language": "go", "tagIds": [tag["id"]]},
            headers=auth,
        ).get_json()["id"]
        resp = client.put(
            f"/api/snippets/{sid}", json={"title": "b", "code": "b", "language": "go", "tagIds": None},
            headers=auth,
        )
        assert [t["name"] for t in resp.get_json()["tags"]] == ["keep"]
