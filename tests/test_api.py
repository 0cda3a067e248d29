import asyncio
import uuid

import pytest
from fastapi.testclient import TestClient

from blog import main
from blog.auth import hash_api_key
from blog.store.base import IndexUnavailable

AUTH = {"Authorization": "Bearer writer-key"}


class FakeRedis:
    def __init__(self, start: int = 0) -> None:
        self.counts: dict[str, int] = {}
        self.start = start
        self.expiries: dict[str, int] = {}

    async def incr(self, key: str) -> int:
        self.counts[key] = self.counts.get(key, self.start) + 1
        return self.counts[key]

    async def expire(self, key: str, seconds: int) -> None:
        self.expiries[key] = seconds


@pytest.fixture
def client(monkeypatch, store, author):
    monkeypatch.setattr(main, "post_store", store)
    return TestClient(main.app)


def _create(client, title, body, headers=AUTH):
    resp = client.post("/posts", json={"title": title, "body": body}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_requires_api_key(client):
    resp = client.post("/posts", json={"title": "Go", "body": "channels"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"

    resp = client.post("/posts", json={"title": "Go", "body": "channels"}, headers={"X-API-Key": "wrong"})
    assert resp.status_code == 401


def test_create_persists_keywords(client, store):
    created = _create(client, "  Go tips  ", "use channels")

    assert created["title"] == "Go tips"
    assert created["author"]["nickname"] == "writer"
    assert store.get_post(created["id"]).derived_keywords == "go tips go tips go tips use channels"


def test_blank_title_is_rejected(client):
    resp = client.post("/posts", json={"title": "   ", "body": "text"}, headers=AUTH)
    assert resp.status_code == 422


def test_title_longer_than_fifty_is_rejected(client):
    resp = client.post("/posts", json={"title": "x" * 51, "body": "text"}, headers=AUTH)
    assert resp.status_code == 422


def test_title_length_is_checked_after_trimming(client):
    title = "  " + "x" * 49 + "  "

    created = _create(client, title, "text")

    assert created["title"] == "x" * 49


def test_get_post_counts_views(client):
    created = _create(client, "Go tips", "use channels")

    client.get(f"/posts/{created['id']}")
    resp = client.get(f"/posts/{created['id']}")

    assert resp.status_code == 200
    assert resp.json()["view_count"] == 2
    assert resp.json()["body"] == "use channels"


def test_get_missing_post_is_404(client):
    resp = client.get(f"/posts/{uuid.uuid4()}")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_similar_endpoint_ranks_related_posts(client):
    source = _create(client, "Learning Go concurrency patterns", "Goroutines and channels")
    related = _create(client, "Go concurrency patterns in depth", "Worker pools")
    _create(client, "Cooking pasta tonight", "Boil water")

    resp = client.get(f"/posts/{source['id']}/similar", params={"limit": 5})

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    ids = [item["id"] for item in body["similar_items"]]
    assert ids[0] == related["id"]
    assert source["id"] not in ids
    assert body["similar_items"][0]["excerpt"] == "Worker pools"


def test_similar_endpoint_does_not_count_views(client, store):
    source = _create(client, "Go concurrency", "channels")
    other = _create(client, "Go concurrency", "channels")

    client.get(f"/posts/{source['id']}/similar")

    assert store.get_post(source["id"]).view_count == 0
    assert store.get_post(other["id"]).view_count == 0


def test_similar_endpoint_reports_insufficient_keywords(client, store, author):
    post = store.create_post(author.id, "   ", "")

    resp = client.get(f"/posts/{post.id}/similar")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "insufficient_keywords"
    assert body["similar_items"] == []
    assert body["message"]


def test_similar_endpoint_missing_source_is_404(client):
    resp = client.get(f"/posts/{uuid.uuid4()}/similar")
    assert resp.status_code == 404


def test_similar_endpoint_index_down_is_503(client, store, monkeypatch):
    source = _create(client, "Go concurrency", "channels")

    def _down(*args, **kwargs):
        raise IndexUnavailable("down")

    monkeypatch.setattr(store, "search", _down)
    resp = client.get(f"/posts/{source['id']}/similar")

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "index_unavailable"


def test_update_by_other_author_is_forbidden(client, store):
    created = _create(client, "Go tips", "use channels")
    store.create_author("intruder", hash_api_key("intruder-key"))

    resp = client.put(
        f"/posts/{created['id']}",
        json={"title": "Hijacked", "body": "text"},
        headers={"X-API-Key": "intruder-key"},
    )

    assert resp.status_code == 403
    assert store.get_post(created["id"]).title == "Go tips"


def test_update_recomputes_keywords(client, store):
    created = _create(client, "Go tips", "use channels")

    resp = client.put(f"/posts/{created['id']}", json={"title": "Rust tips", "body": "ownership"}, headers=AUTH)

    assert resp.status_code == 200
    assert resp.json()["updated_at"] is not None
    assert store.get_post(created["id"]).derived_keywords == "rust tips rust tips rust tips ownership"


def test_delete_removes_post_from_similar_results(client):
    source = _create(client, "Go concurrency", "channels")
    doomed = _create(client, "Go concurrency", "channels")

    resp = client.delete(f"/posts/{doomed['id']}", headers=AUTH)
    assert resp.status_code == 200
    assert resp.json() == {"deleted_post_id": doomed["id"]}

    similar = client.get(f"/posts/{source['id']}/similar").json()
    assert similar["similar_items"] == []
    assert similar["message"] == "No similar posts found"


def test_list_posts_paginates(client):
    for i in range(3):
        _create(client, f"post {i}", "body")

    resp = client.get("/posts", params={"limit": 2, "sort": "unknown"})

    body = resp.json()
    assert body["sort"] == "latest"
    assert len(body["posts"]) == 2
    assert body["pagination"] == {
        "page": 1,
        "limit": 2,
        "total": 3,
        "total_pages": 2,
        "has_next": True,
        "has_prev": False,
    }


def test_search_requires_query(client):
    resp = client.get("/posts/search", params={"q": "  "})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "invalid_query"


def test_search_finds_posts_by_keyword(client):
    match = _create(client, "Go concurrency", "channels")
    _create(client, "Pasta", "tomato")

    body = client.get("/posts/search", params={"q": "concurrency!"}).json()

    assert [post["id"] for post in body["posts"]] == [match["id"]]
    assert body["pagination"]["total"] == 1


def test_search_without_keywords_returns_empty(client):
    body = client.get("/posts/search", params={"q": "123 ???"}).json()

    assert body["posts"] == []
    assert body["message"] == "No searchable keywords in query"


def test_check_write_budget_counts_per_minute():
    redis = FakeRedis()

    assert asyncio.run(main.check_write_budget(redis, "author", limit=2)) is None
    assert asyncio.run(main.check_write_budget(redis, "author", limit=2)) is None
    retry_after = asyncio.run(main.check_write_budget(redis, "author", limit=2))

    assert retry_after is not None and 0 < retry_after <= 60
    assert list(redis.expiries.values()) == [60]


def test_rate_limited_writes_get_429(client, monkeypatch):
    monkeypatch.setattr(main, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(main, "redis_client", FakeRedis(start=10_000))

    resp = client.post("/posts", json={"title": "Go", "body": "channels"}, headers=AUTH)

    assert resp.status_code == 429
    assert "Retry-After" in resp.headers
    assert client.get("/health").status_code == 200
