import json
from datetime import datetime, timezone

import pytest

from blog.auth import hash_api_key
from blog.cli import create_author, import_posts, load_posts, reindex


def _write_jsonl(path, rows):
    path.write_text("\n".join(json.dumps(row, ensure_ascii=False) for row in rows) + "\n", encoding="utf-8")


def test_create_author_returns_working_key(store):
    raw_key = create_author(store, "cli-writer")

    assert store.author_for_key(hash_api_key(raw_key)).nickname == "cli-writer"


def test_load_posts_parses_optional_timestamps(tmp_path):
    path = tmp_path / "posts.jsonl"
    _write_jsonl(
        path,
        [
            {"title": " Go tips ", "body": "channels", "created_at": "2026-01-02T03:04:05+00:00"},
            {"title": "Rust", "body": "ownership"},
        ],
    )

    posts = load_posts(path)

    assert posts[0]["title"] == "Go tips"
    assert posts[0]["created_at"] == datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert posts[1]["created_at"] is None


def test_load_posts_rejects_missing_body(tmp_path):
    path = tmp_path / "posts.jsonl"
    _write_jsonl(path, [{"title": "no body"}])

    with pytest.raises(SystemExit):
        load_posts(path)


def test_import_then_reindex(store, author, tmp_path):
    path = tmp_path / "posts.jsonl"
    _write_jsonl(path, [{"title": "Go tips", "body": "channels"}, {"title": "서울 여행", "body": "경복궁"}])

    assert import_posts(store, author.nickname, path) == 2
    for post_id in store.iter_post_ids():
        store._write_keywords(post_id, "")

    assert reindex(store) == 2
    assert len(store.index.score(["go"])) == 1
    assert len(store.index.score(["서울"])) == 1


def test_import_requires_existing_author(store, tmp_path):
    path = tmp_path / "posts.jsonl"
    _write_jsonl(path, [{"title": "Go", "body": "x"}])

    with pytest.raises(SystemExit):
        import_posts(store, "nobody", path)


def test_naive_timestamps_are_imported_as_utc(store, author, tmp_path):
    store.create_post(author.id, "Written today", "text")
    path = tmp_path / "posts.jsonl"
    _write_jsonl(path, [{"title": "Old post", "body": "text", "created_at": "2020-05-06T07:08:09"}])

    assert load_posts(path)[0]["created_at"] == datetime(2020, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
    import_posts(store, author.nickname, path)

    posts, total = store.list_posts("latest", limit=10, offset=0)
    assert total == 2
    assert [post.title for post in posts] == ["Written today", "Old post"]
