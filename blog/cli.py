from __future__ import annotations

import argparse
import json
from datetime import datetime, timezone
from pathlib import Path

from blog.auth import generate_api_key, hash_api_key
from blog.store import get_post_store
from blog.store.base import PostStore


def load_posts(path: Path) -> list[dict]:
    """Read one post per JSONL line: {"title": ..., "body": ..., "created_at": optional ISO-8601}."""
    posts: list[dict] = []
    for line_no, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if not line.strip():
            continue
        item = json.loads(line)
        title = str(item.get("title") or "").strip()
        body = str(item.get("body") or "")
        if not title or not body:
            raise SystemExit(f"{path}:{line_no}: title and body are required")
        if len(title) > 50:
            raise SystemExit(f"{path}:{line_no}: title longer than 50 characters")
        created_at = datetime.fromisoformat(item["created_at"]) if item.get("created_at") else None
        if created_at is not None and created_at.tzinfo is None:
            # Naive timestamps in the file are taken as UTC.
            created_at = created_at.replace(tzinfo=timezone.utc)
        posts.append({"title": title, "body": body, "created_at": created_at})
    return posts


def create_author(store: PostStore, nickname: str) -> str:
    raw_key = generate_api_key()
    store.create_author(nickname, hash_api_key(raw_key))
    return raw_key


def import_posts(store: PostStore, nickname: str, path: Path) -> int:
    author = store.author_by_nickname(nickname)
    if author is None:
        raise SystemExit(f"author not found: {nickname}")
    posts = load_posts(path)
    for post in posts:
        store.create_post(author.id, post["title"], post["body"], created_at=post["created_at"])
    return len(posts)


def reindex(store: PostStore) -> int:
    count = 0
    for post_id in store.iter_post_ids():
        store.refresh_keywords(post_id)
        count += 1
    return count


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="blog-api maintenance commands")
    sub = parser.add_subparsers(dest="command", required=True)

    author_cmd = sub.add_parser("create-author", help="Create an author and print its API key")
    author_cmd.add_argument("--nickname", required=True)

    import_cmd = sub.add_parser("import", help="Import posts from a JSONL file")
    import_cmd.add_argument("--author", required=True)
    import_cmd.add_argument("--file", required=True)

    sub.add_parser("reindex", help="Recompute derived keywords for every post")

    args = parser.parse_args(argv)
    store = get_post_store()

    if args.command == "create-author":
        print(create_author(store, args.nickname))
    elif args.command == "import":
        path = Path(args.file)
        if not path.exists():
            raise SystemExit(f"file not found: {path}")
        print(f"imported {import_posts(store, args.author, path)} posts")
    elif args.command == "reindex":
        print(f"reindexed {reindex(store)} posts")


if __name__ == "__main__":
    main()
