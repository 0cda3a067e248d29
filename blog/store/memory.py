from __future__ import annotations

import threading
import uuid
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from blog.search.inverted_index import InvertedIndex
from blog.search.keywords import KeywordComposer
from blog.store.base import (
    KEYWORD_FIELD,
    KEYWORD_INDEX_NAME,
    AuthorRecord,
    NotFound,
    PostRecord,
    PostStore,
    SearchHit,
    SearchPage,
    check_text_indexes,
    parse_id,
)

_SORT_FIELDS = {
    "views": "view_count",
    "likes": "like_count",
    "comments": "comment_count",
}


@dataclass
class _PostRow:
    id: uuid.UUID
    author_id: uuid.UUID
    title: str
    body: str
    derived_keywords: str
    created_at: datetime
    view_count: int = 0
    like_count: int = 0
    comment_count: int = 0
    updated_at: datetime | None = None


class MemoryPostStore(PostStore):
    """Process-local store; one lock guards the rows and the keyword index together."""

    def __init__(self, composer: KeywordComposer) -> None:
        super().__init__(composer)
        self._lock = threading.RLock()
        self._posts: dict[uuid.UUID, _PostRow] = {}
        self._authors: dict[uuid.UUID, AuthorRecord] = {}
        self._keys: dict[str, uuid.UUID] = {}
        self._index = InvertedIndex()
        self._text_indexes: dict[str, tuple[str, ...]] = {KEYWORD_INDEX_NAME: (KEYWORD_FIELD,)}

    @property
    def index(self) -> InvertedIndex:
        return self._index

    def _insert_post(self, author_id, title, body, keywords, created_at):
        with self._lock:
            if author_id not in self._authors:
                raise NotFound(f"author {author_id} not found")
            row = _PostRow(
                id=uuid.uuid4(),
                author_id=author_id,
                title=title,
                body=body,
                derived_keywords=keywords,
                created_at=created_at or datetime.now(timezone.utc),
            )
            self._posts[row.id] = row
            self._index.add(row.id, keywords)
            return self._record(row)

    def _update_post(self, post_id, title, body, keywords):
        with self._lock:
            row = self._row(post_id)
            row.title = title
            row.body = body
            row.derived_keywords = keywords
            row.updated_at = datetime.now(timezone.utc)
            self._index.add(row.id, keywords)
            return self._record(row)

    def _write_keywords(self, post_id, keywords):
        with self._lock:
            row = self._row(post_id)
            row.derived_keywords = keywords
            self._index.add(row.id, keywords)
            return self._record(row)

    def get_post(self, post_id):
        with self._lock:
            return self._record(self._row(parse_id(post_id)))

    def delete_post(self, post_id):
        with self._lock:
            row = self._row(parse_id(post_id))
            del self._posts[row.id]
            self._index.remove(row.id)

    def increment_views(self, post_id):
        with self._lock:
            row = self._row(parse_id(post_id))
            row.view_count += 1
            return self._record(row)

    def list_posts(self, sort, limit, offset=0):
        field = _SORT_FIELDS.get(sort)
        with self._lock:
            rows = sorted(
                self._posts.values(),
                key=lambda row: (getattr(row, field) if field else 0, row.created_at, row.id),
                reverse=True,
            )
            return [self._record(row) for row in rows[offset : offset + limit]], len(rows)

    def search(self, terms: Sequence[str], limit: int, offset: int = 0, exclude_id: uuid.UUID | None = None):
        with self._lock:
            scores = self._index.score(terms)
            if exclude_id is not None:
                scores.pop(exclude_id, None)
            ranked = sorted(
                scores.items(),
                key=lambda item: (item[1], self._posts[item[0]].created_at, item[0]),
                reverse=True,
            )
            hits = [
                SearchHit(post=self._record(self._posts[post_id]), score=score)
                for post_id, score in ranked[offset : offset + limit]
            ]
            return SearchPage(hits=hits, total=len(ranked))

    def iter_post_ids(self) -> Iterator[uuid.UUID]:
        with self._lock:
            ids = list(self._posts)
        return iter(ids)

    def create_author(self, nickname, key_hash):
        with self._lock:
            if self.author_by_nickname(nickname) is not None:
                raise ValueError(f"nickname already taken: {nickname}")
            author = AuthorRecord(id=uuid.uuid4(), nickname=nickname, created_at=datetime.now(timezone.utc))
            self._authors[author.id] = author
            self._keys[key_hash] = author.id
            return author

    def author_for_key(self, key_hash):
        with self._lock:
            author_id = self._keys.get(key_hash)
            return self._authors.get(author_id) if author_id else None

    def author_by_nickname(self, nickname):
        with self._lock:
            return next((a for a in self._authors.values() if a.nickname == nickname), None)

    def verify_schema(self) -> None:
        check_text_indexes(self._text_indexes.items())

    def _row(self, post_id: uuid.UUID) -> _PostRow:
        row = self._posts.get(post_id)
        if row is None:
            raise NotFound(f"post {post_id} not found")
        return row

    def _record(self, row: _PostRow) -> PostRecord:
        return PostRecord(
            id=row.id,
            author=self._authors.get(row.author_id),
            title=row.title,
            body=row.body,
            derived_keywords=row.derived_keywords,
            view_count=row.view_count,
            like_count=row.like_count,
            comment_count=row.comment_count,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
