from __future__ import annotations

import re
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime

from blog.search.keywords import KeywordComposer

KEYWORD_INDEX_NAME = "ix_posts_derived_keywords_fts"
KEYWORD_FIELD = "derived_keywords"
POST_TEXT_FIELDS = ("title", "body", KEYWORD_FIELD)

SORT_OPTIONS = ("latest", "views", "likes", "comments")


class NotFound(LookupError):
    pass


class IndexUnavailable(RuntimeError):
    pass


class SchemaError(RuntimeError):
    pass


@dataclass(frozen=True)
class AuthorRecord:
    id: uuid.UUID
    nickname: str
    created_at: datetime | None


@dataclass(frozen=True)
class PostRecord:
    id: uuid.UUID
    author: AuthorRecord | None
    title: str
    body: str
    derived_keywords: str
    view_count: int
    like_count: int
    comment_count: int
    created_at: datetime
    updated_at: datetime | None = None


@dataclass(frozen=True)
class SearchHit:
    post: PostRecord
    score: float


@dataclass(frozen=True)
class SearchPage:
    hits: list[SearchHit]
    total: int


def parse_id(value: uuid.UUID | str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise NotFound(f"post {value} not found") from exc


def check_text_indexes(text_indexes: Iterable[tuple[str, Sequence[str]]]) -> None:
    """Fail unless the posts collection has one text index, over derived_keywords only."""
    indexes = list(text_indexes)
    if len(indexes) != 1:
        names = ", ".join(name for name, _ in indexes) or "none"
        raise SchemaError(f"expected exactly one text index on posts, found {len(indexes)}: {names}")
    name, fields = indexes[0]
    if tuple(fields) != (KEYWORD_FIELD,):
        raise SchemaError(f"text index {name} must cover only {KEYWORD_FIELD}, covers {list(fields)}")


def indexed_text_fields(index_definition: str) -> tuple[str, ...]:
    return tuple(
        field for field in POST_TEXT_FIELDS if re.search(rf"\b{field}\b", index_definition)
    )


class PostStore(ABC):
    """Persistence for posts and authors plus the single keyword text index.

    Writes that touch ``title`` or ``body`` recompute ``derived_keywords``
    here, before the write, and persist all three together.
    """

    def __init__(self, composer: KeywordComposer) -> None:
        self._composer = composer

    @property
    def composer(self) -> KeywordComposer:
        return self._composer

    def create_post(
        self,
        author_id: uuid.UUID,
        title: str,
        body: str,
        created_at: datetime | None = None,
    ) -> PostRecord:
        keywords = self._composer.compose(title, body)
        return self._insert_post(author_id, title, body, keywords, created_at)

    def update_post(self, post_id: uuid.UUID | str, title: str, body: str) -> PostRecord:
        keywords = self._composer.compose(title, body)
        return self._update_post(parse_id(post_id), title, body, keywords)

    def refresh_keywords(self, post_id: uuid.UUID | str) -> PostRecord:
        post = self.get_post(post_id)
        keywords = self._composer.compose(post.title, post.body)
        return self._write_keywords(post.id, keywords)

    @abstractmethod
    def _insert_post(
        self,
        author_id: uuid.UUID,
        title: str,
        body: str,
        keywords: str,
        created_at: datetime | None,
    ) -> PostRecord:
        raise NotImplementedError

    @abstractmethod
    def _update_post(self, post_id: uuid.UUID, title: str, body: str, keywords: str) -> PostRecord:
        raise NotImplementedError

    @abstractmethod
    def _write_keywords(self, post_id: uuid.UUID, keywords: str) -> PostRecord:
        raise NotImplementedError

    @abstractmethod
    def get_post(self, post_id: uuid.UUID | str) -> PostRecord:
        raise NotImplementedError

    @abstractmethod
    def delete_post(self, post_id: uuid.UUID | str) -> None:
        raise NotImplementedError

    @abstractmethod
    def increment_views(self, post_id: uuid.UUID | str) -> PostRecord:
        raise NotImplementedError

    @abstractmethod
    def list_posts(self, sort: str, limit: int, offset: int = 0) -> tuple[list[PostRecord], int]:
        raise NotImplementedError

    @abstractmethod
    def search(
        self,
        terms: Sequence[str],
        limit: int,
        offset: int = 0,
        exclude_id: uuid.UUID | None = None,
    ) -> SearchPage:
        """Rank posts against ``terms``: score desc, then created_at desc, then id desc."""
        raise NotImplementedError

    @abstractmethod
    def iter_post_ids(self) -> Iterator[uuid.UUID]:
        raise NotImplementedError

    @abstractmethod
    def create_author(self, nickname: str, key_hash: str) -> AuthorRecord:
        raise NotImplementedError

    @abstractmethod
    def author_for_key(self, key_hash: str) -> AuthorRecord | None:
        raise NotImplementedError

    @abstractmethod
    def author_by_nickname(self, nickname: str) -> AuthorRecord | None:
        raise NotImplementedError

    @abstractmethod
    def verify_schema(self) -> None:
        raise NotImplementedError
