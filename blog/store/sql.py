from __future__ import annotations

import json
import logging
import re
import uuid
from collections.abc import Iterator, Sequence

from sqlalchemy import func, literal_column, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from blog.db.models import TEXT_SEARCH_CONFIG, ApiKey, Author, Post, keyword_vector
from blog.db.session import SessionLocal
from blog.search.keywords import KeywordComposer
from blog.store.base import (
    AuthorRecord,
    IndexUnavailable,
    NotFound,
    PostRecord,
    PostStore,
    SearchHit,
    SearchPage,
    check_text_indexes,
    indexed_text_fields,
    parse_id,
)

logger = logging.getLogger("blog-api.store")

_TERM_RE = re.compile(r"^\w+$")

_ORDERING = {
    "views": (Post.view_count.desc(),),
    "likes": (Post.like_count.desc(),),
    "comments": (Post.comment_count.desc(),),
}


def build_tsquery(terms: Sequence[str]) -> str:
    """OR together the distinct terms as quoted lexemes for to_tsquery."""
    unique = [term for term in dict.fromkeys(terms) if _TERM_RE.match(term)]
    return " | ".join(f"'{term}'" for term in unique)


class SqlPostStore(PostStore):
    def __init__(self, composer: KeywordComposer, session_factory: sessionmaker = SessionLocal) -> None:
        super().__init__(composer)
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    def _insert_post(self, author_id, title, body, keywords, created_at):
        db = self._session()
        try:
            if db.get(Author, author_id) is None:
                raise NotFound(f"author {author_id} not found")
            post = Post(author_id=author_id, title=title, body=body, derived_keywords=keywords)
            if created_at is not None:
                post.created_at = created_at
            db.add(post)
            db.commit()
            db.refresh(post)
            return _to_record(post, post.author)
        finally:
            db.close()

    def _update_post(self, post_id, title, body, keywords):
        db = self._session()
        try:
            post = db.get(Post, post_id)
            if post is None:
                raise NotFound(f"post {post_id} not found")
            post.title = title
            post.body = body
            post.derived_keywords = keywords
            post.updated_at = func.now()
            db.add(post)
            db.commit()
            db.refresh(post)
            return _to_record(post, post.author)
        finally:
            db.close()

    def _write_keywords(self, post_id, keywords):
        db = self._session()
        try:
            post = db.get(Post, post_id)
            if post is None:
                raise NotFound(f"post {post_id} not found")
            post.derived_keywords = keywords
            db.add(post)
            db.commit()
            return _to_record(post, post.author)
        finally:
            db.close()

    def get_post(self, post_id):
        db = self._session()
        try:
            post = db.get(Post, parse_id(post_id))
            if post is None:
                raise NotFound(f"post {post_id} not found")
            return _to_record(post, post.author)
        finally:
            db.close()

    def delete_post(self, post_id):
        db = self._session()
        try:
            deleted = db.query(Post).filter(Post.id == parse_id(post_id)).delete()
            if not deleted:
                raise NotFound(f"post {post_id} not found")
            db.commit()
        finally:
            db.close()

    def increment_views(self, post_id):
        db = self._session()
        try:
            updated = (
                db.query(Post)
                .filter(Post.id == parse_id(post_id))
                .update({Post.view_count: Post.view_count + 1}, synchronize_session=False)
            )
            if not updated:
                raise NotFound(f"post {post_id} not found")
            db.commit()
        finally:
            db.close()
        return self.get_post(post_id)

    def list_posts(self, sort, limit, offset=0):
        ordering = _ORDERING.get(sort, ())
        db = self._session()
        try:
            total = db.query(func.count(Post.id)).scalar()
            rows = (
                db.query(Post, Author)
                .join(Author, Author.id == Post.author_id)
                .order_by(*ordering, Post.created_at.desc(), Post.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [_to_record(post, author) for post, author in rows], int(total or 0)
        finally:
            db.close()

    def search(self, terms, limit, offset=0, exclude_id=None):
        tsquery_text = build_tsquery(terms)
        if not tsquery_text:
            return SearchPage(hits=[], total=0)

        vector = keyword_vector()
        query = func.to_tsquery(literal_column(f"'{TEXT_SEARCH_CONFIG}'::regconfig"), tsquery_text)
        rank = func.ts_rank(vector, query).label("rank")
        filters = [vector.op("@@")(query)]
        if exclude_id is not None:
            filters.append(Post.id != exclude_id)

        db = self._session()
        try:
            total = db.query(func.count(Post.id)).filter(*filters).scalar()
            rows = (
                db.query(Post, Author, rank)
                .join(Author, Author.id == Post.author_id)
                .filter(*filters)
                .order_by(rank.desc(), Post.created_at.desc(), Post.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
        except DBAPIError as exc:
            logger.error(json.dumps({"message": "keyword_index_query_failed", "error": str(exc.orig)}))
            raise IndexUnavailable("keyword index query failed") from exc
        finally:
            db.close()

        hits = [SearchHit(post=_to_record(post, author), score=float(score or 0.0)) for post, author, score in rows]
        return SearchPage(hits=hits, total=int(total or 0))

    def iter_post_ids(self) -> Iterator[uuid.UUID]:
        db = self._session()
        try:
            ids = [row[0] for row in db.query(Post.id).order_by(Post.created_at.asc()).all()]
        finally:
            db.close()
        return iter(ids)

    def create_author(self, nickname, key_hash):
        db = self._session()
        try:
            if db.query(Author).filter(Author.nickname == nickname).one_or_none() is not None:
                raise ValueError(f"nickname already taken: {nickname}")
            author = Author(nickname=nickname)
            db.add(author)
            db.flush()
            db.add(ApiKey(author_id=author.id, key_hash=key_hash, active=True))
            db.commit()
            db.refresh(author)
            return _to_author(author)
        finally:
            db.close()

    def author_for_key(self, key_hash):
        db = self._session()
        try:
            author = (
                db.query(Author)
                .join(ApiKey, ApiKey.author_id == Author.id)
                .filter(ApiKey.key_hash == key_hash, ApiKey.active.is_(True))
                .one_or_none()
            )
            return _to_author(author) if author else None
        finally:
            db.close()

    def author_by_nickname(self, nickname):
        db = self._session()
        try:
            author = db.query(Author).filter(Author.nickname == nickname).one_or_none()
            return _to_author(author) if author else None
        finally:
            db.close()

    def verify_schema(self) -> None:
        db = self._session()
        try:
            rows = db.execute(
                text("SELECT indexname, indexdef FROM pg_indexes WHERE tablename = :table"),
                {"table": Post.__tablename__},
            ).all()
        finally:
            db.close()
        check_text_indexes(
            (name, indexed_text_fields(definition)) for name, definition in rows if "to_tsvector" in definition
        )


def _to_author(author: Author) -> AuthorRecord:
    return AuthorRecord(id=author.id, nickname=author.nickname, created_at=author.created_at)


def _to_record(post: Post, author: Author | None) -> PostRecord:
    return PostRecord(
        id=post.id,
        author=_to_author(author) if author is not None else None,
        title=post.title,
        body=post.body,
        derived_keywords=post.derived_keywords,
        view_count=post.view_count,
        like_count=post.like_count,
        comment_count=post.comment_count,
        created_at=post.created_at,
        updated_at=post.updated_at,
    )
