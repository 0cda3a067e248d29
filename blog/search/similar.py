from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from blog.store.base import PostStore, SearchHit

DEFAULT_SIMILAR_LIMIT = 3
MIN_KEYWORD_LENGTH = 2

STATUS_OK = "ok"
STATUS_INSUFFICIENT_KEYWORDS = "insufficient_keywords"


@dataclass(frozen=True)
class SimilarResult:
    status: str
    keywords: str
    hits: list[SearchHit] = field(default_factory=list)


def find_similar(store: PostStore, post_id: uuid.UUID | str, limit: int | None = None) -> SimilarResult:
    """Top ``limit`` posts ranked against the source post's keywords.

    Keywords are composed from the post's current title and body rather than
    read back from storage. Raises NotFound when the source post is missing;
    a post without usable keywords yields an empty, non-error result.
    """
    if limit is None or limit <= 0:
        limit = DEFAULT_SIMILAR_LIMIT

    post = store.get_post(post_id)
    keywords = store.composer.compose(post.title, post.body)
    if len(keywords) < MIN_KEYWORD_LENGTH:
        return SimilarResult(status=STATUS_INSUFFICIENT_KEYWORDS, keywords=keywords)

    page = store.search(keywords.split(), limit=limit, exclude_id=post.id)
    return SimilarResult(status=STATUS_OK, keywords=keywords, hits=page.hits)
