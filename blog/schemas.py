from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, StringConstraints

PostTitle = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]


class PostCreateRequest(BaseModel):
    title: PostTitle
    body: str = Field(min_length=1)


class PostUpdateRequest(PostCreateRequest):
    pass


class AuthorSummary(BaseModel):
    id: str
    nickname: str


class PostSummary(BaseModel):
    id: str
    title: str
    author: AuthorSummary | None
    view_count: int
    like_count: int
    comment_count: int
    created_at: datetime


class PostDetail(PostSummary):
    body: str
    updated_at: datetime | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PostListResponse(BaseModel):
    posts: list[PostSummary]
    pagination: Pagination
    sort: str


class SearchResponse(BaseModel):
    posts: list[PostSummary]
    pagination: Pagination
    query: str
    message: str | None = None


class SimilarItem(BaseModel):
    id: str
    title: str
    excerpt: str
    created_at: datetime
    author: AuthorSummary | None
    view_count: int
    like_count: int
    comment_count: int
    score: float


class SimilarResponse(BaseModel):
    status: Literal["ok", "insufficient_keywords"]
    message: str | None = None
    similar_items: list[SimilarItem]


class DeletePostResponse(BaseModel):
    deleted_post_id: str
