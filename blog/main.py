import json
import logging
import math
import os
import re
import sys
import time
import uuid

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from redis.asyncio import Redis
from redis.exceptions import RedisError
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger("blog-api")
logger.setLevel(logging.INFO)
_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(logging.Formatter("%(message)s"))
logger.addHandler(_handler)
logger.propagate = False

from blog.auth import hash_api_key
from blog.otel import setup_tracing
from blog.schemas import (
    AuthorSummary,
    DeletePostResponse,
    Pagination,
    PostCreateRequest,
    PostDetail,
    PostListResponse,
    PostSummary,
    PostUpdateRequest,
    SearchResponse,
    SimilarItem,
    SimilarResponse,
)
from blog.search.similar import STATUS_INSUFFICIENT_KEYWORDS, find_similar
from blog.store import get_post_store
from blog.store.base import SORT_OPTIONS, IndexUnavailable, NotFound, PostRecord, PostStore, SearchHit

app = FastAPI(title="blog-api")
setup_tracing(app)

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "false").lower() == "true"
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
WRITES_PER_MINUTE = int(os.getenv("WRITES_PER_MINUTE", "30"))
EXCERPT_CHARS = 100

PUBLIC_PATHS = {"/health", "/metrics"}
WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

post_store: PostStore | None = None
redis_client: Redis | None = None

REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
)
SIMILAR_QUERIES_TOTAL = Counter(
    "similar_queries_total",
    "Similar-post queries by outcome",
    ["status"],
)
POST_WRITES_TOTAL = Counter(
    "post_writes_total",
    "Post writes by operation",
    ["operation"],
)
RATE_LIMITED_TOTAL = Counter(
    "rate_limited_total",
    "Total requests rate limited",
    ["reason"],
)


def _store() -> PostStore:
    global post_store
    if post_store is None:
        post_store = get_post_store()
    return post_store


def _error(status_code: int, code: str, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content={"error": {"code": code, "message": message}},
    )


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return _error(404, "not_found", str(exc) or "Not found")


@app.exception_handler(IndexUnavailable)
async def index_unavailable_handler(request: Request, exc: IndexUnavailable):
    return _error(503, "index_unavailable", "Search is temporarily unavailable")


@app.on_event("startup")
def verify_store_schema():
    _store().verify_schema()
    logger.info(json.dumps({"message": "store_ready", "backend": type(_store()).__name__}))


@app.on_event("startup")
async def connect_redis():
    global redis_client
    if RATE_LIMIT_ENABLED:
        redis_client = Redis.from_url(REDIS_URL, decode_responses=True)


@app.on_event("shutdown")
async def close_redis():
    global redis_client
    if redis_client is not None:
        await redis_client.close()
        redis_client = None


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/posts", response_model=PostListResponse)
def list_posts(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    sort: str = "latest",
):
    if sort not in SORT_OPTIONS:
        sort = "latest"
    posts, total = _store().list_posts(sort, limit=limit, offset=(page - 1) * limit)
    return PostListResponse(
        posts=[_summary(post) for post in posts],
        pagination=_pagination(page, limit, total),
        sort=sort,
    )


@app.get("/posts/search", response_model=SearchResponse)
def search_posts(
    q: str = "",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
):
    query = q.strip()
    if not query:
        return _error(400, "invalid_query", "Search query is required")

    store = _store()
    terms = store.composer.tokenizer.tokenize(query)
    if not terms:
        return SearchResponse(
            posts=[],
            pagination=_pagination(page, limit, 0),
            query=query,
            message="No searchable keywords in query",
        )

    result = store.search(terms, limit=limit, offset=(page - 1) * limit)
    return SearchResponse(
        posts=[_summary(hit.post) for hit in result.hits],
        pagination=_pagination(page, limit, result.total),
        query=query,
        message=None if result.total else "No posts matched the query",
    )


@app.get("/posts/{post_id}", response_model=PostDetail)
def get_post(post_id: str):
    return _detail(_store().increment_views(post_id))


@app.get("/posts/{post_id}/similar", response_model=SimilarResponse)
def similar_posts(post_id: str, limit: int | None = Query(default=None, le=50)):
    result = find_similar(_store(), post_id, limit)
    SIMILAR_QUERIES_TOTAL.labels(result.status).inc()
    if result.status == STATUS_INSUFFICIENT_KEYWORDS:
        return SimilarResponse(
            status=result.status,
            message="Not enough keywords in this post to find similar posts",
            similar_items=[],
        )
    return SimilarResponse(
        status=result.status,
        message=None if result.hits else "No similar posts found",
        similar_items=[_similar_item(hit) for hit in result.hits],
    )


@app.post("/posts", response_model=PostDetail, status_code=201)
def create_post(payload: PostCreateRequest, request: Request):
    post = _store().create_post(request.state.author_id, payload.title, payload.body)
    POST_WRITES_TOTAL.labels("create").inc()
    logger.info(
        json.dumps(
            {
                "message": "post_created",
                "post_id": str(post.id),
                "keyword_count": len(post.derived_keywords.split()),
            }
        )
    )
    return _detail(post)


@app.put("/posts/{post_id}", response_model=PostDetail)
def update_post(post_id: str, payload: PostUpdateRequest, request: Request):
    store = _store()
    existing = store.get_post(post_id)
    if not _is_author(existing, request):
        return _error(403, "forbidden", "Only the author can edit this post")

    post = store.update_post(existing.id, payload.title, payload.body)
    POST_WRITES_TOTAL.labels("update").inc()
    logger.info(json.dumps({"message": "post_updated", "post_id": str(post.id)}))
    return _detail(post)


@app.delete("/posts/{post_id}", response_model=DeletePostResponse)
def delete_post(post_id: str, request: Request):
    store = _store()
    existing = store.get_post(post_id)
    if not _is_author(existing, request):
        return _error(403, "forbidden", "Only the author can delete this post")

    store.delete_post(existing.id)
    POST_WRITES_TOTAL.labels("delete").inc()
    logger.info(json.dumps({"message": "post_deleted", "post_id": str(existing.id)}))
    return DeletePostResponse(deleted_post_id=str(existing.id))


def _is_author(post: PostRecord, request: Request) -> bool:
    return post.author is not None and post.author.id == request.state.author_id


def _author(post: PostRecord) -> AuthorSummary | None:
    if post.author is None:
        return None
    return AuthorSummary(id=str(post.author.id), nickname=post.author.nickname)


def _summary(post: PostRecord) -> PostSummary:
    return PostSummary(
        id=str(post.id),
        title=post.title,
        author=_author(post),
        view_count=post.view_count,
        like_count=post.like_count,
        comment_count=post.comment_count,
        created_at=post.created_at,
    )


def _detail(post: PostRecord) -> PostDetail:
    return PostDetail(
        **_summary(post).model_dump(),
        body=post.body,
        updated_at=post.updated_at,
    )


def _similar_item(hit: SearchHit) -> SimilarItem:
    post = hit.post
    return SimilarItem(
        id=str(post.id),
        title=post.title,
        excerpt=_excerpt(post.body),
        created_at=post.created_at,
        author=_author(post),
        view_count=post.view_count,
        like_count=post.like_count,
        comment_count=post.comment_count,
        score=round(hit.score, 6),
    )


def _excerpt(body: str, max_chars: int = EXCERPT_CHARS) -> str:
    collapsed = re.sub(r"\s+", " ", body).strip()
    if len(collapsed) <= max_chars:
        return collapsed
    return collapsed[: max_chars - 1].rstrip() + "…"


def _pagination(page: int, limit: int, total: int) -> Pagination:
    total_pages = math.ceil(total / limit) if total else 0
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


async def check_write_budget(client: Redis, author_id: str, limit: int = WRITES_PER_MINUTE) -> int | None:
    """Count a write in the author's one-minute bucket; return Retry-After seconds once over limit."""
    minute_bucket = int(time.time() // 60)
    key = f"rl:writes:{author_id}:{minute_bucket}"

    count = await client.incr(key)
    if count == 1:
        await client.expire(key, 60)

    if count > limit:
        return 60 - int(time.time() % 60)
    return None


@app.middleware("http")
async def rate_limit_writes(request: Request, call_next):
    if not RATE_LIMIT_ENABLED or request.method not in WRITE_METHODS:
        return await call_next(request)

    if redis_client is None:
        return _error(503, "rate_limit_unavailable", "Redis unavailable")

    author_id = getattr(request.state, "author_id", "unknown")
    try:
        retry_after = await check_write_budget(redis_client, str(author_id))
    except RedisError:
        return _error(503, "rate_limit_unavailable", "Redis unavailable")

    if retry_after is not None:
        RATE_LIMITED_TOTAL.labels("writes_per_minute").inc()
        return _error(429, "rate_limited", "Write limit exceeded", headers={"Retry-After": str(retry_after)})

    return await call_next(request)


@app.middleware("http")
async def api_key_auth(request: Request, call_next):
    if request.url.path in PUBLIC_PATHS or request.method not in WRITE_METHODS:
        return await call_next(request)

    raw_key = None
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        raw_key = auth_header.split(" ", 1)[1].strip()
    if not raw_key:
        raw_key = request.headers.get("X-API-Key")

    if not raw_key:
        return _error(401, "unauthorized", "Missing API key")

    author = await run_in_threadpool(_store().author_for_key, hash_api_key(raw_key))
    if author is None:
        return _error(401, "unauthorized", "Invalid API key")

    request.state.author_id = author.id
    return await call_next(request)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
    finally:
        elapsed_seconds = time.perf_counter() - start
        payload = {
            "message": "request",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": getattr(response, "status_code", None),
            "duration_ms": round(elapsed_seconds * 1000, 2),
        }
        logger.info(json.dumps(payload, separators=(",", ":")))

    if response is None:
        return _error(500, "internal_error", "Unhandled error")

    response.headers["X-Request-Id"] = request_id

    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    REQUESTS_TOTAL.labels(request.method, path, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, path).observe(elapsed_seconds)
    return response
