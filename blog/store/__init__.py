import os
from functools import lru_cache

from blog.search.keywords import get_composer
from blog.store.base import PostStore

STORE_BACKEND = os.getenv("STORE_BACKEND", "sql").lower()


@lru_cache(maxsize=1)
def get_post_store() -> PostStore:
    if STORE_BACKEND == "memory":
        from blog.store.memory import MemoryPostStore

        return MemoryPostStore(get_composer())

    from blog.store.sql import SqlPostStore

    return SqlPostStore(get_composer())
