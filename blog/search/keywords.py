from __future__ import annotations

import os
from functools import lru_cache

from blog.search.tokenizer import Tokenizer, get_tokenizer

# Title nouns count this many times over body nouns; reindex after changing it.
TITLE_BOOST = int(os.getenv("TITLE_BOOST", "3"))


class KeywordComposer:
    """Builds the ``derived_keywords`` text stored with every post.

    Title tokens are written ``title_boost`` times ahead of the body tokens
    so their term frequency, and so their weight in a frequency-based
    relevance score, goes up without per-field index weights.
    """

    def __init__(self, tokenizer: Tokenizer, title_boost: int = TITLE_BOOST) -> None:
        if title_boost < 1:
            raise ValueError("title_boost must be positive")
        self._tokenizer = tokenizer
        self._title_boost = title_boost

    @property
    def tokenizer(self) -> Tokenizer:
        return self._tokenizer

    def compose(self, title: str, body: str) -> str:
        title_tokens = self._tokenizer.tokenize(title)
        body_tokens = self._tokenizer.tokenize(body)
        return " ".join(title_tokens * self._title_boost + body_tokens)


@lru_cache(maxsize=1)
def get_composer() -> KeywordComposer:
    return KeywordComposer(get_tokenizer())


def compose(title: str, body: str) -> str:
    return get_composer().compose(title, body)
