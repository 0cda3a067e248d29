from __future__ import annotations

import json
import logging
import os
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from functools import lru_cache

from prometheus_client import Counter

from blog.reliability import CircuitBreaker
from blog.search.analyzer import AnalyzerUnavailable, NounAnalyzer, get_noun_analyzer

logger = logging.getLogger("blog-api.search")

ANALYZER_TIMEOUT_S = float(os.getenv("ANALYZER_TIMEOUT_S", "2.0"))
ANALYZER_FAILURE_THRESHOLD = int(os.getenv("ANALYZER_FAILURE_THRESHOLD", "5"))
ANALYZER_RESET_TIMEOUT_S = float(os.getenv("ANALYZER_RESET_TIMEOUT_S", "30"))

ANALYZER_FAILURES_TOTAL = Counter(
    "analyzer_failures_total",
    "Noun analyzer calls that degraded to Latin-only tokens",
    ["reason"],
)

_LATIN_RE = re.compile(r"[A-Za-z]+")
_WORD_CHAR_RE = re.compile(r"\w")


def latin_words(text: str) -> list[str]:
    return [word.lower() for word in _LATIN_RE.findall(text)]


class Tokenizer:
    """Turns free text into keyword tokens: analyzer nouns, then Latin words.

    The analyzer runs on a worker thread and is waited on for at most
    ``timeout_s``. Any analyzer failure, including a timeout or an open
    circuit, leaves only the Latin words; the caller never sees the error.
    """

    def __init__(
        self,
        analyzer: NounAnalyzer,
        timeout_s: float = ANALYZER_TIMEOUT_S,
        breaker: CircuitBreaker | None = None,
        max_workers: int = 4,
    ) -> None:
        self._analyzer = analyzer
        self._timeout_s = timeout_s
        self._breaker = breaker
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="noun-analyzer")

    def tokenize(self, text: str) -> list[str]:
        if not text or not text.strip():
            return []
        return self._nouns(text) + latin_words(text)

    def _nouns(self, text: str) -> list[str]:
        if self._breaker is not None and not self._breaker.allow():
            self._degrade("circuit_open", "analyzer circuit open")
            return []

        future = self._executor.submit(self._analyzer.nouns, text)
        try:
            nouns = future.result(timeout=self._timeout_s)
        except FutureTimeoutError:
            future.cancel()
            self._fail("timeout", f"analyzer exceeded {self._timeout_s}s")
            return []
        except AnalyzerUnavailable as exc:
            self._fail("unavailable", str(exc))
            return []
        except Exception as exc:
            self._fail("error", repr(exc))
            return []

        if self._breaker is not None:
            self._breaker.record_success()
        return [noun.lower() for noun in nouns if isinstance(noun, str) and _WORD_CHAR_RE.search(noun)]

    def _fail(self, reason: str, error: str) -> None:
        if self._breaker is not None and self._breaker.record_failure():
            logger.warning(json.dumps({"message": "analyzer_circuit_opened"}))
        self._degrade(reason, error)

    def _degrade(self, reason: str, error: str) -> None:
        ANALYZER_FAILURES_TOTAL.labels(reason).inc()
        logger.warning(json.dumps({"message": "analyzer_degraded", "reason": reason, "error": error}))


@lru_cache(maxsize=1)
def get_tokenizer() -> Tokenizer:
    return Tokenizer(
        get_noun_analyzer(),
        timeout_s=ANALYZER_TIMEOUT_S,
        breaker=CircuitBreaker(
            failure_threshold=ANALYZER_FAILURE_THRESHOLD,
            reset_timeout_s=ANALYZER_RESET_TIMEOUT_S,
        ),
    )


def tokenize(text: str) -> list[str]:
    return get_tokenizer().tokenize(text)
