from __future__ import annotations

import os
import re
from abc import ABC, abstractmethod

import httpx
from kiwipiepy import Kiwi

NOUN_TAGS = ("NNG", "NNP")

_HANGUL_RE = re.compile(r"[가-힣]+")

# Longest first so "에서는" wins over "는".
_PARTICLES = tuple(
    sorted(
        (
            "에서는", "으로는", "에게서", "이라고", "에서", "에게", "으로", "부터", "까지",
            "처럼", "보다", "이나", "라고", "하고", "이랑", "와", "과", "은", "는", "이",
            "가", "을", "를", "의", "에", "도", "로", "만", "랑",
        ),
        key=len,
        reverse=True,
    )
)
_PREDICATE_ENDINGS = (
    "습니다", "합니다", "했습니다", "했다", "한다", "하다", "해요", "했어요", "어요",
    "아요", "니다", "었다", "았다", "하는", "하고", "해서", "하게",
)


class AnalyzerUnavailable(RuntimeError):
    pass


class NounAnalyzer(ABC):
    @abstractmethod
    def nouns(self, text: str) -> list[str]:
        raise NotImplementedError


class KiwiNounAnalyzer(NounAnalyzer):
    """Korean noun extraction backed by the kiwipiepy morphological analyzer."""

    def __init__(self, kiwi: Kiwi | None = None) -> None:
        self._kiwi = kiwi or Kiwi()

    def nouns(self, text: str) -> list[str]:
        try:
            tokens = self._kiwi.tokenize(text)
        except Exception as exc:
            raise AnalyzerUnavailable(f"kiwi tokenize failed: {exc}") from exc
        return [token.form for token in tokens if token.tag in NOUN_TAGS]


class HttpNounAnalyzer(NounAnalyzer):
    """Calls an out-of-process analysis service: POST /nouns {"text": ...}."""

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 2.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url, timeout=timeout_s, transport=transport)

    def nouns(self, text: str) -> list[str]:
        try:
            resp = self._client.post("/nouns", json={"text": text})
        except httpx.HTTPError as exc:
            raise AnalyzerUnavailable(f"analyzer request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise AnalyzerUnavailable(f"analyzer failed: {resp.status_code} {resp.text}")
        data = resp.json()
        nouns = data.get("nouns") if isinstance(data, dict) else None
        if not isinstance(nouns, list):
            raise AnalyzerUnavailable("analyzer response missing nouns")
        return [str(noun) for noun in nouns]


class SimpleNounAnalyzer(NounAnalyzer):
    """Rule-based stand-in for a morphological analyzer.

    Takes each run of Hangul syllables, drops words that end like a
    predicate, and strips one trailing particle when at least two syllables
    remain. Deterministic and dependency-free, so it is the analyzer used in
    tests and local development.
    """

    def nouns(self, text: str) -> list[str]:
        result: list[str] = []
        for word in _HANGUL_RE.findall(text):
            if word.endswith(_PREDICATE_ENDINGS):
                continue
            stem = _strip_particle(word)
            if len(stem) >= 2:
                result.append(stem)
        return result


def _strip_particle(word: str) -> str:
    for particle in _PARTICLES:
        if word.endswith(particle) and len(word) - len(particle) >= 2:
            return word[: -len(particle)]
    return word


def get_noun_analyzer() -> NounAnalyzer:
    provider = os.getenv("ANALYZER_PROVIDER", "kiwi").lower()
    if provider == "http":
        base_url = os.getenv("ANALYZER_URL", "http://localhost:8088")
        timeout_s = float(os.getenv("ANALYZER_TIMEOUT_S", "2.0"))
        return HttpNounAnalyzer(base_url=base_url, timeout_s=timeout_s)
    if provider == "simple":
        return SimpleNounAnalyzer()
    return KiwiNounAnalyzer()
