from __future__ import annotations

import math
from collections import Counter
from collections.abc import Hashable, Iterable


class InvertedIndex:
    """Token -> postings map with BM25 scoring.

    Documents are whitespace-separated keyword strings. Term frequency is
    kept per posting, so repeated tokens weigh more, with saturation
    controlled by ``k1`` and length normalisation by ``b``.
    """

    def __init__(self, k1: float = 1.2, b: float = 0.75) -> None:
        self.k1 = k1
        self.b = b
        self._postings: dict[str, dict[Hashable, int]] = {}
        self._doc_terms: dict[Hashable, Counter[str]] = {}
        self._doc_lengths: dict[Hashable, int] = {}
        self._total_length = 0

    def __len__(self) -> int:
        return len(self._doc_terms)

    def __contains__(self, doc_id: Hashable) -> bool:
        return doc_id in self._doc_terms

    def add(self, doc_id: Hashable, text: str) -> None:
        self.remove(doc_id)
        tokens = text.split()
        if not tokens:
            return
        counts = Counter(tokens)
        for term, tf in counts.items():
            self._postings.setdefault(term, {})[doc_id] = tf
        self._doc_terms[doc_id] = counts
        self._doc_lengths[doc_id] = len(tokens)
        self._total_length += len(tokens)

    def remove(self, doc_id: Hashable) -> bool:
        counts = self._doc_terms.pop(doc_id, None)
        if counts is None:
            return False
        for term in counts:
            posting = self._postings.get(term)
            if posting is None:
                continue
            posting.pop(doc_id, None)
            if not posting:
                del self._postings[term]
        self._total_length -= self._doc_lengths.pop(doc_id)
        return True

    def postings(self, term: str) -> dict[Hashable, int]:
        return dict(self._postings.get(term, {}))

    def vocabulary(self) -> set[str]:
        return set(self._postings)

    def score(self, terms: Iterable[str]) -> dict[Hashable, float]:
        n_docs = len(self._doc_terms)
        if n_docs == 0:
            return {}
        avg_len = self._total_length / n_docs
        scores: dict[Hashable, float] = {}
        for term in dict.fromkeys(terms):
            posting = self._postings.get(term)
            if not posting:
                continue
            df = len(posting)
            idf = math.log(1 + (n_docs - df + 0.5) / (df + 0.5))
            for doc_id, tf in posting.items():
                norm = self.k1 * (1 - self.b + self.b * self._doc_lengths[doc_id] / avg_len)
                scores[doc_id] = scores.get(doc_id, 0.0) + idf * tf * (self.k1 + 1) / (tf + norm)
        return scores
