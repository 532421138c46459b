"""Similarity scoring policies for normalised bidder names."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from rapidfuzz import fuzz
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import linear_kernel

logger = logging.getLogger(__name__)


class SimilarityScorer(ABC):
    """Pure, symmetric score of two normalised names in ``[0, 1]``."""

    name = "abstract"

    def score(self, a: str, b: str) -> float:
        if not a or not b:
            return 0.0
        if a == b:
            return 1.0
        value = float(self._score(a, b))
        return min(max(value, 0.0), 1.0)

    @abstractmethod
    def _score(self, a: str, b: str) -> float:
        """Score two distinct, non-empty names."""


class TokenBlendScorer(SimilarityScorer):
    """Edit-distance ratio blended with token overlap (RapidFuzz).

    Reordered tokens score through ``token_sort_ratio``. ``token_set_ratio``
    is only trusted half-way because a name that is a subset of another
    ("abc" vs "abc electrical") scores 100 on it.
    """

    name = "token_blend"

    def _score(self, a: str, b: str) -> float:
        ratio = fuzz.ratio(a, b) / 100
        token_sort = fuzz.token_sort_ratio(a, b) / 100
        token_set = fuzz.token_set_ratio(a, b) / 100
        return max(ratio, token_sort, 0.5 * token_set + 0.5 * ratio)


class TfidfScorer(SimilarityScorer):
    """Cosine similarity of character n-gram TF-IDF vectors."""

    name = "tfidf"

    def __init__(self, ngram_range: tuple[int, int] = (2, 3)) -> None:
        self.ngram_range = ngram_range

    def _score(self, a: str, b: str) -> float:
        # both orders yield the same vocabulary and idf weights
        first, second = sorted((a, b))
        vectorizer = TfidfVectorizer(analyzer="char_wb", ngram_range=self.ngram_range)
        try:
            matrix = vectorizer.fit_transform([first, second])
        except ValueError:
            return 0.0
        return float(linear_kernel(matrix[0], matrix[1]).flatten()[0])


def create_scorer(name: str) -> SimilarityScorer:
    """Instantiate a scorer by name, falling back to the token blend."""

    scorer_name = (name or "token_blend").lower()
    if scorer_name in {"token_blend", "rapidfuzz", "default"}:
        return TokenBlendScorer()
    if scorer_name in {"tfidf", "char_tfidf"}:
        return TfidfScorer()

    logger.warning("Unknown similarity scorer '%s'; falling back to token blend", name)
    return TokenBlendScorer()


__all__ = ["SimilarityScorer", "TfidfScorer", "TokenBlendScorer", "create_scorer"]
