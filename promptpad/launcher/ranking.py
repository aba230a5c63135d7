"""Ranking engine: fuses fuzzy match quality with usage and recency."""

import math
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from loguru import logger

from .matching import (
    DEFAULT_CUTOFF,
    DEFAULT_FIELD_WEIGHTS,
    RapidFuzzMatcher,
    SimilarityMatcher,
)
from .models import Document, SearchResult, utc_now


RECENCY_HALF_LIFE_DAYS = 7.0
EMPTY_QUERY_LIMIT = 20

# Blank query: usage and recency only.
EMPTY_USAGE_WEIGHT = 0.7
EMPTY_RECENCY_WEIGHT = 0.3

# Non-blank query.
MATCH_WEIGHT = 0.6
USAGE_WEIGHT = 0.3
RECENCY_WEIGHT = 0.1


def max_use_count(documents: Sequence[Document]) -> int:
    """Largest use count in the collection, floored at 1."""
    return max([d.use_count for d in documents] + [1])


def usage_score(use_count: int, max_count: int) -> float:
    """
    Logarithmic usage signal in [0, 1].

    usage = ln(1 + n) / ln(1 + max_count)
    """
    max_count = max(max_count, 1)
    n = min(max(use_count, 0), max_count)
    return math.log1p(n) / math.log1p(max_count)


def recency_score(last_used_at: Optional[datetime], now: Optional[datetime] = None) -> float:
    """
    Exponential recency signal in [0, 1] with a 7 day half-life.

    Never used scores 0; timestamps in the future count as "just now".
    """
    if last_used_at is None:
        return 0.0
    if now is None:
        now = utc_now()
    days = (now - last_used_at).total_seconds() / 86400
    days = max(days, 0.0)
    return math.exp(-(days / RECENCY_HALF_LIFE_DAYS) * math.log(2))


class RankingEngine:
    """
    Orders documents for a query.

    Blank query:  0.7 * usage + 0.3 * recency, best 20.
    Other query:  0.6 * (1 - dissimilarity) + 0.3 * usage + 0.1 * recency
                  over the documents the matcher returned, stable sort so
                  equal scores keep the matcher's order.
    """

    def __init__(
        self,
        matcher: Optional[SimilarityMatcher] = None,
        field_weights: Optional[Dict[str, float]] = None,
        cutoff: float = DEFAULT_CUTOFF,
        empty_query_limit: int = EMPTY_QUERY_LIMIT,
    ):
        self.matcher = matcher or RapidFuzzMatcher()
        self.field_weights = dict(field_weights or DEFAULT_FIELD_WEIGHTS)
        self.cutoff = cutoff
        self.empty_query_limit = empty_query_limit

    def rank(
        self,
        query: str,
        documents: Sequence[Document],
        now: Optional[datetime] = None,
    ) -> List[SearchResult]:
        if not documents:
            return []
        if now is None:
            now = utc_now()

        max_count = max_use_count(documents)
        if not query.strip():
            return self._rank_by_usage(documents, max_count, now)
        return self._rank_by_match(query, documents, max_count, now)

    def _rank_by_usage(
        self, documents: Sequence[Document], max_count: int, now: datetime
    ) -> List[SearchResult]:
        results = [
            SearchResult(
                document=doc,
                score=(
                    EMPTY_USAGE_WEIGHT * usage_score(doc.use_count, max_count)
                    + EMPTY_RECENCY_WEIGHT * recency_score(doc.last_used_at, now)
                ),
            )
            for doc in documents
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:self.empty_query_limit]

    def _rank_by_match(
        self, query: str, documents: Sequence[Document], max_count: int, now: datetime
    ) -> List[SearchResult]:
        candidates = self.matcher.search(query, documents, self.field_weights, self.cutoff)

        results = []
        for candidate in candidates:
            match_quality = 1.0 - min(max(candidate.dissimilarity, 0.0), 1.0)
            doc = candidate.document
            score = (
                MATCH_WEIGHT * match_quality
                + USAGE_WEIGHT * usage_score(doc.use_count, max_count)
                + RECENCY_WEIGHT * recency_score(doc.last_used_at, now)
            )
            results.append(SearchResult(document=doc, score=score, matches=candidate.matches))

        results.sort(key=lambda r: r.score, reverse=True)
        logger.debug(f"Ranked {len(results)}/{len(documents)} prompts for {query!r}")
        return results
