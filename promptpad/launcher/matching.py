"""Fuzzy field matching used by the ranking engine."""

import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from rapidfuzz import fuzz

from .models import Document, FieldMatch


# Field weights and cutoff the launcher searches with.
DEFAULT_FIELD_WEIGHTS: Dict[str, float] = {
    "name": 0.5,
    "tags": 0.25,
    "folder": 0.15,
    "description": 0.1,
}
DEFAULT_CUTOFF = 0.4

_EPSILON = sys.float_info.epsilon


@dataclass(frozen=True)
class MatchCandidate:
    """A document that matched at least one field, lower dissimilarity is better."""
    document: Document
    dissimilarity: float
    matches: Tuple[FieldMatch, ...] = ()


@runtime_checkable
class SimilarityMatcher(Protocol):
    """Scores weighted document fields against a query."""

    def search(
        self,
        query: str,
        documents: Sequence[Document],
        field_weights: Dict[str, float],
        cutoff: float,
    ) -> List[MatchCandidate]: ...


def field_values(document: Document, field: str) -> List[str]:
    """Searchable strings of a document field (one per tag for ``tags``)."""
    if field == "tags":
        return list(document.tags)
    value = getattr(document, field, None)
    return [value] if isinstance(value, str) and value else []


class RapidFuzzMatcher:
    """
    Field matcher on top of rapidfuzz.

    Each field is compared case-insensitively. When the query fits inside the
    field text the best partial alignment is used, so typos inside a longer
    name still match ("reviw" -> "Code Review"); otherwise the whole strings
    are compared. A field scores ``1 - similarity``; fields above the cutoff
    do not match. Matched fields are combined as a weighted product, so more
    matching fields and heavier fields both lower the final dissimilarity.
    """

    def field_dissimilarity(
        self, query: str, text: str
    ) -> Tuple[float, Optional[Tuple[int, int]]]:
        q = query.lower()
        t = text.lower()
        if not q or not t:
            return 1.0, None

        if len(q) <= len(t):
            alignment = fuzz.partial_ratio_alignment(q, t)
            if alignment is None:
                return 1.0, None
            span = (alignment.dest_start, alignment.dest_end)
            return 1.0 - alignment.score / 100.0, span

        return 1.0 - fuzz.ratio(q, t) / 100.0, (0, len(t))

    def search(
        self,
        query: str,
        documents: Sequence[Document],
        field_weights: Dict[str, float],
        cutoff: float,
    ) -> List[MatchCandidate]:
        query = query.strip()
        if not query:
            return []

        candidates: List[MatchCandidate] = []
        for document in documents:
            total = 1.0
            matched = []
            for field, weight in field_weights.items():
                best = None
                values = field_values(document, field)
                for ref_index, value in enumerate(values):
                    score, span = self.field_dissimilarity(query, value)
                    if span is None or score > cutoff:
                        continue
                    if best is None or score < best[0]:
                        best = (score, span, ref_index, value)
                if best is None:
                    continue

                score, span, ref_index, value = best
                total *= max(score, _EPSILON) ** weight
                matched.append(FieldMatch(
                    field=field,
                    value=value,
                    indices=(span,),
                    ref_index=ref_index if field == "tags" else None,
                ))

            if matched:
                candidates.append(MatchCandidate(
                    document=document,
                    dissimilarity=total,
                    matches=tuple(matched),
                ))

        candidates.sort(key=lambda c: c.dissimilarity)
        return candidates
