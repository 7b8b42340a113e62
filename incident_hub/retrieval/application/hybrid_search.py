"""
Hybrid Search
=============

Runs a lexical record-store search and a vector search concurrently and
fuses them into one ranked list.

Scoring (weights need not sum to 1):
- vector only:  similarity * vector_weight          -> "vector"
- text only:    text_weight                         -> "text"
- both:         similarity * vector_weight + text_weight -> "hybrid"

Lexical matches carry no relevance score, so presence counts as a flat
text_weight. Ties are broken by vector rank, then lexical rank.
"""

import asyncio
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from incident_hub.config import SearchType, settings
from incident_hub.core import (
    ConfigurationException,
    DimensionMismatchException,
    HybridSearchException,
    ValidationException,
)
from incident_hub.infrastructure.vectorstore import VectorFilter
from incident_hub.retrieval.application.vectorization import VectorizationService
from incident_hub.retrieval.domain import HybridHit, HybridSearchResult, VectorMatch
from incident_hub.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

TextSearch = Callable[[str], Awaitable[Sequence[Dict[str, Any]]]]

SCORE_PRECISION = 6


def fuse_results(
    vector_matches: Sequence[VectorMatch],
    text_matches: Sequence[Dict[str, Any]],
    vector_weight: float,
    text_weight: float,
    max_results: int,
    id_key: str = "id",
) -> List[HybridHit]:
    """
    Fuse vector and lexical matches keyed by record id.

    The ordering is a pure function of the inputs. When a record appears
    in both lists, the record-store summary replaces the payload summary.

    Args:
        vector_matches: Vector hits, best first
        text_matches: Record-store summaries, in lexical result order
        vector_weight: Multiplier for similarity
        text_weight: Flat score for a lexical match
        max_results: Truncation length
        id_key: Key of the record id in text summaries
    """
    entries: Dict[str, Dict[str, Any]] = {}

    for rank, match in enumerate(vector_matches):
        if match.record_id in entries:
            continue
        entries[match.record_id] = {
            "score": match.score * vector_weight,
            "search_type": SearchType.VECTOR,
            "similarity": match.score,
            "summary": match.summary,
            "vector_rank": rank,
            "text_rank": math.inf,
        }

    for rank, summary in enumerate(text_matches):
        record_id = str(summary[id_key])
        entry = entries.get(record_id)
        if entry is None:
            entries[record_id] = {
                "score": text_weight,
                "search_type": SearchType.TEXT,
                "similarity": None,
                "summary": summary,
                "vector_rank": math.inf,
                "text_rank": rank,
            }
        elif entry["text_rank"] == math.inf:
            entry["score"] += text_weight
            entry["search_type"] = SearchType.HYBRID
            entry["summary"] = summary
            entry["text_rank"] = rank

    ranked = sorted(
        entries.items(),
        key=lambda item: (
            -round(item[1]["score"], SCORE_PRECISION),
            item[1]["vector_rank"],
            item[1]["text_rank"],
        )
    )

    return [
        HybridHit(
            record_id=record_id,
            score=round(entry["score"], SCORE_PRECISION),
            search_type=entry["search_type"],
            summary=entry["summary"],
            similarity=entry["similarity"],
        )
        for record_id, entry in ranked[:max_results]
    ]


class HybridSearchService:
    """
    Combines a record-store text search with a VectorizationService.

    A single failed sub-search degrades the result instead of failing it;
    only when both fail does the caller get HybridSearchException.
    """

    def __init__(self, vectorization: VectorizationService, text_search: TextSearch, id_key: str = "id"):
        self._vectorization = vectorization
        self._text_search = text_search
        self._id_key = id_key

    async def search(
        self,
        query: str,
        vector_weight: Optional[float] = None,
        text_weight: Optional[float] = None,
        max_results: Optional[int] = None,
        vector_filter: Optional[VectorFilter] = None,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> HybridSearchResult:
        """
        Run both sub-searches concurrently and fuse them.

        Raises:
            ValidationException: Blank query or negative weights
            HybridSearchException: Both sub-searches failed
        """
        if not query or not query.strip():
            raise ValidationException("Search query must not be empty")

        vector_weight = settings.hybrid_vector_weight if vector_weight is None else vector_weight
        text_weight = settings.hybrid_text_weight if text_weight is None else text_weight
        max_results = max_results or settings.hybrid_max_results
        if vector_weight < 0 or text_weight < 0:
            raise ValidationException(
                "Search weights must be non-negative",
                {"vector_weight": vector_weight, "text_weight": text_weight}
            )

        query = query.strip()
        vector_outcome, text_outcome = await asyncio.gather(
            self._vectorization.search(query, top_k=top_k, min_score=min_score, filters=vector_filter),
            self._text_search(query),
            return_exceptions=True,
        )

        failed: List[str] = []
        errors: Dict[str, str] = {}
        for path, outcome in (("vector", vector_outcome), ("text", text_outcome)):
            if not isinstance(outcome, BaseException):
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, (DimensionMismatchException, ConfigurationException)):
                raise outcome
            failed.append(path)
            errors[path] = str(outcome)
            logger.warning(
                "Hybrid sub-search failed",
                extra={
                    "path": path,
                    "record_type": self._vectorization.record_type,
                    "error_type": type(outcome).__name__,
                    "error": str(outcome),
                }
            )

        if len(failed) == 2:
            raise HybridSearchException("Both vector and text search failed", errors)

        vector_matches = [] if "vector" in failed else vector_outcome
        text_matches = [] if "text" in failed else text_outcome

        hits = fuse_results(
            vector_matches, text_matches, vector_weight, text_weight, max_results, self._id_key
        )

        logger.info(
            "Hybrid search completed",
            extra={
                "record_type": self._vectorization.record_type,
                "vector_hits": len(vector_matches),
                "text_hits": len(text_matches),
                "returned": len(hits),
                "degraded": bool(failed),
            }
        )

        return HybridSearchResult(
            hits=hits,
            degraded=bool(failed),
            failed_paths=failed,
            vector_weight=vector_weight,
            text_weight=text_weight,
        )
