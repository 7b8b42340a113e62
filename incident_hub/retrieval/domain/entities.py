"""
Retrieval Domain Entities
=========================

Result types for vector and hybrid search, and the state of a
vectorization service.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class InitializationState(str, Enum):
    """Lifecycle of a vectorization service."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


@dataclass
class VectorMatch:
    """
    A record found by vector similarity.

    ``summary`` is rendered from the point payload, which mirrors the record
    at its last vectorization and may be stale.
    """
    record_id: str
    score: float
    summary: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HybridHit:
    """One fused search result."""
    record_id: str
    score: float
    search_type: str  # vector, text or hybrid
    summary: Dict[str, Any] = field(default_factory=dict)
    similarity: Optional[float] = None


@dataclass
class HybridSearchResult:
    """
    Fused result list plus provenance.

    ``degraded`` is set when one sub-search failed and the hits come from
    the surviving path only; ``failed_paths`` names the failed one.
    """
    hits: List[HybridHit]
    degraded: bool = False
    failed_paths: List[str] = field(default_factory=list)
    vector_weight: float = 0.7
    text_weight: float = 0.3

    @property
    def total(self) -> int:
        return len(self.hits)


@dataclass
class ReconcileTally:
    """Outcome of re-vectorizing a set of records."""
    vectorized: int = 0
    skipped_empty: int = 0
    errors: int = 0

    @property
    def processed(self) -> int:
        return self.vectorized + self.skipped_empty + self.errors

    def to_dict(self) -> Dict[str, int]:
        return {
            "vectorized": self.vectorized,
            "skipped_empty": self.skipped_empty,
            "errors": self.errors,
            "processed": self.processed,
        }
