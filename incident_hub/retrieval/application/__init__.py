"""
Retrieval Application Layer
===========================

Vectorization and hybrid search services.
"""

from incident_hub.retrieval.application.vectorization import (
    RECORD_ID_FIELD,
    VectorizationService,
)
from incident_hub.retrieval.application.hybrid_search import (
    HybridSearchService,
    fuse_results,
)

__all__ = [
    "RECORD_ID_FIELD",
    "VectorizationService",
    "HybridSearchService",
    "fuse_results",
]
