"""
Retrieval Domain Layer
======================

Field-weight configuration, document preparation and search result types.
"""

from incident_hub.retrieval.domain.entities import (
    HybridHit,
    HybridSearchResult,
    InitializationState,
    ReconcileTally,
    VectorMatch,
)
from incident_hub.retrieval.domain.preparation import (
    IDocumentPreparer,
    WeightedRepetitionPreparer,
)
from incident_hub.retrieval.domain.value_objects import (
    FieldWeight,
    FieldWeightConfig,
    RetrievalConfig,
    load_retrieval_config,
)

__all__ = [
    "HybridHit",
    "HybridSearchResult",
    "InitializationState",
    "ReconcileTally",
    "VectorMatch",
    "IDocumentPreparer",
    "WeightedRepetitionPreparer",
    "FieldWeight",
    "FieldWeightConfig",
    "RetrievalConfig",
    "load_retrieval_config",
]
