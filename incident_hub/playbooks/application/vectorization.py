"""
Playbook Vectorization
======================

Payload layout of playbook vector points and the factory for the playbook
VectorizationService.
"""

from pathlib import Path
from typing import Any, Dict, Optional

from incident_hub.config import settings
from incident_hub.infrastructure.embeddings import create_embedding_provider
from incident_hub.infrastructure.vectorstore import IVectorIndex
from incident_hub.playbooks.domain import Playbook
from incident_hub.retrieval.application import RECORD_ID_FIELD, VectorizationService
from incident_hub.retrieval.domain import WeightedRepetitionPreparer, load_retrieval_config

RECORD_TYPE = "playbook"


def playbook_summary(playbook: Playbook) -> Dict[str, Any]:
    """Search-result shape of a playbook read from the record store."""
    return {
        "id": playbook.id,
        "playbook_id": playbook.playbook_id,
        "title": playbook.title,
        "description": playbook.description,
        "priority": playbook.priority,
        "tags": list(playbook.tags),
        "triggers": [t.to_dict() for t in playbook.triggers],
        "outcome": playbook.outcome,
        "created_by": playbook.created_by,
        "is_active": playbook.is_active,
    }


def playbook_payload(playbook: Playbook) -> Dict[str, Any]:
    """Fields mirrored into the vector point for rendering and filtering."""
    payload = playbook_summary(playbook)
    payload.pop("id")
    payload["created_at"] = playbook.created_at.isoformat()
    payload["updated_at"] = playbook.updated_at.isoformat()
    payload["source"] = RECORD_TYPE
    return payload


def summary_from_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Search-result shape rebuilt from a vector point payload."""
    return {
        "id": payload.get(RECORD_ID_FIELD),
        "playbook_id": payload.get("playbook_id"),
        "title": payload.get("title", ""),
        "description": payload.get("description", ""),
        "priority": payload.get("priority"),
        "tags": list(payload.get("tags") or []),
        "triggers": list(payload.get("triggers") or []),
        "outcome": payload.get("outcome", ""),
        "created_by": payload.get("created_by"),
        "is_active": payload.get("is_active", True),
    }


def create_playbook_vectorization_service(
    vector_index: IVectorIndex,
    provider_name: Optional[str] = None,
    embedding_factory=create_embedding_provider,
    config_path: Optional[Path] = None,
) -> VectorizationService:
    """Build the VectorizationService for the playbook collection."""
    path = config_path or settings.retrieval_config_path

    return VectorizationService(
        record_type=RECORD_TYPE,
        collection_name=settings.playbook_collection_name,
        vector_index=vector_index,
        preparer_factory=lambda: WeightedRepetitionPreparer(load_retrieval_config(path).playbook),
        payload_builder=playbook_payload,
        summary_mapper=summary_from_payload,
        provider_name=provider_name,
        embedding_factory=embedding_factory,
    )
