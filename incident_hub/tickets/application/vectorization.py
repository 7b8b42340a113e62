"""
Ticket Vectorization
====================

Payload layout of ticket vector points and the factory for the ticket
VectorizationService. The raw source record is never mirrored.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from incident_hub.config import settings
from incident_hub.infrastructure.embeddings import create_embedding_provider
from incident_hub.infrastructure.vectorstore import IVectorIndex
from incident_hub.retrieval.application import RECORD_ID_FIELD, VectorizationService
from incident_hub.retrieval.domain import WeightedRepetitionPreparer, load_retrieval_config
from incident_hub.tickets.domain import Ticket

RECORD_TYPE = "ticket"

SUMMARY_FIELDS = (
    "ticket_id", "source", "short_description", "description", "category",
    "subcategory", "status", "priority", "impact", "urgency",
    "assigned_to", "assignment_group",
)
DATE_FIELDS = ("opened_at", "closed_at", "resolved_at")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def ticket_summary(ticket: Ticket) -> Dict[str, Any]:
    """Search-result shape of a ticket read from the record store."""
    summary: Dict[str, Any] = {"id": ticket.id}
    for name in SUMMARY_FIELDS:
        summary[name] = getattr(ticket, name)
    for name in DATE_FIELDS:
        summary[name] = _iso(getattr(ticket, name))
    summary["tags"] = list(ticket.tags)
    return summary


def ticket_payload(ticket: Ticket) -> Dict[str, Any]:
    """Fields mirrored into the vector point for rendering and filtering."""
    payload = ticket_summary(ticket)
    payload.pop("id")
    payload["is_active"] = True
    return payload


def summary_from_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Search-result shape rebuilt from a vector point payload."""
    summary: Dict[str, Any] = {"id": payload.get(RECORD_ID_FIELD)}
    for name in SUMMARY_FIELDS + DATE_FIELDS:
        summary[name] = payload.get(name)
    summary["tags"] = list(payload.get("tags") or [])
    return summary


def create_ticket_vectorization_service(
    vector_index: IVectorIndex,
    provider_name: Optional[str] = None,
    embedding_factory=create_embedding_provider,
    config_path: Optional[Path] = None,
) -> VectorizationService:
    """Build the VectorizationService for the ticket collection."""
    path = config_path or settings.retrieval_config_path

    return VectorizationService(
        record_type=RECORD_TYPE,
        collection_name=settings.ticket_collection_name,
        vector_index=vector_index,
        preparer_factory=lambda: WeightedRepetitionPreparer(load_retrieval_config(path).ticket),
        payload_builder=ticket_payload,
        summary_mapper=summary_from_payload,
        provider_name=provider_name,
        embedding_factory=embedding_factory,
    )
