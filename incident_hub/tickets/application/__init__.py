"""
Tickets Application Layer
=========================

Contains:
- Services: ingestion synchronizer and ticket search
- DTOs: request/response models
- Vectorization: payload layout and service factory

Depends on the domain layer and repository/source interfaces only.
"""

from incident_hub.tickets.application.dto import (
    BulkImportRequest,
    BulkImportResponse,
    BulkImportStatusResponse,
    SyncRequest,
    SyncTallyResponse,
    TicketHybridSearchRequest,
    TicketSearchHit,
    TicketSearchResponse,
)
from incident_hub.tickets.application.services import (
    BulkImportResult,
    IBulkImportStateRepository,
    ITicketRepository,
    ITicketSource,
    StateRepositoryScope,
    TicketRepositoryScope,
    TicketSearchService,
    TicketSyncService,
)
from incident_hub.tickets.application.vectorization import (
    create_ticket_vectorization_service,
    ticket_payload,
    ticket_summary,
)

__all__ = [
    # DTOs
    "BulkImportRequest",
    "BulkImportResponse",
    "BulkImportStatusResponse",
    "SyncRequest",
    "SyncTallyResponse",
    "TicketHybridSearchRequest",
    "TicketSearchHit",
    "TicketSearchResponse",
    # Services
    "BulkImportResult",
    "TicketSearchService",
    "TicketSyncService",
    # Interfaces
    "IBulkImportStateRepository",
    "ITicketRepository",
    "ITicketSource",
    "StateRepositoryScope",
    "TicketRepositoryScope",
    # Vectorization
    "create_ticket_vectorization_service",
    "ticket_payload",
    "ticket_summary",
]
