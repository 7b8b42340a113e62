"""
Playbooks Application Layer
===========================

Contains:
- Services: playbook authoring and search
- DTOs: request/response models
- Vectorization: payload layout and service factory

Depends on the domain layer and repository interfaces only.
"""

from incident_hub.playbooks.application.dto import (
    HybridSearchRequest,
    PlaybookCreateDTO,
    PlaybookResponse,
    PlaybookSearchHit,
    PlaybookSearchResponse,
    PlaybookTriggerDTO,
    PlaybookUpdateDTO,
    PlaybookWriteResponse,
    ReconcileResponse,
)
from incident_hub.playbooks.application.services import (
    IPlaybookRepository,
    PlaybookRepositoryScope,
    PlaybookService,
    PlaybookWriteResult,
)
from incident_hub.playbooks.application.vectorization import (
    create_playbook_vectorization_service,
    playbook_payload,
    playbook_summary,
)

__all__ = [
    # DTOs
    "HybridSearchRequest",
    "PlaybookCreateDTO",
    "PlaybookResponse",
    "PlaybookSearchHit",
    "PlaybookSearchResponse",
    "PlaybookTriggerDTO",
    "PlaybookUpdateDTO",
    "PlaybookWriteResponse",
    "ReconcileResponse",
    # Services
    "PlaybookService",
    "PlaybookWriteResult",
    # Repository Interfaces
    "IPlaybookRepository",
    "PlaybookRepositoryScope",
    # Vectorization
    "create_playbook_vectorization_service",
    "playbook_payload",
    "playbook_summary",
]
