"""
Playbook Controllers (API Routes)
=================================

FastAPI routes for playbook authoring and search.

Controllers are thin - they delegate to PlaybookService.
"""

from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from incident_hub.infrastructure.vectorstore import get_vector_index
from incident_hub.playbooks.application import (
    HybridSearchRequest,
    PlaybookCreateDTO,
    PlaybookResponse,
    PlaybookSearchHit,
    PlaybookSearchResponse,
    PlaybookService,
    PlaybookTriggerDTO,
    PlaybookUpdateDTO,
    PlaybookWriteResponse,
    PlaybookWriteResult,
    ReconcileResponse,
    create_playbook_vectorization_service,
    playbook_summary,
)
from incident_hub.playbooks.domain import Playbook
from incident_hub.playbooks.infrastructure import playbook_repository_scope
from incident_hub.retrieval.application import VectorizationService
from incident_hub.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/playbooks", tags=["Playbooks"])


# ========== Dependencies ==========

@lru_cache()
def get_playbook_vectorization_service() -> VectorizationService:
    """Process-wide playbook vectorization service (holds init state)."""
    return create_playbook_vectorization_service(get_vector_index())


def get_playbook_service() -> PlaybookService:
    """Get playbook service instance."""
    return PlaybookService(playbook_repository_scope, get_playbook_vectorization_service())


# ========== Mapping ==========

def to_response(playbook: Playbook) -> PlaybookResponse:
    return PlaybookResponse(
        id=playbook.id,
        playbook_id=playbook.playbook_id,
        title=playbook.title,
        description=playbook.description,
        priority=playbook.priority,
        tags=playbook.tags,
        triggers=[PlaybookTriggerDTO(**t.to_dict()) for t in playbook.triggers],
        outcome=playbook.outcome,
        usage=playbook.usage,
        confidence=playbook.confidence,
        created_by=playbook.created_by,
        is_active=playbook.is_active,
        created_at=playbook.created_at,
        updated_at=playbook.updated_at,
    )


def to_write_response(result: PlaybookWriteResult) -> PlaybookWriteResponse:
    return PlaybookWriteResponse(playbook=to_response(result.playbook), vector_synced=result.vector_synced)


# ========== Search Routes ==========

@router.get("/search", response_model=PlaybookSearchResponse, summary="Lexical playbook search")
async def text_search(
    query: str = Query(..., min_length=1),
    limit: int = Query(default=50, ge=1, le=200),
    service: PlaybookService = Depends(get_playbook_service)
):
    playbooks = await service.text_search(query, limit)
    hits = [
        PlaybookSearchHit(id=p.id, search_type="text", playbook=playbook_summary(p))
        for p in playbooks
    ]
    return PlaybookSearchResponse(query=query, results=hits, total=len(hits))


@router.get("/search/vector", response_model=PlaybookSearchResponse, summary="Similarity playbook search")
async def vector_search(
    query: str = Query(..., min_length=1),
    top_k: int = Query(default=20, ge=1, le=200),
    min_score: Optional[float] = Query(default=None, ge=0.0, le=1.0),
    priority: Optional[str] = Query(default=None),
    tags: List[str] = Query(default=[]),
    service: PlaybookService = Depends(get_playbook_service)
):
    matches = await service.vector_search(query, top_k=top_k, min_score=min_score, priority=priority, tags=tags)
    hits = [
        PlaybookSearchHit(
            id=m.record_id,
            score=m.score,
            similarity=m.score,
            search_type="vector",
            playbook=m.summary,
        )
        for m in matches
    ]
    return PlaybookSearchResponse(query=query, results=hits, total=len(hits))


@router.post(
    "/search/hybrid",
    response_model=PlaybookSearchResponse,
    summary="Hybrid playbook search",
    description="""
    Runs lexical and vector search concurrently and fuses the results.

    - vector only: `similarity * vector_weight`
    - text only: `text_weight`
    - both: `similarity * vector_weight + text_weight`

    If one sub-search fails the response is `degraded` and carries only the
    surviving path's results. If both fail the endpoint returns 503.
    """
)
async def hybrid_search(
    request: HybridSearchRequest,
    service: PlaybookService = Depends(get_playbook_service)
):
    result = await service.hybrid_search(
        request.query,
        vector_weight=request.vector_weight,
        text_weight=request.text_weight,
        max_results=request.max_results,
        priority=request.priority,
        tags=request.tags,
    )
    hits = [
        PlaybookSearchHit(
            id=hit.record_id,
            score=hit.score,
            similarity=hit.similarity,
            search_type=hit.search_type,
            playbook=hit.summary,
        )
        for hit in result.hits
    ]
    return PlaybookSearchResponse(
        query=request.query,
        results=hits,
        total=len(hits),
        degraded=result.degraded,
        failed_paths=result.failed_paths,
    )


# ========== Vectorization Routes ==========

@router.get("/vectorization/health", summary="Playbook vectorization health")
async def vectorization_health(service: PlaybookService = Depends(get_playbook_service)):
    return await service.vectorization_health()


@router.post("/vectorization/reindex", response_model=ReconcileResponse, summary="Re-vectorize all active playbooks")
async def reindex(service: PlaybookService = Depends(get_playbook_service)):
    tally = await service.reindex()
    return ReconcileResponse(**tally.to_dict())


# ========== CRUD Routes ==========

@router.post("", response_model=PlaybookWriteResponse, status_code=status.HTTP_201_CREATED, summary="Create playbook")
async def create_playbook(
    request: PlaybookCreateDTO,
    service: PlaybookService = Depends(get_playbook_service)
):
    return to_write_response(await service.create(request))


@router.get("", response_model=List[PlaybookResponse], summary="List playbooks")
async def list_playbooks(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    include_inactive: bool = Query(default=False),
    service: PlaybookService = Depends(get_playbook_service)
):
    playbooks = await service.list(offset=offset, limit=limit, include_inactive=include_inactive)
    return [to_response(p) for p in playbooks]


@router.get("/{playbook_id}", response_model=PlaybookResponse, summary="Get playbook")
async def get_playbook(playbook_id: str, service: PlaybookService = Depends(get_playbook_service)):
    return to_response(await service.get(playbook_id))


@router.patch("/{playbook_id}", response_model=PlaybookWriteResponse, summary="Update playbook")
async def update_playbook(
    playbook_id: str,
    request: PlaybookUpdateDTO,
    service: PlaybookService = Depends(get_playbook_service)
):
    return to_write_response(await service.update(playbook_id, request))


@router.delete("/{playbook_id}", response_model=PlaybookWriteResponse, summary="Deactivate playbook")
async def deactivate_playbook(playbook_id: str, service: PlaybookService = Depends(get_playbook_service)):
    return to_write_response(await service.deactivate(playbook_id))
