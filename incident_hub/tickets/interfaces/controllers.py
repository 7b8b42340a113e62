"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for ServiceNow ingestion and ticket search.

Controllers are thin - they delegate to TicketSyncService and
TicketSearchService.
"""

from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Query

from incident_hub.infrastructure.vectorstore import get_vector_index
from incident_hub.retrieval.application import VectorizationService
from incident_hub.shared.infrastructure.logging import get_logger
from incident_hub.tickets.application import (
    BulkImportRequest,
    BulkImportResponse,
    BulkImportStatusResponse,
    SyncRequest,
    SyncTallyResponse,
    TicketHybridSearchRequest,
    TicketSearchHit,
    TicketSearchResponse,
    TicketSearchService,
    TicketSyncService,
    create_ticket_vectorization_service,
    ticket_summary,
)
from incident_hub.tickets.domain import BulkImportState, SyncTally
from incident_hub.tickets.infrastructure import (
    ServiceNowClient,
    bulk_import_state_scope,
    ticket_repository_scope,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])


# ========== Dependencies ==========

@lru_cache()
def get_ticket_vectorization_service() -> VectorizationService:
    """Process-wide ticket vectorization service (holds init state)."""
    return create_ticket_vectorization_service(get_vector_index())


@lru_cache()
def get_servicenow_client() -> ServiceNowClient:
    return ServiceNowClient()


@lru_cache()
def get_ticket_sync_service() -> TicketSyncService:
    """Process-wide sync service (holds the bulk import and poll running flags)."""
    return TicketSyncService(
        ticket_repository_scope,
        bulk_import_state_scope,
        get_servicenow_client(),
        get_ticket_vectorization_service(),
    )


def get_ticket_search_service() -> TicketSearchService:
    return TicketSearchService(ticket_repository_scope, get_ticket_vectorization_service())


# ========== Mapping ==========

def to_tally_response(tally: SyncTally) -> SyncTallyResponse:
    return SyncTallyResponse(**tally.to_dict())


def to_status_response(state: BulkImportState, running: bool = False) -> BulkImportStatusResponse:
    return BulkImportStatusResponse(
        source=state.source,
        import_completed=state.import_completed,
        last_import_at=state.last_import_at,
        total_imported=state.total_imported,
        last_tally=state.last_tally,
        last_polled_at=state.last_polled_at,
        running=running,
    )


# ========== Sync Routes ==========

@router.post(
    "/sync/bulk-import",
    response_model=BulkImportResponse,
    summary="Guarded full import from ServiceNow",
    description="""
    Imports every incident from ServiceNow, page by page.

    Once an import has completed, further requests return the stored tally
    without contacting ServiceNow unless `force` is set. Returns 409 while
    another bulk import is running.
    """
)
async def bulk_import(
    request: BulkImportRequest,
    service: TicketSyncService = Depends(get_ticket_sync_service)
):
    result = await service.bulk_import(force=request.force, batch_size=request.batch_size)
    if result.skipped:
        message = "Bulk import already completed; pass force=true to re-run"
    elif result.tally.truncated:
        message = "Bulk import stopped early; completion not recorded"
    else:
        message = "Bulk import completed"
    return BulkImportResponse(skipped=result.skipped, tally=to_tally_response(result.tally), message=message)


@router.get("/sync/bulk-import/status", response_model=BulkImportStatusResponse, summary="Bulk import state")
async def bulk_import_status(service: TicketSyncService = Depends(get_ticket_sync_service)):
    state = await service.get_bulk_import_status()
    return to_status_response(state, running=service.bulk_import_running)


@router.post("/sync/bulk-import/reset", response_model=BulkImportStatusResponse, summary="Reset bulk import state")
async def reset_bulk_import(service: TicketSyncService = Depends(get_ticket_sync_service)):
    state = await service.reset_bulk_import_state()
    return to_status_response(state, running=service.bulk_import_running)


@router.post("/sync", response_model=SyncTallyResponse, summary="Ad-hoc ServiceNow sync")
async def sync(
    request: SyncRequest,
    service: TicketSyncService = Depends(get_ticket_sync_service)
):
    tally = await service.sync(
        filter_query=request.filter_query,
        batch_size=request.batch_size,
        max_records=request.max_records,
    )
    return to_tally_response(tally)


@router.post("/sync/poll", response_model=Optional[SyncTallyResponse], summary="Run one incremental poll now")
async def poll(service: TicketSyncService = Depends(get_ticket_sync_service)):
    tally = await service.poll()
    return to_tally_response(tally) if tally else None


# ========== Search Routes ==========

@router.get("/search/similar", response_model=TicketSearchResponse, summary="Similar tickets")
async def similar_tickets(
    query: str = Query(..., min_length=1),
    top_k: int = Query(default=20, ge=1, le=200),
    min_score: Optional[float] = Query(default=None, ge=0.0, le=1.0),
    service: TicketSearchService = Depends(get_ticket_search_service)
):
    matches = await service.similar_tickets(query, top_k=top_k, min_score=min_score)
    hits = [
        TicketSearchHit(id=m.record_id, score=m.score, similarity=m.score, search_type="vector", ticket=m.summary)
        for m in matches
    ]
    return TicketSearchResponse(query=query, results=hits, total=len(hits))


@router.post("/search/hybrid", response_model=TicketSearchResponse, summary="Hybrid ticket search")
async def hybrid_search(
    request: TicketHybridSearchRequest,
    service: TicketSearchService = Depends(get_ticket_search_service)
):
    result = await service.hybrid_search(
        request.query,
        vector_weight=request.vector_weight,
        text_weight=request.text_weight,
        max_results=request.max_results,
    )
    hits = [
        TicketSearchHit(
            id=hit.record_id,
            score=hit.score,
            similarity=hit.similarity,
            search_type=hit.search_type,
            ticket=hit.summary,
        )
        for hit in result.hits
    ]
    return TicketSearchResponse(
        query=request.query,
        results=hits,
        total=len(hits),
        degraded=result.degraded,
        failed_paths=result.failed_paths,
    )


# ========== Vectorization Routes ==========

@router.get("/vectorization/health", summary="Ticket vectorization health")
async def vectorization_health(service: TicketSearchService = Depends(get_ticket_search_service)):
    return await service.vectorization_health()


@router.post("/vectorization/reindex", summary="Re-vectorize all stored tickets")
async def reindex(service: TicketSearchService = Depends(get_ticket_search_service)):
    tally = await service.reindex()
    return tally.to_dict()


# ========== Ticket Routes ==========

@router.get("/{ticket_store_id}", summary="Get ticket")
async def get_ticket(ticket_store_id: str, service: TicketSearchService = Depends(get_ticket_search_service)):
    return ticket_summary(await service.get(ticket_store_id))
