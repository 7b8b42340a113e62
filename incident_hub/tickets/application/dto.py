"""
Ticket Application DTOs
=======================

Pydantic request/response models for the ticket sync and search API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ========== Request DTOs ==========

class BulkImportRequest(BaseModel):
    """Request model for a guarded full import."""
    force: bool = Field(default=False, description="Re-run even if a previous import completed")
    batch_size: Optional[int] = Field(None, ge=1, le=10000, description="Page size; defaults to settings")


class SyncRequest(BaseModel):
    """Request model for an ad-hoc sync."""
    filter_query: str = Field(default="", description="ServiceNow encoded query (sysparm_query)")
    batch_size: Optional[int] = Field(None, ge=1, le=10000)
    max_records: Optional[int] = Field(None, ge=1)


class TicketHybridSearchRequest(BaseModel):
    """Query parameters for hybrid ticket search."""
    query: str = Field(..., min_length=1)
    vector_weight: float = Field(default=0.7, ge=0.0)
    text_weight: float = Field(default=0.3, ge=0.0)
    max_results: int = Field(default=10, ge=1, le=100)


# ========== Response DTOs ==========

class SyncTallyResponse(BaseModel):
    """Tally of one sync run."""
    saved: int
    updated: int
    vectorized: int
    errors: int
    vectorization_errors: int
    fetched: int
    pages: int
    truncated: bool
    total: int


class BulkImportResponse(BaseModel):
    """Result of a bulk import request; ``skipped`` when the guardrail held."""
    skipped: bool
    tally: SyncTallyResponse
    message: str


class BulkImportStatusResponse(BaseModel):
    """Persisted bulk import guardrail state."""
    source: str
    import_completed: bool
    last_import_at: Optional[datetime] = None
    total_imported: int
    last_tally: Optional[Dict[str, Any]] = None
    last_polled_at: Optional[datetime] = None
    running: bool = False


class TicketSearchHit(BaseModel):
    """One ticket search result."""
    id: str
    score: Optional[float] = None
    similarity: Optional[float] = None
    search_type: str
    ticket: Dict[str, Any]


class TicketSearchResponse(BaseModel):
    """Ticket search results."""
    query: str
    results: List[TicketSearchHit]
    total: int
    degraded: bool = False
    failed_paths: List[str] = Field(default_factory=list)
