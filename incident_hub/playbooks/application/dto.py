"""
Playbook Application DTOs
=========================

Pydantic request/response models for the playbook API.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

PriorityStr = Literal["Low", "Medium", "High", "Critical"]


# ========== Request DTOs ==========

class PlaybookTriggerDTO(BaseModel):
    """One playbook step."""
    trigger_id: Optional[str] = Field(None, description="Step id; generated when omitted")
    title: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)
    expected_outcome: str = Field(default="")
    resources: List[str] = Field(default_factory=list)


class PlaybookCreateDTO(BaseModel):
    """Request model for creating a playbook."""
    playbook_id: Optional[str] = Field(None, max_length=64, description="Unique business id; generated when omitted")
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(..., min_length=1)
    priority: PriorityStr = Field(default="Medium")
    tags: List[str] = Field(default_factory=lambda: ["Custom"])
    triggers: List[PlaybookTriggerDTO] = Field(default_factory=list)
    outcome: str = Field(default="")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    created_by: Optional[str] = None

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: List[str]) -> List[str]:
        """Strip blanks and duplicates while keeping order."""
        seen: List[str] = []
        for tag in (t.strip() for t in v):
            if tag and tag not in seen:
                seen.append(tag)
        return seen


class PlaybookUpdateDTO(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = Field(None, min_length=1)
    priority: Optional[PriorityStr] = None
    tags: Optional[List[str]] = None
    triggers: Optional[List[PlaybookTriggerDTO]] = None
    outcome: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    usage: Optional[int] = Field(None, ge=0)


class HybridSearchRequest(BaseModel):
    """Query parameters for hybrid playbook search."""
    query: str = Field(..., min_length=1)
    vector_weight: float = Field(default=0.7, ge=0.0)
    text_weight: float = Field(default=0.3, ge=0.0)
    max_results: int = Field(default=10, ge=1, le=100)
    priority: Optional[PriorityStr] = None
    tags: List[str] = Field(default_factory=list)


# ========== Response DTOs ==========

class PlaybookResponse(BaseModel):
    """Playbook as stored in the record store."""
    id: str
    playbook_id: str
    title: str
    description: str
    priority: PriorityStr
    tags: List[str]
    triggers: List[PlaybookTriggerDTO]
    outcome: str
    usage: int
    confidence: float
    created_by: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class PlaybookWriteResponse(BaseModel):
    """
    Result of a write.

    ``vector_synced`` is True when the vector twin was written, False when
    that write failed and the twin is missing or stale, and None when the
    change did not touch vectorized content so no write was attempted.
    """
    playbook: PlaybookResponse
    vector_synced: Optional[bool] = None


class PlaybookSearchHit(BaseModel):
    """One search result."""
    id: str
    score: Optional[float] = None
    search_type: str
    similarity: Optional[float] = None
    playbook: Dict[str, Any]


class PlaybookSearchResponse(BaseModel):
    """Search results plus degradation flags for hybrid search."""
    query: str
    results: List[PlaybookSearchHit]
    total: int
    degraded: bool = False
    failed_paths: List[str] = Field(default_factory=list)


class ReconcileResponse(BaseModel):
    """Outcome of a reindex run."""
    vectorized: int
    skipped_empty: int
    errors: int
    processed: int
