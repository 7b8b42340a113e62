"""
Ticket Domain Entities
======================

Tickets ingested from an external ticketing system, the per-run sync
tally, and the bulk import guardrail state.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Fields copied from a fresh source record onto a stored ticket
SOURCE_FIELDS = (
    "short_description", "description", "category", "subcategory",
    "status", "priority", "impact", "urgency",
    "opened_at", "closed_at", "resolved_at",
    "requester_id", "assigned_to", "assignment_group", "company", "location",
    "tags", "raw",
)


@dataclass
class Ticket:
    """
    Ticket entity.

    Identity in the record store is ``(ticket_id, source)``; ``id`` is the
    store id and doubles as the vector point id.
    """
    id: Optional[str]
    ticket_id: str
    source: str
    short_description: str = ""
    description: str = ""
    category: Optional[str] = None
    subcategory: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    impact: Optional[str] = None
    urgency: Optional[str] = None
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    requester_id: Optional[str] = None
    assigned_to: Optional[str] = None
    assignment_group: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        """Validate ticket on initialization."""
        if not self.ticket_id:
            raise ValueError("ticket_id is required")
        if not self.source:
            raise ValueError("source is required")

    def apply(self, fresh: "Ticket") -> bool:
        """
        Overwrite source fields with a freshly fetched copy.

        No history is kept. Returns True if anything changed.
        """
        changed = False
        for name in SOURCE_FIELDS:
            value = getattr(fresh, name)
            if getattr(self, name) != value:
                setattr(self, name, value)
                changed = True
        if changed:
            self.updated_at = datetime.now(timezone.utc)
        return changed


@dataclass
class SyncTally:
    """
    Outcome of one sync run.

    ``errors`` counts record-store failures (the record was not saved);
    ``vectorization_errors`` counts saved records whose vector twin could
    not be written. ``truncated`` is set when a later page could not be
    fetched and the run stopped early.
    """
    saved: int = 0
    updated: int = 0
    vectorized: int = 0
    errors: int = 0
    vectorization_errors: int = 0
    fetched: int = 0
    pages: int = 0
    truncated: bool = False

    @property
    def total(self) -> int:
        return self.saved + self.updated

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["total"] = self.total
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SyncTally":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class BulkImportState:
    """
    Guardrail state for full imports of one external source.

    NotStarted -> Completed. While completed, a full import is skipped
    unless explicitly forced.
    """
    source: str
    import_completed: bool = False
    last_import_at: Optional[datetime] = None
    total_imported: int = 0
    last_tally: Optional[Dict[str, Any]] = None
    last_polled_at: Optional[datetime] = None

    def mark_completed(self, tally: SyncTally, at: Optional[datetime] = None) -> None:
        self.import_completed = True
        self.last_import_at = at or datetime.now(timezone.utc)
        self.total_imported = tally.total
        self.last_tally = tally.to_dict()

    def reset(self) -> None:
        """Forget the completed import; the polling cursor is kept."""
        self.import_completed = False
        self.last_import_at = None
        self.total_imported = 0
        self.last_tally = None
