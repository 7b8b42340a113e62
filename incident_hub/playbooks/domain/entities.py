"""
Playbook Domain Entities
========================

A playbook is a remediation procedure: a title, a description, tags and an
ordered list of triggers (steps), each with an action and the outcome the
operator should expect.

Playbooks are never hard-deleted; deactivation flips ``is_active`` and
removes the vector twin.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from incident_hub.config import PLAYBOOK_PRIORITIES, PlaybookPriority

DEFAULT_TAGS = ["Custom"]

# Fields whose change requires the vector twin to be refreshed
VECTORIZED_FIELDS = ("title", "description", "triggers", "tags", "priority", "outcome", "is_active")


@dataclass
class PlaybookTrigger:
    """One step of a playbook."""
    trigger_id: str
    title: str
    action: str
    expected_outcome: str = ""
    resources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trigger_id": self.trigger_id,
            "title": self.title,
            "action": self.action,
            "expected_outcome": self.expected_outcome,
            "resources": list(self.resources),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlaybookTrigger":
        return cls(
            trigger_id=str(data.get("trigger_id", "")),
            title=data.get("title", ""),
            action=data.get("action", ""),
            expected_outcome=data.get("expected_outcome", "") or "",
            resources=list(data.get("resources") or []),
        )


@dataclass
class Playbook:
    """
    Playbook entity.

    ``id`` is the record store id (also the vector point id);
    ``playbook_id`` is the unique business identifier.
    """
    id: str
    playbook_id: str
    title: str
    description: str
    priority: str = PlaybookPriority.MEDIUM
    tags: List[str] = field(default_factory=lambda: list(DEFAULT_TAGS))
    triggers: List[PlaybookTrigger] = field(default_factory=list)
    outcome: str = ""
    usage: int = 0
    confidence: float = 0.0
    created_by: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        """Validate playbook on initialization."""
        if self.priority not in PLAYBOOK_PRIORITIES:
            raise ValueError(f"priority must be one of {PLAYBOOK_PRIORITIES}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("confidence must be between 0 and 1")
        if self.usage < 0:
            raise ValueError("usage cannot be negative")

    def snapshot(self) -> Dict[str, Any]:
        """Values of the vectorized fields, for change detection."""
        return {
            name: ([t.to_dict() for t in self.triggers] if name == "triggers" else getattr(self, name))
            for name in VECTORIZED_FIELDS
        }

    def deactivate(self) -> None:
        self.is_active = False
        self.updated_at = datetime.now(timezone.utc)

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def matches_filters(self, priority: Optional[str] = None, tags: Optional[List[str]] = None) -> bool:
        """Priority equality and tag overlap, as applied to vector payloads."""
        if priority and self.priority != priority:
            return False
        if tags and not set(tags) & set(self.tags):
            return False
        return True
