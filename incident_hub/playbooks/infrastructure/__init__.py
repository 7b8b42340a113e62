"""
Playbooks Infrastructure Layer
==============================

SQLAlchemy model and repository for playbooks.
"""

from incident_hub.playbooks.infrastructure.models import PlaybookModel
from incident_hub.playbooks.infrastructure.repositories import (
    SQLAlchemyPlaybookRepository,
    playbook_repository_scope,
)

__all__ = [
    "PlaybookModel",
    "SQLAlchemyPlaybookRepository",
    "playbook_repository_scope",
]
