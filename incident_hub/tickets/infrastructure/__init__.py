"""
Tickets Infrastructure Layer
============================

Contains:
- Models: SQLAlchemy ORM models
- Repositories: data access implementations and unit-of-work scopes
- External: ServiceNow client and the polling scheduler
"""

from incident_hub.tickets.infrastructure.external import PollingScheduler, ServiceNowClient
from incident_hub.tickets.infrastructure.models import BulkImportStateModel, TicketModel
from incident_hub.tickets.infrastructure.repositories import (
    SQLAlchemyBulkImportStateRepository,
    SQLAlchemyTicketRepository,
    bulk_import_state_scope,
    ticket_repository_scope,
)

__all__ = [
    "BulkImportStateModel",
    "PollingScheduler",
    "SQLAlchemyBulkImportStateRepository",
    "SQLAlchemyTicketRepository",
    "ServiceNowClient",
    "TicketModel",
    "bulk_import_state_scope",
    "ticket_repository_scope",
]
