"""
Tickets Domain Layer
====================

Ticket entity, sync tally, bulk import state and ServiceNow record mapping.
"""

from incident_hub.tickets.domain.entities import BulkImportState, SyncTally, Ticket
from incident_hub.tickets.domain.mapping import ticket_from_servicenow

__all__ = ["BulkImportState", "SyncTally", "Ticket", "ticket_from_servicenow"]
