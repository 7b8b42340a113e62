"""
Tickets Interfaces Layer
========================

FastAPI routes for ticket ingestion and search.
"""

from incident_hub.tickets.interfaces.controllers import router as ticket_router

__all__ = ["ticket_router"]
