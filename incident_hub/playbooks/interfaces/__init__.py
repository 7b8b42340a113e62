"""
Playbooks Interfaces Layer
==========================

FastAPI routes for playbooks.
"""

from incident_hub.playbooks.interfaces.controllers import router as playbook_router

__all__ = ["playbook_router"]
