"""
Playbooks Domain Layer
======================

Pure Python entities for remediation playbooks.
"""

from incident_hub.playbooks.domain.entities import Playbook, PlaybookTrigger

__all__ = ["Playbook", "PlaybookTrigger"]
