"""
Incident Hub
============

Incident-management backend core: keeps ServiceNow tickets and remediation
playbooks in a canonical record store, mirrors them into a Milvus vector
index, and serves hybrid (lexical + vector) search over them.

Bounded contexts:
- retrieval: document preparation, vectorization, hybrid search fusion
- tickets: ServiceNow ingestion and bulk import guardrail
- playbooks: playbook authoring and search
"""

__version__ = "1.0.0"
