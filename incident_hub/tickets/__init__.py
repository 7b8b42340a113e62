"""
Tickets Module
==============

Tickets ingested from ServiceNow.

Bounded context for:
- Paginated, idempotent ServiceNow ingestion
- Bulk import guardrail and incremental polling
- Similar-ticket and hybrid ticket search
"""
