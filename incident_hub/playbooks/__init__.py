"""
Playbooks Module
================

Operator-authored remediation playbooks.

Bounded context for:
- Playbook authoring (create, update, soft delete)
- Lexical, vector and hybrid playbook search
- Keeping the playbook vector collection in step with the record store
"""
