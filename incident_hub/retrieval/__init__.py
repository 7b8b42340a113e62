"""
Retrieval Module
================

Shared retrieval engine used by the tickets and playbooks contexts:
- Document preparation with field weights
- Vectorization service (record store -> vector index)
- Hybrid search fusion of lexical and vector results
"""
