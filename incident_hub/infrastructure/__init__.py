"""
Infrastructure Layer
=====================

Adapters for the external collaborators of the sync and retrieval core:
- database: SQLAlchemy async engine and sessions (record store)
- embeddings: named embedding providers
- vectorstore: Milvus vector index client
"""
