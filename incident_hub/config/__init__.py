"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class VectorRefreshPolicy(str, Enum):
    """Which ingested records get their vector twin refreshed during sync."""
    NEW_ONLY = "new_only"
    NEW_AND_UPDATED = "new_and_updated"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="incident-hub", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/incidents",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Zilliz Cloud / Milvus ==========
    milvus_uri: str = Field(
        default="http://localhost:19530",
        description="Milvus or Zilliz Cloud endpoint URI"
    )
    milvus_token: str = Field(default="", description="Milvus token or Zilliz API key")
    playbook_collection_name: str = Field(default="playbooks", description="Playbook vector collection")
    ticket_collection_name: str = Field(default="tickets", description="Ticket vector collection")
    vector_metric: str = Field(default="COSINE", description="Similarity metric for collections")
    vector_timeout_seconds: float = Field(default=10.0, description="Timeout for vector index calls", gt=0)

    # ========== Embeddings ==========
    embedding_provider: str = Field(
        default="gemini",
        description="Embedding provider name (gemini, openai, zai, mock)"
    )
    embedding_dimension: int = Field(
        default=768,
        description="Vector dimension used by the mock provider",
        ge=8
    )
    embedding_model: Optional[str] = Field(
        default=None,
        description="Override the provider's default embedding model"
    )
    embedding_timeout_seconds: float = Field(default=15.0, description="Timeout for embedding calls", gt=0)
    gemini_api_key: Optional[str] = Field(default=None, description="Google Gemini API key")
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    zai_api_key: Optional[str] = Field(default=None, description="Z.AI API key")

    # ========== Retrieval ==========
    retrieval_config_path: Path = Field(
        default=Path("retrieval_config.yaml"),
        description="Optional YAML file overriding per-record-type field weights"
    )
    vector_top_k: int = Field(default=20, description="Default vector search depth", ge=1, le=200)
    vector_min_score: float = Field(
        default=0.7,
        description="Default client-side similarity cutoff",
        ge=0.0,
        le=1.0
    )
    hybrid_vector_weight: float = Field(default=0.7, ge=0.0, description="Vector weight in hybrid fusion")
    hybrid_text_weight: float = Field(default=0.3, ge=0.0, description="Text weight in hybrid fusion")
    hybrid_max_results: int = Field(default=10, ge=1, le=100, description="Hybrid search result cap")
    text_search_limit: int = Field(default=50, ge=1, description="Max lexical matches fetched per query")

    # ========== ServiceNow ==========
    servicenow_url: str = Field(default="", description="ServiceNow instance base URL")
    servicenow_username: str = Field(default="", description="ServiceNow basic-auth user")
    servicenow_password: str = Field(default="", description="ServiceNow basic-auth password")
    servicenow_api_endpoint: str = Field(
        default="/api/now/table/incident",
        description="Table API endpoint for incidents"
    )
    servicenow_fields: str = Field(
        default=(
            "sys_id,number,short_description,description,category,subcategory,"
            "state,priority,impact,urgency,opened_at,closed_at,resolved_at,"
            "caller_id,assigned_to,assignment_group,company,location,tags"
        ),
        description="Fields requested from the table API"
    )
    servicenow_timeout_seconds: float = Field(default=30.0, gt=0, description="ServiceNow request timeout")
    servicenow_source_name: str = Field(default="ServiceNow", description="Source tag stored on tickets")

    # ========== Ingestion ==========
    sync_batch_size: int = Field(default=100, ge=1, le=10000, description="Page size for incremental syncs")
    bulk_import_batch_size: int = Field(default=1000, ge=1, le=10000, description="Page size for bulk imports")
    sync_max_records: Optional[int] = Field(default=None, ge=1, description="Optional cap on records per sync")
    sync_page_delay_seconds: float = Field(default=0.1, ge=0.0, description="Pause between pages")
    vector_refresh_policy: VectorRefreshPolicy = Field(
        default=VectorRefreshPolicy.NEW_ONLY,
        description="Refresh vector twins for new records only, or for updated records too"
    )
    enable_bulk_import: bool = Field(default=False, description="Run the guarded bulk import at startup")
    enable_polling: bool = Field(default=False, description="Poll ServiceNow for updated tickets")
    polling_interval_seconds: int = Field(default=60, ge=10, description="Seconds between polls")
    polling_lookback_hours: int = Field(default=24, ge=1, description="Look-back window for the first poll")

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("embedding_provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return v.strip().lower()


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class PlaybookPriority(str):
    """Playbook priority levels."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class SearchType(str):
    """Provenance tags for hybrid search hits."""
    VECTOR = "vector"
    TEXT = "text"
    HYBRID = "hybrid"


PLAYBOOK_PRIORITIES = [
    PlaybookPriority.LOW, PlaybookPriority.MEDIUM,
    PlaybookPriority.HIGH, PlaybookPriority.CRITICAL
]
