"""
Core Exceptions
================

Error taxonomy shared by the sync, vectorization and search layers.

Two families matter to callers:
- Hard failures (ConfigurationException, DimensionMismatchException) point at a
  deployment defect and must propagate.
- Derived-store failures (EmbeddingException, IndexWriteException,
  IndexReadException, EmptyContentException) degrade the vector twin of a
  record but never undo a committed record-store write.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Record store persistence failed."""


class ValidationException(ApplicationException):
    """Exception for validation errors and local precondition failures."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConflictException(ApplicationException):
    """Request conflicts with current state (duplicate id, run in progress)."""


class ConfigurationException(ApplicationException):
    """Exception for configuration errors (unknown provider, missing key)."""


class EmptyContentException(DomainException):
    """A record produced no text to embed."""

    def __init__(self, record_id: Optional[str] = None, details: Optional[dict] = None):
        self.record_id = record_id
        message = "No text content found for embedding"
        if record_id:
            message += f" (record '{record_id}')"
        super().__init__(message, details)


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class EmbeddingException(ExternalServiceException):
    """Embedding model call failed or timed out."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Embedding Provider", message, details)


class VectorStoreException(ExternalServiceException):
    """Base exception for vector index failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Vector Store", message, details)


class IndexWriteException(VectorStoreException):
    """Vector index write (create, upsert, delete) failed or timed out."""


class IndexReadException(VectorStoreException):
    """Vector index read (search, describe) failed or timed out."""


class DimensionMismatchException(VectorStoreException):
    """Collection exists with a vector size different from the provider's."""

    def __init__(self, collection: str, expected: int, actual: int):
        self.collection = collection
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Collection '{collection}' has dimension {actual}, expected {expected}",
            {"collection": collection, "expected": expected, "actual": actual}
        )


class SourceUnavailableException(ExternalServiceException):
    """External ticketing source could not be reached."""

    def __init__(self, source: str, message: str, details: Optional[dict] = None):
        super().__init__(source, message, details)


class HybridSearchException(ApplicationException):
    """Both lexical and vector sub-searches failed."""
