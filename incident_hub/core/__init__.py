"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from incident_hub.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    ConflictException,
    EmptyContentException,
    ExternalServiceException,
    EmbeddingException,
    VectorStoreException,
    IndexWriteException,
    IndexReadException,
    DimensionMismatchException,
    SourceUnavailableException,
    HybridSearchException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ConflictException",
    "EmptyContentException",
    "ExternalServiceException",
    "EmbeddingException",
    "VectorStoreException",
    "IndexWriteException",
    "IndexReadException",
    "DimensionMismatchException",
    "SourceUnavailableException",
    "HybridSearchException",
]
