"""
Vector Store Infrastructure
============================

Milvus / Zilliz Cloud vector index client.

Collections use the quick-setup layout: a string primary key ``id``, a
float vector field ``vector`` and dynamic fields for the payload. Payload
filters are conjunctions of equality and membership predicates rendered
to Milvus boolean expressions.

MilvusClient is synchronous; every call runs in a worker thread under a
timeout so a slow index never blocks the event loop.
"""

import asyncio
import json
import uuid
from functools import lru_cache
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type, Union

from pymilvus import MilvusClient

from incident_hub.config import settings
from incident_hub.core import (
    ApplicationException,
    DimensionMismatchException,
    IndexReadException,
    IndexWriteException,
    ValidationException,
    VectorStoreException,
)
from incident_hub.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

PRIMARY_FIELD = "id"
VECTOR_FIELD = "vector"
ID_MAX_LENGTH = 64


@dataclass
class VectorHit:
    """One search result: point id, similarity score and stored payload."""
    id: str
    score: float
    payload: Dict[str, Any]


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    return json.dumps(str(value))


def _list_literal(values: List[Any]) -> str:
    return "[" + ", ".join(_literal(v) for v in values) + "]"


@dataclass
class VectorFilter:
    """
    Conjunction of payload predicates.

    - equals: field == value
    - one_of: scalar field is one of the listed values
    - contains_any: list field shares at least one element with the values
    """
    equals: Dict[str, Any] = field(default_factory=dict)
    one_of: Dict[str, List[Any]] = field(default_factory=dict)
    contains_any: Dict[str, List[Any]] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.equals or self.one_of or self.contains_any)

    def to_expression(self) -> str:
        clauses = []
        for name, value in self.equals.items():
            clauses.append(f"{name} == {_literal(value)}")
        for name, values in self.one_of.items():
            if values:
                clauses.append(f"{name} in {_list_literal(values)}")
        for name, values in self.contains_any.items():
            if values:
                clauses.append(f"json_contains_any({name}, {_list_literal(values)})")
        return " and ".join(clauses)


class IVectorIndex(ABC):
    """
    Interface for vector index operations.

    Remote failures raise IndexWriteException or IndexReadException; local
    precondition failures raise ValidationException so callers can tell a
    retryable outage from a programming error.
    """

    @abstractmethod
    async def ensure_collection(self, name: str, dimension: int, metric: str = "COSINE") -> bool:
        """
        Create the collection if absent.

        Returns:
            True if the collection was created, False if it already existed

        Raises:
            DimensionMismatchException: If it exists with another dimension
        """

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        vector: List[float],
        payload: Dict[str, Any],
        point_id: Optional[str] = None
    ) -> str:
        """Insert or replace one point and return its id."""

    @abstractmethod
    async def delete_by_filter(self, collection: str, vector_filter: VectorFilter) -> int:
        """Delete every point matching the filter and return the count."""

    @abstractmethod
    async def search_by_vector(
        self,
        collection: str,
        vector: List[float],
        top_k: int,
        vector_filter: Optional[VectorFilter] = None
    ) -> List[VectorHit]:
        """Return at most top_k hits, best first, with no score floor."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the index service answers."""


def _vector_dimension(description: Dict[str, Any]) -> Optional[int]:
    for schema_field in description.get("fields", []):
        params = schema_field.get("params") or {}
        if schema_field.get("name") == VECTOR_FIELD and "dim" in params:
            return int(params["dim"])
    for schema_field in description.get("fields", []):
        params = schema_field.get("params") or {}
        if "dim" in params:
            return int(params["dim"])
    return None


class MilvusVectorIndex(IVectorIndex):
    """
    Zilliz Cloud (managed Milvus) implementation of the vector index.

    For Zilliz Cloud, ``uri`` is the cluster's public endpoint and
    ``token`` the API key.
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[MilvusClient] = None
    ):
        self._uri = uri or settings.milvus_uri
        self._token = token if token is not None else settings.milvus_token
        self._timeout = timeout or settings.vector_timeout_seconds
        self._client = client

    def _get_client(self) -> MilvusClient:
        if self._client is None:
            self._client = MilvusClient(uri=self._uri, token=self._token)
        return self._client

    async def _call(
        self,
        error_type: Type[VectorStoreException],
        operation: str,
        fn: Union[str, Callable[..., Any]],
        *args: Any,
        **kwargs: Any
    ) -> Any:
        """Run a client method (by name) or a callable in a worker thread."""

        def _invoke() -> Any:
            target = getattr(self._get_client(), fn) if isinstance(fn, str) else fn
            return target(*args, **kwargs)

        try:
            return await asyncio.wait_for(asyncio.to_thread(_invoke), timeout=self._timeout)
        except ApplicationException:
            raise
        except asyncio.TimeoutError:
            raise error_type(f"{operation} timed out after {self._timeout}s")
        except Exception as e:
            raise error_type(f"{operation} failed: {str(e)}")

    async def ensure_collection(self, name: str, dimension: int, metric: str = "COSINE") -> bool:
        if dimension <= 0:
            raise ValidationException("Collection dimension must be positive", {"dimension": dimension})

        def _ensure() -> bool:
            client = self._get_client()
            if client.has_collection(collection_name=name):
                actual = _vector_dimension(client.describe_collection(collection_name=name))
                if actual is not None and actual != dimension:
                    raise DimensionMismatchException(name, dimension, actual)
                return False

            client.create_collection(
                collection_name=name,
                dimension=dimension,
                primary_field_name=PRIMARY_FIELD,
                id_type="string",
                max_length=ID_MAX_LENGTH,
                vector_field_name=VECTOR_FIELD,
                metric_type=metric,
                auto_id=False,
                enable_dynamic_field=True,
            )
            return True

        created = await self._call(IndexWriteException, "ensure_collection", _ensure)
        logger.info(
            "Vector collection ready",
            extra={"collection": name, "dimension": dimension, "metric": metric, "created": created}
        )
        return created

    async def upsert(
        self,
        collection: str,
        vector: List[float],
        payload: Dict[str, Any],
        point_id: Optional[str] = None
    ) -> str:
        if not vector:
            raise ValidationException("Cannot upsert an empty vector", {"collection": collection})

        point_id = point_id or str(uuid.uuid4())
        row = {
            key: value for key, value in payload.items()
            if value is not None and key not in (PRIMARY_FIELD, VECTOR_FIELD)
        }
        row[PRIMARY_FIELD] = point_id
        row[VECTOR_FIELD] = vector

        with log_latency(logger, "vector_upsert", collection=collection):
            await self._call(
                IndexWriteException, "upsert",
                "upsert", collection_name=collection, data=[row]
            )
        return point_id

    async def delete_by_filter(self, collection: str, vector_filter: VectorFilter) -> int:
        if vector_filter.is_empty():
            raise ValidationException("Refusing to delete with an empty filter", {"collection": collection})

        expression = vector_filter.to_expression()
        result = await self._call(
            IndexWriteException, "delete",
            "delete", collection_name=collection, filter=expression
        )
        deleted = int(result.get("delete_count", 0)) if isinstance(result, dict) else 0
        logger.info("Vector points deleted", extra={"collection": collection, "filter": expression, "deleted": deleted})
        return deleted

    async def search_by_vector(
        self,
        collection: str,
        vector: List[float],
        top_k: int,
        vector_filter: Optional[VectorFilter] = None
    ) -> List[VectorHit]:
        if top_k <= 0:
            raise ValidationException("top_k must be positive", {"top_k": top_k})
        if not vector:
            raise ValidationException("Cannot search with an empty vector", {"collection": collection})

        expression = vector_filter.to_expression() if vector_filter else ""

        with log_latency(logger, "vector_search", collection=collection, top_k=top_k):
            results = await self._call(
                IndexReadException, "search",
                "search",
                collection_name=collection,
                data=[vector],
                limit=top_k,
                filter=expression,
                output_fields=["*"],
            )

        hits: List[VectorHit] = []
        if results and len(results) > 0:
            for hit in results[0]:
                payload = dict(hit.get("entity") or {})
                payload.pop(VECTOR_FIELD, None)
                payload.pop(PRIMARY_FIELD, None)
                hits.append(VectorHit(id=str(hit["id"]), score=float(hit["distance"]), payload=payload))
        return hits[:top_k]

    async def ping(self) -> bool:
        try:
            await self._call(IndexReadException, "list_collections", "list_collections")
            return True
        except VectorStoreException as e:
            logger.warning("Vector index unreachable", extra={"error": str(e)})
            return False


@lru_cache()
def get_vector_index() -> MilvusVectorIndex:
    """Process-wide vector index client."""
    return MilvusVectorIndex()
