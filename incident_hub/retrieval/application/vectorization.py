"""
Vectorization Service
=====================

Keeps the vector twin of one record type in step with the record store.

The record store is the commit point; this service only ever writes to the
vector index after a record has been durably saved, and its failures
degrade the twin without undoing the record write.

Lifecycle:
    UNINITIALIZED -> INITIALIZING -> READY

Initialization is lazy and single-flight: the first caller starts one
initialization task and concurrent callers await that same task, so
``ensure_collection`` is issued once. A failed initialization returns the
service to UNINITIALIZED; READY is permanent for the process.
"""

import asyncio
from typing import Any, Callable, Dict, Iterable, List, Optional

from incident_hub.config import settings
from incident_hub.core import (
    ConfigurationException,
    DimensionMismatchException,
    EmbeddingException,
    EmptyContentException,
    ValidationException,
    VectorStoreException,
)
from incident_hub.infrastructure.embeddings import IEmbeddingProvider, create_embedding_provider
from incident_hub.infrastructure.vectorstore import IVectorIndex, VectorFilter
from incident_hub.retrieval.domain import (
    IDocumentPreparer,
    InitializationState,
    ReconcileTally,
    VectorMatch,
)
from incident_hub.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

RECORD_ID_FIELD = "record_id"

PayloadBuilder = Callable[[Any], Dict[str, Any]]
SummaryMapper = Callable[[Dict[str, Any]], Dict[str, Any]]
EmbeddingFactory = Callable[[Optional[str]], IEmbeddingProvider]


def _default_record_id(record: Any) -> str:
    return str(record.id)


class VectorizationService:
    """
    store/update/delete/search contract for one record type.

    Args:
        record_type: "ticket" or "playbook", carried into every payload
        collection_name: Vector collection for this record type
        vector_index: Vector index client
        preparer_factory: Builds the document preparer (local, no I/O)
        payload_builder: record -> payload fields mirrored into the index
        summary_mapper: payload -> result summary returned by search
        record_id: record -> store id (also the point id)
        provider_name: Embedding provider name; defaults to settings
        embedding_factory: Builds the provider by name
    """

    def __init__(
        self,
        record_type: str,
        collection_name: str,
        vector_index: IVectorIndex,
        preparer_factory: Callable[[], IDocumentPreparer],
        payload_builder: PayloadBuilder,
        summary_mapper: Optional[SummaryMapper] = None,
        record_id: Callable[[Any], str] = _default_record_id,
        provider_name: Optional[str] = None,
        embedding_factory: EmbeddingFactory = create_embedding_provider,
        metric: Optional[str] = None,
        default_top_k: Optional[int] = None,
        default_min_score: Optional[float] = None,
    ):
        self.record_type = record_type
        self.collection_name = collection_name
        self._vector_index = vector_index
        self._preparer_factory = preparer_factory
        self._payload_builder = payload_builder
        self._summary_mapper = summary_mapper or dict
        self._record_id = record_id
        self._provider_name = provider_name or settings.embedding_provider
        self._embedding_factory = embedding_factory
        self._metric = metric or settings.vector_metric
        self._default_top_k = default_top_k or settings.vector_top_k
        self._default_min_score = (
            default_min_score if default_min_score is not None else settings.vector_min_score
        )

        self._state = InitializationState.UNINITIALIZED
        self._init_task: Optional[asyncio.Task] = None
        self._preparer: Optional[IDocumentPreparer] = None
        self._provider: Optional[IEmbeddingProvider] = None

    @property
    def state(self) -> InitializationState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is InitializationState.READY

    # ========== Initialization ==========

    def _get_preparer(self) -> IDocumentPreparer:
        if self._preparer is None:
            self._preparer = self._preparer_factory()
        return self._preparer

    def _get_provider(self) -> IEmbeddingProvider:
        if self._provider is None:
            self._provider = self._embedding_factory(self._provider_name)
        return self._provider

    async def _initialize(self) -> None:
        try:
            self._get_preparer()
            provider = self._get_provider()
            await self._vector_index.ensure_collection(
                self.collection_name, provider.dimension, self._metric
            )
        except Exception as e:
            self._state = InitializationState.UNINITIALIZED
            self._init_task = None
            logger.error(
                "Vectorization initialization failed",
                extra={"record_type": self.record_type, "collection": self.collection_name, "error": str(e)}
            )
            raise

        self._state = InitializationState.READY
        logger.info(
            "Vectorization service ready",
            extra={
                "record_type": self.record_type,
                "collection": self.collection_name,
                "provider": self._provider_name,
                "dimension": provider.dimension,
            }
        )

    async def ensure_initialized(self) -> None:
        """Run initialization once; concurrent callers share the same task."""
        if self._state is InitializationState.READY:
            return

        if self._init_task is None:
            self._state = InitializationState.INITIALIZING
            self._init_task = asyncio.ensure_future(self._initialize())

        await asyncio.shield(self._init_task)

    # ========== Writes ==========

    async def store_or_update(self, record: Any) -> str:
        """
        Embed a record and upsert its vector twin.

        Args:
            record: Ticket or playbook entity with a store id

        Returns:
            The point id (equal to the record's store id)

        Raises:
            EmptyContentException: Record has no weighted text (no remote call made)
            EmbeddingException: Embedding call failed or timed out
            IndexWriteException: Upsert failed or timed out
            DimensionMismatchException, ConfigurationException: Deployment defects
        """
        record_id = self._record_id(record)
        text = self._get_preparer().prepare(record)
        if not text:
            raise EmptyContentException(record_id)

        await self.ensure_initialized()

        with log_latency(logger, "vectorize_record", record_type=self.record_type, record_id=record_id):
            vector = await self._provider.embed(text)
            payload = self._payload_builder(record)
            payload[RECORD_ID_FIELD] = record_id
            payload["record_type"] = self.record_type
            point_id = await self._vector_index.upsert(
                self.collection_name, vector, payload, point_id=record_id
            )

        logger.debug(
            "Record vectorized",
            extra={"record_type": self.record_type, "record_id": record_id, "text_length": len(text)}
        )
        return point_id

    async def try_store_or_update(self, record: Any) -> Optional[str]:
        """
        Best-effort variant of store_or_update for callers that already
        committed the record.

        Returns None when the twin could not be written; deployment
        defects still propagate.
        """
        try:
            return await self.store_or_update(record)
        except (DimensionMismatchException, ConfigurationException):
            raise
        except (EmptyContentException, EmbeddingException, VectorStoreException) as e:
            logger.warning(
                "Vector twin not written",
                extra={
                    "record_type": self.record_type,
                    "record_id": self._record_id(record),
                    "error_type": type(e).__name__,
                    "error": e.message,
                }
            )
            return None

    async def delete(self, record_store_id: str) -> int:
        """
        Remove the vector twin of a record.

        Filters on the ``record_id`` payload field rather than the point id.

        Returns:
            Number of points deleted
        """
        await self.ensure_initialized()
        deleted = await self._vector_index.delete_by_filter(
            self.collection_name, VectorFilter(equals={RECORD_ID_FIELD: str(record_store_id)})
        )
        logger.info(
            "Vector twin deleted",
            extra={"record_type": self.record_type, "record_id": str(record_store_id), "deleted": deleted}
        )
        return deleted

    # ========== Reads ==========

    async def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
        filters: Optional[VectorFilter] = None,
    ) -> List[VectorMatch]:
        """
        Similarity search with a client-side score floor.

        Args:
            query: Free text to embed
            top_k: Maximum hits requested from the index
            min_score: Drop hits scoring below this; defaults to settings
            filters: Payload filter passed to the index

        Raises:
            ValidationException: Blank query
            EmbeddingException, IndexReadException: Remote failures
        """
        if not query or not query.strip():
            raise ValidationException("Search query must not be empty")

        top_k = top_k or self._default_top_k
        min_score = self._default_min_score if min_score is None else min_score

        await self.ensure_initialized()
        vector = await self._provider.embed(query.strip())
        hits = await self._vector_index.search_by_vector(self.collection_name, vector, top_k, filters)

        matches = [
            VectorMatch(
                record_id=str(hit.payload.get(RECORD_ID_FIELD, hit.id)),
                score=hit.score,
                summary=self._summary_mapper(hit.payload),
            )
            for hit in hits
            if hit.score >= min_score
        ]
        logger.info(
            "Vector search completed",
            extra={
                "record_type": self.record_type,
                "hits": len(hits),
                "kept": len(matches),
                "min_score": min_score,
            }
        )
        return matches

    async def health(self) -> Dict[str, Any]:
        """
        Report index reachability, embedding reachability and
        initialization state independently. Never initializes.
        """
        embedding_error = None
        try:
            provider = self._get_provider()
        except ConfigurationException as e:
            provider = None
            embedding_error = e.message

        async def _embedding_ok() -> bool:
            return await provider.ping() if provider is not None else False

        index_ok, embedding_ok = await asyncio.gather(self._vector_index.ping(), _embedding_ok())

        report = {
            "record_type": self.record_type,
            "collection": self.collection_name,
            "provider": self._provider_name,
            "state": self._state.value,
            "initialized": self.is_ready,
            "vector_index_reachable": index_ok,
            "embedding_reachable": embedding_ok,
        }
        if embedding_error:
            report["embedding_error"] = embedding_error
        return report

    # ========== Repair ==========

    async def reconcile(self, records: Iterable[Any]) -> ReconcileTally:
        """
        Re-run store_or_update for every record.

        Operator repair path for twins that went missing or stale while
        the index or the embedding provider was unavailable.
        """
        tally = ReconcileTally()
        for record in records:
            try:
                await self.store_or_update(record)
                tally.vectorized += 1
            except EmptyContentException:
                tally.skipped_empty += 1
            except (DimensionMismatchException, ConfigurationException):
                raise
            except (EmbeddingException, VectorStoreException, ValidationException) as e:
                tally.errors += 1
                logger.warning(
                    "Reconcile failed for record",
                    extra={"record_type": self.record_type, "record_id": self._record_id(record), "error": e.message}
                )
        return tally
