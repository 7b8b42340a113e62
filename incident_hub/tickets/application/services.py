"""
Ticket Application Services
===========================

Ingestion from an external ticketing source and ticket search.

Ingestion is a pull over offset/limit pages. Each record is looked up by
``(ticket_id, source)``, inserted or updated in place, and committed on
its own. Vectorization follows the commit and only for records the
refresh policy selects (new records by default). Per-record failures are
counted in the tally and never abort the run; only failing to reach the
source for the first page is a hard failure.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional

from incident_hub.config import VectorRefreshPolicy, settings
from incident_hub.core import (
    ConflictException,
    ResourceNotFoundException,
    SourceUnavailableException,
)
from incident_hub.retrieval.application import HybridSearchService, VectorizationService
from incident_hub.retrieval.domain import HybridSearchResult, ReconcileTally, VectorMatch
from incident_hub.shared.infrastructure.logging import get_logger
from incident_hub.tickets.application.vectorization import ticket_summary
from incident_hub.tickets.domain import BulkImportState, SyncTally, Ticket, ticket_from_servicenow

logger = get_logger(__name__)

REINDEX_PAGE_SIZE = 100


# ========== Repository and Source Interfaces ==========

class ITicketRepository(ABC):
    """Interface for ticket persistence."""

    @abstractmethod
    async def find_by_ticket_id(self, ticket_id: str, source: str) -> Optional[Ticket]:
        """Get ticket by its external identity."""

    @abstractmethod
    async def get_by_id(self, ticket_store_id: str) -> Optional[Ticket]:
        """Get ticket by store id."""

    @abstractmethod
    async def add(self, ticket: Ticket) -> Ticket:
        """Insert a new ticket; the returned ticket carries its store id."""

    @abstractmethod
    async def update(self, ticket: Ticket) -> Ticket:
        """Update a ticket in place."""

    @abstractmethod
    async def list_page(self, offset: int = 0, limit: int = 100) -> List[Ticket]:
        """Tickets ordered by creation time."""

    @abstractmethod
    async def text_search(self, query: str, limit: int = 50) -> List[Ticket]:
        """Case-insensitive substring search over the text fields, unscored."""


class IBulkImportStateRepository(ABC):
    """Interface for the bulk import guardrail state."""

    @abstractmethod
    async def get(self, source: str) -> Optional[BulkImportState]:
        """Get the state for a source, None if never recorded."""

    @abstractmethod
    async def save(self, state: BulkImportState) -> BulkImportState:
        """Insert or update the state for its source."""


class ITicketSource(ABC):
    """Interface for a paginated external ticketing source."""

    name: str

    @abstractmethod
    async def fetch_page(self, offset: int, limit: int, filter_query: str = "") -> List[Dict[str, Any]]:
        """
        Fetch one page of flat records.

        Raises:
            SourceUnavailableException: If the source cannot be reached
        """

    @abstractmethod
    def changed_since_query(self, since: datetime) -> str:
        """Filter query selecting records created or updated since a time."""


TicketRepositoryScope = Callable[[], AsyncContextManager[ITicketRepository]]
StateRepositoryScope = Callable[[], AsyncContextManager[IBulkImportStateRepository]]


@dataclass
class BulkImportResult:
    """Outcome of a bulk import request."""
    skipped: bool
    tally: SyncTally
    state: BulkImportState


class TicketSyncService:
    """
    Ingestion Synchronizer for one external source.

    Args:
        ticket_scope: Opens a unit of work yielding a ticket repository
        state_scope: Opens a unit of work yielding the state repository
        source: Paginated external source
        vectorization: VectorizationService for the ticket collection
        refresh_policy: Which ingested records get their twin refreshed
        page_delay_seconds: Pause between pages
    """

    def __init__(
        self,
        ticket_scope: TicketRepositoryScope,
        state_scope: StateRepositoryScope,
        source: ITicketSource,
        vectorization: VectorizationService,
        refresh_policy: Optional[VectorRefreshPolicy] = None,
        page_delay_seconds: Optional[float] = None,
    ):
        self._ticket_scope = ticket_scope
        self._state_scope = state_scope
        self._source = source
        self._vectorization = vectorization
        self._refresh_policy = refresh_policy or settings.vector_refresh_policy
        self._page_delay = settings.sync_page_delay_seconds if page_delay_seconds is None else page_delay_seconds
        self._bulk_import_running = False
        self._poll_running = False

    @property
    def source_name(self) -> str:
        return self._source.name

    @property
    def bulk_import_running(self) -> bool:
        return self._bulk_import_running

    # ========== Sync ==========

    async def sync(
        self,
        filter_query: str = "",
        batch_size: Optional[int] = None,
        max_records: Optional[int] = None,
    ) -> SyncTally:
        """
        Pull pages until a short page, an empty page or max_records.

        Returns:
            SyncTally for the run

        Raises:
            SourceUnavailableException: The first page could not be fetched
        """
        batch_size = batch_size or settings.sync_batch_size
        tally = SyncTally()
        offset = 0

        logger.info(
            "Ticket sync started",
            extra={"source": self.source_name, "batch_size": batch_size, "max_records": max_records}
        )

        while True:
            limit = batch_size if max_records is None else min(batch_size, max_records - tally.fetched)
            if limit <= 0:
                break

            try:
                page = await self._source.fetch_page(offset, limit, filter_query)
            except SourceUnavailableException as e:
                if tally.pages == 0:
                    raise
                tally.truncated = True
                logger.error(
                    "Ticket sync stopped early, page fetch failed",
                    extra={"source": self.source_name, "offset": offset, "error": e.message}
                )
                break

            tally.pages += 1
            tally.fetched += len(page)
            offset += len(page)

            for record in page:
                await self._ingest_record(record, tally)

            if len(page) < limit:
                break
            if self._page_delay:
                await asyncio.sleep(self._page_delay)

        logger.info("Ticket sync finished", extra={"source": self.source_name, **tally.to_dict()})
        return tally

    async def _ingest_record(self, record: Dict[str, Any], tally: SyncTally) -> None:
        number = record.get("number")
        try:
            fresh = ticket_from_servicenow(record, self.source_name)
            async with self._ticket_scope() as repo:
                existing = await repo.find_by_ticket_id(fresh.ticket_id, fresh.source)
                if existing is None:
                    stored = await repo.add(fresh)
                    is_new = True
                else:
                    existing.apply(fresh)
                    stored = await repo.update(existing)
                    is_new = False
        except Exception as e:
            tally.errors += 1
            logger.error(
                "Failed to store ticket",
                extra={"source": self.source_name, "ticket_number": number, "error_type": type(e).__name__, "error": str(e)}
            )
            return

        if is_new:
            tally.saved += 1
        else:
            tally.updated += 1

        if is_new or self._refresh_policy is VectorRefreshPolicy.NEW_AND_UPDATED:
            point_id = await self._vectorization.try_store_or_update(stored)
            if point_id is None:
                tally.vectorization_errors += 1
            else:
                tally.vectorized += 1

    # ========== Bulk Import ==========

    async def bulk_import(
        self,
        force: bool = False,
        batch_size: Optional[int] = None,
        filter_query: str = "",
    ) -> BulkImportResult:
        """
        Guarded full import of the source.

        If a previous import completed and ``force`` is not set, returns the
        stored tally without contacting the source. Completion is recorded
        only for runs that were not truncated.

        Raises:
            ConflictException: A bulk import is already running
            SourceUnavailableException: The first page could not be fetched
        """
        if self._bulk_import_running:
            raise ConflictException("Bulk import already in progress", {"source": self.source_name})

        # Claimed before the first await; the status read below suspends
        self._bulk_import_running = True
        try:
            state = await self.get_bulk_import_status()
            if state.import_completed and not force:
                logger.info(
                    "Bulk import already completed, skipping",
                    extra={"source": self.source_name, "last_import_at": str(state.last_import_at)}
                )
                return BulkImportResult(skipped=True, tally=SyncTally.from_dict(state.last_tally), state=state)

            tally = await self.sync(filter_query, batch_size or settings.bulk_import_batch_size)

            if not tally.truncated:
                async with self._state_scope() as repo:
                    state = await repo.get(self.source_name) or BulkImportState(source=self.source_name)
                    state.mark_completed(tally)
                    state = await repo.save(state)
        finally:
            self._bulk_import_running = False

        logger.info(
            "Bulk import finished",
            extra={"source": self.source_name, "completed": state.import_completed, **tally.to_dict()}
        )
        return BulkImportResult(skipped=False, tally=tally, state=state)

    async def has_completed_bulk_import(self) -> bool:
        return (await self.get_bulk_import_status()).import_completed

    async def get_bulk_import_status(self) -> BulkImportState:
        async with self._state_scope() as repo:
            state = await repo.get(self.source_name)
        return state or BulkImportState(source=self.source_name)

    async def reset_bulk_import_state(self) -> BulkImportState:
        """Allow the next bulk import to run without force."""
        async with self._state_scope() as repo:
            state = await repo.get(self.source_name) or BulkImportState(source=self.source_name)
            state.reset()
            state = await repo.save(state)
        logger.info("Bulk import state reset", extra={"source": self.source_name})
        return state

    # ========== Incremental Polling ==========

    async def poll(self, now: Optional[datetime] = None) -> Optional[SyncTally]:
        """
        Sync records created or updated since the last poll.

        The first poll looks back ``polling_lookback_hours``. The cursor
        advances only after an untruncated run. Returns None when a poll
        is already running.
        """
        if self._poll_running:
            logger.warning("Poll already running, skipping", extra={"source": self.source_name})
            return None

        now = now or datetime.now(timezone.utc)
        self._poll_running = True
        try:
            state = await self.get_bulk_import_status()
            since = state.last_polled_at or now - timedelta(hours=settings.polling_lookback_hours)

            tally = await self.sync(
                filter_query=self._source.changed_since_query(since),
                batch_size=settings.sync_batch_size,
                max_records=settings.sync_max_records,
            )

            if not tally.truncated:
                async with self._state_scope() as repo:
                    state = await repo.get(self.source_name) or BulkImportState(source=self.source_name)
                    state.last_polled_at = now
                    await repo.save(state)
        finally:
            self._poll_running = False

        return tally

    async def scheduled_poll(self) -> None:
        """Scheduler entry point; a failed poll is logged and retried next interval."""
        try:
            await self.poll()
        except SourceUnavailableException as e:
            logger.error("Scheduled poll could not reach source", extra={"source": self.source_name, "error": e.message})


class TicketSearchService:
    """Similar-ticket, hybrid search and the ticket reindex repair path."""

    def __init__(self, ticket_scope: TicketRepositoryScope, vectorization: VectorizationService):
        self._ticket_scope = ticket_scope
        self._vectorization = vectorization
        self._hybrid = HybridSearchService(vectorization, self._text_search_summaries)

    async def get(self, ticket_store_id: str) -> Ticket:
        async with self._ticket_scope() as repo:
            ticket = await repo.get_by_id(ticket_store_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_store_id)
        return ticket

    async def similar_tickets(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> List[VectorMatch]:
        return await self._vectorization.search(query, top_k=top_k, min_score=min_score)

    async def hybrid_search(
        self,
        query: str,
        vector_weight: Optional[float] = None,
        text_weight: Optional[float] = None,
        max_results: Optional[int] = None,
    ) -> HybridSearchResult:
        return await self._hybrid.search(
            query, vector_weight=vector_weight, text_weight=text_weight, max_results=max_results
        )

    async def reindex(self) -> ReconcileTally:
        """Re-vectorize every stored ticket, one page at a time."""
        total = ReconcileTally()
        offset = 0
        while True:
            async with self._ticket_scope() as repo:
                page = await repo.list_page(offset=offset, limit=REINDEX_PAGE_SIZE)
            if not page:
                break

            tally = await self._vectorization.reconcile(page)
            total.vectorized += tally.vectorized
            total.skipped_empty += tally.skipped_empty
            total.errors += tally.errors

            offset += len(page)
            if len(page) < REINDEX_PAGE_SIZE:
                break

        logger.info("Ticket reindex finished", extra=total.to_dict())
        return total

    async def vectorization_health(self) -> Dict[str, Any]:
        return await self._vectorization.health()

    async def _text_search_summaries(self, query: str) -> List[Dict[str, Any]]:
        async with self._ticket_scope() as repo:
            tickets = await repo.text_search(query, settings.text_search_limit)
        return [ticket_summary(t) for t in tickets]
