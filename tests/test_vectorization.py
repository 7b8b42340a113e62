"""Unit tests for the vectorization service.

Tests cover:
- Idempotent store/update keyed by the record store id
- Empty-content rejection before any remote call
- Single-flight lazy initialization and recovery from failure
- Best-effort writes and propagation of deployment defects
- Similarity search cutoff, delete and health

Run with: pytest tests/test_vectorization.py -v
"""

import asyncio

import pytest

from incident_hub.core import (
    DimensionMismatchException,
    EmptyContentException,
    IndexWriteException,
    ValidationException,
)
from incident_hub.retrieval.domain import InitializationState
from incident_hub.tickets.domain import Ticket

from tests.conftest import EMBEDDING_DIMENSION, FailingEmbeddingProvider


def make_ticket(ticket_id: str = "INC001", store_id: str = "t-1", **overrides) -> Ticket:
    values = dict(
        id=store_id,
        ticket_id=ticket_id,
        source="ServiceNow",
        short_description="Mail server unreachable",
        description="Outlook cannot connect",
        category="Email",
    )
    values.update(overrides)
    return Ticket(**values)


# =============================================================================
# Writes
# =============================================================================


class TestStoreOrUpdate:
    """Test the write path."""

    @pytest.mark.asyncio
    async def test_point_id_is_store_id(self, ticket_vectorization, vector_index):
        point_id = await ticket_vectorization.store_or_update(make_ticket())

        assert point_id == "t-1"
        payload = vector_index.points["tickets"]["t-1"]["payload"]
        assert payload["record_id"] == "t-1"
        assert payload["record_type"] == "ticket"
        assert payload["ticket_id"] == "INC001"
        assert "raw" not in payload

    @pytest.mark.asyncio
    async def test_unchanged_record_stored_twice(self, ticket_vectorization, vector_index):
        ticket = make_ticket()

        await ticket_vectorization.store_or_update(ticket)
        first = vector_index.points["tickets"]["t-1"]
        await ticket_vectorization.store_or_update(ticket)
        second = vector_index.points["tickets"]["t-1"]

        assert len(vector_index.points["tickets"]) == 1
        assert second == first

    @pytest.mark.asyncio
    async def test_repeated_store_keeps_one_point(self, ticket_vectorization, vector_index):
        await ticket_vectorization.store_or_update(make_ticket())
        await ticket_vectorization.store_or_update(make_ticket(short_description="Mail server back"))

        points = vector_index.points["tickets"]
        assert list(points) == ["t-1"]
        assert points["t-1"]["payload"]["short_description"] == "Mail server back"

    @pytest.mark.asyncio
    async def test_empty_content_makes_no_remote_call(self, ticket_vectorization, vector_index, embedder):
        # Source is a weighted field, so blank it too
        ticket = make_ticket(short_description="", description="", category=None)
        ticket.source = ""

        with pytest.raises(EmptyContentException):
            await ticket_vectorization.store_or_update(ticket)

        assert embedder.calls == 0
        assert vector_index.calls["ensure_collection"] == 0
        assert vector_index.calls["upsert"] == 0

    @pytest.mark.asyncio
    async def test_try_store_returns_none_on_index_failure(self, ticket_vectorization, vector_index):
        vector_index.failures["upsert"] = IndexWriteException("timeout")
        assert await ticket_vectorization.try_store_or_update(make_ticket()) is None

    @pytest.mark.asyncio
    async def test_try_store_propagates_dimension_mismatch(self, ticket_vectorization, vector_index):
        vector_index.collections["tickets"] = {"dimension": EMBEDDING_DIMENSION + 1, "metric": "COSINE"}
        vector_index.points["tickets"] = {}

        with pytest.raises(DimensionMismatchException):
            await ticket_vectorization.try_store_or_update(make_ticket())


# =============================================================================
# Initialization
# =============================================================================


class TestInitialization:
    """Test lazy single-flight initialization."""

    @pytest.mark.asyncio
    async def test_concurrent_first_calls_initialize_once(self, ticket_vectorization, vector_index):
        vector_index.ensure_gate = asyncio.Event()
        tickets = [make_ticket(f"INC{i:03d}", f"t-{i}") for i in range(5)]

        async def write(ticket):
            await ticket_vectorization.store_or_update(ticket)
            return ticket_vectorization.state

        tasks = [asyncio.create_task(write(t)) for t in tickets]
        for _ in range(5):
            await asyncio.sleep(0)

        # Every caller is parked on the one in-flight initialization
        assert ticket_vectorization.state is InitializationState.INITIALIZING
        assert vector_index.calls["ensure_collection"] == 1
        assert not any(task.done() for task in tasks)

        vector_index.ensure_gate.set()
        states = await asyncio.gather(*tasks)

        assert states == [InitializationState.READY] * 5
        assert vector_index.calls["ensure_collection"] == 1
        assert len(vector_index.points["tickets"]) == 5

    @pytest.mark.asyncio
    async def test_failed_initialization_is_retried(self, ticket_vectorization, vector_index):
        vector_index.failures["ensure_collection"] = IndexWriteException("unreachable")

        with pytest.raises(IndexWriteException):
            await ticket_vectorization.store_or_update(make_ticket())
        assert ticket_vectorization.state is InitializationState.UNINITIALIZED

        del vector_index.failures["ensure_collection"]
        await ticket_vectorization.store_or_update(make_ticket())

        assert vector_index.calls["ensure_collection"] == 2
        assert ticket_vectorization.is_ready


# =============================================================================
# Reads
# =============================================================================


class TestSearch:
    """Test similarity search."""

    @pytest.mark.asyncio
    async def test_min_score_cutoff(self, ticket_vectorization, vector_index):
        await ticket_vectorization.store_or_update(make_ticket("INC001", "t-1"))
        await ticket_vectorization.store_or_update(make_ticket("INC002", "t-2"))
        vector_index.fixed_scores = {"t-1": 0.91, "t-2": 0.42}

        matches = await ticket_vectorization.search("mail", min_score=0.7)

        assert [m.record_id for m in matches] == ["t-1"]
        assert matches[0].score == pytest.approx(0.91)
        assert matches[0].summary["ticket_id"] == "INC001"

    @pytest.mark.asyncio
    async def test_blank_query_rejected(self, ticket_vectorization):
        with pytest.raises(ValidationException):
            await ticket_vectorization.search("   ")

    @pytest.mark.asyncio
    async def test_delete_removes_twin(self, ticket_vectorization, vector_index):
        await ticket_vectorization.store_or_update(make_ticket())

        assert await ticket_vectorization.delete("t-1") == 1
        assert vector_index.points["tickets"] == {}


# =============================================================================
# Health and repair
# =============================================================================


class TestHealthAndReconcile:
    """Test health reporting and reconcile."""

    @pytest.mark.asyncio
    async def test_health_does_not_initialize(self, ticket_vectorization, vector_index):
        report = await ticket_vectorization.health()

        assert report["state"] == "uninitialized"
        assert report["initialized"] is False
        assert report["vector_index_reachable"] is True
        assert report["embedding_reachable"] is True
        assert vector_index.calls["ensure_collection"] == 0

    @pytest.mark.asyncio
    async def test_health_reports_components_independently(self, ticket_vectorization, vector_index):
        vector_index.reachable = False
        report = await ticket_vectorization.health()

        assert report["vector_index_reachable"] is False
        assert report["embedding_reachable"] is True

    @pytest.mark.asyncio
    async def test_provider_built_once_across_health_and_writes(self, vector_index, embedder, tmp_path):
        from incident_hub.tickets.application import create_ticket_vectorization_service

        built = []

        def factory(name):
            built.append(name)
            return embedder

        service = create_ticket_vectorization_service(
            vector_index, provider_name="mock", embedding_factory=factory, config_path=tmp_path / "missing.yaml"
        )

        await service.health()
        await service.health()
        await service.store_or_update(make_ticket())
        await service.health()

        assert built == ["mock"]

    @pytest.mark.asyncio
    async def test_reconcile_tally(self, vector_index, tmp_path):
        from incident_hub.tickets.application import create_ticket_vectorization_service

        service = create_ticket_vectorization_service(
            vector_index,
            embedding_factory=lambda name: FailingEmbeddingProvider(dimension=EMBEDDING_DIMENSION),
            config_path=tmp_path / "missing.yaml",
        )
        empty = make_ticket("INC002", "t-2", short_description="", description="", category=None)
        empty.source = ""

        tally = await service.reconcile([make_ticket(), empty])

        assert tally.to_dict() == {"vectorized": 0, "skipped_empty": 1, "errors": 1, "processed": 2}
