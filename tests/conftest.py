"""Pytest configuration and shared fakes.

The fakes stand in for the record store, the vector index and the
ServiceNow source so the services can be exercised without a network.
Repository tests against SQLite live in test_repositories.py.
"""

import asyncio
import math
from contextlib import asynccontextmanager
from copy import deepcopy
from typing import Any, Dict, List, Optional
from uuid import uuid4

import pytest

from incident_hub.core import DimensionMismatchException, EmbeddingException, SourceUnavailableException
from incident_hub.infrastructure.embeddings import MockEmbeddingProvider
from incident_hub.infrastructure.vectorstore import IVectorIndex, VectorFilter, VectorHit
from incident_hub.playbooks.application import IPlaybookRepository, create_playbook_vectorization_service
from incident_hub.tickets.application import (
    IBulkImportStateRepository,
    ITicketRepository,
    ITicketSource,
    create_ticket_vectorization_service,
)

EMBEDDING_DIMENSION = 8


# =============================================================================
# Vector index
# =============================================================================


def _matches(payload: Dict[str, Any], vector_filter: Optional[VectorFilter]) -> bool:
    if vector_filter is None:
        return True
    for name, value in vector_filter.equals.items():
        if payload.get(name) != value:
            return False
    for name, values in vector_filter.one_of.items():
        if values and payload.get(name) not in values:
            return False
    for name, values in vector_filter.contains_any.items():
        if values and not set(payload.get(name) or []) & set(values):
            return False
    return True


def _cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeVectorIndex(IVectorIndex):
    """In-memory vector index with call counters and failure injection."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, Any]] = {}
        self.points: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.calls: Dict[str, int] = {"ensure_collection": 0, "upsert": 0, "delete": 0, "search": 0}
        self.failures: Dict[str, Exception] = {}
        self.fixed_scores: Dict[str, float] = {}
        self.last_filter: Optional[VectorFilter] = None
        self.reachable = True
        self.ensure_gate: Optional[asyncio.Event] = None

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failures:
            raise self.failures[operation]

    async def ensure_collection(self, name: str, dimension: int, metric: str = "COSINE") -> bool:
        self.calls["ensure_collection"] += 1
        if self.ensure_gate is not None:
            await self.ensure_gate.wait()
        self._maybe_fail("ensure_collection")
        if name in self.collections:
            if self.collections[name]["dimension"] != dimension:
                raise DimensionMismatchException(name, dimension, self.collections[name]["dimension"])
            return False
        self.collections[name] = {"dimension": dimension, "metric": metric}
        self.points[name] = {}
        return True

    async def upsert(self, collection, vector, payload, point_id=None) -> str:
        self.calls["upsert"] += 1
        self._maybe_fail("upsert")
        point_id = point_id or str(uuid4())
        self.points[collection][point_id] = {"vector": list(vector), "payload": deepcopy(payload)}
        return point_id

    async def delete_by_filter(self, collection, vector_filter) -> int:
        self.calls["delete"] += 1
        self._maybe_fail("delete")
        doomed = [pid for pid, p in self.points[collection].items() if _matches(p["payload"], vector_filter)]
        for pid in doomed:
            del self.points[collection][pid]
        return len(doomed)

    async def search_by_vector(self, collection, vector, top_k, vector_filter=None) -> List[VectorHit]:
        self.calls["search"] += 1
        self._maybe_fail("search")
        self.last_filter = vector_filter
        hits = [
            VectorHit(
                id=pid,
                score=self.fixed_scores.get(pid, _cosine(vector, p["vector"])),
                payload=deepcopy(p["payload"]),
            )
            for pid, p in self.points.get(collection, {}).items()
            if _matches(p["payload"], vector_filter)
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:top_k]

    async def ping(self) -> bool:
        return self.reachable


class FailingEmbeddingProvider(MockEmbeddingProvider):
    """Mock provider whose every call fails."""

    async def embed_many(self, texts):
        self.calls += 1
        raise EmbeddingException("provider down")


# =============================================================================
# Record store
# =============================================================================


class InMemoryTicketRepository(ITicketRepository):
    def __init__(self, rows: Dict[str, Any], fail_for: set):
        self._rows = rows
        self._fail_for = fail_for

    async def find_by_ticket_id(self, ticket_id, source):
        for ticket in self._rows.values():
            if ticket.ticket_id == ticket_id and ticket.source == source:
                return deepcopy(ticket)
        return None

    async def get_by_id(self, ticket_store_id):
        ticket = self._rows.get(ticket_store_id)
        return deepcopy(ticket) if ticket else None

    async def add(self, ticket):
        if ticket.ticket_id in self._fail_for:
            raise RuntimeError(f"insert failed for {ticket.ticket_id}")
        ticket = deepcopy(ticket)
        ticket.id = ticket.id or str(uuid4())
        self._rows[ticket.id] = ticket
        return deepcopy(ticket)

    async def update(self, ticket):
        self._rows[ticket.id] = deepcopy(ticket)
        return deepcopy(ticket)

    async def list_page(self, offset=0, limit=100):
        rows = sorted(self._rows.values(), key=lambda t: t.created_at)
        return [deepcopy(t) for t in rows[offset:offset + limit]]

    async def text_search(self, query, limit=50):
        q = query.lower()
        return [
            deepcopy(t) for t in self._rows.values()
            if q in t.short_description.lower() or q in t.description.lower()
        ][:limit]


class InMemoryStateRepository(IBulkImportStateRepository):
    def __init__(self, rows: Dict[str, Any], suspend: bool = False):
        self._rows = rows
        self._suspend = suspend

    async def get(self, source):
        if self._suspend:
            # Yield like a database round-trip would
            await asyncio.sleep(0)
        state = self._rows.get(source)
        return deepcopy(state) if state else None

    async def save(self, state):
        self._rows[state.source] = deepcopy(state)
        return deepcopy(state)


class InMemoryPlaybookRepository(IPlaybookRepository):
    def __init__(self, rows: Dict[str, Any]):
        self._rows = rows

    async def get_by_id(self, playbook_store_id):
        playbook = self._rows.get(playbook_store_id)
        return deepcopy(playbook) if playbook else None

    async def get_by_playbook_id(self, playbook_id):
        for playbook in self._rows.values():
            if playbook.playbook_id == playbook_id:
                return deepcopy(playbook)
        return None

    async def add(self, playbook):
        self._rows[playbook.id] = deepcopy(playbook)
        return deepcopy(playbook)

    async def update(self, playbook):
        self._rows[playbook.id] = deepcopy(playbook)
        return deepcopy(playbook)

    async def list(self, offset=0, limit=100, include_inactive=False):
        rows = [p for p in self._rows.values() if include_inactive or p.is_active]
        return [deepcopy(p) for p in rows[offset:offset + limit]]

    async def text_search(self, query, limit=50):
        q = query.lower()
        return [
            deepcopy(p) for p in self._rows.values()
            if p.is_active and (q in p.title.lower() or q in p.description.lower())
        ][:limit]


class TicketStore:
    """Backing rows plus the scope callables the services expect."""

    def __init__(self):
        self.tickets: Dict[str, Any] = {}
        self.states: Dict[str, Any] = {}
        self.fail_for: set = set()
        self.suspend_state_reads = False

    @asynccontextmanager
    async def ticket_scope(self):
        yield InMemoryTicketRepository(self.tickets, self.fail_for)

    @asynccontextmanager
    async def state_scope(self):
        yield InMemoryStateRepository(self.states, self.suspend_state_reads)


class PlaybookStore:
    def __init__(self):
        self.playbooks: Dict[str, Any] = {}

    @asynccontextmanager
    async def scope(self):
        yield InMemoryPlaybookRepository(self.playbooks)


# =============================================================================
# Ticket source
# =============================================================================


def servicenow_record(number: str, **overrides) -> Dict[str, Any]:
    record = {
        "sys_id": f"sys-{number}",
        "number": number,
        "short_description": f"Email outage {number}",
        "description": "Users cannot reach the mail server",
        "category": "Network",
        "state": "New",
        "priority": "2 - High",
        "opened_at": "2024-05-01 10:00:00",
        "caller_id": {"value": "user-1", "display_value": "Jane Doe"},
        "assignment_group": {"value": "grp-1", "display_value": "Service Desk"},
        "tags": "email, outage",
    }
    record.update(overrides)
    return record


class FakeTicketSource(ITicketSource):
    """Serves a fixed record list in pages; can fail on a given page."""

    name = "ServiceNow"

    def __init__(self, records: List[Dict[str, Any]], fail_at_offsets: Optional[set] = None):
        self.records = records
        self.fail_at_offsets = fail_at_offsets or set()
        self.requests: List[Dict[str, Any]] = []

    async def fetch_page(self, offset, limit, filter_query=""):
        self.requests.append({"offset": offset, "limit": limit, "filter_query": filter_query})
        if offset in self.fail_at_offsets:
            raise SourceUnavailableException(self.name, "connection refused")
        return deepcopy(self.records[offset:offset + limit])

    def changed_since_query(self, since):
        return f"since={since.isoformat()}"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def vector_index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def embedder() -> MockEmbeddingProvider:
    return MockEmbeddingProvider(dimension=EMBEDDING_DIMENSION)


@pytest.fixture
def ticket_vectorization(vector_index, embedder, tmp_path):
    return create_ticket_vectorization_service(
        vector_index,
        provider_name="mock",
        embedding_factory=lambda name: embedder,
        config_path=tmp_path / "missing.yaml",
    )


@pytest.fixture
def playbook_vectorization(vector_index, embedder, tmp_path):
    return create_playbook_vectorization_service(
        vector_index,
        provider_name="mock",
        embedding_factory=lambda name: embedder,
        config_path=tmp_path / "missing.yaml",
    )


@pytest.fixture
def ticket_store() -> TicketStore:
    return TicketStore()


@pytest.fixture
def playbook_store() -> PlaybookStore:
    return PlaybookStore()
