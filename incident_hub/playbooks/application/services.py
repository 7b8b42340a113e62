"""
Playbook Application Services
=============================

Authoring and search for remediation playbooks.

Every write commits the record store first and then syncs the vector twin
best-effort; the caller learns through ``vector_synced`` whether the twin
was written, or None when the write left the twin untouched.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncContextManager, Callable, Dict, List, Optional
from uuid import uuid4

from incident_hub.config import settings
from incident_hub.core import (
    ConfigurationException,
    ConflictException,
    DimensionMismatchException,
    EmbeddingException,
    ResourceNotFoundException,
    VectorStoreException,
)
from incident_hub.infrastructure.vectorstore import VectorFilter
from incident_hub.playbooks.application.dto import (
    PlaybookCreateDTO,
    PlaybookTriggerDTO,
    PlaybookUpdateDTO,
)
from incident_hub.playbooks.application.vectorization import playbook_summary
from incident_hub.playbooks.domain import Playbook, PlaybookTrigger
from incident_hub.retrieval.application import HybridSearchService, VectorizationService
from incident_hub.retrieval.domain import HybridSearchResult, ReconcileTally, VectorMatch
from incident_hub.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

REINDEX_PAGE_SIZE = 100


# ========== Repository Interfaces ==========

class IPlaybookRepository(ABC):
    """Interface for playbook persistence."""

    @abstractmethod
    async def get_by_id(self, playbook_store_id: str) -> Optional[Playbook]:
        """Get playbook by store id."""

    @abstractmethod
    async def get_by_playbook_id(self, playbook_id: str) -> Optional[Playbook]:
        """Get playbook by business id."""

    @abstractmethod
    async def add(self, playbook: Playbook) -> Playbook:
        """Insert a new playbook."""

    @abstractmethod
    async def update(self, playbook: Playbook) -> Playbook:
        """Update a playbook in place."""

    @abstractmethod
    async def list(self, offset: int = 0, limit: int = 100, include_inactive: bool = False) -> List[Playbook]:
        """List playbooks ordered by creation time."""

    @abstractmethod
    async def text_search(self, query: str, limit: int = 50) -> List[Playbook]:
        """
        Case-insensitive substring search over title, description and tags.

        Returns active playbooks only, unscored.
        """


PlaybookRepositoryScope = Callable[[], AsyncContextManager[IPlaybookRepository]]


@dataclass
class PlaybookWriteResult:
    """A committed playbook and the outcome of its vector write (None: none attempted)."""
    playbook: Playbook
    vector_synced: Optional[bool]


def _triggers_from_dto(triggers: List[PlaybookTriggerDTO]) -> List[PlaybookTrigger]:
    return [
        PlaybookTrigger(
            trigger_id=t.trigger_id or f"step-{index + 1}",
            title=t.title,
            action=t.action,
            expected_outcome=t.expected_outcome,
            resources=list(t.resources),
        )
        for index, t in enumerate(triggers)
    ]


def _payload_filter(priority: Optional[str], tags: Optional[List[str]]) -> VectorFilter:
    vector_filter = VectorFilter(equals={"is_active": True})
    if priority:
        vector_filter.equals["priority"] = priority
    if tags:
        vector_filter.contains_any["tags"] = list(tags)
    return vector_filter


class PlaybookService:
    """
    Playbook authoring and search.

    Args:
        repository_scope: Opens a unit of work yielding a repository; the
            scope commits on exit
        vectorization: VectorizationService for the playbook collection
    """

    def __init__(self, repository_scope: PlaybookRepositoryScope, vectorization: VectorizationService):
        self._repository_scope = repository_scope
        self._vectorization = vectorization

    # ========== Writes ==========

    async def create(self, dto: PlaybookCreateDTO) -> PlaybookWriteResult:
        """
        Create a playbook, then vectorize it.

        Raises:
            ConflictException: playbook_id already exists
        """
        playbook = Playbook(
            id=str(uuid4()),
            playbook_id=dto.playbook_id or f"PB-{uuid4().hex[:8].upper()}",
            title=dto.title,
            description=dto.description,
            priority=dto.priority,
            tags=list(dto.tags) or ["Custom"],
            triggers=_triggers_from_dto(dto.triggers),
            outcome=dto.outcome,
            confidence=dto.confidence,
            created_by=dto.created_by,
        )

        async with self._repository_scope() as repo:
            if await repo.get_by_playbook_id(playbook.playbook_id) is not None:
                raise ConflictException(
                    f"Playbook '{playbook.playbook_id}' already exists",
                    {"playbook_id": playbook.playbook_id}
                )
            playbook = await repo.add(playbook)

        logger.info("Playbook created", extra={"playbook_id": playbook.playbook_id, "id": playbook.id})

        point_id = await self._vectorization.try_store_or_update(playbook)
        return PlaybookWriteResult(playbook=playbook, vector_synced=point_id is not None)

    async def update(self, playbook_store_id: str, dto: PlaybookUpdateDTO) -> PlaybookWriteResult:
        """
        Apply a partial update; re-vectorize when a vectorized field changed.

        Raises:
            ResourceNotFoundException: Unknown id
        """
        async with self._repository_scope() as repo:
            playbook = await self._require(repo, playbook_store_id)
            before = playbook.snapshot()

            changes = dto.model_dump(exclude_unset=True)
            if "triggers" in changes:
                playbook.triggers = _triggers_from_dto(dto.triggers or [])
                changes.pop("triggers")
            for name, value in changes.items():
                if value is not None:
                    setattr(playbook, name, value)
            playbook.touch()

            playbook = await repo.update(playbook)

        if playbook.snapshot() == before or not playbook.is_active:
            return PlaybookWriteResult(playbook=playbook, vector_synced=None)

        point_id = await self._vectorization.try_store_or_update(playbook)
        return PlaybookWriteResult(playbook=playbook, vector_synced=point_id is not None)

    async def deactivate(self, playbook_store_id: str) -> PlaybookWriteResult:
        """
        Soft-delete a playbook and remove its vector twin.

        Raises:
            ResourceNotFoundException: Unknown id
        """
        async with self._repository_scope() as repo:
            playbook = await self._require(repo, playbook_store_id)
            playbook.deactivate()
            playbook = await repo.update(playbook)

        logger.info("Playbook deactivated", extra={"playbook_id": playbook.playbook_id, "id": playbook.id})

        try:
            await self._vectorization.delete(playbook.id)
            vector_synced = True
        except (DimensionMismatchException, ConfigurationException):
            raise
        except (EmbeddingException, VectorStoreException) as e:
            logger.warning(
                "Vector twin of deactivated playbook not removed",
                extra={"id": playbook.id, "error": e.message}
            )
            vector_synced = False
        return PlaybookWriteResult(playbook=playbook, vector_synced=vector_synced)

    # ========== Reads ==========

    async def get(self, playbook_store_id: str) -> Playbook:
        async with self._repository_scope() as repo:
            return await self._require(repo, playbook_store_id)

    async def list(self, offset: int = 0, limit: int = 100, include_inactive: bool = False) -> List[Playbook]:
        async with self._repository_scope() as repo:
            return await repo.list(offset=offset, limit=limit, include_inactive=include_inactive)

    async def text_search(self, query: str, limit: Optional[int] = None) -> List[Playbook]:
        """Lexical search over active playbooks."""
        async with self._repository_scope() as repo:
            return await repo.text_search(query.strip(), limit or settings.text_search_limit)

    async def vector_search(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
        priority: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> List[VectorMatch]:
        """Similarity search over active playbooks."""
        return await self._vectorization.search(
            query, top_k=top_k, min_score=min_score, filters=_payload_filter(priority, tags)
        )

    async def hybrid_search(
        self,
        query: str,
        vector_weight: Optional[float] = None,
        text_weight: Optional[float] = None,
        max_results: Optional[int] = None,
        priority: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> HybridSearchResult:
        """
        Fused lexical + vector search.

        The priority and tag filters apply to both sub-searches.
        """
        async def text_search(q: str) -> List[Dict]:
            playbooks = await self.text_search(q)
            return [playbook_summary(p) for p in playbooks if p.matches_filters(priority, tags)]

        hybrid = HybridSearchService(self._vectorization, text_search)
        return await hybrid.search(
            query,
            vector_weight=vector_weight,
            text_weight=text_weight,
            max_results=max_results,
            vector_filter=_payload_filter(priority, tags),
        )

    # ========== Operations ==========

    async def reindex(self) -> ReconcileTally:
        """Re-vectorize every active playbook, one page at a time."""
        total = ReconcileTally()
        offset = 0
        while True:
            async with self._repository_scope() as repo:
                page = await repo.list(offset=offset, limit=REINDEX_PAGE_SIZE)
            if not page:
                break

            tally = await self._vectorization.reconcile(page)
            total.vectorized += tally.vectorized
            total.skipped_empty += tally.skipped_empty
            total.errors += tally.errors

            offset += len(page)
            if len(page) < REINDEX_PAGE_SIZE:
                break

        logger.info("Playbook reindex finished", extra=total.to_dict())
        return total

    async def vectorization_health(self) -> Dict:
        return await self._vectorization.health()

    # ========== Helpers ==========

    async def _require(self, repo: IPlaybookRepository, playbook_store_id: str) -> Playbook:
        playbook = await repo.get_by_id(playbook_store_id)
        if playbook is None:
            raise ResourceNotFoundException("Playbook", playbook_store_id)
        return playbook

