"""
Playbook Infrastructure Repositories
====================================

SQLAlchemy implementation of the playbook repository.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional
from uuid import UUID

from sqlalchemy import String, cast, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from incident_hub.core import RepositoryException
from incident_hub.infrastructure.database import get_session_context, like_pattern
from incident_hub.playbooks.application import IPlaybookRepository
from incident_hub.playbooks.domain import Playbook, PlaybookTrigger
from incident_hub.playbooks.infrastructure.models import PlaybookModel


def _to_entity(model: PlaybookModel) -> Playbook:
    return Playbook(
        id=str(model.id),
        playbook_id=model.playbook_id,
        title=model.title,
        description=model.description,
        priority=model.priority,
        tags=list(model.tags or []),
        triggers=[PlaybookTrigger.from_dict(t) for t in (model.triggers or [])],
        outcome=model.outcome or "",
        usage=model.usage,
        confidence=model.confidence,
        created_by=model.created_by,
        is_active=model.is_active,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _copy_to_model(playbook: Playbook, model: PlaybookModel) -> None:
    model.playbook_id = playbook.playbook_id
    model.title = playbook.title
    model.description = playbook.description
    model.priority = playbook.priority
    model.tags = list(playbook.tags)
    model.triggers = [t.to_dict() for t in playbook.triggers]
    model.outcome = playbook.outcome
    model.usage = playbook.usage
    model.confidence = playbook.confidence
    model.created_by = playbook.created_by
    model.is_active = playbook.is_active
    model.created_at = playbook.created_at
    model.updated_at = playbook.updated_at


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


class SQLAlchemyPlaybookRepository(IPlaybookRepository):
    """SQLAlchemy implementation for playbooks."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, playbook_store_id: str) -> Optional[Playbook]:
        playbook_uuid = _parse_uuid(playbook_store_id)
        if playbook_uuid is None:
            return None

        model = await self._session.get(PlaybookModel, playbook_uuid)
        return _to_entity(model) if model else None

    async def get_by_playbook_id(self, playbook_id: str) -> Optional[Playbook]:
        stmt = select(PlaybookModel).where(PlaybookModel.playbook_id == playbook_id)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_entity(model) if model else None

    async def add(self, playbook: Playbook) -> Playbook:
        model = PlaybookModel(id=UUID(playbook.id))
        _copy_to_model(playbook, model)

        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to insert playbook: {str(e)}", {"playbook_id": playbook.playbook_id})
        return _to_entity(model)

    async def update(self, playbook: Playbook) -> Playbook:
        model = await self._session.get(PlaybookModel, UUID(playbook.id))
        if model is None:
            raise RepositoryException(f"Playbook {playbook.id} vanished during update")

        _copy_to_model(playbook, model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update playbook: {str(e)}", {"playbook_id": playbook.playbook_id})
        return _to_entity(model)

    async def list(self, offset: int = 0, limit: int = 100, include_inactive: bool = False) -> List[Playbook]:
        stmt = select(PlaybookModel)
        if not include_inactive:
            stmt = stmt.where(PlaybookModel.is_active.is_(True))
        stmt = stmt.order_by(PlaybookModel.created_at, PlaybookModel.id).offset(offset).limit(limit)

        result = await self._session.execute(stmt)
        return [_to_entity(m) for m in result.scalars().all()]

    async def text_search(self, query: str, limit: int = 50) -> List[Playbook]:
        pattern = like_pattern(query)
        stmt = (
            select(PlaybookModel)
            .where(PlaybookModel.is_active.is_(True))
            .where(or_(
                PlaybookModel.title.ilike(pattern, escape="\\"),
                PlaybookModel.description.ilike(pattern, escape="\\"),
                cast(PlaybookModel.tags, String).ilike(pattern, escape="\\"),
            ))
            .order_by(PlaybookModel.updated_at.desc(), PlaybookModel.id)
            .limit(limit)
        )

        result = await self._session.execute(stmt)
        return [_to_entity(m) for m in result.scalars().all()]


@asynccontextmanager
async def playbook_repository_scope() -> AsyncIterator[SQLAlchemyPlaybookRepository]:
    """
    Unit of work for playbook writes.

    Commits on exit; database errors (including the commit) surface as
    RepositoryException.
    """
    try:
        async with get_session_context() as session:
            yield SQLAlchemyPlaybookRepository(session)
    except SQLAlchemyError as e:
        raise RepositoryException(f"Playbook store error: {str(e)}")
