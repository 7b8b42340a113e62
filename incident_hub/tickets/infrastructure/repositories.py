"""
Ticket Infrastructure Repositories
==================================

SQLAlchemy implementations of the ticket and bulk import state
repositories, plus the unit-of-work scopes the services open per write.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import String, cast, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from incident_hub.core import RepositoryException
from incident_hub.infrastructure.database import get_session_context, like_pattern
from incident_hub.tickets.application import IBulkImportStateRepository, ITicketRepository
from incident_hub.tickets.domain import BulkImportState, Ticket
from incident_hub.tickets.domain.entities import SOURCE_FIELDS
from incident_hub.tickets.infrastructure.models import BulkImportStateModel, TicketModel


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_entity(model: TicketModel) -> Ticket:
    return Ticket(
        id=str(model.id),
        ticket_id=model.ticket_id,
        source=model.source,
        short_description=model.short_description or "",
        description=model.description or "",
        category=model.category,
        subcategory=model.subcategory,
        status=model.status,
        priority=model.priority,
        impact=model.impact,
        urgency=model.urgency,
        opened_at=_as_utc(model.opened_at),
        closed_at=_as_utc(model.closed_at),
        resolved_at=_as_utc(model.resolved_at),
        requester_id=model.requester_id,
        assigned_to=model.assigned_to,
        assignment_group=model.assignment_group,
        company=model.company,
        location=model.location,
        tags=list(model.tags or []),
        raw=dict(model.raw or {}),
        created_at=_as_utc(model.created_at),
        updated_at=_as_utc(model.updated_at),
    )


def _copy_to_model(ticket: Ticket, model: TicketModel) -> None:
    for name in SOURCE_FIELDS:
        setattr(model, name, getattr(ticket, name))
    model.tags = list(ticket.tags)
    model.raw = dict(ticket.raw)
    model.updated_at = ticket.updated_at


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of the ticket repository.

    Handles persistence of Ticket entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def find_by_ticket_id(self, ticket_id: str, source: str) -> Optional[Ticket]:
        stmt = select(TicketModel).where(
            TicketModel.ticket_id == ticket_id,
            TicketModel.source == source,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_entity(model) if model else None

    async def get_by_id(self, ticket_store_id: str) -> Optional[Ticket]:
        try:
            ticket_uuid = UUID(str(ticket_store_id))
        except ValueError:
            return None

        model = await self._session.get(TicketModel, ticket_uuid)
        return _to_entity(model) if model else None

    async def add(self, ticket: Ticket) -> Ticket:
        model = TicketModel(
            id=UUID(ticket.id) if ticket.id else uuid4(),
            ticket_id=ticket.ticket_id,
            source=ticket.source,
            created_at=ticket.created_at,
        )
        _copy_to_model(ticket, model)

        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to insert ticket: {str(e)}", {"ticket_id": ticket.ticket_id})
        return _to_entity(model)

    async def update(self, ticket: Ticket) -> Ticket:
        model = await self._session.get(TicketModel, UUID(ticket.id))
        if model is None:
            raise RepositoryException(f"Ticket {ticket.id} vanished during update")

        _copy_to_model(ticket, model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update ticket: {str(e)}", {"ticket_id": ticket.ticket_id})
        return _to_entity(model)

    async def list_page(self, offset: int = 0, limit: int = 100) -> List[Ticket]:
        stmt = select(TicketModel).order_by(TicketModel.created_at, TicketModel.id).offset(offset).limit(limit)
        result = await self._session.execute(stmt)
        return [_to_entity(m) for m in result.scalars().all()]

    async def text_search(self, query: str, limit: int = 50) -> List[Ticket]:
        pattern = like_pattern(query)
        stmt = (
            select(TicketModel)
            .where(or_(
                TicketModel.ticket_id.ilike(pattern, escape="\\"),
                TicketModel.short_description.ilike(pattern, escape="\\"),
                TicketModel.description.ilike(pattern, escape="\\"),
                TicketModel.category.ilike(pattern, escape="\\"),
                cast(TicketModel.tags, String).ilike(pattern, escape="\\"),
            ))
            .order_by(TicketModel.updated_at.desc(), TicketModel.id)
            .limit(limit)
        )

        result = await self._session.execute(stmt)
        return [_to_entity(m) for m in result.scalars().all()]


class SQLAlchemyBulkImportStateRepository(IBulkImportStateRepository):
    """SQLAlchemy implementation of the bulk import state repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, source: str) -> Optional[BulkImportStateModel]:
        stmt = select(BulkImportStateModel).where(BulkImportStateModel.source == source)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, source: str) -> Optional[BulkImportState]:
        model = await self._get_model(source)
        if model is None:
            return None

        return BulkImportState(
            source=model.source,
            import_completed=model.import_completed,
            last_import_at=_as_utc(model.last_import_at),
            total_imported=model.total_imported,
            last_tally=model.last_tally,
            last_polled_at=_as_utc(model.last_polled_at),
        )

    async def save(self, state: BulkImportState) -> BulkImportState:
        model = await self._get_model(state.source)
        if model is None:
            model = BulkImportStateModel(source=state.source)
            self._session.add(model)

        model.import_completed = state.import_completed
        model.last_import_at = state.last_import_at
        model.total_imported = state.total_imported
        model.last_tally = state.last_tally
        model.last_polled_at = state.last_polled_at

        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to save bulk import state: {str(e)}", {"source": state.source})
        return state


@asynccontextmanager
async def ticket_repository_scope() -> AsyncIterator[SQLAlchemyTicketRepository]:
    """Unit of work for one ticket write; commits on exit."""
    try:
        async with get_session_context() as session:
            yield SQLAlchemyTicketRepository(session)
    except SQLAlchemyError as e:
        raise RepositoryException(f"Ticket store error: {str(e)}")


@asynccontextmanager
async def bulk_import_state_scope() -> AsyncIterator[SQLAlchemyBulkImportStateRepository]:
    """Unit of work for the bulk import state; commits on exit."""
    try:
        async with get_session_context() as session:
            yield SQLAlchemyBulkImportStateRepository(session)
    except SQLAlchemyError as e:
        raise RepositoryException(f"Bulk import state store error: {str(e)}")
