"""
SLA Infrastructure Repositories
=================================

Concrete implementations of the ticket repository and config provider
interfaces.

This layer contains the data access logic - how we store and retrieve
tickets. Both repositories store tickets as full replaces keyed by id;
callers serialize writes to a ticket through the per-ticket lock.
"""

import copy
from typing import Dict, List, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketdesk.config import TERMINAL_STATUSES
from ticketdesk.core import RepositoryException, TicketNotFoundException
from ticketdesk.shared.infrastructure.logging import get_logger
from ticketdesk.sla.application import (
    ISLAConfigProvider,
    ITicketRepository,
    TicketEntityDTO,
    TicketNumberSequence,
    TicketQueryDTO,
)
from ticketdesk.sla.domain import SLAConfig, Ticket
from ticketdesk.sla.infrastructure.models import TicketModel

logger = get_logger(__name__)


# Fields stored as JSON documents rather than columns
_DOCUMENT_FIELDS = {"sla_policy", "escalation_history", "internal_notes", "responses", "metadata"}


class InMemoryTicketRepository(ITicketRepository):
    """
    Process-local ticket store.

    Tickets are deep-copied on the way in and out so a caller holding a
    ticket can never change the stored one behind the lock's back.
    """

    def __init__(self):
        self._tickets: Dict[str, Ticket] = {}

    async def get(self, ticket_id: str) -> Ticket:
        ticket = self._tickets.get(ticket_id)
        if ticket is None:
            raise TicketNotFoundException(ticket_id)
        return copy.deepcopy(ticket)

    async def save(self, ticket: Ticket) -> Ticket:
        self._tickets[ticket.id] = copy.deepcopy(ticket)
        return copy.deepcopy(ticket)

    async def list_non_terminal(self) -> List[Ticket]:
        tickets = [t for t in self._tickets.values() if t.status not in TERMINAL_STATUSES]
        tickets.sort(key=lambda t: t.created_at)
        return [copy.deepcopy(t) for t in tickets]

    async def max_ticket_number(self) -> int:
        return max(
            (TicketNumberSequence.parse(t.ticket_number) for t in self._tickets.values()),
            default=0,
        )

    async def list_tickets(self, query: TicketQueryDTO) -> Tuple[List[Ticket], int]:
        matches = [t for t in self._tickets.values() if query.matches(t)]
        matches.sort(key=lambda t: t.created_at, reverse=True)
        page = matches[query.offset:query.offset + query.limit]
        return [copy.deepcopy(t) for t in page], len(matches)

    def __len__(self) -> int:
        return len(self._tickets)


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Each call runs in its own session and transaction taken from
    ``session_factory``; a save is a single merge of the whole row.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, ticket_id: str) -> Ticket:
        try:
            async with self._session_factory() as session:
                model = await session.get(TicketModel, ticket_id)
        except SQLAlchemyError as e:
            raise RepositoryException(
                f"Failed to load ticket {ticket_id}", {"error": str(e)}
            ) from e

        if model is None:
            raise TicketNotFoundException(ticket_id)
        return self._to_domain(model)

    async def save(self, ticket: Ticket) -> Ticket:
        model = self._to_model(ticket)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.merge(model)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to save ticket",
                extra={"ticket_id": ticket.id, "error": str(e)}
            )
            raise RepositoryException(
                f"Failed to save ticket {ticket.id}", {"error": str(e)}
            ) from e
        return ticket

    async def list_non_terminal(self) -> List[Ticket]:
        stmt = (
            select(TicketModel)
            .where(TicketModel.status.not_in(TERMINAL_STATUSES))
            .order_by(TicketModel.created_at.asc())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                models = result.scalars().all()
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to list open tickets", {"error": str(e)}) from e

        return [self._to_domain(model) for model in models]

    async def max_ticket_number(self) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(func.max(TicketModel.sequence)))
                highest = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to read ticket numbers", {"error": str(e)}) from e
        return highest or 0

    async def list_tickets(self, query: TicketQueryDTO) -> Tuple[List[Ticket], int]:
        conditions = []
        if query.status:
            conditions.append(TicketModel.status.in_(query.status))
        if query.category:
            conditions.append(TicketModel.category.in_(query.category))
        if query.priority:
            conditions.append(TicketModel.priority.in_(query.priority))
        if query.department:
            conditions.append(TicketModel.department.in_(query.department))
        if query.assigned_to:
            conditions.append(TicketModel.assigned_to.in_(query.assigned_to))
        if query.created_from:
            conditions.append(TicketModel.created_at >= query.created_from)
        if query.created_to:
            conditions.append(TicketModel.created_at <= query.created_to)
        if query.search:
            pattern = f"%{query.search}%"
            conditions.append(or_(
                TicketModel.title.ilike(pattern),
                TicketModel.description.ilike(pattern),
                TicketModel.ticket_number.ilike(pattern),
            ))

        stmt = select(TicketModel)
        count_stmt = select(func.count()).select_from(TicketModel)
        if conditions:
            stmt = stmt.where(and_(*conditions))
            count_stmt = count_stmt.where(and_(*conditions))

        # Order by created_at descending
        stmt = stmt.order_by(TicketModel.created_at.desc())
        stmt = stmt.limit(query.limit).offset(query.offset)

        try:
            async with self._session_factory() as session:
                total = (await session.execute(count_stmt)).scalar_one()
                result = await session.execute(stmt)
                models = result.scalars().all()
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to list tickets", {"error": str(e)}) from e

        return [self._to_domain(model) for model in models], total

    # ========== Conversion ==========

    @staticmethod
    def _to_model(ticket: Ticket) -> TicketModel:
        dto = TicketEntityDTO.from_domain(ticket)
        documents = dto.model_dump(mode="json", include=_DOCUMENT_FIELDS)
        return TicketModel(
            id=dto.id,
            ticket_number=dto.ticket_number,
            sequence=TicketNumberSequence.parse(dto.ticket_number),
            title=dto.title,
            description=dto.description,
            department=dto.department,
            category=dto.category,
            priority=dto.priority,
            status=dto.status,
            assigned_to=dto.assigned_to,
            escalation_level=dto.escalation_level,
            created_at=dto.created_at,
            updated_at=dto.updated_at,
            first_response_at=dto.first_response_at,
            resolved_at=dto.resolved_at,
            closed_at=dto.closed_at,
            sla_policy=documents["sla_policy"],
            escalation_history=documents["escalation_history"],
            internal_notes=documents["internal_notes"],
            responses=documents["responses"],
            ticket_metadata=documents["metadata"],
        )

    @staticmethod
    def _to_domain(model: TicketModel) -> Ticket:
        return TicketEntityDTO(
            id=model.id,
            ticket_number=model.ticket_number,
            title=model.title,
            description=model.description,
            department=model.department,
            category=model.category,
            priority=model.priority,
            status=model.status,
            assigned_to=model.assigned_to,
            escalation_level=model.escalation_level,
            created_at=model.created_at,
            updated_at=model.updated_at,
            first_response_at=model.first_response_at,
            resolved_at=model.resolved_at,
            closed_at=model.closed_at,
            sla_policy=model.sla_policy,
            escalation_history=model.escalation_history or [],
            internal_notes=model.internal_notes or [],
            responses=model.responses or [],
            metadata=model.ticket_metadata or {},
        ).to_domain()


class StaticConfigProvider(ISLAConfigProvider):
    """Serves a fixed SLAConfig; used in tests and when hot reload is off."""

    def __init__(self, config: SLAConfig):
        self._config = config

    def get_config(self) -> SLAConfig:
        return self._config
