from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from ticketdesk.config import TicketStatus
from ticketdesk.core import Clock
from ticketdesk.sla.application import (
    EscalationService,
    INotifier,
    SLABreachSweeper,
    TicketCreateDTO,
    TicketLockRegistry,
    TicketNumberSequence,
    TicketService,
)
from ticketdesk.sla.domain import (
    EscalationLevelConfig,
    SLAConfig,
    SLAPolicy,
    SLAPolicyConfig,
    Ticket,
)
from ticketdesk.sla.infrastructure import InMemoryTicketRepository, StaticConfigProvider

# Monday 09:00 UTC
T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class ManualClock(Clock):
    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class RecordingNotifier(INotifier):
    def __init__(self):
        self.escalations = []
        self.warnings = []

    async def notify_escalation(self, ticket, level, reason, recipients):
        self.escalations.append((ticket.id, level, reason, list(recipients)))

    async def notify_sla_warning(self, ticket, kind):
        self.warnings.append((ticket.id, kind))


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def sla_config():
    return SLAConfig(
        policies={"default": SLAPolicyConfig(response_time_hours=2, resolution_time_hours=24)},
        escalation_ladders={
            "default": [
                EscalationLevelConfig(level=1, escalate_to="manager"),
                EscalationLevelConfig(level=2, escalate_to="admin"),
            ]
        },
    )


@pytest.fixture
def config_provider(sla_config):
    return StaticConfigProvider(sla_config)


@pytest.fixture
def repository():
    return InMemoryTicketRepository()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def locks():
    return TicketLockRegistry()


@pytest.fixture
def escalation_service(repository, config_provider, notifier, locks, clock):
    return EscalationService(repository, config_provider, notifier, locks=locks, clock=clock)


@pytest.fixture
def ticket_service(repository, config_provider, locks, clock):
    return TicketService(
        repository, config_provider, TicketNumberSequence(), locks=locks, clock=clock
    )


@pytest.fixture
def sweeper(repository, escalation_service, notifier, clock):
    return SLABreachSweeper(repository, escalation_service, notifier, clock=clock)


@pytest.fixture
def create_ticket(ticket_service):
    async def _create(**overrides) -> Ticket:
        data = {
            "title": "Leaking tap",
            "description": "The bathroom tap in room 214 keeps leaking",
            "category": "maintenance",
            "priority": "high",
        }
        data.update(overrides)
        return await ticket_service.create_ticket(TicketCreateDTO(**data))

    return _create


@pytest.fixture
def make_ticket():
    """Build a Ticket entity directly, without a service."""

    def _make(created_at: datetime = T0, status: str = TicketStatus.OPEN, policy=None, **kwargs) -> Ticket:
        policy = policy or SLAPolicy(
            response_time=timedelta(hours=2),
            resolution_time=timedelta(hours=24),
        )
        return Ticket(
            id=kwargs.pop("id", str(uuid4())),
            ticket_number=kwargs.pop("ticket_number", "TKT-1000"),
            title="No hot water",
            description="Shower in room 214 runs cold",
            department=kwargs.pop("department", "Maintenance"),
            category="maintenance",
            priority="high",
            sla_policy=policy,
            created_at=created_at,
            updated_at=kwargs.pop("updated_at", created_at),
            status=status,
            **kwargs,
        )

    return _make
