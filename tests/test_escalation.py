from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from ticketdesk.config import TicketStatus
from ticketdesk.core import (
    InvalidTransitionException,
    MaxEscalationLevelReachedException,
    NotificationDispatchException,
    TicketNotFoundException,
)
from ticketdesk.sla.application import EscalationService
from ticketdesk.sla.domain import EscalationLevelConfig, SLAConfig, SLAPolicyConfig
from ticketdesk.sla.infrastructure import StaticConfigProvider


@pytest.mark.asyncio
async def test_escalate_moves_ticket_up_one_level(create_ticket, escalation_service, repository, notifier, clock):
    ticket = await create_ticket()

    escalated = await escalation_service.escalate(ticket.id, "agent-7", "Guest threatening to leave")

    assert escalated.escalation_level == 1
    assert escalated.status == TicketStatus.ESCALATED
    assert escalated.assigned_to == "manager"
    record = escalated.escalation_history[-1]
    assert record.level == 1
    assert record.escalated_to == "manager"
    assert record.escalated_by == "agent-7"
    assert record.reason == "Guest threatening to leave"
    assert record.escalated_at == clock.now()
    assert escalated.internal_notes[-1].content.endswith(
        "Escalated to level 1 (manager): Guest threatening to leave"
    )

    stored = await repository.get(ticket.id)
    assert stored.escalation_level == 1
    assert notifier.escalations == [(ticket.id, 1, "Guest threatening to leave", ["manager"])]


@pytest.mark.asyncio
async def test_escalating_escalated_ticket_reaches_next_level(create_ticket, escalation_service):
    ticket = await create_ticket()
    await escalation_service.escalate(ticket.id, "agent-7", "first")
    second = await escalation_service.escalate(ticket.id, "manager", "second")

    assert second.escalation_level == 2
    assert second.assigned_to == "admin"
    assert [r.level for r in second.escalation_history] == [1, 2]


@pytest.mark.asyncio
async def test_top_of_ladder_fails_and_leaves_ticket_unchanged(create_ticket, escalation_service, repository):
    ticket = await create_ticket()
    await escalation_service.escalate(ticket.id, "agent-7", "first")
    await escalation_service.escalate(ticket.id, "agent-7", "second")
    before = await repository.get(ticket.id)

    with pytest.raises(MaxEscalationLevelReachedException) as exc_info:
        await escalation_service.escalate(ticket.id, "agent-7", "third")

    assert exc_info.value.code == "max_escalation_level_reached"
    assert exc_info.value.current_level == 2
    assert exc_info.value.ladder_length == 2
    after = await repository.get(ticket.id)
    assert after.escalation_level == 2
    assert after.status == before.status
    assert after.escalation_history == before.escalation_history
    assert len(after.internal_notes) == len(before.internal_notes)


@pytest.mark.asyncio
async def test_notification_failure_does_not_roll_back(create_ticket, repository, config_provider, locks, clock):
    failing = AsyncMock()
    failing.notify_escalation.side_effect = NotificationDispatchException("slack", "webhook down")
    service = EscalationService(repository, config_provider, failing, locks=locks, clock=clock)
    ticket = await create_ticket()

    escalated = await service.escalate(ticket.id, "agent-7", "no answer from housekeeping")

    failing.notify_escalation.assert_awaited_once()
    assert escalated.escalation_level == 1
    stored = await repository.get(ticket.id)
    assert stored.escalation_level == 1
    assert stored.status == TicketStatus.ESCALATED


@pytest.mark.asyncio
async def test_terminal_ticket_cannot_be_escalated(create_ticket, ticket_service, escalation_service, repository):
    ticket = await create_ticket()
    await ticket_service.resolve(ticket.id, "agent-7")
    await ticket_service.close(ticket.id, "agent-7")

    with pytest.raises(InvalidTransitionException):
        await escalation_service.escalate(ticket.id, "agent-7", "too late")

    stored = await repository.get(ticket.id)
    assert stored.escalation_level == 0
    assert stored.status == TicketStatus.CLOSED


@pytest.mark.asyncio
async def test_unknown_ticket(escalation_service):
    with pytest.raises(TicketNotFoundException) as exc_info:
        await escalation_service.escalate("does-not-exist", "agent-7", "why")
    assert exc_info.value.code == "unknown_ticket"


@pytest.mark.asyncio
async def test_department_ladder_and_extra_recipients(create_ticket, repository, notifier, locks, clock):
    config = SLAConfig(
        policies={"default": SLAPolicyConfig(response_time_hours=2, resolution_time_hours=24)},
        escalation_ladders={
            "Maintenance": [
                EscalationLevelConfig(level=1, escalate_to="chief-engineer", notify=["#maintenance"]),
            ]
        },
    )
    service = EscalationService(repository, StaticConfigProvider(config), notifier, locks=locks, clock=clock)
    ticket = await create_ticket()

    escalated = await service.escalate(ticket.id, "agent-7", "boiler failure")

    assert escalated.assigned_to == "chief-engineer"
    assert notifier.escalations[-1][3] == ["chief-engineer", "#maintenance"]
    with pytest.raises(MaxEscalationLevelReachedException):
        await service.escalate(ticket.id, "agent-7", "still broken")


@pytest.mark.asyncio
async def test_escalation_level_never_decreases(create_ticket, ticket_service, escalation_service, repository):
    ticket = await create_ticket()
    levels = []

    await escalation_service.escalate(ticket.id, "agent-7", "first")
    levels.append((await repository.get(ticket.id)).escalation_level)
    await ticket_service.change_status(ticket.id, TicketStatus.IN_PROGRESS, "manager")
    levels.append((await repository.get(ticket.id)).escalation_level)
    await escalation_service.escalate(ticket.id, "agent-7", "second")
    levels.append((await repository.get(ticket.id)).escalation_level)
    await ticket_service.resolve(ticket.id, "admin")
    await ticket_service.change_status(ticket.id, TicketStatus.IN_PROGRESS, "admin", "reopened")
    levels.append((await repository.get(ticket.id)).escalation_level)

    assert levels == [1, 1, 2, 2]
