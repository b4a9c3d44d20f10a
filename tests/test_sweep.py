from __future__ import annotations

from datetime import timedelta

import pytest

from ticketdesk.config import AUTO_ESCALATION_REASON, SYSTEM_ACTOR, TicketStatus
from ticketdesk.core import RepositoryException
from ticketdesk.sla.application import EscalationService, SLABreachSweeper, SweepThresholds
from ticketdesk.sla.domain import SLACalculator
from ticketdesk.sla.infrastructure import InMemoryTicketRepository

from tests.conftest import RecordingNotifier


@pytest.mark.asyncio
async def test_breached_ticket_is_escalated_and_warned(create_ticket, sweeper, repository, notifier, clock):
    ticket = await create_ticket()
    clock.advance(hours=25)

    report = await sweeper.sweep()

    assert report.escalated == [ticket.id]
    assert report.evaluated == 1
    assert notifier.escalations == [(ticket.id, 1, AUTO_ESCALATION_REASON, ["manager"])]
    assert (ticket.id, "resolution") in notifier.warnings
    stored = await repository.get(ticket.id)
    assert stored.escalation_level == 1
    assert stored.status == TicketStatus.ESCALATED
    assert stored.escalation_history[0].escalated_by == SYSTEM_ACTOR
    status = SLACalculator.compute_deadlines(stored, stored.sla_policy, clock.now())
    assert not status.is_within_resolution_sla


@pytest.mark.asyncio
async def test_second_sweep_does_not_escalate_again(create_ticket, sweeper, repository, clock):
    ticket = await create_ticket()
    clock.advance(hours=23, minutes=30)

    first = await sweeper.sweep()
    second = await sweeper.sweep()

    assert first.escalated == [ticket.id]
    assert second.escalated == []
    stored = await repository.get(ticket.id)
    assert stored.escalation_level == 1
    assert len(stored.escalation_history) == 1


@pytest.mark.asyncio
async def test_renewed_risk_after_agent_picks_up_escalates_again(
    create_ticket, sweeper, ticket_service, repository, clock
):
    ticket = await create_ticket()
    clock.advance(hours=23, minutes=30)
    await sweeper.sweep()

    await ticket_service.change_status(ticket.id, TicketStatus.IN_PROGRESS, "manager")
    clock.advance(minutes=10)
    report = await sweeper.sweep()

    assert report.escalated == [ticket.id]
    stored = await repository.get(ticket.id)
    assert stored.escalation_level == 2
    assert stored.assigned_to == "admin"


@pytest.mark.asyncio
async def test_exhausted_ladder_is_logged_and_skipped(
    create_ticket, sweeper, escalation_service, ticket_service, repository, clock
):
    ticket = await create_ticket()
    await escalation_service.escalate(ticket.id, "agent-7", "first")
    await escalation_service.escalate(ticket.id, "agent-7", "second")
    await ticket_service.change_status(ticket.id, TicketStatus.IN_PROGRESS, "admin")
    other = await create_ticket(title="Cold soup")
    clock.advance(hours=25)

    report = await sweeper.sweep()

    assert report.failures == []
    assert report.escalated == [other.id]
    stored = await repository.get(ticket.id)
    assert stored.escalation_level == 2
    assert stored.status == TicketStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_no_action_while_comfortably_within_sla(create_ticket, sweeper, notifier, clock):
    await create_ticket()
    clock.advance(hours=1)

    report = await sweeper.sweep()

    assert report.escalated == []
    assert report.warnings == []
    assert notifier.escalations == []


@pytest.mark.asyncio
async def test_response_warning_only_until_first_response(create_ticket, sweeper, ticket_service, notifier, clock):
    ticket = await create_ticket()
    clock.advance(hours=1, minutes=45)

    await sweeper.sweep()
    assert notifier.warnings == [(ticket.id, "response")]

    await ticket_service.record_response(ticket.id, "A technician is on the way", "agent-7")
    await sweeper.sweep()
    assert notifier.warnings == [(ticket.id, "response")]


@pytest.mark.asyncio
async def test_resolved_and_paused_tickets_are_left_alone(create_ticket, sweeper, ticket_service, notifier, clock):
    resolved = await create_ticket()
    paused = await create_ticket(title="Lost luggage")
    await ticket_service.resolve(resolved.id, "agent-7")
    await ticket_service.pause_sla(paused.id, "agent-7", "waiting for airline")
    clock.advance(hours=30)

    report = await sweeper.sweep()

    assert report.evaluated == 2
    assert report.escalated == []
    assert notifier.warnings == []


@pytest.mark.asyncio
async def test_one_failing_ticket_does_not_abort_sweep(config_provider, notifier, locks, clock, create_ticket, repository):
    class FlakyRepository(InMemoryTicketRepository):
        def __init__(self, source, broken_id):
            super().__init__()
            self._tickets = source._tickets
            self.broken_id = broken_id

        async def save(self, ticket):
            if ticket.id == self.broken_id:
                raise RepositoryException("disk full")
            return await super().save(ticket)

    broken = await create_ticket(title="Broken")
    healthy = await create_ticket(title="Healthy")
    flaky = FlakyRepository(repository, broken.id)
    escalation = EscalationService(flaky, config_provider, notifier, locks=locks, clock=clock)
    sweeper = SLABreachSweeper(flaky, escalation, notifier, clock=clock)
    clock.advance(hours=25)

    report = await sweeper.sweep()

    assert report.failures == [broken.id]
    assert report.escalated == [healthy.id]
    assert report.evaluated == 2
    assert (await flaky.get(broken.id)).escalation_level == 0


@pytest.mark.asyncio
async def test_escalation_rechecked_on_fresh_read(config_provider, notifier, locks, clock, create_ticket, repository, ticket_service):
    class ResolvesAfterListing(InMemoryTicketRepository):
        """Simulates an agent resolving tickets right after the sweep listed them."""

        def __init__(self, source):
            super().__init__()
            self._tickets = source._tickets

        async def list_non_terminal(self):
            tickets = await super().list_non_terminal()
            for ticket in tickets:
                await ticket_service.resolve(ticket.id, "agent-7")
            return tickets

    ticket = await create_ticket()
    racing = ResolvesAfterListing(repository)
    escalation = EscalationService(racing, config_provider, notifier, locks=locks, clock=clock)
    sweeper = SLABreachSweeper(racing, escalation, notifier, clock=clock)
    clock.advance(hours=25)

    report = await sweeper.sweep()

    assert report.escalated == []
    assert notifier.escalations == []
    stored = await repository.get(ticket.id)
    assert stored.status == TicketStatus.RESOLVED
    assert stored.escalation_level == 0


@pytest.mark.asyncio
async def test_stop_requested_before_sweep_does_nothing(create_ticket, sweeper, notifier, clock):
    await create_ticket()
    clock.advance(hours=25)
    sweeper.request_stop()

    report = await sweeper.sweep()

    assert report.stopped_early
    assert report.evaluated == 0
    assert notifier.escalations == []


@pytest.mark.asyncio
async def test_stop_mid_sweep_finishes_current_ticket(repository, escalation_service, clock, create_ticket):
    class StoppingNotifier(RecordingNotifier):
        sweeper = None

        async def notify_sla_warning(self, ticket, kind):
            await super().notify_sla_warning(ticket, kind)
            self.sweeper.request_stop()

    notifier = StoppingNotifier()
    sweeper = SLABreachSweeper(repository, escalation_service, notifier, clock=clock)
    notifier.sweeper = sweeper
    first = await create_ticket(title="First")
    await create_ticket(title="Second")
    clock.advance(hours=25)

    report = await sweeper.sweep()

    assert report.stopped_early
    assert report.evaluated == 1
    assert report.skipped == 1
    assert report.escalated == [first.id]
    # both warnings for the ticket in flight still went out
    assert [kind for _, kind in notifier.warnings] == ["response", "resolution"]


@pytest.mark.asyncio
async def test_custom_thresholds(create_ticket, repository, escalation_service, notifier, clock):
    sweeper = SLABreachSweeper(
        repository,
        escalation_service,
        notifier,
        clock=clock,
        thresholds=SweepThresholds(escalation=timedelta(hours=6), resolution_warning=timedelta(hours=8)),
    )
    ticket = await create_ticket()
    clock.advance(hours=18)

    report = await sweeper.sweep()

    assert report.escalated == [ticket.id]
    assert report.to_dict()["tickets_escalated"] == 1
