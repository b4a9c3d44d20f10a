"""
Ticket State Machine
====================

Owns the ticket status field. Every status change, including the one made
by escalation, is validated against TRANSITIONS before anything is touched.
"""

from datetime import datetime
from typing import Dict, FrozenSet, Optional

from ticketdesk.config import TicketStatus
from ticketdesk.core import InvalidTransitionException
from ticketdesk.sla.domain.entities import Ticket


TRANSITIONS: Dict[str, FrozenSet[str]] = {
    TicketStatus.OPEN: frozenset({
        TicketStatus.IN_PROGRESS, TicketStatus.ESCALATED,
        TicketStatus.RESOLVED, TicketStatus.CANCELLED,
    }),
    TicketStatus.IN_PROGRESS: frozenset({
        TicketStatus.ON_HOLD, TicketStatus.ESCALATED,
        TicketStatus.RESOLVED, TicketStatus.CANCELLED,
    }),
    TicketStatus.ON_HOLD: frozenset({
        TicketStatus.IN_PROGRESS, TicketStatus.ESCALATED, TicketStatus.CANCELLED,
    }),
    # ESCALATED -> ESCALATED is the next ladder level
    TicketStatus.ESCALATED: frozenset({
        TicketStatus.IN_PROGRESS, TicketStatus.ESCALATED,
        TicketStatus.RESOLVED, TicketStatus.CANCELLED,
    }),
    TicketStatus.RESOLVED: frozenset({
        TicketStatus.CLOSED, TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED,
    }),
    TicketStatus.CLOSED: frozenset(),
    TicketStatus.CANCELLED: frozenset(),
}

INITIAL_STATUS = TicketStatus.OPEN

CLOCK_STOPPING_STATUSES = frozenset({
    TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED,
})


class TicketStateMachine:
    """Validates and applies ticket status transitions."""

    def __init__(self, transitions: Optional[Dict[str, FrozenSet[str]]] = None):
        self._transitions = transitions or TRANSITIONS

    def can_transition(self, current: str, target: str) -> bool:
        return target in self._transitions.get(current, frozenset())

    def assert_transition(self, ticket: Ticket, target: str) -> None:
        if not self.can_transition(ticket.status, target):
            raise InvalidTransitionException(ticket.id, ticket.status, target)

    def allowed_targets(self, current: str) -> FrozenSet[str]:
        return self._transitions.get(current, frozenset())

    def transition(
        self,
        ticket: Ticket,
        target: str,
        actor: str,
        reason: Optional[str],
        at: datetime
    ) -> Ticket:
        """
        Move ``ticket`` to ``target`` and record an audit note.

        Raises:
            InvalidTransitionException: target not reachable from the
                current status. The ticket is left untouched.
        """
        self.assert_transition(ticket, target)

        previous = ticket.status
        ticket.status = target

        if target in CLOCK_STOPPING_STATUSES and ticket.sla_policy.is_paused:
            # Resolution stops the SLA clocks; a pause cannot outlive them
            ticket.sla_policy.resume(at)

        if target == TicketStatus.RESOLVED:
            ticket.resolved_at = at
        elif target == TicketStatus.CLOSED:
            ticket.closed_at = at
        elif previous == TicketStatus.RESOLVED:
            # Reopened or cancelled after resolution
            ticket.resolved_at = None

        ticket.updated_at = max(ticket.updated_at, at)

        note = f"Status changed from {previous} to {target}"
        if reason:
            note += f": {reason}"
        ticket.add_note(note, actor, at)

        return ticket
