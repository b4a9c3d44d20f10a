"""
SLA Domain Entities
====================

Pure Python domain entities for ticket SLA tracking and escalation.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from ticketdesk.config import TicketStatus, TERMINAL_STATUSES
from ticketdesk.core import SLAPauseException, TicketClosedException
from ticketdesk.sla.domain.calendar import WorkingCalendar, ZERO


@dataclass
class SLAPolicy:
    """
    Response/resolution budgets for a ticket plus its pause state.

    Tickets carry a copy taken at creation time, so later edits to the
    department policy never move deadlines of existing tickets.
    """

    response_time: timedelta
    resolution_time: timedelta
    calendar: WorkingCalendar = field(default_factory=WorkingCalendar.naive)

    # Pause tracking
    is_paused: bool = False
    paused_at: Optional[datetime] = None
    pause_reason: Optional[str] = None
    accumulated_paused: timedelta = ZERO

    def __post_init__(self):
        """Validate policy on initialization."""
        if self.response_time <= ZERO or self.resolution_time <= ZERO:
            raise ValueError("SLA budgets must be positive")

        if self.is_paused and self.paused_at is None:
            raise ValueError("paused policy must record paused_at")

        if self.accumulated_paused < ZERO:
            raise ValueError("accumulated_paused cannot be negative")

    def pause(self, at: datetime, reason: Optional[str] = None) -> None:
        """Stop the SLA clock."""
        if self.is_paused:
            raise SLAPauseException("SLA is already paused", {"paused_at": self.paused_at})
        self.is_paused = True
        self.paused_at = at
        self.pause_reason = reason

    def resume(self, at: datetime) -> timedelta:
        """Restart the SLA clock and return how long it was stopped."""
        if not self.is_paused:
            raise SLAPauseException("SLA is not paused")
        paused_for = max(ZERO, at - self.paused_at)
        self.accumulated_paused += paused_for
        self.is_paused = False
        self.paused_at = None
        self.pause_reason = None
        return paused_for

    def paused_duration(self, now: datetime) -> timedelta:
        """Total stopped time, including a pause that is still open at ``now``."""
        total = self.accumulated_paused
        if self.is_paused and self.paused_at is not None:
            total += max(ZERO, now - self.paused_at)
        return total

    def snapshot(self) -> "SLAPolicy":
        """Fresh copy with the budgets and calendar but no pause history."""
        return SLAPolicy(
            response_time=self.response_time,
            resolution_time=self.resolution_time,
            calendar=self.calendar,
        )


@dataclass(frozen=True)
class EscalationRecord:
    """One step up the escalation ladder. Immutable once appended."""

    level: int
    escalated_to: str
    escalated_by: str
    reason: str
    escalated_at: datetime


@dataclass(frozen=True)
class InternalNote:
    """Audit note attached to a ticket."""

    content: str
    added_by: str
    added_at: datetime
    id: str = field(default_factory=lambda: str(uuid4()))


@dataclass(frozen=True)
class TicketResponse:
    """A response sent to the guest (or recorded internally)."""

    content: str
    sent_by: str
    sent_at: datetime
    channel: str = "internal"
    is_automated: bool = False
    id: str = field(default_factory=lambda: str(uuid4()))


@dataclass
class Ticket:
    """
    Ticket entity representing a guest complaint or service request.

    Status changes go through TicketStateMachine; escalation goes through
    the escalation service. This entity only guards its own invariants.
    """

    # Core attributes
    id: str
    ticket_number: str
    title: str
    description: str
    department: str
    category: str
    priority: str
    sla_policy: SLAPolicy

    # Timestamps
    created_at: datetime
    updated_at: datetime

    status: str = TicketStatus.OPEN
    assigned_to: Optional[str] = None

    # Escalation
    escalation_level: int = 0
    escalation_history: Tuple[EscalationRecord, ...] = ()

    # Optional SLA tracking fields
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    internal_notes: List[InternalNote] = field(default_factory=list)
    responses: List[TicketResponse] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate ticket on initialization."""
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")

        if self.first_response_at and self.first_response_at < self.created_at:
            raise ValueError("first_response_at cannot be before created_at")

        if self.resolved_at and self.resolved_at < self.created_at:
            raise ValueError("resolved_at cannot be before created_at")

        if self.escalation_level < 0:
            raise ValueError("escalation_level cannot be negative")

        if self.escalation_level != len(self.escalation_history):
            raise ValueError("escalation_level must match escalation history length")

        self.escalation_history = tuple(self.escalation_history)

    @property
    def is_terminal(self) -> bool:
        """Closed and cancelled tickets no longer change."""
        return self.status in TERMINAL_STATUSES

    @property
    def is_resolved(self) -> bool:
        """Check if ticket has been resolved."""
        return self.status in (TicketStatus.RESOLVED, TicketStatus.CLOSED)

    @property
    def is_escalated(self) -> bool:
        """Escalated and not yet picked back up by an agent."""
        return self.status == TicketStatus.ESCALATED

    @property
    def has_response(self) -> bool:
        return self.first_response_at is not None

    def ensure_mutable(self) -> None:
        if self.is_terminal:
            raise TicketClosedException(self.id, self.status)

    def add_note(self, content: str, added_by: str, at: datetime) -> InternalNote:
        """Append an audit note. Allowed on terminal tickets."""
        note = InternalNote(content=content, added_by=added_by, added_at=at)
        self.internal_notes.append(note)
        self.updated_at = max(self.updated_at, at)
        return note

    def add_response(
        self,
        content: str,
        sent_by: str,
        at: datetime,
        channel: str = "internal",
        is_automated: bool = False
    ) -> TicketResponse:
        """Record a response; the first one stops the response SLA clock."""
        self.ensure_mutable()
        response = TicketResponse(
            content=content,
            sent_by=sent_by,
            sent_at=at,
            channel=channel,
            is_automated=is_automated,
        )
        self.responses.append(response)
        if self.first_response_at is None:
            self.first_response_at = at
        self.updated_at = max(self.updated_at, at)
        return response

    def append_escalation(self, record: EscalationRecord) -> None:
        """Append-only; level must be exactly one above the current one."""
        if record.level != self.escalation_level + 1:
            raise ValueError(
                f"escalation record level {record.level} does not follow {self.escalation_level}"
            )
        self.escalation_history = self.escalation_history + (record,)
        self.escalation_level = record.level

    def copy(self) -> "Ticket":
        """Independent copy for read-modify-write."""
        return replace(
            self,
            sla_policy=replace(self.sla_policy),
            internal_notes=list(self.internal_notes),
            responses=list(self.responses),
            metadata=dict(self.metadata),
        )
