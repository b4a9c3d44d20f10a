"""
SLA Application DTOs
=====================

Data Transfer Objects for ticket creation and persistence.

These Pydantic models handle validation of incoming data and the
serialization of domain entities for storage.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from ticketdesk.sla.domain import (
    DaySchedule,
    EscalationRecord,
    InternalNote,
    SLAPolicy,
    Ticket,
    TicketResponse,
    WorkingCalendar,
)


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["critical", "high", "medium", "low"]
TicketStatusStr = Literal[
    "open", "in_progress", "on_hold", "escalated", "resolved", "closed", "cancelled"
]
ChannelStr = Literal["email", "whatsapp", "sms", "internal"]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stores such as SQLite hand back naive datetimes; they are UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ========== Request DTOs ==========

class TicketCreateDTO(BaseModel):
    """DTO for creating a single ticket."""
    title: str = Field(..., min_length=1, description="Ticket title")
    description: str = Field(..., min_length=1, description="Guest's complaint or request")
    category: Optional[str] = Field(None, description="Category; classified from text when omitted")
    priority: Optional[PriorityStr] = Field(None, description="Priority; classified from text when omitted")
    department: Optional[str] = Field(None, description="Owning department; derived from category when omitted")
    assigned_to: Optional[str] = Field(None, description="Agent to assign")
    created_by: Optional[str] = Field(None, description="User creating the ticket")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Source data, guest details")


class TicketQueryDTO(BaseModel):
    """Filter and page parameters for listing tickets. Empty lists match everything."""
    status: List[TicketStatusStr] = Field(default_factory=list)
    category: List[str] = Field(default_factory=list)
    priority: List[PriorityStr] = Field(default_factory=list)
    department: List[str] = Field(default_factory=list)
    assigned_to: List[str] = Field(default_factory=list)
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    search: Optional[str] = Field(None, min_length=1, description="Matches title, description or ticket number")
    limit: int = Field(default=20, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)

    @field_validator("created_from", "created_to")
    @classmethod
    def ensure_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    def matches(self, ticket: Ticket) -> bool:
        """Whether ``ticket`` passes every filter."""
        if self.status and ticket.status not in self.status:
            return False
        if self.category and ticket.category not in self.category:
            return False
        if self.priority and ticket.priority not in self.priority:
            return False
        if self.department and ticket.department not in self.department:
            return False
        if self.assigned_to and ticket.assigned_to not in self.assigned_to:
            return False
        if self.created_from and ticket.created_at < self.created_from:
            return False
        if self.created_to and ticket.created_at > self.created_to:
            return False
        if self.search:
            keyword = self.search.lower()
            return any(
                keyword in field.lower()
                for field in (ticket.title, ticket.description, ticket.ticket_number)
            )
        return True


# ========== Persistence DTOs ==========

class CalendarDTO(BaseModel):
    """Working calendar as stored alongside a ticket."""
    timezone: str = "UTC"
    schedule: Dict[int, Tuple[time, time]] = Field(default_factory=dict)
    holidays: List[date] = Field(default_factory=list)

    def to_domain(self) -> WorkingCalendar:
        return WorkingCalendar(
            schedule={day: DaySchedule(start, end) for day, (start, end) in self.schedule.items()},
            holidays=frozenset(self.holidays),
            timezone=self.timezone,
        )

    @classmethod
    def from_domain(cls, calendar: WorkingCalendar) -> "CalendarDTO":
        return cls(
            timezone=calendar.timezone,
            schedule={day: (s.start, s.end) for day, s in calendar.schedule.items()},
            holidays=sorted(calendar.holidays),
        )


class SLAPolicyDTO(BaseModel):
    """Ticket's SLA policy snapshot including pause state."""
    response_time_seconds: float = Field(..., gt=0)
    resolution_time_seconds: float = Field(..., gt=0)
    calendar: CalendarDTO = Field(default_factory=CalendarDTO)
    is_paused: bool = False
    paused_at: Optional[datetime] = None
    pause_reason: Optional[str] = None
    accumulated_paused_seconds: float = Field(default=0.0, ge=0)

    def to_domain(self) -> SLAPolicy:
        return SLAPolicy(
            response_time=timedelta(seconds=self.response_time_seconds),
            resolution_time=timedelta(seconds=self.resolution_time_seconds),
            calendar=self.calendar.to_domain(),
            is_paused=self.is_paused,
            paused_at=_as_utc(self.paused_at),
            pause_reason=self.pause_reason,
            accumulated_paused=timedelta(seconds=self.accumulated_paused_seconds),
        )

    @classmethod
    def from_domain(cls, policy: SLAPolicy) -> "SLAPolicyDTO":
        return cls(
            response_time_seconds=policy.response_time.total_seconds(),
            resolution_time_seconds=policy.resolution_time.total_seconds(),
            calendar=CalendarDTO.from_domain(policy.calendar),
            is_paused=policy.is_paused,
            paused_at=policy.paused_at,
            pause_reason=policy.pause_reason,
            accumulated_paused_seconds=policy.accumulated_paused.total_seconds(),
        )


class EscalationRecordDTO(BaseModel):
    level: int = Field(..., ge=1)
    escalated_to: str
    escalated_by: str
    reason: str
    escalated_at: datetime


class InternalNoteDTO(BaseModel):
    id: str
    content: str
    added_by: str
    added_at: datetime


class TicketResponseDTO(BaseModel):
    id: str
    content: str
    sent_by: str
    sent_at: datetime
    channel: ChannelStr = "internal"
    is_automated: bool = False


class TicketEntityDTO(BaseModel):
    """
    DTO representing a ticket as passed between the application layer and storage.

    This bridges the gap between domain entities and infrastructure models.
    """
    id: str
    ticket_number: str
    title: str
    description: str
    department: str
    category: str
    priority: PriorityStr
    status: TicketStatusStr
    assigned_to: Optional[str] = None
    escalation_level: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    sla_policy: SLAPolicyDTO
    escalation_history: List[EscalationRecordDTO] = Field(default_factory=list)
    internal_notes: List[InternalNoteDTO] = Field(default_factory=list)
    responses: List[TicketResponseDTO] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator(
        "created_at", "updated_at", "first_response_at", "resolved_at", "closed_at"
    )
    @classmethod
    def ensure_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Treat naive timestamps from storage as UTC."""
        return _as_utc(v)

    def to_domain(self) -> Ticket:
        """Convert to domain entity."""
        return Ticket(
            id=self.id,
            ticket_number=self.ticket_number,
            title=self.title,
            description=self.description,
            department=self.department,
            category=self.category,
            priority=self.priority,
            sla_policy=self.sla_policy.to_domain(),
            created_at=self.created_at,
            updated_at=self.updated_at,
            status=self.status,
            assigned_to=self.assigned_to,
            escalation_level=self.escalation_level,
            escalation_history=tuple(
                EscalationRecord(**record.model_dump()) for record in self.escalation_history
            ),
            first_response_at=self.first_response_at,
            resolved_at=self.resolved_at,
            closed_at=self.closed_at,
            internal_notes=[InternalNote(**note.model_dump()) for note in self.internal_notes],
            responses=[TicketResponse(**response.model_dump()) for response in self.responses],
            metadata=dict(self.metadata),
        )

    @classmethod
    def from_domain(cls, ticket: Ticket) -> "TicketEntityDTO":
        """Create from domain entity."""
        return cls(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            title=ticket.title,
            description=ticket.description,
            department=ticket.department,
            category=ticket.category,
            priority=ticket.priority,
            status=ticket.status,
            assigned_to=ticket.assigned_to,
            escalation_level=ticket.escalation_level,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            first_response_at=ticket.first_response_at,
            resolved_at=ticket.resolved_at,
            closed_at=ticket.closed_at,
            sla_policy=SLAPolicyDTO.from_domain(ticket.sla_policy),
            escalation_history=[
                EscalationRecordDTO(
                    level=r.level,
                    escalated_to=r.escalated_to,
                    escalated_by=r.escalated_by,
                    reason=r.reason,
                    escalated_at=r.escalated_at,
                )
                for r in ticket.escalation_history
            ],
            internal_notes=[
                InternalNoteDTO(id=n.id, content=n.content, added_by=n.added_by, added_at=n.added_at)
                for n in ticket.internal_notes
            ],
            responses=[
                TicketResponseDTO(
                    id=r.id,
                    content=r.content,
                    sent_by=r.sent_by,
                    sent_at=r.sent_at,
                    channel=r.channel,
                    is_automated=r.is_automated,
                )
                for r in ticket.responses
            ],
            metadata=dict(ticket.metadata),
        )
