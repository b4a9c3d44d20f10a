"""
SLA Domain Layer
================

Domain layer for the SLA and escalation module.

Contains:
- Entities: Core business objects with identity (Ticket, SLAPolicy)
- Value Objects: Immutable objects defined by attributes (SLAStatus,
  EscalationLadder, WorkingCalendar, configuration models)
- Domain Services: Stateless business logic (SLACalculator, TicketStateMachine)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from ticketdesk.sla.domain.calendar import (
    DaySchedule,
    WorkingCalendar,
    build_calendar,
)
from ticketdesk.sla.domain.entities import (
    Ticket,
    SLAPolicy,
    EscalationRecord,
    InternalNote,
    TicketResponse,
)
from ticketdesk.sla.domain.state_machine import (
    TicketStateMachine,
    TRANSITIONS,
    INITIAL_STATUS,
)
from ticketdesk.sla.domain.value_objects import (
    SLACalculator,
    SLAStatus,
    EscalationStep,
    EscalationLadder,
    SLAConfig,
    SLAPolicyConfig,
    EscalationLevelConfig,
    WorkingHoursConfig,
    DEFAULT_SLA_POLICY,
    DEFAULT_ESCALATION_LEVELS,
)

__all__ = [
    # Calendar
    "DaySchedule",
    "WorkingCalendar",
    "build_calendar",
    # Entities
    "Ticket",
    "SLAPolicy",
    "EscalationRecord",
    "InternalNote",
    "TicketResponse",
    # State machine
    "TicketStateMachine",
    "TRANSITIONS",
    "INITIAL_STATUS",
    # Value Objects & Services
    "SLACalculator",
    "SLAStatus",
    "EscalationStep",
    "EscalationLadder",
    "SLAConfig",
    "SLAPolicyConfig",
    "EscalationLevelConfig",
    "WorkingHoursConfig",
    "DEFAULT_SLA_POLICY",
    "DEFAULT_ESCALATION_LEVELS",
]
