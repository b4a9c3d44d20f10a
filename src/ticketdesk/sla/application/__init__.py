"""
SLA Application Layer
======================

Application layer for the SLA and escalation module.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for creation and persistence
- Concurrency: Per-ticket locks and the ticket number sequence
- Sweep: Periodic breach detection and auto-escalation

This layer depends on the domain layer and collaborator interfaces,
but not on concrete infrastructure implementations.
"""

from ticketdesk.sla.application.concurrency import (
    TicketLockRegistry,
    TicketNumberSequence,
)
from ticketdesk.sla.application.dto import (
    TicketCreateDTO,
    TicketQueryDTO,
    TicketEntityDTO,
    SLAPolicyDTO,
    CalendarDTO,
)
from ticketdesk.sla.application.services import (
    TicketService,
    EscalationService,
    TicketPage,
    Classification,
    ITicketRepository,
    INotifier,
    IClassifier,
    ISLAConfigProvider,
)
from ticketdesk.sla.application.sweep import (
    SLABreachSweeper,
    SweepReport,
    SweepThresholds,
)

__all__ = [
    # Concurrency
    "TicketLockRegistry",
    "TicketNumberSequence",
    # DTOs
    "TicketCreateDTO",
    "TicketQueryDTO",
    "TicketEntityDTO",
    "SLAPolicyDTO",
    "CalendarDTO",
    # Services
    "TicketService",
    "EscalationService",
    "TicketPage",
    "SLABreachSweeper",
    "SweepReport",
    "SweepThresholds",
    "Classification",
    # Collaborator Interfaces
    "ITicketRepository",
    "INotifier",
    "IClassifier",
    "ISLAConfigProvider",
]
