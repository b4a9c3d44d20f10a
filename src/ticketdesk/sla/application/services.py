"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories, notifier,
  clock), not concrete implementations

Every mutation is a read-modify-write under the ticket's lock: the ticket is
loaded, changed on a private copy, and saved as a full replace. A failure
before the save leaves the stored ticket exactly as it was.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple
from uuid import uuid4

from ticketdesk.config import (
    Priority, TicketCategory, TicketStatus, SYSTEM_ACTOR
)
from ticketdesk.core import (
    Clock,
    MaxEscalationLevelReachedException,
    PolicyNotConfiguredException,
    SystemClock,
    ValidationException,
)
from ticketdesk.shared.infrastructure.logging import get_logger
from ticketdesk.sla.application.concurrency import TicketLockRegistry, TicketNumberSequence
from ticketdesk.sla.application.dto import TicketCreateDTO, TicketQueryDTO
from ticketdesk.sla.domain import (
    DEFAULT_SLA_POLICY,
    EscalationLadder,
    EscalationRecord,
    EscalationStep,
    InternalNote,
    SLACalculator,
    SLAConfig,
    SLAPolicy,
    SLAStatus,
    Ticket,
    TicketResponse,
    TicketStateMachine,
)

logger = get_logger(__name__)


# ========== Collaborator Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Key-value style ticket storage. ``save`` is a full replace keyed by id."""

    @abstractmethod
    async def get(self, ticket_id: str) -> Ticket:
        """
        Get ticket by id.

        Raises:
            TicketNotFoundException: no ticket with that id.
        """

    @abstractmethod
    async def save(self, ticket: Ticket) -> Ticket:
        """Insert or fully replace the ticket."""

    @abstractmethod
    async def list_non_terminal(self) -> List[Ticket]:
        """All tickets whose status is neither closed nor cancelled."""

    @abstractmethod
    async def max_ticket_number(self) -> int:
        """Highest numeric ticket number stored, 0 when empty."""

    @abstractmethod
    async def list_tickets(self, query: TicketQueryDTO) -> Tuple[List[Ticket], int]:
        """
        One page of tickets matching ``query``, newest first.

        Returns the page and the total number of matches.
        """


class INotifier(ABC):
    """Fire-and-forget notification delivery."""

    @abstractmethod
    async def notify_escalation(
        self,
        ticket: Ticket,
        level: int,
        reason: str,
        recipients: List[str]
    ) -> None:
        """Tell the new responsible party a ticket was escalated to them."""

    @abstractmethod
    async def notify_sla_warning(self, ticket: Ticket, kind: str) -> None:
        """Warn that the ``response`` or ``resolution`` deadline is close."""


@dataclass(frozen=True)
class TicketPage:
    """One page of a ticket listing."""
    tickets: List[Ticket]
    total: int
    limit: int
    offset: int

    @property
    def pages(self) -> int:
        return -(-self.total // self.limit)


@dataclass(frozen=True)
class Classification:
    """Classifier output used to pick the department and its policy."""
    category: str
    priority: str


class IClassifier(ABC):
    """Infers category and priority from free text."""

    @abstractmethod
    def classify(self, text: str) -> Classification:
        """Classify a ticket description."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""

    def policy_for(self, department: str) -> SLAPolicy:
        """Department policy, falling back to DEFAULT_SLA_POLICY when none is configured."""
        try:
            return self.get_config().get_policy(department)
        except PolicyNotConfiguredException:
            logger.warning(
                "No SLA policy configured, using default policy",
                extra={
                    "department": department,
                    "response_time_hours": DEFAULT_SLA_POLICY.response_time_hours,
                    "resolution_time_hours": DEFAULT_SLA_POLICY.resolution_time_hours,
                }
            )
            return DEFAULT_SLA_POLICY.to_domain()

    def ladder_for(self, department: str) -> EscalationLadder:
        return self.get_config().get_ladder(department)

    def department_for(self, category: str) -> str:
        return self.get_config().get_department(category)

    def default_agent_for(self, department: str) -> Optional[str]:
        return self.get_config().get_default_agent(department)


# ========== Application Services ==========

class _TicketMutator:
    """Shared read-modify-write plumbing."""

    def __init__(
        self,
        repository: ITicketRepository,
        locks: TicketLockRegistry,
        clock: Clock
    ):
        self._repo = repository
        self._locks = locks
        self._clock = clock

    @property
    def locks(self) -> TicketLockRegistry:
        return self._locks

    async def _mutate(
        self,
        ticket_id: str,
        change: Callable[[Ticket, datetime], Optional[bool]]
    ) -> Optional[Ticket]:
        """
        Apply ``change`` to a fresh copy of the ticket and save it.

        ``change`` may return False to abandon the write, in which case
        nothing is saved and None is returned.
        """
        async with self._locks.hold(ticket_id):
            current = await self._repo.get(ticket_id)
            working = current.copy()
            if change(working, self._clock.now()) is False:
                return None
            return await self._repo.save(working)


class EscalationService(_TicketMutator):
    """
    Moves tickets up their department's escalation ladder.

    The escalation is committed before any notification is attempted and is
    never rolled back because delivery failed: what matters is that the
    responsible party changed.
    """

    def __init__(
        self,
        repository: ITicketRepository,
        config_provider: ISLAConfigProvider,
        notifier: INotifier,
        locks: Optional[TicketLockRegistry] = None,
        clock: Optional[Clock] = None,
        state_machine: Optional[TicketStateMachine] = None
    ):
        super().__init__(
            repository,
            locks if locks is not None else TicketLockRegistry(),
            clock or SystemClock()
        )
        self._config_provider = config_provider
        self._notifier = notifier
        self._state_machine = state_machine or TicketStateMachine()

    async def escalate(self, ticket_id: str, actor: str, reason: str) -> Ticket:
        """
        Escalate a ticket one level.

        Raises:
            TicketNotFoundException: unknown ticket id.
            InvalidTransitionException: ticket is closed or cancelled.
            MaxEscalationLevelReachedException: already at the top of the ladder.
        """
        return await self.escalate_if(ticket_id, actor, reason, lambda _: True)

    async def escalate_if(
        self,
        ticket_id: str,
        actor: str,
        reason: str,
        should_escalate: Callable[[Ticket], bool]
    ) -> Optional[Ticket]:
        """
        Escalate only if ``should_escalate`` holds for the ticket as read under its lock.

        Returns None when the predicate rejects the fresh ticket.
        """
        applied: List[Tuple[EscalationRecord, EscalationStep]] = []

        def change(ticket: Ticket, now: datetime) -> bool:
            if not should_escalate(ticket):
                return False
            applied.append(self.apply(ticket, actor, reason, now))
            return True

        saved = await self._mutate(ticket_id, change)
        if saved is None:
            return None

        record, step = applied[0]
        logger.info(
            "Ticket escalated",
            extra={
                "ticket_id": saved.id,
                "ticket_number": saved.ticket_number,
                "level": record.level,
                "escalated_to": record.escalated_to,
                "escalated_by": record.escalated_by,
            }
        )
        await self._dispatch(saved, record, step)
        return saved

    def apply(
        self,
        ticket: Ticket,
        actor: str,
        reason: str,
        at: datetime
    ) -> Tuple[EscalationRecord, EscalationStep]:
        """Escalate ``ticket`` in place; raises before touching it if not allowed."""
        self._state_machine.assert_transition(ticket, TicketStatus.ESCALATED)

        ladder = self._config_provider.ladder_for(ticket.department)
        step = ladder.next_step(ticket.escalation_level)
        if step is None:
            raise MaxEscalationLevelReachedException(
                ticket.id, ticket.escalation_level, len(ladder)
            )

        record = EscalationRecord(
            level=step.level,
            escalated_to=step.escalate_to,
            escalated_by=actor,
            reason=reason,
            escalated_at=at,
        )
        self._state_machine.transition(
            ticket, TicketStatus.ESCALATED, actor,
            f"Escalated to level {step.level} ({step.escalate_to}): {reason}", at
        )
        ticket.append_escalation(record)
        ticket.assigned_to = step.escalate_to
        return record, step

    async def _dispatch(self, ticket: Ticket, record: EscalationRecord, step: EscalationStep) -> None:
        try:
            await self._notifier.notify_escalation(ticket, record.level, record.reason, step.recipients)
        except Exception as e:
            logger.error(
                "Escalation notification failed",
                extra={"ticket_id": ticket.id, "level": record.level, "error": str(e)}
            )


class TicketService(_TicketMutator):
    """
    Ticket lifecycle operations used by agents and the API layer.

    Status changes always go through the state machine; escalation is
    delegated to EscalationService.
    """

    def __init__(
        self,
        repository: ITicketRepository,
        config_provider: ISLAConfigProvider,
        sequence: TicketNumberSequence,
        classifier: Optional[IClassifier] = None,
        locks: Optional[TicketLockRegistry] = None,
        clock: Optional[Clock] = None,
        state_machine: Optional[TicketStateMachine] = None
    ):
        super().__init__(
            repository,
            locks if locks is not None else TicketLockRegistry(),
            clock or SystemClock()
        )
        self._config_provider = config_provider
        self._sequence = sequence
        self._classifier = classifier
        self._state_machine = state_machine or TicketStateMachine()

    # ----- creation -----

    async def create_ticket(self, data: TicketCreateDTO) -> Ticket:
        """
        Create a ticket in OPEN with a snapshot of its department's SLA policy.

        Category and priority come from the classifier when not supplied.
        """
        category = data.category
        priority = data.priority
        if (category is None or priority is None) and self._classifier is not None:
            classification = self._classifier.classify(f"{data.title}\n{data.description}")
            category = category or classification.category
            priority = priority or classification.priority
        category = category or TicketCategory.INQUIRY
        priority = priority or Priority.MEDIUM

        department = data.department or self._config_provider.department_for(category)
        policy = self._config_provider.policy_for(department).snapshot()
        assigned_to = data.assigned_to or self._config_provider.default_agent_for(department)

        now = self._clock.now()
        ticket = Ticket(
            id=str(uuid4()),
            ticket_number=self._sequence.next(),
            title=data.title,
            description=data.description,
            department=department,
            category=category,
            priority=priority,
            sla_policy=policy,
            created_at=now,
            updated_at=now,
            assigned_to=assigned_to,
            metadata=dict(data.metadata),
        )
        ticket.add_note("Ticket created", data.created_by or SYSTEM_ACTOR, now)

        saved = await self._repo.save(ticket)
        logger.info(
            "Ticket created",
            extra={
                "ticket_id": saved.id,
                "ticket_number": saved.ticket_number,
                "department": department,
                "category": category,
                "priority": priority,
                "assigned_to": assigned_to,
            }
        )
        return saved

    async def get_ticket(self, ticket_id: str) -> Ticket:
        return await self._repo.get(ticket_id)

    async def list_tickets(self, query: Optional[TicketQueryDTO] = None) -> TicketPage:
        """Filtered, paginated listing, newest first."""
        query = query or TicketQueryDTO()
        tickets, total = await self._repo.list_tickets(query)
        return TicketPage(tickets=tickets, total=total, limit=query.limit, offset=query.offset)

    # ----- status -----

    async def change_status(
        self,
        ticket_id: str,
        status: str,
        actor: str,
        reason: Optional[str] = None
    ) -> Ticket:
        """
        Move a ticket to ``status``.

        Raises:
            InvalidTransitionException: not allowed from the current status.
            ValidationException: ``status`` is ESCALATED.
        """
        if status == TicketStatus.ESCALATED:
            # The ladder, not the caller, decides who an escalated ticket goes to
            raise ValidationException(
                "use EscalationService.escalate to escalate a ticket",
                {"ticket_id": ticket_id, "status": status}
            )

        def change(ticket: Ticket, now: datetime) -> None:
            self._state_machine.transition(ticket, status, actor, reason, now)

        ticket = await self._mutate(ticket_id, change)
        logger.info(
            "Ticket status changed",
            extra={"ticket_id": ticket_id, "status": status, "actor": actor}
        )
        return ticket

    async def resolve(self, ticket_id: str, actor: str, reason: Optional[str] = None) -> Ticket:
        return await self.change_status(ticket_id, TicketStatus.RESOLVED, actor, reason)

    async def close(self, ticket_id: str, actor: str, reason: Optional[str] = None) -> Ticket:
        return await self.change_status(ticket_id, TicketStatus.CLOSED, actor, reason)

    async def assign(self, ticket_id: str, agent_id: str, actor: str) -> Ticket:
        """Assign an agent; an OPEN ticket moves to IN_PROGRESS."""

        def change(ticket: Ticket, now: datetime) -> None:
            ticket.ensure_mutable()
            if ticket.status == TicketStatus.OPEN:
                self._state_machine.transition(
                    ticket, TicketStatus.IN_PROGRESS, actor, f"Assigned to {agent_id}", now
                )
            else:
                ticket.add_note(f"Ticket assigned to agent {agent_id}", actor, now)
            ticket.assigned_to = agent_id

        return await self._mutate(ticket_id, change)

    # ----- responses and notes -----

    async def record_response(
        self,
        ticket_id: str,
        content: str,
        sent_by: str,
        channel: str = "internal",
        is_automated: bool = False
    ) -> TicketResponse:
        """Record a response; the first one sets ``first_response_at``."""
        recorded: List[TicketResponse] = []

        def change(ticket: Ticket, now: datetime) -> None:
            recorded.append(ticket.add_response(content, sent_by, now, channel, is_automated))

        await self._mutate(ticket_id, change)
        return recorded[0]

    async def add_note(self, ticket_id: str, content: str, added_by: str) -> InternalNote:
        """Add an audit note. Works on closed and cancelled tickets too."""
        added: List[InternalNote] = []

        def change(ticket: Ticket, now: datetime) -> None:
            added.append(ticket.add_note(content, added_by, now))

        await self._mutate(ticket_id, change)
        return added[0]

    # ----- SLA clock -----

    async def pause_sla(self, ticket_id: str, actor: str, reason: Optional[str] = None) -> Ticket:
        """Stop the ticket's SLA clocks until resumed."""

        def change(ticket: Ticket, now: datetime) -> None:
            ticket.ensure_mutable()
            ticket.sla_policy.pause(now, reason)
            ticket.add_note(f"SLA paused: {reason}" if reason else "SLA paused", actor, now)

        return await self._mutate(ticket_id, change)

    async def resume_sla(self, ticket_id: str, actor: str) -> Ticket:
        """Restart the SLA clocks; deadlines move back by the paused time."""

        def change(ticket: Ticket, now: datetime) -> None:
            ticket.ensure_mutable()
            paused_for = ticket.sla_policy.resume(now)
            ticket.add_note(f"SLA resumed after {paused_for}", actor, now)

        return await self._mutate(ticket_id, change)

    async def get_sla_status(self, ticket_id: str) -> SLAStatus:
        ticket = await self._repo.get(ticket_id)
        return SLACalculator.compute_deadlines(
            ticket,
            ticket.sla_policy,
            self._clock.now(),
            self._config_provider.get_config().warning_threshold_percent,
        )

    # ----- merge -----

    async def merge_tickets(
        self,
        primary_id: str,
        secondary_ids: Iterable[str],
        merged_by: str
    ) -> Ticket:
        """
        Fold secondary tickets into the primary one.

        Descriptions and notes are appended to the primary; every
        secondary that is still open is cancelled with a merge note.
        """
        secondaries = []
        for secondary_id in secondary_ids:
            if secondary_id != primary_id:
                secondaries.append(await self._repo.get(secondary_id))

        def merge(ticket: Ticket, now: datetime) -> None:
            ticket.ensure_mutable()
            ticket.description = "\n\n".join(
                [ticket.description]
                + [f"[Merged from {s.ticket_number}]: {s.description}" for s in secondaries]
            )
            notes = ticket.internal_notes + [n for s in secondaries for n in s.internal_notes]
            ticket.internal_notes = sorted(notes, key=lambda n: n.added_at)
            ticket.add_note(
                f"Merged tickets: {', '.join(s.ticket_number for s in secondaries)}",
                merged_by,
                now,
            )

        primary = await self._mutate(primary_id, merge)

        for secondary in secondaries:
            if secondary.is_terminal:
                continue

            def cancel(ticket: Ticket, now: datetime) -> Optional[bool]:
                if ticket.is_terminal:
                    return False
                self._state_machine.transition(
                    ticket, TicketStatus.CANCELLED, merged_by,
                    f"Merged into {primary.ticket_number}", now
                )
                return True

            await self._mutate(secondary.id, cancel)

        return primary
