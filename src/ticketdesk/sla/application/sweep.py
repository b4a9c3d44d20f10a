"""
SLA Breach Sweep
================

Periodic scan of every non-terminal ticket for SLA risk.

Per ticket:
- resolution deadline within the escalation threshold and the ticket not
  already escalated -> auto-escalate as ``system``
- response deadline within its warning threshold and no response yet
  -> response warning
- resolution deadline within its warning threshold and still unresolved
  -> resolution warning

A failing ticket is logged and skipped; it never aborts the scan. The
"already escalated" check is what keeps repeated sweeps from escalating the
same risk window twice.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from ticketdesk.config import (
    SLAType, SYSTEM_ACTOR, AUTO_ESCALATION_REASON, Settings
)
from ticketdesk.core import Clock, MaxEscalationLevelReachedException, SystemClock
from ticketdesk.shared.infrastructure.logging import get_logger
from ticketdesk.sla.application.services import (
    EscalationService, INotifier, ITicketRepository
)
from ticketdesk.sla.domain import SLACalculator, SLAStatus, Ticket

logger = get_logger(__name__)


@dataclass(frozen=True)
class SweepThresholds:
    """How close to a deadline the sweep reacts."""
    escalation: timedelta = timedelta(hours=1)
    response_warning: timedelta = timedelta(minutes=30)
    resolution_warning: timedelta = timedelta(hours=2)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SweepThresholds":
        return cls(
            escalation=timedelta(minutes=settings.sla_escalation_threshold_minutes),
            response_warning=timedelta(minutes=settings.sla_response_warning_minutes),
            resolution_warning=timedelta(minutes=settings.sla_resolution_warning_minutes),
        )


@dataclass
class SweepReport:
    """Outcome of one sweep."""
    started_at: datetime
    evaluated: int = 0
    escalated: List[str] = field(default_factory=list)
    warnings: List[tuple] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    skipped: int = 0
    stopped_early: bool = False

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "tickets_evaluated": self.evaluated,
            "tickets_escalated": len(self.escalated),
            "warnings_sent": len(self.warnings),
            "failures": len(self.failures),
            "skipped": self.skipped,
            "stopped_early": self.stopped_early,
        }


class SLABreachSweeper:
    """
    Evaluates all open tickets and reacts to SLA risk.

    Holds no lock across the ticket set; a ticket's lock is taken only
    inside EscalationService while it escalates.
    """

    def __init__(
        self,
        repository: ITicketRepository,
        escalation_service: EscalationService,
        notifier: INotifier,
        clock: Optional[Clock] = None,
        thresholds: Optional[SweepThresholds] = None
    ):
        self._repo = repository
        self._escalation = escalation_service
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._thresholds = thresholds or SweepThresholds()
        self._stop_requested = False

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def request_stop(self) -> None:
        """Finish the ticket being evaluated, then skip the rest."""
        self._stop_requested = True

    async def sweep(self) -> SweepReport:
        report = SweepReport(started_at=self._clock.now())
        if self._stop_requested:
            report.stopped_early = True
            return report

        tickets = await self._repo.list_non_terminal()

        for index, ticket in enumerate(tickets):
            if self._stop_requested:
                report.skipped = len(tickets) - index
                report.stopped_early = True
                logger.info("SLA sweep stopped early", extra={"skipped": report.skipped})
                break

            try:
                await self._evaluate(ticket, report)
            except Exception as e:
                report.failures.append(ticket.id)
                logger.error(
                    "SLA evaluation failed for ticket",
                    extra={"ticket_id": ticket.id, "error": str(e)}
                )
            report.evaluated += 1

        logger.info("SLA sweep finished", extra=report.to_dict())
        return report

    def needs_escalation(self, ticket: Ticket, status: SLAStatus) -> bool:
        if ticket.is_terminal or ticket.is_resolved or ticket.is_escalated:
            return False
        if ticket.sla_policy.is_paused:
            return False
        return status.resolution_time_remaining <= self._thresholds.escalation

    async def _evaluate(self, ticket: Ticket, report: SweepReport) -> None:
        status = self._status(ticket)

        if self.needs_escalation(ticket, status):
            try:
                escalated = await self._escalation.escalate_if(
                    ticket.id,
                    SYSTEM_ACTOR,
                    AUTO_ESCALATION_REASON,
                    lambda fresh: self.needs_escalation(fresh, self._status(fresh)),
                )
            except MaxEscalationLevelReachedException as e:
                logger.warning(
                    "Auto-escalation skipped, ladder exhausted",
                    extra={"ticket_id": ticket.id, "level": e.current_level}
                )
            else:
                if escalated is not None:
                    report.escalated.append(ticket.id)

        if ticket.sla_policy.is_paused:
            return

        if (status.response_time_remaining <= self._thresholds.response_warning
                and not ticket.has_response and not ticket.is_resolved):
            await self._warn(ticket, SLAType.RESPONSE, report)

        if (status.resolution_time_remaining <= self._thresholds.resolution_warning
                and not ticket.is_resolved):
            await self._warn(ticket, SLAType.RESOLUTION, report)

    def _status(self, ticket: Ticket) -> SLAStatus:
        return SLACalculator.compute_deadlines(ticket, ticket.sla_policy, self._clock.now())

    async def _warn(self, ticket: Ticket, kind: str, report: SweepReport) -> None:
        try:
            await self._notifier.notify_sla_warning(ticket, kind)
        except Exception as e:
            logger.error(
                "SLA warning notification failed",
                extra={"ticket_id": ticket.id, "kind": kind, "error": str(e)}
            )
            return
        report.warnings.append((ticket.id, kind))
