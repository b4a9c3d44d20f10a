"""
SLA Value Objects
==================

Immutable value objects for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from ticketdesk.config import (
    SLAState, TicketCategory, DEFAULT_DEPARTMENT, VALID_CATEGORIES
)
from ticketdesk.core import PolicyNotConfiguredException
from ticketdesk.sla.domain.calendar import WEEKDAYS, ZERO, build_calendar
from ticketdesk.sla.domain.entities import SLAPolicy, Ticket


# ========== Deadline calculation ==========

@dataclass(frozen=True)
class SLAStatus:
    """Deadlines and compliance for one ticket at one instant."""

    ticket_id: str
    evaluated_at: datetime

    response_deadline: datetime
    resolution_deadline: datetime
    is_within_response_sla: bool
    is_within_resolution_sla: bool
    response_time_remaining: timedelta
    resolution_time_remaining: timedelta

    response_state: str
    resolution_state: str

    @property
    def is_any_breached(self) -> bool:
        return not (self.is_within_response_sla and self.is_within_resolution_sla)

    def to_dict(self) -> dict:
        """Convert to dictionary for logs and notification payloads."""
        return {
            "ticket_id": self.ticket_id,
            "evaluated_at": self.evaluated_at.isoformat(),
            "response": {
                "deadline": self.response_deadline.isoformat(),
                "remaining_seconds": self.response_time_remaining.total_seconds(),
                "is_within_sla": self.is_within_response_sla,
                "state": self.response_state,
            },
            "resolution": {
                "deadline": self.resolution_deadline.isoformat(),
                "remaining_seconds": self.resolution_time_remaining.total_seconds(),
                "is_within_sla": self.is_within_resolution_sla,
                "state": self.resolution_state,
            },
        }


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless: safe to call repeatedly and concurrently for the same ticket.
    """

    @staticmethod
    def calculate_deadline(
        created_at: datetime,
        budget: timedelta,
        policy: SLAPolicy,
        now: datetime,
        stopped_at: Optional[datetime] = None
    ) -> datetime:
        """
        Deadline for one SLA clock.

        The budget is laid out on the policy's working calendar, then pushed
        back by every stretch the clock spent paused. An open pause counts
        only until the clock stopped at ``stopped_at``, if it has.
        """
        deadline = policy.calendar.add_working_time(created_at, budget)
        until = now if stopped_at is None else min(now, stopped_at)
        return deadline + policy.paused_duration(until)

    @staticmethod
    def calculate_state(
        created_at: datetime,
        deadline: datetime,
        now: datetime,
        met_at: Optional[datetime] = None,
        warning_threshold_percent: int = 15
    ) -> str:
        """Classify one clock as met, breached, at risk or on track."""
        if met_at is not None:
            return SLAState.MET if met_at <= deadline else SLAState.BREACHED

        remaining = (deadline - now).total_seconds()
        total = (deadline - created_at).total_seconds()

        if remaining < 0:
            return SLAState.BREACHED
        percentage = (remaining / total) * 100 if total > 0 else 0
        if percentage <= warning_threshold_percent:
            return SLAState.AT_RISK
        return SLAState.ON_TRACK

    @classmethod
    def compute_deadlines(
        cls,
        ticket: Ticket,
        policy: SLAPolicy,
        now: datetime,
        warning_threshold_percent: int = 15
    ) -> SLAStatus:
        """
        Response/resolution deadlines and compliance of ``ticket`` at ``now``.

        A clock that already stopped (first response recorded, ticket
        resolved) is judged on when it stopped; a running clock is within
        SLA as long as ``now`` has not passed its deadline.
        """
        created_at = ticket.created_at

        response_deadline = cls.calculate_deadline(
            created_at, policy.response_time, policy, now, ticket.first_response_at
        )
        resolution_deadline = cls.calculate_deadline(
            created_at, policy.resolution_time, policy, now, ticket.resolved_at
        )

        if ticket.first_response_at is not None:
            within_response = ticket.first_response_at <= response_deadline
        else:
            within_response = now <= response_deadline

        if ticket.resolved_at is not None:
            within_resolution = ticket.resolved_at <= resolution_deadline
        else:
            within_resolution = now <= resolution_deadline

        return SLAStatus(
            ticket_id=ticket.id,
            evaluated_at=now,
            response_deadline=response_deadline,
            resolution_deadline=resolution_deadline,
            is_within_response_sla=within_response,
            is_within_resolution_sla=within_resolution,
            response_time_remaining=max(ZERO, response_deadline - now),
            resolution_time_remaining=max(ZERO, resolution_deadline - now),
            response_state=cls.calculate_state(
                created_at, response_deadline, now,
                ticket.first_response_at, warning_threshold_percent
            ),
            resolution_state=cls.calculate_state(
                created_at, resolution_deadline, now,
                ticket.resolved_at, warning_threshold_percent
            ),
        )


# ========== Escalation ladder ==========

@dataclass(frozen=True)
class EscalationStep:
    """One rung of an escalation ladder."""

    level: int
    escalate_to: str
    timeout: Optional[timedelta] = None
    notify: Tuple[str, ...] = ()

    @property
    def recipients(self) -> List[str]:
        return [self.escalate_to, *self.notify]


@dataclass(frozen=True)
class EscalationLadder:
    """Ordered escalation steps; levels are contiguous from 1."""

    steps: Tuple[EscalationStep, ...]

    def __post_init__(self):
        levels = [step.level for step in self.steps]
        if levels != list(range(1, len(levels) + 1)):
            raise ValueError(f"escalation levels must be contiguous from 1, got {levels}")

    def __len__(self) -> int:
        return len(self.steps)

    def next_step(self, current_level: int) -> Optional[EscalationStep]:
        """Step reached by escalating from ``current_level``; None at the top."""
        if 0 <= current_level < len(self.steps):
            return self.steps[current_level]
        return None


# ========== Configuration models (loaded from YAML) ==========

class EscalationLevelConfig(BaseModel):
    """Configuration for a single escalation level."""
    level: int = Field(ge=1, description="Escalation level (1-based)")
    escalate_to: str = Field(min_length=1, description="Recipient role or user id")
    timeout_hours: Optional[float] = Field(default=None, gt=0, description="Per-level timeout override")
    notify: List[str] = Field(default_factory=list, description="Extra notification channels")

    def to_domain(self) -> EscalationStep:
        return EscalationStep(
            level=self.level,
            escalate_to=self.escalate_to,
            timeout=timedelta(hours=self.timeout_hours) if self.timeout_hours else None,
            notify=tuple(self.notify),
        )


class WorkingHoursConfig(BaseModel):
    """Weekly working hours; an omitted or null day is non-working."""
    timezone: str = Field(default="UTC", description="IANA timezone name")
    days: Dict[str, Optional[Tuple[str, str]]] = Field(
        default_factory=dict,
        description="Weekday name -> [start, end] in HH:MM"
    )

    @field_validator("days")
    @classmethod
    def validate_days(cls, v: Dict[str, Optional[Tuple[str, str]]]) -> Dict[str, Optional[Tuple[str, str]]]:
        """Reject unknown weekday names early."""
        for name in v:
            if name.lower() not in WEEKDAYS:
                raise ValueError(f"unknown weekday '{name}'")
        return v


class SLAPolicyConfig(BaseModel):
    """Per-department SLA policy."""
    response_time_hours: float = Field(gt=0, description="Response budget in hours")
    resolution_time_hours: float = Field(gt=0, description="Resolution budget in hours")
    working_hours: Optional[WorkingHoursConfig] = Field(
        default=None,
        description="Working hours; omit for calendar-naive deadlines"
    )
    holidays: List[date] = Field(default_factory=list, description="Dates with no working time")

    def to_domain(self) -> SLAPolicy:
        working_hours = self.working_hours
        return SLAPolicy(
            response_time=timedelta(hours=self.response_time_hours),
            resolution_time=timedelta(hours=self.resolution_time_hours),
            calendar=build_calendar(
                working_hours.days if working_hours else None,
                self.holidays,
                working_hours.timezone if working_hours else "UTC",
            ),
        )


DEFAULT_SLA_POLICY = SLAPolicyConfig(response_time_hours=2, resolution_time_hours=24)

DEFAULT_ESCALATION_LEVELS = [
    EscalationLevelConfig(level=1, escalate_to="manager", timeout_hours=4),
    EscalationLevelConfig(level=2, escalate_to="admin", timeout_hours=8),
]

DEFAULT_CATEGORY_DEPARTMENTS = {
    TicketCategory.HOUSEKEEPING: "Housekeeping",
    TicketCategory.FOOD_BEVERAGE: "Food & Beverage",
    TicketCategory.FRONT_DESK: "Front Desk",
    TicketCategory.MAINTENANCE: "Maintenance",
    TicketCategory.IT_SUPPORT: "IT Support",
    TicketCategory.COMPLAINT: "Front Desk",
    TicketCategory.SERVICE_REQUEST: "Front Desk",
    TicketCategory.INQUIRY: "Front Desk",
}


class SLAConfig(BaseModel):
    """
    SLA configuration loaded from YAML.

    Policies, ladders and default agents are keyed by department, with the
    ``default`` key used for departments without their own entry.
    """
    policies: Dict[str, SLAPolicyConfig] = Field(
        default_factory=dict,
        description="SLA policy per department"
    )
    escalation_ladders: Dict[str, List[EscalationLevelConfig]] = Field(
        default_factory=dict,
        description="Escalation ladder per department"
    )
    category_departments: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_DEPARTMENTS),
        description="Ticket category -> owning department"
    )
    default_agents: Dict[str, str] = Field(
        default_factory=dict,
        description="Agent auto-assigned to new tickets per department"
    )
    warning_threshold_percent: int = Field(
        default=15, ge=0, le=100,
        description="Percentage of budget left at which a clock is at risk"
    )

    @field_validator("escalation_ladders")
    @classmethod
    def validate_ladders(
        cls, v: Dict[str, List[EscalationLevelConfig]]
    ) -> Dict[str, List[EscalationLevelConfig]]:
        """Sort each ladder by level and require contiguous levels from 1."""
        for department, levels in v.items():
            levels.sort(key=lambda e: e.level)
            numbers = [e.level for e in levels]
            if numbers != list(range(1, len(numbers) + 1)):
                raise ValueError(
                    f"escalation levels for '{department}' must be contiguous from 1, got {numbers}"
                )
        return v

    @field_validator("category_departments")
    @classmethod
    def validate_categories(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Fill in categories the file does not map."""
        for category in VALID_CATEGORIES:
            v.setdefault(category, DEFAULT_CATEGORY_DEPARTMENTS[category])
        return v

    @model_validator(mode="after")
    def validate_policies(self) -> "SLAConfig":
        """Build every policy once so calendar errors surface at load time."""
        for policy in self.policies.values():
            policy.to_domain()
        return self

    def get_policy(self, department: str) -> SLAPolicy:
        """
        Strict lookup: department, then ``default``.

        Raises:
            PolicyNotConfiguredException: neither entry exists.
        """
        config = self.policies.get(department) or self.policies.get(DEFAULT_DEPARTMENT)
        if config is None:
            raise PolicyNotConfiguredException(department)
        return config.to_domain()

    def get_ladder(self, department: str) -> EscalationLadder:
        """Department ladder, then ``default``, then the built-in manager/admin ladder."""
        levels = (
            self.escalation_ladders.get(department)
            or self.escalation_ladders.get(DEFAULT_DEPARTMENT)
            or DEFAULT_ESCALATION_LEVELS
        )
        return EscalationLadder(tuple(level.to_domain() for level in levels))

    def get_department(self, category: str) -> str:
        return self.category_departments.get(category, DEFAULT_DEPARTMENT)

    def get_default_agent(self, department: str) -> Optional[str]:
        return self.default_agents.get(department)
