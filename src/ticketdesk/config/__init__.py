"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="ticketdesk", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/tickets",
        description="SQLAlchemy connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    use_in_memory_repository: bool = Field(
        default=False,
        description="Keep tickets in process memory instead of the database"
    )

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA policy / escalation ladder YAML file"
    )
    sla_sweep_interval_seconds: int = Field(
        default=900,
        description="Seconds between breach sweeps",
        ge=10
    )
    sla_escalation_threshold_minutes: int = Field(
        default=60,
        description="Auto-escalate when resolution time remaining drops to this",
        ge=0
    )
    sla_response_warning_minutes: int = Field(
        default=30,
        description="Warn when response time remaining drops to this",
        ge=0
    )
    sla_resolution_warning_minutes: int = Field(
        default=120,
        description="Warn when resolution time remaining drops to this",
        ge=0
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for notifications"
    )
    slack_channel: str = Field(
        default="#guest-escalations",
        description="Slack channel for SLA notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class TicketCategory(str):
    """Guest ticket categories."""
    COMPLAINT = "complaint"
    SERVICE_REQUEST = "service_request"
    INQUIRY = "inquiry"
    HOUSEKEEPING = "housekeeping"
    FOOD_BEVERAGE = "food_beverage"
    FRONT_DESK = "front_desk"
    MAINTENANCE = "maintenance"
    IT_SUPPORT = "it_support"


class Priority(str):
    """Ticket priority levels."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SLAType(str):
    """Types of SLA clocks."""
    RESPONSE = "response"
    RESOLUTION = "resolution"


class SLAState(str):
    """SLA status states."""
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"
    MET = "met"


SYSTEM_ACTOR = "system"
DEFAULT_DEPARTMENT = "default"
AUTO_ESCALATION_REASON = "Auto-escalated due to SLA breach risk"
FIRST_TICKET_NUMBER = 1000


# ========== Lists for validation ==========

VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.ON_HOLD,
    TicketStatus.ESCALATED, TicketStatus.RESOLVED, TicketStatus.CLOSED,
    TicketStatus.CANCELLED
]
TERMINAL_STATUSES = [TicketStatus.CLOSED, TicketStatus.CANCELLED]
NON_TERMINAL_STATUSES = [s for s in VALID_STATUSES if s not in TERMINAL_STATUSES]
VALID_CATEGORIES = [
    TicketCategory.COMPLAINT, TicketCategory.SERVICE_REQUEST,
    TicketCategory.INQUIRY, TicketCategory.HOUSEKEEPING,
    TicketCategory.FOOD_BEVERAGE, TicketCategory.FRONT_DESK,
    TicketCategory.MAINTENANCE, TicketCategory.IT_SUPPORT
]
VALID_PRIORITIES = [
    Priority.CRITICAL, Priority.HIGH,
    Priority.MEDIUM, Priority.LOW
]
VALID_SLA_TYPES = [SLAType.RESPONSE, SLAType.RESOLUTION]
