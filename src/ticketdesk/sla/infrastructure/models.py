"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ticketdesk.config import TicketStatus, Priority
from ticketdesk.infrastructure.database import Base


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table. The policy snapshot, escalation history,
    notes and responses are stored as JSON documents; the row is always
    written as a whole.
    """
    __tablename__ = "tickets"

    # Primary key
    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Business identifier (TKT-<n>) and its numeric part for max() lookups
    ticket_number: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    # Ticket content
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Routing
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default=Priority.MEDIUM)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True, default=TicketStatus.OPEN)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    # SLA tracking
    first_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Embedded documents
    sla_policy: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    escalation_history: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    internal_notes: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    responses: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # "metadata" is reserved on declarative classes
    ticket_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
