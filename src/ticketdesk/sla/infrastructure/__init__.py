"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA monitoring:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer (in-memory and SQLAlchemy)
- External: Config watcher, Slack notifier, dispatcher, scheduler
- Classifier: Keyword-based category/priority inference
"""

from ticketdesk.sla.infrastructure.models import TicketModel
from ticketdesk.sla.infrastructure.repositories import (
    InMemoryTicketRepository,
    SQLAlchemyTicketRepository,
    StaticConfigProvider,
)
from ticketdesk.sla.infrastructure.external import (
    SLAConfigManager,
    CircuitBreaker,
    SlackNotifier,
    LoggingNotifier,
    NotificationDispatcher,
    SLAScheduler,
)
from ticketdesk.sla.infrastructure.classifier import KeywordClassifier

__all__ = [
    "TicketModel",
    "InMemoryTicketRepository",
    "SQLAlchemyTicketRepository",
    "StaticConfigProvider",
    "SLAConfigManager",
    "CircuitBreaker",
    "SlackNotifier",
    "LoggingNotifier",
    "NotificationDispatcher",
    "SLAScheduler",
    "KeywordClassifier",
]
