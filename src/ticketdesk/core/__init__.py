"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from ticketdesk.core.clock import Clock, SystemClock
from ticketdesk.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ConfigurationException,
    ValidationException,
    ResourceNotFoundException,
    TicketNotFoundException,
    InvalidTransitionException,
    MaxEscalationLevelReachedException,
    TicketClosedException,
    SLAPauseException,
    PolicyNotConfiguredException,
    ExternalServiceException,
    NotificationDispatchException,
)

__all__ = [
    "Clock",
    "SystemClock",
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ConfigurationException",
    "ValidationException",
    "ResourceNotFoundException",
    "TicketNotFoundException",
    "InvalidTransitionException",
    "MaxEscalationLevelReachedException",
    "TicketClosedException",
    "SLAPauseException",
    "PolicyNotConfiguredException",
    "ExternalServiceException",
    "NotificationDispatchException",
]
