"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

Every exception carries a stable ``code`` so callers can tell a rejected
transition from an exhausted escalation ladder without parsing messages.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    code = "application_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""

    code = "domain_error"


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""

    code = "repository_error"


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""

    code = "configuration_error"


class ValidationException(ApplicationException):
    """Exception for validation errors."""

    code = "validation_error"


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    code = "not_found"

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class TicketNotFoundException(ResourceNotFoundException):
    """Operation targets a ticket identifier that does not exist."""

    code = "unknown_ticket"

    def __init__(self, ticket_id: str):
        super().__init__("Ticket", ticket_id, {"ticket_id": ticket_id})


class InvalidTransitionException(DomainException):
    """Requested status change is not allowed from the current status."""

    code = "invalid_transition"

    def __init__(self, ticket_id: str, from_status: str, to_status: str):
        self.ticket_id = ticket_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot move ticket {ticket_id} from {from_status} to {to_status}",
            {"ticket_id": ticket_id, "from_status": from_status, "to_status": to_status}
        )


class MaxEscalationLevelReachedException(DomainException):
    """Escalation requested beyond the end of the department's ladder."""

    code = "max_escalation_level_reached"

    def __init__(self, ticket_id: str, current_level: int, ladder_length: int):
        self.ticket_id = ticket_id
        self.current_level = current_level
        self.ladder_length = ladder_length
        super().__init__(
            f"Maximum escalation level reached for ticket {ticket_id} "
            f"(level {current_level} of {ladder_length})",
            {
                "ticket_id": ticket_id,
                "current_level": current_level,
                "ladder_length": ladder_length,
            }
        )


class TicketClosedException(DomainException):
    """Mutation attempted on a ticket in a terminal status."""

    code = "ticket_closed"

    def __init__(self, ticket_id: str, status: str):
        self.ticket_id = ticket_id
        self.status = status
        super().__init__(
            f"Ticket {ticket_id} is {status} and can no longer change",
            {"ticket_id": ticket_id, "status": status}
        )


class SLAPauseException(DomainException):
    """Pause requested on a paused SLA, or resume on a running one."""

    code = "sla_pause_state"


class PolicyNotConfiguredException(ConfigurationException):
    """No SLA policy resolvable for a department."""

    code = "policy_not_configured"

    def __init__(self, department: str):
        self.department = department
        super().__init__(
            f"No SLA policy configured for department '{department}'",
            {"department": department}
        )


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    code = "external_service_error"

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class NotificationDispatchException(ExternalServiceException):
    """Notification could not be delivered. Never propagated past the dispatcher."""

    code = "notification_dispatch_failed"

    def __init__(self, channel: str, message: str, details: Optional[dict] = None):
        super().__init__(channel, message, details)
