"""
Core Exceptions
================

Custom exceptions for the ticket lifecycle engine.

Every exception carries an ``ErrorKind`` so that callers (controllers,
background jobs) can branch on the kind of failure without string matching.
Expected failures (validation, transition, forbidden, not found) propagate to
the caller of the mutating operation; delivery failures never leave the
outbox dispatcher.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced by the engine."""
    VALIDATION = "validation"
    INVALID_TRANSITION = "invalid_transition"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    TRANSIENT_DELIVERY = "transient_delivery"
    PERMANENT_DELIVERY = "permanent_delivery"
    INFRASTRUCTURE = "infrastructure"


class ApplicationException(Exception):
    """Base exception for all application errors."""

    kind: ErrorKind = ErrorKind.INFRASTRUCTURE

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ValidationException(DomainException):
    """Malformed input or out-of-bounds values."""

    kind = ErrorKind.VALIDATION


class InvalidTransitionException(DomainException):
    """The state machine rejects the requested move."""

    kind = ErrorKind.INVALID_TRANSITION

    def __init__(
        self,
        from_status: str,
        to_status: str,
        message: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message or f"Cannot transition ticket from '{from_status}' to '{to_status}'",
            details or {"from": from_status, "to": to_status}
        )


class ForbiddenException(DomainException):
    """Role or ownership violation."""

    kind = ErrorKind.FORBIDDEN


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    kind = ErrorKind.NOT_FOUND

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


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class TransientDeliveryFailure(ExternalServiceException):
    """Retryable notification failure (timeouts, 5xx, open circuit)."""

    kind = ErrorKind.TRANSIENT_DELIVERY


class PermanentDeliveryFailure(ExternalServiceException):
    """Notification failure that retrying cannot fix."""

    kind = ErrorKind.PERMANENT_DELIVERY
