"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from campusdesk.core.exceptions import (
    ErrorKind,
    ApplicationException,
    DomainException,
    RepositoryException,
    ConfigurationException,
    ValidationException,
    InvalidTransitionException,
    ForbiddenException,
    ResourceNotFoundException,
    ExternalServiceException,
    TransientDeliveryFailure,
    PermanentDeliveryFailure,
)

__all__ = [
    "ErrorKind",
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ConfigurationException",
    "ValidationException",
    "InvalidTransitionException",
    "ForbiddenException",
    "ResourceNotFoundException",
    "ExternalServiceException",
    "TransientDeliveryFailure",
    "PermanentDeliveryFailure",
]
