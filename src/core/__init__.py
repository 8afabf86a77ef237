"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from src.core.exceptions import (
    ApplicationException,
    DomainException,
    InvalidStateException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    ProviderRateLimitException,
    OutreachCreationException,
)
from src.core.clock import utcnow, as_utc, minutes_between

__all__ = [
    "ApplicationException",
    "DomainException",
    "InvalidStateException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "ProviderRateLimitException",
    "OutreachCreationException",
    "utcnow",
    "as_utc",
    "minutes_between",
]
