"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

Each exception carries the HTTP status its message is surfaced with, so the
API layer can render every failure as ``{"success": false, "error": ...}``.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""

    status_code = 400


class InvalidStateException(DomainException):
    """A lifecycle transition was requested from the wrong state."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""

    status_code = 400


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    status_code = 404

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


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


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


class ProviderRateLimitException(ExternalServiceException):
    """The provider has no credits left for this operation."""

    status_code = 429


class OutreachCreationException(RepositoryException):
    """The outreach record for a dispatch could not be written."""

    def __init__(self, job_id: str, details: Optional[dict] = None):
        self.job_id = job_id
        super().__init__("Failed to create outreach", details or {"job_id": job_id})
