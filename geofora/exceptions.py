"""
Custom Exception Classes for GeoFora

This module defines the exceptions raised by the consent, anonymization,
export and privacy services. Every exception carries an HTTP status code
and a machine-readable error code so the exception handlers can render a
consistent error response.
"""

from enum import Enum
from typing import Any

from fastapi import status


class ErrorCode(str, Enum):
    """Machine-readable error codes exposed in error responses."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    PROVIDER_NOT_FOUND = "RESOURCE_PROVIDER_NOT_FOUND"
    EXPORT_NOT_FOUND = "RESOURCE_EXPORT_NOT_FOUND"
    GDPR_REQUEST_NOT_FOUND = "RESOURCE_GDPR_REQUEST_NOT_FOUND"
    BREACH_NOT_FOUND = "RESOURCE_BREACH_NOT_FOUND"
    CONSENT_MISSING = "CONSENT_MISSING"
    CONSENT_REQUIRED = "CONSENT_REQUIRED"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class GeoForaError(Exception):
    """Base exception class for all GeoFora exceptions"""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationError(GeoForaError):
    """Raised when input validation fails"""

    error_code = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST, details=error_details)


class InvalidStatusTransitionError(GeoForaError):
    """Raised when a job, request or breach report is moved out of order"""

    error_code = ErrorCode.INVALID_STATUS_TRANSITION

    def __init__(self, current_status: str, target_status: str, resource_type: str = "Resource"):
        super().__init__(
            message=f"Cannot transition {resource_type} from '{current_status}' to '{target_status}'",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource_type": resource_type, "current_status": current_status, "target_status": target_status},
        )


# ============================================================================
# Resource Not Found Exceptions
# ============================================================================


class ResourceNotFoundError(GeoForaError):
    """Base class for resource not found errors"""

    error_code = ErrorCode.RESOURCE_NOT_FOUND

    def __init__(self, resource_type: str, resource_id: Any | None = None):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message = f"{resource_type} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ProviderNotFoundError(ResourceNotFoundError):
    """Raised when a provider id or name does not resolve to an active AI provider"""

    error_code = ErrorCode.PROVIDER_NOT_FOUND

    def __init__(self, provider: Any | None = None):
        super().__init__(resource_type="AI provider", resource_id=provider)


class ExportNotFoundError(ResourceNotFoundError):
    """Raised when an export job or its artifact is not found"""

    error_code = ErrorCode.EXPORT_NOT_FOUND

    def __init__(self, export_id: str | None = None):
        super().__init__(resource_type="Export", resource_id=export_id)


class GDPRRequestNotFoundError(ResourceNotFoundError):
    """Raised when a GDPR request or its artifact is not found"""

    error_code = ErrorCode.GDPR_REQUEST_NOT_FOUND

    def __init__(self, request_id: str | None = None):
        super().__init__(resource_type="GDPR request", resource_id=request_id)


class DataBreachNotFoundError(ResourceNotFoundError):
    """Raised when a data breach report is not found"""

    error_code = ErrorCode.BREACH_NOT_FOUND

    def __init__(self, breach_id: str | None = None):
        super().__init__(resource_type="Data breach", resource_id=breach_id)


# ============================================================================
# Consent Exceptions
# ============================================================================


class NoConsentError(GeoForaError):
    """Raised when an organization has not granted data sharing consent to a provider"""

    error_code = ErrorCode.CONSENT_MISSING

    def __init__(
        self,
        organization_id: int,
        provider_id: int,
        message: str = "No consent for data sharing with this provider",
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details={"organization_id": organization_id, "provider_id": provider_id},
        )


class ConsentRequiredError(GeoForaError):
    """Raised when an export asks for consent verification and none is on record"""

    error_code = ErrorCode.CONSENT_REQUIRED

    def __init__(self, provider: str):
        super().__init__(
            message=f"No consent found for provider: {provider}",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"provider": provider},
        )


# ============================================================================
# Service Exceptions
# ============================================================================


class ServiceError(GeoForaError):
    """Raised when a service layer operation fails"""

    def __init__(self, message: str, service: str | None = None):
        details = {"service": service} if service else {}
        super().__init__(message=message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, details=details)
