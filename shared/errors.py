"""
Shared error handling for the Campus Portal services.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    code: str
    message: Optional[str] = None
    details: Dict[str, Any] = {}


class PortalException(Exception):
    """Base exception for portal services."""

    status_code: int = 500

    def __init__(
        self,
        code: str,
        error: str,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.error = error
        self.message = message
        self.details = details or {}
        super().__init__(error if message is None else f"{error}: {message}")

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=self.error,
            code=self.code,
            message=self.message,
            details=self.details,
        )


class ConfigurationError(PortalException):
    """A required secret or identifier is missing."""

    status_code = 500

    def __init__(self, error: str = "Service not configured", message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", error, message, details)


class AuthenticationError(PortalException):
    """The service could not establish its own identity with an upstream API."""

    status_code = 500

    def __init__(self, error: str = "Authentication failed", message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", error, message, details)


class AuthorizationError(PortalException):
    """Caller credentials for the admin surface are missing or invalid."""

    status_code = 401

    def __init__(self, error: str = "Authentication required", message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", error, message, details)


class StoreReadError(PortalException):
    """Reading from the table store failed."""

    status_code = 500

    def __init__(self, error: str = "Failed to read from store", message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_READ_ERROR", error, message, details)


class StoreWriteError(PortalException):
    """Writing to the table store failed."""

    status_code = 500

    def __init__(self, error: str = "Failed to write to store", message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_WRITE_ERROR", error, message, details)


class ValidationError(PortalException):
    """Caller input is malformed."""

    status_code = 400

    def __init__(self, error: str = "Validation failed", message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", error, message, details)

    @classmethod
    def for_fields(cls, fields: Dict[str, str], error: str = "Validation failed") -> "ValidationError":
        """Build an error carrying one message per offending field."""
        message = "; ".join(fields.values()) if fields else None
        return cls(error, message, details={"fields": dict(fields)})


class NotFoundError(PortalException):
    """Requested record does not exist or is not visible."""

    status_code = 404

    def __init__(self, error: str = "Not found", message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", error, message, details)


class ConflictError(PortalException):
    """Request collides with an existing record."""

    status_code = 409

    def __init__(self, error: str = "Conflict", message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT", error, message, details)


class RateLimitError(PortalException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, error: str = "Too many requests",
                 message: Optional[str] = "Please wait before making another request",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", error, message, details)


class ProviderError(PortalException):
    """A completion provider produced no usable answer."""

    status_code = 502

    def __init__(self, provider: str, message: str = "No usable answer",
                 details: Optional[Dict[str, Any]] = None):
        self.provider = provider
        super().__init__("PROVIDER_ERROR", f"{provider}: {message}", None, details)


class ProviderExhaustedError(PortalException):
    """Every configured provider failed; callers convert this into a soft-fail answer."""

    status_code = 502

    def __init__(self, attempts: Optional[Dict[str, str]] = None):
        super().__init__(
            "PROVIDER_EXHAUSTED",
            "all providers failed",
            None,
            {"attempts": dict(attempts or {})},
        )
