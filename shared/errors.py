"""
Shared error handling for the SpaceTraders proxy.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    status: int
    code: str
    message: str
    details: Dict[str, Any] = {}


class ProxyError(Exception):
    """Base exception for proxy services."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 status_code: Optional[int] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self, include_details: bool = True) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            status=self.status_code,
            code=self.code,
            message=self.message,
            details=self.details if include_details else {}
        )


class InvalidTokenError(ProxyError):
    """The upstream API rejected the bearer token."""

    status_code = 401

    def __init__(self, message: str = "Invalid API token. Please check your configuration.",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_TOKEN", message, details)


class AuthenticationError(ProxyError):
    """Inbound request is missing credentials."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class ForbiddenError(ProxyError):
    """Inbound request carried credentials that do not match."""

    status_code = 403

    def __init__(self, message: str = "Invalid bearer token.", details: Optional[Dict[str, Any]] = None):
        super().__init__("FORBIDDEN", message, details)


class ValidationError(ProxyError):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ConfigurationError(ProxyError):
    """The service is missing required configuration."""

    status_code = 500

    def __init__(self, message: str = "Service is misconfigured", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class RateLimitError(ProxyError):
    """Upstream rate limit still exceeded after the retry."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)
