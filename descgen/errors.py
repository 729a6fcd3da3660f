"""Application error taxonomy.

Every error raised on purpose inside descgen derives from ``AppError`` and
carries the HTTP status and machine-readable code the API layer reports.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import httpx


class AppError(Exception):
    """Base class for expected, reportable failures."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class WebhookSignatureError(AppError):
    """Inbound webhook failed signature verification."""

    status_code = 400
    code = "WEBHOOK_SIGNATURE_ERROR"

    def __init__(self, message: str = "Invalid webhook signature", *, details: Any = None):
        super().__init__(message, details=details)


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Authentication failed", *, details: Any = None):
        super().__init__(message, details=details)


class AuthorizationError(AppError):
    status_code = 403
    code = "AUTHORIZATION_ERROR"

    def __init__(self, message: str = "Insufficient permissions", *, details: Any = None):
        super().__init__(message, details=details)


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND_ERROR"

    def __init__(self, message: str = "Resource not found", *, details: Any = None):
        super().__init__(message, details=details)


class ConflictError(AppError):
    status_code = 409
    code = "DUPLICATE_ERROR"


class ServiceUnavailableError(AppError):
    """A required integration is not configured."""

    status_code = 503
    code = "SERVICE_UNAVAILABLE"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMIT_ERROR"

    def __init__(self, message: str = "Rate limit exceeded", *, details: Any = None):
        super().__init__(message, details=details)


class ErrorCause(str, Enum):
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMITED = "rate_limited"
    MALFORMED_RESPONSE = "malformed_response"
    TIMEOUT = "timeout"
    UPSTREAM_ERROR = "upstream_error"


class ExternalServiceError(AppError):
    """An upstream API (OpenAI, Shopify, Stripe) failed or misbehaved."""

    status_code = 502
    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(
        self,
        service: str,
        message: str,
        *,
        cause: ErrorCause = ErrorCause.UPSTREAM_ERROR,
        details: Any = None,
        upstream_status: int | None = None,
    ):
        super().__init__(f"{service} service error: {message}", details=details)
        self.service = service
        self.cause = cause
        self.upstream_status = upstream_status


def upstream_error(service: str, message: str, exc: httpx.HTTPError) -> ExternalServiceError:
    """Translate an httpx failure into an ExternalServiceError with a cause tag."""
    if isinstance(exc, httpx.TimeoutException):
        return ExternalServiceError(
            service, message, cause=ErrorCause.TIMEOUT, details={"error": str(exc)}
        )
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        try:
            body: Any = exc.response.json()
        except ValueError:
            body = exc.response.text[:500]
        cause = ErrorCause.RATE_LIMITED if status == 429 else ErrorCause.UPSTREAM_ERROR
        return ExternalServiceError(
            service,
            message,
            cause=cause,
            details={"status": status, "error": body},
            upstream_status=status,
        )
    return ExternalServiceError(service, message, details={"error": str(exc)})
