"""
Custom Exception Classes for JukeBoxd.

This module defines the error taxonomy shared by every layer of the service.
Services raise these exceptions; the HTTP layer maps them to status codes and
renders them as JSON error envelopes.

Key Components:
- `JukeBoxdException`: The base exception class. It carries a human-readable
  message, a stable `error_code` and an optional `details` dictionary.
- Domain exceptions: `ValidationError`, `InvalidOperationError`,
  `AuthenticationError`, `ForbiddenError`, `NotFoundError`, `ConflictError`,
  `RateLimitError`, `DependencyFailureError` and `ServiceUnavailableError`.
- `to_http_exception`: Maps an exception's `error_code` to FastAPI's
  `HTTPException`, keeping the internal taxonomy independent of HTTP.

Services never retry. Every failure surfaces immediately to the caller, which
is expected to either report it or let the exception handlers convert it.
"""

from typing import Optional, Dict, Any
from fastapi import HTTPException


class JukeBoxdException(Exception):
    """Base exception class for JukeBoxd"""

    def __init__(
        self,
        message: str,
        error_code: str = "JUKEBOXD_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(JukeBoxdException):
    """Raised when input validation fails"""

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"Validation failed for field '{field}': {reason}",
            "VALIDATION_ERROR",
            {"field": field, "value": str(value), "reason": reason},
        )


class InvalidOperationError(ValidationError):
    """Raised when a well-formed request asks for something that is not allowed"""

    def __init__(self, operation: str, reason: str):
        JukeBoxdException.__init__(
            self,
            f"Invalid operation '{operation}': {reason}",
            "INVALID_OPERATION",
            {"operation": operation, "reason": reason},
        )


class AuthenticationError(JukeBoxdException):
    """Raised when authentication fails"""

    def __init__(self, reason: str):
        super().__init__(
            f"Authentication failed: {reason}",
            "AUTHENTICATION_ERROR",
            {"reason": reason},
        )


class ForbiddenError(JukeBoxdException):
    """Raised when the caller does not own the resource it tries to change"""

    def __init__(self, resource: str, reason: str):
        super().__init__(
            f"Access to {resource} denied: {reason}",
            "FORBIDDEN",
            {"resource": resource, "reason": reason},
        )


class NotFoundError(JukeBoxdException):
    """Raised when a referenced user, album, rating or review does not exist"""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource.capitalize()} not found: {identifier}",
            "NOT_FOUND",
            {"resource": resource, "identifier": str(identifier)},
        )


class ConflictError(JukeBoxdException):
    """Raised when a write would violate a uniqueness constraint"""

    def __init__(self, resource: str, reason: str):
        super().__init__(
            f"Conflict on {resource}: {reason}",
            "CONFLICT",
            {"resource": resource, "reason": reason},
        )


class RateLimitError(JukeBoxdException):
    """Raised when rate limit is exceeded."""

    def __init__(self, identifier: str, retry_after: float = 0.0):
        super().__init__(
            f"Rate limit exceeded for {identifier}. Try again in {retry_after:.1f} seconds",
            "RATE_LIMIT_EXCEEDED",
            {"identifier": identifier, "retry_after": round(retry_after, 1)},
        )
        self.retry_after = retry_after


class DependencyFailureError(JukeBoxdException):
    """Raised when the relational store or another collaborator cannot be reached"""

    def __init__(self, dependency: str, reason: str):
        super().__init__(
            f"Dependency '{dependency}' failed: {reason}",
            "DEPENDENCY_FAILURE",
            {"dependency": dependency, "reason": reason},
        )


class ServiceUnavailableError(JukeBoxdException):
    """Raised when external services are unavailable"""

    def __init__(self, service: str, reason: str):
        super().__init__(
            f"Service '{service}' is unavailable: {reason}",
            "SERVICE_UNAVAILABLE",
            {"service": service, "reason": reason},
        )


STATUS_CODE_MAP = {
    "VALIDATION_ERROR": 400,
    "INVALID_OPERATION": 400,
    "AUTHENTICATION_ERROR": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "RATE_LIMIT_EXCEEDED": 429,
    "DEPENDENCY_FAILURE": 503,
    "SERVICE_UNAVAILABLE": 503,
}


def status_code_for(exc: JukeBoxdException) -> int:
    """Return the HTTP status code for an application exception"""
    return STATUS_CODE_MAP.get(exc.error_code, 500)


def to_http_exception(exc: JukeBoxdException) -> HTTPException:
    """Convert JukeBoxdException to FastAPI HTTPException"""
    return HTTPException(
        status_code=status_code_for(exc),
        detail={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )
