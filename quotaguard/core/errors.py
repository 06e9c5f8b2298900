"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Quota store failures (``QuotaStoreError`` and subclasses) are transient
infrastructure errors: the limiter converts them into a fallback decision and
they never reach the protected endpoint's caller. ``UnknownPolicyError`` is a
misconfiguration and always propagates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    limit_type: str
    key: str
    retry_after: int
    reset_at: str
    backend: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class UnknownPolicyError(AppError):
    """Raised when a caller names a limit type that is not registered."""


class QuotaStoreError(AppError):
    """Base class for quota store failures (not raised for missing entries)."""


class StoreUnavailableError(QuotaStoreError):
    """Raised when the quota store cannot be reached or the driver fails."""


class TransactionTimeoutError(QuotaStoreError):
    """Raised when a store transaction exceeds its deadline."""


class TransactionAbortedError(StoreUnavailableError):
    """Raised when optimistic contention persists past the retry bound."""


class AdapterInternalError(AppError):
    """Unexpected failure inside the HTTP rate limit adapter."""


class RateLimitExceededError(AppError):
    """Raised by the HTTP adapter when a caller exhausted its quota.

    Attributes:
        limit: Policy quota, echoed in the X-RateLimit-Limit header.
        retry_after: Seconds the client should wait.
        reset_at: ISO-8601 timestamp when the quota resets.
        headers: Response headers carried to the exception handler.
    """

    def __init__(
        self,
        *,
        message: str,
        limit: int,
        retry_after: int,
        reset_at: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(
            code="RATE_LIMIT_EXCEEDED",
            message=message,
            details={"retry_after": retry_after, "reset_at": reset_at},
        )
        self.limit = limit
        self.retry_after = retry_after
        self.reset_at = reset_at
        self.headers = headers or {}
