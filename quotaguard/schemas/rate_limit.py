"""Pydantic schemas for quota and admin endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ResetRateLimitRequest(BaseModel):
    """Administrative reset of a single quota key."""

    identifier: str = Field(
        ...,
        min_length=1,
        description="Rate limit identifier, e.g. 'user:42' or 'ip:<hash>'.",
    )
    limit_type: str = Field(
        ..., min_length=1, description="Registered limit type, e.g. 'login'."
    )


class ResetRateLimitResponse(BaseModel):
    identifier: str
    limit_type: str
    reset: bool = True


class CleanupResponse(BaseModel):
    removed: int = Field(
        ..., ge=0, description="Entries removed by this invocation (0 when none remain)."
    )


class RateLimitStatusResponse(BaseModel):
    """Read-only quota state for one key."""

    identifier: str
    limit_type: str
    limit: int
    remaining: int
    reset_at: datetime | None = Field(
        default=None,
        description="When the current window or block ends; null for a fresh key.",
    )
    blocked: bool


class PolicyResponse(BaseModel):
    limit_type: str
    quota: int
    window_seconds: int
    block_seconds: int | None = None
    fail_closed: bool = False


class ConsumeResponse(BaseModel):
    """Decision returned to callers delegating quota checks to this service."""

    allowed: bool
    limit_type: str
    limit: int
    remaining: int
    reset_at: datetime
    degraded: bool = Field(
        default=False,
        description="True when the quota store was unavailable and the call failed open.",
    )
