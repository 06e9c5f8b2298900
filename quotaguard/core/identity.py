"""Caller identity resolution for rate limiting.

Authenticated callers are keyed by their principal id. Anonymous callers are
keyed by a hash of their network address so raw addresses are never persisted
in the quota store.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass

from starlette.requests import Request

UNKNOWN_ADDRESS = "unknown"


@dataclass(frozen=True)
class CallerInfo:
    """Framework-neutral view of the caller.

    Attributes:
        principal_id: Authenticated user id, if any.
        forwarded_for: Raw X-Forwarded-For header value.
        real_ip: Raw X-Real-IP header value.
        client_host: Address of the direct connection.
    """

    principal_id: str | None = None
    forwarded_for: str | None = None
    real_ip: str | None = None
    client_host: str | None = None


def hash_address(address: str, secret: str | None = None) -> str:
    """Hash a network address into a short, stable, non-reversible token.

    Args:
        address: Client address (or ``"unknown"``).
        secret: Optional HMAC key. Without it the hash is a plain SHA-256,
            which is enough for storage hygiene but can be brute-forced over
            the IPv4 space.

    Returns:
        16 hex characters.
    """

    if secret:
        digest = hmac.new(secret.encode(), address.encode(), hashlib.sha256)
        return digest.hexdigest()[:16]
    return hashlib.sha256(address.encode()).hexdigest()[:16]


def client_address(caller: CallerInfo) -> str:
    """Pick the best available client address for an anonymous caller."""

    if caller.forwarded_for:
        first = caller.forwarded_for.split(",")[0].strip()
        if first:
            return first
    if caller.real_ip and caller.real_ip.strip():
        return caller.real_ip.strip()
    if caller.client_host:
        return caller.client_host
    return UNKNOWN_ADDRESS


def resolve_identifier(caller: CallerInfo, *, secret: str | None = None) -> str:
    """Derive the rate limit identifier for a caller.

    Examples:
        >>> resolve_identifier(CallerInfo(principal_id="42"))
        'user:42'
        >>> resolve_identifier(CallerInfo()).startswith("ip:")
        True
    """

    if caller.principal_id:
        return f"user:{caller.principal_id}"
    return f"ip:{hash_address(client_address(caller), secret)}"


def caller_from_request(request: Request) -> CallerInfo:
    """Build a CallerInfo from a Starlette request.

    The principal id is read from ``request.state.user_id``, which upstream
    authentication is expected to populate.
    """

    principal = getattr(request.state, "user_id", None)
    return CallerInfo(
        principal_id=str(principal) if principal else None,
        forwarded_for=request.headers.get("x-forwarded-for"),
        real_ip=request.headers.get("x-real-ip"),
        client_host=request.client.host if request.client else None,
    )
