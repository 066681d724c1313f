"""Limiter key derivation.

Turns a request's identity signals into a stable limiter key. One
parameterized ``KeyDeriver`` covers every profile; profiles differ only in
their ``KeyStrategy`` and optional key prefix.

IP precedence (first parseable value wins):
1. ``cf-connecting-ip`` (CDN-trusted client IP)
2. ``x-real-ip`` (reverse proxy)
3. first hop of ``x-forwarded-for``
4. socket peer address, when the web layer supplied one
5. the literal ``"unknown"``

Headers that do not parse as an IP address are skipped, so derivation never
fails.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Mapping

if TYPE_CHECKING:
    from fastapi import Request

logger = logging.getLogger(__name__)

CDN_CLIENT_IP_HEADER = "cf-connecting-ip"
REAL_IP_HEADER = "x-real-ip"
FORWARDED_FOR_HEADER = "x-forwarded-for"
UNKNOWN_CLIENT = "unknown"


class KeyStrategy(str, Enum):
    """How a profile identifies its clients."""

    IP = "ip"
    USER_OR_IP = "user_or_ip"


@dataclass(frozen=True)
class RequestIdentity:
    """Framework-independent view of the signals used to key a request.

    Attributes:
        headers: Request headers; lookups are case-insensitive.
        user_id: Authenticated user id, when an upstream auth layer set one.
        peer_address: Socket peer address, when the web layer exposes it.
    """

    headers: Mapping[str, str] = field(default_factory=dict)
    user_id: str | None = None
    peer_address: str | None = None

    def __post_init__(self) -> None:
        normalized = {name.lower(): value for name, value in self.headers.items()}
        object.__setattr__(self, "headers", normalized)

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    @classmethod
    def from_request(cls, request: Request, *, include_peer: bool = True) -> RequestIdentity:
        """Build an identity from a FastAPI/Starlette request.

        Args:
            request: Incoming request.
            include_peer: Whether the socket peer address may be used as a
                fallback before ``"unknown"``.

        Returns:
            RequestIdentity for key derivation.
        """
        user_id = getattr(request.state, "user_id", None)
        peer = request.client.host if include_peer and request.client else None
        return cls(
            headers=dict(request.headers.items()),
            user_id=str(user_id) if user_id is not None else None,
            peer_address=peer,
        )


def _parse_ip(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def resolve_client_ip(identity: RequestIdentity) -> str:
    """Resolve the client IP following the documented precedence."""

    candidates = (
        identity.header(CDN_CLIENT_IP_HEADER),
        identity.header(REAL_IP_HEADER),
        (identity.header(FORWARDED_FOR_HEADER) or "").split(",")[0],
        identity.peer_address,
    )
    for candidate in candidates:
        ip = _parse_ip(candidate)
        if ip is not None:
            return ip

    logger.debug("rate_limit.client_ip_unresolved", extra={"fallback": UNKNOWN_CLIENT})
    return UNKNOWN_CLIENT


@dataclass(frozen=True)
class KeyDeriver:
    """Derive limiter keys for one profile.

    Keys look like ``[prefix:]ip:<address>`` or ``[prefix:]user:<id>``.
    """

    strategy: KeyStrategy = KeyStrategy.IP
    prefix: str | None = None

    def derive(self, identity: RequestIdentity) -> str:
        if self.strategy is KeyStrategy.USER_OR_IP:
            user_id = (identity.user_id or "").strip()
            if user_id:
                return self._namespaced(f"user:{user_id}")
        return self._namespaced(f"ip:{resolve_client_ip(identity)}")

    __call__ = derive

    def _namespaced(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key
