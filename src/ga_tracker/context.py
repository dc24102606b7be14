"""Client context (IP, user agent, analytics UID) from request data."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping

from starlette.requests import Request

from .validation import validate_ip


logger = logging.getLogger(__name__)


# Checked in priority order, only when the direct peer is a trusted proxy
FORWARDED_HEADERS = (
    "x-forwarded-for",
    "x-forwarded",
    "x-cluster-client-ip",
    "client-ip",
)

GA_COOKIE = "_ga"
UTMA_COOKIE = "__utma"


@dataclass(frozen=True)
class RequestContext:
    """
    Read-only view of the request a hit is tracked for.

    Passed explicitly into each tracking call; nothing is read from
    process-global state.
    """
    remote_addr: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(
            self, "headers", {k.lower(): v for k, v in (self.headers or {}).items()}
        )
        object.__setattr__(self, "cookies", dict(self.cookies or {}))

    @property
    def user_agent(self) -> str | None:
        return self.headers.get("user-agent")

    @classmethod
    def from_request(cls, request: Request) -> RequestContext:
        """Build a context from a Starlette request."""
        return cls(
            remote_addr=request.client.host if request.client else None,
            headers=dict(request.headers),
            cookies=dict(request.cookies),
        )


@dataclass(frozen=True, slots=True)
class ClientContext:
    """Per-hit client data. ``uid`` is 0 when unresolved."""
    ip: str | None = None
    user_agent: str | None = None
    uid: int = 0


@dataclass
class ClientContextResolver:
    """
    Resolves a best-effort client IP and analytics UID. Never raises.

    Forwarding headers are honoured only when the direct peer is in the
    trusted proxy set, so a client cannot spoof its own address. The
    hostname fallback runs in the loop's default executor.
    """
    hostname_lookup: Callable[[str], str] = socket.gethostbyname

    async def resolve(self, request: RequestContext | None, proxies: Iterable[str] = ()) -> ClientContext:
        if request is None:
            return ClientContext()
        return ClientContext(
            ip=await self.resolve_ip(request, proxies),
            user_agent=request.user_agent,
            uid=self.resolve_uid(request.cookies),
        )

    async def resolve_ip(self, request: RequestContext, proxies: Iterable[str] = ()) -> str | None:
        remote = request.remote_addr
        if not validate_ip(remote):
            return await self._lookup(remote)

        if _is_trusted(remote, proxies):
            for header in FORWARDED_HEADERS:
                value = request.headers.get(header)
                if value is None:
                    continue
                forwarded = value.split(",")[0].strip()
                if validate_ip(forwarded):
                    return forwarded

        return remote

    def resolve_uid(self, cookies: Mapping[str, str]) -> int:
        """
        Analytics UID from the ``_ga`` cookie, falling back to ``__utma``.

        _ga:    GA<format>.<domain>.<uid>.<first-visit>
        __utma: <domain>.<uid>.<first>.<previous>.<session-start>.<visits>
        """
        if GA_COOKIE in cookies:
            value = cookies[GA_COOKIE]
            if value.startswith("GA"):
                return _numeric_token(value[2:], 2)
            return 0
        if UTMA_COOKIE in cookies:
            return _numeric_token(cookies[UTMA_COOKIE], 1)
        return 0

    async def _lookup(self, host: str | None) -> str | None:
        """Hostname fallback; the IP is omitted rather than fabricated."""
        if not host:
            return None
        loop = asyncio.get_running_loop()
        try:
            resolved = await loop.run_in_executor(None, self.hostname_lookup, host)
        except (OSError, UnicodeError) as e:
            logger.debug(f"Could not resolve client host {host!r}: {e}")
            return None
        return resolved if validate_ip(resolved) else None


def _normalize_ip(value: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        address = ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def _is_trusted(remote: str, proxies: Iterable[str]) -> bool:
    peer = _normalize_ip(remote)
    if peer is None:
        return False
    return any(_normalize_ip(proxy) == peer for proxy in proxies)


def _numeric_token(value: str, position: int) -> int:
    parts = value.split(".")
    if len(parts) <= position:
        return 0
    token = parts[position]
    if not (token.isascii() and token.isdigit()):
        return 0
    return int(token)
