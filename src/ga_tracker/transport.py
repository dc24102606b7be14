"""Pluggable HTTP transport for delivering hits."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Mapping

import httpx

from .errors import TransportError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportResponse:
    """Settled collector response."""
    status_code: int
    text: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)


class Transport(ABC):
    """
    Abstract base class for transports.

    A transport sends one request and either returns the response or
    raises TransportError (network failure, timeout, non-2xx status).
    TLS, redirects and pooling are the transport's concern.
    """

    @abstractmethod
    async def request(
        self,
        method: str,
        url: str,
        *,
        content: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        ...

    async def aclose(self) -> None:
        """Release transport resources (called on tracker shutdown)."""
        pass


@dataclass
class HttpxTransport(Transport):
    """
    Transport backed by ``httpx.AsyncClient``.

    Pass a client to share a connection pool; otherwise one is created
    lazily and closed by ``aclose``.
    """
    client: httpx.AsyncClient | None = None
    timeout: float = 30.0
    follow_redirects: bool = True

    _owns_client: bool = field(default=False, init=False)

    def _get_client(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=self.follow_redirects,
            )
            self._owns_client = True
        return self.client

    async def request(
        self,
        method: str,
        url: str,
        *,
        content: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        client = self._get_client()
        try:
            response = await client.request(
                method,
                url,
                content=content,
                headers=dict(headers or {}),
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request to {url} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e}") from e

        if not response.is_success:
            raise TransportError(
                f"Collector returned {response.status_code} for {method} {url}",
                status_code=response.status_code,
            )

        return TransportResponse(
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None
            self._owns_client = False
