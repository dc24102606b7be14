"""Shared test fixtures for tracker tests."""

from __future__ import annotations

import pytest

from ga_tracker.config import TrackerConfig
from ga_tracker.context import ClientContextResolver, RequestContext
from ga_tracker.tracker import Tracker
from ga_tracker.transport import Transport, TransportResponse


WEB_TID = "UA-1234567-8"
APP_TID = "UA-7654321-1"
GUID = "550e8400-e29b-41d4-a716-446655440000"


class RecordingTransport(Transport):
    """Transport that records requests instead of sending them."""

    def __init__(self, response: TransportResponse | None = None, error: Exception | None = None):
        self.calls: list[dict] = []
        self.response = response or TransportResponse(status_code=200, text="")
        self.error = error
        self.closed = False

    async def request(self, method, url, *, content=None, headers=None):
        self.calls.append({
            "method": method,
            "url": url,
            "content": content,
            "headers": dict(headers or {}),
        })
        if self.error is not None:
            raise self.error
        return self.response

    async def aclose(self) -> None:
        self.closed = True


def no_dns(host: str) -> str:
    raise OSError(f"lookup disabled in tests: {host}")


# =============================================================================
# Config / transport fixtures
# =============================================================================

@pytest.fixture
def config() -> TrackerConfig:
    """Unbatched config with both tracking ids."""
    return TrackerConfig(web_tracking_id=WEB_TID, app_tracking_id=APP_TID)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def resolver() -> ClientContextResolver:
    return ClientContextResolver(hostname_lookup=no_dns)


@pytest.fixture
def make_tracker(transport, resolver):
    """Factory for trackers sharing the recording transport."""
    def factory(**options) -> Tracker:
        options.setdefault("web_tracking_id", WEB_TID)
        return Tracker(
            config=TrackerConfig(**options),
            transport=transport,
            resolver=resolver,
        )

    return factory


@pytest.fixture
def request_context() -> RequestContext:
    return RequestContext(
        remote_addr="198.51.100.23",
        headers={"User-Agent": "Mozilla/5.0 (test)"},
        cookies={"_ga": "GA1.2.1234567890.1500000000"},
    )
