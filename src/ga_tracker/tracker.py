"""Measurement protocol tracker."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from .builder import EventBuilder
from .config import TrackerConfig
from .context import ClientContextResolver, RequestContext
from .errors import NotEnabledError, NotInitializedError, ValidationError
from .events import EventKind
from .flusher import TRACKING_LOG, Flusher
from .queue import HitQueue
from .transport import HttpxTransport, Transport


logger = logging.getLogger(__name__)


@dataclass
class Tracker:
    """
    Sends application events to a measurement protocol collector.

    Usage:
        async with Tracker(TrackerConfig(web_tracking_id="UA-1234567-8")) as tracker:
            await tracker.track_page_view(cid, "example.com", "/", "home")

    Hits are queued and flushed when batching is off, in debug mode, or
    once ``max_batch_hit`` hits are waiting. Tracking never raises in
    production configuration: invalid hits and delivery failures are
    logged and dropped. In debug mode they raise.

    One tracker owns one queue. Calls are serialized on an asyncio lock;
    threaded hosts must confine a tracker to one event loop.
    """
    config: TrackerConfig = field(default_factory=TrackerConfig)
    transport: Transport | None = None
    logger: logging.Logger | None = None
    resolver: ClientContextResolver = field(default_factory=ClientContextResolver)

    _initialized: bool = field(default=False, init=False)
    _queue: HitQueue = field(init=False)
    _builder: EventBuilder = field(init=False)
    _flusher: Flusher = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _stats: dict = field(default_factory=dict, init=False)

    def __post_init__(self):
        if self.transport is None:
            self.transport = HttpxTransport(timeout=self.config.timeout)
        if self.logger is None:
            self.logger = logger

        self._queue = HitQueue(max_batch_hit=self.config.max_batch_hit)
        self._builder = EventBuilder(config=self.config, resolver=self.resolver)
        self._flusher = Flusher(config=self.config, transport=self.transport)
        self._stats = {
            "tracked": 0,
            "rejected": 0,
            "skipped": 0,
        }
        self._initialized = True

    async def __aenter__(self) -> Tracker:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Flush what is left, close the transport and stop accepting hits."""
        if not self._initialized:
            return
        try:
            await self.flush()
        finally:
            self._initialized = False
            await self.transport.aclose()
            self.logger.info(f"{TRACKING_LOG} tracker closed. Stats: {self.stats}")

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    @property
    def stats(self) -> dict:
        return {
            **self._stats,
            **self._flusher.stats,
            "queue_depth": self.queue_depth,
        }

    # Core

    async def track(
        self,
        kind: EventKind | str,
        data: dict[str, Any],
        props: dict[str, str] | None = None,
        metrics: dict[str, float] | None = None,
        request: RequestContext | None = None,
        proxies: Iterable[str] = (),
    ) -> bool:
        """
        Queue a hit of the given kind, flushing if the threshold is reached.

        Returns True if the hit was queued, False if it was dropped.
        """
        return await self._track("track", lambda: self._builder.build(
            kind, data, props, metrics, request, proxies,
        ))

    async def flush(self) -> None:
        """Send all queued hits now."""
        async with self._lock:
            await self._flusher.flush(self._queue)

    async def _track(self, operation: str, build) -> bool:
        if not self._initialized:
            return self._skip(NotInitializedError(f"{operation}: tracker is not initialized"))
        if not self.config.enabled:
            return self._skip(NotEnabledError(f"{operation}: tracker is not enabled"))

        try:
            event = await build()
        except ValidationError as e:
            self._stats["rejected"] += 1
            self.logger.error(f"{TRACKING_LOG} {operation} invalid param {e.param}: {e}")
            if self.config.debug:
                raise
            return False

        if self.config.log:
            self.logger.info(f"{TRACKING_LOG} {operation} {event.to_dict()}")

        async with self._lock:
            self._queue.append(event)
            self._stats["tracked"] += 1
            if self._queue.should_flush(debug=self.config.debug, batching=self.config.batching):
                await self._flusher.flush(self._queue)
        return True

    def _skip(self, error: Exception) -> bool:
        self._stats["skipped"] += 1
        self.logger.warning(f"{TRACKING_LOG} {error}")
        return False

    # Public API

    async def start_session(self, cid: str, request: RequestContext | None = None, proxies: Iterable[str] = ()) -> bool:
        """Mark the start of a session for a client id."""
        return await self._track("start_session", lambda: self._builder.build(
            EventKind.NON_INTERACTIVE, self._builder.session(cid, "start"), request=request, proxies=proxies,
        ))

    async def end_session(self, cid: str, request: RequestContext | None = None, proxies: Iterable[str] = ()) -> bool:
        """Mark the end of a session for a client id."""
        return await self._track("end_session", lambda: self._builder.build(
            EventKind.NON_INTERACTIVE, self._builder.session(cid, "end"), request=request, proxies=proxies,
        ))

    async def track_page_view(
        self,
        cid: str,
        hostname: str,
        page: str,
        title: str,
        request: RequestContext | None = None,
        proxies: Iterable[str] = (),
    ) -> bool:
        return await self._track("track_page_view", lambda: self._builder.build(
            EventKind.PAGE_VIEW,
            self._builder.page_view(cid, hostname, page, title),
            request=request,
            proxies=proxies,
        ))

    async def track_event(
        self,
        cid: str,
        category: str,
        action: str,
        label: str | None = None,
        value: int | None = None,
        request: RequestContext | None = None,
        proxies: Iterable[str] = (),
    ) -> bool:
        return await self._track("track_event", lambda: self._builder.build(
            EventKind.EVENT,
            self._builder.event(cid, category, action, label, value),
            request=request,
            proxies=proxies,
        ))

    async def track_transaction(
        self,
        cid: str,
        transaction_id: str | int,
        affiliation: str | None = None,
        revenue: float | None = 0,
        shipping: float | None = 0,
        tax: float | None = 0,
        currency: str | None = None,
        request: RequestContext | None = None,
        proxies: Iterable[str] = (),
    ) -> bool:
        """
        Track an e-commerce transaction.

        Send one transaction hit for the whole purchase, then one item hit
        per item; the transaction id links them together.
        """
        return await self._track("track_transaction", lambda: self._builder.build(
            EventKind.TRANSACTION,
            self._builder.transaction(cid, transaction_id, affiliation, revenue, shipping, tax, currency),
            request=request,
            proxies=proxies,
        ))

    async def track_transaction_item(
        self,
        cid: str,
        transaction_id: str | int,
        name: str,
        price: float | None = 0,
        quantity: int | None = 1,
        sku: str | None = None,
        variation: str | None = None,
        currency: str | None = None,
        request: RequestContext | None = None,
        proxies: Iterable[str] = (),
    ) -> bool:
        return await self._track("track_transaction_item", lambda: self._builder.build(
            EventKind.ITEM,
            self._builder.item(cid, transaction_id, name, price, quantity, sku, variation, currency),
            request=request,
            proxies=proxies,
        ))

    async def track_social(
        self,
        cid: str,
        action: str,
        network: str,
        target: str,
        request: RequestContext | None = None,
        proxies: Iterable[str] = (),
    ) -> bool:
        return await self._track("track_social", lambda: self._builder.build(
            EventKind.SOCIAL,
            self._builder.social(cid, action, network, target),
            request=request,
            proxies=proxies,
        ))

    async def track_exception(
        self,
        cid: str,
        ex: Any = None,
        is_fatal: bool = False,
        request: RequestContext | None = None,
        proxies: Iterable[str] = (),
    ) -> bool:
        """
        Track an exception.

        ``ex`` is a message string, a caught exception (its message is
        reported) or a Message/CapturedError. The hit is reported against
        the app tracking id.
        """
        return await self._track("track_exception", lambda: self._builder.build(
            EventKind.EXCEPTION,
            self._builder.exception(cid, ex, is_fatal),
            request=request,
            proxies=proxies,
        ))

    async def track_user_timing(
        self,
        cid: str,
        category: str,
        variable: str,
        time: int,
        label: str | None = None,
        dns_load_time: int | None = None,
        page_download_time: int | None = None,
        redirect_response_time: int | None = None,
        tcp_connect_time: int | None = None,
        server_response_time: int | None = None,
        request: RequestContext | None = None,
        proxies: Iterable[str] = (),
    ) -> bool:
        """Track a user timing; the *_time arguments are browser load times in ms."""
        return await self._track("track_user_timing", lambda: self._builder.build(
            EventKind.TIMING,
            self._builder.timing(
                cid,
                category,
                variable,
                time,
                label,
                dns_load_time,
                page_download_time,
                redirect_response_time,
                tcp_connect_time,
                server_response_time,
            ),
            request=request,
            proxies=proxies,
        ))

    async def track_screen_view(
        self,
        cid: str,
        app_name: str,
        app_version: str,
        app_id: str,
        app_installer_id: str,
        screen_name: str,
        request: RequestContext | None = None,
        proxies: Iterable[str] = (),
    ) -> bool:
        return await self._track("track_screen_view", lambda: self._builder.build(
            EventKind.SCREEN_VIEW,
            self._builder.screen_view(cid, app_name, app_version, app_id, app_installer_id, screen_name),
            request=request,
            proxies=proxies,
        ))
