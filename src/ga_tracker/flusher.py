"""Drains the hit queue to the collector."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

from .config import TrackerConfig
from .errors import DebugValidationError, TransportError
from .events import Event
from .queue import HitQueue
from .transport import Transport, TransportResponse
from .validation import validate_guid


logger = logging.getLogger(__name__)

TRACKING_LOG = "Tracking Log:"

BATCH_HEADERS = {
    "cache-control": "no-cache",
    "content-type": "text/html",
}


def encode_payload(fields: dict[str, Any]) -> str:
    """URL-encode a hit. Booleans go out as 1/0, None values are dropped."""
    pairs = []
    for key, value in fields.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = 1 if value else 0
        pairs.append((key, str(value)))
    return urlencode(pairs)


@dataclass
class Flusher:
    """
    Serializes queued hits and hands them to the transport.

    One hit is sent as a GET to the hit endpoint, several as one POST to
    the batch endpoint with a CRLF-separated line per hit. The queue is
    cleared once the request settles, whatever the outcome: hits are
    attempted at most once and never retried.
    """
    config: TrackerConfig
    transport: Transport

    _stats: dict = field(default_factory=dict, init=False)

    def __post_init__(self):
        self._stats = {
            "batches_sent": 0,
            "hits_sent": 0,
            "hits_dropped": 0,
            "flush_errors": 0,
        }

    def build_shared_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"v": self.config.api_version}
        if self.config.web_tracking_id:
            body["tid"] = self.config.web_tracking_id
        if self.config.anonymize_ip:
            body["aip"] = 1
        # Cache buster
        body["z"] = int(time.time())
        return body

    def build_single(self, event: Event, shared: dict[str, Any] | None = None) -> tuple[str, str]:
        """URL and query string for a single hit."""
        body = dict(self.build_shared_body() if shared is None else shared)
        body.update(event.data)
        self._ensure_client_id(body)
        return self.config.hit_url, encode_payload(body)

    def build_batch(self, events: list[Event], shared: dict[str, Any] | None = None) -> tuple[str, str]:
        """URL and CRLF-joined body for a batch of hits."""
        shared = self.build_shared_body() if shared is None else shared
        lines = []
        for event in events:
            fields = dict(event.data)
            self._ensure_client_id(fields)
            for key, value in shared.items():
                # An event-specific tracking id wins over the default one
                if key == "tid" and "tid" in fields:
                    continue
                fields[key] = value
            lines.append(encode_payload(fields))
        body = "\r\n".join(lines)
        if body.endswith("\r\n"):
            body = body[:-2]
        return self.config.batch_url, body

    async def flush(self, queue: HitQueue) -> None:
        events = queue.snapshot()
        if not events:
            return

        try:
            response = await self._send(events)
        except Exception as e:
            self._stats["flush_errors"] += 1
            self._stats["hits_dropped"] += len(events)
            logger.error(f"{TRACKING_LOG} flush of {len(events)} hit(s) failed, dropping: {e}")
            if self.config.debug:
                if isinstance(e, TransportError):
                    raise
                raise TransportError(f"Transport failed: {e}") from e
            return
        finally:
            queue.clear()

        self._stats["batches_sent"] += 1
        self._stats["hits_sent"] += len(events)

        if self.config.log:
            logger.info(f"{TRACKING_LOG} flush response {response.status_code}: {response.text}")

        if self.config.debug:
            self._check_debug_response(response)

    async def _send(self, events: list[Event]) -> TransportResponse:
        if len(events) == 1:
            url, query = self.build_single(events[0])
            logger.debug(f"{TRACKING_LOG} GET {url}?{query}")
            return await self.transport.request("GET", f"{url}?{query}")

        url, body = self.build_batch(events)
        logger.debug(f"{TRACKING_LOG} POST {url} ({len(events)} hits)")
        return await self.transport.request("POST", url, content=body, headers=BATCH_HEADERS)

    def _ensure_client_id(self, fields: dict[str, Any]) -> None:
        if not validate_guid(fields.get("cid")):
            fields["cid"] = self.config.client_id

    def _check_debug_response(self, response: TransportResponse) -> None:
        """Raise if the validation endpoint rejected any hit."""
        try:
            result = json.loads(response.text)
        except ValueError as e:
            logger.error(f"{TRACKING_LOG} unparseable debug response: {e}")
            raise DebugValidationError(f"Unparseable debug response: {e}") from e

        if not isinstance(result, dict):
            raise DebugValidationError(f"Unexpected debug response: {response.text!r}")

        invalid = [
            hit for hit in result.get("hitParsingResult", [])
            if not (isinstance(hit, dict) and hit.get("valid", False))
        ]
        if not invalid:
            return

        messages = [
            message.get("description", "")
            for hit in invalid if isinstance(hit, dict)
            for message in hit.get("parserMessage", [])
        ]
        logger.error(f"{TRACKING_LOG} {len(invalid)} hit(s) rejected: {messages}")
        raise DebugValidationError(f"{len(invalid)} hit(s) rejected by the collector", messages)

    @property
    def stats(self) -> dict:
        return dict(self._stats)
