"""Ordered buffer of pending hits."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from .events import Event


@dataclass
class HitQueue:
    """
    Pending hits in insertion order.

    Owns the flush threshold: a flush is due in debug mode, when batching
    is off, or once ``max_batch_hit`` hits are waiting. Not safe for
    concurrent mutation; the Tracker serializes access.
    """
    max_batch_hit: int = 20

    _events: list[Event] = field(default_factory=list, init=False)

    def append(self, event: Event) -> None:
        self._events.append(event)

    def should_flush(self, debug: bool = False, batching: bool = True) -> bool:
        if not self._events:
            return False
        return debug or not batching or len(self._events) >= self.max_batch_hit

    def snapshot(self) -> list[Event]:
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()

    @property
    def is_empty(self) -> bool:
        return not self._events

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events)
