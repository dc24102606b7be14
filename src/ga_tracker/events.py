"""Hit types and queued event records."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from .errors import ValidationError


class EventKind(str, Enum):
    """Hit type, valued by its measurement protocol code."""
    NON_INTERACTIVE = "ni"
    EVENT = "event"
    EXCEPTION = "exception"
    PAGE_VIEW = "pageview"
    SCREEN_VIEW = "screenview"
    TRANSACTION = "transaction"
    ITEM = "item"
    SOCIAL = "social"
    TIMING = "timing"

    @classmethod
    def coerce(cls, value: Any) -> EventKind:
        """Accept a kind or its wire code."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError("kind", f"{value!r} is not a valid event type") from None


@dataclass
class Event:
    """
    One queued hit.

    ``data`` is the ordered field set that ends up on the wire. ``props``
    and ``metrics`` are validated but not merged into the payload.
    """
    kind: EventKind
    name: str
    data: dict[str, Any]
    props: dict[str, str] = field(default_factory=dict)
    metrics: dict[str, float] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def create(
        cls,
        kind: EventKind,
        data: dict[str, Any],
        props: dict[str, str] | None = None,
        metrics: dict[str, float] | None = None,
    ) -> Event:
        """Factory method; the name is always the kind's code."""
        return cls(
            kind=kind,
            name=kind.value,
            data=dict(data),
            props=dict(props or {}),
            metrics=dict(metrics or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "name": self.name,
            "data": dict(self.data),
            "props": dict(self.props),
            "metrics": dict(self.metrics),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class Message:
    """Exception described by a plain message."""
    message: str

    @property
    def text(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class CapturedError:
    """Exception described by a caught error's class name and message."""
    kind: str
    message: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> CapturedError:
        return cls(kind=type(exc).__name__, message=str(exc))

    @property
    def text(self) -> str:
        return self.message or self.kind


ExceptionDescription = Union[Message, CapturedError]


def describe_exception(value: Any) -> ExceptionDescription:
    """Resolve the ``ex`` argument of an exception hit to a description."""
    if isinstance(value, (Message, CapturedError)):
        return value
    if isinstance(value, BaseException):
        return CapturedError.from_exception(value)
    if isinstance(value, str):
        return Message(value)
    if value is None:
        raise ValidationError("ex")
    raise ValidationError("ex", f"invalid param type for ex: {type(value).__name__}")
