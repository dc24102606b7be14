"""Tracker exceptions."""

from __future__ import annotations


class TrackerError(Exception):
    """Base exception for tracker errors."""
    pass


class ConfigurationError(TrackerError):
    """Tracker configuration is invalid."""
    pass


class NotInitializedError(TrackerError):
    """Tracking attempted on a tracker that is not (or no longer) initialized."""
    pass


class NotEnabledError(TrackerError):
    """Tracking attempted while the tracker is disabled."""
    pass


class ValidationError(TrackerError):
    """A hit field is missing or has the wrong shape."""

    def __init__(self, param: str, message: str | None = None):
        self.param = param
        super().__init__(message or f"invalid param {param}")


class TransportError(TrackerError):
    """Sending hits to the collector failed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class DebugValidationError(TrackerError):
    """The debug collector rejected one or more hits."""

    def __init__(self, message: str, messages: list[str] | None = None):
        self.messages = messages or []
        super().__init__(message)
