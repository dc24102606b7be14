"""Tracker configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Any

from .errors import ConfigurationError
from .validation import validate_tracking_id


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class TrackerConfig:
    """
    Configuration for the measurement protocol tracker.

    Immutable once built. Can be created via:
    - Constructor arguments
    - A dict, YAML or JSON file (``from_dict`` / ``from_yaml`` / ``from_json``)
    - Environment variables (``from_env``, GA_TRACKER_*)
    """
    # Nice name for the application in reports
    application_name: str = "ga-tracker"

    # Collector endpoint
    ssl: bool = True
    host: str = "www.google-analytics.com"
    hit_path: str = "/collect"
    batch_path: str = "/batch"
    debug_path: str = "/debug"
    api_version: int = 1

    # Anonymous client id, used when a hit carries no valid cid
    client_id: str = "555"

    # Property ids
    app_tracking_id: str | None = None
    web_tracking_id: str | None = None

    # Quotas. Only max_batch_hit is acted upon, the rest are advisory.
    batching: bool = False
    max_batch_hit: int = 20
    max_batch_payload_size: int = 16  # KB
    max_hit_payload_size: int = 8  # KB
    max_hits_per_day: int = 200_000
    max_hits_per_month: int = 10_000_000
    max_hits_per_session: int = 500

    user_traits: tuple[str, ...] = ()

    geoid: str | None = "MZ"
    language: str = "pt"
    currency: str = "MZN"

    anonymize_ip: bool = True
    enabled: bool = True
    # Hits go to the validation endpoint, are never batched and failures raise
    debug: bool = False
    # Log every hit before it is queued, and collector responses
    log: bool = False

    # Peers allowed to supply client IP forwarding headers
    proxies: frozenset[str] = field(default_factory=frozenset)

    # Transport timeout (seconds)
    timeout: float = 30.0

    def __post_init__(self):
        # Accept lists from YAML/JSON
        object.__setattr__(self, "proxies", frozenset(self.proxies or ()))
        object.__setattr__(self, "user_traits", tuple(self.user_traits or ()))

        for name in ("web_tracking_id", "app_tracking_id"):
            value = getattr(self, name)
            if value is not None and not validate_tracking_id(value):
                raise ConfigurationError(f"Invalid {name}: {value!r}")

        if self.max_batch_hit < 1:
            raise ConfigurationError(f"max_batch_hit must be at least 1, got {self.max_batch_hit}")
        if self.api_version < 1:
            raise ConfigurationError(f"api_version must be positive, got {self.api_version}")
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")
        if not self.host:
            raise ConfigurationError("host is required")

    @property
    def base_url(self) -> str:
        scheme = "https://" if self.ssl else "http://"
        return f"{scheme}{self.host}{self.debug_path if self.debug else ''}"

    @property
    def hit_url(self) -> str:
        return f"{self.base_url}{self.hit_path}"

    @property
    def batch_url(self) -> str:
        return f"{self.base_url}{self.batch_path}"

    @property
    def exception_tracking_id(self) -> str | None:
        """Exceptions are reported against the app property when there is one."""
        return self.app_tracking_id or self.web_tracking_id

    @classmethod
    def from_dict(cls, data: dict) -> TrackerConfig:
        """Create config from dictionary."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown tracker options: {', '.join(sorted(unknown))}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str) -> TrackerConfig:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> TrackerConfig:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, prefix: str = "GA_TRACKER_", environ: dict[str, str] | None = None) -> TrackerConfig:
        """
        Load config from environment variables.

        Each field maps to ``<prefix><FIELD_NAME>``, e.g. GA_TRACKER_WEB_TRACKING_ID.
        Unset variables keep the field default.
        """
        environ = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        for f in fields(cls):
            raw = environ.get(f"{prefix}{f.name.upper()}")
            if raw is None:
                continue
            data[f.name] = _parse_env_value(f.name, raw, getattr(cls, f.name, None))
        return cls.from_dict(data)


def _parse_env_value(name: str, raw: str, default: Any) -> Any:
    if name in ("proxies", "user_traits"):
        return [part.strip() for part in raw.split(",") if part.strip()]

    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ConfigurationError(f"Invalid boolean for {name}: {raw!r}")

    try:
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid number for {name}: {raw!r}") from None

    if default is None:
        return raw or None
    return raw
