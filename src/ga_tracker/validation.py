"""Pure validators for hit fields and tracker options."""

from __future__ import annotations

import ipaddress
import re
from numbers import Real
from typing import Any

TRACKING_ID_PATTERN = re.compile(r"UA-\d{4,10}-\d{1,4}", re.ASCII)

# RFC 4122 textual form, optionally wrapped in braces
GUID_PATTERN = re.compile(
    r"\{?[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\}?",
    re.IGNORECASE,
)


def validate_props(props: Any) -> bool:
    """Properties must be a mapping of string values."""
    if not isinstance(props, dict):
        return False
    return all(isinstance(value, str) for value in props.values())


def validate_metrics(metrics: Any) -> bool:
    """Metrics must be a mapping of numeric (int or float) values."""
    if not isinstance(metrics, dict):
        return False
    return all(is_number(value) for value in metrics.values())


def validate_tracking_id(tracking_id: Any) -> bool:
    if not isinstance(tracking_id, str):
        return False
    return TRACKING_ID_PATTERN.fullmatch(tracking_id) is not None


def validate_guid(guid: Any) -> bool:
    """
    Check a client id is in GUID format.

    The collector requires ``cid`` to be a UUID (RFC 4122).
    """
    if not guid or not isinstance(guid, str):
        return False
    return GUID_PATTERN.fullmatch(guid) is not None


def validate_ip(ip: Any) -> bool:
    """Syntactic IPv4/IPv6 check, no reachability involved."""
    if not ip or not isinstance(ip, str):
        return False
    try:
        ipaddress.ip_address(ip)
    except ValueError:
        return False
    return True


def is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and len(value) > 0
