"""Assembles validated hit records for each event kind."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from .config import TrackerConfig
from .context import ClientContextResolver, RequestContext
from .errors import ValidationError
from .events import Event, EventKind, describe_exception
from .validation import (
    is_integer,
    is_non_empty_string,
    is_number,
    validate_ip,
    validate_metrics,
    validate_props,
)


@dataclass
class EventBuilder:
    """
    Builds the canonical ``data`` mapping of a hit.

    The per-kind methods validate caller input and return the kind-specific
    fields, ``cid`` first. ``build`` adds the hit type and the client
    context and wraps the result in an Event. Any invalid input raises
    ValidationError naming the offending parameter; nothing is built.
    """
    config: TrackerConfig
    resolver: ClientContextResolver = field(default_factory=ClientContextResolver)

    async def build(
        self,
        kind: EventKind | str,
        data: dict[str, Any],
        props: dict[str, str] | None = None,
        metrics: dict[str, float] | None = None,
        request: RequestContext | None = None,
        proxies: Iterable[str] = (),
    ) -> Event:
        kind = EventKind.coerce(kind)
        props = {} if props is None else props
        metrics = {} if metrics is None else metrics

        if not validate_props(props):
            raise ValidationError("props", "given properties are invalid")
        if not validate_metrics(metrics):
            raise ValidationError("metrics", "given metrics are invalid")

        data = dict(data)
        if kind is EventKind.NON_INTERACTIVE:
            data["ni"] = True
        else:
            data["t"] = kind.value

        if kind is EventKind.EXCEPTION:
            tracking_id = self.config.exception_tracking_id
            if tracking_id:
                data["tid"] = tracking_id

        await self._enrich(data, request, proxies)
        return Event.create(kind, data, props, metrics)

    async def _enrich(self, data: dict[str, Any], request: RequestContext | None, proxies: Iterable[str]) -> None:
        client = await self.resolver.resolve(request, set(self.config.proxies) | set(proxies))

        if client.ip and validate_ip(client.ip):
            data["uip"] = client.ip
        if client.user_agent:
            data["ua"] = client.user_agent
        if self.config.geoid:
            data["geoid"] = self.config.geoid
        if self.config.language:
            data["ul"] = self.config.language
        if client.uid:
            data["uid"] = client.uid

    # Per-kind field sets

    def page_view(self, cid: str, hostname: str, page: str, title: str) -> dict[str, Any]:
        _require_string("hostname", hostname)
        _require_string("page", page)
        _require_string("title", title)
        return {
            "cid": cid,
            "dh": hostname,
            "dp": page if page.startswith("/") else f"/{page}",
            "dt": title,
        }

    def event(
        self,
        cid: str,
        category: str,
        action: str,
        label: str | None = None,
        value: int | None = None,
    ) -> dict[str, Any]:
        _require_string("category", category)
        _require_string("action", action)
        if label is not None and not isinstance(label, str):
            raise ValidationError("label")
        if value is not None and not is_integer(value):
            raise ValidationError("value")

        data: dict[str, Any] = {"cid": cid, "ec": category, "ea": action}
        if label is not None:
            data["el"] = label
        if value is not None:
            data["ev"] = value
        return data

    def transaction(
        self,
        cid: str,
        transaction_id: str | int,
        affiliation: str | None = None,
        revenue: float | None = 0,
        shipping: float | None = 0,
        tax: float | None = 0,
        currency: str | None = None,
    ) -> dict[str, Any]:
        currency = self.config.currency if currency is None else currency
        _require_transaction_id(transaction_id)
        if affiliation is not None and not is_non_empty_string(affiliation):
            raise ValidationError("affiliation")
        _optional_amount("revenue", revenue)
        _optional_amount("shipping", shipping)
        _optional_amount("tax", tax)
        _optional_currency(currency)

        data: dict[str, Any] = {"cid": cid, "ti": transaction_id}
        _put_present(data, ta=affiliation, tr=revenue, ts=shipping, tt=tax, cu=currency)
        return data

    def item(
        self,
        cid: str,
        transaction_id: str | int,
        name: str,
        price: float | None = 0,
        quantity: int | None = 1,
        sku: str | None = None,
        variation: str | None = None,
        currency: str | None = None,
    ) -> dict[str, Any]:
        currency = self.config.currency if currency is None else currency
        _require_transaction_id(transaction_id)
        _require_string("name", name)
        _optional_amount("price", price)
        if quantity is not None and (not is_integer(quantity) or quantity < 1):
            raise ValidationError("quantity")
        if sku is not None and not is_non_empty_string(sku):
            raise ValidationError("sku")
        if variation is not None and not is_non_empty_string(variation):
            raise ValidationError("variation")
        _optional_currency(currency)

        data: dict[str, Any] = {"cid": cid, "ti": transaction_id, "in": name}
        _put_present(data, ip=price, iq=quantity, ic=sku, iv=variation, cu=currency)
        return data

    def social(self, cid: str, action: str, network: str, target: str) -> dict[str, Any]:
        _require_string("action", action)
        _require_string("network", network)
        _require_string("target", target)
        return {"cid": cid, "sa": action, "sn": network, "st": target}

    def exception(self, cid: str, ex: Any, is_fatal: bool = False) -> dict[str, Any]:
        if not isinstance(is_fatal, bool):
            raise ValidationError("is_fatal")
        description = describe_exception(ex)
        return {"cid": cid, "exd": description.text, "exf": is_fatal}

    def timing(
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
    ) -> dict[str, Any]:
        _require_string("category", category)
        _require_string("variable", variable)
        if not is_integer(time):
            raise ValidationError("time")
        if label is not None and not isinstance(label, str):
            raise ValidationError("label")

        browser_timings = {
            "dns": ("dns_load_time", dns_load_time),
            "pdt": ("page_download_time", page_download_time),
            "rrt": ("redirect_response_time", redirect_response_time),
            "tcp": ("tcp_connect_time", tcp_connect_time),
            "srt": ("server_response_time", server_response_time),
        }
        for param, value in browser_timings.values():
            if value is not None and not is_integer(value):
                raise ValidationError(param)

        data: dict[str, Any] = {"cid": cid, "utc": category, "utv": variable, "utt": time}
        if label is not None:
            data["utl"] = label
        for key, (_, value) in browser_timings.items():
            if value is not None:
                data[key] = value
        return data

    def screen_view(
        self,
        cid: str,
        app_name: str,
        app_version: str,
        app_id: str,
        app_installer_id: str,
        screen_name: str,
    ) -> dict[str, Any]:
        _require_string("app_name", app_name)
        _require_string("app_version", app_version)
        _require_string("app_id", app_id)
        _require_string("app_installer_id", app_installer_id)
        _require_string("screen_name", screen_name)
        return {
            "cid": cid,
            "an": app_name,
            "av": app_version,
            "aid": app_id,
            "aiid": app_installer_id,
            "cd": screen_name,
        }

    def session(self, cid: str, control: str) -> dict[str, Any]:
        """Session start/end marker, sent as a non-interactive hit."""
        if control not in ("start", "end"):
            raise ValidationError("control", f"session control must be start or end, got {control!r}")
        return {"cid": cid, "sc": control, "dp": "/"}


def _require_string(param: str, value: Any) -> None:
    if not is_non_empty_string(value):
        raise ValidationError(param)


def _require_transaction_id(value: Any) -> None:
    if value is None or isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValidationError("transaction_id")


def _optional_amount(param: str, value: Any) -> None:
    if value is not None and (not is_number(value) or value < 0):
        raise ValidationError(param)


def _optional_currency(value: Any) -> None:
    # TODO: validate against the ISO 4217 code list instead of the length
    if value is not None and (not isinstance(value, str) or len(value) != 3 or not value.isalpha()):
        raise ValidationError("currency")


def _put_present(data: dict[str, Any], **fields: Any) -> None:
    for key, value in fields.items():
        if value is not None:
            data[key] = value
