"""Tests for client context resolution."""

import asyncio
import time

import pytest
from starlette.requests import Request

from ga_tracker.context import ClientContext, ClientContextResolver, RequestContext


PROXY = "10.0.0.1"


@pytest.fixture
def lookups():
    return []


@pytest.fixture
def dns_resolver(lookups):
    hosts = {"localhost": "127.0.0.1"}

    def lookup(host):
        lookups.append(host)
        if host not in hosts:
            raise OSError(f"unknown host {host}")
        return hosts[host]

    return ClientContextResolver(hostname_lookup=lookup)


class TestResolveIp:
    @pytest.mark.asyncio
    async def test_direct_remote_address(self, resolver):
        request = RequestContext(remote_addr="198.51.100.23")
        assert await resolver.resolve_ip(request) == "198.51.100.23"

    @pytest.mark.asyncio
    async def test_spoofed_forwarded_for_from_untrusted_peer(self, resolver):
        request = RequestContext(
            remote_addr="198.51.100.23",
            headers={"X-Forwarded-For": "203.0.113.7"},
        )
        assert await resolver.resolve_ip(request, proxies={PROXY}) == "198.51.100.23"

    @pytest.mark.asyncio
    async def test_forwarded_headers_ignored_without_trusted_proxies(self, resolver):
        request = RequestContext(
            remote_addr=PROXY,
            headers={"X-Forwarded-For": "203.0.113.7"},
        )
        assert await resolver.resolve_ip(request) == PROXY

    @pytest.mark.asyncio
    async def test_trusted_proxy_first_forwarded_token(self, resolver):
        request = RequestContext(
            remote_addr=PROXY,
            headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        )
        assert await resolver.resolve_ip(request, proxies={PROXY}) == "203.0.113.7"

    @pytest.mark.asyncio
    async def test_header_priority(self, resolver):
        request = RequestContext(
            remote_addr=PROXY,
            headers={
                "Client-IP": "192.0.2.4",
                "X-Cluster-Client-IP": "192.0.2.3",
                "X-Forwarded": "192.0.2.2",
            },
        )
        assert await resolver.resolve_ip(request, proxies={PROXY}) == "192.0.2.2"

    @pytest.mark.asyncio
    async def test_skips_invalid_header_values(self, resolver):
        request = RequestContext(
            remote_addr=PROXY,
            headers={"X-Forwarded-For": "unknown", "Client-IP": " 192.0.2.4 "},
        )
        assert await resolver.resolve_ip(request, proxies={PROXY}) == "192.0.2.4"

    @pytest.mark.asyncio
    async def test_trusted_proxy_without_usable_headers(self, resolver):
        request = RequestContext(remote_addr=PROXY, headers={"X-Forwarded-For": "garbage"})
        assert await resolver.resolve_ip(request, proxies={PROXY}) == PROXY

    @pytest.mark.asyncio
    async def test_ipv4_mapped_peer_matches_trusted_proxy(self, resolver):
        request = RequestContext(
            remote_addr=f"::ffff:{PROXY}",
            headers={"X-Forwarded-For": "203.0.113.7"},
        )
        assert await resolver.resolve_ip(request, proxies={PROXY}) == "203.0.113.7"

    @pytest.mark.asyncio
    async def test_ipv6_proxy_matched_by_address_not_spelling(self, resolver):
        request = RequestContext(
            remote_addr="2001:DB8:0::1",
            headers={"X-Forwarded-For": "203.0.113.7"},
        )
        assert await resolver.resolve_ip(request, proxies={"2001:db8::1"}) == "203.0.113.7"

    @pytest.mark.asyncio
    async def test_invalid_proxy_entries_never_match(self, resolver):
        request = RequestContext(remote_addr=PROXY, headers={"X-Forwarded-For": "203.0.113.7"})
        assert await resolver.resolve_ip(request, proxies={"not-an-ip"}) == PROXY

    @pytest.mark.asyncio
    async def test_ipv6_remote_address(self, resolver):
        assert await resolver.resolve_ip(RequestContext(remote_addr="2001:db8::1")) == "2001:db8::1"

    @pytest.mark.asyncio
    async def test_hostname_fallback(self, dns_resolver, lookups):
        assert await dns_resolver.resolve_ip(RequestContext(remote_addr="localhost")) == "127.0.0.1"
        assert lookups == ["localhost"]

    @pytest.mark.asyncio
    async def test_hostname_peer_ignores_forwarded_headers(self, dns_resolver, lookups):
        request = RequestContext(remote_addr="localhost", headers={"X-Forwarded-For": "203.0.113.7"})
        assert await dns_resolver.resolve_ip(request, proxies={"localhost"}) == "127.0.0.1"
        assert lookups == ["localhost"]

    @pytest.mark.asyncio
    async def test_unresolvable_host_is_omitted(self, dns_resolver):
        assert await dns_resolver.resolve_ip(RequestContext(remote_addr="no-such-host.invalid")) is None

    @pytest.mark.asyncio
    async def test_no_remote_address(self, dns_resolver, lookups):
        assert await dns_resolver.resolve_ip(RequestContext()) is None
        assert lookups == []

    @pytest.mark.asyncio
    async def test_lookup_result_must_be_an_ip(self):
        resolver = ClientContextResolver(hostname_lookup=lambda host: host)
        assert await resolver.resolve_ip(RequestContext(remote_addr="not-an-ip")) is None

    @pytest.mark.asyncio
    async def test_slow_lookup_does_not_block_event_loop(self):
        def slow_lookup(host):
            time.sleep(0.3)
            return "127.0.0.1"

        resolver = ClientContextResolver(hostname_lookup=slow_lookup)
        ticks = []

        async def ticker():
            while True:
                ticks.append(time.monotonic())
                await asyncio.sleep(0.01)

        ticking = asyncio.create_task(ticker())
        try:
            ip = await resolver.resolve_ip(RequestContext(remote_addr="testclient"))
        finally:
            ticking.cancel()

        assert ip == "127.0.0.1"
        assert len(ticks) > 5
        assert max(later - earlier for earlier, later in zip(ticks, ticks[1:])) < 0.2


class TestResolveUid:
    def test_ga_cookie(self, resolver):
        assert resolver.resolve_uid({"_ga": "GA1.2.1234567890.1500000000"}) == 1234567890

    def test_ga_cookie_preferred_over_utma(self, resolver):
        cookies = {
            "_ga": "GA1.2.111.1500000000",
            "__utma": "1.222.1500000000.1500000001.1500000002.3",
        }
        assert resolver.resolve_uid(cookies) == 111

    def test_utma_fallback(self, resolver):
        assert resolver.resolve_uid({"__utma": "1.222.1500000000.1500000001.1500000002.3"}) == 222

    def test_no_cookies(self, resolver):
        assert resolver.resolve_uid({}) == 0

    @pytest.mark.parametrize("cookies", [
        {"_ga": "garbage"},
        {"_ga": "GA1.2"},
        {"_ga": "GA1.2.abc.1500000000"},
        {"_ga": "GA1.2.-5.1500000000"},
        {"_ga": "GA1.2. 5 .1500000000"},
        {"_ga": "GA1.2.1_000.1500000000"},
        {"_ga": "GA1.2.².1500000000"},
        {"__utma": "1"},
        {"__utma": "1.-222.1500000000"},
    ])
    def test_malformed_cookies(self, resolver, cookies):
        assert resolver.resolve_uid(cookies) == 0


class TestResolve:
    @pytest.mark.asyncio
    async def test_without_request(self, resolver):
        assert await resolver.resolve(None) == ClientContext()

    @pytest.mark.asyncio
    async def test_full_context(self, resolver, request_context):
        context = await resolver.resolve(request_context)
        assert context.ip == "198.51.100.23"
        assert context.user_agent == "Mozilla/5.0 (test)"
        assert context.uid == 1234567890


class TestRequestContext:
    def test_headers_case_insensitive(self):
        request = RequestContext(headers={"User-Agent": "agent", "X-Forwarded-For": "1.2.3.4"})
        assert request.user_agent == "agent"
        assert request.headers["x-forwarded-for"] == "1.2.3.4"

    @pytest.mark.asyncio
    async def test_from_starlette_request(self):
        scope = {
            "type": "http",
            "method": "GET",
            "path": "/",
            "query_string": b"",
            "headers": [
                (b"user-agent", b"Mozilla/5.0 (starlette)"),
                (b"x-forwarded-for", b"203.0.113.7"),
                (b"cookie", b"_ga=GA1.2.42.1500000000"),
            ],
            "client": ("10.0.0.1", 54321),
        }
        request = RequestContext.from_request(Request(scope))

        assert request.remote_addr == "10.0.0.1"
        assert request.user_agent == "Mozilla/5.0 (starlette)"
        assert request.cookies == {"_ga": "GA1.2.42.1500000000"}

        resolver = ClientContextResolver()
        assert await resolver.resolve_ip(request, proxies={"10.0.0.1"}) == "203.0.113.7"
        assert resolver.resolve_uid(request.cookies) == 42

    def test_from_starlette_request_without_client(self):
        scope = {"type": "http", "method": "GET", "path": "/", "query_string": b"", "headers": []}
        assert RequestContext.from_request(Request(scope)).remote_addr is None
