"""Tests for the node probe."""

import asyncio
import json
import time

import httpx
import pytest

from nodewatch.config import NodeConfig, ProbeSettings
from nodewatch.probe import Probe, ProbeError, connect_target
from tests.helpers import make_payload_dict


def agent_transport(handler):
    return httpx.MockTransport(handler)


def ok_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json=make_payload_dict())


class TestConnectTarget:

    def test_explicit_port(self):
        assert connect_target("http://10.0.0.1:9876") == ("10.0.0.1", 9876)

    def test_missing_port_defaults_to_80(self):
        assert connect_target("http://example.com") == ("example.com", 80)
        assert connect_target("https://example.com/base") == ("example.com", 80)

    def test_invalid_address(self):
        with pytest.raises(ProbeError):
            connect_target("not a url")


class TestProbe:

    def test_success(self, listening_port):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return ok_handler(request)

        node = NodeConfig("a", f"http://127.0.0.1:{listening_port}")
        result = asyncio.run(Probe(transport=agent_transport(handler)).run(node))

        assert result.ok
        assert result.error is None
        assert result.metrics.hostname == "web-1"
        assert result.latency_ms >= 0
        assert seen == [f"http://127.0.0.1:{listening_port}/metrics"]

    def test_fetch_uses_base_address_verbatim(self, listening_port):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return ok_handler(request)

        node = NodeConfig("a", f"http://127.0.0.1:{listening_port}/agent")
        result = asyncio.run(Probe(transport=agent_transport(handler)).run(node))

        assert result.ok
        assert seen == ["/agent/metrics"]

    def test_connection_refused(self, closed_port):
        node = NodeConfig("a", f"http://127.0.0.1:{closed_port}")
        result = asyncio.run(Probe().run(node))

        assert not result.ok
        assert result.metrics is None
        assert result.error
        assert result.latency_ms == 0

    def test_unreachable_node_never_fetched(self, closed_port):
        calls = []

        def handler(request):
            calls.append(request)
            return ok_handler(request)

        node = NodeConfig("a", f"http://127.0.0.1:{closed_port}")
        asyncio.run(Probe(transport=agent_transport(handler)).run(node))
        assert calls == []

    def test_bad_status(self, listening_port):
        node = NodeConfig("a", f"http://127.0.0.1:{listening_port}")
        transport = agent_transport(lambda request: httpx.Response(503))
        result = asyncio.run(Probe(transport=transport).run(node))

        assert result.metrics is None
        assert "unexpected status 503" in result.error

    def test_undecodable_body(self, listening_port):
        node = NodeConfig("a", f"http://127.0.0.1:{listening_port}")
        transport = agent_transport(lambda request: httpx.Response(200, text="<html>"))
        result = asyncio.run(Probe(transport=transport).run(node))

        assert result.metrics is None
        assert "invalid metrics payload" in result.error

    def test_schema_mismatch(self, listening_port):
        node = NodeConfig("a", f"http://127.0.0.1:{listening_port}")
        transport = agent_transport(lambda request: httpx.Response(200, json={"cpu": 1}))
        result = asyncio.run(Probe(transport=transport).run(node))

        assert "invalid metrics payload" in result.error

    @pytest.mark.parametrize("overrides", [
        {"cpu_percent": float("nan")},
        {"mem_percent": float("inf")},
        {"cpu_percent": 250.0},
    ])
    def test_non_finite_or_out_of_range_metrics(self, listening_port, overrides):
        # json.dumps writes NaN/Infinity literals, which httpx decodes back to floats.
        body = json.dumps(make_payload_dict(**overrides)).encode()
        node = NodeConfig("a", f"http://127.0.0.1:{listening_port}")
        transport = agent_transport(lambda request: httpx.Response(200, content=body))
        result = asyncio.run(Probe(transport=transport).run(node))

        assert not result.ok
        assert result.metrics is None
        assert "invalid metrics payload" in result.error

    def test_fetch_timeout(self, listening_port):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        node = NodeConfig("a", f"http://127.0.0.1:{listening_port}")
        result = asyncio.run(Probe(transport=agent_transport(handler)).run(node))

        assert "timed out" in result.error

    def test_hung_node_fails_within_deadline(self, listening_port):
        async def handler(request):
            await asyncio.sleep(30)
            return ok_handler(request)

        settings = ProbeSettings(connect_timeout=0.2, fetch_timeout=10.0, deadline=0.3)
        node = NodeConfig("a", f"http://127.0.0.1:{listening_port}")

        started = time.monotonic()
        result = asyncio.run(Probe(settings, transport=agent_transport(handler)).run(node))
        elapsed = time.monotonic() - started

        assert elapsed < 2.0
        assert result.metrics is None
        assert "deadline" in result.error

    def test_invalid_address(self):
        result = asyncio.run(Probe().run(NodeConfig("a", "not a url")))
        assert "invalid node address" in result.error
