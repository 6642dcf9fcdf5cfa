"""Tests for probe rounds and the scheduler."""

import asyncio
import time
from datetime import datetime, timezone

import httpx
import pytest

from nodewatch.collector import Collector, Scheduler
from nodewatch.config import NodeConfig, ProbeSettings
from nodewatch.models import NodeStatus
from nodewatch.probe import Probe, ProbeResult
from nodewatch.store import SampleStore
from tests.helpers import make_payload_dict


class CountingAgent:
    """Fake agent reporting its request count as uptime."""

    def __init__(self):
        self.requests = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        return httpx.Response(200, json=make_payload_dict(uptime_sec=self.requests))


class TestCollector:

    def test_round_commits_one_sample_per_node(self, listening_port):
        nodes = [
            NodeConfig("a", f"http://127.0.0.1:{listening_port}/a"),
            NodeConfig("b", f"http://127.0.0.1:{listening_port}/b"),
        ]
        store = SampleStore(10)
        collector = Collector(nodes, store, Probe(transport=httpx.MockTransport(CountingAgent())))

        samples = asyncio.run(collector.run_round())

        assert [s.node.name for s in samples] == ["a", "b"]
        assert all(s.status == NodeStatus.UP for s in samples)
        assert set(store.read_latest()) == {"a", "b"}
        assert collector.rounds_completed == 1
        # Samples reference the configured node, not a copy
        assert store.read_latest()["a"].node is nodes[0]

    def test_history_limit_keeps_latest_rounds(self, listening_port):
        node = NodeConfig("a", f"http://127.0.0.1:{listening_port}")
        store = SampleStore(3)
        agent = CountingAgent()
        collector = Collector([node], store, Probe(transport=httpx.MockTransport(agent)))

        async def five_rounds():
            for _ in range(5):
                await collector.run_round()

        asyncio.run(five_rounds())

        history = store.read_history("a")
        assert len(history) == 3
        assert [s.metrics.uptime_sec for s in history] == [3, 4, 5]
        assert [s.time for s in history] == sorted(s.time for s in history)
        assert store.read_latest()["a"] is history[-1]

    def test_failure_is_isolated(self, listening_port, closed_port):
        good = NodeConfig("good", f"http://127.0.0.1:{listening_port}")
        bad = NodeConfig("bad", f"http://127.0.0.1:{closed_port}")
        store = SampleStore(10)
        collector = Collector(
            [bad, good], store, Probe(transport=httpx.MockTransport(CountingAgent()))
        )

        asyncio.run(collector.run_round())

        assert store.read_latest()["good"].error is None
        assert store.read_latest()["bad"].error
        assert len(store.read_history("good")) == 1
        assert len(store.read_history("bad")) == 1

    def test_slow_node_does_not_hold_fast_node(self, listening_port):
        async def handler(request):
            if request.url.path.startswith("/slow"):
                await asyncio.sleep(30)
            return httpx.Response(200, json=make_payload_dict())

        nodes = [
            NodeConfig("slow", f"http://127.0.0.1:{listening_port}/slow"),
            NodeConfig("fast", f"http://127.0.0.1:{listening_port}/fast"),
        ]
        settings = ProbeSettings(connect_timeout=0.5, fetch_timeout=10.0, deadline=0.5)
        store = SampleStore(10)
        collector = Collector(
            nodes, store, Probe(settings, transport=httpx.MockTransport(handler))
        )

        started = time.monotonic()
        asyncio.run(collector.run_round())
        elapsed = time.monotonic() - started

        assert elapsed < 3.0
        latest = store.read_latest()
        assert latest["fast"].status == NodeStatus.UP
        assert latest["slow"].status == NodeStatus.DOWN
        assert "deadline" in latest["slow"].error

    def test_escaped_exception_becomes_failed_sample(self):
        class ExplodingProbe(Probe):
            async def run(self, node):
                if node.name == "boom":
                    raise RuntimeError("kaboom")
                return ProbeResult(latency_ms=1, metrics=None, error="down")

        nodes = [NodeConfig("boom", "http://x"), NodeConfig("other", "http://y")]
        store = SampleStore(10)
        asyncio.run(Collector(nodes, store, ExplodingProbe()).run_round())

        assert "kaboom" in store.read_latest()["boom"].error
        assert store.read_latest()["other"].error == "down"

    def test_on_round_callback(self, listening_port):
        rounds = []
        node = NodeConfig("a", f"http://127.0.0.1:{listening_port}")
        collector = Collector(
            [node],
            SampleStore(5),
            Probe(transport=httpx.MockTransport(CountingAgent())),
            on_round=rounds.append,
        )
        asyncio.run(collector.run_round())
        assert len(rounds) == 1
        assert rounds[0][0].node is node

    def test_timestamps_survive_wall_clock_step_back(self, monkeypatch):
        readings = [
            datetime(2024, 5, 1, 12, 0, 10, tzinfo=timezone.utc),
            datetime(2024, 5, 1, 11, 59, 0, tzinfo=timezone.utc),
            datetime(2024, 5, 1, 12, 0, 20, tzinfo=timezone.utc),
        ]

        class SteppingClock(datetime):
            @classmethod
            def now(cls, tz=None):
                return readings.pop(0)

        class StaticProbe(Probe):
            async def run(self, node):
                return ProbeResult.failure("down")

        monkeypatch.setattr("nodewatch.collector.datetime", SteppingClock)
        node = NodeConfig("a", "http://a")
        store = SampleStore(10)
        collector = Collector([node], store, StaticProbe())

        async def three_rounds():
            for _ in range(3):
                await collector.run_round()

        asyncio.run(three_rounds())

        times = [s.time for s in store.read_history("a")]
        first = datetime(2024, 5, 1, 12, 0, 10, tzinfo=timezone.utc)
        assert times == [first, first, datetime(2024, 5, 1, 12, 0, 20, tzinfo=timezone.utc)]

    def test_no_nodes(self):
        store = SampleStore(5)
        assert asyncio.run(Collector([], store).run_round()) == []
        assert store.read_latest() == {}


class TestScheduler:

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            Scheduler(Collector([], SampleStore(1)), 0)

    def test_first_round_runs_before_start_returns(self, listening_port):
        node = NodeConfig("a", f"http://127.0.0.1:{listening_port}")
        store = SampleStore(10)
        collector = Collector([node], store, Probe(transport=httpx.MockTransport(CountingAgent())))
        scheduler = Scheduler(collector, interval=60)

        async def scenario():
            await scheduler.start()
            assert scheduler.running
            assert len(store.read_history("a")) == 1
            await scheduler.stop()
            assert not scheduler.running

        asyncio.run(scenario())
        assert collector.rounds_completed == 1

    def test_rounds_repeat_at_interval(self, listening_port):
        node = NodeConfig("a", f"http://127.0.0.1:{listening_port}")
        store = SampleStore(100)
        collector = Collector([node], store, Probe(transport=httpx.MockTransport(CountingAgent())))
        scheduler = Scheduler(collector, interval=0.05)

        async def scenario():
            await scheduler.start()
            await asyncio.sleep(0.5)
            await scheduler.stop()

        asyncio.run(scenario())
        assert collector.rounds_completed >= 3
        assert len(store.read_history("a")) == collector.rounds_completed

    def test_rounds_never_overlap(self):
        active = 0
        overlaps = []

        class SlowProbe(Probe):
            async def run(self, node):
                nonlocal active
                active += 1
                if active > 1:
                    overlaps.append(active)
                await asyncio.sleep(0.03)
                active -= 1
                return ProbeResult.failure("down")

        collector = Collector([NodeConfig("a", "http://a")], SampleStore(50), SlowProbe())
        scheduler = Scheduler(collector, interval=0.01)

        async def scenario():
            await scheduler.start()
            await asyncio.sleep(0.3)
            await scheduler.stop()

        asyncio.run(scenario())
        assert overlaps == []
        assert collector.rounds_completed >= 2

    def test_stop_waits_for_round_in_flight(self):
        finished = []

        class SlowProbe(Probe):
            async def run(self, node):
                await asyncio.sleep(0.2)
                finished.append(node.name)
                return ProbeResult.failure("down")

        store = SampleStore(10)
        collector = Collector([NodeConfig("a", "http://a")], store, SlowProbe())
        scheduler = Scheduler(collector, interval=0.01)

        async def scenario():
            await scheduler.start()
            await asyncio.sleep(0.05)  # second round is now in flight
            await scheduler.stop()

        asyncio.run(scenario())
        assert len(finished) == collector.rounds_completed
        assert len(store.read_history("a")) == collector.rounds_completed
