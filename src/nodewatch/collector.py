"""Probe rounds across all nodes and the scheduler that drives them."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable

from nodewatch.config import NodeConfig
from nodewatch.models import Sample
from nodewatch.probe import Probe, ProbeResult
from nodewatch.store import SampleStore

logger = logging.getLogger(__name__)


class Collector:
    """Run probe rounds and commit their outcomes to a store."""

    def __init__(
        self,
        nodes: list[NodeConfig],
        store: SampleStore,
        probe: Probe | None = None,
        on_round: Callable[[list[Sample]], None] | None = None,
    ) -> None:
        """Initialize collector.

        Args:
            nodes: Nodes probed every round.
            store: Store receiving one sample per node per round.
            probe: Probe to use; a default-configured one when omitted.
            on_round: Optional callback receiving each round's samples.
        """
        self.nodes = list(nodes)
        self.store = store
        self.probe = probe or Probe()
        self.on_round = on_round
        self.rounds_completed = 0
        self._last_stamp: dict[str, datetime] = {}

    async def run_round(self) -> list[Sample]:
        """Probe every node concurrently, then commit all outcomes.

        Returns:
            The committed samples, in node configuration order.
        """
        if not self.nodes:
            logger.warning("No nodes configured")
            return []

        started = time.monotonic()
        results = await asyncio.gather(
            *(self.probe.run(node) for node in self.nodes),
            return_exceptions=True,
        )

        samples: list[Sample] = []
        for node, result in zip(self.nodes, results):
            if isinstance(result, BaseException):
                logger.error(f"Probe of {node.name} raised: {result!r}")
                result = ProbeResult.failure(f"{type(result).__name__}: {result}")
            # Per-node timestamps never go backwards, even if the wall clock does.
            stamp = datetime.now(timezone.utc)
            last = self._last_stamp.get(node.name)
            if last is not None and stamp < last:
                stamp = last
            self._last_stamp[node.name] = stamp
            sample = Sample(
                time=stamp,
                node=node,
                latency_ms=result.latency_ms,
                error=result.error,
                metrics=result.metrics,
            )
            self.store.commit(node.name, sample)
            samples.append(sample)

        self.rounds_completed += 1
        up = sum(1 for s in samples if s.error is None)
        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"Round {self.rounds_completed}: {up}/{len(samples)} nodes up in {elapsed_ms:.0f} ms"
        )

        if self.on_round is not None:
            try:
                self.on_round(samples)
            except Exception as e:
                logger.error(f"Round callback failed: {e}")

        return samples


class Scheduler:
    """Drive a collector at a fixed interval.

    Rounds are spaced start-to-start; a round that overruns the interval is
    followed immediately by the next one. Rounds never overlap.
    """

    def __init__(self, collector: Collector, interval: float) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.collector = collector
        self.interval = interval
        self._task: asyncio.Task | None = None
        self._stopping: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Run the first round to completion, then keep collecting in the background."""
        if self.running:
            return
        self._stopping = asyncio.Event()
        first_round = time.monotonic()
        await self.collector.run_round()
        self._task = asyncio.create_task(
            self._loop(first_round + self.interval, self._stopping)
        )
        logger.info(f"Scheduler started (interval={self.interval:g}s)")

    async def run_forever(self) -> None:
        """Start and block until the scheduler is stopped."""
        await self.start()
        if self._task is not None:
            await self._task

    async def stop(self) -> None:
        """Stop after the round in flight, if any, has been committed."""
        if self._task is None or self._stopping is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("Scheduler stopped")

    async def _loop(self, next_run: float, stopping: asyncio.Event) -> None:
        while not stopping.is_set():
            delay = max(0.0, next_run - time.monotonic())
            try:
                await asyncio.wait_for(stopping.wait(), timeout=delay)
                return
            except asyncio.TimeoutError:
                pass

            await self.collector.run_round()
            next_run = max(next_run + self.interval, time.monotonic())
