"""Local system metrics sampling using psutil."""

import logging
import socket
import threading
import time
from datetime import datetime, timezone
from typing import Callable

import psutil

from nodewatch.models import DiskUsage, MetricsPayload, NetworkRate

logger = logging.getLogger(__name__)


def read_net_counters() -> tuple[int, int]:
    """Total bytes sent and received across non-loopback interfaces."""
    tx = rx = 0
    for name, counters in psutil.net_io_counters(pernic=True).items():
        if name == "lo" or name.lower().startswith("loopback"):
            continue
        tx += counters.bytes_sent
        rx += counters.bytes_recv
    return tx, rx


class NetworkRateEstimator:
    """Turn cumulative byte counters into bytes/sec rates.

    Each call measures the window since the previous call. When that window is
    shorter than ``min_window`` the estimator waits ``resample_delay`` and
    reads the counters again, so that back-to-back requests do not report
    spikes. Rates are never negative: a counter that went backwards (interface
    reset) yields 0 for that window.
    """

    def __init__(
        self,
        counters: Callable[[], tuple[int, int]] = read_net_counters,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        min_window: float = 0.5,
        resample_delay: float = 0.2,
    ) -> None:
        self._counters = counters
        self._clock = clock
        self._sleep = sleep
        self.min_window = min_window
        self.resample_delay = resample_delay
        self._lock = threading.Lock()
        self._last: tuple[float, int, int] | None = None

    def sample(self) -> NetworkRate:
        with self._lock:
            now = self._clock()
            tx, rx = self._counters()
            if self._last is None:
                self._last = (now, tx, rx)
                return NetworkRate()

            last_time, last_tx, last_rx = self._last
            elapsed = now - last_time
            if elapsed < self.min_window:
                self._sleep(self.resample_delay)
                now = self._clock()
                tx, rx = self._counters()
                elapsed = now - last_time
            if elapsed <= 0:
                elapsed = 1.0

            self._last = (now, tx, rx)
            return NetworkRate(
                tx_bytes_per_sec=max(tx - last_tx, 0) / elapsed,
                rx_bytes_per_sec=max(rx - last_rx, 0) / elapsed,
            )


class MetricsSampler:
    """Collect a metrics payload from the local system."""

    def __init__(
        self,
        hostname_override: str | None = None,
        net_estimator: NetworkRateEstimator | None = None,
        cpu_interval: float = 0.3,
    ) -> None:
        self.hostname_override = hostname_override
        self.net_estimator = net_estimator or NetworkRateEstimator()
        self.cpu_interval = cpu_interval

    @property
    def hostname(self) -> str:
        if self.hostname_override and self.hostname_override.strip():
            return self.hostname_override
        try:
            return socket.gethostname()
        except OSError:
            return "unknown"

    def sample(self) -> MetricsPayload:
        """Collect all metrics. Blocks for about ``cpu_interval`` seconds."""
        cpu_percent = psutil.cpu_percent(interval=self.cpu_interval)
        mem = psutil.virtual_memory()
        uptime = max(int(time.time() - psutil.boot_time()), 0)

        return MetricsPayload(
            hostname=self.hostname,
            timestamp=datetime.now(timezone.utc).replace(microsecond=0),
            cpu_percent=cpu_percent,
            mem_percent=mem.percent,
            uptime_sec=uptime,
            disks=tuple(self._collect_disks()),
            net=self.net_estimator.sample(),
        )

    def _collect_disks(self) -> list[DiskUsage]:
        """Usage of each distinct mountpoint; unreadable mounts are skipped."""
        disks = []
        seen: set[str] = set()
        for partition in psutil.disk_partitions(all=False):
            mountpoint = partition.mountpoint
            if not mountpoint or mountpoint in seen:
                continue
            seen.add(mountpoint)
            try:
                usage = psutil.disk_usage(mountpoint)
            except OSError as e:
                logger.debug(f"Skipping {mountpoint}: {e}")
                continue
            disks.append(DiskUsage(
                mountpoint=mountpoint,
                used_pct=usage.percent,
                total_bytes=usage.total,
                used_bytes=usage.used,
            ))
        return disks
