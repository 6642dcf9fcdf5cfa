"""Data models for collected node metrics."""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from nodewatch.config import NodeConfig


class NodeStatus(str, Enum):
    """Reachability of a node as seen by its latest sample."""

    UP = "up"
    DOWN = "down"


def format_time(value: datetime) -> str:
    """Format a timestamp as UTC RFC 3339 with a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_time(value: str) -> datetime:
    """Parse an RFC 3339 / ISO-8601 timestamp into an aware UTC datetime."""
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _number(data: dict[str, Any], key: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"'{key}' must be finite, got {value!r}")
    return float(value)


def _percent(data: dict[str, Any], key: str) -> float:
    value = _number(data, key)
    if not 0 <= value <= 100:
        raise ValueError(f"'{key}' must be within [0, 100], got {value!r}")
    return value


def _count(data: dict[str, Any], key: str) -> int:
    value = _number(data, key)
    if value < 0:
        raise ValueError(f"'{key}' must be a non-negative integer, got {value!r}")
    return int(value)


@dataclass(frozen=True)
class DiskUsage:
    """Usage of a single mounted filesystem."""

    mountpoint: str
    used_pct: float
    total_bytes: int
    used_bytes: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DiskUsage":
        if not isinstance(data, dict):
            raise ValueError("disk entry must be an object")
        mountpoint = data.get("mountpoint")
        if not isinstance(mountpoint, str) or not mountpoint:
            raise ValueError(f"invalid mountpoint: {mountpoint!r}")
        return cls(
            mountpoint=mountpoint,
            used_pct=_percent(data, "used_pct"),
            total_bytes=_count(data, "total_bytes"),
            used_bytes=_count(data, "used_bytes"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "mountpoint": self.mountpoint,
            "used_pct": self.used_pct,
            "total_bytes": self.total_bytes,
            "used_bytes": self.used_bytes,
        }


@dataclass(frozen=True)
class NetworkRate:
    """Throughput estimate over the node's own sampling window."""

    tx_bytes_per_sec: float = 0.0
    rx_bytes_per_sec: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NetworkRate":
        if not isinstance(data, dict):
            raise ValueError("net must be an object")
        tx = _number(data, "tx_bytes_per_sec")
        rx = _number(data, "rx_bytes_per_sec")
        if tx < 0 or rx < 0:
            raise ValueError(f"network rates must be >= 0, got tx={tx} rx={rx}")
        return cls(tx_bytes_per_sec=tx, rx_bytes_per_sec=rx)

    def to_dict(self) -> dict[str, float]:
        return {
            "tx_bytes_per_sec": self.tx_bytes_per_sec,
            "rx_bytes_per_sec": self.rx_bytes_per_sec,
        }


@dataclass(frozen=True)
class MetricsPayload:
    """Metrics document reported by a node's agent."""

    hostname: str
    timestamp: datetime
    cpu_percent: float
    mem_percent: float
    uptime_sec: int
    disks: tuple[DiskUsage, ...] = ()
    net: NetworkRate = field(default_factory=NetworkRate)

    @property
    def max_disk_pct(self) -> float:
        """Highest used percentage across all mounts (0 when none)."""
        return max((d.used_pct for d in self.disks), default=0.0)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MetricsPayload":
        """Validate and build a payload from its decoded JSON form.

        Raises:
            ValueError: If a field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError("metrics payload must be a JSON object")

        hostname = data.get("hostname")
        if not isinstance(hostname, str):
            raise ValueError(f"invalid hostname: {hostname!r}")

        raw_ts = data.get("timestamp_iso")
        if not isinstance(raw_ts, str):
            raise ValueError(f"invalid timestamp_iso: {raw_ts!r}")
        timestamp = parse_time(raw_ts)

        raw_disks = data.get("disks") or []
        if not isinstance(raw_disks, list):
            raise ValueError("disks must be a list")
        disks = tuple(DiskUsage.from_dict(d) for d in raw_disks)
        mountpoints = [d.mountpoint for d in disks]
        if len(set(mountpoints)) != len(mountpoints):
            raise ValueError("duplicate mountpoints in disks")

        return cls(
            hostname=hostname,
            timestamp=timestamp,
            cpu_percent=_percent(data, "cpu_percent"),
            mem_percent=_percent(data, "mem_percent"),
            uptime_sec=_count(data, "uptime_sec"),
            disks=disks,
            net=NetworkRate.from_dict(data.get("net")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the agent wire format."""
        return {
            "hostname": self.hostname,
            "timestamp_iso": format_time(self.timestamp),
            "cpu_percent": self.cpu_percent,
            "mem_percent": self.mem_percent,
            "uptime_sec": self.uptime_sec,
            "disks": [d.to_dict() for d in self.disks],
            "net": self.net.to_dict(),
        }


@dataclass(frozen=True)
class Sample:
    """Outcome of one probe against one node.

    Exactly one of ``error`` and ``metrics`` is set.
    """

    time: datetime
    node: NodeConfig
    latency_ms: int = 0
    error: str | None = None
    metrics: MetricsPayload | None = None

    def __post_init__(self) -> None:
        if (self.error is None) == (self.metrics is None):
            raise ValueError("Sample needs either an error or a metrics payload, not both")

    @property
    def status(self) -> NodeStatus:
        return NodeStatus.DOWN if self.error is not None else NodeStatus.UP

    def get_alerts(self) -> list[str]:
        """Get list of alert messages for this sample."""
        if self.metrics is None:
            return [f"Node down: {self.error or 'probe failed'}"]

        thresholds = self.node.alerts
        if thresholds is None:
            return []

        m = self.metrics
        checks = [
            ("CPU", m.cpu_percent, thresholds.cpu_pct, "%"),
            ("Memory", m.mem_percent, thresholds.mem_pct, "%"),
            ("Disk", m.max_disk_pct, thresholds.disk_pct, "%"),
            ("TX", m.net.tx_bytes_per_sec, thresholds.tx_bps, " B/s"),
            ("RX", m.net.rx_bytes_per_sec, thresholds.rx_bps, " B/s"),
        ]
        alerts = []
        for label, value, limit, unit in checks:
            if limit is not None and value >= limit:
                alerts.append(f"{label} at {value:.1f}{unit} (limit {limit:g}{unit})")
        return alerts

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "time": format_time(self.time),
            "node": self.node.to_dict(),
            "latency_ms": self.latency_ms,
            "error": self.error,
            "status": self.status.value,
            "agent": self.metrics.to_dict() if self.metrics else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], node: NodeConfig | None = None) -> "Sample":
        """Rebuild a sample from :meth:`to_dict` output.

        ``node`` replaces the embedded node description when given, so that
        restored samples can share the configured ``NodeConfig``.
        """
        agent = data.get("agent")
        return cls(
            time=parse_time(data["time"]),
            node=node or NodeConfig.from_dict(data["node"]),
            latency_ms=int(data.get("latency_ms") or 0),
            error=data.get("error"),
            metrics=MetricsPayload.from_dict(agent) if agent is not None else None,
        )
