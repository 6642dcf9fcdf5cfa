"""Builders for metrics payloads and samples used across the test suite."""

from datetime import datetime, timezone

from nodewatch.config import NodeConfig
from nodewatch.models import DiskUsage, MetricsPayload, NetworkRate, Sample


def make_payload_dict(**overrides):
    data = {
        "hostname": "web-1",
        "timestamp_iso": "2024-05-01T12:00:00Z",
        "cpu_percent": 12.5,
        "mem_percent": 40.25,
        "uptime_sec": 3600,
        "disks": [
            {"mountpoint": "/", "used_pct": 51.2, "total_bytes": 1000, "used_bytes": 512},
            {"mountpoint": "/data", "used_pct": 75.0, "total_bytes": 4000, "used_bytes": 3000},
        ],
        "net": {"tx_bytes_per_sec": 1024.0, "rx_bytes_per_sec": 2048.5},
    }
    data.update(overrides)
    return data


def make_payload(**overrides) -> MetricsPayload:
    values = {
        "hostname": "web-1",
        "timestamp": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        "cpu_percent": 12.5,
        "mem_percent": 40.25,
        "uptime_sec": 3600,
        "disks": (DiskUsage("/", 51.2, 1000, 512),),
        "net": NetworkRate(1024.0, 2048.5),
    }
    values.update(overrides)
    return MetricsPayload(**values)


def make_sample(node: NodeConfig, second: int = 0, **payload_overrides) -> Sample:
    return Sample(
        time=datetime(2024, 5, 1, 12, 0, second, tzinfo=timezone.utc),
        node=node,
        latency_ms=7,
        metrics=make_payload(**payload_overrides),
    )


def make_down_sample(node: NodeConfig, second: int = 0, error: str = "connect failed") -> Sample:
    return Sample(
        time=datetime(2024, 5, 1, 12, 0, second, tzinfo=timezone.utc),
        node=node,
        error=error,
    )
