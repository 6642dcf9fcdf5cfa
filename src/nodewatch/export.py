"""Read-only views of stored history: latest rows, CSV and JSON exports."""

import csv
import io
import json
from typing import Any, Iterable

from nodewatch.config import NodeConfig
from nodewatch.models import Sample, format_time, parse_time
from nodewatch.store import SampleStore

CSV_HEADER = [
    "time",
    "node",
    "group",
    "latency_ms",
    "cpu_pct",
    "mem_pct",
    "tx_bps",
    "rx_bps",
    "uptime_sec",
]


def _ordered_names(names: Iterable[str], nodes: list[NodeConfig] | None) -> list[str]:
    """Configured nodes first, in configuration order, then any others."""
    names = list(names)
    if not nodes:
        return names
    configured = [n.name for n in nodes if n.name in names]
    return configured + [n for n in names if n not in configured]


def latest_rows(store: SampleStore, nodes: list[NodeConfig] | None = None) -> list[dict[str, Any]]:
    """One row per node that has reported, with group, status and alerts."""
    latest = store.read_latest()
    rows = []
    for name in _ordered_names(latest, nodes):
        sample = latest[name]
        row = sample.to_dict()
        row["group"] = sample.node.group
        row["alerts"] = sample.get_alerts()
        rows.append(row)
    return rows


def history_to_dict(
    history: dict[str, list[Sample]], nodes: list[NodeConfig] | None = None
) -> dict[str, list[dict[str, Any]]]:
    return {
        name: [s.to_dict() for s in history[name]]
        for name in _ordered_names(history, nodes)
    }


def history_to_json(
    history: dict[str, list[Sample]], nodes: list[NodeConfig] | None = None
) -> str:
    """Serialize a full history mapping to JSON."""
    return json.dumps(history_to_dict(history, nodes))


def history_from_json(text: str) -> dict[str, list[Sample]]:
    """Rebuild a history mapping from :func:`history_to_json` output.

    Samples of one node share a single ``NodeConfig`` instance.
    """
    data = json.loads(text)
    history: dict[str, list[Sample]] = {}
    for name, entries in data.items():
        node = NodeConfig.from_dict(entries[0]["node"]) if entries else None
        history[name] = [Sample.from_dict(entry, node=node) for entry in entries]
    return history


def _csv_row(sample: Sample) -> list[str]:
    m = sample.metrics
    row = [
        format_time(sample.time),
        sample.node.name,
        sample.node.group,
        str(sample.latency_ms),
    ]
    if m is None:
        # Down samples have no metrics; leave the cells blank.
        return row + [""] * 5
    return row + [
        f"{m.cpu_percent:.2f}",
        f"{m.mem_percent:.2f}",
        f"{m.net.tx_bytes_per_sec:.2f}",
        f"{m.net.rx_bytes_per_sec:.2f}",
        str(m.uptime_sec),
    ]


def history_to_csv(
    history: dict[str, list[Sample]], nodes: list[NodeConfig] | None = None
) -> str:
    """Render every sample as a CSV row, grouped by node, oldest first."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for name in _ordered_names(history, nodes):
        for sample in history[name]:
            writer.writerow(_csv_row(sample))
    return buffer.getvalue()


def rows_from_csv(text: str) -> list[dict[str, Any]]:
    """Parse :func:`history_to_csv` output into typed rows.

    Metric cells of down samples come back as ``None``.
    """
    rows = []
    for raw in csv.DictReader(io.StringIO(text)):
        row: dict[str, Any] = {
            "time": parse_time(raw["time"]),
            "node": raw["node"],
            "group": raw["group"],
            "latency_ms": int(raw["latency_ms"]),
        }
        for key in ("cpu_pct", "mem_pct", "tx_bps", "rx_bps"):
            row[key] = float(raw[key]) if raw[key] else None
        row["uptime_sec"] = int(raw["uptime_sec"]) if raw["uptime_sec"] else None
        rows.append(row)
    return rows
