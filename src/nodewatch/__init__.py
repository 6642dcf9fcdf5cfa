"""
nodewatch - Fleet metrics collector.

Probes a fixed set of nodes running the nodewatch agent, keeps a bounded
rolling history per node, and serves the latest and historical samples over
HTTP with CSV/JSON export.
"""

__version__ = "1.0.0"

from nodewatch.collector import Collector, Scheduler
from nodewatch.config import AlertThresholds, Config, NodeConfig
from nodewatch.models import MetricsPayload, NodeStatus, Sample
from nodewatch.probe import Probe, ProbeResult
from nodewatch.store import SampleStore

__all__ = [
    "AlertThresholds",
    "Collector",
    "Config",
    "MetricsPayload",
    "NodeConfig",
    "NodeStatus",
    "Probe",
    "ProbeResult",
    "Sample",
    "SampleStore",
    "Scheduler",
]
