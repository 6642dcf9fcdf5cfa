"""Configuration management for nodewatch."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_LISTEN_ADDR = "0.0.0.0:8080"
DEFAULT_AGENT_LISTEN_ADDR = "0.0.0.0:9876"
DEFAULT_REFRESH_SECONDS = 2.0
DEFAULT_HISTORY_LIMIT = 500


class ConfigError(ValueError):
    """Raised when a configuration file cannot be used."""


def _positive(value: Any, default: float, name: str, cast: type = float) -> Any:
    """Return ``value`` as a positive number, or ``default`` when absent/invalid."""
    if value is None:
        return default
    if isinstance(value, bool):
        logger.warning(f"Invalid {name}={value!r}, using default {default}")
        return default
    try:
        number = cast(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {name}={value!r}, using default {default}")
        return default
    if number <= 0:
        logger.warning(f"Non-positive {name}={value!r}, using default {default}")
        return default
    return number


def split_listen_addr(addr: str) -> tuple[str, int]:
    """Split ``host:port`` into its parts."""
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigError(f"Invalid listen address: {addr!r}")
    return host or "0.0.0.0", int(port)


@dataclass(frozen=True)
class AlertThresholds:
    """Per-node alert ceilings. Each one is independent and optional."""

    cpu_pct: float | None = None
    mem_pct: float | None = None
    disk_pct: float | None = None
    tx_bps: float | None = None
    rx_bps: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AlertThresholds":
        """Create from dictionary."""
        values = {}
        for key in ("cpu_pct", "mem_pct", "disk_pct", "tx_bps", "rx_bps"):
            raw = data.get(key)
            if raw is None:
                values[key] = None
                continue
            try:
                values[key] = float(raw)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid alert threshold {key}={raw!r}")
                values[key] = None
        return cls(**values)

    def to_dict(self) -> dict[str, float | None]:
        return {
            "cpu_pct": self.cpu_pct,
            "mem_pct": self.mem_pct,
            "disk_pct": self.disk_pct,
            "tx_bps": self.tx_bps,
            "rx_bps": self.rx_bps,
        }


@dataclass(frozen=True)
class NodeConfig:
    """A monitored node. Fixed for the lifetime of the process."""

    name: str
    url: str
    group: str = ""
    alerts: AlertThresholds | None = None

    @property
    def metrics_url(self) -> str:
        """URL of the node's metrics endpoint."""
        return self.url.rstrip("/") + "/metrics"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NodeConfig":
        if not isinstance(data, dict):
            raise ConfigError(f"Node entry must be a mapping, got {type(data).__name__}")
        name = data.get("name")
        url = data.get("url")
        if not name or not isinstance(name, str):
            raise ConfigError(f"Node entry is missing a name: {data!r}")
        if not url or not isinstance(url, str):
            raise ConfigError(f"Node '{name}' is missing a url")
        alerts = data.get("alerts")
        return cls(
            name=name,
            url=url,
            group=str(data.get("group") or ""),
            alerts=AlertThresholds.from_dict(alerts) if isinstance(alerts, dict) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "group": self.group,
            "alerts": self.alerts.to_dict() if self.alerts else None,
        }


@dataclass
class ProbeSettings:
    """Timeouts applied to every probe, in seconds."""

    connect_timeout: float = 1.5
    fetch_timeout: float = 3.0
    deadline: float = 4.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProbeSettings":
        return cls(
            connect_timeout=_positive(data.get("connect_timeout"), 1.5, "probe.connect_timeout"),
            fetch_timeout=_positive(data.get("fetch_timeout"), 3.0, "probe.fetch_timeout"),
            deadline=_positive(data.get("deadline"), 4.0, "probe.deadline"),
        )


@dataclass
class Config:
    """Main configuration for the nodewatch collector."""

    nodes: list[NodeConfig] = field(default_factory=list)
    listen_addr: str = DEFAULT_LISTEN_ADDR
    refresh_seconds: float = DEFAULT_REFRESH_SECONDS
    history_limit: int = DEFAULT_HISTORY_LIMIT
    log_level: str = "INFO"
    probe: ProbeSettings = field(default_factory=ProbeSettings)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed config file {path}: {e}") from e

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create configuration from dictionary."""
        if not isinstance(data, dict):
            raise ConfigError("Configuration document must be a mapping")

        raw_nodes = data.get("nodes") or []
        if not isinstance(raw_nodes, list):
            raise ConfigError("'nodes' must be a list")

        nodes = []
        seen: set[str] = set()
        for node_data in raw_nodes:
            node = NodeConfig.from_dict(node_data)
            if node.name in seen:
                raise ConfigError(f"Duplicate node name: {node.name}")
            seen.add(node.name)
            nodes.append(node)

        listen_addr = data.get("listen_addr")
        if not isinstance(listen_addr, str) or not listen_addr.strip():
            listen_addr = DEFAULT_LISTEN_ADDR

        probe = data.get("probe")

        return cls(
            nodes=nodes,
            listen_addr=listen_addr,
            refresh_seconds=_positive(
                data.get("refresh_seconds"), DEFAULT_REFRESH_SECONDS, "refresh_seconds"
            ),
            history_limit=_positive(
                data.get("history_limit"), DEFAULT_HISTORY_LIMIT, "history_limit", cast=int
            ),
            log_level=str(data.get("log_level", "INFO")).upper(),
            probe=ProbeSettings.from_dict(probe if isinstance(probe, dict) else {}),
        )

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(self._to_dict(), f, default_flow_style=False, sort_keys=False)

    def _to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        nodes = []
        for node in self.nodes:
            node_data: dict[str, Any] = {
                "name": node.name,
                "url": node.url,
                "group": node.group,
            }
            if node.alerts:
                node_data["alerts"] = {
                    k: v for k, v in node.alerts.to_dict().items() if v is not None
                }
            nodes.append(node_data)

        return {
            "listen_addr": self.listen_addr,
            "refresh_seconds": self.refresh_seconds,
            "history_limit": self.history_limit,
            "log_level": self.log_level,
            "probe": {
                "connect_timeout": self.probe.connect_timeout,
                "fetch_timeout": self.probe.fetch_timeout,
                "deadline": self.probe.deadline,
            },
            "nodes": nodes,
        }


@dataclass
class AgentConfig:
    """Configuration for the node metrics agent."""

    listen_addr: str = DEFAULT_AGENT_LISTEN_ADDR
    hostname_override: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "AgentConfig":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed config file {path}: {e}") from e

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentConfig":
        if not isinstance(data, dict):
            raise ConfigError("Configuration document must be a mapping")
        listen_addr = data.get("listen_addr")
        if not isinstance(listen_addr, str) or not listen_addr.strip():
            listen_addr = DEFAULT_AGENT_LISTEN_ADDR
        override = str(data.get("hostname_override") or "").strip()
        return cls(
            listen_addr=listen_addr,
            hostname_override=override or None,
            log_level=str(data.get("log_level", "INFO")).upper(),
        )


def create_example_config() -> Config:
    """Create an example configuration for documentation."""
    return Config(
        nodes=[
            NodeConfig(
                name="web-1",
                url="http://192.168.1.10:9876",
                group="production",
                alerts=AlertThresholds(cpu_pct=90.0, mem_pct=85.0, disk_pct=90.0),
            ),
            NodeConfig(
                name="db-1",
                url="http://192.168.1.20:9876",
                group="production",
                alerts=AlertThresholds(mem_pct=90.0, disk_pct=80.0, rx_bps=50_000_000),
            ),
            NodeConfig(
                name="build-box",
                url="http://192.168.1.30:9876",
                group="development",
            ),
        ],
    )
