"""Single-node reachability check and metrics fetch."""

import asyncio
import logging
import time
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx

from nodewatch.config import NodeConfig, ProbeSettings
from nodewatch.models import MetricsPayload

logger = logging.getLogger(__name__)

# Port used for the reachability check when the node URL has none.
DEFAULT_CONNECT_PORT = 80


class ProbeError(Exception):
    """A probe step failed."""


class PayloadError(ProbeError):
    """The node answered with a body that is not a valid metrics document."""


@dataclass(frozen=True)
class ProbeResult:
    """What a probe learned about a node."""

    latency_ms: int = 0
    metrics: MetricsPayload | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: str) -> "ProbeResult":
        return cls(error=error or "probe failed")


def connect_target(url: str) -> tuple[str, int]:
    """Host and port for the TCP reachability check of ``url``."""
    try:
        parts = urlsplit(url)
        host = parts.hostname
        port = parts.port
    except ValueError as e:
        raise ProbeError(f"invalid node address {url!r}: {e}") from e
    if not host:
        raise ProbeError(f"invalid node address {url!r}")
    return host, port or DEFAULT_CONNECT_PORT


class Probe:
    """Probe nodes for reachability and metrics.

    Every call to :meth:`run` opens its own TCP connection and HTTP client and
    releases both before returning, whatever the outcome.
    """

    def __init__(
        self,
        settings: ProbeSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the probe.

        Args:
            settings: Timeouts; defaults to 1.5s connect, 3s fetch, 4s overall.
            transport: Optional httpx transport for the metrics fetch.
        """
        self.settings = settings or ProbeSettings()
        self._transport = transport

    async def run(self, node: NodeConfig) -> ProbeResult:
        """Probe one node. Never raises; returns within the overall deadline."""
        start = time.monotonic()
        deadline = self.settings.deadline

        try:
            metrics = await asyncio.wait_for(self._probe(node), timeout=deadline)
        except asyncio.TimeoutError:
            error = f"probe deadline of {deadline:g}s exceeded"
        except ProbeError as e:
            error = str(e)
        except httpx.TimeoutException:
            error = f"metrics fetch timed out after {self.settings.fetch_timeout:g}s"
        except httpx.HTTPError as e:
            error = f"metrics fetch failed: {e}" if str(e) else f"metrics fetch failed: {type(e).__name__}"
        except OSError as e:
            error = f"connect failed: {e}" if str(e) else f"connect failed: {type(e).__name__}"
        except Exception as e:
            logger.exception(f"Unexpected error probing {node.name}")
            error = f"{type(e).__name__}: {e}"
        else:
            latency_ms = int((time.monotonic() - start) * 1000)
            logger.debug(f"Probed {node.name} in {latency_ms} ms")
            return ProbeResult(latency_ms=latency_ms, metrics=metrics)

        logger.warning(f"Probe of {node.name} failed: {error}")
        return ProbeResult.failure(error)

    async def _probe(self, node: NodeConfig) -> MetricsPayload:
        await self._check_reachable(node)
        return await self._fetch_metrics(node)

    async def _check_reachable(self, node: NodeConfig) -> None:
        """Open and close a raw TCP connection to the node."""
        host, port = connect_target(node.url)
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self.settings.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProbeError(
                f"connect to {host}:{port} timed out after {self.settings.connect_timeout:g}s"
            ) from e

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            # Peer reset while closing; reachability was already proven.
            pass

    async def _fetch_metrics(self, node: NodeConfig) -> MetricsPayload:
        """GET the node's metrics endpoint and decode the body."""
        async with httpx.AsyncClient(
            timeout=self.settings.fetch_timeout,
            transport=self._transport,
        ) as client:
            response = await client.get(node.metrics_url)

        if response.status_code != 200:
            raise ProbeError(f"unexpected status {response.status_code} from {node.metrics_url}")

        try:
            return MetricsPayload.from_dict(response.json())
        except ValueError as e:
            raise PayloadError(f"invalid metrics payload: {e}") from e
