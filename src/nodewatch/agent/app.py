"""FastAPI application exposing a node's metrics."""

import asyncio

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from nodewatch import __version__
from nodewatch.agent.sampler import MetricsSampler
from nodewatch.config import AgentConfig


def create_agent_app(config: AgentConfig, sampler: MetricsSampler | None = None) -> FastAPI:
    """Create the agent application.

    Args:
        config: Agent configuration.
        sampler: Metrics sampler; one honoring ``config.hostname_override`` if omitted.

    Returns:
        Configured FastAPI application.
    """
    sampler = sampler or MetricsSampler(hostname_override=config.hostname_override)

    app = FastAPI(
        title="nodewatch agent",
        description="Local resource metrics for the nodewatch collector",
        version=__version__,
    )
    # Browser dashboards may read agents directly.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.state.sampler = sampler

    @app.get("/metrics")
    async def metrics() -> dict:
        """Current metrics of this node."""
        payload = await asyncio.to_thread(sampler.sample)
        return payload.to_dict()

    @app.get("/healthz", response_class=PlainTextResponse)
    async def healthz() -> str:
        return "ok"

    return app
