"""FastAPI query and export API for the collector."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response

from nodewatch import __version__
from nodewatch.collector import Collector, Scheduler
from nodewatch.config import Config
from nodewatch.export import history_to_csv, history_to_dict, latest_rows
from nodewatch.models import format_time
from nodewatch.probe import Probe
from nodewatch.store import SampleStore

logger = logging.getLogger(__name__)


def create_app(
    config: Config,
    store: SampleStore | None = None,
    probe: Probe | None = None,
    schedule: bool = True,
) -> FastAPI:
    """Create the collector API application.

    Args:
        config: Application configuration.
        store: Store to serve; a new one sized by ``config.history_limit`` if omitted.
        probe: Probe used by the collector; built from ``config.probe`` if omitted.
        schedule: Run collection rounds for the lifetime of the app.

    Returns:
        Configured FastAPI application.
    """
    if store is None:
        store = SampleStore(config.history_limit)
    collector = Collector(config.nodes, store, probe or Probe(config.probe))
    scheduler = Scheduler(collector, config.refresh_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if schedule:
            # The first round completes before any request is served.
            await scheduler.start()
        try:
            yield
        finally:
            if schedule:
                await scheduler.stop()

    app = FastAPI(
        title="nodewatch",
        description="Fleet metrics collector",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.store = store
    app.state.collector = collector
    app.state.scheduler = scheduler

    @app.get("/api/latest")
    async def api_latest() -> list[dict]:
        """Latest sample of every node that has reported."""
        return latest_rows(store, config.nodes)

    @app.get("/api/history")
    async def api_history(node: str | None = None) -> JSONResponse:
        """History of one node, or of all nodes when ``node`` is omitted."""
        if node:
            return JSONResponse([s.to_dict() for s in store.read_history(node)])
        return JSONResponse(history_to_dict(store.read_history(), config.nodes))

    @app.get("/export/csv")
    async def export_csv() -> Response:
        """Full history as CSV."""
        return Response(
            content=history_to_csv(store.read_history(), config.nodes),
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=metrics.csv"},
        )

    @app.get("/export/json")
    async def export_json() -> JSONResponse:
        """Full history as JSON."""
        return JSONResponse(history_to_dict(store.read_history(), config.nodes))

    @app.get("/health")
    async def healthcheck() -> dict:
        """Application health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": format_time(datetime.now(timezone.utc)),
            "version": __version__,
            "nodes": len(config.nodes),
            "samples": len(store),
            "rounds": collector.rounds_completed,
        }

    return app
