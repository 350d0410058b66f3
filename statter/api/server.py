"""FastAPI server: monitoring engine plus the read API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from statter import __version__
from statter.api.routes import monitor_router
from statter.monitor.query import QueryService
from statter.monitor.scheduler import ProbeScheduler
from statter.monitor.store import ResultStore
from statter.services.registry import ServiceRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Load services, open the store, start probing; undo it all on shutdown."""
    # ConfigurationError is fatal: let it abort startup
    registry = ServiceRegistry(path=app.state.config_path)
    services = registry.load()
    app.state.registry = registry

    store = ResultStore(registry.database_file)
    app.state.store = store
    logger.info("Result store opened: %s", registry.database_file)

    scheduler = ProbeScheduler(services, store)
    app.state.scheduler = scheduler
    app.state.query = QueryService(services, store)

    await scheduler.start()

    yield

    # Shutdown
    await scheduler.stop()
    store.close()


def create_app(config_path: Path | None = None) -> FastAPI:
    app = FastAPI(
        title="Statter - Service Monitor",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config_path = config_path

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(monitor_router, prefix="/api")

    return app
