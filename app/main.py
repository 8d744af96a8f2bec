from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import ephemeral_router, router, sensors_router
from logging_config import configure_logging
from services.ephemeral import build_default_ephemeral_service
from services.simulation import build_default_simulation_service
from settings import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    application.state.simulation = None
    if settings.persistent_enabled:
        application.state.simulation = build_default_simulation_service()
        application.state.simulation.start()
    else:
        logger.info("Persistent sensors disabled; serving ephemeral readings only")
    try:
        yield
    finally:
        # Routes may have built the simulation lazily; it is recorded on app.state.
        if application.state.simulation is not None:
            application.state.simulation.shutdown()
        build_default_simulation_service.cache_clear()
        build_default_ephemeral_service.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Room Sensor Telemetry",
        description="Synthetic per-room temperature, humidity and CO2 readings.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    app.include_router(ephemeral_router)
    app.include_router(sensors_router)
    return app

app = create_app()
