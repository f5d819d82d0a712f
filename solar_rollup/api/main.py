"""
FastAPI application entry point for the solar query API.

Settings are loaded and validated at startup and stored on app.state for
route handlers.

CHANGELOG:
- 2026-10-15: Register solar router (STORY-012)
- 2026-10-15: Initial creation (STORY-012)
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from solar_rollup.api.health import router as health_router
from solar_rollup.api.solar import router as solar_router
from solar_rollup.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: load settings on startup, log on shutdown."""
    settings = get_settings()
    app.state.settings = settings
    logger.info(
        "Solar API ready (timezone=%s, capacity=%.0fW, cache=%s)",
        settings.timezone,
        settings.system_capacity_w,
        "redis" if settings.redis_url else "off",
    )
    yield
    logger.info("Solar API shutting down")


app = FastAPI(
    title="Solar Rollup API",
    description="Bucketed solar production history and live snapshot.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
)

app.include_router(health_router)
app.include_router(solar_router)
