"""FastAPI application entry point for the Charter Coordinator.

One Uvicorn process serves:
    - /api/v1/*  REST API (bookings, contracts, escrow, webhooks, tracking, cron)
    - /mcp       read-only MCP tools over booking, escrow and tracking state

Startup configures logging, opens the database (creating tables in
development) and connects to Redis when one is configured. Shutdown closes
the AIS HTTP clients before disposing of the database and Redis pools.

Run with:
    uv run uvicorn charter_coordinator.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from charter_coordinator.config import get_platform_config, get_settings
from charter_coordinator.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    setup_logging(log_level=settings.app_log_level, json_logs=not settings.is_development)
    logger = get_logger(__name__)

    platform = get_platform_config()
    logger.info(
        "app.starting",
        env=settings.app_env,
        platform_config=platform.version,
        currency=platform.default_currency,
    )

    from charter_coordinator.infrastructure.database.engine import close_db, init_db
    from charter_coordinator.infrastructure.redis_client import close_redis, init_redis

    await init_db()

    # Without Redis the poller only guards against overlapping ticks in-process
    try:
        await init_redis()
    except Exception as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    logger.info("app.started", host=settings.app_host, port=settings.app_port)
    yield

    logger.info("app.shutting_down")
    from charter_coordinator.api.deps import get_ais_provider

    if get_ais_provider.cache_info().currsize:
        await get_ais_provider().aclose()
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Build the FastAPI app with middleware, routers and the MCP mount."""
    settings = get_settings()

    app = FastAPI(
        title="Charter Coordinator",
        description=(
            "Vessel charter lifecycle: negotiation, contract signatures, "
            "payment escrow and AIS tracking."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    from charter_coordinator.api.middleware import SharedSecretGuard, setup_middleware
    from charter_coordinator.api.routes import (
        bookings,
        contracts,
        cron,
        escrow,
        health,
        tracking,
        webhooks,
    )

    setup_middleware(app)
    for module in (health, bookings, contracts, escrow, webhooks, tracking, cron):
        app.include_router(module.router)

    from charter_coordinator.mcp_server.tools import mcp

    app.mount(
        "/mcp",
        SharedSecretGuard(mcp.sse_app(), lambda: get_settings().mcp_secret, name="MCP"),
    )
    return app


app = create_app()
