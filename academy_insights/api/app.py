# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""HTTP entry point: ``create_app()`` builds the analytics API.

Run it with ``python -m academy_insights`` or any ASGI server using the
factory form, e.g. ``uvicorn academy_insights.api.app:create_app --factory``.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from academy_insights import __version__
from academy_insights.api.middleware.auth import AuthMiddleware
from academy_insights.api.routes import health
from academy_insights.api.v1 import router as v1_router
from academy_insights.core.config import get_settings
from academy_insights.infrastructure.background import (
    setup_dramatiq,
    shutdown_dramatiq,
    start_scheduler,
    stop_scheduler,
)
from academy_insights.infrastructure.database import (
    DatabaseError,
    close_database,
    init_database,
)
from academy_insights.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the academy database and the job scheduler around serving.

    A database that is down at startup does not stop the API; the
    readiness check reports it until it comes back. The scheduler only
    enqueues the nightly jobs, which Dramatiq workers execute.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info(
        "Academy Insights API starting (environment=%s, debug=%s)",
        settings.environment,
        settings.debug,
    )

    try:
        await init_database(settings)
        logger.info("Academy database pool opened")
    except DatabaseError as e:
        logger.warning("Academy database unavailable at startup: %s", e)

    if settings.risk.scheduler_enabled:
        try:
            setup_dramatiq()
            await start_scheduler()
        except ValueError as e:
            logger.warning("Job scheduler not started, invalid cron setting: %s", e)

    yield

    await stop_scheduler()
    shutdown_dramatiq()
    await close_database()
    logger.info("Academy Insights API stopped")


def create_app() -> FastAPI:
    """Build the API with auth, CORS and the health and v1 routers.

    The OpenAPI pages are only served when ``DEBUG`` is on.
    """
    settings = get_settings()

    app = FastAPI(
        title="Academy Insights API",
        description="Student risk scoring and funnel analytics",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        # Slash redirects drop the Authorization header
        redirect_slashes=False,
    )

    # Added last runs first: CORS wraps auth
    app.add_middleware(AuthMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins_list,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)

    return app
