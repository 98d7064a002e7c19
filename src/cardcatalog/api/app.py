"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cardcatalog.api.exception_handlers import register_exception_handlers
from cardcatalog.api.routers import api_router
from cardcatalog.api.scan_runner import ScanRunner
from cardcatalog.bootstrap import CatalogContainer
from cardcatalog.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None, container: CatalogContainer | None = None
) -> FastAPI:
    """Create the API app.

    Args:
        settings: Defaults to get_settings()
        container: Prebuilt container (tests); otherwise built in the lifespan
    """
    settings = settings or get_settings()

    # Hey future me - the container (DB engine, HTTP clients, THE AcoustID rate limiter)
    # lives exactly as long as the app. Shutdown first stops a running scan gracefully,
    # then closes the clients it was using.
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.container = container or CatalogContainer(settings)
        app.state.scan_runner = ScanRunner(app.state.container)
        logger.info(f"{settings.app_name} API started")
        try:
            yield
        finally:
            await app.state.scan_runner.stop()
            await app.state.container.close()
            logger.info(f"{settings.app_name} API stopped")

    app = FastAPI(
        title="Music Card Catalog",
        description="Scan, identify and prune a local music catalog",
        version="0.1.0",
        lifespan=lifespan,
    )
    register_exception_handlers(app)
    app.include_router(api_router)
    return app
