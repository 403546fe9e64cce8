"""FastAPI application factory.

Creates the FastAPI app with lifespan management, exception handlers,
and OpenAPI metadata.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from servel_api.core.config import get_settings
from servel_api.core.database import dispose_engine, init_engine
from servel_api.core.logging import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle.

    Startup initializes the engine and creates the sync scheduler (started
    when sync is enabled). Shutdown waits for an in-flight sync, then
    disposes the engine.
    """
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)
    from servel_api.services.scheduler_service import SyncScheduler

    scheduler = SyncScheduler(settings)
    init_engine(
        settings.database_url,
        echo=False,
        schema=settings.database_schema,
        concurrent_syncs=len(scheduler.resources),
    )
    app.state.scheduler = scheduler
    if settings.sync_enabled:
        scheduler.start()

    yield

    await scheduler.shutdown()
    app.state.scheduler = None
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="SERVEL Results API",
        description="Chilean election results synced from SERVEL, with district and circumscription aggregation",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc)},
        )

    from servel_api.api.router import create_router, setup_middleware

    setup_middleware(app, settings)
    app.include_router(create_router(settings))

    return app
