"""FastAPI dependency injection for database sessions and the sync scheduler."""

from collections.abc import AsyncGenerator

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from servel_api.core.database import get_session_factory
from servel_api.services.scheduler_service import SyncScheduler


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Yield an async database session with per-request lifecycle."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


def get_scheduler(request: Request) -> SyncScheduler:
    """Return the scheduler owned by the running application.

    Raises:
        HTTPException: 503 if the application started without one.
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync scheduler is not initialized",
        )
    return scheduler
