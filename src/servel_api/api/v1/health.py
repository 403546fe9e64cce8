"""Service health and info endpoints.

GET /health: liveness check
GET /info: version and upstream configuration
"""

from importlib.metadata import PackageNotFoundError, version
from typing import Annotated

from fastapi import APIRouter, Depends

from servel_api.core.config import Settings, get_settings

try:
    __version__ = version("servel-api")
except PackageNotFoundError:
    __version__ = "0.0.0"

health_router = APIRouter(tags=["health"])


@health_router.get("/health", status_code=200)
async def health_check() -> dict:
    """Liveness check; does not touch the database."""
    return {"status": "healthy"}


@health_router.get("/info", status_code=200)
async def info(
    settings: Annotated[Settings, Depends(get_settings)],
) -> dict:
    """Return application version and the upstream it syncs from."""
    return {
        "version": __version__,
        "upstream": settings.servel_base_url,
        "elections": {
            "presidencial": settings.servel_presidential_code,
            "senadores": settings.servel_senators_code,
            "diputados": settings.servel_deputies_code,
        },
    }
