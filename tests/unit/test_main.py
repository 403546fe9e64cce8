"""Tests for the FastAPI application factory module."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from servel_api.core.config import Settings
from servel_api.main import create_app, lifespan


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, database_url="sqlite+aiosqlite:///:memory:", **overrides)  # type: ignore[call-arg]


class TestCreateApp:
    """Tests for create_app."""

    @pytest.fixture
    def app(self):
        with patch("servel_api.main.get_settings", return_value=_settings()):
            return create_app()

    def test_app_is_created(self, app) -> None:
        assert app.title == "SERVEL Results API"

    def test_app_has_openapi_schema(self, app) -> None:
        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/openapi.json")
        assert response.status_code == 200
        paths = response.json()["paths"]
        assert "/api/v1/sync" in paths
        assert "/api/v1/results/{election_code}/districts/{district_id}" in paths

    def test_value_error_handler_registered(self, app) -> None:
        assert app.exception_handlers.get(ValueError) is not None


class TestAppLifespan:
    """Tests for lifespan management."""

    @pytest.mark.asyncio
    async def test_lifespan_starts_and_stops_scheduler(self) -> None:
        """With sync enabled the scheduler is started, then shut down before the engine is disposed."""
        app = MagicMock()
        scheduler = MagicMock()
        scheduler.shutdown = AsyncMock()
        scheduler.resources = {"a": object(), "b": object(), "c": object()}

        with (
            patch("servel_api.main.get_settings", return_value=_settings(sync_enabled=True)),
            patch("servel_api.main.setup_logging") as mock_setup_logging,
            patch("servel_api.main.init_engine") as mock_init_engine,
            patch("servel_api.main.dispose_engine", new_callable=AsyncMock) as mock_dispose,
            patch("servel_api.services.scheduler_service.SyncScheduler", return_value=scheduler),
        ):
            async with lifespan(app):
                mock_setup_logging.assert_called_once_with("INFO", None)
                mock_init_engine.assert_called_once()
                assert mock_init_engine.call_args.kwargs["concurrent_syncs"] == 3
                assert app.state.scheduler is scheduler
                scheduler.start.assert_called_once()

            scheduler.shutdown.assert_awaited_once()
            mock_dispose.assert_awaited_once()
            assert app.state.scheduler is None

    @pytest.mark.asyncio
    async def test_lifespan_sync_disabled(self) -> None:
        app = MagicMock()
        scheduler = MagicMock()
        scheduler.shutdown = AsyncMock()

        with (
            patch("servel_api.main.get_settings", return_value=_settings(sync_enabled=False)),
            patch("servel_api.main.setup_logging"),
            patch("servel_api.main.init_engine"),
            patch("servel_api.main.dispose_engine", new_callable=AsyncMock),
            patch("servel_api.services.scheduler_service.SyncScheduler", return_value=scheduler),
        ):
            async with lifespan(app):
                scheduler.start.assert_not_called()

            scheduler.shutdown.assert_awaited_once()
