"""Integration tests for the sync control API endpoints."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from servel_api.api.v1.sync import sync_router
from servel_api.core.dependencies import get_async_session, get_scheduler
from servel_api.models.sync_resource import SyncResource
from servel_api.services.scheduler_service import SyncScheduler
from servel_api.services.sync_service import ResourceSyncResult, SyncStatus
from servel_api.services.upsert_service import UpsertCounts

NIGHT = datetime(2025, 11, 16, 21, 0)


def _result(key: str, status: SyncStatus = SyncStatus.UPDATED, **overrides) -> ResourceSyncResult:
    defaults = {
        "iteration": "8",
        "previous_iteration": "7",
        "counts": {"mesa_results": UpsertCounts(inserted=3, modified=1, total=4, chunks=1)},
    }
    defaults.update(overrides)
    return ResourceSyncResult(key=key, status=status, **defaults)


@pytest.fixture
def mock_session():
    return AsyncMock()


@pytest.fixture
def scheduler(settings) -> SyncScheduler:
    session_factory = MagicMock()
    session_factory.return_value.__aenter__.return_value = AsyncMock()
    session_factory.return_value.__aexit__.return_value = False
    return SyncScheduler(settings, session_factory=session_factory, clock=lambda: NIGHT)


@pytest.fixture
def app(mock_session, scheduler) -> FastAPI:
    """Minimal FastAPI app with the sync router and a real scheduler."""
    app = FastAPI()
    app.include_router(sync_router, prefix="/api/v1")
    app.dependency_overrides[get_async_session] = lambda: mock_session
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    return app


@pytest.fixture
def client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture(autouse=True)
def no_markers():
    with patch("servel_api.services.scheduler_service.load_markers", new_callable=AsyncMock, return_value={}):
        yield


class TestSyncAll:
    """POST /sync."""

    @pytest.mark.asyncio
    async def test_syncs_every_scheduled_resource_forced(self, client) -> None:
        calls = []

        async def fake_sync(resource, *, force=False, **kwargs):
            calls.append((resource.key, force))
            if resource.key == "mesas_senadores":
                return _result(resource.key, SyncStatus.FAILED, error="HTTP 503", error_type="transport", counts={})
            return _result(resource.key)

        with patch("servel_api.services.scheduler_service.sync_resource", fake_sync):
            resp = await client.post("/api/v1/sync")

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is False
        assert data["updated"] == 6
        assert data["failed"] == 1
        assert len(data["results"]) == 7
        assert all(force for _, force in calls)
        first = data["results"][0]
        assert first["counts"]["mesa_results"]["inserted"] == 3

    @pytest.mark.asyncio
    async def test_force_can_be_disabled(self, client) -> None:
        calls = []

        async def fake_sync(resource, *, force=False, **kwargs):
            calls.append(force)
            return _result(resource.key, SyncStatus.UNCHANGED, counts={})

        with patch("servel_api.services.scheduler_service.sync_resource", fake_sync):
            resp = await client.post("/api/v1/sync", params={"force": "false"})

        assert resp.json()["unchanged"] == 7
        assert resp.json()["success"] is True
        assert not any(calls)


class TestSyncOne:
    """POST /sync/{resource_key}."""

    @pytest.mark.asyncio
    async def test_single_resource(self, client) -> None:
        with patch(
            "servel_api.services.scheduler_service.sync_resource",
            AsyncMock(return_value=_result("mesas_diputados")),
        ):
            resp = await client.post("/api/v1/sync/mesas_diputados")

        assert resp.status_code == 200
        data = resp.json()
        assert data["key"] == "mesas_diputados"
        assert data["status"] == "updated"
        assert data["iteration"] == "8"

    @pytest.mark.asyncio
    async def test_unknown_resource_404(self, client) -> None:
        resp = await client.post("/api/v1/sync/mesas_alcaldes")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_transport_failure_502(self, client) -> None:
        failed = _result("constitucion", SyncStatus.FAILED, error="Timeout fetching", error_type="transport", counts={})
        with patch("servel_api.services.scheduler_service.sync_resource", AsyncMock(return_value=failed)):
            resp = await client.post("/api/v1/sync/constitucion")

        assert resp.status_code == 502
        assert "constitucion" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_partial_reported(self, client) -> None:
        partial = _result("mesas_senadores", SyncStatus.PARTIAL, error="1 chunk(s) failed")
        with patch("servel_api.services.scheduler_service.sync_resource", AsyncMock(return_value=partial)):
            resp = await client.post("/api/v1/sync/mesas_senadores")

        assert resp.status_code == 200
        assert resp.json()["status"] == "partial"
        assert resp.json()["error"] == "1 chunk(s) failed"


class TestSchedulerControl:
    """Scheduler start/stop, stats and phase."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, client, scheduler) -> None:
        async def fake_sync(resource, **kwargs):
            return _result(resource.key)

        with patch("servel_api.services.scheduler_service.sync_resource", fake_sync):
            resp = await client.post("/api/v1/sync/scheduler/start")
            assert resp.json() == {"running": True, "changed": True, "message": "Scheduler started"}

            resp = await client.post("/api/v1/sync/scheduler/start")
            assert resp.json()["changed"] is False

            resp = await client.post("/api/v1/sync/scheduler/stop")
            assert resp.json() == {"running": False, "changed": True, "message": "Scheduler stopped"}

            resp = await client.post("/api/v1/sync/scheduler/stop")
            assert resp.json()["changed"] is False

            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_stats(self, client) -> None:
        resp = await client.get("/api/v1/sync/stats")

        assert resp.status_code == 200
        data = resp.json()
        assert data["running"] is False
        assert data["phase"] == "tally"
        assert data["mode"] == "cold-start"
        assert data["ticks"] == 0
        assert data["installation_complete"] is False

    @pytest.mark.asyncio
    async def test_phase(self, client) -> None:
        resp = await client.get("/api/v1/sync/phase")

        assert resp.status_code == 200
        data = resp.json()
        assert data["phase"] == "tally"
        assert data["timezone"] == "America/Santiago"
        assert data["tally_start"] == "18:00"
        assert len(data["planned_resources"]) == 7

    @pytest.mark.asyncio
    async def test_resources(self, client) -> None:
        state = SyncResource(
            key="constitucion",
            archive="constitucion.zip",
            last_iteration="12",
            last_synced_at=datetime(2025, 11, 16, 20, 0, tzinfo=UTC),
            last_error=None,
        )
        with patch("servel_api.services.sync_service.list_sync_states", AsyncMock(return_value=[state])):
            resp = await client.get("/api/v1/sync/resources")

        assert resp.status_code == 200
        items = {item["key"]: item for item in resp.json()}
        assert len(items) == 8
        assert items["constitucion"]["last_iteration"] == "12"
        assert items["territorios"]["scheduled"] is False
        assert items["mesas_diputados"]["last_iteration"] is None


class TestSchedulerMissing:
    """The scheduler dependency without an application scheduler."""

    @pytest.mark.asyncio
    async def test_503_without_scheduler(self, mock_session) -> None:
        app = FastAPI()
        app.include_router(sync_router, prefix="/api/v1")
        app.dependency_overrides[get_async_session] = lambda: mock_session
        app.state.scheduler = None
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            resp = await client.get("/api/v1/sync/stats")

        assert resp.status_code == 503
