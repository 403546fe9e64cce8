"""Sync control API endpoints.

POST /sync: sync every scheduled resource now (forced)
POST /sync/{resource_key}: sync one resource
POST /sync/scheduler/start: start the automatic scheduler
POST /sync/scheduler/stop: stop the automatic scheduler
GET /sync/stats: scheduler state and counters
GET /sync/phase: current election-day phase
GET /sync/resources: registered resources with their persisted state
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from servel_api.core.dependencies import get_async_session, get_scheduler
from servel_api.schemas.sync import (
    PhaseResponse,
    ResourceSyncResponse,
    SchedulerControlResponse,
    SchedulerStatsResponse,
    SyncResourceResponse,
    SyncRunResponse,
)
from servel_api.services import sync_service
from servel_api.services.scheduler_service import SyncScheduler, UnknownResourceError
from servel_api.services.sync_service import SyncStatus

sync_router = APIRouter(prefix="/sync", tags=["sync"])


@sync_router.post("", response_model=SyncRunResponse)
async def sync_all(
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
    force: bool = Query(default=True, description="Merge even when the iteration marker did not change"),
) -> SyncRunResponse:
    """Sync every scheduled resource, regardless of phase.

    Failures of individual resources are reported per resource; the
    request itself succeeds.
    """
    results = await scheduler.sync_now(force=force)
    return SyncRunResponse.from_results(results)


@sync_router.post("/scheduler/start", response_model=SchedulerControlResponse)
async def start_scheduler(
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
) -> SchedulerControlResponse:
    """Start the automatic scheduler."""
    changed = scheduler.start()
    return SchedulerControlResponse(
        running=scheduler.running,
        changed=changed,
        message="Scheduler started" if changed else "Scheduler already running",
    )


@sync_router.post("/scheduler/stop", response_model=SchedulerControlResponse)
async def stop_scheduler(
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
) -> SchedulerControlResponse:
    """Stop the automatic scheduler; an in-flight sync still completes."""
    changed = scheduler.stop()
    return SchedulerControlResponse(
        running=scheduler.running,
        changed=changed,
        message="Scheduler stopped" if changed else "Scheduler not running",
    )


@sync_router.get("/stats", response_model=SchedulerStatsResponse)
async def get_stats(
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
) -> SchedulerStatsResponse:
    """Scheduler state and counters."""
    return SchedulerStatsResponse(**scheduler.get_stats())


@sync_router.get("/phase", response_model=PhaseResponse)
async def get_phase(
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
) -> PhaseResponse:
    """Current election-day phase and the resources a tick would sync."""
    settings = scheduler.settings
    local_time = scheduler.local_now()
    phase = scheduler.current_phase(local_time)
    return PhaseResponse(
        phase=phase,
        timezone=settings.election_timezone,
        local_time=local_time,
        installation_start=settings.installation_start.isoformat(timespec="minutes"),
        voting_start=settings.voting_start.isoformat(timespec="minutes"),
        tally_start=settings.tally_start.isoformat(timespec="minutes"),
        election_date=settings.election_date.isoformat() if settings.election_date else None,
        installation_complete=scheduler.installation_complete,
        planned_resources=[resource.key for resource in scheduler.planned_resources(phase)],
    )


@sync_router.get("/resources", response_model=list[SyncResourceResponse])
async def list_resources(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
) -> list[SyncResourceResponse]:
    """Registered resources with their last merged marker and last error."""
    states = {state.key: state for state in await sync_service.list_sync_states(session)}
    items = []
    for resource in scheduler.resources.values():
        state = states.get(resource.key)
        items.append(
            SyncResourceResponse(
                key=resource.key,
                archive=resource.archive,
                kind=resource.kind,
                election_code=resource.election_code,
                scheduled=resource.scheduled,
                last_iteration=state.last_iteration if state else None,
                last_synced_at=state.last_synced_at if state else None,
                last_error=state.last_error if state else None,
            )
        )
    return items


@sync_router.post("/{resource_key}", response_model=ResourceSyncResponse)
async def sync_one(
    resource_key: str,
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
    force: bool = Query(default=False, description="Merge even when the iteration marker did not change"),
) -> ResourceSyncResponse:
    """Sync one resource.

    Returns 404 for an unknown key and 502 when the upstream fetch failed.
    A partial merge is reported with status ``partial``.
    """
    try:
        results = await scheduler.sync_now([resource_key], force=force)
    except UnknownResourceError as e:
        raise HTTPException(status_code=404, detail=f"Unknown resource '{resource_key}'.") from e

    result = results[0]
    if result.status is SyncStatus.FAILED and result.error_type == "transport":
        raise HTTPException(
            status_code=502,
            detail=f"Failed to retrieve {resource_key} from SERVEL: {result.error}",
        )
    return ResourceSyncResponse.from_result(result)
