"""Pydantic v2 schemas for the sync control endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from servel_api.services.sync_service import ResourceSyncResult


class UpsertCountsResponse(BaseModel):
    """Write counts of one table touched by a sync."""

    inserted: int
    modified: int
    total: int
    unmatched: int = 0
    deleted: int = 0
    chunks: int = 0
    failed_chunks: int = 0
    failed_records: int = 0


class ResourceSyncResponse(BaseModel):
    """Outcome of syncing one resource."""

    key: str
    status: str = Field(description="updated, unchanged, partial or failed")
    iteration: str | None = None
    previous_iteration: str | None = None
    counts: dict[str, UpsertCountsResponse] = Field(default_factory=dict)
    installation_percentage: float | None = None
    error: str | None = None
    error_type: str | None = None
    duration_seconds: float = 0.0

    @classmethod
    def from_result(cls, result: ResourceSyncResult) -> "ResourceSyncResponse":
        return cls(
            key=result.key,
            status=result.status,
            iteration=result.iteration,
            previous_iteration=result.previous_iteration,
            counts={name: UpsertCountsResponse(**counts.as_dict()) for name, counts in result.counts.items()},
            installation_percentage=result.installation_percentage,
            error=result.error,
            error_type=result.error_type,
            duration_seconds=result.duration_seconds,
        )


class SyncRunResponse(BaseModel):
    """Outcome of a manual sync over one or more resources."""

    success: bool = Field(description="True when no resource failed or merged partially")
    updated: int
    unchanged: int
    partial: int
    failed: int
    results: list[ResourceSyncResponse]

    @classmethod
    def from_results(cls, results: list[ResourceSyncResult]) -> "SyncRunResponse":
        statuses = [result.status for result in results]
        return cls(
            success=all(result.ok for result in results),
            updated=statuses.count("updated"),
            unchanged=statuses.count("unchanged"),
            partial=statuses.count("partial"),
            failed=statuses.count("failed"),
            results=[ResourceSyncResponse.from_result(result) for result in results],
        )


class SchedulerControlResponse(BaseModel):
    """Response to a scheduler start/stop request."""

    running: bool
    changed: bool = Field(description="False when the scheduler already was in the requested state")
    message: str


class SchedulerStatsResponse(BaseModel):
    """Scheduler state and counters."""

    running: bool
    interval: int
    phase: str
    mode: str
    smart_scheduling: bool
    installation_complete: bool
    installation_percentage: float | None = None
    ticks: int
    success_count: int
    error_count: int
    last_tick_at: datetime | None = None
    last_sync_at: datetime | None = None
    last_error: str | None = None
    iterations: dict[str, str | None] = Field(default_factory=dict)
    resources: dict[str, str] = Field(default_factory=dict, description="Last sync status per resource")


class PhaseResponse(BaseModel):
    """Current election-day phase and what a tick would sync in it."""

    phase: str
    timezone: str
    local_time: datetime
    installation_start: str
    voting_start: str
    tally_start: str
    election_date: str | None = None
    installation_complete: bool
    planned_resources: list[str]


class SyncResourceResponse(BaseModel):
    """Registered resource with its persisted sync state."""

    model_config = {"from_attributes": True}

    key: str
    archive: str
    kind: str
    election_code: int | None = None
    scheduled: bool
    last_iteration: str | None = None
    last_synced_at: datetime | None = None
    last_error: str | None = None
