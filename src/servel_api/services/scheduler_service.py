"""Phase-aware sync scheduler.

A single ``SyncScheduler`` instance owns every piece of mutable scheduling
state: the running flag, the cold-start/warm mode, the installation-complete
latch, the change detector and the statistics. The FastAPI lifespan creates
it and keeps it on ``app.state``.
"""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servel_api.core.config import Settings
from servel_api.core.logging import sync_summary_logger
from servel_api.lib.servel import (
    ChangeDetector,
    Phase,
    PhaseBoundaries,
    Resource,
    ResourceKind,
    SchedulerMode,
    build_resources,
    fetch_payload,
    resolve_phase,
    select_resources,
)
from servel_api.services.sync_service import Fetcher, ResourceSyncResult, SyncStatus, load_markers, sync_resource


class UnknownResourceError(KeyError):
    """Raised when a sync is requested for a resource key that is not registered."""


@dataclass
class SchedulerStats:
    """Counters accumulated over the lifetime of the scheduler."""

    ticks: int = 0
    success_count: int = 0
    error_count: int = 0
    last_tick_at: datetime | None = None
    last_sync_at: datetime | None = None
    last_error: str | None = None
    last_results: dict[str, ResourceSyncResult] = field(default_factory=dict)


@dataclass
class TickResult:
    """Outcome of one scheduler tick."""

    phase: Phase
    mode: SchedulerMode
    results: list[ResourceSyncResult] = field(default_factory=list)


class SyncScheduler:
    """Runs resource syncs on a fixed interval, picking resources by phase.

    Args:
        settings: Application settings.
        session_factory: Session factory for the merges. Resolved from the
            global engine at sync time when omitted.
        resources: Resource registry; built from ``settings`` when omitted.
        clock: Returns the current time; injectable for tests.
        fetch: Payload fetcher passed down to every resource sync.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        resources: dict[str, Resource] | None = None,
        clock: Callable[[], datetime] | None = None,
        fetch: Fetcher = fetch_payload,
    ) -> None:
        self._settings = settings
        self._session_factory = session_factory
        self._resources = resources if resources is not None else build_resources(settings)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._fetch = fetch
        self._timezone = ZoneInfo(settings.election_timezone)
        self._boundaries = PhaseBoundaries.from_settings(settings)

        self.detector = ChangeDetector()
        self.stats = SchedulerStats()
        self._mode = SchedulerMode.COLD_START
        self._installation_complete = False
        self._installation_percentage: float | None = None
        self._seeded = False
        self._cycle_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None

    # --- State ---

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    @property
    def mode(self) -> SchedulerMode:
        return self._mode

    @property
    def installation_complete(self) -> bool:
        return self._installation_complete

    @property
    def installation_percentage(self) -> float | None:
        return self._installation_percentage

    @property
    def resources(self) -> dict[str, Resource]:
        return self._resources

    @property
    def settings(self) -> Settings:
        return self._settings

    def local_now(self) -> datetime:
        """Scheduler clock in the election timezone."""
        now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=self._timezone)
        return now.astimezone(self._timezone)

    def current_phase(self, now: datetime | None = None) -> Phase:
        """Phase at ``now`` (defaults to the scheduler clock)."""
        return resolve_phase(
            now or self._clock(),
            self._boundaries,
            self._timezone,
            smart_scheduling=self._settings.smart_scheduling_enabled,
        )

    def planned_resources(self, phase: Phase | None = None) -> list[Resource]:
        """Resources the next tick would sync in ``phase``."""
        return select_resources(
            phase or self.current_phase(),
            self._resources.values(),
            installation_complete=self._installation_complete,
        )

    # --- Lifecycle ---

    def start(self) -> bool:
        """Start ticking: one tick now, then one every ``sync_interval`` seconds.

        Returns:
            False when the scheduler was already running.
        """
        if self.running:
            return False
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        self._task = asyncio.create_task(self._run(stop_event), name="servel-sync-scheduler")
        logger.info("Sync scheduler started (interval={}s)", self._settings.sync_interval)
        return True

    def stop(self) -> bool:
        """Prevent future ticks. A sync already in flight runs to completion.

        Returns:
            False when the scheduler was not running.
        """
        if self._stop_event is None or self._stop_event.is_set():
            return False
        self._stop_event.set()
        logger.info("Sync scheduler stopping")
        return True

    async def shutdown(self) -> None:
        """Stop and wait for the loop (and any in-flight tick) to finish."""
        self.stop()
        if self._task is not None:
            await self._task
            self._task = None

    async def _run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("Sync scheduler tick error")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._settings.sync_interval)
            except TimeoutError:
                pass
        logger.info("Sync scheduler stopped")

    # --- Syncing ---

    async def tick(self) -> TickResult:
        """Resolve the phase and sync the resources it selects."""
        now = self._clock()
        phase = self.current_phase(now)
        self.stats.ticks += 1
        self.stats.last_tick_at = now

        selected = self.planned_resources(phase)
        if not selected:
            logger.debug("Tick in phase {}: nothing to sync", phase)
            return TickResult(phase=phase, mode=self._mode)

        mode = self._mode
        results = await self.run_cycle(selected)
        return TickResult(phase=phase, mode=mode, results=results)

    async def sync_now(self, keys: Iterable[str] | None = None, *, force: bool = False) -> list[ResourceSyncResult]:
        """Sync resources on demand, regardless of phase.

        Args:
            keys: Resource keys to sync; every scheduled resource when None.
            force: Merge even when the iteration marker did not change.

        Raises:
            UnknownResourceError: If a key is not registered.
        """
        if keys is None:
            selected = [resource for resource in self._resources.values() if resource.scheduled]
        else:
            selected = []
            for key in keys:
                if key not in self._resources:
                    raise UnknownResourceError(key)
                selected.append(self._resources[key])
        return await self.run_cycle(selected, force=force)

    async def run_cycle(self, resources: list[Resource], *, force: bool = False) -> list[ResourceSyncResult]:
        """Sync ``resources``: sequentially in cold-start mode, concurrently once warm.

        Cycles never overlap; a manual sync waits for a scheduled one.
        """
        async with self._cycle_lock:
            await self._seed_markers()

            if self._mode is SchedulerMode.COLD_START:
                results = [await self._sync(resource, force) for resource in resources]
            else:
                gathered = await asyncio.gather(
                    *(self._sync(resource, force) for resource in resources),
                    return_exceptions=True,
                )
                results = []
                for resource, item in zip(resources, gathered, strict=True):
                    if isinstance(item, BaseException):
                        logger.error("{} sync raised: {}", resource.key, item)
                        item = ResourceSyncResult(
                            key=resource.key, status=SyncStatus.FAILED, error=str(item), error_type="unexpected"
                        )
                    results.append(item)

            self._record(results)
            sync_summary_logger(
                mode=str(self._mode),
                phase=str(self.current_phase()),
                statuses={result.key: str(result.status) for result in results},
            ).info("Sync cycle finished: {} resource(s)", len(results))

            scheduled = {key for key, resource in self._resources.items() if resource.scheduled}
            if self._mode is SchedulerMode.COLD_START and scheduled <= {r.key for r in resources}:
                self._mode = SchedulerMode.WARM
                logger.info("First full sync cycle completed; scheduler is now warm")
            return results

    async def _sync(self, resource: Resource, force: bool) -> ResourceSyncResult:
        return await sync_resource(
            resource,
            settings=self._settings,
            session_factory=self._get_session_factory(),
            detector=self.detector,
            force=force,
            fetch=self._fetch,
        )

    def _get_session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            from servel_api.core.database import get_session_factory

            self._session_factory = get_session_factory()
        return self._session_factory

    async def _seed_markers(self) -> None:
        """Load persisted markers once, so a restart does not re-merge unchanged payloads."""
        if self._seeded:
            return
        try:
            async with self._get_session_factory()() as session:
                markers = await load_markers(session)
        except SQLAlchemyError as exc:
            logger.warning("Could not load persisted iteration markers: {}", exc)
            return
        self.detector.seed(markers)
        self._seeded = True
        logger.debug("Seeded {} iteration marker(s)", len(markers))

    def _record(self, results: list[ResourceSyncResult]) -> None:
        now = self._clock()
        for result in results:
            self.stats.last_results[result.key] = result
            if result.status is SyncStatus.FAILED:
                self.stats.error_count += 1
                self.stats.last_error = f"{result.key}: {result.error}"
            else:
                self.stats.success_count += 1
                self.stats.last_sync_at = now
                if result.status is SyncStatus.PARTIAL:
                    self.stats.last_error = f"{result.key}: {result.error}"

            resource = self._resources.get(result.key)
            if (
                resource is not None
                and resource.kind is ResourceKind.INSTALLATION
                and result.installation_percentage is not None
            ):
                self._update_installation(result.installation_percentage)

    def _update_installation(self, percentage: float) -> None:
        self._installation_percentage = percentage
        if not self._installation_complete and percentage >= self._settings.installation_threshold:
            self._installation_complete = True
            logger.info(
                "Installation complete ({:.2f}% >= {}%); installation polling stops until restart",
                percentage,
                self._settings.installation_threshold,
            )

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of the scheduler state for the stats endpoint."""
        phase = self.current_phase()
        return {
            "running": self.running,
            "interval": self._settings.sync_interval,
            "phase": phase,
            "mode": self._mode,
            "smart_scheduling": self._settings.smart_scheduling_enabled,
            "installation_complete": self._installation_complete,
            "installation_percentage": self._installation_percentage,
            "ticks": self.stats.ticks,
            "success_count": self.stats.success_count,
            "error_count": self.stats.error_count,
            "last_tick_at": self.stats.last_tick_at,
            "last_sync_at": self.stats.last_sync_at,
            "last_error": self.stats.last_error,
            "iterations": self.detector.snapshot(),
            "resources": {key: result.status for key, result in self.stats.last_results.items()},
        }
