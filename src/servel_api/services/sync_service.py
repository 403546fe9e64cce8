"""Resource sync service: fetch, detect change, merge, persist the marker.

One call handles one resource end to end. Within a resource the order is
always detect -> merge -> persist marker; the marker is only committed once
every chunk of the merge went through, so a failed or partial merge is
retried in full on the next attempt.
"""

import asyncio
import enum
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy import ColumnElement, Table, and_, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servel_api.core.config import Settings
from servel_api.lib.servel import (
    ChangeDetector,
    ChangeStatus,
    FetchError,
    InstallationPayload,
    PayloadError,
    Resource,
    ResourceKind,
    ServelError,
    extract_candidates,
    extract_iteration,
    fetch_payload,
    parse_installation_payload,
    parse_tables_payload,
    parse_territories_payload,
    parse_totals_payload,
)
from servel_api.models.aggregate_result import AggregateResult
from servel_api.models.candidate import Candidate
from servel_api.models.mesa_result import MesaResult
from servel_api.models.sync_resource import SyncResource
from servel_api.models.territory import Territory
from servel_api.services.upsert_service import UpsertCounts, delete_absent, update_existing, upsert_records

Fetcher = Callable[..., Awaitable[Any]]


class SyncStatus(enum.StrEnum):
    """Outcome of syncing one resource."""

    UPDATED = "updated"
    UNCHANGED = "unchanged"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class ResourceSyncResult:
    """What happened to one resource during a sync."""

    key: str
    status: SyncStatus
    iteration: str | None = None
    previous_iteration: str | None = None
    counts: dict[str, UpsertCounts] = field(default_factory=dict)
    installation_percentage: float | None = None
    error: str | None = None
    error_type: str | None = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status in (SyncStatus.UPDATED, SyncStatus.UNCHANGED)


def _aggregate_iteration_guard(table: Table, stmt: Any) -> ColumnElement[bool]:
    """Never replace a snapshot with one carrying an older iteration marker.

    Markers are unpadded counters stored as text, so "10" must outrank "9":
    a longer marker is newer, and equal lengths compare as text.
    """
    stored = table.c.iteracion
    incoming = stmt.excluded.iteracion
    return or_(
        stored.is_(None),
        incoming.is_(None),
        func.length(stored) < func.length(incoming),
        and_(func.length(stored) == func.length(incoming), stored <= incoming),
    )


def _parse(parser: Callable[[Any], Any], raw: Any, resource: Resource) -> Any:
    try:
        return parser(raw)
    except ValueError as exc:
        msg = f"Invalid {resource.key} payload: {exc}"
        raise PayloadError(msg) from exc


async def _merge_territories(session: AsyncSession, resource: Resource, raw: Any) -> dict[str, UpsertCounts]:
    _, records = await asyncio.to_thread(_parse, parse_territories_payload, raw, resource)
    rows = [record.model_dump() for record in records]
    counts = await upsert_records(
        session, Territory, rows, key_columns=["id_mesa"], batch_size=resource.batch_size, label=resource.key
    )
    if counts.complete and rows:
        counts.deleted = await delete_absent(
            session, Territory, key_column="id_mesa", keep={row["id_mesa"] for row in rows}
        )
    return {"territories": counts}


async def _merge_installation(
    session: AsyncSession, resource: Resource, installation: InstallationPayload
) -> dict[str, UpsertCounts]:
    rows = [{"id_mesa": record.id_mesa, "instalada": record.instalada} for record in installation.mesas]
    counts = await update_existing(
        session,
        MesaResult,
        rows,
        key_column="id_mesa",
        value_column="instalada",
        batch_size=resource.batch_size,
        label=resource.key,
    )
    return {"mesa_results": counts}


async def _merge_totals(session: AsyncSession, resource: Resource, raw: Any) -> dict[str, UpsertCounts]:
    snapshots = _parse(parse_totals_payload, raw, resource)
    aggregates = await upsert_records(
        session,
        AggregateResult,
        [snapshot.to_row() for snapshot in snapshots],
        key_columns=["id_eleccion", "name"],
        batch_size=resource.batch_size,
        guard=_aggregate_iteration_guard,
        label=resource.key,
    )
    candidates = await upsert_records(
        session,
        Candidate,
        extract_candidates(snapshots),
        key_columns=["id"],
        batch_size=resource.batch_size,
        label=f"{resource.key} candidates",
    )
    return {"aggregate_results": aggregates, "candidates": candidates}


async def _merge_tables(session: AsyncSession, resource: Resource, raw: Any) -> dict[str, UpsertCounts]:
    payload = await asyncio.to_thread(_parse, parse_tables_payload, raw, resource)
    election_code = resource.election_code or 0
    rows = [mesa.to_row(election_code) for mesa in payload.mesas]
    counts = await upsert_records(
        session,
        MesaResult,
        rows,
        key_columns=["cod_eleccion", "id_mesa"],
        batch_size=resource.batch_size,
        label=resource.key,
    )
    return {"mesa_results": counts}


async def record_sync_state(
    session: AsyncSession,
    resource: Resource,
    *,
    iteration: str | None = None,
    error: str | None = None,
    merged: bool = False,
) -> None:
    """Upsert the ``sync_resources`` row of ``resource``.

    A merged sync stores the new marker and clears the error; a failed one
    only records the error and keeps the last good marker.
    """
    now = datetime.now(UTC)
    values: dict[str, Any] = {"key": resource.key, "archive": resource.archive, "last_error": error}
    if merged:
        values["last_iteration"] = iteration
        values["last_synced_at"] = now
    stmt = pg_insert(SyncResource).values(**values)
    set_ = {col: stmt.excluded[col] for col in values if col != "key"}
    set_["updated_at"] = now
    stmt = stmt.on_conflict_do_update(index_elements=["key"], set_=set_)
    await session.execute(stmt)
    await session.commit()


async def _record_failure(
    session_factory: async_sessionmaker[AsyncSession], resource: Resource, error: str
) -> None:
    try:
        async with session_factory() as session:
            await record_sync_state(session, resource, error=error)
    except SQLAlchemyError as exc:
        logger.warning("Could not record sync failure of {}: {}", resource.key, exc)


async def load_markers(session: AsyncSession) -> dict[str, str | None]:
    """Persisted last-merged marker per resource key.

    Rows that only ever recorded a failure have nothing merged and are left
    out, so their first successful sync is never skipped.
    """
    result = await session.execute(
        select(SyncResource.key, SyncResource.last_iteration).where(SyncResource.last_synced_at.is_not(None))
    )
    return {key: marker for key, marker in result.all()}


async def list_sync_states(session: AsyncSession) -> list[SyncResource]:
    """All ``sync_resources`` rows, ordered by key."""
    result = await session.execute(select(SyncResource).order_by(SyncResource.key))
    return list(result.scalars().all())


async def sync_resource(
    resource: Resource,
    *,
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    detector: ChangeDetector,
    force: bool = False,
    fetch: Fetcher = fetch_payload,
) -> ResourceSyncResult:
    """Sync one resource.

    Args:
        resource: Resource to sync.
        settings: Application settings (upstream URL and allowlist).
        session_factory: Factory for the session the merge writes through.
        detector: Change detector holding the last merged markers.
        force: Merge even when the marker did not change.
        fetch: Payload fetcher, ``fetch_payload`` unless overridden.

    Returns:
        The per-resource result. Errors are reported in the result, never
        raised, so one failing resource cannot abort the others.
    """
    started = time.monotonic()
    previous = detector.last_marker(resource.key)
    result = ResourceSyncResult(key=resource.key, status=SyncStatus.FAILED, previous_iteration=previous)

    try:
        raw = await fetch(
            settings.servel_base_url,
            resource.archive,
            resource.json_name,
            resource.timeout,
            allowed_domains=settings.servel_allowed_domain_list,
        )
        marker = extract_iteration(raw)
        result.iteration = marker

        installation: InstallationPayload | None = None
        if resource.kind is ResourceKind.INSTALLATION:
            installation = _parse(parse_installation_payload, raw, resource)
            result.installation_percentage = installation.percentage

        if not force and detector.check(resource.key, marker) is ChangeStatus.UNCHANGED:
            result.status = SyncStatus.UNCHANGED
            logger.debug("{} unchanged (iteration {})", resource.key, marker)
            return result

        async with session_factory() as session:
            if resource.kind is ResourceKind.TERRITORIES:
                counts = await _merge_territories(session, resource, raw)
            elif resource.kind is ResourceKind.INSTALLATION:
                counts = await _merge_installation(session, resource, installation)  # type: ignore[arg-type]
            elif resource.kind is ResourceKind.TOTALS:
                counts = await _merge_totals(session, resource, raw)
            else:
                counts = await _merge_tables(session, resource, raw)
            result.counts = counts

            failed = sum(c.failed_chunks for c in counts.values())
            if failed:
                result.status = SyncStatus.PARTIAL
                result.error = f"{failed} chunk(s) failed"
                await record_sync_state(session, resource, error=result.error)
            else:
                result.status = SyncStatus.UPDATED
                await record_sync_state(session, resource, iteration=marker, merged=True)
                detector.commit(resource.key, marker)

        logger.info(
            "{} {} (iteration {} -> {}): {}",
            resource.key,
            result.status,
            previous,
            marker,
            ", ".join(f"{name} +{c.inserted}/~{c.modified}/{c.total}" for name, c in counts.items()),
        )
    except FetchError as exc:
        result.error, result.error_type = str(exc), "transport"
        logger.warning("{} fetch failed: {}", resource.key, exc)
    except ServelError as exc:
        result.error, result.error_type = str(exc), "payload"
        logger.warning("{} payload rejected: {}", resource.key, exc)
    except SQLAlchemyError as exc:
        result.error, result.error_type = str(exc), "storage"
        logger.error("{} storage error: {}", resource.key, exc)
    except Exception as exc:
        result.error, result.error_type = str(exc) or type(exc).__name__, "unexpected"
        logger.exception("{} sync failed", resource.key)
    finally:
        result.duration_seconds = round(time.monotonic() - started, 3)

    if result.status is SyncStatus.FAILED:
        await _record_failure(session_factory, resource, result.error or "unknown error")
    return result
