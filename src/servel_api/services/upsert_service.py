"""Chunked bulk writes: idempotent upserts, update-only merges, absent-row cleanup.

Every chunk is its own transaction: a failing chunk is rolled back, logged
and counted, and the following chunks still run. Nothing spans the whole
record set, so a reader may see old and new rows side by side mid-sync.
"""

import uuid
from collections.abc import Callable, Iterator, Sequence
from dataclasses import asdict, dataclass
from typing import Any

from loguru import logger
from sqlalchemy import ColumnElement, Table, and_, bindparam, delete, func, literal_column, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from servel_api.models.base import Base

# asyncpg has a hard limit of 32767 query parameters
_IN_CLAUSE_BATCH = 5000

# Never rewritten on conflict: surrogate key and insert timestamp
_UPSERT_EXCLUDE_COLUMNS = frozenset({"id", "created_at", "updated_at"})

UpdateGuard = Callable[[Table, Any], ColumnElement[bool]]


@dataclass
class UpsertCounts:
    """Outcome of a chunked write.

    ``total`` counts every record attempted, including those of failed
    chunks; ``unmatched`` is only used by update-only merges.
    """

    inserted: int = 0
    modified: int = 0
    total: int = 0
    unmatched: int = 0
    chunks: int = 0
    failed_chunks: int = 0
    failed_records: int = 0
    deleted: int = 0

    @property
    def complete(self) -> bool:
        return self.failed_chunks == 0

    def add(self, other: "UpsertCounts") -> None:
        self.inserted += other.inserted
        self.modified += other.modified
        self.total += other.total
        self.unmatched += other.unmatched
        self.chunks += other.chunks
        self.failed_chunks += other.failed_chunks
        self.failed_records += other.failed_records
        self.deleted += other.deleted

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def chunked(records: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    """Yield consecutive slices of at most ``size`` records."""
    if size <= 0:
        msg = "Chunk size must be positive"
        raise ValueError(msg)
    for i in range(0, len(records), size):
        yield records[i : i + size]


def dedupe_by_key(records: Sequence[dict[str, Any]], key_columns: Sequence[str]) -> list[dict[str, Any]]:
    """Keep the last record per key, in first-seen key order.

    PostgreSQL refuses an ``ON CONFLICT DO UPDATE`` statement that touches
    the same row twice, so duplicates must not share a chunk.
    """
    by_key: dict[tuple, dict[str, Any]] = {}
    for record in records:
        by_key[tuple(record[col] for col in key_columns)] = record
    return list(by_key.values())


def prepare_rows(table: Table, records: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    """Copy records and fill the client-generated surrogate key where the table has one."""
    needs_id = "id" in table.c and table.c.id.default is not None
    rows = []
    for record in records:
        row = dict(record)
        if needs_id and row.get("id") is None:
            row["id"] = uuid.uuid4()
        rows.append(row)
    return rows


def build_upsert(
    table: Table,
    rows: Sequence[dict[str, Any]],
    key_columns: Sequence[str],
    update_columns: Sequence[str],
    guard: UpdateGuard | None = None,
    *,
    insert: Callable[[Table], Any] = pg_insert,
) -> Any:
    """Build the ``INSERT ... ON CONFLICT DO UPDATE`` statement for one chunk.

    The conflict update only fires when at least one column differs, so an
    identical row is neither rewritten nor returned. ``insert`` is the
    dialect's insert construct (PostgreSQL's unless overridden).
    """
    stmt = insert(table).values(list(rows))
    changed = or_(*[table.c[col].is_distinct_from(stmt.excluded[col]) for col in update_columns])
    where = changed if guard is None else and_(changed, guard(table, stmt))

    set_: dict[str, Any] = {col: stmt.excluded[col] for col in update_columns}
    if "updated_at" in table.c:
        set_["updated_at"] = func.now()

    return stmt.on_conflict_do_update(index_elements=list(key_columns), set_=set_, where=where)


def update_columns_for(rows: Sequence[dict[str, Any]], key_columns: Sequence[str]) -> list[str]:
    """Columns rewritten on conflict: all but the key and bookkeeping columns."""
    return sorted(set(rows[0]) - set(key_columns) - _UPSERT_EXCLUDE_COLUMNS)


async def _upsert_chunk(
    session: AsyncSession,
    table: Table,
    rows: Sequence[dict[str, Any]],
    key_columns: Sequence[str],
    update_columns: Sequence[str],
    guard: UpdateGuard | None,
) -> tuple[int, int]:
    """Run one chunk's upsert and count inserted / modified rows."""
    stmt = build_upsert(table, rows, key_columns, update_columns, guard)
    # xmax = 0 identifies genuinely new rows (not updated via ON CONFLICT)
    stmt = stmt.returning(literal_column("(xmax = 0)::int").label("is_insert"))  # type: ignore[assignment]

    result = await session.execute(stmt)
    rows_out = result.all()
    inserted = sum(row.is_insert for row in rows_out)
    return inserted, len(rows_out) - inserted


async def upsert_records(
    session: AsyncSession,
    model: type[Base],
    records: Sequence[dict[str, Any]],
    *,
    key_columns: Sequence[str],
    batch_size: int = 1000,
    guard: UpdateGuard | None = None,
    label: str | None = None,
) -> UpsertCounts:
    """Merge records into ``model``'s table in committed chunks.

    Args:
        session: Database session; committed after each successful chunk,
            rolled back after each failed one.
        model: ORM model whose table receives the rows.
        records: Row dicts keyed by column name, all with the same keys.
        key_columns: Natural-key columns backing a unique constraint.
        batch_size: Records per chunk.
        guard: Extra condition a conflicting row must satisfy to be updated.
        label: Name used in log lines (defaults to the table name).

    Returns:
        Aggregate counts over all chunks.
    """
    table: Table = model.__table__  # type: ignore[assignment]
    name = label or table.name
    counts = UpsertCounts()
    if not records:
        return counts

    rows = prepare_rows(table, dedupe_by_key(records, key_columns))
    update_columns = update_columns_for(rows, key_columns)

    for chunk_idx, chunk in enumerate(chunked(rows, batch_size)):
        counts.chunks += 1
        counts.total += len(chunk)
        try:
            inserted, modified = await _upsert_chunk(session, table, chunk, key_columns, update_columns, guard)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            counts.failed_chunks += 1
            counts.failed_records += len(chunk)
            logger.error("{} chunk {} ({} records) failed: {}", name, chunk_idx + 1, len(chunk), exc)
            continue
        counts.inserted += inserted
        counts.modified += modified

    logger.debug(
        "{} upsert: {} inserted, {} modified, {} total, {} failed chunk(s)",
        name,
        counts.inserted,
        counts.modified,
        counts.total,
        counts.failed_chunks,
    )
    return counts


async def update_existing(
    session: AsyncSession,
    model: type[Base],
    records: Sequence[dict[str, Any]],
    *,
    key_column: str,
    value_column: str,
    batch_size: int = 1000,
    label: str | None = None,
) -> UpsertCounts:
    """Update one column of rows that already exist; never insert.

    A key may match several rows (the same table appears once per race);
    all of them are updated. Keys matching no row are counted in
    ``unmatched``.

    Args:
        session: Database session, committed per chunk.
        model: ORM model to update.
        records: Dicts holding ``key_column`` and ``value_column``.
        key_column: Column used to match existing rows.
        value_column: Column to overwrite.
        batch_size: Records per chunk.
        label: Name used in log lines.

    Returns:
        Counts where ``modified`` is the number of rows whose value changed.
    """
    table: Table = model.__table__  # type: ignore[assignment]
    name = label or table.name
    key_col = table.c[key_column]
    value_col = table.c[value_column]
    counts = UpsertCounts()

    stmt = (
        update(table)
        .where(key_col == bindparam("b_key"))
        .where(value_col.is_distinct_from(bindparam("b_value")))
        .values({value_column: bindparam("b_value")})
    )
    if "updated_at" in table.c:
        stmt = stmt.values(updated_at=func.now())

    deduped = dedupe_by_key(records, [key_column])
    for chunk_idx, chunk in enumerate(chunked(deduped, batch_size)):
        counts.chunks += 1
        counts.total += len(chunk)
        try:
            keys = [record[key_column] for record in chunk]
            existing = await session.execute(select(key_col, value_col).where(key_col.in_(keys)))
            current: dict[Any, list[Any]] = {}
            for key, value in existing.all():
                current.setdefault(key, []).append(value)

            params = []
            modified = 0
            for record in chunk:
                values = current.get(record[key_column])
                if values is None:
                    continue
                differing = sum(1 for value in values if value != record[value_column])
                if differing:
                    modified += differing
                    params.append({"b_key": record[key_column], "b_value": record[value_column]})

            if params:
                await session.execute(stmt, params)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            counts.failed_chunks += 1
            counts.failed_records += len(chunk)
            logger.error("{} chunk {} ({} records) failed: {}", name, chunk_idx + 1, len(chunk), exc)
            continue
        counts.unmatched += len(chunk) - sum(1 for key in keys if key in current)
        counts.modified += modified

    return counts


async def delete_absent(
    session: AsyncSession,
    model: type[Base],
    *,
    key_column: str,
    keep: set[Any],
) -> int:
    """Delete rows whose key is not in ``keep``.

    Used to finish a wholesale reload after the new rows were upserted.

    Returns:
        Number of rows deleted.
    """
    table: Table = model.__table__  # type: ignore[assignment]
    key_col = table.c[key_column]
    result = await session.execute(select(key_col))
    absent = [key for key in result.scalars().all() if key not in keep]
    if not absent:
        return 0

    for batch in chunked(absent, _IN_CLAUSE_BATCH):
        await session.execute(delete(table).where(key_col.in_(list(batch))))
    await session.commit()
    logger.info("Deleted {} {} row(s) absent from the new payload", len(absent), table.name)
    return len(absent)
