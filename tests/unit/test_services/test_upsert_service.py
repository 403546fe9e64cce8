"""Unit tests for upsert service: chunking, idempotence and partial failure."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from servel_api.models.candidate import Candidate
from servel_api.models.mesa_result import MesaResult
from servel_api.models.territory import Territory
from servel_api.services.upsert_service import (
    UpsertCounts,
    _upsert_chunk,
    chunked,
    dedupe_by_key,
    delete_absent,
    update_existing,
    upsert_records,
)


class FakeStore:
    """In-memory stand-in for ``_upsert_chunk`` with ON CONFLICT semantics."""

    def __init__(self, fail_on_call: int | None = None) -> None:
        self.rows: dict[tuple, dict] = {}
        self.calls = 0
        self.fail_on_call = fail_on_call

    async def __call__(self, session, table, rows, key_columns, update_columns, guard):
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise OperationalError("INSERT", {}, Exception("connection reset"))
        inserted = modified = 0
        for row in rows:
            key = tuple(row[col] for col in key_columns)
            existing = self.rows.get(key)
            if existing is None:
                self.rows[key] = dict(row)
                inserted += 1
            elif any(existing.get(col) != row.get(col) for col in update_columns):
                existing.update({col: row[col] for col in update_columns})
                modified += 1
        return inserted, modified


def _candidate_rows(n: int, *, electo: int = 0) -> list[dict]:
    return [{"id": i, "candidato": f"CANDIDATO {i}", "electo": electo} for i in range(1, n + 1)]


class TestChunked:
    """Tests for chunked()."""

    def test_slices_without_loss(self) -> None:
        chunks = list(chunked(list(range(7)), 3))
        assert chunks == [[0, 1, 2], [3, 4, 5], [6]]

    def test_empty(self) -> None:
        assert list(chunked([], 10)) == []

    def test_rejects_non_positive_size(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            list(chunked([1], 0))


class TestDedupeByKey:
    """Tests for dedupe_by_key()."""

    def test_last_record_wins_in_first_seen_order(self) -> None:
        records = [
            {"cod_eleccion": 6, "id_mesa": "1", "votos": 1},
            {"cod_eleccion": 6, "id_mesa": "2", "votos": 2},
            {"cod_eleccion": 6, "id_mesa": "1", "votos": 3},
        ]
        deduped = dedupe_by_key(records, ["cod_eleccion", "id_mesa"])
        assert deduped == [
            {"cod_eleccion": 6, "id_mesa": "1", "votos": 3},
            {"cod_eleccion": 6, "id_mesa": "2", "votos": 2},
        ]


class TestUpsertRecords:
    """Tests for upsert_records() with the chunk writer replaced."""

    @pytest.mark.asyncio
    async def test_empty_records(self) -> None:
        """No records means no chunks and no database calls."""
        session = AsyncMock()
        counts = await upsert_records(session, Candidate, [], key_columns=["id"])
        assert counts == UpsertCounts()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_chunking_is_lossless(self) -> None:
        """Every record lands exactly once whatever the batch size."""
        store = FakeStore()
        session = AsyncMock()
        with patch("servel_api.services.upsert_service._upsert_chunk", store):
            counts = await upsert_records(session, Candidate, _candidate_rows(25), key_columns=["id"], batch_size=10)

        assert counts.chunks == 3
        assert counts.total == 25
        assert counts.inserted == 25
        assert len(store.rows) == 25
        assert session.commit.await_count == 3

    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(self) -> None:
        """Re-applying identical records modifies nothing."""
        store = FakeStore()
        session = AsyncMock()
        with patch("servel_api.services.upsert_service._upsert_chunk", store):
            await upsert_records(session, Candidate, _candidate_rows(5), key_columns=["id"], batch_size=2)
            counts = await upsert_records(session, Candidate, _candidate_rows(5), key_columns=["id"], batch_size=2)

        assert counts.inserted == 0
        assert counts.modified == 0
        assert counts.total == 5

    @pytest.mark.asyncio
    async def test_changed_records_are_modified(self) -> None:
        store = FakeStore()
        session = AsyncMock()
        with patch("servel_api.services.upsert_service._upsert_chunk", store):
            await upsert_records(session, Candidate, _candidate_rows(4), key_columns=["id"])
            counts = await upsert_records(session, Candidate, _candidate_rows(4, electo=1), key_columns=["id"])

        assert counts.modified == 4
        assert all(row["electo"] == 1 for row in store.rows.values())

    @pytest.mark.asyncio
    async def test_failed_chunk_rolls_back_and_continues(self) -> None:
        """A failing chunk is counted and the remaining chunks still run."""
        store = FakeStore(fail_on_call=2)
        session = AsyncMock()
        with patch("servel_api.services.upsert_service._upsert_chunk", store):
            counts = await upsert_records(session, Candidate, _candidate_rows(30), key_columns=["id"], batch_size=10)

        assert counts.chunks == 3
        assert counts.failed_chunks == 1
        assert counts.failed_records == 10
        assert counts.inserted == 20
        assert counts.complete is False
        session.rollback.assert_awaited_once()
        assert session.commit.await_count == 2
        assert sorted(key[0] for key in store.rows) == list(range(1, 11)) + list(range(21, 31))

    @pytest.mark.asyncio
    async def test_duplicate_keys_collapse(self) -> None:
        store = FakeStore()
        session = AsyncMock()
        records = [{"id": 1, "candidato": "A"}, {"id": 1, "candidato": "B"}]
        with patch("servel_api.services.upsert_service._upsert_chunk", store):
            counts = await upsert_records(session, Candidate, records, key_columns=["id"])

        assert counts.total == 1
        assert store.rows[(1,)]["candidato"] == "B"

    @pytest.mark.asyncio
    async def test_surrogate_key_is_filled(self) -> None:
        """Tables with a UUID key get one generated per new row."""
        store = FakeStore()
        session = AsyncMock()
        with patch("servel_api.services.upsert_service._upsert_chunk", store):
            await upsert_records(
                session, MesaResult, [{"cod_eleccion": 6, "id_mesa": "1"}], key_columns=["cod_eleccion", "id_mesa"]
            )

        row = store.rows[(6, "1")]
        assert row["id"] is not None


class TestUpsertStatement:
    """Tests for the SQL emitted by _upsert_chunk()."""

    @pytest.mark.asyncio
    async def test_conflict_update_only_when_distinct(self) -> None:
        session = AsyncMock()
        result = MagicMock()
        result.all.return_value = [MagicMock(is_insert=1), MagicMock(is_insert=0)]
        session.execute.return_value = result

        inserted, modified = await _upsert_chunk(
            session,
            MesaResult.__table__,
            [{"cod_eleccion": 6, "id_mesa": "1", "nulos": 1}, {"cod_eleccion": 6, "id_mesa": "2", "nulos": 0}],
            ["cod_eleccion", "id_mesa"],
            ["nulos"],
            None,
        )

        assert (inserted, modified) == (1, 1)
        stmt = session.execute.await_args.args[0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT (cod_eleccion, id_mesa) DO UPDATE" in sql
        assert "IS DISTINCT FROM" in sql
        assert "xmax = 0" in sql
        assert "updated_at" in sql


class TestUpsertOnSqlite:
    """upsert_records() executing the real conflict statement on SQLite."""

    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(self, async_session, sqlite_upserts) -> None:
        """The IS DISTINCT FROM clause skips rows whose columns all match."""
        first = await upsert_records(async_session, Candidate, _candidate_rows(5), key_columns=["id"], batch_size=2)
        second = await upsert_records(async_session, Candidate, _candidate_rows(5), key_columns=["id"], batch_size=2)

        assert (first.inserted, first.modified) == (5, 0)
        assert (second.inserted, second.modified) == (0, 0)
        assert second.total == 5
        assert second.complete

    @pytest.mark.asyncio
    async def test_only_changed_rows_are_modified(self, async_session, sqlite_upserts) -> None:
        await upsert_records(async_session, Candidate, _candidate_rows(4), key_columns=["id"])
        rows = _candidate_rows(4)
        rows[2]["electo"] = 1

        counts = await upsert_records(async_session, Candidate, rows, key_columns=["id"])

        assert (counts.inserted, counts.modified) == (0, 1)
        result = await async_session.execute(select(Candidate.id).where(Candidate.electo == 1))
        assert result.scalars().all() == [3]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("batch_size", [1, 3, 1000])
    async def test_counts_independent_of_batch_size(self, async_session, sqlite_upserts, batch_size) -> None:
        await upsert_records(async_session, Candidate, _candidate_rows(4), key_columns=["id"])
        rows = _candidate_rows(7, electo=1)

        counts = await upsert_records(async_session, Candidate, rows, key_columns=["id"], batch_size=batch_size)

        assert (counts.inserted, counts.modified) == (3, 4)
        stored = await async_session.execute(select(Candidate.id))
        assert sorted(stored.scalars().all()) == list(range(1, 8))

    @pytest.mark.asyncio
    async def test_surrogate_key_rows_upsert_on_natural_key(self, async_session, sqlite_upserts) -> None:
        record = {"cod_eleccion": 6, "id_mesa": "1", "nulos": 2, "candidatos": []}
        await upsert_records(async_session, MesaResult, [record], key_columns=["cod_eleccion", "id_mesa"])
        counts = await upsert_records(
            async_session, MesaResult, [{**record, "nulos": 3}], key_columns=["cod_eleccion", "id_mesa"]
        )

        assert (counts.inserted, counts.modified) == (0, 1)
        result = await async_session.execute(select(MesaResult.nulos))
        assert result.scalars().all() == [3]


class TestUpdateExisting:
    """Tests for update_existing() against SQLite."""

    @pytest.mark.asyncio
    async def test_updates_only_existing_rows(self, async_session) -> None:
        """Unknown keys are counted, never inserted."""
        async_session.add_all(
            [
                MesaResult(cod_eleccion=4, id_mesa="1", instalada=0),
                MesaResult(cod_eleccion=6, id_mesa="1", instalada=0),
                MesaResult(cod_eleccion=6, id_mesa="2", instalada=1),
            ]
        )
        await async_session.commit()

        counts = await update_existing(
            async_session,
            MesaResult,
            [{"id_mesa": "1", "instalada": 1}, {"id_mesa": "2", "instalada": 1}, {"id_mesa": "9", "instalada": 1}],
            key_column="id_mesa",
            value_column="instalada",
        )

        assert counts.modified == 2
        assert counts.unmatched == 1
        assert counts.total == 3

        result = await async_session.execute(
            select(MesaResult.cod_eleccion, MesaResult.id_mesa, MesaResult.instalada).order_by(
                MesaResult.cod_eleccion, MesaResult.id_mesa
            )
        )
        assert result.all() == [(4, "1", 1), (6, "1", 1), (6, "2", 1)]

    @pytest.mark.asyncio
    async def test_second_run_modifies_nothing(self, async_session) -> None:
        async_session.add(MesaResult(cod_eleccion=6, id_mesa="1", instalada=0))
        await async_session.commit()
        records = [{"id_mesa": "1", "instalada": 1}]

        await update_existing(async_session, MesaResult, records, key_column="id_mesa", value_column="instalada")
        counts = await update_existing(
            async_session, MesaResult, records, key_column="id_mesa", value_column="instalada"
        )

        assert counts.modified == 0
        assert counts.unmatched == 0


def _territory(id_mesa: str) -> Territory:
    return Territory(id_mesa=id_mesa, id_region=13, region="METROPOLITANA", id_comuna=1301, comuna="SANTIAGO", mesa="1")


class TestDeleteAbsent:
    """Tests for delete_absent() against SQLite."""

    @pytest.mark.asyncio
    async def test_deletes_rows_not_kept(self, async_session) -> None:
        async_session.add_all([_territory("1"), _territory("2"), _territory("3")])
        await async_session.commit()

        deleted = await delete_absent(async_session, Territory, key_column="id_mesa", keep={"1", "3"})

        assert deleted == 1
        result = await async_session.execute(select(Territory.id_mesa).order_by(Territory.id_mesa))
        assert result.scalars().all() == ["1", "3"]

    @pytest.mark.asyncio
    async def test_nothing_absent(self, async_session) -> None:
        async_session.add(_territory("1"))
        await async_session.commit()

        assert await delete_absent(async_session, Territory, key_column="id_mesa", keep={"1"}) == 0
