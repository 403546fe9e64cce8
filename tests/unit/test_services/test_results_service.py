"""Unit tests for results service queries and unit aggregation (SQLite)."""

import pytest

from servel_api.models.aggregate_result import AggregateResult
from servel_api.models.candidate import Candidate
from servel_api.models.mesa_result import MesaResult
from servel_api.models.territory import Territory
from servel_api.services import results_service


def _vote(candidate_id, pact_id, votos, electo=0):
    return {"id_candidato": candidate_id, "id_pacto": pact_id, "votos": votos, "electo": electo, "orden_voto": None}


@pytest.fixture
async def seeded(async_session):
    """Deputies district 10 with two pacts split evenly, plus reference data."""
    async_session.add_all(
        [
            MesaResult(
                cod_eleccion=6,
                id_mesa="1001",
                id_distrito=10,
                id_cirsen=7,
                instalada=1,
                total_emitidos=500,
                candidatos=[_vote(1, 10, 300, electo=1), _vote(3, 20, 200)],
            ),
            MesaResult(
                cod_eleccion=6,
                id_mesa="1002",
                id_distrito=10,
                id_cirsen=7,
                instalada=1,
                total_emitidos=500,
                candidatos=[_vote(1, 10, 200), _vote(3, 20, 300, electo=1)],
            ),
            MesaResult(cod_eleccion=6, id_mesa="2001", id_distrito=11, id_cirsen=7, total_emitidos=0),
            MesaResult(cod_eleccion=5, id_mesa="1001", id_distrito=10, id_cirsen=7, total_emitidos=50),
            Candidate(id=1, candidato="ANA PEREZ", sigla_partido="PS", orden=2, electo=1),
            Candidate(id=3, candidato="MARIA ROJAS", sigla_partido="RN", orden=1, electo=None),
            Candidate(id=4, candidato="JUAN DIAZ", sigla_partido="PS", orden=3, electo=0),
            AggregateResult(
                id_eleccion=6,
                name="nacional",
                iteracion="3",
                detalles=[{"id": 10, "name": "Unidad por Chile", "candidatos": []}],
                extra={},
            ),
            AggregateResult(
                id_eleccion=6,
                name="extranjero",
                iteracion="3",
                detalles=[{"id": "not-a-number", "name": "Otro nombre", "candidatos": []}],
                extra={},
            ),
        ]
    )
    await async_session.commit()
    return async_session


class TestSummarize:
    """Tests for summarize() and list_elected()."""

    @pytest.mark.asyncio
    async def test_district_summary(self, seeded) -> None:
        summary = await results_service.summarize(seeded, 6, results_service.UNIT_DISTRICT, 10)

        assert summary.total_mesas == 2
        assert summary.votos_validos == 1000
        pacts = {pact.id: pact for pact in summary.pactos}
        assert pacts[10].name == "Unidad por Chile"
        assert pacts[20].name == "Pact 20"
        assert pacts[10].porcentaje == "50.00"
        assert pacts[20].porcentaje == "50.00"
        assert pacts[10].candidatos[0].name == "ANA PEREZ"

    @pytest.mark.asyncio
    async def test_circumscription_scopes_to_election(self, seeded) -> None:
        summary = await results_service.summarize(seeded, 6, results_service.UNIT_CIRCUMSCRIPTION, 7)
        assert summary.total_mesas == 3

    @pytest.mark.asyncio
    async def test_unit_without_tables(self, seeded) -> None:
        assert await results_service.summarize(seeded, 6, results_service.UNIT_DISTRICT, 99) is None
        assert await results_service.list_elected(seeded, 6, results_service.UNIT_DISTRICT, 99) is None

    @pytest.mark.asyncio
    async def test_elected_ordered_by_ballot(self, seeded) -> None:
        elected = await results_service.list_elected(seeded, 6, results_service.UNIT_DISTRICT, 10)
        assert [(c.id, c.orden) for c in elected] == [(3, 1), (1, 2)]
        assert elected[1].pact_name == "Unidad por Chile"


class TestLookups:
    """Tests for single-row lookups."""

    @pytest.mark.asyncio
    async def test_totals(self, seeded) -> None:
        totals = await results_service.list_totals(seeded, 6)
        assert [t.name for t in totals] == ["extranjero", "nacional"]
        assert (await results_service.get_total(seeded, 6, "nacional")).iteracion == "3"
        assert await results_service.get_total(seeded, 4, "nacional") is None

    @pytest.mark.asyncio
    async def test_get_table(self, seeded) -> None:
        table = await results_service.get_table(seeded, 5, "1001")
        assert table.total_emitidos == 50
        assert await results_service.get_table(seeded, 4, "1001") is None

    def test_pact_names_first_name_wins(self) -> None:
        snapshots = [
            AggregateResult(id_eleccion=6, name="a", detalles=[{"id": 1, "name": "Primero", "candidatos": []}]),
            AggregateResult(id_eleccion=6, name="b", detalles=[{"id": 1, "name": "Segundo", "candidatos": []}]),
        ]
        assert results_service.pact_names_from_details(snapshots) == {1: "Primero"}

    @pytest.mark.asyncio
    async def test_candidate_infos_empty_ids(self, seeded) -> None:
        assert await results_service.load_candidate_infos(seeded, set()) == {}
        infos = await results_service.load_candidate_infos(seeded)
        assert infos[3].party == "RN"


class TestListCandidates:
    """Tests for list_candidates()."""

    @pytest.mark.asyncio
    async def test_filters(self, seeded) -> None:
        items, total = await results_service.list_candidates(seeded, party="PS")
        assert total == 2
        assert [c.id for c in items] == [1, 4]

        items, total = await results_service.list_candidates(seeded, elected=True)
        assert [c.id for c in items] == [1]

        items, total = await results_service.list_candidates(seeded, elected=False)
        assert total == 2
        assert [c.id for c in items] == [3, 4]

    @pytest.mark.asyncio
    async def test_pagination(self, seeded) -> None:
        items, total = await results_service.list_candidates(seeded, page=2, page_size=2)
        assert total == 3
        assert [c.id for c in items] == [4]


class TestListTerritories:
    """Tests for list_territories()."""

    @pytest.mark.asyncio
    async def test_geographic_filters(self, async_session) -> None:
        async_session.add_all(
            [
                Territory(
                    id_mesa=str(i),
                    id_region=13 if i < 3 else 5,
                    region="RM" if i < 3 else "VALPARAISO",
                    id_comuna=1301,
                    comuna="SANTIAGO",
                    id_distrito=10,
                    mesa=str(i),
                    orden_region=1,
                    orden_comuna=1,
                    orden_local=i,
                )
                for i in range(1, 5)
            ]
        )
        await async_session.commit()

        items, total = await results_service.list_territories(async_session, id_region=13)
        assert total == 2
        assert [t.id_mesa for t in items] == ["1", "2"]

        items, total = await results_service.list_territories(async_session, id_distrito=10, page_size=3)
        assert total == 4
        assert len(items) == 3
