"""Results service: read queries and query-time seat-allocation aggregation.

Aggregations are never persisted; each request loads the per-table rows
of one unit and summarizes them with ``lib.servel.aggregator``.
"""

from typing import Any

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from servel_api.lib.servel import CandidateInfo, ElectedCandidate, UnitSummary, elected_candidates, summarize_unit
from servel_api.lib.servel.parser import DetailEntry, iter_pacts
from servel_api.models.aggregate_result import AggregateResult
from servel_api.models.candidate import Candidate
from servel_api.models.mesa_result import MesaResult
from servel_api.models.territory import Territory

UNIT_DISTRICT = "district"
UNIT_CIRCUMSCRIPTION = "circumscription"

_UNIT_COLUMNS = {
    UNIT_DISTRICT: MesaResult.id_distrito,
    UNIT_CIRCUMSCRIPTION: MesaResult.id_cirsen,
}

_details_adapter: TypeAdapter[list[Any]] = TypeAdapter(list[DetailEntry])


async def list_totals(session: AsyncSession, election_code: int) -> list[AggregateResult]:
    """Aggregate snapshots of one election, ordered by name."""
    result = await session.execute(
        select(AggregateResult).where(AggregateResult.id_eleccion == election_code).order_by(AggregateResult.name)
    )
    return list(result.scalars().all())


async def get_total(session: AsyncSession, election_code: int, name: str) -> AggregateResult | None:
    """One aggregate snapshot, e.g. ``nacional``."""
    result = await session.execute(
        select(AggregateResult).where(AggregateResult.id_eleccion == election_code, AggregateResult.name == name)
    )
    return result.scalar_one_or_none()


async def get_table(session: AsyncSession, election_code: int, id_mesa: str) -> MesaResult | None:
    """Stored result of one voting table."""
    result = await session.execute(
        select(MesaResult).where(MesaResult.cod_eleccion == election_code, MesaResult.id_mesa == id_mesa)
    )
    return result.scalar_one_or_none()


async def _load_unit_tables(
    session: AsyncSession, election_code: int, unit_type: str, unit_id: int
) -> list[MesaResult]:
    column = _UNIT_COLUMNS[unit_type]
    result = await session.execute(
        select(MesaResult)
        .where(MesaResult.cod_eleccion == election_code, column == unit_id)
        .order_by(MesaResult.id_mesa)
    )
    return list(result.scalars().all())


async def load_candidate_infos(session: AsyncSession, ids: set[int] | None = None) -> dict[int, CandidateInfo]:
    """Candidate display data keyed by id, optionally limited to ``ids``."""
    query = select(Candidate)
    if ids is not None:
        if not ids:
            return {}
        query = query.where(Candidate.id.in_(list(ids)))
    result = await session.execute(query)
    return {
        candidate.id: CandidateInfo(name=candidate.candidato, party=candidate.sigla_partido, orden=candidate.orden)
        for candidate in result.scalars().all()
    }


def pact_names_from_details(snapshots: list[AggregateResult]) -> dict[int, str]:
    """Collect pact display names from the stored aggregate breakdowns.

    Breakdowns that no longer validate are skipped; the aggregation then
    falls back to synthesized pact labels.
    """
    names: dict[int, str] = {}
    for snapshot in snapshots:
        try:
            entries = _details_adapter.validate_python(snapshot.detalles or [])
        except ValidationError:
            continue
        for pact in iter_pacts(entries):
            if pact.pact_id is not None and pact.display_name and pact.pact_id not in names:
                names[pact.pact_id] = pact.display_name
    return names


async def load_pact_names(session: AsyncSession, election_code: int) -> dict[int, str]:
    """Pact display names known for one election."""
    return pact_names_from_details(await list_totals(session, election_code))


def _candidate_ids(tables: list[MesaResult]) -> set[int]:
    ids = set()
    for table in tables:
        for entry in table.candidatos or []:
            value = entry.get("id_candidato")
            if isinstance(value, int):
                ids.add(value)
    return ids


async def summarize(
    session: AsyncSession,
    election_code: int,
    unit_type: str,
    unit_id: int,
) -> UnitSummary | None:
    """Aggregate a district or circumscription.

    Args:
        session: Database session.
        election_code: Election code (deputies for districts, senators
            for circumscriptions).
        unit_type: ``"district"`` or ``"circumscription"``.
        unit_id: Unit id.

    Returns:
        The summary, or None when no table of the unit is stored.
    """
    tables = await _load_unit_tables(session, election_code, unit_type, unit_id)
    if not tables:
        return None
    candidates = await load_candidate_infos(session, _candidate_ids(tables))
    pact_names = await load_pact_names(session, election_code)
    return summarize_unit(
        tables,
        election_code=election_code,
        unit_type=unit_type,
        unit_id=unit_id,
        candidates=candidates,
        pact_names=pact_names,
    )


async def list_elected(
    session: AsyncSession,
    election_code: int,
    unit_type: str,
    unit_id: int,
) -> list[ElectedCandidate] | None:
    """Elected candidates of a unit, or None when no table of the unit is stored."""
    tables = await _load_unit_tables(session, election_code, unit_type, unit_id)
    if not tables:
        return None
    candidates = await load_candidate_infos(session, _candidate_ids(tables))
    pact_names = await load_pact_names(session, election_code)
    return elected_candidates(tables, candidates=candidates, pact_names=pact_names)


async def list_candidates(
    session: AsyncSession,
    *,
    party: str | None = None,
    elected: bool | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Candidate], int]:
    """List candidates with optional filters.

    Returns:
        Tuple of (candidates, total count).
    """
    query = select(Candidate)
    count_query = select(func.count(Candidate.id))

    if party:
        query = query.where(Candidate.sigla_partido == party)
        count_query = count_query.where(Candidate.sigla_partido == party)
    if elected is not None:
        condition = Candidate.electo == 1 if elected else func.coalesce(Candidate.electo, 0) == 0
        query = query.where(condition)
        count_query = count_query.where(condition)

    total = (await session.execute(count_query)).scalar_one()
    offset = (page - 1) * page_size
    query = query.order_by(Candidate.orden, Candidate.id).offset(offset).limit(page_size)
    result = await session.execute(query)
    return list(result.scalars().all()), total


async def list_territories(
    session: AsyncSession,
    *,
    id_region: int | None = None,
    id_comuna: int | None = None,
    id_distrito: int | None = None,
    id_cirsen: int | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Territory], int]:
    """List territories with optional geographic filters.

    Returns:
        Tuple of (territories, total count).
    """
    filters = []
    if id_region is not None:
        filters.append(Territory.id_region == id_region)
    if id_comuna is not None:
        filters.append(Territory.id_comuna == id_comuna)
    if id_distrito is not None:
        filters.append(Territory.id_distrito == id_distrito)
    if id_cirsen is not None:
        filters.append(Territory.id_cirsen == id_cirsen)

    total = (await session.execute(select(func.count(Territory.id_mesa)).where(*filters))).scalar_one()
    offset = (page - 1) * page_size
    query = (
        select(Territory)
        .where(*filters)
        .order_by(Territory.orden_region, Territory.orden_comuna, Territory.orden_local, Territory.id_mesa)
        .offset(offset)
        .limit(page_size)
    )
    result = await session.execute(query)
    return list(result.scalars().all()), total
