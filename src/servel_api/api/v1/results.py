"""Results and reference-data API endpoints.

GET /results/{election_code}/totals: aggregate snapshots of an election
GET /results/{election_code}/totals/{name}: one aggregate snapshot
GET /results/{election_code}/tables/{id_mesa}: one voting table
GET /results/{election_code}/districts/{id}: district summary
GET /results/{election_code}/districts/{id}/elected: district elected list
GET /results/{election_code}/circumscriptions/{id}: circumscription summary
GET /results/{election_code}/circumscriptions/{id}/elected: circumscription elected list
GET /candidates: candidate list
GET /territories: territory list
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from servel_api.core.dependencies import get_async_session
from servel_api.schemas.common import PaginationMeta
from servel_api.schemas.results import (
    AggregateResultResponse,
    CandidateResponse,
    ElectedCandidateResponse,
    ElectedListResponse,
    PaginatedCandidateListResponse,
    PaginatedTerritoryListResponse,
    TableResultResponse,
    TerritoryResponse,
    UnitSummaryResponse,
)
from servel_api.services import results_service
from servel_api.services.results_service import UNIT_CIRCUMSCRIPTION, UNIT_DISTRICT

results_router = APIRouter(prefix="/results", tags=["results"])
reference_router = APIRouter(tags=["reference"])

_NO_DATA = "No {what} loaded yet for election {code}. Trigger a sync with POST /sync."

# Live data changes every sync interval
_LIVE_CACHE_CONTROL = "public, max-age=30"


@results_router.get("/{election_code}/totals", response_model=list[AggregateResultResponse])
async def list_totals(
    election_code: int,
    response: Response,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> list[AggregateResultResponse]:
    """Aggregate snapshots of an election (national, abroad, ...)."""
    rows = await results_service.list_totals(session, election_code)
    if not rows:
        raise HTTPException(status_code=404, detail=_NO_DATA.format(what="totals", code=election_code))
    response.headers["Cache-Control"] = _LIVE_CACHE_CONTROL
    return [AggregateResultResponse.model_validate(row) for row in rows]


@results_router.get("/{election_code}/totals/{name}", response_model=AggregateResultResponse)
async def get_total(
    election_code: int,
    name: str,
    response: Response,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> AggregateResultResponse:
    """One aggregate snapshot by name."""
    row = await results_service.get_total(session, election_code, name)
    if row is None:
        raise HTTPException(status_code=404, detail=_NO_DATA.format(what=f"'{name}' totals", code=election_code))
    response.headers["Cache-Control"] = _LIVE_CACHE_CONTROL
    return AggregateResultResponse.model_validate(row)


@results_router.get("/{election_code}/tables/{id_mesa}", response_model=TableResultResponse)
async def get_table(
    election_code: int,
    id_mesa: str,
    response: Response,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> TableResultResponse:
    """Stored result of one voting table."""
    row = await results_service.get_table(session, election_code, id_mesa)
    if row is None:
        raise HTTPException(status_code=404, detail=_NO_DATA.format(what=f"table {id_mesa}", code=election_code))
    response.headers["Cache-Control"] = _LIVE_CACHE_CONTROL
    return TableResultResponse.model_validate(row)


async def _summary(session: AsyncSession, election_code: int, unit_type: str, unit_id: int) -> UnitSummaryResponse:
    summary = await results_service.summarize(session, election_code, unit_type, unit_id)
    if summary is None:
        raise HTTPException(
            status_code=404,
            detail=_NO_DATA.format(what=f"tables for {unit_type} {unit_id}", code=election_code),
        )
    return UnitSummaryResponse.model_validate(summary)


async def _elected(session: AsyncSession, election_code: int, unit_type: str, unit_id: int) -> ElectedListResponse:
    elected = await results_service.list_elected(session, election_code, unit_type, unit_id)
    if elected is None:
        raise HTTPException(
            status_code=404,
            detail=_NO_DATA.format(what=f"tables for {unit_type} {unit_id}", code=election_code),
        )
    return ElectedListResponse(
        election_code=election_code,
        unit_type=unit_type,
        unit_id=unit_id,
        elected=[ElectedCandidateResponse.model_validate(candidate) for candidate in elected],
    )


@results_router.get("/{election_code}/districts/{district_id}", response_model=UnitSummaryResponse)
async def get_district(
    election_code: int,
    district_id: int,
    response: Response,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> UnitSummaryResponse:
    """Vote totals per pact and candidate in a deputies district."""
    summary = await _summary(session, election_code, UNIT_DISTRICT, district_id)
    response.headers["Cache-Control"] = _LIVE_CACHE_CONTROL
    return summary


@results_router.get("/{election_code}/districts/{district_id}/elected", response_model=ElectedListResponse)
async def get_district_elected(
    election_code: int,
    district_id: int,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> ElectedListResponse:
    """Candidates elected in a deputies district."""
    return await _elected(session, election_code, UNIT_DISTRICT, district_id)


@results_router.get("/{election_code}/circumscriptions/{circumscription_id}", response_model=UnitSummaryResponse)
async def get_circumscription(
    election_code: int,
    circumscription_id: int,
    response: Response,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> UnitSummaryResponse:
    """Vote totals per pact and candidate in a senatorial circumscription."""
    summary = await _summary(session, election_code, UNIT_CIRCUMSCRIPTION, circumscription_id)
    response.headers["Cache-Control"] = _LIVE_CACHE_CONTROL
    return summary


@results_router.get(
    "/{election_code}/circumscriptions/{circumscription_id}/elected",
    response_model=ElectedListResponse,
)
async def get_circumscription_elected(
    election_code: int,
    circumscription_id: int,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> ElectedListResponse:
    """Candidates elected in a senatorial circumscription."""
    return await _elected(session, election_code, UNIT_CIRCUMSCRIPTION, circumscription_id)


@reference_router.get("/candidates", response_model=PaginatedCandidateListResponse)
async def list_candidates(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    party: str | None = Query(default=None, description="Filter by party acronym"),
    elected: bool | None = Query(default=None, description="Filter by elected flag"),
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=50, ge=1, le=500, description="Results per page"),
) -> PaginatedCandidateListResponse:
    """List candidates extracted from the aggregate snapshots."""
    items, total = await results_service.list_candidates(
        session, party=party, elected=elected, page=page, page_size=page_size
    )
    return PaginatedCandidateListResponse(
        items=[CandidateResponse.model_validate(item) for item in items],
        pagination=PaginationMeta.build(total, page, page_size),
    )


@reference_router.get("/territories", response_model=PaginatedTerritoryListResponse)
async def list_territories(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    region: int | None = Query(default=None, description="Filter by region id"),
    commune: int | None = Query(default=None, description="Filter by commune id"),
    district: int | None = Query(default=None, description="Filter by district id"),
    circumscription: int | None = Query(default=None, description="Filter by senatorial circumscription id"),
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=100, ge=1, le=1000, description="Results per page"),
) -> PaginatedTerritoryListResponse:
    """List voting tables with their geographic placement."""
    items, total = await results_service.list_territories(
        session,
        id_region=region,
        id_comuna=commune,
        id_distrito=district,
        id_cirsen=circumscription,
        page=page,
        page_size=page_size,
    )
    return PaginatedTerritoryListResponse(
        items=[TerritoryResponse.model_validate(item) for item in items],
        pagination=PaginationMeta.build(total, page, page_size),
    )
