"""Pydantic v2 schemas for the results and reference-data endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from servel_api.schemas.common import PaginationMeta


class AggregateResultResponse(BaseModel):
    """One aggregate snapshot of an election (e.g. ``nacional``)."""

    model_config = {"from_attributes": True}

    id_eleccion: int
    name: str
    iteracion: str | None = None
    votos_validos: int
    nulos: int
    blancos: int
    total_escrutadas: int
    total_votacion: int
    total_mesas: int
    total_instaladas: int
    porc: str
    total_candidatos: int
    total_nominados: int
    detalles: list[dict[str, Any]] = Field(default_factory=list)
    extra: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime | None = None


class TableCandidateResponse(BaseModel):
    """Votes of one candidate at one table."""

    id_candidato: int
    id_partido: int | None = None
    id_pacto: int | None = None
    id_subpacto: int | None = None
    votos: int = 0
    orden_voto: int | None = None
    electo: int = 0


class TableResultResponse(BaseModel):
    """Stored result of one voting table."""

    model_config = {"from_attributes": True}

    cod_eleccion: int
    id_mesa: str
    iteracion: str | None = None
    porcentaje: str | None = None
    id_region: int | None = None
    id_cirsen: int | None = None
    id_distrito: int | None = None
    id_comuna: int | None = None
    id_local: int | None = None
    mesa: int | None = None
    instalada: int
    blancos: int
    nulos: int
    total_emitidos: int
    total_general: int
    electores: int | None = None
    candidatos: list[TableCandidateResponse] = Field(default_factory=list)
    updated_at: datetime | None = None


class CandidateTotalResponse(BaseModel):
    """Votes of one candidate summed over a unit."""

    model_config = {"from_attributes": True}

    id: int
    name: str
    party: str | None = None
    votos: int
    orden: int | None = None
    electo: bool


class PactTotalResponse(BaseModel):
    """Votes of one pact/list summed over a unit."""

    model_config = {"from_attributes": True}

    id: int
    name: str
    votos: int
    porcentaje: str = Field(description="Share of valid votes, two decimals")
    candidatos: list[CandidateTotalResponse]


class UnitSummaryResponse(BaseModel):
    """Seat-allocation summary of a district or circumscription."""

    model_config = {"from_attributes": True}

    election_code: int
    unit_type: str
    unit_id: int
    total_mesas: int
    mesas_escrutadas: int
    porcentaje_escrutado: str
    mesas_instaladas: int
    total_emitidos: int
    blancos: int
    nulos: int
    votos_validos: int
    pactos: list[PactTotalResponse]


class ElectedCandidateResponse(BaseModel):
    """A candidate flagged elected in a unit."""

    model_config = {"from_attributes": True}

    id: int
    name: str
    party: str | None = None
    pact_id: int
    pact_name: str
    orden: int | None = None


class ElectedListResponse(BaseModel):
    """Elected candidates of a district or circumscription."""

    election_code: int
    unit_type: str
    unit_id: int
    elected: list[ElectedCandidateResponse]


class CandidateResponse(BaseModel):
    """Deduplicated candidate identity."""

    model_config = {"from_attributes": True}

    id: int
    candidato: str
    sigla_partido: str | None = None
    orden: int | None = None
    electo: int | None = None
    filter_name: str | None = None


class PaginatedCandidateListResponse(BaseModel):
    """Paginated list of candidates."""

    items: list[CandidateResponse]
    pagination: PaginationMeta


class TerritoryResponse(BaseModel):
    """Geographic placement of one voting table."""

    model_config = {"from_attributes": True}

    id_mesa: str
    mesa: str
    id_region: int
    region: str
    id_cirsen: int | None = None
    glosacirsen: str | None = None
    id_distrito: int | None = None
    distrito: str | None = None
    id_provincia: int | None = None
    provincia: str | None = None
    id_comuna: int
    comuna: str
    id_circuns: int | None = None
    circuns: str | None = None
    id_local: int | None = None
    local: str | None = None
    cupos_presidencial: int | None = None
    cupos_diputados: int | None = None
    cupos_senadores: int | None = None


class PaginatedTerritoryListResponse(BaseModel):
    """Paginated list of territories."""

    items: list[TerritoryResponse]
    pagination: PaginationMeta
