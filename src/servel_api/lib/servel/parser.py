"""SERVEL payload parser and Pydantic validation models.

Field names follow the upstream JSON (camelCase on aggregate totals,
snake_case on per-table records) so payloads validate without aliasing.

The aggregate ``detalles`` breakdown changes shape from race to race. It is
modelled as a tagged union of the shapes we know (a list/pact carrying
nested candidates, a single candidate) plus a raw fallback that keeps
whatever else upstream sends.
"""

# ruff: noqa: N815

from collections.abc import Iterator
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator, model_validator


def _coerce_null_to_int(v: Any) -> Any:
    """Coerce explicit JSON null to 0."""
    return v if v is not None else 0


def _coerce_null_to_list(v: Any) -> Any:
    """Coerce explicit JSON null to empty list."""
    return v if v is not None else []


def _coerce_flag(v: Any) -> Any:
    """Coerce booleans and null flags to the 0/1 integers upstream mostly uses."""
    if v is None:
        return 0
    if isinstance(v, bool):
        return int(v)
    return v


def _coerce_marker(v: Any) -> str | None:
    """Iteration markers are opaque strings; upstream sometimes sends numbers."""
    if v is None or v == "":
        return None
    return str(v)


# --- Aggregate detail union ---


class CandidateDetail(BaseModel):
    """A candidate entry inside an aggregate breakdown."""

    model_config = ConfigDict(extra="allow")

    id: int
    candidato: str
    orden: int | None = None
    electo: int | None = None
    sigla_partido: str | None = None
    filterName: str | None = None
    votos: int | None = None

    @field_validator("electo", mode="before")
    @classmethod
    def _coerce_electo(cls, v: Any) -> Any:
        return int(v) if isinstance(v, bool) else v


class ListDetail(BaseModel):
    """A list, pact or party entry grouping nested entries."""

    model_config = ConfigDict(extra="allow")

    id: int | None = None
    name: str | None = None
    candidatos: list["DetailEntry"] = Field(default_factory=list)

    @property
    def pact_id(self) -> int | None:
        extra = self.model_extra or {}
        for key in ("id_pacto", "id_lista"):
            value = extra.get(key)
            if value is not None:
                try:
                    return int(value)
                except (TypeError, ValueError):
                    return None
        return self.id

    @property
    def display_name(self) -> str | None:
        if self.name:
            return self.name
        extra = self.model_extra or {}
        for key in ("pacto", "glosa_pacto", "lista", "glosa"):
            value = extra.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None


class RawDetail(BaseModel):
    """Fallback for breakdown entries of unknown shape; keeps every field."""

    model_config = ConfigDict(extra="allow")

    @model_validator(mode="before")
    @classmethod
    def _wrap_scalars(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {"value": v}


def _detail_kind(v: Any) -> str:
    if isinstance(v, dict):
        if isinstance(v.get("candidatos"), list):
            return "list"
        if "id" in v and "candidato" in v:
            return "candidate"
        return "raw"
    if isinstance(v, ListDetail):
        return "list"
    if isinstance(v, CandidateDetail):
        return "candidate"
    return "raw"


DetailEntry = Annotated[
    Annotated[ListDetail, Tag("list")] | Annotated[CandidateDetail, Tag("candidate")] | Annotated[RawDetail, Tag("raw")],
    Discriminator(_detail_kind),
]

ListDetail.model_rebuild()


def iter_candidates(entries: list[Any]) -> Iterator[CandidateDetail]:
    """Walk a breakdown depth-first and yield every candidate entry."""
    for entry in entries:
        if isinstance(entry, CandidateDetail):
            yield entry
        elif isinstance(entry, ListDetail):
            yield from iter_candidates(entry.candidatos)


def iter_pacts(entries: list[Any]) -> Iterator[ListDetail]:
    """Yield every list/pact entry in a breakdown, nested ones included."""
    for entry in entries:
        if isinstance(entry, ListDetail):
            yield entry
            yield from iter_pacts(entry.candidatos)


# --- Aggregate totals (total_votacion_<code>.zip) ---


class AggregatePayload(BaseModel):
    """One aggregate snapshot, e.g. the national or abroad rollup of a race."""

    model_config = ConfigDict(extra="allow")

    id_eleccion: int
    name: str
    iteracion: str | None = None
    votosValidos: int = 0
    nulos: int = 0
    blancos: int = 0
    totalEscrutadas: int = 0
    totalVotacion: int = 0
    totalMesas: int = 0
    totalInstaladas: int = 0
    porc: str = "0.00"
    totalCandidatos: int = 0
    totalNominados: int = 0
    detalles: list[DetailEntry] = Field(default_factory=list)

    @field_validator("iteracion", mode="before")
    @classmethod
    def _coerce_iteracion(cls, v: Any) -> Any:
        return _coerce_marker(v)

    @field_validator(
        "votosValidos",
        "nulos",
        "blancos",
        "totalEscrutadas",
        "totalVotacion",
        "totalMesas",
        "totalInstaladas",
        "totalCandidatos",
        "totalNominados",
        mode="before",
    )
    @classmethod
    def _coerce_counts(cls, v: Any) -> Any:
        return _coerce_null_to_int(v)

    @field_validator("porc", mode="before")
    @classmethod
    def _coerce_porc(cls, v: Any) -> Any:
        return "0.00" if v is None else str(v)

    @field_validator("detalles", mode="before")
    @classmethod
    def _coerce_detalles(cls, v: Any) -> Any:
        return _coerce_null_to_list(v)

    def to_row(self) -> dict[str, Any]:
        """Column values for an ``aggregate_results`` upsert."""
        return {
            "id_eleccion": self.id_eleccion,
            "name": self.name,
            "iteracion": self.iteracion,
            "votos_validos": self.votosValidos,
            "nulos": self.nulos,
            "blancos": self.blancos,
            "total_escrutadas": self.totalEscrutadas,
            "total_votacion": self.totalVotacion,
            "total_mesas": self.totalMesas,
            "total_instaladas": self.totalInstaladas,
            "porc": self.porc,
            "total_candidatos": self.totalCandidatos,
            "total_nominados": self.totalNominados,
            "detalles": [entry.model_dump(mode="json") for entry in self.detalles],
            "extra": dict(self.model_extra or {}),
        }


def parse_totals_payload(raw: Any) -> list[AggregatePayload]:
    """Validate a ``total_votacion`` payload (a list of snapshots, or one).

    Raises:
        pydantic.ValidationError: If a snapshot is structurally invalid.
    """
    items = raw if isinstance(raw, list) else [raw]
    return [AggregatePayload.model_validate(item) for item in items]


def extract_candidates(snapshots: list[AggregatePayload]) -> list[dict[str, Any]]:
    """Deduplicate candidate identities across snapshots, last one wins.

    Returns:
        Row dicts for a ``candidates`` upsert, in first-seen order.
    """
    seen: dict[int, dict[str, Any]] = {}
    for snapshot in snapshots:
        for candidate in iter_candidates(snapshot.detalles):
            seen[candidate.id] = {
                "id": candidate.id,
                "candidato": candidate.candidato,
                "sigla_partido": candidate.sigla_partido,
                "orden": candidate.orden,
                "electo": candidate.electo,
                "filter_name": candidate.filterName,
            }
    return list(seen.values())


# --- Per-table results (mesas_<code>.zip) ---


class MesaCandidate(BaseModel):
    """Votes of one candidate at one table."""

    id_candidato: int
    id_partido: int | None = None
    id_pacto: int | None = None
    id_subpacto: int | None = None
    votos: int = 0
    orden_voto: int | None = None
    electo: int = 0

    @field_validator("votos", mode="before")
    @classmethod
    def _coerce_votos(cls, v: Any) -> Any:
        return _coerce_null_to_int(v)

    @field_validator("electo", mode="before")
    @classmethod
    def _coerce_electo(cls, v: Any) -> Any:
        return _coerce_flag(v)


class MesaRecord(BaseModel):
    """Tally of one voting table."""

    cod_eleccion: int | None = None
    id_mesa: str
    iteracion: str | None = None
    porcentaje: str | None = None
    id_region: int | None = None
    id_cirsen: int | None = None
    id_distrito: int | None = None
    id_provincia: int | None = None
    id_circ_provincial: int | None = None
    id_comuna: int | None = None
    orden_comuna: int | None = None
    id_colegio: int | None = None
    mesa: int | None = None
    id_local: int | None = None
    orden_local: int | None = None
    envio: str | None = None
    instalada: int = 0
    blancos: int = 0
    nulos: int = 0
    total_emitidos: int = 0
    total_general: int = 0
    electores: int | None = None
    path_s3: str | None = None
    candidatos: list[MesaCandidate] = Field(default_factory=list)

    @field_validator("id_mesa", mode="before")
    @classmethod
    def _coerce_id_mesa(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("iteracion", mode="before")
    @classmethod
    def _coerce_iteracion(cls, v: Any) -> Any:
        return _coerce_marker(v)

    @field_validator("porcentaje", "envio", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Any:
        return None if v is None else str(v)

    @field_validator("instalada", mode="before")
    @classmethod
    def _coerce_instalada(cls, v: Any) -> Any:
        return _coerce_flag(v)

    @field_validator("blancos", "nulos", "total_emitidos", "total_general", mode="before")
    @classmethod
    def _coerce_counts(cls, v: Any) -> Any:
        return _coerce_null_to_int(v)

    @field_validator("candidatos", mode="before")
    @classmethod
    def _coerce_candidatos(cls, v: Any) -> Any:
        return _coerce_null_to_list(v)

    def to_row(self, election_code: int) -> dict[str, Any]:
        """Column values for a ``mesa_results`` upsert."""
        row = self.model_dump(mode="json")
        row["cod_eleccion"] = self.cod_eleccion if self.cod_eleccion is not None else election_code
        return row


def _unwrap_records(raw: Any, keys: tuple[str, ...]) -> tuple[str | None, list[Any]]:
    """Split a payload into (top-level marker, record list).

    Upstream ships either a bare list of records or an object holding the
    list under one of ``keys``.
    """
    if isinstance(raw, list):
        return None, raw
    if isinstance(raw, dict):
        for key in keys:
            records = raw.get(key)
            if isinstance(records, list):
                return _coerce_marker(raw.get("iteracion")), records
        msg = f"Payload object has none of the record keys {list(keys)}"
        raise ValueError(msg)
    msg = f"Unexpected payload type {type(raw).__name__}"
    raise ValueError(msg)


class TablesPayload(BaseModel):
    """Validated per-table dump."""

    iteracion: str | None = None
    mesas: list[MesaRecord] = Field(default_factory=list)


def parse_tables_payload(raw: Any) -> TablesPayload:
    """Validate a per-table results payload.

    Raises:
        ValueError: If the payload has no recognizable record list.
        pydantic.ValidationError: If a record is structurally invalid.
    """
    marker, records = _unwrap_records(raw, ("mesas", "data", "resultados"))
    mesas = [MesaRecord.model_validate(record) for record in records]
    if marker is None and mesas:
        marker = mesas[0].iteracion
    return TablesPayload(iteracion=marker, mesas=mesas)


# --- Installation status (constitucion.zip) ---


class InstallationRecord(BaseModel):
    """Installation flag of one table."""

    id_mesa: str
    instalada: int = 0

    @field_validator("id_mesa", mode="before")
    @classmethod
    def _coerce_id_mesa(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("instalada", mode="before")
    @classmethod
    def _coerce_instalada(cls, v: Any) -> Any:
        return _coerce_flag(v)


class InstallationPayload(BaseModel):
    """Nationwide table installation status."""

    iteracion: str | None = None
    porc: str | None = None
    totalMesas: int | None = None
    totalInstaladas: int | None = None
    mesas: list[InstallationRecord] = Field(default_factory=list)

    @field_validator("iteracion", mode="before")
    @classmethod
    def _coerce_iteracion(cls, v: Any) -> Any:
        return _coerce_marker(v)

    @field_validator("porc", mode="before")
    @classmethod
    def _coerce_porc(cls, v: Any) -> Any:
        return None if v is None else str(v)

    @property
    def percentage(self) -> float:
        """Installed tables as a percentage of all tables.

        Prefers the upstream figure; falls back to the totals, then to the
        per-table flags.
        """
        if self.porc:
            try:
                return float(self.porc.replace("%", "").replace(",", ".").strip())
            except ValueError:
                pass
        if self.totalMesas:
            return (self.totalInstaladas or 0) * 100.0 / self.totalMesas
        if self.mesas:
            installed = sum(1 for record in self.mesas if record.instalada)
            return installed * 100.0 / len(self.mesas)
        return 0.0


def parse_installation_payload(raw: Any) -> InstallationPayload:
    """Validate a ``constitucion`` payload.

    Raises:
        ValueError: If the payload has an unexpected top-level type.
        pydantic.ValidationError: If the structure is invalid.
    """
    if isinstance(raw, list):
        marker = _coerce_marker(raw[0].get("iteracion")) if raw and isinstance(raw[0], dict) else None
        return InstallationPayload.model_validate({"iteracion": marker, "mesas": raw})
    if isinstance(raw, dict):
        return InstallationPayload.model_validate(raw)
    msg = f"Unexpected payload type {type(raw).__name__}"
    raise ValueError(msg)


# --- Territories (territorios.zip) ---


class TerritoryRecord(BaseModel):
    """Geographic placement of one table."""

    id_mesa: str
    id_region: int
    region: str
    orden_region: int | None = None
    id_cirsen: int | None = None
    glosacirsen: str | None = None
    orden_cirsen: int | None = None
    id_distrito: int | None = None
    distrito: str | None = None
    orden_distrito: int | None = None
    id_provincia: int | None = None
    provincia: str | None = None
    orden_provincia: int | None = None
    id_circ_provincial: int | None = None
    circ_provincial: str | None = None
    orden_circ_provincial: int | None = None
    cod_colegio_escrutador: int | None = None
    glosa_colegio_escrutador: str | None = None
    cod_colesc: int | None = None
    sede_colegio_escrutador: str | None = None
    id_comuna: int
    comuna: str
    orden_comuna: int | None = None
    id_circuns: int | None = None
    circuns: str | None = None
    orden_circuns: int | None = None
    id_local: int | None = None
    local: str | None = None
    orden_local: int | None = None
    mesa: str
    cupos_presidencial: int | None = None
    cupos_diputados: int | None = None
    cupos_senadores: int | None = None
    eleccion_presidencial: bool | None = None
    eleccion_diputados: bool | None = None
    eleccion_senadores: bool | None = None

    @field_validator("id_mesa", "mesa", mode="before")
    @classmethod
    def _coerce_ids(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


def parse_territories_payload(raw: Any) -> tuple[str | None, list[TerritoryRecord]]:
    """Validate a ``territorios`` payload.

    Returns:
        Tuple of (iteration marker or None, territory records).
    """
    marker, records = _unwrap_records(raw, ("territorios", "mesas", "data"))
    return marker, [TerritoryRecord.model_validate(record) for record in records]


def extract_iteration(raw: Any) -> str | None:
    """Read the iteration marker of a raw payload without validating it.

    Looks at the top-level object first, then at the first record of a
    list payload (totals and bare per-table dumps).
    """
    if isinstance(raw, dict):
        marker = raw.get("iteracion")
        if marker is None:
            for key in ("mesas", "data", "resultados"):
                records = raw.get(key)
                if isinstance(records, list) and records and isinstance(records[0], dict):
                    marker = records[0].get("iteracion")
                    break
        return _coerce_marker(marker)
    if isinstance(raw, list) and raw and isinstance(raw[0], dict):
        return _coerce_marker(raw[0].get("iteracion"))
    return None
