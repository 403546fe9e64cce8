"""Seat-allocation summaries computed from per-table results.

Nothing here touches the database: callers load the table rows of one
district or circumscription and pass them in together with the display
names they could resolve.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol


class TableTally(Protocol):
    """The per-table fields the aggregation reads (satisfied by ``MesaResult``)."""

    id_mesa: str
    instalada: int
    blancos: int
    nulos: int
    total_emitidos: int
    candidatos: list[dict[str, Any]]


@dataclass(frozen=True)
class CandidateInfo:
    """Display data of a candidate, from the candidates table."""

    name: str
    party: str | None = None
    orden: int | None = None


@dataclass
class CandidateTotal:
    """Votes of one candidate summed over the tables of a unit."""

    id: int
    name: str
    party: str | None
    pact_id: int
    votos: int = 0
    orden: int | None = None
    electo: bool = False


@dataclass
class PactTotal:
    """Votes of one pact/list summed over its candidates."""

    id: int
    name: str
    votos: int = 0
    porcentaje: str = "0.00"
    candidatos: list[CandidateTotal] = field(default_factory=list)


@dataclass
class UnitSummary:
    """Aggregated results of one district or circumscription."""

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
    pactos: list[PactTotal]


@dataclass(frozen=True)
class ElectedCandidate:
    """A candidate flagged elected in at least one table row."""

    id: int
    name: str
    party: str | None
    pact_id: int
    pact_name: str
    orden: int | None


def format_share(part: int, whole: int) -> str:
    """Percentage of ``part`` over ``whole`` with two decimals ("0.00" when whole is 0)."""
    if whole <= 0:
        return "0.00"
    return f"{part * 100 / whole:.2f}"


def pact_label(pact_id: int, pact_names: Mapping[int, str]) -> str:
    """Display name of a pact, synthesized when upstream never named it."""
    return pact_names.get(pact_id) or f"Pact {pact_id}"


def _candidate_key(entry: Mapping[str, Any]) -> int | None:
    value = entry.get("id_candidato")
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def summarize_unit(
    tables: Sequence[TableTally],
    *,
    election_code: int,
    unit_type: str,
    unit_id: int,
    candidates: Mapping[int, CandidateInfo],
    pact_names: Mapping[int, str],
) -> UnitSummary | None:
    """Aggregate the tables of one geographic unit.

    Args:
        tables: Per-table rows of the unit for one election.
        election_code: Election the rows belong to.
        unit_type: ``"district"`` or ``"circumscription"``.
        unit_id: District or circumscription id.
        candidates: Candidate display data keyed by candidate id.
        pact_names: Pact display names keyed by pact id.

    Returns:
        The summary, or None when the unit has no stored tables.
    """
    if not tables:
        return None

    totals: dict[int, CandidateTotal] = {}
    counted = 0
    installed = 0
    emitidos = blancos = nulos = 0

    for table in tables:
        if (table.total_emitidos or 0) > 0:
            counted += 1
        if table.instalada:
            installed += 1
        emitidos += table.total_emitidos or 0
        blancos += table.blancos or 0
        nulos += table.nulos or 0

        for entry in table.candidatos or []:
            candidate_id = _candidate_key(entry)
            if candidate_id is None:
                continue
            total = totals.get(candidate_id)
            if total is None:
                info = candidates.get(candidate_id)
                orden = entry.get("orden_voto")
                if orden is None and info is not None:
                    orden = info.orden
                total = CandidateTotal(
                    id=candidate_id,
                    name=info.name if info else f"Candidate {candidate_id}",
                    party=info.party if info else None,
                    pact_id=int(entry.get("id_pacto") or 0),
                    orden=orden,
                )
                totals[candidate_id] = total
            total.votos += int(entry.get("votos") or 0)
            if entry.get("electo"):
                total.electo = True

    valid = emitidos - blancos - nulos

    pacts: dict[int, PactTotal] = {}
    for total in totals.values():
        pact = pacts.get(total.pact_id)
        if pact is None:
            pact = PactTotal(id=total.pact_id, name=pact_label(total.pact_id, pact_names))
            pacts[total.pact_id] = pact
        pact.votos += total.votos
        pact.candidatos.append(total)

    for pact in pacts.values():
        pact.porcentaje = format_share(pact.votos, valid)
        pact.candidatos.sort(key=lambda c: (-c.votos, c.id))

    ordered = sorted(pacts.values(), key=lambda p: (-p.votos, p.id))

    return UnitSummary(
        election_code=election_code,
        unit_type=unit_type,
        unit_id=unit_id,
        total_mesas=len(tables),
        mesas_escrutadas=counted,
        porcentaje_escrutado=format_share(counted, len(tables)),
        mesas_instaladas=installed,
        total_emitidos=emitidos,
        blancos=blancos,
        nulos=nulos,
        votos_validos=valid,
        pactos=ordered,
    )


def elected_candidates(
    tables: Iterable[TableTally],
    *,
    candidates: Mapping[int, CandidateInfo],
    pact_names: Mapping[int, str],
) -> list[ElectedCandidate]:
    """Candidates flagged elected in any table row, deduplicated by id.

    Returns:
        Elected candidates ordered by ballot order (unknown order last).
    """
    elected: dict[int, ElectedCandidate] = {}
    for table in tables:
        for entry in table.candidatos or []:
            if not entry.get("electo"):
                continue
            candidate_id = _candidate_key(entry)
            if candidate_id is None or candidate_id in elected:
                continue
            info = candidates.get(candidate_id)
            pact_id = int(entry.get("id_pacto") or 0)
            orden = entry.get("orden_voto")
            if orden is None and info is not None:
                orden = info.orden
            elected[candidate_id] = ElectedCandidate(
                id=candidate_id,
                name=info.name if info else f"Candidate {candidate_id}",
                party=info.party if info else None,
                pact_id=pact_id,
                pact_name=pact_label(pact_id, pact_names),
                orden=orden,
            )

    return sorted(
        elected.values(),
        key=lambda c: (c.orden is None, c.orden if c.orden is not None else 0, c.id),
    )
