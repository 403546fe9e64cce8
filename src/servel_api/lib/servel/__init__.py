"""SERVEL library: fetch, parse, detect changes, schedule and aggregate results.

Public API:
    - fetch_payload: Async download + ZIP extraction + JSON decode
    - FetchError / PayloadError: transport and payload failures
    - ChangeDetector: per-resource iteration-marker comparison
    - resolve_phase / select_resources: election-day phase scheduling
    - summarize_unit / elected_candidates: seat-allocation aggregation
    - build_resources: registry of syncable archives
"""

from servel_api.lib.servel.aggregator import (
    CandidateInfo,
    ElectedCandidate,
    PactTotal,
    UnitSummary,
    elected_candidates,
    summarize_unit,
)
from servel_api.lib.servel.change_detector import ChangeDetector, ChangeStatus
from servel_api.lib.servel.fetcher import FetchError, PayloadError, ServelError, fetch_payload
from servel_api.lib.servel.parser import (
    AggregatePayload,
    InstallationPayload,
    TablesPayload,
    extract_candidates,
    extract_iteration,
    parse_installation_payload,
    parse_tables_payload,
    parse_territories_payload,
    parse_totals_payload,
)
from servel_api.lib.servel.phases import Phase, PhaseBoundaries, SchedulerMode, resolve_phase, select_resources
from servel_api.lib.servel.resources import Resource, ResourceKind, build_resources

__all__ = [
    "AggregatePayload",
    "CandidateInfo",
    "ChangeDetector",
    "ChangeStatus",
    "ElectedCandidate",
    "FetchError",
    "InstallationPayload",
    "PactTotal",
    "PayloadError",
    "Phase",
    "PhaseBoundaries",
    "Resource",
    "ResourceKind",
    "SchedulerMode",
    "ServelError",
    "TablesPayload",
    "UnitSummary",
    "build_resources",
    "elected_candidates",
    "extract_candidates",
    "extract_iteration",
    "fetch_payload",
    "parse_installation_payload",
    "parse_tables_payload",
    "parse_territories_payload",
    "parse_totals_payload",
    "resolve_phase",
    "select_resources",
    "summarize_unit",
]
