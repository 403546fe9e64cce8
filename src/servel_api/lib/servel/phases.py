"""Election-day phase resolution and per-phase resource selection.

Both functions are pure: the scheduler recomputes the phase on every tick
from the wall clock, nothing about phases is persisted.
"""

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from servel_api.core.config import Settings
from servel_api.lib.servel.resources import Resource, ResourceKind


class Phase(enum.StrEnum):
    """Election-day phase driving what the scheduler syncs."""

    BEFORE_OPEN = "before-open"
    INSTALLATION = "installation"
    VOTING = "voting"
    TALLY = "tally"
    DISABLED = "disabled"


class SchedulerMode(enum.StrEnum):
    """Cold start syncs resources one at a time to bound peak memory."""

    COLD_START = "cold-start"
    WARM = "warm"


@dataclass(frozen=True)
class PhaseBoundaries:
    """Local-time boundaries of the election-day phases."""

    installation_start: time
    voting_start: time
    tally_start: time
    election_date: date | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "PhaseBoundaries":
        return cls(
            installation_start=settings.installation_start,
            voting_start=settings.voting_start,
            tally_start=settings.tally_start,
            election_date=settings.election_date,
        )


def resolve_phase(
    now: datetime,
    boundaries: PhaseBoundaries,
    timezone: ZoneInfo,
    *,
    smart_scheduling: bool = True,
) -> Phase:
    """Map a point in time to an election-day phase.

    Args:
        now: Current time. Aware datetimes are converted to ``timezone``;
            naive ones are taken as already local.
        boundaries: Configured phase boundaries.
        timezone: Timezone the boundaries are expressed in.
        smart_scheduling: When False the phase is always ``DISABLED``.

    Returns:
        The phase ``now`` falls in.
    """
    if not smart_scheduling:
        return Phase.DISABLED

    local = now.astimezone(timezone) if now.tzinfo is not None else now

    if boundaries.election_date is not None:
        if local.date() < boundaries.election_date:
            return Phase.BEFORE_OPEN
        if local.date() > boundaries.election_date:
            return Phase.TALLY

    clock = local.time()
    if clock < boundaries.installation_start:
        return Phase.BEFORE_OPEN
    if clock < boundaries.voting_start:
        return Phase.INSTALLATION
    if clock < boundaries.tally_start:
        return Phase.VOTING
    return Phase.TALLY


def select_resources(
    phase: Phase,
    resources: Iterable[Resource],
    *,
    installation_complete: bool = False,
) -> list[Resource]:
    """Pick the resources to sync in ``phase``.

    Args:
        phase: Current phase.
        resources: Candidate resources; unscheduled ones are never picked.
        installation_complete: Latch set once the installed-tables
            percentage crossed the threshold.

    Returns:
        Resources to sync, in registry order.
    """
    scheduled = [resource for resource in resources if resource.scheduled]

    if phase is Phase.BEFORE_OPEN:
        return []
    if phase in (Phase.INSTALLATION, Phase.VOTING):
        if installation_complete:
            return []
        return [resource for resource in scheduled if resource.kind is ResourceKind.INSTALLATION]
    return scheduled
