"""Unit tests for election-day phase resolution and resource selection."""

from datetime import UTC, date, datetime, time
from zoneinfo import ZoneInfo

import pytest

from servel_api.core.config import Settings
from servel_api.lib.servel.phases import Phase, PhaseBoundaries, resolve_phase, select_resources
from servel_api.lib.servel.resources import build_resources

SANTIAGO = ZoneInfo("America/Santiago")

BOUNDARIES = PhaseBoundaries(
    installation_start=time(8, 0),
    voting_start=time(12, 0),
    tally_start=time(18, 0),
)


@pytest.fixture
def resources():
    settings = Settings(_env_file=None, database_url="sqlite+aiosqlite:///:memory:")
    return list(build_resources(settings).values())


class TestResolvePhase:
    """Tests for resolve_phase()."""

    @pytest.mark.parametrize(
        ("clock", "expected"),
        [
            (time(7, 59), Phase.BEFORE_OPEN),
            (time(8, 0), Phase.INSTALLATION),
            (time(10, 0), Phase.INSTALLATION),
            (time(12, 0), Phase.VOTING),
            (time(17, 59, 59), Phase.VOTING),
            (time(18, 0), Phase.TALLY),
            (time(23, 30), Phase.TALLY),
        ],
    )
    def test_boundaries_are_inclusive_on_the_left(self, clock, expected):
        now = datetime.combine(date(2025, 11, 16), clock, tzinfo=SANTIAGO)
        assert resolve_phase(now, BOUNDARIES, SANTIAGO) is expected

    def test_aware_time_is_converted(self):
        # 13:00 UTC is 10:00 in Santiago during summer time (UTC-3)
        now = datetime(2025, 11, 16, 13, 0, tzinfo=UTC)
        assert resolve_phase(now, BOUNDARIES, SANTIAGO) is Phase.INSTALLATION

    def test_naive_time_is_local(self):
        assert resolve_phase(datetime(2025, 11, 16, 19, 0), BOUNDARIES, SANTIAGO) is Phase.TALLY

    def test_smart_scheduling_disabled(self):
        now = datetime(2025, 11, 16, 10, 0, tzinfo=SANTIAGO)
        assert resolve_phase(now, BOUNDARIES, SANTIAGO, smart_scheduling=False) is Phase.DISABLED

    def test_election_date_bounds_the_day(self):
        boundaries = PhaseBoundaries(time(8, 0), time(12, 0), time(18, 0), election_date=date(2025, 11, 16))
        assert resolve_phase(datetime(2025, 11, 15, 20, 0), boundaries, SANTIAGO) is Phase.BEFORE_OPEN
        assert resolve_phase(datetime(2025, 11, 17, 9, 0), boundaries, SANTIAGO) is Phase.TALLY
        assert resolve_phase(datetime(2025, 11, 16, 9, 0), boundaries, SANTIAGO) is Phase.INSTALLATION

    def test_from_settings(self):
        settings = Settings(
            _env_file=None,
            database_url="sqlite+aiosqlite:///:memory:",
            installation_start=time(7, 30),
            voting_start=time(8, 0),
            tally_start=time(18, 0),
        )
        boundaries = PhaseBoundaries.from_settings(settings)
        assert boundaries.installation_start == time(7, 30)
        assert boundaries.election_date is None


class TestSelectResources:
    """Tests for select_resources()."""

    def test_before_open_selects_nothing(self, resources):
        assert select_resources(Phase.BEFORE_OPEN, resources) == []

    @pytest.mark.parametrize("phase", [Phase.INSTALLATION, Phase.VOTING])
    def test_installation_feed_only_until_latched(self, phase, resources):
        assert [r.key for r in select_resources(phase, resources)] == ["constitucion"]
        assert select_resources(phase, resources, installation_complete=True) == []

    @pytest.mark.parametrize("phase", [Phase.TALLY, Phase.DISABLED])
    def test_everything_scheduled(self, phase, resources):
        keys = [r.key for r in select_resources(phase, resources, installation_complete=True)]
        assert keys == [
            "constitucion",
            "totales_presidencial",
            "totales_senadores",
            "totales_diputados",
            "mesas_presidencial",
            "mesas_senadores",
            "mesas_diputados",
        ]

    def test_phase_drives_selection_end_to_end(self, resources):
        at_ten = datetime(2025, 11, 16, 10, 0, tzinfo=SANTIAGO)
        at_seven_pm = datetime(2025, 11, 16, 19, 0, tzinfo=SANTIAGO)

        morning = select_resources(resolve_phase(at_ten, BOUNDARIES, SANTIAGO), resources)
        evening = select_resources(resolve_phase(at_seven_pm, BOUNDARIES, SANTIAGO), resources)

        assert [r.key for r in morning] == ["constitucion"]
        assert len(evening) == 7
        assert "territorios" not in [r.key for r in evening]
