"""Unit tests for iteration-marker change detection."""

from servel_api.lib.servel.change_detector import ChangeDetector, ChangeStatus


class TestCheck:
    """Tests for ChangeDetector.check()."""

    def test_first_marker_is_changed(self):
        assert ChangeDetector().check("constitucion", "12") is ChangeStatus.CHANGED

    def test_absent_marker_on_new_key_is_changed(self):
        assert ChangeDetector().check("territorios", None) is ChangeStatus.CHANGED

    def test_absent_marker_after_merging_none_is_unchanged(self):
        detector = ChangeDetector()
        detector.commit("territorios", None)
        assert detector.check("territorios", None) is ChangeStatus.UNCHANGED

    def test_seeded_none_marker_is_unchanged(self):
        assert ChangeDetector({"territorios": None}).check("territorios", None) is ChangeStatus.UNCHANGED

    def test_equal_marker_is_unchanged(self):
        detector = ChangeDetector({"mesas_diputados": "7"})
        assert detector.check("mesas_diputados", "7") is ChangeStatus.UNCHANGED

    def test_different_marker_is_changed(self):
        detector = ChangeDetector({"mesas_diputados": "7"})
        assert detector.check("mesas_diputados", "8") is ChangeStatus.CHANGED

    def test_marker_disappearing_is_changed(self):
        detector = ChangeDetector({"mesas_diputados": "7"})
        assert detector.check("mesas_diputados", None) is ChangeStatus.CHANGED

    def test_check_does_not_mutate(self):
        detector = ChangeDetector()
        detector.check("constitucion", "1")
        assert detector.last_marker("constitucion") is None
        assert detector.check("constitucion", "1") is ChangeStatus.CHANGED

    def test_keys_are_independent(self):
        detector = ChangeDetector({"totales_senadores": "3"})
        assert detector.check("totales_diputados", "3") is ChangeStatus.CHANGED


class TestCommit:
    """Tests for commit(), seed() and snapshot()."""

    def test_commit_makes_marker_unchanged(self):
        detector = ChangeDetector()
        detector.commit("constitucion", "5")
        assert detector.check("constitucion", "5") is ChangeStatus.UNCHANGED
        assert detector.last_marker("constitucion") == "5"

    def test_seed_keeps_committed_markers(self):
        detector = ChangeDetector()
        detector.commit("constitucion", "9")
        detector.seed({"constitucion": "4", "mesas_senadores": "2"})
        assert detector.last_marker("constitucion") == "9"
        assert detector.last_marker("mesas_senadores") == "2"

    def test_snapshot_is_a_copy(self):
        detector = ChangeDetector({"constitucion": "1"})
        snapshot = detector.snapshot()
        snapshot["constitucion"] = "99"
        assert detector.last_marker("constitucion") == "1"
