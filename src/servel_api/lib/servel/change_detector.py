"""Iteration-marker change detection.

Upstream stamps every payload with an opaque ``iteracion`` string. A payload
whose marker equals the last merged one for the same resource carries
nothing new and is skipped.
"""

import enum
from collections.abc import Mapping


class ChangeStatus(enum.StrEnum):
    """Outcome of comparing a fresh marker with the last merged one."""

    CHANGED = "changed"
    UNCHANGED = "unchanged"


class ChangeDetector:
    """Per-resource last-merged markers.

    ``check`` never mutates state. Callers ``commit`` the new marker only
    once the merge has succeeded, so a failed merge is retried in full on
    the next attempt.
    """

    def __init__(self, markers: Mapping[str, str | None] | None = None) -> None:
        self._markers: dict[str, str | None] = dict(markers or {})

    def check(self, key: str, marker: str | None) -> ChangeStatus:
        """Compare ``marker`` with the last merged marker for ``key``.

        A key with nothing merged yet is always changed, even when the
        payload carries no marker; two absent markers only match once a
        merge has committed ``None``.
        """
        if key in self._markers and self._markers[key] == marker:
            return ChangeStatus.UNCHANGED
        return ChangeStatus.CHANGED

    def commit(self, key: str, marker: str | None) -> None:
        """Record ``marker`` as merged for ``key``."""
        self._markers[key] = marker

    def last_marker(self, key: str) -> str | None:
        """Return the last merged marker for ``key``, if any."""
        return self._markers.get(key)

    def seed(self, markers: Mapping[str, str | None]) -> None:
        """Load persisted markers, keeping any already committed in memory."""
        for key, marker in markers.items():
            self._markers.setdefault(key, marker)

    def snapshot(self) -> dict[str, str | None]:
        """Copy of the current markers."""
        return dict(self._markers)
