"""Release-date gap check.

Read-only derived signal over contracting/upcoming tracks. The next 90
days are split into three windows counted in days from *today*:

    [0, 30)   [31, 60)   [61, 90)

Day 30 and day 60 fall between windows and are never counted. A critical
gap is two or more windows with no scheduled release; ``gap_alert`` turns
it into a ``release_gap`` event for the notification sinks.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta

from trackflow.models import (
    EngineEvent,
    GapReport,
    GapWindow,
    OrganizationScope,
    Phase,
    Track,
)

WINDOW_BOUNDS: tuple[tuple[int, int], ...] = ((0, 30), (31, 60), (61, 90))
CRITICAL_GAP_COUNT = 2


def effective_release_date(track: Track) -> date | None:
    """The date a track counts as released on, or None.

    Upcoming tracks use ``release_date``; contracting tracks prefer
    ``target_release_date`` and fall back to ``release_date``.
    """
    if track.phase == Phase.UPCOMING:
        return track.release_date
    if track.phase == Phase.CONTRACTING:
        return track.target_release_date or track.release_date
    return None


def gap_windows(today: date) -> list[GapWindow]:
    return [
        GapWindow(start=today + timedelta(days=lo), end=today + timedelta(days=hi))
        for lo, hi in WINDOW_BOUNDS
    ]


def gap_report(tracks: Iterable[Track], today: date) -> GapReport:
    """Count scheduled releases per window."""
    windows = gap_windows(today)
    for track in tracks:
        if track.archived:
            continue
        released = effective_release_date(track)
        if released is None:
            continue
        for window in windows:
            if window.start <= released < window.end:
                window.count += 1
                break
    return GapReport(today=today, windows=windows)


def has_critical_gap(tracks: Iterable[Track], today: date) -> bool:
    return gap_report(tracks, today).gap_count >= CRITICAL_GAP_COUNT


def gap_alert(
    organization_id: str, report: GapReport, occurred_at: datetime
) -> EngineEvent | None:
    """A ``release_gap`` event for a critical gap, else None."""
    if not report.has_critical_gap:
        return None
    return EngineEvent(
        type="release_gap",
        scope=OrganizationScope(organization_id=organization_id),
        occurred_at=occurred_at,
        data={
            "gap_count": report.gap_count,
            "gap_months": report.gap_months,
            "windows": [w.count for w in report.windows],
        },
    )
