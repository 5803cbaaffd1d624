"""Staffing and engagement signals.

Per person per organization, compares listens logged against demos
received over a trailing 7-day window. Coverage is measured against an
expectation ceiling of 60 listens per day: listens above it do not add
coverage, and demos above it are not expected to be covered.

Thresholds (first match wins):
1. weekly listens >= 1000 -> Fatigued
2. coverage < 80% with demos received -> Sleeping
3. weekly listens >= 900 -> Warning
4. otherwise -> Optimal

UI colour-coding and alerting depend on these exact cut-offs. Fatigued and
Sleeping reports are sent to the notification sinks as ``staffing_alert``.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from trackflow.models import (
    CompanyHealth,
    EngineEvent,
    OrganizationScope,
    StaffingReport,
    StaffingStatus,
)
from trackflow.notify.sink import NotificationSink, dispatch_events
from trackflow.store.base import RecordStore

EXPECTATION_CAP = 60
"""Listens per person per day that count toward coverage."""

WEEK_DAYS = 7
FATIGUE_THRESHOLD = 1000
WARNING_THRESHOLD = 900
SLEEPING_COVERAGE = 80.0

ALERT_STATUSES = frozenset({StaffingStatus.FATIGUED, StaffingStatus.SLEEPING})

STATUS_COLORS: dict[StaffingStatus, str] = {
    StaffingStatus.OPTIMAL: "green",
    StaffingStatus.SLEEPING: "blue",
    StaffingStatus.WARNING: "yellow",
    StaffingStatus.FATIGUED: "orange",
}


def effective_listens(weekly_listens: int) -> int:
    return min(weekly_listens, EXPECTATION_CAP * WEEK_DAYS)


def coverage(weekly_listens: int, weekly_demos: int) -> float:
    """Percentage of the expected weekly workload that was listened to.

    Both sides are capped at the weekly expectation: nobody is expected to
    clear more than ``EXPECTATION_CAP * 7`` demos a week. 100 when no demos
    arrived.
    """
    if weekly_demos <= 0:
        return 100.0
    # Capped like listens: 950 listens over 1000 demos reads as Warning, not Sleeping.
    expected = min(weekly_demos, EXPECTATION_CAP * WEEK_DAYS)
    return effective_listens(weekly_listens) / expected * 100


def staffing_status(weekly_listens: int, weekly_demos: int) -> StaffingStatus:
    if weekly_listens >= FATIGUE_THRESHOLD:
        return StaffingStatus.FATIGUED
    if coverage(weekly_listens, weekly_demos) < SLEEPING_COVERAGE and weekly_demos > 0:
        return StaffingStatus.SLEEPING
    if weekly_listens >= WARNING_THRESHOLD:
        return StaffingStatus.WARNING
    return StaffingStatus.OPTIMAL


def staffing_alert(report: StaffingReport, occurred_at: datetime) -> EngineEvent | None:
    """A ``staffing_alert`` event for Fatigued or Sleeping staff, else None."""
    if report.status not in ALERT_STATUSES:
        return None
    return EngineEvent(
        type="staffing_alert",
        scope=OrganizationScope(organization_id=report.organization_id),
        occurred_at=occurred_at,
        data={
            "person_id": report.person_id,
            "status": str(report.status),
            "weekly_listens": report.weekly_listens,
            "weekly_demos": report.weekly_demos,
            "coverage": report.coverage,
        },
    )


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


class StaffingMonitor:
    """Computes staffing signals from listen logs and track intake."""

    def __init__(
        self,
        store: RecordStore,
        sinks: list[NotificationSink] | None = None,
        _clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._sinks: list[NotificationSink] = sinks or []
        self._clock = _clock or (lambda: datetime.now(tz=UTC))

    def status_for(self, person_id: str, organization_id: str) -> StaffingReport:
        """Weekly engagement status for one staff member in one label.

        Fatigued and Sleeping reports are also dispatched to the sinks.
        """
        now = self._clock()
        week_ago = _start_of_day(now) - timedelta(days=WEEK_DAYS)
        listens = len(
            self._store.list_listens(
                organization_id=organization_id, person_id=person_id, since=week_ago
            )
        )
        demos = len(
            self._store.list_tracks(organization_id=organization_id, created_since=week_ago)
        )
        report = StaffingReport(
            person_id=person_id,
            organization_id=organization_id,
            weekly_listens=listens,
            effective_listens=effective_listens(listens),
            weekly_demos=demos,
            coverage=coverage(listens, demos),
            status=staffing_status(listens, demos),
        )
        alert = staffing_alert(report, now)
        if alert is not None and self._sinks:
            dispatch_events(self._sinks, alert)
        return report

    def company_health(self, organization_id: str) -> CompanyHealth:
        """Organization-wide burnout signal for the owner's dashboard."""
        today = _start_of_day(self._clock())
        week_ago = today - timedelta(days=WEEK_DAYS)

        staff_count = len(
            self._store.list_memberships(organization_id=organization_id, active=True)
        )
        daily_demos = len(
            self._store.list_tracks(organization_id=organization_id, created_since=today)
        )
        demos_per_staff = daily_demos / (staff_count or 1)
        staffing_alert = demos_per_staff > EXPECTATION_CAP

        per_person = Counter(
            entry.person_id
            for entry in self._store.list_listens(
                organization_id=organization_id, since=week_ago
            )
        )
        fatigued = sum(1 for n in per_person.values() if n >= FATIGUE_THRESHOLD)
        score = max(
            0.0,
            100 - (fatigued / (staff_count or 1)) * 50 - (30 if staffing_alert else 0),
        )

        return CompanyHealth(
            organization_id=organization_id,
            total_staff=staff_count or 1,
            daily_demos=daily_demos,
            demos_per_staff=demos_per_staff,
            expectation_cap=EXPECTATION_CAP,
            staffing_alert=staffing_alert,
            fatigued_staff_count=fatigued,
            company_health_score=math.floor(score + 0.5),
        )
