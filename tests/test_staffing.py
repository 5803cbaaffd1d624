"""Tests for staffing status and company health."""

from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import NOW, MockClock

from trackflow.models import (
    ListenLog,
    Membership,
    MembershipRole,
    StaffingReport,
    StaffingStatus,
    Track,
)
from trackflow.notify.sink import MemorySink
from trackflow.pipeline.staffing import (
    EXPECTATION_CAP,
    StaffingMonitor,
    coverage,
    effective_listens,
    staffing_alert,
    staffing_status,
)
from trackflow.store.memory import InMemoryRecordStore


def _listens(person: str, n: int, at=None, org: str = "label-1") -> list[ListenLog]:
    when = at or NOW - timedelta(days=1)
    return [
        ListenLog(id=f"{person}-{i}", person_id=person, organization_id=org, listened_at=when)
        for i in range(n)
    ]


def _demos(n: int, at=None, org: str = "label-1", prefix: str = "d") -> list[Track]:
    when = at or NOW - timedelta(days=1)
    return [
        Track(id=f"{prefix}-{i}", organization_id=org, created_at=when) for i in range(n)
    ]


def _staff(*people: str, org: str = "label-1") -> list[Membership]:
    return [
        Membership(id=f"m-{p}", person_id=p, organization_id=org, role=MembershipRole.SCOUT)
        for p in people
    ]


class TestStaffingStatus:
    def test_fatigued_at_one_thousand(self):
        assert staffing_status(1000, 0) == StaffingStatus.FATIGUED
        assert staffing_status(1200, 5000) == StaffingStatus.FATIGUED

    def test_warning_with_heavy_intake(self):
        assert staffing_status(950, 1000) == StaffingStatus.WARNING

    def test_warning_without_demos(self):
        assert staffing_status(900, 0) == StaffingStatus.WARNING

    def test_sleeping_below_eighty_percent(self):
        assert staffing_status(10, 100) == StaffingStatus.SLEEPING
        assert staffing_status(0, 1) == StaffingStatus.SLEEPING

    def test_optimal(self):
        assert staffing_status(80, 100) == StaffingStatus.OPTIMAL
        assert staffing_status(0, 0) == StaffingStatus.OPTIMAL

    def test_coverage(self):
        assert coverage(0, 0) == 100.0
        assert coverage(50, 100) == pytest.approx(50.0)
        assert coverage(950, 1000) == pytest.approx(100.0)

    def test_effective_listens_capped(self):
        assert effective_listens(100) == 100
        assert effective_listens(5000) == EXPECTATION_CAP * 7


class TestStatusFor:
    def test_counts_trailing_week(self, clock: MockClock):
        store = InMemoryRecordStore(
            tracks=_demos(100) + _demos(50, at=NOW - timedelta(days=9), prefix="old"),
            listens=_listens("alice", 90)
            + _listens("alice", 40, at=NOW - timedelta(days=10))
            + _listens("bob", 500),
        )
        report = StaffingMonitor(store, _clock=clock).status_for("alice", "label-1")
        assert report.weekly_listens == 90
        assert report.weekly_demos == 100
        assert report.coverage == pytest.approx(90.0)
        assert report.status == StaffingStatus.OPTIMAL

    def test_week_starts_at_midnight_seven_days_back(self, clock: MockClock):
        start = NOW.replace(hour=0) - timedelta(days=7)
        store = InMemoryRecordStore(
            listens=_listens("alice", 3, at=start)
            + _listens("alice", 2, at=start - timedelta(minutes=1)),
        )
        report = StaffingMonitor(store, _clock=clock).status_for("alice", "label-1")
        assert report.weekly_listens == 3

    def test_other_labels_ignored(self, clock: MockClock):
        store = InMemoryRecordStore(
            tracks=_demos(10, org="label-2"),
            listens=_listens("alice", 1000, org="label-2"),
        )
        report = StaffingMonitor(store, _clock=clock).status_for("alice", "label-1")
        assert report.weekly_listens == 0
        assert report.status == StaffingStatus.OPTIMAL


class TestCompanyHealth:
    def test_healthy_label(self, clock: MockClock):
        store = InMemoryRecordStore(
            tracks=_demos(20, at=NOW),
            memberships=_staff("alice", "bob"),
            listens=_listens("alice", 200),
        )
        health = StaffingMonitor(store, _clock=clock).company_health("label-1")
        assert health.total_staff == 2
        assert health.daily_demos == 20
        assert health.demos_per_staff == 10
        assert not health.staffing_alert
        assert health.fatigued_staff_count == 0
        assert health.company_health_score == 100

    def test_fatigue_and_overload(self, clock: MockClock):
        store = InMemoryRecordStore(
            tracks=_demos(130, at=NOW),
            memberships=_staff("alice", "bob"),
            listens=_listens("alice", 1000),
        )
        health = StaffingMonitor(store, _clock=clock).company_health("label-1")
        assert health.demos_per_staff == 65
        assert health.staffing_alert
        assert health.fatigued_staff_count == 1
        assert health.company_health_score == 45

    def test_no_staff_counts_as_one(self, clock: MockClock):
        store = InMemoryRecordStore(tracks=_demos(3, at=NOW))
        health = StaffingMonitor(store, _clock=clock).company_health("label-1")
        assert health.total_staff == 1
        assert health.demos_per_staff == 3

    def test_single_fatigued_overloaded_staff(self, clock: MockClock):
        store = InMemoryRecordStore(
            tracks=_demos(70, at=NOW),
            memberships=_staff("alice"),
            listens=_listens("alice", 1000),
        )
        health = StaffingMonitor(store, _clock=clock).company_health("label-1")
        assert health.company_health_score == 20

    def test_yesterdays_demos_not_daily(self, clock: MockClock):
        store = InMemoryRecordStore(
            tracks=_demos(100, at=NOW - timedelta(days=1)),
            memberships=_staff("alice"),
        )
        health = StaffingMonitor(store, _clock=clock).company_health("label-1")
        assert health.daily_demos == 0
        assert not health.staffing_alert


class TestStaffingAlert:
    def test_fatigued_dispatched(self, clock: MockClock):
        sink = MemorySink()
        store = InMemoryRecordStore(listens=_listens("alice", 1000))
        monitor = StaffingMonitor(store, sinks=[sink], _clock=clock)
        report = monitor.status_for("alice", "label-1")

        assert report.status == StaffingStatus.FATIGUED
        (event,) = sink.of_type("staffing_alert")
        assert event.data["person_id"] == "alice"
        assert event.data["status"] == "Fatigued"
        assert event.occurred_at == NOW
        assert str(event.scope) == "organization:label-1"

    def test_sleeping_dispatched(self, clock: MockClock):
        sink = MemorySink()
        store = InMemoryRecordStore(tracks=_demos(100), listens=_listens("alice", 10))
        StaffingMonitor(store, sinks=[sink], _clock=clock).status_for("alice", "label-1")
        assert [e.data["status"] for e in sink.events] == ["Sleeping"]

    def test_optimal_and_warning_stay_quiet(self, clock: MockClock):
        sink = MemorySink()
        store = InMemoryRecordStore(
            tracks=_demos(10), listens=_listens("alice", 10) + _listens("bob", 950)
        )
        monitor = StaffingMonitor(store, sinks=[sink], _clock=clock)
        assert monitor.status_for("alice", "label-1").status == StaffingStatus.OPTIMAL
        assert monitor.status_for("bob", "label-1").status == StaffingStatus.WARNING
        assert sink.events == []

    def test_builder_skips_warning(self):
        report = StaffingReport(
            person_id="bob",
            organization_id="label-1",
            weekly_listens=950,
            effective_listens=420,
            weekly_demos=1000,
            coverage=100.0,
            status=StaffingStatus.WARNING,
        )
        assert staffing_alert(report, NOW) is None
