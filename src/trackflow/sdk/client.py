"""Trackflow SDK — the single public entry point.

Wires together every engine component (plan resolver, capacity guard,
crate service, phase machine, tenancy router, memberships, connections,
staffing monitor) over one record store and one billing oracle.

Usage::

    from trackflow import Trackflow
    from trackflow.models import PersonalScope

    flow = Trackflow(data_dir="./data", plans="./plans.yaml")
    track = flow.submit_track(PersonalScope(person_id="u1"), title="Demo")
    flow.move_to_crate(track.id, "crate_a", acting_person_id="u1")
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

from trackflow.capacity.guard import CapacityGuard
from trackflow.config import TrackflowConfig
from trackflow.crates.classifier import CrateService
from trackflow.models import (
    CapacityCheckResult,
    CompanyHealth,
    Connection,
    CrateTag,
    GapReport,
    Membership,
    MembershipRole,
    OrganizationScope,
    PersonalScope,
    Phase,
    PlanLimits,
    ResourceKind,
    SourceKind,
    StaffingReport,
    Tier,
    Track,
)
from trackflow.network.connections import ConnectionManager
from trackflow.notify.sink import NotificationSink, build_sinks, dispatch_events
from trackflow.pipeline.gaps import gap_alert, gap_report
from trackflow.pipeline.phases import PhaseMachine
from trackflow.pipeline.staffing import StaffingMonitor
from trackflow.plans.catalog import PlanCatalog, load_plans
from trackflow.plans.resolver import BillingOracle, PlanResolver, StaticBillingOracle
from trackflow.store.base import RecordStore
from trackflow.store.jsonl import JsonlRecordStore
from trackflow.store.memory import InMemoryRecordStore
from trackflow.tenancy.memberships import MembershipService
from trackflow.tenancy.router import TenancyRouter


class TrackflowSetupError(Exception):
    """Raised for configuration or initialization errors."""


class Trackflow:
    """Public API for the Trackflow engine.

    Engine objects are stateless; every read and write goes through the
    record store, so several ``Trackflow`` instances can share one.
    """

    def __init__(
        self,
        store: RecordStore | None = None,
        data_dir: str | Path | None = None,
        plans: str | Path | PlanCatalog | None = None,
        oracle: BillingOracle | None = None,
        subscriptions: dict[str, Tier | str] | None = None,
        default_tier: Tier | str | None = None,
        notifications: list[NotificationSink] | dict | None = None,
        _clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize Trackflow.

        Args:
            store: Record store to use. Mutually exclusive with *data_dir*.
            data_dir: Directory for a JSON-lines store. When neither *store*
                nor *data_dir* is given, an in-memory store is used.
            plans: Plans YAML file or a ready ``PlanCatalog`` (optional;
                built-in tiers otherwise). Subscriptions in the file are
                merged under *subscriptions*.
            oracle: Billing oracle (optional). Defaults to a static oracle
                over the catalog and subscriptions.
            subscriptions: Billing owner id -> tier assignments.
            default_tier: Tier for owners without a subscription. Unset
                means unknown owners resolve through the fail-closed path.
            notifications: Sinks for engine events. Pass a list of sinks,
                or a dict to auto-build via ``build_sinks()``.
        """
        if store is not None and data_dir is not None:
            raise TrackflowSetupError("Pass either store or data_dir, not both")
        if store is not None:
            self._store: RecordStore = store
        elif data_dir is not None:
            self._store = JsonlRecordStore(data_dir)
        else:
            self._store = InMemoryRecordStore()

        file_subscriptions: dict[str, Tier] = {}
        if isinstance(plans, PlanCatalog):
            catalog = plans
        elif plans is not None:
            catalog, file_subscriptions = load_plans(plans)
        else:
            catalog = PlanCatalog()

        if oracle is not None and (subscriptions or default_tier is not None):
            raise TrackflowSetupError(
                "subscriptions and default_tier only apply to the built-in oracle"
            )
        if oracle is None:
            merged = dict(file_subscriptions)
            merged.update({k: Tier(v) for k, v in (subscriptions or {}).items()})
            oracle = StaticBillingOracle(
                catalog,
                subscriptions=merged,
                default_tier=Tier(default_tier) if default_tier is not None else None,
            )
        self._oracle = oracle

        if isinstance(notifications, dict):
            sinks = build_sinks(notifications)
        else:
            sinks = list(notifications or [])
        self._sinks: list[NotificationSink] = sinks

        self._clock = _clock or (lambda: datetime.now(tz=UTC))

        self._resolver = PlanResolver(oracle, catalog)
        self._guard = CapacityGuard(self._store, self._resolver)
        self._crates = CrateService(self._store)
        self._connections = ConnectionManager(self._store, _clock=self._clock)
        self._phases = PhaseMachine(
            self._store, guard=self._guard, sinks=sinks, _clock=self._clock
        )
        self._router = TenancyRouter(
            self._store,
            self._guard,
            connections=self._connections,
            sinks=sinks,
            _clock=self._clock,
        )
        self._memberships = MembershipService(self._store, self._guard, _clock=self._clock)
        self._staffing = StaffingMonitor(self._store, sinks=sinks, _clock=self._clock)

    @classmethod
    def from_config(
        cls,
        config: TrackflowConfig,
        **overrides: Any,
    ) -> Trackflow:
        """Build a Trackflow from a parsed ``trackflow.yaml``."""
        kwargs: dict[str, Any] = {
            "data_dir": config.data_dir,
            "plans": config.plans,
            "default_tier": config.default_tier,
            "notifications": config.notifications,
        }
        kwargs.update(overrides)
        if kwargs.get("store") is not None:
            kwargs["data_dir"] = None
        return cls(**kwargs)

    # --- Components ---

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def oracle(self) -> BillingOracle:
        return self._oracle

    @property
    def resolver(self) -> PlanResolver:
        return self._resolver

    @property
    def guard(self) -> CapacityGuard:
        return self._guard

    @property
    def phases(self) -> PhaseMachine:
        return self._phases

    @property
    def router(self) -> TenancyRouter:
        return self._router

    @property
    def connections(self) -> ConnectionManager:
        return self._connections

    @property
    def memberships(self) -> MembershipService:
        return self._memberships

    @property
    def staffing(self) -> StaffingMonitor:
        return self._staffing

    @property
    def sinks(self) -> list[NotificationSink]:
        return self._sinks

    # --- Plans / capacity ---

    def resolve_limits(self, scope: PersonalScope | OrganizationScope) -> PlanLimits:
        return self._resolver.resolve_limits(scope)

    def check_capacity(
        self,
        scope: PersonalScope | OrganizationScope,
        resource_kind: ResourceKind | str = ResourceKind.TRACK,
    ) -> CapacityCheckResult:
        return self._guard.check_capacity(scope, ResourceKind(resource_kind))

    def capacity_lock(self, person_id: str) -> CapacityCheckResult | None:
        return self._guard.capacity_lock(person_id)

    # --- Crates ---

    def crates(self, person_id: str) -> dict[CrateTag, list[Track]]:
        return self._crates.crates_for(person_id)

    def move_to_crate(
        self, track_id: str, crate: CrateTag | str, acting_person_id: str
    ) -> Track:
        return self._crates.move_to_crate(track_id, crate, acting_person_id)

    # --- Tenancy ---

    def submit_track(
        self,
        scope: PersonalScope | OrganizationScope,
        title: str,
        artist_name: str = "",
        source_kind: SourceKind | str = SourceKind.MANUAL,
        target_release_date: date | None = None,
    ) -> Track:
        return self._router.submit_track(
            scope,
            title=title,
            artist_name=artist_name,
            source_kind=SourceKind(source_kind),
            target_release_date=target_release_date,
        )

    def promote_to_label(
        self, track_id: str, organization_id: str, acting_person_id: str
    ) -> Track:
        return self._router.promote_to_label(track_id, organization_id, acting_person_id)

    def transfer_to_peer(
        self, track_id: str, from_person_id: str, to_person_id: str
    ) -> Track:
        return self._router.transfer_to_peer(track_id, from_person_id, to_person_id)

    def pitch(self, track_id: str) -> Track:
        return self._router.pitch(track_id)

    def mark_signed(self, track_id: str) -> Track:
        return self._router.mark_signed(track_id)

    def create_label(self, person_id: str, organization_id: str) -> Membership:
        return self._memberships.create_label(person_id, organization_id)

    def accept_staff_invite(
        self,
        person_id: str,
        organization_id: str,
        role: MembershipRole | str = MembershipRole.SCOUT,
    ) -> Membership:
        return self._memberships.accept_staff_invite(person_id, organization_id, role)

    # --- Connections ---

    def request_connection(self, requester_id: str, recipient_id: str) -> Connection:
        return self._connections.request(requester_id, recipient_id)

    def accept_connection(self, connection_id: str, acting_person_id: str) -> Connection:
        return self._connections.accept(connection_id, acting_person_id)

    # --- Pipeline ---

    def advance(self, track_id: str) -> Track:
        return self._phases.advance(track_id)

    def transition(self, track_id: str, target: Phase | str) -> Track:
        return self._phases.transition(track_id, target)

    def archive(self, track_id: str, reason: str | None = None) -> Track:
        return self._phases.archive(track_id, reason)

    def gap_report(
        self,
        organization_id: str,
        today: date | None = None,
    ) -> GapReport:
        """Release-gap report over a label's contracting and upcoming tracks.

        A critical gap is also dispatched to the sinks as ``release_gap``.
        """
        tracks: Iterable[Track] = self._store.list_tracks(
            organization_id=organization_id,
            phases=(Phase.CONTRACTING, Phase.UPCOMING),
            archived=False,
        )
        report = gap_report(tracks, today or self._clock().date())
        alert = gap_alert(organization_id, report, self._clock())
        if alert is not None and self._sinks:
            dispatch_events(self._sinks, alert)
        return report

    def staffing_status(self, person_id: str, organization_id: str) -> StaffingReport:
        return self._staffing.status_for(person_id, organization_id)

    def company_health(self, organization_id: str) -> CompanyHealth:
        return self._staffing.company_health(organization_id)
