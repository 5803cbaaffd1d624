"""Tests for the Tenancy Router and label memberships.

Covers:
- Intake (submit_track) with track and contact capacity
- One-way promotion to a label
- Peer transfer gated on an accepted connection
- Pitch / sign into the terminal views
- Label creation and staff invitations
"""

from __future__ import annotations

from datetime import date

import pytest
from conftest import NOW, MockClock

from trackflow.capacity.guard import CapacityGuard
from trackflow.crates.classifier import CrateService, classify
from trackflow.errors import (
    CapacityExceeded,
    ConnectionRequired,
    InvalidCrateTransition,
    OwnershipPrecondition,
    RecordNotFound,
)
from trackflow.models import (
    CrateTag,
    Membership,
    MembershipRole,
    OrganizationScope,
    PersonalScope,
    Phase,
    Plan,
    SourceKind,
    Tier,
    Track,
)
from trackflow.network.connections import ConnectionManager
from trackflow.notify.sink import MemorySink
from trackflow.plans.catalog import DEFAULT_PLANS, PlanCatalog
from trackflow.plans.resolver import PlanResolver, StaticBillingOracle
from trackflow.store.memory import InMemoryRecordStore
from trackflow.tenancy.memberships import MembershipService
from trackflow.tenancy.router import TenancyRouter

ALICE = PersonalScope(person_id="alice")
LABEL = OrganizationScope(organization_id="label-1")


class Engine:
    """Router, memberships and connections over one in-memory store."""

    def __init__(
        self,
        clock: MockClock,
        tracks: list[Track] | None = None,
        subscriptions: dict[str, Tier] | None = None,
        catalog: PlanCatalog | None = None,
    ) -> None:
        self.store = InMemoryRecordStore(tracks=tracks or [])
        self.sink = MemorySink()
        catalog = catalog or PlanCatalog()
        subs = {"alice": Tier.FREE, "bob": Tier.FREE, "label-1": Tier.FREE}
        subs.update(subscriptions or {})
        self.guard = CapacityGuard(
            self.store, PlanResolver(StaticBillingOracle(catalog, subs), catalog)
        )
        self.connections = ConnectionManager(self.store, _clock=clock)
        self.router = TenancyRouter(
            self.store,
            self.guard,
            connections=self.connections,
            sinks=[self.sink],
            _clock=clock,
        )
        self.memberships = MembershipService(self.store, self.guard, _clock=clock)

    def connect(self, a: str, b: str) -> None:
        conn = self.connections.request(a, b)
        self.connections.accept(conn.id, b)


def _personal(track_id: str = "trk-1", owner: str = "alice", **overrides) -> Track:
    fields = {
        "id": track_id,
        "title": "Demo",
        "artist_name": "Mira",
        "personal_owner_id": owner,
        "crate_tag": CrateTag.SUBMISSIONS,
        "created_at": NOW,
    }
    fields.update(overrides)
    return Track(**fields)


def _fill(owner: str, n: int) -> list[Track]:
    return [_personal(f"{owner}-fill-{i}", owner=owner) for i in range(n)]


def _fill_label(org: str, n: int) -> list[Track]:
    return [
        Track(id=f"{org}-fill-{i}", organization_id=org, created_at=NOW) for i in range(n)
    ]


class TestSubmitTrack:
    def test_personal_submission(self, clock: MockClock):
        engine = Engine(clock)
        track = engine.router.submit_track(
            ALICE,
            title="Night Drive",
            artist_name="Mira",
            source_kind=SourceKind.PUBLIC_FORM,
        )
        assert track.id.startswith("trk-")
        assert track.personal_owner_id == "alice"
        assert track.crate_tag == CrateTag.SUBMISSIONS
        assert track.phase == Phase.INBOX
        assert track.phase_entered_at == {Phase.INBOX: NOW}
        assert engine.store.get_track(track.id) == track
        assert engine.sink.of_type("track_submitted")[0].track_id == track.id

    def test_label_submission_has_no_crate(self, clock: MockClock):
        engine = Engine(clock)
        track = engine.router.submit_track(
            LABEL, title="Demo", target_release_date=date(2026, 6, 1)
        )
        assert track.organization_id == "label-1"
        assert track.crate_tag is None
        assert track.target_release_date == date(2026, 6, 1)

    def test_full_workspace_rejects(self, clock: MockClock):
        engine = Engine(clock, tracks=_fill("alice", 10))
        with pytest.raises(CapacityExceeded):
            engine.router.submit_track(ALICE, title="One too many")
        assert len(engine.store.list_tracks(personal_owner_id="alice")) == 10

    def test_new_artist_needs_contact_capacity(self, clock: MockClock):
        limits = DEFAULT_PLANS[Tier.FREE].limits.model_copy(update={"max_contacts": 1})
        catalog = PlanCatalog([Plan(tier=Tier.FREE, limits=limits)])
        engine = Engine(clock, tracks=[_personal(artist_name="Mira")], catalog=catalog)

        again = engine.router.submit_track(ALICE, title="Second", artist_name="mira")
        assert again.artist_name == "mira"

        with pytest.raises(CapacityExceeded, match="contact"):
            engine.router.submit_track(ALICE, title="Third", artist_name="Someone Else")


class TestPromoteToLabel:
    def test_moves_track_to_label(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal(crate_tag=CrateTag.CRATE_A)])
        promoted = engine.router.promote_to_label("trk-1", "label-1", "alice")

        assert promoted.organization_id == "label-1"
        assert promoted.personal_owner_id is None
        assert promoted.sender_id == "alice"
        assert promoted.is_peer_to_peer
        assert promoted.crate_tag is None
        assert engine.store.get_track("trk-1") == promoted

        (event,) = engine.sink.of_type("track_promoted")
        assert event.data == {"from_person_id": "alice", "organization_id": "label-1"}

    def test_frees_personal_capacity(self, clock: MockClock):
        engine = Engine(clock, tracks=_fill("alice", 10), subscriptions={"label-1": Tier.PRO})
        assert not engine.guard.check_capacity(ALICE).can_add
        engine.router.promote_to_label("alice-fill-0", "label-1", "alice")
        assert engine.guard.check_capacity(ALICE).current_count == 9

    def test_full_label_rejects_and_leaves_track(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal()] + _fill_label("label-1", 10))
        with pytest.raises(CapacityExceeded):
            engine.router.promote_to_label("trk-1", "label-1", "alice")
        track = engine.store.get_track("trk-1")
        assert track.personal_owner_id == "alice"
        assert track.organization_id is None

    def test_only_owner_can_promote(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal()])
        with pytest.raises(OwnershipPrecondition):
            engine.router.promote_to_label("trk-1", "label-1", "bob")

    def test_promotion_is_one_way(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal()])
        engine.connect("alice", "bob")
        engine.router.promote_to_label("trk-1", "label-1", "alice")
        with pytest.raises(OwnershipPrecondition, match="already owned"):
            engine.router.promote_to_label("trk-1", "label-1", "alice")
        with pytest.raises(OwnershipPrecondition):
            engine.router.transfer_to_peer("trk-1", "alice", "bob")

    def test_missing_track(self, clock: MockClock):
        with pytest.raises(RecordNotFound):
            Engine(clock).router.promote_to_label("nope", "label-1", "alice")


class TestTransferToPeer:
    def test_transfer_between_connected_peers(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal(crate_tag=CrateTag.CRATE_B)])
        engine.connect("alice", "bob")

        moved = engine.router.transfer_to_peer("trk-1", "alice", "bob")
        assert moved.personal_owner_id == "bob"
        assert moved.crate_tag == CrateTag.NETWORK
        assert moved.is_peer_to_peer
        assert moved.sender_id == "alice"
        assert moved.source_kind == SourceKind.PEER_TRANSFER
        assert classify(moved) == CrateTag.NETWORK
        assert len(engine.sink.of_type("track_transferred")) == 1

    def test_pending_connection_is_not_enough(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal()])
        engine.connections.request("alice", "bob")
        with pytest.raises(ConnectionRequired):
            engine.router.transfer_to_peer("trk-1", "alice", "bob")
        assert engine.store.get_track("trk-1").personal_owner_id == "alice"

    def test_no_connection(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal()])
        with pytest.raises(ConnectionRequired):
            engine.router.transfer_to_peer("trk-1", "alice", "bob")

    def test_connection_direction_does_not_matter(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal()])
        engine.connect("bob", "alice")
        assert engine.router.transfer_to_peer("trk-1", "alice", "bob").personal_owner_id == "bob"

    def test_sender_must_own_track(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal(owner="carol")])
        engine.connect("alice", "bob")
        with pytest.raises(OwnershipPrecondition):
            engine.router.transfer_to_peer("trk-1", "alice", "bob")

    def test_receiver_capacity_checked(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal()] + _fill("bob", 10))
        engine.connect("alice", "bob")
        with pytest.raises(CapacityExceeded) as exc_info:
            engine.router.transfer_to_peer("trk-1", "alice", "bob")
        assert exc_info.value.result.scope == PersonalScope(person_id="bob")
        assert engine.store.get_track("trk-1").personal_owner_id == "alice"

    def test_network_track_is_locked_in_crate(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal()])
        engine.connect("alice", "bob")
        engine.router.transfer_to_peer("trk-1", "alice", "bob")
        with pytest.raises(InvalidCrateTransition):
            CrateService(engine.store).move_to_crate("trk-1", CrateTag.CRATE_A, "bob")

    def test_retry_after_transfer_fails(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal()])
        engine.connect("alice", "bob")
        engine.router.transfer_to_peer("trk-1", "alice", "bob")
        with pytest.raises(OwnershipPrecondition):
            engine.router.transfer_to_peer("trk-1", "alice", "bob")


class TestPitchAndSign:
    def test_pitch(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal()])
        pitched = engine.router.pitch("trk-1")
        assert pitched.crate_tag == CrateTag.PITCHED
        assert pitched.pitched_at == NOW

    def test_pitch_twice_keeps_first_timestamp(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal()])
        engine.router.pitch("trk-1")
        clock.advance(days=1)
        again = engine.router.pitch("trk-1")
        assert again.pitched_at == NOW
        assert len(engine.sink.of_type("track_pitched")) == 1

    def test_pitched_track_frees_capacity(self, clock: MockClock):
        engine = Engine(clock, tracks=_fill("alice", 10))
        engine.router.pitch("alice-fill-3")
        assert engine.guard.check_capacity(ALICE).current_count == 9

    def test_label_track_cannot_be_pitched(self, clock: MockClock):
        engine = Engine(clock, tracks=_fill_label("label-1", 1))
        with pytest.raises(OwnershipPrecondition):
            engine.router.pitch("label-1-fill-0")

    def test_mark_signed(self, clock: MockClock):
        engine = Engine(clock, tracks=[_personal()])
        signed = engine.router.mark_signed("trk-1")
        assert signed.crate_tag == CrateTag.SIGNED
        assert signed.contract_signed
        assert classify(signed) == CrateTag.SIGNED
        engine.router.mark_signed("trk-1")
        assert len(engine.sink.of_type("track_signed")) == 1


class TestMemberships:
    def test_create_label(self, clock: MockClock):
        engine = Engine(clock)
        membership = engine.memberships.create_label("alice", "label-1")
        assert membership.role == MembershipRole.OWNER
        assert membership.is_owner
        assert membership.created_at == NOW

    def test_free_tier_owns_one_label(self, clock: MockClock):
        engine = Engine(clock)
        engine.memberships.create_label("alice", "label-1")
        with pytest.raises(CapacityExceeded, match="label_ownership"):
            engine.memberships.create_label("alice", "label-2")

    def test_label_has_one_owner(self, clock: MockClock):
        engine = Engine(clock, subscriptions={"bob": Tier.PRO})
        engine.memberships.create_label("alice", "label-1")
        with pytest.raises(OwnershipPrecondition):
            engine.memberships.create_label("bob", "label-1")

    def test_staff_invite(self, clock: MockClock):
        engine = Engine(clock, subscriptions={"label-1": Tier.STARTER})
        engine.memberships.create_label("alice", "label-1")
        joined = engine.memberships.accept_staff_invite("bob", "label-1", "Manager")
        assert joined.role == MembershipRole.MANAGER
        assert len(engine.memberships.members("label-1")) == 2

    def test_free_label_has_no_free_seat(self, clock: MockClock):
        engine = Engine(clock)
        engine.memberships.create_label("alice", "label-1")
        with pytest.raises(CapacityExceeded, match="staff_seat"):
            engine.memberships.accept_staff_invite("bob", "label-1")

    def test_free_person_joins_three_labels(self, clock: MockClock):
        subs = {f"l{i}": Tier.STARTER for i in range(4)}
        engine = Engine(clock, subscriptions=subs)
        for i in range(3):
            engine.memberships.accept_staff_invite("bob", f"l{i}")
        with pytest.raises(CapacityExceeded, match="staff_membership"):
            engine.memberships.accept_staff_invite("bob", "l3")

    def test_invite_cannot_grant_owner(self, clock: MockClock):
        engine = Engine(clock, subscriptions={"label-1": Tier.STARTER})
        with pytest.raises(OwnershipPrecondition):
            engine.memberships.accept_staff_invite("bob", "label-1", MembershipRole.OWNER)

    def test_no_duplicate_membership(self, clock: MockClock):
        engine = Engine(clock, subscriptions={"label-1": Tier.STARTER})
        engine.store.insert_membership(
            Membership(id="m1", person_id="bob", organization_id="label-1", role=MembershipRole.SCOUT)
        )
        with pytest.raises(OwnershipPrecondition, match="already a member"):
            engine.memberships.accept_staff_invite("bob", "label-1")
