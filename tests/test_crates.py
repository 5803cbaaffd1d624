"""Tests for the Crate Classifier and crate moves."""

from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import NOW

from trackflow.crates.classifier import CrateService, active_crates, classify, is_terminal
from trackflow.errors import InvalidCrateTransition, OwnershipPrecondition, RecordNotFound
from trackflow.models import DISPLAY_CRATES, CrateTag, SourceKind, Track
from trackflow.store.memory import InMemoryRecordStore


def _track(track_id: str = "trk-1", **overrides) -> Track:
    defaults = {
        "id": track_id,
        "title": "Demo",
        "personal_owner_id": "alice",
        "created_at": NOW,
    }
    defaults.update(overrides)
    return Track(**defaults)


class TestClassify:
    def test_untagged_manual_goes_to_submissions(self):
        assert classify(_track()) == CrateTag.SUBMISSIONS

    def test_public_form_goes_to_submissions(self):
        track = _track(source_kind=SourceKind.PUBLIC_FORM, crate_tag=CrateTag.CRATE_A)
        assert classify(track) == CrateTag.SUBMISSIONS

    def test_public_form_from_peer_goes_to_network(self):
        track = _track(source_kind=SourceKind.PUBLIC_FORM, is_peer_to_peer=True)
        assert classify(track) == CrateTag.NETWORK

    def test_network_tag(self):
        assert classify(_track(crate_tag=CrateTag.NETWORK)) == CrateTag.NETWORK

    def test_peer_flag_beats_crate_tag(self):
        track = _track(crate_tag=CrateTag.CRATE_B, is_peer_to_peer=True)
        assert classify(track) == CrateTag.NETWORK

    def test_crate_a_and_b(self):
        assert classify(_track(crate_tag=CrateTag.CRATE_A)) == CrateTag.CRATE_A
        assert classify(_track(crate_tag=CrateTag.CRATE_B)) == CrateTag.CRATE_B

    def test_legacy_tag_classifies_as_new_crate(self):
        assert classify(_track(crate_tag="crate_2")) == CrateTag.CRATE_B

    def test_terminal_tracks(self):
        assert classify(_track(crate_tag=CrateTag.PITCHED)) == CrateTag.PITCHED
        assert classify(_track(crate_tag=CrateTag.SIGNED)) == CrateTag.SIGNED
        assert classify(_track(crate_tag=CrateTag.PITCHED, contract_signed=True)) == CrateTag.SIGNED

    def test_signed_contract_is_terminal_without_tag(self):
        track = _track(crate_tag=CrateTag.CRATE_A, contract_signed=True)
        assert is_terminal(track)
        assert classify(track) == CrateTag.SIGNED


class TestActiveCrates:
    def test_all_keys_present_when_empty(self):
        crates = active_crates([])
        assert list(crates) == list(DISPLAY_CRATES)
        assert all(tracks == [] for tracks in crates.values())

    def test_every_live_track_in_exactly_one_crate(self):
        tracks = [
            _track("t1"),
            _track("t2", source_kind=SourceKind.PUBLIC_FORM),
            _track("t3", crate_tag=CrateTag.NETWORK),
            _track("t4", is_peer_to_peer=True),
            _track("t5", crate_tag=CrateTag.CRATE_A),
            _track("t6", crate_tag=CrateTag.CRATE_B),
            _track("t7", crate_tag="crate_1"),
        ]
        crates = active_crates(tracks)

        placed = [t.id for bucket in crates.values() for t in bucket]
        assert sorted(placed) == sorted(t.id for t in tracks)
        assert [t.id for t in crates[CrateTag.SUBMISSIONS]] == ["t1", "t2"]
        assert [t.id for t in crates[CrateTag.NETWORK]] == ["t3", "t4"]
        assert [t.id for t in crates[CrateTag.CRATE_A]] == ["t5", "t7"]
        assert [t.id for t in crates[CrateTag.CRATE_B]] == ["t6"]

    def test_excludes_archived_organization_and_terminal(self):
        tracks = [
            _track("live"),
            _track("gone", archived=True),
            _track("sold", crate_tag=CrateTag.PITCHED),
            _track("inked", contract_signed=True),
            Track(id="label", organization_id="label-1", created_at=NOW),
        ]
        crates = active_crates(tracks)
        placed = [t.id for bucket in crates.values() for t in bucket]
        assert placed == ["live"]


class TestCrateService:
    def test_crates_for_sorts_newest_first(self):
        store = InMemoryRecordStore(
            tracks=[
                _track("old", created_at=NOW - timedelta(days=2)),
                _track("new", created_at=NOW),
                _track("mid", created_at=NOW - timedelta(days=1)),
                _track("bob", personal_owner_id="bob"),
            ]
        )
        crates = CrateService(store).crates_for("alice")
        assert [t.id for t in crates[CrateTag.SUBMISSIONS]] == ["new", "mid", "old"]

    def test_move_submission_to_crate_a(self):
        store = InMemoryRecordStore(tracks=[_track()])
        moved = CrateService(store).move_to_crate("trk-1", "crate_a", "alice")
        assert moved.crate_tag == CrateTag.CRATE_A
        assert classify(store.get_track("trk-1")) == CrateTag.CRATE_A

    def test_move_submission_to_crate_b(self):
        store = InMemoryRecordStore(tracks=[_track(crate_tag=CrateTag.SUBMISSIONS)])
        moved = CrateService(store).move_to_crate("trk-1", CrateTag.CRATE_B, "alice")
        assert classify(moved) == CrateTag.CRATE_B

    def test_network_track_cannot_move(self):
        store = InMemoryRecordStore(tracks=[_track(crate_tag=CrateTag.NETWORK, is_peer_to_peer=True)])
        with pytest.raises(InvalidCrateTransition, match="network"):
            CrateService(store).move_to_crate("trk-1", CrateTag.CRATE_A, "alice")
        assert store.get_track("trk-1").crate_tag == CrateTag.NETWORK

    def test_crate_a_track_cannot_move_again(self):
        store = InMemoryRecordStore(tracks=[_track(crate_tag=CrateTag.CRATE_A)])
        with pytest.raises(InvalidCrateTransition):
            CrateService(store).move_to_crate("trk-1", CrateTag.CRATE_B, "alice")

    def test_only_crate_a_or_b_are_targets(self):
        store = InMemoryRecordStore(tracks=[_track()])
        service = CrateService(store)
        for target in (CrateTag.NETWORK, CrateTag.SUBMISSIONS, CrateTag.PITCHED):
            with pytest.raises(InvalidCrateTransition):
                service.move_to_crate("trk-1", target, "alice")

    def test_terminal_track_cannot_move(self):
        store = InMemoryRecordStore(tracks=[_track(crate_tag=CrateTag.PITCHED)])
        with pytest.raises(InvalidCrateTransition):
            CrateService(store).move_to_crate("trk-1", CrateTag.CRATE_A, "alice")

    def test_archived_track_cannot_move(self):
        store = InMemoryRecordStore(tracks=[_track(archived=True)])
        with pytest.raises(InvalidCrateTransition, match="archived"):
            CrateService(store).move_to_crate("trk-1", CrateTag.CRATE_A, "alice")

    def test_non_owner_cannot_move(self):
        store = InMemoryRecordStore(tracks=[_track()])
        with pytest.raises(OwnershipPrecondition):
            CrateService(store).move_to_crate("trk-1", CrateTag.CRATE_A, "bob")

    def test_missing_track(self):
        with pytest.raises(RecordNotFound):
            CrateService(InMemoryRecordStore()).move_to_crate("nope", CrateTag.CRATE_A, "alice")

    def test_unknown_crate_name(self):
        with pytest.raises(ValueError):
            CrateService(InMemoryRecordStore()).move_to_crate("trk-1", "crate_z", "alice")
