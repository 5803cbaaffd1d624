"""Crate Classifier.

Assigns every personally owned track to exactly one display crate.
Rules, first match wins:

1. pitched/signed tag or a signed contract -> terminal (no display crate)
2. public-form submission not sent by a peer -> submissions
3. network tag or arrived from a peer -> network
4. crate_a tag -> crate_a
5. crate_b tag -> crate_b
6. anything else -> submissions
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from trackflow.errors import InvalidCrateTransition, OwnershipPrecondition
from trackflow.models import DISPLAY_CRATES, CrateTag, SourceKind, Track
from trackflow.store.base import RecordStore, require_track

logger = logging.getLogger(__name__)

MOVABLE_TARGETS = frozenset({CrateTag.CRATE_A, CrateTag.CRATE_B})


def is_terminal(track: Track) -> bool:
    """Pitched or signed: visible only in the dedicated views."""
    return track.is_retired


def classify(track: Track) -> CrateTag:
    """Return the crate *track* is displayed in.

    Terminal tracks return ``signed`` (tag or contract) or ``pitched``.
    """
    if is_terminal(track):
        if track.crate_tag == CrateTag.SIGNED or track.contract_signed:
            return CrateTag.SIGNED
        return CrateTag.PITCHED
    if track.source_kind == SourceKind.PUBLIC_FORM and not track.is_peer_to_peer:
        return CrateTag.SUBMISSIONS
    if track.crate_tag == CrateTag.NETWORK or track.is_peer_to_peer:
        return CrateTag.NETWORK
    if track.crate_tag == CrateTag.CRATE_A:
        return CrateTag.CRATE_A
    if track.crate_tag == CrateTag.CRATE_B:
        return CrateTag.CRATE_B
    return CrateTag.SUBMISSIONS


def active_crates(tracks: Iterable[Track]) -> dict[CrateTag, list[Track]]:
    """Partition live personal tracks into the four display crates.

    Archived, organization-owned and terminal tracks are left out. All four
    keys are always present; input order is kept within each crate.
    """
    crates: dict[CrateTag, list[Track]] = {crate: [] for crate in DISPLAY_CRATES}
    for track in tracks:
        if track.archived or not track.is_personal or is_terminal(track):
            continue
        crates[classify(track)].append(track)
    return crates


class CrateService:
    """Crate moves inside a personal workspace."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def crates_for(self, person_id: str) -> dict[CrateTag, list[Track]]:
        tracks = self._store.list_tracks(personal_owner_id=person_id, archived=False)
        tracks.sort(key=lambda t: t.created_at, reverse=True)
        return active_crates(tracks)

    def move_to_crate(
        self,
        track_id: str,
        crate: CrateTag | str,
        acting_person_id: str,
    ) -> Track:
        """Move a track from Submissions into Crate A or Crate B.

        Network-origin tracks are fixed in their crate; terminal tracks are
        out of the display crates entirely.
        """
        crate = CrateTag(crate)
        if crate not in MOVABLE_TARGETS:
            raise InvalidCrateTransition(
                f"Tracks can only be moved into crate_a or crate_b, not {crate}"
            )

        track = require_track(self._store, track_id)
        if track.personal_owner_id != acting_person_id:
            raise OwnershipPrecondition(
                f"Track {track_id} is not in {acting_person_id}'s personal workspace"
            )
        if track.archived:
            raise InvalidCrateTransition(f"Track {track_id} is archived")

        current = classify(track)
        if current != CrateTag.SUBMISSIONS:
            raise InvalidCrateTransition(
                f"Track {track_id} is in {current}; only submissions can move to {crate}"
            )

        logger.info("Moving track %s from %s to %s", track_id, current, crate)
        return self._store.update_track(track_id, crate_tag=crate)
