"""Tenancy Router — ownership moves between workspaces.

A track is owned either by one person (personal workspace, sorted into
crates) or by one organization (label pipeline, no crates). The router
governs the moves between them:

- submit_track: intake into a personal workspace or a label pipeline
- promote_to_label: person -> organization, one way (no inverse exists)
- transfer_to_peer: person -> connected person
- pitch / mark_signed: retire a personal track into the terminal views

Every move that adds to a scope's count checks that scope's capacity
before writing. Capacity checks are not atomic with the writes; see
``trackflow.capacity.guard``.

``promote_to_label`` and ``transfer_to_peer`` must not be retried blindly
after an ambiguous failure: re-read the track's owner first. A retry on a
track that already moved fails with ``OwnershipPrecondition``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, date, datetime

from trackflow.capacity.guard import CapacityGuard
from trackflow.errors import ConnectionRequired, OwnershipPrecondition
from trackflow.models import (
    CrateTag,
    OrganizationScope,
    PersonalScope,
    Phase,
    ResourceKind,
    SourceKind,
    Track,
)
from trackflow.network.connections import ConnectionManager
from trackflow.notify.sink import NotificationSink, emit_track_event
from trackflow.store.base import RecordStore, require_track

logger = logging.getLogger(__name__)


class TenancyRouter:
    """Applies ownership moves with check-then-write ordering."""

    def __init__(
        self,
        store: RecordStore,
        guard: CapacityGuard,
        connections: ConnectionManager | None = None,
        sinks: list[NotificationSink] | None = None,
        _clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._guard = guard
        self._connections = connections or ConnectionManager(store, _clock=_clock)
        self._sinks: list[NotificationSink] = sinks or []
        self._clock = _clock or (lambda: datetime.now(tz=UTC))

    # --- Intake ---

    def submit_track(
        self,
        scope: PersonalScope | OrganizationScope,
        *,
        title: str,
        artist_name: str = "",
        source_kind: SourceKind = SourceKind.MANUAL,
        target_release_date: date | None = None,
        track_id: str | None = None,
    ) -> Track:
        """Create a new track in *scope*'s inbox.

        Needs track capacity, plus contact capacity when the artist is new
        to the scope.
        """
        self._guard.require(scope, ResourceKind.TRACK)
        if artist_name.strip() and not self._guard.has_contact(scope, artist_name):
            self._guard.require(scope, ResourceKind.CONTACT)

        now = self._clock()
        personal = isinstance(scope, PersonalScope)
        track = Track(
            id=track_id or f"trk-{uuid.uuid4().hex[:12]}",
            title=title,
            artist_name=artist_name,
            personal_owner_id=scope.person_id if personal else None,
            organization_id=None if personal else scope.organization_id,
            phase=Phase.INBOX,
            crate_tag=CrateTag.SUBMISSIONS if personal else None,
            source_kind=source_kind,
            target_release_date=target_release_date,
            created_at=now,
            phase_entered_at={Phase.INBOX: now},
        )
        self._store.insert_track(track)
        logger.info("Submitted track %s into %s via %s", track.id, scope, source_kind)
        emit_track_event(
            self._sinks, "track_submitted", track, {"source_kind": str(source_kind)}, now
        )
        return track

    # --- Ownership moves ---

    def promote_to_label(
        self,
        track_id: str,
        organization_id: str,
        acting_person_id: str,
    ) -> Track:
        """Hand a personal track over to a label's pipeline.

        Stamps the acting person as sender (provenance for analytics) and
        marks the track as person-routed. One way: the engine offers no
        operation that moves a label track back to a person.
        """
        track = require_track(self._store, track_id)
        if track.organization_id is not None:
            raise OwnershipPrecondition(
                f"Track {track_id} is already owned by organization {track.organization_id}"
            )
        if track.personal_owner_id != acting_person_id:
            raise OwnershipPrecondition(
                f"Track {track_id} is not in {acting_person_id}'s personal workspace"
            )

        self._guard.require(OrganizationScope(organization_id=organization_id), ResourceKind.TRACK)

        updated = self._store.update_track(
            track_id,
            organization_id=organization_id,
            personal_owner_id=None,
            sender_id=acting_person_id,
            is_peer_to_peer=True,
            crate_tag=None,
        )
        logger.info(
            "Promoted track %s from %s to organization %s",
            track_id, acting_person_id, organization_id,
        )
        emit_track_event(
            self._sinks,
            "track_promoted",
            updated,
            {"from_person_id": acting_person_id, "organization_id": organization_id},
            self._clock(),
        )
        return updated

    def transfer_to_peer(
        self,
        track_id: str,
        from_person_id: str,
        to_person_id: str,
    ) -> Track:
        """Send a personal track to a connected peer's Network crate.

        Only the receiver's capacity is checked; the sender's count drops.
        """
        if not self._connections.are_connected(from_person_id, to_person_id):
            raise ConnectionRequired(
                f"{from_person_id} and {to_person_id} have no accepted connection"
            )

        track = require_track(self._store, track_id)
        if track.personal_owner_id != from_person_id:
            raise OwnershipPrecondition(
                f"Track {track_id} is not in {from_person_id}'s personal workspace"
            )

        self._guard.require(PersonalScope(person_id=to_person_id), ResourceKind.TRACK)

        updated = self._store.update_track(
            track_id,
            personal_owner_id=to_person_id,
            crate_tag=CrateTag.NETWORK,
            is_peer_to_peer=True,
            sender_id=from_person_id,
            source_kind=SourceKind.PEER_TRANSFER,
        )
        logger.info("Transferred track %s from %s to %s", track_id, from_person_id, to_person_id)
        emit_track_event(
            self._sinks,
            "track_transferred",
            updated,
            {"from_person_id": from_person_id, "to_person_id": to_person_id},
            self._clock(),
        )
        return updated

    # --- Terminal crates ---

    def pitch(self, track_id: str) -> Track:
        """Mark a personal track as pitched. Already pitched is a no-op."""
        track = require_track(self._store, track_id)
        self._require_personal(track)
        if track.crate_tag == CrateTag.PITCHED:
            return track

        updated = self._store.update_track(
            track_id, crate_tag=CrateTag.PITCHED, pitched_at=self._clock()
        )
        logger.info("Pitched track %s", track_id)
        emit_track_event(self._sinks, "track_pitched", updated, {}, self._clock())
        return updated

    def mark_signed(self, track_id: str) -> Track:
        """Move a personal track into the Signed view. Idempotent."""
        track = require_track(self._store, track_id)
        self._require_personal(track)
        if track.crate_tag == CrateTag.SIGNED and track.contract_signed:
            return track

        updated = self._store.update_track(
            track_id, crate_tag=CrateTag.SIGNED, contract_signed=True
        )
        logger.info("Signed track %s", track_id)
        emit_track_event(self._sinks, "track_signed", updated, {}, self._clock())
        return updated

    # --- Helpers ---

    @staticmethod
    def _require_personal(track: Track) -> None:
        if not track.is_personal:
            raise OwnershipPrecondition(
                f"Track {track.id} is owned by organization {track.organization_id}; "
                "crates only apply to personal tracks"
            )
