"""Phase State Machine.

Phases run forward: inbox -> second_listen -> team_review -> contracting
-> upcoming -> vault. Archival is reachable from any phase and is terminal.

The machine validates requested moves (never backward, never out of the
archive), stamps phase-entry timestamps for downstream alerting, and emits
events to the notification/calendar sinks. What triggers a move (votes,
staff decisions) lives outside the engine.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from trackflow.capacity.guard import CapacityGuard
from trackflow.errors import InvalidPhaseTransition
from trackflow.models import PHASE_ORDER, Phase, ResourceKind, Track
from trackflow.notify.sink import NotificationSink, emit_track_event
from trackflow.store.base import RecordStore, require_track

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "No reason provided"
NEW_ARRIVAL_WINDOW = timedelta(hours=24)


class PhaseMachine:
    """Validates and applies phase transitions against a record store."""

    def __init__(
        self,
        store: RecordStore,
        guard: CapacityGuard | None = None,
        sinks: list[NotificationSink] | None = None,
        _clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._guard = guard
        self._sinks: list[NotificationSink] = sinks or []
        self._clock = _clock or (lambda: datetime.now(tz=UTC))

    def transition(self, track_id: str, target: Phase | str) -> Track:
        """Move a track to *target*.

        Forward jumps are allowed, the current phase is a no-op, anything
        with a lower ordinal raises ``InvalidPhaseTransition``. Entering the
        vault needs vault capacity in the track's scope; entering upcoming
        copies the target release date into the release date.
        """
        target = Phase(target)
        track = require_track(self._store, track_id)

        if track.archived:
            raise InvalidPhaseTransition(f"Track {track_id} is archived")
        if target == track.phase:
            return track
        if target.ordinal < track.phase.ordinal:
            raise InvalidPhaseTransition(
                f"Track {track_id} cannot move back from {track.phase} to {target}"
            )
        return self._apply(track, target)

    def advance(self, track_id: str) -> Track:
        """Move a track to the next phase, enforcing the pipeline gates.

        Gates:
        - second_listen needs an energy rating before it can move on
        - contracting needs a signed contract; the target release date
          becomes the release date on the way to upcoming
        - vault is the last phase
        """
        track = require_track(self._store, track_id)
        if track.archived:
            raise InvalidPhaseTransition(f"Track {track_id} is archived")

        index = PHASE_ORDER.index(track.phase)
        if index == len(PHASE_ORDER) - 1:
            raise InvalidPhaseTransition(f"Track {track_id} is already at the final stage")

        if track.phase == Phase.SECOND_LISTEN and track.energy <= 0:
            raise InvalidPhaseTransition(
                f"Track {track_id} needs an energy level before leaving second listen"
            )
        if track.phase == Phase.CONTRACTING and not track.contract_signed:
            raise InvalidPhaseTransition(
                f"Track {track_id} needs a signed contract before scheduling release"
            )

        return self._apply(track, PHASE_ORDER[index + 1])

    def archive(self, track_id: str, reason: str | None = None) -> Track:
        """Archive a track from any phase. Archiving twice is a no-op."""
        track = require_track(self._store, track_id)
        if track.archived:
            return track

        updated = self._store.update_track(
            track_id,
            archived=True,
            rejection_reason=reason or DEFAULT_REJECTION_REASON,
        )
        logger.info("Archived track %s from %s", track_id, track.phase)
        emit_track_event(
            self._sinks,
            "track_archived",
            updated,
            {"phase": str(track.phase), "reason": updated.rejection_reason},
            self._clock(),
        )
        return updated

    def _apply(self, track: Track, target: Phase) -> Track:
        if target == Phase.VAULT and self._guard is not None:
            self._guard.require(track.owner_scope, ResourceKind.VAULT_TRACK)

        now = self._clock()
        stamps = dict(track.phase_entered_at)
        stamps[target] = now
        fields: dict[str, object] = {"phase": target, "phase_entered_at": stamps}
        # Every entry into upcoming schedules the target date.
        if target == Phase.UPCOMING and track.target_release_date is not None:
            fields["release_date"] = track.target_release_date
        updated = self._store.update_track(track.id, **fields)
        logger.info("Track %s moved %s -> %s", track.id, track.phase, target)

        emit_track_event(
            self._sinks,
            "phase_changed",
            updated,
            {"from": str(track.phase), "to": str(target)},
            now,
        )
        if target == Phase.UPCOMING and updated.release_date is not None:
            emit_track_event(
                self._sinks,
                "release_scheduled",
                updated,
                {"release_date": updated.release_date.isoformat(), "title": updated.title},
                now,
            )
        return updated


def count_new_in_second_listen(tracks: Iterable[Track], now: datetime) -> int:
    """Live tracks that entered second listen within the last 24 hours."""
    cutoff = now - NEW_ARRIVAL_WINDOW
    count = 0
    for track in tracks:
        if track.archived:
            continue
        entered = track.moved_to_second_listen
        if entered is not None and entered >= cutoff:
            count += 1
    return count


def phase_counts(tracks: Iterable[Track]) -> dict[Phase, int]:
    """Non-archived tracks per phase; every phase is present."""
    counts = Counter(t.phase for t in tracks if not t.archived)
    return {phase: counts.get(phase, 0) for phase in PHASE_ORDER}
