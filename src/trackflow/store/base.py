"""Record store protocol.

The engine never owns persistence. It reads and mutates Track, Membership,
Connection and ListenLog records through this protocol; production wires in
a relational datastore, tests and the CLI use the in-memory or JSON-lines
implementations.

Stores provide last-writer-wins field updates and no check-and-increment
primitive. The engine relies on nothing stronger.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from trackflow.errors import RecordNotFound
from trackflow.models import (
    Connection,
    ConnectionStatus,
    ListenLog,
    Membership,
    MembershipRole,
    Phase,
    Track,
)


class StoreError(Exception):
    """Raised when a store cannot read or write its records."""


@runtime_checkable
class RecordStore(Protocol):
    """Protocol for record storage backends."""

    def get_track(self, track_id: str) -> Track | None: ...

    def list_tracks(
        self,
        *,
        personal_owner_id: str | None = None,
        organization_id: str | None = None,
        phases: Iterable[Phase] | None = None,
        archived: bool | None = None,
        created_since: datetime | None = None,
    ) -> list[Track]: ...

    def insert_track(self, track: Track) -> Track: ...

    def update_track(self, track_id: str, **fields: Any) -> Track: ...

    def list_memberships(
        self,
        *,
        person_id: str | None = None,
        organization_id: str | None = None,
        role: MembershipRole | None = None,
        active: bool | None = None,
    ) -> list[Membership]: ...

    def insert_membership(self, membership: Membership) -> Membership: ...

    def get_connection(self, connection_id: str) -> Connection | None: ...

    def list_connections(
        self,
        *,
        person_id: str | None = None,
        status: ConnectionStatus | None = None,
    ) -> list[Connection]: ...

    def insert_connection(self, connection: Connection) -> Connection: ...

    def update_connection(self, connection_id: str, **fields: Any) -> Connection: ...

    def delete_connection(self, connection_id: str) -> None: ...

    def insert_listen(self, listen: ListenLog) -> ListenLog: ...

    def list_listens(
        self,
        *,
        organization_id: str,
        person_id: str | None = None,
        since: datetime | None = None,
    ) -> list[ListenLog]: ...


# --- Shared predicates ---


def track_matches(
    track: Track,
    *,
    personal_owner_id: str | None = None,
    organization_id: str | None = None,
    phases: Iterable[Phase] | None = None,
    archived: bool | None = None,
    created_since: datetime | None = None,
) -> bool:
    """AND of every given filter; ``None`` filters are ignored."""
    if personal_owner_id is not None and track.personal_owner_id != personal_owner_id:
        return False
    if organization_id is not None and track.organization_id != organization_id:
        return False
    if phases is not None and track.phase not in set(phases):
        return False
    if archived is not None and track.archived != archived:
        return False
    return not (created_since is not None and track.created_at < created_since)


def membership_matches(
    membership: Membership,
    *,
    person_id: str | None = None,
    organization_id: str | None = None,
    role: MembershipRole | None = None,
    active: bool | None = None,
) -> bool:
    if person_id is not None and membership.person_id != person_id:
        return False
    if organization_id is not None and membership.organization_id != organization_id:
        return False
    if role is not None and membership.role != role:
        return False
    return not (active is not None and membership.active != active)


def connection_matches(
    connection: Connection,
    *,
    person_id: str | None = None,
    status: ConnectionStatus | None = None,
) -> bool:
    if person_id is not None and person_id not in (
        connection.requester_id,
        connection.recipient_id,
    ):
        return False
    return not (status is not None and connection.status != status)


def listen_matches(
    listen: ListenLog,
    *,
    organization_id: str,
    person_id: str | None = None,
    since: datetime | None = None,
) -> bool:
    if listen.organization_id != organization_id:
        return False
    if person_id is not None and listen.person_id != person_id:
        return False
    return not (since is not None and listen.listened_at < since)


def apply_update(track: Track, fields: dict[str, Any]) -> Track:
    """Return a re-validated copy of *track* with *fields* applied.

    Re-validation keeps the ownership invariant enforced on every write.
    """
    data = track.model_dump()
    data.update(fields)
    return Track.model_validate(data)


def require_track(store: RecordStore, track_id: str) -> Track:
    """Fetch a track or raise ``RecordNotFound``."""
    track = store.get_track(track_id)
    if track is None:
        raise RecordNotFound(f"Track not found: {track_id}")
    return track
