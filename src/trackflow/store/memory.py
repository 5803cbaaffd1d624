"""In-memory record store.

Dict-backed implementation of ``RecordStore`` for tests and embedding.
Thread-safe via a single lock on all state, like the other stores.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import datetime
from typing import Any

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
from trackflow.store.base import (
    StoreError,
    apply_update,
    connection_matches,
    listen_matches,
    membership_matches,
    track_matches,
)


class InMemoryRecordStore:
    """Keeps every record in process memory."""

    def __init__(
        self,
        tracks: Iterable[Track] = (),
        memberships: Iterable[Membership] = (),
        connections: Iterable[Connection] = (),
        listens: Iterable[ListenLog] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._tracks: dict[str, Track] = {t.id: t for t in tracks}
        self._memberships: dict[str, Membership] = {m.id: m for m in memberships}
        self._connections: dict[str, Connection] = {c.id: c for c in connections}
        self._listens: list[ListenLog] = list(listens)

    # --- Tracks ---

    def get_track(self, track_id: str) -> Track | None:
        with self._lock:
            track = self._tracks.get(track_id)
            return track.model_copy(deep=True) if track is not None else None

    def list_tracks(
        self,
        *,
        personal_owner_id: str | None = None,
        organization_id: str | None = None,
        phases: Iterable[Phase] | None = None,
        archived: bool | None = None,
        created_since: datetime | None = None,
    ) -> list[Track]:
        phase_set = set(phases) if phases is not None else None
        with self._lock:
            return [
                t.model_copy(deep=True)
                for t in self._tracks.values()
                if track_matches(
                    t,
                    personal_owner_id=personal_owner_id,
                    organization_id=organization_id,
                    phases=phase_set,
                    archived=archived,
                    created_since=created_since,
                )
            ]

    def insert_track(self, track: Track) -> Track:
        with self._lock:
            if track.id in self._tracks:
                raise StoreError(f"Track already exists: {track.id}")
            self._tracks[track.id] = track.model_copy(deep=True)
        return track

    def update_track(self, track_id: str, **fields: Any) -> Track:
        with self._lock:
            current = self._tracks.get(track_id)
            if current is None:
                raise RecordNotFound(f"Track not found: {track_id}")
            updated = apply_update(current, fields)
            self._tracks[track_id] = updated
            return updated.model_copy(deep=True)

    # --- Memberships ---

    def list_memberships(
        self,
        *,
        person_id: str | None = None,
        organization_id: str | None = None,
        role: MembershipRole | None = None,
        active: bool | None = None,
    ) -> list[Membership]:
        with self._lock:
            return [
                m.model_copy()
                for m in self._memberships.values()
                if membership_matches(
                    m,
                    person_id=person_id,
                    organization_id=organization_id,
                    role=role,
                    active=active,
                )
            ]

    def insert_membership(self, membership: Membership) -> Membership:
        with self._lock:
            if membership.id in self._memberships:
                raise StoreError(f"Membership already exists: {membership.id}")
            self._memberships[membership.id] = membership.model_copy()
        return membership

    # --- Connections ---

    def get_connection(self, connection_id: str) -> Connection | None:
        with self._lock:
            conn = self._connections.get(connection_id)
            return conn.model_copy() if conn is not None else None

    def list_connections(
        self,
        *,
        person_id: str | None = None,
        status: ConnectionStatus | None = None,
    ) -> list[Connection]:
        with self._lock:
            return [
                c.model_copy()
                for c in self._connections.values()
                if connection_matches(c, person_id=person_id, status=status)
            ]

    def insert_connection(self, connection: Connection) -> Connection:
        with self._lock:
            if connection.id in self._connections:
                raise StoreError(f"Connection already exists: {connection.id}")
            self._connections[connection.id] = connection.model_copy()
        return connection

    def update_connection(self, connection_id: str, **fields: Any) -> Connection:
        with self._lock:
            current = self._connections.get(connection_id)
            if current is None:
                raise RecordNotFound(f"Connection not found: {connection_id}")
            updated = Connection.model_validate({**current.model_dump(), **fields})
            self._connections[connection_id] = updated
            return updated.model_copy()

    def delete_connection(self, connection_id: str) -> None:
        with self._lock:
            if self._connections.pop(connection_id, None) is None:
                raise RecordNotFound(f"Connection not found: {connection_id}")

    # --- Listen logs ---

    def insert_listen(self, listen: ListenLog) -> ListenLog:
        with self._lock:
            self._listens.append(listen.model_copy())
        return listen

    def list_listens(
        self,
        *,
        organization_id: str,
        person_id: str | None = None,
        since: datetime | None = None,
    ) -> list[ListenLog]:
        with self._lock:
            return [
                entry.model_copy()
                for entry in self._listens
                if listen_matches(
                    entry,
                    organization_id=organization_id,
                    person_id=person_id,
                    since=since,
                )
            ]
