"""JSON-lines record store.

File-backed implementation of ``RecordStore``: one JSONL file per record
type inside a data directory. Inserts append a line; updates and deletes
rewrite the file. Every operation re-reads from disk, so several processes
can share a data directory with last-writer-wins semantics.
Thread-safe via a lock on all file access.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

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

RecordT = TypeVar("RecordT", bound=BaseModel)

TRACKS_FILE = "tracks.jsonl"
MEMBERSHIPS_FILE = "memberships.jsonl"
CONNECTIONS_FILE = "connections.jsonl"
LISTENS_FILE = "listens.jsonl"


class JsonlRecordStore:
    """JSONL-backed record store rooted at *data_dir*."""

    def __init__(self, data_dir: str | Path) -> None:
        self._dir = Path(data_dir)
        self._lock = threading.Lock()

    @property
    def data_dir(self) -> Path:
        return self._dir

    # --- Tracks ---

    def get_track(self, track_id: str) -> Track | None:
        with self._lock:
            for track in self._read_all(TRACKS_FILE, Track):
                if track.id == track_id:
                    return track
        return None

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
                t
                for t in self._read_all(TRACKS_FILE, Track)
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
            if any(t.id == track.id for t in self._read_all(TRACKS_FILE, Track)):
                raise StoreError(f"Track already exists: {track.id}")
            self._append(TRACKS_FILE, track)
        return track

    def update_track(self, track_id: str, **fields: Any) -> Track:
        with self._lock:
            tracks = self._read_all(TRACKS_FILE, Track)
            for i, track in enumerate(tracks):
                if track.id == track_id:
                    tracks[i] = apply_update(track, fields)
                    self._write_all(TRACKS_FILE, tracks)
                    return tracks[i]
        raise RecordNotFound(f"Track not found: {track_id}")

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
                m
                for m in self._read_all(MEMBERSHIPS_FILE, Membership)
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
            existing = self._read_all(MEMBERSHIPS_FILE, Membership)
            if any(m.id == membership.id for m in existing):
                raise StoreError(f"Membership already exists: {membership.id}")
            self._append(MEMBERSHIPS_FILE, membership)
        return membership

    # --- Connections ---

    def get_connection(self, connection_id: str) -> Connection | None:
        with self._lock:
            for conn in self._read_all(CONNECTIONS_FILE, Connection):
                if conn.id == connection_id:
                    return conn
        return None

    def list_connections(
        self,
        *,
        person_id: str | None = None,
        status: ConnectionStatus | None = None,
    ) -> list[Connection]:
        with self._lock:
            return [
                c
                for c in self._read_all(CONNECTIONS_FILE, Connection)
                if connection_matches(c, person_id=person_id, status=status)
            ]

    def insert_connection(self, connection: Connection) -> Connection:
        with self._lock:
            existing = self._read_all(CONNECTIONS_FILE, Connection)
            if any(c.id == connection.id for c in existing):
                raise StoreError(f"Connection already exists: {connection.id}")
            self._append(CONNECTIONS_FILE, connection)
        return connection

    def update_connection(self, connection_id: str, **fields: Any) -> Connection:
        with self._lock:
            connections = self._read_all(CONNECTIONS_FILE, Connection)
            for i, conn in enumerate(connections):
                if conn.id == connection_id:
                    connections[i] = Connection.model_validate(
                        {**conn.model_dump(), **fields}
                    )
                    self._write_all(CONNECTIONS_FILE, connections)
                    return connections[i]
        raise RecordNotFound(f"Connection not found: {connection_id}")

    def delete_connection(self, connection_id: str) -> None:
        with self._lock:
            connections = self._read_all(CONNECTIONS_FILE, Connection)
            remaining = [c for c in connections if c.id != connection_id]
            if len(remaining) == len(connections):
                raise RecordNotFound(f"Connection not found: {connection_id}")
            self._write_all(CONNECTIONS_FILE, remaining)

    # --- Listen logs ---

    def insert_listen(self, listen: ListenLog) -> ListenLog:
        with self._lock:
            self._append(LISTENS_FILE, listen)
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
                entry
                for entry in self._read_all(LISTENS_FILE, ListenLog)
                if listen_matches(
                    entry,
                    organization_id=organization_id,
                    person_id=person_id,
                    since=since,
                )
            ]

    # --- File access ---

    def _read_all(self, filename: str, model: type[RecordT]) -> list[RecordT]:
        """Read every record of one type. A missing file is an empty table."""
        path = self._dir / filename
        if not path.exists():
            return []
        records: list[RecordT] = []
        with path.open("r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    records.append(model.model_validate(json.loads(stripped)))
                except (json.JSONDecodeError, ValidationError) as e:
                    raise StoreError(f"Corrupt record at {path}:{lineno}: {e}") from e
        return records

    def _append(self, filename: str, record: BaseModel) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        line = json.dumps(record.model_dump(mode="json"), sort_keys=True)
        with (self._dir / filename).open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    def _write_all(self, filename: str, records: list[Any]) -> None:
        """Rewrite a whole table (used for updates and deletes)."""
        self._dir.mkdir(parents=True, exist_ok=True)
        with (self._dir / filename).open("w", encoding="utf-8") as f:
            for record in records:
                line = json.dumps(record.model_dump(mode="json"), sort_keys=True)
                f.write(line + "\n")
