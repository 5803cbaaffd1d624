"""Peer connections.

Two people can exchange tracks only once one has requested a connection
and the other accepted it. Lifecycle:

    pending -> accepted
    pending -> rejected
    any     -> blocked (by either side)
    blocked -> removed (unblock deletes the record)

At most one open (pending or accepted) connection exists per pair.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from trackflow.errors import InvalidConnection, RecordNotFound
from trackflow.models import Connection, ConnectionStatus
from trackflow.store.base import RecordStore

logger = logging.getLogger(__name__)

_OPEN = frozenset({ConnectionStatus.PENDING, ConnectionStatus.ACCEPTED})


class ConnectionManager:
    """Request/accept lifecycle over the record store."""

    def __init__(
        self,
        store: RecordStore,
        _clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = _clock or (lambda: datetime.now(tz=UTC))

    def request(self, requester_id: str, recipient_id: str) -> Connection:
        if requester_id == recipient_id:
            raise InvalidConnection("Cannot connect a person to themselves")

        existing = self.between(requester_id, recipient_id)
        if existing is not None:
            if existing.status == ConnectionStatus.BLOCKED:
                raise InvalidConnection(
                    f"Connection between {requester_id} and {recipient_id} is blocked"
                )
            if existing.status in _OPEN:
                raise InvalidConnection(
                    f"Connection between {requester_id} and {recipient_id} "
                    f"already {existing.status}"
                )

        connection = Connection(
            id=f"con-{uuid.uuid4().hex[:12]}",
            requester_id=requester_id,
            recipient_id=recipient_id,
            status=ConnectionStatus.PENDING,
            created_at=self._clock(),
        )
        self._store.insert_connection(connection)
        logger.info("Connection requested: %s -> %s", requester_id, recipient_id)
        return connection

    def accept(self, connection_id: str, acting_person_id: str) -> Connection:
        """Accept a pending request. Only the recipient can accept."""
        return self._respond(connection_id, acting_person_id, ConnectionStatus.ACCEPTED)

    def reject(self, connection_id: str, acting_person_id: str) -> Connection:
        return self._respond(connection_id, acting_person_id, ConnectionStatus.REJECTED)

    def block(self, connection_id: str, acting_person_id: str) -> Connection:
        """Block the other side. Either party can block at any time."""
        connection = self._get(connection_id)
        if acting_person_id not in (connection.requester_id, connection.recipient_id):
            raise InvalidConnection(
                f"{acting_person_id} is not part of connection {connection_id}"
            )
        updated = self._store.update_connection(
            connection_id, status=ConnectionStatus.BLOCKED, responded_at=self._clock()
        )
        logger.info("Connection %s blocked by %s", connection_id, acting_person_id)
        return updated

    def unblock(self, connection_id: str, acting_person_id: str) -> None:
        connection = self._get(connection_id)
        if connection.status != ConnectionStatus.BLOCKED:
            raise InvalidConnection(f"Connection {connection_id} is not blocked")
        if acting_person_id not in (connection.requester_id, connection.recipient_id):
            raise InvalidConnection(
                f"{acting_person_id} is not part of connection {connection_id}"
            )
        self._store.delete_connection(connection_id)
        logger.info("Connection %s removed by %s", connection_id, acting_person_id)

    def between(self, person_a: str, person_b: str) -> Connection | None:
        """The most recent connection record for a pair, if any."""
        matches = [
            c for c in self._store.list_connections(person_id=person_a)
            if c.involves(person_a, person_b)
        ]
        if not matches:
            return None
        return max(matches, key=lambda c: c.created_at)

    def are_connected(self, person_a: str, person_b: str) -> bool:
        """True only for an accepted connection."""
        return any(
            c.involves(person_a, person_b)
            for c in self._store.list_connections(
                person_id=person_a, status=ConnectionStatus.ACCEPTED
            )
        )

    def list_for(
        self,
        person_id: str,
        status: ConnectionStatus | None = None,
    ) -> list[Connection]:
        connections = self._store.list_connections(person_id=person_id, status=status)
        connections.sort(key=lambda c: c.created_at, reverse=True)
        return connections

    def _respond(
        self,
        connection_id: str,
        acting_person_id: str,
        status: ConnectionStatus,
    ) -> Connection:
        connection = self._get(connection_id)
        if connection.recipient_id != acting_person_id:
            raise InvalidConnection(
                f"Only {connection.recipient_id} can respond to connection {connection_id}"
            )
        if connection.status != ConnectionStatus.PENDING:
            raise InvalidConnection(
                f"Connection {connection_id} is {connection.status}, not pending"
            )
        updated = self._store.update_connection(
            connection_id, status=status, responded_at=self._clock()
        )
        logger.info("Connection %s %s by %s", connection_id, status, acting_person_id)
        return updated

    def _get(self, connection_id: str) -> Connection:
        connection = self._store.get_connection(connection_id)
        if connection is None:
            raise RecordNotFound(f"Connection not found: {connection_id}")
        return connection
