"""Label ownership and staff memberships.

Creating a label counts against the founder's ``label_ownership`` limit.
Joining a label as staff counts against the person's ``staff_membership``
limit and the label's ``staff_seat`` limit; both are checked before the
membership is written.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from trackflow.capacity.guard import CapacityGuard
from trackflow.errors import OwnershipPrecondition
from trackflow.models import (
    Membership,
    MembershipRole,
    OrganizationScope,
    PersonalScope,
    ResourceKind,
)
from trackflow.store.base import RecordStore

logger = logging.getLogger(__name__)


class MembershipService:
    def __init__(
        self,
        store: RecordStore,
        guard: CapacityGuard,
        _clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._guard = guard
        self._clock = _clock or (lambda: datetime.now(tz=UTC))

    def create_label(self, person_id: str, organization_id: str) -> Membership:
        """Register *person_id* as the Owner of a new label."""
        if self._store.list_memberships(
            organization_id=organization_id, role=MembershipRole.OWNER, active=True
        ):
            raise OwnershipPrecondition(f"Organization {organization_id} already has an owner")

        self._guard.require(PersonalScope(person_id=person_id), ResourceKind.LABEL_OWNERSHIP)
        membership = self._insert(person_id, organization_id, MembershipRole.OWNER)
        logger.info("Created label %s owned by %s", organization_id, person_id)
        return membership

    def accept_staff_invite(
        self,
        person_id: str,
        organization_id: str,
        role: MembershipRole | str = MembershipRole.SCOUT,
    ) -> Membership:
        role = MembershipRole(role)
        if role == MembershipRole.OWNER:
            raise OwnershipPrecondition("Staff invitations cannot grant the Owner role")
        if self._store.list_memberships(
            person_id=person_id, organization_id=organization_id, active=True
        ):
            raise OwnershipPrecondition(
                f"{person_id} is already a member of {organization_id}"
            )

        self._guard.require(PersonalScope(person_id=person_id), ResourceKind.STAFF_MEMBERSHIP)
        self._guard.require(
            OrganizationScope(organization_id=organization_id), ResourceKind.STAFF_SEAT
        )
        membership = self._insert(person_id, organization_id, role)
        logger.info("%s joined %s as %s", person_id, organization_id, role)
        return membership

    def members(self, organization_id: str) -> list[Membership]:
        return self._store.list_memberships(organization_id=organization_id, active=True)

    def _insert(self, person_id: str, organization_id: str, role: MembershipRole) -> Membership:
        membership = Membership(
            id=f"mem-{uuid.uuid4().hex[:12]}",
            person_id=person_id,
            organization_id=organization_id,
            role=role,
            created_at=self._clock(),
        )
        return self._store.insert_membership(membership)
