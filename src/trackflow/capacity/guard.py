"""Capacity Guard — quota checks against subscription limits.

Takes a scope and a resource kind and returns a ``CapacityCheckResult``
with the current count, the ceiling, the tier and whether one more can be
added. It never performs the mutation itself.

Counting:
1. Resolve the plan for the scope (fail closed to ``free``)
2. Count the live resources of that kind in the scope
   - tracks: non-archived and not retired (pitched/signed)
   - free-tier personal scope: add every owned label's tracks (pooled ceiling)
3. ``can_add = max_count == UNLIMITED or current_count < max_count``

The check and the guarded write are not atomic. Concurrent callers on the
same scope can all pass and overshoot the ceiling; the scope then reports a
Capacity Lock (free tier, count above ceiling) that blocks every further
addition until deletions or an upgrade bring it back under.
"""

from __future__ import annotations

import logging

from trackflow.errors import CapacityExceeded
from trackflow.models import (
    UNLIMITED,
    CapacityCheckResult,
    MembershipRole,
    OrganizationScope,
    PersonalScope,
    Phase,
    ResourceKind,
    Tier,
    Track,
)
from trackflow.plans.resolver import PlanResolver
from trackflow.store.base import RecordStore

logger = logging.getLogger(__name__)

_PERSONAL_ONLY = frozenset({ResourceKind.LABEL_OWNERSHIP, ResourceKind.STAFF_MEMBERSHIP})
_ORGANIZATION_ONLY = frozenset({ResourceKind.STAFF_SEAT})


class CapacityGuard:
    """Stateless capacity checker over a record store and a plan resolver."""

    def __init__(self, store: RecordStore, resolver: PlanResolver) -> None:
        self._store = store
        self._resolver = resolver

    def check_capacity(
        self,
        scope: PersonalScope | OrganizationScope,
        resource_kind: ResourceKind = ResourceKind.TRACK,
    ) -> CapacityCheckResult:
        """Check whether one more *resource_kind* fits in *scope*."""
        resource_kind = ResourceKind(resource_kind)
        if resource_kind in _PERSONAL_ONLY and not isinstance(scope, PersonalScope):
            raise ValueError(f"{resource_kind} is only counted for personal scopes")
        if resource_kind in _ORGANIZATION_ONLY and not isinstance(scope, OrganizationScope):
            raise ValueError(f"{resource_kind} is only counted for organization scopes")

        plan = self._resolver.resolve_plan(scope)
        max_count = plan.limits.for_resource(resource_kind)
        current = self._count(scope, resource_kind, plan.tier)
        can_add = max_count == UNLIMITED or current < max_count

        result = CapacityCheckResult(
            current_count=current,
            max_count=max_count,
            tier=plan.tier,
            can_add=can_add,
            resource_kind=resource_kind,
            scope=scope,
        )
        logger.debug(
            "Capacity %s %s: %d/%d (%s) can_add=%s",
            scope, resource_kind, current, max_count, plan.tier, can_add,
        )
        return result

    def require(
        self,
        scope: PersonalScope | OrganizationScope,
        resource_kind: ResourceKind = ResourceKind.TRACK,
    ) -> CapacityCheckResult:
        """Check capacity and raise ``CapacityExceeded`` when full.

        Callers run this before the write it guards.
        """
        result = self.check_capacity(scope, resource_kind)
        if not result.can_add:
            logger.info(
                "Capacity exceeded for %s %s: %d/%d (%s)%s",
                scope, resource_kind, result.current_count, result.max_count,
                result.tier, " [locked]" if result.locked else "",
            )
            raise CapacityExceeded(result)
        return result

    def capacity_lock(self, person_id: str) -> CapacityCheckResult | None:
        """Return the personal track check when the workspace is locked, else None."""
        result = self.check_capacity(PersonalScope(person_id=person_id), ResourceKind.TRACK)
        return result if result.locked else None

    def has_contact(self, scope: PersonalScope | OrganizationScope, artist_name: str) -> bool:
        """True if *artist_name* already appears on a live track in *scope*."""
        return _normalize_artist(artist_name) in _artists(self._scope_tracks(scope))

    # --- Counting ---

    def _count(
        self,
        scope: PersonalScope | OrganizationScope,
        kind: ResourceKind,
        tier: Tier,
    ) -> int:
        if kind == ResourceKind.TRACK:
            count = _count_active(self._scope_tracks(scope))
            if tier == Tier.FREE and isinstance(scope, PersonalScope):
                for org_id in self._owned_organizations(scope.person_id):
                    count += _count_active(
                        self._store.list_tracks(organization_id=org_id, archived=False)
                    )
            return count

        if kind == ResourceKind.VAULT_TRACK:
            return sum(1 for t in self._scope_tracks(scope) if t.phase == Phase.VAULT)

        if kind == ResourceKind.CONTACT:
            return len(_artists(self._scope_tracks(scope)))

        if kind == ResourceKind.LABEL_OWNERSHIP:
            return len(self._owned_organizations(scope.person_id))

        if kind == ResourceKind.STAFF_MEMBERSHIP:
            return sum(
                1
                for m in self._store.list_memberships(person_id=scope.person_id, active=True)
                if not m.is_owner
            )

        if kind == ResourceKind.STAFF_SEAT:
            return len(
                self._store.list_memberships(
                    organization_id=scope.organization_id, active=True
                )
            )

        raise ValueError(f"Unknown resource kind: {kind}")

    def _scope_tracks(self, scope: PersonalScope | OrganizationScope) -> list[Track]:
        if isinstance(scope, PersonalScope):
            return self._store.list_tracks(
                personal_owner_id=scope.person_id, archived=False
            )
        return self._store.list_tracks(
            organization_id=scope.organization_id, archived=False
        )

    def _owned_organizations(self, person_id: str) -> list[str]:
        memberships = self._store.list_memberships(
            person_id=person_id, role=MembershipRole.OWNER, active=True
        )
        return sorted({m.organization_id for m in memberships})


def _count_active(tracks: list[Track]) -> int:
    return sum(1 for t in tracks if not t.archived and not t.is_retired)


def _artists(tracks: list[Track]) -> set[str]:
    return {_normalize_artist(t.artist_name) for t in tracks if t.artist_name.strip()}


def _normalize_artist(name: str) -> str:
    return name.strip().casefold()
