"""Plan/Capacity Resolver.

Resolves the active subscription plan for a scope's billing owner: the
person for a personal scope, the organization for an organization scope.

Quota checks fail closed: when the billing oracle cannot produce a plan the
scope is treated as the most restrictive (``free``) tier, never unlimited.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from trackflow.errors import PlanNotFound
from trackflow.models import OrganizationScope, PersonalScope, Plan, PlanLimits, Tier
from trackflow.plans.catalog import PlanCatalog

logger = logging.getLogger(__name__)


@runtime_checkable
class BillingOracle(Protocol):
    """Protocol for the external subscription system. Read-only truth."""

    def get_active_plan(self, billing_owner_id: str) -> Plan: ...


class StaticBillingOracle:
    """Billing oracle backed by a fixed owner -> tier mapping.

    Owners absent from the mapping get ``default_tier`` when one is set,
    otherwise ``PlanNotFound``.
    """

    def __init__(
        self,
        catalog: PlanCatalog,
        subscriptions: dict[str, Tier] | None = None,
        default_tier: Tier | None = None,
    ) -> None:
        self._catalog = catalog
        self._subscriptions: dict[str, Tier] = dict(subscriptions or {})
        self._default_tier = default_tier

    def set_tier(self, billing_owner_id: str, tier: Tier) -> None:
        self._subscriptions[billing_owner_id] = tier

    def get_active_plan(self, billing_owner_id: str) -> Plan:
        tier = self._subscriptions.get(billing_owner_id, self._default_tier)
        if tier is None:
            raise PlanNotFound(f"No active plan for billing owner '{billing_owner_id}'")
        plan = self._catalog.get(tier)
        if plan is None:
            raise PlanNotFound(
                f"Tier '{tier}' for billing owner '{billing_owner_id}' is not in the catalog"
            )
        return plan


class PlanResolver:
    """Resolves plans and limits for scopes, failing closed to ``free``."""

    def __init__(self, oracle: BillingOracle, catalog: PlanCatalog | None = None) -> None:
        self._oracle = oracle
        self._catalog = catalog or PlanCatalog()

    @property
    def catalog(self) -> PlanCatalog:
        return self._catalog

    def resolve_plan(self, scope: PersonalScope | OrganizationScope) -> Plan:
        owner_id = scope.billing_owner_id
        try:
            return self._oracle.get_active_plan(owner_id)
        except PlanNotFound as exc:
            logger.warning(
                "Plan lookup failed for %s, treating as '%s': %s",
                scope, Tier.FREE, exc,
            )
            return self._catalog.most_restrictive

    def resolve_limits(self, scope: PersonalScope | OrganizationScope) -> PlanLimits:
        return self.resolve_plan(scope).limits
