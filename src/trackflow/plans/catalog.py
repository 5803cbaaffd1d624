"""Subscription plan catalog.

Holds the limits for every tier. Ships with built-in defaults and can be
replaced by a YAML plans file with a top-level ``plans`` list and an
optional ``subscriptions`` mapping (billing owner id -> tier).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from trackflow.models import UNLIMITED, Plan, PlanLimits, Tier


class PlanCatalogError(Exception):
    """Raised when the plans file is invalid or cannot be loaded."""


DEFAULT_PLANS: dict[Tier, Plan] = {
    Tier.FREE: Plan(
        tier=Tier.FREE,
        name="Free",
        limits=PlanLimits(
            max_tracks=10,
            max_staff=1,
            max_contacts=100,
            max_vault_tracks=10,
            max_label_ownership=1,
            max_staff_memberships=3,
        ),
    ),
    Tier.AGENT: Plan(
        tier=Tier.AGENT,
        name="Agent",
        limits=PlanLimits(
            max_tracks=100,
            max_staff=1,
            max_contacts=1000,
            max_vault_tracks=50,
            max_label_ownership=1,
            max_staff_memberships=UNLIMITED,
        ),
    ),
    Tier.STARTER: Plan(
        tier=Tier.STARTER,
        name="Starter",
        limits=PlanLimits(
            max_tracks=100,
            max_staff=5,
            max_contacts=2500,
            max_vault_tracks=250,
            max_label_ownership=2,
            max_staff_memberships=UNLIMITED,
        ),
    ),
    Tier.PRO: Plan(
        tier=Tier.PRO,
        name="Pro",
        limits=PlanLimits(
            max_tracks=1000,
            max_staff=15,
            max_contacts=10000,
            max_vault_tracks=UNLIMITED,
            max_label_ownership=5,
            max_staff_memberships=UNLIMITED,
        ),
    ),
    Tier.ENTERPRISE: Plan(
        tier=Tier.ENTERPRISE,
        name="Enterprise",
        limits=PlanLimits(
            max_tracks=UNLIMITED,
            max_staff=UNLIMITED,
            max_contacts=UNLIMITED,
            max_vault_tracks=UNLIMITED,
            max_label_ownership=UNLIMITED,
            max_staff_memberships=UNLIMITED,
        ),
    ),
}


class PlanCatalog:
    """In-memory plan catalog keyed by tier.

    The ``free`` tier must always be present: it is the fail-closed fallback.
    """

    def __init__(self, plans: list[Plan] | None = None) -> None:
        if plans is None:
            plans = list(DEFAULT_PLANS.values())
        self._plans: dict[Tier, Plan] = {}
        for plan in plans:
            if plan.tier in self._plans:
                raise PlanCatalogError(f"Duplicate plan tier: {plan.tier}")
            self._plans[plan.tier] = plan
        if Tier.FREE not in self._plans:
            raise PlanCatalogError("Plan catalog must define the 'free' tier")

    @property
    def plans(self) -> list[Plan]:
        return list(self._plans.values())

    def __len__(self) -> int:
        return len(self._plans)

    def __contains__(self, tier: object) -> bool:
        return tier in self._plans

    def get(self, tier: str) -> Plan | None:
        """Look up a plan by tier name. Returns None if unknown."""
        try:
            return self._plans.get(Tier(tier))
        except ValueError:
            return None

    @property
    def most_restrictive(self) -> Plan:
        return self._plans[Tier.FREE]


def load_plans(path: str | Path) -> tuple[PlanCatalog, dict[str, Tier]]:
    """Load a plan catalog and subscription assignments from a YAML file.

    Returns ``(catalog, subscriptions)``. Tiers missing from the file's
    ``plans`` list fall back to the built-in defaults.

    Raises:
        PlanCatalogError: If the file cannot be read, parsed, or validated.
    """
    path = Path(path)
    if not path.exists():
        raise PlanCatalogError(f"Plans file not found: {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise PlanCatalogError(f"Invalid YAML in {path}: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise PlanCatalogError(f"Plans file must be a YAML mapping: {path}")

    raw_plans: Any = raw.get("plans", [])
    if not isinstance(raw_plans, list):
        raise PlanCatalogError(f"'plans' must be a list: {path}")

    merged: dict[Tier, Plan] = dict(DEFAULT_PLANS)
    seen: set[Tier] = set()
    for i, entry in enumerate(raw_plans):
        try:
            plan = Plan(**entry)
        except (ValidationError, TypeError) as e:
            raise PlanCatalogError(f"Invalid plan at index {i} in {path}: {e}") from e
        if plan.tier in seen:
            raise PlanCatalogError(f"Duplicate plan tier '{plan.tier}' in {path}")
        seen.add(plan.tier)
        merged[plan.tier] = plan

    raw_subs: Any = raw.get("subscriptions", {}) or {}
    if not isinstance(raw_subs, dict):
        raise PlanCatalogError(f"'subscriptions' must be a mapping: {path}")

    subscriptions: dict[str, Tier] = {}
    for owner_id, tier in raw_subs.items():
        try:
            subscriptions[str(owner_id)] = Tier(tier)
        except ValueError as e:
            raise PlanCatalogError(
                f"Unknown tier '{tier}' for subscription '{owner_id}' in {path}"
            ) from e

    return PlanCatalog(list(merged.values())), subscriptions
