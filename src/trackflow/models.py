"""Core data models for Trackflow.

Defines the schemas for:
- Tracks (submissions moving through the A&R pipeline)
- Scopes (personal workspace or organization pipeline)
- Memberships and connections (who belongs where, who can exchange tracks)
- Plans and limits (subscription tiers)
- Capacity check results (Capacity Guard output)
- Release-gap and staffing reports (Phase State Machine read models)
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

UNLIMITED = -1
"""Sentinel limit value meaning "no ceiling"."""

# --- Enums ---


class Phase(enum.StrEnum):
    INBOX = "inbox"
    SECOND_LISTEN = "second_listen"
    TEAM_REVIEW = "team_review"
    CONTRACTING = "contracting"
    UPCOMING = "upcoming"
    VAULT = "vault"

    @property
    def ordinal(self) -> int:
        return PHASE_ORDER.index(self)


PHASE_ORDER: list[Phase] = [
    Phase.INBOX,
    Phase.SECOND_LISTEN,
    Phase.TEAM_REVIEW,
    Phase.CONTRACTING,
    Phase.UPCOMING,
    Phase.VAULT,
]


class CrateTag(enum.StrEnum):
    SUBMISSIONS = "submissions"
    NETWORK = "network"
    CRATE_A = "crate_a"
    CRATE_B = "crate_b"
    PITCHED = "pitched"
    SIGNED = "signed"


TERMINAL_CRATES = frozenset({CrateTag.PITCHED, CrateTag.SIGNED})
DISPLAY_CRATES = (
    CrateTag.SUBMISSIONS,
    CrateTag.NETWORK,
    CrateTag.CRATE_A,
    CrateTag.CRATE_B,
)

# Older rows used numbered crates.
_LEGACY_CRATES = {"crate_1": CrateTag.CRATE_A, "crate_2": CrateTag.CRATE_B}


class SourceKind(enum.StrEnum):
    PUBLIC_FORM = "public_form"
    MANUAL = "manual"
    PEER_TRANSFER = "peer_transfer"


class Tier(enum.StrEnum):
    FREE = "free"
    AGENT = "agent"
    STARTER = "starter"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class ResourceKind(enum.StrEnum):
    TRACK = "track"
    LABEL_OWNERSHIP = "label_ownership"
    STAFF_MEMBERSHIP = "staff_membership"
    STAFF_SEAT = "staff_seat"
    VAULT_TRACK = "vault_track"
    CONTACT = "contact"


class ConnectionStatus(enum.StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    BLOCKED = "blocked"


class MembershipRole(enum.StrEnum):
    OWNER = "Owner"
    MANAGER = "Manager"
    SCOUT = "Scout"


class StaffingStatus(enum.StrEnum):
    OPTIMAL = "Optimal"
    SLEEPING = "Sleeping"
    WARNING = "Warning"
    FATIGUED = "Fatigued"


# --- Scope ---


class PersonalScope(BaseModel, frozen=True):
    """One person's personal workspace."""

    kind: Literal["personal"] = "personal"
    person_id: str

    @property
    def billing_owner_id(self) -> str:
        return self.person_id

    def __str__(self) -> str:
        return f"personal:{self.person_id}"


class OrganizationScope(BaseModel, frozen=True):
    """One organization's (label's) pipeline."""

    kind: Literal["organization"] = "organization"
    organization_id: str

    @property
    def billing_owner_id(self) -> str:
        return self.organization_id

    def __str__(self) -> str:
        return f"organization:{self.organization_id}"


Scope = Annotated[PersonalScope | OrganizationScope, Field(discriminator="kind")]


# --- Track ---


class Track(BaseModel):
    """A single submission.

    Ownership is exactly one of ``personal_owner_id`` or
    ``organization_id``. Crates only apply while personally owned.
    """

    id: str
    title: str = ""
    artist_name: str = ""
    personal_owner_id: str | None = None
    organization_id: str | None = None
    phase: Phase = Phase.INBOX
    archived: bool = False
    crate_tag: CrateTag | None = None
    source_kind: SourceKind = SourceKind.MANUAL
    is_peer_to_peer: bool = False
    contract_signed: bool = False
    sender_id: str | None = None
    energy: int = Field(0, ge=0, le=10)
    target_release_date: date | None = None
    release_date: date | None = None
    created_at: datetime
    pitched_at: datetime | None = None
    phase_entered_at: dict[Phase, datetime] = Field(default_factory=dict)
    rejection_reason: str | None = None

    @field_validator("crate_tag", mode="before")
    @classmethod
    def _normalize_legacy_crate(cls, value: Any) -> Any:
        if isinstance(value, str) and value in _LEGACY_CRATES:
            return _LEGACY_CRATES[value]
        return value

    @model_validator(mode="after")
    def _check_ownership(self) -> Track:
        if (self.personal_owner_id is None) == (self.organization_id is None):
            msg = (
                f"Track {self.id} must have exactly one of "
                "personal_owner_id or organization_id"
            )
            raise ValueError(msg)
        if self.organization_id is not None and self.crate_tag is not None:
            msg = f"Organization-owned track {self.id} cannot carry a crate tag"
            raise ValueError(msg)
        return self

    @property
    def owner_scope(self) -> PersonalScope | OrganizationScope:
        if self.organization_id is not None:
            return OrganizationScope(organization_id=self.organization_id)
        return PersonalScope(person_id=self.personal_owner_id)

    @property
    def is_personal(self) -> bool:
        return self.organization_id is None

    @property
    def is_retired(self) -> bool:
        """Pitched, signed or contract-signed tracks no longer count against capacity."""
        return self.crate_tag in TERMINAL_CRATES or self.contract_signed

    @property
    def moved_to_second_listen(self) -> datetime | None:
        if self.phase != Phase.SECOND_LISTEN:
            return None
        return self.phase_entered_at.get(Phase.SECOND_LISTEN)


# --- Membership / Connection / Listen log ---


class Membership(BaseModel):
    """Binds a person to an organization with a role."""

    id: str
    person_id: str
    organization_id: str
    role: MembershipRole
    active: bool = True
    created_at: datetime | None = None

    @property
    def is_owner(self) -> bool:
        return self.role == MembershipRole.OWNER


class Connection(BaseModel):
    """A mutual relation between two people, created by request/accept."""

    id: str
    requester_id: str
    recipient_id: str
    status: ConnectionStatus = ConnectionStatus.PENDING
    created_at: datetime
    responded_at: datetime | None = None

    def involves(self, person_a: str, person_b: str) -> bool:
        return {self.requester_id, self.recipient_id} == {person_a, person_b}


class ListenLog(BaseModel):
    """A single logged listen by a staff member inside an organization."""

    id: str
    person_id: str
    organization_id: str
    track_id: str | None = None
    listened_at: datetime


# --- Plans ---


class PlanLimits(BaseModel):
    """Numeric ceilings for a subscription tier. ``UNLIMITED`` (-1) lifts a ceiling."""

    max_tracks: int = Field(..., ge=UNLIMITED)
    max_staff: int = Field(..., ge=UNLIMITED)
    max_contacts: int = Field(..., ge=UNLIMITED)
    max_vault_tracks: int = Field(..., ge=UNLIMITED)
    max_label_ownership: int = Field(..., ge=UNLIMITED)
    max_staff_memberships: int = Field(..., ge=UNLIMITED)

    def for_resource(self, kind: ResourceKind) -> int:
        return getattr(self, _LIMIT_FIELDS[kind])


_LIMIT_FIELDS: dict[ResourceKind, str] = {
    ResourceKind.TRACK: "max_tracks",
    ResourceKind.LABEL_OWNERSHIP: "max_label_ownership",
    ResourceKind.STAFF_MEMBERSHIP: "max_staff_memberships",
    ResourceKind.STAFF_SEAT: "max_staff",
    ResourceKind.VAULT_TRACK: "max_vault_tracks",
    ResourceKind.CONTACT: "max_contacts",
}


class Plan(BaseModel):
    """A named subscription tier with its limits."""

    tier: Tier
    name: str = ""
    limits: PlanLimits


# --- Capacity Guard output ---


class CapacityCheckResult(BaseModel):
    """Outcome of a capacity check. Computed per call, never persisted."""

    current_count: int
    max_count: int
    tier: Tier
    can_add: bool
    resource_kind: ResourceKind = ResourceKind.TRACK
    scope: Scope | None = None

    @property
    def unlimited(self) -> bool:
        return self.max_count == UNLIMITED

    @property
    def locked(self) -> bool:
        """Capacity Lock: a free scope that has overshot its ceiling."""
        return (
            self.tier == Tier.FREE
            and self.max_count > 0
            and self.current_count > self.max_count
        )

    @property
    def remaining(self) -> int | None:
        if self.unlimited:
            return None
        return max(0, self.max_count - self.current_count)

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data["locked"] = self.locked
        return data


# --- Phase State Machine read models ---


class GapWindow(BaseModel):
    """One forward release window, ``start`` inclusive and ``end`` exclusive."""

    start: date
    end: date
    count: int = 0

    @property
    def has_gap(self) -> bool:
        return self.count == 0


class GapReport(BaseModel):
    """Release-date coverage of the next three windows."""

    today: date
    windows: list[GapWindow]

    @property
    def gap_count(self) -> int:
        return sum(1 for w in self.windows if w.has_gap)

    @property
    def has_critical_gap(self) -> bool:
        return self.gap_count >= 2

    @property
    def gap_months(self) -> list[str]:
        return [w.start.strftime("%B %Y") for w in self.windows if w.has_gap]


class StaffingReport(BaseModel):
    """Weekly engagement signal for one person in one organization."""

    person_id: str
    organization_id: str
    weekly_listens: int
    effective_listens: int
    weekly_demos: int
    coverage: float
    status: StaffingStatus


class CompanyHealth(BaseModel):
    """Organization-wide staffing health (owner view)."""

    organization_id: str
    total_staff: int
    daily_demos: int
    demos_per_staff: float
    expectation_cap: int
    staffing_alert: bool
    fatigued_staff_count: int
    company_health_score: int


# --- Notification events ---


class EngineEvent(BaseModel):
    """An event handed to notification/calendar sinks."""

    type: str
    track_id: str | None = None
    scope: Scope | None = None
    occurred_at: datetime
    data: dict[str, Any] = Field(default_factory=dict)
