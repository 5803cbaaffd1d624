"""Trackflow: submission lifecycle and tenancy routing for A&R workflows."""

__version__ = "0.4.0"

from trackflow.capacity.guard import CapacityGuard
from trackflow.config import ConfigError, TrackflowConfig, find_config, load_config
from trackflow.crates.classifier import CrateService, active_crates, classify
from trackflow.errors import (
    CapacityExceeded,
    ConnectionRequired,
    InvalidConnection,
    InvalidCrateTransition,
    InvalidPhaseTransition,
    OwnershipPrecondition,
    PlanNotFound,
    RecordNotFound,
    TrackflowError,
)
from trackflow.models import (
    CapacityCheckResult,
    CrateTag,
    OrganizationScope,
    PersonalScope,
    Phase,
    Plan,
    PlanLimits,
    ResourceKind,
    SourceKind,
    Tier,
    Track,
)
from trackflow.network.connections import ConnectionManager
from trackflow.pipeline.gaps import gap_report, has_critical_gap
from trackflow.pipeline.phases import PhaseMachine
from trackflow.pipeline.staffing import StaffingMonitor, staffing_status
from trackflow.plans.catalog import PlanCatalog, PlanCatalogError, load_plans
from trackflow.plans.resolver import BillingOracle, PlanResolver, StaticBillingOracle
from trackflow.sdk.client import Trackflow, TrackflowSetupError
from trackflow.store.jsonl import JsonlRecordStore
from trackflow.store.memory import InMemoryRecordStore
from trackflow.tenancy.memberships import MembershipService
from trackflow.tenancy.router import TenancyRouter

__all__ = [
    "active_crates",
    "BillingOracle",
    "CapacityCheckResult",
    "CapacityExceeded",
    "CapacityGuard",
    "classify",
    "ConfigError",
    "ConnectionManager",
    "ConnectionRequired",
    "CrateService",
    "CrateTag",
    "find_config",
    "gap_report",
    "has_critical_gap",
    "InMemoryRecordStore",
    "InvalidConnection",
    "InvalidCrateTransition",
    "InvalidPhaseTransition",
    "JsonlRecordStore",
    "load_config",
    "load_plans",
    "MembershipService",
    "OrganizationScope",
    "OwnershipPrecondition",
    "PersonalScope",
    "Phase",
    "PhaseMachine",
    "Plan",
    "PlanCatalog",
    "PlanCatalogError",
    "PlanLimits",
    "PlanNotFound",
    "PlanResolver",
    "RecordNotFound",
    "ResourceKind",
    "SourceKind",
    "StaffingMonitor",
    "staffing_status",
    "StaticBillingOracle",
    "TenancyRouter",
    "Tier",
    "Track",
    "Trackflow",
    "TrackflowConfig",
    "TrackflowError",
    "TrackflowSetupError",
    "__version__",
]
