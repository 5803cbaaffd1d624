"""Typed, recoverable errors raised by the engine.

Every precondition is checked before the write it guards, so catching one
of these means the record was left unmodified.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from trackflow.models import CapacityCheckResult


class TrackflowError(Exception):
    """Base class for all engine errors."""


class CapacityExceeded(TrackflowError):
    """A quota check failed. Correctable by upgrading or deleting."""

    def __init__(self, result: CapacityCheckResult) -> None:
        self.result = result
        scope = f" for {result.scope}" if result.scope is not None else ""
        super().__init__(
            f"{result.resource_kind} capacity reached{scope}: "
            f"{result.current_count}/{result.max_count} on the "
            f"'{result.tier}' tier"
        )

    @property
    def current_count(self) -> int:
        return self.result.current_count

    @property
    def max_count(self) -> int:
        return self.result.max_count

    @property
    def tier(self) -> str:
        return str(self.result.tier)


class InvalidCrateTransition(TrackflowError):
    """Attempted to move a track out of a crate it is fixed in."""


class InvalidPhaseTransition(TrackflowError):
    """Attempted a backward phase move, a gated advance, or a move out of archive."""


class PlanNotFound(TrackflowError):
    """The billing owner has no resolvable plan."""


class OwnershipPrecondition(TrackflowError):
    """The track is not owned by the expected person or scope."""


class ConnectionRequired(TrackflowError):
    """Peer transfer attempted without an accepted connection."""


class RecordNotFound(TrackflowError):
    """A referenced record does not exist in the store."""


class InvalidConnection(TrackflowError):
    """A connection request or response that the lifecycle does not allow."""
