"""Business logic services for PipeVault."""

from pipevault.services.allocation import (
    AllocationInputError,
    AllocationResult,
    OccupancyDelta,
    RackLocation,
    RackSnapshot,
    allocate_joints,
    build_location_label,
)
from pipevault.services.cache import MutationKind, invalidation_keys
from pipevault.services.errors import (
    CapacityExceeded,
    ConcurrentModification,
    InvalidStatusTransition,
    MixedYardAllocation,
    NotFound,
    PipeVaultError,
    UpstreamServiceUnavailable,
    ValidationFailed,
)
from pipevault.services.lifecycle import RequestStatus, can_transition, ensure_transition

__all__ = [
    "AllocationInputError",
    "AllocationResult",
    "CapacityExceeded",
    "ConcurrentModification",
    "InvalidStatusTransition",
    "MixedYardAllocation",
    "MutationKind",
    "NotFound",
    "OccupancyDelta",
    "PipeVaultError",
    "RackLocation",
    "RackSnapshot",
    "RequestStatus",
    "UpstreamServiceUnavailable",
    "ValidationFailed",
    "allocate_joints",
    "build_location_label",
    "can_transition",
    "ensure_transition",
    "invalidation_keys",
]
