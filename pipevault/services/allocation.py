"""Rack allocation calculator.

Distributes the joints of a storage request over an ordered list of
candidate racks, filling each rack up to its remaining capacity before
moving to the next. The calculator is a pure function of its inputs: it
never touches the database and reports any joints that did not fit instead
of dropping them.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from pipevault.services.errors import MixedYardAllocation


class AllocationInputError(ValueError):
    """Raised when the calculator receives an impossible input."""


@dataclass(frozen=True)
class RackSnapshot:
    """Capacity state of one rack as read before allocating.

    Attributes:
        id: Rack identifier
        capacity: Maximum joints the rack holds
        occupied: Joints currently stored
        version: Optimistic concurrency token read with the snapshot
    """

    id: str
    capacity: int
    occupied: int
    version: int = 0

    @property
    def available(self) -> int:
        return self.capacity - self.occupied


@dataclass(frozen=True)
class OccupancyDelta:
    """Change applied to one rack's occupancy counters."""

    rack_id: str
    occupied_delta: int
    occupied_meters_delta: float

    def to_dict(self) -> dict[str, object]:
        return {
            "rack_id": self.rack_id,
            "occupied_delta": self.occupied_delta,
            "occupied_meters_delta": self.occupied_meters_delta,
        }


@dataclass(frozen=True)
class AllocationResult:
    """Outcome of an allocation run.

    Attributes:
        required_joints: Joints asked for
        deltas: Per-rack deltas in rack order (racks with no room are omitted)
        unallocated: Joints that did not fit in any rack
    """

    required_joints: int
    deltas: tuple[OccupancyDelta, ...] = field(default_factory=tuple)
    unallocated: int = 0

    @property
    def allocated(self) -> int:
        return self.required_joints - self.unallocated

    @property
    def is_complete(self) -> bool:
        return self.unallocated == 0


@dataclass(frozen=True)
class RackLocation:
    """Display names of a rack and its parents, used for location labels."""

    rack_id: str
    rack_name: str
    area_name: str
    yard_id: str
    yard_name: str


def allocate_joints(
    required_joints: int,
    avg_joint_length: float,
    racks: Sequence[RackSnapshot],
) -> AllocationResult:
    """Greedily fill racks in the given order.

    Racks with no room left, including racks already holding more than
    their capacity, are skipped. Meter deltas are exactly the joint delta
    times the average joint length.

    Args:
        required_joints: Joints to place (must be positive).
        avg_joint_length: Average joint length in meters (must be positive).
        racks: Candidate racks; the first rack is filled first.

    Returns:
        AllocationResult with one delta per rack that received joints and
        the unallocated remainder.

    Raises:
        AllocationInputError: On non-positive joints, a non-positive or
            non-finite length, or a rack snapshot with negative counters.
    """
    if isinstance(required_joints, bool) or not isinstance(required_joints, int):
        raise AllocationInputError("required_joints must be an integer")
    if required_joints <= 0:
        raise AllocationInputError("required_joints must be positive")
    if not math.isfinite(avg_joint_length) or avg_joint_length <= 0:
        raise AllocationInputError("avg_joint_length must be a positive number")

    for rack in racks:
        if rack.capacity < 0 or rack.occupied < 0:
            raise AllocationInputError(f"Rack '{rack.id}' has negative counters")

    remaining = required_joints
    deltas: list[OccupancyDelta] = []

    for rack in racks:
        if remaining <= 0:
            break
        allocatable = min(remaining, rack.available)
        if allocatable <= 0:
            continue
        deltas.append(
            OccupancyDelta(
                rack_id=rack.id,
                occupied_delta=allocatable,
                occupied_meters_delta=allocatable * avg_joint_length,
            )
        )
        remaining -= allocatable

    return AllocationResult(
        required_joints=required_joints,
        deltas=tuple(deltas),
        unallocated=remaining,
    )


def total_available(racks: Sequence[RackSnapshot]) -> int:
    """Sum of remaining joint capacity across racks."""
    return sum(max(0, rack.available) for rack in racks)


def build_location_label(locations: Sequence[RackLocation]) -> str:
    """Build the human-readable assigned-location string.

    One rack gives ``"<Yard>, <Area>, <Rack>"``. Several racks in one area
    give ``"<Yard>, <Area>, N Racks"``; several areas of one yard give
    ``"<Yard>, N Racks"``.

    Raises:
        AllocationInputError: If no racks are given.
        MixedYardAllocation: If the racks span more than one yard.
    """
    if not locations:
        raise AllocationInputError("At least one rack is required")

    yard_ids = sorted({loc.yard_id for loc in locations})
    if len(yard_ids) > 1:
        raise MixedYardAllocation(yard_ids)

    first = locations[0]
    if len(locations) == 1:
        return f"{first.yard_name}, {first.area_name}, {first.rack_name}"

    area_names = {loc.area_name for loc in locations}
    if len(area_names) == 1:
        return f"{first.yard_name}, {first.area_name}, {len(locations)} Racks"
    return f"{first.yard_name}, {len(locations)} Racks"
