"""Yard, area and rack occupancy operations.

Every occupancy write goes through a conditional UPDATE keyed by the rack's
``version`` column. A write that matches no row means another transaction
changed the rack since it was read, and the whole operation is refused with
``ConcurrentModification``.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pipevault.models.audit import RackOccupancyAdjustment
from pipevault.models.yard import Rack, Yard, YardArea
from pipevault.services.audit import AuditAction, record_admin_action
from pipevault.services.errors import ConcurrentModification, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

MIN_ADJUSTMENT_REASON_LENGTH = 10


@dataclass
class RackSummary:
    """Occupancy of one rack."""

    id: str
    name: str
    capacity: int
    capacity_meters: float
    occupied: int
    occupied_meters: float
    available: int
    available_meters: float
    utilization_pct: float


@dataclass
class AreaSummary:
    """Occupancy totals for one yard area."""

    id: str
    name: str
    racks: list[RackSummary] = field(default_factory=list)
    capacity: int = 0
    occupied: int = 0
    available: int = 0
    utilization_pct: float = 0.0


@dataclass
class YardSummary:
    """Occupancy totals for one yard."""

    id: str
    name: str
    areas: list[AreaSummary] = field(default_factory=list)
    capacity: int = 0
    occupied: int = 0
    available: int = 0
    utilization_pct: float = 0.0


@dataclass(frozen=True)
class RackAdjustmentResult:
    """Outcome of a manual occupancy adjustment."""

    rack_id: str
    old_joints: int
    new_joints: int
    old_meters: float
    new_meters: float
    version: int


def utilization_pct(occupied: int, capacity: int) -> float:
    """Percentage of capacity in use, rounded to one decimal."""
    if capacity <= 0:
        return 0.0
    return round(occupied / capacity * 100, 1)


def summarize_rack(rack: Rack) -> RackSummary:
    return RackSummary(
        id=rack.id,
        name=rack.name,
        capacity=rack.capacity,
        capacity_meters=rack.capacity_meters,
        occupied=rack.occupied,
        occupied_meters=rack.occupied_meters,
        available=rack.available,
        available_meters=round(rack.available_meters, 2),
        utilization_pct=utilization_pct(rack.occupied, rack.capacity),
    )


def summarize_yard(yard: Yard) -> YardSummary:
    """Roll rack counters up to area and yard totals."""
    yard_summary = YardSummary(id=yard.id, name=yard.name)
    for area in yard.areas:
        area_summary = AreaSummary(id=area.id, name=area.name)
        for rack in area.racks:
            rack_summary = summarize_rack(rack)
            area_summary.racks.append(rack_summary)
            area_summary.capacity += rack_summary.capacity
            area_summary.occupied += rack_summary.occupied
            area_summary.available += rack_summary.available
        area_summary.utilization_pct = utilization_pct(
            area_summary.occupied, area_summary.capacity
        )
        yard_summary.areas.append(area_summary)
        yard_summary.capacity += area_summary.capacity
        yard_summary.occupied += area_summary.occupied
        yard_summary.available += area_summary.available
    yard_summary.utilization_pct = utilization_pct(
        yard_summary.occupied, yard_summary.capacity
    )
    return yard_summary


async def list_yards(session: AsyncSession) -> list[YardSummary]:
    """Return every yard with its areas, racks and availability."""
    result = await session.execute(
        select(Yard)
        .options(selectinload(Yard.areas).selectinload(YardArea.racks))
        .order_by(Yard.id)
    )
    return [summarize_yard(yard) for yard in result.scalars().all()]


async def get_rack(session: AsyncSession, rack_id: str) -> Rack:
    """Load a rack by id.

    Raises:
        NotFound: If the rack does not exist.
    """
    result = await session.execute(select(Rack).where(Rack.id == rack_id))
    rack = result.scalar_one_or_none()
    if rack is None:
        raise NotFound("Rack", rack_id)
    return rack


async def write_rack_occupancy(
    session: AsyncSession,
    rack_id: str,
    expected_version: int,
    occupied: object,
    occupied_meters: object,
) -> None:
    """Write new occupancy counters if the rack is still at ``expected_version``.

    ``occupied`` and ``occupied_meters`` may be plain values or SQL
    expressions relative to the current column values.

    Raises:
        ConcurrentModification: If the version no longer matches.
    """
    result = await session.execute(
        update(Rack)
        .where(Rack.id == rack_id, Rack.version == expected_version)
        .values(
            occupied=occupied,
            occupied_meters=occupied_meters,
            version=Rack.version + 1,
            updated_at=datetime.now(UTC),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(
            "Rack %s changed since version %d was read", rack_id, expected_version
        )
        raise ConcurrentModification(rack_id)


async def apply_occupancy_delta(
    session: AsyncSession,
    rack_id: str,
    expected_version: int,
    joints_delta: int,
    meters_delta: float,
) -> None:
    """Add a delta to a rack's occupancy with an optimistic version check."""
    await write_rack_occupancy(
        session,
        rack_id,
        expected_version,
        Rack.occupied + joints_delta,
        Rack.occupied_meters + meters_delta,
    )


async def adjust_rack_occupancy(
    session: AsyncSession,
    rack_id: str,
    new_joints: int,
    new_meters: float,
    reason: str,
    adjusted_by: str,
) -> RackAdjustmentResult:
    """Manually set a rack's occupancy after a physical count.

    Args:
        session: Database session
        rack_id: Rack to adjust
        new_joints: Counted joints (0..capacity)
        new_meters: Counted meters (0..capacity_meters)
        reason: Why the adjustment was made (at least 10 characters)
        adjusted_by: Admin performing the adjustment

    Returns:
        RackAdjustmentResult with old and new values

    Raises:
        ValidationFailed: On a short reason or out-of-range values.
        NotFound: If the rack does not exist.
        ConcurrentModification: If the rack changed while adjusting.
    """
    reason = (reason or "").strip()
    if len(reason) < MIN_ADJUSTMENT_REASON_LENGTH:
        raise ValidationFailed(
            f"Adjustment reason must be at least {MIN_ADJUSTMENT_REASON_LENGTH} characters"
        )

    rack = await get_rack(session, rack_id)

    if new_joints < 0 or new_joints > rack.capacity:
        raise ValidationFailed(
            f"Joints must be between 0 and {rack.capacity} for rack '{rack_id}'"
        )
    if new_meters < 0 or new_meters > rack.capacity_meters:
        raise ValidationFailed(
            f"Meters must be between 0 and {rack.capacity_meters} for rack '{rack_id}'"
        )

    old_joints = rack.occupied
    old_meters = rack.occupied_meters

    await write_rack_occupancy(session, rack_id, rack.version, new_joints, new_meters)

    session.add(
        RackOccupancyAdjustment(
            rack_id=rack_id,
            adjusted_by=adjusted_by,
            reason=reason,
            old_joints_occupied=old_joints,
            new_joints_occupied=new_joints,
            old_meters_occupied=old_meters,
            new_meters_occupied=new_meters,
        )
    )
    await record_admin_action(
        session,
        admin_user_id=adjusted_by,
        action=AuditAction.ADJUST_RACK,
        entity_type="rack",
        entity_id=rack_id,
        details={
            "reason": reason,
            "old_joints": old_joints,
            "new_joints": new_joints,
            "old_meters": old_meters,
            "new_meters": new_meters,
        },
    )

    logger.info(
        "Rack %s adjusted by %s: %d -> %d joints",
        rack_id,
        adjusted_by,
        old_joints,
        new_joints,
    )

    return RackAdjustmentResult(
        rack_id=rack_id,
        old_joints=old_joints,
        new_joints=new_joints,
        old_meters=old_meters,
        new_meters=new_meters,
        version=rack.version + 1,
    )


async def release_rack_occupancy(
    session: AsyncSession,
    rack_id: str,
    joints: int,
    meters: float,
) -> tuple[int, float]:
    """Free occupancy when joints leave a rack.

    Counters are clamped at zero so that a release larger than the recorded
    occupancy (e.g. after a manual recount) never violates the rack's
    check constraints.

    Returns:
        Tuple of (new occupied joints, new occupied meters)
    """
    if joints < 0 or meters < 0:
        raise ValidationFailed("Released joints and meters must be non-negative")

    rack = await get_rack(session, rack_id)
    new_joints = max(0, rack.occupied - joints)
    new_meters = round(max(0.0, rack.occupied_meters - meters), 3)

    await write_rack_occupancy(session, rack_id, rack.version, new_joints, new_meters)

    logger.info(
        "Released %d joints from rack %s (%d remaining)", joints, rack_id, new_joints
    )
    return new_joints, new_meters
