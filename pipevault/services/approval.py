"""Storage request approval and rejection.

Approval is all-or-nothing inside the caller's transaction:

1. The request must exist and be SUBMITTED.
2. The selected racks are read once, in the order the admin picked them.
3. The allocation calculator distributes the joints over that snapshot.
   Any unallocated remainder refuses the approval before anything is written.
4. Rack deltas are applied with optimistic version checks.
5. The request is stamped, an audit row is written and a notification is
   queued.

The caller owns the transaction (see ``pipevault.database.get_db``); any
exception raised here leaves the database untouched once rolled back.
"""

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pipevault.models.storage_request import StorageRequest
from pipevault.models.yard import Rack, YardArea
from pipevault.services.allocation import (
    AllocationInputError,
    OccupancyDelta,
    RackLocation,
    RackSnapshot,
    allocate_joints,
    build_location_label,
    total_available,
)
from pipevault.services.audit import AuditAction, record_admin_action
from pipevault.services.errors import (
    CapacityExceeded,
    MixedYardAllocation,
    NotFound,
    ValidationFailed,
)
from pipevault.services.lifecycle import RequestStatus, ensure_transition
from pipevault.services.notifications import NotificationType, enqueue_notification
from pipevault.services.racks import apply_occupancy_delta

logger = logging.getLogger(__name__)


@dataclass
class ApprovalResult:
    """Outcome of a successful approval.

    Attributes:
        request_id: Approved request
        company_id: Owning company
        reference_id: Customer project reference
        status: New request status (APPROVED)
        assigned_location: Location label stored on the request
        rack_ids: Racks that received joints, in fill order
        deltas: Per-rack occupancy deltas applied
        remaining_available: Joints still free per selected rack after approval
        notification_queued: Whether a customer notification was queued
    """

    request_id: UUID
    company_id: UUID
    reference_id: str
    status: str
    assigned_location: str
    rack_ids: list[str]
    deltas: list[OccupancyDelta] = field(default_factory=list)
    remaining_available: dict[str, int] = field(default_factory=dict)
    notification_queued: bool = False


@dataclass
class RejectionResult:
    """Outcome of a rejection."""

    request_id: UUID
    company_id: UUID
    reference_id: str
    status: str
    rejection_reason: str
    notification_queued: bool = False


async def get_storage_request(
    session: AsyncSession,
    request_id: UUID,
) -> StorageRequest:
    """Load a storage request with its company.

    Raises:
        NotFound: If the request does not exist.
    """
    result = await session.execute(
        select(StorageRequest)
        .options(selectinload(StorageRequest.company))
        .where(StorageRequest.id == request_id)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFound("Storage request", request_id)
    return request


async def load_racks_in_order(
    session: AsyncSession,
    rack_ids: Sequence[str],
) -> list[Rack]:
    """Load racks with their area and yard, preserving the caller's order.

    Raises:
        ValidationFailed: If no rack ids are given or ids repeat.
        NotFound: If any rack id is unknown.
    """
    if not rack_ids:
        raise ValidationFailed("At least one rack must be selected")
    duplicates = sorted(rid for rid, count in Counter(rack_ids).items() if count > 1)
    if duplicates:
        raise ValidationFailed(f"Duplicate rack ids: {', '.join(duplicates)}")

    result = await session.execute(
        select(Rack)
        .options(selectinload(Rack.area).selectinload(YardArea.yard))
        .where(Rack.id.in_(list(rack_ids)))
    )
    by_id = {rack.id: rack for rack in result.scalars().all()}

    missing = [rid for rid in rack_ids if rid not in by_id]
    if missing:
        raise NotFound("Rack", ", ".join(missing))

    return [by_id[rid] for rid in rack_ids]


def _snapshot(racks: Sequence[Rack]) -> list[RackSnapshot]:
    return [
        RackSnapshot(
            id=rack.id,
            capacity=rack.capacity,
            occupied=rack.occupied,
            version=rack.version,
        )
        for rack in racks
    ]


def _location(rack: Rack) -> RackLocation:
    return RackLocation(
        rack_id=rack.id,
        rack_name=rack.name,
        area_name=rack.area.name,
        yard_id=rack.area.yard.id,
        yard_name=rack.area.yard.name,
    )


def _company_name(request: StorageRequest) -> str:
    company = getattr(request, "company", None)
    return company.name if company is not None else ""


async def approve_storage_request(
    session: AsyncSession,
    request_id: UUID,
    rack_ids: Sequence[str],
    admin_id: str,
    notes: str | None = None,
    required_joints: int | None = None,
) -> ApprovalResult:
    """Approve a SUBMITTED request and reserve rack capacity for it.

    Args:
        session: Database session (the caller commits or rolls back)
        request_id: Request to approve
        rack_ids: Racks in the order they should be filled
        admin_id: Approving admin
        notes: Optional internal notes
        required_joints: Joints to allocate; defaults to the request's total

    Returns:
        ApprovalResult describing the allocation

    Raises:
        NotFound: Unknown request or rack.
        InvalidStatusTransition: Request is not SUBMITTED.
        ValidationFailed: No racks, duplicate racks or invalid joint count.
        CapacityExceeded: The racks cannot hold every joint.
        MixedYardAllocation: The racks span more than one yard.
        ConcurrentModification: A rack changed after it was read.
    """
    request = await get_storage_request(session, request_id)
    ensure_transition(request.reference_id, request.status, RequestStatus.APPROVED)

    racks = await load_racks_in_order(session, rack_ids)
    yard_ids = sorted({rack.area.yard.id for rack in racks})
    if len(yard_ids) > 1:
        raise MixedYardAllocation(yard_ids)
    snapshots = _snapshot(racks)

    joints = request.total_joints if required_joints is None else required_joints
    try:
        allocation = allocate_joints(joints, request.avg_joint_length_m, snapshots)
    except AllocationInputError as e:
        raise ValidationFailed(str(e)) from e

    if not allocation.is_complete:
        available = total_available(snapshots)
        logger.info(
            "Refusing approval of %s: %d joints required, %d available",
            request.reference_id,
            joints,
            available,
        )
        raise CapacityExceeded(joints, available, list(rack_ids))

    used_ids = [delta.rack_id for delta in allocation.deltas]
    racks_by_id = {rack.id: rack for rack in racks}
    location = build_location_label([_location(racks_by_id[rid]) for rid in used_ids])

    snapshot_by_id = {snap.id: snap for snap in snapshots}
    for delta in allocation.deltas:
        await apply_occupancy_delta(
            session,
            delta.rack_id,
            snapshot_by_id[delta.rack_id].version,
            delta.occupied_delta,
            delta.occupied_meters_delta,
        )

    now = datetime.now(UTC)
    request.status = RequestStatus.APPROVED.value
    request.assigned_rack_ids = used_ids
    request.rack_allocation = {
        delta.rack_id: delta.occupied_delta for delta in allocation.deltas
    }
    request.assigned_location = location
    request.approved_by = admin_id
    request.approved_at = now
    request.admin_notes = notes
    request.updated_at = now

    await record_admin_action(
        session,
        admin_user_id=admin_id,
        action=AuditAction.APPROVE_REQUEST,
        entity_type="storage_request",
        entity_id=str(request.id),
        details={
            "reference_id": request.reference_id,
            "required_joints": joints,
            "rack_ids": used_ids,
            "assigned_location": location,
            "deltas": [delta.to_dict() for delta in allocation.deltas],
            "notes": notes,
        },
        timestamp=now,
    )

    await enqueue_notification(
        session,
        NotificationType.STORAGE_REQUEST_APPROVED,
        {
            "requestId": str(request.id),
            "companyId": str(request.company_id),
            "companyName": _company_name(request),
            "userEmail": request.user_email,
            "referenceId": request.reference_id,
            "assignedLocation": location,
            "assignedRacks": used_ids,
            "requiredJoints": joints,
            "notes": notes,
        },
    )

    deltas_by_id = {delta.rack_id: delta.occupied_delta for delta in allocation.deltas}
    remaining = {
        snap.id: max(0, snap.available) - deltas_by_id.get(snap.id, 0)
        for snap in snapshots
    }

    logger.info(
        "Approved %s by %s: %d joints to %s",
        request.reference_id,
        admin_id,
        joints,
        location,
    )

    return ApprovalResult(
        request_id=request.id,
        company_id=request.company_id,
        reference_id=request.reference_id,
        status=request.status,
        assigned_location=location,
        rack_ids=used_ids,
        deltas=list(allocation.deltas),
        remaining_available=remaining,
        notification_queued=True,
    )


async def reject_storage_request(
    session: AsyncSession,
    request_id: UUID,
    admin_id: str,
    reason: str,
    notes: str | None = None,
) -> RejectionResult:
    """Reject a SUBMITTED request.

    Raises:
        NotFound: Unknown request.
        InvalidStatusTransition: Request is not SUBMITTED.
        ValidationFailed: Empty rejection reason.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("A rejection reason is required")

    request = await get_storage_request(session, request_id)
    ensure_transition(request.reference_id, request.status, RequestStatus.REJECTED)

    now = datetime.now(UTC)
    request.status = RequestStatus.REJECTED.value
    request.rejection_reason = reason
    request.rejected_at = now
    request.admin_notes = notes
    request.updated_at = now

    await record_admin_action(
        session,
        admin_user_id=admin_id,
        action=AuditAction.REJECT_REQUEST,
        entity_type="storage_request",
        entity_id=str(request.id),
        details={
            "reference_id": request.reference_id,
            "reason": reason,
            "notes": notes,
        },
        timestamp=now,
    )

    await enqueue_notification(
        session,
        NotificationType.STORAGE_REQUEST_REJECTED,
        {
            "requestId": str(request.id),
            "companyId": str(request.company_id),
            "companyName": _company_name(request),
            "userEmail": request.user_email,
            "referenceId": request.reference_id,
            "rejectionReason": reason,
        },
    )

    logger.info("Rejected %s by %s: %s", request.reference_id, admin_id, reason)

    return RejectionResult(
        request_id=request.id,
        company_id=request.company_id,
        reference_id=request.reference_id,
        status=request.status,
        rejection_reason=reason,
        notification_queued=True,
    )
