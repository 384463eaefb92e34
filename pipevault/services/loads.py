"""Booked delivery loads and their review workflow.

A customer books a delivery slot for part of an approved request. The yard
team then walks the load through its lifecycle:

1. NEW: booked and waiting for review. The admin may ask for manifest
   corrections, which keeps the load in NEW.
2. APPROVED or REJECTED: the slot is confirmed, or refused with a reason.
3. IN_TRANSIT: the truck has left for the yard.
4. COMPLETED: the truck arrived and its joints are placed on the request's
   reserved racks exactly like a walk-in delivery.

Only one load per request may be open (NEW, APPROVED or IN_TRANSIT) at a
time, so each booking can be checked against the reservation that is left.
Every step writes an audit row, and each review step queues a customer
notification.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.models.storage_request import StorageRequest
from pipevault.models.truck_load import TruckLoad
from pipevault.services.approval import get_storage_request
from pipevault.services.audit import AuditAction, record_admin_action
from pipevault.services.errors import InvalidStatusTransition, NotFound, ValidationFailed
from pipevault.services.inventory import (
    DeliveryResult,
    ensure_accepts_delivery,
    place_delivered_joints,
    plan_delivery,
)
from pipevault.services.lifecycle import LoadStatus, LoadType, ensure_load_transition
from pipevault.services.notifications import NotificationType, enqueue_notification

logger = logging.getLogger(__name__)

OPEN_LOAD_STATUSES = frozenset(
    {LoadStatus.NEW.value, LoadStatus.APPROVED.value, LoadStatus.IN_TRANSIT.value}
)


@dataclass
class ScheduledLoadInput:
    """A delivery slot booked by the customer."""

    trucking_company: str
    driver_name: str
    joints_planned: int
    scheduled_slot_start: datetime
    scheduled_slot_end: datetime | None = None
    driver_phone: str | None = None
    notes: str | None = None


@dataclass
class LoadUpdate:
    """A truck load after a workflow step, with the company it belongs to."""

    load: TruckLoad
    company_id: UUID


async def get_truck_load(session: AsyncSession, load_id: UUID) -> TruckLoad:
    """Load a truck load by id.

    Raises:
        NotFound: If the load does not exist.
    """
    result = await session.execute(select(TruckLoad).where(TruckLoad.id == load_id))
    load = result.scalar_one_or_none()
    if load is None:
        raise NotFound("Truck load", load_id)
    return load


def _load_payload(load: TruckLoad, request: StorageRequest) -> dict[str, Any]:
    return {
        "requestId": str(request.id),
        "companyId": str(request.company_id),
        "companyName": request.company.name if request.company else "",
        "userEmail": request.user_email,
        "referenceId": request.reference_id,
        "loadId": str(load.id),
        "loadNumber": load.sequence_number,
    }


def _format_slot(load: TruckLoad) -> str:
    slot = load.arrival_time.strftime("%Y-%m-%d %H:%M")
    if load.scheduled_slot_end:
        slot += load.scheduled_slot_end.strftime("-%H:%M")
    return slot


async def schedule_delivery_load(
    session: AsyncSession,
    request_id: UUID,
    data: ScheduledLoadInput,
    scheduled_by: str,
) -> LoadUpdate:
    """Book a delivery slot for an approved or active request.

    Raises:
        ValidationFailed: Non-positive joints, a slot ending before it
            starts, or another load of the request still open.
        NotFound: Unknown request.
        InvalidStatusTransition: Request is neither APPROVED nor ACTIVE.
        CapacityExceeded: More joints than remain reserved for the request.
    """
    if data.joints_planned <= 0:
        raise ValidationFailed("joints_planned must be positive")
    if data.scheduled_slot_end and data.scheduled_slot_end < data.scheduled_slot_start:
        raise ValidationFailed("scheduled_slot_end must not be before scheduled_slot_start")

    request = await get_storage_request(session, request_id)
    ensure_accepts_delivery(request)

    result = await session.execute(
        select(TruckLoad.status).where(
            TruckLoad.request_id == request.id,
            TruckLoad.load_type == LoadType.DELIVERY.value,
        )
    )
    statuses = list(result.scalars().all())
    if any(status in OPEN_LOAD_STATUSES for status in statuses):
        raise ValidationFailed(
            f"Request {request.reference_id} already has an open delivery load"
        )

    await plan_delivery(session, request, data.joints_planned)

    load = TruckLoad(
        id=uuid.uuid4(),
        load_type=LoadType.DELIVERY.value,
        status=LoadStatus.NEW.value,
        sequence_number=len(statuses) + 1,
        trucking_company=data.trucking_company,
        driver_name=data.driver_name,
        driver_phone=data.driver_phone,
        arrival_time=data.scheduled_slot_start,
        scheduled_slot_end=data.scheduled_slot_end,
        joints_count=data.joints_planned,
        request_id=request.id,
        notes=data.notes,
    )
    session.add(load)

    await record_admin_action(
        session,
        admin_user_id=scheduled_by,
        action=AuditAction.SCHEDULE_LOAD,
        entity_type="truck_load",
        entity_id=str(load.id),
        details={
            "request_id": str(request.id),
            "load_number": load.sequence_number,
            "joints_planned": data.joints_planned,
        },
    )
    logger.info(
        "Load #%d booked for %s (%d joints)",
        load.sequence_number,
        request.reference_id,
        data.joints_planned,
    )
    return LoadUpdate(load=load, company_id=request.company_id)


async def _load_with_request(
    session: AsyncSession,
    load_id: UUID,
) -> tuple[TruckLoad, StorageRequest]:
    load = await get_truck_load(session, load_id)
    if load.request_id is None:
        raise ValidationFailed(f"Truck load {load_id} is not linked to a storage request")
    request = await get_storage_request(session, load.request_id)
    return load, request


async def approve_load(
    session: AsyncSession,
    load_id: UUID,
    admin_id: str,
) -> LoadUpdate:
    """Confirm a booked slot (NEW -> APPROVED) and tell the customer."""
    load, request = await _load_with_request(session, load_id)
    load.status = ensure_load_transition(load.id, load.status, LoadStatus.APPROVED).value

    await record_admin_action(
        session,
        admin_user_id=admin_id,
        action=AuditAction.APPROVE_LOAD,
        entity_type="truck_load",
        entity_id=str(load.id),
        details={"request_id": str(request.id), "load_number": load.sequence_number},
    )
    await enqueue_notification(
        session,
        NotificationType.LOAD_APPROVED,
        {**_load_payload(load, request), "scheduledSlot": _format_slot(load)},
    )
    logger.info(
        "Load #%s of %s approved by %s", load.sequence_number, request.reference_id, admin_id
    )
    return LoadUpdate(load=load, company_id=request.company_id)


async def reject_load(
    session: AsyncSession,
    load_id: UUID,
    admin_id: str,
    reason: str,
) -> LoadUpdate:
    """Refuse a booked slot (NEW -> REJECTED) with a reason.

    Raises:
        ValidationFailed: Blank reason.
        NotFound: Unknown load.
        InvalidStatusTransition: Load is not NEW.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("A rejection reason is required")

    load, request = await _load_with_request(session, load_id)
    load.status = ensure_load_transition(load.id, load.status, LoadStatus.REJECTED).value
    load.rejection_reason = reason

    await record_admin_action(
        session,
        admin_user_id=admin_id,
        action=AuditAction.REJECT_LOAD,
        entity_type="truck_load",
        entity_id=str(load.id),
        details={"request_id": str(request.id), "reason": reason},
    )
    await enqueue_notification(
        session,
        NotificationType.LOAD_REJECTED,
        {**_load_payload(load, request), "rejectionReason": reason},
    )
    logger.info(
        "Load #%s of %s rejected: %s", load.sequence_number, request.reference_id, reason
    )
    return LoadUpdate(load=load, company_id=request.company_id)


async def request_load_correction(
    session: AsyncSession,
    load_id: UUID,
    admin_id: str,
    issues: list[str],
) -> LoadUpdate:
    """Ask the customer to fix the manifest of a NEW load.

    The load stays NEW so it can be approved once the manifest is fixed.

    Raises:
        ValidationFailed: No issue given.
        NotFound: Unknown load.
        InvalidStatusTransition: Load is past review.
    """
    cleaned = [issue.strip() for issue in issues if issue and issue.strip()]
    if not cleaned:
        raise ValidationFailed("At least one manifest issue is required")

    load, request = await _load_with_request(session, load_id)
    if load.status != LoadStatus.NEW.value:
        raise InvalidStatusTransition(
            str(load.id), load.status, LoadStatus.NEW.value, entity="Truck load"
        )
    load.correction_issues = cleaned
    load.correction_requested_at = datetime.now(UTC)

    await record_admin_action(
        session,
        admin_user_id=admin_id,
        action=AuditAction.REQUEST_LOAD_CORRECTION,
        entity_type="truck_load",
        entity_id=str(load.id),
        details={"request_id": str(request.id), "issues": cleaned},
    )
    await enqueue_notification(
        session,
        NotificationType.MANIFEST_CORRECTION_NEEDED,
        {**_load_payload(load, request), "issues": cleaned},
    )
    return LoadUpdate(load=load, company_id=request.company_id)


async def mark_load_in_transit(
    session: AsyncSession,
    load_id: UUID,
    admin_id: str,
) -> LoadUpdate:
    """Record that the truck has left for the yard (APPROVED -> IN_TRANSIT)."""
    load, request = await _load_with_request(session, load_id)
    load.status = ensure_load_transition(load.id, load.status, LoadStatus.IN_TRANSIT).value

    await record_admin_action(
        session,
        admin_user_id=admin_id,
        action=AuditAction.MARK_LOAD_IN_TRANSIT,
        entity_type="truck_load",
        entity_id=str(load.id),
        details={"request_id": str(request.id)},
    )
    eta = load.scheduled_slot_end or load.arrival_time
    await enqueue_notification(
        session,
        NotificationType.LOAD_IN_TRANSIT,
        {**_load_payload(load, request), "eta": eta.strftime("%Y-%m-%d %H:%M")},
    )
    return LoadUpdate(load=load, company_id=request.company_id)


async def complete_load(
    session: AsyncSession,
    load_id: UUID,
    admin_id: str,
    joints_received: int | None = None,
    arrival_time: datetime | None = None,
    notes: str | None = None,
) -> DeliveryResult:
    """Receive an in-transit load and place its joints on the reserved racks.

    Args:
        session: Database session
        load_id: Load to receive
        admin_id: Who received it
        joints_received: Joints actually on the truck (defaults to the booked count)
        arrival_time: When the truck arrived (defaults to now)
        notes: Replaces the booking notes when given

    Raises:
        NotFound: Unknown load or request.
        InvalidStatusTransition: Load is not IN_TRANSIT, or the request no
            longer takes deliveries.
        ValidationFailed: Non-positive joint count.
        CapacityExceeded: More joints than remain reserved for the request.
    """
    if joints_received is not None and joints_received <= 0:
        raise ValidationFailed("joints_received must be positive")

    load, request = await _load_with_request(session, load_id)
    ensure_load_transition(load.id, load.status, LoadStatus.COMPLETED)
    ensure_accepts_delivery(request)

    joints = joints_received if joints_received is not None else load.joints_count
    placement = await plan_delivery(session, request, joints)

    arrival = arrival_time or datetime.now(UTC)
    placements = place_delivered_joints(session, request, placement, load.id, arrival)

    load.status = LoadStatus.COMPLETED.value
    load.joints_count = joints
    load.arrival_time = arrival
    load.completed_at = arrival
    load.rack_id = placement.deltas[0].rack_id if placement.deltas else None
    if notes is not None:
        load.notes = notes

    await record_admin_action(
        session,
        admin_user_id=admin_id,
        action=AuditAction.COMPLETE_LOAD,
        entity_type="truck_load",
        entity_id=str(load.id),
        details={
            "request_id": str(request.id),
            "joints": joints,
            "placements": placements,
        },
    )
    await enqueue_notification(
        session,
        NotificationType.LOAD_COMPLETED,
        {**_load_payload(load, request), "jointsReceived": joints},
    )
    logger.info(
        "Load #%s of %s received: %d joints",
        load.sequence_number,
        request.reference_id,
        joints,
    )
    return DeliveryResult(
        truck_load_id=load.id,
        request_id=request.id,
        company_id=request.company_id,
        status=request.status,
        placements=placements,
    )
