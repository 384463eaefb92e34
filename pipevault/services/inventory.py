"""Storage requests, deliveries, pickups and shipments.

Rack capacity is reserved when a request is approved. Deliveries place the
arriving joints on the reserved racks without touching rack counters again;
pickups mark joints as gone and release the occupancy they held.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.models.company import Company
from pipevault.models.inventory import Pipe
from pipevault.models.storage_request import StorageRequest
from pipevault.models.truck_load import Shipment, TruckLoad
from pipevault.services.allocation import AllocationResult, RackSnapshot, allocate_joints
from pipevault.services.approval import get_storage_request
from pipevault.services.audit import AuditAction, record_admin_action
from pipevault.services.errors import (
    CapacityExceeded,
    InvalidStatusTransition,
    ValidationFailed,
)
from pipevault.services.lifecycle import (
    LoadStatus,
    LoadType,
    PipeStatus,
    RequestStatus,
    ensure_transition,
)
from pipevault.services.notifications import NotificationType, enqueue_notification
from pipevault.services.racks import release_rack_occupancy

logger = logging.getLogger(__name__)

SHIPMENT_DIRECTIONS = ("INBOUND", "OUTBOUND")
TRUCKING_METHODS = ("CUSTOMER_PROVIDED", "MPS_QUOTE")


@dataclass
class StorageRequestInput:
    """Fields a customer submits with a storage request."""

    user_email: str
    reference_id: str
    item_type: str
    total_joints: int
    avg_joint_length_m: float
    storage_start_date: date
    storage_end_date: date
    grade: str | None = None
    connection: str | None = None
    outer_diameter_in: float | None = None
    weight_lbs_ft: float | None = None
    trucking_info: dict[str, Any] | None = None
    company_name: str | None = None


@dataclass
class TruckLoadInput:
    """Details of a truck arriving or leaving the yard."""

    trucking_company: str
    driver_name: str
    joints_count: int
    recorded_by: str
    driver_phone: str | None = None
    arrival_time: datetime | None = None
    departure_time: datetime | None = None
    assigned_uwi: str | None = None
    assigned_well_name: str | None = None
    notes: str | None = None


@dataclass
class DeliveryResult:
    """Outcome of recording a delivery."""

    truck_load_id: UUID
    request_id: UUID
    company_id: UUID
    status: str
    placements: dict[str, int] = field(default_factory=dict)


@dataclass
class PickupResult:
    """Outcome of recording a pickup."""

    truck_load_id: UUID
    request_id: UUID
    company_id: UUID
    status: str
    joints_picked_up: int
    joints_remaining: int
    released: dict[str, int] = field(default_factory=dict)
    unused_reservation: dict[str, int] = field(default_factory=dict)


def email_domain(email: str) -> str:
    """Return the lower-cased domain of an email address.

    Raises:
        ValidationFailed: If the address has no domain part.
    """
    local, _, domain = (email or "").strip().rpartition("@")
    if not local or not domain or "." not in domain:
        raise ValidationFailed(f"Invalid email address: {email!r}")
    return domain.lower()


async def get_or_create_company(
    session: AsyncSession,
    domain: str,
    name: str | None = None,
) -> Company:
    """Find the company owning an email domain, creating it on first use."""
    result = await session.execute(select(Company).where(Company.domain == domain))
    company = result.scalar_one_or_none()
    if company is not None:
        return company

    company = Company(id=uuid.uuid4(), name=name or domain, domain=domain)
    session.add(company)
    await session.flush()
    logger.info("Created company %s for domain %s", company.name, domain)
    return company


async def create_storage_request(
    session: AsyncSession,
    data: StorageRequestInput,
) -> StorageRequest:
    """Submit a new storage request for the requester's company.

    Raises:
        ValidationFailed: On a bad email, non-positive joints or length,
            or an end date before the start date.
    """
    domain = email_domain(data.user_email)
    if data.total_joints <= 0:
        raise ValidationFailed("total_joints must be positive")
    if data.avg_joint_length_m <= 0:
        raise ValidationFailed("avg_joint_length_m must be positive")
    if data.storage_end_date < data.storage_start_date:
        raise ValidationFailed("storage_end_date must not be before storage_start_date")
    if not data.reference_id.strip():
        raise ValidationFailed("reference_id is required")

    company = await get_or_create_company(session, domain, data.company_name)

    request = StorageRequest(
        id=uuid.uuid4(),
        company_id=company.id,
        user_email=data.user_email.strip(),
        reference_id=data.reference_id.strip(),
        status=RequestStatus.SUBMITTED.value,
        item_type=data.item_type,
        grade=data.grade.upper() if data.grade else None,
        connection=data.connection,
        outer_diameter_in=data.outer_diameter_in,
        weight_lbs_ft=data.weight_lbs_ft,
        avg_joint_length_m=data.avg_joint_length_m,
        total_joints=data.total_joints,
        storage_start_date=data.storage_start_date,
        storage_end_date=data.storage_end_date,
        trucking_info=data.trucking_info,
    )
    session.add(request)
    await session.flush()

    await enqueue_notification(
        session,
        NotificationType.NEW_STORAGE_REQUEST,
        {
            "requestId": str(request.id),
            "companyId": str(company.id),
            "companyName": company.name,
            "userEmail": request.user_email,
            "referenceId": request.reference_id,
            "totalJoints": request.total_joints,
        },
    )

    logger.info(
        "Storage request %s submitted by %s (%d joints)",
        request.reference_id,
        request.user_email,
        request.total_joints,
    )
    return request


async def list_storage_requests(
    session: AsyncSession,
    company_id: UUID | None = None,
    status: str | None = None,
) -> list[StorageRequest]:
    query = select(StorageRequest)
    if company_id:
        query = query.where(StorageRequest.company_id == company_id)
    if status:
        query = query.where(StorageRequest.status == status.upper())
    result = await session.execute(query.order_by(StorageRequest.created_at.desc()))
    return list(result.scalars().all())


async def _delivered_per_rack(session: AsyncSession, request_id: UUID) -> dict[str, int]:
    result = await session.execute(
        select(Pipe.rack_id, func.sum(Pipe.quantity))
        .where(
            Pipe.request_id == request_id,
            Pipe.delivery_truck_load_id.is_not(None),
        )
        .group_by(Pipe.rack_id)
    )
    return {rack_id: int(total or 0) for rack_id, total in result.all()}


def ensure_accepts_delivery(request: StorageRequest) -> None:
    """Check that a request can take delivered joints.

    Raises:
        InvalidStatusTransition: Request is neither APPROVED nor ACTIVE.
    """
    if request.status == RequestStatus.APPROVED.value:
        ensure_transition(request.reference_id, request.status, RequestStatus.ACTIVE)
    elif request.status != RequestStatus.ACTIVE.value:
        raise InvalidStatusTransition(
            request.reference_id, request.status, RequestStatus.ACTIVE.value
        )


async def plan_delivery(
    session: AsyncSession,
    request: StorageRequest,
    joints: int,
) -> AllocationResult:
    """Place ``joints`` on the request's reserved racks without writing.

    Joints fill the request's racks in approval order, each rack up to the
    joints reserved on it minus what earlier deliveries already placed there.

    Raises:
        CapacityExceeded: More joints than remain reserved for the request.
    """
    rack_ids = list(request.assigned_rack_ids or [])
    reserved = request.rack_allocation or {}
    delivered = await _delivered_per_rack(session, request.id)

    snapshots = [
        RackSnapshot(
            id=rack_id,
            capacity=int(reserved.get(rack_id, 0)),
            occupied=min(delivered.get(rack_id, 0), int(reserved.get(rack_id, 0))),
        )
        for rack_id in rack_ids
    ]
    placement = allocate_joints(joints, request.avg_joint_length_m, snapshots)
    if not placement.is_complete:
        raise CapacityExceeded(joints, placement.allocated, rack_ids)
    return placement


def place_delivered_joints(
    session: AsyncSession,
    request: StorageRequest,
    placement: AllocationResult,
    truck_load_id: UUID,
    arrival: datetime,
) -> dict[str, int]:
    """Add one IN_STORAGE batch per rack and move the request to ACTIVE."""
    placements: dict[str, int] = {}
    for delta in placement.deltas:
        session.add(
            Pipe(
                id=uuid.uuid4(),
                company_id=request.company_id,
                request_id=request.id,
                reference_id=request.reference_id,
                pipe_type=request.item_type,
                grade=request.grade,
                outer_diameter_in=request.outer_diameter_in,
                weight_lbs_ft=request.weight_lbs_ft,
                length_m=request.avg_joint_length_m,
                quantity=delta.occupied_delta,
                status=PipeStatus.IN_STORAGE.value,
                rack_id=delta.rack_id,
                drop_off_at=arrival,
                delivery_truck_load_id=truck_load_id,
            )
        )
        placements[delta.rack_id] = delta.occupied_delta

    request.status = RequestStatus.ACTIVE.value
    request.updated_at = datetime.now(UTC)
    return placements


async def record_delivery(
    session: AsyncSession,
    request_id: UUID,
    load: TruckLoadInput,
) -> DeliveryResult:
    """Record an inbound truck and place its joints on the reserved racks.

    Raises:
        NotFound: Unknown request.
        InvalidStatusTransition: Request is neither APPROVED nor ACTIVE.
        ValidationFailed: Non-positive joint count.
        CapacityExceeded: More joints than remain reserved for the request.
    """
    if load.joints_count <= 0:
        raise ValidationFailed("joints_count must be positive")

    request = await get_storage_request(session, request_id)
    ensure_accepts_delivery(request)
    placement = await plan_delivery(session, request, load.joints_count)

    arrival = load.arrival_time or datetime.now(UTC)
    truck_load = TruckLoad(
        id=uuid.uuid4(),
        load_type=LoadType.DELIVERY.value,
        status=LoadStatus.COMPLETED.value,
        trucking_company=load.trucking_company,
        driver_name=load.driver_name,
        driver_phone=load.driver_phone,
        arrival_time=arrival,
        departure_time=load.departure_time,
        joints_count=load.joints_count,
        rack_id=placement.deltas[0].rack_id if placement.deltas else None,
        request_id=request.id,
        notes=load.notes,
        completed_at=arrival,
    )
    session.add(truck_load)

    placements = place_delivered_joints(session, request, placement, truck_load.id, arrival)

    await record_admin_action(
        session,
        admin_user_id=load.recorded_by,
        action=AuditAction.RECORD_DELIVERY,
        entity_type="storage_request",
        entity_id=str(request.id),
        details={
            "truck_load_id": str(truck_load.id),
            "joints": load.joints_count,
            "placements": placements,
        },
    )

    logger.info(
        "Delivery of %d joints recorded for %s",
        load.joints_count,
        request.reference_id,
    )
    return DeliveryResult(
        truck_load_id=truck_load.id,
        request_id=request.id,
        company_id=request.company_id,
        status=request.status,
        placements=placements,
    )


async def request_pickup(
    session: AsyncSession,
    request_id: UUID,
    requested_by: str,
) -> StorageRequest:
    """Move an ACTIVE request to PICKUP_REQUESTED and notify the customer."""
    request = await get_storage_request(session, request_id)
    ensure_transition(
        request.reference_id, request.status, RequestStatus.PICKUP_REQUESTED
    )
    request.status = RequestStatus.PICKUP_REQUESTED.value
    request.updated_at = datetime.now(UTC)

    await enqueue_notification(
        session,
        NotificationType.PICKUP_REQUESTED,
        {
            "requestId": str(request.id),
            "companyId": str(request.company_id),
            "companyName": request.company.name if request.company else "",
            "userEmail": request.user_email,
            "referenceId": request.reference_id,
            "requestedBy": requested_by,
        },
    )
    logger.info("Pickup requested for %s by %s", request.reference_id, requested_by)
    return request


async def _pipes_in_storage(session: AsyncSession, request_id: UUID) -> list[Pipe]:
    result = await session.execute(
        select(Pipe)
        .where(
            Pipe.request_id == request_id,
            Pipe.status == PipeStatus.IN_STORAGE.value,
        )
        .order_by(Pipe.drop_off_at, Pipe.id)
    )
    return list(result.scalars().all())


async def record_pickup(
    session: AsyncSession,
    request_id: UUID,
    load: TruckLoadInput,
) -> PickupResult:
    """Record an outbound truck taking joints to a well.

    Batches are consumed oldest first; a batch larger than what remains to
    pick up is split in two. Rack occupancy is released for every picked
    joint. The request completes once nothing of it is left in storage, and
    any reservation still held for joints that were never delivered is
    released with it.

    Raises:
        NotFound: Unknown request.
        InvalidStatusTransition: Request is not PICKUP_REQUESTED.
        ValidationFailed: Non-positive count, or more joints than in storage.
        ConcurrentModification: A rack changed while releasing occupancy.
    """
    if load.joints_count <= 0:
        raise ValidationFailed("joints_count must be positive")

    request = await get_storage_request(session, request_id)
    if request.status != RequestStatus.PICKUP_REQUESTED.value:
        raise InvalidStatusTransition(
            request.reference_id, request.status, RequestStatus.COMPLETED.value
        )

    pipes = await _pipes_in_storage(session, request.id)
    in_storage = sum(pipe.quantity for pipe in pipes)
    if load.joints_count > in_storage:
        raise ValidationFailed(
            f"Cannot pick up {load.joints_count} joints; {in_storage} in storage"
        )

    departure = load.departure_time or datetime.now(UTC)
    truck_load = TruckLoad(
        id=uuid.uuid4(),
        load_type=LoadType.PICKUP.value,
        status=LoadStatus.COMPLETED.value,
        trucking_company=load.trucking_company,
        driver_name=load.driver_name,
        driver_phone=load.driver_phone,
        arrival_time=load.arrival_time or departure,
        departure_time=departure,
        joints_count=load.joints_count,
        rack_id=pipes[0].rack_id if pipes else None,
        request_id=request.id,
        assigned_uwi=load.assigned_uwi,
        assigned_well_name=load.assigned_well_name,
        notes=load.notes,
        completed_at=departure,
    )
    session.add(truck_load)

    remaining = load.joints_count
    released_joints: dict[str, int] = defaultdict(int)
    released_meters: dict[str, float] = defaultdict(float)

    for pipe in pipes:
        if remaining <= 0:
            break
        take = min(remaining, pipe.quantity)
        if take < pipe.quantity:
            pipe.quantity -= take
            picked = Pipe(
                id=uuid.uuid4(),
                company_id=pipe.company_id,
                request_id=pipe.request_id,
                reference_id=pipe.reference_id,
                pipe_type=pipe.pipe_type,
                grade=pipe.grade,
                outer_diameter_in=pipe.outer_diameter_in,
                weight_lbs_ft=pipe.weight_lbs_ft,
                length_m=pipe.length_m,
                quantity=take,
                rack_id=pipe.rack_id,
                drop_off_at=pipe.drop_off_at,
                delivery_truck_load_id=pipe.delivery_truck_load_id,
            )
            session.add(picked)
        else:
            picked = pipe

        picked.status = PipeStatus.PICKED_UP.value
        picked.pickup_at = departure
        picked.assigned_uwi = load.assigned_uwi
        picked.assigned_well_name = load.assigned_well_name
        picked.pickup_truck_load_id = truck_load.id

        if pipe.rack_id:
            released_joints[pipe.rack_id] += take
            released_meters[pipe.rack_id] += take * pipe.length_m
        remaining -= take

    joints_remaining = in_storage - load.joints_count
    target = RequestStatus.COMPLETED if joints_remaining == 0 else RequestStatus.ACTIVE

    # Reservation for joints that never arrived is freed when the request closes
    unused_reservation: dict[str, int] = {}
    if target is RequestStatus.COMPLETED:
        delivered = await _delivered_per_rack(session, request.id)
        for rack_id, reserved in (request.rack_allocation or {}).items():
            undelivered = int(reserved) - delivered.get(rack_id, 0)
            if undelivered > 0:
                unused_reservation[rack_id] = undelivered

    to_release: dict[str, int] = defaultdict(int, released_joints)
    to_release_meters: dict[str, float] = defaultdict(float, released_meters)
    for rack_id, joints in unused_reservation.items():
        to_release[rack_id] += joints
        to_release_meters[rack_id] += joints * request.avg_joint_length_m

    for rack_id, joints in to_release.items():
        await release_rack_occupancy(
            session, rack_id, joints, round(to_release_meters[rack_id], 3)
        )

    request.status = ensure_transition(request.reference_id, request.status, target).value
    request.updated_at = datetime.now(UTC)

    await record_admin_action(
        session,
        admin_user_id=load.recorded_by,
        action=AuditAction.RECORD_PICKUP,
        entity_type="storage_request",
        entity_id=str(request.id),
        details={
            "truck_load_id": str(truck_load.id),
            "joints": load.joints_count,
            "assigned_uwi": load.assigned_uwi,
            "released": dict(released_joints),
            "unused_reservation": unused_reservation,
        },
    )

    logger.info(
        "Pickup of %d joints recorded for %s (%d remain)",
        load.joints_count,
        request.reference_id,
        joints_remaining,
    )
    return PickupResult(
        truck_load_id=truck_load.id,
        request_id=request.id,
        company_id=request.company_id,
        status=request.status,
        joints_picked_up=load.joints_count,
        joints_remaining=joints_remaining,
        released=dict(released_joints),
        unused_reservation=unused_reservation,
    )


async def list_inventory(
    session: AsyncSession,
    company_id: UUID | None = None,
    status: str | None = None,
    reference_id: str | None = None,
) -> list[Pipe]:
    """List pipe batches, optionally filtered."""
    query = select(Pipe)
    if company_id:
        query = query.where(Pipe.company_id == company_id)
    if status:
        query = query.where(Pipe.status == status.upper())
    if reference_id:
        query = query.where(Pipe.reference_id == reference_id)
    result = await session.execute(query.order_by(Pipe.reference_id, Pipe.drop_off_at))
    return list(result.scalars().all())


async def list_truck_loads(
    session: AsyncSession,
    request_id: UUID | None = None,
    load_type: str | None = None,
    status: str | None = None,
) -> list[TruckLoad]:
    query = select(TruckLoad)
    if request_id:
        query = query.where(TruckLoad.request_id == request_id)
    if load_type:
        query = query.where(TruckLoad.load_type == load_type.upper())
    if status:
        query = query.where(TruckLoad.status == status.upper())
    result = await session.execute(query.order_by(TruckLoad.arrival_time.desc()))
    return list(result.scalars().all())


async def record_shipment(
    session: AsyncSession,
    request_id: UUID,
    trucking_method: str,
    direction: str = "INBOUND",
    estimated_joint_count: int | None = None,
    notes: str | None = None,
) -> Shipment:
    """Append a shipment entry to a request's logistics log."""
    direction = direction.upper()
    trucking_method = trucking_method.upper()
    if direction not in SHIPMENT_DIRECTIONS:
        raise ValidationFailed(f"direction must be one of {', '.join(SHIPMENT_DIRECTIONS)}")
    if trucking_method not in TRUCKING_METHODS:
        raise ValidationFailed(
            f"trucking_method must be one of {', '.join(TRUCKING_METHODS)}"
        )
    if estimated_joint_count is not None and estimated_joint_count <= 0:
        raise ValidationFailed("estimated_joint_count must be positive")

    request = await get_storage_request(session, request_id)
    shipment = Shipment(
        id=uuid.uuid4(),
        request_id=request.id,
        company_id=request.company_id,
        direction=direction,
        trucking_method=trucking_method,
        estimated_joint_count=estimated_joint_count,
        notes=notes,
    )
    session.add(shipment)
    await session.flush()
    return shipment


async def list_shipments(
    session: AsyncSession,
    request_id: UUID | None = None,
    company_id: UUID | None = None,
) -> list[Shipment]:
    query = select(Shipment)
    if request_id:
        query = query.where(Shipment.request_id == request_id)
    if company_id:
        query = query.where(Shipment.company_id == company_id)
    result = await session.execute(query.order_by(Shipment.created_at.desc()))
    return list(result.scalars().all())
