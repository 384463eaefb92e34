"""FastAPI routes for storage requests, approvals and truck loads."""

from datetime import date, datetime
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.api.errors import http_error
from pipevault.database import get_db
from pipevault.services.approval import (
    approve_storage_request,
    get_storage_request,
    reject_storage_request,
)
from pipevault.services.cache import MutationKind, invalidation_keys
from pipevault.services.errors import PipeVaultError
from pipevault.services.inventory import (
    StorageRequestInput,
    TruckLoadInput,
    create_storage_request,
    list_storage_requests,
    list_truck_loads,
    record_delivery,
    record_pickup,
    request_pickup,
)

router = APIRouter(prefix="/requests", tags=["requests"])


# --- Pydantic Schemas ---


class StorageRequestCreate(BaseModel):
    """Request schema for submitting a storage request."""

    user_email: str = Field(description="Requester email (company is derived from its domain)")
    reference_id: str = Field(min_length=1, description="Customer project reference")
    item_type: str = Field(description="Pipe type (e.g., Casing, Tubing, Drill Pipe)")
    total_joints: int = Field(gt=0, description="Number of joints to store")
    avg_joint_length_m: float = Field(gt=0, description="Average joint length in meters")
    storage_start_date: date = Field(description="Desired storage start")
    storage_end_date: date = Field(description="Desired storage end")
    grade: str | None = Field(default=None, description="Steel grade")
    connection: str | None = Field(default=None, description="Connection type")
    outer_diameter_in: float | None = Field(default=None, gt=0, description="OD in inches")
    weight_lbs_ft: float | None = Field(default=None, gt=0, description="Weight per foot")
    trucking_info: dict[str, Any] | None = Field(default=None, description="Trucking details")
    company_name: str | None = Field(default=None, description="Company name for new domains")


class StorageRequestResponse(BaseModel):
    """Response schema for a storage request."""

    id: UUID = Field(description="Request UUID")
    company_id: UUID = Field(description="Owning company UUID")
    user_email: str = Field(description="Requester email")
    reference_id: str = Field(description="Customer project reference")
    status: str = Field(description="Lifecycle status")
    item_type: str = Field(description="Pipe type")
    grade: str | None = Field(description="Steel grade")
    connection: str | None = Field(description="Connection type")
    outer_diameter_in: float | None = Field(description="OD in inches")
    weight_lbs_ft: float | None = Field(description="Weight per foot")
    avg_joint_length_m: float = Field(description="Average joint length in meters")
    total_joints: int = Field(description="Number of joints")
    total_length_m: float = Field(description="Total length in meters")
    storage_start_date: date = Field(description="Storage start")
    storage_end_date: date = Field(description="Storage end")
    assigned_location: str | None = Field(description="Assigned location label")
    assigned_rack_ids: list[str] | None = Field(description="Assigned racks in fill order")
    rack_allocation: dict[str, int] | None = Field(description="Joints reserved per rack")
    admin_notes: str | None = Field(description="Admin notes")
    rejection_reason: str | None = Field(description="Rejection reason")
    approved_by: str | None = Field(description="Approving admin")
    approved_at: datetime | None = Field(description="Approval time")
    rejected_at: datetime | None = Field(description="Rejection time")
    created_at: datetime = Field(description="Submission time")

    model_config = {"from_attributes": True}


class StorageRequestMutationResponse(BaseModel):
    """A storage request plus the cache keys the mutation invalidated."""

    request: StorageRequestResponse = Field(description="Updated storage request")
    invalidate: list[str] = Field(description="Client cache keys to refetch")


class ApproveRequest(BaseModel):
    """Request schema for approving a storage request."""

    rack_ids: list[str] = Field(min_length=1, description="Racks in fill order")
    admin_id: str = Field(description="ID/email of the approving admin")
    notes: str | None = Field(default=None, description="Internal notes")
    required_joints: int | None = Field(
        default=None, gt=0, description="Joints to allocate (defaults to the request total)"
    )


class OccupancyDeltaResponse(BaseModel):
    """Occupancy change applied to one rack."""

    rack_id: str = Field(description="Rack ID")
    occupied_delta: int = Field(description="Joints added")
    occupied_meters_delta: float = Field(description="Meters added")


class ApprovalResponse(BaseModel):
    """Response schema for an approval."""

    request_id: UUID = Field(description="Request UUID")
    reference_id: str = Field(description="Customer project reference")
    status: str = Field(description="New status")
    assigned_location: str = Field(description="Assigned location label")
    rack_ids: list[str] = Field(description="Racks that received joints")
    deltas: list[OccupancyDeltaResponse] = Field(description="Per-rack deltas")
    remaining_available: dict[str, int] = Field(description="Joints still free per rack")
    notification_queued: bool = Field(description="Whether the customer will be emailed")
    invalidate: list[str] = Field(description="Client cache keys to refetch")


class RejectRequest(BaseModel):
    """Request schema for rejecting a storage request."""

    admin_id: str = Field(description="ID/email of the rejecting admin")
    reason: str = Field(min_length=1, description="Reason shown to the customer")
    notes: str | None = Field(default=None, description="Internal notes")


class RejectionResponse(BaseModel):
    """Response schema for a rejection."""

    request_id: UUID = Field(description="Request UUID")
    reference_id: str = Field(description="Customer project reference")
    status: str = Field(description="New status")
    rejection_reason: str = Field(description="Reason given")
    notification_queued: bool = Field(description="Whether the customer will be emailed")
    invalidate: list[str] = Field(description="Client cache keys to refetch")


class TruckLoadRequest(BaseModel):
    """Request schema for recording a truck load."""

    trucking_company: str = Field(description="Trucking company")
    driver_name: str = Field(description="Driver name")
    joints_count: int = Field(gt=0, description="Joints on the truck")
    recorded_by: str = Field(description="Yard staff recording the load")
    driver_phone: str | None = Field(default=None, description="Driver phone")
    arrival_time: datetime | None = Field(default=None, description="Arrival time")
    departure_time: datetime | None = Field(default=None, description="Departure time")
    assigned_uwi: str | None = Field(default=None, description="Destination well UWI")
    assigned_well_name: str | None = Field(default=None, description="Destination well name")
    notes: str | None = Field(default=None, description="Notes")

    def to_input(self) -> TruckLoadInput:
        return TruckLoadInput(**self.model_dump())


class DeliveryResponse(BaseModel):
    """Response schema for a recorded delivery."""

    truck_load_id: UUID = Field(description="Truck load UUID")
    request_id: UUID = Field(description="Request UUID")
    status: str = Field(description="Request status after delivery")
    placements: dict[str, int] = Field(description="Joints placed per rack")
    invalidate: list[str] = Field(description="Client cache keys to refetch")


class PickupRequestBody(BaseModel):
    """Request schema for asking for a pickup."""

    requested_by: str = Field(description="Who requested the pickup")


class PickupResponse(BaseModel):
    """Response schema for a recorded pickup."""

    truck_load_id: UUID = Field(description="Truck load UUID")
    request_id: UUID = Field(description="Request UUID")
    status: str = Field(description="Request status after pickup")
    joints_picked_up: int = Field(description="Joints that left the yard")
    joints_remaining: int = Field(description="Joints still in storage")
    released: dict[str, int] = Field(description="Joints released per rack")
    unused_reservation: dict[str, int] = Field(
        default_factory=dict,
        description="Reserved joints never delivered, released on completion",
    )
    invalidate: list[str] = Field(description="Client cache keys to refetch")


class TruckLoadResponse(BaseModel):
    """Response schema for a truck load."""

    id: UUID = Field(description="Truck load UUID")
    load_type: str = Field(description="DELIVERY or PICKUP")
    status: str | None = Field(default=None, description="Booking status")
    sequence_number: int | None = Field(default=None, description="Load number within the request")
    trucking_company: str = Field(description="Trucking company")
    driver_name: str = Field(description="Driver name")
    driver_phone: str | None = Field(description="Driver phone")
    arrival_time: datetime = Field(description="Arrival time, or booked slot start")
    scheduled_slot_end: datetime | None = Field(default=None, description="Booked slot end")
    departure_time: datetime | None = Field(description="Departure time")
    joints_count: int = Field(description="Joints on the truck")
    rack_id: str | None = Field(description="First rack touched")
    assigned_uwi: str | None = Field(description="Destination well UWI")
    assigned_well_name: str | None = Field(description="Destination well name")
    notes: str | None = Field(description="Notes")
    rejection_reason: str | None = Field(default=None, description="Why the booking was refused")
    correction_issues: list[str] | None = Field(
        default=None, description="Manifest problems to fix"
    )
    completed_at: datetime | None = Field(default=None, description="When the load was received")

    model_config = {"from_attributes": True}


# --- API Endpoints ---


@router.post("", response_model=StorageRequestMutationResponse, status_code=201)
async def submit_storage_request(
    body: StorageRequestCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> StorageRequestMutationResponse:
    """Submit a new storage request.

    The requesting company is looked up by the email's domain and created on
    first use. The request starts in SUBMITTED and the customer receives a
    confirmation email.
    """
    try:
        request = await create_storage_request(db, StorageRequestInput(**body.model_dump()))
    except PipeVaultError as e:
        raise http_error(e) from e

    return StorageRequestMutationResponse(
        request=StorageRequestResponse.model_validate(request),
        invalidate=list(
            invalidation_keys(MutationKind.REQUEST_SUBMITTED, request.company_id)
        ),
    )


@router.get("", response_model=list[StorageRequestResponse])
async def get_storage_requests(
    db: Annotated[AsyncSession, Depends(get_db)],
    company_id: Annotated[UUID | None, Query(description="Filter by company")] = None,
    status: Annotated[str | None, Query(description="Filter by status")] = None,
) -> list[StorageRequestResponse]:
    """List storage requests, newest first."""
    requests = await list_storage_requests(db, company_id=company_id, status=status)
    return [StorageRequestResponse.model_validate(r) for r in requests]


@router.get("/{request_id}", response_model=StorageRequestResponse)
async def get_storage_request_by_id(
    request_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> StorageRequestResponse:
    """Get a storage request by ID."""
    try:
        request = await get_storage_request(db, request_id)
    except PipeVaultError as e:
        raise http_error(e) from e
    return StorageRequestResponse.model_validate(request)


@router.post("/{request_id}/approve", response_model=ApprovalResponse)
async def approve_request(
    request_id: UUID,
    body: ApproveRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApprovalResponse:
    """Approve a submitted request and assign racks.

    Joints fill the racks in the given order. The approval is refused with
    409 when the racks lack capacity or changed concurrently (retry with a
    fresh rack listing), and with 422 when the racks span several yards.
    """
    try:
        result = await approve_storage_request(
            db,
            request_id,
            body.rack_ids,
            admin_id=body.admin_id,
            notes=body.notes,
            required_joints=body.required_joints,
        )
    except PipeVaultError as e:
        raise http_error(e) from e

    return ApprovalResponse(
        request_id=result.request_id,
        reference_id=result.reference_id,
        status=result.status,
        assigned_location=result.assigned_location,
        rack_ids=result.rack_ids,
        deltas=[OccupancyDeltaResponse(**delta.to_dict()) for delta in result.deltas],
        remaining_available=result.remaining_available,
        notification_queued=result.notification_queued,
        invalidate=list(
            invalidation_keys(MutationKind.REQUEST_APPROVED, result.company_id)
        ),
    )


@router.post("/{request_id}/reject", response_model=RejectionResponse)
async def reject_request(
    request_id: UUID,
    body: RejectRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RejectionResponse:
    """Reject a submitted request with a reason for the customer."""
    try:
        result = await reject_storage_request(
            db,
            request_id,
            admin_id=body.admin_id,
            reason=body.reason,
            notes=body.notes,
        )
    except PipeVaultError as e:
        raise http_error(e) from e

    return RejectionResponse(
        request_id=result.request_id,
        reference_id=result.reference_id,
        status=result.status,
        rejection_reason=result.rejection_reason,
        notification_queued=result.notification_queued,
        invalidate=list(
            invalidation_keys(MutationKind.REQUEST_REJECTED, result.company_id)
        ),
    )


@router.post("/{request_id}/deliveries", response_model=DeliveryResponse, status_code=201)
async def create_delivery(
    request_id: UUID,
    body: TruckLoadRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DeliveryResponse:
    """Record a delivery truck and place its joints on the reserved racks."""
    try:
        result = await record_delivery(db, request_id, body.to_input())
    except PipeVaultError as e:
        raise http_error(e) from e

    return DeliveryResponse(
        truck_load_id=result.truck_load_id,
        request_id=result.request_id,
        status=result.status,
        placements=result.placements,
        invalidate=list(
            invalidation_keys(MutationKind.DELIVERY_RECORDED, result.company_id)
        ),
    )


@router.post("/{request_id}/pickup-request", response_model=StorageRequestMutationResponse)
async def create_pickup_request(
    request_id: UUID,
    body: PickupRequestBody,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> StorageRequestMutationResponse:
    """Ask for the stored joints of an active request to be picked up."""
    try:
        request = await request_pickup(db, request_id, body.requested_by)
    except PipeVaultError as e:
        raise http_error(e) from e

    return StorageRequestMutationResponse(
        request=StorageRequestResponse.model_validate(request),
        invalidate=list(
            invalidation_keys(MutationKind.PICKUP_REQUESTED, request.company_id)
        ),
    )


@router.post("/{request_id}/pickups", response_model=PickupResponse, status_code=201)
async def create_pickup(
    request_id: UUID,
    body: TruckLoadRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PickupResponse:
    """Record a pickup truck leaving with joints for a well."""
    try:
        result = await record_pickup(db, request_id, body.to_input())
    except PipeVaultError as e:
        raise http_error(e) from e

    return PickupResponse(
        truck_load_id=result.truck_load_id,
        request_id=result.request_id,
        status=result.status,
        joints_picked_up=result.joints_picked_up,
        joints_remaining=result.joints_remaining,
        released=result.released,
        unused_reservation=result.unused_reservation,
        invalidate=list(
            invalidation_keys(MutationKind.PICKUP_RECORDED, result.company_id)
        ),
    )


@router.get("/{request_id}/truck-loads", response_model=list[TruckLoadResponse])
async def get_truck_loads(
    request_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    load_type: Annotated[
        str | None, Query(description="Filter by load type (DELIVERY, PICKUP)")
    ] = None,
) -> list[TruckLoadResponse]:
    """List the truck loads of a request, newest first."""
    loads = await list_truck_loads(db, request_id=request_id, load_type=load_type)
    if not loads:
        try:
            await get_storage_request(db, request_id)
        except PipeVaultError as e:
            raise http_error(e) from e
    return [TruckLoadResponse.model_validate(load) for load in loads]
