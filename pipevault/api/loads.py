"""FastAPI routes for booked delivery loads."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.api.errors import http_error
from pipevault.api.requests import DeliveryResponse, TruckLoadResponse
from pipevault.database import get_db
from pipevault.services.cache import MutationKind, invalidation_keys
from pipevault.services.errors import PipeVaultError
from pipevault.services.inventory import list_truck_loads
from pipevault.services.loads import (
    LoadUpdate,
    ScheduledLoadInput,
    approve_load,
    complete_load,
    get_truck_load,
    mark_load_in_transit,
    reject_load,
    request_load_correction,
    schedule_delivery_load,
)

router = APIRouter(prefix="/loads", tags=["loads"])


# --- Pydantic Schemas ---


class ScheduleLoadRequest(BaseModel):
    """Request schema for booking a delivery slot."""

    request_id: UUID = Field(description="Storage request the load belongs to")
    scheduled_by: str = Field(description="Who booked the slot")
    trucking_company: str = Field(description="Trucking company")
    driver_name: str = Field(description="Driver name")
    joints_planned: int = Field(gt=0, description="Joints expected on the truck")
    scheduled_slot_start: datetime = Field(description="Slot start")
    scheduled_slot_end: datetime | None = Field(default=None, description="Slot end")
    driver_phone: str | None = Field(default=None, description="Driver phone")
    notes: str | None = Field(default=None, description="Notes")

    def to_input(self) -> ScheduledLoadInput:
        return ScheduledLoadInput(**self.model_dump(exclude={"request_id", "scheduled_by"}))


class LoadActionRequest(BaseModel):
    """Request schema for approving or dispatching a load."""

    admin_id: str = Field(description="ID/email of the admin")


class RejectLoadRequest(BaseModel):
    """Request schema for rejecting a load."""

    admin_id: str = Field(description="ID/email of the rejecting admin")
    reason: str = Field(min_length=1, description="Reason shown to the customer")


class CorrectionRequest(BaseModel):
    """Request schema for asking for manifest corrections."""

    admin_id: str = Field(description="ID/email of the reviewing admin")
    issues: list[str] = Field(min_length=1, description="Problems the customer must fix")


class CompleteLoadRequest(BaseModel):
    """Request schema for receiving an in-transit load."""

    admin_id: str = Field(description="ID/email of the receiving admin")
    joints_received: int | None = Field(
        default=None, gt=0, description="Joints actually on the truck (defaults to booked)"
    )
    arrival_time: datetime | None = Field(default=None, description="Arrival time")
    notes: str | None = Field(default=None, description="Notes")


class LoadMutationResponse(BaseModel):
    """A truck load plus the cache keys the mutation invalidated."""

    load: TruckLoadResponse = Field(description="Updated truck load")
    invalidate: list[str] = Field(description="Client cache keys to refetch")


# --- API Endpoints ---


def _mutation_response(update: LoadUpdate, kind: MutationKind) -> LoadMutationResponse:
    return LoadMutationResponse(
        load=TruckLoadResponse.model_validate(update.load),
        invalidate=list(invalidation_keys(kind, update.company_id)),
    )


@router.post("", response_model=LoadMutationResponse, status_code=201)
async def create_load(
    body: ScheduleLoadRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LoadMutationResponse:
    """Book a delivery slot for an approved request.

    The load starts in NEW and waits for the yard team's review. A request
    can have only one open load at a time.
    """
    try:
        update = await schedule_delivery_load(
            db, body.request_id, body.to_input(), body.scheduled_by
        )
    except PipeVaultError as e:
        raise http_error(e) from e
    return _mutation_response(update, MutationKind.LOAD_SCHEDULED)


@router.get("", response_model=list[TruckLoadResponse])
async def list_loads(
    db: Annotated[AsyncSession, Depends(get_db)],
    status: Annotated[
        str | None,
        Query(description="Filter by status (NEW, APPROVED, IN_TRANSIT, COMPLETED, REJECTED)"),
    ] = None,
    load_type: Annotated[
        str | None, Query(description="Filter by load type (DELIVERY, PICKUP)")
    ] = None,
) -> list[TruckLoadResponse]:
    """List truck loads across requests, newest first."""
    loads = await list_truck_loads(db, load_type=load_type, status=status)
    return [TruckLoadResponse.model_validate(load) for load in loads]


@router.get("/{load_id}", response_model=TruckLoadResponse)
async def get_load(
    load_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TruckLoadResponse:
    try:
        load = await get_truck_load(db, load_id)
    except PipeVaultError as e:
        raise http_error(e) from e
    return TruckLoadResponse.model_validate(load)


@router.post("/{load_id}/approve", response_model=LoadMutationResponse)
async def approve(
    load_id: UUID,
    body: LoadActionRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LoadMutationResponse:
    """Confirm a NEW load's slot and email the customer."""
    try:
        update = await approve_load(db, load_id, body.admin_id)
    except PipeVaultError as e:
        raise http_error(e) from e
    return _mutation_response(update, MutationKind.LOAD_STATUS_CHANGED)


@router.post("/{load_id}/reject", response_model=LoadMutationResponse)
async def reject(
    load_id: UUID,
    body: RejectLoadRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LoadMutationResponse:
    """Refuse a NEW load with a reason shown to the customer."""
    try:
        update = await reject_load(db, load_id, body.admin_id, body.reason)
    except PipeVaultError as e:
        raise http_error(e) from e
    return _mutation_response(update, MutationKind.LOAD_STATUS_CHANGED)


@router.post("/{load_id}/corrections", response_model=LoadMutationResponse)
async def request_corrections(
    load_id: UUID,
    body: CorrectionRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LoadMutationResponse:
    """Ask the customer to fix the load's manifest. The load stays NEW."""
    try:
        update = await request_load_correction(db, load_id, body.admin_id, body.issues)
    except PipeVaultError as e:
        raise http_error(e) from e
    return _mutation_response(update, MutationKind.LOAD_STATUS_CHANGED)


@router.post("/{load_id}/in-transit", response_model=LoadMutationResponse)
async def dispatch(
    load_id: UUID,
    body: LoadActionRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LoadMutationResponse:
    """Mark an APPROVED load as on its way to the yard."""
    try:
        update = await mark_load_in_transit(db, load_id, body.admin_id)
    except PipeVaultError as e:
        raise http_error(e) from e
    return _mutation_response(update, MutationKind.LOAD_STATUS_CHANGED)


@router.post("/{load_id}/complete", response_model=DeliveryResponse)
async def complete(
    load_id: UUID,
    body: CompleteLoadRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DeliveryResponse:
    """Receive an IN_TRANSIT load and place its joints on the reserved racks."""
    try:
        result = await complete_load(
            db,
            load_id,
            body.admin_id,
            joints_received=body.joints_received,
            arrival_time=body.arrival_time,
            notes=body.notes,
        )
    except PipeVaultError as e:
        raise http_error(e) from e

    return DeliveryResponse(
        truck_load_id=result.truck_load_id,
        request_id=result.request_id,
        status=result.status,
        placements=result.placements,
        invalidate=list(invalidation_keys(MutationKind.LOAD_COMPLETED, result.company_id)),
    )
