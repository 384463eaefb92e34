"""FastAPI routes for stored pipe and shipments."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.api.errors import http_error
from pipevault.database import get_db
from pipevault.services.errors import PipeVaultError
from pipevault.services.inventory import list_inventory, list_shipments, record_shipment

router = APIRouter(prefix="/inventory", tags=["inventory"])


# --- Pydantic Schemas ---


class PipeResponse(BaseModel):
    """Response schema for a batch of stored joints."""

    id: UUID = Field(description="Batch UUID")
    company_id: UUID = Field(description="Owning company UUID")
    request_id: UUID | None = Field(description="Storage request UUID")
    reference_id: str = Field(description="Customer project reference")
    pipe_type: str = Field(description="Pipe type")
    grade: str | None = Field(description="Steel grade")
    outer_diameter_in: float | None = Field(description="OD in inches")
    weight_lbs_ft: float | None = Field(description="Weight per foot")
    length_m: float = Field(description="Average joint length in meters")
    quantity: int = Field(description="Joints in the batch")
    total_length_m: float = Field(description="Total length in meters")
    status: str = Field(description="PENDING_DELIVERY, IN_STORAGE, PICKED_UP or IN_TRANSIT")
    rack_id: str | None = Field(description="Rack holding the batch")
    drop_off_at: datetime | None = Field(description="Delivery time")
    pickup_at: datetime | None = Field(description="Pickup time")
    assigned_uwi: str | None = Field(description="Destination well UWI")
    assigned_well_name: str | None = Field(description="Destination well name")

    model_config = {"from_attributes": True}


class InventorySummary(BaseModel):
    """Inventory listing with totals."""

    items: list[PipeResponse] = Field(description="Batches matching the filters")
    total_joints: int = Field(description="Joints across the listed batches")
    total_length_m: float = Field(description="Meters across the listed batches")


class ShipmentCreate(BaseModel):
    """Request schema for logging a shipment."""

    request_id: UUID = Field(description="Storage request UUID")
    trucking_method: str = Field(description="CUSTOMER_PROVIDED or MPS_QUOTE")
    direction: str = Field(default="INBOUND", description="INBOUND or OUTBOUND")
    estimated_joint_count: int | None = Field(
        default=None, gt=0, description="Expected joints"
    )
    notes: str | None = Field(default=None, description="Notes")


class ShipmentResponse(BaseModel):
    """Response schema for a shipment log entry."""

    id: UUID = Field(description="Shipment UUID")
    request_id: UUID = Field(description="Storage request UUID")
    company_id: UUID = Field(description="Company UUID")
    direction: str = Field(description="INBOUND or OUTBOUND")
    status: str = Field(description="Shipment status")
    trucking_method: str = Field(description="Trucking method")
    estimated_joint_count: int | None = Field(description="Expected joints")
    notes: str | None = Field(description="Notes")
    created_at: datetime = Field(description="When the shipment was logged")

    model_config = {"from_attributes": True}


# --- API Endpoints ---


@router.get("", response_model=InventorySummary)
async def get_inventory(
    db: Annotated[AsyncSession, Depends(get_db)],
    company_id: Annotated[UUID | None, Query(description="Filter by company")] = None,
    status: Annotated[
        str | None,
        Query(description="Filter by status (IN_STORAGE, PICKED_UP, ...)"),
    ] = None,
    reference_id: Annotated[
        str | None, Query(description="Filter by project reference")
    ] = None,
) -> InventorySummary:
    """List stored pipe batches with joint and length totals."""
    pipes = await list_inventory(
        db, company_id=company_id, status=status, reference_id=reference_id
    )
    items = [PipeResponse.model_validate(pipe) for pipe in pipes]
    return InventorySummary(
        items=items,
        total_joints=sum(item.quantity for item in items),
        total_length_m=round(sum(item.total_length_m for item in items), 2),
    )


@router.get("/shipments", response_model=list[ShipmentResponse])
async def get_shipments(
    db: Annotated[AsyncSession, Depends(get_db)],
    request_id: Annotated[UUID | None, Query(description="Filter by request")] = None,
    company_id: Annotated[UUID | None, Query(description="Filter by company")] = None,
) -> list[ShipmentResponse]:
    """List shipment log entries, newest first."""
    shipments = await list_shipments(db, request_id=request_id, company_id=company_id)
    return [ShipmentResponse.model_validate(s) for s in shipments]


@router.post("/shipments", response_model=ShipmentResponse, status_code=201)
async def create_shipment(
    body: ShipmentCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ShipmentResponse:
    """Log a planned inbound or outbound shipment for a request."""
    try:
        shipment = await record_shipment(
            db,
            body.request_id,
            trucking_method=body.trucking_method,
            direction=body.direction,
            estimated_joint_count=body.estimated_joint_count,
            notes=body.notes,
        )
    except PipeVaultError as e:
        raise http_error(e) from e
    return ShipmentResponse.model_validate(shipment)
