"""FastAPI routes for yard capacity and rack adjustments."""

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.api.errors import http_error
from pipevault.database import get_db
from pipevault.services.cache import MutationKind, invalidation_keys
from pipevault.services.errors import PipeVaultError
from pipevault.services.racks import (
    MIN_ADJUSTMENT_REASON_LENGTH,
    adjust_rack_occupancy,
    get_rack,
    list_yards,
    summarize_rack,
)

router = APIRouter(prefix="/yards", tags=["yards"])


# --- Pydantic Schemas ---


class RackResponse(BaseModel):
    """Occupancy of one rack."""

    id: str = Field(description="Rack ID (e.g., B-N-3)")
    name: str = Field(description="Rack name")
    capacity: int = Field(description="Capacity in joints")
    capacity_meters: float = Field(description="Capacity in meters")
    occupied: int = Field(description="Joints stored")
    occupied_meters: float = Field(description="Meters stored")
    available: int = Field(description="Joints that still fit")
    available_meters: float = Field(description="Meters that still fit")
    utilization_pct: float = Field(description="Percent of capacity in use")


class AreaResponse(BaseModel):
    """Occupancy of one yard area."""

    id: str = Field(description="Area ID")
    name: str = Field(description="Area name")
    racks: list[RackResponse] = Field(description="Racks in the area")
    capacity: int = Field(description="Total capacity in joints")
    occupied: int = Field(description="Total joints stored")
    available: int = Field(description="Total joints that still fit")
    utilization_pct: float = Field(description="Percent of capacity in use")


class YardResponse(BaseModel):
    """Occupancy of one yard."""

    id: str = Field(description="Yard ID")
    name: str = Field(description="Yard name")
    areas: list[AreaResponse] = Field(description="Areas in the yard")
    capacity: int = Field(description="Total capacity in joints")
    occupied: int = Field(description="Total joints stored")
    available: int = Field(description="Total joints that still fit")
    utilization_pct: float = Field(description="Percent of capacity in use")


class RackAdjustmentRequest(BaseModel):
    """Request schema for a manual occupancy adjustment."""

    new_joints: int = Field(ge=0, description="Counted joints")
    new_meters: float = Field(ge=0, description="Counted meters")
    reason: str = Field(
        min_length=MIN_ADJUSTMENT_REASON_LENGTH,
        description="Why the count differs from the recorded occupancy",
    )
    adjusted_by: str = Field(description="Admin performing the adjustment")


class RackAdjustmentResponse(BaseModel):
    """Response schema for a manual occupancy adjustment."""

    rack_id: str = Field(description="Rack ID")
    old_joints: int = Field(description="Joints before adjustment")
    new_joints: int = Field(description="Joints after adjustment")
    old_meters: float = Field(description="Meters before adjustment")
    new_meters: float = Field(description="Meters after adjustment")
    version: int = Field(description="Rack version after adjustment")
    invalidate: list[str] = Field(description="Client cache keys to refetch")


# --- API Endpoints ---


@router.get("", response_model=list[YardResponse])
async def get_yards(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[YardResponse]:
    """List yards with per-area and per-rack availability."""
    yards = await list_yards(db)
    return [YardResponse.model_validate(asdict(yard)) for yard in yards]


@router.get("/racks/{rack_id}", response_model=RackResponse)
async def get_rack_by_id(
    rack_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RackResponse:
    """Get the occupancy of one rack."""
    try:
        rack = await get_rack(db, rack_id)
    except PipeVaultError as e:
        raise http_error(e) from e
    return RackResponse.model_validate(asdict(summarize_rack(rack)))


@router.post("/racks/{rack_id}/adjust", response_model=RackAdjustmentResponse)
async def adjust_rack(
    rack_id: str,
    body: RackAdjustmentRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RackAdjustmentResponse:
    """Correct a rack's occupancy after a physical count.

    The previous and new values are kept in the adjustment history together
    with the reason.
    """
    try:
        result = await adjust_rack_occupancy(
            db,
            rack_id,
            new_joints=body.new_joints,
            new_meters=body.new_meters,
            reason=body.reason,
            adjusted_by=body.adjusted_by,
        )
    except PipeVaultError as e:
        raise http_error(e) from e

    return RackAdjustmentResponse(
        **asdict(result),
        invalidate=list(invalidation_keys(MutationKind.RACK_ADJUSTED)),
    )
