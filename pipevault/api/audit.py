"""FastAPI routes for the admin audit trail."""

from datetime import datetime
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.database import get_db
from pipevault.services.audit import AuditLogFilters, query_audit_log

router = APIRouter(prefix="/audit", tags=["audit"])


class AuditLogResponse(BaseModel):
    """Response schema for a single audit entry."""

    id: UUID = Field(description="Audit entry UUID")
    admin_user_id: str = Field(description="Admin who acted")
    action: str = Field(description="Action taken")
    entity_type: str = Field(description="Kind of entity affected")
    entity_id: str = Field(description="Identifier of the entity affected")
    details: dict[str, Any] | None = Field(description="Action context")
    created_at: datetime = Field(description="When the action happened")

    model_config = {"from_attributes": True}


class AuditLogListResponse(BaseModel):
    """Response schema for audit listing with pagination."""

    items: list[AuditLogResponse] = Field(description="Audit entries")
    total: int = Field(description="Total number of matching entries")
    page: int = Field(description="Current page number")
    page_size: int = Field(description="Items per page")
    total_pages: int = Field(description="Total number of pages")


@router.get("/logs", response_model=AuditLogListResponse)
async def get_audit_logs(
    db: Annotated[AsyncSession, Depends(get_db)],
    page: Annotated[int, Query(ge=1, description="Page number")] = 1,
    page_size: Annotated[
        int, Query(ge=1, le=100, description="Items per page")
    ] = 50,
    admin_user_id: Annotated[str | None, Query(description="Filter by admin")] = None,
    action: Annotated[str | None, Query(description="Filter by action")] = None,
    entity_type: Annotated[
        str | None, Query(description="Filter by entity type")
    ] = None,
    entity_id: Annotated[str | None, Query(description="Filter by entity ID")] = None,
    start_time: Annotated[
        datetime | None, Query(description="Entries at or after this time")
    ] = None,
    end_time: Annotated[
        datetime | None, Query(description="Entries at or before this time")
    ] = None,
) -> AuditLogListResponse:
    """Query admin decisions, newest first."""
    filters = AuditLogFilters(
        admin_user_id=admin_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        start_time=start_time,
        end_time=end_time,
    )
    entries, total = await query_audit_log(
        db, filters, limit=page_size, offset=(page - 1) * page_size
    )
    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in entries],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=max(1, (total + page_size - 1) // page_size),
    )
