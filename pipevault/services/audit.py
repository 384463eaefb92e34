"""Admin audit trail.

This module provides functions for:
- Recording admin decisions (approve, reject, rack adjustments)
- Querying the audit trail by admin, action, entity or time window
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.models.audit import AdminAuditLog


class AuditAction:
    """Action names written to the audit trail."""

    APPROVE_REQUEST = "APPROVE_REQUEST"
    REJECT_REQUEST = "REJECT_REQUEST"
    ADJUST_RACK = "ADJUST_RACK"
    RECORD_DELIVERY = "RECORD_DELIVERY"
    RECORD_PICKUP = "RECORD_PICKUP"
    SCHEDULE_LOAD = "SCHEDULE_LOAD"
    APPROVE_LOAD = "APPROVE_LOAD"
    REJECT_LOAD = "REJECT_LOAD"
    REQUEST_LOAD_CORRECTION = "REQUEST_LOAD_CORRECTION"
    MARK_LOAD_IN_TRANSIT = "MARK_LOAD_IN_TRANSIT"
    COMPLETE_LOAD = "COMPLETE_LOAD"


@dataclass(frozen=True)
class AuditLogFilters:
    """Filters for querying the audit trail.

    Attributes:
        admin_user_id: Filter by acting admin
        action: Filter by action name
        entity_type: Filter by entity type
        entity_id: Filter by entity identifier
        start_time: Filter for created_at >= this value
        end_time: Filter for created_at <= this value
    """

    admin_user_id: str | None = None
    action: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None


async def record_admin_action(
    session: AsyncSession,
    admin_user_id: str,
    action: str,
    entity_type: str,
    entity_id: str,
    details: dict[str, Any] | None = None,
    timestamp: datetime | None = None,
) -> AdminAuditLog:
    """Add an audit row to the caller's transaction.

    Args:
        session: Database session
        admin_user_id: Who performed the action
        action: Action name (see AuditAction)
        entity_type: Kind of entity affected
        entity_id: Identifier of the entity affected
        details: Optional JSON context
        timestamp: Optional timestamp (defaults to now)

    Returns:
        The created AdminAuditLog instance
    """
    entry = AdminAuditLog(
        admin_user_id=admin_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        created_at=timestamp or datetime.now(UTC),
    )
    session.add(entry)
    await session.flush()
    return entry


def _apply_filters(query: Any, filters: AuditLogFilters) -> Any:
    if filters.admin_user_id:
        query = query.where(AdminAuditLog.admin_user_id == filters.admin_user_id)
    if filters.action:
        query = query.where(AdminAuditLog.action == filters.action.upper())
    if filters.entity_type:
        query = query.where(AdminAuditLog.entity_type == filters.entity_type)
    if filters.entity_id:
        query = query.where(AdminAuditLog.entity_id == filters.entity_id)
    if filters.start_time:
        query = query.where(AdminAuditLog.created_at >= filters.start_time)
    if filters.end_time:
        query = query.where(AdminAuditLog.created_at <= filters.end_time)
    return query


async def query_audit_log(
    session: AsyncSession,
    filters: AuditLogFilters | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[AdminAuditLog], int]:
    """Query audit entries, newest first.

    Returns:
        Tuple of (entries, total matching count)
    """
    filters = filters or AuditLogFilters()
    query = _apply_filters(select(AdminAuditLog), filters)

    count_result = await session.execute(
        select(func.count()).select_from(query.subquery())
    )
    total = count_result.scalar() or 0

    result = await session.execute(
        query.order_by(desc(AdminAuditLog.created_at)).offset(offset).limit(limit)
    )
    return list(result.scalars().all()), total
