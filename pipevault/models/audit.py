"""Audit models for admin decisions and manual rack adjustments."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from pipevault.database import Base


class AdminAuditLog(Base):
    """One admin action (approve, reject, adjust) with its context.

    Attributes:
        id: Unique identifier (UUID)
        admin_user_id: Who performed the action
        action: e.g. 'APPROVE_REQUEST', 'REJECT_REQUEST'
        entity_type: e.g. 'storage_request', 'rack'
        entity_id: Identifier of the affected entity
        details: JSON context (reference id, racks, joints, notes...)
    """

    __tablename__ = "admin_audit_log"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    admin_user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id) if self.id else None,
            "admin_user_id": self.admin_user_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<AdminAuditLog(action={self.action!r}, "
            f"entity_id={self.entity_id!r})>"
        )


class RackOccupancyAdjustment(Base):
    """Manual correction of a rack's occupancy counters.

    Attributes:
        rack_id: Adjusted rack
        adjusted_by: Admin who made the change
        reason: Why the counters were changed (at least 10 characters)
        old_joints_occupied / new_joints_occupied: Joint counters before/after
        old_meters_occupied / new_meters_occupied: Meter counters before/after
    """

    __tablename__ = "rack_occupancy_adjustments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    rack_id: Mapped[str] = mapped_column(
        String(60),
        ForeignKey("racks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    adjusted_by: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    old_joints_occupied: Mapped[int] = mapped_column(Integer, nullable=False)
    new_joints_occupied: Mapped[int] = mapped_column(Integer, nullable=False)
    old_meters_occupied: Mapped[float] = mapped_column(Float, nullable=False)
    new_meters_occupied: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<RackOccupancyAdjustment(rack_id={self.rack_id!r}, "
            f"new_joints_occupied={self.new_joints_occupied!r})>"
        )
