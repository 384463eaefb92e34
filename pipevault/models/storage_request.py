"""StorageRequest model for customer storage asks."""

import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pipevault.database import Base


class StorageRequest(Base):
    """A customer's request to store a batch of pipe.

    The request is owned by the requesting company. Once approved it is
    referenced (never owned) by inventory rows and by the racks it occupies.

    Attributes:
        id: Unique identifier (UUID)
        company_id: Owning company
        user_email: Email of the requester (notification recipient)
        reference_id: Customer project reference (e.g., 'AFE-2291')
        status: Lifecycle status (see services.lifecycle.RequestStatus)
        item_type: Pipe type (e.g., 'Casing', 'Tubing', 'Drill Pipe')
        grade: Steel grade (e.g., 'L80')
        connection: Connection type (e.g., 'BTC')
        outer_diameter_in: Outer diameter in inches
        weight_lbs_ft: Nominal weight per foot
        avg_joint_length_m: Average joint length in meters
        total_joints: Number of joints to store
        storage_start_date: Desired storage window start
        storage_end_date: Desired storage window end
        trucking_info: Free-form trucking details (JSON)
        assigned_location: Human-readable location label set on approval
        assigned_rack_ids: Ordered rack ids set on approval (JSON array)
        rack_allocation: Joints reserved per rack on approval (JSON object)
        admin_notes: Notes left by the approving admin
        rejection_reason: Reason given on rejection
    """

    __tablename__ = "storage_requests"
    __table_args__ = (
        Index("ix_storage_requests_company_status", "company_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="SUBMITTED",
        index=True,
    )

    # Requested item specification
    item_type: Mapped[str] = mapped_column(String(50), nullable=False)
    grade: Mapped[str | None] = mapped_column(String(20), nullable=True)
    connection: Mapped[str | None] = mapped_column(String(50), nullable=True)
    outer_diameter_in: Mapped[float | None] = mapped_column(Float, nullable=True)
    weight_lbs_ft: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_joint_length_m: Mapped[float] = mapped_column(Float, nullable=False)
    total_joints: Mapped[int] = mapped_column(Integer, nullable=False)

    # Desired storage window
    storage_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    storage_end_date: Mapped[date] = mapped_column(Date, nullable=False)

    trucking_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Assignment (set on approval)
    assigned_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    assigned_rack_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    rack_allocation: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Decision
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    company = relationship("Company", backref="storage_requests")

    @property
    def total_length_m(self) -> float:
        """Total requested length in meters."""
        return round(self.total_joints * self.avg_joint_length_m, 2)

    def __repr__(self) -> str:
        return (
            f"<StorageRequest(reference_id={self.reference_id!r}, "
            f"status={self.status!r}, total_joints={self.total_joints!r})>"
        )
