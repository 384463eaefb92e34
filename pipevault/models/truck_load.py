"""TruckLoad and Shipment models for physical transport events."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from pipevault.database import Base


class TruckLoad(Base):
    """A truck delivering pipe into the yard or picking it up.

    Truck loads are never deleted; they reference the storage request and,
    for pickups, the destination well. Loads booked ahead of time move
    NEW -> APPROVED -> IN_TRANSIT -> COMPLETED (or NEW -> REJECTED); loads
    recorded on arrival are created COMPLETED.

    Attributes:
        id: Unique identifier (UUID)
        load_type: 'DELIVERY' or 'PICKUP'
        trucking_company: Carrier name
        driver_name: Driver name
        driver_phone: Driver phone (optional)
        status: Booking status (see LoadStatus)
        sequence_number: Load number within its storage request
        arrival_time: When the truck arrived, or the booked slot start
        scheduled_slot_end: End of the booked delivery slot (optional)
        departure_time: When the truck left (optional)
        joints_count: Joints carried
        rack_id: First rack touched by the load (optional)
        request_id: Storage request the load belongs to
        assigned_uwi: Destination well identifier for pickups
        assigned_well_name: Destination well name for pickups
        notes: Free-form notes
        rejection_reason: Why the booking was rejected
        correction_issues: Manifest problems the customer must fix
        correction_requested_at: When corrections were last requested
        completed_at: When the load was received or released
    """

    __tablename__ = "truck_loads"
    __table_args__ = (
        CheckConstraint(
            "status IN ('NEW', 'APPROVED', 'IN_TRANSIT', 'COMPLETED', 'REJECTED')",
            name="ck_truck_loads_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    load_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="COMPLETED", index=True
    )
    sequence_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    trucking_company: Mapped[str] = mapped_column(String(255), nullable=False)
    driver_name: Mapped[str] = mapped_column(String(255), nullable=False)
    driver_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    arrival_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    scheduled_slot_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    departure_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    joints_count: Mapped[int] = mapped_column(Integer, nullable=False)
    rack_id: Mapped[str | None] = mapped_column(
        String(60),
        ForeignKey("racks.id", ondelete="SET NULL"),
        nullable=True,
    )
    request_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("storage_requests.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assigned_uwi: Mapped[str | None] = mapped_column(String(50), nullable=True)
    assigned_well_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    correction_issues: Mapped[list | None] = mapped_column(JSON, nullable=True)
    correction_requested_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<TruckLoad(load_type={self.load_type!r}, status={self.status!r}, "
            f"joints_count={self.joints_count!r})>"
        )


class Shipment(Base):
    """An inbound or outbound shipment planned for a storage request.

    Attributes:
        id: Unique identifier (UUID)
        request_id: Storage request the shipment belongs to
        company_id: Owning company
        direction: 'INBOUND' or 'OUTBOUND'
        status: Shipment status (e.g., 'SCHEDULED', 'IN_TRANSIT', 'RECEIVED')
        trucking_method: 'COMPANY_PROVIDED' or 'CUSTOMER_PROVIDED'
        estimated_joint_count: Expected joints on the shipment
        notes: Free-form notes
    """

    __tablename__ = "shipments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("storage_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )
    direction: Mapped[str] = mapped_column(String(20), nullable=False, default="INBOUND")
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="SCHEDULED")
    trucking_method: Mapped[str] = mapped_column(String(30), nullable=False)
    estimated_joint_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Shipment(direction={self.direction!r}, status={self.status!r})>"
