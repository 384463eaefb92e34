"""Pipe model for joints held in (or released from) storage."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pipevault.database import Base


class Pipe(Base):
    """A physical batch of joints tied to one storage request and company.

    Rows are created when a delivery is received and mutated on pickup; they
    are never deleted.

    Attributes:
        id: Unique identifier (UUID)
        company_id: Owning company
        request_id: Storage request the joints belong to
        reference_id: Customer project reference (denormalised for search)
        pipe_type: Pipe type (e.g., 'Casing')
        grade: Steel grade
        outer_diameter_in: Outer diameter in inches
        weight_lbs_ft: Weight per foot
        length_m: Average joint length in meters
        quantity: Number of joints in the batch
        status: PENDING_DELIVERY, IN_STORAGE, PICKED_UP or IN_TRANSIT
        rack_id: Rack the batch sits on while in storage
        assigned_uwi: Destination well identifier (set on pickup)
        assigned_well_name: Destination well name (set on pickup)
    """

    __tablename__ = "inventory"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    request_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("storage_requests.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    reference_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    pipe_type: Mapped[str] = mapped_column(String(50), nullable=False)
    grade: Mapped[str | None] = mapped_column(String(20), nullable=True)
    outer_diameter_in: Mapped[float | None] = mapped_column(Float, nullable=True)
    weight_lbs_ft: Mapped[float | None] = mapped_column(Float, nullable=True)
    length_m: Mapped[float] = mapped_column(Float, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="PENDING_DELIVERY",
        index=True,
    )

    rack_id: Mapped[str | None] = mapped_column(
        String(60),
        ForeignKey("racks.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    drop_off_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    pickup_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    assigned_uwi: Mapped[str | None] = mapped_column(String(50), nullable=True)
    assigned_well_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    delivery_truck_load_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("truck_loads.id", ondelete="SET NULL"),
        nullable=True,
    )
    pickup_truck_load_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("truck_loads.id", ondelete="SET NULL"),
        nullable=True,
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

    request = relationship("StorageRequest", backref="inventory")

    @property
    def total_length_m(self) -> float:
        return round(self.quantity * self.length_m, 2)

    def __repr__(self) -> str:
        return (
            f"<Pipe(reference_id={self.reference_id!r}, "
            f"quantity={self.quantity!r}, status={self.status!r})>"
        )
