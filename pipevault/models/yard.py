"""Yard, area and rack models for storage capacity tracking."""

from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pipevault.database import Base


class Yard(Base):
    """A storage yard (top of the yard > area > rack hierarchy).

    Attributes:
        id: Short text identifier (e.g., 'B')
        name: Display name (e.g., 'Yard B (Fenced Storage)')
    """

    __tablename__ = "yards"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    areas: Mapped[list["YardArea"]] = relationship(
        back_populates="yard",
        order_by="YardArea.id",
    )

    def __repr__(self) -> str:
        return f"<Yard(id={self.id!r}, name={self.name!r})>"


class YardArea(Base):
    """An area within a yard (e.g., 'North').

    Attributes:
        id: Text identifier, unique across yards (e.g., 'B-N')
        yard_id: Parent yard
        name: Display name
    """

    __tablename__ = "yard_areas"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    yard_id: Mapped[str] = mapped_column(
        String(20),
        ForeignKey("yards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    yard: Mapped[Yard] = relationship(back_populates="areas")
    racks: Mapped[list["Rack"]] = relationship(
        back_populates="area",
        order_by="Rack.id",
    )

    def __repr__(self) -> str:
        return f"<YardArea(id={self.id!r}, name={self.name!r})>"


class Rack(Base):
    """A fixed-capacity storage rack, the unit of allocation.

    Capacity is tracked both in joints and in meters. ``occupied_meters`` is
    accumulated from each request's actual average joint length, so it is not
    derivable from ``occupied`` once racks hold pipe of differing lengths.

    Attributes:
        id: Text identifier (e.g., 'B-N-3')
        area_id: Parent area
        name: Display name (e.g., 'Rack 3')
        capacity: Maximum joints the rack holds
        capacity_meters: Capacity in meters (capacity x nominal joint length)
        occupied: Joints currently stored
        occupied_meters: Meters currently stored
        version: Optimistic concurrency token, bumped on every occupancy write
    """

    __tablename__ = "racks"
    __table_args__ = (
        CheckConstraint("occupied >= 0", name="ck_racks_occupied_non_negative"),
        CheckConstraint("occupied <= capacity", name="ck_racks_occupied_within_capacity"),
        CheckConstraint(
            "occupied_meters >= 0", name="ck_racks_occupied_meters_non_negative"
        ),
    )

    id: Mapped[str] = mapped_column(String(60), primary_key=True)
    area_id: Mapped[str] = mapped_column(
        String(40),
        ForeignKey("yard_areas.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=200)
    capacity_meters: Mapped[float] = mapped_column(Float, nullable=False, default=2400.0)
    occupied: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    occupied_meters: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    area: Mapped[YardArea] = relationship(back_populates="racks")

    @property
    def available(self) -> int:
        """Joints that still fit in the rack."""
        return max(0, self.capacity - self.occupied)

    @property
    def available_meters(self) -> float:
        return max(0.0, self.capacity_meters - self.occupied_meters)

    def __repr__(self) -> str:
        return (
            f"<Rack(id={self.id!r}, occupied={self.occupied!r}, "
            f"capacity={self.capacity!r})>"
        )
