"""seed_yard_layout

Revision ID: 9e4b0c6f2a31
Revises: 7c1e2a9d4b10
Create Date: 2026-10-19 09:20:05.118342

"""

from collections.abc import Sequence

from alembic import op
from sqlalchemy import text

# revision identifiers, used by Alembic.
revision: str = "9e4b0c6f2a31"
down_revision: str | Sequence[str] | None = "7c1e2a9d4b10"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

YARDS = [
    {"id": "B", "name": "Yard B (Fenced Storage)"},
    {"id": "C", "name": "Yard C (Cold Storage)"},
]

# Area code -> display name, in the order areas are listed in the yard
AREAS = [
    ("N", "North"),
    ("E", "East"),
    ("S", "South"),
    ("W", "West"),
    ("M", "Middle"),
]

RACKS_PER_AREA = 9
RACK_CAPACITY_JOINTS = 200
NOMINAL_JOINT_LENGTH_M = 12
RACK_CAPACITY_METERS = RACK_CAPACITY_JOINTS * NOMINAL_JOINT_LENGTH_M


def build_yard_layout() -> tuple[list[dict], list[dict], list[dict]]:
    """Build the yard, area and rack rows to seed.

    Returns:
        Tuple of (yards, areas, racks) row dictionaries
    """
    areas: list[dict] = []
    racks: list[dict] = []
    for yard in YARDS:
        for code, name in AREAS:
            area_id = f"{yard['id']}-{code}"
            areas.append({"id": area_id, "yard_id": yard["id"], "name": name})
            for number in range(1, RACKS_PER_AREA + 1):
                racks.append(
                    {
                        "id": f"{area_id}-{number}",
                        "area_id": area_id,
                        "name": f"Rack {number}",
                        "capacity": RACK_CAPACITY_JOINTS,
                        "capacity_meters": float(RACK_CAPACITY_METERS),
                    }
                )
    return list(YARDS), areas, racks


def upgrade() -> None:
    """Seed yards B and C with five areas of nine racks each."""
    connection = op.get_bind()
    yards, areas, racks = build_yard_layout()

    # Use INSERT ... ON CONFLICT to make migration idempotent
    for yard in yards:
        connection.execute(
            text("""
                INSERT INTO yards (id, name)
                VALUES (:id, :name)
                ON CONFLICT (id) DO NOTHING
            """),
            yard,
        )
    for area in areas:
        connection.execute(
            text("""
                INSERT INTO yard_areas (id, yard_id, name)
                VALUES (:id, :yard_id, :name)
                ON CONFLICT (id) DO NOTHING
            """),
            area,
        )
    for rack in racks:
        connection.execute(
            text("""
                INSERT INTO racks (id, area_id, name, capacity, capacity_meters)
                VALUES (:id, :area_id, :name, :capacity, :capacity_meters)
                ON CONFLICT (id) DO NOTHING
            """),
            rack,
        )


def downgrade() -> None:
    """Remove the seeded yards (areas and racks cascade)."""
    connection = op.get_bind()
    for yard in YARDS:
        connection.execute(
            text("DELETE FROM yards WHERE id = :id"),
            {"id": yard["id"]},
        )
