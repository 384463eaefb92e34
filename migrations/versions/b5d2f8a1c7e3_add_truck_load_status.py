"""add_truck_load_status

Revision ID: b5d2f8a1c7e3
Revises: 9e4b0c6f2a31
Create Date: 2026-10-19 14:02:41.530917

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "b5d2f8a1c7e3"
down_revision: str | Sequence[str] | None = "9e4b0c6f2a31"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

LOAD_STATUSES = ("NEW", "APPROVED", "IN_TRANSIT", "COMPLETED", "REJECTED")

# Existing rows were recorded on arrival
BACKFILL_STATUS = "COMPLETED"


def upgrade() -> None:
    """Add booking status and review columns to truck_loads."""
    op.add_column(
        "truck_loads",
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=BACKFILL_STATUS,
        ),
    )
    op.add_column("truck_loads", sa.Column("sequence_number", sa.Integer, nullable=True))
    op.add_column(
        "truck_loads",
        sa.Column("scheduled_slot_end", sa.DateTime(timezone=True), nullable=True),
    )
    op.add_column("truck_loads", sa.Column("rejection_reason", sa.Text, nullable=True))
    op.add_column("truck_loads", sa.Column("correction_issues", sa.JSON, nullable=True))
    op.add_column(
        "truck_loads",
        sa.Column("correction_requested_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.add_column(
        "truck_loads",
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.execute("UPDATE truck_loads SET completed_at = arrival_time")
    op.create_check_constraint(
        "ck_truck_loads_status",
        "truck_loads",
        "status IN ({})".format(", ".join(f"'{s}'" for s in LOAD_STATUSES)),
    )
    op.create_index("ix_truck_loads_status", "truck_loads", ["status"])


def downgrade() -> None:
    """Drop the booking columns."""
    op.drop_index("ix_truck_loads_status", table_name="truck_loads")
    op.drop_constraint("ck_truck_loads_status", "truck_loads", type_="check")
    for column in (
        "completed_at",
        "correction_requested_at",
        "correction_issues",
        "rejection_reason",
        "scheduled_slot_end",
        "sequence_number",
        "status",
    ):
        op.drop_column("truck_loads", column)
