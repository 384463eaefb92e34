"""create_pipevault_tables

Revision ID: 7c1e2a9d4b10
Revises:
Create Date: 2026-10-19 09:12:41.503217

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "7c1e2a9d4b10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, postgresql.TIMESTAMP(timezone=True), nullable=True)
    return sa.Column(
        name,
        postgresql.TIMESTAMP(timezone=True),
        server_default=sa.text("NOW()"),
        nullable=False,
    )


def upgrade() -> None:
    """Create companies, yard layout, requests, inventory, loads and logs."""
    op.create_table(
        "companies",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("ix_companies_domain", "companies", ["domain"], unique=True)

    # Yard > area > rack hierarchy
    op.create_table(
        "yards",
        sa.Column("id", sa.String(20), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        _timestamp("created_at"),
    )
    op.create_table(
        "yard_areas",
        sa.Column("id", sa.String(40), primary_key=True),
        sa.Column(
            "yard_id",
            sa.String(20),
            sa.ForeignKey("yards.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("ix_yard_areas_yard_id", "yard_areas", ["yard_id"])

    op.create_table(
        "racks",
        sa.Column("id", sa.String(60), primary_key=True),
        sa.Column(
            "area_id",
            sa.String(40),
            sa.ForeignKey("yard_areas.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("capacity", sa.Integer, nullable=False, server_default="200"),
        sa.Column("capacity_meters", sa.Float, nullable=False, server_default="2400"),
        sa.Column("occupied", sa.Integer, nullable=False, server_default="0"),
        sa.Column("occupied_meters", sa.Float, nullable=False, server_default="0"),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        _timestamp("updated_at"),
        sa.CheckConstraint("occupied >= 0", name="ck_racks_occupied_non_negative"),
        sa.CheckConstraint(
            "occupied <= capacity", name="ck_racks_occupied_within_capacity"
        ),
        sa.CheckConstraint(
            "occupied_meters >= 0", name="ck_racks_occupied_meters_non_negative"
        ),
    )
    op.create_index("ix_racks_area_id", "racks", ["area_id"])

    op.create_table(
        "storage_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "company_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_email", sa.String(255), nullable=False),
        sa.Column("reference_id", sa.String(100), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="SUBMITTED"),
        sa.Column("item_type", sa.String(50), nullable=False),
        sa.Column("grade", sa.String(20), nullable=True),
        sa.Column("connection", sa.String(50), nullable=True),
        sa.Column("outer_diameter_in", sa.Float, nullable=True),
        sa.Column("weight_lbs_ft", sa.Float, nullable=True),
        sa.Column("avg_joint_length_m", sa.Float, nullable=False),
        sa.Column("total_joints", sa.Integer, nullable=False),
        sa.Column("storage_start_date", sa.Date, nullable=False),
        sa.Column("storage_end_date", sa.Date, nullable=False),
        sa.Column("trucking_info", sa.JSON, nullable=True),
        sa.Column("assigned_location", sa.String(255), nullable=True),
        sa.Column("assigned_rack_ids", sa.JSON, nullable=True),
        sa.Column("rack_allocation", sa.JSON, nullable=True),
        sa.Column("admin_notes", sa.Text, nullable=True),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        sa.Column("approved_by", sa.String(255), nullable=True),
        _timestamp("approved_at", nullable=True),
        _timestamp("rejected_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("total_joints > 0", name="ck_storage_requests_joints_positive"),
        sa.CheckConstraint(
            "avg_joint_length_m > 0", name="ck_storage_requests_length_positive"
        ),
    )
    op.create_index(
        "ix_storage_requests_reference_id", "storage_requests", ["reference_id"]
    )
    op.create_index("ix_storage_requests_status", "storage_requests", ["status"])
    op.create_index(
        "ix_storage_requests_company_status",
        "storage_requests",
        ["company_id", "status"],
    )

    op.create_table(
        "truck_loads",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("load_type", sa.String(20), nullable=False),
        sa.Column("trucking_company", sa.String(255), nullable=False),
        sa.Column("driver_name", sa.String(255), nullable=False),
        sa.Column("driver_phone", sa.String(50), nullable=True),
        _timestamp("arrival_time"),
        _timestamp("departure_time", nullable=True),
        sa.Column("joints_count", sa.Integer, nullable=False),
        sa.Column(
            "rack_id",
            sa.String(60),
            sa.ForeignKey("racks.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("storage_requests.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("assigned_uwi", sa.String(50), nullable=True),
        sa.Column("assigned_well_name", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_truck_loads_load_type", "truck_loads", ["load_type"])
    op.create_index("ix_truck_loads_request_id", "truck_loads", ["request_id"])

    op.create_table(
        "inventory",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "company_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("storage_requests.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("reference_id", sa.String(100), nullable=False),
        sa.Column("pipe_type", sa.String(50), nullable=False),
        sa.Column("grade", sa.String(20), nullable=True),
        sa.Column("outer_diameter_in", sa.Float, nullable=True),
        sa.Column("weight_lbs_ft", sa.Float, nullable=True),
        sa.Column("length_m", sa.Float, nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column(
            "status", sa.String(30), nullable=False, server_default="PENDING_DELIVERY"
        ),
        sa.Column(
            "rack_id",
            sa.String(60),
            sa.ForeignKey("racks.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _timestamp("drop_off_at", nullable=True),
        _timestamp("pickup_at", nullable=True),
        sa.Column("assigned_uwi", sa.String(50), nullable=True),
        sa.Column("assigned_well_name", sa.String(255), nullable=True),
        sa.Column(
            "delivery_truck_load_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("truck_loads.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "pickup_truck_load_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("truck_loads.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("quantity > 0", name="ck_inventory_quantity_positive"),
    )
    op.create_index("ix_inventory_company_id", "inventory", ["company_id"])
    op.create_index("ix_inventory_request_id", "inventory", ["request_id"])
    op.create_index("ix_inventory_reference_id", "inventory", ["reference_id"])
    op.create_index("ix_inventory_status", "inventory", ["status"])
    op.create_index("ix_inventory_rack_id", "inventory", ["rack_id"])

    op.create_table(
        "shipments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("storage_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "company_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("direction", sa.String(20), nullable=False, server_default="INBOUND"),
        sa.Column("status", sa.String(30), nullable=False, server_default="SCHEDULED"),
        sa.Column("trucking_method", sa.String(30), nullable=False),
        sa.Column("estimated_joint_count", sa.Integer, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_shipments_request_id", "shipments", ["request_id"])

    op.create_table(
        "documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("storage_requests.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "truck_load_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("truck_loads.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "company_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_type", sa.String(20), nullable=False),
        sa.Column(
            "document_type", sa.String(30), nullable=False, server_default="manifest"
        ),
        sa.Column("parsed_payload", sa.JSON, nullable=True),
        _timestamp("parsed_at", nullable=True),
        _timestamp("uploaded_at"),
    )
    op.create_index("ix_documents_request_id", "documents", ["request_id"])

    op.create_table(
        "notification_queue",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("notification_type", sa.String(60), nullable=False),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("processed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text, nullable=True),
        _timestamp("created_at"),
        _timestamp("processed_at", nullable=True),
    )
    # Partial index keeps the dispatcher's pending scan cheap
    op.create_index(
        "ix_notification_queue_pending",
        "notification_queue",
        ["created_at"],
        postgresql_where=sa.text("processed = false"),
    )

    op.create_table(
        "admin_audit_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("admin_user_id", sa.String(255), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(100), nullable=False),
        sa.Column("details", sa.JSON, nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_admin_audit_log_admin_user_id", "admin_audit_log", ["admin_user_id"])
    op.create_index("ix_admin_audit_log_action", "admin_audit_log", ["action"])
    op.create_index("ix_admin_audit_log_entity_id", "admin_audit_log", ["entity_id"])
    op.create_index("ix_admin_audit_log_created_at", "admin_audit_log", ["created_at"])

    op.create_table(
        "rack_occupancy_adjustments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "rack_id",
            sa.String(60),
            sa.ForeignKey("racks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("adjusted_by", sa.String(255), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("old_joints_occupied", sa.Integer, nullable=False),
        sa.Column("new_joints_occupied", sa.Integer, nullable=False),
        sa.Column("old_meters_occupied", sa.Float, nullable=False),
        sa.Column("new_meters_occupied", sa.Float, nullable=False),
        _timestamp("created_at"),
        sa.CheckConstraint(
            "char_length(reason) >= 10", name="ck_rack_adjustments_reason_length"
        ),
    )
    op.create_index(
        "ix_rack_occupancy_adjustments_rack_id",
        "rack_occupancy_adjustments",
        ["rack_id"],
    )


def downgrade() -> None:
    """Drop all tables in reverse order of creation."""
    op.drop_table("rack_occupancy_adjustments")
    op.drop_table("admin_audit_log")
    op.drop_index("ix_notification_queue_pending", table_name="notification_queue")
    op.drop_table("notification_queue")
    op.drop_table("documents")
    op.drop_table("shipments")
    op.drop_table("inventory")
    op.drop_table("truck_loads")
    op.drop_table("storage_requests")
    op.drop_table("racks")
    op.drop_table("yard_areas")
    op.drop_table("yards")
    op.drop_index("ix_companies_domain", table_name="companies")
    op.drop_table("companies")
