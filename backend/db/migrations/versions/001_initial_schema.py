"""
Initial schema - clients, orders, order_details

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ORDER_STATUS_VALUES = "'pending', 'in_transit', 'at_checkpoint', 'delivered', 'cancelled', 'delayed', 'incident'"


def upgrade() -> None:
    # 1. Clients
    op.create_table(
        "clients",
        sa.Column("client_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("tax_id", sa.String(50), nullable=False, unique=True),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # 2. Orders
    # last_update_at is the escalation heartbeat; it deliberately has no trigger or ON UPDATE.
    op.create_table(
        "orders",
        sa.Column("order_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("client_id", UUID(as_uuid=True), sa.ForeignKey("clients.client_id"), nullable=False),
        sa.Column("order_number", sa.String(50), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("severity_level", sa.String(10)),
        sa.Column("last_update_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("departure_at", sa.DateTime),
        sa.Column("arrival_at", sa.DateTime),
        sa.Column("manifest_number", sa.String(100)),
        sa.Column("insurance_company", sa.String(255)),
        sa.Column("origin_city_code", sa.String(20)),
        sa.Column("destination_city_code", sa.String(20)),
        sa.Column("route_description", sa.Text),
        sa.Column("distance_km", sa.Float),
        sa.Column("estimated_time", sa.String(50)),
        sa.Column("restrictions", sa.Text),
        sa.Column("tracking_link", sa.String(500)),
        sa.Column("notes", sa.Text),
        sa.Column("driver_name", sa.String(255)),
        sa.Column("driver_mobile", sa.String(50)),
        sa.Column("created_by", sa.String(255)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_by", sa.String(255)),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("deleted_by", sa.String(255)),
        sa.Column("deleted_at", sa.DateTime),
        sa.CheckConstraint(f"status IN ({ORDER_STATUS_VALUES})", name="ck_order_status"),
        sa.CheckConstraint(
            "severity_level IS NULL OR severity_level IN ('green', 'yellow', 'red')",
            name="ck_order_severity_level",
        ),
        sa.CheckConstraint("distance_km IS NULL OR distance_km >= 0", name="ck_order_distance_positive"),
    )
    op.create_index("ix_orders_client_status", "orders", ["client_id", "status"])
    op.create_index("ix_orders_status_deleted", "orders", ["status", "is_deleted"])

    # 3. Order details (checkpoint reports)
    op.create_table(
        "order_details",
        sa.Column("detail_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("order_id", UUID(as_uuid=True), sa.ForeignKey("orders.order_id"), nullable=False),
        sa.Column("reported_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("reported_by", sa.String(255)),
        sa.Column("location_name", sa.String(255), nullable=False),
        sa.Column("sequence_number", sa.Integer, nullable=False, server_default="1"),
        sa.Column("notes", sa.Text),
        sa.Column("latitude", sa.Float),
        sa.Column("longitude", sa.Float),
        sa.Column("updated_by", sa.String(255)),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.CheckConstraint("latitude IS NULL OR (latitude >= -90 AND latitude <= 90)", name="ck_detail_latitude"),
        sa.CheckConstraint(
            "longitude IS NULL OR (longitude >= -180 AND longitude <= 180)", name="ck_detail_longitude"
        ),
    )
    op.create_index("ix_order_details_order", "order_details", ["order_id", "sequence_number"])


def downgrade() -> None:
    tables = [
        "order_details",
        "orders",
        "clients",
    ]
    for table in tables:
        op.drop_table(table)
