"""
Waypoint Database Models

Multi-tenant via client_id on orders.

Tables:
  1. clients              - Tenant organizations that own shipments
  2. orders               - Shipment orders (status lifecycle + staleness light)
  3. order_details        - Checkpoint reports filed while an order is in transit

Two timestamps on orders are easy to confuse:
  - updated_at      general audit stamp, refreshed on every ORM update
  - last_update_at  heartbeat consumed by the escalation sweep; refreshed only
                    by checkpoint reports and status changes
"""

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from core.clock import utcnow


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


from sqlalchemy.orm import relationship

from db.session import Base

ORDER_STATUS_VALUES = "'pending', 'in_transit', 'at_checkpoint', 'delivered', 'cancelled', 'delayed', 'incident'"

# ─── 1. Clients ────────────────────────────────────────────────────────────


class Client(Base):
    __tablename__ = "clients"

    client_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    company_name = Column(String(255), nullable=False)
    tax_id = Column(String(50), nullable=False, unique=True)
    email = Column(String(255))
    phone = Column(String(50))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    orders = relationship("Order", back_populates="client")


# ─── 2. Orders ─────────────────────────────────────────────────────────────


class Order(Base):
    __tablename__ = "orders"

    order_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    client_id = Column(GUID(), ForeignKey("clients.client_id"), nullable=False)
    order_number = Column(String(50), nullable=False, unique=True)

    # Lifecycle
    status = Column(String(20), nullable=False, default="pending")
    severity_level = Column(String(10))  # green, yellow, red; written only by the escalation sweep
    last_update_at = Column(DateTime, nullable=False, default=utcnow)  # heartbeat, no onupdate
    departure_at = Column(DateTime)
    arrival_at = Column(DateTime)

    # Shipment description
    manifest_number = Column(String(100))
    insurance_company = Column(String(255))
    origin_city_code = Column(String(20))
    destination_city_code = Column(String(20))
    route_description = Column(Text)
    distance_km = Column(Float)
    estimated_time = Column(String(50))
    restrictions = Column(Text)
    tracking_link = Column(String(500))
    notes = Column(Text)
    driver_name = Column(String(255))
    driver_mobile = Column(String(50))

    # Audit
    created_by = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_by = Column(String(255))
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_by = Column(String(255))
    deleted_at = Column(DateTime)

    __table_args__ = (
        Index("ix_orders_client_status", "client_id", "status"),
        Index("ix_orders_status_deleted", "status", "is_deleted"),
        CheckConstraint(f"status IN ({ORDER_STATUS_VALUES})", name="ck_order_status"),
        CheckConstraint(
            "severity_level IS NULL OR severity_level IN ('green', 'yellow', 'red')",
            name="ck_order_severity_level",
        ),
        CheckConstraint("distance_km IS NULL OR distance_km >= 0", name="ck_order_distance_positive"),
    )

    client = relationship("Client", back_populates="orders")
    details = relationship("OrderDetail", back_populates="order", cascade="all, delete-orphan")


# ─── 3. Order Details (checkpoint reports) ─────────────────────────────────


class OrderDetail(Base):
    __tablename__ = "order_details"

    detail_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    order_id = Column(GUID(), ForeignKey("orders.order_id"), nullable=False)
    reported_at = Column(DateTime, nullable=False, default=utcnow)
    reported_by = Column(String(255))
    location_name = Column(String(255), nullable=False)
    sequence_number = Column(Integer, nullable=False, default=1)  # 1 = no news
    notes = Column(Text)
    latitude = Column(Float)
    longitude = Column(Float)
    updated_by = Column(String(255))
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    is_deleted = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_order_details_order", "order_id", "sequence_number"),
        CheckConstraint("latitude IS NULL OR (latitude >= -90 AND latitude <= 90)", name="ck_detail_latitude"),
        CheckConstraint(
            "longitude IS NULL OR (longitude >= -180 AND longitude <= 180)", name="ck_detail_longitude"
        ),
    )

    order = relationship("Order", back_populates="details")
