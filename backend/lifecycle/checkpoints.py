"""
Checkpoint Reports — location/status reports filed while an order travels.

A report is the order's heartbeat: recording one refreshes the order's
last_update_at in the same unit of work, which is what pulls a yellow or
red order back to green on the next sweep tick. Reports are only accepted
while the order is in transit.
"""

import uuid
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.access import Actor
from core.clock import utcnow
from db.models import Order, OrderDetail
from lifecycle.errors import CheckpointNotFound, InvalidOrderUpdate, OrderNotInTransit
from lifecycle.gateway import SqlOrderGateway
from lifecycle.service import OrderLifecycleService
from lifecycle.statuses import OrderStatus

logger = structlog.get_logger()

REPORT_FIELDS = frozenset({"location_name", "notes", "latitude", "longitude", "sequence_number"})


def validate_coordinates(latitude: float | None = None, longitude: float | None = None) -> None:
    if latitude is not None and not -90 <= latitude <= 90:
        raise InvalidOrderUpdate("Latitude must be between -90 and 90")
    if longitude is not None and not -180 <= longitude <= 180:
        raise InvalidOrderUpdate("Longitude must be between -180 and 180")


def _ensure_in_transit(order: Order) -> None:
    if order.status != OrderStatus.IN_TRANSIT.value:
        raise OrderNotInTransit(f"Can only add reports to orders in transit (order is '{order.status}')")


async def _load_detail(db: AsyncSession, order: Order, detail_id: uuid.UUID) -> OrderDetail:
    detail = await db.get(OrderDetail, detail_id)
    if detail is None or detail.is_deleted or detail.order_id != order.order_id:
        raise CheckpointNotFound(f"Checkpoint {detail_id} not found on order {order.order_number}")
    return detail


async def record_checkpoint(
    db: AsyncSession,
    order_id: uuid.UUID,
    data: dict,
    actor: Actor,
    now: datetime | None = None,
) -> OrderDetail:
    """Insert a checkpoint report and refresh the order heartbeat."""
    gateway = SqlOrderGateway(db)
    order = await OrderLifecycleService(gateway).load_for_actor(order_id, actor)
    _ensure_in_transit(order)
    validate_coordinates(data.get("latitude"), data.get("longitude"))

    unknown = sorted(set(data) - REPORT_FIELDS)
    if unknown:
        raise InvalidOrderUpdate(f"Unknown checkpoint fields: {', '.join(unknown)}")

    now = now or utcnow()
    detail = OrderDetail(
        order_id=order.order_id,
        reported_at=now,
        reported_by=actor.display_name or "system",
        location_name=data["location_name"],
        sequence_number=data.get("sequence_number") or 1,
        notes=data.get("notes"),
        latitude=data.get("latitude"),
        longitude=data.get("longitude"),
        updated_at=now,
    )
    db.add(detail)
    await db.flush()
    await gateway.touch_heartbeat(order.order_id, now, updated_by=actor.subject)

    logger.info(
        "checkpoint.recorded",
        order_id=str(order.order_id),
        order_number=order.order_number,
        detail_id=str(detail.detail_id),
        location=detail.location_name,
    )
    return detail


async def list_checkpoints(db: AsyncSession, order_id: uuid.UUID, actor: Actor) -> list[OrderDetail]:
    order = await OrderLifecycleService(SqlOrderGateway(db)).load_for_actor(order_id, actor)
    result = await db.execute(
        select(OrderDetail)
        .where(OrderDetail.order_id == order.order_id, OrderDetail.is_deleted.is_(False))
        .order_by(OrderDetail.sequence_number.asc(), OrderDetail.reported_at.asc())
    )
    return list(result.scalars().all())


async def get_checkpoint(db: AsyncSession, order_id: uuid.UUID, detail_id: uuid.UUID, actor: Actor) -> OrderDetail:
    order = await OrderLifecycleService(SqlOrderGateway(db)).load_for_actor(order_id, actor)
    return await _load_detail(db, order, detail_id)


async def update_checkpoint(
    db: AsyncSession,
    order_id: uuid.UUID,
    detail_id: uuid.UUID,
    data: dict,
    actor: Actor,
) -> OrderDetail:
    """Correct a report. Does not count as a heartbeat."""
    order = await OrderLifecycleService(SqlOrderGateway(db)).load_for_actor(order_id, actor)
    detail = await _load_detail(db, order, detail_id)
    _ensure_in_transit(order)
    validate_coordinates(data.get("latitude"), data.get("longitude"))

    unknown = sorted(set(data) - REPORT_FIELDS)
    if unknown:
        raise InvalidOrderUpdate(f"Unknown checkpoint fields: {', '.join(unknown)}")

    for name, value in data.items():
        setattr(detail, name, value)
    detail.updated_by = actor.subject
    await db.flush()
    return detail


async def delete_checkpoint(db: AsyncSession, order_id: uuid.UUID, detail_id: uuid.UUID, actor: Actor) -> None:
    order = await OrderLifecycleService(SqlOrderGateway(db)).load_for_actor(order_id, actor)
    detail = await _load_detail(db, order, detail_id)
    _ensure_in_transit(order)
    detail.is_deleted = True
    detail.updated_by = actor.subject
    await db.flush()
    logger.info("checkpoint.deleted", order_id=str(order.order_id), detail_id=str(detail_id))
