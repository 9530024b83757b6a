"""
Order Lifecycle Service — validated status changes and order edits.

Every status change goes through the same path:
  1. Load the order (missing or soft-deleted → OrderNotFound)
  2. Check the actor's tenant scope (→ AccessDenied)
  3. Check the transition graph (→ InvalidTransition)
  4. Compare-and-swap write on the observed status, so when two requests
     race on the same order only one of them lands

Delivering an order stamps arrival_at in the same statement. Leaving
in-transit clears the severity light; entering it refreshes the heartbeat
so the next sweep tick starts the order at green.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

import structlog

from core.access import Actor, ensure_tenant_access
from core.clock import utcnow
from db.models import Order
from lifecycle.errors import (
    DuplicateOrderNumber,
    InvalidOrderUpdate,
    InvalidTransition,
    OrderLocked,
    OrderNotFound,
)
from lifecycle.gateway import OrderGateway, OrderQuery, SqlOrderGateway
from lifecycle.statuses import OrderStatus
from lifecycle.transitions import StatusTransitionValidator, default_validator

logger = structlog.get_logger()

EDITABLE_FIELDS = frozenset(
    {
        "manifest_number",
        "insurance_company",
        "origin_city_code",
        "destination_city_code",
        "route_description",
        "distance_km",
        "estimated_time",
        "restrictions",
        "tracking_link",
        "notes",
        "departure_at",
        "driver_name",
        "driver_mobile",
    }
)


class OrderLifecycleService:
    def __init__(
        self,
        gateway: OrderGateway,
        validator: StatusTransitionValidator = default_validator,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.gateway = gateway
        self.validator = validator
        self.clock = clock

    async def load_for_actor(self, order_id: uuid.UUID, actor: Actor) -> Order:
        order = await self.gateway.find_order_by_id(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found")
        ensure_tenant_access(actor, order.client_id)
        return order

    # ── Status changes ──────────────────────────────────────────────────

    async def change_status(
        self,
        order_id: uuid.UUID,
        requested: OrderStatus | str,
        actor: Actor,
        *,
        arrival_at: datetime | None = None,
    ) -> Order:
        order = await self.load_for_actor(order_id, actor)
        current = OrderStatus(order.status)

        try:
            requested = OrderStatus(requested)
        except ValueError:
            raise InvalidTransition(current.value, str(requested)) from None

        if not self.validator.is_allowed(current, requested):
            raise InvalidTransition(current.value, requested.value)

        now = self.clock()
        if requested == OrderStatus.DELIVERED:
            arrival_at = arrival_at or now
            if order.departure_at and arrival_at < order.departure_at:
                raise InvalidOrderUpdate("arrival_at cannot precede departure_at")
        else:
            arrival_at = None

        applied = await self.gateway.update_status(
            order.order_id,
            requested,
            expected_status=current,
            changed_at=now,
            arrival_at=arrival_at,
            updated_by=actor.subject,
        )
        if not applied:
            fresh = await self.gateway.find_order_by_id(order.order_id)
            if fresh is None:
                raise OrderNotFound(f"Order {order_id} not found")
            raise InvalidTransition(
                fresh.status,
                requested.value,
                f"Order {order_id} moved to '{fresh.status}' concurrently; '{requested.value}' not applied",
            )

        logger.info(
            "lifecycle.status_changed",
            order_id=str(order.order_id),
            order_number=order.order_number,
            from_status=current.value,
            to_status=requested.value,
            actor=actor.subject,
        )
        return await self.gateway.find_order_by_id(order.order_id)

    async def activate(self, order_id: uuid.UUID, actor: Actor) -> Order:
        return await self.change_status(order_id, OrderStatus.IN_TRANSIT, actor)

    async def finalize(self, order_id: uuid.UUID, actor: Actor, arrival_at: datetime | None = None) -> Order:
        return await self.change_status(order_id, OrderStatus.DELIVERED, actor, arrival_at=arrival_at)

    async def cancel(self, order_id: uuid.UUID, actor: Actor) -> Order:
        return await self.change_status(order_id, OrderStatus.CANCELLED, actor)

    # ── Field edits ─────────────────────────────────────────────────────

    async def change_fields(self, order_id: uuid.UUID, fields: Mapping[str, Any], actor: Actor) -> Order:
        """Edit descriptive fields. Terminal orders are read-only; lifecycle fields are never editable here."""
        order = await self.load_for_actor(order_id, actor)

        if self.validator.is_terminal(order.status):
            raise OrderLocked(f"Order {order.order_number} is {order.status} and cannot be modified")
        protected = sorted(set(fields) - EDITABLE_FIELDS)
        if protected:
            raise InvalidOrderUpdate(f"Fields not editable: {', '.join(protected)}")

        return await self.gateway.update_fields(order, dict(fields), updated_by=actor.subject)

    # ── Records ─────────────────────────────────────────────────────────

    async def create_order(self, data: Mapping[str, Any], actor: Actor) -> Order:
        ensure_tenant_access(actor, data["client_id"])

        extra = sorted(set(data) - EDITABLE_FIELDS - {"client_id", "order_number"})
        if extra:
            raise InvalidOrderUpdate(f"Fields not settable on create: {', '.join(extra)}")
        if await self.gateway.order_number_exists(data["order_number"]):
            raise DuplicateOrderNumber(f"Order number {data['order_number']} already exists")

        now = self.clock()
        order = await self.gateway.add_order(
            Order(
                **dict(data),
                status=OrderStatus.PENDING.value,
                severity_level=None,
                last_update_at=now,
                created_at=now,
                updated_at=now,
                created_by=actor.subject,
            )
        )
        logger.info(
            "lifecycle.order_created",
            order_id=str(order.order_id),
            order_number=order.order_number,
            client_id=str(order.client_id),
        )
        return order

    async def get_order(self, order_id: uuid.UUID, actor: Actor) -> Order:
        return await self.load_for_actor(order_id, actor)

    async def list_orders(self, actor: Actor, query: OrderQuery) -> tuple[list[Order], int]:
        if not actor.is_privileged:
            query.client_id = actor.client_id
        return await self.gateway.list_orders(query)

    async def order_number_taken(self, order_number: str, exclude_id: uuid.UUID | None = None) -> bool:
        return await self.gateway.order_number_exists(order_number, exclude_id=exclude_id)

    async def delete_order(self, order_id: uuid.UUID, actor: Actor) -> None:
        order = await self.load_for_actor(order_id, actor)
        await self.gateway.soft_delete(order, self.clock(), deleted_by=actor.subject)
        logger.info("lifecycle.order_deleted", order_id=str(order.order_id), actor=actor.subject)


def lifecycle_service_for(db) -> OrderLifecycleService:
    return OrderLifecycleService(SqlOrderGateway(db))
