"""
Order Gateway — persistence seam for the lifecycle engine.

The lifecycle service and the escalation sweeper only talk to orders
through this interface, so either can be exercised against a fake store.
``SqlOrderGateway`` is the production implementation on an AsyncSession;
it flushes but never commits, the caller owns the unit of work.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Order
from lifecycle.statuses import OrderStatus, SeverityLevel


@dataclass
class OrderQuery:
    client_id: uuid.UUID | None = None
    status: OrderStatus | None = None
    search: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    skip: int = 0
    limit: int = 20


class OrderGateway(ABC):
    @abstractmethod
    async def find_active_in_transit_orders(self) -> Sequence[Order]:
        """Non-deleted IN_TRANSIT orders, with id, heartbeat and severity loaded."""
        ...

    @abstractmethod
    async def find_order_by_id(self, order_id: uuid.UUID) -> Order | None:
        """Point lookup. Soft-deleted orders are reported as missing."""
        ...

    @abstractmethod
    async def update_status(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        *,
        expected_status: OrderStatus,
        changed_at: datetime,
        arrival_at: datetime | None = None,
        updated_by: str | None = None,
    ) -> bool:
        """
        Compare-and-swap status write. Applies only while the stored status
        still equals ``expected_status``; returns False when it no longer does.
        """
        ...

    @abstractmethod
    async def update_severity(self, order_id: uuid.UUID, severity: SeverityLevel) -> None:
        """Write severity only. Must leave last_update_at untouched."""
        ...

    @abstractmethod
    async def batch_update_severity(self, changes: Iterable[tuple[uuid.UUID, SeverityLevel]]) -> int:
        """Write many severities at once. Returns affected row count."""
        ...

    @abstractmethod
    async def apply_severity_changes(self, changes: Iterable[tuple[uuid.UUID, SeverityLevel]]) -> list[uuid.UUID]:
        """
        Same write as batch_update_severity, returning the ids that were
        actually updated. Orders that left in-transit since they were read
        are not among them.
        """
        ...

    @abstractmethod
    async def touch_heartbeat(self, order_id: uuid.UUID, at: datetime, updated_by: str | None = None) -> None:
        ...

    # ── Plain record access ─────────────────────────────────────────────

    @abstractmethod
    async def order_number_exists(self, order_number: str, exclude_id: uuid.UUID | None = None) -> bool:
        ...

    @abstractmethod
    async def add_order(self, order: Order) -> Order:
        ...

    @abstractmethod
    async def update_fields(self, order: Order, fields: dict[str, Any], updated_by: str | None = None) -> Order:
        ...

    @abstractmethod
    async def soft_delete(self, order: Order, at: datetime, deleted_by: str | None = None) -> None:
        ...

    @abstractmethod
    async def list_orders(self, conditions: OrderQuery) -> tuple[list[Order], int]:
        ...


class SqlOrderGateway(OrderGateway):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_active_in_transit_orders(self) -> Sequence[Order]:
        result = await self.db.execute(
            select(Order).where(
                Order.status == OrderStatus.IN_TRANSIT.value,
                Order.is_deleted.is_(False),
            )
        )
        return result.scalars().all()

    async def find_order_by_id(self, order_id: uuid.UUID) -> Order | None:
        order = await self.db.get(Order, order_id, populate_existing=True)
        if order is None or order.is_deleted:
            return None
        return order

    async def update_status(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        *,
        expected_status: OrderStatus,
        changed_at: datetime,
        arrival_at: datetime | None = None,
        updated_by: str | None = None,
    ) -> bool:
        values = {
            "status": new_status.value,
            "last_update_at": changed_at,
            "updated_by": updated_by,
        }
        if new_status != OrderStatus.IN_TRANSIT:
            values["severity_level"] = None
        if arrival_at is not None:
            values["arrival_at"] = arrival_at

        result = await self.db.execute(
            update(Order)
            .where(
                Order.order_id == order_id,
                Order.status == expected_status.value,
                Order.is_deleted.is_(False),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        return result.rowcount == 1

    async def update_severity(self, order_id: uuid.UUID, severity: SeverityLevel) -> None:
        await self.batch_update_severity([(order_id, severity)])

    async def batch_update_severity(self, changes: Iterable[tuple[uuid.UUID, SeverityLevel]]) -> int:
        return len(await self.apply_severity_changes(changes))

    async def apply_severity_changes(self, changes: Iterable[tuple[uuid.UUID, SeverityLevel]]) -> list[uuid.UUID]:
        by_severity: dict[SeverityLevel, list[uuid.UUID]] = defaultdict(list)
        for order_id, severity in changes:
            by_severity[SeverityLevel(severity)].append(order_id)

        applied: list[uuid.UUID] = []
        for severity, order_ids in by_severity.items():
            # Pin both timestamps: severity is observational, not a heartbeat.
            result = await self.db.execute(
                update(Order)
                .where(
                    Order.order_id.in_(order_ids),
                    Order.status == OrderStatus.IN_TRANSIT.value,
                    Order.is_deleted.is_(False),
                )
                .values(
                    severity_level=severity.value,
                    last_update_at=Order.last_update_at,
                    updated_at=Order.updated_at,
                )
                .returning(Order.order_id)
                .execution_options(synchronize_session=False)
            )
            applied.extend(result.scalars().all())
        await self.db.flush()
        return applied

    async def touch_heartbeat(self, order_id: uuid.UUID, at: datetime, updated_by: str | None = None) -> None:
        await self.db.execute(
            update(Order)
            .where(Order.order_id == order_id)
            .values(last_update_at=at, updated_by=updated_by)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()

    async def order_number_exists(self, order_number: str, exclude_id: uuid.UUID | None = None) -> bool:
        query = select(Order.order_id).where(Order.order_number == order_number)
        if exclude_id is not None:
            query = query.where(Order.order_id != exclude_id)
        result = await self.db.execute(query.limit(1))
        return result.first() is not None

    async def add_order(self, order: Order) -> Order:
        self.db.add(order)
        await self.db.flush()
        return order

    async def update_fields(self, order: Order, fields: dict[str, Any], updated_by: str | None = None) -> Order:
        for name, value in fields.items():
            setattr(order, name, value)
        order.updated_by = updated_by
        await self.db.flush()
        return order

    async def soft_delete(self, order: Order, at: datetime, deleted_by: str | None = None) -> None:
        order.is_deleted = True
        order.deleted_at = at
        order.deleted_by = deleted_by
        await self.db.flush()

    async def list_orders(self, conditions: OrderQuery) -> tuple[list[Order], int]:
        where = [Order.is_deleted.is_(False)]
        if conditions.client_id:
            where.append(Order.client_id == conditions.client_id)
        if conditions.status:
            where.append(Order.status == OrderStatus(conditions.status).value)
        if conditions.from_date:
            where.append(Order.created_at >= conditions.from_date)
        if conditions.to_date:
            where.append(Order.created_at <= conditions.to_date)
        if conditions.search:
            pattern = f"%{conditions.search}%"
            where.append(or_(Order.order_number.like(pattern), Order.manifest_number.like(pattern)))

        total = (await self.db.execute(select(func.count(Order.order_id)).where(*where))).scalar() or 0
        result = await self.db.execute(
            select(Order)
            .where(*where)
            .order_by(Order.created_at.desc())
            .offset(conditions.skip)
            .limit(conditions.limit)
        )
        return list(result.scalars().all()), int(total)
