"""
Orders Router — shipment orders, status lifecycle and checkpoint reports.

Status workflow:
  pending → in_transit ⇄ at_checkpoint / delayed / incident → delivered
  (cancel allowed from any non-terminal status)

Delivered and cancelled orders are read-only. Checkpoint reports can only
be filed while an order is in transit; each one refreshes the order's
heartbeat and so resets its staleness light.

Domain errors (not found, access denied, invalid transition, locked) are
raised by the lifecycle layer and translated in api.main.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_actor, get_db, get_lifecycle_service
from core.access import Actor
from core.clock import to_naive_utc
from lifecycle import checkpoints
from lifecycle.gateway import OrderQuery
from lifecycle.service import OrderLifecycleService
from lifecycle.statuses import STATUS_LABELS, OrderStatus
from lifecycle.transitions import default_validator

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class OrderResponse(BaseModel):
    order_id: UUID
    client_id: UUID
    order_number: str
    status: str
    severity_level: str | None
    last_update_at: datetime
    departure_at: datetime | None
    arrival_at: datetime | None
    manifest_number: str | None
    insurance_company: str | None
    origin_city_code: str | None
    destination_city_code: str | None
    route_description: str | None
    distance_km: float | None
    estimated_time: str | None
    restrictions: str | None
    tracking_link: str | None
    notes: str | None
    driver_name: str | None
    driver_mobile: str | None
    created_at: datetime
    created_by: str | None
    updated_at: datetime
    updated_by: str | None

    model_config = {"from_attributes": True}


class OrderPage(BaseModel):
    data: list[OrderResponse]
    total: int
    skip: int
    limit: int


class _ShipmentFields(BaseModel):
    manifest_number: str | None = None
    insurance_company: str | None = None
    origin_city_code: str | None = None
    destination_city_code: str | None = None
    route_description: str | None = None
    distance_km: float | None = Field(None, ge=0)
    estimated_time: str | None = None
    restrictions: str | None = None
    tracking_link: str | None = None
    notes: str | None = None
    departure_at: datetime | None = None
    driver_name: str | None = None
    driver_mobile: str | None = None

    @field_validator("departure_at")
    @classmethod
    def _naive_departure(cls, value):
        return to_naive_utc(value)


class OrderCreate(_ShipmentFields):
    client_id: UUID
    order_number: str = Field(..., min_length=1, max_length=50)


class OrderUpdate(_ShipmentFields):
    """Descriptive fields only. Status and severity are not editable here."""

    model_config = {"extra": "forbid"}


class StatusChangeRequest(BaseModel):
    status: OrderStatus


class FinalizeRequest(BaseModel):
    arrival_at: datetime | None = None

    @field_validator("arrival_at")
    @classmethod
    def _naive_arrival(cls, value):
        return to_naive_utc(value)


class StatusCatalogEntry(BaseModel):
    status: OrderStatus
    label: str
    terminal: bool
    allowed_next: list[OrderStatus]


class CheckpointResponse(BaseModel):
    detail_id: UUID
    order_id: UUID
    reported_at: datetime
    reported_by: str | None
    location_name: str
    sequence_number: int
    notes: str | None
    latitude: float | None
    longitude: float | None
    updated_at: datetime
    updated_by: str | None

    model_config = {"from_attributes": True}


class CheckpointCreate(BaseModel):
    location_name: str = Field(..., min_length=1)
    notes: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    sequence_number: int | None = Field(None, ge=1)


class CheckpointUpdate(BaseModel):
    location_name: str | None = Field(None, min_length=1)
    notes: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    model_config = {"extra": "forbid"}


# ─── Orders ─────────────────────────────────────────────────────────────────


@router.get("/", response_model=OrderPage)
async def list_orders(
    client_id: UUID | None = None,
    status: OrderStatus | None = None,
    search: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    service: OrderLifecycleService = Depends(get_lifecycle_service),
):
    """List orders. Non-privileged actors only see their own client's orders."""
    query = OrderQuery(
        client_id=client_id,
        status=status,
        search=search,
        from_date=to_naive_utc(from_date),
        to_date=to_naive_utc(to_date),
        skip=skip,
        limit=limit,
    )
    orders, total = await service.list_orders(actor, query)
    return OrderPage(
        data=[OrderResponse.model_validate(order) for order in orders],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/statuses", response_model=list[StatusCatalogEntry])
async def list_statuses():
    """Status catalog with the statuses reachable from each."""
    return [
        StatusCatalogEntry(
            status=status,
            label=STATUS_LABELS[status],
            terminal=default_validator.is_terminal(status),
            allowed_next=sorted(default_validator.allowed_from(status), key=lambda s: s.value),
        )
        for status in OrderStatus
    ]


@router.get("/check-order-number/{order_number}")
async def check_order_number(
    order_number: str,
    exclude_id: UUID | None = None,
    actor: Actor = Depends(get_current_actor),
    service: OrderLifecycleService = Depends(get_lifecycle_service),
):
    return {"exists": await service.order_number_taken(order_number, exclude_id=exclude_id)}


@router.post("/", response_model=OrderResponse, status_code=201)
async def create_order(
    body: OrderCreate,
    actor: Actor = Depends(get_current_actor),
    service: OrderLifecycleService = Depends(get_lifecycle_service),
    db: AsyncSession = Depends(get_db),
):
    """Create an order in 'pending' status."""
    order = await service.create_order(body.model_dump(exclude_unset=True), actor)
    await db.commit()
    await db.refresh(order)
    return order


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: OrderLifecycleService = Depends(get_lifecycle_service),
):
    return await service.get_order(order_id, actor)


@router.put("/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: UUID,
    body: OrderUpdate,
    actor: Actor = Depends(get_current_actor),
    service: OrderLifecycleService = Depends(get_lifecycle_service),
    db: AsyncSession = Depends(get_db),
):
    """Edit descriptive fields. Delivered/cancelled orders return 423."""
    order = await service.change_fields(order_id, body.model_dump(exclude_unset=True), actor)
    await db.commit()
    await db.refresh(order)
    return order


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def change_order_status(
    order_id: UUID,
    body: StatusChangeRequest,
    actor: Actor = Depends(get_current_actor),
    service: OrderLifecycleService = Depends(get_lifecycle_service),
    db: AsyncSession = Depends(get_db),
):
    """Move an order along the status graph. Disallowed edges return 409."""
    order = await service.change_status(order_id, body.status, actor)
    await db.commit()
    return order


@router.put("/{order_id}/activate", response_model=OrderResponse)
async def activate_order(
    order_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: OrderLifecycleService = Depends(get_lifecycle_service),
    db: AsyncSession = Depends(get_db),
):
    order = await service.activate(order_id, actor)
    await db.commit()
    return order


@router.put("/{order_id}/finalize", response_model=OrderResponse)
async def finalize_order(
    order_id: UUID,
    body: FinalizeRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    service: OrderLifecycleService = Depends(get_lifecycle_service),
    db: AsyncSession = Depends(get_db),
):
    """Mark delivered. arrival_at defaults to now."""
    order = await service.finalize(order_id, actor, arrival_at=body.arrival_at if body else None)
    await db.commit()
    return order


@router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: OrderLifecycleService = Depends(get_lifecycle_service),
    db: AsyncSession = Depends(get_db),
):
    order = await service.cancel(order_id, actor)
    await db.commit()
    return order


@router.delete("/{order_id}", status_code=204)
async def delete_order(
    order_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: OrderLifecycleService = Depends(get_lifecycle_service),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete. The order drops out of listings and the escalation sweep."""
    await service.delete_order(order_id, actor)
    await db.commit()
    return Response(status_code=204)


# ─── Checkpoint reports ─────────────────────────────────────────────────────


@router.get("/{order_id}/details", response_model=list[CheckpointResponse])
async def list_order_details(
    order_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await checkpoints.list_checkpoints(db, order_id, actor)


@router.get("/{order_id}/details/{detail_id}", response_model=CheckpointResponse)
async def get_order_detail(
    order_id: UUID,
    detail_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await checkpoints.get_checkpoint(db, order_id, detail_id, actor)


@router.post("/{order_id}/details", response_model=CheckpointResponse, status_code=201)
async def create_order_detail(
    order_id: UUID,
    body: CheckpointCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """File a checkpoint report. Refreshes the order heartbeat."""
    detail = await checkpoints.record_checkpoint(db, order_id, body.model_dump(exclude_unset=True), actor)
    await db.commit()
    await db.refresh(detail)
    return detail


@router.put("/{order_id}/details/{detail_id}", response_model=CheckpointResponse)
async def update_order_detail(
    order_id: UUID,
    detail_id: UUID,
    body: CheckpointUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    detail = await checkpoints.update_checkpoint(db, order_id, detail_id, body.model_dump(exclude_unset=True), actor)
    await db.commit()
    await db.refresh(detail)
    return detail


@router.delete("/{order_id}/details/{detail_id}", status_code=204)
async def delete_order_detail(
    order_id: UUID,
    detail_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await checkpoints.delete_checkpoint(db, order_id, detail_id, actor)
    await db.commit()
    return Response(status_code=204)
