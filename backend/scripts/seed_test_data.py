"""
Seed Test Data — Creates demo clients and orders for development.

In-transit orders get heartbeats of different ages so the escalation sweep
has something to color green, yellow and red on its first tick.

Run: python scripts/seed_test_data.py
"""

import asyncio
import os
import random
import sys
import uuid
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.clock import utcnow
from core.config import get_settings
from db.models import Client, Order, OrderDetail
from db.session import Base

settings = get_settings()

# Seed data constants
CITIES = ["BOG", "MDE", "CLO", "BAQ", "CTG", "BGA"]
DRIVERS = ["Ana Rojas", "Luis Pardo", "Marta Gil", "Jorge Ruiz", "Sofia Leon"]
CHECKPOINTS = ["Weigh station", "Toll plaza", "Fuel stop", "Border control", "Depot"]
# (status, heartbeat age in minutes)
ORDER_MIX = [
    ("pending", 0),
    ("in_transit", 5),
    ("in_transit", 25),
    ("in_transit", 45),
    ("in_transit", 55),
    ("in_transit", 90),
    ("in_transit", 300),
    ("at_checkpoint", 70),
    ("delayed", 120),
    ("delivered", 600),
    ("cancelled", 1440),
]


async def seed_data():
    """Create demo data for development."""
    engine = create_async_engine(settings.database_url)
    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as db:
        # ── Clients ──────────────────────────────────────────
        clients = [
            Client(
                client_id=uuid.UUID("00000000-0000-0000-0000-000000000001"),
                company_name="Andes Freight",
                tax_id="900100200-1",
                email="ops@andesfreight.example",
            ),
            Client(
                client_id=uuid.UUID("00000000-0000-0000-0000-000000000002"),
                company_name="Caribe Cargo",
                tax_id="900300400-2",
                email="ops@caribecargo.example",
            ),
        ]
        db.add_all(clients)
        await db.flush()

        # ── Orders ───────────────────────────────────────────
        now = utcnow()
        order_count = 0
        detail_count = 0
        for client in clients:
            for index, (status, age_minutes) in enumerate(ORDER_MIX):
                origin, destination = random.sample(CITIES, k=2)
                heartbeat = now - timedelta(minutes=age_minutes)
                order = Order(
                    client_id=client.client_id,
                    order_number=f"{client.tax_id[:3]}-{index + 1:04d}",
                    status=status,
                    last_update_at=heartbeat,
                    departure_at=None if status == "pending" else heartbeat - timedelta(hours=2),
                    arrival_at=heartbeat if status == "delivered" else None,
                    origin_city_code=origin,
                    destination_city_code=destination,
                    distance_km=round(random.uniform(50, 1200), 1),
                    driver_name=random.choice(DRIVERS),
                    created_by="seed",
                    created_at=heartbeat - timedelta(hours=3),
                    updated_at=heartbeat,
                )
                db.add(order)
                order_count += 1
                await db.flush()

                if status == "in_transit":
                    db.add(
                        OrderDetail(
                            order_id=order.order_id,
                            reported_at=heartbeat,
                            reported_by="seed",
                            location_name=random.choice(CHECKPOINTS),
                            latitude=round(random.uniform(1.0, 11.0), 5),
                            longitude=round(random.uniform(-77.0, -72.0), 5),
                        )
                    )
                    detail_count += 1

        await db.commit()
        print(f"✅ Seeded: {len(clients)} clients, {order_count} orders, {detail_count} checkpoint reports")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_data())
