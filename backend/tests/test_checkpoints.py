"""
Tests for checkpoint reports and their effect on the order heartbeat.
"""

import uuid
from datetime import timedelta

import pytest

from core.access import Actor, Role
from lifecycle import checkpoints
from lifecycle.errors import AccessDenied, CheckpointNotFound, InvalidOrderUpdate, OrderNotInTransit
from lifecycle.gateway import SqlOrderGateway
from lifecycle.service import OrderLifecycleService
from conftest import CLIENT_ID, NOW

OPERATOR = Actor(subject="op-7", role=Role.OPERATOR, name="Marta Gil")
TENANT_A = Actor(subject="client-a", role=Role.CLIENT, client_id=uuid.UUID(CLIENT_ID))


@pytest.mark.asyncio
class TestRecordCheckpoint:
    async def test_report_refreshes_heartbeat(self, test_db, seeded_db):
        order = seeded_db["in_transit"]
        reported_at = NOW + timedelta(minutes=5)

        detail = await checkpoints.record_checkpoint(
            test_db,
            order.order_id,
            {"location_name": "Toll plaza", "latitude": 4.6, "longitude": -74.1},
            OPERATOR,
            now=reported_at,
        )
        await test_db.commit()

        assert detail.sequence_number == 1
        assert detail.reported_by == "Marta Gil"
        assert detail.reported_at == reported_at

        fresh = await SqlOrderGateway(test_db).find_order_by_id(order.order_id)
        assert fresh.last_update_at == reported_at
        assert fresh.status == "in_transit"

    async def test_only_in_transit_orders_accept_reports(self, test_db, seeded_db):
        for key in ("pending", "delivered"):
            with pytest.raises(OrderNotInTransit):
                await checkpoints.record_checkpoint(
                    test_db, seeded_db[key].order_id, {"location_name": "Depot"}, OPERATOR
                )

    @pytest.mark.parametrize("latitude,longitude", [(91, 0), (-90.5, 0), (0, 181), (0, -180.01)])
    async def test_out_of_range_coordinates(self, test_db, seeded_db, latitude, longitude):
        with pytest.raises(InvalidOrderUpdate):
            await checkpoints.record_checkpoint(
                test_db,
                seeded_db["in_transit"].order_id,
                {"location_name": "Nowhere", "latitude": latitude, "longitude": longitude},
                OPERATOR,
            )

    async def test_other_tenant_cannot_report(self, test_db, seeded_db):
        with pytest.raises(AccessDenied):
            await checkpoints.record_checkpoint(
                test_db, seeded_db["other_tenant"].order_id, {"location_name": "Depot"}, TENANT_A
            )


@pytest.mark.asyncio
class TestManageCheckpoints:
    async def _record(self, db, order, **fields):
        data = {"location_name": "Fuel stop", **fields}
        detail = await checkpoints.record_checkpoint(db, order.order_id, data, OPERATOR, now=NOW)
        await db.commit()
        return detail

    async def test_list_is_ordered_by_sequence(self, test_db, seeded_db):
        order = seeded_db["in_transit"]
        await self._record(test_db, order, sequence_number=2, location_name="Second")
        await self._record(test_db, order, sequence_number=1, location_name="First")

        details = await checkpoints.list_checkpoints(test_db, order.order_id, OPERATOR)
        assert [d.location_name for d in details] == ["First", "Second"]

    async def test_correction_is_not_a_heartbeat(self, test_db, seeded_db):
        order = seeded_db["in_transit"]
        detail = await self._record(test_db, order)

        await checkpoints.update_checkpoint(
            test_db, order.order_id, detail.detail_id, {"notes": "Driver resting"}, OPERATOR
        )
        await test_db.commit()

        fresh = await SqlOrderGateway(test_db).find_order_by_id(order.order_id)
        assert fresh.last_update_at == NOW

    async def test_deleted_report_disappears(self, test_db, seeded_db):
        order = seeded_db["in_transit"]
        detail = await self._record(test_db, order)

        await checkpoints.delete_checkpoint(test_db, order.order_id, detail.detail_id, OPERATOR)
        await test_db.commit()

        assert await checkpoints.list_checkpoints(test_db, order.order_id, OPERATOR) == []
        with pytest.raises(CheckpointNotFound):
            await checkpoints.get_checkpoint(test_db, order.order_id, detail.detail_id, OPERATOR)

    async def test_reports_on_delivered_order_cannot_be_deleted(self, test_db, seeded_db):
        order = seeded_db["in_transit"]
        detail = await self._record(test_db, order)
        await OrderLifecycleService(SqlOrderGateway(test_db), clock=lambda: NOW).finalize(order.order_id, OPERATOR)
        await test_db.commit()

        with pytest.raises(OrderNotInTransit):
            await checkpoints.delete_checkpoint(test_db, order.order_id, detail.detail_id, OPERATOR)

        kept = await checkpoints.get_checkpoint(test_db, order.order_id, detail.detail_id, OPERATOR)
        assert kept.is_deleted is False

    async def test_report_must_belong_to_order(self, test_db, seeded_db):
        detail = await self._record(test_db, seeded_db["in_transit"])
        with pytest.raises(CheckpointNotFound):
            await checkpoints.get_checkpoint(test_db, seeded_db["other_tenant"].order_id, detail.detail_id, OPERATOR)

    async def test_unknown_fields_are_rejected(self, test_db, seeded_db):
        order = seeded_db["in_transit"]
        detail = await self._record(test_db, order)
        with pytest.raises(InvalidOrderUpdate):
            await checkpoints.update_checkpoint(
                test_db, order.order_id, detail.detail_id, {"order_id": str(uuid.uuid4())}, OPERATOR
            )
