"""
Tests for the escalation sweeper: severity recoloring, scope, and failure containment.
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select, update
from structlog.testing import capture_logs

from db.models import Order
from lifecycle.gateway import SqlOrderGateway
from lifecycle.staleness import StalenessThresholds
from lifecycle.statuses import SeverityLevel
from lifecycle.sweeper import EscalationSweeper, compute_changes, next_tick_at
from conftest import NOW


async def _snapshot(session_factory):
    """Fresh read of every order, keyed by order number."""
    async with session_factory() as db:
        result = await db.execute(select(Order))
        return {order.order_number: order for order in result.scalars().all()}


def _sweeper(session_factory, now=NOW, **kwargs):
    return EscalationSweeper(session_factory, clock=lambda: now, **kwargs)


class _FailingGateway(SqlOrderGateway):
    async def find_active_in_transit_orders(self):
        raise RuntimeError("connection reset by peer")


class _SlowGateway(SqlOrderGateway):
    async def find_active_in_transit_orders(self):
        await asyncio.sleep(1)
        return []


class _DeliveredMidSweepGateway(SqlOrderGateway):
    """WP-0004 is delivered by someone else between the sweep's read and its write."""

    async def find_active_in_transit_orders(self):
        orders = await super().find_active_in_transit_orders()
        await self.db.execute(
            update(Order)
            .where(Order.order_number == "WP-0004")
            .values(status="delivered")
            .execution_options(synchronize_session=False)
        )
        return orders


class _PacedSweeper(EscalationSweeper):
    """Records when each tick starts and takes `busy` seconds per tick."""

    def __init__(self, *args, busy: float, **kwargs):
        super().__init__(*args, **kwargs)
        self.busy = busy
        self.started_at: list[float] = []

    async def tick(self):
        self.started_at.append(asyncio.get_running_loop().time())
        await asyncio.sleep(self.busy)


@pytest.mark.asyncio
class TestSweep:
    async def test_classifies_in_transit_orders(self, session_factory, seeded_db):
        result = await _sweeper(session_factory).tick()

        assert result.status == "success"
        assert result.scanned == 2
        assert result.changed == 2

        orders = await _snapshot(session_factory)
        assert orders["WP-0002"].severity_level == "green"  # 10 minutes
        assert orders["WP-0004"].severity_level == "yellow"  # 50 minutes

    async def test_second_tick_writes_nothing(self, session_factory, seeded_db):
        sweeper = _sweeper(session_factory)
        first = await sweeper.tick()
        second = await sweeper.tick()

        assert first.changed == 2
        assert second.status == "success"
        assert second.changed == 0
        assert second.changes == []

    async def test_terminal_orders_are_untouched(self, session_factory, seeded_db):
        before = (await _snapshot(session_factory))["WP-0003"]

        await _sweeper(session_factory).tick()

        after = (await _snapshot(session_factory))["WP-0003"]
        assert after.severity_level is None
        assert after.updated_at == before.updated_at

    async def test_pending_orders_are_untouched(self, session_factory, seeded_db):
        await _sweeper(session_factory, now=NOW + timedelta(hours=5)).tick()
        assert (await _snapshot(session_factory))["WP-0001"].severity_level is None

    async def test_heartbeat_is_preserved(self, session_factory, seeded_db):
        before = await _snapshot(session_factory)

        await _sweeper(session_factory, now=NOW + timedelta(minutes=90)).tick()

        after = await _snapshot(session_factory)
        for number in ("WP-0002", "WP-0004"):
            assert after[number].severity_level == "red"
            assert after[number].last_update_at == before[number].last_update_at
            assert after[number].updated_at == before[number].updated_at

    async def test_light_follows_clock(self, session_factory, seeded_db):
        sweeper_at = lambda minutes: _sweeper(session_factory, now=NOW + timedelta(minutes=minutes))

        await sweeper_at(0).tick()
        await sweeper_at(30).tick()  # WP-0002 at 40 minutes
        assert (await _snapshot(session_factory))["WP-0002"].severity_level == "yellow"

        await sweeper_at(50).tick()  # WP-0002 at 60 minutes
        assert (await _snapshot(session_factory))["WP-0002"].severity_level == "red"

    async def test_checkpoint_heartbeat_resets_to_green(self, test_db, session_factory, seeded_db):
        order = seeded_db["other_tenant"]
        await _sweeper(session_factory, now=NOW + timedelta(minutes=30)).tick()
        assert (await _snapshot(session_factory))["WP-0004"].severity_level == "red"

        await SqlOrderGateway(test_db).touch_heartbeat(order.order_id, NOW + timedelta(minutes=30))
        await test_db.commit()

        result = await _sweeper(session_factory, now=NOW + timedelta(minutes=31)).tick()
        assert result.changed == 1
        assert result.changes[0].old == SeverityLevel.RED
        assert result.changes[0].new == SeverityLevel.GREEN

    async def test_custom_thresholds(self, session_factory, seeded_db):
        thresholds = StalenessThresholds(yellow_after_minutes=5, red_after_minutes=30)
        await _sweeper(session_factory, thresholds=thresholds).tick()

        orders = await _snapshot(session_factory)
        assert orders["WP-0002"].severity_level == "yellow"
        assert orders["WP-0004"].severity_level == "red"

    async def test_first_classification_reports_no_previous_light(self, session_factory, seeded_db):
        result = await _sweeper(session_factory).tick()
        assert {change.old for change in result.changes} == {None}

    async def test_order_leaving_transit_mid_sweep_is_not_reported(self, session_factory, seeded_db):
        with capture_logs() as logs:
            result = await _sweeper(session_factory, gateway_factory=_DeliveredMidSweepGateway).tick()

        assert result.scanned == 2
        assert result.changed == 1
        assert [c.order_number for c in result.changes] == ["WP-0002"]
        logged = [entry["order_number"] for entry in logs if entry["event"] == "escalation.severity_changed"]
        assert logged == ["WP-0002"]

        orders = await _snapshot(session_factory)
        assert orders["WP-0004"].status == "delivered"
        assert orders["WP-0004"].severity_level is None


@pytest.mark.asyncio
class TestFailureContainment:
    async def test_storage_error_is_swallowed(self, session_factory, seeded_db):
        sweeper = _sweeper(session_factory, gateway_factory=_FailingGateway)

        result = await sweeper.tick()

        assert result.status == "failed"
        assert "connection reset" in result.error
        assert sweeper.last_result is result

    async def test_next_tick_recovers(self, session_factory, seeded_db):
        failing = _sweeper(session_factory, gateway_factory=_FailingGateway)
        assert (await failing.tick()).status == "failed"

        result = await _sweeper(session_factory).tick()
        assert result.status == "success"
        assert result.changed == 2

    async def test_slow_tick_times_out(self, session_factory, seeded_db):
        sweeper = _sweeper(session_factory, gateway_factory=_SlowGateway, timeout_seconds=0.05)

        result = await sweeper.tick()

        assert result.status == "failed"
        assert "timed out" in result.error

    async def test_overlapping_tick_is_skipped(self, session_factory, seeded_db):
        sweeper = _sweeper(session_factory)
        async with sweeper._lock:
            result = await sweeper.tick()

        assert result.status == "skipped"
        orders = await _snapshot(session_factory)
        assert orders["WP-0002"].severity_level is None


@pytest.mark.asyncio
class TestInProcessLoop:
    async def test_start_runs_a_tick_and_stop_ends_the_loop(self, session_factory, seeded_db):
        sweeper = _sweeper(session_factory, interval_seconds=3600)
        sweeper.start()
        assert sweeper.running

        for _ in range(200):
            if sweeper.last_result is not None:
                break
            await asyncio.sleep(0.01)

        await sweeper.stop()
        assert not sweeper.running
        assert sweeper.last_result.status == "success"

    async def test_stop_without_start_is_a_noop(self, session_factory):
        sweeper = _sweeper(session_factory)
        await sweeper.stop()
        assert not sweeper.running

    async def test_ticks_keep_a_fixed_cadence(self, session_factory):
        sweeper = _PacedSweeper(session_factory, interval_seconds=0.3, busy=0.2)
        sweeper.start()
        for _ in range(300):
            if len(sweeper.started_at) >= 3:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        first, second, third = sweeper.started_at[:3]
        # Waiting a full interval after each tick would put them 0.5s apart.
        assert second - first < 0.45
        assert third - first < 0.85


class TestComputeChanges:
    def test_unchanged_orders_are_omitted(self):
        class _Row:
            def __init__(self, number, minutes_ago, severity):
                self.order_id = number
                self.order_number = number
                self.last_update_at = NOW - timedelta(minutes=minutes_ago)
                self.severity_level = severity

        rows = [_Row("A", 10, "green"), _Row("B", 45, "green"), _Row("C", 70, None)]
        changes = compute_changes(rows, NOW, StalenessThresholds())

        assert [(c.order_number, c.old, c.new) for c in changes] == [
            ("B", SeverityLevel.GREEN, SeverityLevel.YELLOW),
            ("C", None, SeverityLevel.RED),
        ]


class TestNextTickAt:
    def test_next_slot_follows_the_start_grid(self):
        assert next_tick_at(100.0, 60.0, 105.0) == 160.0
        assert next_tick_at(100.0, 60.0, 159.9) == 160.0

    def test_now_on_a_slot_moves_to_the_next(self):
        assert next_tick_at(100.0, 60.0, 160.0) == 220.0

    def test_overrun_skips_missed_slots(self):
        assert next_tick_at(100.0, 60.0, 230.0) == 280.0
