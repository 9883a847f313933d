"""Tests for the maintenance loop."""
import asyncio
import time

import pytest

from ha2tg.core.maintenance import MaintenanceLoop, next_deadline
from ha2tg.nav.payload import Control, Home, RoomDetail, encode
from ha2tg.nav.router import Router
from ha2tg.storage import event_log
from ha2tg.telegram.reconciler import Reconciler


@pytest.fixture
def shutdown():
    return asyncio.Event()


@pytest.fixture
def loop(ctx, shutdown):
    return MaintenanceLoop(ctx, Reconciler(ctx, Router(ctx)), shutdown, interval=0.01)


def count_events(conn):
    return conn.execute("SELECT COUNT(*) FROM device_event_log").fetchone()[0]


class TestNextDeadline:
    """Missed ticks are skipped, not queued."""

    def test_on_time(self):
        assert next_deadline(10.0, 10.5, 5.0) == 15.0

    def test_late_skips_missed_ticks(self):
        assert next_deadline(10.0, 31.0, 5.0) == 35.0

    def test_exactly_on_next_deadline(self):
        assert next_deadline(10.0, 15.0, 5.0) == 20.0

    def test_always_in_the_future(self):
        for now in (10.0, 14.9, 27.3, 100.0):
            assert next_deadline(10.0, now, 5.0) > now


class TestTick:
    """Tests for a single maintenance tick."""

    @pytest.mark.asyncio
    async def test_purges_old_events(self, loop, ctx):
        ctx.config.event_log_retention_minutes = 100
        now = time.time()
        await ctx.db.run(event_log.record_event, "light.kitchen", "on", now - 101 * 60)
        await ctx.db.run(event_log.record_event, "light.kitchen", "off", now - 60)

        await loop.tick()

        assert await ctx.db.run(count_events) == 1

    @pytest.mark.asyncio
    async def test_refreshes_open_sessions(self, loop, ctx, bot):
        ctx.sessions.upsert(1, 10, encode(Home()))
        ctx.sessions.upsert(2, 20, encode(Control(RoomDetail(1))))
        ctx.sessions.upsert(3, 0, encode(Home()))

        await loop.tick()

        ids = sorted(c.kwargs["message_id"] for c in bot.edit_message_media.call_args_list)
        assert ids == [10, 20]

    @pytest.mark.asyncio
    async def test_failed_refresh_is_logged(self, loop, ctx, bot, caplog):
        ctx.sessions.upsert(1, 10, encode(Home()))
        bot.edit_message_media.side_effect = RuntimeError("boom")

        await loop.tick()

        assert "Heartbeat refresh of user 1 failed: boom" in caplog.text


class TestRun:
    """Loop lifecycle."""

    @pytest.mark.asyncio
    async def test_ticks_until_shutdown(self, loop, shutdown):
        task = asyncio.create_task(loop.run())
        for _ in range(100):
            if loop.ticks >= 3:
                break
            await asyncio.sleep(0.01)
        shutdown.set()
        await asyncio.wait_for(task, timeout=2)

        assert loop.ticks >= 3

    @pytest.mark.asyncio
    async def test_stops_immediately_when_shut_down(self, ctx, shutdown):
        loop = MaintenanceLoop(ctx, Reconciler(ctx, Router(ctx)), shutdown, interval=60)
        task = asyncio.create_task(loop.run())
        await asyncio.sleep(0.01)
        shutdown.set()
        await asyncio.wait_for(task, timeout=2)
        assert loop.ticks == 0
