"""Periodic maintenance: event log retention and the heartbeat refresh."""
import asyncio
import logging
import time
from typing import TYPE_CHECKING, Callable, Optional

from ha2tg.storage import event_log
from ha2tg.storage.database import StorageError

if TYPE_CHECKING:
    from ha2tg.core.context import RuntimeContext
    from ha2tg.telegram.reconciler import Reconciler


def next_deadline(deadline: float, now: float, interval: float) -> float:
    """Advance a deadline by one interval, skipping any ticks already missed."""
    deadline += interval
    if deadline <= now:
        missed = int((now - deadline) // interval) + 1
        logging.debug("Maintenance running late, skipping %d tick(s)", missed)
        deadline += missed * interval
    return deadline


class MaintenanceLoop:
    """Single periodic timer.

    Each tick purges old event log rows and refreshes every open menu so
    relative times in the header stay current. A slow tick delays the next
    one but never causes a burst of catch-up ticks.
    """

    def __init__(
        self,
        ctx: 'RuntimeContext',
        reconciler: 'Reconciler',
        shutdown: asyncio.Event,
        interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ctx = ctx
        self.reconciler = reconciler
        self.shutdown = shutdown
        self.interval = interval if interval is not None else ctx.config.maintenance_interval_s
        self._clock = clock
        self.ticks = 0

    async def run(self) -> None:
        logging.info("Maintenance loop started (every %.1fs)", self.interval)
        deadline = self._clock() + self.interval
        while not self.shutdown.is_set():
            delay = max(0.0, deadline - self._clock())
            try:
                await asyncio.wait_for(self.shutdown.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

            await self.tick()
            deadline = next_deadline(deadline, self._clock(), self.interval)
        logging.info("Maintenance loop stopped")

    async def tick(self) -> None:
        self.ticks += 1
        try:
            purged = await self.ctx.db.run(
                event_log.purge_old_events, self.ctx.config.event_log_retention_minutes
            )
            if purged:
                logging.debug("Purged %d old events", purged)
        except StorageError as e:
            logging.error("Event log purge failed: %s", e)

        user_ids = [
            user_id for user_id, session in self.ctx.sessions.list()
            if session.last_message_id
        ]
        results = await asyncio.gather(
            *(self.reconciler.refresh_session(user_id) for user_id in user_ids),
            return_exceptions=True
        )
        for user_id, result in zip(user_ids, results):
            if isinstance(result, Exception):
                logging.warning("Heartbeat refresh of user %d failed: %s", user_id, result)
