"""Event fan-out.

State changes from the Home Assistant listener land in a bounded queue. A
single worker records each change, then re-renders the menus it affects and
notifies subscribers. Re-renders and notifications run as independent tasks
so one slow chat does not hold up the others.
"""
import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Set

from ha2tg.core.event_bus import EventType
from ha2tg.hass.models import StateChangedEvent
from ha2tg.nav.payload import decode_or_home, intent_room
from ha2tg.storage import devices as device_repo
from ha2tg.storage import event_log
from ha2tg.storage import rooms as room_repo
from ha2tg.storage import subscriptions as subscription_repo
from ha2tg.storage.database import StorageError
from ha2tg.telegram.notifier import send_notification

if TYPE_CHECKING:
    from ha2tg.core.context import RuntimeContext
    from ha2tg.telegram.reconciler import Reconciler

# How often the idle worker looks at the shutdown flag
POLL_INTERVAL = 0.5


class FanOut:
    """Bounded queue of state changes plus the worker that drains it."""

    def __init__(
        self,
        ctx: 'RuntimeContext',
        reconciler: 'Reconciler',
        shutdown: asyncio.Event,
        maxsize: Optional[int] = None
    ):
        self.ctx = ctx
        self.reconciler = reconciler
        self.shutdown = shutdown
        self.queue: asyncio.Queue = asyncio.Queue(
            maxsize=maxsize if maxsize is not None else ctx.config.event_queue_size
        )
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, event: StateChangedEvent) -> bool:
        """Enqueue without blocking. A full queue drops the event."""
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logging.warning("Event queue full, dropping %s -> %s",
                            event.entity_id, event.new_state)
            self.ctx.event_bus.publish(EventType.EVENT_DROPPED, {
                "entity_id": event.entity_id,
                "state": event.new_state,
            })
            return False
        return True

    async def run(self) -> None:
        """Worker loop; returns once shutdown is set."""
        logging.info("Fan-out worker started (queue size %d)", self.queue.maxsize)
        while not self.shutdown.is_set():
            try:
                event = await asyncio.wait_for(self.queue.get(), timeout=POLL_INTERVAL)
            except asyncio.TimeoutError:
                continue
            try:
                await self.process(event)
            finally:
                self.queue.task_done()
        logging.info("Fan-out worker stopped")

    async def process(self, event: StateChangedEvent) -> None:
        """Record one change and spawn re-renders and notifications for it."""
        ctx = self.ctx
        if event.old_state == event.new_state:
            logging.debug("No state change for %s, skipping", event.entity_id)
            ctx.event_bus.publish(EventType.EVENT_SKIPPED, {"entity_id": event.entity_id})
            return

        try:
            await ctx.db.run(event_log.record_event, event.entity_id, event.new_state)
            room_id = await ctx.db.run(device_repo.get_room_id_by_entity, event.entity_id)
            room = (
                await ctx.db.run(room_repo.get_room_by_id, room_id)
                if room_id is not None else None
            )
            subscribers = set(
                await ctx.db.run(subscription_repo.get_subscribers, event.entity_id)
            )
        except StorageError as e:
            logging.error("Failed to process event for %s: %s", event.entity_id, e)
            return

        logging.debug("%s: %s -> %s (room %s, %d subscribers)", event.entity_id,
                      event.old_state, event.new_state, room_id, len(subscribers))

        for user_id in self.affected_users(room_id, subscribers):
            self._spawn(self._refresh(user_id), f"refresh-{user_id}")

        for user_id in subscribers:
            self._spawn(send_notification(ctx, user_id, event, room), f"notify-{user_id}")

    def affected_users(self, room_id: Optional[int], subscribers: Set[int]) -> list:
        """Users whose menu shows the room, or who subscribe to the entity."""
        users = []
        for user_id, session in self.ctx.sessions.list():
            if not session.last_message_id:
                continue
            if user_id in subscribers:
                users.append(user_id)
                continue
            if room_id is not None and intent_room(decode_or_home(session.current_context)) == room_id:
                users.append(user_id)
        return users

    async def _refresh(self, user_id: int) -> None:
        try:
            await self.reconciler.refresh_session(user_id)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logging.warning("Failed to refresh menu of user %d: %s", user_id, e)

    def _spawn(self, coro, name: str) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for in-flight re-renders and notifications."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
