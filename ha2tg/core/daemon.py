"""Daemon module for ha2tg.

This module contains the Ha2TgDaemon class that wires storage, the Home
Assistant client and listener, the Telegram bot and the background loops
onto one asyncio event loop, and shuts them down in order.
"""
import asyncio
import logging
import signal
import sqlite3
from typing import List, Optional

from ha2tg.core.config import Config
from ha2tg.core.constants import SHUTDOWN_GRACE_S, TermColors
from ha2tg.core.context import RuntimeContext
from ha2tg.core.event_bus import event_bus
from ha2tg.core.fanout import FanOut
from ha2tg.core.maintenance import MaintenanceLoop
from ha2tg.core.sessions import SessionStore
from ha2tg.core.utils import wait_background
from ha2tg.hass.client import HomeAssistantClient, HomeAssistantError
from ha2tg.hass.listener import EventListener, ReconnectBackoff
from ha2tg.hass.models import Area
from ha2tg.nav.router import Router
from ha2tg.storage import devices as device_repo
from ha2tg.storage import rooms as room_repo
from ha2tg.storage import users as user_repo
from ha2tg.storage.database import Database, StorageError
from ha2tg.telegram.bot import TelegramBot
from ha2tg.telegram.handler import TelegramHandler
from ha2tg.telegram.reconciler import Reconciler

VERSION = "0.3"

BANNER = r"""
  _   _    _    ____  _____ ____
 | | | |  / \  |___ \|_   _/ ___|
 | |_| | / _ \   __) | | || |  _
 |  _  |/ ___ \ / __/  | || |_| |
 |_| |_/_/   \_\_____| |_| \____|
"""


def setup_logging(config: Config):
    """Configure the logging module."""
    level = logging.DEBUG if config.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="[%H:%M:%S]"
    )
    # Polling requests are logged by httpx at INFO on every long-poll
    logging.getLogger("httpx").setLevel(logging.WARNING)


def print_banner(config: Config):
    """Print the ha2tg ASCII art banner with version and hub info."""
    c = TermColors
    print(f"{c.CYAN}{BANNER}{c.RESET}")
    print(f"  {c.DIM}v{VERSION}{c.RESET}  {c.BOLD}HA:{c.RESET} {c.YELLOW}{config.ha_url}{c.RESET}")
    print()


def sync_metadata(conn: sqlite3.Connection, areas: List[Area]) -> int:
    """Upsert rooms and devices reported by the hub, archive the rest."""
    synced: List[str] = []
    for area in areas:
        room_repo.sync_room(conn, area.id, area.name)
        for entity in area.entities:
            device_repo.sync_device(
                conn, entity.entity_id, area.id, entity.friendly_name, entity.device_class
            )
            synced.append(entity.entity_id)
    archived = device_repo.archive_missing_devices(conn, synced)
    if archived:
        logging.info("Archived %d devices no longer reported by Home Assistant", archived)
    return len(synced)


class Ha2TgDaemon:  # pylint: disable=too-many-instance-attributes
    """Main daemon class orchestrating the components."""

    def __init__(self, config: Config):
        self.config = config
        self.shutdown = asyncio.Event()

        self.db = Database(config.database_path, busy_timeout=config.db_busy_timeout)
        self.hass = HomeAssistantClient(
            config.ha_url,
            config.ha_token,
            timeout=config.ha_timeout,
            connect_timeout=config.ha_connect_timeout,
        )
        self.ctx = RuntimeContext(
            config=config,
            db=self.db,
            hass=self.hass,
            sessions=SessionStore(self.db),
            event_bus=event_bus,
        )

        self.router = Router(self.ctx)
        self.reconciler = Reconciler(self.ctx, self.router)
        self.handler = TelegramHandler(self.ctx, self.router, self.reconciler)
        self.bot = TelegramBot(config, self.handler)

        self.fanout = FanOut(self.ctx, self.reconciler, self.shutdown)
        self.maintenance = MaintenanceLoop(self.ctx, self.reconciler, self.shutdown)
        self.listener = EventListener(
            config.ha_url,
            config.ha_token,
            on_event=self.fanout.submit,
            shutdown=self.shutdown,
            backoff=ReconnectBackoff(
                config.reconnect_initial_delay_s, config.reconnect_max_delay_s
            ),
            event_bus=event_bus,
        )
        self._tasks: List[asyncio.Task] = []

    async def prepare(self) -> None:
        """Storage, hub metadata, aliases and sessions, in that order."""
        await asyncio.to_thread(self.db.init)

        await self.sync()

        try:
            self.ctx.name_aliases = await self.db.run(device_repo.get_display_names)
            self.ctx.state_aliases = await self.db.run(user_repo.get_state_aliases)
        except StorageError as e:
            logging.error("Failed to load aliases: %s", e)

        # Sessions must be back before any event can refresh them
        await self.ctx.sessions.restore()

    async def sync(self) -> Optional[int]:
        """Pull areas and entities from Home Assistant into storage."""
        try:
            areas = await self.hass.fetch_rooms()
        except HomeAssistantError as e:
            logging.warning("Could not sync rooms from Home Assistant: %s", e)
            return None
        try:
            count = await self.db.run(sync_metadata, areas)
        except StorageError as e:
            logging.error("Failed to store rooms and devices: %s", e)
            return None
        logging.info("Synced %d rooms with %d devices", len(areas), count)
        return count

    async def run(self) -> None:
        """Run until shutdown is requested."""
        await self.prepare()

        self.bot.build()
        self.ctx.bot = self.bot.bot
        if not await self.bot.start():
            logging.error("Telegram bot could not start, exiting")
            await self.hass.aclose()
            return

        self._tasks = [
            asyncio.create_task(self.listener.run(), name="ha-listener"),
            asyncio.create_task(self.fanout.run(), name="fan-out"),
            asyncio.create_task(self.maintenance.run(), name="maintenance"),
        ]
        logging.info("ha2tg started")

        await self.shutdown.wait()
        await self.stop()

    async def stop(self) -> None:
        """Stop the loops, wait for in-flight work, then close the bot and client."""
        logging.info("Shutting down...")
        self.shutdown.set()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, result in zip(self._tasks, results):
            if isinstance(result, Exception):
                logging.error("Task %s ended with error: %s", task.get_name(), result)

        await self.fanout.drain()
        pending = await wait_background(SHUTDOWN_GRACE_S)
        if pending:
            logging.warning("%d background tasks still pending at shutdown", pending)

        await self.bot.stop()
        await self.hass.aclose()
        logging.info("Shutdown complete")

    def request_shutdown(self) -> None:
        logging.info("Signal received, shutting down...")
        self.shutdown.set()

    def start(self) -> None:
        """Start the daemon and block until it stops."""
        setup_logging(self.config)
        print_banner(self.config)
        asyncio.run(self._main())

    async def _main(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                # Not available on Windows event loops
                signal.signal(sig, lambda _s, _f: self.request_shutdown())
        await self.run()
