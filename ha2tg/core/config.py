"""Configuration module for ha2tg.

This module provides the Config dataclass which holds all configuration
settings for the bot, including Home Assistant connection details, Telegram
credentials, storage location and the timings of the background loops.
"""
import argparse
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from ha2tg.core.constants import Reconnect

# Load .env file if present (HA token, bot token etc.)
load_dotenv()


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, falling back on bad values."""
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


@dataclass
class Config:  # pylint: disable=too-many-instance-attributes
    """Configuration settings for the Home Assistant Telegram bot."""

    # Home Assistant
    ha_url: str = field(
        default_factory=lambda: os.environ.get("HA_URL", "http://supervisor/core")
    )
    ha_token: str = field(
        default_factory=lambda: os.environ.get(
            "SUPERVISOR_TOKEN", os.environ.get("HA_TOKEN", "")
        )
    )
    ha_timeout: float = 10.0
    ha_connect_timeout: float = 5.0

    # Telegram Bot
    telegram_bot_token: str = field(
        default_factory=lambda: os.environ.get("TELEGRAM_BOT_TOKEN", "")
    )
    root_user: int = field(default_factory=lambda: _env_int("ROOT_USER", 0))
    # Comma-separated allow-list on top of the users table
    telegram_chat_ids: str = field(
        default_factory=lambda: os.environ.get("TELEGRAM_CHAT_IDS", "")
    )

    # Files
    database_path: str = field(
        default_factory=lambda: os.environ.get("DATABASE_PATH", "bot_data.db")
    )
    options_path: str = field(
        default_factory=lambda: os.environ.get("OPTIONS_PATH", "options.json")
    )
    db_busy_timeout: float = 5.0

    # Message lifetimes
    delete_notification_timeout_s: int = 5
    delete_error_timeout_s: int = 5

    # Event log and header
    event_log_retention_minutes: int = 100
    alert_window_minutes: int = 30

    # Background work
    maintenance_interval_s: float = 5.0
    event_queue_size: int = 32
    action_settle_delay_s: float = 0.5
    reconnect_initial_delay_s: float = Reconnect.INITIAL_DELAY
    reconnect_max_delay_s: float = Reconnect.MAX_DELAY

    verbose: bool = False

    @property
    def allowed_chat_ids(self) -> set[int]:
        """Parse the comma-separated allow-list, ignoring bad entries."""
        ids: set[int] = set()
        for chat_id_str in self.telegram_chat_ids.split(","):
            chat_id_str = chat_id_str.strip()
            if chat_id_str.lstrip("-").isdigit():
                ids.add(int(chat_id_str))
        return ids

    @classmethod
    def from_args(cls, argv=None) -> 'Config':
        """Parse command-line arguments and return a Config instance."""
        parser = argparse.ArgumentParser(
            description="ha2tg - Home Assistant remote control over Telegram"
        )

        parser.add_argument(
            "--ha-url",
            default=os.environ.get("HA_URL", "http://supervisor/core"),
            help="Home Assistant base URL (env: HA_URL)"
        )
        parser.add_argument(
            "--ha-token",
            default=os.environ.get("SUPERVISOR_TOKEN", os.environ.get("HA_TOKEN", "")),
            help="Home Assistant long-lived token (env: SUPERVISOR_TOKEN or HA_TOKEN)"
        )
        parser.add_argument(
            "--telegram-token",
            default=os.environ.get("TELEGRAM_BOT_TOKEN", ""),
            help="Telegram Bot token from BotFather (env: TELEGRAM_BOT_TOKEN)"
        )
        parser.add_argument(
            "--root-user",
            type=int,
            default=_env_int("ROOT_USER", 0),
            help="Telegram user id of the administrator (env: ROOT_USER)"
        )
        parser.add_argument(
            "--telegram-chat-ids",
            default=os.environ.get("TELEGRAM_CHAT_IDS", ""),
            help="Comma-separated list of authorized Telegram user IDs (env: TELEGRAM_CHAT_IDS)"
        )
        parser.add_argument(
            "--database",
            default=os.environ.get("DATABASE_PATH", "bot_data.db"),
            help="Path of the SQLite database file (env: DATABASE_PATH)"
        )
        parser.add_argument(
            "--options",
            default=os.environ.get("OPTIONS_PATH", "options.json"),
            help="Home Assistant add-on options file (env: OPTIONS_PATH)"
        )
        parser.add_argument(
            "--maintenance-interval",
            type=float,
            default=5.0,
            metavar="SECONDS",
            help="Heartbeat refresh and event log purge interval"
        )
        parser.add_argument(
            "--retention",
            type=int,
            default=100,
            metavar="MINUTES",
            help="How long state change events are kept in the event log"
        )
        parser.add_argument(
            "--queue-size",
            type=int,
            default=32,
            help="Capacity of the event fan-out queue; overflow is dropped"
        )
        parser.add_argument(
            "--verbose", "-v",
            action="store_true",
            help="Enable verbose logging"
        )

        args = parser.parse_args(argv)

        c = cls()
        c.ha_url = args.ha_url
        c.ha_token = args.ha_token
        c.telegram_bot_token = args.telegram_token
        c.root_user = args.root_user
        c.telegram_chat_ids = args.telegram_chat_ids
        c.database_path = args.database
        c.options_path = args.options
        c.maintenance_interval_s = args.maintenance_interval
        c.event_log_retention_minutes = args.retention
        c.event_queue_size = args.queue_size
        c.verbose = args.verbose
        return c
