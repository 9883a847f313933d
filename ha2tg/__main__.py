#!/usr/bin/env python3
"""Entry point for ha2tg.

This module provides the main entry point for the bot, handling argument
parsing, add-on options and the daemon lifecycle.
"""
import logging
import sys

from ha2tg.core.config import Config
from ha2tg.core.daemon import Ha2TgDaemon, setup_logging
from ha2tg.core.utils import load_options


def main():
    """Main entry point for ha2tg."""
    config = load_options(Config.from_args())

    if not config.telegram_bot_token:
        setup_logging(config)
        logging.error("No Telegram bot token. Set TELEGRAM_BOT_TOKEN or bot_token in options.json")
        sys.exit(1)
    if not config.ha_token:
        setup_logging(config)
        logging.error("No Home Assistant token. Set SUPERVISOR_TOKEN or HA_TOKEN")
        sys.exit(1)

    Ha2TgDaemon(config).start()


if __name__ == "__main__":
    main()
