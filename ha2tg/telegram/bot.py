"""Telegram Bot module for ha2tg.

Owns the python-telegram-bot Application: builds it, registers the
handlers and runs polling on the daemon's event loop.

Uses python-telegram-bot library (https://python-telegram-bot.org/)
"""
import logging
from typing import TYPE_CHECKING, Optional

from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    MessageHandler,
    filters,
)

if TYPE_CHECKING:
    from ha2tg.core.config import Config
    from ha2tg.telegram.handler import TelegramHandler


class TelegramBot:
    """Handles Telegram bot communication for ha2tg.

    This class manages:
    - The Application lifecycle (initialize, start, polling, shutdown)
    - Routing of commands, button presses and text to the handler
    """

    def __init__(self, config: 'Config', handler: 'TelegramHandler'):
        """Initialize the Telegram bot.

        Args:
            config: Application configuration with Telegram settings
            handler: Update handler for commands, callbacks and text
        """
        self.config = config
        self.handler = handler
        self._application: Optional[Application] = None
        self._running = False

    @property
    def is_configured(self) -> bool:
        """Check if Telegram bot is properly configured."""
        return bool(self.config.telegram_bot_token)

    @property
    def bot(self):
        """The Bot API object, available after build()."""
        return self._application.bot if self._application else None

    def build(self) -> Application:
        """Build the application and register handlers."""
        self._application = (
            Application.builder()
            .token(self.config.telegram_bot_token)
            .build()
        )

        self._application.add_handler(
            CommandHandler("start", self.handler.handle_start)
        )
        self._application.add_handler(
            CallbackQueryHandler(self.handler.handle_callback)
        )
        # Handle all text messages (dialogue answers)
        self._application.add_handler(
            MessageHandler(
                filters.TEXT & ~filters.COMMAND,
                self.handler.handle_text
            )
        )
        self._application.add_error_handler(self._handle_error)
        return self._application

    async def start(self) -> bool:
        """Start polling for updates.

        Returns:
            True if started successfully, False otherwise
        """
        if not self.is_configured:
            logging.warning("Telegram bot token not configured, skipping")
            return False

        if self._application is None:
            self.build()

        await self._application.initialize()
        await self._application.start()
        await self._application.updater.start_polling(drop_pending_updates=True)
        self._running = True

        logging.info("Telegram bot started")
        return True

    async def stop(self) -> None:
        """Stop the Telegram bot gracefully."""
        if not self._running or self._application is None:
            return
        self._running = False

        # Graceful shutdown in correct order:
        # 1. Stop updater (stops polling for updates)
        # 2. Stop application (stops handlers)
        # 3. Shutdown application (closes HTTP client)
        try:
            await self._application.updater.stop()
        except Exception as e:  # pylint: disable=broad-exception-caught
            logging.debug("Updater stop error (expected during shutdown): %s", e)

        try:
            await self._application.stop()
        except Exception as e:  # pylint: disable=broad-exception-caught
            logging.debug("Application stop error: %s", e)

        try:
            await self._application.shutdown()
        except Exception as e:  # pylint: disable=broad-exception-caught
            logging.debug("Application shutdown error: %s", e)

        logging.info("Telegram bot stopped")

    async def _handle_error(self, update: object, context) -> None:
        """Log handler errors instead of letting them kill the update."""
        logging.error("Error while handling update %s: %s", update, context.error)
