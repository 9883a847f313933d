"""Render reconciler.

Brings a user's single menu message in line with a freshly resolved view:
edit in place when possible, otherwise send a new message and drop the old
one. Every menu is a photo message so edits never change message type.
"""
import logging
from typing import TYPE_CHECKING, Optional

from telegram import InputMediaPhoto
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError

from ha2tg.core.constants import UI_PLACEHOLDER_PNG
from ha2tg.core.event_bus import EventType
from ha2tg.core.utils import spawn_background
from ha2tg.nav.dialogue import Idle
from ha2tg.nav.payload import Home, decode_or_home, encode
from ha2tg.nav.view import View

if TYPE_CHECKING:
    from ha2tg.core.context import RuntimeContext
    from ha2tg.nav.router import Router

NOT_MODIFIED = "message is not modified"


def is_not_modified(error: Exception) -> bool:
    """Telegram rejects edits that change nothing; that is not a failure."""
    return isinstance(error, BadRequest) and NOT_MODIFIED in str(error).lower()


class Reconciler:
    """Applies views to the per-user menu message and keeps sessions current."""

    def __init__(self, ctx: 'RuntimeContext', router: 'Router'):
        self.ctx = ctx
        self.router = router

    @property
    def bot(self):
        return self.ctx.bot

    def _context_for(self, user_id: int, view: View) -> str:
        if view.outgoing_intent is None:
            session = self.ctx.sessions.get(user_id)
            return session.current_context if session else encode(Home())
        return encode(view.outgoing_intent)

    async def apply(
        self,
        chat_id: int,
        message_id: Optional[int],
        user_id: int,
        view: View
    ) -> int:
        """Edit the menu message in place, or replace it.

        Returns the id of the message now showing the view.
        """
        context = self._context_for(user_id, view)

        if message_id:
            try:
                await self.bot.edit_message_media(
                    media=InputMediaPhoto(
                        media=view.image or UI_PLACEHOLDER_PNG,
                        caption=view.caption(),
                        parse_mode=ParseMode.MARKDOWN_V2,
                    ),
                    chat_id=chat_id,
                    message_id=message_id,
                    reply_markup=view.keyboard,
                )
            except TelegramError as e:
                if is_not_modified(e):
                    logging.debug("Menu of user %d already up to date", user_id)
                    return message_id
                logging.info("Edit of message %d failed (%s), sending a new one", message_id, e)
            else:
                self.ctx.sessions.upsert(user_id, message_id, context)
                self._published(user_id, message_id, edited=True)
                return message_id

        new_id = await self.send_new(chat_id, user_id, view, context=context)
        if message_id:
            spawn_background(
                self._delete_quietly(chat_id, message_id),
                name=f"delete-menu-{chat_id}-{message_id}"
            )
        return new_id

    async def send_new(
        self,
        chat_id: int,
        user_id: int,
        view: View,
        context: Optional[str] = None
    ) -> int:
        """Send the view as a new menu message and point the session at it."""
        if context is None:
            context = self._context_for(user_id, view)
        message = await self.bot.send_photo(
            chat_id=chat_id,
            photo=view.image or UI_PLACEHOLDER_PNG,
            caption=view.caption(),
            parse_mode=ParseMode.MARKDOWN_V2,
            reply_markup=view.keyboard,
        )
        self.ctx.sessions.upsert(user_id, message.message_id, context)
        self._published(user_id, message.message_id, edited=False)
        return message.message_id

    async def refresh_session(self, user_id: int) -> None:
        """Re-render a user's menu from the context it currently shows."""
        session = self.ctx.sessions.get(user_id)
        if session is None or not session.last_message_id:
            return
        # A prompt on screen cannot be rebuilt from the stored context
        if not isinstance(self.ctx.sessions.get_dialogue(user_id), Idle):
            logging.debug("User %d is answering a prompt, not refreshing", user_id)
            return
        intent = decode_or_home(session.current_context)
        view = await self.router.resolve(intent, user_id)
        await self.apply(user_id, session.last_message_id, user_id, view)

    async def _delete_quietly(self, chat_id: int, message_id: int) -> None:
        try:
            await self.bot.delete_message(chat_id=chat_id, message_id=message_id)
        except TelegramError as e:
            logging.debug("Could not delete old menu %d: %s", message_id, e)

    def _published(self, user_id: int, message_id: int, edited: bool) -> None:
        self.ctx.event_bus.publish(EventType.VIEW_RENDERED, {
            "user_id": user_id,
            "message_id": message_id,
            "edited": edited,
        })
