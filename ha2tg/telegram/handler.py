"""Telegram update handlers: /start, button presses and free-text answers."""
import logging
from typing import TYPE_CHECKING, Optional

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from ha2tg.core.constants import MAX_BACK_HOURS
from ha2tg.core.utils import spawn_delayed_delete
from ha2tg.nav.dialogue import (
    ADD_USER,
    AdminFlow,
    DialogueState,
    Idle,
    WaitingForGraphInterval,
    WaitingForName,
    WaitingForStateAlias,
)
from ha2tg.nav.payload import (
    Admin,
    Control,
    DecodeError,
    Home,
    ListUsers,
    QuickAction,
    ShowChart,
    decode,
    decode_or_home,
    encode,
)
from ha2tg.storage import devices as device_repo
from ha2tg.storage import users as user_repo
from ha2tg.storage.database import StorageError

if TYPE_CHECKING:
    from ha2tg.core.context import RuntimeContext
    from ha2tg.nav.router import Router
    from ha2tg.telegram.reconciler import Reconciler

MAX_ALIAS_LENGTH = 64


class InvalidAnswer(ValueError):
    """A free-text answer that cannot be used; the dialogue keeps waiting."""


class TelegramHandler:
    """Turns Telegram updates into router calls and menu reconciliation."""

    def __init__(self, ctx: 'RuntimeContext', router: 'Router', reconciler: 'Reconciler'):
        self.ctx = ctx
        self.router = router
        self.reconciler = reconciler

    async def is_authorized(self, user_id: int) -> bool:
        """Root user, configured chat ids, or a user added by the admin."""
        config = self.ctx.config
        if config.root_user and user_id == config.root_user:
            return True
        if user_id in config.allowed_chat_ids:
            return True
        try:
            return await self.ctx.db.run(user_repo.user_exists, user_id)
        except StorageError as e:
            logging.error("Could not check user %d: %s", user_id, e)
            return False

    # --- /start ------------------------------------------------------------

    async def handle_start(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Reset the user's dialogue and replace their menu with Home."""
        user_id = update.effective_user.id
        chat_id = update.effective_chat.id

        if not await self.is_authorized(user_id):
            await update.message.reply_text(f"⛔ Unauthorized. Your user ID is: {user_id}")
            logging.warning("Unauthorized Telegram access attempt from user %d", user_id)
            return

        self.ctx.sessions.clear_dialogue(user_id)

        previous = self.ctx.sessions.get(user_id)
        if previous and previous.last_message_id:
            await self._delete(chat_id, previous.last_message_id)

        view = await self.router.resolve(Home(), user_id)
        await self.reconciler.send_new(chat_id, user_id, view)
        await self._delete(chat_id, update.message.message_id)

    # --- Buttons -----------------------------------------------------------

    async def handle_callback(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Resolve a pressed button and update the menu message in place."""
        query = update.callback_query
        user_id = query.from_user.id
        authorized = await self.is_authorized(user_id)

        # Acknowledge first so the client stops its spinner
        try:
            await query.answer("⛔ Unauthorized" if not authorized else None)
        except TelegramError as e:
            logging.debug("Callback answer failed: %s", e)
        if not authorized:
            logging.warning("Unauthorized button press from user %d", user_id)
            return

        intent = decode_or_home(query.data or "")
        view = await self.router.resolve(intent, user_id)

        if view.dialogue_state is not None:
            self.ctx.sessions.set_dialogue(user_id, view.dialogue_state)
        else:
            self.ctx.sessions.clear_dialogue(user_id)

        message = query.message
        chat_id = message.chat_id if message else user_id
        message_id = message.message_id if message else None
        await self.reconciler.apply(chat_id, message_id, user_id, view)

    # --- Free text ---------------------------------------------------------

    async def handle_text(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle a free-text answer to the prompt the user is looking at."""
        user_id = update.effective_user.id
        chat_id = update.effective_chat.id
        text = (update.message.text or "").strip()

        if not await self.is_authorized(user_id):
            await update.message.reply_text("⛔ Unauthorized")
            return

        state = self.ctx.sessions.get_dialogue(user_id)
        if isinstance(state, Idle):
            logging.debug("Ignoring text from user %d outside a dialogue", user_id)
            await self._delete(chat_id, update.message.message_id)
            return

        try:
            await self.apply_answer(user_id, state, text)
        except InvalidAnswer as e:
            await self._delete(chat_id, update.message.message_id)
            await self.reply_error(chat_id, str(e))
            return
        except StorageError as e:
            logging.error("Failed to store answer of user %d: %s", user_id, e)
            await self._delete(chat_id, update.message.message_id)
            await self.reply_error(chat_id, "Database error, please try again")
            return

        self.ctx.sessions.clear_dialogue(user_id)
        await self._delete(chat_id, update.message.message_id)
        await self.rerender(chat_id, user_id)

    async def apply_answer(self, user_id: int, state: DialogueState, text: str) -> None:
        """Store the answer for a dialogue state.

        Raises InvalidAnswer for input that does not fit the question.
        """
        ctx = self.ctx
        if not text:
            raise InvalidAnswer("Please send some text")

        if isinstance(state, WaitingForName):
            alias = text[:MAX_ALIAS_LENGTH]
            entity_id = await ctx.db.run(device_repo.update_alias, state.device, alias)
            if entity_id is None:
                raise InvalidAnswer("Device not found")
            ctx.name_aliases[entity_id] = alias
            logging.info("Renamed %s to %s", entity_id, alias)

        elif isinstance(state, WaitingForStateAlias):
            device = await ctx.db.run(device_repo.get_device_by_id, state.device)
            if device is None:
                raise InvalidAnswer("Device not found")
            alias = text[:MAX_ALIAS_LENGTH]
            await ctx.db.run(
                user_repo.set_state_alias, device.entity_id, state.original_state, alias
            )
            ctx.state_aliases.setdefault(device.entity_id, {})[state.original_state] = alias
            logging.info("State %s of %s is now shown as %s",
                         state.original_state, device.entity_id, alias)

        elif isinstance(state, WaitingForGraphInterval):
            hours = _parse_int(text)
            if hours is None or not 1 <= hours <= MAX_BACK_HOURS:
                raise InvalidAnswer(f"Send a number of hours between 1 and {MAX_BACK_HOURS}")
            self._point_session(
                user_id, Control(QuickAction(state.room, state.device, ShowChart(hours, 0)))
            )

        elif isinstance(state, AdminFlow) and state.action == ADD_USER:
            if not ctx.is_admin(user_id):
                raise InvalidAnswer("Only the administrator can add users")
            new_user = _parse_int(text)
            if new_user is None or new_user <= 0:
                raise InvalidAnswer("Send the numeric Telegram user ID")
            added = await ctx.db.run(user_repo.add_user, new_user)
            logging.info("User %d %s", new_user, "added" if added else "already allowed")
            self._point_session(user_id, Admin(ListUsers()))

        else:
            raise InvalidAnswer("Nothing to answer right now")

    def _point_session(self, user_id: int, intent) -> None:
        session = self.ctx.sessions.get(user_id)
        message_id = session.last_message_id if session else 0
        self.ctx.sessions.upsert(user_id, message_id, encode(intent))

    async def rerender(self, chat_id: int, user_id: int) -> None:
        """Re-render the current session after a dialogue answer.

        The stored context is decoded strictly here: a broken context is
        reported to the user instead of silently showing Home.
        """
        session = self.ctx.sessions.get(user_id)
        if session is None:
            view = await self.router.resolve(Home(), user_id)
            await self.reconciler.send_new(chat_id, user_id, view)
            return

        try:
            intent = decode(session.current_context)
        except DecodeError as e:
            logging.error("Stored context of user %d is invalid: %s", user_id, e)
            await self.reply_error(chat_id, "Could not restore the menu, send /start")
            return

        view = await self.router.resolve(intent, user_id)
        await self.reconciler.apply(chat_id, session.last_message_id, user_id, view)

    async def reply_error(self, chat_id: int, text: str) -> None:
        """Send a short error message that removes itself after a while."""
        try:
            message = await self.ctx.bot.send_message(chat_id=chat_id, text=f"❌ {text}")
        except TelegramError as e:
            logging.warning("Failed to send error message: %s", e)
            return
        spawn_delayed_delete(
            self.ctx.bot, chat_id, message.message_id, self.ctx.config.delete_error_timeout_s
        )

    async def _delete(self, chat_id: int, message_id: int) -> None:
        try:
            await self.ctx.bot.delete_message(chat_id=chat_id, message_id=message_id)
        except TelegramError as e:
            logging.debug("Could not delete message %d: %s", message_id, e)


def _parse_int(text: str) -> Optional[int]:
    try:
        return int(text.strip())
    except ValueError:
        return None
