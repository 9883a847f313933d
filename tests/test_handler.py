"""Tests for the Telegram update handlers."""
from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram.error import BadRequest

from conftest import ROOT_USER
from ha2tg.nav.dialogue import (
    ADD_USER,
    AdminFlow,
    Idle,
    WaitingForGraphInterval,
    WaitingForName,
    WaitingForStateAlias,
)
from ha2tg.nav.payload import (
    Admin,
    Control,
    DeviceDetail,
    EditName,
    Home,
    ListUsers,
    QuickAction,
    RoomDetail,
    Settings,
    ShowChart,
    decode,
    encode,
)
from ha2tg.nav.router import Router
from ha2tg.storage import devices as device_repo
from ha2tg.storage import users as user_repo
from ha2tg.telegram.handler import InvalidAnswer, TelegramHandler
from ha2tg.telegram.reconciler import Reconciler

STRANGER = 999
MEMBER = 3000
MENU = 40
COMMAND = 77


@pytest.fixture
def handler(ctx):
    ctx.config.delete_error_timeout_s = 0
    return TelegramHandler(ctx, Router(ctx), Reconciler(ctx, Router(ctx)))


def message_update(user_id, text="/start", message_id=COMMAND):
    update = MagicMock()
    update.effective_user.id = user_id
    update.effective_chat.id = user_id
    update.message.text = text
    update.message.message_id = message_id
    update.message.reply_text = AsyncMock()
    return update


def callback_update(user_id, data, message_id=MENU):
    update = MagicMock()
    update.callback_query.from_user.id = user_id
    update.callback_query.data = data
    update.callback_query.answer = AsyncMock()
    update.callback_query.message.chat_id = user_id
    update.callback_query.message.message_id = message_id
    return update


def deleted_ids(bot):
    return [c.kwargs["message_id"] for c in bot.delete_message.call_args_list]


def error_texts(bot):
    return [c.kwargs["text"] for c in bot.send_message.call_args_list]


class TestAuthorization:
    """Who may use the bot."""

    @pytest.mark.asyncio
    async def test_root_user(self, handler):
        assert await handler.is_authorized(ROOT_USER)

    @pytest.mark.asyncio
    async def test_configured_chat_ids(self, handler, ctx):
        ctx.config.telegram_chat_ids = "555, -100123, junk"
        assert await handler.is_authorized(555)
        assert await handler.is_authorized(-100123)

    @pytest.mark.asyncio
    async def test_added_user(self, handler, ctx):
        await ctx.db.run(user_repo.add_user, MEMBER)
        assert await handler.is_authorized(MEMBER)

    @pytest.mark.asyncio
    async def test_stranger(self, handler):
        assert not await handler.is_authorized(STRANGER)


class TestStart:
    """Tests for /start."""

    @pytest.mark.asyncio
    async def test_unauthorized_gets_their_id(self, handler, bot):
        update = message_update(STRANGER)

        await handler.handle_start(update, MagicMock())

        update.message.reply_text.assert_awaited_once()
        assert "999" in update.message.reply_text.call_args.args[0]
        bot.send_photo.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_replaces_previous_menu(self, handler, ctx, bot):
        ctx.sessions.upsert(ROOT_USER, MENU, encode(Control(RoomDetail(1))))
        ctx.sessions.set_dialogue(ROOT_USER, WaitingForName(device=1, room=1))

        await handler.handle_start(message_update(ROOT_USER), MagicMock())

        bot.send_photo.assert_awaited_once()
        assert deleted_ids(bot) == [MENU, COMMAND]
        session = ctx.sessions.get(ROOT_USER)
        assert session.last_message_id == 501
        assert decode(session.current_context) == Home()
        assert ctx.sessions.get_dialogue(ROOT_USER) == Idle()

    @pytest.mark.asyncio
    async def test_first_start(self, handler, ctx, bot):
        await handler.handle_start(message_update(ROOT_USER), MagicMock())
        assert deleted_ids(bot) == [COMMAND]
        assert ctx.sessions.get(ROOT_USER).last_message_id == 501

    @pytest.mark.asyncio
    async def test_delete_failures_are_ignored(self, handler, ctx, bot):
        bot.delete_message.side_effect = BadRequest("Message to delete not found")
        ctx.sessions.upsert(ROOT_USER, MENU, encode(Home()))

        await handler.handle_start(message_update(ROOT_USER), MagicMock())

        assert ctx.sessions.get(ROOT_USER).last_message_id == 501


class TestCallback:
    """Tests for button presses."""

    @pytest.mark.asyncio
    async def test_unauthorized_press(self, handler, bot):
        update = callback_update(STRANGER, encode(Home()))

        await handler.handle_callback(update, MagicMock())

        update.callback_query.answer.assert_awaited_once_with("⛔ Unauthorized")
        bot.edit_message_media.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_press_edits_menu(self, handler, ctx, bot):
        update = callback_update(ROOT_USER, encode(Control(RoomDetail(1))))

        await handler.handle_callback(update, MagicMock())

        update.callback_query.answer.assert_awaited_once_with(None)
        assert bot.edit_message_media.call_args.kwargs["message_id"] == MENU
        assert decode(ctx.sessions.get(ROOT_USER).current_context) == Control(RoomDetail(1))

    @pytest.mark.asyncio
    async def test_garbage_data_goes_home(self, handler, ctx):
        await handler.handle_callback(callback_update(ROOT_USER, "%%%"), MagicMock())
        assert decode(ctx.sessions.get(ROOT_USER).current_context) == Home()

    @pytest.mark.asyncio
    async def test_prompt_starts_dialogue(self, handler, ctx):
        update = callback_update(ROOT_USER, encode(Settings(EditName(1, 1))))

        await handler.handle_callback(update, MagicMock())

        assert ctx.sessions.get_dialogue(ROOT_USER) == WaitingForName(device=1, room=1)
        assert decode(ctx.sessions.get(ROOT_USER).current_context) == \
            Settings(DeviceDetail(1, 1))

    @pytest.mark.asyncio
    async def test_other_press_clears_dialogue(self, handler, ctx):
        ctx.sessions.set_dialogue(ROOT_USER, WaitingForName(device=1, room=1))

        await handler.handle_callback(callback_update(ROOT_USER, encode(Home())), MagicMock())

        assert ctx.sessions.get_dialogue(ROOT_USER) == Idle()

    @pytest.mark.asyncio
    async def test_answer_failure_does_not_block(self, handler, bot):
        update = callback_update(ROOT_USER, encode(Home()))
        update.callback_query.answer.side_effect = BadRequest("Query is too old")

        await handler.handle_callback(update, MagicMock())

        bot.edit_message_media.assert_awaited_once()


class TestTextAnswers:
    """Tests for free-text dialogue answers."""

    @pytest.mark.asyncio
    async def test_text_outside_dialogue_is_deleted(self, handler, bot):
        await handler.handle_text(message_update(ROOT_USER, "hello"), MagicMock())

        assert deleted_ids(bot) == [COMMAND]
        bot.edit_message_media.assert_not_awaited()
        bot.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unauthorized_text(self, handler, ctx):
        update = message_update(STRANGER, "let me in")
        await handler.handle_text(update, MagicMock())
        update.message.reply_text.assert_awaited_once_with("⛔ Unauthorized")

    @pytest.mark.asyncio
    async def test_rename_device(self, handler, ctx, bot):
        ctx.sessions.upsert(ROOT_USER, MENU, encode(Settings(DeviceDetail(1, 1))))
        ctx.sessions.set_dialogue(ROOT_USER, WaitingForName(device=1, room=1))

        await handler.handle_text(message_update(ROOT_USER, "  Big light "), MagicMock())

        assert ctx.name_aliases["light.kitchen"] == "Big light"
        device = await ctx.db.run(device_repo.get_device_by_id, 1)
        assert device.alias == "Big light"
        assert ctx.sessions.get_dialogue(ROOT_USER) == Idle()
        assert deleted_ids(bot) == [COMMAND]
        kwargs = bot.edit_message_media.call_args.kwargs
        assert kwargs["message_id"] == MENU
        assert "Big light" in kwargs["media"].caption

    @pytest.mark.asyncio
    async def test_state_alias(self, handler, ctx):
        ctx.sessions.upsert(ROOT_USER, MENU, encode(Control(RoomDetail(4))))
        ctx.sessions.set_dialogue(
            ROOT_USER, WaitingForStateAlias(device=4, room=4, original_state="off")
        )

        await handler.handle_text(message_update(ROOT_USER, "Closed"), MagicMock())

        assert ctx.state_aliases["binary_sensor.bath_door"] == {"off": "Closed"}
        assert await ctx.db.run(user_repo.get_state_aliases) == {
            "binary_sensor.bath_door": {"off": "Closed"}
        }

    @pytest.mark.asyncio
    async def test_graph_interval_opens_chart(self, handler, ctx, hass):
        ctx.sessions.upsert(ROOT_USER, MENU, encode(Control(RoomDetail(1))))
        ctx.sessions.set_dialogue(ROOT_USER, WaitingForGraphInterval(device=2, room=1))

        await handler.handle_text(message_update(ROOT_USER, "48"), MagicMock())

        hass.fetch_history.assert_awaited_with("sensor.kitchen_temperature", 48, 0)
        assert decode(ctx.sessions.get(ROOT_USER).current_context) == \
            Control(QuickAction(1, 2, ShowChart(48, 0)))

    @pytest.mark.parametrize("answer", ["abc", "0", "241", "-5"])
    @pytest.mark.asyncio
    async def test_bad_interval_keeps_waiting(self, handler, ctx, bot, answer):
        waiting = WaitingForGraphInterval(device=2, room=1)
        ctx.sessions.upsert(ROOT_USER, MENU, encode(Control(RoomDetail(1))))
        ctx.sessions.set_dialogue(ROOT_USER, waiting)

        await handler.handle_text(message_update(ROOT_USER, answer), MagicMock())

        assert ctx.sessions.get_dialogue(ROOT_USER) == waiting
        assert error_texts(bot) == ["❌ Send a number of hours between 1 and 240"]
        bot.edit_message_media.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_admin_adds_user(self, handler, ctx):
        ctx.sessions.upsert(ROOT_USER, MENU, encode(Admin(ListUsers())))
        ctx.sessions.set_dialogue(ROOT_USER, AdminFlow(action=ADD_USER))

        await handler.handle_text(message_update(ROOT_USER, "4242"), MagicMock())

        assert await ctx.db.run(user_repo.user_exists, 4242)
        assert decode(ctx.sessions.get(ROOT_USER).current_context) == Admin(ListUsers())

    @pytest.mark.asyncio
    async def test_member_cannot_add_users(self, handler, ctx, bot):
        await ctx.db.run(user_repo.add_user, MEMBER)
        ctx.sessions.set_dialogue(MEMBER, AdminFlow(action=ADD_USER))

        await handler.handle_text(message_update(MEMBER, "4242"), MagicMock())

        assert not await ctx.db.run(user_repo.user_exists, 4242)
        assert error_texts(bot) == ["❌ Only the administrator can add users"]

    @pytest.mark.asyncio
    async def test_broken_context_is_reported(self, handler, ctx, bot, caplog):
        ctx.sessions.upsert(ROOT_USER, MENU, "not-a-payload")
        ctx.sessions.set_dialogue(ROOT_USER, WaitingForName(device=1, room=1))

        await handler.handle_text(message_update(ROOT_USER, "Lamp"), MagicMock())

        assert error_texts(bot) == ["❌ Could not restore the menu, send /start"]
        assert "Stored context of user 1000 is invalid" in caplog.text
        bot.edit_message_media.assert_not_awaited()


class TestApplyAnswer:
    """Direct checks of answer validation."""

    @pytest.mark.asyncio
    async def test_empty_answer(self, handler):
        with pytest.raises(InvalidAnswer):
            await handler.apply_answer(ROOT_USER, WaitingForName(device=1, room=1), "")

    @pytest.mark.asyncio
    async def test_rename_unknown_device(self, handler):
        with pytest.raises(InvalidAnswer, match="Device not found"):
            await handler.apply_answer(ROOT_USER, WaitingForName(device=99, room=1), "X")

    @pytest.mark.asyncio
    async def test_alias_is_truncated(self, handler, ctx):
        await handler.apply_answer(ROOT_USER, WaitingForName(device=3, room=2), "x" * 100)
        assert len(ctx.name_aliases["switch.tv"]) == 64

    @pytest.mark.asyncio
    async def test_idle_has_nothing_to_answer(self, handler):
        with pytest.raises(InvalidAnswer):
            await handler.apply_answer(ROOT_USER, Idle(), "hello")
