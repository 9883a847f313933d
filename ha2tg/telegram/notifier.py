"""Push notifications for subscribed devices.

A notification is a short standalone message ("🔔 🍳 Kitchen › 💡 Ceiling:
On") that deletes itself after a configured delay, so the chat keeps only
the menu message.
"""
import logging
from typing import TYPE_CHECKING, Optional

from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.helpers import escape_markdown

from ha2tg.core.event_bus import EventType
from ha2tg.core.presentation import domain_of, get_icon, human_state
from ha2tg.core.utils import spawn_delayed_delete
from ha2tg.hass.models import StateChangedEvent
from ha2tg.storage.models import Room

if TYPE_CHECKING:
    from ha2tg.core.context import RuntimeContext


def compose_notification(
    ctx: 'RuntimeContext',
    event: StateChangedEvent,
    room: Optional[Room] = None
) -> str:
    """MarkdownV2 text for a state change."""
    icon = get_icon(domain_of(event.entity_id), event.device_class, event.new_state)
    name = ctx.display_name(event.entity_id, event.friendly_name)
    state = human_state(event.entity_id, event.new_state, ctx.state_aliases)

    breadcrumb = f"{escape_markdown(room.display_name, version=2)} › " if room else ""
    return (
        f"🔔 {breadcrumb}{icon} *{escape_markdown(name, version=2)}*: "
        f"{escape_markdown(state, version=2)}"
    )


async def send_notification(
    ctx: 'RuntimeContext',
    user_id: int,
    event: StateChangedEvent,
    room: Optional[Room] = None
) -> bool:
    """Send a self-deleting notification. Returns False if sending failed."""
    text = compose_notification(ctx, event, room)
    try:
        message = await ctx.bot.send_message(
            chat_id=user_id,
            text=text,
            parse_mode=ParseMode.MARKDOWN_V2,
        )
    except TelegramError as e:
        logging.warning("Failed to notify user %d about %s: %s", user_id, event.entity_id, e)
        return False

    spawn_delayed_delete(
        ctx.bot, user_id, message.message_id, ctx.config.delete_notification_timeout_s
    )
    ctx.event_bus.publish(EventType.NOTIFICATION_SENT, {
        "user_id": user_id,
        "entity_id": event.entity_id,
        "state": event.new_state,
    })
    return True
