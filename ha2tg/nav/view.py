"""Rendered screen description and its Telegram caption."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from telegram import InlineKeyboardButton, InlineKeyboardMarkup
from telegram.helpers import escape_markdown

from ha2tg.core.constants import DEFAULT_TITLE, SEPARATOR, TelegramLimits
from ha2tg.core.header import HeaderItem
from ha2tg.core.presentation import format_last_update
from ha2tg.nav.dialogue import DialogueState
from ha2tg.nav.payload import Control, Home, NavigationIntent, RoomDetail, encode


def _md(text: str) -> str:
    return escape_markdown(text, version=2)


@dataclass(frozen=True)
class View:
    """One screen, freshly resolved for one user.

    ``outgoing_intent`` is what the user's session points to after the view
    is shown; None keeps the session where it was (used by error views).
    ``dialogue_state`` set means the screen waits for a free-text answer.
    """
    text: str = ""
    keyboard: InlineKeyboardMarkup = field(
        default_factory=lambda: InlineKeyboardMarkup([])
    )
    outgoing_intent: Optional[NavigationIntent] = Home()
    header: Optional[str] = None
    notifications: Tuple[HeaderItem, ...] = ()
    dialogue_state: Optional[DialogueState] = None
    alert: Optional[str] = None
    image: Optional[bytes] = None

    def caption(self, now: Optional[datetime] = None) -> str:
        """MarkdownV2 caption: title, header lines, then alert and body."""
        status = "\n".join(
            f"{item.icon} {_md(item.label)}: {_md(item.value)} "
            f"_{_md(format_last_update(item.last_update, now))}_"
            for item in self.notifications
        )

        parts = [f"{self.header or DEFAULT_TITLE}\n{SEPARATOR}"]
        if status:
            parts.append(status)
            parts.append(SEPARATOR)

        prefix = "\n".join(parts)
        body = self._body(self.text)
        caption = f"{prefix}\n{body}" if body else prefix

        if len(caption) > TelegramLimits.CAPTION_CHARS:
            # Escaping at most doubles the length; trim the raw text to fit
            room = (TelegramLimits.CAPTION_CHARS - len(prefix) - len(self._body("")) - 8) // 2
            body = self._body(self.text[:max(room, 0)] + "…")
            caption = f"{prefix}\n{body}"
        return caption

    def _body(self, text: str) -> str:
        blocks = []
        if self.alert:
            blocks.append(f"⚠️ *ERROR:*\n_{_md(self.alert)}_")
        if text:
            blocks.append(_md(text))
        return "\n\n".join(blocks)


def button(label: str, intent: NavigationIntent) -> InlineKeyboardButton:
    return InlineKeyboardButton(label, callback_data=encode(intent))


def back_button(to: NavigationIntent, label: str = "⬅️ Back") -> InlineKeyboardButton:
    return button(label, to)


def main_menu_button() -> InlineKeyboardButton:
    return button("🏠 Main menu", Home())


def keyboard(*rows) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([list(row) for row in rows if row])


def alert_view(message: str, room: Optional[int] = None) -> View:
    """Alert-only view that leaves the user's position untouched."""
    back = Control(RoomDetail(room)) if room is not None else Home()
    return View(
        alert=message,
        keyboard=keyboard([back_button(back)]),
        outgoing_intent=None,
    )
