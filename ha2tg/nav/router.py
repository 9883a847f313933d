"""Router: turns a navigation intent into a screen for one user.

Fallback rule for payloads without a screen: Control and Settings go back
to their own room list, everything else goes Home.
"""
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Optional

from ha2tg.core.devices import (
    DeviceAction,
    Error,
    Processed,
    RequiresDetail,
    RequiresInput,
    handle_device_interaction,
)
from ha2tg.core.header import build_header
from ha2tg.hass.client import HomeAssistantError
from ha2tg.nav import screens
from ha2tg.nav.dialogue import from_input_intent
from ha2tg.nav.payload import (
    Admin,
    AddUser,
    Control,
    DeleteUser,
    DeviceControl,
    DeviceDetail,
    EditName,
    Home,
    ListActions,
    ListRooms,
    ListUsers,
    NavigationIntent,
    QuickAction,
    RoomDetail,
    Settings,
    ToggleHide,
    ToggleNotify,
    intent_room,
)
from ha2tg.nav.view import View, alert_view
from ha2tg.storage import devices as device_repo
from ha2tg.storage import subscriptions as subscription_repo
from ha2tg.storage import users as user_repo
from ha2tg.storage.database import StorageError

if TYPE_CHECKING:
    from ha2tg.core.context import RuntimeContext


class Router:
    """Resolves intents to views. Holds no per-user state."""

    def __init__(self, ctx: 'RuntimeContext'):
        self.ctx = ctx

    async def resolve(
        self,
        intent: NavigationIntent,
        user_id: int,
        is_admin: Optional[bool] = None
    ) -> View:
        """Build the screen for an intent. Never raises for missing data.

        Hub, storage and lookup failures become an alert view that keeps the
        user where they were. The header is built at resolution time.
        """
        if is_admin is None:
            is_admin = self.ctx.is_admin(user_id)
        logging.debug("Resolving %r for user %d", intent, user_id)

        try:
            view = await self._route(intent, user_id, is_admin)
        except (HomeAssistantError, StorageError, LookupError) as e:
            logging.warning("Screen for %r failed: %s", intent, e)
            view = alert_view(str(e), intent_room(intent))

        header = await build_header(self.ctx, user_id)
        return replace(view, notifications=tuple(view.notifications) + tuple(header))

    async def _route(self, intent: NavigationIntent, user_id: int, is_admin: bool) -> View:
        if isinstance(intent, Home):
            return screens.home(is_admin)
        if isinstance(intent, Control):
            return await self._control(intent.sub)
        if isinstance(intent, Settings):
            return await self._settings(intent.sub, user_id)
        if isinstance(intent, Admin):
            if not is_admin:
                logging.warning("User %d is not allowed to open admin screens", user_id)
                return screens.home(False)
            return await self._admin(intent.sub)
        return screens.in_dev(Home())

    async def _control(self, sub) -> View:
        ctx = self.ctx
        if isinstance(sub, ListRooms):
            return await screens.rooms(ctx, screens.CONTROL)
        if isinstance(sub, RoomDetail):
            return await screens.room(ctx, sub.room, screens.CONTROL)
        if isinstance(sub, DeviceControl):
            return await screens.device_control(ctx, sub.room, sub.device)
        if isinstance(sub, QuickAction):
            return await self._quick_action(sub)
        return screens.in_dev(Control(ListRooms()))

    async def _quick_action(self, sub: QuickAction) -> View:
        result = await handle_device_interaction(
            self.ctx, sub.device, DeviceAction.from_command(sub.cmd)
        )
        if isinstance(result, Processed):
            return await screens.room(self.ctx, sub.room, screens.CONTROL)
        if isinstance(result, RequiresDetail):
            return await screens.device_control(self.ctx, sub.room, sub.device, sub.cmd)
        if isinstance(result, RequiresInput):
            state = from_input_intent(result.intent, sub.device, sub.room)
            return screens.manual_input_prompt(sub.room, sub.device, state)
        if isinstance(result, Error):
            return alert_view(result.message, sub.room)
        return screens.in_dev(Control(RoomDetail(sub.room)))

    async def _settings(self, sub, user_id: int) -> View:
        ctx = self.ctx
        if isinstance(sub, ListRooms):
            return await screens.rooms(ctx, screens.SETTINGS)
        if isinstance(sub, RoomDetail):
            return await screens.room(ctx, sub.room, screens.SETTINGS)
        if isinstance(sub, DeviceDetail):
            return await screens.device_settings(ctx, user_id, sub.room, sub.device)
        if isinstance(sub, (ToggleNotify, ToggleHide)):
            device = await ctx.db.run(device_repo.get_device_by_id, sub.device)
            if device is None:
                raise LookupError("Device not found")
            if isinstance(sub, ToggleNotify):
                await ctx.db.run(subscription_repo.toggle_subscription, user_id, device.entity_id)
            else:
                await ctx.db.run(subscription_repo.toggle_hidden, device.entity_id)
            return await screens.device_settings(ctx, user_id, sub.room, sub.device)
        if isinstance(sub, EditName):
            return screens.rename_prompt(sub.room, sub.device)
        return screens.in_dev(Settings(ListRooms()))

    async def _admin(self, sub) -> View:
        ctx = self.ctx
        if isinstance(sub, ListActions):
            return screens.admin_actions()
        if isinstance(sub, ListUsers):
            return await screens.admin_users(ctx)
        if isinstance(sub, AddUser):
            if not sub.id:
                return screens.add_user_prompt()
            await ctx.db.run(user_repo.add_user, sub.id)
            logging.info("Allowed user %d", sub.id)
            return await screens.admin_users(ctx)
        if isinstance(sub, DeleteUser):
            await ctx.db.run(user_repo.delete_user, sub.id)
            logging.info("Removed user %d", sub.id)
            return await screens.admin_users(ctx)
        return screens.in_dev(Home())
