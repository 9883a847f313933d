"""Screen builders.

Each builder loads what it needs and returns a View without header lines;
the router attaches the user's header when it resolves the screen. Builders
raise HomeAssistantError, StorageError or LookupError when data is missing.
"""
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from ha2tg.core.constants import MAX_BACK_HOURS
from ha2tg.core.header import HeaderItem
from ha2tg.core.presentation import (
    format_device_label,
    format_device_label_with_state,
    format_state_value,
    translate_state,
)
from ha2tg.hass.models import Entity, HistoryResult
from ha2tg.nav.dialogue import (
    AdminFlow,
    ADD_USER,
    DialogueState,
    WaitingForGraphInterval,
    WaitingForName,
    WaitingForStateAlias,
)
from ha2tg.nav.payload import (
    Admin,
    AddUser,
    Control,
    DeleteUser,
    DeviceCommand,
    DeviceControl,
    DeviceDetail,
    EditName,
    EnterManualInput,
    Home,
    ListActions,
    ListRooms,
    ListUsers,
    NavigationIntent,
    QuickAction,
    RoomDetail,
    SetLevel,
    SetTemperature,
    Settings,
    ShowChart,
    Toggle,
    ToggleHide,
    ToggleNotify,
    TurnOff,
    TurnOn,
)
from ha2tg.nav.view import View, back_button, button, keyboard, main_menu_button
from ha2tg.storage import devices as device_repo
from ha2tg.storage import rooms as room_repo
from ha2tg.storage import subscriptions as subscription_repo
from ha2tg.storage import users as user_repo
from ha2tg.storage.models import Device

if TYPE_CHECKING:
    from ha2tg.core.context import RuntimeContext

CONTROL = "control"
SETTINGS = "settings"

ROOMS_TITLES = {
    CONTROL: "🎮 Control\nChoose a room:",
    SETTINGS: "⚙️ Settings\nChoose a room to configure:",
}

CHART_PRESETS = (("12h", 12), ("24h", 24), ("3d", 72), ("7d", 168))
DEFAULT_TARGET_TEMPERATURE = 20.0
LIGHT_LEVELS = (("25%", 64), ("50%", 128), ("100%", 255))


def _family(mode: str, sub) -> NavigationIntent:
    return Control(sub) if mode == CONTROL else Settings(sub)


async def _load_device(ctx: 'RuntimeContext', device_id: int) -> Device:
    device = await ctx.db.run(device_repo.get_device_by_id, device_id)
    if device is None:
        raise LookupError("Device not found")
    return device


async def _load_entity(ctx: 'RuntimeContext', entity_id: str) -> Entity:
    entity = await ctx.hass.fetch_state(entity_id)
    if entity is None:
        raise LookupError("Home Assistant does not know this device")
    return entity


# --- Home and rooms --------------------------------------------------------

def home(is_admin: bool) -> View:
    rows = [
        [button("🏠 Control", Control(ListRooms()))],
        [button("⚙️ Settings", Settings(ListRooms()))],
    ]
    if is_admin:
        rows.append([button("🛠 Admin", Admin(ListActions()))])
    return View(text="Main menu", keyboard=keyboard(*rows), outgoing_intent=Home())


async def rooms(ctx: 'RuntimeContext', mode: str) -> View:
    room_list = await ctx.db.run(room_repo.get_rooms)
    rows = [[button(r.display_name, _family(mode, RoomDetail(r.id)))] for r in room_list]
    rows.append([back_button(Home())])
    return View(
        text=ROOMS_TITLES[mode],
        keyboard=keyboard(*rows),
        outgoing_intent=_family(mode, ListRooms()),
    )


async def room(ctx: 'RuntimeContext', room_id: int, mode: str) -> View:
    """Devices of a room. Hidden devices are skipped in both modes."""
    room_row = await ctx.db.run(room_repo.get_room_by_id, room_id)
    if room_row is None:
        raise LookupError("Room not found")
    devices = await ctx.db.run(device_repo.get_devices_by_room, room_id)
    entities = {
        e.entity_id: e
        for e in await ctx.hass.fetch_states([d.entity_id for d in devices])
    }

    rows = []
    for device in devices:
        if await ctx.db.run(subscription_repo.is_hidden, device.entity_id):
            continue
        entity = entities.get(device.entity_id)
        if entity is None:
            continue

        label_args = (device.name, entity.domain, entity.device_class, entity.state)
        if mode == SETTINGS:
            label = format_device_label(*label_args)
            target = Settings(DeviceDetail(room_id, device.id))
        else:
            label = format_device_label_with_state(*label_args)
            if entity.domain in ("light", "switch"):
                target = Control(QuickAction(room_id, device.id, Toggle()))
            else:
                target = Control(DeviceControl(room_id, device.id))
        rows.append([button(label, target)])

    rows.append([back_button(_family(mode, ListRooms()))])
    title = "📱 Control" if mode == CONTROL else "⚙️ Settings"
    return View(
        text=f"{title} {room_row.display_name}",
        keyboard=keyboard(*rows),
        outgoing_intent=_family(mode, RoomDetail(room_id)),
    )


# --- Device control --------------------------------------------------------

async def device_control(
    ctx: 'RuntimeContext',
    room_id: int,
    device_id: int,
    cmd: Optional[DeviceCommand] = None
) -> View:
    """Detail screen of a device, chosen by its domain."""
    device = await _load_device(ctx, device_id)
    entity = await _load_entity(ctx, device.entity_id)

    if entity.domain in ("sensor", "binary_sensor"):
        return await sensor_history(ctx, room_id, device, entity, cmd)
    if entity.domain == "climate":
        return climate(room_id, device, entity)
    if entity.domain in ("light", "switch"):
        return light_control(room_id, device, entity)
    return in_dev(Control(RoomDetail(room_id)))


def light_control(room_id: int, device: Device, entity: Entity) -> View:
    def action(cmd):
        return Control(QuickAction(room_id, device.id, cmd))

    rows = [[
        button("🔆 On", action(TurnOn())),
        button("🌑 Off", action(TurnOff())),
        button("🔁 Toggle", action(Toggle())),
    ]]
    if entity.domain == "light":
        rows.append([button(f"💡 {label}", action(SetLevel(level))) for label, level in LIGHT_LEVELS])
    rows.append([button("✏️ Name this state", action(EnterManualInput()))])
    rows.append([back_button(Control(RoomDetail(room_id)))])

    state = format_state_value(entity.domain, entity.device_class, entity.state)
    return View(
        text=f"{format_device_label(device.name, entity.domain, entity.device_class, entity.state)}\n"
             f"State: {state}",
        keyboard=keyboard(*rows),
        outgoing_intent=Control(DeviceControl(room_id, device.id)),
    )


def climate(room_id: int, device: Device, entity: Entity) -> View:
    target = entity.attributes.get("temperature")
    if not isinstance(target, (int, float)):
        target = DEFAULT_TARGET_TEMPERATURE
    current = entity.attributes.get("current_temperature")

    def action(cmd):
        return Control(QuickAction(room_id, device.id, cmd))

    rows = [
        [
            button("➖ 0.5°", action(SetTemperature(target - 0.5))),
            button("➕ 0.5°", action(SetTemperature(target + 0.5))),
        ],
        [button("🔆 On", action(TurnOn())), button("🌑 Off", action(TurnOff()))],
        [back_button(Control(RoomDetail(room_id)))],
    ]

    lines = [f"❄️ Climate control: {device.name}", f"Mode: {entity.state.upper()}"]
    if isinstance(current, (int, float)):
        lines.append(f"Current: {current:.1f}°C")
    lines.append(f"Target: {target:.1f}°C")
    return View(
        header="🌡 *Thermostat*",
        text="\n".join(lines),
        keyboard=keyboard(*rows),
        outgoing_intent=Control(DeviceControl(room_id, device.id)),
    )


def summarize_history(history: HistoryResult) -> str:
    """Text summary of a state series: min/max/last for numbers, else changes."""
    states = [state for _, state in history.points]
    if not states:
        return "No data for this period."

    numbers = []
    for state in states:
        try:
            numbers.append(float(state))
        except ValueError:
            pass
    if numbers and len(numbers) == len(states):
        return (
            f"Min: {min(numbers):.2f}\n"
            f"Max: {max(numbers):.2f}\n"
            f"Last: {numbers[-1]:.2f}"
        )

    changes = sum(1 for a, b in zip(states, states[1:]) if a != b)
    return f"Changes: {changes}\nLast: {translate_state(states[-1])}"


def _period_text(hours: int, offset: int) -> str:
    if offset == 0:
        return f"last {hours}h"
    days_ago = abs(offset) // 24
    if days_ago > 0:
        return f"{hours}h ({days_ago} days ago)"
    return f"{hours}h (shifted {offset}h)"


async def sensor_history(
    ctx: 'RuntimeContext',
    room_id: int,
    device: Device,
    entity: Entity,
    cmd: Optional[DeviceCommand] = None
) -> View:
    """History of a sensor over a period, with paging back up to 10 days."""
    if isinstance(cmd, ShowChart):
        hours, offset = cmd.hours, cmd.offset
    else:
        hours, offset = 24, 0

    history = await ctx.hass.fetch_history(entity.entity_id, hours, offset)

    def chart(h, o):
        return Control(QuickAction(room_id, device.id, ShowChart(h, o)))

    nav_row = []
    if abs(offset) + 24 <= MAX_BACK_HOURS:
        nav_row.append(button("⏪ -24h", chart(hours, offset - 24)))
    nav_row.append(button("🔄 Now", chart(24, 0)))
    if offset < 0:
        nav_row.append(button("24h ⏩", chart(hours, min(offset + 24, 0))))

    manual_label = "⌨️ Custom interval" if entity.domain == "sensor" else "✏️ Name this state"
    rows = [
        nav_row,
        [button(label, chart(h, offset)) for label, h in CHART_PRESETS],
        [button(manual_label, Control(QuickAction(room_id, device.id, EnterManualInput())))],
        [back_button(Control(RoomDetail(room_id)))],
    ]

    start = history.start_time.astimezone()
    end = history.end_time.astimezone()
    period = HeaderItem(
        icon="📅",
        label="Period",
        value=f"{start:%d.%m %H:%M} - {end:%H:%M}",
        last_update=datetime.now(timezone.utc),
    )

    text = (
        f"📊 {device.name}\n"
        f"Showing: {_period_text(hours, offset)}\n\n"
        f"{summarize_history(history)}"
    )
    return View(
        text=text,
        keyboard=keyboard(*rows),
        notifications=(period,),
        outgoing_intent=chart(hours, offset),
    )


def manual_input_prompt(room_id: int, device_id: int, state: DialogueState) -> View:
    """Ask for a free-text answer. The answer is handled by the message handler."""
    if isinstance(state, WaitingForGraphInterval):
        text = "⌨️ Send the number of hours to show (1-%d)." % MAX_BACK_HOURS
    elif isinstance(state, WaitingForStateAlias):
        text = (
            f"✏️ Send a name for the state \"{translate_state(state.original_state)}\"."
        )
    elif isinstance(state, WaitingForName):
        text = "✏️ Send the new name of the device."
    else:
        text = "⌨️ Send your answer."

    return View(
        text=text,
        keyboard=keyboard([back_button(Control(DeviceControl(room_id, device_id)), "❌ Cancel")]),
        outgoing_intent=Control(DeviceControl(room_id, device_id)),
        dialogue_state=state,
    )


# --- Settings --------------------------------------------------------------

async def device_settings(
    ctx: 'RuntimeContext',
    user_id: int,
    room_id: int,
    device_id: int
) -> View:
    device = await _load_device(ctx, device_id)
    subscribed = await ctx.db.run(subscription_repo.is_subscribed, user_id, device.entity_id)
    hidden = await ctx.db.run(subscription_repo.is_hidden, device.entity_id)
    entity = await _load_entity(ctx, device.entity_id)

    text = (
        "🛠 Device settings\n\n"
        f"Name: {device.name}\n"
        f"ID: {device.entity_id}\n"
        f"State: {translate_state(entity.state)}\n\n"
        "Configure how the bot treats this device:"
    )

    notify_label = "🔔 Notifications: ON" if subscribed else "🔕 Notifications: OFF"
    hide_label = "👁 Show in control" if hidden else "🚫 Hide from control"
    rows = [
        [button(notify_label, Settings(ToggleNotify(room_id, device_id)))],
        [button(hide_label, Settings(ToggleHide(room_id, device_id)))],
        [button("✏️ Rename", Settings(EditName(room_id, device_id)))],
        [back_button(Settings(RoomDetail(room_id)), "⬅️ Back to list")],
    ]
    return View(
        header="⚙️ *Settings*",
        text=text,
        keyboard=keyboard(*rows),
        outgoing_intent=Settings(DeviceDetail(room_id, device_id)),
    )


def rename_prompt(room_id: int, device_id: int) -> View:
    return View(
        text="✏️ Send the new name of the device.",
        keyboard=keyboard([back_button(Settings(DeviceDetail(room_id, device_id)), "❌ Cancel")]),
        outgoing_intent=Settings(DeviceDetail(room_id, device_id)),
        dialogue_state=WaitingForName(device=device_id, room=room_id),
    )


# --- Admin -----------------------------------------------------------------

def admin_actions() -> View:
    return View(
        header="🛠 *Admin*",
        text="Administration",
        keyboard=keyboard(
            [button("👥 Users", Admin(ListUsers()))],
            [back_button(Home())],
        ),
        outgoing_intent=Admin(ListActions()),
    )


async def admin_users(ctx: 'RuntimeContext') -> View:
    user_ids: List[int] = await ctx.db.run(user_repo.list_users)

    rows = [
        [button(f"❌ Remove {uid}", Admin(DeleteUser(uid)))]
        for uid in user_ids
        # Only ids that fit the callback payload get a button
        if 0 <= uid < 1 << 32
    ]
    rows.append([button("➕ Add user", Admin(AddUser(0)))])
    rows.append([back_button(Admin(ListActions()))])

    if user_ids:
        text = "Allowed users:\n" + "\n".join(f"• {uid}" for uid in user_ids)
    else:
        text = "No users added yet."
    return View(
        header="🛠 *Admin*",
        text=text,
        keyboard=keyboard(*rows),
        outgoing_intent=Admin(ListUsers()),
    )


def add_user_prompt() -> View:
    return View(
        header="🛠 *Admin*",
        text="Send the Telegram user id to allow.",
        keyboard=keyboard([back_button(Admin(ListUsers()), "❌ Cancel")]),
        outgoing_intent=Admin(ListUsers()),
        dialogue_state=AdminFlow(action=ADD_USER),
    )


# --- Fallback --------------------------------------------------------------

def in_dev(target: NavigationIntent) -> View:
    """Stable "not yet available" screen pointing back to a known screen."""
    rows = [[back_button(target)]]
    if not isinstance(target, Home):
        rows.append([main_menu_button()])
    return View(
        text="🚧 Not yet available",
        keyboard=keyboard(*rows),
        outgoing_intent=target,
    )
