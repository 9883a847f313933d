"""Human-facing formatting of rooms, devices and states.

Everything that turns Home Assistant's technical values into the short
strings shown on buttons, headers and notifications lives here.
"""
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

DEVICE_ICONS = {
    ("light", "on"): "💡",
    ("light", None): "🌑",
    ("switch", "on"): "🔌",
    ("switch", None): "⚪",
    ("binary_sensor", "on"): "🔔",
    ("binary_sensor", None): "🔕",
    ("climate", None): "🌡",
    ("media_player", "playing"): "▶️",
    ("media_player", "paused"): "⏸",
    ("media_player", None): "🔈",
}

SENSOR_ICONS = {
    "temperature": "🌡",
    "humidity": "💧",
    "battery": "🔋",
    "power": "⚡",
}

ROOM_ICONS = {
    "kitchen": "🍳",
    "bedroom": "🛌",
    "bathroom": "🛀",
    "hallway": "🧥",
    "toilet": "🚽",
    "living room": "🛋",
    "kids room": "🧸",
    "nursery": "🧸",
    "office": "🖥",
}
DEFAULT_ROOM_ICON = "🚪"

STATE_NAMES = {
    "on": "ON",
    "off": "OFF",
    "unavailable": "N/A",
    "unknown": "N/A",
    "home": "Home",
    "not_home": "Away",
    "locked": "Locked",
    "unlocked": "Unlocked",
}

UNITS = {
    "temperature": "{}°C",
    "humidity": "{}%",
    "battery": "{}%",
    "power": "{} W",
    "energy": "{} kWh",
    "voltage": "{} V",
}


def domain_of(entity_id: str) -> str:
    """Return the domain part of an entity id ("light.kitchen" -> "light")."""
    return entity_id.split(".", 1)[0] if "." in entity_id else ""


def get_icon(domain: str, device_class: str, state: str) -> str:
    """Icon for a device from its domain, class and current state."""
    if domain == "sensor":
        return SENSOR_ICONS.get(device_class, "📊")
    return DEVICE_ICONS.get((domain, state)) or DEVICE_ICONS.get((domain, None), "📦")


def translate_state(state: str) -> str:
    return STATE_NAMES.get(state, state)


def format_state_value(domain: str, device_class: str, state: str) -> str:
    """Numeric states get two decimals and a unit, others a readable name."""
    try:
        value = float(state)
    except (TypeError, ValueError):
        return translate_state(state)

    rounded = f"{value:.2f}"
    if domain == "climate":
        return f"{rounded}°C"
    if domain == "sensor" and device_class in UNITS:
        return UNITS[device_class].format(rounded)
    return rounded


def format_device_label(alias: str, domain: str, device_class: str, state: str) -> str:
    return f"{get_icon(domain, device_class, state)} {alias}"


def format_device_label_with_state(
    alias: str,
    domain: str,
    device_class: str,
    state: str
) -> str:
    """Button text with state, e.g. "🌡 Kitchen (22.50°C)"."""
    icon = get_icon(domain, device_class, state)
    return f"{icon} {alias} ({format_state_value(domain, device_class, state)})"


def get_room_icon(name: str) -> str:
    return ROOM_ICONS.get(name.strip().lower(), DEFAULT_ROOM_ICON)


def room_display_name(area: str, alias: Optional[str] = None) -> str:
    """Room name with icon, e.g. "🍳 Kitchen". The alias wins over the area."""
    name = alias or area
    return f"{get_room_icon(name)} {name}"


def human_state(
    entity_id: str,
    state: str,
    state_aliases: Mapping[str, Mapping[str, str]]
) -> str:
    """User-defined alias for a state if there is one, else a readable name."""
    custom = state_aliases.get(entity_id, {}).get(state)
    if custom:
        return custom
    if state == "on":
        return "On"
    if state == "off":
        return "Off"
    return format_state_value(domain_of(entity_id), "", state)


def format_last_update(dt: datetime, now: Optional[datetime] = None) -> str:
    """Relative age of a timestamp: "just now", "30s ago", "5m ago", "14:02"."""
    now = now or datetime.now(timezone.utc)
    diff = now - dt
    seconds = int(diff.total_seconds())

    if seconds < 60:
        if seconds < 15:
            return "just now"
        return f"{(seconds // 15) * 15}s ago"

    if diff < timedelta(hours=1):
        return f"{seconds // 60}m ago"

    local_dt = dt.astimezone()
    if local_dt.date() == now.astimezone().date():
        return local_dt.strftime("%H:%M")
    return local_dt.strftime("%d %b %H:%M")
