"""Constants used throughout the ha2tg application.

This module centralizes magic strings and values to:
- Keep the Telegram wire limits in one place
- Make refactoring easier
- Provide a single source of truth for default timings
"""


# Telegram platform limits
class TelegramLimits:
    """Hard limits imposed by the Telegram Bot API."""
    CALLBACK_DATA_BYTES = 64
    CAPTION_CHARS = 1024


# Home Assistant event stream reconnect policy
class Reconnect:
    """Backoff bounds for the Home Assistant WebSocket listener."""
    INITIAL_DELAY = 0.5
    MAX_DELAY = 30.0


# Home Assistant WebSocket message types
class HassMessage:
    """Message type constants of the Home Assistant WebSocket API."""
    AUTH_REQUIRED = "auth_required"
    AUTH = "auth"
    AUTH_OK = "auth_ok"
    AUTH_INVALID = "auth_invalid"
    SUBSCRIBE_EVENTS = "subscribe_events"
    RESULT = "result"
    EVENT = "event"
    STATE_CHANGED = "state_changed"


# Domains shown in the bot
SUPPORTED_DOMAINS = ("light", "switch", "sensor", "binary_sensor", "climate")

# How far back the sensor history screen may page
MAX_HISTORY_DAYS = 10
MAX_BACK_HOURS = MAX_HISTORY_DAYS * 24

# Upper bound on waiting for detached tasks at shutdown, in seconds
SHUTDOWN_GRACE_S = 10.0

SEPARATOR = "────────────────────"
DEFAULT_TITLE = "🏠 *HA Telegram Bot*"

# 1x1 PNG used when a screen has no image of its own; every menu is a photo
# message so that edits never have to switch message type.
UI_PLACEHOLDER_PNG = bytes([
    0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A, 0x00, 0x00, 0x00, 0x0D, 0x49, 0x48, 0x44, 0x52,
    0x00, 0x00, 0x00, 0x01, 0x00, 0x00, 0x00, 0x01, 0x08, 0x02, 0x00, 0x00, 0x00, 0x90, 0x77, 0x53,
    0xDE, 0x00, 0x00, 0x00, 0x0C, 0x49, 0x44, 0x41, 0x54, 0x08, 0xD7, 0x63, 0x60, 0x60, 0x60, 0x00,
    0x00, 0x00, 0x04, 0x00, 0x01, 0x27, 0x34, 0x2D, 0x1C, 0x00, 0x00, 0x00, 0x00, 0x49, 0x45, 0x4E,
    0x44, 0xAE, 0x42, 0x60, 0x82,
])


# Terminal colors for output formatting
class TermColors:
    """ANSI color codes for terminal output."""
    CYAN = "\033[96m"
    YELLOW = "\033[93m"
    RESET = "\033[0m"
    DIM = "\033[2m"
    BOLD = "\033[1m"
