"""Home Assistant package for ha2tg.

REST client for states, services and history, and the WebSocket listener
streaming state changes.
"""
from ha2tg.hass.client import HomeAssistantClient, HomeAssistantError
from ha2tg.hass.listener import ConnectionState, EventListener, ReconnectBackoff
from ha2tg.hass.models import Area, Entity, HistoryResult, StateChangedEvent

__all__ = [
    "HomeAssistantClient",
    "HomeAssistantError",
    "ConnectionState",
    "EventListener",
    "ReconnectBackoff",
    "Area",
    "Entity",
    "HistoryResult",
    "StateChangedEvent",
]
