"""Runtime context for dependency injection.

This module provides a RuntimeContext class that holds shared dependencies,
so components receive the database, Home Assistant client, session store and
bot explicitly instead of reaching for module-level globals.
"""
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional

from ha2tg.core.event_bus import EventBus, event_bus as global_event_bus

if TYPE_CHECKING:
    from ha2tg.core.config import Config
    from ha2tg.core.sessions import SessionStore
    from ha2tg.hass.client import HomeAssistantClient
    from ha2tg.storage.database import Database


@dataclass
class RuntimeContext:
    """Container for runtime dependencies.

    Attributes:
        config: Application configuration
        db: SQLite database
        hass: Home Assistant REST client
        sessions: Per-user session store
        bot: Telegram Bot API object used for rendering and notifications
        name_aliases: entity id -> display name cache
        state_aliases: entity id -> {state: human state} cache
        event_bus: Validation hooks
    """
    config: 'Config'
    db: 'Database'
    hass: 'HomeAssistantClient'
    sessions: 'SessionStore'
    bot: Any = None
    name_aliases: Dict[str, str] = field(default_factory=dict)
    state_aliases: Dict[str, Dict[str, str]] = field(default_factory=dict)
    event_bus: EventBus = field(default_factory=lambda: global_event_bus)

    def display_name(self, entity_id: str, fallback: Optional[str] = None) -> str:
        """Alias of an entity, else the given fallback, else the entity id."""
        return self.name_aliases.get(entity_id) or fallback or entity_id

    def is_admin(self, user_id: int) -> bool:
        return bool(self.config.root_user) and user_id == self.config.root_user
