"""Row types returned by the storage layer."""
from dataclasses import dataclass
from typing import Optional

from ha2tg.core.presentation import get_room_icon, room_display_name


@dataclass
class Room:
    id: int
    area: str
    alias: Optional[str] = None
    hide: bool = False

    @property
    def name(self) -> str:
        return self.alias or self.area

    @property
    def icon(self) -> str:
        return get_room_icon(self.name)

    @property
    def display_name(self) -> str:
        return room_display_name(self.area, self.alias)


@dataclass
class Device:
    id: int
    room_id: Optional[int]
    entity_id: str
    alias: Optional[str] = None
    device_class: str = ""
    device_domain: str = ""
    archived: bool = False

    @property
    def name(self) -> str:
        return self.alias or self.entity_id


@dataclass
class ActiveAlert:
    """Events of one subscribed entity aggregated over the alert window."""
    entity_id: str
    last_state: str
    event_count: int
    last_updated: float


@dataclass
class StoredSession:
    user_id: int
    last_message_id: int
    context: str
