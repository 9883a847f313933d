"""Data shapes exchanged with Home Assistant."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Tuple


@dataclass
class Entity:
    """Current state of one entity."""
    entity_id: str
    state: str
    friendly_name: str = ""
    device_class: str = ""
    attributes: dict = field(default_factory=dict)

    @property
    def domain(self) -> str:
        return self.entity_id.split(".", 1)[0]

    @classmethod
    def from_state(cls, data: dict) -> 'Entity':
        """Build from a /api/states/<id> object."""
        attributes = data.get("attributes") or {}
        return cls(
            entity_id=data["entity_id"],
            state=str(data.get("state", "")),
            friendly_name=attributes.get("friendly_name") or "",
            device_class=attributes.get("device_class") or "",
            attributes=attributes,
        )


@dataclass
class Area:
    """A room as reported by the template API."""
    id: str
    name: str
    entities: List[Entity] = field(default_factory=list)


@dataclass
class HistoryResult:
    points: List[Tuple[datetime, str]]
    start_time: datetime
    end_time: datetime


@dataclass(frozen=True)
class StateChangedEvent:
    entity_id: str
    old_state: str
    new_state: str
    friendly_name: str = ""
    device_class: str = ""

    @classmethod
    def from_event_data(cls, data: dict) -> Optional['StateChangedEvent']:
        """Build from the ``data`` of a state_changed event, or None if unusable."""
        entity_id = data.get("entity_id")
        if not isinstance(entity_id, str) or not entity_id:
            return None
        old = data.get("old_state") or {}
        new = data.get("new_state") or {}
        attributes: Any = new.get("attributes") or {}
        return cls(
            entity_id=entity_id,
            old_state=str(old.get("state", "")),
            new_state=str(new.get("state", "")),
            friendly_name=attributes.get("friendly_name") or "",
            device_class=attributes.get("device_class") or "",
        )
