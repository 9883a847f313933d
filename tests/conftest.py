"""Shared pytest fixtures for ha2tg tests."""
import json
import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ha2tg.core.config import Config
from ha2tg.core.context import RuntimeContext
from ha2tg.core.event_bus import EventBus
from ha2tg.core.sessions import SessionStore
from ha2tg.hass.client import HomeAssistantClient
from ha2tg.hass.models import Entity, HistoryResult
from ha2tg.storage import devices as device_repo
from ha2tg.storage import rooms as room_repo
from ha2tg.storage.database import Database

ROOT_USER = 1000

# area -> [(entity_id, friendly name, device class)]; room ids follow this order
HOME_LAYOUT = [
    ("kitchen", "Kitchen", [
        ("light.kitchen", "Ceiling", ""),
        ("sensor.kitchen_temperature", "Temperature", "temperature"),
    ]),
    ("living_room", "Living room", [("switch.tv", "TV", "")]),
    ("bedroom", "Bedroom", []),
    ("bathroom", "Bathroom", [("binary_sensor.bath_door", "Door", "door")]),
    ("office", "Office", [
        ("light.desk", "Desk lamp", ""),
        ("climate.office", "Thermostat", ""),
    ]),
]

DEVICE_CLASSES = {
    entity_id: device_class
    for _, _, entities in HOME_LAYOUT
    for entity_id, _, device_class in entities
}

INITIAL_STATES = {
    "light.kitchen": "off",
    "sensor.kitchen_temperature": "21.5",
    "switch.tv": "on",
    "binary_sensor.bath_door": "off",
    "light.desk": "off",
    "climate.office": "heat",
}


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def config(temp_dir):
    """Create a Config instance for testing with temp file paths."""
    cfg = Config()
    cfg.database_path = os.path.join(temp_dir, "bot_data.db")
    cfg.options_path = os.path.join(temp_dir, "options.json")
    cfg.root_user = ROOT_USER
    cfg.telegram_chat_ids = ""
    cfg.action_settle_delay_s = 0
    return cfg


@pytest.fixture
def db(config):
    """An initialized, empty database."""
    database = Database(config.database_path)
    database.init()
    return database


def seed_home(conn):
    """Sync HOME_LAYOUT and make every device visible."""
    for area, name, entities in HOME_LAYOUT:
        room_repo.sync_room(conn, area, name)
        for entity_id, friendly_name, device_class in entities:
            device_repo.sync_device(conn, entity_id, area, friendly_name, device_class)
    conn.execute("UPDATE hidden_entities SET hide = 0")


@pytest.fixture
def home_db(db):
    """Database holding the rooms and devices of HOME_LAYOUT."""
    db.call(seed_home)
    return db


@pytest.fixture
def states():
    """Mutable entity states served by the fake hub."""
    return dict(INITIAL_STATES)


@pytest.fixture
def hass(states):
    """Home Assistant client mock backed by the ``states`` dict.

    Toggle, turn_on and turn_off services change the state they target.
    """
    client = AsyncMock(spec=HomeAssistantClient)

    def entity(entity_id):
        if entity_id not in states:
            return None
        attributes = {}
        if entity_id.startswith("climate."):
            attributes = {"temperature": 21.0, "current_temperature": 19.5}
        return Entity(
            entity_id=entity_id,
            state=states[entity_id],
            device_class=DEVICE_CLASSES.get(entity_id, ""),
            attributes=attributes,
        )

    async def fetch_state(entity_id):
        return entity(entity_id)

    async def fetch_states(entity_ids):
        return [e for e in (entity(eid) for eid in entity_ids) if e is not None]

    async def call_service(domain, service, entity_id, data=None):
        if service == "toggle":
            states[entity_id] = "off" if states[entity_id] == "on" else "on"
        elif service in ("turn_on", "turn_off") and domain != "climate":
            states[entity_id] = service[len("turn_"):]

    async def fetch_history(entity_id, hours, offset=0, now=None):
        end = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc) + timedelta(hours=offset)
        start = end - timedelta(hours=hours)
        points = [(start, "20.0"), (start + timedelta(hours=1), "22.5"), (end, "21.5")]
        return HistoryResult(points=points, start_time=start, end_time=end)

    client.fetch_state.side_effect = fetch_state
    client.fetch_states.side_effect = fetch_states
    client.call_service.side_effect = call_service
    client.fetch_history.side_effect = fetch_history
    return client


@pytest.fixture
def bot():
    """Telegram Bot mock. New messages get increasing ids from 500."""
    mock = AsyncMock()
    counter = {"next": 500}

    def new_message(*_args, **_kwargs):
        counter["next"] += 1
        return MagicMock(message_id=counter["next"])

    mock.send_photo.side_effect = new_message
    mock.send_message.side_effect = new_message
    return mock


@pytest.fixture
def bus():
    """A private event bus so tests do not share recorded events."""
    return EventBus()


@pytest.fixture
def ctx(config, home_db, hass, bot, bus):
    """Runtime context wired to the seeded database and mocks."""
    return RuntimeContext(
        config=config,
        db=home_db,
        hass=hass,
        sessions=SessionStore(),
        bot=bot,
        event_bus=bus,
    )


def create_json_file(filepath: str, data: dict) -> None:
    """Helper to create a JSON file with data."""
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
