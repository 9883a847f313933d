"""Storage package for ha2tg.

SQLite persistence of rooms, devices, subscriptions, visibility flags, the
event log, user sessions, allowed users and state aliases.
"""
from ha2tg.storage.database import Database, StorageError
from ha2tg.storage.models import ActiveAlert, Device, Room, StoredSession

__all__ = [
    "Database",
    "StorageError",
    "ActiveAlert",
    "Device",
    "Room",
    "StoredSession",
]
