"""Rooms (Home Assistant areas)."""
import sqlite3
from typing import List, Optional

from ha2tg.storage.models import Room


def _room(row: sqlite3.Row) -> Room:
    return Room(id=row["id"], area=row["area"], alias=row["alias"], hide=bool(row["hide"]))


def sync_room(conn: sqlite3.Connection, area: str, default_name: str) -> None:
    """Insert a room for an area. An existing room keeps its alias and hide flag."""
    conn.execute(
        """
        INSERT INTO rooms (area, alias, hide) VALUES (?, ?, 0)
        ON CONFLICT(area) DO UPDATE SET alias = COALESCE(alias, excluded.alias)
        """,
        (area, default_name or None),
    )


def get_rooms(conn: sqlite3.Connection) -> List[Room]:
    """Visible rooms in creation order."""
    rows = conn.execute(
        "SELECT id, area, alias, hide FROM rooms WHERE hide = 0 ORDER BY id"
    ).fetchall()
    return [_room(r) for r in rows]


def get_room_by_id(conn: sqlite3.Connection, room_id: int) -> Optional[Room]:
    row = conn.execute(
        "SELECT id, area, alias, hide FROM rooms WHERE id = ?", (room_id,)
    ).fetchone()
    return _room(row) if row else None
