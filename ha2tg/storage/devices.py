"""Devices (Home Assistant entities placed in rooms)."""
import sqlite3
from typing import Dict, Iterable, List, Optional

from ha2tg.core.presentation import domain_of
from ha2tg.storage.models import Device

_COLUMNS = "id, room_id, entity_id, alias, device_class, device_domain, archived"


def _device(row: sqlite3.Row) -> Device:
    return Device(
        id=row["id"],
        room_id=row["room_id"],
        entity_id=row["entity_id"],
        alias=row["alias"],
        device_class=row["device_class"] or "",
        device_domain=row["device_domain"] or "",
        archived=bool(row["archived"]),
    )


def sync_device(
    conn: sqlite3.Connection,
    entity_id: str,
    area: str,
    friendly_name: str,
    device_class: str = ""
) -> None:
    """Insert or refresh a device from the hub.

    A device seen for the first time is hidden from the control screens until
    a user unhides it in settings. A user-set alias is never overwritten.
    """
    conn.execute(
        """
        INSERT INTO devices (room_id, entity_id, alias, device_class, device_domain, archived)
        VALUES ((SELECT id FROM rooms WHERE area = :area), :eid, :name, :cls, :domain, 0)
        ON CONFLICT(entity_id) DO UPDATE SET
            room_id = (SELECT id FROM rooms WHERE area = :area),
            device_class = :cls,
            device_domain = :domain,
            alias = COALESCE(alias, :name),
            archived = 0
        """,
        {
            "area": area,
            "eid": entity_id,
            "name": friendly_name or None,
            "cls": device_class or "",
            "domain": domain_of(entity_id) or "unknown",
        },
    )
    conn.execute(
        "INSERT OR IGNORE INTO hidden_entities (entity_id, hide) VALUES (?, 1)",
        (entity_id,),
    )


def archive_missing_devices(conn: sqlite3.Connection, synced_ids: Iterable[str]) -> int:
    """Archive devices the hub no longer reports. Returns how many were archived."""
    ids = list(synced_ids)
    if not ids:
        return 0
    placeholders = ", ".join("?" for _ in ids)
    cur = conn.execute(
        f"UPDATE devices SET archived = 1 WHERE entity_id NOT IN ({placeholders}) AND archived = 0",
        ids,
    )
    return cur.rowcount


def get_devices_by_room(conn: sqlite3.Connection, room_id: int) -> List[Device]:
    rows = conn.execute(
        f"SELECT {_COLUMNS} FROM devices WHERE room_id = ? AND archived = 0 ORDER BY id",
        (room_id,),
    ).fetchall()
    return [_device(r) for r in rows]


def get_device_by_id(conn: sqlite3.Connection, device_id: int) -> Optional[Device]:
    row = conn.execute(
        f"SELECT {_COLUMNS} FROM devices WHERE id = ?", (device_id,)
    ).fetchone()
    return _device(row) if row else None


def get_room_id_by_entity(conn: sqlite3.Connection, entity_id: str) -> Optional[int]:
    row = conn.execute(
        "SELECT room_id FROM devices WHERE entity_id = ?", (entity_id,)
    ).fetchone()
    return row["room_id"] if row else None


def get_display_names(conn: sqlite3.Connection) -> Dict[str, str]:
    """Map entity id to alias (or the entity id itself) for active devices."""
    rows = conn.execute(
        "SELECT entity_id, COALESCE(alias, entity_id) AS display_name "
        "FROM devices WHERE archived = 0"
    ).fetchall()
    return {r["entity_id"]: r["display_name"] for r in rows}


def update_alias(conn: sqlite3.Connection, device_id: int, alias: str) -> Optional[str]:
    """Rename a device. Returns its entity id, or None if it does not exist."""
    row = conn.execute("SELECT entity_id FROM devices WHERE id = ?", (device_id,)).fetchone()
    if row is None:
        return None
    conn.execute("UPDATE devices SET alias = ? WHERE id = ?", (alias, device_id))
    return row["entity_id"]
