"""Allow-listed users and user-defined state aliases."""
import sqlite3
import time
from typing import Dict, List


def user_exists(conn: sqlite3.Connection, user_id: int) -> bool:
    row = conn.execute("SELECT 1 FROM users WHERE id = ? LIMIT 1", (user_id,)).fetchone()
    return row is not None


def list_users(conn: sqlite3.Connection) -> List[int]:
    return [r["id"] for r in conn.execute("SELECT id FROM users ORDER BY added_at, id")]


def add_user(conn: sqlite3.Connection, user_id: int) -> bool:
    """Allow a user. Returns False if they were already allowed."""
    cur = conn.execute(
        "INSERT OR IGNORE INTO users (id, added_at) VALUES (?, ?)", (user_id, time.time())
    )
    return cur.rowcount > 0


def delete_user(conn: sqlite3.Connection, user_id: int) -> bool:
    cur = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
    return cur.rowcount > 0


def get_state_aliases(conn: sqlite3.Connection) -> Dict[str, Dict[str, str]]:
    """Map entity id -> {original state: human state}."""
    aliases: Dict[str, Dict[str, str]] = {}
    for r in conn.execute("SELECT entity_id, original_state, human_state FROM state_aliases"):
        aliases.setdefault(r["entity_id"], {})[r["original_state"]] = r["human_state"]
    return aliases


def set_state_alias(
    conn: sqlite3.Connection,
    entity_id: str,
    original_state: str,
    human_state: str
) -> None:
    conn.execute(
        """
        INSERT INTO state_aliases (entity_id, original_state, human_state) VALUES (?, ?, ?)
        ON CONFLICT(entity_id, original_state) DO UPDATE SET human_state = excluded.human_state
        """,
        (entity_id, original_state, human_state),
    )
