"""Per-user push subscriptions and per-entity visibility flags."""
import logging
import sqlite3
from typing import List


def is_subscribed(conn: sqlite3.Connection, user_id: int, entity_id: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM subscriptions WHERE user_id = ? AND entity_id = ?",
        (user_id, entity_id),
    ).fetchone()
    return row is not None


def get_subscribers(conn: sqlite3.Connection, entity_id: str) -> List[int]:
    rows = conn.execute(
        "SELECT user_id FROM subscriptions WHERE entity_id = ? ORDER BY user_id",
        (entity_id,),
    ).fetchall()
    return [r["user_id"] for r in rows]


def toggle_subscription(conn: sqlite3.Connection, user_id: int, entity_id: str) -> bool:
    """Flip a subscription. Returns True if the user is now subscribed."""
    if is_subscribed(conn, user_id, entity_id):
        conn.execute(
            "DELETE FROM subscriptions WHERE user_id = ? AND entity_id = ?",
            (user_id, entity_id),
        )
        return False
    conn.execute(
        "INSERT INTO subscriptions (user_id, entity_id) VALUES (?, ?)",
        (user_id, entity_id),
    )
    return True


def is_hidden(conn: sqlite3.Connection, entity_id: str) -> bool:
    """Hidden only when a row exists with hide = 1."""
    row = conn.execute(
        "SELECT hide FROM hidden_entities WHERE entity_id = ?", (entity_id,)
    ).fetchone()
    return bool(row and row["hide"])


def toggle_hidden(conn: sqlite3.Connection, entity_id: str) -> bool:
    """Flip the hidden flag. Returns True if the entity is now hidden.

    A missing row means visible, so toggling it creates a hidden row.
    """
    hidden = not is_hidden(conn, entity_id)
    conn.execute(
        """
        INSERT INTO hidden_entities (entity_id, hide) VALUES (?, ?)
        ON CONFLICT(entity_id) DO UPDATE SET hide = excluded.hide
        """,
        (entity_id, int(hidden)),
    )
    logging.info("Toggled hidden flag of %s to %s", entity_id, hidden)
    return hidden
