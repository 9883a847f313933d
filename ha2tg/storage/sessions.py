"""Durable snapshot of per-user sessions for restore after restart."""
import sqlite3
import time
from typing import List

from ha2tg.storage.models import StoredSession


def save_session(
    conn: sqlite3.Connection,
    user_id: int,
    last_message_id: int,
    context: str
) -> None:
    conn.execute(
        """
        INSERT INTO user_sessions (user_id, last_message_id, context, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(user_id) DO UPDATE SET
            last_message_id = excluded.last_message_id,
            context = excluded.context,
            updated_at = excluded.updated_at
        """,
        (user_id, last_message_id, context, time.time()),
    )


def load_sessions(conn: sqlite3.Connection) -> List[StoredSession]:
    rows = conn.execute(
        "SELECT user_id, last_message_id, context FROM user_sessions ORDER BY user_id"
    ).fetchall()
    return [
        StoredSession(
            user_id=r["user_id"], last_message_id=r["last_message_id"], context=r["context"]
        )
        for r in rows
    ]
