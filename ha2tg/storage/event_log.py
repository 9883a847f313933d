"""Time-ordered log of state changes, used for the header's active alerts."""
import sqlite3
import time
from typing import List, Optional

from ha2tg.storage.models import ActiveAlert


def record_event(
    conn: sqlite3.Connection,
    entity_id: str,
    state: str,
    now: Optional[float] = None
) -> None:
    conn.execute(
        "INSERT INTO device_event_log (entity_id, state, created_at) VALUES (?, ?, ?)",
        (entity_id, state, time.time() if now is None else now),
    )


def fetch_active_alerts(
    conn: sqlite3.Connection,
    user_id: int,
    window_minutes: int,
    now: Optional[float] = None
) -> List[ActiveAlert]:
    """Events of the user's subscribed entities within the window, newest first.

    SQLite takes the bare ``state`` column from the row holding MAX(created_at),
    so ``last_state`` is the most recent state of each entity.
    """
    horizon = (time.time() if now is None else now) - window_minutes * 60
    rows = conn.execute(
        """
        SELECT log.entity_id AS entity_id,
               log.state AS last_state,
               COUNT(*) AS event_count,
               MAX(log.created_at) AS last_updated
        FROM device_event_log AS log
        JOIN subscriptions AS sub ON log.entity_id = sub.entity_id
        WHERE sub.user_id = ? AND log.created_at >= ?
        GROUP BY log.entity_id
        ORDER BY last_updated DESC
        """,
        (user_id, horizon),
    ).fetchall()
    return [
        ActiveAlert(
            entity_id=r["entity_id"],
            last_state=r["last_state"],
            event_count=r["event_count"],
            last_updated=r["last_updated"],
        )
        for r in rows
    ]


def purge_old_events(
    conn: sqlite3.Connection,
    retention_minutes: int,
    now: Optional[float] = None
) -> int:
    """Delete events older than the retention window. Returns rows deleted."""
    horizon = (time.time() if now is None else now) - retention_minutes * 60
    cur = conn.execute("DELETE FROM device_event_log WHERE created_at < ?", (horizon,))
    return cur.rowcount
