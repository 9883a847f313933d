"""SQLite database access for ha2tg.

Every operation opens a short-lived connection with a busy timeout so that
concurrent writers (session mirror, event log, settings toggles) wait for the
single SQLite writer slot instead of failing. Blocking calls run in a worker
thread so the event loop is never stalled.
"""
import asyncio
import logging
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Callable, TypeVar

T = TypeVar('T')

SCHEMA_VERSION = 1

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS rooms (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        area TEXT NOT NULL UNIQUE,
        alias TEXT,
        hide INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS devices (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        room_id INTEGER REFERENCES rooms(id),
        entity_id TEXT NOT NULL UNIQUE,
        alias TEXT,
        device_class TEXT NOT NULL DEFAULT '',
        device_domain TEXT NOT NULL DEFAULT '',
        archived INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS hidden_entities (
        entity_id TEXT PRIMARY KEY,
        hide INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS subscriptions (
        user_id INTEGER NOT NULL,
        entity_id TEXT NOT NULL,
        PRIMARY KEY (user_id, entity_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS device_event_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        entity_id TEXT NOT NULL,
        state TEXT NOT NULL,
        created_at REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_event_log_entity ON device_event_log (entity_id, created_at)",
    """
    CREATE TABLE IF NOT EXISTS user_sessions (
        user_id INTEGER PRIMARY KEY,
        last_message_id INTEGER NOT NULL,
        context TEXT NOT NULL,
        updated_at REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY,
        added_at REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS state_aliases (
        entity_id TEXT NOT NULL,
        original_state TEXT NOT NULL,
        human_state TEXT NOT NULL,
        PRIMARY KEY (entity_id, original_state)
    )
    """,
)


class StorageError(Exception):
    """Raised when a database operation fails."""


class Database:
    """Factory of short-lived SQLite connections plus an async runner."""

    def __init__(self, path: str, busy_timeout: float = 5.0):
        self.path = path
        self.busy_timeout = busy_timeout

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout * 1000)}")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def init(self) -> None:
        """Create the database file and schema if missing."""
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            with closing(self.connect()) as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                version = conn.execute("PRAGMA user_version").fetchone()[0]
                if version > SCHEMA_VERSION:
                    raise StorageError(f"Unsupported schema version: {version}")
                with conn:
                    for statement in SCHEMA:
                        conn.execute(statement)
                    conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialize database {self.path}: {e}") from e
        logging.info("Database ready at %s", self.path)

    def call(self, fn: Callable[..., T], *args: Any) -> T:
        """Run ``fn(conn, *args)`` in one transaction on a fresh connection."""
        try:
            with closing(self.connect()) as conn:
                with conn:
                    return fn(conn, *args)
        except sqlite3.Error as e:
            raise StorageError(f"{getattr(fn, '__name__', fn)} failed: {e}") from e

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        """Async wrapper around call() using a worker thread."""
        return await asyncio.to_thread(self.call, fn, *args)
