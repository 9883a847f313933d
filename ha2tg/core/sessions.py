"""Per-user session store.

A session is the user's last menu message and the encoded navigation
context it shows. The store is a plain dict touched only from the event
loop thread, and no method awaits in the middle of a read-modify-write, so
every per-key operation is atomic without a lock. Each upsert is mirrored to
SQLite in a detached task so sessions survive a restart.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from ha2tg.core.utils import spawn_background
from ha2tg.nav.dialogue import DialogueState, Idle
from ha2tg.storage import sessions as session_repo
from ha2tg.storage.database import Database, StorageError


@dataclass
class Session:
    last_message_id: int
    current_context: str
    pinned_header_entities: Set[str] = field(default_factory=set)


class SessionStore:
    """In-memory sessions with best-effort durable write-through."""

    def __init__(self, db: Optional[Database] = None):
        self._db = db
        self._sessions: Dict[int, Session] = {}
        # Dialogue state is ephemeral and never persisted
        self._dialogues: Dict[int, DialogueState] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, user_id: int) -> Optional[Session]:
        return self._sessions.get(user_id)

    def upsert(self, user_id: int, last_message_id: int, context: str) -> Session:
        """Replace the user's session, keeping their pinned header entities."""
        previous = self._sessions.get(user_id)
        session = Session(
            last_message_id=last_message_id,
            current_context=context,
            pinned_header_entities=set(previous.pinned_header_entities) if previous else set(),
        )
        self._sessions[user_id] = session

        if self._db is not None:
            spawn_background(
                self._mirror(user_id, last_message_id, context),
                name=f"session-mirror-{user_id}"
            )
        return session

    def list(self) -> List[Tuple[int, Session]]:
        """Snapshot of all sessions."""
        return list(self._sessions.items())

    async def _mirror(self, user_id: int, last_message_id: int, context: str) -> None:
        try:
            await self._db.run(session_repo.save_session, user_id, last_message_id, context)
        except StorageError as e:
            logging.warning("Failed to persist session of user %d: %s", user_id, e)

    async def restore(self) -> int:
        """Load persisted sessions. Must run before events are processed."""
        if self._db is None:
            return 0
        try:
            stored = await self._db.run(session_repo.load_sessions)
        except StorageError as e:
            logging.error("Failed to restore sessions: %s", e)
            return 0
        for row in stored:
            self._sessions[row.user_id] = Session(
                last_message_id=row.last_message_id,
                current_context=row.context,
            )
        logging.info("Restored %d sessions", len(stored))
        return len(stored)

    def get_dialogue(self, user_id: int) -> DialogueState:
        return self._dialogues.get(user_id, Idle())

    def set_dialogue(self, user_id: int, state: DialogueState) -> None:
        if isinstance(state, Idle):
            self._dialogues.pop(user_id, None)
        else:
            self._dialogues[user_id] = state

    def clear_dialogue(self, user_id: int) -> None:
        self._dialogues.pop(user_id, None)
