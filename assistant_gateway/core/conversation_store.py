"""
Lightweight SQLite store for conversations and their turns.

Creates the database at DATABASE_PATH (relative to project root unless absolute).
Tables: conversations (id, user_id, agent_id, title, created_at) and
messages (id, conversation_id, role, content, client_ref, created_at).
Saving a turn is idempotent on (conversation_id, role, content).
"""

import logging
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from assistant_gateway.core.config import DATABASE_PATH

logger = logging.getLogger(__name__)

_ROOT = Path(__file__).resolve().parent.parent.parent


@dataclass
class ConversationRef:
    """Opaque conversation id plus the agent it is bound to."""

    id: str
    agent_id: str | None
    title: str
    user_id: str | None = None


@dataclass
class StoredTurn:
    id: str
    conversation_id: str
    role: str
    content: str
    client_ref: str | None
    created_at: str


class ConversationStore:
    """Conversation persistence. One short-lived connection per call."""

    def __init__(self, db_path: str | Path = DATABASE_PATH) -> None:
        path = Path(db_path)
        self.db_path = path if path.is_absolute() else _ROOT / path
        self._lock = threading.Lock()
        self._initialized = False

    def _get_conn(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables and the idempotence index if they do not exist."""
        if self._initialized:
            return
        conn = self._get_conn()
        try:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS conversations (
                    id TEXT PRIMARY KEY,
                    user_id TEXT,
                    agent_id TEXT,
                    title TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS messages (
                    id TEXT PRIMARY KEY,
                    conversation_id TEXT NOT NULL REFERENCES conversations(id),
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    client_ref TEXT,
                    created_at TEXT NOT NULL
                );
                CREATE UNIQUE INDEX IF NOT EXISTS ux_messages_turn
                    ON messages (conversation_id, role, content);
                CREATE INDEX IF NOT EXISTS ix_messages_client_ref
                    ON messages (client_ref);
                """
            )
            conn.commit()
        finally:
            conn.close()
        self._initialized = True

    # --- conversations ---

    def create_conversation(
        self,
        user_id: str | None = None,
        agent_id: str | None = None,
        title: str = "New Chat",
    ) -> ConversationRef:
        self.init_db()
        ref = ConversationRef(id=str(uuid.uuid4()), agent_id=agent_id or None, title=title, user_id=user_id)
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO conversations (id, user_id, agent_id, title, created_at) VALUES (?, ?, ?, ?, ?)",
                (ref.id, user_id, ref.agent_id, title, _now()),
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("[conversation_store:create] id=%s agent_id=%s", ref.id, ref.agent_id)
        return ref

    def get_conversation(self, conversation_id: str) -> ConversationRef | None:
        if not conversation_id:
            return None
        self.init_db()
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT id, user_id, agent_id, title FROM conversations WHERE id = ?",
                (conversation_id,),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return ConversationRef(id=row["id"], agent_id=row["agent_id"], title=row["title"], user_id=row["user_id"])

    def ensure_conversation(self, conversation_id: str, user_id: str | None = None) -> ConversationRef:
        """Return the conversation, registering the caller-supplied id if it is new."""
        existing = self.get_conversation(conversation_id)
        if existing is not None:
            return existing
        self.init_db()
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT OR IGNORE INTO conversations (id, user_id, agent_id, title, created_at) VALUES (?, ?, NULL, ?, ?)",
                (conversation_id, user_id, "New Chat", _now()),
            )
            conn.commit()
        finally:
            conn.close()
        return self.get_conversation(conversation_id)  # type: ignore[return-value]

    def bind_agent(self, conversation_id: str, agent_id: str) -> None:
        """Bind an agent to a conversation that has none yet. Existing bindings are kept."""
        self.init_db()
        conn = self._get_conn()
        try:
            conn.execute(
                "UPDATE conversations SET agent_id = ? WHERE id = ? AND agent_id IS NULL",
                (agent_id, conversation_id),
            )
            conn.commit()
        finally:
            conn.close()

    def rename(self, conversation_id: str, title: str) -> None:
        self.init_db()
        conn = self._get_conn()
        try:
            conn.execute("UPDATE conversations SET title = ? WHERE id = ?", (title, conversation_id))
            conn.commit()
        finally:
            conn.close()
        logger.info("[conversation_store:rename] id=%s title=%r", conversation_id, title)

    # --- turns ---

    def save_turn(
        self,
        conversation_id: str,
        role: str,
        content: str,
        client_ref: str | None = None,
    ) -> str:
        """
        Persist one turn and return its durable id.

        Saving the same (role, content, conversation_id) again returns the id of
        the row already stored; no duplicate is created. A new client_ref is
        recorded on the existing row so the caller can still reconcile it.
        """
        self.init_db()
        with self._lock:
            conn = self._get_conn()
            try:
                conn.execute(
                    "INSERT OR IGNORE INTO messages (id, conversation_id, role, content, client_ref, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (str(uuid.uuid4()), conversation_id, role, content, client_ref, _now()),
                )
                row = conn.execute(
                    "SELECT id, client_ref FROM messages WHERE conversation_id = ? AND role = ? AND content = ?",
                    (conversation_id, role, content),
                ).fetchone()
                if client_ref and row["client_ref"] != client_ref:
                    conn.execute("UPDATE messages SET client_ref = ? WHERE id = ?", (client_ref, row["id"]))
                conn.commit()
            finally:
                conn.close()
        logger.info(
            "[conversation_store:save_turn] conversation_id=%s role=%s content_len=%d id=%s",
            conversation_id, role, len(content), row["id"],
        )
        return row["id"]

    def resolve_client_ref(self, client_ref: str) -> str | None:
        """Durable id for an optimistic client id, or None if it was never saved."""
        if not client_ref:
            return None
        self.init_db()
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT id FROM messages WHERE client_ref = ? ORDER BY created_at DESC LIMIT 1",
                (client_ref,),
            ).fetchone()
        finally:
            conn.close()
        return row["id"] if row else None

    def list_turns(self, conversation_id: str) -> list[StoredTurn]:
        """Return all turns, oldest first."""
        self.init_db()
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT id, conversation_id, role, content, client_ref, created_at FROM messages "
                "WHERE conversation_id = ? ORDER BY created_at ASC, rowid ASC",
                (conversation_id,),
            ).fetchall()
        finally:
            conn.close()
        return [StoredTurn(**dict(r)) for r in rows]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
