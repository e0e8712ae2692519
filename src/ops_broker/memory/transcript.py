from __future__ import annotations

from uuid import uuid4

from ops_broker.memory.events import utc_now
from ops_broker.memory.store import BrokerStore
from ops_broker.models import MESSAGE_ROLES, Message


class TranscriptStore:
    """Append-only, ordered message log per session."""

    def __init__(self, store: BrokerStore):
        self._store = store

    def append_message(self, session_id: str, role: str, content: str) -> Message:
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Unsupported message role: {role!r}")
        message = Message(id=str(uuid4()), role=role, content=content, timestamp=utc_now())
        with self._store.transaction():
            row = self._store.execute(
                "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM messages WHERE session_id = ?",
                (session_id,),
            ).fetchone()
            self._store.execute(
                """
                INSERT INTO messages (id, session_id, seq, role, content, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (message.id, session_id, int(row["max_seq"]) + 1, role, content, message.timestamp),
            )
        return message

    def list_messages(self, session_id: str) -> list[Message]:
        rows = self._store.execute(
            """
            SELECT id, role, content, created_at
            FROM messages
            WHERE session_id = ?
            ORDER BY seq ASC
            """,
            (session_id,),
        ).fetchall()
        return [
            Message(id=row["id"], role=row["role"], content=row["content"], timestamp=row["created_at"])
            for row in rows
        ]
