from __future__ import annotations

import sqlite3
from uuid import uuid4

from ops_broker.memory.events import EventEmitter, utc_now
from ops_broker.memory.store import BrokerStore
from ops_broker.models import Session


class SessionRegistry:
    def __init__(self, store: BrokerStore, events: EventEmitter):
        self._store = store
        self._events = events

    def find_session(self, session_id: str) -> Session | None:
        row = self._store.execute(
            "SELECT * FROM sessions WHERE id = ? LIMIT 1",
            (session_id,),
        ).fetchone()
        if row is None:
            return None
        return self._to_session(row)

    def list_sessions(self, *, limit: int = 100) -> list[Session]:
        rows = self._store.execute(
            """
            SELECT *
            FROM sessions
            ORDER BY last_activity DESC, created_at DESC
            LIMIT ?
            """,
            (max(1, limit),),
        ).fetchall()
        return [self._to_session(row) for row in rows]

    def create_session(self, connection_id: str, session_id: str | None = None) -> Session:
        sid = session_id or str(uuid4())
        now = utc_now()
        with self._store.transaction():
            self._store.execute(
                """
                INSERT INTO sessions (id, connection_id, status, created_at, last_activity)
                VALUES (?, ?, 'active', ?, ?)
                """,
                (sid, connection_id, now, now),
            )
        self._events.emit(sid, "session.started", {"session_id": sid, "connection_id": connection_id})
        return Session(id=sid, connection_id=connection_id, status="active", created_at=now, last_activity=now)

    def touch_session(self, session_id: str, activity_time: str | None = None) -> None:
        with self._store.transaction():
            self._store.execute(
                "UPDATE sessions SET last_activity = ? WHERE id = ?",
                (activity_time or utc_now(), session_id),
            )

    def set_backend_session_id(self, session_id: str, backend_session_id: str) -> None:
        with self._store.transaction():
            self._store.execute(
                "UPDATE sessions SET backend_session_id = ? WHERE id = ?",
                (backend_session_id, session_id),
            )

    def delete_session(self, session_id: str) -> bool:
        """Delete a session together with its transcript and event log."""
        with self._store.transaction():
            cursor = self._store.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        return cursor.rowcount > 0

    def _to_session(self, row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"],
            connection_id=row["connection_id"],
            status=row["status"],
            created_at=row["created_at"],
            last_activity=row["last_activity"],
            backend_session_id=row["backend_session_id"],
        )
