from __future__ import annotations

import json
from datetime import UTC, datetime
from uuid import uuid4

from ops_broker.memory.store import BrokerStore


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds")


class EventEmitter:
    def __init__(self, store: BrokerStore):
        self._store = store

    def emit(self, session_id: str, event_type: str, payload: dict) -> None:
        with self._store.transaction():
            self._store.execute(
                """
                INSERT INTO events (id, session_id, type, payload_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    str(uuid4()),
                    session_id,
                    event_type,
                    json.dumps(payload, ensure_ascii=True),
                    utc_now(),
                ),
            )

    def list_events(self, session_id: str) -> list[dict]:
        rows = self._store.execute(
            """
            SELECT type, payload_json, created_at
            FROM events
            WHERE session_id = ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (session_id,),
        ).fetchall()
        return [
            {"type": row["type"], "payload": json.loads(row["payload_json"]), "created_at": row["created_at"]}
            for row in rows
        ]
