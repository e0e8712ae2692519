from __future__ import annotations

import os
import sqlite3
from uuid import uuid4

from ops_broker.errors import InvalidInput
from ops_broker.memory.events import utc_now
from ops_broker.memory.store import BrokerStore
from ops_broker.models import (
    LOCAL_PROCESS_TYPE,
    PROJECT_STATUSES,
    REMOTE_API_TYPE,
    Connection,
    LocalProcessConnection,
    Project,
    RemoteApiConnection,
)


def default_working_dir() -> str:
    return os.environ.get("HOME") or "/tmp"


class ProjectCatalog:
    """Projects and the connections they own."""

    def __init__(self, store: BrokerStore, *, fallback_working_dir: str | None = None):
        self._store = store
        self._fallback_working_dir = fallback_working_dir

    # -- projects -------------------------------------------------------

    def list_projects(self) -> list[Project]:
        rows = self._store.execute("SELECT * FROM projects ORDER BY created_at ASC, rowid ASC").fetchall()
        return [self._to_project(row) for row in rows]

    def get_project(self, project_id: str) -> Project | None:
        row = self._store.execute("SELECT * FROM projects WHERE id = ? LIMIT 1", (project_id,)).fetchone()
        if row is None:
            return None
        return self._to_project(row)

    def create_project(self, name: str, status: str | None = None) -> Project:
        name = name.strip() if isinstance(name, str) else ""
        if not name:
            raise InvalidInput("Name is required")
        status = status or "waiting"
        self._check_status(status)
        project_id = str(uuid4())
        with self._store.transaction():
            self._store.execute(
                "INSERT INTO projects (id, name, status, created_at) VALUES (?, ?, ?, ?)",
                (project_id, name, status, utc_now()),
            )
        return self.get_project(project_id)

    def update_project(self, project_id: str, *, name: str | None = None, status: str | None = None) -> Project | None:
        if self.get_project(project_id) is None:
            return None
        if status is not None:
            self._check_status(status)
        with self._store.transaction():
            if name is not None:
                self._store.execute("UPDATE projects SET name = ? WHERE id = ?", (name, project_id))
            if status is not None:
                self._store.execute("UPDATE projects SET status = ? WHERE id = ?", (status, project_id))
        return self.get_project(project_id)

    def delete_project(self, project_id: str) -> bool:
        with self._store.transaction():
            cursor = self._store.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        return cursor.rowcount > 0

    # -- connections ----------------------------------------------------

    def find_connection(self, connection_id: str) -> Connection | None:
        row = self._store.execute("SELECT * FROM connections WHERE id = ? LIMIT 1", (connection_id,)).fetchone()
        if row is None:
            return None
        return self._to_connection(row)

    def create_connection(
        self,
        project_id: str,
        connection_type: str,
        name: str,
        *,
        working_dir: str | None = None,
        system_prompt: str | None = None,
    ) -> Connection | None:
        if not connection_type or not name:
            raise InvalidInput("Type and name are required")
        if self.get_project(project_id) is None:
            return None

        if connection_type == LOCAL_PROCESS_TYPE:
            working_dir = working_dir or self._fallback_working_dir or default_working_dir()
            system_prompt = None
        elif connection_type == REMOTE_API_TYPE:
            working_dir = None
        else:
            raise InvalidInput("Invalid connection type")

        connection_id = str(uuid4())
        with self._store.transaction():
            self._store.execute(
                """
                INSERT INTO connections (id, project_id, type, name, working_dir, system_prompt, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (connection_id, project_id, connection_type, name, working_dir, system_prompt, utc_now()),
            )
        return self.find_connection(connection_id)

    def update_connection(
        self,
        connection_id: str,
        *,
        name: str | None = None,
        working_dir: str | None = None,
        system_prompt: str | None = None,
    ) -> Connection | None:
        """Update the editable fields of a connection. Its type never changes."""
        connection = self.find_connection(connection_id)
        if connection is None:
            return None
        updates: dict[str, str] = {}
        if name is not None:
            updates["name"] = name
        match connection:
            case LocalProcessConnection():
                if working_dir is not None:
                    updates["working_dir"] = working_dir
            case RemoteApiConnection():
                if system_prompt is not None:
                    updates["system_prompt"] = system_prompt
        if updates:
            assignments = ", ".join(f"{column} = ?" for column in updates)
            with self._store.transaction():
                self._store.execute(
                    f"UPDATE connections SET {assignments} WHERE id = ?",
                    (*updates.values(), connection_id),
                )
        return self.find_connection(connection_id)

    def delete_connection(self, connection_id: str) -> bool:
        with self._store.transaction():
            cursor = self._store.execute("DELETE FROM connections WHERE id = ?", (connection_id,))
        return cursor.rowcount > 0

    # -- helpers --------------------------------------------------------

    def _check_status(self, status: str) -> None:
        if status not in PROJECT_STATUSES:
            raise InvalidInput(f"Invalid project status: {status!r}")

    def _to_project(self, row: sqlite3.Row) -> Project:
        connection_rows = self._store.execute(
            "SELECT * FROM connections WHERE project_id = ? ORDER BY created_at ASC, rowid ASC",
            (row["id"],),
        ).fetchall()
        return Project(
            id=row["id"],
            name=row["name"],
            status=row["status"],
            created_at=row["created_at"],
            connections=[self._to_connection(c) for c in connection_rows],
        )

    def _to_connection(self, row: sqlite3.Row) -> Connection:
        if row["type"] == LOCAL_PROCESS_TYPE:
            return LocalProcessConnection(
                id=row["id"],
                project_id=row["project_id"],
                name=row["name"],
                working_dir=row["working_dir"] or "",
            )
        if row["type"] == REMOTE_API_TYPE:
            return RemoteApiConnection(
                id=row["id"],
                project_id=row["project_id"],
                name=row["name"],
                system_prompt=row["system_prompt"],
            )
        raise InvalidInput(f"Unsupported connection type: {row['type']!r}")
