import sqlite3
from unittest.mock import Mock

from tests.memory.base import BrokerStoreTestCase


class BrokerStoreTests(BrokerStoreTestCase):
    def test_commit_retries_while_database_is_locked(self) -> None:
        real_conn = self._store._conn
        locked = sqlite3.OperationalError("database is locked")
        self._store._conn = Mock(commit=Mock(side_effect=[locked, locked, None]))
        try:
            self._store.commit()
            self.assertEqual(3, self._store._conn.commit.call_count)
        finally:
            self._store._conn = real_conn

    def test_commit_does_not_retry_other_errors(self) -> None:
        real_conn = self._store._conn
        self._store._conn = Mock(commit=Mock(side_effect=sqlite3.OperationalError("disk I/O error")))
        try:
            with self.assertRaises(sqlite3.OperationalError):
                self._store.commit()
            self.assertEqual(1, self._store._conn.commit.call_count)
        finally:
            self._store._conn = real_conn

    def test_transaction_rolls_back_on_error(self) -> None:
        with self.assertRaises(RuntimeError):
            with self._store.transaction():
                self._store.execute(
                    "INSERT INTO projects (id, name, status, created_at) VALUES ('p1', 'ops', 'waiting', 'now')"
                )
                raise RuntimeError("abort")
        self.assertIsNone(self._catalog.get_project("p1"))

    def test_failed_commit_is_rolled_back(self) -> None:
        self._store.commit = Mock(side_effect=sqlite3.OperationalError("database is locked"))
        try:
            with self.assertRaises(sqlite3.OperationalError):
                self._catalog.create_project("ghost")
        finally:
            del self._store.commit

        self._catalog.create_project("real")

        self.assertEqual(["real"], [p.name for p in self._catalog.list_projects()])

    def test_deleting_session_cascades_to_transcript_and_events(self) -> None:
        self._sessions.create_session("conn-1", "s1")
        self._transcripts.append_message("s1", "user", "hello")

        self.assertTrue(self._sessions.delete_session("s1"))

        self.assertEqual([], self._transcripts.list_messages("s1"))
        self.assertEqual([], self._events.list_events("s1"))
        self.assertFalse(self._sessions.delete_session("s1"))
