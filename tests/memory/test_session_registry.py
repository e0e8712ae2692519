from tests.memory.base import BrokerStoreTestCase


class SessionRegistryTests(BrokerStoreTestCase):
    def test_create_and_find_session(self) -> None:
        session = self._sessions.create_session("conn-1")
        found = self._sessions.find_session(session.id)
        self.assertIsNotNone(found)
        self.assertEqual("conn-1", found.connection_id)
        self.assertEqual("active", found.status)
        self.assertIsNone(found.backend_session_id)

    def test_find_unknown_session_returns_none(self) -> None:
        self.assertIsNone(self._sessions.find_session("missing"))

    def test_touch_session_updates_last_activity(self) -> None:
        session = self._sessions.create_session("conn-1", "s-touch")
        self._sessions.touch_session("s-touch", "2030-01-01T00:00:00.000+00:00")
        found = self._sessions.find_session("s-touch")
        self.assertEqual("2030-01-01T00:00:00.000+00:00", found.last_activity)
        self.assertNotEqual(session.last_activity, found.last_activity)

    def test_set_backend_session_id(self) -> None:
        self._sessions.create_session("conn-1", "s-resume")
        self._sessions.set_backend_session_id("s-resume", "cli-session-42")
        self.assertEqual("cli-session-42", self._sessions.find_session("s-resume").backend_session_id)

    def test_delete_session_cascades_transcript_and_events(self) -> None:
        self._sessions.create_session("conn-1", "s-del")
        self._transcripts.append_message("s-del", "user", "hello")
        self._transcripts.append_message("s-del", "assistant", "hi")

        self.assertTrue(self._sessions.delete_session("s-del"))

        self.assertIsNone(self._sessions.find_session("s-del"))
        self.assertEqual([], self._transcripts.list_messages("s-del"))
        self.assertEqual([], self._events.list_events("s-del"))
        self.assertFalse(self._sessions.delete_session("s-del"))

    def test_list_sessions_orders_by_last_activity(self) -> None:
        self._sessions.create_session("conn-1", "s1")
        self._sessions.create_session("conn-1", "s2")
        self._sessions.create_session("conn-1", "s3")
        self._sessions.touch_session("s1", "2022-01-01T00:00:00.000+00:00")
        self._sessions.touch_session("s2", "2020-01-01T00:00:00.000+00:00")
        self._sessions.touch_session("s3", "2021-01-01T00:00:00.000+00:00")

        ids = [s.id for s in self._sessions.list_sessions(limit=2)]
        self.assertEqual(["s1", "s3"], ids)

    def test_create_session_emits_started_event(self) -> None:
        self._sessions.create_session("conn-9", "s-ev")
        events = self._events.list_events("s-ev")
        self.assertEqual(["session.started"], [e["type"] for e in events])
        self.assertEqual("conn-9", events[0]["payload"]["connection_id"])
