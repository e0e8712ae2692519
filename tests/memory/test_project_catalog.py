from ops_broker.errors import InvalidInput
from ops_broker.models import LocalProcessConnection, RemoteApiConnection
from tests.memory.base import BrokerStoreTestCase


class ProjectCatalogTests(BrokerStoreTestCase):
    def test_create_project_defaults_to_waiting(self) -> None:
        project = self._catalog.create_project("ops")
        self.assertEqual("ops", project.name)
        self.assertEqual("waiting", project.status)
        self.assertEqual([], project.connections)

    def test_create_project_requires_name_and_valid_status(self) -> None:
        with self.assertRaises(InvalidInput):
            self._catalog.create_project("  ")
        with self.assertRaises(InvalidInput):
            self._catalog.create_project("ops", "paused")

    def test_update_and_delete_project(self) -> None:
        project = self._catalog.create_project("ops")
        updated = self._catalog.update_project(project.id, name="ops2", status="action_required")
        self.assertEqual("ops2", updated.name)
        self.assertEqual("action_required", updated.status)
        self.assertIsNone(self._catalog.update_project("missing", name="x"))

        self.assertTrue(self._catalog.delete_project(project.id))
        self.assertIsNone(self._catalog.get_project(project.id))
        self.assertFalse(self._catalog.delete_project(project.id))

    def test_local_connection_defaults_working_dir(self) -> None:
        project = self._catalog.create_project("ops")
        connection = self._catalog.create_connection(project.id, "claude_code_cli", "dev")
        self.assertIsInstance(connection, LocalProcessConnection)
        self.assertEqual(str(self._tmp_dir), connection.working_dir)
        self.assertEqual("claude_code_cli", connection.to_dict()["type"])

    def test_remote_connection_keeps_system_prompt(self) -> None:
        project = self._catalog.create_project("ops")
        connection = self._catalog.create_connection(
            project.id, "agent_sdk", "planner", system_prompt="Be brief."
        )
        self.assertIsInstance(connection, RemoteApiConnection)
        self.assertEqual("Be brief.", connection.system_prompt)
        self.assertEqual(connection, self._catalog.find_connection(connection.id))

    def test_create_connection_validation(self) -> None:
        project = self._catalog.create_project("ops")
        with self.assertRaises(InvalidInput):
            self._catalog.create_connection(project.id, "", "name")
        with self.assertRaises(InvalidInput):
            self._catalog.create_connection(project.id, "telnet", "name")
        self.assertIsNone(self._catalog.create_connection("missing", "agent_sdk", "name"))

    def test_update_connection_only_touches_variant_fields(self) -> None:
        project = self._catalog.create_project("ops")
        local = self._catalog.create_connection(project.id, "claude_code_cli", "dev", working_dir="/srv/a")

        updated = self._catalog.update_connection(
            local.id, name="renamed", working_dir="/srv/b", system_prompt="ignored"
        )
        self.assertIsInstance(updated, LocalProcessConnection)
        self.assertEqual("renamed", updated.name)
        self.assertEqual("/srv/b", updated.working_dir)
        self.assertIsNone(self._catalog.update_connection("missing", name="x"))

    def test_deleting_project_removes_its_connections(self) -> None:
        project = self._catalog.create_project("ops")
        connection = self._catalog.create_connection(project.id, "agent_sdk", "planner")
        self._catalog.delete_project(project.id)
        self.assertIsNone(self._catalog.find_connection(connection.id))

    def test_unsupported_stored_type_is_invalid_input(self) -> None:
        project = self._catalog.create_project("ops")
        self._store.execute(
            """
            INSERT INTO connections (id, project_id, type, name, working_dir, system_prompt, created_at)
            VALUES ('weird', ?, 'ssh_shell', 'legacy', NULL, NULL, '2025-01-01T00:00:00.000+00:00')
            """,
            (project.id,),
        )
        self._store.commit()
        with self.assertRaises(InvalidInput):
            self._catalog.find_connection("weird")
