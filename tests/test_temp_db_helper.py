import os
import tempfile
import unittest

from member_sync.contexts.membership.infrastructure.customer_repository import CustomerRepository
from member_sync.db import init_schema
from tests.helpers.temp_db import TempDbSandbox, assert_safe_temp_db_path, open_sqlite_temp_connection, table_exists


class TempDbHelperTest(unittest.TestCase):
    def test_temp_db_create_and_cleanup(self) -> None:
        sandbox = TempDbSandbox(prefix="temp_db_sanity")
        db_path = sandbox.db_path
        temp_dir = sandbox.temp_dir

        self.assertTrue(os.path.exists(temp_dir))
        self.assertTrue(os.path.realpath(db_path).startswith(os.path.realpath(tempfile.gettempdir())))

        conn = open_sqlite_temp_connection(db_path)
        try:
            conn.execute("CREATE TABLE IF NOT EXISTS sanity (id INTEGER PRIMARY KEY, value TEXT)")
            conn.execute("INSERT INTO sanity (value) VALUES ('ok')")
            row = conn.execute("SELECT COUNT(*) FROM sanity").fetchone()
            self.assertEqual(int(row[0]), 1)
        finally:
            conn.close()

        sandbox.cleanup()
        self.assertFalse(os.path.exists(db_path))
        self.assertFalse(os.path.exists(temp_dir))

    def test_sandbox_connection_holds_read_model(self) -> None:
        with TempDbSandbox(prefix="temp_db_read_model") as sandbox:
            db = sandbox.connect()
            try:
                init_schema(db)
                self.assertEqual(CustomerRepository(db).list_all(), [])
            finally:
                db.close()
            self.assertTrue(table_exists(sandbox.db_path, "customers"))

        self.assertFalse(os.path.exists(sandbox.temp_dir))

    def test_disallow_workspace_paths(self) -> None:
        workspace_db = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "member_sync_test.db")
        with self.assertRaises(ValueError):
            assert_safe_temp_db_path(workspace_db)


if __name__ == "__main__":
    unittest.main()
