import os
import tempfile
import unittest

from zenflow.config import Settings
from zenflow.db import DatabaseBackend
from zenflow.dependencies import Services, select_backend
from zenflow.errors import StartupError
from zenflow.file_store import FileBackend


class SelectBackendTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.data_file = os.path.join(self.tmpdir.name, "data.json")

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_database_url_that_connects_selects_database(self):
        settings = Settings(
            database_url="sqlite+pysqlite:///:memory:", data_file=self.data_file
        )
        backend = select_backend(settings)
        self.assertIsInstance(backend, DatabaseBackend)
        self.assertFalse(os.path.exists(self.data_file))

    def test_missing_database_url_falls_back_to_file(self):
        backend = select_backend(Settings(database_url=None, data_file=self.data_file))
        self.assertIsInstance(backend, FileBackend)
        self.assertTrue(os.path.exists(self.data_file))

    def test_unreachable_database_falls_back_to_file(self):
        unreachable = os.path.join(self.tmpdir.name, "missing", "dir", "x.db")
        for url in (f"sqlite+pysqlite:///{unreachable}", "nosuchdialect://host/db"):
            backend = select_backend(Settings(database_url=url, data_file=self.data_file))
            self.assertIsInstance(backend, FileBackend, url)

    def test_uncreatable_data_file_is_fatal(self):
        blocker = os.path.join(self.tmpdir.name, "blocker")
        with open(blocker, "w", encoding="utf-8") as handle:
            handle.write("")
        settings = Settings(
            database_url=None, data_file=os.path.join(blocker, "data.json")
        )
        with self.assertRaises(StartupError):
            select_backend(settings)

    def test_services_share_the_selected_backend(self):
        backend = select_backend(Settings(database_url=None, data_file=self.data_file))
        services = Services.build(backend, Settings(token_secret="s"))
        self.assertIs(services.logs.backend, backend)
        self.assertIs(services.meta.backend, backend)
        self.assertIs(services.authenticator.backend, backend)


if __name__ == "__main__":
    unittest.main()
