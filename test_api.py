import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from core.models import LibraryInfo
from database import Catalog
from models import Base
import main


class TestApi(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.db_file = os.path.join(self.test_dir, "test.db")
        self.engine = create_engine(f"sqlite:///{self.db_file}", connect_args={"check_same_thread": False})
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        self.catalog = Catalog(self.Session)

        patchers = [
            patch('main.catalog', self.catalog),
            patch('config.SessionLocal', self.Session),
        ]
        for p in patchers:
            p.start()
            self.addCleanup(p.stop)
        # No context manager: the lifespan (scheduler, ffprobe lookup) stays off
        self.client = TestClient(main.app)

    def tearDown(self):
        self.engine.dispose()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_save_and_list_libraries(self):
        response = self.client.post("/api/libraries", json={
            "name": "TV", "type": "Show", "root_paths": [self.test_dir],
        })
        self.assertEqual(response.status_code, 200)

        response = self.client.get("/api/libraries")
        self.assertEqual(response.json(), [{"name": "TV", "type": "Show", "root_paths": [self.test_dir]}])

    def test_save_library_rejects_missing_root(self):
        missing = os.path.join(self.test_dir, "missing")
        response = self.client.post("/api/libraries", json={
            "name": "TV", "type": "Show", "root_paths": [missing],
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.catalog.list_libraries(), [])

    def test_save_library_rejects_unknown_type(self):
        response = self.client.post("/api/libraries", json={
            "name": "Music", "type": "Album", "root_paths": [self.test_dir],
        })
        self.assertEqual(response.status_code, 422)

    def test_delete_library(self):
        self.catalog.upsert_library(LibraryInfo(name="TV", type="Show", root_paths=[self.test_dir]))

        self.assertEqual(self.client.delete("/api/libraries/TV").status_code, 200)
        self.assertEqual(self.client.delete("/api/libraries/TV").status_code, 404)

    @patch('main.scan_all_libraries')
    def test_scan_all_runs_in_background(self, mock_scan_all):
        response = self.client.post("/api/scan")

        self.assertEqual(response.json()["status"], "started")
        mock_scan_all.assert_called_once_with(self.catalog)

    @patch('main.run_scanner')
    def test_scan_one_library(self, mock_run_scanner):
        self.catalog.upsert_library(LibraryInfo(name="TV", type="Show", root_paths=[self.test_dir]))

        response = self.client.post("/api/libraries/TV/scan")

        self.assertEqual(response.status_code, 200)
        scanner = mock_run_scanner.call_args.args[0]
        self.assertEqual(scanner.library.name, "TV")

    def test_scan_unknown_or_unsupported_library(self):
        self.catalog.upsert_library(LibraryInfo(name="Music", type="Album", root_paths=[self.test_dir]))

        self.assertEqual(self.client.post("/api/libraries/Nope/scan").status_code, 404)
        self.assertEqual(self.client.post("/api/libraries/Music/scan").status_code, 400)

    def test_scan_status(self):
        response = self.client.get("/api/scan-status")
        self.assertEqual(set(response.json()), {"last_started", "last_finished", "results"})

    def test_config_defaults_and_update(self):
        config = self.client.get("/api/config").json()
        self.assertEqual(config["scan_interval_minutes"], 60)

        response = self.client.post("/api/config", json={"settings": {"scan_interval_minutes": 5}})
        self.assertEqual(response.json()["scan_interval_minutes"], 5)
        self.assertEqual(self.client.get("/api/config").json()["scan_interval_minutes"], 5)


if __name__ == '__main__':
    unittest.main()
