import os
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from core.models import ImageInfo, LibraryInfo, ShowEpisodeInfo, ShowInfo, ShowSeasonInfo
from database import Catalog
from models import Base, Image, Show, ShowEpisode, ShowSeason

CUTOFF = datetime(2024, 5, 1, 12, 0, 0)


class TestCatalog(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.db_file = os.path.join(self.test_dir, "test.db")
        self.engine = create_engine(f"sqlite:///{self.db_file}", connect_args={"check_same_thread": False})
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        self.catalog = Catalog(self.Session)

    def tearDown(self):
        self.engine.dispose()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def episode(self, episode_id, library_name="TV", last_updated=CUTOFF, **kwargs):
        values = dict(
            id=episode_id,
            name="ep1",
            show_id="show",
            season_id="season",
            library_name=library_name,
            last_updated=last_updated,
            path=f"/media/{episode_id}.mkv",
            info={"streams": [{"codec_type": "video", "duration": 1500.0}]},
            subtitle_files=[],
        )
        values.update(kwargs)
        return ShowEpisodeInfo(**values)

    def count(self, model):
        db = self.Session()
        try:
            return db.query(model).count()
        finally:
            db.close()

    def test_upsert_inserts_then_updates(self):
        self.assertTrue(self.catalog.upsert_show_episode(self.episode("e1")))
        self.assertTrue(self.catalog.upsert_show_episode(
            self.episode("e1", details={"title": "Pilot"}, subtitle_files=["/media/e1.en.srt"])
        ))

        self.assertEqual(self.count(ShowEpisode), 1)
        stored = self.catalog.get_show_episode("e1")
        self.assertEqual(stored.details, {"title": "Pilot"})
        self.assertEqual(stored.subtitle_files, ["/media/e1.en.srt"])
        self.assertEqual(stored.info["streams"][0]["duration"], 1500.0)
        self.assertEqual(stored.last_updated, CUTOFF)

    def test_get_missing_episode(self):
        self.assertIsNone(self.catalog.get_show_episode("nope"))

    def test_libraries(self):
        self.catalog.upsert_library(LibraryInfo(name="TV", type="Show", root_paths=["/b", "/a"]))
        self.catalog.upsert_library(LibraryInfo(name="Docs", type="File", root_paths=["/docs"]))
        self.catalog.upsert_library(LibraryInfo(name="TV", type="Show", root_paths=["/c", "/a"]))

        libraries = self.catalog.list_libraries()
        self.assertEqual([library.name for library in libraries], ["Docs", "TV"])
        self.assertEqual(self.catalog.get_library("TV").root_paths, ["/c", "/a"])
        self.assertTrue(self.catalog.delete_library("Docs"))
        self.assertFalse(self.catalog.delete_library("Docs"))
        self.assertIsNone(self.catalog.get_library("Docs"))

    def test_sweep_removes_only_rows_older_than_cutoff(self):
        before = CUTOFF - timedelta(microseconds=1)
        self.catalog.upsert_show_episode(self.episode("old", last_updated=before))
        self.catalog.upsert_show_episode(self.episode("at_cutoff", last_updated=CUTOFF))
        self.catalog.upsert_show_episode(self.episode("new", last_updated=CUTOFF + timedelta(hours=1)))

        removed = self.catalog.clean_show_episodes(CUTOFF, "TV")

        self.assertEqual(removed, 1)
        self.assertIsNone(self.catalog.get_show_episode("old"))
        self.assertIsNotNone(self.catalog.get_show_episode("at_cutoff"))
        self.assertIsNotNone(self.catalog.get_show_episode("new"))

    def test_sweep_is_scoped_to_library(self):
        old = CUTOFF - timedelta(days=1)
        self.catalog.upsert_show_episode(self.episode("tv", library_name="TV", last_updated=old))
        self.catalog.upsert_show_episode(self.episode("kids", library_name="Kids", last_updated=old))

        self.catalog.clean_show_episodes(CUTOFF, "TV")

        self.assertIsNone(self.catalog.get_show_episode("tv"))
        self.assertIsNotNone(self.catalog.get_show_episode("kids"))

    def test_sweep_each_record_kind(self):
        old = CUTOFF - timedelta(days=1)
        self.catalog.upsert_show(ShowInfo(id="s", show_name="A", library_name="TV", last_updated=old))
        self.catalog.upsert_show_season(ShowSeasonInfo(
            id="se", show_id="s", season_name="Season 01", library_name="TV", last_updated=old
        ))
        self.catalog.upsert_image(ImageInfo(
            id="i", name="folder.jpg", library_name="TV", last_updated=old, path="/media/folder.jpg"
        ))

        self.catalog.clean_shows(CUTOFF, "TV")
        self.catalog.clean_show_seasons(CUTOFF, "TV")
        self.catalog.clean_images(CUTOFF, "TV")

        self.assertEqual(self.count(Show), 0)
        self.assertEqual(self.count(ShowSeason), 0)
        self.assertEqual(self.count(Image), 0)


if __name__ == '__main__':
    unittest.main()
