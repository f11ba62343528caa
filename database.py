"""
Database setup, schema versioning, and the catalog store for Media Indexer.
"""
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional
import os
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
import logging

# Import all models and Base from models module
from models import (
    Base,
    Library, Show, ShowSeason, ShowEpisode, Image, File,
    Config, SchemaVersion,
    CURRENT_SCHEMA_VERSION
)
from core.models import (
    LibraryInfo, ImageInfo, ShowInfo, ShowSeasonInfo, ShowEpisodeInfo, FileInfo,
)

# Setup logging
logger = logging.getLogger(__name__)

# Configuration
SCRIPT_DIR = Path(__file__).parent.absolute()
DB_FILE = Path(os.environ.get("MEDIA_INDEXER_DB", SCRIPT_DIR / "media_indexer.db"))

# Database engine and session
engine = create_engine(
    f"sqlite:///{DB_FILE}",
    echo=False,
    connect_args={"check_same_thread": False, "timeout": 15}  # Scans and sweeps run on worker threads
)

@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class CatalogError(Exception):
    """Raised when the catalog refuses or fails a write"""


def get_schema_version():
    """Get current database schema version"""
    inspector = inspect(engine)
    existing_tables = inspector.get_table_names()

    if "schema_version" not in existing_tables:
        return None

    with engine.connect() as conn:
        result = conn.execute(text("SELECT MAX(version) FROM schema_version"))
        row = result.fetchone()
        return row[0] if row and row[0] is not None else None

def set_schema_version(version, description=None):
    """Record that a schema version has been applied"""
    db = SessionLocal()
    try:
        db.add(SchemaVersion(version=version, description=description))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Error setting schema version: {e}")
    finally:
        db.close()

def init_db():
    """Initialize database tables"""
    Base.metadata.create_all(bind=engine)

    version = get_schema_version()
    if version is None:
        set_schema_version(CURRENT_SCHEMA_VERSION, "Initial schema version")
        logger.info(f"Database initialized with schema version {CURRENT_SCHEMA_VERSION}")
    elif version < CURRENT_SCHEMA_VERSION:
        # Tables are created by create_all; no column migrations exist yet
        set_schema_version(CURRENT_SCHEMA_VERSION, f"Upgraded from version {version}")
        logger.info(f"Database schema upgraded from version {version} to {CURRENT_SCHEMA_VERSION}")
    else:
        logger.info(f"Database initialized (current schema version: {version})")

def get_db():
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class Catalog:
    """
    Persistent catalog used by the scanners.

    Every write is an upsert keyed by the record's content-addressed id, and
    every method opens, commits and closes its own session so that calls can
    be issued from several threads at once (the end-of-pass sweep does this).
    Deletion happens only through the clean_* methods.
    """

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or SessionLocal

    @contextmanager
    def _session(self):
        db: Session = self.session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    # --- Libraries ---

    def list_libraries(self) -> list[LibraryInfo]:
        with self._session() as db:
            rows = db.query(Library).order_by(Library.name).all()
            return [LibraryInfo.model_validate(row) for row in rows]

    def get_library(self, name: str) -> Optional[LibraryInfo]:
        with self._session() as db:
            row = db.get(Library, name)
            return LibraryInfo.model_validate(row) if row else None

    def upsert_library(self, library: LibraryInfo) -> bool:
        return self._upsert(Library, library.model_dump(), key="name")

    def delete_library(self, name: str) -> bool:
        with self._session() as db:
            return db.query(Library).filter(Library.name == name).delete() > 0

    # --- Upserts ---

    def _upsert(self, model, values: dict, key: str = "id") -> bool:
        stmt = sqlite_insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[getattr(model, key)],
            set_={name: stmt.excluded[name] for name in values if name != key}
        )
        with self._session() as db:
            result = db.execute(stmt)
            return result.rowcount > 0

    def upsert_show(self, show: ShowInfo) -> bool:
        return self._upsert(Show, show.model_dump())

    def upsert_show_season(self, season: ShowSeasonInfo) -> bool:
        return self._upsert(ShowSeason, season.model_dump())

    def upsert_show_episode(self, episode: ShowEpisodeInfo) -> bool:
        return self._upsert(ShowEpisode, episode.model_dump())

    def upsert_image(self, image: ImageInfo) -> bool:
        return self._upsert(Image, image.model_dump())

    def upsert_file(self, file: FileInfo) -> bool:
        return self._upsert(File, file.model_dump())

    # --- Lookups ---

    def get_show_episode(self, episode_id: str) -> Optional[ShowEpisodeInfo]:
        """Stored episode, used to decide whether a file needs to be probed again"""
        with self._session() as db:
            row = db.get(ShowEpisode, episode_id)
            return ShowEpisodeInfo.model_validate(row) if row else None

    def get_show(self, show_id: str) -> Optional[ShowInfo]:
        with self._session() as db:
            row = db.get(Show, show_id)
            return ShowInfo.model_validate(row) if row else None

    def get_show_season(self, season_id: str) -> Optional[ShowSeasonInfo]:
        with self._session() as db:
            row = db.get(ShowSeason, season_id)
            return ShowSeasonInfo.model_validate(row) if row else None

    # --- Sweep ---

    def _clean(self, model, cutoff: datetime, library_name: str) -> int:
        with self._session() as db:
            removed = db.query(model).filter(
                model.library_name == library_name,
                model.last_updated < cutoff
            ).delete(synchronize_session=False)
        if removed:
            logger.info(f"Removed {removed} stale {model.__tablename__} row(s) from {library_name}")
        return removed

    def clean_show_episodes(self, cutoff: datetime, library_name: str) -> int:
        return self._clean(ShowEpisode, cutoff, library_name)

    def clean_show_seasons(self, cutoff: datetime, library_name: str) -> int:
        return self._clean(ShowSeason, cutoff, library_name)

    def clean_shows(self, cutoff: datetime, library_name: str) -> int:
        return self._clean(Show, cutoff, library_name)

    def clean_images(self, cutoff: datetime, library_name: str) -> int:
        return self._clean(Image, cutoff, library_name)

    def clean_files(self, cutoff: datetime, library_name: str) -> int:
        return self._clean(File, cutoff, library_name)
