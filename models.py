"""
SQLAlchemy database models (table definitions) for Media Indexer.
"""
from enum import Enum
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

class LibraryTypeEnum(str, Enum):
    """Enum for library type values, used to pick a scanner"""
    FILE = "File"
    SHOW = "Show"

class Library(Base):
    __tablename__ = "libraries"

    name = Column(String, primary_key=True, nullable=False)
    type = Column(String, nullable=False)  # LibraryTypeEnum value; unknown types are skipped by the scheduler
    root_paths = Column(JSON, nullable=False, default=list)  # Ordered list of directories
    created = Column(DateTime, default=func.now(), nullable=False)
    updated = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

# --- Show library catalog ---
# Ids are content-addressed (see utils.hashing.mk_file_id), so every write is an upsert.
# No foreign keys: each record kind is swept independently by last_updated.

class Show(Base):
    __tablename__ = "shows"

    id = Column(String, primary_key=True, nullable=False)
    show_name = Column(String, nullable=False, index=True)
    library_name = Column(String, nullable=False, index=True)
    last_updated = Column(DateTime, nullable=False, index=True)
    series_image_id = Column(String, nullable=True)
    series_backdrop_image_id = Column(String, nullable=True)
    details = Column(JSON, nullable=True)  # Parsed tvshow.nfo

class ShowSeason(Base):
    __tablename__ = "show_seasons"

    id = Column(String, primary_key=True, nullable=False)
    show_id = Column(String, nullable=False, index=True)
    season_name = Column(String, nullable=False)
    library_name = Column(String, nullable=False, index=True)
    last_updated = Column(DateTime, nullable=False, index=True)
    folder_image_id = Column(String, nullable=True)
    details = Column(JSON, nullable=True)  # Parsed season.nfo

class ShowEpisode(Base):
    __tablename__ = "show_episodes"

    id = Column(String, primary_key=True, nullable=False)
    name = Column(String, nullable=False, index=True)
    show_id = Column(String, nullable=False, index=True)
    season_id = Column(String, nullable=False, index=True)
    library_name = Column(String, nullable=False, index=True)
    last_updated = Column(DateTime, nullable=False, index=True)
    path = Column(String, nullable=False)
    info = Column(JSON, nullable=False)  # ffprobe result: {"streams": [...], "format": {...}}
    episode_image_id = Column(String, nullable=True)
    subtitle_files = Column(JSON, nullable=False, default=list)
    details = Column(JSON, nullable=True)  # Parsed <episode>.nfo

class Image(Base):
    """Image file resources (posters, backdrops, season folders, episode stills)"""
    __tablename__ = "images"

    id = Column(String, primary_key=True, nullable=False)
    name = Column(String, nullable=False)
    library_name = Column(String, nullable=False, index=True)
    last_updated = Column(DateTime, nullable=False, index=True)
    path = Column(String, nullable=False)

class File(Base):
    """Entries recorded by the flat file scanner"""
    __tablename__ = "files"

    id = Column(String, primary_key=True, nullable=False)
    path = Column(String, nullable=False)
    name = Column(String, nullable=False)
    library_name = Column(String, nullable=False, index=True)
    last_updated = Column(DateTime, nullable=False, index=True)

class Config(Base):
    __tablename__ = "config"

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    key = Column(String, nullable=False, unique=True, index=True)
    value = Column(Text, nullable=True)
    created = Column(DateTime, default=func.now(), nullable=False)
    updated = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

class SchemaVersion(Base):
    """Tracks database schema version to avoid unnecessary migration checks"""
    __tablename__ = "schema_version"

    id = Column(Integer, primary_key=True, autoincrement=True, nullable=False)
    version = Column(Integer, nullable=False, unique=True)
    description = Column(String, nullable=True)
    applied_at = Column(DateTime, default=func.now(), nullable=False)


# Current schema version - increment when schema changes
CURRENT_SCHEMA_VERSION = 1
