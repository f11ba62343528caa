"""
Pydantic models for catalog records and request/response validation in Media Indexer.
"""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from models import LibraryTypeEnum


class CatalogRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class LibraryInfo(CatalogRecord):
    name: str
    type: str  # Kept as a plain string so unknown types can be skipped instead of failing to load
    root_paths: list[str] = Field(default_factory=list)


class ImageInfo(CatalogRecord):
    id: str
    name: str
    library_name: str
    last_updated: datetime
    path: str


class ShowInfo(CatalogRecord):
    id: str
    show_name: str
    library_name: str
    last_updated: datetime
    series_image_id: str | None = None
    series_backdrop_image_id: str | None = None
    details: dict[str, Any] | None = None


class ShowSeasonInfo(CatalogRecord):
    id: str
    show_id: str
    season_name: str
    library_name: str
    last_updated: datetime
    folder_image_id: str | None = None
    details: dict[str, Any] | None = None


class ShowEpisodeInfo(CatalogRecord):
    id: str
    name: str
    show_id: str
    season_id: str
    library_name: str
    last_updated: datetime
    path: str
    info: dict[str, Any]
    episode_image_id: str | None = None
    subtitle_files: list[str] = Field(default_factory=list)
    details: dict[str, Any] | None = None


class FileInfo(CatalogRecord):
    id: str
    path: str
    name: str
    library_name: str
    last_updated: datetime


# --- API requests ---

class LibraryRequest(BaseModel):
    name: str
    type: LibraryTypeEnum
    root_paths: list[str]


class ConfigRequest(BaseModel):
    settings: dict[str, Any]
