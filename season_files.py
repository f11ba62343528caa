"""
Classification of the files found in show and season directories.

A season directory is split into metadata (folder poster, season.nfo, the
"metadata" sub-folder of episode stills) and the remaining files; the
remaining files are split again into companions (NFO, subtitles, images)
and video candidates. Each step returns new collections instead of
filtering a shared one.
"""
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from core.models import ImageInfo
from utils.hashing import mk_file_id

IMAGE_EXTENSIONS = {'.png', '.jpg', '.jpeg'}
SUBTITLE_EXTENSIONS = {'.srt'}
NFO_EXTENSION = '.nfo'

FOLDER_IMAGE_NAME = "folder"
BACKDROP_IMAGE_NAMES = ["backdrop", "banner"]
METADATA_FOLDER_NAME = "metadata"
SEASON_NFO_NAME = "season.nfo"
SERIES_NFO_NAME = "tvshow.nfo"


@dataclass
class MetadataFolder:
    path: str
    entries: list


@dataclass
class MetadataFiles:
    folder_image: Optional[ImageInfo] = None
    metadata_folder: Optional[MetadataFolder] = None
    season_nfo: Optional[os.DirEntry] = None


@dataclass
class VideoFile:
    id: str
    entry: os.DirEntry
    info: dict
    changed: bool  # False when the stored probe result was reused


@dataclass
class EpisodeFileSet:
    base_name: str
    video: VideoFile
    subtitles: list = field(default_factory=list)
    nfo: Optional[os.DirEntry] = None
    image: Optional[ImageInfo] = None


def list_dir(path) -> list:
    """Directory entries sorted by name, so traversal order does not depend on the filesystem"""
    with os.scandir(path) as it:
        return sorted(it, key=lambda entry: entry.name)

def split_name(name: str):
    """('ep1.en', '.srt') for 'ep1.en.srt'; extension is lower-cased"""
    p = Path(name)
    return p.stem, p.suffix.lower()

def is_image_file(name: str) -> bool:
    return split_name(name)[1] in IMAGE_EXTENSIONS

def is_subtitles_file(name: str) -> bool:
    return split_name(name)[1] in SUBTITLE_EXTENSIONS

def is_nfo_file(name: str) -> bool:
    return split_name(name)[1] == NFO_EXTENSION

def find_image_entry(entries, image_name: str) -> Optional[os.DirEntry]:
    for entry in entries:
        if not entry.is_file():
            continue
        stem, ext = split_name(entry.name)
        if stem == image_name and ext in IMAGE_EXTENSIONS:
            return entry
    return None

def extract_image_info(entries, directory, image_name: str, library_name: str,
                       now: datetime) -> Optional[ImageInfo]:
    """Image record for the first file named image_name with an image extension, if any"""
    entry = find_image_entry(entries, image_name)
    if entry is None:
        return None
    image_path = os.path.abspath(os.path.join(directory, entry.name))
    return ImageInfo(
        id=mk_file_id(image_path, library_name),
        name=entry.name,
        library_name=library_name,
        last_updated=now,
        path=image_path,
    )

def extract_backdrop_info(entries, directory, library_name: str, now: datetime) -> Optional[ImageInfo]:
    for name in BACKDROP_IMAGE_NAMES:
        image = extract_image_info(entries, directory, name, library_name, now)
        if image is not None:
            return image
    return None

def find_file_entry(entries, name: str) -> Optional[os.DirEntry]:
    return next((e for e in entries if e.name == name and e.is_file()), None)

def get_metadata_folder(entries, season_path) -> Optional[MetadataFolder]:
    if not any(e.name == METADATA_FOLDER_NAME and e.is_dir() for e in entries):
        return None
    path = os.path.abspath(os.path.join(season_path, METADATA_FOLDER_NAME))
    return MetadataFolder(path=path, entries=list_dir(path))

def get_season_metadata_files(entries, season_path, library_name: str, now: datetime) -> MetadataFiles:
    return MetadataFiles(
        folder_image=extract_image_info(entries, season_path, FOLDER_IMAGE_NAME, library_name, now),
        metadata_folder=get_metadata_folder(entries, season_path),
        season_nfo=find_file_entry(entries, SEASON_NFO_NAME),
    )

def partition_season_entries(entries, metadata: MetadataFiles):
    """
    Split a season listing into (consumed, remaining).

    consumed holds the names claimed as season metadata; remaining holds the
    other regular files, in listing order.
    """
    consumed = set()
    if metadata.folder_image is not None:
        consumed.add(metadata.folder_image.name)
    if metadata.metadata_folder is not None:
        consumed.add(METADATA_FOLDER_NAME)
    if metadata.season_nfo is not None:
        consumed.add(metadata.season_nfo.name)

    remaining = [e for e in entries if e.is_file() and e.name not in consumed]
    return consumed, remaining

def is_companion_file(name: str) -> bool:
    return is_nfo_file(name) or is_subtitles_file(name) or is_image_file(name)

def video_candidates(remaining) -> list:
    return [e for e in remaining if not is_companion_file(e.name)]

def get_subtitles(remaining, video_stem: str) -> list:
    return [
        e for e in remaining
        if split_name(e.name)[0].startswith(video_stem) and is_subtitles_file(e.name)
    ]

def get_nfo_file(remaining, video_stem: str) -> Optional[os.DirEntry]:
    return next(
        (e for e in remaining if split_name(e.name)[0] == video_stem and is_nfo_file(e.name)),
        None
    )

def build_episode_file_sets(metadata: MetadataFiles, videos, remaining, library_name: str,
                            now: datetime) -> list:
    """Pair each accepted video with its subtitles, NFO and metadata-folder still"""
    file_sets = []
    for video in videos:
        stem = split_name(video.entry.name)[0]
        image = None
        if metadata.metadata_folder is not None:
            image = extract_image_info(
                metadata.metadata_folder.entries,
                metadata.metadata_folder.path,
                stem,
                library_name,
                now,
            )
        file_sets.append(EpisodeFileSet(
            base_name=stem,
            video=video,
            subtitles=get_subtitles(remaining, stem),
            nfo=get_nfo_file(remaining, stem),
            image=image,
        ))
    return file_sets
