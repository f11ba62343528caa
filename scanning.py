"""
Scanning and indexing logic for Media Indexer.

Two scanners share one contract, scan() -> number of persisted rows:
ShowScanner walks show/season directories, probes videos and reads NFO
companions; FileScanner records every path it finds. Both stamp the rows
they touch and finish with a sweep of rows older than the pass start.
"""
import logging
import os
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from core.models import LibraryInfo, ShowInfo, ShowSeasonInfo, ShowEpisodeInfo, FileInfo
from database import Catalog, CatalogError
from nfo import NfoError, parse_series_details, parse_season_details, parse_episode_details
from season_files import (
    FOLDER_IMAGE_NAME,
    SERIES_NFO_NAME,
    MetadataFiles,
    VideoFile,
    build_episode_file_sets,
    extract_backdrop_info,
    extract_image_info,
    find_file_entry,
    get_season_metadata_files,
    list_dir,
    partition_season_entries,
    video_candidates,
)
from utils.hashing import mk_file_id
from video_processing import ProbeError, is_video, probe

logger = logging.getLogger(__name__)


def latest_modification(file_path) -> datetime:
    """Latest of mtime, ctime and (where the platform records it) birth time"""
    stat = os.stat(file_path)
    timestamp = max(stat.st_mtime, stat.st_ctime, getattr(stat, "st_birthtime", 0))
    return datetime.fromtimestamp(timestamp)


class Scanner(ABC):
    """A scanner indexes one library into the catalog"""

    def __init__(self, library: LibraryInfo, catalog: Catalog, clock: Callable[[], datetime] = datetime.now):
        self.library = library
        self.catalog = catalog
        self.clock = clock

    @abstractmethod
    def scan(self) -> int:
        """Run one full pass. Never raises; failures are logged and count as 0."""


class ShowScanner(Scanner):
    """Scanner for libraries laid out as <root>/<show>/<season>/<episode files>"""

    def __init__(self, library: LibraryInfo, catalog: Catalog, prober=probe, clock=datetime.now):
        super().__init__(library, catalog, clock)
        self.prober = prober

    def scan(self) -> int:
        start = self.clock()
        try:
            upserted_rows = 0
            for root_path in self.library.root_paths:
                logger.info(f"Scanning {root_path}")
                show_dirs = [e for e in list_dir(root_path) if e.is_dir()]
                for entry in show_dirs:
                    upserted_rows += self.scan_show(entry.name, root_path)

            self.clean(start)
            logger.info(f"Finished scanning {self.library.name}: {upserted_rows} episode row(s)")
            return upserted_rows
        except Exception as e:
            logger.error(f"Error scanning library {self.library.name}: {e}", exc_info=True)
            return 0

    def clean(self, start: datetime):
        """Delete rows of this library that the pass starting at `start` did not touch"""
        cleaners = [
            self.catalog.clean_show_episodes,
            self.catalog.clean_show_seasons,
            self.catalog.clean_shows,
            self.catalog.clean_images,  # image file resources (season images, etc)
        ]
        with ThreadPoolExecutor(max_workers=len(cleaners), thread_name_prefix="sweep") as executor:
            futures = [executor.submit(clean, start, self.library.name) for clean in cleaners]
            return sum(f.result() for f in futures)

    # --- Shows ---

    def scan_show(self, show_name: str, root_path) -> int:
        path = Path(os.path.abspath(os.path.join(root_path, show_name)))
        show_id = mk_file_id(str(path), self.library.name)
        logger.info(f"Scanning {path} - show: {show_id}")

        try:
            entries = list_dir(path)
        except OSError as e:
            logger.error(f"Error reading show directory in {self.library.name}: {path}: {e}")
            return 0

        try:
            count = 0
            for entry in entries:
                if entry.is_dir():
                    count += self.scan_season(show_id, str(path / entry.name))
        except Exception as e:
            logger.error(f"Error scanning show in {self.library.name}: {root_path}/{show_name}: {e}", exc_info=True)
            count = 0

        if count > 0:
            try:
                self.persist_show_metadata(show_id, show_name, path, entries)
            except Exception as e:
                logger.error(f"Error persisting show metadata for {path}: {e}", exc_info=True)
                return 0
        return count

    def persist_show_metadata(self, show_id: str, show_name: str, path: Path, entries) -> ShowInfo:
        now = self.clock()
        series_image = extract_image_info(entries, path, FOLDER_IMAGE_NAME, self.library.name, now)
        backdrop_image = extract_backdrop_info(entries, path, self.library.name, now)

        for image in (backdrop_image, series_image):
            if image is not None:
                self.catalog.upsert_image(image)

        nfo_entry = find_file_entry(entries, SERIES_NFO_NAME)
        details = self.read_details(nfo_entry, path, parse_series_details)

        show = ShowInfo(
            id=show_id,
            show_name=show_name,
            library_name=self.library.name,
            last_updated=now,
            series_image_id=series_image.id if series_image else None,
            series_backdrop_image_id=backdrop_image.id if backdrop_image else None,
            details=details,
        )
        if not self.catalog.upsert_show(show):
            raise CatalogError(f"Failed to upsert show in database: {show.model_dump_json()}")
        return show

    # --- Seasons ---

    def scan_season(self, show_id: str, season_path: str) -> int:
        season_id = mk_file_id(season_path, self.library.name)
        logger.info(f"Scanning {season_path} - season: {season_id}")

        metadata, file_sets = self.separate_season_files(season_path)
        count = self.scan_data_files(file_sets, show_id, season_id, season_path)
        if count > 0:
            try:
                self.persist_season_metadata(show_id, season_path, season_id, metadata)
            except Exception as e:
                logger.error(f"Error persisting season metadata for {season_path}: {e}")
        return count

    def persist_season_metadata(self, show_id: str, season_path: str, season_id: str,
                                metadata: MetadataFiles) -> ShowSeasonInfo:
        now = self.clock()
        if metadata.folder_image is not None:
            self.catalog.upsert_image(metadata.folder_image)

        details = self.read_details(metadata.season_nfo, season_path, parse_season_details)
        season = ShowSeasonInfo(
            id=season_id,
            show_id=show_id,
            season_name=Path(season_path).name,
            library_name=self.library.name,
            last_updated=now,
            folder_image_id=metadata.folder_image.id if metadata.folder_image else None,
            details=details,
        )
        if not self.catalog.upsert_show_season(season):
            raise CatalogError(f"Failed to upsert show season in database: {season.model_dump_json()}")
        return season

    def separate_season_files(self, season_path: str):
        """
        Classify a season directory.
        Returns (metadata files, episode file sets for the accepted videos).
        """
        entries = list_dir(season_path)
        now = self.clock()
        metadata = get_season_metadata_files(entries, season_path, self.library.name, now)
        _, remaining = partition_season_entries(entries, metadata)

        videos = []
        for entry in video_candidates(remaining):
            video = self.probe_video_file(season_path, entry)
            if video is None:
                continue
            source = "probed" if video.changed else "stored probe result reused"
            if is_video(video.info):
                logger.debug(f"Accepted {entry.name} ({source})")
                videos.append(video)
            else:
                logger.debug(f"Not a video, skipping: {entry.name} ({source})")

        return metadata, build_episode_file_sets(metadata, videos, remaining, self.library.name, now)

    def probe_video_file(self, season_path: str, entry) -> Optional[VideoFile]:
        """Probe a candidate, reusing the stored result when the file has not changed since"""
        abs_path = os.path.abspath(os.path.join(season_path, entry.name))
        file_id = mk_file_id(abs_path, self.library.name)
        last_modified = latest_modification(abs_path)
        logger.debug(f"{abs_path} was last modified {last_modified}")

        stored = self.catalog.get_show_episode(file_id)
        if stored is not None and stored.last_updated > last_modified:
            return VideoFile(id=file_id, entry=entry, info=stored.info, changed=False)

        try:
            info = self.prober(abs_path)
        except (ProbeError, OSError) as e:
            logger.error(f"Error scanning possible video file at {abs_path}: {e}")
            return None
        return VideoFile(id=file_id, entry=entry, info=info, changed=True)

    # --- Episodes ---

    def scan_data_files(self, file_sets, show_id: str, season_id: str, season_path: str) -> int:
        count = 0
        for file_set in file_sets:
            if file_set.image is not None:
                self.catalog.upsert_image(file_set.image)

            details = self.read_details(file_set.nfo, season_path, parse_episode_details)
            episode = ShowEpisodeInfo(
                id=file_set.video.id,
                name=file_set.base_name,
                show_id=show_id,
                season_id=season_id,
                library_name=self.library.name,
                last_updated=self.clock(),
                path=os.path.abspath(os.path.join(season_path, file_set.video.entry.name)),
                info=file_set.video.info,
                episode_image_id=file_set.image.id if file_set.image else None,
                subtitle_files=[os.path.abspath(os.path.join(season_path, s.name)) for s in file_set.subtitles],
                details=details,
            )
            if self.catalog.upsert_show_episode(episode):
                count += 1
        return count

    def read_details(self, nfo_entry, directory, parse) -> Optional[dict]:
        """Parsed NFO details, or None when there is no file or it cannot be parsed"""
        if nfo_entry is None:
            return None
        try:
            return parse(Path(directory, nfo_entry.name))
        except NfoError as e:
            logger.warning(f"Ignoring unreadable NFO: {e}")
            return None


class FileScanner(Scanner):
    """Scanner for unstructured libraries: records every file and directory under the root paths"""

    def scan(self) -> int:
        start = self.clock()
        try:
            upserted_rows = 0
            for root_path in self.library.root_paths:
                logger.info(f"Scanning {root_path}")
                for path in walk_paths(root_path):
                    if self.handle_item(path):
                        upserted_rows += 1

            self.catalog.clean_files(start, self.library.name)
            logger.info(f"Finished scanning {self.library.name}: {upserted_rows} file row(s)")
            return upserted_rows
        except Exception as e:
            logger.error(f"Error scanning library {self.library.name}: {e}", exc_info=True)
            return 0

    def handle_item(self, path: Path) -> bool:
        return self.catalog.upsert_file(FileInfo(
            id=mk_file_id(str(path), self.library.name),
            path=str(path),
            name=path.name,
            library_name=self.library.name,
            last_updated=self.clock(),
        ))


def walk_paths(root_path):
    """The root itself, then every directory and file below it in os.walk order, names sorted"""
    root = Path(os.path.abspath(root_path))
    if not root.exists():
        raise FileNotFoundError(f"Path does not exist: {root_path}")
    yield root

    def on_error(e):
        raise e

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        dirnames.sort()
        for name in dirnames:
            yield Path(dirpath, name)
        for name in sorted(filenames):
            yield Path(dirpath, name)
