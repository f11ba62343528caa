"""
Recurring library scans for Media Indexer.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from config import (
    load_config,
    get_max_concurrent_libraries,
    get_max_overlapping_scans,
    get_scan_interval_minutes,
    get_scan_on_startup,
)
from core.models import LibraryInfo
from database import Catalog
from models import LibraryTypeEnum
from scanning import FileScanner, Scanner, ShowScanner

logger = logging.getLogger(__name__)

SCAN_JOB_ID = "scan_all_libraries"

# Results of the most recent pass per library, read by the status endpoint
scan_status = {
    "last_started": None,
    "last_finished": None,
    "results": {},
}
scan_status_lock = threading.Lock()


def make_scanner(library: LibraryInfo, catalog: Catalog) -> Optional[Scanner]:
    """Pick the scanner for a library's type; unknown types are logged and skipped"""
    if library.type == LibraryTypeEnum.FILE.value:
        return FileScanner(library, catalog)
    if library.type == LibraryTypeEnum.SHOW.value:
        return ShowScanner(library, catalog)
    logger.warning(f"Unknown LibraryType '{library.type}' when scanning {library.name}")
    return None

def run_scanner(scanner: Scanner) -> int:
    count = scanner.scan()
    with scan_status_lock:
        scan_status["results"][scanner.library.name] = {
            "count": count,
            "finished": datetime.now().isoformat(timespec="seconds"),
        }
    return count

def scan_libraries(libraries, catalog: Catalog, max_workers: Optional[int] = None) -> dict:
    """Scan the given libraries concurrently. Returns {library name: row count}."""
    scanners = [s for s in (make_scanner(library, catalog) for library in libraries) if s is not None]
    if not scanners:
        return {}
    if max_workers is None:
        max_workers = get_max_concurrent_libraries()

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="scan") as executor:
        counts = list(executor.map(run_scanner, scanners))
    return {scanner.library.name: count for scanner, count in zip(scanners, counts)}

def scan_all_libraries(catalog: Catalog) -> dict:
    """One full pass over every configured library"""
    with scan_status_lock:
        scan_status["last_started"] = datetime.now().isoformat(timespec="seconds")
    try:
        libraries = catalog.list_libraries()
        results = scan_libraries(libraries, catalog)
        logger.info(f"Scheduled scan finished: {results}")
        return results
    except Exception as e:
        logger.error(f"Error running scheduled scan: {e}", exc_info=True)
        return {}
    finally:
        with scan_status_lock:
            scan_status["last_finished"] = datetime.now().isoformat(timespec="seconds")

def start_scheduler(catalog: Catalog) -> BackgroundScheduler:
    """
    Start the recurring scan job.

    Passes may overlap when a scan outlives the interval (up to
    max_overlapping_scans at once); nothing serializes passes over the same library.
    """
    config = load_config()
    interval = get_scan_interval_minutes(config)
    job_kwargs = {}
    if get_scan_on_startup(config):
        job_kwargs["next_run_time"] = datetime.now()

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        scan_all_libraries,
        "interval",
        minutes=interval,
        args=[catalog],
        id=SCAN_JOB_ID,
        max_instances=get_max_overlapping_scans(config),
        coalesce=True,
        replace_existing=True,
        **job_kwargs
    )
    scheduler.start()
    logger.info(f"Scan scheduler started: every {interval} minute(s)")
    return scheduler
