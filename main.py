import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import BackgroundTasks, FastAPI, HTTPException

# Setup logging
from utils.logging import set_app_shutting_down, setup_logging

setup_logging()
logger = logging.getLogger(__name__)

from config import load_config, save_config, DEFAULTS
from core.models import ConfigRequest, LibraryInfo, LibraryRequest
from database import Catalog, init_db
from scheduler import make_scanner, run_scanner, scan_all_libraries, scan_status, scan_status_lock, start_scheduler
from video_processing import _get_ffprobe_path_from_config, kill_all_active_subprocesses, shutdown_flag

catalog = Catalog()
scheduler = None


@asynccontextmanager
async def lifespan(app):
    """Lifespan context manager for startup and shutdown"""
    global scheduler
    try:
        logger.info("=== LIFESPAN STARTUP BEGIN ===")
        logger.info("Startup: initializing database...")
        init_db()
        logger.info("Startup: database ready.")
    except Exception as e:
        logger.error(f"Error during lifespan startup: {e}", exc_info=True)
        raise

    logger.info("Startup: checking ffprobe configuration...")
    ffprobe_path = _get_ffprobe_path_from_config()
    if ffprobe_path:
        logger.info(f"ffprobe: {ffprobe_path}")
    else:
        logger.error("ffprobe not available. Show libraries will index no episodes until it is configured.")

    scheduler = start_scheduler(catalog)
    logger.info("=== LIFESPAN STARTUP COMPLETE ===")

    yield

    # Shutdown
    logger.info("Shutdown event triggered, cleaning up...")
    set_app_shutting_down(True)
    shutdown_flag.set()
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    kill_all_active_subprocesses()

app = FastAPI(title="Media Indexer", lifespan=lifespan)


@app.get("/api/libraries")
async def list_libraries():
    return [library.model_dump() for library in catalog.list_libraries()]

@app.post("/api/libraries")
async def save_library(request: LibraryRequest):
    """Create or replace a library"""
    missing = [p for p in request.root_paths if not Path(p).is_dir()]
    if missing:
        raise HTTPException(status_code=400, detail=f"Root path(s) not found: {', '.join(missing)}")

    library = LibraryInfo(name=request.name, type=request.type.value, root_paths=request.root_paths)
    catalog.upsert_library(library)
    logger.info(f"Saved library {library.name} ({library.type}): {library.root_paths}")
    return library.model_dump()

@app.delete("/api/libraries/{name}")
async def delete_library(name: str):
    if not catalog.delete_library(name):
        raise HTTPException(status_code=404, detail=f"Library not found: {name}")
    logger.info(f"Deleted library {name}")
    return {"status": "deleted", "name": name}

@app.post("/api/scan")
async def scan_all(background_tasks: BackgroundTasks):
    """Scan every library now, in the background"""
    background_tasks.add_task(scan_all_libraries, catalog)
    return {"status": "started", "message": "Scan of all libraries started in background"}

@app.post("/api/libraries/{name}/scan")
async def scan_library(name: str, background_tasks: BackgroundTasks):
    library = catalog.get_library(name)
    if library is None:
        raise HTTPException(status_code=404, detail=f"Library not found: {name}")
    scanner = make_scanner(library, catalog)
    if scanner is None:
        raise HTTPException(status_code=400, detail=f"Unsupported library type: {library.type}")

    background_tasks.add_task(run_scanner, scanner)
    return {"status": "started", "message": f"Scan of {name} started in background"}

@app.get("/api/scan-status")
async def get_scan_status():
    with scan_status_lock:
        return {
            "last_started": scan_status["last_started"],
            "last_finished": scan_status["last_finished"],
            "results": dict(scan_status["results"]),
        }

@app.get("/api/config")
async def get_config():
    config = dict(DEFAULTS)
    config.update(load_config())
    return config

@app.post("/api/config")
async def update_config(request: ConfigRequest):
    """Merge the given settings into the stored configuration"""
    config = load_config()
    config.update(request.settings)
    save_config(config)
    logger.info(f"Config updated: {sorted(request.settings)}")
    return config
