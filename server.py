"""Uvicorn server configuration and startup"""
import atexit
import signal
import sys

import uvicorn

from main import shutdown_flag, kill_all_active_subprocesses, logger
from utils.logging import LOG_FILE, set_app_shutting_down

SERVER_HOST = "127.0.0.1"
SERVER_PORT = 8003
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def stop_subprocesses():
    set_app_shutting_down(True)
    shutdown_flag.set()
    kill_all_active_subprocesses()

def signal_handler(sig, frame):
    """Stop in-flight ffprobe runs, then exit"""
    logger.info(f"Received signal {sig}, shutting down...")
    stop_subprocesses()
    sys.exit(0)

def get_uvicorn_log_config(level: str = "INFO"):
    """uvicorn loggers write to the console and to the shared log file"""
    handler_names = ["console", "file"]
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": LOG_FORMAT}},
        "handlers": {
            "console": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
            "file": {
                "formatter": "default",
                "class": "logging.FileHandler",
                "filename": str(LOG_FILE),
                "encoding": "utf-8",
            },
        },
        "loggers": {
            name: {"handlers": handler_names, "level": level, "propagate": False}
            for name in ("uvicorn.error", "uvicorn.access")
        },
    }

def run_server(host: str = SERVER_HOST, port: int = SERVER_PORT, log_level: str = "INFO"):
    """Run the uvicorn server; the scan scheduler starts with the app lifespan"""
    atexit.register(stop_subprocesses)

    signal.signal(signal.SIGINT, signal_handler)
    if hasattr(signal, 'SIGTERM'):
        signal.signal(signal.SIGTERM, signal_handler)

    logger.info(f"Starting Media Indexer server on http://{host}:{port}")
    try:
        uvicorn.run(
            "main:app",
            host=host,
            port=port,
            use_colors=False,
            log_config=get_uvicorn_log_config(log_level),
            reload=False,
        )
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
        stop_subprocesses()
        sys.exit(0)

if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Media Indexer server")
    parser.add_argument("--host", default=SERVER_HOST, help="Interface to bind")
    parser.add_argument("--port", type=int, default=SERVER_PORT, help="Port to listen on")
    parser.add_argument("--log-level", default="INFO", help="Level for uvicorn's own loggers")
    args = parser.parse_args()

    run_server(host=args.host, port=args.port, log_level=args.log_level)
