"""
Logging configuration for Media Indexer.

IMPORTANT: Do NOT use emojis or Unicode symbols (checkmarks, X marks, etc.) in log messages.
Keep log messages plain text only for compatibility and readability.
"""
import sys
import logging
import os
from pathlib import Path

# Log file in root directory
LOG_FILE = Path(os.environ.get("MEDIA_INDEXER_LOG", Path(__file__).parent.parent / "media_indexer.log"))

# Lowest level shown on the console per logger prefix; the log file keeps everything.
CONSOLE_MIN_LEVELS = {
    "video_processing": logging.WARNING,
    "nfo": logging.WARNING,
    "season_files": logging.WARNING,
    "apscheduler.executors": logging.WARNING,
}

_app_shutting_down = False


def set_app_shutting_down(value: bool):
    """Set the app shutting down flag for logging filters"""
    global _app_shutting_down
    _app_shutting_down = value


def _console_min_level(logger_name: str) -> int:
    for prefix, level in CONSOLE_MIN_LEVELS.items():
        if logger_name == prefix or logger_name.startswith(prefix + "."):
            return level
    return logging.NOTSET


class ConsoleLogFilter(logging.Filter):
    """Hide chatty per-file loggers from the console"""
    def filter(self, record):
        return record.levelno >= _console_min_level(record.name)


class SuppressShutdownErrorsFilter(logging.Filter):
    """Drop probe failures caused by killing ffprobe during shutdown"""
    def filter(self, record):
        if record.levelno < logging.ERROR or not _app_shutting_down:
            return True
        if record.name in ("video_processing", "scanning"):
            return "probe" not in record.getMessage()
        return True


def _use_utf8_streams():
    # File names with non-ASCII characters end up in log messages
    for stream in (sys.stdout, sys.stderr):
        if hasattr(stream, "reconfigure"):
            try:
                stream.reconfigure(encoding="utf-8")
            except (ValueError, OSError):
                pass


def setup_logging():
    """Configure root logger with file and console handlers"""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Server reload and tests call this more than once
    if getattr(root_logger, "_media_indexer_configured", False):
        return root_logger

    _use_utf8_streams()
    shutdown_filter = SuppressShutdownErrorsFilter()

    file_handler = logging.FileHandler(LOG_FILE, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    file_handler.addFilter(shutdown_filter)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    console_handler.addFilter(ConsoleLogFilter())
    console_handler.addFilter(shutdown_filter)
    root_logger.addHandler(console_handler)

    root_logger._media_indexer_configured = True
    return root_logger
