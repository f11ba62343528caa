"""
Configuration management for Media Indexer.
Handles loading and saving configuration from/to database.
"""
import json
import logging
from database import SessionLocal, Config

logger = logging.getLogger(__name__)

# Defaults for settings that are not stored yet
DEFAULTS = {
    "probe_timeout_seconds": 30,
    "scan_interval_minutes": 60,
    "scan_on_startup": True,
    "max_concurrent_libraries": 2,
    "max_overlapping_scans": 2,
}

def load_config():
    """Load configuration from database"""
    db = SessionLocal()
    try:
        config = {}
        try:
            config_rows = db.query(Config).all()
            for row in config_rows:
                # Parse as JSON - if invalid, log error and skip
                try:
                    config[row.key] = json.loads(row.value)
                except (json.JSONDecodeError, TypeError) as e:
                    logger.warning(f"Invalid JSON in config key '{row.key}': {e}. Skipping.")
                    continue
        except Exception as e:
            # Database tables not initialized yet
            logger.debug(f"Database not initialized yet: {e}")

        return config
    finally:
        db.close()

def save_config(config):
    """Save configuration to database"""
    db = SessionLocal()
    try:
        for key, value in config.items():
            # Always JSON-encode the value so load_config can parse every row the same way
            value_str = json.dumps(value)
            existing = db.query(Config).filter(Config.key == key).first()
            if existing:
                existing.value = value_str
            else:
                db.add(Config(key=key, value=value_str))
        db.commit()
    finally:
        db.close()

def get_setting(key, config=None):
    """Get a single setting, falling back to DEFAULTS"""
    if config is None:
        config = load_config()
    value = config.get(key)
    if value is None:
        return DEFAULTS.get(key)
    return value

def _get_positive_int(key, config=None):
    value = get_setting(key, config)
    try:
        value = int(value)
    except (TypeError, ValueError):
        logger.warning(f"Config key '{key}' is not an integer ({value!r}), using default {DEFAULTS[key]}")
        return DEFAULTS[key]
    if value < 1:
        logger.warning(f"Config key '{key}' must be >= 1 (got {value}), using default {DEFAULTS[key]}")
        return DEFAULTS[key]
    return value

def get_probe_timeout_seconds(config=None):
    return _get_positive_int("probe_timeout_seconds", config)

def get_scan_interval_minutes(config=None):
    return _get_positive_int("scan_interval_minutes", config)

def get_max_concurrent_libraries(config=None):
    return _get_positive_int("max_concurrent_libraries", config)

def get_max_overlapping_scans(config=None):
    return _get_positive_int("max_overlapping_scans", config)

def get_scan_on_startup(config=None):
    return bool(get_setting("scan_on_startup", config))
