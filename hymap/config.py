import os
import json
import logging

logger = logging.getLogger("hymap.config")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_CONFIG = {
    # Upper bound handed to zstd when a sector header declares something absurd
    "max_decompressed_size": 64 * 1024 * 1024,
    "section_window": 100,
    "surface_probe_bytes": 500,
    "max_palette_entries": 64,
    "log_level": "INFO",
    "log_file": None,
}


def load_config(config_file=None):
    """Defaults merged with the JSON file at config_file, if there is one."""
    config = dict(DEFAULT_CONFIG)
    if config_file and os.path.exists(config_file):
        try:
            with open(config_file, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading {config_file}: {e}")
            return config
        if isinstance(data, dict):
            config.update(data)
        else:
            logger.warning(f"Ignoring {config_file}: top level is not an object")
    return config


def resolve_config(config):
    if config is None:
        return dict(DEFAULT_CONFIG)
    merged = dict(DEFAULT_CONFIG)
    merged.update(config)
    return merged


def setup_logging(log_file=None, level=None, config=None):
    """Attach a handler to the "hymap" logger.

    Explicit arguments win; otherwise log_file and log_level come from config.
    """
    config = resolve_config(config)
    log_file = log_file or config["log_file"]
    level = level or config["log_level"] or "INFO"
    root = logging.getLogger("hymap")
    handler = logging.FileHandler(log_file, mode='a') if log_file else logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    return handler
