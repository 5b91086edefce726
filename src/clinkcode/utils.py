"""
Shared helper functions and utilities.

Logging setup and JSON configuration handling.
"""

import json
import logging
import os
from dataclasses import fields

from .config import ClinkConfiguration

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def resolve_log_level(level):
    """Map a level name such as ``"debug"`` or a numeric level to a logging level.

    Unknown names fall back to INFO.
    """
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level=logging.INFO):
    """Configure the root logger for the decoder.

    Args:
        level: Logging level, numeric or a name from the config's
            ``logging.level`` entry (default: INFO)

    Returns:
        int: The level that was applied
    """
    resolved = resolve_log_level(level)
    logging.basicConfig(level=resolved, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logging.getLogger('clinkcode').setLevel(resolved)
    logging.getLogger(__name__).debug("Logging at %s", logging.getLevelName(resolved))
    return resolved


def default_config():
    """Default configuration dictionary."""
    return {
        # derived sizes stay None so they follow grid_resolution and frame_width
        'decoder': {
            f.name: list(f.default) if isinstance(f.default, tuple) else f.default
            for f in fields(ClinkConfiguration)
        },
        'logging': {
            'level': 'INFO',
        },
    }


def get_config(config_path=None):
    """Load configuration from file or return defaults.

    Sections in the file replace matching keys of the default sections.

    Args:
        config_path: Path to configuration file (optional)

    Returns:
        dict: Configuration dictionary
    """
    config = default_config()

    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                loaded_config = json.load(f)
            for key, value in loaded_config.items():
                if isinstance(value, dict) and isinstance(config.get(key), dict):
                    config[key].update(value)
                else:
                    config[key] = value
            logging.info(f"Configuration loaded from {config_path}")
        except (OSError, ValueError) as e:
            logging.warning(f"Failed to load config from {config_path}: {e}")
            config = default_config()
    elif config_path:
        logging.warning(f"Config file not found: {config_path}, using defaults")

    return config


def save_config(config, config_path):
    """Write a configuration as JSON.

    A bare ``ClinkConfiguration`` is stored as the ``decoder`` section of
    the default configuration, so the file loads back with ``get_config``.

    Returns:
        bool: True if the file was written
    """
    if isinstance(config, ClinkConfiguration):
        payload = default_config()
        payload['decoder'] = config.to_dict()
    else:
        payload = config
    try:
        text = json.dumps(payload, indent=4, sort_keys=True)
    except (TypeError, ValueError) as e:
        logging.error(f"Configuration is not JSON serializable: {e}")
        return False
    try:
        with open(config_path, 'w') as f:
            f.write(text + '\n')
    except OSError as e:
        logging.error(f"Failed to save config to {config_path}: {e}")
        return False
    logging.info(f"Configuration saved to {config_path}")
    return True


def validate_config(config):
    """Validate configuration parameters.

    Args:
        config: Configuration dictionary

    Returns:
        bool: True if valid, False otherwise
    """
    if 'decoder' not in config:
        logging.error("Missing required config key: decoder")
        return False

    try:
        decoder_config = ClinkConfiguration.from_dict(config['decoder'])
    except (TypeError, ValueError) as e:
        logging.error(f"Invalid decoder configuration: {e}")
        return False

    if any(not 0 <= v < 1 << decoder_config.code_grid_size for v in decoder_config.valid_diagonals):
        logging.error("Valid diagonals must fit in the code grid size")
        return False

    logging.info("Configuration validated successfully")
    return True


def decoder_config(config):
    """Decoder section of a configuration dictionary as a ``ClinkConfiguration``."""
    return ClinkConfiguration.from_dict(config.get('decoder', {}))
