"""
Configuration Module

Loads the nested configuration dictionary from YAML and fills in defaults.
"""

import copy
import logging
import os
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = 'config/config.yaml'

DEFAULT_CONFIG: Dict[str, Any] = {
    'recognition': {
        'max_distance': 0.6,     # Euclidean distance threshold
        'min_confidence': 0.6,
    },
    'embedding': {
        'model': 'face_recognition',
        'dimension': 128,
        'detection_model': 'hog',
        'num_jitters': 1,
        'upsample_times': 1,
    },
    'attendance': {
        'single_face_only': True,
        'frame_interval': 0.5,   # seconds between captures while a session runs
    },
    'storage': {
        'backend': 'file',
        'path': 'data/store',
    },
    'video': {
        'camera_id': 0,
        'frame_width': 640,
        'frame_height': 480,
    },
    'logging': {
        'level': 'INFO',
        'file': 'face_attendance.log',
    },
}


def get_default_config() -> Dict[str, Any]:
    """Get a fresh copy of the default configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``overrides`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Missing or unreadable files fall back to the default configuration.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary with defaults applied
    """
    config_path = config_path or DEFAULT_CONFIG_PATH

    if not os.path.exists(config_path):
        logger.info(f"No configuration file at {config_path}, using defaults")
        return get_default_config()

    try:
        with open(config_path, 'r') as f:
            user_config = yaml.safe_load(f) or {}
        if not isinstance(user_config, dict):
            raise ValueError("top-level YAML value must be a mapping")
        logger.info(f"Configuration loaded from {config_path}")
        return merge_config(DEFAULT_CONFIG, user_config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config: {e}")
        return get_default_config()
