"""
Configuration loading: YAML file merged over defaults, then environment.

Environment variables (optionally from a .env file) win over the file:

    KEYSEARCH_CONFIG   path to the YAML file
    LOG_LEVEL          logging.level
    KEYSEARCH_HOST     server.host
    KEYSEARCH_PORT     server.port
    KNOWN_PLAINTEXT    search.known_plaintext
"""

import copy
import os
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from keysearch.core.exceptions import ConfigurationError


DEFAULT_CONFIG_PATH = "config/config.yaml"

DEFAULTS = {
    'server': {
        'host': '0.0.0.0',
        'port': 0,
        'poll_interval': 0.25,
    },
    'worker': {
        'connect_timeout': 1.5,
        'read_timeout': 30.0,
        'retry_interval': 1.0,
    },
    'search': {
        'known_plaintext': 'May good flourish; Kia hua ko te pai',
        'progress_interval': 100000,
    },
    'logging': {
        'level': 'INFO',
        'file': None,
        'console': True,
    },
}


def load_config(config_path: Optional[str] = None) -> dict:
    """
    Build the effective configuration.

    An explicitly given file must exist. The default path is optional so the
    command line tools work from any directory.

    Args:
        config_path: Path to a YAML file, or None for the default lookup

    Returns:
        Nested configuration dictionary

    Raises:
        ConfigurationError: If the file is missing or not valid YAML
    """
    load_dotenv()

    explicit = config_path or os.environ.get('KEYSEARCH_CONFIG')
    path = Path(explicit or DEFAULT_CONFIG_PATH)

    config = copy.deepcopy(DEFAULTS)

    if path.exists():
        try:
            with open(path, 'r') as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML config: {str(e)}")
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        _merge(config, loaded)
    elif explicit:
        raise ConfigurationError(f"Config file not found: {path}")

    _apply_env(config)
    return config


def _merge(base: dict, override: dict) -> None:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value


def _apply_env(config: dict) -> None:
    if os.environ.get('LOG_LEVEL'):
        config['logging']['level'] = os.environ['LOG_LEVEL']
    if os.environ.get('KEYSEARCH_HOST'):
        config['server']['host'] = os.environ['KEYSEARCH_HOST']
    if os.environ.get('KEYSEARCH_PORT'):
        try:
            config['server']['port'] = int(os.environ['KEYSEARCH_PORT'])
        except ValueError:
            raise ConfigurationError(
                f"KEYSEARCH_PORT must be an integer, got {os.environ['KEYSEARCH_PORT']!r}"
            )
    if os.environ.get('KNOWN_PLAINTEXT'):
        config['search']['known_plaintext'] = os.environ['KNOWN_PLAINTEXT']
