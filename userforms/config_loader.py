"""
Configuration loading utilities for the user forms app.

This module loads config.yaml, merges it over the defaults and configures
logging. Missing or malformed configuration never stops the app; the
defaults are used instead.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging
from copy import deepcopy

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "USERFORMS_CONFIG"
DEFAULT_CONFIG_FILE = Path("config.yaml")
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LOGGING_LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL
}


def deep_merge(base_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with update_dict taking precedence.

    Args:
        base_dict: Base dictionary (defaults)
        update_dict: Dictionary to merge in (user config)

    Returns:
        Merged dictionary
    """
    result = deepcopy(base_dict)

    for key, value in update_dict.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def get_default_config() -> Dict[str, Any]:
    """
    Get default configuration.

    Returns:
        Dictionary with default configuration
    """
    return {
        'app': {
            'name': 'User Forms',
            'version': '1.0.0',
            'debug': False
        },
        'storage': {
            'backend': 'local',
            'local': {
                'path': 'data/userforms.json'
            },
            'http': {
                'base_url': 'http://localhost:3000',
                'timeout': 10
            }
        },
        'ui': {
            'page_title': 'User Management',
            'sidebar_title': 'Navigation'
        },
        'logging': {
            'level': 'INFO',
            'format': DEFAULT_LOG_FORMAT
        }
    }


def resolve_config_path(config_path: Optional[Path] = None) -> Path:
    """Resolve the config file path: explicit argument, then USERFORMS_CONFIG, then config.yaml."""
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_FILE


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load application configuration.

    Args:
        config_path: Optional path to config file (defaults to config.yaml)

    Returns:
        Complete configuration dictionary
    """
    config_path = resolve_config_path(config_path)
    default_config = get_default_config()

    if not config_path.exists():
        logger.warning(f"Configuration file not found: {config_path}")
        logger.info("Using default configuration")
        return default_config

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            user_config = yaml.safe_load(f)

        if user_config is None:
            logger.warning(f"Configuration file is empty: {config_path}")
            return default_config

        if not isinstance(user_config, dict):
            logger.error(f"Configuration file is not a valid dictionary: {config_path}")
            logger.info("Using default configuration")
            return default_config

        config = deep_merge(default_config, user_config)

        logger.info(f"Successfully loaded configuration from {config_path}")
        return config

    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config

    except (IOError, OSError) as e:
        logger.error(f"Failed to read configuration file {config_path}: {e}")
        logger.info("Using default configuration")
        return default_config


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate configuration structure and required fields.

    Args:
        config: Configuration dictionary to validate

    Returns:
        True if configuration is valid, False otherwise
    """
    required_sections = ['app', 'storage', 'ui', 'logging']

    for section in required_sections:
        if section not in config:
            logger.warning(f"Missing required configuration section: {section}")
            return False

    app = config.get('app', {})
    if 'name' not in app or 'version' not in app:
        logger.warning("Missing required app configuration (name or version)")
        return False

    storage = config.get('storage', {})
    backend = storage.get('backend')
    if backend not in ('local', 'http'):
        logger.warning(f"storage.backend must be 'local' or 'http', got {backend!r}")
        return False

    if backend == 'local':
        path = storage.get('local', {}).get('path')
        if not isinstance(path, str) or not path:
            logger.warning("storage.local.path must be a non-empty string")
            return False

    if backend == 'http':
        http = storage.get('http', {})
        if not isinstance(http.get('base_url'), str) or not http.get('base_url'):
            logger.warning("storage.http.base_url must be a non-empty string")
            return False
        try:
            timeout = float(http.get('timeout', 10))
            if timeout <= 0:
                logger.warning("storage.http.timeout must be positive")
                return False
        except (ValueError, TypeError):
            logger.warning("storage.http.timeout must be a valid number")
            return False

    level = str(config.get('logging', {}).get('level', 'INFO')).upper()
    if level not in LOGGING_LEVELS:
        logger.warning(f"Unknown logging level: {level}")
        return False

    return True


def get_config_value(config: Dict[str, Any], section: str, key: str, default: Any = None) -> Any:
    """
    Get a specific configuration value.

    Args:
        config: Configuration dictionary
        section: Configuration section (e.g., 'storage', 'ui')
        key: Configuration key within the section
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    section_values = config.get(section)
    if not isinstance(section_values, dict):
        return default
    return section_values.get(key, default)


def get_logging_level(level_str: str) -> int:
    """Map string logging level to logging constant."""
    return LOGGING_LEVELS.get(str(level_str).upper(), logging.INFO)


def configure_logging(config: Dict[str, Any]) -> int:
    """
    Configure root logging from the ``logging`` section.

    Returns:
        The logging level that was applied
    """
    level_str = get_config_value(config, 'logging', 'level', 'INFO')
    log_format = get_config_value(config, 'logging', 'format', DEFAULT_LOG_FORMAT)
    level = get_logging_level(level_str)
    logging.basicConfig(level=level, format=log_format)
    logger.info(f"Logging configured to level: {level_str}")
    return level
