# Configuration loading
# JSON config selected by CONFIG_ENV, with ${ENV_VAR} placeholders resolved

import json
import logging
import os
import re
from typing import Any, Dict

REQUIRED_SECTIONS = ['app', 'server', 'database', 'auth', 'logging', 'pooling', 'pricing', 'broadcast']

CONFIG_FILES = {
    'production': 'config/config-prod.json',
    'development': 'config/config-dev.json',
}


def _replace_env_vars(value: str) -> str:
    """
    Replace ${ENV_VAR} placeholders with environment values

    Unknown variables are left as written.
    """
    def replace_match(match):
        env_var = match.group(1)
        return os.getenv(env_var, match.group(0))

    return re.sub(r'\$\{([^}]+)\}', replace_match, value)


def _process_config_values(config: Any) -> Any:
    if isinstance(config, dict):
        return {k: _process_config_values(v) for k, v in config.items()}
    elif isinstance(config, list):
        return [_process_config_values(item) for item in config]
    elif isinstance(config, str):
        return _replace_env_vars(config)
    else:
        return config


def _server_dir() -> str:
    return os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def load_config() -> Dict[str, Any]:
    """
    Load the config file for the current CONFIG_ENV

    Returns:
        Config dict with environment placeholders resolved

    Raises:
        FileNotFoundError: no config file for this environment
        json.JSONDecodeError: the file is not valid JSON
    """
    config_env = os.getenv('CONFIG_ENV', 'development')
    config_file = os.getenv('CONFIG_FILE') or CONFIG_FILES.get(config_env, 'config/config.json')

    if not os.path.isabs(config_file):
        config_file = os.path.join(_server_dir(), config_file)

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = json.load(f)

        config = _process_config_values(config)
        logging.info(f"Loaded config file: {config_file}")
        return config

    except FileNotFoundError:
        logging.error(f"Config file not found: {config_file}")
        raise
    except json.JSONDecodeError as e:
        logging.error(f"Config file is not valid JSON: {e}")
        raise


def get_database_path(config: Dict[str, Any]) -> str:
    """
    Resolve the database path relative to the server directory

    ":memory:" is passed through unchanged.
    """
    db_path = config.get('database', {}).get('path', 'data/campus_dash.db')

    if db_path != ':memory:' and not os.path.isabs(db_path):
        db_path = os.path.join(_server_dir(), db_path)

    return db_path


def validate_config(config: Dict[str, Any]) -> bool:
    for section in REQUIRED_SECTIONS:
        if section not in config:
            logging.error(f"Config is missing required section: {section}")
            return False

    if not config.get('auth', {}).get('jwt_secret_key'):
        logging.error("JWT secret key is not configured")
        return False

    target_size = config.get('pooling', {}).get('target_size', 2)
    if not isinstance(target_size, int) or target_size < 1:
        logging.error(f"pooling.target_size must be a positive integer, got {target_size!r}")
        return False

    return True


class Config:
    """
    Application configuration
    """
    def __init__(self):
        self.env = os.getenv('CONFIG_ENV', 'development')
        self.config = load_config()

        if not validate_config(self.config):
            raise ValueError("Config validation failed")

    def get(self, key: str, default=None):
        """
        Read a config value by dotted key

        Args:
            key: e.g. 'broadcast.request_ttl_minutes'
            default: returned when any part of the key is missing
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_database_config(self) -> Dict[str, Any]:
        db_config = self.config.get('database', {}).copy()
        db_config['path'] = get_database_path(self.config)
        return db_config
