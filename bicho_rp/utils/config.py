"""
Configuration Management
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from bicho_rp.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = Path(__file__).parent.parent.parent / "config" / "bicho_rp.conf"

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "ledger": {
        "storage_path": "bicho_rp_state.json",
        "admin_password": "admin",
        "initial_credits": 5000,
    },
    "server": {
        "host": "0.0.0.0",
        "port": 6080,
    },
    "app": {
        "name": "BichoRP",
    },
}

# Keys whose env/file values must be coerced back to int
_INT_KEYS = {("ledger", "initial_credits"), ("server", "port")}


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from files and environment variables"""
    config: Dict[str, Any] = {section: dict(values) for section, values in DEFAULTS.items()}

    # Try to load from config file
    path = Path(config_file) if config_file else DEFAULT_CONFIG_FILE
    if path.exists():
        try:
            with open(path, 'r', encoding='utf-8') as f:
                file_config = json.load(f)
            for section, values in file_config.items():
                if isinstance(values, dict):
                    config.setdefault(section, {}).update(values)
                else:
                    config[section] = values
            logger.info(f"Loaded configuration from {path}")
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config file: {e}")
    else:
        logger.warning(f"Config file {path} not found. Using defaults and environment variables.")

    # Override with environment variables, defined in .env
    config = _apply_env_overrides(config)
    _coerce_types(config)

    safe = {k: v for k, v in config.items() if k != "ledger"}
    safe["ledger"] = {k: v for k, v in config.get("ledger", {}).items() if k != "admin_password"}
    logger.info(f"Configuration after applying environment overrides: {json.dumps(safe, indent=2)}")

    return config


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration"""
    for key, value in os.environ.items():
        # Convert key from ENV_VAR_NAME to section.key format
        if key.startswith("LEDGER_"):
            section = "ledger"
            key = key[len("LEDGER_"):].lower()
        elif key.startswith("SERVER_"):
            section = "server"
            key = key[len("SERVER_"):].lower()
        elif key.startswith("APP_"):
            section = "app"
            key = key[len("APP_"):].lower()
        else:
            continue

        config.setdefault(section, {})[key] = value

    return config


def _coerce_types(config: Dict[str, Any]) -> None:
    for section, key in _INT_KEYS:
        values = config.get(section, {})
        if key in values:
            try:
                values[key] = int(values[key])
            except (TypeError, ValueError):
                logger.warning(f"Invalid integer for {section}.{key}: {values[key]!r}; using default")
                values[key] = DEFAULTS[section][key]


def get_config_value(config: Dict[str, Any], key_path: str, default=None):
    """Get configuration value by dot-separated key path"""
    keys = key_path.split('.')
    value = config

    try:
        for key in keys:
            value = value[key]
        return value
    except (KeyError, TypeError):
        return default
