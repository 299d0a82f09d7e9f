import os
from pathlib import Path
from typing import Any, Dict

import yaml

DEFAULT_CONFIG_PATH = Path("crm.config.yaml")
DATABASE_URL_ENV_VAR = "ATTENDEE_CRM_DATABASE_URL"

DEFAULT_DATABASE_URL = "sqlite:///crm.sqlite"

BASE_FETCH_DEFAULTS: Dict[str, Any] = {
    "page_size": 50,
    "debounce_seconds": 0.3,
}

KNOWN_SECTIONS = ("database", "fetch", "logging")


def load_config(path: Path | None = None) -> Dict[str, Any]:
    """
    Load the CRM configuration from YAML.

    Args:
        path: Optional path to the config file. Defaults to crm.config.yaml

    Returns:
        Validated configuration dictionary

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config structure is invalid
    """
    cfg_path = path or DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    if not isinstance(config, dict):
        raise ValueError("Config must be a dictionary")
    if "version" not in config:
        raise ValueError("Config must have 'version' field")

    for section in KNOWN_SECTIONS:
        value = config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ValueError(f"Config '{section}' must be a dictionary if provided")

    # Validate eagerly so bad values fail at load time, not on first fetch
    get_fetch_settings(config)
    return config


def get_fetch_settings(config: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """
    Resolve fetch settings with built-in fallbacks.

    Defaults:
    - page_size: 50
    - debounce_seconds: 0.3

    Raises:
        ValueError: If page_size is not a positive integer or
            debounce_seconds is negative
    """
    user_fetch = (config or {}).get("fetch") or {}
    merged = {**BASE_FETCH_DEFAULTS, **user_fetch}

    page_size = merged["page_size"]
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size <= 0:
        raise ValueError("Config 'fetch.page_size' must be a positive integer")

    debounce = merged["debounce_seconds"]
    if isinstance(debounce, bool) or not isinstance(debounce, (int, float)) or debounce < 0:
        raise ValueError("Config 'fetch.debounce_seconds' must be a non-negative number")
    merged["debounce_seconds"] = float(debounce)

    return merged


def resolve_database_url(config: Dict[str, Any] | None = None) -> str:
    """Database URL from the environment override, then config, then the default."""
    env_url = os.getenv(DATABASE_URL_ENV_VAR)
    if env_url:
        return env_url
    database = (config or {}).get("database") or {}
    return database.get("url") or DEFAULT_DATABASE_URL


def get_log_level(config: Dict[str, Any] | None = None) -> str | None:
    logging_cfg = (config or {}).get("logging") or {}
    return logging_cfg.get("level")
