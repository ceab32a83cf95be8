from __future__ import annotations

"""
Configuration Domain Management.

Handles persistent storage of the connection settings (API endpoints,
tenant, client credentials) and the batch defaults using a versioned JSON
file in the user data directory. Environment variables override stored
values so the CLI can run unattended in CI.
"""

import json
import logging
import os
from typing import Any, Dict

from pcli2.domain.constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_DELAY_SECONDS,
    DEFAULT_MATCH_THRESHOLD,
    DEFAULT_OUTPUT_FORMAT,
)
from pcli2.infra.fs import get_user_data_dir

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Constants & Defaults
# -----------------------------------------------------------------------------
CONFIG_FILE_NAME = "config.json"
CURRENT_CONFIG_VERSION = "1.0.0"

DEFAULT_API_BASE_URL = "https://app-api.physna.com/v3"
DEFAULT_AUTH_URL = "https://physna-app.auth.us-east-2.amazoncognito.com/oauth2/token"

SECRET_KEYS = ("client_secret",)

# Environment variable -> configuration key
ENV_OVERRIDES: Dict[str, str] = {
    "PCLI2_API_URL": "api_base_url",
    "PCLI2_AUTH_URL": "auth_url",
    "PCLI2_TENANT": "tenant",
    "PCLI2_CLIENT_ID": "client_id",
    "PCLI2_CLIENT_SECRET": "client_secret",
}


def get_config_file() -> str:
    """Absolute path of the persistent configuration file."""
    return os.path.join(get_user_data_dir(), CONFIG_FILE_NAME)


# -----------------------------------------------------------------------------
# Configuration Models (Dict-based)
# -----------------------------------------------------------------------------
def get_default_config() -> Dict[str, Any]:
    """
    Generate the default runtime configuration.

    Returns:
        Dict[str, Any]: Default configuration values.
    """
    return {
        # Remote service
        "api_base_url": DEFAULT_API_BASE_URL,
        "auth_url": DEFAULT_AUTH_URL,
        "tenant": "",
        "client_id": "",
        "client_secret": "",
        "timeout": 1800,

        # Batch defaults
        "concurrent": DEFAULT_CONCURRENCY,
        "delay": DEFAULT_DELAY_SECONDS,
        "threshold": DEFAULT_MATCH_THRESHOLD,
        "format": DEFAULT_OUTPUT_FORMAT,

        # Diagnostics
        "log_file": "",
    }


def get_default_app_state() -> Dict[str, Any]:
    """
    Generate the complete default structure of config.json.

    Returns:
        Dict[str, Any]: Versioned state holding the active settings.
    """
    return {
        "version": CURRENT_CONFIG_VERSION,
        "settings": get_default_config(),
    }


# -----------------------------------------------------------------------------
# Persistence Logic
# -----------------------------------------------------------------------------
def load_app_state() -> Dict[str, Any]:
    """
    Load application state from disk.

    Missing, unreadable or malformed files fall back to the default state;
    stored settings are merged over the defaults so new keys always exist.

    Returns:
        Dict[str, Any]: The loaded state or a default structure on failure.
    """
    state = get_default_app_state()
    config_file = get_config_file()

    if not os.path.exists(config_file):
        logger.debug("Config file not found. Returning defaults.")
        return state

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load config: {e}. Using defaults.")
        return state

    if not isinstance(data, dict):
        logger.warning("Corrupted config file. Resetting to defaults.")
        return state

    stored = data.get("settings")
    if isinstance(stored, dict):
        state["settings"].update(stored)

    if data.get("version") != CURRENT_CONFIG_VERSION:
        logger.info(f"Upgrading config schema from {data.get('version')} to {CURRENT_CONFIG_VERSION}")

    state["version"] = CURRENT_CONFIG_VERSION
    return state


def save_app_state(state: Dict[str, Any]) -> None:
    """
    Persist application state to disk.

    The file holds client credentials, so it is created with owner-only
    permissions on POSIX systems.

    Args:
        state: The state dictionary to save.
    """
    config_file = get_config_file()
    try:
        os.makedirs(os.path.dirname(config_file), exist_ok=True)
        state["version"] = CURRENT_CONFIG_VERSION
        with open(config_file, "w", encoding="utf-8") as f:
            json.dump(state, f, ensure_ascii=False, indent=4)
        if os.name != "nt":
            os.chmod(config_file, 0o600)
        logger.debug(f"Configuration saved to {config_file}")
    except OSError as e:
        logger.error(f"Failed to save configuration: {e}")


# -----------------------------------------------------------------------------
# Facade API
# -----------------------------------------------------------------------------
def load_config() -> Dict[str, Any]:
    """
    Retrieve the active settings with environment overrides applied.
    """
    settings = get_default_config()
    settings.update(load_app_state().get("settings", {}))
    return apply_env_overrides(settings)


def save_config(config: Dict[str, Any]) -> None:
    """
    Save the provided settings as the active configuration.
    """
    state = load_app_state()
    state["settings"] = dict(config)
    save_app_state(state)


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay PCLI2_* environment variables onto a configuration copy."""
    out = dict(config)
    for env_name, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            out[key] = value
    return out


def masked(config: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy safe for display, with secrets replaced."""
    out = dict(config)
    for key in SECRET_KEYS:
        if out.get(key):
            out[key] = "********"
    return out
