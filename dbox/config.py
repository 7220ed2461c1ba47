"""
Configuration loading for dbox.

Settings live in a YAML file (``config/config.yaml`` by default, see
``config/config.example.yaml``) under a ``dropbox:`` section. Credentials can
also come from the environment, which takes precedence over the file:

    DROPBOX_TOKEN, DROPBOX_APP_KEY, DROPBOX_APP_SECRET, DROPBOX_REFRESH_TOKEN
"""

import logging
import os
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG_PATH = os.path.join("config", "config.yaml")

ENV_OVERRIDES = {
    "DROPBOX_TOKEN": "access_token",
    "DROPBOX_APP_KEY": "app_key",
    "DROPBOX_APP_SECRET": "app_secret",
    "DROPBOX_REFRESH_TOKEN": "refresh_token",
}

# Keys of the dropbox section passed straight to DropboxClient
CLIENT_OPTIONS = ("user_agent", "max_retries", "max_connections", "timeout", "proxies")

logger = logging.getLogger(__name__)


def load_config(config_path: Optional[str] = None, use_env: bool = True) -> Dict[str, Any]:
    """
    Load configuration from a YAML file and the environment.

    A missing file is not an error when the path was not given explicitly,
    so environment-only setups work.

    Args:
        config_path: Path to the YAML file (default: config/config.yaml)
        use_env: Apply DROPBOX_* environment overrides

    Returns:
        Configuration dictionary with at least a ``dropbox`` section

    Raises:
        FileNotFoundError: An explicitly given config file does not exist
        ValueError: The file is not valid YAML or not a mapping
    """
    path = config_path or DEFAULT_CONFIG_PATH
    config: Dict[str, Any] = {}

    if os.path.exists(path):
        try:
            with open(path, "r") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing configuration file '{path}': {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ValueError(f"Configuration file '{path}' must contain a mapping")
        config = loaded or {}
        logger.debug(f"Loaded configuration from {path}")
    elif config_path:
        raise FileNotFoundError(f"Configuration file '{config_path}' not found")

    dropbox_config = config.setdefault("dropbox", {}) or {}
    config["dropbox"] = dropbox_config

    if use_env:
        for env_name, key in ENV_OVERRIDES.items():
            value = os.environ.get(env_name, "").strip()
            if value:
                dropbox_config[key] = value

    return config


def client_options(dropbox_config: Dict[str, Any]) -> Dict[str, Any]:
    """Extract the DropboxClient keyword arguments from the dropbox section."""
    return {key: dropbox_config[key] for key in CLIENT_OPTIONS if dropbox_config.get(key) is not None}


def save_refresh_token(config_path: str, refresh_token: str) -> None:
    """
    Store a refresh token in the config file (used when keyring is unavailable).

    The token is stored in plaintext.
    """
    config: Dict[str, Any] = {}
    if os.path.exists(config_path):
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}

    config.setdefault("dropbox", {})
    config["dropbox"]["refresh_token"] = refresh_token

    directory = os.path.dirname(os.path.abspath(config_path))
    os.makedirs(directory, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)
