"""Builds a DropboxClient from the loaded configuration."""

import logging
from typing import Any, Dict, Optional

from dbox.auth.oauth_manager import TokenStorage
from dbox.client import DropboxClient
from dbox.config import client_options
from dbox.metrics import RequestMetrics


class ClientFactory:
    """
    Picks credentials out of a ``load_config`` result.

    ``metrics``, when given, is attached to every client created.
    """

    def __init__(self, config: Dict[str, Any], metrics: Optional[RequestMetrics] = None):
        self.config = config
        self.metrics = metrics
        self.logger = logging.getLogger(__name__)

    def create_client(self) -> DropboxClient:
        """
        OAuth 2.0 is preferred when an app key and a refresh token are
        available; otherwise the legacy access token is used.

        Raises:
            ValueError: If neither OAuth nor legacy credentials are configured
        """
        dropbox_config = self.config.get("dropbox") or {}
        options = client_options(dropbox_config)

        storage_mode = dropbox_config.get("token_storage", "keyring")

        if dropbox_config.get("app_key"):
            refresh = self._find_refresh_token(dropbox_config, storage_mode)
            if refresh:
                self.logger.info("Authenticating with an OAuth refresh token")
                return DropboxClient(
                    refresh_token=refresh,
                    app_key=dropbox_config["app_key"],
                    app_secret=dropbox_config.get("app_secret"),
                    metrics=self.metrics,
                    token_refresh_callback=self._token_refresh_callback(refresh, storage_mode),
                    **options,
                )
            self.logger.warning("OAuth app key configured but no refresh token found; run 'dbox authorize'")

        if dropbox_config.get("access_token"):
            self.logger.info("Authenticating with a long-lived access token")
            return DropboxClient(access_token=dropbox_config["access_token"], metrics=self.metrics, **options)

        raise ValueError(
            "No valid Dropbox credentials found.\n"
            "Please either:\n"
            "1. Run 'dbox authorize' for OAuth 2.0 (recommended)\n"
            "2. Set DROPBOX_TOKEN or add 'access_token' to config/config.yaml"
        )

    def _find_refresh_token(self, dropbox_config: Dict[str, Any], storage_mode: str) -> Optional[str]:
        """In keyring mode the keyring wins; the config value is the fallback."""
        from_config = dropbox_config.get("refresh_token")

        if storage_mode == "config":
            if not from_config:
                self.logger.warning("token_storage is 'config' yet the config holds no refresh_token")
            return from_config

        storage = TokenStorage()
        stored = storage.load_tokens() if storage.keyring_available else None
        if stored and stored.get("refresh_token"):
            self.logger.debug("Refresh token loaded from the system keyring")
            return stored["refresh_token"]

        if from_config:
            self.logger.debug("Refresh token taken from configuration")
        return from_config

    def _token_refresh_callback(self, refresh_token: str, storage_mode: str):
        """Build the callback that persists refreshed access tokens to the keyring."""

        def token_refresh_callback(access_token: str, expires_at: str) -> None:
            self.logger.debug(f"Access token renewed, expires at {expires_at}")
            if storage_mode == "config":
                return
            token_storage = TokenStorage()
            tokens = token_storage.load_tokens() or {}
            if tokens.get("refresh_token") != refresh_token:
                return
            tokens.update(access_token=access_token, expires_at=expires_at)
            token_storage.save_tokens(tokens)

        return token_refresh_callback
