"""Unit tests for ClientFactory."""

import json
from unittest.mock import Mock, patch

import pytest

from dbox.auth.client_factory import ClientFactory
from dbox.client import DropboxClient
from dbox.metrics import RequestMetrics

LEGACY_TOKEN = "sl." + "b" * 64


class TestClientFactory:
    """Test cases for ClientFactory class."""

    def test_init(self):
        config = {"dropbox": {}}
        factory = ClientFactory(config)
        assert factory.config == config
        assert factory.metrics is None

    @patch("dbox.auth.client_factory.DropboxClient")
    @patch("dbox.auth.client_factory.TokenStorage")
    def test_create_client_with_oauth_keyring(self, mock_storage_class, mock_client_class):
        mock_storage = Mock()
        mock_storage.keyring_available = True
        mock_storage.load_tokens.return_value = {"refresh_token": "keyring_refresh", "access_token": "a"}
        mock_storage_class.return_value = mock_storage
        metrics = RequestMetrics()

        config = {"dropbox": {"app_key": "test_app_key", "app_secret": "test_app_secret", "max_retries": 2}}
        ClientFactory(config, metrics).create_client()

        call_kwargs = mock_client_class.call_args[1]
        assert call_kwargs["refresh_token"] == "keyring_refresh"
        assert call_kwargs["app_key"] == "test_app_key"
        assert call_kwargs["app_secret"] == "test_app_secret"
        assert call_kwargs["max_retries"] == 2
        assert call_kwargs["metrics"] is metrics
        assert callable(call_kwargs["token_refresh_callback"])

    @patch("dbox.auth.client_factory.DropboxClient")
    @patch("dbox.auth.client_factory.TokenStorage")
    def test_keyring_mode_falls_back_to_config_token(self, mock_storage_class, mock_client_class):
        mock_storage_class.return_value.keyring_available = True
        mock_storage_class.return_value.load_tokens.return_value = None

        config = {"dropbox": {"app_key": "key", "refresh_token": "config_refresh"}}
        ClientFactory(config).create_client()

        assert mock_client_class.call_args[1]["refresh_token"] == "config_refresh"

    @patch("dbox.auth.client_factory.DropboxClient")
    @patch("dbox.auth.client_factory.TokenStorage")
    def test_create_client_with_oauth_config_storage(self, mock_storage_class, mock_client_class):
        config = {"dropbox": {"app_key": "key", "refresh_token": "config_refresh", "token_storage": "config"}}

        ClientFactory(config).create_client()

        assert mock_client_class.call_args[1]["refresh_token"] == "config_refresh"
        mock_storage_class.assert_not_called()

    def test_create_client_with_legacy_token(self):
        config = {"dropbox": {"access_token": LEGACY_TOKEN, "timeout": 10, "user_agent": "test/1.0"}}

        client = ClientFactory(config).create_client()

        assert isinstance(client, DropboxClient)
        assert client.auth_mode == "legacy"
        assert client.timeout == 10
        assert client.session.headers["User-Agent"] == "test/1.0"

    @patch("dbox.auth.client_factory.TokenStorage")
    def test_app_key_without_refresh_token_uses_legacy(self, mock_storage_class):
        mock_storage_class.return_value.keyring_available = False

        config = {"dropbox": {"app_key": "key", "access_token": LEGACY_TOKEN}}
        client = ClientFactory(config).create_client()

        assert client.auth_mode == "legacy"

    @patch("dbox.auth.client_factory.TokenStorage")
    def test_create_client_no_credentials(self, mock_storage_class):
        mock_storage_class.return_value.keyring_available = False

        with pytest.raises(ValueError, match="No valid Dropbox credentials found"):
            ClientFactory({"dropbox": {"app_key": "key"}}).create_client()

    def test_create_client_missing_section(self):
        with pytest.raises(ValueError, match="dbox authorize"):
            ClientFactory({}).create_client()


class TestTokenRefreshCallback:
    """The refresh callback persists new access tokens next to the refresh token."""

    def test_updates_keyring_tokens(self, isolate_keyring):
        stored = {"refresh_token": "r1", "access_token": "old", "expires_at": "1", "account_id": "dbid:1"}
        isolate_keyring.get_password.return_value = json.dumps(stored)

        callback = ClientFactory({"dropbox": {}})._token_refresh_callback("r1", "keyring")
        callback("new", "999")

        payload = json.loads(isolate_keyring.set_password.call_args[0][2])
        assert payload == {"refresh_token": "r1", "access_token": "new", "expires_at": "999", "account_id": "dbid:1"}

    def test_ignores_tokens_for_another_refresh_token(self, isolate_keyring):
        isolate_keyring.get_password.return_value = json.dumps({"refresh_token": "other"})

        callback = ClientFactory({"dropbox": {}})._token_refresh_callback("r1", "keyring")
        callback("new", "999")

        isolate_keyring.set_password.assert_not_called()

    def test_config_mode_does_not_touch_keyring(self, isolate_keyring):
        callback = ClientFactory({"dropbox": {}})._token_refresh_callback("r1", "config")
        callback("new", "999")

        isolate_keyring.get_password.assert_not_called()
        isolate_keyring.set_password.assert_not_called()
