"""
Dropbox OAuth 2.0 helpers.

The PKCE code flow goes through the official SDK; refreshes post straight to the
token endpoint so they share the error types of the rest of the library.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Dict, Optional

import requests
from dropbox import DropboxOAuth2FlowNoRedirect

from dbox.auth.constants import (
    DROPBOX_ACCESS_TOKEN_EXPIRY_SECONDS,
    KEYRING_SERVICE_NAME,
    TOKEN_EXPIRY_BUFFER_SECONDS,
    TOKEN_URL,
)
from dbox.exceptions import AuthError, ClientError, HttpError


class OAuthManager:
    """Authorizes a Dropbox app for offline access and renews its access tokens.

    ``app_secret`` may be omitted for PKCE-only apps. ``timeout`` bounds each
    token endpoint request.
    """

    def __init__(self, app_key: str, app_secret: Optional[str] = None, timeout: float = 30):
        self.app_key = app_key
        self.app_secret = app_secret
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def start_authorization_flow(self) -> str:
        """Begin a no-redirect PKCE flow and return the URL the user must open."""
        flow = DropboxOAuth2FlowNoRedirect(
            consumer_key=self.app_key,
            consumer_secret=self.app_secret,
            use_pkce=True,
            token_access_type="offline",
        )

        url = flow.start()
        self._auth_flow = flow
        self.logger.info("Waiting for the user to approve access")
        return url

    def complete_authorization_flow(self, auth_code: str) -> Dict[str, str]:
        """
        Trade the code the user pasted for tokens.

        Returns:
            Dictionary with access_token, refresh_token, expires_at (unix
            timestamp as a string) and account_id
        """
        if not hasattr(self, "_auth_flow"):
            raise ValueError("Authorization flow not started. Call start_authorization_flow() first.")

        try:
            result = self._auth_flow.finish(auth_code)
        except Exception as e:
            self.logger.error(f"Authorization code exchange failed: {e}")
            raise
        finally:
            delattr(self, "_auth_flow")

        expires_at = getattr(result, "expires_at", None)
        if isinstance(expires_at, datetime):
            # The SDK reports expiry as naive UTC
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            expires_at = str(int(expires_at.timestamp()))
        else:
            expires_at = str(int(time.time()) + DROPBOX_ACCESS_TOKEN_EXPIRY_SECONDS)

        self.logger.info(f"Authorized account {result.account_id}")
        return {
            "access_token": result.access_token,
            "refresh_token": result.refresh_token,
            "expires_at": expires_at,
            "account_id": result.account_id,
        }

    def refresh_access_token(self, refresh_token: str) -> Dict[str, str]:
        """
        Exchange ``refresh_token`` for a new short-lived access token.

        Returns:
            Dictionary with access_token and expires_at

        Raises:
            AuthError: The refresh token was rejected
            HttpError: The token endpoint failed
            ClientError: The token endpoint could not be reached
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.app_key,
        }
        if self.app_secret:
            data["client_secret"] = self.app_secret

        try:
            r = requests.post(TOKEN_URL, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            self.logger.error(f"Failed to reach token endpoint: {e}")
            raise ClientError(f"Token refresh failed: {e}") from e

        if r.status_code in (400, 401):
            try:
                payload = r.json()
            except ValueError:
                payload = {}
            self.logger.error(f"Refresh token rejected: {payload.get('error', r.status_code)}")
            raise AuthError(error={".tag": payload.get("error", "invalid_grant")}, body=r.text)
        if r.status_code != 200:
            raise HttpError(r.status_code, r.text)

        payload = r.json()
        access_token = payload.get("access_token")
        if not access_token:
            raise ClientError("Token response missing access_token")

        expires_in = int(payload.get("expires_in", DROPBOX_ACCESS_TOKEN_EXPIRY_SECONDS))
        self.logger.info(f"Obtained new access token valid for {expires_in}s")

        return {
            "access_token": access_token,
            "expires_at": str(int(time.time()) + expires_in),
        }

    def is_token_expired(self, expires_at: Optional[str]) -> bool:
        """True when ``expires_at`` is unparseable or falls inside the refresh buffer."""
        try:
            remaining = int(expires_at) - int(time.time())
        except (ValueError, TypeError):
            self.logger.warning(f"Unparseable token expiry {expires_at!r}, treating as expired")
            return True

        return remaining <= TOKEN_EXPIRY_BUFFER_SECONDS


class TokenStorage:
    """
    Keeps the token set for each local user as one JSON blob in the system keyring.

    All methods degrade to ``False``/``None`` when the keyring package is missing
    or the backend fails, so callers can fall back to the config file.
    """

    def __init__(self, service_name: str = KEYRING_SERVICE_NAME):
        self.service_name = service_name
        self.logger = logging.getLogger(__name__)

        try:
            import keyring
        except ImportError:
            keyring = None
            self.logger.warning(
                "The keyring package is not installed; tokens will live in the config file "
                "(pip install keyring to store them securely)"
            )
        self.keyring = keyring
        self.keyring_available = keyring is not None

    def save_tokens(self, tokens: Dict[str, str], username: str = "default") -> bool:
        if not self.keyring_available:
            self.logger.warning("Refusing to save tokens: no keyring backend")
            return False

        try:
            self.keyring.set_password(self.service_name, username, json.dumps(tokens))
        except Exception as e:
            self.logger.error(f"Keyring write failed for {username}: {e}")
            return False

        self.logger.info(f"Stored tokens in keyring entry {self.service_name}/{username}")
        return True

    def load_tokens(self, username: str = "default") -> Optional[Dict[str, str]]:
        """Return the stored token dict, or None when nothing usable is stored."""
        if not self.keyring_available:
            self.logger.warning("Cannot read tokens: no keyring backend")
            return None

        try:
            stored = self.keyring.get_password(self.service_name, username)
            tokens = json.loads(stored) if stored else None
        except Exception as e:
            self.logger.error(f"Keyring read failed for {username}: {e}")
            return None

        if tokens is None:
            self.logger.debug(f"Keyring entry {self.service_name}/{username} is empty")
        return tokens

    def delete_tokens(self, username: str = "default") -> bool:
        if not self.keyring_available:
            self.logger.warning("Cannot delete tokens: no keyring backend")
            return False

        try:
            self.keyring.delete_password(self.service_name, username)
        except Exception as e:
            self.logger.error(f"Keyring delete failed for {username}: {e}")
            return False

        self.logger.info(f"Removed keyring entry {self.service_name}/{username}")
        return True
