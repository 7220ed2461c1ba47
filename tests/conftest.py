"""Shared test fixtures and configuration."""

import io
import json
from unittest.mock import MagicMock, Mock, patch

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from dbox.client import DropboxClient

# Legacy tokens must be at least 62 characters long
TEST_TOKEN = "sl." + "a" * 64


@pytest.fixture(autouse=True)
def isolate_keyring():
    """
    Mock the keyring module for every test so the real system keyring is never touched.

    TokenStorage imports keyring lazily, so putting the mock in sys.modules is enough.
    """
    mock_keyring_module = MagicMock()
    mock_keyring_module.get_password.return_value = None
    mock_keyring_module.set_password.return_value = None
    mock_keyring_module.delete_password.return_value = None

    with patch.dict("sys.modules", {"keyring": mock_keyring_module}):
        yield mock_keyring_module


@pytest.fixture(autouse=True)
def no_sleep():
    """Keep retry backoff from slowing the suite down."""
    with patch("dbox.client.time.sleep") as mock_sleep:
        yield mock_sleep


def _make_response(status_code=200, json_data=None, content=b"", headers=None):
    r = requests.Response()
    r.status_code = status_code
    headers = dict(headers or {})
    if json_data is not None:
        content = json.dumps(json_data).encode("utf-8")
        headers.setdefault("Content-Type", "application/json")
    r._content = content
    r._content_consumed = True
    r.raw = io.BytesIO(content)
    r.headers = CaseInsensitiveDict(headers)
    r.encoding = "utf-8"
    return r


@pytest.fixture
def make_response():
    """Factory for requests.Response objects as returned by the session."""
    return _make_response


@pytest.fixture
def client():
    """Legacy-token client whose HTTP session is a mock."""
    c = DropboxClient(access_token=TEST_TOKEN)
    c.session = MagicMock()
    return c


@pytest.fixture
def api_client():
    """Stand-in client for testing route helpers without HTTP."""
    return Mock(spec=DropboxClient)
