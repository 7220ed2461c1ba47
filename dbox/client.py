"""
Dropbox API v2 HTTP client.

DropboxClient owns the transport: it builds endpoint URLs, attaches bearer
authentication, serializes route arguments, retries rate-limited and failed
requests, and maps error responses onto the dbox.exceptions hierarchy.
Supports both legacy access tokens and OAuth 2.0 refresh tokens with
automatic token refresh.

The route helpers live in dbox.files, dbox.sharing and dbox.users; they all
take a DropboxClient as their first argument.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Union

import requests
from requests.adapters import HTTPAdapter

from dbox.auth.oauth_manager import OAuthManager
from dbox.exceptions import (
    AccessError,
    ApiError,
    AuthError,
    BadInputError,
    ClientError,
    DropboxError,
    HttpError,
    InternalServerError,
    RateLimitError,
    TokenError,
)
from dbox.metrics import RequestMetrics

DEFAULT_USER_AGENT = "Dropbox SDK/Python"
DEFAULT_MAX_RETRIES = 4
DEFAULT_MAX_CONNECTIONS = 8
DEFAULT_TIMEOUT = 100

# Legacy long-lived access tokens are at least this long
MIN_ACCESS_TOKEN_LENGTH = 62

RequestBody = Union[bytes, str, None]


class Endpoint(Enum):
    """Dropbox API host a route is served from."""

    API = "api"
    CONTENT = "content"
    NOTIFY = "notify"

    def __str__(self) -> str:
        return self.value

    @property
    def base_url(self) -> str:
        return f"https://{self.value}.dropboxapi.com/2"


@dataclass
class Response:
    """Raw result of a Dropbox API request."""

    status: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)
    api_result: Optional[Dict[str, Any]] = None
    _raw: Optional[requests.Response] = field(default=None, repr=False, compare=False)
    # Set by DropboxClient for streamed downloads
    _on_chunk: Optional[Callable[[int], None]] = field(default=None, repr=False, compare=False)
    _on_error: Optional[Callable[[Exception], DropboxError]] = field(default=None, repr=False, compare=False)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")

    def json(self) -> Any:
        return json.loads(self.body)

    def iter_content(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        """Iterate over the body; streams from the network for streamed responses."""
        if self._raw is not None:
            yield from self._stream(chunk_size)
        else:
            for start in range(0, len(self.body), chunk_size):
                yield self.body[start : start + chunk_size]

    def _stream(self, chunk_size: int) -> Iterator[bytes]:
        try:
            for chunk in self._raw.iter_content(chunk_size=chunk_size):
                if chunk:
                    if self._on_chunk is not None:
                        self._on_chunk(len(chunk))
                    yield chunk
        except requests.RequestException as e:
            if self._on_error is None:
                raise
            raise self._on_error(e) from e

    def close(self) -> None:
        if self._raw is not None:
            self._raw.close()


def encode_api_arg(arg: Any) -> str:
    """
    Serialize a route argument for the ``Dropbox-API-Arg`` header.

    HTTP headers must be ASCII, so non-ASCII characters and DEL are escaped.
    """
    return json.dumps(arg, ensure_ascii=True).replace("\x7f", "\\u007f")


class DropboxClient:
    """Client for the Dropbox HTTP API v2."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        app_key: Optional[str] = None,
        app_secret: Optional[str] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        proxies: Optional[Dict[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        metrics: Optional[RequestMetrics] = None,
        token_refresh_callback: Optional[Callable[[str, str], None]] = None,
    ):
        """
        Initialize Dropbox client.

        Supports two authentication modes:
        1. Legacy: Direct access token (no refresh)
        2. OAuth 2.0: Refresh token, access tokens are fetched and refreshed
           automatically

        Args:
            access_token: Access token (legacy mode, or an initial token in OAuth mode)
            refresh_token: OAuth 2.0 refresh token
            app_key: Dropbox app key (required for OAuth mode)
            app_secret: Dropbox app secret (optional with PKCE apps)
            user_agent: User-Agent header sent with every request
            max_retries: Retries for rate-limited (429), 5xx and connection failures
            max_connections: Size of the HTTP connection pool
            proxies: requests-style proxy mapping, e.g. {"https": "http://proxy:3128"}
            timeout: Request timeout in seconds
            metrics: Optional RequestMetrics collector
            token_refresh_callback: Called as (access_token, expires_at) after a refresh

        Raises:
            ValueError: If neither access_token nor refresh_token is provided
            TokenError: If a legacy access token is malformed
        """
        self.logger = logging.getLogger(__name__)

        if not access_token and not refresh_token:
            raise ValueError("Either access_token or refresh_token must be provided")

        if refresh_token and not app_key:
            raise ValueError("app_key is required when using refresh_token")

        if refresh_token:
            self.logger.debug("Initializing Dropbox client with OAuth 2.0 refresh token")
            self.auth_mode = "oauth"
            self.oauth = OAuthManager(app_key, app_secret, timeout=timeout)
        else:
            if len(access_token) < MIN_ACCESS_TOKEN_LENGTH:
                raise TokenError("Malformed access token")
            self.logger.debug("Initializing Dropbox client with legacy access token")
            self.auth_mode = "legacy"
            self.oauth = None

        self.refresh_token = refresh_token
        self.app_key = app_key
        self.app_secret = app_secret
        self.token_refresh_callback = token_refresh_callback
        self._access_token = access_token
        self._expires_at: Optional[str] = None

        self.user_agent = user_agent
        self.max_retries = max_retries
        self.max_connections = max_connections
        self.proxies = dict(proxies or {})
        self.timeout = timeout
        self.metrics = metrics

        self.session = self._build_session()

    # Configuration

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(pool_connections=self.max_connections, pool_maxsize=self.max_connections)
        session.mount("https://", adapter)
        session.headers["User-Agent"] = self.user_agent
        session.proxies.update(self.proxies)
        return session

    def with_user_agent(self, user_agent: str) -> "DropboxClient":
        self.user_agent = user_agent
        self.session.headers["User-Agent"] = user_agent
        return self

    def with_max_retries(self, max_retries: int) -> "DropboxClient":
        self.max_retries = max_retries
        return self

    def with_max_connections(self, max_connections: int) -> "DropboxClient":
        self.max_connections = max_connections
        self.session.close()
        self.session = self._build_session()
        return self

    def with_proxies(self, proxies: Dict[str, str]) -> "DropboxClient":
        self.proxies = dict(proxies)
        self.session.proxies.clear()
        self.session.proxies.update(self.proxies)
        return self

    # Authentication

    @property
    def access_token(self) -> str:
        """Current access token, refreshed first when it is missing or about to expire."""
        if self.auth_mode == "oauth" and (
            self._access_token is None or (self._expires_at and self.oauth.is_token_expired(self._expires_at))
        ):
            self.refresh_access_token()
        return self._access_token

    def refresh_access_token(self) -> str:
        """Fetch a new access token with the refresh token (OAuth mode only)."""
        if self.auth_mode != "oauth":
            raise TokenError("Access token cannot be refreshed without a refresh token")

        tokens = self.oauth.refresh_access_token(self.refresh_token)
        self._access_token = tokens["access_token"]
        self._expires_at = tokens["expires_at"]

        if self.metrics:
            self.metrics.record_token_refresh()
        if self.token_refresh_callback:
            self.token_refresh_callback(self._access_token, self._expires_at)

        return self._access_token

    # Transport

    def request(
        self,
        endpoint: Endpoint,
        route: str,
        headers: Optional[Dict[str, str]] = None,
        body: RequestBody = None,
        stream: bool = False,
        timeout: Optional[float] = None,
    ) -> Response:
        """
        POST to a Dropbox route and return the raw response.

        Args:
            endpoint: Host serving the route
            route: Route path such as ``files/list_folder``
            headers: Extra request headers
            body: Request body
            stream: Leave the body on the wire (see Response.iter_content)
            timeout: Override the client timeout for this request

        Returns:
            Response for HTTP 200

        Raises:
            DropboxError: Subclass matching the failure
        """
        url = f"{endpoint.base_url}/{route}"
        attempt = 0
        refreshed = False

        if self.metrics:
            self.metrics.record_call(route)

        while True:
            send_headers = dict(headers or {})
            if endpoint is not Endpoint.NOTIFY:
                send_headers["Authorization"] = f"Bearer {self.access_token}"

            self.logger.debug(f"POST {url} (attempt {attempt + 1})")
            try:
                r = self.session.post(
                    url,
                    headers=send_headers,
                    data=body,
                    stream=stream,
                    timeout=timeout or self.timeout,
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt < self.max_retries:
                    self._wait_before_retry(route, attempt, None, f"connection error: {e}")
                    attempt += 1
                    continue
                raise self._fail(route, ClientError(f"Request to {route} failed: {e}")) from e
            except requests.RequestException as e:
                raise self._fail(route, ClientError(f"Request to {route} failed: {e}")) from e

            if r.status_code == 200:
                if stream:
                    return Response(status=200, headers=r.headers, _raw=r)
                return Response(status=200, body=r.content, headers=r.headers)

            if (r.status_code == 429 or r.status_code >= 500) and attempt < self.max_retries:
                self._wait_before_retry(route, attempt, _retry_after(r), f"HTTP {r.status_code}")
                r.close()
                attempt += 1
                continue

            if r.status_code == 401 and self.auth_mode == "oauth" and not refreshed:
                error = _json_or_empty(r).get("error", {})
                if error.get(".tag") == "expired_access_token":
                    self.logger.info("Access token expired, refreshing")
                    self.refresh_access_token()
                    refreshed = True
                    continue

            raise self._fail(route, _error_from_response(route, r))

    def _wait_before_retry(self, route: str, attempt: int, retry_after: Optional[float], reason: str) -> None:
        delay = retry_after if retry_after is not None else 2**attempt + 1
        self.logger.warning(f"{route}: {reason}, retry {attempt + 1}/{self.max_retries} in {delay}s")
        if self.metrics:
            self.metrics.record_retry()
        time.sleep(delay)

    def _fail(self, route: str, error: DropboxError) -> DropboxError:
        self.logger.error(f"Dropbox call {route} failed: {error}")
        if self.metrics:
            self.metrics.record_error(route, error)
        return error

    def _decode(self, route: str, body: bytes) -> Any:
        if not body or body.strip() == b"null":
            return None
        try:
            return json.loads(body)
        except ValueError as e:
            raise self._fail(route, ClientError(f"Invalid JSON from {route}: {e}")) from e

    # Route styles

    def api(self, route: str, arg: Any = None) -> Any:
        """Call an RPC route; the argument and result are JSON bodies."""
        headers = {"Content-Type": "application/json"}
        resp = self.request(Endpoint.API, route, headers, json.dumps(arg))
        return self._decode(route, resp.body)

    def content_upload(self, route: str, arg: Any, data: bytes) -> Any:
        """Call an upload route; the argument travels in the Dropbox-API-Arg header."""
        headers = {
            "Dropbox-API-Arg": encode_api_arg(arg),
            "Content-Type": "application/octet-stream",
        }
        resp = self.request(Endpoint.CONTENT, route, headers, data)
        if self.metrics:
            self.metrics.record_upload(len(data))
        return self._decode(route, resp.body)

    def content_download(self, route: str, arg: Any, stream: bool = False) -> Response:
        """
        Call a download route.

        The route result is decoded from the Dropbox-API-Result header into
        ``Response.api_result``; the body carries the file content.
        """
        headers = {"Dropbox-API-Arg": encode_api_arg(arg)}
        resp = self.request(Endpoint.CONTENT, route, headers, stream=stream)

        result = resp.headers.get("Dropbox-API-Result")
        if result is None:
            resp.close()
            raise self._fail(route, ClientError(f"{route} response is missing Dropbox-API-Result"))
        try:
            resp.api_result = json.loads(result)
        except ValueError as e:
            resp.close()
            raise self._fail(route, ClientError(f"Invalid Dropbox-API-Result from {route}: {e}")) from e

        if stream:
            resp._on_error = lambda e: self._fail(route, ClientError(f"Download from {route} interrupted: {e}"))
            if self.metrics:
                resp._on_chunk = self.metrics.record_download
        elif self.metrics:
            self.metrics.record_download(len(resp.body))
        return resp

    def notify(self, route: str, arg: Any, timeout: Optional[float] = None) -> Any:
        """Call an unauthenticated route on the notify host."""
        headers = {"Content-Type": "application/json"}
        resp = self.request(Endpoint.NOTIFY, route, headers, json.dumps(arg), timeout=timeout)
        return self._decode(route, resp.body)

    # Helpers

    def verify_connection(self) -> bool:
        """
        Verify the Dropbox connection and access token.

        Returns:
            True if connection is valid, False otherwise
        """
        try:
            account = self.api("users/get_current_account")
            self.logger.info(f"Connected to Dropbox account: {account.get('email')}")
            return True
        except AuthError as e:
            self.logger.error(f"Authentication failed: {e}")
            return False
        except DropboxError as e:
            self.logger.error(f"Connection verification failed: {e}")
            return False

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "DropboxClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _json_or_empty(r: requests.Response) -> Dict[str, Any]:
    try:
        data = r.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _retry_after(r: requests.Response) -> Optional[float]:
    value = r.headers.get("Retry-After")
    if value is not None:
        try:
            return float(value)
        except ValueError:
            pass
    if r.status_code == 429:
        retry_after = _json_or_empty(r).get("error", {}).get("retry_after")
        if retry_after is not None:
            return float(retry_after)
    return None


def _error_from_response(route: str, r: requests.Response) -> DropboxError:
    """Map a non-200 response onto the exception hierarchy."""
    request_id = r.headers.get("X-Dropbox-Request-Id")
    status = r.status_code

    if status == 400:
        return BadInputError(r.text, request_id)
    if status == 401:
        return AuthError(_json_or_empty(r).get("error"), r.text, request_id)
    if status == 403:
        return AccessError(r.text, request_id)
    if status == 409:
        data = _json_or_empty(r)
        user_message = data.get("user_message") or {}
        return ApiError(
            route,
            error=data.get("error"),
            error_summary=data.get("error_summary", ""),
            user_message=user_message.get("text"),
            request_id=request_id,
        )
    if status == 429:
        return RateLimitError(_retry_after(r), r.text, request_id)
    if status >= 500:
        return InternalServerError(status, r.text, request_id)
    return HttpError(status, r.text, request_id)
