"""Authentication providers attached to the Fineract HTTP session.

Both providers are `requests` auth hooks: the session calls them for every
outgoing request, so callers never handle tokens themselves.
"""

import logging
import time
from typing import Callable, Optional

import requests
from requests.auth import AuthBase, HTTPBasicAuth

from fineract_seed.core.config import Settings

logger = logging.getLogger(__name__)

# Refresh the token this many seconds before it actually expires
TOKEN_REFRESH_MARGIN_S = 30
DEFAULT_TOKEN_LIFETIME_S = 300


class AuthenticationError(Exception):
    """Raised when an access token cannot be obtained."""


class BasicAuthProvider(HTTPBasicAuth):
    """Static `Authorization: Basic ...` header."""

    def is_authenticated(self) -> bool:
        return bool(self.username) and bool(self.password)


class OAuthTokenProvider(AuthBase):
    """Bearer token from a Keycloak-style token endpoint, cached until near expiry."""

    def __init__(
        self,
        token_url: str,
        grant_type: str,
        client_id: str,
        client_secret: str,
        username: str = "",
        password: str = "",
        session: Optional[requests.Session] = None,
        timeout: Optional[tuple[float, float]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.token_url = token_url
        self.grant_type = grant_type
        self.client_id = client_id
        self.client_secret = client_secret
        self.username = username
        self.password = password
        self.timeout = timeout
        self._session = session or requests.Session()
        self._clock = clock
        self._access_token: Optional[str] = None
        self._refresh_at = 0.0

    def __call__(self, r: requests.PreparedRequest) -> requests.PreparedRequest:
        r.headers["Authorization"] = f"Bearer {self.access_token()}"
        return r

    def access_token(self) -> str:
        if self._access_token is None or self._clock() >= self._refresh_at:
            self._refresh_token()
        return self._access_token

    def is_authenticated(self) -> bool:
        try:
            self.access_token()
            return True
        except AuthenticationError:
            return False

    def _refresh_token(self) -> None:
        form = {
            "grant_type": self.grant_type,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.grant_type == "password":
            form["username"] = self.username
            form["password"] = self.password

        try:
            response = self._session.post(self.token_url, data=form, timeout=self.timeout)
        except requests.RequestException as e:
            raise AuthenticationError(f"Token request to {self.token_url} failed: {e}") from e

        if response.status_code != 200:
            raise AuthenticationError(
                f"Token endpoint returned {response.status_code}: {response.text[:200]}"
            )
        try:
            body = response.json()
            token = body["access_token"]
        except (ValueError, KeyError) as e:
            raise AuthenticationError(f"Malformed token response: {e}") from e

        expires_in = body.get("expires_in") or DEFAULT_TOKEN_LIFETIME_S
        self._access_token = token
        self._refresh_at = self._clock() + max(int(expires_in) - TOKEN_REFRESH_MARGIN_S, 0)
        logger.debug(f"OAuth token refreshed, valid for {expires_in}s")


def build_auth_provider(settings: Settings) -> AuthBase:
    """Choose the provider configured by `settings.auth_type`."""
    if settings.auth_type == "basic":
        logger.info(f"Using basic authentication as '{settings.basic_username}'")
        return BasicAuthProvider(settings.basic_username, settings.basic_password)
    logger.info(f"Using OAuth authentication against {settings.oauth_token_url}")
    return OAuthTokenProvider(
        token_url=settings.oauth_token_url,
        grant_type=settings.oauth_grant_type,
        client_id=settings.oauth_client_id,
        client_secret=settings.oauth_client_secret,
        username=settings.oauth_username,
        password=settings.oauth_password,
        timeout=(settings.connect_timeout_ms / 1000, settings.read_timeout_ms / 1000),
    )
