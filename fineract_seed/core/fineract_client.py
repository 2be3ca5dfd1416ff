"""Fineract HTTP client wrapper.

Holds the configured `requests.Session` (tenant header, auth, TLS, timeouts)
and joins endpoint paths onto the API base URL.
"""

import logging
from typing import Any, Optional

import requests
from requests.auth import AuthBase

from fineract_seed.core.config import Settings

logger = logging.getLogger(__name__)

TENANT_HEADER = "Fineract-Platform-TenantId"
PROBE_ENDPOINT = "offices"


class ApiError(Exception):
    """Non-2xx response from the Fineract API."""

    def __init__(self, method: str, url: str, status_code: int, body: str = ""):
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
        super().__init__(f"{method} {url} returned {status_code}: {body[:500]}")


class FineractClient:
    def __init__(
        self,
        base_url: str,
        tenant: str,
        auth: Optional[AuthBase] = None,
        verify_ssl: bool = True,
        timeout: tuple[float, float] = (30.0, 60.0),
        locale: str = "en",
        date_format: str = "dd MMMM yyyy",
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.tenant = tenant
        self.timeout = timeout
        self.locale = locale
        self.date_format = date_format
        self.session = session or requests.Session()
        self.session.headers.update({
            TENANT_HEADER: tenant,
            "Accept": "application/json",
        })
        self.session.verify = verify_ssl
        if auth is not None:
            self.session.auth = auth

    @classmethod
    def from_settings(cls, settings: Settings, auth: Optional[AuthBase] = None) -> "FineractClient":
        return cls(
            base_url=settings.fineract_url,
            tenant=settings.fineract_tenant,
            auth=auth,
            verify_ssl=settings.fineract_verify_ssl,
            timeout=(settings.connect_timeout_ms / 1000, settings.read_timeout_ms / 1000),
            locale=settings.fineract_locale,
            date_format=settings.fineract_date_format,
        )

    def url_for(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        data: Optional[dict[str, Any]] = None,
        files: Optional[dict[str, Any]] = None,
    ) -> requests.Response:
        """Send one request and return the response whatever its status.

        Network failures propagate as `requests.RequestException`.
        """
        url = self.url_for(endpoint)
        logger.debug(f"{method} {url}")
        return self.session.request(
            method,
            url,
            params=params,
            json=json,
            data=data,
            files=files,
            timeout=self.timeout,
        )

    def get_json(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> Any:
        """GET an endpoint and decode its JSON body; raises ApiError on non-2xx."""
        response = self.request("GET", endpoint, params=params)
        if not response.ok:
            raise ApiError("GET", response.url or self.url_for(endpoint), response.status_code, response.text)
        if not response.content:
            return None
        return response.json()

    def check_connection(self) -> bool:
        """True when an authenticated request to the API succeeds."""
        try:
            response = self.request("GET", PROBE_ENDPOINT)
            return response.ok
        except Exception as e:
            logger.warning(f"Fineract API unreachable at {self.base_url}: {e}")
            return False

    def close(self) -> None:
        self.session.close()
