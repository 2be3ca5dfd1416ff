"""Upload Driver — delivers payloads and template files with bounded retry.

Network errors, 5xx responses, 408 and 429 are retried with exponential
backoff; any other non-2xx status and any authentication failure is
terminal. The sleep between attempts is injectable so backoff timing can be
tested without waiting, and a KeyboardInterrupt raised during the sleep ends
the loop immediately.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

import requests

from fineract_seed.core.auth import AuthenticationError
from fineract_seed.core.config import Settings
from fineract_seed.core.fineract_client import FineractClient
from fineract_seed.core.models import HttpMethod
from fineract_seed.core.projector import thaw
from fineract_seed.core.workbook_reader import XLS_SUFFIXES

logger = logging.getLogger(__name__)

RETRYABLE_CLIENT_ERRORS = frozenset({408, 429})

XLS_CONTENT_TYPE = "application/vnd.ms-excel"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def is_success_status(status_code: int) -> bool:
    return 200 <= status_code < 300


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_CLIENT_ERRORS or status_code >= 500


class DeliveryStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


@dataclass
class DeliveryResult:
    status: DeliveryStatus
    attempts: int
    status_code: Optional[int] = None
    body: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.SUCCESS

    @property
    def interrupted(self) -> bool:
        return self.status == DeliveryStatus.INTERRUPTED

    @property
    def resource_id(self) -> Optional[int]:
        """The created entity's id, when the response carries one."""
        if not isinstance(self.body, dict):
            return None
        value = self.body.get("resourceId")
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None


@dataclass(frozen=True)
class RetryPolicy:
    """Intervals are in seconds."""
    max_attempts: int = 3
    initial_interval: float = 1.0
    multiplier: float = 2.0
    max_interval: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=max(settings.retry_max_attempts, 1),
            initial_interval=settings.retry_initial_interval_ms / 1000,
            multiplier=settings.retry_multiplier,
            max_interval=settings.retry_max_interval_ms / 1000,
        )


def _decode_body(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def content_type_for(file_name: str) -> str:
    if Path(file_name).suffix.lower() in XLS_SUFFIXES:
        return XLS_CONTENT_TYPE
    return XLSX_CONTENT_TYPE


class UploadDriver:
    def __init__(
        self,
        client: FineractClient,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def deliver(
        self,
        method: HttpMethod,
        endpoint: str,
        payload: Optional[Mapping[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> DeliveryResult:
        """Send a JSON payload to `endpoint` with the given method."""
        body = thaw(payload) if payload is not None else None

        def send() -> requests.Response:
            return self.client.request(method.value, endpoint, params=params, json=body)

        result = self._send_with_retry(f"{method.value} {endpoint}", send)
        if not result.ok and not result.interrupted:
            logger.error(f"{method.value} {endpoint} failed; payload={body}")
        return result

    def retrieve_template(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> DeliveryResult:
        return self.deliver(HttpMethod.GET, endpoint, params=params)

    def upload_file(
        self,
        endpoint: str,
        file_name: str,
        content: bytes,
        entity_type: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> DeliveryResult:
        """Multipart upload of a workbook to a bulk-import endpoint."""
        form = {
            "locale": self.client.locale,
            "dateFormat": self.client.date_format,
        }
        if entity_type:
            form["entityType"] = entity_type
        clean_name = Path(file_name).name

        def send() -> requests.Response:
            files = {"file": (clean_name, content, content_type_for(clean_name))}
            return self.client.request("POST", endpoint, params=params, data=form, files=files)

        logger.info(f"Uploading template {clean_name} to {endpoint}")
        return self._send_with_retry(f"upload {clean_name} -> {endpoint}", send)

    def _send_with_retry(self, description: str, send: Callable[[], requests.Response]) -> DeliveryResult:
        policy = self.policy
        interval = policy.initial_interval
        attempts = 0
        last_status: Optional[int] = None
        last_body: Any = None
        last_error: Optional[str] = None

        while attempts < policy.max_attempts:
            if attempts > 0:
                logger.info(f"Retry attempt {attempts} of {policy.max_attempts - 1} for {description} in {interval:.1f}s")
                try:
                    self._sleep(interval)
                except KeyboardInterrupt:
                    logger.warning(f"Retry interrupted for {description}")
                    return DeliveryResult(
                        DeliveryStatus.INTERRUPTED, attempts, last_status, last_body, "interrupted"
                    )
                interval = min(interval * policy.multiplier, policy.max_interval)
            attempts += 1

            try:
                response = send()
            except requests.RequestException as e:
                last_status, last_body, last_error = None, None, str(e)
                logger.warning(f"Network error on {description} (attempt {attempts}): {e}")
                continue
            except AuthenticationError as e:
                # The request never left; the token provider already gave up
                logger.error(f"Authentication failed for {description}: {e}")
                return DeliveryResult(DeliveryStatus.FAILED, attempts, None, None, f"authentication failed: {e}")

            last_status = response.status_code
            last_body = _decode_body(response)
            if is_success_status(last_status):
                logger.debug(f"{description} succeeded with {last_status} after {attempts} attempt(s)")
                return DeliveryResult(DeliveryStatus.SUCCESS, attempts, last_status, last_body)

            last_error = f"HTTP {last_status}"
            if not is_retryable_status(last_status):
                logger.error(f"{description} rejected with {last_status}: {response.text[:1000]}")
                return DeliveryResult(DeliveryStatus.FAILED, attempts, last_status, last_body, last_error)
            logger.warning(f"{description} returned {last_status} (attempt {attempts}): {response.text[:500]}")

        logger.error(f"{description} failed after {attempts} attempt(s): {last_error}")
        return DeliveryResult(DeliveryStatus.FAILED, attempts, last_status, last_body, last_error)
