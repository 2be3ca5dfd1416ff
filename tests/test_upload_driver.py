"""Tests for payload delivery and the retry loop."""

import pytest
import requests

from fineract_seed.core.auth import AuthenticationError
from fineract_seed.core.config import Settings
from fineract_seed.core.models import HttpMethod
from fineract_seed.core.projector import PayloadBuilder
from fineract_seed.core.upload_driver import (
    XLS_CONTENT_TYPE,
    DeliveryStatus,
    RetryPolicy,
    UploadDriver,
    is_retryable_status,
    is_success_status,
)
from tests.conftest import RecordingSleep, make_response

POLICY = RetryPolicy(max_attempts=3, initial_interval=1.0, multiplier=2.0, max_interval=10.0)


@pytest.fixture
def driver(client, sleep):
    return UploadDriver(client, POLICY, sleep=sleep)


class TestRetryClassification:
    @pytest.mark.parametrize("status,expected", [
        (500, True), (502, True), (503, True), (408, True), (429, True),
        (400, False), (401, False), (403, False), (404, False), (409, False),
    ])
    def test_is_retryable(self, status, expected):
        assert is_retryable_status(status) is expected

    @pytest.mark.parametrize("status,expected", [
        (200, True), (201, True), (204, True), (199, False), (301, False), (304, False), (400, False),
    ])
    def test_is_success(self, status, expected):
        assert is_success_status(status) is expected


class TestDeliver:
    def test_retries_then_succeeds(self, driver, fake_session, sleep):
        fake_session.add(
            "POST", "paymenttypes",
            make_response(503), make_response(503), make_response(200, {"resourceId": 4}),
        )
        result = driver.deliver(HttpMethod.POST, "paymenttypes", PayloadBuilder().set("name", "Cash").build())

        assert result.ok
        assert result.attempts == 3
        assert result.resource_id == 4
        assert sleep.calls == [pytest.approx(1.0), pytest.approx(2.0)]
        assert len(fake_session.calls_to("POST", "paymenttypes")) == 3

    def test_client_error_is_terminal(self, driver, fake_session, sleep):
        fake_session.add("POST", "roles", make_response(400, {"defaultUserMessage": "bad"}))
        result = driver.deliver(HttpMethod.POST, "roles", {"name": "x"})

        assert result.status == DeliveryStatus.FAILED
        assert result.attempts == 1
        assert result.status_code == 400
        assert sleep.calls == []

    def test_redirect_status_is_not_success(self, driver, fake_session, sleep):
        fake_session.add("POST", "roles", make_response(304))
        result = driver.deliver(HttpMethod.POST, "roles", {"name": "x"})

        assert result.status == DeliveryStatus.FAILED
        assert result.status_code == 304
        assert result.attempts == 1
        assert sleep.calls == []

    def test_authentication_failure_is_terminal(self, driver, fake_session, sleep):
        fake_session.add("PUT", "currencies", AuthenticationError("token endpoint down"))
        result = driver.deliver(HttpMethod.PUT, "currencies", {"currencies": ["USD"]})

        assert result.status == DeliveryStatus.FAILED
        assert result.attempts == 1
        assert "token endpoint down" in result.error
        assert sleep.calls == []

    def test_rate_limit_is_retried(self, driver, fake_session):
        fake_session.add("POST", "roles", make_response(429), make_response(201, {"resourceId": 1}))
        result = driver.deliver(HttpMethod.POST, "roles", {"name": "x"})
        assert result.ok
        assert result.attempts == 2

    def test_exhausted_retries_fail(self, driver, fake_session, sleep):
        fake_session.add("PUT", "currencies", make_response(500))
        result = driver.deliver(HttpMethod.PUT, "currencies", {"currencies": ["USD"]})
        assert result.status == DeliveryStatus.FAILED
        assert result.attempts == 3
        assert len(sleep.calls) == 2

    def test_network_error_retried(self, driver, fake_session):
        fake_session.add(
            "POST", "tellers",
            requests.ConnectionError("connection refused"), make_response(200, {"resourceId": 9}),
        )
        result = driver.deliver(HttpMethod.POST, "tellers", {"name": "T"})
        assert result.ok
        assert result.attempts == 2

    def test_interval_capped_at_max(self, client, fake_session):
        sleep = RecordingSleep()
        policy = RetryPolicy(max_attempts=5, initial_interval=4.0, multiplier=2.0, max_interval=10.0)
        fake_session.add("GET", "clients/template", make_response(503))
        UploadDriver(client, policy, sleep=sleep).retrieve_template("clients/template")
        assert sleep.calls == [4.0, 8.0, 10.0, 10.0]

    def test_interrupted_sleep_stops_retrying(self, client, fake_session):
        def interrupting_sleep(seconds):
            raise KeyboardInterrupt

        fake_session.add("POST", "roles", make_response(503), make_response(200))
        result = UploadDriver(client, POLICY, sleep=interrupting_sleep).deliver(HttpMethod.POST, "roles", {})

        assert result.interrupted
        assert not result.ok
        assert result.attempts == 1
        assert len(fake_session.calls_to("POST", "roles")) == 1

    def test_frozen_payload_sent_as_plain_json(self, driver, fake_session):
        fake_session.add("PUT", "roles/7/permissions", make_response(200, {}))
        payload = PayloadBuilder().set("permissions", {"CREATE_CLIENT": True}).build()
        driver.deliver(HttpMethod.PUT, "roles/7/permissions", payload)
        assert fake_session.calls[0].json == {"permissions": {"CREATE_CLIENT": True}}

    def test_missing_resource_id(self, driver, fake_session):
        fake_session.add("POST", "roles", make_response(200, {"changes": {}}))
        result = driver.deliver(HttpMethod.POST, "roles", {"name": "x"})
        assert result.ok
        assert result.resource_id is None


class TestUploadFile:
    def test_multipart_parts(self, driver, fake_session):
        fake_session.add("POST", "clients/uploadtemplate", make_response(200))
        result = driver.upload_file(
            "clients/uploadtemplate", "data/Clients.xls", b"bytes",
            entity_type="clients", params={"legalFormType": "CLIENTS_PERSON"},
        )

        assert result.ok
        call = fake_session.calls[0]
        assert call.kwargs["files"]["file"] == ("Clients.xls", b"bytes", XLS_CONTENT_TYPE)
        assert call.kwargs["data"] == {"locale": "en", "dateFormat": "dd MMMM yyyy", "entityType": "clients"}
        assert call.kwargs["params"] == {"legalFormType": "CLIENTS_PERSON"}


class TestRetryPolicy:
    def test_from_settings_converts_milliseconds(self):
        settings = Settings(
            retry_max_attempts=4, retry_initial_interval_ms=500,
            retry_multiplier=1.5, retry_max_interval_ms=3000,
        )
        policy = RetryPolicy.from_settings(settings)
        assert policy == RetryPolicy(max_attempts=4, initial_interval=0.5, multiplier=1.5, max_interval=3.0)
