"""Tests for the run-scoped existing-entity index."""

import requests

from fineract_seed.core.existing_index import (
    FALLBACK_PERMISSIONS,
    ExistingEntityIndex,
    build_permission_names,
    extract_items,
)
from fineract_seed.core.models import EntityType
from tests.conftest import make_response


class TestExtractItems:
    def test_bare_array(self):
        assert extract_items([{"id": 1}, "junk"]) == [{"id": 1}]

    def test_page_wrapper(self):
        assert extract_items({"totalFilteredRecords": 1, "pageItems": [{"id": 2}]}) == [{"id": 2}]


class TestFetch:
    def test_roles_indexed_by_name(self, client, fake_session):
        fake_session.add("GET", "roles", make_response(200, [
            {"id": 7, "name": "Teller Role"},
            {"id": 8, "name": " Auditor "},
            {"id": None, "name": "Broken"},
        ]))
        index = ExistingEntityIndex(client)
        assert dict(index.get(EntityType.ROLES)) == {"Teller Role": 7, "Auditor": 8}
        assert index.lookup(EntityType.ROLES, "Auditor") == 8
        assert index.lookup(EntityType.ROLES, "Nobody") is None

    def test_fetched_once_per_type(self, client, fake_session):
        fake_session.add("GET", "tellers", make_response(200, [{"id": 1, "name": "Front"}]))
        index = ExistingEntityIndex(client)
        index.lookup(EntityType.TELLERS, "Front")
        index.lookup(EntityType.TELLERS, "Back")
        assert len(fake_session.calls_to("GET", "tellers")) == 1

    def test_fetch_failure_degrades_to_empty(self, client, fake_session, caplog):
        fake_session.add("GET", "savingsproducts", make_response(500, {"error": "boom"}))
        index = ExistingEntityIndex(client)
        assert dict(index.get(EntityType.SAVINGS_PRODUCTS)) == {}
        assert "assuming none exist" in caplog.text

    def test_network_failure_degrades_to_empty(self, client, fake_session):
        fake_session.add("GET", "paymenttypes", requests.ConnectionError("down"))
        assert dict(ExistingEntityIndex(client).get(EntityType.PAYMENT_TYPES)) == {}

    def test_clients_paginated_by_external_id(self, client, fake_session):
        fake_session.add(
            "GET", "clients",
            make_response(200, {"totalFilteredRecords": 3, "pageItems": [
                {"id": 1, "externalId": "EXT-1"}, {"id": 2, "externalId": None},
            ]}),
            make_response(200, {"totalFilteredRecords": 3, "pageItems": [{"id": 3, "externalId": "EXT-3"}]}),
        )
        index = ExistingEntityIndex(client, page_size=2)
        assert dict(index.get(EntityType.CLIENTS)) == {"EXT-1": 1, "EXT-3": 3}
        offsets = [c.kwargs["params"]["offset"] for c in fake_session.calls_to("GET", "clients")]
        assert offsets == [0, 2]

    def test_currencies_use_selected_options(self, client, fake_session):
        fake_session.add("GET", "currencies", make_response(200, {
            "selectedCurrencyOptions": [{"code": "USD"}, {"code": "KES"}],
            "currencyOptions": [{"code": "EUR"}],
        }))
        index = ExistingEntityIndex(client)
        assert index.contains(EntityType.CURRENCIES, "USD")
        assert not index.contains(EntityType.CURRENCIES, "EUR")

    def test_gl_accounts_by_code(self, client, fake_session):
        fake_session.add("GET", "glaccounts", make_response(200, [{"id": 11, "glCode": "1001", "name": "Cash"}]))
        assert ExistingEntityIndex(client).lookup(EntityType.CHART_OF_ACCOUNTS, "1001") == 11


class TestRecordAndInvalidate:
    def test_record_created_entity(self, client, fake_session):
        fake_session.add("GET", "roles", make_response(200, []))
        index = ExistingEntityIndex(client)
        index.record(EntityType.ROLES, "New Role", 12)
        assert index.lookup(EntityType.ROLES, "New Role") == 12
        assert len(fake_session.calls_to("GET", "roles")) == 1

    def test_invalidate_refetches(self, client, fake_session):
        fake_session.add("GET", "roles", make_response(200, []))
        index = ExistingEntityIndex(client)
        index.get(EntityType.ROLES)
        index.invalidate(EntityType.ROLES)
        index.get(EntityType.ROLES)
        assert len(fake_session.calls_to("GET", "roles")) == 2


class TestPermissionNames:
    def test_codes_and_action_entity_with_checker_variants(self):
        names = build_permission_names([
            {"code": "CREATE_CLIENT"},
            {"actionName": "READ", "entityName": "LOAN"},
            {"code": "APPROVE_LOAN_CHECKER"},
        ])
        assert {"CREATE_CLIENT", "CREATE_CLIENT_CHECKER", "READ_LOAN", "READ_LOAN_CHECKER"} <= names
        assert "APPROVE_LOAN_CHECKER_CHECKER" not in names
        assert "DEPOSIT_CENTER_CHECKER" in names

    def test_fetched_once(self, client, fake_session):
        fake_session.add("GET", "permissions", make_response(200, [{"code": "CREATE_CLIENT"}]))
        index = ExistingEntityIndex(client)
        assert "CREATE_CLIENT" in index.permission_names()
        index.permission_names()
        assert len(fake_session.calls_to("GET", "permissions")) == 1

    def test_fallback_on_failure(self, client, fake_session):
        fake_session.add("GET", "permissions", make_response(503))
        assert ExistingEntityIndex(client).permission_names() == FALLBACK_PERMISSIONS
