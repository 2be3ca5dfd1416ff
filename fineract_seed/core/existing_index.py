"""Existing-Entity Index — natural key to remote id, fetched once per type per run.

A failed fetch degrades to an empty index: the run carries on assuming
nothing exists yet rather than aborting.
"""

import logging
from types import MappingProxyType
from typing import Any, Mapping, Optional

import requests

from fineract_seed.core.auth import AuthenticationError
from fineract_seed.core.fineract_client import ApiError, FineractClient
from fineract_seed.core.models import ENTITY_ENDPOINTS, NATURAL_KEY_FIELDS, EntityType

logger = logging.getLogger(__name__)

PERMISSIONS_ENDPOINT = "permissions"

CHECKER_SUFFIX = "_CHECKER"
CHECKER_ACTIONS = (
    "APPROVE", "REJECT", "CREATE", "DELETE", "UPDATE",
    "DISBURSE", "REPAYMENT", "WITHDRAWAL", "DEPOSIT",
)
CHECKER_ENTITIES = ("LOAN", "CLIENT", "SAVINGS", "GROUP", "CENTER")

FALLBACK_PERMISSIONS = frozenset({
    "READ_CLIENT", "CREATE_CLIENT", "UPDATE_CLIENT", "DELETE_CLIENT",
    "READ_LOAN", "CREATE_LOAN", "UPDATE_LOAN",
    "READ_SAVINGS", "CREATE_SAVINGS", "UPDATE_SAVINGS",
})

FETCH_ERRORS = (ApiError, AuthenticationError, requests.RequestException, ValueError)


def extract_items(body: Any) -> list[dict]:
    """Items of a bare-array or `{pageItems: [...]}` list response."""
    if isinstance(body, list):
        items = body
    elif isinstance(body, dict) and isinstance(body.get("pageItems"), list):
        items = body["pageItems"]
    else:
        raise ValueError(f"Unexpected list response shape: {type(body).__name__}")
    return [item for item in items if isinstance(item, dict)]


def parse_remote_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _with_checker(names: set[str], name: str) -> None:
    names.add(name)
    if not name.endswith(CHECKER_SUFFIX):
        names.add(name + CHECKER_SUFFIX)


def build_permission_names(items: list[dict]) -> frozenset[str]:
    """All grantable permission codes implied by the `permissions` listing."""
    names: set[str] = set()
    for item in items:
        code = item.get("code")
        if isinstance(code, str) and code.strip():
            _with_checker(names, code.strip())
        action, entity = item.get("actionName"), item.get("entityName")
        if isinstance(action, str) and isinstance(entity, str) and action.strip() and entity.strip():
            _with_checker(names, f"{action.strip()}_{entity.strip()}")
    for action in CHECKER_ACTIONS:
        for entity in CHECKER_ENTITIES:
            names.add(f"{action}_{entity}{CHECKER_SUFFIX}")
    return frozenset(names)


class ExistingEntityIndex:
    """Run-scoped cache of remote entities, keyed by entity type."""

    def __init__(self, client: FineractClient, page_size: int = 200):
        self._client = client
        self._page_size = max(page_size, 1)
        self._entries: dict[EntityType, dict[str, Optional[int]]] = {}
        self._permissions: Optional[frozenset[str]] = None

    def get(self, entity_type: EntityType) -> Mapping[str, Optional[int]]:
        """Natural key -> remote id for a type, fetching it on first use."""
        if entity_type not in self._entries:
            self._entries[entity_type] = self._fetch(entity_type)
        return MappingProxyType(self._entries[entity_type])

    def contains(self, entity_type: EntityType, key: Optional[str]) -> bool:
        if not key:
            return False
        return key.strip() in self.get(entity_type)

    def lookup(self, entity_type: EntityType, key: Optional[str]) -> Optional[int]:
        if not key:
            return None
        return self.get(entity_type).get(key.strip())

    def record(self, entity_type: EntityType, key: Optional[str], remote_id: Optional[int]) -> None:
        """Register an entity created during this run."""
        if not key:
            return
        self.get(entity_type)
        self._entries[entity_type][key.strip()] = remote_id

    def invalidate(self, entity_type: Optional[EntityType] = None) -> None:
        if entity_type is None:
            self._entries.clear()
        else:
            self._entries.pop(entity_type, None)

    def permission_names(self) -> frozenset[str]:
        if self._permissions is None:
            self._permissions = self._fetch_permissions()
        return self._permissions

    # --- fetching ---

    def _fetch(self, entity_type: EntityType) -> dict[str, Optional[int]]:
        try:
            if entity_type == EntityType.CURRENCIES:
                entries = self._fetch_currencies()
            elif entity_type == EntityType.CLIENTS:
                entries = self._index_items(entity_type, self._fetch_client_pages())
            else:
                body = self._client.get_json(ENTITY_ENDPOINTS[entity_type])
                entries = self._index_items(entity_type, extract_items(body))
        except FETCH_ERRORS as e:
            logger.warning(
                f"Could not fetch existing {entity_type.value}: {e}; "
                f"assuming none exist (duplicates may be created)"
            )
            return {}
        logger.info(f"Found {len(entries)} existing {entity_type.value}")
        return entries

    def _index_items(self, entity_type: EntityType, items: list[dict]) -> dict[str, Optional[int]]:
        key_field = NATURAL_KEY_FIELDS[entity_type]
        entries: dict[str, Optional[int]] = {}
        for item in items:
            key = item.get(key_field)
            remote_id = parse_remote_id(item.get("id"))
            if not isinstance(key, str) or not key.strip() or remote_id is None:
                continue
            entries[key.strip()] = remote_id
        return entries

    def _fetch_currencies(self) -> dict[str, Optional[int]]:
        body = self._client.get_json(ENTITY_ENDPOINTS[EntityType.CURRENCIES])
        if not isinstance(body, dict):
            raise ValueError("Unexpected currencies response shape")
        entries: dict[str, Optional[int]] = {}
        for option in body.get("selectedCurrencyOptions") or []:
            code = option.get("code") if isinstance(option, dict) else None
            if isinstance(code, str) and code.strip():
                entries[code.strip()] = None
        return entries

    def _fetch_client_pages(self) -> list[dict]:
        endpoint = ENTITY_ENDPOINTS[EntityType.CLIENTS]
        items: list[dict] = []
        offset = 0
        while True:
            body = self._client.get_json(endpoint, params={"offset": offset, "limit": self._page_size})
            page = extract_items(body)
            items.extend(page)
            total = body.get("totalFilteredRecords") if isinstance(body, dict) else None
            offset += len(page)
            if not page or not isinstance(total, int) or offset >= total:
                break
        return items

    def _fetch_permissions(self) -> frozenset[str]:
        try:
            items = extract_items(self._client.get_json(PERMISSIONS_ENDPOINT))
        except FETCH_ERRORS as e:
            logger.warning(f"Failed to fetch permissions list: {e}; using fallback set")
            return FALLBACK_PERMISSIONS
        if not items:
            logger.warning("No permissions returned from API")
            return frozenset()
        names = build_permission_names(items)
        logger.info(f"Loaded {len(names)} grantable permission names")
        return names
