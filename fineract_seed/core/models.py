"""Entity enumeration, static per-type tables and API response schemas."""

from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Optional

from pydantic import BaseModel


class EntityType(str, Enum):
    CURRENCIES = "currencies"
    PAYMENT_TYPES = "payment_types"
    ROLES = "roles"
    SAVINGS_PRODUCTS = "savings_products"
    TELLERS = "tellers"
    CLIENTS = "clients"
    CHART_OF_ACCOUNTS = "chart_of_accounts"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"


# Remote collection endpoint per entity type.
ENTITY_ENDPOINTS = MappingProxyType({
    EntityType.CURRENCIES: "currencies",
    EntityType.PAYMENT_TYPES: "paymenttypes",
    EntityType.ROLES: "roles",
    EntityType.SAVINGS_PRODUCTS: "savingsproducts",
    EntityType.TELLERS: "tellers",
    EntityType.CLIENTS: "clients",
    EntityType.CHART_OF_ACCOUNTS: "glaccounts",
})

# Field of a remote item used as its natural key.
NATURAL_KEY_FIELDS = MappingProxyType({
    EntityType.CURRENCIES: "code",
    EntityType.PAYMENT_TYPES: "name",
    EntityType.ROLES: "name",
    EntityType.SAVINGS_PRODUCTS: "name",
    EntityType.TELLERS: "name",
    EntityType.CLIENTS: "externalId",
    EntityType.CHART_OF_ACCOUNTS: "glCode",
})

# Currencies must exist before products use them; products before clients.
DEPENDENCY_ORDER = (
    EntityType.CURRENCIES,
    EntityType.PAYMENT_TYPES,
    EntityType.ROLES,
    EntityType.SAVINGS_PRODUCTS,
    EntityType.TELLERS,
    EntityType.CHART_OF_ACCOUNTS,
    EntityType.CLIENTS,
)


# --- API response models ---


class SheetOutcomeResponse(BaseModel):
    workbook: str
    sheet: str
    entity_type: Optional[EntityType] = None
    created: int = 0
    skipped: int = 0
    failed: int = 0
    rejected: int = 0


class TemplateOutcomeResponse(BaseModel):
    template: str
    endpoint: Optional[str] = None
    uploaded: bool
    message: Optional[str] = None


class ImportRunResponse(BaseModel):
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: str
    exit_code: int
    totals: dict[str, int] = {}
    sheets: list[SheetOutcomeResponse] = []
    templates: list[TemplateOutcomeResponse] = []


class HealthResponse(BaseModel):
    status: str
    services: dict[str, str]
