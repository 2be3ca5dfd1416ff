"""Sheet Classifier — decides which entity type a worksheet holds.

Hints are checked in a fixed priority: file name, then sheet name, then the
header keys. A file name match wins even if the sheet name or headers
disagree, because each template file is single-purpose.
"""

import logging
from typing import Callable, Optional

from fineract_seed.core.header_map import HeaderMap, normalize_key
from fineract_seed.core.models import EntityType

logger = logging.getLogger(__name__)

# Checked in order; "currentaccount" must be seen before the generic "account".
NAME_KEYWORDS: tuple[tuple[str, EntityType], ...] = (
    ("currency", EntityType.CURRENCIES),
    ("currencies", EntityType.CURRENCIES),
    ("payment", EntityType.PAYMENT_TYPES),
    ("role", EntityType.ROLES),
    ("teller", EntityType.TELLERS),
    ("saving", EntityType.SAVINGS_PRODUCTS),
    ("currentaccount", EntityType.SAVINGS_PRODUCTS),
    ("client", EntityType.CLIENTS),
    ("chart", EntityType.CHART_OF_ACCOUNTS),
    ("account", EntityType.CHART_OF_ACCOUNTS),
)


def _any(keys: frozenset[str], *names: str) -> bool:
    return any(name in keys for name in names)


HEADER_RULES: tuple[tuple[EntityType, Callable[[frozenset[str]], bool]], ...] = (
    (EntityType.CURRENCIES,
     lambda k: _any(k, "currencies", "code")),
    (EntityType.PAYMENT_TYPES,
     lambda k: _any(k, "name", "paymenttype", "payment") and _any(k, "iscashpayment", "cash", "iscash")),
    (EntityType.ROLES,
     lambda k: "permissions" in k and _any(k, "name", "rolename")),
    (EntityType.SAVINGS_PRODUCTS,
     lambda k: "name" in k and _any(k, "currency", "currencycode")),
    (EntityType.TELLERS,
     lambda k: _any(k, "teller", "tellername") or ("name" in k and "officeid" in k)),
    (EntityType.CLIENTS,
     lambda k: "firstname" in k and "lastname" in k and _any(k, "officeid", "office")),
    (EntityType.CHART_OF_ACCOUNTS,
     lambda k: _any(k, "glcode", "accountname")),
)


def classify_name(name: Optional[str]) -> Optional[EntityType]:
    """Match a file or sheet name against the keyword table."""
    flat = normalize_key(name)
    if not flat:
        return None
    for keyword, entity_type in NAME_KEYWORDS:
        if keyword in flat:
            return entity_type
    return None


def classify_headers(header: HeaderMap) -> Optional[EntityType]:
    """Match the header key set against each type's required-column rule."""
    keys = header.keys()
    if not keys:
        return None
    for entity_type, rule in HEADER_RULES:
        if rule(keys):
            return entity_type
    return None


def classify_sheet(
    file_name: Optional[str],
    sheet_name: Optional[str],
    header: HeaderMap,
) -> Optional[EntityType]:
    """Return the sheet's entity type, or None when it is unrecognized."""
    entity_type = classify_name(file_name)
    if entity_type is not None:
        logger.debug(f"Sheet '{sheet_name}' classified as {entity_type.value} from file name '{file_name}'")
        return entity_type

    entity_type = classify_name(sheet_name)
    if entity_type is not None:
        logger.debug(f"Sheet '{sheet_name}' classified as {entity_type.value} from sheet name")
        return entity_type

    entity_type = classify_headers(header)
    if entity_type is not None:
        logger.debug(f"Sheet '{sheet_name}' classified as {entity_type.value} from headers")
        return entity_type

    logger.warning(f"Unrecognized sheet '{sheet_name}' in '{file_name}'; skipping")
    return None
