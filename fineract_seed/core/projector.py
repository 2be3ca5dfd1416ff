"""Field Projector — turns one worksheet row into a Fineract API payload.

Each entity type reads its fields through a list of header aliases (or a
fixed column position when the sheet has no header), applies its defaults
and hands back a frozen payload. Rows missing a required field are rejected
rather than sent.
"""

import logging
from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence, Union

from fineract_seed.core.cells import (
    Cell,
    as_bool,
    as_int,
    as_long_date,
    as_text,
    normalize_cell,
)
from fineract_seed.core.header_map import HeaderMap, cell_at, is_blank_row
from fineract_seed.core.models import EntityType
from fineract_seed.core.workbook_reader import Sheet

logger = logging.getLogger(__name__)

# Normalized column key -> API field name for generically projected columns.
FIELD_RENAMES = MappingProxyType({
    # savings products
    "digitsafterdecimal": "digitsAfterDecimal",
    "currencycode": "currencyCode",
    "shortname": "shortName",
    "inmultiplesof": "inMultiplesOf",
    "nominalannualinterestrate": "nominalAnnualInterestRate",
    "interestcompoundingperiodtype": "interestCompoundingPeriodType",
    "interestpostingperiodtype": "interestPostingPeriodType",
    "interestcalculationtype": "interestCalculationType",
    "interestcalculationdaysinyeartype": "interestCalculationDaysInYearType",
    "overdraftportfoliocontrolid": "overdraftPortfolioControlId",
    "savingsreferenceaccountid": "savingsReferenceAccountId",
    "savingscontrolaccountid": "savingsControlAccountId",
    "transfersinsuspenseaccountid": "transfersInSuspenseAccountId",
    "interestonsavingsaccountid": "interestOnSavingsAccountId",
    "writeoffaccountid": "writeOffAccountId",
    "incomefromfeeaccountid": "incomeFromFeeAccountId",
    "incomefrompenaltyaccountid": "incomeFromPenaltyAccountId",
    "incomefrominterestid": "incomeFromInterestId",
    "accountingrule": "accountingRule",
    # clients
    "mobilenumber": "mobileNo",
    "externalid": "externalId",
    "lookupofficename": "officeName",
    "dateofbirth": "dateOfBirth",
    "activationdate": "activationDate",
    "lookupofficeopeneddate": "submittedOnDate",
    "officename": "officeName",
    "submittedondate": "submittedOnDate",
    "savingsproductid": "savingsProductId",
    # gl accounts
    "glcode": "glCode",
    "manualentriesallowed": "manualEntriesAllowed",
    "parentid": "parentId",
    "tagid": "tagId",
})

SAVINGS_PRODUCT_DEFAULTS = MappingProxyType({
    "nominalAnnualInterestRate": 0,
    "interestCompoundingPeriodType": 1,
    "interestPostingPeriodType": 4,
    "interestCalculationType": 1,
    "interestCalculationDaysInYearType": 365,
})

GL_ACCOUNT_DEFAULTS = MappingProxyType({
    "type": "ASSET",
    "usage": "DETAIL",
    "manualEntriesAllowed": True,
})

TELLER_STATUS_CODES = MappingProxyType({
    "active": 300,
    "inactive": 400,
    "closed": 600,
})

CURRENCY_ALIASES = ("currencies", "code", "currency", "currencyCode")

DEFAULT_CLIENT_OFFICE_ID = 1
DEFAULT_SAVINGS_PRODUCT_ID = 1
LEGAL_FORM_PERSON = 1


@dataclass(frozen=True)
class ProjectionContext:
    locale: str
    date_format: str
    today: date


@dataclass(frozen=True)
class ProjectedRow:
    """A payload ready for delivery plus what is needed to reconcile it."""
    entity_type: EntityType
    row_number: int
    label: str
    natural_key: Optional[str]
    payload: Mapping[str, Any]
    permissions: Optional[str] = None


@dataclass(frozen=True)
class RowRejected:
    row_number: int
    reason: str


ProjectionResult = Union[ProjectedRow, RowRejected]


class PayloadBuilder:
    """Ordered "set / set if absent / rename / drop" steps over a base mapping.

    `build()` freezes the result (nested mappings included); the builder is
    not used after that.
    """

    def __init__(self, base: Optional[Mapping[str, Any]] = None):
        self._data: dict[str, Any] = dict(base or {})

    def set(self, key: str, value: Any) -> "PayloadBuilder":
        self._data[key] = value
        return self

    def set_if_present(self, key: str, value: Any) -> "PayloadBuilder":
        if value is not None:
            self._data[key] = value
        return self

    def set_default(self, key: str, value: Any) -> "PayloadBuilder":
        self._data.setdefault(key, value)
        return self

    def set_defaults(self, defaults: Mapping[str, Any]) -> "PayloadBuilder":
        for key, value in defaults.items():
            self._data.setdefault(key, value)
        return self

    def rename(self, old: str, new: str) -> "PayloadBuilder":
        if old in self._data:
            self._data[new] = self._data.pop(old)
        return self

    def drop(self, *keys: str) -> "PayloadBuilder":
        for key in keys:
            self._data.pop(key, None)
        return self

    def build(self) -> Mapping[str, Any]:
        return _freeze(self._data)


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Turn a frozen payload back into plain dicts/lists for JSON encoding."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(v) for v in value]
    return value


class RowReader:
    """Reads fields from a row by header alias, or by position when headerless."""

    def __init__(self, row: Sequence[Cell], header: HeaderMap):
        self.row = row
        self.header = header

    def cell(self, aliases: Sequence[str], position: int) -> Optional[Cell]:
        if self.header.is_headerless:
            return cell_at(self.row, position)
        return cell_at(self.row, self.header.index_of(aliases))

    def value(self, aliases: Sequence[str], position: int) -> Any:
        return normalize_cell(self.cell(aliases, position))

    def text(self, aliases: Sequence[str], position: int) -> Optional[str]:
        """Stripped text of the field; None when blank."""
        text = as_text(self.value(aliases, position))
        if text is None:
            return None
        text = text.strip()
        return text or None


def project_columns(row: Sequence[Cell], header: HeaderMap) -> dict[str, Any]:
    """Project every headed column, renaming keys through FIELD_RENAMES."""
    projected: dict[str, Any] = {}
    for key, idx in sorted(header.columns.items(), key=lambda item: item[1]):
        value = normalize_cell(cell_at(row, idx))
        if value is None:
            continue
        if isinstance(value, date):
            value = as_long_date(value)
        projected[FIELD_RENAMES.get(key, key)] = value
    return projected


# ---------------------------------------------------------------------------
# Currencies (many rows -> one payload)
# ---------------------------------------------------------------------------

def project_currency_codes(sheet: Sheet, header: HeaderMap) -> list[tuple[int, str]]:
    """Collect (row number, code) pairs in row order, blanks excluded."""
    codes: list[tuple[int, str]] = []
    for idx in range(header.data_start, len(sheet.rows)):
        row = sheet.rows[idx]
        if is_blank_row(row):
            continue
        if header.is_headerless:
            # First non-empty text cell of the row
            value = next(
                (v for v in (normalize_cell(c) for c in row) if v is not None),
                None,
            )
            code = value.strip() if isinstance(value, str) else None
        else:
            code = RowReader(row, header).text(CURRENCY_ALIASES, 0)
        if code:
            codes.append((idx + 1, code))
    return codes


def build_currencies_payload(codes: Sequence[str]) -> Mapping[str, Any]:
    return PayloadBuilder().set("currencies", list(codes)).build()


# ---------------------------------------------------------------------------
# Per-row projectors
# ---------------------------------------------------------------------------

def _project_payment_type(reader: RowReader, row_number: int) -> ProjectionResult:
    name = reader.text(("name", "paymentType", "payment"), 0)
    if not name:
        return RowRejected(row_number, "name is blank")
    payload = (
        PayloadBuilder()
        .set("name", name)
        .set_if_present("description", reader.text(("description", "desc"), 1))
        .set_if_present("isCashPayment", as_bool(reader.value(("isCashPayment", "cash", "isCash"), 2)))
        .set_if_present("position", reader.text(("position", "order", "pos"), 3))
        .build()
    )
    return ProjectedRow(EntityType.PAYMENT_TYPES, row_number, name, name, payload)


def _project_role(reader: RowReader, row_number: int) -> ProjectionResult:
    name = reader.text(("name", "rolename"), 0)
    if not name:
        return RowRejected(row_number, "name is blank")
    payload = (
        PayloadBuilder()
        .set("name", name)
        .set_if_present("description", reader.text(("description",), 1))
        .build()
    )
    permissions = reader.text(("permissions",), 2)
    return ProjectedRow(EntityType.ROLES, row_number, name, name, payload, permissions=permissions)


def _project_savings_product(reader: RowReader, row_number: int, ctx: ProjectionContext) -> ProjectionResult:
    name = reader.text(("name", "productName", "savingsName"), 0)
    if not name:
        return RowRejected(row_number, "name is blank")

    base = {} if reader.header.is_headerless else project_columns(reader.row, reader.header)
    builder = PayloadBuilder(base).drop("productname", "savingsname").set("name", name)

    currency_code = reader.text(("currencyCode", "currency"), 1)
    if currency_code:
        builder.set("currencyCode", currency_code).drop("currency")
    else:
        builder.rename("currency", "currencyCode")

    payload = (
        builder
        .set_defaults(SAVINGS_PRODUCT_DEFAULTS)
        .set_default("locale", ctx.locale)
        .build()
    )
    return ProjectedRow(EntityType.SAVINGS_PRODUCTS, row_number, name, name, payload)


def _teller_date(reader: RowReader, aliases: Sequence[str], position: int, field: str, name: str) -> Optional[str]:
    value = reader.value(aliases, position)
    try:
        return as_long_date(value)
    except ValueError as e:
        logger.warning(f"Failed to parse {field} for teller '{name}': {e}")
        return None


def _teller_status(text: Optional[str], name: str) -> Optional[int]:
    if not text:
        return None
    code = TELLER_STATUS_CODES.get(text.lower())
    if code is not None:
        return code
    code = as_int(text)
    if code is None:
        logger.warning(
            f"Unknown status value '{text}' for teller '{name}', must be "
            f"ACTIVE, INACTIVE, CLOSED, or a numeric code"
        )
    return code


def _project_teller(reader: RowReader, row_number: int, ctx: ProjectionContext) -> ProjectionResult:
    name = reader.text(("tellername", "name", "teller"), 0)
    if not name:
        return RowRejected(row_number, "name is blank")

    builder = PayloadBuilder().set("name", name)

    office_text = reader.text(("office", "officeId"), 1)
    if office_text:
        office_id = as_int(office_text)
        if office_id is None:
            logger.warning(f"Invalid officeId '{office_text}' for teller '{name}', must be a number")
        builder.set_if_present("officeId", office_id)

    builder.set_if_present("description", reader.text(("description", "desc"), 2))

    start_date = _teller_date(reader, ("startedon", "startdate", "start"), 3, "startDate", name)
    if start_date is None:
        logger.warning(f"Teller '{name}' has no usable startDate; the API requires one")
    builder.set_if_present("startDate", start_date)
    builder.set_if_present("endDate", _teller_date(reader, ("enddate", "end"), 4, "endDate", name))
    builder.set_if_present("status", _teller_status(reader.text(("status",), 5), name))

    payload = (
        builder
        .set("locale", ctx.locale)
        .set("dateFormat", ctx.date_format)
        .build()
    )
    return ProjectedRow(EntityType.TELLERS, row_number, name, name, payload)


def _project_client(reader: RowReader, row_number: int, ctx: ProjectionContext) -> ProjectionResult:
    firstname = reader.text(("firstname", "first"), 0)
    lastname = reader.text(("lastname", "last"), 1)
    if not firstname or not lastname:
        return RowRejected(row_number, "firstname or lastname is blank")

    office_id = as_int(reader.text(("officeId", "office"), 2))
    savings_product_id = as_int(reader.text(("savingsProductId", "savingsProduct"), 3))
    external_id = reader.text(("externalId", "external"), 4)
    today = as_long_date(ctx.today)

    payload = (
        PayloadBuilder()
        .set("officeId", office_id if office_id is not None else DEFAULT_CLIENT_OFFICE_ID)
        .set("firstname", firstname)
        .set("lastname", lastname)
        .set("active", True)
        .set("locale", ctx.locale)
        .set("dateFormat", ctx.date_format)
        .set("legalFormId", LEGAL_FORM_PERSON)
        .set_if_present("externalId", external_id)
        .set("savingsProductId", savings_product_id if savings_product_id is not None else DEFAULT_SAVINGS_PRODUCT_ID)
        .set("activationDate", today)
        .set("submittedOnDate", today)
        .build()
    )
    label = f"{firstname} {lastname}"
    return ProjectedRow(EntityType.CLIENTS, row_number, label, external_id, payload)


def _project_gl_account(reader: RowReader, row_number: int, ctx: ProjectionContext) -> ProjectionResult:
    name = reader.text(("name", "accountname", "glname"), 0)
    gl_code = reader.text(("glcode", "code"), 1)
    if not name or not gl_code:
        return RowRejected(row_number, "name or glCode is blank")

    base = {} if reader.header.is_headerless else project_columns(reader.row, reader.header)
    payload = (
        PayloadBuilder(base)
        .drop("accountname", "glname", "code")
        .set("name", name)
        .set("glCode", gl_code)
        .set_defaults(GL_ACCOUNT_DEFAULTS)
        .set_default("description", name)
        .set_default("locale", ctx.locale)
        .build()
    )
    return ProjectedRow(EntityType.CHART_OF_ACCOUNTS, row_number, f"{name} ({gl_code})", gl_code, payload)


def project_row(
    entity_type: EntityType,
    row: Sequence[Cell],
    row_number: int,
    header: HeaderMap,
    ctx: ProjectionContext,
) -> ProjectionResult:
    """Project one row for a per-row entity type."""
    reader = RowReader(row, header)
    if entity_type == EntityType.PAYMENT_TYPES:
        return _project_payment_type(reader, row_number)
    if entity_type == EntityType.ROLES:
        return _project_role(reader, row_number)
    if entity_type == EntityType.SAVINGS_PRODUCTS:
        return _project_savings_product(reader, row_number, ctx)
    if entity_type == EntityType.TELLERS:
        return _project_teller(reader, row_number, ctx)
    if entity_type == EntityType.CLIENTS:
        return _project_client(reader, row_number, ctx)
    if entity_type == EntityType.CHART_OF_ACCOUNTS:
        return _project_gl_account(reader, row_number, ctx)
    if entity_type == EntityType.CURRENCIES:
        raise ValueError("Currencies are projected per sheet, not per row")
    raise ValueError(f"Unhandled entity type: {entity_type}")


# ---------------------------------------------------------------------------
# Role permissions
# ---------------------------------------------------------------------------

def parse_permission_tokens(text: Optional[str]) -> list[str]:
    if not text:
        return []
    return [token.strip() for token in text.split(",") if token.strip()]


def select_permissions(tokens: Sequence[str], available: frozenset[str]) -> tuple[list[str], list[str]]:
    """Split requested permission codes into (known, unknown), order kept."""
    granted: list[str] = []
    dropped: list[str] = []
    for token in tokens:
        if token in available:
            if token not in granted:
                granted.append(token)
        else:
            dropped.append(token)
    return granted, dropped


def build_permissions_payload(granted: Sequence[str]) -> Mapping[str, Any]:
    return PayloadBuilder().set("permissions", {perm: True for perm in granted}).build()
