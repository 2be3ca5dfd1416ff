"""Cell Value Normalizer.

Turns the typed cells produced by the workbook reader into canonical scalars
(str, int, float, bool, date or None) and renders dates the way the Fineract
API expects them: "<day> <MonthName> <year>" with English month names, no
matter what the host locale is.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

_SHORT_DATE_RE = re.compile(r"^(\d{2})/(\d{2})/(\d{2})$")

_TRUE_TOKENS = frozenset({"true", "yes", "1"})


class CellKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    FORMULA = "formula"
    BLANK = "blank"
    ERROR = "error"


@dataclass(frozen=True)
class Cell:
    """A single spreadsheet cell as yielded by the reader.

    For FORMULA cells `value` holds the formula text and `cached_value` the
    last result the spreadsheet application stored.
    """
    kind: CellKind
    value: Any = None
    cached_value: Any = None


BLANK = Cell(CellKind.BLANK)


def _normalize_number(value: Any) -> Optional[Any]:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        if value.is_integer():
            return int(value)
        return value
    return None


def _normalize_formula(cell: Cell) -> Optional[Any]:
    cached = cell.cached_value
    if isinstance(cached, str):
        return cached if cached.strip() else None
    if isinstance(cached, (int, float)) and not isinstance(cached, bool):
        return _normalize_number(cached)
    return None


def normalize_cell(cell: Optional[Cell]) -> Optional[Any]:
    """Return the canonical scalar for a cell, or None for empty cells.

    Never raises: an unsupported or broken cell yields None so a single bad
    cell cannot abort a row.
    """
    if cell is None:
        return None
    try:
        if cell.kind == CellKind.STRING:
            if cell.value is None:
                return None
            text = str(cell.value)
            return text if text.strip() else None
        if cell.kind == CellKind.NUMBER:
            return _normalize_number(cell.value)
        if cell.kind == CellKind.BOOLEAN:
            return bool(cell.value)
        if cell.kind == CellKind.DATE:
            if isinstance(cell.value, datetime):
                return cell.value.date()
            if isinstance(cell.value, date):
                return cell.value
            return None
        if cell.kind == CellKind.FORMULA:
            return _normalize_formula(cell)
    except Exception as e:
        logger.debug(f"Could not normalize cell {cell!r}: {e}")
    return None


def format_long_date(value: date) -> str:
    """Render a date as "d MMMM yyyy", e.g. "5 March 2025"."""
    return f"{value.day} {MONTH_NAMES[value.month - 1]} {value.year}"


def parse_short_date(text: str) -> Optional[date]:
    """Parse the "MM/dd/yy" pattern used by the templates (years are 20yy)."""
    match = _SHORT_DATE_RE.match(text.strip())
    if not match:
        return None
    month, day, year = (int(part) for part in match.groups())
    try:
        return date(2000 + year, month, day)
    except ValueError:
        return None


def as_text(value: Any) -> Optional[str]:
    """Render a normalized scalar as text the way a template author typed it."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, date):
        return format_long_date(value)
    return str(value)


def as_bool(value: Any) -> Optional[bool]:
    """Interpret "true"/"yes"/"1" (any case) as True, anything else as False."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_TOKENS


def as_int(value: Any) -> Optional[int]:
    """Parse an integer from a normalized scalar; None when it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def as_long_date(value: Any) -> Optional[str]:
    """Convert a date cell value or "MM/dd/yy" text to the long date form.

    Any other text is passed through stripped, assuming it is already in the
    API's format.
    """
    if value is None:
        return None
    if isinstance(value, date):
        return format_long_date(value)
    text = str(value).strip()
    if not text:
        return None
    if _SHORT_DATE_RE.match(text):
        parsed = parse_short_date(text)
        if parsed is None:
            raise ValueError(f"invalid date '{text}'")
        return format_long_date(parsed)
    return text
