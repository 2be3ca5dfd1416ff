"""Header Mapper — normalized column name to column index for one sheet."""

import logging
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence

from fineract_seed.core.cells import Cell, as_text, normalize_cell
from fineract_seed.core.workbook_reader import Sheet

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")


def normalize_key(text: Any) -> str:
    """Strip everything but ASCII letters/digits and lower-case the rest."""
    if text is None:
        return ""
    return _NON_ALNUM_RE.sub("", str(text)).lower()


def is_blank_row(row: Optional[Sequence[Cell]]) -> bool:
    if not row:
        return True
    for cell in row:
        value = normalize_cell(cell)
        if value is not None and str(value).strip():
            return False
    return True


def find_first_non_empty_row(sheet: Sheet) -> int:
    """Index of the first row holding any value; 0 for an empty sheet."""
    for idx, row in enumerate(sheet.rows):
        if not is_blank_row(row):
            return idx
    return 0


@dataclass(frozen=True)
class HeaderMap:
    """Immutable header lookup built once per sheet.

    `header_row` is the index of the row the keys were read from. When no
    usable header exists `columns` is empty and data starts at that row.
    """
    columns: Mapping[str, int]
    header_row: int

    @property
    def is_headerless(self) -> bool:
        return not self.columns

    @property
    def data_start(self) -> int:
        return self.header_row if self.is_headerless else self.header_row + 1

    def keys(self) -> frozenset[str]:
        return frozenset(self.columns)

    def __contains__(self, key: str) -> bool:
        return key in self.columns

    def index_of(self, aliases: Sequence[str]) -> Optional[int]:
        """Column index of the first alias present in the header, if any."""
        for alias in aliases:
            idx = self.columns.get(normalize_key(alias))
            if idx is not None:
                return idx
        return None


def build_header_map(headers: Sequence[Cell], header_row: int = 0, sheet_name: str = "") -> HeaderMap:
    """Map normalized header text to its 0-based column index.

    When two columns normalize to the same key the later one wins.
    """
    columns: dict[str, int] = {}
    for idx, cell in enumerate(headers):
        text = as_text(normalize_cell(cell))
        key = normalize_key(text)
        if not key:
            continue
        if key in columns:
            logger.warning(
                f"Sheet '{sheet_name}': duplicate header '{key}' in columns "
                f"{columns[key]} and {idx}; using column {idx}"
            )
        columns[key] = idx
    if columns:
        logger.info(f"Sheet '{sheet_name}': detected header columns {sorted(columns)}")
    return HeaderMap(columns=MappingProxyType(columns), header_row=header_row)


def read_header_map(sheet: Sheet) -> HeaderMap:
    """Build the header map from the sheet's first non-empty row."""
    first = find_first_non_empty_row(sheet)
    if first >= len(sheet.rows):
        return HeaderMap(columns=MappingProxyType({}), header_row=first)
    return build_header_map(sheet.rows[first], header_row=first, sheet_name=sheet.name)


def cell_at(row: Sequence[Cell], idx: Optional[int]) -> Optional[Cell]:
    if idx is None or idx < 0 or idx >= len(row):
        return None
    return row[idx]
