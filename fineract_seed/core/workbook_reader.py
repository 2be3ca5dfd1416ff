"""Workbook Reader — turns .xlsx/.xls bytes into sheets of typed cells.

.xlsx/.xlsm files are read with openpyxl, legacy BIFF .xls files with xlrd.
openpyxl only exposes either formulas or their cached results per load, so
modern workbooks are opened twice and formula cells carry both.
"""

import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

import openpyxl
import xlrd

from fineract_seed.core.cells import Cell, CellKind

logger = logging.getLogger(__name__)

XLS_SUFFIXES = (".xls",)
XLSX_SUFFIXES = (".xlsx", ".xlsm")
WORKBOOK_SUFFIXES = XLS_SUFFIXES + XLSX_SUFFIXES


class WorkbookReadError(Exception):
    """Raised when a file cannot be decoded as a spreadsheet."""


@dataclass
class Sheet:
    name: str
    rows: list[list[Cell]] = field(default_factory=list)


@dataclass
class Workbook:
    name: str
    sheets: list[Sheet] = field(default_factory=list)


def _openpyxl_cell(cell, cached: Any) -> Cell:
    """Convert an openpyxl cell (formula-mode load) plus its cached value."""
    value = cell.value
    if value is None:
        return Cell(CellKind.BLANK)
    data_type = cell.data_type
    if data_type == "f":
        return Cell(CellKind.FORMULA, value=str(value), cached_value=cached)
    if data_type == "e":
        return Cell(CellKind.ERROR, value=value)
    if isinstance(value, bool):
        return Cell(CellKind.BOOLEAN, value=value)
    if isinstance(value, (datetime, date)):
        return Cell(CellKind.DATE, value=value)
    if isinstance(value, time):
        # Time-only cells carry no calendar date
        return Cell(CellKind.STRING, value=value.isoformat())
    if isinstance(value, (int, float)):
        return Cell(CellKind.NUMBER, value=value)
    return Cell(CellKind.STRING, value=str(value))


def _read_openpyxl(name: str, content: bytes) -> Workbook:
    wb_formulas = openpyxl.load_workbook(io.BytesIO(content), data_only=False)
    wb_values = openpyxl.load_workbook(io.BytesIO(content), data_only=True)
    try:
        workbook = Workbook(name=name)
        for ws in wb_formulas.worksheets:
            ws_values = wb_values[ws.title]
            cached_rows = list(ws_values.iter_rows(values_only=True))
            rows = []
            for r, row in enumerate(ws.iter_rows()):
                cached_row = cached_rows[r] if r < len(cached_rows) else ()
                cells = []
                for c, cell in enumerate(row):
                    cached = cached_row[c] if c < len(cached_row) else None
                    cells.append(_openpyxl_cell(cell, cached))
                rows.append(cells)
            workbook.sheets.append(Sheet(name=ws.title, rows=rows))
        return workbook
    finally:
        wb_formulas.close()
        wb_values.close()


def _xlrd_cell(ctype: int, value: Any, datemode: int) -> Cell:
    if ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return Cell(CellKind.BLANK)
    if ctype == xlrd.XL_CELL_TEXT:
        return Cell(CellKind.STRING, value=value)
    if ctype == xlrd.XL_CELL_NUMBER:
        return Cell(CellKind.NUMBER, value=value)
    if ctype == xlrd.XL_CELL_BOOLEAN:
        return Cell(CellKind.BOOLEAN, value=bool(value))
    if ctype == xlrd.XL_CELL_DATE:
        try:
            return Cell(CellKind.DATE, value=xlrd.xldate_as_datetime(value, datemode))
        except (xlrd.xldate.XLDateError, ValueError, OverflowError):
            return Cell(CellKind.ERROR, value=value)
    return Cell(CellKind.ERROR, value=value)


def _read_xlrd(name: str, content: bytes) -> Workbook:
    book = xlrd.open_workbook(file_contents=content)
    try:
        workbook = Workbook(name=name)
        for ws in book.sheets():
            rows = []
            for r in range(ws.nrows):
                rows.append([
                    _xlrd_cell(ws.cell_type(r, c), ws.cell_value(r, c), book.datemode)
                    for c in range(ws.row_len(r))
                ])
            workbook.sheets.append(Sheet(name=ws.name, rows=rows))
        return workbook
    finally:
        book.release_resources()


def load_workbook_bytes(name: str, content: bytes) -> Workbook:
    """Decode workbook bytes; the file name's suffix selects the reader."""
    suffix = Path(name).suffix.lower()
    try:
        if suffix in XLS_SUFFIXES:
            return _read_xlrd(name, content)
        if suffix in XLSX_SUFFIXES:
            return _read_openpyxl(name, content)
    except Exception as e:
        raise WorkbookReadError(f"Cannot read workbook {name}: {e}") from e
    raise WorkbookReadError(f"Unsupported workbook format: {name}")


def load_workbook(path: Path) -> Workbook:
    """Read a workbook file from disk."""
    try:
        content = path.read_bytes()
    except OSError as e:
        raise WorkbookReadError(f"Cannot open workbook {path}: {e}") from e
    workbook = load_workbook_bytes(path.name, content)
    logger.info(f"Loaded workbook {path.name} with {len(workbook.sheets)} sheet(s)")
    return workbook
