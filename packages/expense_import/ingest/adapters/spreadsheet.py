"""Adapters for spreadsheet statements (first worksheet only).

The first row holds the headers; remaining rows go through the same column
mapping as delimited text. Cells may already be typed (dates, numbers), which
the shared row conversion accepts as-is.

- ``.xlsx`` workbooks are read with openpyxl
- legacy BIFF ``.xls`` workbooks are read with xlrd
"""

from __future__ import annotations

import zipfile
from collections.abc import Sequence
from io import BytesIO
from typing import Any

import xlrd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from xlrd.compdoc import CompDocError

from ...errors import ParseError
from ...models import ColumnMapping, ParseResult
from ..records import parse_rows

_XLS_EMPTY_TYPES = (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR)


def _header_text(value: Any, idx: int) -> str:
    if value is None:
        return f"Column {idx + 1}"
    return str(value).strip()


def _to_result(
    values: list[Sequence[Any]], fmt: str, manual_mapping: ColumnMapping | None
) -> ParseResult:
    values = [row for row in values if any(c not in (None, "") for c in row)]
    if not values:
        raise ParseError("Empty spreadsheet")

    headers = [_header_text(v, i) for i, v in enumerate(values[0])]
    rows = [
        {headers[i]: cell for i, cell in enumerate(raw) if i < len(headers)} for raw in values[1:]
    ]
    return parse_rows(headers, rows, fmt=fmt, manual_mapping=manual_mapping)


def parse_spreadsheet(data: bytes, manual_mapping: ColumnMapping | None = None) -> ParseResult:
    """Parse the first worksheet of an ``.xlsx`` workbook.

    Raises
    ------
    ParseError
        When the workbook cannot be opened or the first sheet is empty.
    """

    try:
        wb = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise ParseError(f"Unreadable spreadsheet: {e}") from e

    try:
        ws = wb.worksheets[0] if wb.worksheets else None
        if ws is None:
            raise ParseError("Empty spreadsheet")
        values = list(ws.iter_rows(values_only=True))
    finally:
        wb.close()

    return _to_result(values, "xlsx", manual_mapping)


def _xls_cell(cell: Any, datemode: int) -> Any:
    if cell.ctype in _XLS_EMPTY_TYPES:
        return None
    if cell.ctype == xlrd.XL_CELL_DATE:
        try:
            return xlrd.xldate.xldate_as_datetime(cell.value, datemode)
        except xlrd.xldate.XLDateError:
            return cell.value
    return cell.value


def parse_legacy_spreadsheet(
    data: bytes, manual_mapping: ColumnMapping | None = None
) -> ParseResult:
    """Parse the first worksheet of a legacy ``.xls`` workbook.

    Date cells come back as ``datetime`` using the workbook's date mode;
    numbers are floats.

    Raises
    ------
    ParseError
        When the workbook cannot be opened or the first sheet is empty.
    """

    try:
        book = xlrd.open_workbook(file_contents=data, on_demand=True)
    except (xlrd.XLRDError, CompDocError, OSError) as e:
        raise ParseError(f"Unreadable spreadsheet: {e}") from e

    try:
        if book.nsheets == 0:
            raise ParseError("Empty spreadsheet")
        sheet = book.sheet_by_index(0)
        values = [
            [_xls_cell(cell, book.datemode) for cell in sheet.row(i)] for i in range(sheet.nrows)
        ]
    finally:
        book.release_resources()

    return _to_result(values, "xls", manual_mapping)


__all__ = ["parse_spreadsheet", "parse_legacy_spreadsheet"]
