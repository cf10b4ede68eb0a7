"""Adapter for delimited-text (CSV) statement exports.

Parsing follows RFC 4180 via the stdlib :mod:`csv` module. Columns are chosen
by header name (see ``ingest.columns``); rows missing any mapped field are
skipped rather than failing the file.
"""

from __future__ import annotations

import csv
from io import StringIO

from ...errors import ParseError
from ...models import ColumnMapping, ParseResult
from ..records import parse_rows


def _decode(data: bytes) -> str:
    # utf-8-sig drops a leading BOM that some banks emit
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def parse_delimited(data: bytes, manual_mapping: ColumnMapping | None = None) -> ParseResult:
    text = _decode(data)
    with StringIO(text, newline="") as f:
        reader = csv.DictReader(f)
        try:
            headers = [h.strip() for h in (reader.fieldnames or []) if h is not None]
            rows = [
                {(k or "").strip(): v for k, v in row.items()}
                for row in reader
                if any((v or "").strip() for v in row.values() if isinstance(v, str))
            ]
        except csv.Error as e:
            raise ParseError(f"Malformed CSV: {e}") from e
    if not headers:
        return ParseResult(transactions=(), format="csv", headers=(), needs_mapping=True)
    return parse_rows(headers, rows, fmt="csv", manual_mapping=manual_mapping)


__all__ = ["parse_delimited"]
