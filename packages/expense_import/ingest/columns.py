"""Header-based column auto-detection for tabular statements."""

from __future__ import annotations

import re
from collections.abc import Sequence

from ..models import ColumnMapping

_DATE_RE = re.compile(r"date|posted|trans.*date", re.IGNORECASE)
_MERCHANT_RE = re.compile(r"description|merchant|vendor|payee|memo", re.IGNORECASE)
_BALANCE_RE = re.compile(r"balance|running|bal\.|bal$", re.IGNORECASE)
_AMOUNT_RE = re.compile(r"^(amount|debit|credit|total|amt)$", re.IGNORECASE)


def detect_column_mapping(headers: Sequence[str]) -> ColumnMapping | None:
    """Pick the date, merchant and amount columns from ``headers``.

    Balance-like headers are never chosen as the amount column. Returns
    ``None`` when any of the three cannot be found; callers then ask for a
    manual mapping.
    """

    date_col = next((h for h in headers if _DATE_RE.search(h)), None)
    merchant_col = next((h for h in headers if _MERCHANT_RE.search(h)), None)
    amount_col = next(
        (
            h
            for h in headers
            if not _BALANCE_RE.search(h.strip()) and _AMOUNT_RE.match(h.strip())
        ),
        None,
    )
    if date_col is None or merchant_col is None or amount_col is None:
        return None
    return ColumnMapping(date=date_col, merchant=merchant_col, amount=amount_col)


__all__ = ["detect_column_mapping"]
