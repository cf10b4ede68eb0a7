"""Read-side summaries over stored transactions.

- :func:`dashboard_stats`: spend totals per category over purchases, always in
  the base currency, plus native totals per original currency
- :func:`export_transactions_csv`: filtered listing as CSV text
"""

from __future__ import annotations

import csv
import datetime as dt
import io
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.models.finance import EiTransaction

from .categories import TransactionKind
from .models import TransactionFilters
from .normalizers import normalize_date_to_iso
from .persistence import list_transactions

_CENT = Decimal("0.01")

EXPORT_COLUMNS: tuple[str, ...] = (
    "id",
    "date",
    "merchant",
    "amount",
    "category",
    "transaction_kind",
    "original_currency",
    "original_amount",
    "exchange_rate",
    "usd_amount",
    "fx_status",
    "raw_description",
    "source_file",
)


@dataclass(frozen=True, slots=True)
class DashboardStats:
    total_spent: Decimal
    transaction_count: int
    average_amount: Decimal
    top_category: str | None
    category_totals: Mapping[str, Decimal] = field(default_factory=dict)
    category_percentages: Mapping[str, float] = field(default_factory=dict)
    currency_breakdown: Mapping[str, Decimal] = field(default_factory=dict)
    unconverted_count: int = 0


def _date_bounds(stmt, date_from: dt.date | None, date_to: dt.date | None):
    if date_from is not None:
        stmt = stmt.where(EiTransaction.date >= date_from)
    if date_to is not None:
        stmt = stmt.where(EiTransaction.date <= date_to)
    return stmt


def dashboard_stats(
    session: Session,
    date_from: dt.date | None = None,
    date_to: dt.date | None = None,
) -> DashboardStats:
    """Summarize purchase spend between ``date_from`` and ``date_to`` (inclusive).

    Transfers and income are excluded. Rows whose rate lookup failed
    (``fx_status == "unconverted"``) hold a native amount in ``usd_amount``, so
    they stay out of every base-currency figure; they appear only in
    ``currency_breakdown`` and are counted in ``unconverted_count``.
    ``top_category`` is ``None`` when no converted purchase falls in range;
    ties resolve to the alphabetically first category.
    """

    is_purchase = EiTransaction.transaction_kind == TransactionKind.PURCHASE.value
    is_unconverted = EiTransaction.fx_status == "unconverted"

    by_currency = select(
        EiTransaction.original_currency, func.sum(EiTransaction.original_amount)
    ).where(is_purchase, EiTransaction.original_amount > 0)
    by_currency = _date_bounds(by_currency, date_from, date_to).group_by(
        EiTransaction.original_currency
    )
    breakdown = {
        code: Decimal(total).quantize(_CENT, rounding=ROUND_HALF_UP)
        for code, total in session.execute(by_currency)
    }

    unconverted = select(func.count(EiTransaction.id)).where(
        is_purchase, EiTransaction.original_amount > 0, is_unconverted
    )
    unconverted_count = int(
        session.execute(_date_bounds(unconverted, date_from, date_to)).scalar_one()
    )

    by_category = select(
        EiTransaction.category,
        func.sum(EiTransaction.usd_amount),
        func.count(EiTransaction.id),
    ).where(is_purchase, EiTransaction.usd_amount > 0, ~is_unconverted)
    by_category = _date_bounds(by_category, date_from, date_to).group_by(EiTransaction.category)

    totals: dict[str, Decimal] = {}
    count = 0
    for category, total, n in session.execute(by_category):
        totals[category] = Decimal(total).quantize(_CENT, rounding=ROUND_HALF_UP)
        count += int(n)

    if not totals:
        return DashboardStats(
            total_spent=Decimal("0.00"),
            transaction_count=0,
            average_amount=Decimal("0.00"),
            top_category=None,
            currency_breakdown=breakdown,
            unconverted_count=unconverted_count,
        )

    grand = sum(totals.values(), Decimal("0"))
    percentages = {c: float(t / grand * 100) if grand else 0.0 for c, t in totals.items()}
    top = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))[0][0]

    return DashboardStats(
        total_spent=grand,
        transaction_count=count,
        average_amount=(grand / count).quantize(_CENT, rounding=ROUND_HALF_UP),
        top_category=top,
        category_totals=totals,
        category_percentages=percentages,
        currency_breakdown=breakdown,
    )


def export_transactions_csv(session: Session, filters: TransactionFilters | None = None) -> str:
    """Return matching transactions as CSV text with a header row."""

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for tx in list_transactions(session, filters):
        writer.writerow(
            [
                tx.id,
                normalize_date_to_iso(tx.date),
                tx.merchant,
                f"{tx.amount:.2f}",
                tx.category.value,
                tx.transaction_kind.value,
                tx.original_currency,
                f"{tx.original_amount:.2f}",
                f"{tx.exchange_rate:.6f}",
                f"{tx.usd_amount:.2f}",
                tx.fx_status,
                tx.raw_description,
                tx.source_file or "",
            ]
        )
    return buf.getvalue()


__all__ = ["EXPORT_COLUMNS", "DashboardStats", "dashboard_stats", "export_transactions_csv"]
