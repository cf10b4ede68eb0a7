from __future__ import annotations

import csv
import datetime as dt
import io
from decimal import Decimal

import pytest

from db.client import session_scope
from expense_import.models import TransactionFilters
from expense_import.reports import EXPORT_COLUMNS, dashboard_stats, export_transactions_csv
from tests.helpers.db import seed_transactions

JAN = dt.date(2024, 1, 10)
FEB = dt.date(2024, 2, 10)


@pytest.fixture
def seeded(db_url: str) -> str:
    seed_transactions(
        db_url,
        [
            dict(date=JAN, merchant="CAFE ROMA", amount="10.00", category="Dining"),
            dict(date=FEB, merchant="CAFE ROMA", amount="30.00", category="Dining"),
            dict(
                date=FEB,
                merchant="MARCHE BIO",
                amount="50.00",
                category="Groceries",
                currency="EUR",
                exchange_rate=1.2,
            ),
            dict(
                date=FEB,
                merchant="ONLINE TRANSFER TO SAVINGS",
                amount="500.00",
                transaction_kind="transfer",
            ),
        ],
    )
    return db_url


def test_dashboard_stats_counts_purchases_only(seeded: str) -> None:
    with session_scope(database_url=seeded) as session:
        stats = dashboard_stats(session)

    assert stats.total_spent == Decimal("100.00")
    assert stats.transaction_count == 3
    assert stats.average_amount == Decimal("33.33")
    assert stats.top_category == "Groceries"
    assert stats.category_totals == {"Dining": Decimal("40.00"), "Groceries": Decimal("60.00")}
    assert stats.category_percentages["Dining"] == pytest.approx(40.0)
    assert stats.category_percentages["Groceries"] == pytest.approx(60.0)
    assert stats.currency_breakdown == {"USD": Decimal("40.00"), "EUR": Decimal("50.00")}


def test_dashboard_stats_respects_date_range(seeded: str) -> None:
    with session_scope(database_url=seeded) as session:
        january = dashboard_stats(session, date_to=dt.date(2024, 1, 31))
        empty = dashboard_stats(session, date_from=dt.date(2025, 1, 1))

    assert january.total_spent == Decimal("10.00")
    assert january.top_category == "Dining"
    assert empty.transaction_count == 0
    assert empty.total_spent == Decimal("0.00")
    assert empty.top_category is None
    assert empty.category_totals == {}


def test_top_category_ties_break_alphabetically(db_url: str) -> None:
    seed_transactions(
        db_url,
        [
            dict(date=JAN, merchant="B", amount="5.00", category="Shopping"),
            dict(date=JAN, merchant="A", amount="5.00", category="Entertainment"),
        ],
    )
    with session_scope(database_url=db_url) as session:
        assert dashboard_stats(session).top_category == "Entertainment"


def test_export_csv(seeded: str) -> None:
    with session_scope(database_url=seeded) as session:
        text = export_transactions_csv(session, TransactionFilters(currency="EUR"))

    rows = list(csv.DictReader(io.StringIO(text)))
    assert tuple(rows[0].keys()) == EXPORT_COLUMNS
    [row] = rows
    assert row["merchant"] == "MARCHE BIO"
    assert row["original_amount"] == "50.00"
    assert row["exchange_rate"] == "1.200000"
    assert row["usd_amount"] == "60.00"
    assert row["fx_status"] == "converted"
    assert row["source_file"] == ""


def test_export_csv_with_no_rows_has_header_only(db_url: str) -> None:
    with session_scope(database_url=db_url) as session:
        text = export_transactions_csv(session)
    assert text == ",".join(EXPORT_COLUMNS) + "\n"


def test_unconverted_rows_stay_out_of_base_currency_totals(db_url: str) -> None:
    seed_transactions(
        db_url,
        [
            dict(date=JAN, merchant="CAFE ROMA", amount="10.00", category="Dining"),
            dict(
                date=JAN,
                merchant="HOTEL LUMIERE",
                amount="1000.00",
                category="Travel",
                currency="EUR",
                fx_status="unconverted",
            ),
        ],
    )
    with session_scope(database_url=db_url) as session:
        stats = dashboard_stats(session)

    assert stats.total_spent == Decimal("10.00")
    assert stats.transaction_count == 1
    assert stats.top_category == "Dining"
    assert stats.category_totals == {"Dining": Decimal("10.00")}
    assert stats.unconverted_count == 1
    assert stats.currency_breakdown == {"USD": Decimal("10.00"), "EUR": Decimal("1000.00")}


def test_only_unconverted_rows_report_zero_spend(db_url: str) -> None:
    seed_transactions(
        db_url,
        [
            dict(
                date=JAN,
                merchant="HOTEL LUMIERE",
                amount="80.00",
                currency="EUR",
                fx_status="unconverted",
            )
        ],
    )
    with session_scope(database_url=db_url) as session:
        stats = dashboard_stats(session)

    assert stats.total_spent == Decimal("0.00")
    assert stats.top_category is None
    assert stats.unconverted_count == 1
    assert stats.currency_breakdown == {"EUR": Decimal("80.00")}
