from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest

from db.client import session_scope
from db.models.finance import EiMerchantMapping
from expense_import.categories import Category, TransactionKind
from expense_import.duplicates import find_duplicates
from expense_import.errors import TransactionNotFound
from expense_import.models import CanonicalTransaction, ParsedTransaction, TransactionFilters
from expense_import.persistence import (
    batch_update_transactions,
    delete_transaction,
    get_transaction,
    insert_transactions,
    list_transactions,
    lookup_cached_rate,
    lookup_manual_mapping,
    lookup_merchant_mapping,
    recategorize_merchant,
    update_transaction,
    upsert_exchange_rate,
    upsert_merchant_mapping,
    wipe_all_data,
)
from tests.helpers.db import seed_transaction

DAY = dt.date(2024, 1, 15)


def _canonical(merchant: str, amount: str, *, currency: str = "USD", rate: float = 1.0):
    original = Decimal(amount)
    usd = (original * Decimal(str(rate))).quantize(Decimal("0.01"))
    return CanonicalTransaction(
        date=DAY,
        merchant=merchant,
        amount=usd,
        raw_description=merchant,
        category=Category.DINING,
        transaction_kind=TransactionKind.PURCHASE,
        original_currency=currency,
        original_amount=original,
        exchange_rate=rate,
        usd_amount=usd,
        fx_status="identity" if currency == "USD" else "converted",
        source_file="test.csv",
    )


def _parsed(merchant: str, amount: str, on: dt.date = DAY) -> ParsedTransaction:
    return ParsedTransaction(
        date=on, merchant=merchant, amount=Decimal(amount), raw_description=merchant
    )


# ---- Transactions ------------------------------------------------------------


def test_insert_and_list_with_filters(db_url: str) -> None:
    with session_scope(database_url=db_url) as session:
        stored = insert_transactions(
            session,
            [
                _canonical("STARBUCKS #12345", "6.75"),
                _canonical("CAFE ROMA", "15.00", currency="EUR", rate=1.1),
            ],
        )
    assert all(tx.id is not None for tx in stored)
    assert stored[1].usd_amount == Decimal("16.50")

    with session_scope(database_url=db_url) as session:
        assert len(list_transactions(session)) == 2
        starbucks = list_transactions(session, TransactionFilters(search="starbucks"))
        assert [t.merchant for t in starbucks] == ["STARBUCKS #12345"]
        eur = list_transactions(session, TransactionFilters(currency="eur"))
        assert [t.original_currency for t in eur] == ["EUR"]
        later = list_transactions(session, TransactionFilters(date_from=DAY + dt.timedelta(1)))
        assert later == []


def test_get_missing_transaction_raises(db_url: str) -> None:
    with session_scope(database_url=db_url) as session, pytest.raises(TransactionNotFound):
        get_transaction(session, 999)


def test_update_recomputes_currency_triple(db_url: str) -> None:
    tx_id = seed_transaction(db_url, date=DAY, merchant="HOTEL PARIS", amount="10.00")

    with session_scope(database_url=db_url) as session:
        updated = update_transaction(
            session,
            tx_id,
            original_amount=Decimal("20.00"),
            original_currency="eur",
            exchange_rate=1.1,
        )

    assert updated.original_currency == "EUR"
    assert updated.original_amount == Decimal("20.00")
    assert updated.exchange_rate == pytest.approx(1.1)
    assert updated.usd_amount == Decimal("22.00")
    assert updated.amount == Decimal("22.00")
    assert updated.fx_status == "converted"


def test_update_to_foreign_currency_requires_rate(db_url: str) -> None:
    tx_id = seed_transaction(db_url, date=DAY, merchant="HOTEL PARIS", amount="10.00")
    with session_scope(database_url=db_url) as session, pytest.raises(ValueError):
        update_transaction(session, tx_id, original_currency="EUR")


def test_category_edit_overwrites_merchant_cache(db_url: str) -> None:
    tx_id = seed_transaction(db_url, date=DAY, merchant="GLORB", amount="10.00")
    with session_scope(database_url=db_url) as session:
        upsert_merchant_mapping(session, "GLORB", "Shopping", "purchase", source="llm")

    with session_scope(database_url=db_url) as session:
        updated = update_transaction(session, tx_id, category="travel")
    assert updated.category is Category.TRAVEL

    with session_scope(database_url=db_url) as session:
        cached = lookup_merchant_mapping(session, "glorb")
        assert cached is not None
        assert cached.category is Category.TRAVEL
        assert session.get(EiMerchantMapping, "GLORB").source == "manual"


def test_recategorize_merchant_updates_all_rows_case_insensitively(db_url: str) -> None:
    seed_transaction(db_url, date=DAY, merchant="glorb", amount="1.00")
    seed_transaction(db_url, date=DAY, merchant="GLORB", amount="2.00")
    seed_transaction(db_url, date=DAY, merchant="FLUMP", amount="3.00")

    with session_scope(database_url=db_url) as session:
        count = recategorize_merchant(session, "Glorb", Category.HOME_GARDEN)
    assert count == 2

    with session_scope(database_url=db_url) as session:
        cats = {t.merchant: t.category for t in list_transactions(session)}
        cached = lookup_merchant_mapping(session, "GLORB")
    assert cats == {
        "glorb": Category.HOME_GARDEN,
        "GLORB": Category.HOME_GARDEN,
        "FLUMP": Category.OTHER,
    }
    assert cached is not None and cached.kind is TransactionKind.PURCHASE


def test_batch_update_and_delete(db_url: str) -> None:
    ids = [
        seed_transaction(db_url, date=DAY, merchant=m, amount="1.00") for m in ("A1", "B2", "C3")
    ]
    with session_scope(database_url=db_url) as session:
        assert batch_update_transactions(session, ids[:2], transaction_kind="transfer") == 2
        assert batch_update_transactions(session, ids) == 0
        assert delete_transaction(session, ids[2]) is True
        assert delete_transaction(session, ids[2]) is False

    with session_scope(database_url=db_url) as session:
        kinds = sorted(t.transaction_kind.value for t in list_transactions(session))
    assert kinds == ["transfer", "transfer"]


# ---- Caches ------------------------------------------------------------------


def test_merchant_cache_last_write_wins(db_url: str) -> None:
    with session_scope(database_url=db_url) as session:
        upsert_merchant_mapping(session, "Glorb #1", "Shopping", "purchase")
    with session_scope(database_url=db_url) as session:
        upsert_merchant_mapping(session, "GLORB 1", "Dining", "purchase", source="manual")
    with session_scope(database_url=db_url) as session:
        cached = lookup_merchant_mapping(session, "glorb #1")
    assert cached is not None
    assert cached.category is Category.DINING
    assert cached.source == "cache"


def test_automatic_writes_never_replace_manual_mapping(db_url: str) -> None:
    with session_scope(database_url=db_url) as session:
        upsert_merchant_mapping(session, "KROGER #123", "Shopping", "purchase", source="manual")
    with session_scope(database_url=db_url) as session:
        upsert_merchant_mapping(session, "KROGER #123", "Groceries", "purchase", source="pattern")
        upsert_merchant_mapping(session, "KROGER #123", "Dining", "purchase", source="llm")
    with session_scope(database_url=db_url) as session:
        row = session.get(EiMerchantMapping, "KROGER 123")
        assert (row.category, row.source) == ("Shopping", "manual")
        assert lookup_manual_mapping(session, "kroger #123").category is Category.SHOPPING
        assert lookup_manual_mapping(session, "unknown vendor") is None


def test_rate_cache_skips_identity_and_overwrites(db_url: str) -> None:
    with session_scope(database_url=db_url) as session:
        upsert_exchange_rate(session, "USD", "usd", DAY, 1.0)
        upsert_exchange_rate(session, "EUR", "USD", DAY, 1.08)
    with session_scope(database_url=db_url) as session:
        upsert_exchange_rate(session, "eur", "usd", DAY, 1.09)
    with session_scope(database_url=db_url) as session:
        assert lookup_cached_rate(session, "USD", "USD", DAY) is None
        assert lookup_cached_rate(session, "EUR", "USD", DAY) == pytest.approx(1.09)
        assert lookup_cached_rate(session, "EUR", "USD", DAY + dt.timedelta(1)) is None


def test_wipe_all_data_clears_everything(db_url: str) -> None:
    seed_transaction(db_url, date=DAY, merchant="GLORB", amount="1.00")
    with session_scope(database_url=db_url) as session:
        upsert_merchant_mapping(session, "GLORB", "Shopping", "purchase")
        upsert_exchange_rate(session, "EUR", "USD", DAY, 1.08)

    with session_scope(database_url=db_url) as session:
        counts = wipe_all_data(session)

    assert counts == {"transactions": 1, "merchant_mappings": 1, "exchange_rates": 1}
    with session_scope(database_url=db_url) as session:
        assert list_transactions(session) == []
        assert lookup_merchant_mapping(session, "GLORB") is None


# ---- Duplicate detection -----------------------------------------------------


def test_duplicates_match_within_epsilon(db_url: str) -> None:
    seed_transaction(db_url, date=DAY, merchant="STARBUCKS #12345", amount="6.75")

    candidates = [
        _parsed("STARBUCKS #12345", "6.75"),
        _parsed("  starbucks   #12345 ", "6.76"),
        _parsed("STARBUCKS #12345", "6.77"),
        _parsed("STARBUCKS #12345", "6.75", on=DAY + dt.timedelta(1)),
        _parsed("STARBUCKS #99999", "6.75"),
    ]

    with session_scope(database_url=db_url) as session:
        matches = find_duplicates(session, candidates)

    assert [m.candidate for m in matches] == candidates[:2]
    assert all(m.match_count == 1 for m in matches)


def test_duplicates_compare_original_amounts(db_url: str) -> None:
    seed_transaction(
        db_url, date=DAY, merchant="HOTEL PARIS", amount="100.00", currency="EUR", exchange_rate=1.1
    )
    with session_scope(database_url=db_url) as session:
        matches = find_duplicates(
            session,
            [
                _canonical("HOTEL PARIS", "100.00", currency="EUR", rate=1.1),
                _canonical("HOTEL PARIS", "110.00"),
            ],
        )
    assert len(matches) == 1
    assert matches[0].candidate.original_currency == "EUR"


def test_duplicates_with_empty_candidates(db_url: str) -> None:
    with session_scope(database_url=db_url) as session:
        assert find_duplicates(session, []) == []
