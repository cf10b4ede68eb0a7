from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest
import requests

import expense_import.currency as currency_mod
from db.client import session_scope
from expense_import.categories import Category, TransactionKind
from expense_import.config import ImportSettings
from expense_import.importer import ImportOrchestrator
from expense_import.models import ColumnMapping
from expense_import.persistence import list_transactions
from tests.helpers.openai_stub import CompletionStub

_STATEMENT = (
    b"Date,Description,Amount\n"
    b"01/15/2024,STARBUCKS #12345,-6.75\n"
    b"01/16/2024,GLORB,-42.00\n"
    b"01/17/2024,ZELLE PAYMENT TO JOHN,-100.00\n"
)


def _shopping(_merchant: str) -> tuple[str, str]:
    return ("Shopping", "purchase")


def _stored(db_url: str):
    with session_scope(database_url=db_url) as session:
        return list_transactions(session)


def _rates_down(monkeypatch: pytest.MonkeyPatch) -> None:
    def _get(url: str, timeout: float | None = None):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(currency_mod.requests, "get", _get)


def test_import_categorizes_and_persists(settings: ImportSettings, db_url: str) -> None:
    stub = CompletionStub(_shopping)

    report = ImportOrchestrator(settings, remote=stub).run(_STATEMENT, "checking.csv")

    assert report.status == "imported"
    assert report.format == "csv"
    assert len(report.imported) == 3
    assert report.duplicates == ()
    assert report.warnings == ()
    assert report.source_counts == {"pattern": 2, "llm": 1}
    assert stub.calls == 1

    stored = {t.merchant: t for t in _stored(db_url)}
    assert stored["STARBUCKS #12345"].category is Category.DINING
    assert stored["GLORB"].category is Category.SHOPPING
    assert stored["ZELLE PAYMENT TO JOHN"].transaction_kind is TransactionKind.TRANSFER
    assert stored["GLORB"].usd_amount == Decimal("42.00")
    assert stored["GLORB"].fx_status == "identity"
    assert stored["GLORB"].source_file == "checking.csv"


def test_reimport_reports_duplicates_and_uses_cache(settings: ImportSettings, db_url: str) -> None:
    ImportOrchestrator(settings, remote=CompletionStub(_shopping)).run(_STATEMENT, "a.csv")
    stub = CompletionStub(_shopping)

    report = ImportOrchestrator(settings, remote=stub).run(_STATEMENT, "a.csv")

    assert report.imported == ()
    assert len(report.duplicates) == 3
    assert report.source_counts == {"pattern": 2, "cache": 1}
    assert stub.calls == 0
    assert len(_stored(db_url)) == 3


def test_reimport_without_skipping_duplicates(settings: ImportSettings, db_url: str) -> None:
    orchestrator = ImportOrchestrator(settings, remote=CompletionStub(_shopping))
    orchestrator.run(_STATEMENT, "a.csv")

    report = orchestrator.run(_STATEMENT, "a.csv", skip_duplicates=False)

    assert len(report.duplicates) == 3
    assert len(report.imported) == 3
    assert len(_stored(db_url)) == 6


def test_dry_run_inserts_nothing(settings: ImportSettings, db_url: str) -> None:
    report = ImportOrchestrator(settings, remote=CompletionStub(_shopping)).run(
        _STATEMENT, "a.csv", dry_run=True
    )

    assert len(report.imported) == 3
    assert all(t.id is None for t in report.imported)
    assert _stored(db_url) == []


def test_foreign_currency_is_converted(
    settings: ImportSettings, db_url: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _get(url: str, timeout: float | None = None):
        class _Resp:
            def raise_for_status(self) -> None:
                return None

            def json(self):
                return {"eur": {"usd": 1.1}}

        return _Resp()

    monkeypatch.setattr(currency_mod.requests, "get", _get)
    data = b"Date,Description,Amount\n2024-03-01,HOTEL PARIS,EUR 12.00\n"

    report = ImportOrchestrator(settings, remote=CompletionStub()).run(data, "trip.csv")

    [tx] = report.imported
    assert tx.original_currency == "EUR"
    assert tx.original_amount == Decimal("12.00")
    assert tx.exchange_rate == pytest.approx(1.1)
    assert tx.usd_amount == Decimal("13.20")
    assert tx.amount == Decimal("13.20")
    assert tx.fx_status == "converted"
    assert report.warnings == ()


def test_unavailable_rate_keeps_original_amount(
    settings: ImportSettings, db_url: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    _rates_down(monkeypatch)
    data = (
        b"Date,Description,Amount\n"
        b"2024-03-01,HOTEL PARIS,EUR 12.00\n"
        b"2024-03-01,CAFE ROMA,EUR 4.50\n"
    )

    report = ImportOrchestrator(settings, remote=CompletionStub()).run(data, "trip.csv")

    assert [t.fx_status for t in report.imported] == ["unconverted", "unconverted"]
    assert report.imported[0].usd_amount == Decimal("12.00")
    assert report.imported[0].exchange_rate == 1.0
    assert report.warnings == (
        "No exchange rate for EUR->USD on 2024-03-01; "
        "2 transaction(s) kept in EUR and marked unconverted",
    )


def test_statement_kind_survives_default_categorization(
    settings: ImportSettings, db_url: str
) -> None:
    data = b"Date,Description,Amount\n01/20/2024,FLUMP CREDIT,25.00\n"

    report = ImportOrchestrator(settings, remote=CompletionStub(fail=True)).run(data, "a.csv")

    [tx] = report.imported
    assert tx.category is Category.OTHER
    assert tx.transaction_kind is TransactionKind.INCOME
    assert report.source_counts == {"default": 1}
    assert report.warnings == (
        "1 transaction(s) could not be categorized and were filed under Other",
    )


def test_categorized_kind_overrides_statement_kind(settings: ImportSettings, db_url: str) -> None:
    data = b"Date,Description,Amount\n01/20/2024,GLORB CREDIT,25.00\n"

    report = ImportOrchestrator(settings, remote=CompletionStub(_shopping)).run(data, "a.csv")

    [tx] = report.imported
    assert tx.category is Category.SHOPPING
    assert tx.transaction_kind is TransactionKind.PURCHASE


def test_unrecognized_headers_need_mapping(settings: ImportSettings, db_url: str) -> None:
    data = b"When,What,HowMuch\n01/15/2024,GLORB,6.75\n"
    orchestrator = ImportOrchestrator(settings, remote=CompletionStub(_shopping))

    report = orchestrator.run(data, "odd.csv")
    assert report.status == "needs_mapping"
    assert report.headers == ("When", "What", "HowMuch")
    assert _stored(db_url) == []

    mapped = orchestrator.run(
        data, "odd.csv", ColumnMapping(date="When", merchant="What", amount="HowMuch")
    )
    assert mapped.status == "imported"
    assert mapped.imported[0].date == dt.date(2024, 1, 15)


def test_statement_without_transactions_is_empty(settings: ImportSettings, db_url: str) -> None:
    stub = CompletionStub(_shopping)
    report = ImportOrchestrator(settings, remote=stub).run(b"Beginning balance 10.00\n", "a.txt")

    assert report.status == "empty"
    assert report.imported == ()
    assert stub.calls == 0
