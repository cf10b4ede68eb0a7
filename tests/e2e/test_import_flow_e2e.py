from __future__ import annotations

import dataclasses
import importlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

from db.client import session_scope
from expense_import.api import import_statement, similar_transactions
from expense_import.categories import Category, TransactionKind
from expense_import.config import ImportSettings
from expense_import.persistence import list_transactions
from expense_import.reports import dashboard_stats
from tests.helpers.openai_stub import OpenAIStub, merchants_in_batch_prompt

# The package re-exports a ``categorize`` function that shadows the submodule attribute.
categorize_mod = importlib.import_module("expense_import.categorize")

_STATEMENT = (
    "Date,Description,Amount,Balance\n"
    "08/24/2025,KROGER #1234 SEATTLE WA,-54.20,945.80\n"
    "08/24/2025,GLORB,-19.99,925.81\n"
    "08/25/2025,KROGER #5678,-12.00,913.81\n"
    "08/26/2025,FLUMP STUDIO,-40.00,873.81\n"
    "08/27/2025,STARBUCKS #12345,-6.75,867.06\n"
    "08/28/2025,ZELLE PAYMENT TO JOHN,-100.00,767.06\n"
)

_REMOTE_ANSWER = json.dumps(
    [
        {"category": "Shopping", "transactionType": "purchase", "confidence": 0.91},
        {"category": "Entertainment", "transactionType": "purchase", "confidence": 0.88},
    ]
)


def test_e2e_import_categorize_and_query(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, settings: ImportSettings, db_url: str
) -> None:
    # -------------------------
    # Input file + remote model
    # -------------------------
    csv_path = tmp_path / "checking_aug_2025.csv"
    csv_path.write_text(_STATEMENT, encoding="utf-8")

    calls: list[dict[str, Any]] = []
    stub = OpenAIStub([_REMOTE_ANSWER], calls)
    monkeypatch.setattr(categorize_mod, "OpenAI", stub.factory())
    keyed = dataclasses.replace(settings, openai_api_key="sk-test")

    # -------------------------
    # Import
    # -------------------------
    report = import_statement(csv_path, settings=keyed)

    assert report.status == "imported"
    assert len(report.imported) == 6
    assert report.source_counts == {"pattern": 4, "llm": 2}
    assert len(calls) == 1
    assert merchants_in_batch_prompt(calls[0]["input"]) == ["GLORB", "FLUMP STUDIO"]

    with session_scope(database_url=db_url) as session:
        stored = {t.merchant: t for t in list_transactions(session)}
        stats = dashboard_stats(session)

    assert stored["GLORB"].category is Category.SHOPPING
    assert stored["FLUMP STUDIO"].category is Category.ENTERTAINMENT
    assert stored["KROGER #5678"].category is Category.GROCERIES
    assert stored["ZELLE PAYMENT TO JOHN"].transaction_kind is TransactionKind.TRANSFER

    # Transfers are excluded from spend.
    assert stats.total_spent == Decimal("132.94")
    assert stats.transaction_count == 5
    assert stats.top_category == "Groceries"

    # -------------------------
    # Re-import is fully deduplicated and served from the caches
    # -------------------------
    again = import_statement(csv_path, settings=keyed)
    assert again.imported == ()
    assert len(again.duplicates) == 6
    assert len(calls) == 1

    # -------------------------
    # Vendor similarity
    # -------------------------
    target_id = stored["KROGER #1234 SEATTLE WA"].id
    assert target_id is not None
    groups = similar_transactions(target_id, settings=keyed)

    assert [g.core_name for g in groups] == ["KROGER"]
    [item] = groups[0].transactions
    assert item.transaction.merchant == "KROGER #5678"
    assert item.similarity.score == pytest.approx(0.98)
