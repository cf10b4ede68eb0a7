"""Pytest configuration for test isolation.

The pipeline reads its runtime knobs (database URL, OpenAI credential, rate
source URLs) from the environment. A developer shell or a local ``.env`` could
otherwise leak a real database or credential into the tests, so an autouse
fixture clears those variables for every test. DB-backed tests get their own
file-backed SQLite database through the ``db_url`` fixture.
"""

# ruff: noqa: E402
from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make sure `packages/` and the db library are importable without installation
_ROOT = Path(__file__).resolve().parents[1]
_SRC_DIRS = [_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT]
sys.path[:0] = [str(p) for p in _SRC_DIRS if str(p) not in sys.path]

from db.client import dispose_engines

from expense_import.config import ImportSettings

from tests.helpers.db import bootstrap_sqlite_db

_ISOLATED_ENV = (
    "DATABASE_URL",
    "OPENAI_API_KEY",
    "EXPENSE_IMPORT_MODEL",
    "EXPENSE_IMPORT_BASE_CURRENCY",
    "EXPENSE_IMPORT_FX_PRIMARY_URL",
    "EXPENSE_IMPORT_FX_FALLBACK_URL",
    "EXPENSE_IMPORT_HTTP_TIMEOUT",
    "EXPENSE_IMPORT_LLM_TIMEOUT",
    "EXPENSE_IMPORT_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def db_url(tmp_path: Path) -> Iterator[str]:
    """Fresh SQLite database with the schema created; engines disposed afterwards."""

    url = bootstrap_sqlite_db(tmp_path / "expenses.sqlite")
    yield url
    dispose_engines()


@pytest.fixture()
def settings(db_url: str) -> ImportSettings:
    return ImportSettings(
        database_url=db_url,
        openai_api_key=None,
        fx_primary_url="https://primary.test/{date}/{base}.json",
        fx_fallback_url="https://fallback.test/{date}/{base}.json",
    )
