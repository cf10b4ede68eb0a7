"""Runtime configuration for ``expense_import``.

Environment variables are read in one place so the rest of the package takes
an :class:`ImportSettings` instance instead of reaching into ``os.environ``.
Entrypoints (the CLI) load a local ``.env`` with python-dotenv before calling
:func:`load_settings`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MODEL = "gpt-5-mini"
DEFAULT_BASE_CURRENCY = "USD"
DEFAULT_FX_PRIMARY_URL = (
    "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@{date}/v1/currencies/{base}.json"
)
DEFAULT_FX_FALLBACK_URL = "https://currency-api.pages.dev/{date}/v1/currencies/{base}.json"


@dataclass(frozen=True, slots=True)
class ImportSettings:
    """Strongly-typed container for runtime configuration.

    Attributes
    ----------
    database_url:
        SQLAlchemy URL of the relational store. ``None`` lets ``db.client``
        fall back to ``DATABASE_URL`` at connection time.
    openai_api_key:
        Credential for the remote categorization provider. When missing, remote
        categorization degrades to the default triple without a network call.
    model:
        Model name used for remote categorization.
    base_currency:
        ISO-4217 code all amounts are normalized to.
    fx_primary_url / fx_fallback_url:
        URL templates with ``{date}`` and ``{base}`` placeholders.
    http_timeout:
        Seconds before an exchange-rate request is abandoned.
    llm_timeout:
        Seconds before a categorization request is abandoned.
    duplicate_epsilon:
        Amount tolerance (currency units) for duplicate detection.
    """

    database_url: str | None = None
    openai_api_key: str | None = None
    model: str = DEFAULT_MODEL
    base_currency: str = DEFAULT_BASE_CURRENCY
    fx_primary_url: str = DEFAULT_FX_PRIMARY_URL
    fx_fallback_url: str = DEFAULT_FX_FALLBACK_URL
    http_timeout: float = 10.0
    llm_timeout: float = 60.0
    duplicate_epsilon: float = 0.01


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_str(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def load_settings() -> ImportSettings:
    """Build :class:`ImportSettings` from the current environment."""

    return ImportSettings(
        database_url=_env_str("DATABASE_URL"),
        openai_api_key=_env_str("OPENAI_API_KEY"),
        model=_env_str("EXPENSE_IMPORT_MODEL") or DEFAULT_MODEL,
        base_currency=(_env_str("EXPENSE_IMPORT_BASE_CURRENCY") or DEFAULT_BASE_CURRENCY).upper(),
        fx_primary_url=_env_str("EXPENSE_IMPORT_FX_PRIMARY_URL") or DEFAULT_FX_PRIMARY_URL,
        fx_fallback_url=_env_str("EXPENSE_IMPORT_FX_FALLBACK_URL") or DEFAULT_FX_FALLBACK_URL,
        http_timeout=_env_float("EXPENSE_IMPORT_HTTP_TIMEOUT", 10.0),
        llm_timeout=_env_float("EXPENSE_IMPORT_LLM_TIMEOUT", 60.0),
    )


__all__ = ["ImportSettings", "load_settings"]
