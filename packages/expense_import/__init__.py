"""Public interface for the ``expense_import`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import categorize, exchange_rate, import_statement, similar_transactions
from .categories import Category, TransactionKind
from .config import ImportSettings, load_settings
from .errors import (
    CategorizationUnavailable,
    ConversionUnavailable,
    ExpenseImportError,
    ParseError,
    RemoteError,
    TransactionNotFound,
)
from .importer import ImportOrchestrator
from .models import (
    CanonicalTransaction,
    Categorization,
    ColumnMapping,
    DuplicateMatch,
    ImportReport,
    ParsedTransaction,
    ParseResult,
    RateQuote,
    TransactionFilters,
)

__all__ = [
    # API
    "import_statement",
    "categorize",
    "exchange_rate",
    "similar_transactions",
    "ImportOrchestrator",
    # Configuration
    "ImportSettings",
    "load_settings",
    # Models / types
    "Category",
    "TransactionKind",
    "ParsedTransaction",
    "ParseResult",
    "ColumnMapping",
    "Categorization",
    "CanonicalTransaction",
    "DuplicateMatch",
    "RateQuote",
    "TransactionFilters",
    "ImportReport",
    # Errors
    "ExpenseImportError",
    "ParseError",
    "TransactionNotFound",
    "RemoteError",
    "CategorizationUnavailable",
    "ConversionUnavailable",
]
