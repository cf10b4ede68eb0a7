"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the import-pipeline models used by ``expense_import``.
"""

from .finance import Base, EiExchangeRate, EiMerchantMapping, EiTransaction

__all__ = [
    "Base",
    "EiExchangeRate",
    "EiMerchantMapping",
    "EiTransaction",
]
