"""Logging for ``expense_import``: one handler on the package logger, nothing else.

Entrypoints call :func:`configure_logging` once at startup; library modules
only ever call :func:`get_logger` with a ``"expense_import.<module>"`` name.
Until an entrypoint configures logging, the package logger carries a
``NullHandler`` so importing the library never prints anything.

Messages follow a terse ``event:key=value`` shape, for example
``import:done filename=a.csv imported=3 duplicates=0``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "expense_import"
_LEVEL_ENV_VAR = "EXPENSE_IMPORT_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def _resolve_level(level: int | str | None) -> int:
    """Turn ``level`` (or the env var when ``None``) into a numeric level.

    Unknown names fall back to ``INFO`` instead of raising.
    """

    if level is None:
        level = os.getenv(_LEVEL_ENV_VAR)
    if isinstance(level, int):
        return level
    if not level:
        return logging.INFO
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelName(name)
    return numeric if isinstance(numeric, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach the package's single ``StreamHandler``; later calls are no-ops.

    Parameters
    ----------
    level:
        Numeric level or level name. ``None`` reads ``EXPENSE_IMPORT_LOG_LEVEL``
        and defaults to ``INFO``.
    fmt:
        ``logging.Formatter`` format string; defaults to
        ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    stream:
        Destination stream for the handler.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    for existing in [h for h in pkg_logger.handlers if isinstance(h, logging.NullHandler)]:
        pkg_logger.removeHandler(existing)

    resolved = _resolve_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))

    pkg_logger.setLevel(resolved)
    pkg_logger.addHandler(handler)
    # Records stop at the package logger; the root logger never sees them.
    pkg_logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(name)``, silencing the package until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
