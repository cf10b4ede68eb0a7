"""Merchant categorization pipeline: rule engine, merchant cache, remote model.

Public API:
    - :func:`request_completion`: one remote text completion as a
      :class:`~expense_import.errors.RemoteOutcome`
    - :func:`categorize_merchant`: single merchant, single-merchant prompt
    - :func:`batch_categorize_merchants`: many merchants, at most one remote call

Resolution order per merchant is manual cache entry, pattern table, then
cache, then remote. A category the user set by hand always wins. Pattern and
remote results are written back to the cache (never over a manual entry);
cache hits and default fallbacks are not. Remote failures (missing credential, network,
unparseable answer) never raise: they resolve to
:data:`~expense_import.models.DEFAULT_CATEGORIZATION`.

No side effects occur at import time (no client creation, no environment
reads).
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable, Mapping, Sequence
from functools import partial
from typing import Any

from openai import OpenAI
from sqlalchemy.orm import Session

from . import prompting
from .categorization import parse_batch_response, parse_single_response
from .config import ImportSettings
from .errors import CategorizationUnavailable, RemoteOutcome
from .logging_setup import get_logger
from .models import DEFAULT_CATEGORIZATION, Categorization
from .normalizers import normalize_merchant
from .patterns import categorize_by_pattern
from .persistence import (
    lookup_manual_mapping,
    lookup_merchant_mapping,
    upsert_merchant_mapping,
)

type CompletionFn = Callable[[str], RemoteOutcome[str]]

# ---- Tunables (private) ------------------------------------------------------

_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

_logger = get_logger("expense_import.categorize")


# ---- Remote call -------------------------------------------------------------


def _create_client(settings: ImportSettings) -> OpenAI:
    return OpenAI(api_key=settings.openai_api_key, timeout=settings.llm_timeout)


def _response_text(resp: Any) -> str:
    """Locate the text output of a Responses API result.

    Prefers ``resp.output_text``; falls back to ``resp.output[0].content[0].text``.
    Raises ``ValueError`` when no text can be found.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        output = getattr(resp, "output", None)
        if output:
            content = getattr(output[0], "content", None)
            if content:
                txt_obj = getattr(content[0], "text", None)
                if isinstance(txt_obj, str):
                    text = txt_obj
                else:
                    # Some SDKs expose text as an object with a ``value`` string.
                    maybe_val = getattr(txt_obj, "value", None)
                    if isinstance(maybe_val, str):
                        text = maybe_val
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")
    return text


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for HTTP 429 and 5xx errors."""

    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    delay = base + random.uniform(-jitter, jitter)
    time.sleep(max(0.0, delay))


def request_completion(prompt: str, *, settings: ImportSettings) -> RemoteOutcome[str]:
    """Send ``prompt`` to the remote model and return its text output.

    Retries HTTP 429/5xx up to ``_MAX_ATTEMPTS`` with jittered backoff; any
    other failure is terminal. Failures come back as
    ``RemoteOutcome.failure(CategorizationUnavailable(...))``.
    """

    if not settings.openai_api_key:
        _logger.warning("categorize:no_credential")
        return RemoteOutcome.failure(CategorizationUnavailable("OPENAI_API_KEY is not set"))

    client = _create_client(settings)
    attempt = 1
    while True:
        t0 = time.perf_counter()
        try:
            resp = client.responses.create(
                model=settings.model,
                instructions=prompting.build_system_instructions(),
                input=prompt,
            )
            text = _response_text(resp)
            dt_ms = (time.perf_counter() - t0) * 1000.0
            _logger.info("categorize:remote_done latency_ms=%.2f attempt=%d", dt_ms, attempt)
            return RemoteOutcome.success(text)
        except Exception as e:  # noqa: BLE001 - every failure maps to a fallback value
            dt_ms = (time.perf_counter() - t0) * 1000.0
            if attempt >= _MAX_ATTEMPTS or not _is_retryable(e):
                _logger.error(
                    "categorize:remote_failed_terminal latency_ms=%.2f attempt=%d error=%s",
                    dt_ms,
                    attempt,
                    e.__class__.__name__,
                )
                return RemoteOutcome.failure(
                    CategorizationUnavailable(f"remote categorization failed: {e}")
                )
            _logger.warning(
                "categorize:remote_retry latency_ms=%.2f attempt=%d error=%s",
                dt_ms,
                attempt,
                e.__class__.__name__,
            )
            _sleep_backoff(attempt)
            attempt += 1


def default_completion(settings: ImportSettings) -> CompletionFn:
    """Bind :func:`request_completion` to ``settings``."""

    return partial(request_completion, settings=settings)


# ---- Pipeline ----------------------------------------------------------------


def _resolve_locally(session: Session, merchant: str) -> Categorization | None:
    """Manual edits, then rule engine, then cache. Rule hits are written back."""

    manual = lookup_manual_mapping(session, merchant)
    if manual is not None:
        return manual
    hit = categorize_by_pattern(merchant)
    if hit is not None:
        upsert_merchant_mapping(session, merchant, hit.category, hit.kind, source="pattern")
        return hit
    return lookup_merchant_mapping(session, merchant)


def categorize_merchant(session: Session, merchant: str, *, remote: CompletionFn) -> Categorization:
    """Categorize one merchant with the single-merchant prompt on a local miss."""

    local = _resolve_locally(session, merchant)
    if local is not None:
        return local

    key = normalize_merchant(merchant)
    outcome = remote(prompting.build_single_prompt(key or merchant.strip()))
    if not outcome.ok or outcome.value is None:
        _logger.warning(
            'categorize:fallback_default merchant="%s" error=%s', key[:40], outcome.error
        )
        return DEFAULT_CATEGORIZATION
    try:
        result = parse_single_response(outcome.value)
    except ValueError as e:
        _logger.warning('categorize:unparseable merchant="%s" error=%s', key[:40], e)
        return DEFAULT_CATEGORIZATION

    upsert_merchant_mapping(session, merchant, result.category, result.kind, source="llm")
    return result


def batch_categorize_merchants(
    session: Session,
    merchants: Sequence[str],
    *,
    remote: CompletionFn,
) -> Mapping[str, Categorization]:
    """Categorize ``merchants`` issuing at most one remote call.

    Merchants that share a normalized key are resolved once. Local misses are
    sent together in a numbered batch prompt; a short or malformed answer is
    padded with defaults. Returns a mapping with one entry per input string.
    """

    representative: dict[str, str] = {}
    for m in merchants:
        representative.setdefault(normalize_merchant(m), m)

    by_key: dict[str, Categorization] = {}
    uncached: list[tuple[str, str]] = []
    for key, merchant in representative.items():
        local = _resolve_locally(session, merchant)
        if local is not None:
            by_key[key] = local
        else:
            uncached.append((key, merchant))

    _logger.info(
        "categorize:batch_start merchants=%d resolved_locally=%d uncached=%d",
        len(representative),
        len(by_key),
        len(uncached),
    )

    if uncached:
        names = [m.strip() for _, m in uncached]
        _logger.info("categorize:batch_remote merchants=%d", len(names))
        outcome = remote(prompting.build_batch_prompt(names))
        results: list[Categorization]
        if not outcome.ok or outcome.value is None:
            _logger.warning(
                "categorize:batch_fallback_default merchants=%d error=%s",
                len(names),
                outcome.error,
            )
            results = [DEFAULT_CATEGORIZATION] * len(names)
        else:
            try:
                results = parse_batch_response(outcome.value, num_items=len(names))
            except ValueError as e:
                _logger.warning(
                    "categorize:batch_unparseable merchants=%d error=%s", len(names), e
                )
                results = [DEFAULT_CATEGORIZATION] * len(names)

        for (key, merchant), result in zip(uncached, results, strict=True):
            by_key[key] = result
            if not result.is_default:
                upsert_merchant_mapping(
                    session, merchant, result.category, result.kind, source="llm"
                )

    return {m: by_key[normalize_merchant(m)] for m in merchants}


__all__ = [
    "CompletionFn",
    "request_completion",
    "default_completion",
    "categorize_merchant",
    "batch_categorize_merchants",
]
