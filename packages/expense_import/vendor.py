"""Core vendor name extraction.

Statement merchant strings carry store numbers, locations, payment-processor
prefixes and legal suffixes that differ between otherwise identical vendors.
:func:`extract_core` peels those off so ``"KROGER #1234"`` and
``"KROGER #5678"`` compare equal.
"""

from __future__ import annotations

import re

from .models import VendorExtraction

# First match wins; the fallback bare 4-6 digit token comes last.
_STORE_ID_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"#(\d+)"),
    re.compile(r"STORE\s*#?\s*(\d+)"),
    re.compile(r"STO\s*#?\s*(\d+)"),
    re.compile(r"T-(\d+)"),
    re.compile(r"MKT\s*#?(\d+)"),
    re.compile(r"\b(\d{4,6})\b"),
)

_LOCATION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\s+([A-Z\s]{2,})\s+([A-Z]{2})$"),  # SEATTLE WA
    re.compile(r"\s+([A-Z\s]+),\s*([A-Z]{2})$"),  # SEATTLE, WA
)

_PROCESSOR_PREFIXES: tuple[re.Pattern[str], ...] = (
    re.compile(r"^SQ\s+\*\s*"),
    re.compile(r"^PAYPAL\s+\*\s*"),
    re.compile(r"^AMZN\s+MKTP\s*"),
    re.compile(r"^TST\s+\*\s*"),
    re.compile(r"^SP\s+\*\s*"),
)

_LEGAL_SUFFIXES: tuple[re.Pattern[str], ...] = (
    re.compile(r"\s+INC\.?$"),
    re.compile(r"\s+LLC\.?$"),
    re.compile(r"\s+CORP\.?$"),
    re.compile(r"\s+CO\.?$"),
    re.compile(r"\s+LTD\.?$"),
)

_FILLER_WORDS = frozenset({"THE", "AND", "OF", "FOR"})

_NON_ALNUM_RE = re.compile(r"[^A-Z0-9\s]")
_WS_RE = re.compile(r"\s+")


def _cut(text: str, m: re.Match[str], replacement: str) -> str:
    return text[: m.start()] + replacement + text[m.end() :]


def extract_core(merchant: str) -> VendorExtraction:
    """Split ``merchant`` into a comparable core name plus store id/location.

    Steps run in order on a working copy: remove one store-id token, strip a
    trailing ``CITY ST`` location, drop processor prefixes (``SQ *``,
    ``PAYPAL *``, ...), drop legal suffixes, replace punctuation with spaces,
    then pop trailing filler words while more than one token remains. The core
    name falls back to the uppercased input when nothing survives.
    """

    normalized = merchant.upper().strip()
    working = normalized
    store_id: str | None = None
    location: str | None = None

    for pattern in _STORE_ID_PATTERNS:
        m = pattern.search(working)
        if m:
            store_id = m.group(1)
            working = _cut(working, m, " ")
            break

    for pattern in _LOCATION_PATTERNS:
        m = pattern.search(working)
        if m:
            location = f"{m.group(1).strip()} {m.group(2)}"
            working = _cut(working, m, "")
            break

    for pattern in _PROCESSOR_PREFIXES:
        working = pattern.sub("", working, count=1)

    for pattern in _LEGAL_SUFFIXES:
        working = pattern.sub("", working, count=1)

    working = _NON_ALNUM_RE.sub(" ", working)
    working = _WS_RE.sub(" ", working).strip()

    words = working.split(" ")
    while len(words) > 1 and words[-1] in _FILLER_WORDS:
        words.pop()
    core_name = " ".join(words)

    return VendorExtraction(
        core_name=core_name or normalized,
        original_merchant=merchant,
        store_id=store_id,
        location=location,
    )


__all__ = ["extract_core"]
