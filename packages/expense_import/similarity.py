"""Vendor-name similarity scoring and similar-transaction grouping.

:func:`similarity` answers "are these the same vendor?" for two merchant
strings. Rules run in order and the first applicable one returns:

1. byte-equal inputs: ``1.0`` / ``exact``
2. equal core names (see :func:`expense_import.vendor.extract_core`): ``0.98``
3. equal after abbreviation expansion: ``0.95``
4. Jaccard over tokens when either side has two or more words and the score is
   at least ``0.5``: ``token``
5. Jaro-Winkler over the expanded names: ``edit-distance``

The score is symmetric in its arguments.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from .models import CanonicalTransaction, SimilarityScore, VendorExtraction
from .vendor import extract_core

ABBREVIATIONS: Mapping[str, str] = MappingProxyType(
    {
        "MKT": "MARKET",
        "MKTPL": "MARKETPLACE",
        "MKTP": "MARKETPLACE",
        "ST": "STREET",
        "AVE": "AVENUE",
        "BLVD": "BOULEVARD",
        "CORP": "CORPORATION",
        "INC": "INCORPORATED",
        "INTL": "INTERNATIONAL",
        "NATL": "NATIONAL",
        "SVC": "SERVICE",
        "SVCS": "SERVICES",
        "CO": "COMPANY",
        "DEPT": "DEPARTMENT",
        "DELI": "DELICATESSEN",
        "REST": "RESTAURANT",
        "CAFE": "COFFEE",
    }
)

_ABBREVIATION_RES: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(rf"\b{re.escape(abbr)}\b"), full) for abbr, full in ABBREVIATIONS.items()
)

DEFAULT_SIMILARITY_THRESHOLD = 0.70
_TOKEN_MIN_SCORE = 0.5
_WINKLER_PREFIX_MAX = 4
_WINKLER_SCALING = 0.1


def expand_abbreviations(text: str) -> str:
    """Replace whole-word abbreviations (``MKT`` → ``MARKET``, ...)."""

    expanded = text
    for pattern, full in _ABBREVIATION_RES:
        expanded = pattern.sub(full, expanded)
    return expanded


def jaro_winkler(s1: str, s2: str) -> float:
    """Jaro-Winkler similarity in ``[0, 1]``.

    Match window is ``max(len) // 2 - 1``; the Winkler bonus uses up to four
    shared leading characters with scaling factor ``0.1``. Empty input scores
    ``0.0`` unless both sides are empty.
    """

    if s1 == s2:
        return 1.0
    len1, len2 = len(s1), len(s2)
    if len1 == 0 or len2 == 0:
        return 0.0

    window = max(len1, len2) // 2 - 1
    if window < 0:
        return 0.0

    s1_matched = [False] * len1
    s2_matched = [False] * len2
    matches = 0
    for i, ch in enumerate(s1):
        lo = max(0, i - window)
        hi = min(i + window + 1, len2)
        for j in range(lo, hi):
            if s2_matched[j] or s2[j] != ch:
                continue
            s1_matched[i] = True
            s2_matched[j] = True
            matches += 1
            break

    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i in range(len1):
        if not s1_matched[i]:
            continue
        while not s2_matched[k]:
            k += 1
        if s1[i] != s2[k]:
            transpositions += 1
        k += 1

    jaro = (matches / len1 + matches / len2 + (matches - transpositions / 2) / matches) / 3

    prefix = 0
    for a, b in zip(s1[:_WINKLER_PREFIX_MAX], s2[:_WINKLER_PREFIX_MAX], strict=False):
        if a != b:
            break
        prefix += 1

    return jaro + prefix * _WINKLER_SCALING * (1 - jaro)


def token_similarity(s1: str, s2: str) -> float:
    """Jaccard index over space-delimited token sets."""

    tokens1 = {t for t in s1.split(" ") if t}
    tokens2 = {t for t in s2.split(" ") if t}
    if not tokens1 and not tokens2:
        return 1.0
    if not tokens1 or not tokens2:
        return 0.0
    return len(tokens1 & tokens2) / len(tokens1 | tokens2)


def similarity(name_a: str, name_b: str) -> SimilarityScore:
    """Score how likely ``name_a`` and ``name_b`` name the same vendor."""

    if name_a == name_b:
        return SimilarityScore(score=1.0, method="exact")

    core_a = extract_core(name_a).core_name
    core_b = extract_core(name_b).core_name
    if core_a == core_b:
        return SimilarityScore(score=0.98, method="exact")

    expanded_a = expand_abbreviations(core_a)
    expanded_b = expand_abbreviations(core_b)
    if expanded_a == expanded_b:
        return SimilarityScore(score=0.95, method="exact")

    if len(expanded_a.split(" ")) >= 2 or len(expanded_b.split(" ")) >= 2:
        token_score = token_similarity(expanded_a, expanded_b)
        if token_score >= _TOKEN_MIN_SCORE:
            return SimilarityScore(score=token_score, method="token")

    # Greedy matching depends on argument order; fix it for symmetry.
    first, second = sorted((expanded_a, expanded_b))
    return SimilarityScore(score=jaro_winkler(first, second), method="edit-distance")


# ---------------------------------------------------------------------------
# Similar-transaction search
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SimilarTransaction:
    transaction: CanonicalTransaction
    similarity: SimilarityScore
    extraction: VendorExtraction


@dataclass(frozen=True, slots=True)
class SimilarVendorGroup:
    core_name: str
    transactions: tuple[SimilarTransaction, ...]
    average_similarity: float


def find_similar_transactions(
    target: CanonicalTransaction,
    pool: Iterable[CanonicalTransaction],
    *,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> list[SimilarTransaction]:
    """Return transactions in ``pool`` whose vendor resembles ``target``'s.

    The target itself (same ``id``) is skipped. Results at or above
    ``threshold`` are sorted by score, highest first; ties keep pool order.
    """

    found: list[SimilarTransaction] = []
    for tx in pool:
        if target.id is not None and tx.id == target.id:
            continue
        extraction = extract_core(tx.merchant)
        score = similarity(target.merchant, tx.merchant)
        if score.score >= threshold:
            found.append(SimilarTransaction(transaction=tx, similarity=score, extraction=extraction))
    found.sort(key=lambda s: s.similarity.score, reverse=True)
    return found


def group_similar_transactions(
    similar: Iterable[SimilarTransaction],
) -> list[SimilarVendorGroup]:
    """Group matches by core vendor name, preserving first-seen group order."""

    by_core: dict[str, list[SimilarTransaction]] = {}
    for item in similar:
        by_core.setdefault(item.extraction.core_name, []).append(item)
    return [
        SimilarVendorGroup(
            core_name=core,
            transactions=tuple(items),
            average_similarity=sum(i.similarity.score for i in items) / len(items),
        )
        for core, items in by_core.items()
    ]


__all__ = [
    "ABBREVIATIONS",
    "DEFAULT_SIMILARITY_THRESHOLD",
    "expand_abbreviations",
    "jaro_winkler",
    "token_similarity",
    "similarity",
    "SimilarTransaction",
    "SimilarVendorGroup",
    "find_similar_transactions",
    "group_similar_transactions",
]
