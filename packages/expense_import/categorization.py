"""Lenient parsing of remote categorization answers.

The provider answers in free text that is expected to contain one JSON object
(single merchant) or one JSON array (batch). Prose around the payload is
tolerated by extracting the first balanced ``{...}`` / ``[...]`` block.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from .logging_setup import get_logger
from .models import DEFAULT_CATEGORIZATION, Categorization, LlmCategorization

_logger = get_logger("expense_import.categorization")

_CLOSERS = {"{": "}", "[": "]"}


def extract_json_block(text: str, opener: str) -> str | None:
    """Return the first balanced block starting with ``opener`` in ``text``.

    Brackets inside JSON string literals are ignored. Returns ``None`` when no
    complete block exists.
    """

    closer = _CLOSERS[opener]
    start = text.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == opener:
                depth += 1
            elif ch == closer:
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        # Unbalanced from this opener; try the next one.
        start = text.find(opener, start + 1)
    return None


def _decode(block: str) -> Any:
    try:
        return json.loads(block)
    except json.JSONDecodeError as e:
        raise ValueError(f"Model output contained malformed JSON: {e.msg}") from e


def parse_single_response(text: str) -> Categorization:
    """Parse a single-merchant answer.

    Raises ``ValueError`` when no JSON object is present or the object fails
    validation; callers degrade to :data:`DEFAULT_CATEGORIZATION`.
    """

    block = extract_json_block(text, "{")
    if block is None:
        raise ValueError("No JSON object found in model output")
    decoded = _decode(block)
    try:
        return LlmCategorization.model_validate(decoded).to_categorization()
    except ValidationError as e:
        raise ValueError(f"Invalid categorization object: {e.error_count()} error(s)") from e


def parse_batch_response(text: str, *, num_items: int) -> list[Categorization]:
    """Parse a batch answer into exactly ``num_items`` results, in order.

    Missing trailing entries and entries that fail validation become
    :data:`DEFAULT_CATEGORIZATION`; extra entries are ignored. Raises
    ``ValueError`` only when no JSON array can be recovered at all.
    """

    block = extract_json_block(text, "[")
    if block is None:
        raise ValueError("No JSON array found in model output")
    decoded = _decode(block)
    if not isinstance(decoded, list):
        raise ValueError("Model output JSON was not an array")

    out: list[Categorization] = []
    for idx in range(num_items):
        if idx >= len(decoded):
            out.append(DEFAULT_CATEGORIZATION)
            continue
        try:
            out.append(LlmCategorization.model_validate(decoded[idx]).to_categorization())
        except ValidationError:
            _logger.warning("categorization:invalid_item idx=%d", idx)
            out.append(DEFAULT_CATEGORIZATION)

    if len(decoded) != num_items:
        _logger.warning(
            "categorization:length_mismatch expected=%d got=%d", num_items, len(decoded)
        )
    return out


__all__ = ["extract_json_block", "parse_single_response", "parse_batch_response"]
