"""Prompt construction for remote merchant categorization.

Two request shapes are built here:

- single merchant: the fixed vocabulary, instructions, and few-shot examples,
  answered with one JSON object;
- batch: a numbered merchant list answered with a JSON array of the same
  length and order.

Prompts are plain text; the provider is treated as an opaque text-completion
service and answers are parsed leniently in ``categorization.py``.
"""

from __future__ import annotations

from collections.abc import Sequence

from .categories import CATEGORY_NAMES, KIND_NAMES, Category

_CATEGORY_HINTS: dict[Category, str] = {
    Category.DINING: "Restaurants, cafes, fast food, bars, coffee shops, food delivery",
    Category.GROCERIES: "Supermarkets (excluding warehouse clubs like Costco)",
    Category.GAS: "Gas stations, fuel",
    Category.TRAVEL: "Airlines, hotels, car rentals, Airbnb, travel agencies",
    Category.ENTERTAINMENT: "Movies, concerts, events, games",
    Category.SHOPPING: "Retail, online stores, electronics, clothing",
    Category.HEALTHCARE: "Pharmacies, doctors, dentists, clinics",
    Category.TRANSPORTATION: "Rideshare, transit, tolls, parking",
    Category.SUBSCRIPTIONS: "Streaming, music, memberships, recurring services",
    Category.HOME_GARDEN: "Home improvement, hardware, garden supplies",
    Category.BILLS_UTILITIES: "Phone, internet, electricity, water, insurance",
    Category.PERSONAL_CARE: "Salons, barbers, spas, beauty",
    Category.OTHER: "Everything else",
}

_KIND_HINTS: dict[str, str] = {
    "purchase": "Standard spending transaction",
    "transfer": "Money movement (Zelle, Venmo, PayPal, bank transfers, ATM)",
    "income": "Deposits, paychecks, refunds, reimbursements",
}

_FEW_SHOT: tuple[tuple[str, str, str, float], ...] = (
    ("STARBUCKS", "Dining", "purchase", 0.99),
    ("WHOLE FOODS MARKET", "Groceries", "purchase", 0.98),
    ("SHELL GAS STATION", "Gas", "purchase", 0.99),
    ("ZELLE SENT", "Other", "transfer", 1.0),
)


def build_system_instructions() -> str:
    """Return the short system instruction shared by both request shapes."""

    return (
        "You categorize bank and credit card transactions by merchant name. Choose exactly "
        "one category and one transaction type from the provided lists. Never invent "
        "categories. Output JSON only, with no markdown."
    )


def _vocabulary_section() -> str:
    lines = ["**Categories:**"]
    lines.extend(f"- {c.value}: {_CATEGORY_HINTS[c]}" for c in Category)
    lines.append("")
    lines.append("**Transaction Types:**")
    lines.extend(f"- {k}: {_KIND_HINTS[k]}" for k in KIND_NAMES)
    return "\n".join(lines)


def build_single_prompt(merchant: str) -> str:
    """Return the prompt asking for one ``{category, transactionType, confidence}`` object."""

    examples = "\n\n".join(
        f"Merchant: {name}\n"
        f'→ {{ "category": "{cat}", "transactionType": "{kind}", "confidence": {conf} }}'
        for name, cat, kind, conf in _FEW_SHOT
    )
    return (
        "Categorize the following merchant transaction.\n\n"
        f"**Merchant Name:** {merchant}\n\n"
        f"{_vocabulary_section()}\n\n"
        "**Instructions:**\n"
        "1. Analyze the merchant name\n"
        "2. Determine the most likely category\n"
        "3. Identify the transaction type\n"
        "4. Provide a confidence score (0.0 to 1.0)\n\n"
        "**Output Format (JSON only, no markdown):**\n"
        "{\n"
        '  "category": "Dining",\n'
        '  "transactionType": "purchase",\n'
        '  "confidence": 0.95\n'
        "}\n\n"
        "**Examples:**\n\n"
        f"{examples}\n\n"
        f"Now categorize: {merchant}"
    )


def build_batch_prompt(merchants: Sequence[str]) -> str:
    """Return the prompt asking for a JSON array aligned with ``merchants``."""

    n = len(merchants)
    merchant_list = "\n".join(f"{i}. {m}" for i, m in enumerate(merchants, start=1))
    return (
        f"Categorize the following {n} merchants into spending categories.\n\n"
        "For each merchant, provide:\n"
        f"- category: One of [{', '.join(CATEGORY_NAMES)}]\n"
        f"- transactionType: One of [{', '.join(KIND_NAMES)}]\n"
        "- confidence: Number between 0-1\n\n"
        "Merchants:\n"
        f"{merchant_list}\n\n"
        f"Return ONLY a JSON array with {n} objects in the same order, no other text:\n"
        "[\n"
        '  {"category": "...", "transactionType": "...", "confidence": 0.9},\n'
        "  ...\n"
        "]"
    )


__all__ = ["build_system_instructions", "build_single_prompt", "build_batch_prompt"]
