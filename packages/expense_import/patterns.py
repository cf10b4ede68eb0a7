"""Offline, priority-ordered keyword rules for merchant categorization.

The table is evaluated highest priority first; equal priorities keep their
declaration order. Order matters for overlapping vendors: ``KROGER FUEL``
(Gas, 95) must be reached before ``KROGER`` (Groceries, 90).
"""

from __future__ import annotations

from collections.abc import Sequence

from .categories import Category, TransactionKind
from .logging_setup import get_logger
from .models import Categorization, MerchantPattern
from .vendor import extract_core

_logger = get_logger("expense_import.patterns")

_C = Category
_P = TransactionKind.PURCHASE


def _rule(
    priority: int,
    category: Category,
    *keywords: str,
    kind: TransactionKind = _P,
) -> MerchantPattern:
    return MerchantPattern(keywords=keywords, category=category, kind=kind, priority=priority)


# Declaration order is the tie-break within a priority level; keep it stable.
_DECLARED: tuple[MerchantPattern, ...] = (
    # Fuel
    _rule(100, _C.GAS, "FUEL", "SHELL", "CHEVRON", "EXXON", " MOBIL ", "BP ", "TEXACO",
          "ARCO", "VALERO", "SUNOCO", "76 ", "CIRCLE K", "MARATHON GAS", "SPEEDWAY"),
    _rule(95, _C.GAS, "KROGER FUEL", "KROGER FU", "WALMART FUEL", "SAM'S CLUB FUEL",
          "COSTCO GAS", "SAMS CLUB GAS"),
    # Groceries
    _rule(90, _C.GROCERIES, "KROGER", "PUBLIX", "SAFEWAY", "ALBERTSONS", "WHOLE FOODS",
          "TRADER JOE", "ALDI", "LIDL", "SPROUTS", "WEGMANS", "H E B", "FRESH MARKET",
          "FOOD LION", "GIANT FOOD", "STOP SHOP", "HARRIS TEETER"),
    _rule(93, _C.SUBSCRIPTIONS, "WALMART+", "WALMART PLUS", "WALMARTPLUS"),
    _rule(85, _C.GROCERIES, "WALMART", "TARGET", "MEIJER", "WINCO"),
    # Dining
    _rule(90, _C.DINING, "MCDONALD", "BURGER KING", "WENDY'S", "TACO BELL", "KFC",
          "CHICK FIL A", "POPEYES", "SUBWAY", "ARBY'S", "SONIC", "JACK IN THE BOX",
          "CHIPOTLE", "PANDA EXPRESS", "FIVE GUYS", "IN N OUT", "SHAKE SHACK"),
    _rule(90, _C.DINING, "STARBUCKS", "DUNKIN", "PANERA", "CARIBOU COFFEE", "PEET'S COFFEE",
          "DUTCH BROS"),
    _rule(95, _C.DINING, "UBER *EATS", "UBER EATS", "UBEREATS"),
    _rule(95, _C.SUBSCRIPTIONS, "DOORDASH *DASHPASS", "DOORDASH DASHPASS", "DASHPASS"),
    _rule(92, _C.DINING, "DOORDASH", "GRUBHUB", "POSTMATES", "SEAMLESS", "INSTACART",
          "GOPUFF"),
    _rule(80, _C.DINING, "RESTAURANT", "CAFE", "COFFEE", "PIZZA", "DINER", "GRILL",
          "BAR & GRILL", "BISTRO", "EATERY"),
    # Entertainment
    _rule(90, _C.ENTERTAINMENT, "AMC THEATRES", "REGAL CINEMA", "CINEMARK", "IMAX", "MOVIE",
          "THEATER", "CINEMA"),
    _rule(90, _C.ENTERTAINMENT, "TICKETMASTER", "STUBHUB", "EVENTBRITE", "CONCERT",
          "STADIUM", "ARENA"),
    # Subscriptions
    _rule(97, _C.SUBSCRIPTIONS, "AMAZON PRIME VIDEO", "AMZN PRIME VIDEO", "PRIME VIDEO"),
    _rule(95, _C.SUBSCRIPTIONS, "NETFLIX", "HULU", "DISNEY PLUS", "HBO MAX", "APPLE TV",
          "PARAMOUNT PLUS", "PEACOCK", "DISCOVERY PLUS"),
    _rule(95, _C.SUBSCRIPTIONS, "SPOTIFY", "APPLE MUSIC", "YOUTUBE PREMIUM", "YOUTUBE MUSIC",
          "PANDORA", "TIDAL"),
    _rule(90, _C.SUBSCRIPTIONS, "GYM", "FITNESS", "PLANET FITNESS", "LA FITNESS", "EQUINOX",
          "YMCA", "CRUNCH"),
    # Shopping
    _rule(94, _C.GROCERIES, "AMAZON FRESH", "AMZN FRESH", "AMAZON GROCERY",
          "WHOLE FOODS AMAZON"),
    _rule(92, _C.SHOPPING, "AMAZON", "AMZN"),
    _rule(90, _C.SHOPPING, "BEST BUY", "APPLE STORE", "MICROSOFT STORE", "GAMESTOP"),
    _rule(90, _C.SHOPPING, "MACY", "NORDSTROM", "KOHL'S", "JC PENNEY", "DILLARD", "SAKS",
          "NEIMAN MARCUS", "BLOOMINGDALE"),
    _rule(90, _C.SHOPPING, "TJ MAXX", "MARSHALLS", "ROSS", "BURLINGTON", "HOMEGOODS"),
    # Healthcare
    _rule(90, _C.HEALTHCARE, "CVS PHARMACY", "WALGREENS", "RITE AID", "DUANE READE",
          "PHARMACY"),
    _rule(85, _C.HEALTHCARE, "DOCTOR", "DENTIST", "DENTAL", "MEDICAL", "CLINIC", "HOSPITAL",
          "URGENT CARE", "HEALTH"),
    # Transportation
    _rule(93, _C.TRANSPORTATION, "UBER *TRIP", "UBER TRIP", "UBER *RIDE", "UBER RIDE"),
    _rule(88, _C.TRANSPORTATION, "UBER", "LYFT", "TAXI", "CAB"),
    _rule(88, _C.TRANSPORTATION, "TOLL", "PARKING", "PARK", "METRO", "SUBWAY", "TRANSIT",
          "BUS FARE", "TRAIN"),
    # Travel
    _rule(95, _C.TRAVEL, "AIRLINES", "DELTA", "UNITED", "AMERICAN AIR", "SOUTHWEST",
          "JETBLUE", "SPIRIT", "FRONTIER", "ALASKA AIR"),
    _rule(92, _C.TRAVEL, "MARRIOTT", "HILTON", "HYATT", "IHG", "HOLIDAY INN", "BEST WESTERN",
          "RADISSON", "SHERATON", "WESTIN", "HOTEL", "MOTEL", "INN", "RESORT", "AIRBNB",
          "VRBO"),
    _rule(92, _C.TRAVEL, "HERTZ", "ENTERPRISE", "BUDGET", "AVIS", "NATIONAL CAR", "ALAMO",
          "THRIFTY", "DOLLAR RENT"),
    # Home & Garden
    _rule(90, _C.HOME_GARDEN, "HOME DEPOT", "LOWE'S", "ACE HARDWARE", "TRUE VALUE",
          "MENARDS", "HARBOR FREIGHT"),
    _rule(85, _C.HOME_GARDEN, "GARDEN", "NURSERY", "LANDSCAPE", "LAWN"),
    # Bills & Utilities
    _rule(90, _C.BILLS_UTILITIES, "VERIZON", "AT&T", "T MOBILE", "SPRINT", "COMCAST",
          "XFINITY", "SPECTRUM", "COX COMMUNICATIONS", "INTERNET", "ELECTRIC", "WATER",
          "GAS COMPANY", "UTILITY"),
    _rule(88, _C.BILLS_UTILITIES, "INSURANCE", "GEICO", "STATE FARM", "ALLSTATE",
          "PROGRESSIVE"),
    # Personal Care
    _rule(88, _C.PERSONAL_CARE, "SALON", "BARBER", "HAIR", "NAIL", "SPA", "MASSAGE", "ULTA",
          "SEPHORA", "BEAUTY"),
    # Money movement
    _rule(99, _C.OTHER, "APPLE CASH", "APPLE PAY CASH", kind=TransactionKind.TRANSFER),
    _rule(98, _C.OTHER, "ZELLE", "VENMO", "PAYPAL", "CASH APP", "TRANSFER", "ATM WITHDRAWAL",
          "WIRE TRANSFER", "ACH TRANSFER", "AUTOPAY", kind=TransactionKind.TRANSFER),
    # Income
    _rule(99, _C.OTHER, "PAYROLL", "DIRECT DEPOSIT", "REFUND", "REIMBURSEMENT", "SALARY",
          "WAGES", kind=TransactionKind.INCOME),
)

# ``sorted`` is stable, so equal priorities keep declaration order.
MERCHANT_PATTERNS: tuple[MerchantPattern, ...] = tuple(
    sorted(_DECLARED, key=lambda p: p.priority, reverse=True)
)


def categorize_by_pattern(
    merchant: str,
    patterns: Sequence[MerchantPattern] = MERCHANT_PATTERNS,
) -> Categorization | None:
    """Return the first matching rule's category/kind, or ``None`` on no match.

    A keyword matches when it is a substring of the uppercased merchant text
    or of its extracted core name. ``patterns`` must already be in evaluation
    order (see :data:`MERCHANT_PATTERNS`).
    """

    upper = merchant.upper()
    core = extract_core(merchant).core_name
    for pattern in patterns:
        for keyword in pattern.keywords:
            if keyword in upper or keyword in core:
                _logger.debug(
                    'patterns:hit merchant="%s" keyword="%s" priority=%d',
                    upper[:40],
                    keyword,
                    pattern.priority,
                )
                return Categorization(
                    category=pattern.category,
                    kind=pattern.kind,
                    confidence=1.0,
                    source="pattern",
                )
    return None


__all__ = ["MERCHANT_PATTERNS", "categorize_by_pattern"]
