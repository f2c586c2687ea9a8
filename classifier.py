from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from rapidfuzz.distance import Levenshtein

from ledger import Transaction
from models import DEFAULT_CATEGORY, BudgetCategory

logger = logging.getLogger(__name__)

# a keyword only matches between letters-free boundaries: "_" and digits
# separate words in bank category codes, so "care" never matches "car"
_BOUNDARY_OPEN = r"(?<![a-z])(?:"
_BOUNDARY_CLOSE = r")(?![a-z])"


def _compile(fragments: Iterable[str]) -> Optional[re.Pattern[str]]:
    fragments = list(fragments)
    if not fragments:
        return None
    return re.compile(_BOUNDARY_OPEN + "|".join(fragments) + _BOUNDARY_CLOSE)


@dataclass(frozen=True)
class KeywordRule:
    category: BudgetCategory
    category_keywords: tuple[str, ...]
    merchant_keywords: tuple[str, ...] = ()
    category_pattern: Optional[re.Pattern[str]] = field(
        init=False, repr=False, compare=False
    )
    merchant_pattern: Optional[re.Pattern[str]] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "category_pattern", _compile(self.category_keywords))
        object.__setattr__(self, "merchant_pattern", _compile(self.merchant_keywords))

    def matches(self, composite: str, merchant: str) -> bool:
        if self.category_pattern is not None and self.category_pattern.search(
            composite
        ):
            return True
        if not merchant or self.merchant_pattern is None:
            return False
        return self.merchant_pattern.search(merchant) is not None


# Evaluated top to bottom, first match wins. Transportation sits before
# housing so that GAS_STATIONS resolves to Transportation.
CATEGORY_RULES: tuple[KeywordRule, ...] = (
    KeywordRule(
        BudgetCategory.food,
        (
            "food",
            "dining",
            "restaurants?",
            "grocer(?:y|ies)",
            "meals?",
            "coffee",
        ),
        (
            "restaurant",
            "cafe",
            "starbucks",
            "mcdonald'?s",
            "uber eats",
            "doordash",
            "grubhub",
            "pizza",
            "subway",
            "chipotle",
        ),
    ),
    KeywordRule(
        BudgetCategory.transportation,
        (
            "transport(?:ation)?",
            "cars?",
            "gas(?![_ ]+(?:and|&)[_ ]+electric)",
            "uber",
            "lyft",
            "parking",
            "public",
            "bus",
            "trains?",
            "taxis?",
            "tolls?",
        ),
        (
            "uber",
            "lyft",
            "shell",
            "exxon",
            "chevron",
            "bp",
            "parking",
            "metro",
            "amtrak",
            "taxi",
        ),
    ),
    KeywordRule(
        BudgetCategory.health,
        (
            "health(?:care)?",
            "medical",
            "doctors?",
            "pharmac(?:y|ies)",
            "dental",
            "vision",
            "hospitals?",
            "insurance",
        ),
        (
            "cvs",
            "walgreens",
            "rite aid",
            "kroger pharmacy",
            "doctor",
            "dentist",
            "hospital",
            "clinic",
        ),
    ),
    KeywordRule(
        BudgetCategory.housing,
        (
            "utilit(?:y|ies)",
            "electric(?:ity)?",
            "water",
            "gas",
            "internet",
            "phone",
            "telephone",
            "cable",
            "waste",
            "rent",
            "mortgage",
            "property",
        ),
        (
            "comcast",
            "verizon",
            "at&t",
            "t-mobile",
            "sprint",
            "spectrum",
            "duke energy",
            "pg&e",
        ),
    ),
    KeywordRule(
        BudgetCategory.personal,
        (
            "clothing",
            "apparel",
            "grooming",
            "gyms?",
            "fitness",
            "hobb(?:y|ies)",
            "subscriptions?",
            "personal",
        ),
        (
            "target",
            "walmart",
            "amazon",
            "ebay",
            "nike",
            "adidas",
            "apple store",
            "best buy",
            "home depot",
            "lowes",
        ),
    ),
    KeywordRule(
        BudgetCategory.entertainment,
        (
            "entertainment",
            "movies?",
            "theat(?:er|re)s?",
            "sports?",
            "games?",
            "travel",
            "vacation",
            "leisure",
            "recreation",
        ),
        (
            "netflix",
            "spotify",
            "hulu",
            "disney",
            "amc",
            "regal",
            "game stop",
            "steam",
            "playstation",
            "xbox",
        ),
    ),
    KeywordRule(
        BudgetCategory.financial,
        (
            "financial",
            "savings",
            "investments?",
            "debt",
            "loans?",
            "tax(?:es)?",
            "bank",
            "credit",
        ),
    ),
    KeywordRule(
        BudgetCategory.gifts,
        (
            "gifts?",
            "donations?",
            "charit(?:y|ies)",
            "contributions?",
            "fundraisers?",
        ),
    ),
)

_CANONICAL = {category.value.lower(): category for category in BudgetCategory}


def resolve_category_label(label: object) -> Optional[BudgetCategory]:
    """Map an upstream-assigned label onto one of the fixed categories."""
    if isinstance(label, BudgetCategory):
        return label
    if not isinstance(label, str) or not label.strip():
        return None
    normalized = " ".join(label.strip().lower().split()).replace(" and ", " & ")
    exact = _CANONICAL.get(normalized)
    if exact:
        return exact

    best: Optional[BudgetCategory] = None
    best_distance: Optional[int] = None
    for name, category in _CANONICAL.items():
        dist = int(Levenshtein.distance(normalized, name))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = category
    if best_distance is not None and best_distance <= 2:
        return best
    return None


def composite_key(txn: Transaction) -> str:
    pfc = txn.finance_category
    parts = [
        (pfc.primary if pfc else None) or "",
        (pfc.detailed if pfc else None) or "",
        (txn.raw_categories[0] if txn.raw_categories else None) or "",
    ]
    return " ".join(str(part) for part in parts).lower()


def classify(txn: Transaction) -> BudgetCategory:
    if txn.assigned_category:
        resolved = resolve_category_label(txn.assigned_category)
        if resolved is not None:
            return resolved
        logger.info(
            f"classify_unknown_assigned: id={txn.id} "
            f"label={txn.assigned_category!r}"
        )

    composite = composite_key(txn)
    merchant = " ".join(
        part for part in (txn.merchant_name, txn.name) if part
    ).lower()
    for rule in CATEGORY_RULES:
        if rule.matches(composite, merchant):
            return rule.category

    logger.debug(f"classify_fallback: id={txn.id} composite={composite!r}")
    return DEFAULT_CATEGORY


def classify_all(transactions: Iterable[Transaction]) -> list[Transaction]:
    classified: list[Transaction] = []
    for txn in transactions:
        category = classify(txn)
        if txn.assigned_category == category.value:
            classified.append(txn)
        else:
            classified.append(txn.with_category(category.value))
    return classified
