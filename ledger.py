from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional, Union

logger = logging.getLogger(__name__)

DateLike = Union[date, str, None]


@dataclass(frozen=True)
class FinanceCategory:
    primary: Optional[str] = None
    detailed: Optional[str] = None
    confidence: Optional[str] = None


@dataclass(frozen=True)
class Transaction:
    id: Optional[str]
    amount: Decimal
    date: DateLike
    account_id: Optional[str] = None
    name: Optional[str] = None
    merchant_name: Optional[str] = None
    raw_categories: tuple[str, ...] = field(default_factory=tuple)
    finance_category: Optional[FinanceCategory] = None
    assigned_category: Optional[str] = None
    pending: bool = False

    @property
    def is_inflow(self) -> bool:
        return self.amount < 0

    @property
    def is_outflow(self) -> bool:
        return self.amount > 0

    @property
    def calendar_date(self) -> Optional[date]:
        return parse_txn_date(self.date)

    def with_category(self, category: str) -> "Transaction":
        return replace(self, assigned_category=category)


def parse_txn_date(value: Any) -> Optional[date]:
    # datetime is a date subclass; keep only the calendar part
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()[:10]
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return Decimal(str(value))
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def transaction_from_dict(raw: Mapping[str, Any]) -> Transaction:
    """Build a Transaction from a bank-feed payload, tolerating missing fields."""
    pfc = raw.get("personal_finance_category")
    finance_category = None
    if isinstance(pfc, Mapping):
        finance_category = FinanceCategory(
            primary=pfc.get("primary"),
            detailed=pfc.get("detailed"),
            confidence=pfc.get("confidence_level"),
        )

    categories = raw.get("category") or ()
    if isinstance(categories, str):
        categories = (categories,)

    amount = to_decimal(raw.get("amount"))
    if amount is None:
        logger.warning(
            f"transaction_amount_invalid: id={raw.get('transaction_id')} "
            f"value={raw.get('amount')!r}"
        )
        amount = Decimal(0)

    txn_date = raw.get("date")
    if isinstance(txn_date, (date, str)) or txn_date is None:
        date_value: DateLike = txn_date
    else:
        date_value = str(txn_date)

    return Transaction(
        id=raw.get("transaction_id") or raw.get("id"),
        account_id=raw.get("account_id"),
        amount=amount,
        date=date_value,
        name=raw.get("name"),
        merchant_name=raw.get("merchant_name"),
        raw_categories=tuple(str(c) for c in categories if c),
        finance_category=finance_category,
        assigned_category=raw.get("budget_category"),
        pending=bool(raw.get("pending", False)),
    )


def dedupe_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    seen: set[str] = set()
    unique: list[Transaction] = []
    for txn in transactions:
        if txn.id is not None:
            if txn.id in seen:
                continue
            seen.add(txn.id)
        unique.append(txn)
    return unique
