from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Mapping, Protocol

from classifier import classify
from ledger import Transaction, dedupe_transactions
from models import BudgetCategory

NEAR_LIMIT_RATIO = Decimal("0.9")


class SpendStatus(str, Enum):
    no_budget = "no budget set"
    over_budget = "over budget"
    near_limit = "near limit"
    on_track = "on track"


class HasAllocations(Protocol):
    @property
    def allocations(self) -> Mapping[BudgetCategory, Decimal]: ...


@dataclass(frozen=True)
class CategoryReconciliation:
    category: BudgetCategory
    allocated: Decimal
    spent: Decimal
    percent_display: float
    percent_raw: float
    status: SpendStatus

    @property
    def remaining(self) -> Decimal:
        return self.allocated - self.spent


def spend_status(allocated: Decimal, spent: Decimal) -> SpendStatus:
    if allocated == 0:
        return SpendStatus.no_budget
    if spent >= allocated:
        return SpendStatus.over_budget
    if spent >= NEAR_LIMIT_RATIO * allocated:
        return SpendStatus.near_limit
    return SpendStatus.on_track


def spent_by_category(
    transactions: Iterable[Transaction],
) -> dict[BudgetCategory, Decimal]:
    spent = {category: Decimal(0) for category in BudgetCategory}
    for txn in dedupe_transactions(transactions):
        if txn.amount > 0:
            spent[classify(txn)] += txn.amount
    return spent


def reconcile(
    budget: HasAllocations, transactions: Iterable[Transaction]
) -> list[CategoryReconciliation]:
    spent = spent_by_category(transactions)
    allocations = budget.allocations
    rows: list[CategoryReconciliation] = []
    for category in BudgetCategory:
        allocated = allocations.get(category) or Decimal(0)
        amount = spent[category]
        if allocated > 0:
            percent_raw = float(amount / allocated * 100)
        else:
            percent_raw = 0.0
        rows.append(
            CategoryReconciliation(
                category=category,
                allocated=allocated,
                spent=amount,
                percent_display=min(percent_raw, 100.0),
                percent_raw=percent_raw,
                status=spend_status(allocated, amount),
            )
        )
    return rows
