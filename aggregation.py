from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

from classifier import classify
from ledger import Transaction, dedupe_transactions
from models import BudgetCategory, quantize_money
from periods import Period, add_months, month_period, previous_month

logger = logging.getLogger(__name__)

Number = Union[int, float, Decimal]


@dataclass(frozen=True)
class MonthlySummary:
    income_total: Decimal
    expense_total: Decimal
    net_change: Decimal
    transaction_count: int
    period_label: str
    average_expense: Decimal
    top_category: Optional[BudgetCategory]


@dataclass(frozen=True)
class MonthComparison:
    current: MonthlySummary
    previous: MonthlySummary
    income_trend: float
    expense_trend: float


@dataclass(frozen=True)
class CategoryTotal:
    category: BudgetCategory
    amount: Decimal
    transaction_count: int


@dataclass(frozen=True)
class SeriesPoint:
    period: Period
    income_total: Decimal
    expense_total: Decimal

    @property
    def label(self) -> str:
        return self.period.start.strftime("%b %Y")


def in_period(
    transactions: Iterable[Transaction], period: Period
) -> list[Transaction]:
    selected: list[Transaction] = []
    skipped = 0
    for txn in transactions:
        txn_date = txn.calendar_date
        if txn_date is None:
            skipped += 1
            continue
        if period.contains(txn_date):
            selected.append(txn)
    if skipped:
        logger.info(
            f"transactions_without_date: skipped={skipped} period={period.slug}"
        )
    return selected


def _totals(transactions: Iterable[Transaction]) -> tuple[Decimal, Decimal, int, int]:
    income = Decimal(0)
    expense = Decimal(0)
    count = 0
    outflows = 0
    for txn in transactions:
        count += 1
        if txn.amount < 0:
            income += -txn.amount
        elif txn.amount > 0:
            expense += txn.amount
            outflows += 1
    return income, expense, count, outflows


def summarize_period(
    transactions: Iterable[Transaction], period: Period
) -> MonthlySummary:
    window = in_period(dedupe_transactions(transactions), period)
    income, expense, count, outflows = _totals(window)
    breakdown = category_breakdown(window)
    average = quantize_money(expense / outflows) if outflows else Decimal(0)
    return MonthlySummary(
        income_total=income,
        expense_total=expense,
        net_change=income - expense,
        transaction_count=count,
        period_label=period.label,
        average_expense=average,
        top_category=breakdown[0].category if breakdown else None,
    )


def summarize(
    transactions: Iterable[Transaction], year: int, month: int
) -> MonthlySummary:
    return summarize_period(transactions, month_period(year, month))


def trend(current: Number, previous: Number) -> float:
    current_dec = Decimal(str(current))
    previous_dec = Decimal(str(previous))
    if previous_dec == 0:
        return 100.0 if current_dec > 0 else 0.0
    change = (current_dec - previous_dec) / previous_dec * 100
    return float(change.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def compare_months(
    transactions: Iterable[Transaction], year: int, month: int
) -> MonthComparison:
    txns = list(transactions)
    current = summarize(txns, year, month)
    prev_year, prev_month = previous_month(year, month)
    previous = summarize(txns, prev_year, prev_month)
    return MonthComparison(
        current=current,
        previous=previous,
        income_trend=trend(current.income_total, previous.income_total),
        expense_trend=trend(current.expense_total, previous.expense_total),
    )


def category_breakdown(transactions: Iterable[Transaction]) -> list[CategoryTotal]:
    totals: dict[BudgetCategory, Decimal] = {}
    counts: dict[BudgetCategory, int] = {}
    for txn in dedupe_transactions(transactions):
        if txn.amount <= 0:
            continue
        category = classify(txn)
        totals[category] = totals.get(category, Decimal(0)) + txn.amount
        counts[category] = counts.get(category, 0) + 1

    rows = [
        CategoryTotal(
            category=category, amount=amount, transaction_count=counts[category]
        )
        for category, amount in totals.items()
    ]
    # sorted() is stable: equal totals keep first-encountered order
    return sorted(rows, key=lambda row: row.amount, reverse=True)


def monthly_series(
    transactions: Iterable[Transaction], start: date, end: date
) -> list[SeriesPoint]:
    txns = dedupe_transactions(transactions)
    points: list[SeriesPoint] = []
    cursor = date(start.year, start.month, 1)
    while cursor <= end:
        period = month_period(cursor.year, cursor.month)
        income, expense, _count, _outflows = _totals(in_period(txns, period))
        points.append(
            SeriesPoint(period=period, income_total=income, expense_total=expense)
        )
        cursor = add_months(cursor, 1)
    return points
