from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional, Union

from ledger import to_decimal
from models import MAX_AMOUNT, Budget, BudgetCategory, quantize_money

logger = logging.getLogger(__name__)

OVERALL_REQUIRED = "Overall budget amount is required and must be greater than 0"
SUM_EXCEEDS_OVERALL = "Sum of category budgets cannot exceed overall budget"
OVERALL_TOO_LARGE = f"Overall budget amount cannot exceed {MAX_AMOUNT}"

AllocationKey = Union[BudgetCategory, str]


class BudgetValidationError(ValueError):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: Optional[str] = None

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> "ValidationResult":
        return cls(ok=False, reason=reason)


def normalize_allocation(
    allocation: Mapping[AllocationKey, Any],
) -> dict[BudgetCategory, Any]:
    normalized: dict[BudgetCategory, Any] = {}
    for key, value in allocation.items():
        try:
            category = BudgetCategory.coerce(key)
        except ValueError as exc:
            raise BudgetValidationError(str(exc)) from exc
        normalized[category] = value
    return normalized


def validate(
    overall: Any, allocation: Mapping[AllocationKey, Any]
) -> ValidationResult:
    overall_amount = to_decimal(overall)
    if overall_amount is None or overall_amount <= 0:
        return ValidationResult.failure(OVERALL_REQUIRED)
    if overall_amount > MAX_AMOUNT:
        return ValidationResult.failure(OVERALL_TOO_LARGE)

    try:
        normalized = normalize_allocation(allocation)
    except BudgetValidationError as exc:
        return ValidationResult.failure(exc.reason)

    total = Decimal(0)
    for category in BudgetCategory:
        if category not in normalized or normalized[category] is None:
            continue
        raw = normalized[category]
        amount = to_decimal(raw)
        if amount is None:
            return ValidationResult.failure(
                f"{category.field} amount must be a finite number"
            )
        if amount < 0:
            return ValidationResult.failure(
                f"{category.field} amount cannot be negative"
            )
        if amount > MAX_AMOUNT:
            return ValidationResult.failure(
                f"{category.field} amount cannot exceed {MAX_AMOUNT}"
            )
        total += amount

    if total > overall_amount:
        logger.debug(
            f"budget_sum_exceeds_overall: total={total} overall={overall_amount}"
        )
        return ValidationResult.failure(SUM_EXCEEDS_OVERALL)
    return ValidationResult.success()


def ensure_valid(
    overall: Any, allocation: Mapping[AllocationKey, Any]
) -> tuple[Decimal, dict[BudgetCategory, Decimal]]:
    """Validate and return the row as Decimals; raises BudgetValidationError."""
    result = validate(overall, allocation)
    if not result.ok:
        raise BudgetValidationError(result.reason or "Invalid budget")

    # storage keeps whole cents; re-check so rounding cannot break the ceiling
    overall_amount = quantize_money(to_decimal(overall) or Decimal(0))
    amounts: dict[BudgetCategory, Decimal] = {}
    for category, value in normalize_allocation(allocation).items():
        amount = to_decimal(value)
        amounts[category] = quantize_money(
            amount if amount is not None else Decimal(0)
        )
    result = validate(overall_amount, amounts)
    if not result.ok:
        raise BudgetValidationError(result.reason or "Invalid budget")
    return overall_amount, amounts


def merge_patch(
    budget: Budget, patch: Mapping[str, Any]
) -> tuple[Any, dict[BudgetCategory, Any]]:
    """Overlay patch fields on the stored row and return the full row."""
    overall: Any = budget.overall
    allocation: dict[BudgetCategory, Any] = dict(budget.allocations)
    for key, value in patch.items():
        if key == "overall":
            overall = value
            continue
        try:
            category = BudgetCategory.coerce(key)
        except ValueError as exc:
            raise BudgetValidationError(str(exc)) from exc
        allocation[category] = value
    return overall, allocation
