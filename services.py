from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aggregation import (
    CategoryTotal,
    MonthComparison,
    MonthlySummary,
    category_breakdown,
    compare_months,
    in_period,
)
from bank_feed import TransactionSource
from classifier import classify_all, resolve_category_label
from config import get_settings
from ledger import dedupe_transactions, to_decimal
from models import (
    MAX_AMOUNT,
    Budget,
    BudgetCategory,
    GoalPriority,
    SavingsGoal,
    from_cents,
    to_cents,
)
from periods import Period, month_period, previous_month
from reconcile import CategoryReconciliation, reconcile
from validation import ensure_valid, merge_patch

logger = logging.getLogger(__name__)

DEFAULT_SHARES: dict[BudgetCategory, Decimal] = {
    BudgetCategory.housing: Decimal("0.30"),
    BudgetCategory.food: Decimal("0.15"),
    BudgetCategory.transportation: Decimal("0.10"),
    BudgetCategory.health: Decimal("0.10"),
    BudgetCategory.personal: Decimal("0.10"),
    BudgetCategory.entertainment: Decimal("0.05"),
    BudgetCategory.financial: Decimal("0.15"),
    BudgetCategory.gifts: Decimal("0.05"),
}


class BudgetNotFound(ValueError):
    pass


class BudgetAlreadyExists(ValueError):
    pass


def get_current_user_id() -> int:
    return get_settings().default_user_id


def seed_allocation(overall: Decimal) -> dict[BudgetCategory, Decimal]:
    # rounding down keeps the seeded sum within the overall amount
    return {
        category: (overall * share).quantize(Decimal("0.01"), rounding=ROUND_DOWN)
        for category, share in DEFAULT_SHARES.items()
    }


class BudgetRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, budget_id: int) -> Optional[Budget]:
        return self.session.get(Budget, budget_id)

    def get_budgets_by_user(self, user_id: int) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == user_id)
            .order_by(Budget.created_at.desc(), Budget.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def create_budget(
        self,
        user_id: int,
        overall: Decimal,
        allocation: Mapping[BudgetCategory, Decimal],
    ) -> Budget:
        budget = Budget(user_id=user_id)
        budget.apply(overall, dict(allocation))
        self.session.add(budget)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise BudgetAlreadyExists("Budget already exists for this user") from exc
        self.session.refresh(budget)
        logger.info(f"budget_created: user_id={user_id} budget_id={budget.id}")
        return budget

    def update_budget(
        self,
        budget_id: int,
        overall: Decimal,
        allocation: Mapping[BudgetCategory, Decimal],
    ) -> Budget:
        budget = self.get(budget_id)
        if not budget:
            raise BudgetNotFound("Budget not found")
        budget.apply(overall, dict(allocation))
        self.session.commit()
        self.session.refresh(budget)
        logger.info(f"budget_updated: budget_id={budget_id}")
        return budget

    def patch_budget(self, budget_id: int, fields: Mapping[str, Decimal]) -> Budget:
        budget = self.get(budget_id)
        if not budget:
            raise BudgetNotFound("Budget not found")
        for key, value in fields.items():
            if key == "overall":
                budget.overall_cents = to_cents(value)
                continue
            category = BudgetCategory.coerce(key)
            setattr(budget, f"{category.field}_cents", to_cents(value))
        self.session.commit()
        self.session.refresh(budget)
        logger.info(
            f"budget_patched: budget_id={budget_id} fields={sorted(fields.keys())}"
        )
        return budget

    def delete_budget(self, budget_id: int) -> Optional[Budget]:
        budget = self.get(budget_id)
        if not budget:
            return None
        self.session.delete(budget)
        self.session.commit()
        logger.info(f"budget_deleted: budget_id={budget_id}")
        return budget


@dataclass(frozen=True)
class DashboardView:
    period: Period
    summary: MonthlySummary
    comparison: MonthComparison
    category_breakdown: list[CategoryTotal]
    reconciled_budget: list[CategoryReconciliation]
    budget: Budget


class BudgetService:
    def __init__(
        self,
        session: Session,
        source: Optional[TransactionSource] = None,
        *,
        repository: Optional[BudgetRepository] = None,
    ) -> None:
        self.session = session
        self.source = source
        self.repository = repository or BudgetRepository(session)

    def current_budget(self, user_id: int) -> Optional[Budget]:
        budgets = self.repository.get_budgets_by_user(user_id)
        if not budgets:
            return None
        if len(budgets) > 1:
            logger.warning(
                f"budget_duplicate_rows: user_id={user_id} count={len(budgets)} "
                f"canonical_id={budgets[0].id}"
            )
        return budgets[0]

    def get_or_create_current_budget(self, user_id: int) -> Budget:
        budget = self.current_budget(user_id)
        if budget:
            return budget

        overall = get_settings().default_overall
        overall, allocation = ensure_valid(overall, seed_allocation(overall))
        try:
            return self.repository.create_budget(user_id, overall, allocation)
        except BudgetAlreadyExists:
            # another request created it between our read and insert
            logger.info(f"budget_create_race: user_id={user_id}")
            winner = self.current_budget(user_id)
            if winner is None:
                raise
            return winner

    def save_budget(self, user_id: int, fields: Mapping[str, Any]) -> Budget:
        overall = fields.get("overall")
        allocation = {key: value for key, value in fields.items() if key != "overall"}
        overall, amounts = ensure_valid(overall, allocation)

        existing = self.current_budget(user_id)
        if existing:
            return self.repository.update_budget(existing.id, overall, amounts)
        try:
            return self.repository.create_budget(user_id, overall, amounts)
        except BudgetAlreadyExists:
            logger.info(f"budget_create_race: user_id={user_id}")
            winner = self.current_budget(user_id)
            if winner is None:
                raise
            return self.repository.update_budget(winner.id, overall, amounts)

    def patch_budget(self, user_id: int, fields: Mapping[str, Any]) -> Budget:
        existing = self.current_budget(user_id)
        if not existing:
            raise BudgetNotFound("Budget not found")
        if not fields:
            raise ValueError("No valid fields to update")

        overall, allocation = merge_patch(existing, fields)
        overall, amounts = ensure_valid(overall, allocation)
        validated = {
            key: overall if key == "overall" else amounts[BudgetCategory.coerce(key)]
            for key in fields
        }
        return self.repository.patch_budget(existing.id, validated)

    def delete_budget(self, user_id: int) -> Optional[Budget]:
        existing = self.current_budget(user_id)
        if not existing:
            return None
        return self.repository.delete_budget(existing.id)

    def get_dashboard_view(self, user_id: int, year: int, month: int) -> DashboardView:
        if self.source is None:
            raise ValueError("No transaction source configured")
        period = month_period(year, month)
        prev_year, prev_month = previous_month(year, month)
        fetch_start = month_period(prev_year, prev_month).start

        raw = self.source.get_transactions(user_id, fetch_start, period.end)
        transactions = classify_all(dedupe_transactions(raw))
        current = in_period(transactions, period)

        comparison = compare_months(transactions, year, month)
        budget = self.get_or_create_current_budget(user_id)
        logger.info(
            f"dashboard_view: user_id={user_id} period={period.slug} "
            f"fetched={len(raw)} in_month={len(current)}"
        )
        return DashboardView(
            period=period,
            summary=comparison.current,
            comparison=comparison,
            category_breakdown=category_breakdown(current),
            reconciled_budget=reconcile(budget, current),
            budget=budget,
        )


GOAL_FIELDS = (
    "title",
    "description",
    "amount",
    "current_amount",
    "deadline",
    "category",
    "priority",
    "icon",
    "color",
)
GOAL_REQUIRED = "Title and amount are required"
GOAL_PRIORITY_INVALID = "Priority must be 'low', 'medium', or 'high'"


class SavingsGoalNotFound(ValueError):
    pass


@dataclass(frozen=True)
class SavingsGoalStats:
    total_goals: int
    total_target_amount: Decimal
    total_current_amount: Decimal
    completed_goals: int
    active_goals: int
    overdue_goals: int
    progress_percentage: int
    goals_by_priority: dict[str, int]
    goals_by_category: dict[str, int]


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _goal_amount_cents(value: Any, label: str, *, allow_zero: bool) -> int:
    amount = to_decimal(value)
    if amount is None:
        raise ValueError(f"{label} must be a number")
    if allow_zero and amount < 0:
        raise ValueError(f"{label} cannot be negative")
    if not allow_zero and amount <= 0:
        raise ValueError(f"{label} must be greater than 0")
    if amount > MAX_AMOUNT:
        raise ValueError(f"{label} cannot exceed {MAX_AMOUNT}")
    return to_cents(amount)


def parse_deadline(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValueError("Invalid deadline format")


def _goal_priority(value: Any) -> GoalPriority:
    if value is None:
        return GoalPriority.medium
    try:
        return GoalPriority(value)
    except ValueError as exc:
        raise ValueError(GOAL_PRIORITY_INVALID) from exc


def _goal_category(value: Any) -> Optional[str]:
    text = _clean_text(value)
    if text is None:
        return None
    resolved = resolve_category_label(text)
    return resolved.value if resolved else text


class SavingsGoalService:
    """Savings goals per user; amounts are stored as cents like budgets."""

    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.today = today

    def _today(self) -> date:
        return self.today or date.today()

    def _columns(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        columns: dict[str, Any] = {}
        for key, value in fields.items():
            if key not in GOAL_FIELDS:
                raise ValueError(f"Invalid field: {key}")
            if key == "title":
                title = _clean_text(value)
                if title is None:
                    raise ValueError(GOAL_REQUIRED)
                columns["title"] = title
            elif key == "amount":
                if value is None:
                    raise ValueError(GOAL_REQUIRED)
                columns["target_cents"] = _goal_amount_cents(
                    value, "Amount", allow_zero=False
                )
            elif key == "current_amount":
                columns["current_cents"] = (
                    0
                    if value is None
                    else _goal_amount_cents(value, "Current amount", allow_zero=True)
                )
            elif key == "deadline":
                columns["deadline"] = parse_deadline(value)
            elif key == "priority":
                columns["priority"] = _goal_priority(value)
            elif key == "category":
                columns["category"] = _goal_category(value)
            else:
                columns[key] = _clean_text(value)
        return columns

    def list_all(self) -> list[SavingsGoal]:
        stmt = (
            select(SavingsGoal)
            .where(SavingsGoal.user_id == self.user_id)
            .order_by(SavingsGoal.created_at.desc(), SavingsGoal.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, goal_id: int) -> SavingsGoal:
        goal = self.session.get(SavingsGoal, goal_id)
        if not goal or goal.user_id != self.user_id:
            raise SavingsGoalNotFound("Savings goal not found")
        return goal

    def create(self, fields: Mapping[str, Any]) -> SavingsGoal:
        if not _clean_text(fields.get("title")) or fields.get("amount") is None:
            raise ValueError(GOAL_REQUIRED)
        columns = self._columns(fields)
        deadline = columns.get("deadline")
        if deadline is not None and deadline <= self._today():
            raise ValueError("Deadline must be in the future")

        columns.setdefault("priority", GoalPriority.medium)
        goal = SavingsGoal(user_id=self.user_id, **columns)
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        logger.info(f"savings_goal_created: user_id={self.user_id} goal_id={goal.id}")
        return goal

    def update(self, goal_id: int, fields: Mapping[str, Any]) -> SavingsGoal:
        """Replace the editable fields; omitted optional fields are cleared."""
        if not _clean_text(fields.get("title")) or fields.get("amount") is None:
            raise ValueError(GOAL_REQUIRED)
        replacement = {
            key: None for key in GOAL_FIELDS if key != "current_amount"
        }
        replacement.update(fields)
        columns = self._columns(replacement)
        goal = self.get(goal_id)
        for key, value in columns.items():
            setattr(goal, key, value)
        self.session.commit()
        self.session.refresh(goal)
        logger.info(f"savings_goal_updated: goal_id={goal_id}")
        return goal

    def patch(self, goal_id: int, fields: Mapping[str, Any]) -> SavingsGoal:
        if not fields:
            raise ValueError("At least one field must be provided for update")
        columns = self._columns(fields)
        goal = self.get(goal_id)
        for key, value in columns.items():
            setattr(goal, key, value)
        self.session.commit()
        self.session.refresh(goal)
        logger.info(
            f"savings_goal_patched: goal_id={goal_id} fields={sorted(fields.keys())}"
        )
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()
        logger.info(f"savings_goal_deleted: goal_id={goal_id}")

    def stats(self) -> SavingsGoalStats:
        goals = self.list_all()
        today = self._today()
        target_cents = sum(goal.target_cents for goal in goals)
        current_cents = sum(goal.current_cents or 0 for goal in goals)
        completed = sum(1 for goal in goals if goal.is_completed)

        by_priority = {priority.value: 0 for priority in GoalPriority}
        by_category: dict[str, int] = {}
        for goal in goals:
            by_priority[goal.priority.value] += 1
            if goal.category:
                by_category[goal.category] = by_category.get(goal.category, 0) + 1

        progress = 0
        if target_cents > 0:
            ratio = Decimal(current_cents) / Decimal(target_cents) * 100
            progress = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

        return SavingsGoalStats(
            total_goals=len(goals),
            total_target_amount=from_cents(target_cents),
            total_current_amount=from_cents(current_cents),
            completed_goals=completed,
            active_goals=len(goals) - completed,
            overdue_goals=sum(1 for goal in goals if goal.is_overdue(today)),
            progress_percentage=progress,
            goals_by_priority=by_priority,
            goals_by_category=by_category,
        )
