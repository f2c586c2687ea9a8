from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional, Union

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class BudgetCategory(str, Enum):
    housing = "Housing & Utilities"
    food = "Food & Dining"
    transportation = "Transportation"
    health = "Health & Insurance"
    personal = "Personal & Lifestyle"
    entertainment = "Entertainment & Leisure"
    financial = "Financial & Savings"
    gifts = "Gifts & Donations"

    @property
    def field(self) -> str:
        return self.name

    @classmethod
    def coerce(cls, key: Union["BudgetCategory", str]) -> "BudgetCategory":
        """Accept a member, its display name or its field name."""
        if isinstance(key, cls):
            return key
        if isinstance(key, str):
            if key in cls.__members__:
                return cls[key]
            for member in cls:
                if member.value == key:
                    return member
        raise ValueError(f"Invalid field: {key}")


DEFAULT_CATEGORY = BudgetCategory.personal


def quantize_money(amount: Decimal) -> Decimal:
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# whole-currency ceiling for stored amounts; keeps cents inside a signed 64-bit column
MAX_AMOUNT = Decimal("1000000000000")


def from_cents(cents: Optional[int]) -> Decimal:
    return Decimal(cents or 0) / 100


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    overall_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    housing_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    food_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    transportation_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    health_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    personal_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    entertainment_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    financial_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gifts_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        # one active budget per user; concurrent first-time creates collide here
        UniqueConstraint("user_id", name="uq_budget_user"),
        CheckConstraint("overall_cents > 0", name="ck_budget_overall_positive"),
        CheckConstraint(
            "housing_cents >= 0 AND food_cents >= 0 AND transportation_cents >= 0"
            " AND health_cents >= 0 AND personal_cents >= 0"
            " AND entertainment_cents >= 0 AND financial_cents >= 0"
            " AND gifts_cents >= 0",
            name="ck_budget_allocations_non_negative",
        ),
    )

    @property
    def overall(self) -> Decimal:
        return from_cents(self.overall_cents)

    @property
    def allocations(self) -> dict[BudgetCategory, Decimal]:
        return {
            category: from_cents(getattr(self, f"{category.field}_cents"))
            for category in BudgetCategory
        }

    def apply(
        self, overall: Decimal, allocation: dict[BudgetCategory, Decimal]
    ) -> None:
        self.overall_cents = to_cents(overall)
        for category in BudgetCategory:
            amount = allocation.get(category) or Decimal(0)
            setattr(self, f"{category.field}_cents", to_cents(amount))


class PlaidItem(Base, TimestampMixin):
    __tablename__ = "plaid_items"
    __table_args__ = (UniqueConstraint("item_id", name="uq_plaid_item_item_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    access_token: Mapped[str] = mapped_column(String(200), nullable=False)
    institution_name: Mapped[Optional[str]] = mapped_column(String(120))


class GoalPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class SavingsGoal(Base, TimestampMixin):
    __tablename__ = "savings_goals"
    __table_args__ = (
        CheckConstraint("target_cents > 0", name="ck_savings_goal_target_positive"),
        CheckConstraint(
            "current_cents >= 0", name="ck_savings_goal_current_non_negative"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    target_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    current_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deadline: Mapped[Optional[date]] = mapped_column(Date)
    category: Mapped[Optional[str]] = mapped_column(String(80))
    priority: Mapped[GoalPriority] = mapped_column(
        SAEnum(GoalPriority), nullable=False, default=GoalPriority.medium
    )
    icon: Mapped[Optional[str]] = mapped_column(String(40))
    color: Mapped[Optional[str]] = mapped_column(String(20))

    @property
    def target(self) -> Decimal:
        return from_cents(self.target_cents)

    @property
    def current(self) -> Decimal:
        return from_cents(self.current_cents)

    @property
    def is_completed(self) -> bool:
        return (self.current_cents or 0) >= self.target_cents

    def is_overdue(self, today: date) -> bool:
        return (
            self.deadline is not None
            and self.deadline < today
            and not self.is_completed
        )

    @property
    def progress_percent(self) -> int:
        ratio = Decimal(self.current_cents or 0) / Decimal(self.target_cents) * 100
        return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
