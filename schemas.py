from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import Budget, BudgetCategory, SavingsGoal


class BudgetIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    overall: Optional[Decimal] = None
    housing: Optional[Decimal] = None
    food: Optional[Decimal] = None
    transportation: Optional[Decimal] = None
    health: Optional[Decimal] = None
    personal: Optional[Decimal] = None
    entertainment: Optional[Decimal] = None
    financial: Optional[Decimal] = None
    gifts: Optional[Decimal] = None

    def allocation(self) -> dict[str, Optional[Decimal]]:
        return {
            category.field: getattr(self, category.field)
            for category in BudgetCategory
        }


class BudgetPatch(BudgetIn):
    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class BudgetOut(BaseModel):
    id: int
    user_id: int
    overall: Decimal
    housing: Decimal
    food: Decimal
    transportation: Decimal
    health: Decimal
    personal: Decimal
    entertainment: Decimal
    financial: Decimal
    gifts: Decimal
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_budget(cls, budget: Budget) -> "BudgetOut":
        allocations = budget.allocations
        return cls(
            id=budget.id,
            user_id=budget.user_id,
            overall=budget.overall,
            created_at=budget.created_at,
            updated_at=budget.updated_at,
            **{category.field: allocations[category] for category in BudgetCategory},
        )


class PublicTokenIn(BaseModel):
    public_token: str = Field(..., min_length=1, max_length=200)


class SavingsGoalIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, max_length=120)
    description: Optional[str] = Field(default=None, max_length=500)
    amount: Optional[Decimal] = None
    current_amount: Optional[Decimal] = None
    deadline: Optional[date] = None
    category: Optional[str] = Field(default=None, max_length=80)
    priority: Optional[str] = None
    icon: Optional[str] = Field(default=None, max_length=40)
    color: Optional[str] = Field(default=None, max_length=20)

    def goal_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SavingsGoalPatch(SavingsGoalIn):
    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class SavingsGoalOut(BaseModel):
    id: int
    user_id: int
    title: str
    description: Optional[str]
    amount: Decimal
    current_amount: Decimal
    deadline: Optional[date]
    category: Optional[str]
    priority: str
    icon: Optional[str]
    color: Optional[str]
    progress_percentage: int
    is_completed: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_goal(cls, goal: SavingsGoal) -> "SavingsGoalOut":
        return cls(
            id=goal.id,
            user_id=goal.user_id,
            title=goal.title,
            description=goal.description,
            amount=goal.target,
            current_amount=goal.current,
            deadline=goal.deadline,
            category=goal.category,
            priority=goal.priority.value,
            icon=goal.icon,
            color=goal.color,
            progress_percentage=goal.progress_percent,
            is_completed=goal.is_completed,
            created_at=goal.created_at,
            updated_at=goal.updated_at,
        )
