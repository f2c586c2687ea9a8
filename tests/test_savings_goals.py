from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import MAX_AMOUNT, GoalPriority, SavingsGoal
from services import SavingsGoalNotFound, SavingsGoalService, parse_deadline

TODAY = date(2024, 3, 15)


@pytest.fixture()
def session():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


def _service(session: Session, user_id: int = 1) -> SavingsGoalService:
    return SavingsGoalService(session, user_id, today=TODAY)


def test_create_goal_with_defaults(session: Session) -> None:
    goal = _service(session).create({"title": "  Emergency fund ", "amount": "5000"})

    assert goal.title == "Emergency fund"
    assert goal.target == Decimal("5000.00")
    assert goal.current == Decimal("0.00")
    assert goal.priority == GoalPriority.medium
    assert goal.deadline is None
    assert goal.progress_percent == 0
    assert not goal.is_completed


@pytest.mark.parametrize(
    "fields, message",
    [
        ({"amount": "100"}, "Title and amount are required"),
        ({"title": "Trip"}, "Title and amount are required"),
        ({"title": "   ", "amount": "100"}, "Title and amount are required"),
        ({"title": "Trip", "amount": "0"}, "Amount must be greater than 0"),
        ({"title": "Trip", "amount": "-5"}, "Amount must be greater than 0"),
        ({"title": "Trip", "amount": "1e17"}, "Amount cannot exceed"),
        (
            {"title": "Trip", "amount": "100", "current_amount": "-1"},
            "Current amount cannot be negative",
        ),
        (
            {"title": "Trip", "amount": "100", "deadline": "next spring"},
            "Invalid deadline format",
        ),
        (
            {"title": "Trip", "amount": "100", "deadline": "2024-03-15"},
            "Deadline must be in the future",
        ),
        (
            {"title": "Trip", "amount": "100", "priority": "urgent"},
            "Priority must be 'low', 'medium', or 'high'",
        ),
        ({"title": "Trip", "amount": "100", "owner": 2}, "Invalid field: owner"),
    ],
)
def test_create_rejects_invalid_fields(session: Session, fields, message) -> None:
    with pytest.raises(ValueError, match=message):
        _service(session).create(fields)
    assert session.query(SavingsGoal).count() == 0


def test_ceiling_amount_is_accepted(session: Session) -> None:
    goal = _service(session).create({"title": "Big", "amount": MAX_AMOUNT})
    assert goal.target == MAX_AMOUNT


def test_category_labels_are_canonicalized(session: Session) -> None:
    service = _service(session)
    known = service.create(
        {"title": "Car", "amount": "800", "category": "transportaton"}
    )
    free = service.create({"title": "Bike", "amount": "300", "category": "Hobbies"})

    assert known.category == "Transportation"
    assert free.category == "Hobbies"


def test_goals_are_scoped_per_user(session: Session) -> None:
    mine = _service(session, user_id=1).create({"title": "Laptop", "amount": "1500"})
    _service(session, user_id=2).create({"title": "Camera", "amount": "900"})

    other = _service(session, user_id=2)
    assert [goal.title for goal in other.list_all()] == ["Camera"]
    with pytest.raises(SavingsGoalNotFound, match="Savings goal not found"):
        other.get(mine.id)
    with pytest.raises(SavingsGoalNotFound):
        other.delete(mine.id)
    assert session.get(SavingsGoal, mine.id) is not None


def test_list_is_newest_first(session: Session) -> None:
    service = _service(session)
    first = service.create({"title": "First", "amount": "10"})
    second = service.create({"title": "Second", "amount": "10"})
    first.created_at = second.created_at
    session.commit()

    assert [goal.id for goal in service.list_all()] == [second.id, first.id]


def test_update_replaces_fields_and_keeps_progress(session: Session) -> None:
    service = _service(session)
    goal = service.create(
        {
            "title": "Vacation",
            "amount": "2000",
            "current_amount": "500",
            "description": "Lisbon",
            "priority": "high",
            "deadline": "2024-12-01",
        }
    )

    updated = service.update(goal.id, {"title": "Holiday", "amount": "2500"})

    assert updated.title == "Holiday"
    assert updated.target == Decimal("2500.00")
    assert updated.current == Decimal("500.00")
    assert updated.description is None
    assert updated.deadline is None
    assert updated.priority == GoalPriority.medium
    assert updated.progress_percent == 20


def test_update_allows_past_deadline_but_checks_format(session: Session) -> None:
    service = _service(session)
    goal = service.create({"title": "Fund", "amount": "100"})

    updated = service.update(
        goal.id, {"title": "Fund", "amount": "100", "deadline": "2023-01-01"}
    )
    assert updated.deadline == date(2023, 1, 1)

    with pytest.raises(ValueError, match="Invalid deadline format"):
        service.update(goal.id, {"title": "Fund", "amount": "100", "deadline": "soon"})
    with pytest.raises(ValueError, match="Title and amount are required"):
        service.update(goal.id, {"title": "Fund"})
    with pytest.raises(SavingsGoalNotFound):
        service.update(goal.id + 1, {"title": "Fund", "amount": "100"})


def test_patch_updates_only_given_fields(session: Session) -> None:
    service = _service(session)
    goal = service.create(
        {"title": "Car", "amount": "1000", "priority": "low", "icon": "car"}
    )

    patched = service.patch(goal.id, {"current_amount": "1000.00"})

    assert patched.priority == GoalPriority.low
    assert patched.icon == "car"
    assert patched.is_completed
    assert patched.progress_percent == 100

    with pytest.raises(ValueError, match="At least one field must be provided"):
        service.patch(goal.id, {})
    with pytest.raises(ValueError, match="Amount must be greater than 0"):
        service.patch(goal.id, {"amount": "0"})
    with pytest.raises(ValueError, match="Title and amount are required"):
        service.patch(goal.id, {"title": None})
    assert session.get(SavingsGoal, goal.id).target == Decimal("1000.00")


def test_delete_removes_goal(session: Session) -> None:
    service = _service(session)
    goal = service.create({"title": "Gift", "amount": "50"})
    goal_id = goal.id

    service.delete(goal_id)

    assert service.list_all() == []
    with pytest.raises(SavingsGoalNotFound):
        service.delete(goal_id)


def test_stats_summarize_goals(session: Session) -> None:
    service = _service(session)
    service.create(
        {"title": "Done", "amount": "100", "current_amount": "100", "priority": "high"}
    )
    overdue = service.create(
        {
            "title": "Late",
            "amount": "200",
            "current_amount": "50",
            "category": "food and dining",
        }
    )
    service.patch(overdue.id, {"deadline": "2024-01-31"})
    service.create(
        {
            "title": "Future",
            "amount": "300",
            "deadline": "2024-06-30",
            "priority": "low",
            "category": "food and dining",
        }
    )
    _service(session, user_id=2).create({"title": "Other", "amount": "999"})

    stats = service.stats()

    assert stats.total_goals == 3
    assert stats.total_target_amount == Decimal("600.00")
    assert stats.total_current_amount == Decimal("150.00")
    assert stats.completed_goals == 1
    assert stats.active_goals == 2
    assert stats.overdue_goals == 1
    assert stats.progress_percentage == 25
    assert stats.goals_by_priority == {"low": 1, "medium": 1, "high": 1}
    assert stats.goals_by_category == {"Food & Dining": 2}


def test_stats_for_user_without_goals(session: Session) -> None:
    stats = _service(session).stats()
    assert stats.total_goals == 0
    assert stats.progress_percentage == 0
    assert stats.goals_by_priority == {"low": 0, "medium": 0, "high": 0}
    assert stats.goals_by_category == {}


def test_parse_deadline_accepts_dates_and_iso_strings() -> None:
    assert parse_deadline("2024-05-01") == date(2024, 5, 1)
    assert parse_deadline("2024-05-01T12:30:00Z") == date(2024, 5, 1)
    assert parse_deadline(date(2024, 5, 1)) == date(2024, 5, 1)
    assert parse_deadline("") is None
    assert parse_deadline(None) is None
    with pytest.raises(ValueError, match="Invalid deadline format"):
        parse_deadline(20240501)
