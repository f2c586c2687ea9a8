import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from aggregation import in_period
from bank_feed import (
    PlaidItemStore,
    PlaidTransactionSource,
    TransactionSource,
    TransactionSourceError,
    build_plaid_client,
)
from classifier import classify_all
from config import get_settings
from database import get_db
from ledger import dedupe_transactions
from periods import Period, resolve_month
from schemas import (
    BudgetIn,
    BudgetOut,
    BudgetPatch,
    PublicTokenIn,
    SavingsGoalIn,
    SavingsGoalOut,
    SavingsGoalPatch,
)
from services import (
    BudgetNotFound,
    BudgetService,
    DashboardView,
    SavingsGoalNotFound,
    SavingsGoalService,
    get_current_user_id,
)
from validation import BudgetValidationError

logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Engine")


@app.on_event("startup")
def startup_event():
    logging.basicConfig(level=get_settings().log_level)


def current_user_id(x_user_id: Optional[int] = Header(default=None)) -> int:
    return x_user_id or get_current_user_id()


def get_transaction_source(db: Session = Depends(get_db)) -> TransactionSource:
    return PlaidTransactionSource(build_plaid_client(), PlaidItemStore(db))


def month_from_request(request: Request) -> Period:
    try:
        return resolve_month(request.query_params.get("month"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def dashboard_payload(view: DashboardView) -> dict:
    comparison = view.comparison
    return {
        "period": {
            "month": view.period.slug,
            "label": view.period.label,
            "start": view.period.start.isoformat(),
            "end": view.period.end.isoformat(),
        },
        "summary": jsonable_encoder(view.summary),
        "previous_summary": jsonable_encoder(comparison.previous),
        "trends": {
            "income": comparison.income_trend,
            "expense": comparison.expense_trend,
        },
        "category_breakdown": jsonable_encoder(view.category_breakdown),
        "reconciled_budget": jsonable_encoder(view.reconciled_budget),
        "budget": jsonable_encoder(BudgetOut.from_budget(view.budget)),
    }


@app.get("/api/budget")
def api_get_budget(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    budget = BudgetService(db).get_or_create_current_budget(user_id)
    return BudgetOut.from_budget(budget)


@app.put("/api/budget")
def api_save_budget(
    data: BudgetIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        budget = BudgetService(db).save_budget(user_id, data.model_dump())
    except BudgetValidationError as exc:
        logger.warning(f"budget_rejected: user_id={user_id} reason={exc.reason!r}")
        raise HTTPException(status_code=400, detail=exc.reason) from exc
    return BudgetOut.from_budget(budget)


@app.patch("/api/budget")
def api_patch_budget(
    data: BudgetPatch,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        budget = BudgetService(db).patch_budget(user_id, data.changes())
    except BudgetNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except BudgetValidationError as exc:
        logger.warning(f"budget_rejected: user_id={user_id} reason={exc.reason!r}")
        raise HTTPException(status_code=400, detail=exc.reason) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return BudgetOut.from_budget(budget)


@app.delete("/api/budget")
def api_delete_budget(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    deleted = BudgetService(db).delete_budget(user_id)
    if deleted is None:
        raise HTTPException(status_code=404, detail="Budget not found")
    return BudgetOut.from_budget(deleted)


@app.get("/api/dashboard")
def api_dashboard(
    request: Request,
    db: Session = Depends(get_db),
    source: TransactionSource = Depends(get_transaction_source),
    user_id: int = Depends(current_user_id),
):
    period = month_from_request(request)
    service = BudgetService(db, source)
    try:
        view = service.get_dashboard_view(
            user_id, period.start.year, period.start.month
        )
    except TransactionSourceError as exc:
        logger.error(f"dashboard_source_failed: user_id={user_id} error={exc}")
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return dashboard_payload(view)


@app.get("/api/transactions")
def api_transactions(
    request: Request,
    source: TransactionSource = Depends(get_transaction_source),
    user_id: int = Depends(current_user_id),
):
    period = month_from_request(request)
    try:
        raw = source.get_transactions(user_id, period.start, period.end)
    except TransactionSourceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    items = in_period(classify_all(dedupe_transactions(raw)), period)
    return {
        "items": [
            {
                "id": txn.id,
                "date": txn.calendar_date.isoformat() if txn.calendar_date else None,
                "name": txn.name,
                "amount": txn.amount,
                "pending": txn.pending,
                "budget_category": txn.assigned_category,
            }
            for txn in items
        ],
        "period": period.slug,
    }


@app.post("/api/plaid/exchange")
def api_plaid_exchange(
    data: PublicTokenIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    source = PlaidTransactionSource(build_plaid_client(), PlaidItemStore(db))
    try:
        item = source.exchange_public_token(user_id, data.public_token)
    except TransactionSourceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"item_id": item.item_id}


@app.get("/api/savings-goals")
def api_list_savings_goals(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    goals = SavingsGoalService(db, user_id).list_all()
    return [SavingsGoalOut.from_goal(goal) for goal in goals]


@app.get("/api/savings-goals/stats/summary")
def api_savings_goal_stats(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return jsonable_encoder(SavingsGoalService(db, user_id).stats())


@app.get("/api/savings-goals/{goal_id}")
def api_get_savings_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        goal = SavingsGoalService(db, user_id).get(goal_id)
    except SavingsGoalNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return SavingsGoalOut.from_goal(goal)


@app.post("/api/savings-goals", status_code=201)
def api_create_savings_goal(
    data: SavingsGoalIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        goal = SavingsGoalService(db, user_id).create(data.goal_fields())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SavingsGoalOut.from_goal(goal)


@app.put("/api/savings-goals/{goal_id}")
def api_update_savings_goal(
    goal_id: int,
    data: SavingsGoalIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        goal = SavingsGoalService(db, user_id).update(goal_id, data.goal_fields())
    except SavingsGoalNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SavingsGoalOut.from_goal(goal)


@app.patch("/api/savings-goals/{goal_id}")
def api_patch_savings_goal(
    goal_id: int,
    data: SavingsGoalPatch,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        goal = SavingsGoalService(db, user_id).patch(goal_id, data.changes())
    except SavingsGoalNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SavingsGoalOut.from_goal(goal)


@app.delete("/api/savings-goals/{goal_id}")
def api_delete_savings_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        SavingsGoalService(db, user_id).delete(goal_id)
    except SavingsGoalNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"id": goal_id, "deleted": True}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
