from typing import Optional

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from finance_tracker.auth import get_current_user
from finance_tracker.database import get_db
from finance_tracker.errors import BadRequestError, NotFoundError
from finance_tracker.models import Budget, BudgetThreshold, User
from finance_tracker.responses import envelope
from finance_tracker.schemas import BudgetCreate, BudgetOut, BudgetUpdate
from finance_tracker.services import dates
from finance_tracker.services.budgets import (
    check_budget_alerts,
    default_thresholds,
    renew_expired_budgets,
    update_budget_spending,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


def _budget_query(db: Session, user: User):
    return db.query(Budget).filter(Budget.user_id == user.id, Budget.is_deleted.is_(False))


def _get_owned_budget(db: Session, user: User, budget_id: int) -> Budget:
    budget = _budget_query(db, user).filter(Budget.id == budget_id).first()
    if not budget:
        raise NotFoundError("Budget not found")
    return budget


def list_budgets(
    db: Session,
    user: User,
    status: Optional[str] = None,
    period: Optional[str] = None,
    category: Optional[str] = None,
) -> dict:
    query = _budget_query(db, user)
    if status:
        query = query.filter(Budget.status == status)
    if period:
        query = query.filter(Budget.period == period)
    if category:
        query = query.filter(Budget.category == category)

    budgets = query.order_by(Budget.created_at.desc(), Budget.id.desc()).all()
    for budget in budgets:
        update_budget_spending(db, budget)
    return {"budgets": [BudgetOut.model_validate(b) for b in budgets], "count": len(budgets)}


def get_budget(db: Session, user: User, budget_id: int) -> dict:
    budget = update_budget_spending(db, _get_owned_budget(db, user, budget_id))
    return {"budget": BudgetOut.model_validate(budget)}


def budget_overview(db: Session, user: User, period: str = "monthly") -> dict:
    budgets = _budget_query(db, user).filter(
        Budget.period == period, Budget.status == "active"
    ).all()
    for budget in budgets:
        update_budget_spending(db, budget)

    total_limit = sum(b.limit for b in budgets)
    total_spent = sum(b.spent for b in budgets)
    return {
        "budgets": [BudgetOut.model_validate(b) for b in budgets],
        "overview": {
            "totalLimit": total_limit,
            "totalSpent": total_spent,
            "totalRemaining": total_limit - total_spent,
            "overallPercentage": round(total_spent / total_limit * 100) if total_limit > 0 else 0,
            "categoriesAtRisk": len([b for b in budgets if b.percentage_used > 80]),
        },
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_budget(
    body: BudgetCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    existing = (
        _budget_query(db, current_user)
        .filter(
            Budget.category == body.category,
            Budget.period == body.period,
            Budget.status == "active",
        )
        .first()
    )
    if existing:
        raise BadRequestError(
            f"Active budget already exists for {body.category} ({body.period})"
        )

    month_start, month_end = dates.current_month_bounds()
    start_date = body.start_date or month_start
    end_date = body.end_date or month_end
    if end_date < start_date:
        raise BadRequestError("End date must be after start date")

    if body.alerts and body.alerts.thresholds:
        thresholds = [BudgetThreshold(percentage=t.percentage) for t in body.alerts.thresholds]
    else:
        thresholds = default_thresholds()

    budget = Budget(
        user_id=current_user.id,
        name=body.name or f"{body.category} Budget",
        description=body.description,
        category=body.category,
        limit=body.limit,
        remaining=body.limit,
        period=body.period,
        start_date=start_date,
        end_date=end_date,
        color=body.color or "#3B82F6",
        icon=body.icon or "wallet-outline",
        alerts_enabled=body.alerts.enabled if body.alerts else True,
        is_recurring=body.is_recurring,
        notes=body.notes,
        thresholds=thresholds,
    )
    if body.rollover:
        budget.rollover_enabled = body.rollover.enabled
        budget.carry_forward_unspent = body.rollover.carry_forward_unspent
    if body.recurring_settings:
        budget.auto_renew = body.recurring_settings.auto_renew
        budget.adjustment_factor = body.recurring_settings.adjustment_factor

    db.add(budget)
    db.commit()
    update_budget_spending(db, budget)
    db.refresh(budget)

    logger.info("budget_created", user_id=current_user.id, budget_id=budget.id)
    return envelope(
        {"budget": BudgetOut.model_validate(budget)}, message="Budget created successfully"
    )


@router.get("")
async def get_budgets(
    status: Optional[str] = None,
    period: Optional[str] = None,
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return envelope(list_budgets(db, current_user, status, period, category))


@router.get("/overview")
async def get_budget_overview(
    period: str = "monthly",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return envelope(budget_overview(db, current_user, period))


@router.get("/alerts")
async def get_budget_alerts(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    alerts = check_budget_alerts(db, current_user.id)
    return envelope({"alerts": alerts}, message=f"{len(alerts)} alert(s) triggered")


@router.post("/renew")
async def renew_budgets(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    renewed = renew_expired_budgets(db, current_user.id)
    return envelope(
        {"renewedBudgets": [BudgetOut.model_validate(b) for b in renewed]},
        message=f"{len(renewed)} budget(s) renewed successfully",
    )


@router.get("/category/{category}")
async def get_budgets_by_category(
    category: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    data = list_budgets(db, current_user, category=category)
    data["category"] = category
    return envelope(data)


@router.get("/{budget_id}")
async def get_budget_by_id(
    budget_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return envelope(get_budget(db, current_user, budget_id))


@router.put("/{budget_id}")
async def update_budget(
    budget_id: int,
    body: BudgetUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    budget = _get_owned_budget(db, current_user, budget_id)

    changes = body.model_dump(exclude_unset=True, exclude={"recurring_settings"})
    for field, value in changes.items():
        setattr(budget, field, value)
    if body.recurring_settings is not None:
        budget.auto_renew = body.recurring_settings.auto_renew
        budget.adjustment_factor = body.recurring_settings.adjustment_factor
    if budget.end_date < budget.start_date:
        raise BadRequestError("End date must be after start date")

    db.commit()
    update_budget_spending(db, budget)
    db.refresh(budget)
    return envelope(
        {"budget": BudgetOut.model_validate(budget)}, message="Budget updated successfully"
    )


@router.delete("/{budget_id}")
async def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    budget = _get_owned_budget(db, current_user, budget_id)
    budget.soft_delete()
    budget.status = "completed"
    db.commit()
    db.refresh(budget)
    return envelope(
        {"budget": BudgetOut.model_validate(budget)}, message="Budget deleted successfully"
    )
