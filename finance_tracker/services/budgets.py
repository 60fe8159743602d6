from datetime import date, datetime
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from finance_tracker.models import Budget, BudgetThreshold, Transaction
from finance_tracker.services import dates
from finance_tracker.services.notifications import create_budget_alert

logger = structlog.get_logger(__name__)

DEFAULT_THRESHOLDS = (50, 75, 90)


def default_thresholds() -> list[BudgetThreshold]:
    return [BudgetThreshold(percentage=p, triggered=False) for p in DEFAULT_THRESHOLDS]


def update_budget_spending(db: Session, budget: Budget, commit: bool = True) -> Budget:
    """
    Recompute spent/remaining, the daily analytics and the status of `budget`
    from the user's non-deleted expenses in its category and date range.
    """
    spent = (
        db.query(func.coalesce(func.sum(Transaction.amount), 0.0))
        .filter(
            Transaction.user_id == budget.user_id,
            Transaction.is_deleted.is_(False),
            Transaction.type == "expense",
            Transaction.category == budget.category,
            Transaction.date >= budget.start_date,
            Transaction.date <= budget.end_date,
        )
        .scalar()
    )
    budget.spent = float(spent or 0)
    budget.remaining = budget.limit - budget.spent

    today = dates.today()
    days_passed = (today - budget.start_date).days + 1
    total_days = (budget.end_date - budget.start_date).days + 1
    average = budget.spent / days_passed if days_passed > 0 else 0.0
    budget.average_spending = average
    budget.spending_velocity = average
    budget.projected_spend = average * total_days if total_days > 0 else 0.0

    if budget.status != "paused":
        if budget.percentage_used >= 100:
            budget.status = "exceeded"
        elif today > budget.end_date:
            budget.status = "completed"
        else:
            budget.status = "active"

    if commit:
        db.commit()
    return budget


def fire_threshold_alerts(db: Session, budget: Budget) -> list[dict]:
    """Notify once for every untriggered threshold the budget has crossed."""
    percentage = budget.percentage_used
    fired = []
    for threshold in budget.thresholds:
        if threshold.triggered or percentage < threshold.percentage:
            continue
        threshold.triggered = True
        threshold.triggered_at = datetime.utcnow()
        create_budget_alert(db, budget, percentage)
        fired.append(
            {
                "budgetId": budget.id,
                "category": budget.category,
                "percentage": round(percentage),
                "threshold": threshold.percentage,
            }
        )

    if fired:
        budget.last_alert_sent = datetime.utcnow()
    if percentage >= 100:
        budget.status = "exceeded"
    db.commit()
    return fired


def check_budget_alerts(db: Session, user_id: int) -> list[dict]:
    budgets = (
        db.query(Budget)
        .filter(
            Budget.user_id == user_id,
            Budget.is_deleted.is_(False),
            Budget.status == "active",
            Budget.alerts_enabled.is_(True),
        )
        .all()
    )
    alerts = []
    for budget in budgets:
        update_budget_spending(db, budget)
        alerts.extend(fire_threshold_alerts(db, budget))
    return alerts


def refresh_budgets_for_expense(
    db: Session, user_id: int, category: str, on_date: date
) -> list[dict]:
    """Recompute active budgets covering an expense on `on_date` and fire crossed thresholds."""
    budgets = (
        db.query(Budget)
        .filter(
            Budget.user_id == user_id,
            Budget.is_deleted.is_(False),
            Budget.status.in_(("active", "exceeded")),
            Budget.category == category,
            Budget.start_date <= on_date,
            Budget.end_date >= on_date,
        )
        .all()
    )
    alerts = []
    for budget in budgets:
        update_budget_spending(db, budget)
        if budget.alerts_enabled:
            alerts.extend(fire_threshold_alerts(db, budget))
    return alerts


def _has_successor(db: Session, budget: Budget, start: date) -> bool:
    return (
        db.query(Budget.id)
        .filter(
            Budget.user_id == budget.user_id,
            Budget.is_deleted.is_(False),
            Budget.category == budget.category,
            Budget.period == budget.period,
            Budget.start_date == start,
        )
        .first()
        is not None
    )


def renew_budget(db: Session, old: Budget) -> Optional[Budget]:
    period = dates.renewal_period(old.end_date, old.period)
    if period is None:
        return None
    start, end = period
    if _has_successor(db, old, start):
        return None

    old.status = "completed"
    new_limit = old.limit * (1 + (old.adjustment_factor or 0) / 100)
    budget = Budget(
        user_id=old.user_id,
        name=old.name,
        description=old.description,
        category=old.category,
        limit=new_limit,
        spent=0.0,
        remaining=new_limit,
        period=old.period,
        start_date=start,
        end_date=end,
        alerts_enabled=True,
        rollover_enabled=old.rollover_enabled,
        carry_forward_unspent=old.carry_forward_unspent,
        color=old.color,
        icon=old.icon,
        is_recurring=True,
        auto_renew=old.auto_renew,
        adjustment_factor=old.adjustment_factor,
        thresholds=default_thresholds(),
    )
    if old.rollover_enabled and old.carry_forward_unspent:
        unspent = max(0.0, old.limit - old.spent)
        budget.previous_period_remainder = unspent
        budget.limit += unspent
        budget.remaining = budget.limit

    db.add(budget)
    db.commit()
    db.refresh(budget)
    logger.info(
        "budget_renewed",
        user_id=old.user_id,
        old_budget_id=old.id,
        budget_id=budget.id,
        limit=budget.limit,
    )
    return budget


def renew_expired_budgets(db: Session, user_id: Optional[int] = None) -> list[Budget]:
    """
    Roll every ended recurring auto-renew budget forward until it reaches
    the period containing today, returning each budget created on the way.
    """
    today = dates.today()
    query = db.query(Budget).filter(
        Budget.is_deleted.is_(False),
        Budget.is_recurring.is_(True),
        Budget.auto_renew.is_(True),
        Budget.status != "paused",
        Budget.end_date < today,
    )
    if user_id is not None:
        query = query.filter(Budget.user_id == user_id)

    renewed = []
    for budget in query.order_by(Budget.end_date).all():
        while budget is not None and budget.end_date < today:
            # settle spending for the closing period before carrying anything forward
            update_budget_spending(db, budget, commit=False)
            budget = renew_budget(db, budget)
            if budget is not None:
                renewed.append(budget)
    db.commit()
    return renewed
