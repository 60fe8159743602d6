from datetime import timedelta

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from finance_tracker.models import Transaction, User
from finance_tracker.services import dates


def _income_expense(db: Session, user_id: int, start=None, end=None) -> tuple[float, float]:
    income = func.sum(case((Transaction.type == "income", Transaction.amount), else_=0.0))
    expense = func.sum(case((Transaction.type == "expense", Transaction.amount), else_=0.0))
    query = db.query(income, expense).filter(
        Transaction.user_id == user_id, Transaction.is_deleted.is_(False)
    )
    if start is not None:
        query = query.filter(Transaction.date >= start)
    if end is not None:
        query = query.filter(Transaction.date <= end)
    total_income, total_expense = query.one()
    return float(total_income or 0), float(total_expense or 0)


def update_user_financials(db: Session, user: User) -> User:
    """
    Refresh the cached income/expense summaries on `user`.

    The balance tracks the current month: monthly income minus monthly expense.
    """
    month_start, month_end = dates.current_month_bounds()
    monthly_income, monthly_expense = _income_expense(db, user.id, month_start, month_end)

    today = dates.today()
    weekly_income, weekly_expense = _income_expense(
        db, user.id, today - timedelta(days=6), today
    )
    total_income, total_expense = _income_expense(db, user.id)

    user.monthly_income = monthly_income
    user.monthly_expense = monthly_expense
    user.weekly_income = weekly_income
    user.weekly_expense = weekly_expense
    user.total_income = total_income
    user.total_expense = total_expense
    user.income_percentage = 100.0 if monthly_income > 0 else 0.0
    user.expense_percentage = (
        round(monthly_expense / monthly_income * 100, 2) if monthly_income > 0 else 0.0
    )
    user.balance = monthly_income - monthly_expense

    db.commit()
    db.refresh(user)
    return user
