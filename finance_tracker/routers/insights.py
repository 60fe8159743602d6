from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from finance_tracker.auth import get_current_user
from finance_tracker.database import get_db
from finance_tracker.models import Transaction, User
from finance_tracker.responses import envelope
from finance_tracker.services import dates
from finance_tracker.services.categories import category_key

router = APIRouter()

CHART_COLORS = (
    "#FF6384", "#36A2EB", "#FFCE56", "#4BC0C0", "#9966FF",
    "#FF9F40", "#C9CBCF", "#7BC225", "#E7298A", "#1B9E77",
)
DEFAULT_TREND_CATEGORIES = ("Food & Drink", "Shopping", "Transport", "Entertainment")


def _transactions(db: Session, user: User, txn_type: str):
    return db.query(Transaction).filter(
        Transaction.user_id == user.id,
        Transaction.type == txn_type,
        Transaction.is_deleted.is_(False),
    )


def _sum(db: Session, user: User, txn_type: str, start: date, end: date) -> float:
    total = (
        db.query(func.sum(Transaction.amount))
        .filter(
            Transaction.user_id == user.id,
            Transaction.type == txn_type,
            Transaction.is_deleted.is_(False),
            Transaction.date >= start,
            Transaction.date <= end,
        )
        .scalar()
    )
    return float(total or 0)


def expense_distribution(
    db: Session,
    user: User,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> dict:
    query = db.query(Transaction.category, func.sum(Transaction.amount).label("total")).filter(
        Transaction.user_id == user.id,
        Transaction.type == "expense",
        Transaction.is_deleted.is_(False),
    )
    if start_date:
        query = query.filter(Transaction.date >= start_date)
    if end_date:
        query = query.filter(Transaction.date <= end_date)
    rows = query.group_by(Transaction.category).order_by(func.sum(Transaction.amount).desc()).all()

    total = sum(float(row.total or 0) for row in rows)
    expense_data = [
        {
            "name": row.category,
            "amount": float(row.total or 0),
            "color": CHART_COLORS[index % len(CHART_COLORS)],
            "percentage": round(float(row.total or 0) / total * 100) if total > 0 else 0,
        }
        for index, row in enumerate(rows)
    ]
    return {"expenseData": expense_data, "totalExpense": total}


def income_progression(db: Session, user: User, months: int = 6) -> dict:
    progression = [
        {"month": start.strftime("%b"), "income": _sum(db, user, "income", start, end)}
        for start, end in dates.months_back(months)
    ]
    return {"progressionData": progression}


def spending_over_time(
    db: Session, user: User, month: Optional[int] = None, year: Optional[int] = None
) -> dict:
    today = dates.today()
    start, end = dates.month_bounds(year or today.year, month or today.month)
    rows = (
        db.query(Transaction.date, func.sum(Transaction.amount))
        .filter(
            Transaction.user_id == user.id,
            Transaction.type == "expense",
            Transaction.is_deleted.is_(False),
            Transaction.date >= start,
            Transaction.date <= end,
        )
        .group_by(Transaction.date)
        .all()
    )
    by_day = {row[0].day: float(row[1] or 0) for row in rows}

    spending = []
    cumulative = 0.0
    for day in range(1, end.day + 1):
        amount = by_day.get(day, 0.0)
        cumulative += amount
        spending.append({"day": day, "amount": amount, "cumulative": cumulative})
    return {
        "spendingData": spending,
        "totalSpent": cumulative,
        "month": start.strftime("%B %Y"),
    }


def category_trends(
    db: Session,
    user: User,
    months: int = 6,
    categories: Optional[list[str]] = None,
) -> dict:
    categories = list(categories or DEFAULT_TREND_CATEGORIES)
    periods = dates.months_back(months)
    rows = (
        _transactions(db, user, "expense")
        .with_entities(Transaction.category, Transaction.date, Transaction.amount)
        .filter(
            Transaction.category.in_(categories),
            Transaction.date >= periods[0][0],
            Transaction.date <= periods[-1][1],
        )
        .all()
    )

    trend_data = []
    for start, end in periods:
        entry = {"month": start.strftime("%b")}
        for category in categories:
            entry[category_key(category)] = sum(
                amount
                for row_category, on, amount in rows
                if row_category == category and start <= on <= end
            )
        trend_data.append(entry)
    return {"trendData": trend_data, "categories": categories}


def financial_health(db: Session, user: User) -> dict:
    """
    Score out of 100: expense/income ratio (40), savings rate (30) and
    balance against one month of income (30).
    """
    income = user.monthly_income or 0
    expense = user.monthly_expense or 0
    balance = user.balance or 0

    ratio = expense / income if income > 0 else 1
    savings_rate = (income - expense) / income if income > 0 else 0

    score = 0
    if ratio < 0.5:
        score += 40
    elif ratio < 0.7:
        score += 30
    elif ratio < 0.9:
        score += 20
    else:
        score += 10

    if savings_rate > 0.3:
        score += 30
    elif savings_rate > 0.2:
        score += 20
    elif savings_rate > 0.1:
        score += 10

    if income > 0:
        if balance > income * 3:
            score += 30
        elif balance > income * 2:
            score += 20
        elif balance > income:
            score += 10

    return {
        "score": min(score, 100),
        "breakdown": {
            "incomeExpenseRatio": round(ratio, 2),
            "savingsRate": round(savings_rate * 100, 1),
            "monthlyIncome": income,
            "monthlyExpense": expense,
            "balance": balance,
        },
    }


def get_recommendations(db: Session, user: User) -> dict:
    income = user.monthly_income or 0
    expense = user.monthly_expense or 0
    insights = []

    if income > 0 and expense > income * 0.8:
        insights.append(
            {
                "type": "warning",
                "title": "High Spending Alert",
                "description": (
                    f"You've spent {round(expense / income * 100)}% of your income this month. "
                    "Consider reviewing your expenses."
                ),
                "icon": "warning-outline",
            }
        )

    if income > 0 and (income - expense) / income > 0.2:
        insights.append(
            {
                "type": "success",
                "title": "Great Savings!",
                "description": (
                    f"You're saving {round((income - expense) / income * 100)}% of your "
                    "income. Keep it up!"
                ),
                "icon": "trophy-outline",
            }
        )

    if income > 0 and (user.balance or 0) < income:
        insights.append(
            {
                "type": "info",
                "title": "Low Emergency Fund",
                "description": (
                    "Your balance is below one month of income. "
                    "Aim to keep 3-6 months of expenses as an emergency fund."
                ),
                "icon": "shield-outline",
            }
        )

    return {"insights": insights}


@router.get("/expense-distribution")
async def get_expense_distribution(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return envelope(expense_distribution(db, current_user, start_date, end_date))


@router.get("/income-progression")
async def get_income_progression(
    months: int = Query(6, ge=1, le=24),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return envelope(income_progression(db, current_user, months))


@router.get("/spending-over-time")
async def get_spending_over_time(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1970, le=9999),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return envelope(spending_over_time(db, current_user, month, year))


@router.get("/category-trends")
async def get_category_trends(
    months: int = Query(6, ge=1, le=24),
    categories: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    selected = [c.strip() for c in categories.split(",") if c.strip()] if categories else None
    return envelope(category_trends(db, current_user, months, selected))


@router.get("/financial-health")
async def get_financial_health(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    return envelope(financial_health(db, current_user))


@router.get("/recommendations")
async def get_insight_recommendations(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    return envelope(get_recommendations(db, current_user))
