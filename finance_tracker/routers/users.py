from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from finance_tracker.auth import get_current_user
from finance_tracker.config import get_settings
from finance_tracker.database import get_db
from finance_tracker.errors import BadRequestError
from finance_tracker.models import SavingGoal, Transaction, User
from finance_tracker.responses import envelope
from finance_tracker.routers.subscriptions import upcoming_subscriptions
from finance_tracker.schemas import MoneySummary, ProfileUpdate, RiskProfileUpdate, UserOut
from finance_tracker.services import dates
from finance_tracker.services.uploads import ensure_image, public_uri, save_upload

logger = structlog.get_logger(__name__)

router = APIRouter()

RISK_PROFILES = ("Low", "Moderate", "High")


def user_profile(db: Session, user: User) -> dict:
    return {"user": UserOut.model_validate(user)}


def user_balance(db: Session, user: User) -> dict:
    return {
        "balance": user.balance,
        "income": MoneySummary.model_validate(user.income),
        "expense": MoneySummary.model_validate(user.expense),
    }


def dashboard(db: Session, user: User) -> dict:
    goals = (
        db.query(SavingGoal)
        .filter(
            SavingGoal.user_id == user.id,
            SavingGoal.is_deleted.is_(False),
            SavingGoal.status == "active",
        )
        .order_by(SavingGoal.is_main_goal.desc(), SavingGoal.created_at.desc())
        .limit(5)
        .all()
    )
    recent = (
        db.query(Transaction)
        .filter(Transaction.user_id == user.id, Transaction.is_deleted.is_(False))
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(5)
        .all()
    )
    upcoming = upcoming_subscriptions(db, user, 30)["subscriptions"]

    return {
        "userData": {
            "name": user.name,
            "balance": user.balance,
            "cardNumber": user.card_number,
            "income": {"amount": user.monthly_income, "percentage": user.income_percentage},
            "expense": {"amount": user.monthly_expense, "percentage": user.expense_percentage},
        },
        "savingGoals": [
            {
                "id": goal.id,
                "title": goal.name,
                "current": goal.current_amount,
                "target": goal.target_amount,
                "color": goal.color,
                "isMainGoal": goal.is_main_goal,
            }
            for goal in goals
        ],
        "recentTransactions": [
            {
                "id": txn.id,
                "name": txn.name,
                "category": txn.category,
                "amount": txn.signed_amount,
                "type": txn.type,
                "date": txn.date,
                "timestamp": txn.timestamp,
                "icon": txn.icon,
            }
            for txn in recent
        ],
        "upcomingBillsAndSubscriptions": [
            {
                "id": sub.id,
                "name": sub.name,
                "icon": sub.icon,
                "logo": sub.logo,
                "amount": sub.amount,
                "frequency": sub.frequency,
                "dueDate": sub.next_due_date or sub.due_date,
                "daysUntilDue": sub.days_until_due,
                "category": sub.category,
            }
            for sub in upcoming
        ],
    }


@router.get("/dashboard")
async def get_dashboard(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    return envelope(dashboard(db, current_user))


@router.get("/profile")
async def get_profile(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    return envelope(user_profile(db, current_user))


@router.put("/profile")
async def update_profile(
    body: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    for field, value in body.model_dump(exclude_none=True).items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return envelope(user_profile(db, current_user), message="Profile updated successfully")


@router.put("/profile/image")
async def update_profile_image(
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if file is None:
        raise BadRequestError("No image file uploaded")
    ensure_image(file)

    path = await save_upload(file, "profiles", get_settings().max_image_size_bytes)
    current_user.profile_image = public_uri(path)
    db.commit()
    logger.info("profile_image_updated", user_id=current_user.id)
    return envelope(
        {"profileImage": current_user.profile_image},
        message="Profile image updated successfully",
    )


@router.get("/financial-summary")
async def get_financial_summary(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    month_start, month_end = dates.current_month_bounds()
    transactions = (
        db.query(Transaction)
        .filter(
            Transaction.user_id == current_user.id,
            Transaction.is_deleted.is_(False),
            Transaction.date >= month_start,
            Transaction.date <= month_end,
        )
        .all()
    )

    total_income = 0.0
    total_expense = 0.0
    breakdown = {}
    for txn in transactions:
        if txn.type == "income":
            total_income += txn.amount
        else:
            total_expense += txn.amount
            breakdown[txn.category] = breakdown.get(txn.category, 0.0) + txn.amount

    return envelope(
        {
            "totalIncome": total_income,
            "totalExpense": total_expense,
            "netSavings": total_income - total_expense,
            "categoryBreakdown": breakdown,
            "month": month_start.strftime("%B %Y"),
        }
    )


@router.put("/risk-profile")
async def update_risk_profile(
    body: RiskProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if body.risk_profile not in RISK_PROFILES:
        raise BadRequestError("Invalid risk profile. Must be Low, Moderate, or High")
    current_user.risk_profile = body.risk_profile
    db.commit()
    return envelope(
        {"riskProfile": current_user.risk_profile},
        message="Risk profile updated successfully",
    )


@router.get("/balance")
async def get_balance(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    return envelope(user_balance(db, current_user))
