from datetime import date, timedelta
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from finance_tracker.auth import get_current_user
from finance_tracker.database import get_db
from finance_tracker.errors import BadRequestError, NotFoundError
from finance_tracker.models import Subscription, SubscriptionPayment, User
from finance_tracker.responses import envelope
from finance_tracker.schemas import (
    PaymentCreate,
    SubscriptionCreate,
    SubscriptionOut,
    SubscriptionUpdate,
)
from finance_tracker.services import dates

logger = structlog.get_logger(__name__)

router = APIRouter()

EFFECTIVE_DUE = func.coalesce(Subscription.next_due_date, Subscription.due_date)


def first_due_on_or_after(due: date, frequency: str, custom_days: Optional[int], floor: date) -> date:
    """Step `due` forward by the billing frequency until it is not before `floor`."""
    while due < floor:
        due = dates.next_due_date(due, frequency, custom_days)
    return due


def _subscription_query(db: Session, user: User):
    return db.query(Subscription).filter(
        Subscription.user_id == user.id, Subscription.is_deleted.is_(False)
    )


def _get_owned_subscription(db: Session, user: User, subscription_id: int) -> Subscription:
    subscription = (
        _subscription_query(db, user).filter(Subscription.id == subscription_id).first()
    )
    if not subscription:
        raise NotFoundError("Subscription not found")
    return subscription


def list_subscriptions(
    db: Session,
    user: User,
    status: Optional[str] = None,
    category: Optional[str] = None,
) -> dict:
    query = _subscription_query(db, user)
    if status:
        query = query.filter(Subscription.status == status)
    if category:
        query = query.filter(Subscription.category == category)
    subscriptions = query.order_by(EFFECTIVE_DUE.asc(), Subscription.id).all()
    return {
        "subscriptions": [SubscriptionOut.model_validate(s) for s in subscriptions],
        "count": len(subscriptions),
    }


def upcoming_subscriptions(db: Session, user: User, days: int = 30) -> dict:
    today = dates.today()
    subscriptions = (
        _subscription_query(db, user)
        .filter(
            Subscription.status == "active",
            EFFECTIVE_DUE >= today,
            EFFECTIVE_DUE <= today + timedelta(days=days),
        )
        .order_by(EFFECTIVE_DUE.asc(), Subscription.id)
        .all()
    )
    total = sum(s.amount for s in subscriptions)
    return {
        "subscriptions": [SubscriptionOut.model_validate(s) for s in subscriptions],
        "count": len(subscriptions),
        "totalAmount": total,
    }


def get_subscription(db: Session, user: User, subscription_id: int) -> dict:
    subscription = _get_owned_subscription(db, user, subscription_id)
    return {"subscription": SubscriptionOut.model_validate(subscription)}


@router.get("")
async def get_subscriptions(
    status: Optional[str] = None,
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return envelope(list_subscriptions(db, current_user, status, category))


@router.get("/upcoming")
async def get_upcoming_subscriptions(
    days: int = Query(30, ge=0, le=366),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return envelope(upcoming_subscriptions(db, current_user, days))


@router.get("/calendar")
async def get_calendar(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1970, le=9999),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    today = dates.today()
    start, end = dates.month_bounds(year or today.year, month or today.month)
    subscriptions = (
        _subscription_query(db, current_user)
        .filter(
            Subscription.status == "active",
            EFFECTIVE_DUE >= start,
            EFFECTIVE_DUE <= end,
        )
        .order_by(EFFECTIVE_DUE.asc())
        .all()
    )

    calendar_data = {}
    for sub in subscriptions:
        calendar_data.setdefault(sub.effective_due_date.isoformat(), []).append(
            {"id": sub.id, "name": sub.name, "amount": sub.amount, "category": sub.category}
        )
    return envelope({"calendarData": calendar_data})


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_subscription(
    body: SubscriptionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if body.frequency == "custom" and not body.custom_frequency_days:
        raise BadRequestError("customFrequencyDays is required for custom billing")

    subscription = Subscription(
        user_id=current_user.id,
        name=body.name,
        description=body.description,
        category=body.category,
        amount=body.amount,
        frequency=body.frequency,
        custom_frequency_days=body.custom_frequency_days,
        start_date=body.start_date or dates.today(),
        end_date=body.end_date,
        due_date=body.due_date,
        next_due_date=first_due_on_or_after(
            body.due_date, body.frequency, body.custom_frequency_days, dates.today()
        ),
        icon=body.icon or "ellipsis-horizontal",
        logo=body.logo or body.name[0].lower(),
        color=body.color or "#3B82F6",
        notes=body.notes,
        status="active",
    )
    db.add(subscription)
    db.commit()
    db.refresh(subscription)

    logger.info("subscription_created", user_id=current_user.id, subscription_id=subscription.id)
    return envelope(
        {"subscription": SubscriptionOut.model_validate(subscription)},
        message="Subscription created successfully",
    )


@router.get("/{subscription_id}")
async def get_subscription_by_id(
    subscription_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return envelope(get_subscription(db, current_user, subscription_id))


@router.put("/{subscription_id}")
async def update_subscription(
    subscription_id: int,
    body: SubscriptionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    subscription = _get_owned_subscription(db, current_user, subscription_id)
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(subscription, field, value)
    if "due_date" in changes and "next_due_date" not in changes:
        subscription.next_due_date = first_due_on_or_after(
            subscription.due_date,
            subscription.frequency,
            subscription.custom_frequency_days,
            dates.today(),
        )

    db.commit()
    db.refresh(subscription)
    return envelope(
        {"subscription": SubscriptionOut.model_validate(subscription)},
        message="Subscription updated successfully",
    )


@router.delete("/{subscription_id}")
async def delete_subscription(
    subscription_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    subscription = _get_owned_subscription(db, current_user, subscription_id)
    subscription.soft_delete()
    db.commit()
    return envelope(message="Subscription deleted successfully")


@router.post("/{subscription_id}/payment")
async def record_payment(
    subscription_id: int,
    body: PaymentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    subscription = _get_owned_subscription(db, current_user, subscription_id)
    amount = body.amount or subscription.amount
    paid_on = body.paid_on or dates.today()
    payment_status = body.status or "success"

    subscription.payments.append(
        SubscriptionPayment(
            amount=amount,
            paid_on=paid_on,
            status=payment_status,
            transaction_id=body.transaction_id,
            note=body.note,
        )
    )

    if payment_status == "success":
        subscription.total_paid += amount
        subscription.payment_count += 1
        subscription.average_payment = subscription.total_paid / subscription.payment_count
        subscription.last_payment_date = paid_on
        subscription.next_due_date = dates.next_due_date(
            subscription.effective_due_date,
            subscription.frequency,
            subscription.custom_frequency_days,
        )
        if subscription.status == "overdue" and subscription.next_due_date >= dates.today():
            subscription.status = "active"
    elif payment_status == "failed":
        subscription.missed_payments += 1

    db.commit()
    db.refresh(subscription)
    logger.info(
        "subscription_payment_recorded",
        user_id=current_user.id,
        subscription_id=subscription.id,
        status=payment_status,
    )
    return envelope(
        {"subscription": SubscriptionOut.model_validate(subscription)},
        message="Payment recorded successfully",
    )
