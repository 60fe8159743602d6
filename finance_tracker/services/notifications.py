"""
Notification helpers.

Each helper builds one in-app notification for a domain event and commits
it. Callers that batch several events (the scheduler) rely on the per-call
commit so one failing event does not roll back the others.
"""

from datetime import datetime, timedelta

import structlog
from sqlalchemy.orm import Session

from finance_tracker.models import Notification

logger = structlog.get_logger(__name__)


def format_money(value) -> str:
    value = float(value or 0)
    if value.is_integer():
        return f"₹{value:,.0f}"
    return f"₹{value:,.2f}"


def create_notification(db: Session, user_id: int, **data) -> Notification:
    related = data.pop("related_document", None) or {}
    notification = Notification(
        user_id=user_id,
        type=data.get("type", "system"),
        title=data["title"],
        message=data["message"],
        icon=data.get("icon") or "notifications-outline",
        color=data.get("color") or "#3B82F6",
        priority=data.get("priority") or "medium",
        related_document_type=related.get("document_type"),
        related_document_id=related.get("document_id"),
        action=data.get("action") or {"type": "none"},
        scheduled_for=data.get("scheduled_for"),
        expires_at=data.get("expires_at"),
    )
    # notifications without a schedule are delivered immediately
    if notification.scheduled_for is None:
        notification.delivered_in_app = True
        notification.delivered_at = datetime.utcnow()

    db.add(notification)
    db.commit()
    db.refresh(notification)
    logger.debug("notification_created", user_id=user_id, type=notification.type)
    return notification


def create_budget_alert(db: Session, budget, percentage: float) -> Notification:
    exceeded = percentage >= 100
    return create_notification(
        db,
        budget.user_id,
        type="budget_exceeded" if exceeded else "budget_alert",
        title=f"Budget Alert: {budget.category}",
        message=(
            f"You've spent {round(percentage)}% of your {budget.category} budget "
            f"({format_money(budget.spent)} / {format_money(budget.limit)})"
        ),
        icon="alert-circle" if exceeded else "warning-outline",
        color="#EF4444" if exceeded else "#F59E0B" if percentage >= 90 else "#3B82F6",
        priority="urgent" if exceeded else "high" if percentage >= 90 else "medium",
        related_document={"document_type": "Budget", "document_id": budget.id},
    )


def create_subscription_reminder(db: Session, subscription, days_until_due: int) -> Notification:
    overdue = days_until_due < 0
    if overdue:
        message = (
            f"Your {subscription.name} subscription is overdue! "
            f"Amount: {format_money(subscription.amount)}"
        )
    else:
        plural = "s" if days_until_due > 1 else ""
        message = (
            f"Your {subscription.name} subscription is due in {days_until_due} day{plural}. "
            f"Amount: {format_money(subscription.amount)}"
        )

    return create_notification(
        db,
        subscription.user_id,
        type="subscription_overdue" if overdue else "subscription_due",
        title="Subscription Overdue" if overdue else "Upcoming Subscription",
        message=message,
        icon="alert-circle" if overdue else "calendar-outline",
        color="#EF4444" if overdue else "#F59E0B" if days_until_due <= 3 else "#3B82F6",
        priority="urgent" if overdue else "high" if days_until_due <= 3 else "medium",
        related_document={"document_type": "Subscription", "document_id": subscription.id},
    )


def create_goal_milestone(db: Session, goal, percentage: float) -> Notification:
    achieved = percentage >= 100
    if achieved:
        message = (
            f'Congratulations! You\'ve achieved your goal "{goal.name}" '
            f"of {format_money(goal.target_amount)}!"
        )
    else:
        message = (
            f'You\'ve reached {round(percentage)}% of your goal "{goal.name}" '
            f"({format_money(goal.current_amount)} / {format_money(goal.target_amount)})"
        )

    return create_notification(
        db,
        goal.user_id,
        type="goal_achieved" if achieved else "goal_milestone",
        title="Goal Achieved! 🎉" if achieved else "Goal Milestone",
        message=message,
        icon="trophy" if achieved else "flag-outline",
        color="#10B981" if achieved else "#3B82F6",
        priority="high" if achieved else "medium",
        related_document={"document_type": "SavingGoal", "document_id": goal.id},
    )


def create_transaction_notification(db: Session, transaction) -> Notification:
    income = transaction.type == "income"
    return create_notification(
        db,
        transaction.user_id,
        type="transaction_added",
        title="Income Added" if income else "Expense Added",
        message=(
            f"{transaction.name}: {format_money(transaction.amount)} ({transaction.category})"
        ),
        icon="arrow-down-circle" if income else "arrow-up-circle",
        color="#10B981" if income else "#EF4444",
        priority="low",
        related_document={"document_type": "Transaction", "document_id": transaction.id},
    )


def process_scheduled_notifications(db: Session) -> int:
    """Mark notifications whose scheduled time has passed as delivered in-app."""
    now = datetime.utcnow()
    due = (
        db.query(Notification)
        .filter(
            Notification.is_deleted.is_(False),
            Notification.scheduled_for.isnot(None),
            Notification.scheduled_for <= now,
            Notification.delivered_in_app.is_(False),
        )
        .all()
    )
    for notification in due:
        notification.delivered_in_app = True
        notification.delivered_at = now
    db.commit()
    return len(due)


def cleanup_old_notifications(db: Session, days_old: int = 30) -> int:
    """Soft-delete read notifications read more than `days_old` days ago."""
    cutoff = datetime.utcnow() - timedelta(days=days_old)
    stale = (
        db.query(Notification)
        .filter(
            Notification.is_deleted.is_(False),
            Notification.is_read.is_(True),
            Notification.read_at <= cutoff,
        )
        .all()
    )
    for notification in stale:
        notification.soft_delete()
    db.commit()
    return len(stale)
