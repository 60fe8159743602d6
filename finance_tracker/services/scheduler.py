"""
Daily background tasks.

Each task takes a session, does its work and returns how many records it
touched. `run_scheduled_tasks` runs all of them with a fresh session apiece so
one failing task is logged and the rest still run.
"""

from datetime import datetime

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from finance_tracker.database import SessionLocal
from finance_tracker.models import SavingGoal, Subscription, Transaction, User
from finance_tracker.services import dates
from finance_tracker.services.budgets import refresh_budgets_for_expense, renew_expired_budgets
from finance_tracker.services.financials import update_user_financials
from finance_tracker.services.notifications import (
    cleanup_old_notifications,
    create_goal_milestone,
    create_subscription_reminder,
    process_scheduled_notifications,
)

logger = structlog.get_logger(__name__)

REMINDER_DAYS = (7, 3, 1, 0)
GOAL_MILESTONES = (25, 50, 75, 90, 100)


def _active_subscriptions(db: Session):
    return db.query(Subscription).filter(
        Subscription.is_deleted.is_(False), Subscription.status == "active"
    )


def check_subscription_reminders(db: Session) -> int:
    today = dates.today()
    created = 0
    for subscription in _active_subscriptions(db).filter(
        Subscription.reminders_enabled.is_(True)
    ).all():
        days = dates.days_until(subscription.effective_due_date, today)
        if days in REMINDER_DAYS:
            create_subscription_reminder(db, subscription, days)
            subscription.last_reminder_sent = datetime.utcnow()
            created += 1
    db.commit()
    return created


def check_overdue_subscriptions(db: Session) -> int:
    today = dates.today()
    overdue = [s for s in _active_subscriptions(db) if s.effective_due_date < today]
    for subscription in overdue:
        create_subscription_reminder(
            db, subscription, dates.days_until(subscription.effective_due_date, today)
        )
        subscription.status = "overdue"
    db.commit()
    return len(overdue)


def auto_renew_budgets(db: Session) -> int:
    return len(renew_expired_budgets(db))


def check_goal_milestones(db: Session) -> int:
    goals = (
        db.query(SavingGoal)
        .filter(SavingGoal.is_deleted.is_(False), SavingGoal.status == "active")
        .all()
    )
    created = 0
    for goal in goals:
        progress = goal.progress
        notified = list(goal.milestones_notified or [])
        for milestone in GOAL_MILESTONES:
            if progress >= milestone and milestone not in notified:
                create_goal_milestone(db, goal, milestone)
                notified.append(milestone)
                created += 1
        goal.milestones_notified = notified
        if progress >= 100:
            goal.status = "completed"
            goal.actual_completion = goal.actual_completion or datetime.utcnow()
        db.commit()
    return created


def generate_recurring_transactions(db: Session) -> int:
    """Materialise every due occurrence of recurring transactions up to today."""
    today = dates.today()
    templates = (
        db.query(Transaction)
        .filter(
            Transaction.is_deleted.is_(False),
            Transaction.is_recurring.is_(True),
            Transaction.next_occurrence.isnot(None),
            Transaction.next_occurrence <= today,
        )
        .all()
    )

    created = 0
    users = set()
    expenses = set()
    for template in templates:
        occurrence = template.next_occurrence
        end = template.recurring_end_date
        while occurrence <= today and (end is None or occurrence <= end):
            db.add(
                Transaction(
                    user_id=template.user_id,
                    type=template.type,
                    name=template.name,
                    description=template.description,
                    amount=template.amount,
                    category=template.category,
                    icon=template.icon,
                    color=template.color,
                    date=occurrence,
                    timestamp=datetime.utcnow().isoformat(),
                    payment_method=template.payment_method,
                    notes=template.notes,
                    source="recurring",
                )
            )
            created += 1
            users.add(template.user_id)
            if template.type == "expense":
                expenses.add((template.user_id, template.category, occurrence))
            occurrence = dates.next_due_date(
                occurrence, template.recurring_frequency, template.recurring_interval_days
            )
        # past the end date the series stops
        template.next_occurrence = occurrence if end is None or occurrence <= end else None
    db.commit()

    for user_id in users:
        update_user_financials(db, db.get(User, user_id))
    for user_id, category, on_date in expenses:
        refresh_budgets_for_expense(db, user_id, category, on_date)
    return created


def cleanup_notifications(db: Session) -> int:
    return cleanup_old_notifications(db, days_old=30)


SCHEDULED_TASKS = (
    ("subscription_reminders", check_subscription_reminders),
    ("overdue_subscriptions", check_overdue_subscriptions),
    ("budget_renewal", auto_renew_budgets),
    ("goal_milestones", check_goal_milestones),
    ("recurring_transactions", generate_recurring_transactions),
    ("scheduled_notifications", process_scheduled_notifications),
    ("notification_cleanup", cleanup_notifications),
)


def run_scheduled_tasks(session_factory=SessionLocal) -> dict:
    results = {}
    for name, task in SCHEDULED_TASKS:
        with session_factory() as db:
            try:
                results[name] = task(db)
            except Exception:
                db.rollback()
                logger.exception("scheduled_task_failed", task=name)
                results[name] = None
    logger.info("scheduled_tasks_completed", **results)
    return results


def create_scheduler(session_factory=SessionLocal) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_scheduled_tasks,
        "cron",
        hour=0,
        minute=0,
        kwargs={"session_factory": session_factory},
        id="daily_tasks",
        replace_existing=True,
    )  # daily at midnight
    return scheduler
