"""Tests for the daily background tasks."""

from datetime import timedelta

from finance_tracker.models import Notification, SavingGoal, Subscription, Transaction
from finance_tracker.services import dates, scheduler


def _subscription(db, user, due, **extra):
    subscription = Subscription(
        user_id=user.id,
        name=extra.pop("name", "Netflix"),
        category="Entertainment",
        amount=649,
        start_date=due - timedelta(days=30),
        due_date=due,
        next_due_date=due,
        **extra,
    )
    db.add(subscription)
    db.commit()
    return subscription


def _goal(db, user, current, target=1000):
    goal = SavingGoal(
        user_id=user.id,
        name="Laptop",
        target_amount=target,
        current_amount=current,
        monthly_contribution=100,
        estimated_completion=dates.today() + timedelta(days=365),
    )
    db.add(goal)
    db.commit()
    return goal


def _notifications(db, type):
    return db.query(Notification).filter(Notification.type == type).all()


class TestSubscriptionTasks:
    """Tests for reminders and overdue detection."""

    def test_reminders_on_reminder_days(self, db, user):
        today = dates.today()
        soon = _subscription(db, user, today + timedelta(days=3), name="Soon")
        _subscription(db, user, today + timedelta(days=5), name="Later")
        _subscription(
            db, user, today + timedelta(days=1), name="Muted", reminders_enabled=False
        )

        assert scheduler.check_subscription_reminders(db) == 1

        (reminder,) = _notifications(db, "subscription_due")
        assert reminder.message == "Your Soon subscription is due in 3 days. Amount: ₹649"
        assert reminder.priority == "high"
        db.refresh(soon)
        assert soon.last_reminder_sent is not None

    def test_overdue_subscriptions(self, db, user):
        late = _subscription(db, user, dates.today() - timedelta(days=2))

        assert scheduler.check_overdue_subscriptions(db) == 1

        db.refresh(late)
        assert late.status == "overdue"
        (notification,) = _notifications(db, "subscription_overdue")
        assert notification.priority == "urgent"
        assert scheduler.check_overdue_subscriptions(db) == 0


class TestGoalMilestones:
    """Tests for check_goal_milestones."""

    def test_each_milestone_notified_once(self, db, user):
        goal = _goal(db, user, current=800)

        assert scheduler.check_goal_milestones(db) == 3
        assert scheduler.check_goal_milestones(db) == 0

        db.refresh(goal)
        assert goal.milestones_notified == [25, 50, 75]
        assert goal.status == "active"

    def test_reaching_target_completes_goal(self, db, user):
        goal = _goal(db, user, current=1000)

        assert scheduler.check_goal_milestones(db) == 5

        db.refresh(goal)
        assert goal.status == "completed"
        assert goal.actual_completion is not None
        assert len(_notifications(db, "goal_achieved")) == 1


class TestRecurringTransactions:
    """Tests for generate_recurring_transactions."""

    def test_catches_up_missed_occurrences(self, db, user, add_transaction):
        today = dates.today()
        template = add_transaction(
            100,
            name="Gym",
            category="Health",
            on=today - timedelta(days=14),
            is_recurring=True,
            recurring_frequency="weekly",
            next_occurrence=today - timedelta(days=7),
        )

        assert scheduler.generate_recurring_transactions(db) == 2

        generated = (
            db.query(Transaction)
            .filter(Transaction.source == "recurring")
            .order_by(Transaction.date)
            .all()
        )
        assert [t.date for t in generated] == [today - timedelta(days=7), today]
        assert all(t.name == "Gym" and t.amount == 100 for t in generated)
        db.refresh(template)
        assert template.next_occurrence == today + timedelta(days=7)
        db.refresh(user)
        assert user.total_expense == 300

    def test_series_stops_after_end_date(self, db, user, add_transaction):
        today = dates.today()
        template = add_transaction(
            50,
            on=today - timedelta(days=21),
            is_recurring=True,
            recurring_frequency="weekly",
            recurring_end_date=today - timedelta(days=10),
            next_occurrence=today - timedelta(days=14),
        )

        assert scheduler.generate_recurring_transactions(db) == 1
        db.refresh(template)
        assert template.next_occurrence is None
        assert scheduler.generate_recurring_transactions(db) == 0


class TestRunScheduledTasks:
    """Tests for the task runner and the APScheduler job."""

    def test_failing_task_does_not_stop_the_rest(self, session_factory, monkeypatch):
        def broken(db):
            raise RuntimeError("boom")

        monkeypatch.setattr(
            scheduler,
            "SCHEDULED_TASKS",
            (("broken", broken), ("cleanup", scheduler.cleanup_notifications)),
        )

        assert scheduler.run_scheduled_tasks(session_factory) == {"broken": None, "cleanup": 0}

    def test_all_tasks_run_on_empty_database(self, session_factory):
        results = scheduler.run_scheduled_tasks(session_factory)
        assert set(results) == {name for name, _ in scheduler.SCHEDULED_TASKS}
        assert all(count == 0 for count in results.values())

    def test_daily_job_at_midnight(self, session_factory):
        background = scheduler.create_scheduler(session_factory)
        job = background.get_job("daily_tasks")
        fields = {field.name: str(field) for field in job.trigger.fields}
        assert fields["hour"] == "0"
        assert fields["minute"] == "0"
        assert job.kwargs == {"session_factory": session_factory}
