from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from finance_tracker.database import Base


def utcnow():
    return datetime.utcnow()


class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SoftDeleteMixin:
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    def soft_delete(self):
        self.is_deleted = True
        self.deleted_at = utcnow()


class User(TimestampMixin, Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)

    profile_image = Column(String, nullable=True)
    phone_number = Column(String(30), nullable=True)
    date_of_birth = Column(Date, nullable=True)

    balance = Column(Float, default=0.0, nullable=False)
    card_number = Column(String(30), nullable=True)

    total_income = Column(Float, default=0.0, nullable=False)
    monthly_income = Column(Float, default=0.0, nullable=False)
    weekly_income = Column(Float, default=0.0, nullable=False)
    income_percentage = Column(Float, default=0.0, nullable=False)
    total_expense = Column(Float, default=0.0, nullable=False)
    monthly_expense = Column(Float, default=0.0, nullable=False)
    weekly_expense = Column(Float, default=0.0, nullable=False)
    expense_percentage = Column(Float, default=0.0, nullable=False)

    risk_profile = Column(String(20), default="Moderate", nullable=False)
    preferences = Column(JSON, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    last_login = Column(DateTime, nullable=True)
    subscription_plan = Column(String(20), default="free", nullable=False)
    subscription_expires_at = Column(DateTime, nullable=True)

    @property
    def income(self):
        return {
            "total_amount": self.total_income,
            "monthly_amount": self.monthly_income,
            "weekly_amount": self.weekly_income,
            "percentage": self.income_percentage,
        }

    @property
    def expense(self):
        return {
            "total_amount": self.total_expense,
            "monthly_amount": self.monthly_expense,
            "weekly_amount": self.weekly_expense,
            "percentage": self.expense_percentage,
        }


class Transaction(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_type_category", "user_id", "type", "category"),
    )
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(10), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(String(500), default="", nullable=False)
    amount = Column(Float, nullable=False)
    category = Column(String(50), index=True, nullable=False)
    icon = Column(String(100), default="ellipsis-horizontal-outline")
    color = Column(String(20), default="#A0A0A0")
    date = Column(Date, nullable=False)
    timestamp = Column(String(40), nullable=True)

    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_frequency = Column(String(10), nullable=True)
    recurring_interval_days = Column(Integer, nullable=True)
    recurring_start_date = Column(Date, nullable=True)
    recurring_end_date = Column(Date, nullable=True)
    next_occurrence = Column(Date, nullable=True)

    receipt = Column(JSON, nullable=True)
    payment_method = Column(String(20), default="other")
    tags = Column(JSON, nullable=True)
    notes = Column(String(1000), default="")
    status = Column(String(20), default="completed")
    source = Column(String(20), default="manual")

    @property
    def signed_amount(self):
        return self.amount if self.type == "income" else -self.amount

    @property
    def recurring_details(self):
        if not self.is_recurring:
            return None
        return {
            "frequency": self.recurring_frequency,
            "interval_days": self.recurring_interval_days,
            "start_date": self.recurring_start_date,
            "end_date": self.recurring_end_date,
            "next_occurrence": self.next_occurrence,
        }


class Budget(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "budgets"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), default="")
    category = Column(String(50), nullable=False, index=True)
    limit = Column(Float, nullable=False)
    spent = Column(Float, default=0.0, nullable=False)
    remaining = Column(Float, default=0.0, nullable=False)
    period = Column(String(20), default="monthly", nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    alerts_enabled = Column(Boolean, default=True, nullable=False)
    last_alert_sent = Column(DateTime, nullable=True)

    rollover_enabled = Column(Boolean, default=False, nullable=False)
    carry_forward_unspent = Column(Boolean, default=False, nullable=False)
    previous_period_remainder = Column(Float, default=0.0, nullable=False)

    color = Column(String(20), default="#3B82F6")
    icon = Column(String(100), default="wallet-outline")

    average_spending = Column(Float, default=0.0, nullable=False)
    spending_velocity = Column(Float, default=0.0, nullable=False)
    projected_spend = Column(Float, default=0.0, nullable=False)

    status = Column(String(20), default="active", nullable=False)
    is_recurring = Column(Boolean, default=True, nullable=False)
    auto_renew = Column(Boolean, default=True, nullable=False)
    adjustment_factor = Column(Float, default=0.0, nullable=False)
    notes = Column(String(1000), default="")

    thresholds = relationship(
        "BudgetThreshold",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="BudgetThreshold.percentage",
    )

    @property
    def percentage_used(self):
        return (self.spent / self.limit) * 100 if self.limit > 0 else 0.0

    @property
    def alerts(self):
        return {
            "enabled": self.alerts_enabled,
            "thresholds": self.thresholds,
            "last_alert_sent": self.last_alert_sent,
        }

    @property
    def rollover(self):
        return {
            "enabled": self.rollover_enabled,
            "carry_forward_unspent": self.carry_forward_unspent,
            "previous_period_remainder": self.previous_period_remainder,
        }

    @property
    def analytics(self):
        return {
            "average_spending": self.average_spending,
            "spending_velocity": self.spending_velocity,
            "projected_spend": self.projected_spend,
        }

    @property
    def recurring_settings(self):
        return {
            "auto_renew": self.auto_renew,
            "adjustment_factor": self.adjustment_factor,
        }


class BudgetThreshold(Base):
    __tablename__ = "budget_thresholds"
    id = Column(Integer, primary_key=True, autoincrement=True)
    budget_id = Column(Integer, ForeignKey("budgets.id"), nullable=False, index=True)
    percentage = Column(Float, nullable=False)
    triggered = Column(Boolean, default=False, nullable=False)
    triggered_at = Column(DateTime, nullable=True)

    budget = relationship("Budget", back_populates="thresholds")


class SavingGoal(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "saving_goals"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), default="")
    target_amount = Column(Float, nullable=False)
    current_amount = Column(Float, default=0.0, nullable=False)
    monthly_contribution = Column(Float, nullable=False)
    start_date = Column(Date, nullable=True)
    estimated_completion = Column(Date, nullable=False)
    actual_completion = Column(DateTime, nullable=True)

    is_main_goal = Column(Boolean, default=False, nullable=False)
    priority = Column(String(10), default="medium", nullable=False)
    status = Column(String(20), default="active", nullable=False)
    color = Column(String(20), default="#3B82F6")
    icon = Column(String(100), default="wallet-outline")
    image_url = Column(String, nullable=True)
    category = Column(String(30), default="other")
    notes = Column(String(1000), default="")

    total_contributed = Column(Float, default=0.0, nullable=False)
    contribution_count = Column(Integer, default=0, nullable=False)
    average_monthly_contribution = Column(Float, default=0.0, nullable=False)
    milestones_notified = Column(JSON, nullable=True)

    contributions = relationship(
        "GoalContribution",
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="GoalContribution.date",
    )

    @property
    def progress(self):
        if self.target_amount <= 0:
            return 0.0
        return (self.current_amount / self.target_amount) * 100

    @property
    def analytics(self):
        return {
            "total_contributed": self.total_contributed,
            "contribution_count": self.contribution_count,
            "average_monthly_contribution": self.average_monthly_contribution,
        }


class GoalContribution(Base):
    __tablename__ = "goal_contributions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    goal_id = Column(Integer, ForeignKey("saving_goals.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    date = Column(Date, nullable=False)
    note = Column(String(200), default="")
    source = Column(String(20), default="manual")

    goal = relationship("SavingGoal", back_populates="contributions")


class Subscription(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "subscriptions"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), default="")
    category = Column(String(30), nullable=False)
    amount = Column(Float, nullable=False)
    frequency = Column(String(20), default="monthly", nullable=False)
    custom_frequency_days = Column(Integer, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=False)
    next_due_date = Column(Date, nullable=True, index=True)

    icon = Column(String(100), default="ellipsis-horizontal")
    logo = Column(String, nullable=True)
    color = Column(String(20), default="#3B82F6")

    auto_pay_enabled = Column(Boolean, default=False, nullable=False)
    reminders_enabled = Column(Boolean, default=True, nullable=False)
    reminder_days_before = Column(Integer, default=3, nullable=False)
    last_reminder_sent = Column(DateTime, nullable=True)

    total_paid = Column(Float, default=0.0, nullable=False)
    payment_count = Column(Integer, default=0, nullable=False)
    average_payment = Column(Float, default=0.0, nullable=False)
    last_payment_date = Column(Date, nullable=True)
    missed_payments = Column(Integer, default=0, nullable=False)

    status = Column(String(20), default="active", nullable=False)
    notes = Column(String(1000), default="")

    payments = relationship(
        "SubscriptionPayment",
        back_populates="subscription",
        cascade="all, delete-orphan",
        order_by="SubscriptionPayment.paid_on",
    )

    @property
    def effective_due_date(self):
        return self.next_due_date or self.due_date

    @property
    def days_until_due(self):
        return (self.effective_due_date - date.today()).days

    @property
    def analytics(self):
        return {
            "total_paid": self.total_paid,
            "payment_count": self.payment_count,
            "average_payment": self.average_payment,
            "last_payment_date": self.last_payment_date,
            "missed_payments": self.missed_payments,
        }


class SubscriptionPayment(Base):
    __tablename__ = "subscription_payments"
    id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(
        Integer, ForeignKey("subscriptions.id"), nullable=False, index=True
    )
    amount = Column(Float, nullable=False)
    paid_on = Column(Date, nullable=False)
    status = Column(String(10), default="success", nullable=False)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    note = Column(String(200), default="")

    subscription = relationship("Subscription", back_populates="payments")


class Notification(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read", "created_at"),
    )
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(String(1000), nullable=False)
    icon = Column(String(100), default="notifications-outline")
    color = Column(String(20), default="#3B82F6")
    priority = Column(String(10), default="medium", nullable=False)

    related_document_type = Column(String(30), nullable=True)
    related_document_id = Column(Integer, nullable=True)
    action = Column(JSON, nullable=True)

    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)

    delivered_in_app = Column(Boolean, default=False, nullable=False)
    delivered_at = Column(DateTime, nullable=True)
    scheduled_for = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)

    @property
    def related_document(self):
        if self.related_document_type is None:
            return None
        return {
            "document_type": self.related_document_type,
            "document_id": self.related_document_id,
        }


class VoiceInteraction(TimestampMixin, Base):
    __tablename__ = "voice_interactions"
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    recording_uri = Column(String, nullable=True)
    recording_duration = Column(Float, default=0.0)
    recording_format = Column(String(10), nullable=True)
    recording_size = Column(Integer, default=0)

    transcription_text = Column(Text, default="")
    transcription_confidence = Column(Float, default=0.0)
    transcription_language = Column(String(10), default="en-US")
    transcription_time_ms = Column(Integer, default=0)

    intent_type = Column(String(30), default="unknown", nullable=False)
    intent_raw = Column(String(100), nullable=True)
    intent_confidence = Column(Float, default=0.0)
    entities = Column(JSON, nullable=True)
    endpoint = Column(String(200), nullable=True)

    response_text = Column(Text, default="")
    response_type = Column(String(20), default="information")
    action_taken = Column(String(30), default="none")

    is_quick_question = Column(Boolean, default=False, nullable=False)
    quick_question_type = Column(String(30), nullable=True)
    processing_status = Column(String(20), default="pending", nullable=False)

    error_type = Column(String(30), nullable=True)
    error_message = Column(Text, nullable=True)

    processing_engine = Column(String(20), default="google")
    model_version = Column(String(20), default="1.0.0")
    total_processing_time_ms = Column(Integer, default=0)

    @property
    def has_error(self):
        return self.error_type is not None
