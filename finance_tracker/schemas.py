import datetime as dt
import re
from datetime import date, datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from finance_tracker.services.categories import (
    BUDGET_CATEGORIES,
    GOAL_CATEGORIES,
    SUBSCRIPTION_CATEGORIES,
    TRANSACTION_CATEGORIES,
)

EMAIL_PATTERN = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,})+$")

TransactionType = Literal["income", "expense"]
TransactionCategory = Literal[TRANSACTION_CATEGORIES]
BudgetCategory = Literal[BUDGET_CATEGORIES]
SubscriptionCategory = Literal[SUBSCRIPTION_CATEGORIES]
GoalCategory = Literal[GOAL_CATEGORIES]
BudgetPeriod = Literal["weekly", "monthly", "quarterly", "yearly", "custom"]
BillingFrequency = Literal["daily", "weekly", "monthly", "quarterly", "yearly", "custom"]
RecurringFrequency = Literal["weekly", "monthly", "custom"]
PaymentMethod = Literal["cash", "card", "upi", "bank_transfer", "wallet", "other"]
Priority = Literal["low", "medium", "high"]
RiskProfile = Literal["Low", "Moderate", "High"]
NotificationType = Literal[
    "transaction_added", "budget_alert", "budget_exceeded", "goal_milestone",
    "goal_achieved", "subscription_due", "subscription_overdue", "bill_reminder",
    "investment_opportunity", "spending_insight", "achievement", "system", "other",
]
NotificationPriority = Literal["low", "medium", "high", "urgent"]


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input and serialises as camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------- auth/users


class SignupRequest(CamelModel):
    name: str = Field(min_length=2, max_length=100)
    email: str
    password: str = Field(min_length=6)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Please enter a valid email")
        return v


class SigninRequest(CamelModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.strip().lower()


class MoneySummary(CamelModel):
    total_amount: float = 0
    monthly_amount: float = 0
    weekly_amount: float = 0
    percentage: float = 0


class UserSummary(CamelModel):
    id: int
    name: str
    email: str
    balance: float
    profile_image: Optional[str] = None


class UserOut(UserSummary):
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    card_number: Optional[str] = None
    income: MoneySummary
    expense: MoneySummary
    risk_profile: str
    preferences: Optional[dict[str, Any]] = None
    is_active: bool
    is_verified: bool
    last_login: Optional[datetime] = None
    subscription_plan: str
    created_at: datetime


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    risk_profile: Optional[RiskProfile] = None
    preferences: Optional[dict[str, Any]] = None


class RiskProfileUpdate(CamelModel):
    risk_profile: Optional[str] = None


# --------------------------------------------------------------- transactions


class RecurringDetails(CamelModel):
    frequency: Optional[RecurringFrequency] = None
    interval_days: Optional[int] = Field(default=None, ge=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    next_occurrence: Optional[date] = None


class TransactionCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    amount: float = Field(gt=0)
    type: TransactionType
    category: TransactionCategory
    description: str = Field(default="", max_length=500)
    icon: Optional[str] = None
    color: Optional[str] = None
    date: Optional[dt.date] = None
    is_recurring: bool = False
    recurring_details: Optional[RecurringDetails] = None
    payment_method: PaymentMethod = "other"
    notes: str = Field(default="", max_length=1000)
    tags: list[str] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def lower_type(cls, v):
        return v.lower() if isinstance(v, str) else v


class TransactionUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[float] = Field(default=None, gt=0)
    type: Optional[TransactionType] = None
    category: Optional[TransactionCategory] = None
    description: Optional[str] = Field(default=None, max_length=500)
    icon: Optional[str] = None
    color: Optional[str] = None
    date: Optional[dt.date] = None
    is_recurring: Optional[bool] = None
    recurring_details: Optional[RecurringDetails] = None
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: Optional[list[str]] = None
    status: Optional[Literal["completed", "pending", "cancelled", "failed"]] = None


class TransactionOut(CamelModel):
    id: int
    name: str
    description: str
    amount: float
    type: str
    category: str
    icon: Optional[str] = None
    color: Optional[str] = None
    date: dt.date
    timestamp: Optional[str] = None
    is_recurring: bool
    recurring_details: Optional[RecurringDetails] = None
    payment_method: Optional[str] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    source: Optional[str] = None
    receipt: Optional[dict[str, Any]] = None
    created_at: datetime


class TransactionListItem(CamelModel):
    """List rendering: expenses carry a negative amount."""

    id: int
    name: str
    category: str
    amount: float
    type: str
    timestamp: Optional[str] = None
    date: dt.date
    icon: Optional[str] = None
    description: str = ""
    is_recurring: bool = False
    recurring_details: Optional[RecurringDetails] = None

    @classmethod
    def from_transaction(cls, txn):
        return cls(
            id=txn.id,
            name=txn.name,
            category=txn.category,
            amount=txn.signed_amount,
            type=txn.type,
            timestamp=txn.timestamp,
            date=txn.date,
            icon=txn.icon,
            description=txn.description or "",
            is_recurring=txn.is_recurring,
            recurring_details=txn.recurring_details,
        )


# -------------------------------------------------------------------- budgets


class ThresholdIn(CamelModel):
    percentage: float = Field(ge=0, le=100)


class ThresholdOut(CamelModel):
    percentage: float
    triggered: bool
    triggered_at: Optional[datetime] = None


class AlertsIn(CamelModel):
    enabled: bool = True
    thresholds: list[ThresholdIn] = Field(default_factory=list)


class AlertsOut(CamelModel):
    enabled: bool
    thresholds: list[ThresholdOut]
    last_alert_sent: Optional[datetime] = None


class RolloverSettings(CamelModel):
    enabled: bool = False
    carry_forward_unspent: bool = False
    previous_period_remainder: float = 0


class RecurringSettings(CamelModel):
    auto_renew: bool = True
    adjustment_factor: float = 0


class BudgetAnalytics(CamelModel):
    average_spending: float = 0
    spending_velocity: float = 0
    projected_spend: float = 0


class BudgetCreate(CamelModel):
    name: Optional[str] = Field(default=None, max_length=100)
    description: str = Field(default="", max_length=500)
    category: BudgetCategory
    limit: float = Field(ge=0)
    period: BudgetPeriod = "monthly"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    alerts: Optional[AlertsIn] = None
    rollover: Optional[RolloverSettings] = None
    is_recurring: bool = True
    recurring_settings: Optional[RecurringSettings] = None
    notes: str = Field(default="", max_length=1000)


class BudgetUpdate(CamelModel):
    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[BudgetCategory] = None
    limit: Optional[float] = Field(default=None, ge=0)
    period: Optional[BudgetPeriod] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    alerts_enabled: Optional[bool] = None
    is_recurring: Optional[bool] = None
    recurring_settings: Optional[RecurringSettings] = None
    status: Optional[Literal["active", "paused"]] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class BudgetOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = ""
    category: str
    limit: float
    spent: float
    remaining: float
    period: str
    start_date: date
    end_date: date
    alerts: AlertsOut
    rollover: RolloverSettings
    color: Optional[str] = None
    icon: Optional[str] = None
    analytics: BudgetAnalytics
    status: str
    is_recurring: bool
    recurring_settings: RecurringSettings
    notes: Optional[str] = ""
    created_at: datetime


# ---------------------------------------------------------------------- goals


class GoalCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    target_amount: float = Field(ge=1)
    current_amount: float = Field(default=0, ge=0)
    monthly_contribution: float = Field(ge=0)
    estimated_completion: date
    category: GoalCategory = "other"
    priority: Priority = "medium"
    color: Optional[str] = None
    icon: Optional[str] = None
    notes: str = Field(default="", max_length=1000)


class GoalUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    target_amount: Optional[float] = Field(default=None, ge=1)
    monthly_contribution: Optional[float] = Field(default=None, ge=0)
    estimated_completion: Optional[date] = None
    category: Optional[GoalCategory] = None
    priority: Optional[Priority] = None
    status: Optional[Literal["active", "completed", "paused", "cancelled"]] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    image_url: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class ContributionCreate(CamelModel):
    amount: Optional[float] = None
    date: Optional[dt.date] = None
    note: str = Field(default="", max_length=200)
    source: Literal["manual", "automatic", "bonus", "gift"] = "manual"


class ContributionOut(CamelModel):
    amount: float
    date: dt.date
    note: Optional[str] = ""
    source: str


class GoalAnalytics(CamelModel):
    total_contributed: float = 0
    contribution_count: int = 0
    average_monthly_contribution: float = 0


class GoalOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = ""
    target_amount: float
    current_amount: float
    monthly_contribution: float
    start_date: Optional[date] = None
    estimated_completion: date
    actual_completion: Optional[datetime] = None
    is_main_goal: bool
    priority: str
    status: str
    color: Optional[str] = None
    icon: Optional[str] = None
    image_url: Optional[str] = None
    category: Optional[str] = None
    contributions: list[ContributionOut] = Field(default_factory=list)
    analytics: GoalAnalytics
    notes: Optional[str] = ""
    created_at: datetime


# -------------------------------------------------------------- subscriptions


class SubscriptionCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    category: SubscriptionCategory
    amount: float = Field(gt=0)
    frequency: BillingFrequency = "monthly"
    custom_frequency_days: Optional[int] = Field(default=None, ge=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    due_date: date
    icon: Optional[str] = None
    logo: Optional[str] = None
    color: Optional[str] = None
    notes: str = Field(default="", max_length=1000)


class SubscriptionUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[SubscriptionCategory] = None
    amount: Optional[float] = Field(default=None, gt=0)
    frequency: Optional[BillingFrequency] = None
    custom_frequency_days: Optional[int] = Field(default=None, ge=1)
    end_date: Optional[date] = None
    due_date: Optional[date] = None
    next_due_date: Optional[date] = None
    icon: Optional[str] = None
    logo: Optional[str] = None
    color: Optional[str] = None
    status: Optional[Literal["active", "paused", "cancelled", "expired"]] = None
    reminders_enabled: Optional[bool] = None
    reminder_days_before: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=1000)


class PaymentCreate(CamelModel):
    amount: Optional[float] = Field(default=None, gt=0)
    paid_on: Optional[date] = None
    status: Optional[Literal["success", "failed", "pending"]] = None
    transaction_id: Optional[int] = None
    note: str = Field(default="", max_length=200)


class PaymentOut(CamelModel):
    amount: float
    paid_on: date
    status: str
    transaction_id: Optional[int] = None
    note: Optional[str] = ""


class SubscriptionAnalytics(CamelModel):
    total_paid: float = 0
    payment_count: int = 0
    average_payment: float = 0
    last_payment_date: Optional[date] = None
    missed_payments: int = 0


class SubscriptionOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = ""
    category: str
    amount: float
    frequency: str
    custom_frequency_days: Optional[int] = None
    start_date: date
    end_date: Optional[date] = None
    due_date: date
    next_due_date: Optional[date] = None
    days_until_due: int
    icon: Optional[str] = None
    logo: Optional[str] = None
    color: Optional[str] = None
    reminders_enabled: bool
    reminder_days_before: int
    payment_history: list[PaymentOut] = Field(
        default_factory=list, validation_alias="payments"
    )
    analytics: SubscriptionAnalytics
    status: str
    notes: Optional[str] = ""
    created_at: datetime


# -------------------------------------------------------------- notifications


class RelatedDocument(CamelModel):
    document_type: Optional[
        Literal["Transaction", "Budget", "SavingGoal", "Subscription", "InvestmentRecommendation"]
    ] = None
    document_id: Optional[int] = None


class NotificationCreate(CamelModel):
    type: NotificationType
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=1000)
    icon: Optional[str] = None
    color: Optional[str] = None
    priority: NotificationPriority = "medium"
    related_document: Optional[RelatedDocument] = None
    action: Optional[dict[str, Any]] = None
    scheduled_for: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @field_validator("scheduled_for", "expires_at")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # stored and compared as naive UTC
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class NotificationOut(CamelModel):
    id: int
    type: str
    title: str
    message: str
    icon: Optional[str] = None
    color: Optional[str] = None
    priority: str
    related_document: Optional[RelatedDocument] = None
    action: Optional[dict[str, Any]] = None
    is_read: bool
    read_at: Optional[datetime] = None
    scheduled_for: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime


# ---------------------------------------------------------------- voice agent


class QuickQuestionRequest(CamelModel):
    question: Optional[str] = None
    type: Optional[
        Literal["spending_report", "budget_status", "recent_transactions", "upcoming_bills"]
    ] = None


class VoiceInteractionOut(CamelModel):
    id: int
    recording_uri: Optional[str] = None
    transcription_text: Optional[str] = ""
    transcription_confidence: Optional[float] = 0
    intent_type: str
    intent_raw: Optional[str] = None
    intent_confidence: Optional[float] = 0
    entities: Optional[list[dict[str, Any]]] = None
    endpoint: Optional[str] = None
    response_text: Optional[str] = ""
    response_type: Optional[str] = None
    action_taken: Optional[str] = None
    is_quick_question: bool
    quick_question_type: Optional[str] = None
    processing_status: str
    has_error: bool
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    total_processing_time_ms: Optional[int] = 0
    created_at: datetime
