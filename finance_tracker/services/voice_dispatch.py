"""
In-process execution of the endpoint the voice model picked.

The model answers with a REST path such as ``/budgets/3`` or
``/insights/category-trends``. Instead of issuing an HTTP request we map the
path onto the data function behind that route and call it with the current
user and session. Dispatch is by path prefix; the first matching family wins.
"""

from datetime import date
from typing import Any, Optional

import structlog
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from finance_tracker.errors import EndpointExecutionError, FinanceAPIError
from finance_tracker.models import User
from finance_tracker.routers import budgets, goals, insights, investments, subscriptions
from finance_tracker.routers import transactions, users

logger = structlog.get_logger(__name__)

INTENT_TYPES = (
    ("add_transaction", "add_transaction"),
    ("view_transactions", "view_transactions"),
    ("recent_transactions", "view_transactions"),
    ("view_balance", "view_balance"),
    ("get_balance", "view_balance"),
    ("set_budget", "set_budget"),
    ("view_budget", "set_budget"),
    ("get_budget", "set_budget"),
    ("view_goals", "view_goals"),
    ("get_goals", "view_goals"),
    ("add_goal", "add_goal"),
    ("view_subscriptions", "view_subscriptions"),
    ("get_subscriptions", "view_subscriptions"),
    ("upcoming_bills", "view_subscriptions"),
    ("view_insights", "view_insights"),
    ("spending_report", "view_insights"),
    ("get_advice", "get_advice"),
)


def map_intent_to_type(intent: Optional[str]) -> str:
    """First key contained in `intent` (case-insensitive) decides the type."""
    lowered = (intent or "").lower()
    for key, intent_type in INTENT_TYPES:
        if key in lowered:
            return intent_type
    return "other"


def _int(value: Any, default: int, low: int, high: Optional[int] = None) -> int:
    """`value` as an int clamped to the bounds the matching route enforces."""
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    number = max(low, number)
    return number if high is None else min(high, number)


def _date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _str(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def _categories(value: Any) -> Optional[list[str]]:
    if not value:
        return None
    if isinstance(value, str):
        return [c.strip() for c in value.split(",") if c.strip()]
    return [str(c) for c in value]


def _resource_id(parts: list[str]) -> Optional[int]:
    """Numeric id in the second path segment, if any."""
    if len(parts) > 1 and parts[1].isdigit():
        return int(parts[1])
    return None


def _dispatch(db: Session, endpoint: str, params: dict, user: User) -> dict:
    parts = [p for p in endpoint.split("?")[0].strip("/").split("/") if p]
    if not endpoint.startswith("/"):
        endpoint = "/" + endpoint
    resource_id = _resource_id(parts)

    if endpoint.startswith("/budgets"):
        if resource_id is not None:
            return budgets.get_budget(db, user, resource_id)
        return budgets.list_budgets(
            db,
            user,
            status=_str(params.get("status")),
            period=_str(params.get("period")),
            category=_str(params.get("category")),
        )

    if endpoint.startswith("/transactions"):
        # single transactions are answered from the filtered list
        return transactions.list_transactions(
            db,
            user,
            page=_int(params.get("page"), 1, 1),
            limit=_int(params.get("limit"), 50, 1, 500),
            type=_str(params.get("type")),
            category=_str(params.get("category")),
            start_date=_date(params.get("startDate")),
            end_date=_date(params.get("endDate")),
        )

    if endpoint.startswith("/goals"):
        if resource_id is not None:
            return goals.get_goal(db, user, resource_id)
        return goals.list_goals(db, user, status=_str(params.get("status")))

    if endpoint.startswith("/subscriptions"):
        if "/upcoming" in endpoint:
            days = _int(params.get("days"), 30, 0, 366)
            return subscriptions.upcoming_subscriptions(db, user, days)
        if resource_id is not None:
            return subscriptions.get_subscription(db, user, resource_id)
        return subscriptions.list_subscriptions(
            db, user, status=_str(params.get("status")), category=_str(params.get("category"))
        )

    if endpoint.startswith("/insights"):
        if "spending" in endpoint or "expense" in endpoint:
            return insights.expense_distribution(
                db, user, _date(params.get("startDate")), _date(params.get("endDate"))
            )
        if "category" in endpoint or "trends" in endpoint:
            months = _int(params.get("months"), 6, 1, 24)
            return insights.category_trends(db, user, months, _categories(params.get("categories")))
        return insights.get_recommendations(db, user)

    if endpoint.startswith("/users"):
        if "balance" in endpoint:
            return users.user_balance(db, user)
        return users.user_profile(db, user)

    if endpoint.startswith("/investments"):
        return investments.get_recommendations(db, user)

    raise EndpointExecutionError(f"Unknown endpoint: {endpoint}")


def execute_endpoint(
    db: Session,
    endpoint: str,
    method: str,
    parameters: Optional[dict],
    user: User,
) -> dict:
    """
    Run the handler behind `endpoint` for `user` and return its JSON-ready data.

    Raises EndpointExecutionError for unknown paths and for any handler
    failure, a missing record included.
    """
    params = parameters if isinstance(parameters, dict) else {}
    logger.info("voice_endpoint_execute", method=method, endpoint=endpoint, user_id=user.id)
    try:
        data = _dispatch(db, endpoint or "", params, user)
    except EndpointExecutionError:
        raise
    except FinanceAPIError as exc:
        raise EndpointExecutionError(exc.message) from exc
    except Exception as exc:
        logger.exception("voice_endpoint_failed", endpoint=endpoint, user_id=user.id)
        raise EndpointExecutionError(f"Failed to execute {endpoint}: {exc}") from exc
    return jsonable_encoder(data)
