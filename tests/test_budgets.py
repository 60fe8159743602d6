"""Tests for the budgets router and the budget service."""

from datetime import date, timedelta

from finance_tracker.models import Budget, Notification, Transaction
from finance_tracker.services import dates
from finance_tracker.services.budgets import (
    default_thresholds,
    renew_expired_budgets,
    update_budget_spending,
)


def _create(client, headers, **overrides):
    payload = {"category": "Food", "limit": 1000}
    payload.update(overrides)
    return client.post("/api/v1/budgets", json=payload, headers=headers)


class TestCreateBudget:
    """Tests for POST /api/v1/budgets."""

    def test_defaults(self, client, auth_headers):
        response = _create(client, auth_headers)

        assert response.status_code == 201
        budget = response.json()["data"]["budget"]
        start, end = dates.current_month_bounds()
        assert budget["name"] == "Food Budget"
        assert budget["startDate"] == start.isoformat()
        assert budget["endDate"] == end.isoformat()
        assert [t["percentage"] for t in budget["alerts"]["thresholds"]] == [50, 75, 90]
        assert budget["remaining"] == 1000
        assert budget["status"] == "active"

    def test_counts_existing_spending(self, client, auth_headers, add_transaction):
        add_transaction(300, category="Food")
        budget = _create(client, auth_headers).json()["data"]["budget"]
        assert budget["spent"] == 300
        assert budget["remaining"] == 700

    def test_duplicate_active_budget_is_rejected(self, client, auth_headers):
        _create(client, auth_headers)
        response = _create(client, auth_headers)
        assert response.status_code == 400
        assert "already exists" in response.json()["message"]

    def test_custom_thresholds(self, client, auth_headers):
        response = _create(
            client, auth_headers, alerts={"enabled": True, "thresholds": [{"percentage": 80}]}
        )
        thresholds = response.json()["data"]["budget"]["alerts"]["thresholds"]
        assert [t["percentage"] for t in thresholds] == [80]

    def test_end_before_start_is_rejected(self, client, auth_headers):
        response = _create(client, auth_headers, startDate="2025-05-10", endDate="2025-05-01")
        assert response.status_code == 400


class TestReadBudgets:
    """Tests for the listing, overview and per-category routes."""

    def test_list_and_filter(self, client, auth_headers):
        _create(client, auth_headers, category="Food")
        _create(client, auth_headers, category="Transport", limit=500)

        body = client.get("/api/v1/budgets", headers=auth_headers).json()["data"]
        assert body["count"] == 2

        only = client.get("/api/v1/budgets?category=Transport", headers=auth_headers).json()
        assert only["data"]["count"] == 1
        assert only["data"]["budgets"][0]["limit"] == 500

    def test_overview_totals(self, client, auth_headers, add_transaction):
        _create(client, auth_headers, category="Food", limit=1000)
        _create(client, auth_headers, category="Transport", limit=1000)
        add_transaction(900, category="Food")
        add_transaction(100, category="Transport")

        overview = client.get("/api/v1/budgets/overview", headers=auth_headers).json()["data"][
            "overview"
        ]
        assert overview["totalLimit"] == 2000
        assert overview["totalSpent"] == 1000
        assert overview["totalRemaining"] == 1000
        assert overview["overallPercentage"] == 50
        assert overview["categoriesAtRisk"] == 1

    def test_by_category(self, client, auth_headers):
        _create(client, auth_headers, category="Shopping")
        body = client.get("/api/v1/budgets/category/Shopping", headers=auth_headers).json()
        assert body["data"]["category"] == "Shopping"
        assert body["data"]["count"] == 1

    def test_get_unknown_budget(self, client, auth_headers):
        response = client.get("/api/v1/budgets/404", headers=auth_headers)
        assert response.status_code == 404


class TestUpdateAndDelete:
    """Tests for PUT/DELETE /api/v1/budgets/{id}."""

    def test_update_limit_recomputes_remaining(self, client, auth_headers, add_transaction):
        budget_id = _create(client, auth_headers).json()["data"]["budget"]["id"]
        add_transaction(200, category="Food")

        response = client.put(
            f"/api/v1/budgets/{budget_id}", json={"limit": 400}, headers=auth_headers
        )
        budget = response.json()["data"]["budget"]
        assert budget["limit"] == 400
        assert budget["spent"] == 200
        assert budget["remaining"] == 200

    def test_spent_is_not_writable(self, client, auth_headers):
        budget_id = _create(client, auth_headers).json()["data"]["budget"]["id"]
        response = client.put(
            f"/api/v1/budgets/{budget_id}", json={"spent": 999}, headers=auth_headers
        )
        assert response.json()["data"]["budget"]["spent"] == 0

    def test_delete_is_soft_and_completes(self, client, auth_headers, db):
        budget_id = _create(client, auth_headers).json()["data"]["budget"]["id"]
        response = client.delete(f"/api/v1/budgets/{budget_id}", headers=auth_headers)
        assert response.json()["data"]["budget"]["status"] == "completed"

        budget = db.get(Budget, budget_id)
        assert budget.is_deleted is True
        assert client.get(f"/api/v1/budgets/{budget_id}", headers=auth_headers).status_code == 404


class TestAlerts:
    """Tests for GET /api/v1/budgets/alerts."""

    def test_fires_each_threshold_once(self, client, auth_headers, add_transaction, db):
        _create(client, auth_headers, limit=1000)
        add_transaction(950, category="Food")

        first = client.get("/api/v1/budgets/alerts", headers=auth_headers).json()["data"]
        assert [a["threshold"] for a in first["alerts"]] == [50, 75, 90]
        assert db.query(Notification).filter(Notification.type == "budget_alert").count() == 3

        second = client.get("/api/v1/budgets/alerts", headers=auth_headers).json()["data"]
        assert second["alerts"] == []

    def test_exceeded_budget_notifies_urgently(self, client, auth_headers, add_transaction, db):
        budget_id = _create(client, auth_headers, limit=100).json()["data"]["budget"]["id"]
        add_transaction(150, category="Food")

        client.get("/api/v1/budgets/alerts", headers=auth_headers)
        notification = db.query(Notification).filter(Notification.type == "budget_exceeded").first()
        assert notification.priority == "urgent"
        assert db.get(Budget, budget_id).status == "exceeded"


class TestRenewal:
    """Tests for budget renewal."""

    def _expired(self, db, user, **extra):
        budget = Budget(
            user_id=user.id,
            name="Food Budget",
            category="Food",
            limit=1000,
            remaining=1000,
            period="monthly",
            start_date=extra.pop("start_date", date(2024, 1, 1)),
            end_date=extra.pop("end_date", date(2024, 1, 31)),
            thresholds=default_thresholds(),
            **extra,
        )
        db.add(budget)
        db.commit()
        return budget

    def test_renews_with_adjustment_and_rollover(self, db, user):
        old = self._expired(
            db, user, adjustment_factor=10, rollover_enabled=True, carry_forward_unspent=True
        )
        db.add(
            Transaction(
                user_id=user.id, type="expense", name="Jan food", amount=400,
                category="Food", date=date(2024, 1, 15),
            )
        )
        db.commit()

        renewed = renew_expired_budgets(db, user.id)

        new = [b for b in renewed if b.start_date == date(2024, 2, 1)][0]
        assert new.end_date == date(2024, 2, 29)
        assert new.previous_period_remainder == 600
        assert round(new.limit, 2) == 1700
        db.refresh(old)
        assert old.status == "completed"

    def test_renewal_does_not_duplicate(self, db, user):
        self._expired(db, user)
        renew_expired_budgets(db, user.id)
        count = db.query(Budget).filter(Budget.start_date == date(2024, 2, 1)).count()
        renew_expired_budgets(db, user.id)
        assert db.query(Budget).filter(Budget.start_date == date(2024, 2, 1)).count() == count == 1

    def test_catches_up_to_current_period(self, db, user):
        bounds = dates.months_back(4)
        start, end = bounds[0]
        self._expired(db, user, start_date=start, end_date=end)

        renewed = renew_expired_budgets(db, user.id)

        assert [(b.start_date, b.end_date) for b in renewed] == bounds[1:]
        assert renewed[-1].status == "active"
        assert renew_expired_budgets(db, user.id) == []

    def test_renew_route(self, client, auth_headers, db, user):
        self._expired(db, user, is_recurring=False)
        response = client.post("/api/v1/budgets/renew", headers=auth_headers)
        assert response.json()["data"]["renewedBudgets"] == []


class TestUpdateBudgetSpending:
    """Tests for update_budget_spending."""

    def test_projection_and_status(self, db, user):
        today = dates.today()
        budget = Budget(
            user_id=user.id,
            name="Travel",
            category="Travel",
            limit=1000,
            start_date=today - timedelta(days=9),
            end_date=today + timedelta(days=20),
        )
        db.add(budget)
        db.add(
            Transaction(
                user_id=user.id, type="expense", name="Train", amount=500,
                category="Travel", date=today,
            )
        )
        db.commit()

        update_budget_spending(db, budget)

        assert budget.spent == 500
        assert budget.average_spending == 50
        assert budget.projected_spend == 50 * 30
        assert budget.status == "active"
