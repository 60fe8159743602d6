"""Tests for the insights router."""

from datetime import date

from dateutil.relativedelta import relativedelta

from finance_tracker.services import dates


class TestExpenseDistribution:
    """Tests for GET /api/v1/insights/expense-distribution."""

    def test_empty(self, client, auth_headers):
        data = client.get("/api/v1/insights/expense-distribution", headers=auth_headers).json()[
            "data"
        ]
        assert data == {"expenseData": [], "totalExpense": 0}

    def test_percentages(self, client, auth_headers, add_transaction):
        add_transaction(300, category="Food")
        add_transaction(100, category="Transport")
        add_transaction(9999, type="income", category="Salary")

        data = client.get("/api/v1/insights/expense-distribution", headers=auth_headers).json()[
            "data"
        ]
        assert data["totalExpense"] == 400
        assert [(e["name"], e["percentage"]) for e in data["expenseData"]] == [
            ("Food", 75),
            ("Transport", 25),
        ]

    def test_date_range(self, client, auth_headers, add_transaction):
        add_transaction(50, on=date(2024, 1, 5))
        add_transaction(70, on=date(2024, 2, 5))
        data = client.get(
            "/api/v1/insights/expense-distribution?startDate=2024-02-01&endDate=2024-02-29",
            headers=auth_headers,
        ).json()["data"]
        assert data["totalExpense"] == 70


class TestTimeSeries:
    """Tests for income progression, spending over time and category trends."""

    def test_income_progression_oldest_first(self, client, auth_headers, add_transaction):
        today = dates.today()
        add_transaction(1000, type="income", category="Salary", on=today.replace(day=1))
        add_transaction(
            800, type="income", category="Salary",
            on=today.replace(day=1) - relativedelta(months=2),
        )

        data = client.get(
            "/api/v1/insights/income-progression?months=3", headers=auth_headers
        ).json()["data"]["progressionData"]
        assert [p["income"] for p in data] == [800, 0, 1000]
        assert data[-1]["month"] == today.strftime("%b")

    def test_spending_over_time_cumulative(self, client, auth_headers, add_transaction):
        add_transaction(100, on=date(2024, 2, 1))
        add_transaction(50, on=date(2024, 2, 3))

        data = client.get(
            "/api/v1/insights/spending-over-time?month=2&year=2024", headers=auth_headers
        ).json()["data"]
        assert len(data["spendingData"]) == 29
        assert data["spendingData"][1] == {"day": 2, "amount": 0, "cumulative": 100}
        assert data["spendingData"][2]["cumulative"] == 150
        assert data["totalSpent"] == 150
        assert data["month"] == "February 2024"

    def test_category_trends_keys(self, client, auth_headers, add_transaction):
        add_transaction(120, category="Food & Drink")
        add_transaction(80, category="Shopping")

        data = client.get(
            "/api/v1/insights/category-trends?months=2", headers=auth_headers
        ).json()["data"]
        assert data["categories"] == ["Food & Drink", "Shopping", "Transport", "Entertainment"]
        current = data["trendData"][-1]
        assert current["food_drink"] == 120
        assert current["shopping"] == 80
        assert current["transport"] == 0
        assert len(data["trendData"]) == 2

    def test_category_trends_selected(self, client, auth_headers, add_transaction):
        add_transaction(40, category="Bills & Utilities")
        data = client.get(
            "/api/v1/insights/category-trends?months=1&categories=Bills%20%26%20Utilities",
            headers=auth_headers,
        ).json()["data"]
        assert data["trendData"][0]["bills_utilities"] == 40


class TestHealthAndRecommendations:
    """Tests for the financial-health score and insight cards."""

    def test_zero_income(self, client, auth_headers):
        health = client.get("/api/v1/insights/financial-health", headers=auth_headers).json()
        assert health["data"]["score"] == 10
        cards = client.get("/api/v1/insights/recommendations", headers=auth_headers).json()
        assert cards["data"]["insights"] == []

    def test_healthy_saver(self, client, auth_headers, add_transaction):
        add_transaction(10000, type="income", category="Salary")
        add_transaction(2000, category="Food")

        health = client.get("/api/v1/insights/financial-health", headers=auth_headers).json()[
            "data"
        ]
        # ratio 0.2 -> 40, savings 80% -> 30, balance 8000 < income -> 0
        assert health["score"] == 70
        assert health["breakdown"]["savingsRate"] == 80.0

        titles = [
            c["title"]
            for c in client.get("/api/v1/insights/recommendations", headers=auth_headers).json()[
                "data"
            ]["insights"]
        ]
        assert titles == ["Great Savings!", "Low Emergency Fund"]

    def test_high_spending_alert(self, client, auth_headers, add_transaction):
        add_transaction(1000, type="income", category="Salary")
        add_transaction(900, category="Shopping")

        titles = [
            c["title"]
            for c in client.get("/api/v1/insights/recommendations", headers=auth_headers).json()[
                "data"
            ]["insights"]
        ]
        assert "High Spending Alert" in titles
