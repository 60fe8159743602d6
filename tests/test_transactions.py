"""Tests for the transactions router and its side effects on users and budgets."""

from datetime import date, timedelta

from finance_tracker.models import Budget, Notification, Transaction
from finance_tracker.services import dates
from finance_tracker.services.budgets import default_thresholds


def _budget(db, user, category="Food", limit=1000.0):
    start, end = dates.current_month_bounds()
    budget = Budget(
        user_id=user.id,
        name=f"{category} Budget",
        category=category,
        limit=limit,
        remaining=limit,
        start_date=start,
        end_date=end,
        thresholds=default_thresholds(),
    )
    db.add(budget)
    db.commit()
    return budget


class TestCreateTransaction:
    """Tests for POST /api/v1/transactions."""

    def test_create_expense_updates_user_financials(self, client, auth_headers, user, db):
        response = client.post(
            "/api/v1/transactions",
            json={"name": "Lunch", "amount": 250, "type": "Expense", "category": "Food"},
            headers=auth_headers,
        )

        assert response.status_code == 201
        txn = response.json()["data"]["transaction"]
        assert txn["type"] == "expense"
        assert txn["amount"] == 250
        assert txn["date"] == date.today().isoformat()

        db.refresh(user)
        assert user.monthly_expense == 250
        assert user.balance == -250

    def test_create_records_notification(self, client, auth_headers, db, user):
        client.post(
            "/api/v1/transactions",
            json={"name": "Salary", "amount": 50000, "type": "income", "category": "Salary"},
            headers=auth_headers,
        )
        notification = db.query(Notification).filter(Notification.user_id == user.id).one()
        assert notification.type == "transaction_added"
        assert notification.title == "Income Added"

    def test_expense_refreshes_budget_and_fires_alerts(self, client, auth_headers, db, user):
        budget = _budget(db, user, limit=1000)
        client.post(
            "/api/v1/transactions",
            json={"name": "Dinner", "amount": 800, "type": "expense", "category": "Food"},
            headers=auth_headers,
        )

        db.refresh(budget)
        assert budget.spent == 800
        assert budget.remaining == 200
        assert [t.triggered for t in budget.thresholds] == [True, True, False]
        alerts = db.query(Notification).filter(Notification.type == "budget_alert").count()
        assert alerts == 2

    def test_rejects_non_positive_amount(self, client, auth_headers):
        response = client.post(
            "/api/v1/transactions",
            json={"name": "Oops", "amount": 0, "type": "expense", "category": "Food"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_rejects_unknown_category(self, client, auth_headers):
        response = client.post(
            "/api/v1/transactions",
            json={"name": "Thing", "amount": 10, "type": "expense", "category": "Yachts"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_recurring_sets_next_occurrence(self, client, auth_headers):
        response = client.post(
            "/api/v1/transactions",
            json={
                "name": "Gym",
                "amount": 1500,
                "type": "expense",
                "category": "Health",
                "date": "2025-01-10",
                "isRecurring": True,
                "recurringDetails": {"frequency": "monthly"},
            },
            headers=auth_headers,
        )
        details = response.json()["data"]["transaction"]["recurringDetails"]
        assert details["frequency"] == "monthly"
        assert details["nextOccurrence"] == "2025-02-10"

    def test_requires_authentication(self, client):
        response = client.post(
            "/api/v1/transactions",
            json={"name": "Lunch", "amount": 250, "type": "expense", "category": "Food"},
        )
        assert response.status_code == 401


class TestListTransactions:
    """Tests for GET /api/v1/transactions and /by-category."""

    def test_expenses_are_negative_and_newest_first(self, client, auth_headers, add_transaction):
        add_transaction(100, on=date.today() - timedelta(days=2), name="Older")
        add_transaction(5000, type="income", category="Salary", name="Newer")

        body = client.get("/api/v1/transactions", headers=auth_headers).json()["data"]
        assert [t["name"] for t in body["transactions"]] == ["Newer", "Older"]
        assert body["transactions"][1]["amount"] == -100
        assert body["totalTransactions"] == 2
        assert body["totalPages"] == 1
        assert body["currentPage"] == 1

    def test_pagination_and_filters(self, client, auth_headers, add_transaction):
        for i in range(5):
            add_transaction(10 + i, name=f"Snack {i}")
        add_transaction(300, category="Transport")

        body = client.get(
            "/api/v1/transactions?page=2&limit=2&category=Food", headers=auth_headers
        ).json()["data"]
        assert body["totalTransactions"] == 5
        assert body["totalPages"] == 3
        assert len(body["transactions"]) == 2

        transport = client.get(
            "/api/v1/transactions?type=expense&category=Transport", headers=auth_headers
        ).json()["data"]
        assert transport["totalTransactions"] == 1

    def test_only_own_transactions(self, client, auth_headers, db, add_transaction):
        add_transaction(50)
        db.add(
            Transaction(
                user_id=999, type="expense", name="Other user", amount=1,
                category="Food", date=date.today(),
            )
        )
        db.commit()
        body = client.get("/api/v1/transactions", headers=auth_headers).json()["data"]
        assert body["totalTransactions"] == 1

    def test_by_category_groups_signed_totals(self, client, auth_headers, add_transaction):
        add_transaction(100, category="Food")
        add_transaction(50, category="Food")
        add_transaction(2000, type="income", category="Salary")

        groups = client.get(
            "/api/v1/transactions/by-category", headers=auth_headers
        ).json()["data"]["categories"]
        totals = {g["name"]: g["totalAmount"] for g in groups}
        assert totals == {"Food": -150, "Salary": 2000}


class TestUpdateAndDelete:
    """Tests for PUT/DELETE /api/v1/transactions/{id}."""

    def test_update_amount(self, client, auth_headers, add_transaction, db, user):
        txn = add_transaction(100)
        response = client.put(
            f"/api/v1/transactions/{txn.id}", json={"amount": 400}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["transaction"]["amount"] == 400
        db.refresh(user)
        assert user.monthly_expense == 400

    def test_moving_category_refreshes_old_budget(self, client, auth_headers, db, user):
        budget = _budget(db, user, category="Food", limit=500)
        created = client.post(
            "/api/v1/transactions",
            json={"name": "Snacks", "amount": 200, "type": "expense", "category": "Food"},
            headers=auth_headers,
        ).json()["data"]["transaction"]
        db.refresh(budget)
        assert budget.spent == 200

        client.put(
            f"/api/v1/transactions/{created['id']}",
            json={"category": "Shopping"},
            headers=auth_headers,
        )
        db.refresh(budget)
        assert budget.spent == 0

    def test_delete_is_soft(self, client, auth_headers, add_transaction, db, user):
        txn = add_transaction(100)
        response = client.delete(f"/api/v1/transactions/{txn.id}", headers=auth_headers)
        assert response.status_code == 200

        db.refresh(txn)
        db.refresh(user)
        assert txn.is_deleted is True
        assert user.monthly_expense == 0
        listing = client.get("/api/v1/transactions", headers=auth_headers).json()["data"]
        assert listing["totalTransactions"] == 0

    def test_unknown_transaction_is_404(self, client, auth_headers):
        response = client.delete("/api/v1/transactions/12345", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Transaction not found"


class TestExportAndReceipts:
    """Tests for the CSV export and receipt scanning."""

    def test_export_csv(self, client, auth_headers, add_transaction):
        add_transaction(120, name="Pizza")
        add_transaction(900, type="income", category="Salary", name="Pay")

        response = client.get("/api/v1/transactions/export", headers=auth_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.splitlines()
        assert lines[0] == "Date,Name,Type,Category,Amount,Payment Method"
        assert any("Pizza" in line and "-120" in line for line in lines)
        assert "Category,Type,Total" in lines

    def test_scan_receipt_without_file(self, client, auth_headers):
        response = client.post("/api/v1/transactions/scan-receipt", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "No image file uploaded"

    def test_scan_receipt_fallback(self, client, auth_headers):
        response = client.post(
            "/api/v1/transactions/scan-receipt",
            files={"file": ("receipt.jpg", b"\xff\xd8\xff fake jpeg", "image/jpeg")},
            headers=auth_headers,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["parsedByAi"] is False
        assert data["receiptImage"].startswith("/uploads/receipts/")
        assert data["extractedTransactions"][0]["category"] == "Other"

    def test_scan_receipt_parsed(self, client, auth_headers, gemini):
        gemini.receipt = {
            "success": True,
            "merchantName": "Big Bazaar",
            "totalAmount": 640.0,
            "date": "2025-03-02",
            "time": None,
            "paymentMethod": "card",
            "transactions": [{"name": "Rice", "amount": 640.0, "category": "Groceries"}],
            "confidence": "high",
            "rawText": "{}",
        }
        response = client.post(
            "/api/v1/transactions/scan-receipt",
            files={"file": ("receipt.png", b"\x89PNG fake", "image/png")},
            headers=auth_headers,
        )
        data = response.json()["data"]
        assert data["parsedByAi"] is True
        assert data["merchantName"] == "Big Bazaar"
        assert data["extractedTransactions"][0]["name"] == "Rice"
