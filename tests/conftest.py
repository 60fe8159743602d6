"""Test fixtures: in-memory database, authenticated client and a fake Gemini."""

import os
import tempfile

UPLOAD_DIR = tempfile.mkdtemp(prefix="finance-tracker-uploads-")
os.environ["UPLOAD_DIR"] = UPLOAD_DIR
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("GEMINI_API_KEY", None)

from datetime import date  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from finance_tracker.auth import create_access_token, hash_password  # noqa: E402
from finance_tracker.database import get_db, init_db  # noqa: E402
from finance_tracker.errors import GeminiError  # noqa: E402
from finance_tracker.main import app  # noqa: E402
from finance_tracker.models import Transaction, User  # noqa: E402
from finance_tracker.services.financials import update_user_financials  # noqa: E402
from finance_tracker.services.gemini import (  # noqa: E402
    NATURAL_RESPONSE_FALLBACK,
    get_gemini_service,
)


class FakeGemini:
    """Stands in for GeminiService; each answer can be set per test."""

    def __init__(self):
        self.understanding = {
            "transcription": "How much did I spend on food?",
            "confidence": 0.92,
            "intent": "view_food_budget",
            "endpoint": "/budgets",
            "method": "GET",
            "parameters": {"category": "Food"},
            "natural_query": "How much did I spend on food?",
        }
        self.text_understanding = {
            "intent": "view_transactions",
            "endpoint": "/transactions",
            "method": "GET",
            "parameters": {},
            "natural_query": "Show my transactions",
            "confidence": 0.95,
        }
        self.narration = "You have spent ₹500 on food this month."
        self.receipt = {
            "success": False,
            "error": "Gemini API key not configured",
            "fallbackTransaction": {
                "name": "Receipt Purchase",
                "amount": 0,
                "category": "Other",
                "type": "expense",
            },
        }
        self.error = None
        self.narrated = []

    @property
    def available(self):
        return True

    async def transcribe_and_understand(self, audio_path):
        if self.error:
            raise self.error
        return dict(self.understanding)

    async def understand_text_query(self, query):
        if self.error:
            raise self.error
        return dict(self.text_understanding)

    async def format_natural_response(self, data, intent, query):
        self.narrated.append(data)
        return self.narration or NATURAL_RESPONSE_FALLBACK

    async def format_error_response(self, query, error_message):
        return "Sorry, I couldn't find that. Please try again."

    async def parse_receipt(self, image_path):
        return dict(self.receipt)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gemini():
    return FakeGemini()


@pytest.fixture
def client(session_factory, gemini):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gemini_service] = lambda: gemini
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    user = User(
        name="Asha Rao",
        email="asha@example.com",
        password_hash=hash_password("secret123"),
        card_number="4111 1111 1111 1111",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def add_transaction(db, user):
    """Insert a transaction directly and refresh the user's cached totals."""

    def _add(amount, type="expense", category="Food", name=None, on=None, **extra):
        txn = Transaction(
            user_id=user.id,
            type=type,
            name=name or f"{category} {type}",
            amount=amount,
            category=category,
            date=on or date.today(),
            **extra,
        )
        db.add(txn)
        db.commit()
        update_user_financials(db, user)
        return txn

    return _add


@pytest.fixture
def gemini_failure():
    return GeminiError("Gemini API key not configured")
