"""Tests for the Gemini helpers that do not need network access."""

import asyncio
import json
from types import SimpleNamespace

import pytest

from finance_tracker.config import GeminiSettings
from finance_tracker.errors import GeminiError
from finance_tracker.services.categories import category_key, normalize_category
from finance_tracker.services.gemini import (
    GeminiService,
    create_fallback_transaction,
    extract_json,
)


@pytest.fixture
def offline_service():
    return GeminiService(GeminiSettings(api_key=None))


class TestExtractJson:
    def test_fenced_output(self):
        text = '```json\n{"endpoint": "/budgets", "parameters": {}}\n```'
        assert extract_json(text) == {"endpoint": "/budgets", "parameters": {}}

    def test_object_inside_prose(self):
        text = 'Sure! Here you go: {"intent": "get_balance"} Hope that helps.'
        assert extract_json(text) == {"intent": "get_balance"}

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{broken"])
    def test_unparseable(self, text):
        with pytest.raises(GeminiError):
            extract_json(text)


class TestFallbackTransaction:
    def test_prefers_rupee_amount(self):
        txn = create_fallback_transaction("Cafe Coffee Day 12/03 Total ₹1,250.50 thanks")
        assert txn["amount"] == 1250.50
        assert txn["category"] == "Other"
        assert txn["source"] == "scanned"

    def test_no_amount(self):
        assert create_fallback_transaction("")["amount"] == 0.0


class TestOfflineService:
    """Behaviour when GEMINI_API_KEY is not configured."""

    def test_not_available(self, offline_service):
        assert offline_service.available is False

    def test_understanding_requires_key(self, offline_service):
        with pytest.raises(GeminiError, match="GEMINI_API_KEY"):
            asyncio.run(offline_service.understand_text_query("What's my balance?"))

    def test_narration_falls_back(self, offline_service):
        text = asyncio.run(offline_service.format_natural_response({}, "get_balance", "balance?"))
        assert text == (
            "I found the information you requested. Please check your screen for details."
        )

    def test_receipt_falls_back(self, offline_service, tmp_path):
        image = tmp_path / "receipt.jpg"
        image.write_bytes(b"\xff\xd8")
        result = asyncio.run(offline_service.parse_receipt(image))
        assert result["success"] is False
        assert result["fallbackTransaction"]["name"] == "Transaction from Receipt"

    def test_receipt_items_use_strict_categories(self):
        item = GeminiService._enrich_receipt_item(
            {"name": "Pizza", "amount": "-320", "category": "Dining"},
            {"date": "2025-03-01", "confidence": "high"},
        )
        assert item["category"] == "Other"
        assert item["amount"] == 320
        assert item["date"] == "2025-03-01"
        assert item["receipt"]["scannedData"]["ocrConfidence"] == 90


class TestCategories:
    def test_normalize(self):
        assert normalize_category("Salary", "income") == "Salary"
        assert normalize_category("Salary", "expense") == "Other"

    def test_category_key(self):
        assert category_key("Food & Drink") == "food_drink"
        assert category_key("Bills & Utilities") == "bills_utilities"
        assert category_key("Shopping") == "shopping"


class StubModel:
    """Stands in for a GenerativeModel and replies with fixed text."""

    def __init__(self, text):
        self.text = text

    async def generate_content_async(self, contents):
        return SimpleNamespace(text=self.text)


def _answering(service, payload, monkeypatch):
    service._model = StubModel(json.dumps(payload))
    monkeypatch.setattr(service, "_upload", lambda path, mime_type: object())
    monkeypatch.setattr(service, "_delete_upload", lambda uploaded: None)
    return service


class TestLooseModelOutput:
    """Model replies with wrongly typed fields are coerced, not propagated."""

    def test_word_confidence_and_list_parameters(self, offline_service, monkeypatch, tmp_path):
        service = _answering(
            offline_service,
            {
                "transcription": "show my budgets",
                "confidence": "high",
                "endpoint": "/budgets",
                "parameters": ["Food"],
            },
            monkeypatch,
        )
        audio = tmp_path / "query.mp3"
        audio.write_bytes(b"ID3")

        understood = asyncio.run(service.transcribe_and_understand(audio))

        assert understood["confidence"] == 0.9
        assert understood["parameters"] == {}
        assert understood["method"] == "GET"

    def test_numeric_confidence_kept(self, offline_service, monkeypatch, tmp_path):
        service = _answering(
            offline_service,
            {"transcription": "balance", "confidence": "0.75", "endpoint": "/users/balance"},
            monkeypatch,
        )
        audio = tmp_path / "query.mp3"
        audio.write_bytes(b"ID3")

        assert asyncio.run(service.transcribe_and_understand(audio))["confidence"] == 0.75

    def test_text_query_string_parameters(self, offline_service, monkeypatch):
        service = _answering(
            offline_service,
            {"endpoint": "/transactions", "parameters": "limit=5"},
            monkeypatch,
        )
        understood = asyncio.run(service.understand_text_query("recent spending"))
        assert understood["parameters"] == {}
        assert understood["endpoint"] == "/transactions"

    def test_receipt_skips_non_object_items(self, offline_service, monkeypatch, tmp_path):
        service = _answering(
            offline_service,
            {
                "merchantName": "Cafe",
                "confidence": ["high"],
                "transactions": ["Coffee", {"name": "Tea", "amount": 40, "category": "Food"}],
            },
            monkeypatch,
        )
        image = tmp_path / "receipt.jpg"
        image.write_bytes(b"\xff\xd8")

        result = asyncio.run(service.parse_receipt(image))

        assert result["success"] is True
        (item,) = result["transactions"]
        assert item["name"] == "Tea"
        assert item["receipt"]["scannedData"]["ocrConfidence"] == 50
