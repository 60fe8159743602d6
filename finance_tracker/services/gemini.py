"""
Gemini client for the voice agent and receipt scanning.

The model is used for three jobs only:

1. Turning a spoken or typed question into one of the API routes listed in
   VOICE_ROUTES, plus the parameters to call it with.
2. Narrating the JSON that route returned as a short spoken answer.
3. Reading a receipt image into a list of draft transactions.

It never answers from its own knowledge; the numbers it speaks come from
the data the route returned.
"""

import json
import mimetypes
import re
from datetime import date, datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import google.generativeai as genai
import structlog

from finance_tracker.config import GeminiSettings, get_settings
from finance_tracker.errors import GeminiError
from finance_tracker.services.categories import (
    TRANSACTION_CATEGORIES,
    VALID_EXPENSE_CATEGORIES,
    VALID_INCOME_CATEGORIES,
    category_metadata,
    normalize_category,
)

logger = structlog.get_logger(__name__)

NATURAL_RESPONSE_FALLBACK = (
    "I found the information you requested. Please check your screen for details."
)
ERROR_RESPONSE_FALLBACK = (
    "I'm sorry, I couldn't process your request. Please try again or rephrase your question."
)

AUDIO_MIME_TYPES = {
    ".mp3": "audio/mp3",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".ogg": "audio/ogg",
    ".webm": "audio/webm",
}

VOICE_ROUTES = [
    {"endpoint": "/budgets", "method": "GET", "description": "List budgets", "parameters": ["status", "period", "category"]},
    {"endpoint": "/budgets/{id}", "method": "GET", "description": "One budget by id"},
    {"endpoint": "/transactions", "method": "GET", "description": "Recent transactions", "parameters": ["type", "category", "startDate", "endDate", "limit"]},
    {"endpoint": "/goals", "method": "GET", "description": "Saving goals", "parameters": ["status"]},
    {"endpoint": "/goals/{id}", "method": "GET", "description": "One saving goal by id"},
    {"endpoint": "/subscriptions", "method": "GET", "description": "All subscriptions", "parameters": ["status", "category"]},
    {"endpoint": "/subscriptions/upcoming", "method": "GET", "description": "Bills due soon", "parameters": ["days"]},
    {"endpoint": "/subscriptions/{id}", "method": "GET", "description": "One subscription by id"},
    {"endpoint": "/insights/expense-distribution", "method": "GET", "description": "Spending by category", "parameters": ["startDate", "endDate"]},
    {"endpoint": "/insights/category-trends", "method": "GET", "description": "Monthly spending per category", "parameters": ["months", "categories"]},
    {"endpoint": "/insights/recommendations", "method": "GET", "description": "Savings advice"},
    {"endpoint": "/users/balance", "method": "GET", "description": "Balance, income and expense"},
    {"endpoint": "/users/profile", "method": "GET", "description": "User profile"},
    {"endpoint": "/investments/recommendations", "method": "GET", "description": "Investment suggestions"},
]

COMMON_QUERIES = [
    {"query": "What is my food budget?", "intent": "view_budget", "endpoint": "/budgets", "parameters": {"category": "Food"}},
    {"query": "Show my recent transactions", "intent": "recent_transactions", "endpoint": "/transactions", "parameters": {"limit": 5}},
    {"query": "What's my balance?", "intent": "get_balance", "endpoint": "/users/balance", "parameters": {}},
    {"query": "Which bills are due this week?", "intent": "upcoming_bills", "endpoint": "/subscriptions/upcoming", "parameters": {"days": 7}},
    {"query": "Where am I spending the most?", "intent": "spending_report", "endpoint": "/insights/expense-distribution", "parameters": {}},
]

AMOUNT_PATTERNS = (
    re.compile(r"₹\s*(\d+(?:,\d+)*(?:\.\d{2})?)"),
    re.compile(r"Rs\.?\s*(\d+(?:,\d+)*(?:\.\d{2})?)"),
    re.compile(r"INR\s*(\d+(?:,\d+)*(?:\.\d{2})?)"),
    re.compile(r"(\d+(?:,\d+)*(?:\.\d{2})?)"),
)


def extract_json(text: str) -> dict:
    """Parse a JSON object out of model output that may be fenced or padded with prose."""
    cleaned = re.sub(r"```(?:json)?\n?", "", text or "").strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", cleaned)
        if not match:
            raise GeminiError("Failed to parse Gemini response as JSON")
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise GeminiError("Failed to parse Gemini response as JSON") from exc
    if not isinstance(parsed, dict):
        raise GeminiError("Gemini response was not a JSON object")
    return parsed


def create_fallback_transaction(text: str) -> dict:
    """A single draft expense built from the first amount found in `text`."""
    amount = 0.0
    for pattern in AMOUNT_PATTERNS:
        match = pattern.search(text or "")
        if match:
            amount = float(match.group(1).replace(",", ""))
            break

    now = datetime.utcnow()
    return {
        "name": "Transaction from Receipt",
        "description": (text or "")[:100],
        "amount": amount,
        "type": "expense",
        "category": "Other",
        "icon": "receipt-outline",
        "color": "#6B7280",
        "date": now.date().isoformat(),
        "timestamp": now.isoformat(),
        "paymentMethod": "other",
        "notes": "",
        "tags": [],
        "status": "completed",
        "source": "scanned",
        "receipt": {"hasReceipt": True, "scannedData": {"ocrConfidence": 20}},
    }


def _json_default(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _confidence(value: Any, default: float = 0.9) -> float:
    try:
        return float(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        return default


def _parameters(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


class GeminiService:
    """Thin async wrapper around a configured GenerativeModel."""

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._model = None
        if self._settings.enabled:
            self._configure_genai()
        else:
            logger.warning("gemini_not_configured")

    def _configure_genai(self):
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            },
        )

    @property
    def available(self) -> bool:
        return self._model is not None

    def _require_model(self):
        if self._model is None:
            raise GeminiError(
                "Gemini AI service not available. Please configure GEMINI_API_KEY"
            )
        return self._model

    async def _generate(self, contents) -> str:
        model = self._require_model()
        try:
            response = await model.generate_content_async(contents)
            return response.text.strip()
        except GeminiError:
            raise
        except Exception as exc:
            # the SDK raises a mix of google.api_core and ValueError types
            logger.warning("gemini_request_failed", error=str(exc))
            raise GeminiError(f"Gemini request failed: {exc}") from exc

    def _upload(self, path: Path, mime_type: str):
        try:
            return genai.upload_file(path=str(path), mime_type=mime_type, display_name=path.name)
        except Exception as exc:
            raise GeminiError(f"Failed to upload file to Gemini: {exc}") from exc

    def _delete_upload(self, uploaded) -> None:
        try:
            genai.delete_file(uploaded.name)
        except Exception as exc:
            logger.warning("gemini_cleanup_failed", file=uploaded.name, error=str(exc))

    @staticmethod
    def _routes_prompt() -> str:
        return (
            f"AVAILABLE API ENDPOINTS:\n{json.dumps(VOICE_ROUTES, indent=2)}\n\n"
            f"COMMON CATEGORIES:\n{', '.join(TRANSACTION_CATEGORIES)}\n\n"
            f"EXAMPLE QUERIES:\n{json.dumps(COMMON_QUERIES, indent=2)}\n"
        )

    async def transcribe_and_understand(self, audio_path: Path) -> dict:
        """
        Transcribe an audio question and pick the route that answers it.

        Returns transcription, confidence (0-1), intent, endpoint, method and
        parameters. Raises GeminiError when the model output lacks a
        transcription or an endpoint.
        """
        self._require_model()
        audio_path = Path(audio_path)
        if not audio_path.exists():
            raise GeminiError("Audio file not found")

        mime_type = AUDIO_MIME_TYPES.get(audio_path.suffix.lower(), "audio/wav")
        prompt = f"""You are a financial voice assistant. Listen to this audio recording and:
1. TRANSCRIBE the audio accurately
2. UNDERSTAND the user's intent
3. IDENTIFY the API endpoint that answers it
4. EXTRACT any parameters from the query

{self._routes_prompt()}
RULES:
- Be precise with endpoint selection
- Match mentioned categories to the closest category from the list
- If the query is ambiguous, choose the most likely intent
- Return ONLY valid JSON, no markdown formatting

RESPOND IN THIS EXACT JSON FORMAT:
{{"transcription": "exact words", "confidence": 0.95, "intent": "view_food_budget",
  "endpoint": "/budgets", "method": "GET", "parameters": {{"category": "Food"}},
  "naturalQuery": "user-friendly version of the query"}}"""

        uploaded = self._upload(audio_path, mime_type)
        try:
            text = await self._generate([uploaded, prompt])
        finally:
            self._delete_upload(uploaded)

        parsed = extract_json(text)
        if not parsed.get("transcription") or not parsed.get("endpoint"):
            raise GeminiError("Invalid response structure from Gemini")

        logger.info(
            "audio_understood",
            intent=parsed.get("intent"),
            endpoint=parsed.get("endpoint"),
        )
        return {
            "transcription": parsed["transcription"],
            "confidence": _confidence(parsed.get("confidence")),
            "intent": parsed.get("intent") or "unknown",
            "endpoint": parsed["endpoint"],
            "method": str(parsed.get("method") or "GET").upper(),
            "parameters": _parameters(parsed.get("parameters")),
            "natural_query": parsed.get("naturalQuery") or parsed["transcription"],
        }

    async def understand_text_query(self, query: str) -> dict:
        prompt = f"""You are a financial voice assistant. Analyze this text query and
determine the API endpoint to call.

USER QUERY: "{query}"

{self._routes_prompt()}
RESPOND IN THIS EXACT JSON FORMAT:
{{"intent": "descriptive intent", "endpoint": "/budgets", "method": "GET",
  "parameters": {{}}, "naturalQuery": "user-friendly version"}}

Return ONLY JSON, no markdown."""

        parsed = extract_json(await self._generate(prompt))
        if not parsed.get("endpoint"):
            raise GeminiError("Failed to understand query")
        return {
            "intent": parsed.get("intent") or "unknown",
            "endpoint": parsed["endpoint"],
            "method": str(parsed.get("method") or "GET").upper(),
            "parameters": _parameters(parsed.get("parameters")),
            "natural_query": parsed.get("naturalQuery") or query,
            "confidence": 0.95,
        }

    async def format_natural_response(self, data: Any, intent: str, query: str) -> str:
        """Narrate `data` in 2-4 sentences; falls back to a fixed sentence on any failure."""
        prompt = f"""You are a friendly financial voice assistant. The user asked: "{query}"

Their intent was: {intent}

Here is the data retrieved from the backend:
{json.dumps(data, indent=2, default=_json_default)}

Convert this data into a natural, conversational response that directly answers
the question, highlights key numbers, is 2-4 sentences long, mentions currency as
rupees or the ₹ symbol, and offers an actionable insight when relevant.

Return ONLY the response text, no JSON and no markdown."""
        try:
            return await self._generate(prompt) or NATURAL_RESPONSE_FALLBACK
        except GeminiError as exc:
            logger.warning("natural_response_fallback", error=exc.message)
            return NATURAL_RESPONSE_FALLBACK

    async def format_error_response(self, query: str, error_message: str) -> str:
        if not self.available:
            return "I'm sorry, I couldn't process your request. Please try again."
        prompt = f"""The user asked: "{query}"

But we encountered an error: {error_message}

Write a friendly 1-2 sentence message that apologises, suggests what might be
wrong and tells them what to do next. Return ONLY the message text."""
        try:
            return await self._generate(prompt) or ERROR_RESPONSE_FALLBACK
        except GeminiError:
            return ERROR_RESPONSE_FALLBACK

    async def parse_receipt(self, image_path: Path) -> dict:
        """
        Read a receipt image into draft transactions.

        Never raises for model problems: when the image cannot be read into
        JSON the result has success=False and a regex-built fallback
        transaction instead.
        """
        image_path = Path(image_path)
        mime_type = mimetypes.guess_type(image_path.name)[0] or "image/jpeg"
        prompt = f"""You are a financial transaction parser. Read this receipt or bill and
extract every item with its amount, the merchant name, the date and the payment method.

STRICT CATEGORIES (use "Other" when nothing fits):
Expense: {', '.join(VALID_EXPENSE_CATEGORIES)}
Income: {', '.join(VALID_INCOME_CATEGORIES)}

Amounts are positive numbers in Indian Rupees. Use today's date if none is printed.

Return ONLY JSON in this format:
{{"merchantName": "Store", "totalAmount": 1000, "date": "2024-10-30", "time": "14:30",
  "paymentMethod": "cash/card/upi/bank_transfer/wallet/other",
  "transactions": [{{"name": "Item", "description": "", "amount": 100, "type": "expense",
                     "category": "Groceries", "notes": "", "tags": []}}],
  "confidence": "high/medium/low", "rawText": "all text printed on the receipt"}}"""

        text = ""
        try:
            self._require_model()
            uploaded = self._upload(image_path, mime_type)
            try:
                text = await self._generate([uploaded, prompt])
            finally:
                self._delete_upload(uploaded)
            parsed = extract_json(text)
            items = parsed.get("transactions")
            transactions = [
                self._enrich_receipt_item(item, parsed)
                for item in (items if isinstance(items, list) else [])
                if isinstance(item, dict)
            ]
        except GeminiError as exc:
            logger.warning("receipt_parse_fallback", error=exc.message)
            return {
                "success": False,
                "error": exc.message,
                "fallbackTransaction": create_fallback_transaction(text),
            }

        return {
            "success": True,
            "merchantName": parsed.get("merchantName") or "Unknown Merchant",
            "totalAmount": parsed.get("totalAmount") or 0,
            "date": parsed.get("date") or date.today().isoformat(),
            "time": parsed.get("time") or "",
            "paymentMethod": parsed.get("paymentMethod") or "other",
            "transactions": transactions,
            "confidence": parsed.get("confidence") or "medium",
            "rawText": parsed.get("rawText") or "",
        }

    @staticmethod
    def _enrich_receipt_item(item: dict, receipt: dict) -> dict:
        txn_type = item.get("type") if item.get("type") in ("income", "expense") else "expense"
        category = normalize_category(item.get("category") or "Other", txn_type)
        metadata = category_metadata(category, txn_type)
        confidence = str(receipt.get("confidence") or "medium")
        try:
            amount = abs(float(item.get("amount") or 0))
        except (TypeError, ValueError):
            amount = 0.0
        return {
            "name": item.get("name") or "Unknown Item",
            "description": item.get("description") or item.get("name") or "",
            "amount": amount,
            "type": txn_type,
            "category": category,
            "icon": metadata["icon"],
            "color": metadata["color"],
            "date": receipt.get("date") or date.today().isoformat(),
            "timestamp": datetime.utcnow().isoformat(),
            "paymentMethod": item.get("paymentMethod") or receipt.get("paymentMethod") or "other",
            "notes": item.get("notes") or "",
            "tags": item.get("tags") or [],
            "status": "completed",
            "source": "scanned",
            "receipt": {
                "hasReceipt": True,
                "scannedData": {
                    "merchantName": receipt.get("merchantName"),
                    "totalAmount": receipt.get("totalAmount"),
                    "ocrConfidence": {"high": 90, "medium": 70}.get(confidence, 50),
                },
            },
        }


@lru_cache()
def get_gemini_service() -> GeminiService:
    return GeminiService()
