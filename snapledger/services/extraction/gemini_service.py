"""
Voice Entry Extraction using Gemini

DESIGN DECISION: Gemini listens to the recorded audio directly, so there
is no separate speech-to-text step. The model is a TRANSLATOR, not an
ORACLE: it turns what the user said into a structured candidate, and the
ledger decides what happens to it.

This service handles:
1. Building the prompt, including the user's current categories
2. Sending the audio inline with the prompt
3. Parsing the JSON reply into a typed ExtractionResult
4. Mapping unknown or legacy category ids to something the ledger knows

BOUNDARIES:
- NEVER persists anything
- NEVER invents a category id: an id the user does not have is dropped
- A reply that cannot be parsed is an ExtractionError, not a guess
"""

import json
import re
from datetime import date
from typing import Any, Optional, Sequence

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from pydantic import TypeAdapter, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from snapledger.config import GeminiSettings, get_settings
from snapledger.models.extraction import ExtractionResult, NotATransaction
from snapledger.models.ledger import Category, resolve_category_id, utc_now
from snapledger.services.storage.interface import PreconditionError

logger = structlog.get_logger(__name__)

_result_adapter = TypeAdapter(ExtractionResult)

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)

NOT_A_TRANSACTION_MESSAGE = "I didn't catch a transaction in that."
UNPARSEABLE_AMOUNT_MESSAGE = "I heard numbers but couldn't make sense of the transaction."


class ExtractionError(Exception):
    """The extraction service failed or replied with something unusable."""
    pass


def build_prompt(categories: Sequence[Category], today: date) -> str:
    """Instructions sent alongside the audio."""
    category_list = "\n".join(
        f"- {c.name} (ID: {c.id}, Type: {c.kind.value})" for c in categories
    )
    return f"""You are a smart financial assistant. Listen to the audio and extract the transaction details.

Available Categories:
{category_list}

Current Date: {today.isoformat()}

Rules:
1. Identify if this is a transaction (expense/income) or purely non-accounting speech.
2. If it is a transaction, extract:
   - Amount (number)
   - Category ID (map to the closest ID above. If unsure, null)
   - Type (expense/income)
   - Date (YYYY-MM-DD)
   - Note (a short summary, in the language the user spoke)
3. If no category fits at all, you may propose one in "new_category".
4. CONFIDENCE check:
   - If amount, category, and date are clear -> confidence: 1.0
   - If category is ambiguous -> confidence: 0.6
   - If amount missing -> confidence: 0.0

Return ONLY raw JSON:
{{
  "is_transaction": boolean,
  "transcript": string,
  "amount": number | null,
  "categoryId": string | null,
  "type": "expense" | "income",
  "date": string,
  "note": string,
  "message": string,
  "confidence": number,
  "new_category": {{"name": string, "icon": string, "type": "expense" | "income"}} | null
}}"""


def _load_json(text: str) -> dict[str, Any]:
    cleaned = _FENCE.sub("", text).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}") + 1
    if start < 0 or end <= start:
        raise ExtractionError("No JSON object in extraction reply")
    try:
        data = json.loads(cleaned[start:end])
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Extraction reply is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ExtractionError("Extraction reply is not a JSON object")
    return data


def parse_reply(
    text: str,
    categories: Sequence[Category],
    today: Optional[date] = None,
) -> ExtractionResult:
    """
    Turn the model's raw reply into a typed result.

    - `is_transaction` false -> NotATransaction
    - no numeric amount -> NotATransaction
    - amount but no usable category and no suggestion -> NeedsCategorization
    - otherwise -> TransactionCandidate
    """
    data = _load_json(text)
    today = today or utc_now().date()

    if not data.get("is_transaction"):
        return NotATransaction(message=data.get("message") or NOT_A_TRANSACTION_MESSAGE)

    amount = data.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return NotATransaction(message=UNPARSEABLE_AMOUNT_MESSAGE)

    known_ids = {c.id for c in categories}
    category_id = resolve_category_id(data.get("categoryId") or None)
    if category_id not in known_ids:
        if category_id:
            logger.info("extraction_unknown_category", category_id=category_id)
        category_id = None

    payload = {
        "amount": str(amount),
        "kind": data.get("type") or "expense",
        "date": data.get("date") or today,
        "note": data.get("note") or "",
    }
    suggestion = data.get("new_category") or None
    if isinstance(suggestion, dict):
        suggestion = {k: v for k, v in suggestion.items() if v is not None}

    try:
        if category_id is None and suggestion is None:
            return _result_adapter.validate_python({
                "result_type": "uncategorized",
                "original_text": data.get("transcript") or "",
                **payload,
            })
        confidence = data.get("confidence")
        if confidence is None:
            confidence = 0.9 if category_id else 0.5
        return _result_adapter.validate_python({
            "result_type": "transaction",
            "category_id": category_id,
            "confidence": confidence,
            "suggested_category": suggestion,
            **payload,
        })
    except ValidationError as e:
        raise ExtractionError(f"Extraction reply failed validation: {e}") from e


class GeminiExtractionService:
    """
    Extraction service backed by a Gemini multimodal model.

    Requires GEMINI_API_KEY; without it the service refuses to start
    rather than failing on the first recording.
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        if not self._settings.api_key:
            raise PreconditionError("Missing Gemini API key (GEMINI_API_KEY)")
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    @retry(
        retry=retry_if_exception_type((
            google_exceptions.ServiceUnavailable,
            google_exceptions.ResourceExhausted,
            google_exceptions.DeadlineExceeded,
        )),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, prompt: str, audio: bytes, mime_type: str) -> str:
        response = await self._model.generate_content_async([
            prompt,
            {"mime_type": mime_type, "data": audio},
        ])
        return response.text

    async def extract(
        self,
        audio: bytes,
        categories: Sequence[Category],
        mime_type: str = "audio/webm",
    ) -> ExtractionResult:
        """
        Extract a transaction from recorded speech.

        Raises:
            ExtractionError: If the call fails or the reply is unusable
        """
        if not audio:
            raise ExtractionError("No audio recorded")

        today = utc_now().date()
        try:
            text = await self._generate(build_prompt(categories, today), audio, mime_type)
        except Exception as e:
            logger.error("extraction_call_failed", error=str(e))
            raise ExtractionError(f"Extraction service call failed: {e}") from e

        result = parse_reply(text, categories, today)
        logger.info("extraction_completed", result_type=result.result_type)
        return result

