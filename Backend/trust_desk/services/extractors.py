"""
Free-text request extraction.

The extraction model is a collaborator: it takes the beneficiary's raw text
and returns a JSON object shaped like ``ParsedRequest``. Callers always run
its output through ``request_parser.normalize_parsed``; nothing here trusts
the model's field values.
"""

import json
import re
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from openai import AsyncOpenAI, OpenAIError

from trust_desk.core.exceptions import ExternalServiceError
from trust_desk.core.logging_config import get_logger
from trust_desk.services.policy_engine import dedupe
from trust_desk.services.request_parser import find_amount
from trust_desk.services.trust_policy import (
    GENERAL_SUPPORT_MONTHLY_CAP,
    KNOWN_BENEFICIARIES,
    LARGE_PURCHASE_REVIEW_THRESHOLD,
    PROHIBITED_KEYWORDS,
)

logger = get_logger("extractors")

_PROHIBITED_WORDS = ", ".join(PROHIBITED_KEYWORDS)

SYSTEM_PROMPT = f"""You are a trust fund analyst. Parse beneficiary distribution requests and extract structured data.

Trust policy rules:
- Education: Fully covered (tuition, materials, academic travel, professional development)
- Medical: Fully covered (hospital bills, insurance deductibles, treatments)
- General Support: Capped at ${GENERAL_SUPPORT_MONTHLY_CAP:,}/month per beneficiary (rent, living expenses, subscriptions)
- Large Purchases: Over ${LARGE_PURCHASE_REVIEW_THRESHOLD:,} requires high-priority review
- Prohibited: No speculative investments (angel investing, crypto, stocks), luxury vehicles (Tesla, Ferrari, etc.), or luxury goods (designer items)
- Words that usually signal a prohibited request: {_PROHIBITED_WORDS}

Return a JSON object with exactly these fields:
- amount: number (the dollar amount requested, as a number without currency symbols)
- category: string (exactly one of: "Education", "Medical", "General Support", "Investment", "Vehicle", "Other")
- urgency: string (exactly one of: "low", "medium", "high", "critical")
- summary: string (one-sentence plain-English summary of what's being requested)
- policy_notes: string[] (array of relevant policy observations)
- flags: string[] (array of applicable flag codes: "prohibited", "requires_review", "unknown_beneficiary", "exceeds_monthly_cap")

Urgency guidelines:
- critical: Medical emergencies, time-sensitive deadlines (e.g. "due tomorrow")
- high: Upcoming deadlines within a week, large amounts over ${LARGE_PURCHASE_REVIEW_THRESHOLD:,}
- medium: Standard requests with reasonable timelines
- low: No urgency mentioned, future planning"""


@runtime_checkable
class RequestExtractor(Protocol):
    """Turns raw request text into an unvalidated ParsedRequest-shaped dict."""

    name: str
    actor: str

    async def extract(
        self, raw_text: str, beneficiary: str, known_beneficiaries: Sequence[str]
    ) -> Dict[str, Any]:
        ...


def build_user_prompt(raw_text: str, beneficiary: str, known_beneficiaries: Sequence[str]) -> str:
    known = ", ".join(known_beneficiaries) or "(none)"
    return f"Known beneficiaries: {known}\nBeneficiary: {beneficiary}\n\nRequest:\n{raw_text}"


class OpenAIRequestExtractor:
    """Extraction through the OpenAI Chat Completions API in JSON mode."""

    name = "OpenAI extraction"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.1,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        kwargs: Dict[str, Any] = {}
        if api_key:
            kwargs["api_key"] = api_key
        self._client = client or AsyncOpenAI(**kwargs)
        self._model = model
        self._temperature = temperature

    @property
    def actor(self) -> str:
        return f"AI ({self._model})"

    async def extract(
        self, raw_text: str, beneficiary: str, known_beneficiaries: Sequence[str]
    ) -> Dict[str, Any]:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(raw_text, beneficiary, known_beneficiaries)},
                ],
                response_format={"type": "json_object"},
                temperature=self._temperature,
            )
        except OpenAIError as exc:
            logger.warning("extraction_failed", extra={"extractor": self.name, "error": str(exc)})
            raise ExternalServiceError(self.name, str(exc)) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ExternalServiceError(self.name, "empty response")
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ExternalServiceError(self.name, f"response was not JSON: {exc.msg}") from exc
        if not isinstance(payload, dict):
            raise ExternalServiceError(self.name, "response was not a JSON object")
        return payload


# ---------------------------------------------------------------------------
# Deterministic extractor (no API)
# ---------------------------------------------------------------------------

_CATEGORY_KEYWORDS = [
    ("Investment", ("invest", "investing", "investment", "crypto", "cryptocurrency", "stocks", "startup", "angel", "bitcoin", "shares")),
    ("Vehicle", ("car", "cars", "tesla", "ferrari", "lamborghini", "porsche", "vehicle", "truck", "motorcycle")),
    ("Medical", ("hospital", "medical", "surgery", "doctor", "dental", "deductible", "therapy", "prescription")),
    ("Education", ("tuition", "school", "college", "university", "textbooks", "course", "courses", "semester")),
    ("General Support", ("rent", "living expenses", "groceries", "utilities", "bills", "subscription", "moving")),
]

_URGENCY_KEYWORDS = [
    ("critical", ("emergency", "urgent", "asap", "immediately", "due tomorrow", "today")),
    ("high", ("this week", "next week", "deadline", "due by", "due friday", "soon")),
    ("low", ("eventually", "no rush", "next year", "someday", "planning")),
]


class KeywordRequestExtractor:
    """
    Mock extractor (no API).
    Uses only the request text: keyword tables for category and urgency, the
    largest money figure for amount. Returns the same JSON shape as the model.
    """

    name = "Keyword extraction"
    actor = "AI (keyword mock)"

    async def extract(
        self, raw_text: str, beneficiary: str, known_beneficiaries: Sequence[str] = KNOWN_BENEFICIARIES
    ) -> Dict[str, Any]:
        text = raw_text or ""
        low = text.lower()

        category = "Other"
        for cat, words in _CATEGORY_KEYWORDS:
            if any(re.search(rf"\b{re.escape(w)}\b", low) for w in words):
                category = cat
                break

        urgency = "medium"
        for level, words in _URGENCY_KEYWORDS:
            if any(w in low for w in words):
                urgency = level
                break

        amount = find_amount(text)

        flags: List[str] = []
        notes: List[str] = []
        if amount is None:
            notes.append("No amount found in the request text.")
        elif amount > LARGE_PURCHASE_REVIEW_THRESHOLD:
            flags.append("requires_review")
            notes.append(f"Exceeds ${LARGE_PURCHASE_REVIEW_THRESHOLD:,} review threshold")
        if category in ("Investment", "Vehicle"):
            flags.append("prohibited")
        if beneficiary not in known_beneficiaries:
            flags.append("unknown_beneficiary")

        first_sentence = re.split(r"(?<=[.!?])\s+", text.strip(), maxsplit=1)[0] if text.strip() else ""
        summary = f"{beneficiary} requests {category.lower()} funding: {first_sentence[:160]}".strip()

        return {
            "amount": float(amount) if amount is not None else 0,
            "category": category,
            "urgency": urgency,
            "summary": summary,
            "policy_notes": dedupe(notes),
            "flags": dedupe(flags),
        }
