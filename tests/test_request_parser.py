"""Extraction output normalisation and the two extractors."""

import asyncio
import json
from decimal import Decimal
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from trust_desk.core.exceptions import ExternalServiceError
from trust_desk.domain.models import Category, PolicyFlag, Urgency
from trust_desk.services.extractors import (
    SYSTEM_PROMPT,
    KeywordRequestExtractor,
    OpenAIRequestExtractor,
    RequestExtractor,
)
from trust_desk.services.request_parser import find_amount, normalize_parsed


# =============================================================================
# normalize_parsed
# =============================================================================


class TestNormalize:
    def test_well_formed_payload(self):
        parsed = normalize_parsed(
            {
                "amount": 4500,
                "category": "Education",
                "urgency": "high",
                "summary": " Spring tuition ",
                "policy_notes": ["Education is fully covered"],
                "flags": [],
            }
        )
        assert parsed.amount == Decimal("4500")
        assert parsed.category == Category.EDUCATION
        assert parsed.urgency == Urgency.HIGH
        assert parsed.summary == "Spring tuition"
        assert parsed.policy_notes == ["Education is fully covered"]

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Yachts", Category.OTHER),
            ("general_support", Category.GENERAL_SUPPORT),
            ("GENERAL SUPPORT", Category.GENERAL_SUPPORT),
            ("medical", Category.MEDICAL),
            (None, Category.OTHER),
            (7, Category.OTHER),
        ],
    )
    def test_category(self, raw, expected):
        assert normalize_parsed({"category": raw}).category == expected

    @pytest.mark.parametrize("raw", ["whenever", None, 3, "URGENT"])
    def test_unknown_urgency_is_medium(self, raw):
        assert normalize_parsed({"urgency": raw}).urgency == Urgency.MEDIUM

    def test_urgency_is_case_insensitive(self):
        assert normalize_parsed({"urgency": "Critical"}).urgency == Urgency.CRITICAL

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("$1,200.50", Decimal("1200.50")),
            ("1200", Decimal("1200")),
            (12.5, Decimal("12.5")),
            ("about a thousand", Decimal("0")),
            (-50, Decimal("0")),
            (True, Decimal("0")),
            (None, Decimal("0")),
            (float("nan"), Decimal("0")),
        ],
    )
    def test_amount(self, raw, expected):
        assert normalize_parsed({"amount": raw}).amount == expected

    def test_non_list_notes_and_flags(self):
        parsed = normalize_parsed({"policy_notes": "just one note", "flags": "prohibited"})
        assert parsed.policy_notes == []
        assert parsed.flags == []

    def test_unknown_flags_dropped(self):
        parsed = normalize_parsed({"flags": ["prohibited", "mystery", "PROHIBITED", "requires_review"]})
        assert parsed.flags == [PolicyFlag.PROHIBITED, PolicyFlag.REQUIRES_REVIEW]

    def test_non_string_summary(self):
        assert normalize_parsed({"summary": {"text": "x"}}).summary == ""

    @pytest.mark.parametrize("payload", [None, [], "text", 3])
    def test_non_object_payload(self, payload):
        with pytest.raises(ExternalServiceError):
            normalize_parsed(payload)


class TestFindAmount:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("I need $4,500 for tuition", Decimal("4500")),
            ("about 2.5k for the move", Decimal("2500")),
            ("deposit $200 and rent $2,800", Decimal("2800")),
            ("due on the 5th of 2026, total $300", Decimal("300")),
            ("no figures here", None),
        ],
    )
    def test_amounts(self, text, expected):
        assert find_amount(text) == expected


# =============================================================================
# Keyword extractor
# =============================================================================


def extract(text, beneficiary="Sam Miller"):
    raw = asyncio.run(KeywordRequestExtractor().extract(text, beneficiary, ("Sam Miller", "Katie Miller")))
    return normalize_parsed(raw)


class TestKeywordExtractor:
    def test_satisfies_protocol(self):
        assert isinstance(KeywordRequestExtractor(), RequestExtractor)

    def test_tuition(self):
        parsed = extract("Hi, I need $4,500 to cover my spring semester tuition.")
        assert parsed.category == Category.EDUCATION
        assert parsed.amount == Decimal("4500")
        assert parsed.flags == []

    def test_emergency_surgery(self):
        parsed = extract("I need emergency surgery, the hospital wants $12,350. Please help ASAP.", "Katie Miller")
        assert parsed.category == Category.MEDICAL
        assert parsed.urgency == Urgency.CRITICAL

    def test_crypto_investment(self):
        parsed = extract("I need $50,000 to invest in a crypto startup")
        assert parsed.category == Category.INVESTMENT
        assert PolicyFlag.PROHIBITED in parsed.flags
        assert PolicyFlag.REQUIRES_REVIEW in parsed.flags

    def test_care_is_not_a_car(self):
        parsed = extract("I need $300 for child care")
        assert parsed.category != Category.VEHICLE

    def test_unknown_beneficiary(self):
        parsed = extract("I need $1,500 for living expenses", "Jordan Blake")
        assert parsed.category == Category.GENERAL_SUPPORT
        assert PolicyFlag.UNKNOWN_BENEFICIARY in parsed.flags

    def test_missing_amount(self):
        parsed = extract("Could you help with rent?")
        assert parsed.amount == Decimal("0")
        assert parsed.policy_notes == ["No amount found in the request text."]


# =============================================================================
# OpenAI extractor (fake client)
# =============================================================================


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(**kwargs):
    completions = FakeCompletions(**kwargs)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


class TestOpenAIExtractor:
    def test_requests_json_mode_with_policy_prompt(self):
        client, completions = fake_client(content=json.dumps({"amount": 4500, "category": "Education"}))
        extractor = OpenAIRequestExtractor(model="gpt-4o-mini", client=client)

        payload = asyncio.run(extractor.extract("tuition $4,500", "Sam Miller", ("Sam Miller",)))

        assert payload == {"amount": 4500, "category": "Education"}
        call = completions.calls[0]
        assert call["model"] == "gpt-4o-mini"
        assert call["response_format"] == {"type": "json_object"}
        assert call["messages"][0]["content"] == SYSTEM_PROMPT
        assert "Beneficiary: Sam Miller" in call["messages"][1]["content"]
        assert extractor.actor == "AI (gpt-4o-mini)"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"error": OpenAIError("connection reset")},
            {"content": None},
            {"content": "not json"},
            {"content": "[1, 2]"},
        ],
    )
    def test_failures_become_external_service_errors(self, kwargs):
        client, _ = fake_client(**kwargs)
        extractor = OpenAIRequestExtractor(client=client)
        with pytest.raises(ExternalServiceError) as exc_info:
            asyncio.run(extractor.extract("text", "Sam Miller", ()))
        assert exc_info.value.code == "EXTERNAL_SERVICE_ERROR"
