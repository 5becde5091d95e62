"""
Policy engine rules and severity.

The engine is a pure function of (parsed request, beneficiary, this month's
General Support spend); these tests need no stores.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from trust_desk.domain.models import (
    Category,
    OfficerOverride,
    ParsedRequest,
    PolicyFlag,
    PolicyResult,
    Severity,
    TrustRequest,
)
from trust_desk.services import extractors
from trust_desk.services.policy_engine import (
    dedupe,
    derive_severity,
    effective_flags,
    evaluate,
    merge_policy_output,
    reevaluate,
)


def parsed(amount="1000", category=Category.EDUCATION, **kwargs) -> ParsedRequest:
    return ParsedRequest(amount=Decimal(amount), category=category, **kwargs)


def request_with(p: ParsedRequest, override: OfficerOverride | None = None, raw_text="") -> TrustRequest:
    return TrustRequest(
        id="req_x",
        beneficiary="Sam Miller",
        submitted_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        raw_text=raw_text,
        parsed=p,
        officer_override=override,
    )


# =============================================================================
# Individual rules
# =============================================================================


class TestRules:
    def test_covered_request_is_ok(self):
        result = evaluate(parsed("4500", Category.EDUCATION), "Sam Miller")
        assert result.flags == []
        assert result.notes == []
        assert result.severity == Severity.OK

    @pytest.mark.parametrize(
        "category, label",
        [(Category.INVESTMENT, "Speculative investments"), (Category.VEHICLE, "Luxury vehicles")],
    )
    def test_prohibited_category_blocks(self, category, label):
        result = evaluate(parsed("500", category), "Sam Miller")
        assert result.flags == [PolicyFlag.PROHIBITED]
        assert result.severity == Severity.BLOCKED
        assert result.notes == [f"Prohibited: {label} are not allowed under trust policy."]

    def test_large_purchase_threshold_is_strict(self):
        at_threshold = evaluate(parsed("20000", Category.MEDICAL), "Katie Miller")
        over = evaluate(parsed("20000.01", Category.MEDICAL), "Katie Miller")

        assert PolicyFlag.REQUIRES_REVIEW not in at_threshold.flags
        assert over.flags == [PolicyFlag.REQUIRES_REVIEW]
        assert over.severity == Severity.WARNING
        assert over.notes == ["Amount exceeds $20,000.00: requires high-priority review."]

    def test_monthly_cap_uses_cumulative_spend(self):
        result = evaluate(parsed("3000", Category.GENERAL_SUPPORT), "Sam Miller", Decimal("2500"))

        assert result.flags == [PolicyFlag.EXCEEDS_MONTHLY_CAP]
        assert result.severity == Severity.WARNING
        note = result.notes[0]
        assert "Already spent this month: $2,500.00" in note
        assert "Remaining: $2,500.00" in note
        assert "Requested: $3,000.00" in note

    def test_monthly_cap_reached_exactly_is_allowed(self):
        result = evaluate(parsed("3000", Category.GENERAL_SUPPORT), "Sam Miller", Decimal("2000"))
        assert result.flags == []

    def test_remaining_never_negative(self):
        result = evaluate(parsed("100", Category.GENERAL_SUPPORT), "Sam Miller", Decimal("7000"))
        assert "Remaining: $0.00" in result.notes[0]

    def test_cap_only_applies_to_general_support(self):
        result = evaluate(parsed("6000", Category.MEDICAL), "Sam Miller", Decimal("4000"))
        assert PolicyFlag.EXCEEDS_MONTHLY_CAP not in result.flags

    def test_unknown_beneficiary_warns(self):
        result = evaluate(parsed("1500", Category.GENERAL_SUPPORT), "Jordan Blake")
        assert result.flags == [PolicyFlag.UNKNOWN_BENEFICIARY]
        assert result.severity == Severity.WARNING
        assert result.notes == ['Beneficiary "Jordan Blake" is not a known trust beneficiary.']

    def test_known_beneficiaries_are_configurable(self):
        result = evaluate(parsed(), "Jordan Blake", known_beneficiaries=("Jordan Blake",))
        assert result.flags == []

    def test_rules_compose(self):
        result = evaluate(parsed("25000", Category.VEHICLE), "Jordan Blake")
        assert result.flags == [
            PolicyFlag.PROHIBITED,
            PolicyFlag.REQUIRES_REVIEW,
            PolicyFlag.UNKNOWN_BENEFICIARY,
        ]
        assert result.severity == Severity.BLOCKED

    def test_evaluation_is_deterministic(self):
        args = (parsed("5200", Category.GENERAL_SUPPORT), "Jordan Blake", Decimal("100"))
        assert evaluate(*args) == evaluate(*args)


# =============================================================================
# Severity and merging
# =============================================================================


class TestSeverity:
    def test_no_flags_is_ok(self):
        assert derive_severity([]) == Severity.OK

    def test_reserved_over_limit_is_only_a_warning(self):
        assert derive_severity([PolicyFlag.OVER_LIMIT]) == Severity.WARNING

    def test_prohibited_dominates(self):
        flags = [PolicyFlag.UNKNOWN_BENEFICIARY, PolicyFlag.PROHIBITED]
        assert derive_severity(flags) == Severity.BLOCKED

    def test_accepts_flag_strings(self):
        assert derive_severity(["requires_review"]) == Severity.WARNING


class TestMerge:
    def test_dedupe_keeps_first_seen_order(self):
        assert dedupe(["b", "", "a", "b", None, "a"]) == ["b", "a"]

    def test_extractor_shares_the_same_dedupe(self):
        assert extractors.dedupe is dedupe

    def test_union_without_duplicates(self):
        engine = PolicyResult(
            flags=[PolicyFlag.UNKNOWN_BENEFICIARY],
            notes=["engine note"],
            severity=Severity.WARNING,
        )
        merged = merge_policy_output(
            [PolicyFlag.UNKNOWN_BENEFICIARY, PolicyFlag.PROHIBITED],
            ["ai note", "engine note"],
            engine,
        )
        assert merged.flags == [PolicyFlag.UNKNOWN_BENEFICIARY, PolicyFlag.PROHIBITED]
        assert merged.notes == ["ai note", "engine note"]
        assert merged.severity == Severity.BLOCKED

    def test_severity_recomputed_not_copied(self):
        stale = PolicyResult(flags=[], notes=[], severity=Severity.BLOCKED)
        assert merge_policy_output([], [], stale).severity == Severity.OK


# =============================================================================
# Effective view (officer overrides)
# =============================================================================


class TestEffectiveFlags:
    def test_no_override_keeps_stored_flags(self):
        p = parsed("500", Category.INVESTMENT, flags=[PolicyFlag.PROHIBITED])
        assert effective_flags(request_with(p)) == {PolicyFlag.PROHIBITED}

    def test_category_override_clears_prohibited(self):
        p = parsed("500", Category.INVESTMENT, flags=[PolicyFlag.PROHIBITED])
        override = OfficerOverride(category=Category.EDUCATION)
        assert PolicyFlag.PROHIBITED not in effective_flags(request_with(p, override))

    def test_category_override_into_prohibited(self):
        p = parsed("500", Category.EDUCATION)
        override = OfficerOverride(category=Category.VEHICLE)
        assert PolicyFlag.PROHIBITED in effective_flags(request_with(p, override))

    def test_amount_override_rederives_review(self):
        p = parsed("25000", Category.MEDICAL, flags=[PolicyFlag.REQUIRES_REVIEW])
        override = OfficerOverride(amount=Decimal("15000"))
        assert effective_flags(request_with(p, override)) == set()

    def test_unparsed_request_has_no_flags(self):
        req = request_with(None)
        assert effective_flags(req) == set()


class TestReevaluate:
    def test_uses_overridden_amount_for_cap(self):
        p = parsed("4000", Category.GENERAL_SUPPORT)
        req = request_with(p, OfficerOverride(amount=Decimal("1000")))
        result = reevaluate(req, Decimal("3500"))
        assert PolicyFlag.EXCEEDS_MONTHLY_CAP not in result.flags

    def test_ai_prohibited_flag_cleared_once_category_overridden(self):
        p = parsed("800", Category.OTHER, flags=[PolicyFlag.PROHIBITED])
        req = request_with(
            p,
            OfficerOverride(category=Category.EDUCATION),
            raw_text="a luxury study retreat",
        )
        assert reevaluate(req, Decimal("0")).severity == Severity.OK

    def test_ai_prohibited_flag_blocks_without_override(self):
        p = parsed("800", Category.OTHER, flags=[PolicyFlag.PROHIBITED])
        req = request_with(p, raw_text="a luxury study retreat")
        assert reevaluate(req, Decimal("0")).severity == Severity.BLOCKED

    def test_covered_request_mentioning_a_prohibited_word_stays_ok(self):
        p = parsed("3000", Category.EDUCATION)
        req = request_with(p, raw_text="I need $3,000 for my cryptography course tuition")
        assert reevaluate(req, Decimal("0")).severity == Severity.OK
