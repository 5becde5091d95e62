from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from trust_desk.domain.models import (
    Category,
    ParsedRequest,
    PolicyFlag,
    PolicyResult,
    Severity,
    TrustRequest,
)
from trust_desk.domain.money import format_currency
from trust_desk.services.trust_policy import (
    FLAG_SEVERITY,
    GENERAL_SUPPORT_MONTHLY_CAP,
    KNOWN_BENEFICIARIES,
    LARGE_PURCHASE_REVIEW_THRESHOLD,
    PROHIBITED_CATEGORIES,
)


def dedupe(xs: Iterable) -> list:
    """Drop empty and repeated items, keeping first-seen order."""
    out = []
    seen = set()
    for x in xs:
        if x and x not in seen:
            out.append(x)
            seen.add(x)
    return out


def derive_severity(flags: Iterable[PolicyFlag]) -> Severity:
    """
    Severity is a function of the flag set alone. Every caller that needs a
    severity (engine output, merged AI output, API views) goes through here.
    """
    severities = {FLAG_SEVERITY.get(PolicyFlag(f), Severity.WARNING) for f in flags}
    if Severity.BLOCKED in severities:
        return Severity.BLOCKED
    if severities:
        return Severity.WARNING
    return Severity.OK


def evaluate(
    parsed: ParsedRequest,
    beneficiary: str,
    cumulative_monthly_spend: Decimal = Decimal("0"),
    *,
    known_beneficiaries: Sequence[str] = KNOWN_BENEFICIARIES,
) -> PolicyResult:
    flags: List[PolicyFlag] = []
    notes: List[str] = []

    # 1) Prohibited categories
    if parsed.category in PROHIBITED_CATEGORIES:
        flags.append(PolicyFlag.PROHIBITED)
        notes.append(
            f"Prohibited: {PROHIBITED_CATEGORIES[parsed.category]} are not allowed under trust policy."
        )

    # 2) Large purchase review
    if parsed.amount > LARGE_PURCHASE_REVIEW_THRESHOLD:
        flags.append(PolicyFlag.REQUIRES_REVIEW)
        notes.append(
            f"Amount exceeds {format_currency(LARGE_PURCHASE_REVIEW_THRESHOLD)}: requires high-priority review."
        )

    # 3) General Support monthly cap (cumulative)
    if parsed.category == Category.GENERAL_SUPPORT:
        cap = GENERAL_SUPPORT_MONTHLY_CAP
        if cumulative_monthly_spend + parsed.amount > cap:
            remaining = max(Decimal("0"), cap - cumulative_monthly_spend)
            flags.append(PolicyFlag.EXCEEDS_MONTHLY_CAP)
            notes.append(
                f"General Support is capped at {format_currency(cap)}/month per beneficiary. "
                f"Already spent this month: {format_currency(cumulative_monthly_spend)}. "
                f"Remaining: {format_currency(remaining)}. "
                f"Requested: {format_currency(parsed.amount)}."
            )

    # 4) Unknown beneficiary
    if beneficiary not in known_beneficiaries:
        flags.append(PolicyFlag.UNKNOWN_BENEFICIARY)
        notes.append(f'Beneficiary "{beneficiary}" is not a known trust beneficiary.')

    return PolicyResult(flags=flags, notes=notes, severity=derive_severity(flags))


def merge_policy_output(
    ai_flags: Iterable[PolicyFlag],
    ai_notes: Iterable[str],
    result: PolicyResult,
) -> PolicyResult:
    """
    Union of AI-proposed and engine-computed flags/notes. Severity is derived
    again from the union, never copied from either side.
    """
    flags = dedupe([PolicyFlag(f) for f in ai_flags] + list(result.flags))
    notes = dedupe(list(ai_notes) + list(result.notes))
    return PolicyResult(flags=flags, notes=notes, severity=derive_severity(flags))


def effective_view(request: TrustRequest) -> Optional[ParsedRequest]:
    """The parsed request with the officer's override applied on top."""
    if request.parsed is None:
        return None
    return request.parsed.model_copy(
        update={
            "amount": request.effective_amount,
            "category": request.effective_category,
            "urgency": request.effective_urgency,
        }
    )


def effective_flags(request: TrustRequest) -> set:
    """
    Stored flags, with the ledger-independent rules re-derived for any field
    the officer overrode. An overridden category replaces every prohibited
    flag, including AI-proposed ones.
    """
    flags = set(request.parsed.flags) if request.parsed else set()
    override = request.officer_override
    if override is None:
        return flags

    if override.category is not None:
        flags.discard(PolicyFlag.PROHIBITED)
        if override.category in PROHIBITED_CATEGORIES:
            flags.add(PolicyFlag.PROHIBITED)

    if override.amount is not None:
        flags.discard(PolicyFlag.REQUIRES_REVIEW)
        if override.amount > LARGE_PURCHASE_REVIEW_THRESHOLD:
            flags.add(PolicyFlag.REQUIRES_REVIEW)

    return flags


def reevaluate(
    request: TrustRequest,
    cumulative_monthly_spend: Decimal,
    known_beneficiaries: Sequence[str] = KNOWN_BENEFICIARIES,
) -> PolicyResult:
    """Commit-time policy check on the effective view of a request."""
    view = effective_view(request)
    if view is None:
        view = ParsedRequest(
            amount=request.effective_amount,
            category=request.effective_category or Category.OTHER,
        )
    category_overridden = bool(request.officer_override and request.officer_override.category)
    fresh = evaluate(
        view,
        request.beneficiary,
        cumulative_monthly_spend,
        known_beneficiaries=known_beneficiaries,
    )
    stored_notes = request.parsed.policy_notes if request.parsed else []
    if category_overridden:
        stored_notes = [n for n in stored_notes if not n.startswith("Prohibited")]
    return merge_policy_output(effective_flags(request), stored_notes, fresh)
