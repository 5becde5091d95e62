import re
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from trust_desk.core.exceptions import ExternalServiceError
from trust_desk.domain.models import Category, ParsedRequest, PolicyFlag, Urgency
from trust_desk.domain.money import ZERO, to_decimal

AMOUNT_REGEX = r"\$?\s*([0-9]{1,3}(?:,[0-9]{3})+(?:\.[0-9]{1,2})?|[0-9]+(?:\.[0-9]{1,2})?)\s*(k\b)?"

_CATEGORY_ALIASES = {
    "education": Category.EDUCATION,
    "medical": Category.MEDICAL,
    "generalsupport": Category.GENERAL_SUPPORT,
    "general": Category.GENERAL_SUPPORT,
    "investment": Category.INVESTMENT,
    "vehicle": Category.VEHICLE,
    "other": Category.OTHER,
}


def _squash(s: str) -> str:
    return re.sub(r"[\s_\-]+", "", s).lower()


def _normalize_amount(value: Any) -> Decimal:
    """
    Numbers pass through; strings like "$1,200.50" or "1200" are cleaned.
    Anything unusable (or negative) becomes 0.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, (int, float, Decimal)):
        try:
            amount = to_decimal(value)
        except (InvalidOperation, ValueError):
            return ZERO
    elif isinstance(value, str):
        s = re.sub(r"[^0-9.\-]", "", value.strip())
        if not s:
            return ZERO
        try:
            amount = Decimal(s)
        except InvalidOperation:
            return ZERO
    else:
        return ZERO
    if not amount.is_finite() or amount < 0:
        return ZERO
    return amount


def _normalize_category(value: Any) -> Category:
    if isinstance(value, Category):
        return value
    if not isinstance(value, str):
        return Category.OTHER
    try:
        return Category(value)
    except ValueError:
        return _CATEGORY_ALIASES.get(_squash(value), Category.OTHER)


def _normalize_urgency(value: Any) -> Urgency:
    if isinstance(value, Urgency):
        return value
    if isinstance(value, str):
        try:
            return Urgency(value.strip().lower())
        except ValueError:
            pass
    return Urgency.MEDIUM


def _normalize_notes(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(n).strip() for n in value if isinstance(n, str) and n.strip()]


def _normalize_flags(value: Any) -> List[PolicyFlag]:
    if not isinstance(value, list):
        return []
    flags: List[PolicyFlag] = []
    for f in value:
        try:
            flag = PolicyFlag(str(f).strip().lower())
        except ValueError:
            continue
        if flag not in flags:
            flags.append(flag)
    return flags


def normalize_parsed(payload: Any, service: str = "AI extraction") -> ParsedRequest:
    """
    Clamp the extraction collaborator's output into a ``ParsedRequest``.

    Unknown category -> Other, unknown urgency -> medium, non-list notes or
    flags -> [], non-numeric amount -> 0.
    """
    if not isinstance(payload, dict):
        raise ExternalServiceError(service, f"expected a JSON object, got {type(payload).__name__}")

    summary = payload.get("summary")
    return ParsedRequest(
        amount=_normalize_amount(payload.get("amount")),
        category=_normalize_category(payload.get("category")),
        urgency=_normalize_urgency(payload.get("urgency")),
        summary=summary.strip() if isinstance(summary, str) else "",
        policy_notes=_normalize_notes(payload.get("policy_notes")),
        flags=_normalize_flags(payload.get("flags")),
    )


def find_amount(text: str) -> Optional[Decimal]:
    """
    Largest money-like figure in free text ("$4,500", "2.5k", "1200.00").
    Requests usually state the ask once; the largest figure wins when they
    also mention smaller ones (fees, deposits).
    """
    best: Optional[Decimal] = None
    for m in re.finditer(AMOUNT_REGEX, text or "", flags=re.IGNORECASE):
        raw, k = m.group(1), m.group(2)
        try:
            val = Decimal(raw.replace(",", ""))
        except InvalidOperation:
            continue
        if k:
            val *= 1000
        # Skip things that look like years or day numbers without a $ sign
        if "$" not in m.group(0) and not k and (val < 10 or 1900 <= val <= 2100):
            continue
        if best is None or val > best:
            best = val
    return best
