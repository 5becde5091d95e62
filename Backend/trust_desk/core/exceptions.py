"""
Typed exceptions for the trust desk.

Every error carries a machine-readable ``code`` and the figures that explain
it (amounts, caps, balances) as attributes, so the API layer can render them
without parsing messages.

    TrustDeskError (base)
    |
    +-- ValidationError            VALIDATION_ERROR
    +-- NotFoundError              NOT_FOUND
    +-- InvalidStateError          INVALID_STATE
    +-- InsufficientFundsError     INSUFFICIENT_FUNDS
    +-- PolicyError
    |   +-- PolicyCapExceededError MONTHLY_CAP_EXCEEDED
    |   +-- PolicyBlockedError     POLICY_BLOCKED
    +-- ExternalServiceError       EXTERNAL_SERVICE_ERROR
"""

from decimal import Decimal
from typing import Any, Iterable

from trust_desk.domain.money import format_currency


class TrustDeskError(Exception):
    """Base class for all trust desk errors."""

    code: str = "TRUST_DESK_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "code": self.code}
        for key, val in vars(self).items():
            if key.startswith("_") or key in ("message", "args"):
                continue
            payload[key] = val
        return payload


class ValidationError(TrustDeskError):
    """Malformed input: bad amount, bad entry type, missing fields."""

    code = "VALIDATION_ERROR"


class NotFoundError(TrustDeskError):
    """Unknown request or ledger entry id."""

    code = "NOT_FOUND"

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class InvalidStateError(TrustDeskError):
    """Action attempted on a request that is no longer pending."""

    code = "INVALID_STATE"

    def __init__(self, request_id: str, status: str, message: str | None = None):
        self.request_id = request_id
        self.status = status
        super().__init__(message or f"Request {request_id} already processed (status: {status})")


class InsufficientFundsError(TrustDeskError):
    """Approval amount exceeds the trust balance."""

    code = "INSUFFICIENT_FUNDS"

    def __init__(self, available: Decimal, requested: Decimal):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient balance. Available: {format_currency(available)}, "
            f"Requested: {format_currency(requested)}"
        )


class PolicyError(TrustDeskError):
    """Base class for trust policy violations raised at commit time."""

    code = "POLICY_ERROR"


class PolicyCapExceededError(PolicyError):
    """General Support approval would push the month over the cap."""

    code = "MONTHLY_CAP_EXCEEDED"

    def __init__(self, beneficiary: str, cap: Decimal, spent: Decimal, requested: Decimal):
        self.beneficiary = beneficiary
        self.cap = cap
        self.spent = spent
        self.remaining = max(Decimal("0"), cap - spent)
        self.requested = requested
        super().__init__(
            f"General Support for {beneficiary} is capped at {format_currency(cap)}/month. "
            f"Already spent this month: {format_currency(spent)}. "
            f"Remaining: {format_currency(self.remaining)}. "
            f"Requested: {format_currency(requested)}."
        )


class PolicyBlockedError(PolicyError):
    """Request carries a blocking policy flag and cannot be approved."""

    code = "POLICY_BLOCKED"

    def __init__(self, request_id: str, flags: Iterable[str], notes: Iterable[str] = ()):
        self.request_id = request_id
        self.flags = sorted(flags)
        notes = list(notes)
        reason = f": {notes[0]}" if notes else ""
        super().__init__(f"Request {request_id} is blocked by trust policy{reason}")


class ExternalServiceError(TrustDeskError):
    """The AI extraction service failed or returned unusable output."""

    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, detail: str):
        self.service = service
        self.detail = detail
        super().__init__(f"{service} failed: {detail}")
