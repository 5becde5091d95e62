"""
trust_desk.services.approval_handler -- Request lifecycle transitions.

Responsibility:
    Moves requests from ``pending`` to ``approved`` or ``denied`` and applies
    officer overrides while a request is still pending. Approval is the only
    path that writes a distribution to the ledger.

Invariants enforced:
    - Terminal statuses are final; every action re-checks ``pending``.
    - Approved General Support per beneficiary per calendar month never
      exceeds the cap. Spend is recomputed from the ledger inside the lock,
      immediately before the DEBIT is written.
    - An approved request has exactly one DEBIT entry whose amount equals
      ``resolution.approved_amount``; a denied request has none.

Concurrency:
    One re-entrant lock (shared with the desk facade) wraps every mutating
    path. Batch approval runs sequentially so each approval sees the ledger
    effect of the one before it; batch denial fans out on a thread pool.

Failure modes:
    NotFoundError, InvalidStateError, ValidationError, PolicyBlockedError,
    InsufficientFundsError, PolicyCapExceededError. On any of them nothing
    has been written.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from trust_desk.core.clock import Clock, SystemClock, month_key
from trust_desk.core.exceptions import (
    InsufficientFundsError,
    InvalidStateError,
    PolicyBlockedError,
    PolicyCapExceededError,
    TrustDeskError,
    ValidationError,
)
from trust_desk.core.logging_config import LogContext, get_logger
from trust_desk.domain.models import (
    ActivityAction,
    ActivityEvent,
    Category,
    EntryType,
    LedgerEntry,
    OfficerOverride,
    RequestResolution,
    RequestStatus,
    Severity,
    TrustRequest,
)
from trust_desk.domain.money import format_currency, to_decimal
from trust_desk.services.ledger_store import LedgerStore, new_entry_id
from trust_desk.services.policy_engine import reevaluate
from trust_desk.services.request_store import RequestStore
from trust_desk.services.trust_policy import (
    GENERAL_SUPPORT_MONTHLY_CAP,
    KNOWN_BENEFICIARIES,
)

logger = get_logger("approval_handler")


@dataclass(frozen=True)
class ApprovalResult:
    request: TrustRequest
    ledger_entry: LedgerEntry


@dataclass
class BatchResult:
    succeeded: int = 0
    failed: int = 0
    errors: Dict[str, str] = field(default_factory=dict)


class ApprovalTransactionHandler:
    """Approve, deny and override beneficiary requests against the ledger."""

    def __init__(
        self,
        ledger: LedgerStore,
        requests: RequestStore,
        officer: str,
        clock: Clock | None = None,
        lock: Optional[threading.RLock] = None,
        known_beneficiaries: Sequence[str] = KNOWN_BENEFICIARIES,
    ) -> None:
        self._ledger = ledger
        self._requests = requests
        self._officer = officer
        self._clock = clock or SystemClock()
        self._lock = lock or threading.RLock()
        self._known_beneficiaries = tuple(known_beneficiaries)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def _event(self, action: ActivityAction, detail: Optional[str] = None) -> ActivityEvent:
        return ActivityEvent(
            timestamp=self._clock.now(),
            action=action,
            actor=self._officer,
            detail=detail,
        )

    def _require_pending(self, request: TrustRequest) -> None:
        if not request.is_pending:
            raise InvalidStateError(request.id, request.status.value)

    def monthly_general_support_spend(self, beneficiary: str, month: Optional[str] = None) -> Decimal:
        """Current (or given) month's approved General Support for a beneficiary."""
        month = month or month_key(self._clock.now())
        return self._ledger.monthly_spend(beneficiary, month, self._requests.find)

    # ------------------------------------------------------------------
    # Override
    # ------------------------------------------------------------------

    def apply_override(
        self, request_id: str, override: Union[OfficerOverride, Mapping[str, Any]]
    ) -> TrustRequest:
        """
        Merge a partial override into a pending request.

        Only fields that differ from the current effective values count as
        changes. No change means no event and no write.
        """
        if not isinstance(override, OfficerOverride):
            try:
                override = OfficerOverride.model_validate(dict(override))
            except PydanticValidationError as exc:
                locs = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
                raise ValidationError(f"Invalid officer override ({locs})") from exc

        if override.amount is not None and override.amount <= 0:
            raise ValidationError(
                f"Override amount must be positive, got {format_currency(override.amount)}"
            )

        with self._lock, LogContext.bind(request_id=request_id, actor=self._officer):
            request = self._requests.get(request_id)
            self._require_pending(request)

            current = request.officer_override or OfficerOverride()
            changed: Dict[str, Any] = {}
            deltas: List[str] = []

            if override.amount is not None and override.amount != request.effective_amount:
                changed["amount"] = override.amount
                deltas.append(f"amount → {format_currency(override.amount)}")
            if override.category is not None and override.category != request.effective_category:
                changed["category"] = override.category
                deltas.append(f"category → {override.category.value}")
            if override.urgency is not None and override.urgency != request.effective_urgency:
                changed["urgency"] = override.urgency
                deltas.append(f"urgency → {override.urgency.value}")
            if override.notes is not None and override.notes != current.notes:
                changed["notes"] = override.notes
                deltas.append("notes updated")

            if not changed:
                return request

            merged = current.model_copy(update=changed)
            log = request.activity_log + [
                self._event(ActivityAction.OVERRIDE_UPDATED, ", ".join(deltas))
            ]
            updated = self._requests.update(request_id, officer_override=merged, activity_log=log)
            logger.info("override_applied", extra={"changes": sorted(changed)})
            return updated

    # ------------------------------------------------------------------
    # Approve
    # ------------------------------------------------------------------

    def approve(
        self,
        request_id: str,
        notes: str = "",
        explicit_amount: Optional[Decimal] = None,
    ) -> ApprovalResult:
        with self._lock, LogContext.bind(request_id=request_id, actor=self._officer):
            try:
                return self._approve(request_id, notes, explicit_amount)
            except TrustDeskError as exc:
                logger.warning("approval_rejected", extra={"reason": exc.code, "detail": exc.message})
                raise

    def _approve(
        self, request_id: str, notes: str, explicit_amount: Optional[Decimal]
    ) -> ApprovalResult:
        request = self._requests.get(request_id)
        self._require_pending(request)

        month = month_key(self._clock.now())
        spend = self._ledger.monthly_spend(request.beneficiary, month, self._requests.find)

        # Commit-time policy re-check on the effective view
        policy = reevaluate(request, spend, self._known_beneficiaries)
        if policy.severity == Severity.BLOCKED:
            blocking = [n for n in policy.notes if n.startswith("Prohibited")]
            raise PolicyBlockedError(request.id, [f.value for f in policy.flags], blocking)

        amount = explicit_amount if explicit_amount is not None else request.effective_amount
        amount = to_decimal(amount)
        if amount <= 0:
            raise ValidationError(
                f"Cannot approve with zero or negative amount ({format_currency(amount)})"
            )

        available = self._ledger.balance()
        if amount > available:
            raise InsufficientFundsError(available=available, requested=amount)

        category = request.effective_category or Category.OTHER
        if category == Category.GENERAL_SUPPORT and spend + amount > GENERAL_SUPPORT_MONTHLY_CAP:
            raise PolicyCapExceededError(
                beneficiary=request.beneficiary,
                cap=GENERAL_SUPPORT_MONTHLY_CAP,
                spent=spend,
                requested=amount,
            )

        now = self._clock.now()
        entry = self._ledger.append(
            LedgerEntry(
                id=new_entry_id(),
                date=now,
                description=f"Beneficiary Distribution: {request.beneficiary} ({category.value})",
                amount=amount,
                type=EntryType.DEBIT,
                related_request_id=request.id,
                created_by=self._officer,
            )
        )

        resolution = RequestResolution(
            action=RequestStatus.APPROVED,
            decided_by=self._officer,
            decided_at=now,
            notes=notes or "",
            approved_amount=amount,
            ledger_entry_id=entry.id,
            category=category,
        )
        log = request.activity_log + [
            self._event(
                ActivityAction.APPROVED,
                f"Approved {format_currency(amount)} for {category.value}",
            )
        ]
        # The request is pending and we hold the lock, so this cannot fail
        # after the DEBIT has been written.
        updated = self._requests.update(
            request.id,
            status=RequestStatus.APPROVED,
            resolution=resolution,
            activity_log=log,
        )
        logger.info(
            "approval_committed",
            extra={
                "amount": amount,
                "category": category,
                "ledger_entry_id": entry.id,
                "balance_after": self._ledger.balance(),
            },
        )
        return ApprovalResult(request=updated, ledger_entry=entry)

    # ------------------------------------------------------------------
    # Deny
    # ------------------------------------------------------------------

    def deny(self, request_id: str, notes: str = "") -> TrustRequest:
        with self._lock, LogContext.bind(request_id=request_id, actor=self._officer):
            request = self._requests.get(request_id)
            self._require_pending(request)

            resolution = RequestResolution(
                action=RequestStatus.DENIED,
                decided_by=self._officer,
                decided_at=self._clock.now(),
                notes=notes or "",
            )
            log = request.activity_log + [self._event(ActivityAction.DENIED, notes or None)]
            updated = self._requests.update(
                request.id,
                status=RequestStatus.DENIED,
                resolution=resolution,
                activity_log=log,
            )
            logger.info("request_denied")
            return updated

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def batch_approve(self, request_ids: Iterable[str], notes: str = "Batch approved") -> BatchResult:
        result = BatchResult()
        for request_id in request_ids:
            try:
                self.approve(request_id, notes)
                result.succeeded += 1
            except TrustDeskError as exc:
                result.failed += 1
                result.errors[request_id] = exc.message
        logger.info("batch_approve_finished", extra={"succeeded": result.succeeded, "failed": result.failed})
        return result

    def batch_deny(
        self, request_ids: Iterable[str], notes: str = "Batch denied", max_workers: int = 4
    ) -> BatchResult:
        ids = list(request_ids)
        result = BatchResult()
        if not ids:
            return result
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {rid: pool.submit(self.deny, rid, notes) for rid in ids}
        for rid, future in futures.items():
            exc = future.exception()
            if exc is None:
                result.succeeded += 1
            elif isinstance(exc, TrustDeskError):
                result.failed += 1
                result.errors[rid] = exc.message
            else:
                raise exc
        logger.info("batch_deny_finished", extra={"succeeded": result.succeeded, "failed": result.failed})
        return result
