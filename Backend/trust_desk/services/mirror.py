"""
Client-side mirror of the desk state with optimistic approve/deny.

The mirror changes its own copy first so a dashboard can render the outcome
immediately, then asks the desk to commit. Success reconciles the mirror
with what the desk returned; any failure restores the snapshot taken before
the attempt and re-raises. The desk itself never applies anything
tentatively.

The HTTP routes do not use it. It is for dashboards and scripts that hold a
``TrustDesk`` in-process and want the optimistic behaviour of the web client.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterator, List, Optional

from trust_desk.core.exceptions import TrustDeskError
from trust_desk.core.logging_config import get_logger
from trust_desk.domain.models import LedgerEntry, PolicyFlag, RequestStatus, TrustRequest
from trust_desk.domain.money import ZERO
from trust_desk.services.approval_handler import BatchResult
from trust_desk.services.desk import TrustDesk
from trust_desk.services.policy_engine import effective_flags

logger = get_logger("mirror")


@dataclass
class MirrorState:
    requests: Dict[str, TrustRequest] = field(default_factory=dict)
    ledger: List[LedgerEntry] = field(default_factory=list)
    balance: Decimal = ZERO
    total_credits: Decimal = ZERO
    total_debits: Decimal = ZERO

    def copy(self) -> "MirrorState":
        return MirrorState(
            requests=dict(self.requests),
            ledger=list(self.ledger),
            balance=self.balance,
            total_credits=self.total_credits,
            total_debits=self.total_debits,
        )


class DashboardMirror:
    def __init__(self, desk: TrustDesk):
        self._desk = desk
        self.state = MirrorState()
        self._processing: set[str] = set()

    def refresh(self) -> None:
        ledger = self._desk.ledger_summary()
        requests = self._desk.requests_summary()
        self.state = MirrorState(
            requests={r.id: r for r in requests.requests},
            ledger=list(ledger.entries),
            balance=ledger.balance,
            total_credits=ledger.total_credits,
            total_debits=ledger.total_debits,
        )

    def request(self, request_id: str) -> Optional[TrustRequest]:
        return self.state.requests.get(request_id)

    def is_processing(self, request_id: str) -> bool:
        return request_id in self._processing

    # Derived from the mirrored requests, never stored

    @property
    def pending_count(self) -> int:
        return sum(1 for r in self.state.requests.values() if r.status == RequestStatus.PENDING)

    @property
    def pending_exposure(self) -> Decimal:
        return sum(
            (
                r.effective_amount
                for r in self.state.requests.values()
                if r.status == RequestStatus.PENDING and PolicyFlag.PROHIBITED not in effective_flags(r)
            ),
            ZERO,
        )

    @contextmanager
    def tentative(self) -> Iterator[MirrorState]:
        snapshot = self.state.copy()
        try:
            yield self.state
        except BaseException:
            self.state = snapshot
            raise

    def _set_status(self, request_id: str, status: RequestStatus) -> None:
        current = self.state.requests[request_id]
        self.state.requests[request_id] = current.model_copy(update={"status": status})

    def approve(
        self, request_id: str, notes: str = "", approved_amount: Optional[Decimal] = None
    ) -> bool:
        """Returns False when an action on this request is already in flight."""
        if request_id in self._processing:
            return False
        self._processing.add(request_id)
        try:
            with self.tentative() as state:
                before = state.balance
                current = state.requests.get(request_id)
                amount = approved_amount if approved_amount is not None else (
                    current.effective_amount if current else ZERO
                )
                if current is not None:
                    self._set_status(request_id, RequestStatus.APPROVED)
                state.balance -= amount
                state.total_debits += amount

                result = self._desk.approve(request_id, notes, approved_amount)

                state.requests[request_id] = result.request
                state.ledger.append(result.ledger_entry)
                state.balance = before - result.ledger_entry.amount
                state.total_debits += result.ledger_entry.amount - amount
        except TrustDeskError as exc:
            logger.info("optimistic_reverted", extra={"request_id": request_id, "reason": exc.code})
            raise
        finally:
            self._processing.discard(request_id)
        return True

    def deny(self, request_id: str, notes: str = "") -> bool:
        if request_id in self._processing:
            return False
        self._processing.add(request_id)
        try:
            with self.tentative() as state:
                if request_id in state.requests:
                    self._set_status(request_id, RequestStatus.DENIED)
                state.requests[request_id] = self._desk.deny(request_id, notes)
        except TrustDeskError as exc:
            logger.info("optimistic_reverted", extra={"request_id": request_id, "reason": exc.code})
            raise
        finally:
            self._processing.discard(request_id)
        return True

    def _run_batch(self, action, request_ids: List[str], notes: str) -> BatchResult:
        result = BatchResult()
        for request_id in request_ids:
            try:
                done = action(request_id, notes)
            except TrustDeskError as exc:
                result.failed += 1
                result.errors[request_id] = exc.message
                continue
            if done:
                result.succeeded += 1
            else:
                result.failed += 1
                result.errors[request_id] = f"Request {request_id} is already being processed"
        return result

    def batch_approve(self, request_ids: List[str]) -> BatchResult:
        # One at a time so each approval sees the previous one's debit
        return self._run_batch(self.approve, request_ids, "Batch approved")

    def batch_deny(self, request_ids: List[str]) -> BatchResult:
        return self._run_batch(self.deny, request_ids, "Batch denied")
