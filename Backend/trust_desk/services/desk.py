"""
The trust desk: one object that owns the stores and everything that mutates them.

Built once at process start (the FastAPI lifespan) and handed to every route.
Each mutating call runs under the desk lock and writes both collections back
through the repository before returning. A no-op override writes nothing.
"""

import threading
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from trust_desk.core.clock import Clock, SystemClock, month_key
from trust_desk.core.config import Settings, get_settings
from trust_desk.core.exceptions import ValidationError
from trust_desk.core.logging_config import get_logger
from trust_desk.db.database import Database
from trust_desk.db.repository import TrustDataRepository
from trust_desk.domain.models import (
    LedgerEntry,
    OfficerOverride,
    ParsedRequest,
    PolicyResult,
    TrustRequest,
)
from trust_desk.services import aggregation
from trust_desk.services.approval_handler import (
    ApprovalResult,
    ApprovalTransactionHandler,
    BatchResult,
)
from trust_desk.services.extractors import (
    KeywordRequestExtractor,
    OpenAIRequestExtractor,
    RequestExtractor,
)
from trust_desk.services.intake import IntakeService
from trust_desk.services.ledger_store import LedgerStore
from trust_desk.services.policy_engine import evaluate
from trust_desk.services.request_store import RequestStore
from trust_desk.services.seed import seed_ledger, seed_requests

logger = get_logger("desk")

ACTIONS = ("approve", "deny")


def build_extractor(settings: Settings) -> RequestExtractor:
    if settings.use_openai:
        return OpenAIRequestExtractor(api_key=settings.openai_api_key, model=settings.openai_model)
    logger.info("extractor_fallback", extra={"extractor": KeywordRequestExtractor.name})
    return KeywordRequestExtractor()


class TrustDesk:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        clock: Clock | None = None,
        repository: Optional[TrustDataRepository] = None,
        extractor: Optional[RequestExtractor] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.lock = threading.RLock()
        known = self.settings.known_beneficiaries

        self.ledger = LedgerStore(self.clock)
        self.requests = RequestStore()
        self.handler = ApprovalTransactionHandler(
            self.ledger,
            self.requests,
            self.settings.officer_name,
            clock=self.clock,
            lock=self.lock,
            known_beneficiaries=known,
        )
        self.intake = IntakeService(
            self.requests,
            self.handler,
            extractor or build_extractor(self.settings),
            clock=self.clock,
            known_beneficiaries=known,
        )
        self.repository = repository or TrustDataRepository(Database(self.settings.database_url))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load both collections from the repository, seeding an empty store."""
        with self.lock:
            if self.repository.is_empty():
                self.reset()
                return
            self.ledger.load(self.repository.load_ledger())
            self.requests.load(self.repository.load_requests())
        logger.info(
            "data_loaded",
            extra={"entries": len(self.ledger), "requests": len(self.requests)},
        )

    def reset(self) -> None:
        with self.lock:
            self.ledger.load(seed_ledger())
            self.requests.load(seed_requests())
            self._persist()
        logger.info("data_reset", extra={"entries": len(self.ledger), "requests": len(self.requests)})

    def _persist(self) -> None:
        with self.lock:
            self.repository.save(self.ledger.entries(), self.requests.all())

    def _persist_committed(self) -> None:
        """
        Save after a change the stores have already committed.

        The in-memory stores stay authoritative when the save fails; every
        save rewrites both collections, so the next one that succeeds brings
        the database back in line.
        """
        try:
            self._persist()
        except SQLAlchemyError:
            logger.exception("persist_failed", extra={"entries": len(self.ledger), "requests": len(self.requests)})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def ledger_summary(self) -> aggregation.LedgerSummary:
        with self.lock:
            return aggregation.ledger_summary(self.ledger)

    def requests_summary(self) -> aggregation.RequestsSummary:
        with self.lock:
            return aggregation.requests_summary(self.requests)

    def get_request(self, request_id: str) -> TrustRequest:
        with self.lock:
            return self.requests.get(request_id)

    def balance_series(self) -> List[aggregation.BalancePointView]:
        with self.lock:
            return aggregation.balance_series(self.ledger)

    def category_breakdown(self) -> List[aggregation.CategoryTotal]:
        with self.lock:
            return aggregation.category_breakdown(self.requests)

    def monthly_trend(self) -> List[aggregation.MonthlyTotal]:
        with self.lock:
            return aggregation.monthly_trend(self.ledger)

    def beneficiary_profile(self, beneficiary: str) -> aggregation.BeneficiaryProfile:
        with self.lock:
            return aggregation.beneficiary_profile(
                beneficiary, self.ledger, self.requests, month_key(self.clock.now())
            )

    def policy_check(self, parsed: ParsedRequest, beneficiary: str) -> PolicyResult:
        """Evaluate a parsed request against this month's spend without storing anything."""
        with self.lock:
            spend = self.handler.monthly_general_support_spend(beneficiary)
        return evaluate(
            parsed,
            beneficiary,
            spend,
            known_beneficiaries=self.settings.known_beneficiaries,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append_ledger_entry(self, description: str, amount: Any, type: str) -> LedgerEntry:
        with self.lock:
            entry = self.ledger.append(
                {
                    "description": description,
                    "amount": amount,
                    "type": type,
                    "created_by": self.settings.officer_name,
                }
            )
            self._persist_committed()
        logger.info("manual_ledger_entry", extra={"entry_id": entry.id, "amount": entry.amount})
        return entry

    def submit_request(self, beneficiary: str, raw_text: str) -> TrustRequest:
        with self.lock:
            request = self.intake.submit(beneficiary, raw_text)
            self._persist_committed()
        return request

    def apply_override(self, request_id: str, override: OfficerOverride | Mapping[str, Any]) -> TrustRequest:
        with self.lock:
            before = self.requests.find(request_id)
            updated = self.handler.apply_override(request_id, override)
            if before is None or updated.activity_log != before.activity_log:
                self._persist_committed()
        return updated

    def approve(
        self, request_id: str, notes: str = "", approved_amount: Optional[Decimal] = None
    ) -> ApprovalResult:
        with self.lock:
            result = self.handler.approve(request_id, notes, approved_amount)
            self._persist_committed()
        return result

    def deny(self, request_id: str, notes: str = "") -> TrustRequest:
        with self.lock:
            updated = self.handler.deny(request_id, notes)
            self._persist_committed()
        return updated

    def update_request(
        self,
        request_id: str,
        *,
        officer_override: OfficerOverride | Mapping[str, Any] | None = None,
        action: Optional[str] = None,
        notes: Optional[str] = None,
        approved_amount: Optional[Decimal] = None,
    ) -> TrustRequest | ApprovalResult:
        """
        Apply an optional override, then an optional approve/deny.

        With no action the (possibly overridden) request is returned. The
        override is kept even when the action that follows it fails.
        """
        if action is not None and action not in ACTIONS:
            raise ValidationError("Invalid action")

        with self.lock:
            request = self.requests.get(request_id)
            if officer_override is not None:
                request = self.apply_override(request_id, officer_override)
            if action == "approve":
                return self.approve(request_id, notes or "", approved_amount)
            if action == "deny":
                return self.deny(request_id, notes or "")
            return request

    def batch(self, action: str, request_ids: Iterable[str]) -> BatchResult:
        if action not in ACTIONS:
            raise ValidationError("Invalid action")
        ids = list(request_ids)
        if action == "approve":
            result = self.handler.batch_approve(ids)
        else:
            result = self.handler.batch_deny(ids)
        self._persist_committed()
        return result

    async def parse(
        self, raw_text: str, beneficiary: Optional[str] = None, request_id: Optional[str] = None
    ) -> ParsedRequest:
        parsed = await self.intake.parse(raw_text, beneficiary, request_id)
        if request_id:
            self._persist_committed()
        return parsed

    async def parse_all_pending(self) -> BatchResult:
        result = await self.intake.parse_all_pending()
        if result.succeeded:
            self._persist_committed()
        return result
