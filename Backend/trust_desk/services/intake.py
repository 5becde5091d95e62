"""
Request intake: submission and AI parsing.

Parsing awaits the extraction collaborator once, outside the desk lock, then
takes the lock only to evaluate policy against the current ledger and to
attach the result. Re-parsing a pending request overwrites ``parsed``;
terminal requests cannot be re-parsed.
"""

import asyncio
import uuid
from typing import Optional, Sequence

from trust_desk.core.clock import Clock, SystemClock
from trust_desk.core.exceptions import InvalidStateError, TrustDeskError, ValidationError
from trust_desk.core.logging_config import LogContext, get_logger
from trust_desk.domain.models import ActivityAction, ActivityEvent, ParsedRequest, TrustRequest
from trust_desk.domain.money import format_currency
from trust_desk.services.approval_handler import ApprovalTransactionHandler, BatchResult
from trust_desk.services.extractors import RequestExtractor
from trust_desk.services.policy_engine import evaluate, merge_policy_output
from trust_desk.services.request_parser import normalize_parsed
from trust_desk.services.request_store import RequestStore
from trust_desk.services.trust_policy import KNOWN_BENEFICIARIES

logger = get_logger("intake")


def new_request_id() -> str:
    return "req_" + uuid.uuid4().hex[:10]


class IntakeService:
    def __init__(
        self,
        requests: RequestStore,
        handler: ApprovalTransactionHandler,
        extractor: RequestExtractor,
        clock: Clock | None = None,
        known_beneficiaries: Sequence[str] = KNOWN_BENEFICIARIES,
    ) -> None:
        self._requests = requests
        self._handler = handler
        self._extractor = extractor
        self._clock = clock or SystemClock()
        self._known = tuple(known_beneficiaries)

    def submit(self, beneficiary: str, raw_text: str) -> TrustRequest:
        beneficiary = (beneficiary or "").strip()
        raw_text = (raw_text or "").strip()
        if not beneficiary:
            raise ValidationError("beneficiary is required")
        if not raw_text:
            raise ValidationError("raw_text is required")

        now = self._clock.now()
        request = TrustRequest(
            id=new_request_id(),
            beneficiary=beneficiary,
            submitted_at=now,
            raw_text=raw_text,
            activity_log=[
                ActivityEvent(timestamp=now, action=ActivityAction.SUBMITTED, actor=beneficiary)
            ],
        )
        with self._handler.lock:
            created = self._requests.add(request)
        logger.info("request_submitted", extra={"request_id": created.id, "beneficiary": beneficiary})
        return created

    def _pending(self, request_id: str) -> TrustRequest:
        request = self._requests.get(request_id)
        if not request.is_pending:
            raise InvalidStateError(
                request_id,
                request.status.value,
                f"Request {request_id} is {request.status.value} and can no longer be re-parsed",
            )
        return request

    async def parse(
        self,
        raw_text: str,
        beneficiary: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> ParsedRequest:
        if not (raw_text or "").strip():
            raise ValidationError("raw_text is required")

        if request_id:
            with self._handler.lock:
                existing = self._pending(request_id)
            beneficiary = existing.beneficiary
        beneficiary = beneficiary or ""

        payload = await self._extractor.extract(raw_text, beneficiary, self._known)
        parsed = normalize_parsed(payload, self._extractor.name)

        with self._handler.lock, LogContext.bind(request_id=request_id):
            spend = self._handler.monthly_general_support_spend(beneficiary)
            result = evaluate(
                parsed,
                beneficiary,
                spend,
                known_beneficiaries=self._known,
            )
            merged = merge_policy_output(parsed.flags, parsed.policy_notes, result)
            final = parsed.model_copy(update={"flags": merged.flags, "policy_notes": merged.notes})

            if request_id:
                # Re-check: the request may have been resolved while we waited
                request = self._pending(request_id)
                log = request.activity_log + [
                    ActivityEvent(
                        timestamp=self._clock.now(),
                        action=ActivityAction.PARSED,
                        actor=self._extractor.actor,
                        detail=f"Parsed as {final.category.value}, {format_currency(final.amount)}",
                    )
                ]
                self._requests.update(request_id, parsed=final, activity_log=log)

        logger.info(
            "request_parsed",
            extra={"category": final.category, "amount": final.amount, "severity": merged.severity},
        )
        return final

    async def parse_all_pending(self) -> BatchResult:
        """Parse every pending request that has no parse yet."""
        with self._handler.lock:
            todo = [r for r in self._requests.pending() if r.parsed is None]
        outcomes = await asyncio.gather(
            *(self.parse(r.raw_text, r.beneficiary, r.id) for r in todo),
            return_exceptions=True,
        )
        result = BatchResult()
        for request, outcome in zip(todo, outcomes):
            if isinstance(outcome, TrustDeskError):
                result.failed += 1
                result.errors[request.id] = outcome.message
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.succeeded += 1
        return result
