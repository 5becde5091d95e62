"""
Pytest fixtures for the trust desk test suite.

Provides:
- A deterministic clock pinned to 2026-03-15 12:00 UTC
- In-memory ledger/request stores and an approval handler over them
- A ``make_request`` factory for parsed pending requests
- A desk over in-memory SQLite (seeded) and a FastAPI TestClient
- Structured log capture
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest
from fastapi.testclient import TestClient

from trust_desk.core.clock import DeterministicClock
from trust_desk.core.config import Settings
from trust_desk.core.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from trust_desk.domain.models import (
    ActivityAction,
    ActivityEvent,
    Category,
    EntryType,
    LedgerEntry,
    ParsedRequest,
    TrustRequest,
    Urgency,
)
from trust_desk.services.approval_handler import ApprovalTransactionHandler
from trust_desk.services.desk import TrustDesk
from trust_desk.services.extractors import KeywordRequestExtractor
from trust_desk.services.ledger_store import LedgerStore
from trust_desk.services.policy_engine import evaluate
from trust_desk.services.request_store import RequestStore

OFFICER = "Margaret Chen"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture trust_desk logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, handler):
            handler.deny("req_1")
            assert any(r["message"] == "request_denied" for r in captured_logs())
    """
    stream = StringIO()
    h = logging.StreamHandler(stream)
    h.setFormatter(StructuredFormatter())
    root = logging.getLogger("trust_desk")
    root.addHandler(h)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(h)


# =============================================================================
# Store fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def ledger(clock):
    store = LedgerStore(clock)
    store.append(
        LedgerEntry(
            id="txn_funding",
            date=datetime(2026, 1, 2, 9, 0, tzinfo=timezone.utc),
            description="Initial Trust Funding",
            amount=Decimal("100000"),
            type=EntryType.CREDIT,
        )
    )
    return store


@pytest.fixture
def requests():
    return RequestStore()


@pytest.fixture
def handler(ledger, requests, clock):
    return ApprovalTransactionHandler(ledger, requests, OFFICER, clock=clock)


@pytest.fixture
def make_request(requests, clock):
    """
    Factory for a pending request whose ``parsed`` carries the engine's flags.

    Pass ``parsed=False`` for a request that has not been through extraction.
    """
    counter = {"n": 0}

    def _make(
        beneficiary: str = "Sam Miller",
        amount: str | Decimal = "1000",
        category: Category = Category.EDUCATION,
        urgency: Urgency = Urgency.MEDIUM,
        raw_text: str = "Please help with this expense.",
        parsed: bool = True,
        request_id: str | None = None,
    ) -> TrustRequest:
        counter["n"] += 1
        rid = request_id or f"req_test_{counter['n']:03d}"
        parsed_request = None
        if parsed:
            parsed_request = ParsedRequest(
                amount=Decimal(amount),
                category=category,
                urgency=urgency,
                summary=f"{beneficiary} requests {category.value}",
            )
            result = evaluate(parsed_request, beneficiary)
            parsed_request = parsed_request.model_copy(
                update={"flags": result.flags, "policy_notes": result.notes}
            )
        now = clock.now()
        return requests.add(
            TrustRequest(
                id=rid,
                beneficiary=beneficiary,
                submitted_at=now,
                raw_text=raw_text,
                parsed=parsed_request,
                activity_log=[
                    ActivityEvent(timestamp=now, action=ActivityAction.SUBMITTED, actor=beneficiary)
                ],
            )
        )

    return _make


# =============================================================================
# Desk / API fixtures
# =============================================================================


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", openai_api_key=None, officer_name=OFFICER)


@pytest.fixture
def desk(settings, clock):
    d = TrustDesk(settings, clock=clock, extractor=KeywordRequestExtractor())
    d.load()
    yield d
    d.repository.close()


@pytest.fixture
def client(desk):
    from trust_desk.main import create_app

    with TestClient(create_app(desk=desk)) as c:
        yield c
