from datetime import datetime, timezone
from decimal import Decimal

import pytest

from trust_desk.core.exceptions import NotFoundError, ValidationError
from trust_desk.domain.models import (
    Category,
    EntryType,
    LedgerEntry,
    OfficerOverride,
    RequestResolution,
    RequestStatus,
    TrustRequest,
)
from trust_desk.services.ledger_store import LedgerStore


def utc(*parts):
    return datetime(*parts, tzinfo=timezone.utc)


def entry(amount, type=EntryType.CREDIT, date=None, **kwargs):
    return LedgerEntry(
        description=kwargs.pop("description", "entry"),
        amount=Decimal(amount),
        type=type,
        date=date,
        **kwargs,
    )


class TestAppend:
    def test_assigns_id_and_date(self, clock):
        store = LedgerStore(clock)
        appended = store.append(entry("250"))
        assert appended.id.startswith("txn_")
        assert appended.date == clock.now()
        assert store.get(appended.id) == appended

    def test_accepts_plain_mapping(self, clock):
        store = LedgerStore(clock)
        appended = store.append({"description": "Dividend", "amount": 12.5, "type": "CREDIT"})
        assert appended.amount == Decimal("12.5")
        assert appended.type == EntryType.CREDIT

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_rejects_non_positive_amount(self, clock, amount):
        store = LedgerStore(clock)
        with pytest.raises(ValidationError):
            store.append(entry(amount))
        assert len(store) == 0

    def test_rejects_unknown_type(self, clock):
        store = LedgerStore(clock)
        with pytest.raises(ValidationError):
            store.append({"description": "x", "amount": 10, "type": "REFUND"})

    def test_rejects_blank_description(self, clock):
        store = LedgerStore(clock)
        with pytest.raises(ValidationError):
            store.append(entry("10", description="   "))

    def test_rejects_duplicate_id(self, clock):
        store = LedgerStore(clock)
        store.append(entry("10", id="txn_a"))
        with pytest.raises(ValidationError):
            store.append(entry("20", id="txn_a"))

    def test_naive_dates_are_treated_as_utc(self, clock):
        store = LedgerStore(clock)
        appended = store.append(entry("10", date=datetime(2026, 2, 1, 9, 0)))
        assert appended.date == utc(2026, 2, 1, 9, 0)

    def test_unknown_entry(self, clock):
        with pytest.raises(NotFoundError):
            LedgerStore(clock).get("txn_missing")


class TestTotals:
    def test_balance_is_credits_minus_debits(self, clock):
        store = LedgerStore(clock)
        store.append(entry("1000.10"))
        store.append(entry("0.20"))
        store.append(entry("250.05", EntryType.DEBIT))

        assert store.total_credits() == Decimal("1000.30")
        assert store.total_debits() == Decimal("250.05")
        assert store.balance() == Decimal("750.25")

    def test_empty_store(self, clock):
        store = LedgerStore(clock)
        assert store.balance() == Decimal("0")
        assert store.running_balance_series() == []


class TestOrdering:
    def test_chronological_sorts_by_date(self, clock):
        store = LedgerStore(clock)
        late = store.append(entry("10", date=utc(2026, 3, 1)))
        early = store.append(entry("20", date=utc(2026, 1, 1)))
        assert [e.id for e in store.chronological()] == [early.id, late.id]
        assert [e.id for e in store.entries()] == [late.id, early.id]

    def test_equal_dates_keep_insertion_order(self, clock):
        store = LedgerStore(clock)
        same = utc(2026, 3, 1, 12, 0)
        ids = [store.append(entry(str(n), date=same)).id for n in (5, 1, 3)]
        assert [e.id for e in store.chronological()] == ids

    def test_running_balance_series(self, clock):
        store = LedgerStore(clock)
        store.append(entry("1000", date=utc(2026, 1, 1)))
        store.append(entry("300", EntryType.DEBIT, date=utc(2026, 2, 1)))
        store.append(entry("50", date=utc(2026, 1, 15)))

        series = store.running_balance_series()
        assert [p.balance for p in series] == [Decimal("1000"), Decimal("1050"), Decimal("750")]
        assert series[-1].signed_amount == Decimal("-300")
        assert series[-1].balance == store.balance()


class TestMonthlySpend:
    @pytest.fixture
    def approved(self):
        def _approved(rid, beneficiary="Sam Miller", category=Category.GENERAL_SUPPORT):
            return TrustRequest(
                id=rid,
                beneficiary=beneficiary,
                submitted_at=utc(2026, 3, 1),
                raw_text="rent",
                status=RequestStatus.APPROVED,
                officer_override=OfficerOverride(category=category),
                resolution=RequestResolution(
                    action=RequestStatus.APPROVED,
                    decided_by="Margaret Chen",
                    decided_at=utc(2026, 3, 2),
                    approved_amount=Decimal("1"),
                    ledger_entry_id="txn",
                    category=category,
                ),
            )

        return _approved

    def test_counts_only_matching_general_support(self, clock, approved):
        requests = {
            "r1": approved("r1"),
            "r2": approved("r2", category=Category.MEDICAL),
            "r3": approved("r3", beneficiary="Katie Miller"),
            "r4": approved("r4"),
        }
        store = LedgerStore(clock)
        store.append(entry("100000"))
        store.append(entry("1200", EntryType.DEBIT, date=utc(2026, 3, 3), related_request_id="r1"))
        store.append(entry("900", EntryType.DEBIT, date=utc(2026, 3, 4), related_request_id="r2"))
        store.append(entry("700", EntryType.DEBIT, date=utc(2026, 3, 5), related_request_id="r3"))
        store.append(entry("500", EntryType.DEBIT, date=utc(2026, 2, 28), related_request_id="r4"))
        store.append(entry("300", EntryType.DEBIT, date=utc(2026, 3, 6)))

        assert store.monthly_spend("Sam Miller", "2026-03", requests.get) == Decimal("1200")
        assert store.monthly_spend("Sam Miller", "2026-02", requests.get) == Decimal("500")
        assert store.monthly_spend("Katie Miller", "2026-03", requests.get) == Decimal("700")

    def test_unresolvable_request_does_not_count(self, clock):
        store = LedgerStore(clock)
        store.append(entry("100", EntryType.DEBIT, date=utc(2026, 3, 3), related_request_id="gone"))
        assert store.monthly_spend("Sam Miller", "2026-03", lambda rid: None) == Decimal("0")
