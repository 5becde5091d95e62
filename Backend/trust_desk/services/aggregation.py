"""Read-only dashboard views, recomputed from the stores on every call."""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, List

from pydantic import BaseModel, Field

from trust_desk.core.clock import month_key
from trust_desk.domain.models import (
    Category,
    EntryType,
    LedgerEntry,
    Money,
    RequestStatus,
    TrustRequest,
)
from trust_desk.domain.money import ZERO
from trust_desk.services.ledger_store import LedgerStore
from trust_desk.services.request_store import RequestStore


class LedgerSummary(BaseModel):
    entries: List[LedgerEntry]
    balance: Money
    total_credits: Money
    total_debits: Money


class RequestsSummary(BaseModel):
    requests: List[TrustRequest]
    pending_count: int
    pending_exposure: Money


class BalancePointView(BaseModel):
    entry_id: str
    date: datetime
    description: str
    amount: Money
    balance: Money


class CategoryTotal(BaseModel):
    category: str
    amount: Money


class MonthlyTotal(BaseModel):
    month: str
    total: Money


class BeneficiaryProfile(BaseModel):
    beneficiary: str
    total_distributed: Money
    current_month_total: Money
    request_counts: Dict[str, int] = Field(default_factory=dict)
    category_breakdown: List[CategoryTotal] = Field(default_factory=list)


def ledger_summary(ledger: LedgerStore) -> LedgerSummary:
    credits = ledger.total_credits()
    debits = ledger.total_debits()
    return LedgerSummary(
        entries=ledger.chronological(),
        balance=credits - debits,
        total_credits=credits,
        total_debits=debits,
    )


def requests_summary(requests: RequestStore) -> RequestsSummary:
    ordered = sorted(requests.all(), key=lambda r: r.submitted_at)
    return RequestsSummary(
        requests=ordered,
        pending_count=requests.pending_count(),
        pending_exposure=requests.pending_exposure(),
    )


def balance_series(ledger: LedgerStore) -> List[BalancePointView]:
    return [
        BalancePointView(
            entry_id=p.entry_id,
            date=p.date,
            description=p.description,
            amount=p.signed_amount,
            balance=p.balance,
        )
        for p in ledger.running_balance_series()
    ]


def _category_totals(approved: List[TrustRequest]) -> List[CategoryTotal]:
    by_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for r in approved:
        category = (
            (r.resolution.category if r.resolution else None)
            or r.effective_category
            or Category.OTHER
        )
        amount = r.resolution.approved_amount if r.resolution else None
        by_category[category.value] += amount or ZERO
    return [
        CategoryTotal(category=name, amount=amount)
        for name, amount in sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)
    ]


def category_breakdown(requests: RequestStore) -> List[CategoryTotal]:
    """Approved amounts grouped by effective category, largest first."""
    approved = [r for r in requests.all() if r.status == RequestStatus.APPROVED]
    return _category_totals(approved)


def monthly_trend(ledger: LedgerStore) -> List[MonthlyTotal]:
    """DEBIT totals per calendar month, oldest first."""
    by_month: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for entry in ledger.entries():
        if entry.type == EntryType.DEBIT:
            by_month[month_key(entry.date)] += entry.amount
    return [MonthlyTotal(month=m, total=t) for m, t in sorted(by_month.items())]


def beneficiary_profile(
    beneficiary: str,
    ledger: LedgerStore,
    requests: RequestStore,
    month: str,
) -> BeneficiaryProfile:
    mine = requests.for_beneficiary(beneficiary)
    approved = [r for r in mine if r.status == RequestStatus.APPROVED]
    approved_ids = {r.id for r in approved}

    distributions = [
        e
        for e in ledger.entries()
        if e.type == EntryType.DEBIT and e.related_request_id in approved_ids
    ]
    total = sum((e.amount for e in distributions), ZERO)
    this_month = sum((e.amount for e in distributions if month_key(e.date) == month), ZERO)

    counts = {status.value: 0 for status in RequestStatus}
    for r in mine:
        counts[r.status.value] += 1

    return BeneficiaryProfile(
        beneficiary=beneficiary,
        total_distributed=total,
        current_month_total=this_month,
        request_counts=counts,
        category_breakdown=_category_totals(approved),
    )
