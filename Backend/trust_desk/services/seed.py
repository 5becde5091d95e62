from datetime import datetime, timezone
from decimal import Decimal
from typing import List

from trust_desk.domain.models import ActivityAction, ActivityEvent, EntryType, LedgerEntry, TrustRequest


def _utc(*parts: int) -> datetime:
    return datetime(*parts, tzinfo=timezone.utc)


_LEDGER = [
    ("txn_seed_001", _utc(2025, 1, 2, 9, 0), "Initial Trust Funding: Miller Family Trust", "2500000.00", EntryType.CREDIT),
    ("txn_seed_002", _utc(2025, 3, 31, 17, 0), "Quarterly Trustee Fee (Q1 2025)", "6250.00", EntryType.DEBIT),
    ("txn_seed_003", _utc(2025, 4, 1, 9, 0), "Dividend Income: Vanguard Total Market", "18420.55", EntryType.CREDIT),
    ("txn_seed_004", _utc(2025, 6, 30, 17, 0), "Quarterly Trustee Fee (Q2 2025)", "6250.00", EntryType.DEBIT),
    ("txn_seed_005", _utc(2025, 7, 1, 9, 0), "Dividend Income: Vanguard Total Market", "19105.10", EntryType.CREDIT),
    ("txn_seed_006", _utc(2025, 9, 30, 17, 0), "Quarterly Trustee Fee (Q3 2025)", "6250.00", EntryType.DEBIT),
    ("txn_seed_007", _utc(2025, 10, 1, 9, 0), "Dividend Income: Vanguard Total Market", "18877.42", EntryType.CREDIT),
    ("txn_seed_008", _utc(2025, 12, 31, 17, 0), "Quarterly Trustee Fee (Q4 2025)", "6250.00", EntryType.DEBIT),
    ("txn_seed_009", _utc(2026, 1, 2, 9, 0), "Dividend Income: Vanguard Total Market", "20311.87", EntryType.CREDIT),
    ("txn_seed_010", _utc(2026, 3, 16, 10, 30), "Tax Preparation: Hartley & Rowe CPA", "4800.00", EntryType.DEBIT),
    ("txn_seed_011", _utc(2026, 3, 31, 17, 0), "Quarterly Trustee Fee (Q1 2026)", "6250.00", EntryType.DEBIT),
    ("txn_seed_012", _utc(2026, 4, 1, 9, 0), "Dividend Income: Vanguard Total Market", "19764.03", EntryType.CREDIT),
    ("txn_seed_013", _utc(2026, 6, 30, 17, 0), "Quarterly Trustee Fee (Q2 2026)", "6250.00", EntryType.DEBIT),
    ("txn_seed_014", _utc(2026, 7, 1, 9, 0), "Dividend Income: Vanguard Total Market", "20950.66", EntryType.CREDIT),
    ("txn_seed_015", _utc(2026, 9, 30, 17, 0), "Quarterly Trustee Fee (Q3 2026)", "6250.00", EntryType.DEBIT),
]

_REQUESTS = [
    (
        "req_001",
        "Sam Miller",
        _utc(2026, 10, 1, 14, 22),
        "Hi, I need $4,500 to cover my spring semester tuition at State University. "
        "The payment is due by the end of the month.",
    ),
    (
        "req_002",
        "Katie Miller",
        _utc(2026, 10, 2, 9, 5),
        "Could the trust cover my rent for October? It's $2,800 and my landlord "
        "needs it by the 5th.",
    ),
    (
        "req_003",
        "Sam Miller",
        _utc(2026, 10, 3, 20, 47),
        "A friend is raising an angel round for his crypto startup and I want in. "
        "I need $50,000 to invest before the round closes next week. This could "
        "10x easily!",
    ),
    (
        "req_004",
        "Katie Miller",
        _utc(2026, 10, 5, 6, 12),
        "I was taken to the ER last night and need emergency surgery. The hospital "
        "is asking for $12,350 upfront for the procedure. Please help ASAP.",
    ),
    (
        "req_005",
        "Jordan Blake",
        _utc(2026, 10, 6, 11, 30),
        "Hello, I'm a cousin of the Millers. Things have been rough and I need "
        "$1,500 for living expenses this month.",
    ),
    (
        "req_006",
        "Sam Miller",
        _utc(2026, 10, 8, 16, 3),
        "I found a great deal on a Tesla Model S, $38,000. My current car is "
        "getting old and I deserve an upgrade.",
    ),
    (
        "req_007",
        "Katie Miller",
        _utc(2026, 10, 9, 13, 45),
        "I'm moving to a new apartment next week and need $3,000 for groceries, "
        "movers and the utility deposits.",
    ),
]


def seed_ledger() -> List[LedgerEntry]:
    return [
        LedgerEntry(
            id=entry_id,
            date=date,
            description=description,
            amount=Decimal(amount),
            type=entry_type,
            created_by="System",
        )
        for entry_id, date, description, amount, entry_type in _LEDGER
    ]


def seed_requests() -> List[TrustRequest]:
    """Fresh pending requests, unparsed, each with its submission event."""
    return [
        TrustRequest(
            id=request_id,
            beneficiary=beneficiary,
            submitted_at=submitted_at,
            raw_text=raw_text,
            activity_log=[
                ActivityEvent(
                    timestamp=submitted_at,
                    action=ActivityAction.SUBMITTED,
                    actor=beneficiary,
                )
            ],
        )
        for request_id, beneficiary, submitted_at, raw_text in _REQUESTS
    ]
