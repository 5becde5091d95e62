"""
Append-only ledger of trust CREDIT/DEBIT entries.

Entries are never mutated or removed. Each append is given a sequence number
(its position in the store), which breaks ties between entries that carry the
same ``date`` when building the running-balance series.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from trust_desk.core.clock import Clock, SystemClock, month_key
from trust_desk.core.exceptions import NotFoundError, ValidationError
from trust_desk.core.logging_config import get_logger
from trust_desk.domain.models import (
    Category,
    EntryType,
    LedgerEntry,
    RequestStatus,
    TrustRequest,
)
from trust_desk.domain.money import ZERO, format_currency

logger = get_logger("ledger_store")

RequestResolver = Callable[[str], Optional[TrustRequest]]


def new_entry_id() -> str:
    return "txn_" + uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class BalancePoint:
    entry_id: str
    date: datetime
    description: str
    signed_amount: Decimal
    balance: Decimal


class LedgerStore:
    def __init__(self, clock: Clock | None = None, entries: Iterable[LedgerEntry] = ()):
        self._clock = clock or SystemClock()
        self._entries: List[LedgerEntry] = []
        self._by_id: dict[str, LedgerEntry] = {}
        for entry in entries:
            self.append(entry)

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, entry: Union[LedgerEntry, Mapping[str, Any]]) -> LedgerEntry:
        if not isinstance(entry, LedgerEntry):
            try:
                entry = LedgerEntry.model_validate(dict(entry))
            except PydanticValidationError as exc:
                fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
                raise ValidationError(f"Invalid ledger entry ({fields})") from exc

        if entry.type not in (EntryType.CREDIT, EntryType.DEBIT):
            raise ValidationError(f"Ledger entry type must be CREDIT or DEBIT, got {entry.type!r}")
        if entry.amount <= 0:
            raise ValidationError(
                f"Ledger entry amount must be positive, got {format_currency(entry.amount)}"
            )
        if not (entry.description or "").strip():
            raise ValidationError("Ledger entry description is required")

        updates: dict[str, Any] = {}
        if not entry.id:
            updates["id"] = new_entry_id()
        if entry.date is None:
            updates["date"] = self._clock.now()
        elif entry.date.tzinfo is None:
            updates["date"] = entry.date.replace(tzinfo=timezone.utc)
        if updates:
            entry = entry.model_copy(update=updates)

        if entry.id in self._by_id:
            raise ValidationError(f"Ledger entry {entry.id} already exists")

        self._entries.append(entry)
        self._by_id[entry.id] = entry
        logger.debug(
            "ledger_appended",
            extra={"entry_id": entry.id, "type": entry.type, "amount": entry.amount},
        )
        return entry

    def load(self, entries: Iterable[LedgerEntry]) -> None:
        """Replace the whole collection (repository load / reset)."""
        self._entries = []
        self._by_id = {}
        for entry in entries:
            self.append(entry)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, entry_id: str) -> LedgerEntry:
        try:
            return self._by_id[entry_id]
        except KeyError:
            raise NotFoundError("Ledger entry", entry_id) from None

    def entries(self) -> List[LedgerEntry]:
        """Entries in insertion order."""
        return list(self._entries)

    def chronological(self) -> List[LedgerEntry]:
        """Entries ordered by date, ties broken by insertion sequence."""
        order = sorted(range(len(self._entries)), key=lambda i: (self._entries[i].date, i))
        return [self._entries[i] for i in order]

    def entries_for_request(self, request_id: str) -> List[LedgerEntry]:
        return [e for e in self._entries if e.related_request_id == request_id]

    def total_credits(self) -> Decimal:
        return sum((e.amount for e in self._entries if e.type == EntryType.CREDIT), ZERO)

    def total_debits(self) -> Decimal:
        return sum((e.amount for e in self._entries if e.type == EntryType.DEBIT), ZERO)

    def balance(self) -> Decimal:
        return self.total_credits() - self.total_debits()

    def running_balance_series(self) -> List[BalancePoint]:
        points: List[BalancePoint] = []
        running = ZERO
        for entry in self.chronological():
            running += entry.signed_amount
            points.append(
                BalancePoint(
                    entry_id=entry.id,
                    date=entry.date,
                    description=entry.description,
                    signed_amount=entry.signed_amount,
                    balance=running,
                )
            )
        return points

    def monthly_spend(self, beneficiary: str, month: str, resolve_request: RequestResolver) -> Decimal:
        """
        Approved General Support distributions to ``beneficiary`` dated in
        ``month`` ("YYYY-MM", UTC). Pending and denied requests never count.
        """
        total = ZERO
        for entry in self._entries:
            if entry.type != EntryType.DEBIT or not entry.related_request_id:
                continue
            if month_key(entry.date) != month:
                continue
            request = resolve_request(entry.related_request_id)
            if request is None or request.status != RequestStatus.APPROVED:
                continue
            if request.beneficiary != beneficiary:
                continue
            if request.resolution is None or request.resolution.category != Category.GENERAL_SUPPORT:
                continue
            total += entry.amount
        return total
