from datetime import datetime
from decimal import Decimal
from typing import Optional
import json

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from trust_desk.domain.models import (
    ActivityEvent,
    LedgerEntry,
    OfficerOverride,
    ParsedRequest,
    RequestResolution,
    TrustRequest,
)


class Base(DeclarativeBase):
    pass


class LedgerEntryRecord(Base):
    __tablename__ = "ledger_entries"
    # Insertion sequence; tie-break for entries sharing a date.
    seq: Mapped[int] = mapped_column(Integer, primary_key=True)
    entry_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    date: Mapped[str] = mapped_column(String)
    description: Mapped[str] = mapped_column(Text)
    amount: Mapped[str] = mapped_column(String)
    entry_type: Mapped[str] = mapped_column(String)
    related_request_id: Mapped[Optional[str]] = mapped_column(String, index=True, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    def __init__(self, seq: int, entry: LedgerEntry):
        self.seq = seq
        self.entry_id = entry.id
        self.date = entry.date.isoformat()
        self.description = entry.description
        self.amount = str(entry.amount)
        self.entry_type = entry.type.value
        self.related_request_id = entry.related_request_id
        self.created_by = entry.created_by

    def to_entry(self) -> LedgerEntry:
        return LedgerEntry(
            id=self.entry_id,
            date=datetime.fromisoformat(self.date),
            description=self.description,
            amount=Decimal(self.amount),
            type=self.entry_type,
            related_request_id=self.related_request_id,
            created_by=self.created_by,
        )


class TrustRequestRecord(Base):
    __tablename__ = "trust_requests"
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    beneficiary: Mapped[str] = mapped_column(String, index=True)
    submitted_at: Mapped[str] = mapped_column(String)
    raw_text: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String, index=True)
    parsed_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    override_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolution_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    activity_log_json: Mapped[str] = mapped_column(Text)

    def __init__(self, position: int, request: TrustRequest):
        self.position = position
        self.request_id = request.id
        self.beneficiary = request.beneficiary
        self.submitted_at = request.submitted_at.isoformat()
        self.raw_text = request.raw_text
        self.status = request.status.value
        # Decimals are written as strings so amounts survive the round trip exactly
        self.parsed_json = _dump(request.parsed)
        self.override_json = _dump(request.officer_override)
        self.resolution_json = _dump(request.resolution)
        self.activity_log_json = json.dumps(
            [e.model_dump(mode="python") for e in request.activity_log], default=_json_default
        )

    def to_request(self) -> TrustRequest:
        return TrustRequest(
            id=self.request_id,
            beneficiary=self.beneficiary,
            submitted_at=datetime.fromisoformat(self.submitted_at),
            raw_text=self.raw_text,
            status=self.status,
            parsed=_load(ParsedRequest, self.parsed_json),
            officer_override=_load(OfficerOverride, self.override_json),
            resolution=_load(RequestResolution, self.resolution_json),
            activity_log=[ActivityEvent.model_validate(e) for e in json.loads(self.activity_log_json)],
        )


def _json_default(obj):
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    raise TypeError(f"Cannot serialise {type(obj).__name__}")


def _dump(model) -> Optional[str]:
    if model is None:
        return None
    return json.dumps(model.model_dump(mode="python"), default=_json_default)


def _load(cls, raw: Optional[str]):
    if raw is None:
        return None
    return cls.model_validate(json.loads(raw))
