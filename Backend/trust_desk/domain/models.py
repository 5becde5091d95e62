from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

# Amounts stay Decimal in memory and render as JSON numbers.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class EntryType(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class Category(str, Enum):
    EDUCATION = "Education"
    MEDICAL = "Medical"
    GENERAL_SUPPORT = "General Support"
    INVESTMENT = "Investment"
    VEHICLE = "Vehicle"
    OTHER = "Other"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PolicyFlag(str, Enum):
    PROHIBITED = "prohibited"
    OVER_LIMIT = "over_limit"  # reserved, nothing produces it any more
    REQUIRES_REVIEW = "requires_review"
    UNKNOWN_BENEFICIARY = "unknown_beneficiary"
    EXCEEDS_MONTHLY_CAP = "exceeds_monthly_cap"


class Severity(str, Enum):
    OK = "ok"
    WARNING = "warning"
    BLOCKED = "blocked"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class ActivityAction(str, Enum):
    SUBMITTED = "submitted"
    PARSED = "parsed"
    OVERRIDE_UPDATED = "override_updated"
    APPROVED = "approved"
    DENIED = "denied"


class LedgerEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    date: Optional[datetime] = None
    description: str
    amount: Money
    type: EntryType
    related_request_id: Optional[str] = None
    created_by: Optional[str] = None

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type == EntryType.CREDIT else -self.amount


class ParsedRequest(BaseModel):
    amount: Money = Decimal("0")
    category: Category = Category.OTHER
    urgency: Urgency = Urgency.MEDIUM
    summary: str = ""
    policy_notes: List[str] = Field(default_factory=list)
    flags: List[PolicyFlag] = Field(default_factory=list)


class OfficerOverride(BaseModel):
    amount: Optional[Money] = None
    category: Optional[Category] = None
    urgency: Optional[Urgency] = None
    notes: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class RequestResolution(BaseModel):
    action: RequestStatus
    decided_by: str
    decided_at: datetime
    notes: str = ""
    approved_amount: Optional[Money] = None
    ledger_entry_id: Optional[str] = None
    category: Optional[Category] = None


class ActivityEvent(BaseModel):
    timestamp: datetime
    action: ActivityAction
    actor: str
    detail: Optional[str] = None


class TrustRequest(BaseModel):
    id: str
    beneficiary: str
    submitted_at: datetime
    raw_text: str
    status: RequestStatus = RequestStatus.PENDING
    parsed: Optional[ParsedRequest] = None
    officer_override: Optional[OfficerOverride] = None
    resolution: Optional[RequestResolution] = None
    activity_log: List[ActivityEvent] = Field(default_factory=list)

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    @property
    def effective_amount(self) -> Decimal:
        if self.officer_override and self.officer_override.amount is not None:
            return self.officer_override.amount
        if self.parsed:
            return self.parsed.amount
        return Decimal("0")

    @property
    def effective_category(self) -> Optional[Category]:
        if self.officer_override and self.officer_override.category is not None:
            return self.officer_override.category
        return self.parsed.category if self.parsed else None

    @property
    def effective_urgency(self) -> Optional[Urgency]:
        if self.officer_override and self.officer_override.urgency is not None:
            return self.officer_override.urgency
        return self.parsed.urgency if self.parsed else None


class PolicyResult(BaseModel):
    flags: List[PolicyFlag] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    severity: Severity = Severity.OK
