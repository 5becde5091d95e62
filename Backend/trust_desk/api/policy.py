from fastapi import APIRouter, Depends
from pydantic import BaseModel

from trust_desk.api.deps import get_desk
from trust_desk.domain.models import ParsedRequest
from trust_desk.services.desk import TrustDesk
from trust_desk.services.trust_policy import (
    FLAG_LABELS,
    FLAG_SEVERITY,
    GENERAL_SUPPORT_MONTHLY_CAP,
    LARGE_PURCHASE_REVIEW_THRESHOLD,
    POLICY_RULES,
)

router = APIRouter()


class PolicyCheckRequest(BaseModel):
    parsed: ParsedRequest
    beneficiary: str


@router.get("/policy")
def get_policy():
    return {
        "rules": [{"id": rule_id, **rule} for rule_id, rule in POLICY_RULES.items()],
        "flags": [
            {"flag": flag.value, "label": FLAG_LABELS[flag], "severity": FLAG_SEVERITY[flag].value}
            for flag in FLAG_LABELS
        ],
        "general_support_monthly_cap": float(GENERAL_SUPPORT_MONTHLY_CAP),
        "large_purchase_review_threshold": float(LARGE_PURCHASE_REVIEW_THRESHOLD),
    }


@router.post("/policy/check")
def check(req: PolicyCheckRequest, desk: TrustDesk = Depends(get_desk)):
    return desk.policy_check(req.parsed, req.beneficiary)
