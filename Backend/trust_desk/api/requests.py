from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from trust_desk.api.deps import get_desk
from trust_desk.domain.models import OfficerOverride
from trust_desk.services.approval_handler import ApprovalResult
from trust_desk.services.desk import TrustDesk

router = APIRouter()


class RequestSubmission(BaseModel):
    beneficiary: str
    raw_text: str


class RequestUpdate(BaseModel):
    officer_override: Optional[OfficerOverride] = None
    action: Optional[str] = None  # approve / deny
    notes: Optional[str] = None
    approved_amount: Optional[Decimal] = None


class BatchAction(BaseModel):
    action: str
    ids: List[str] = Field(default_factory=list)


@router.get("/requests")
def list_requests(desk: TrustDesk = Depends(get_desk)):
    return desk.requests_summary()


@router.post("/requests", status_code=201)
def submit_request(req: RequestSubmission, desk: TrustDesk = Depends(get_desk)):
    return desk.submit_request(req.beneficiary, req.raw_text)


@router.post("/requests/batch")
def batch_action(req: BatchAction, desk: TrustDesk = Depends(get_desk)):
    result = desk.batch(req.action, req.ids)
    return {"succeeded": result.succeeded, "failed": result.failed, "errors": result.errors}


@router.get("/requests/{request_id}")
def get_request(request_id: str, desk: TrustDesk = Depends(get_desk)):
    return desk.get_request(request_id)


@router.patch("/requests/{request_id}")
def update_request(request_id: str, req: RequestUpdate, desk: TrustDesk = Depends(get_desk)):
    result = desk.update_request(
        request_id,
        officer_override=req.officer_override,
        action=req.action,
        notes=req.notes,
        approved_amount=req.approved_amount,
    )
    if isinstance(result, ApprovalResult):
        return {"request": result.request, "ledger_entry": result.ledger_entry}
    if req.action == "deny":
        return {"request": result}
    return result
