from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from trust_desk.api.deps import get_desk
from trust_desk.domain.models import EntryType
from trust_desk.services.desk import TrustDesk

router = APIRouter()


class LedgerEntryCreate(BaseModel):
    description: str
    amount: Decimal
    type: EntryType


@router.get("/ledger")
def get_ledger(desk: TrustDesk = Depends(get_desk)):
    return desk.ledger_summary()


@router.post("/ledger", status_code=201)
def append_ledger_entry(req: LedgerEntryCreate, desk: TrustDesk = Depends(get_desk)):
    return desk.append_ledger_entry(req.description, req.amount, req.type)
